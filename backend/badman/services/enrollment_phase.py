"""
Enrollment phase state machine.

Sub-event phases:
    DRAFT -> OPEN -> CLOSED / FULL / WAITLIST_ONLY -> LOCKED

OPEN <-> FULL is driven by capacity (see enrollment_lifecycle). Every other move
is explicit: an organizer action, a tournament phase change cascading down, or
the periodic sweep over enrollment open/close dates.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlmodel import Session, select

from badman.models.sub_event import EnrollmentPhase, TournamentSubEvent
from badman.models.tournament import TournamentEvent, TournamentPhase
from badman.services.enrollment_errors import InvalidPhaseTransition
from badman.services.enrollment_lifecycle import refresh_capacity_phase
from badman.utils.dates import WindowPosition, utcnow, window_position

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[EnrollmentPhase, frozenset] = {
    EnrollmentPhase.DRAFT: frozenset({EnrollmentPhase.OPEN, EnrollmentPhase.CLOSED, EnrollmentPhase.LOCKED}),
    EnrollmentPhase.OPEN: frozenset(
        {EnrollmentPhase.CLOSED, EnrollmentPhase.FULL, EnrollmentPhase.WAITLIST_ONLY, EnrollmentPhase.LOCKED}
    ),
    EnrollmentPhase.FULL: frozenset(
        {EnrollmentPhase.OPEN, EnrollmentPhase.CLOSED, EnrollmentPhase.WAITLIST_ONLY, EnrollmentPhase.LOCKED}
    ),
    EnrollmentPhase.WAITLIST_ONLY: frozenset(
        {EnrollmentPhase.OPEN, EnrollmentPhase.FULL, EnrollmentPhase.CLOSED, EnrollmentPhase.LOCKED}
    ),
    EnrollmentPhase.CLOSED: frozenset({EnrollmentPhase.OPEN, EnrollmentPhase.LOCKED}),
    EnrollmentPhase.LOCKED: frozenset(),
}

# Phases in which new enrollments (direct or waiting list) are accepted
ENROLLABLE_PHASES = frozenset({EnrollmentPhase.OPEN, EnrollmentPhase.FULL, EnrollmentPhase.WAITLIST_ONLY})

_CLOSED_TOURNAMENT_PHASES = frozenset(
    {
        TournamentPhase.ENROLLMENT_CLOSED,
        TournamentPhase.DRAWS_MADE,
        TournamentPhase.SCHEDULED,
        TournamentPhase.IN_PROGRESS,
    }
)


def can_transition(current: EnrollmentPhase, target: EnrollmentPhase) -> bool:
    current = EnrollmentPhase(current)
    target = EnrollmentPhase(target)
    return current == target or target in ALLOWED_TRANSITIONS[current]


def transition_sub_event_phase(
    session: Session,
    sub_event: TournamentSubEvent,
    target: EnrollmentPhase,
) -> EnrollmentPhase:
    """
    Move a sub-event to a new enrollment phase.

    Raises InvalidPhaseTransition for moves the state machine does not allow.
    Opening a sub-event that is already at capacity lands on FULL.
    """
    current = EnrollmentPhase(sub_event.enrollment_phase)
    target = EnrollmentPhase(target)
    if not can_transition(current, target):
        raise InvalidPhaseTransition(current, target)
    if current == target:
        return current

    sub_event.enrollment_phase = target
    if target == EnrollmentPhase.OPEN:
        refresh_capacity_phase(sub_event)
    session.add(sub_event)
    logger.info(f"Sub-event {sub_event.id} enrollment phase {current.value} -> {sub_event.enrollment_phase.value}")
    return EnrollmentPhase(sub_event.enrollment_phase)


def _cascade_target(tournament_phase: TournamentPhase, current: EnrollmentPhase) -> Optional[EnrollmentPhase]:
    if tournament_phase == TournamentPhase.COMPLETED:
        return EnrollmentPhase.LOCKED
    if current == EnrollmentPhase.LOCKED:
        return None
    if tournament_phase == TournamentPhase.DRAFT:
        return EnrollmentPhase.DRAFT
    if tournament_phase == TournamentPhase.ENROLLMENT_OPEN:
        if current in ENROLLABLE_PHASES:
            return None  # keep OPEN / FULL / WAITLIST_ONLY as they are
        return EnrollmentPhase.OPEN
    if tournament_phase in _CLOSED_TOURNAMENT_PHASES:
        return EnrollmentPhase.CLOSED
    return None


def apply_tournament_phase(session: Session, tournament: TournamentEvent, phase: TournamentPhase) -> Dict:
    """
    Set the tournament phase and cascade the matching enrollment phase to its sub-events.

    Mapping:
        DRAFT                                   -> DRAFT
        ENROLLMENT_OPEN                         -> OPEN (FULL when at capacity)
        ENROLLMENT_CLOSED / DRAWS_MADE /
        SCHEDULED / IN_PROGRESS                 -> CLOSED
        COMPLETED                               -> LOCKED

    The cascade is an administrative override, so it bypasses the per-sub-event
    transition table. LOCKED sub-events only follow COMPLETED.
    """
    previous = TournamentPhase(tournament.phase)
    phase = TournamentPhase(phase)
    tournament.phase = phase
    session.add(tournament)

    changed: List[int] = []
    sub_events = session.exec(select(TournamentSubEvent).where(TournamentSubEvent.event_id == tournament.id)).all()
    for sub_event in sub_events:
        current = EnrollmentPhase(sub_event.enrollment_phase)
        target = _cascade_target(phase, current)
        if target is None or target == current:
            continue
        sub_event.enrollment_phase = target
        if target == EnrollmentPhase.OPEN:
            refresh_capacity_phase(sub_event)
        session.add(sub_event)
        changed.append(sub_event.id)

    logger.info(
        f"Tournament {tournament.id} phase {previous.value} -> {phase.value}; "
        f"{len(changed)} sub-event(s) updated"
    )
    return {"tournament_id": tournament.id, "phase": phase.value, "sub_events_updated": changed}


def sweep_enrollment_windows(session: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Open and close sub-events whose enrollment dates have been reached.

    - DRAFT sub-events of an ENROLLMENT_OPEN tournament open once the open date passed
      (a sub-event with no open date anywhere opens immediately).
    - OPEN / FULL / WAITLIST_ONLY sub-events close once the close date passed.

    Caller commits.
    """
    now = now or utcnow()
    opened = 0
    closed = 0

    candidates = session.exec(
        select(TournamentSubEvent).where(
            TournamentSubEvent.enrollment_phase.in_(
                [
                    EnrollmentPhase.DRAFT.value,
                    EnrollmentPhase.OPEN.value,
                    EnrollmentPhase.FULL.value,
                    EnrollmentPhase.WAITLIST_ONLY.value,
                ]
            )
        )
    ).all()

    for sub_event in candidates:
        phase = EnrollmentPhase(sub_event.enrollment_phase)
        position = window_position(sub_event, now)

        if position == WindowPosition.AFTER_CLOSE:
            if phase in ENROLLABLE_PHASES:
                transition_sub_event_phase(session, sub_event, EnrollmentPhase.CLOSED)
                closed += 1
            continue

        if phase == EnrollmentPhase.DRAFT:
            tournament = sub_event.tournament
            if tournament is None or TournamentPhase(tournament.phase) != TournamentPhase.ENROLLMENT_OPEN:
                continue
            if position == WindowPosition.OPEN:
                transition_sub_event_phase(session, sub_event, EnrollmentPhase.OPEN)
                opened += 1

    if opened or closed:
        logger.info(f"Enrollment window sweep: opened={opened} closed={closed}")
    return {"opened": opened, "closed": closed}
