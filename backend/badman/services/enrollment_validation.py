"""
Enrollment eligibility checks.

Used before enrolling (single sub-event) and when validating a cart of
several sub-events at once. Nothing here mutates data.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlmodel import Session, select

from badman.models.enrollment import ACTIVE_STATUSES, TournamentEnrollment
from badman.models.player import Player
from badman.models.sub_event import EnrollmentPhase, GameType, TournamentSubEvent
from badman.services.enrollment_phase import ENROLLABLE_PHASES
from badman.utils.dates import WindowPosition, effective_window, utcnow, window_position

ERROR_NOT_FOUND = "NOT_FOUND"
ERROR_ENROLLMENT_CLOSED = "ENROLLMENT_CLOSED"
ERROR_LEVEL = "LEVEL_REQUIREMENT_NOT_MET"
ERROR_ALREADY_ENROLLED = "ALREADY_ENROLLED"
ERROR_CAPACITY_FULL = "CAPACITY_FULL"
ERROR_INVALID_PARTNER = "INVALID_PARTNER"


@dataclass
class EligibilityResult:
    eligible: bool = True
    reasons: List[str] = field(default_factory=list)
    meets_level_requirement: bool = True
    is_already_enrolled: bool = False
    has_capacity: bool = True
    is_within_enrollment_window: bool = True
    # Error type per reason, same order as reasons
    error_types: List[str] = field(default_factory=list)

    def fail(self, reason: str, error_type: str) -> None:
        self.eligible = False
        self.reasons.append(reason)
        self.error_types.append(error_type)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class BulkValidationError:
    sub_event_id: int
    sub_event_name: str
    error_type: str
    message: str


@dataclass
class BulkValidationResult:
    valid: bool
    errors: List[BulkValidationError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def errors_for(self, sub_event_id: int) -> List[BulkValidationError]:
        return [e for e in self.errors if e.sub_event_id == sub_event_id]


def find_active_enrollment(session: Session, sub_event_id: int, player_id: int) -> Optional[TournamentEnrollment]:
    return session.exec(
        select(TournamentEnrollment).where(
            TournamentEnrollment.sub_event_id == sub_event_id,
            TournamentEnrollment.player_id == player_id,
            TournamentEnrollment.status.in_([s.value for s in ACTIVE_STATUSES]),
        )
    ).first()


def player_level_for(player: Player, sub_event: TournamentSubEvent) -> Optional[int]:
    if GameType(sub_event.game_type) == GameType.S:
        return player.level_single
    return player.level_double


def evaluate_eligibility(
    session: Session,
    player_id: int,
    sub_event: TournamentSubEvent,
    now: Optional[datetime] = None,
) -> EligibilityResult:
    now = now or utcnow()
    result = EligibilityResult()

    # 1. Phase. FULL still accepts waiting-list enrollments; step 5 rejects it without a list.
    if EnrollmentPhase(sub_event.enrollment_phase) not in ENROLLABLE_PHASES:
        result.is_within_enrollment_window = False
        result.fail("Enrollment is not currently open for this event", ERROR_ENROLLMENT_CLOSED)

    # 2. Dates (sub-event first, then tournament)
    position = window_position(sub_event, now)
    if position == WindowPosition.BEFORE_OPEN:
        open_date = effective_window(sub_event)[0]
        result.is_within_enrollment_window = False
        result.fail(f"Enrollment opens on {open_date.date().isoformat()}", ERROR_ENROLLMENT_CLOSED)
    if position == WindowPosition.AFTER_CLOSE:
        result.is_within_enrollment_window = False
        result.fail("Enrollment has closed for this event", ERROR_ENROLLMENT_CLOSED)

    # 3. Level. Levels count down: 1 is the strongest, so min_level is the
    #    lowest number allowed and max_level the highest.
    if sub_event.min_level is not None or sub_event.max_level is not None:
        player = session.get(Player, player_id)
        level = player_level_for(player, sub_event) if player else None
        if level is not None:
            if sub_event.min_level is not None and level < sub_event.min_level:
                result.meets_level_requirement = False
                result.fail(f"Minimum level {sub_event.min_level} required", ERROR_LEVEL)
            if sub_event.max_level is not None and level > sub_event.max_level:
                result.meets_level_requirement = False
                result.fail(f"Maximum level {sub_event.max_level} exceeded", ERROR_LEVEL)

    # 4. Existing enrollment
    if find_active_enrollment(session, sub_event.id, player_id) is not None:
        result.is_already_enrolled = True
        result.fail("You are already enrolled in this event", ERROR_ALREADY_ENROLLED)

    # 5. Capacity
    if sub_event.max_entries is not None:
        is_full = sub_event.entries_taken >= sub_event.max_entries
        if (
            is_full
            and EnrollmentPhase(sub_event.enrollment_phase) != EnrollmentPhase.WAITLIST_ONLY
            and not sub_event.waiting_list_enabled
        ):
            result.has_capacity = False
            result.fail("This event is full and has no waiting list", ERROR_CAPACITY_FULL)

    return result


def check_eligibility(
    session: Session,
    player_id: int,
    sub_event_id: int,
    now: Optional[datetime] = None,
) -> EligibilityResult:
    sub_event = session.get(TournamentSubEvent, sub_event_id)
    if sub_event is None:
        result = EligibilityResult(is_within_enrollment_window=False)
        result.fail("Sub-event not found", ERROR_NOT_FOUND)
        return result
    return evaluate_eligibility(session, player_id, sub_event, now)


def _game_type_warnings(sub_events: List[TournamentSubEvent]) -> List[str]:
    warnings = []
    singles = [se for se in sub_events if GameType(se.game_type) == GameType.S]
    doubles = [se for se in sub_events if GameType(se.game_type) == GameType.D]

    if len(singles) > 1:
        names = ", ".join(se.name for se in singles)
        warnings.append(
            f"You are enrolling in multiple singles events: {names}. Make sure you can participate in all of them."
        )
    if len(doubles) > 1:
        names = ", ".join(se.name for se in doubles)
        warnings.append(
            f"You are enrolling in multiple doubles events: {names}. "
            f"Make sure you have different partners or can participate in all."
        )
    return warnings


def validate_bulk_enrollment(
    session: Session,
    player_id: int,
    sub_event_ids: Iterable[int],
    partner_preferences: Optional[Dict[int, int]] = None,
    now: Optional[datetime] = None,
) -> BulkValidationResult:
    """
    Validate enrolling one player into several sub-events at once.

    Returns every error (per sub-event) and cross-event warnings.
    """
    partner_preferences = partner_preferences or {}
    ids = list(dict.fromkeys(sub_event_ids))
    errors: List[BulkValidationError] = []
    warnings: List[str] = []

    sub_events = session.exec(select(TournamentSubEvent).where(TournamentSubEvent.id.in_(ids))).all() if ids else []
    by_id = {se.id: se for se in sub_events}

    for sub_event_id in ids:
        if sub_event_id not in by_id:
            errors.append(
                BulkValidationError(sub_event_id, "Unknown", ERROR_NOT_FOUND, f"Sub-event {sub_event_id} not found")
            )

    for sub_event in sub_events:
        eligibility = evaluate_eligibility(session, player_id, sub_event, now)
        for reason, error_type in zip(eligibility.reasons, eligibility.error_types):
            errors.append(BulkValidationError(sub_event.id, sub_event.name or "Unknown", error_type, reason))

        partner_id = partner_preferences.get(sub_event.id)
        if partner_id:
            if partner_id == player_id:
                errors.append(
                    BulkValidationError(
                        sub_event.id,
                        sub_event.name or "Unknown",
                        ERROR_INVALID_PARTNER,
                        "You cannot partner with yourself",
                    )
                )
            if not sub_event.is_doubles:
                warnings.append(f"Partner preference for {sub_event.name} will be ignored (not a doubles event)")

    warnings.extend(_game_type_warnings(list(sub_events)))
    return BulkValidationResult(valid=not errors, errors=errors, warnings=warnings)


def validate_partner(
    session: Session, partner_id: int, sub_event_id: int, player_id: Optional[int] = None
) -> Tuple[bool, Optional[str]]:
    """
    Partner must exist and must not already be taken in the sub-event.

    Without player_id any active enrollment of the partner counts as taken.
    With it, a partner who enrolled first is still free unless confirmed with
    someone other than player_id, so mutual picks can meet.
    """
    partner = session.get(Player, partner_id)
    if partner is None:
        return False, "Partner not found"
    existing = find_active_enrollment(session, sub_event_id, partner_id)
    if existing is None:
        return True, None
    if player_id is not None and existing.confirmed_partner_id in (None, player_id):
        return True, None
    return False, "Partner is already enrolled in this event"
