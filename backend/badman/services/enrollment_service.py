"""
Tournament enrollment operations.

Enroll a player or a guest into a sub-event, update or cancel an enrollment,
promote from the waiting list and match doubles partners. All status changes
go through enrollment_lifecycle so counters, phase and audit log stay in step.

Functions never commit; routes and tasks own the transaction.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import Session, select

from badman.models.enrollment import (
    INACTIVE_STATUSES,
    EnrollmentSource,
    EnrollmentStatus,
    TournamentEnrollment,
)
from badman.models.player import Player
from badman.models.sub_event import EnrollmentPhase, TournamentSubEvent
from badman.models.tournament import TournamentPhase
from badman.services.capacity_service import (
    get_next_waiting_list_position,
    has_room_for_one_more,
    promote_from_waiting_list,
)
from badman.services.enrollment_errors import (
    AlreadyEnrolled,
    EnrollmentClosed,
    EnrollmentNotFound,
    GuestEnrollmentNotAllowed,
    InvalidEnrollmentState,
    InvalidPartner,
    PlayerNotFound,
    SubEventFull,
    SubEventNotFound,
)
from badman.services.enrollment_lifecycle import (
    TRIGGER_MANUAL,
    change_status,
    normalize_waiting_list,
    record_enrollment_created,
)
from badman.services.enrollment_phase import ENROLLABLE_PHASES
from badman.services.enrollment_validation import find_active_enrollment, validate_partner
from badman.utils.dates import WindowPosition, utcnow, window_position

logger = logging.getLogger(__name__)


# ============================================================================
# Lookups
# ============================================================================


def get_sub_event(session: Session, sub_event_id: int) -> TournamentSubEvent:
    sub_event = session.get(TournamentSubEvent, sub_event_id)
    if sub_event is None:
        raise SubEventNotFound(sub_event_id)
    return sub_event


def get_enrollment(session: Session, enrollment_id: int) -> TournamentEnrollment:
    enrollment = session.get(TournamentEnrollment, enrollment_id)
    if enrollment is None:
        raise EnrollmentNotFound(enrollment_id)
    return enrollment


def _get_player(session: Session, player_id: int) -> Player:
    player = session.get(Player, player_id)
    if player is None:
        raise PlayerNotFound(player_id)
    return player


def _enrollment_of(session: Session, sub_event_id: int, player_id: int) -> Optional[TournamentEnrollment]:
    return session.exec(
        select(TournamentEnrollment).where(
            TournamentEnrollment.sub_event_id == sub_event_id,
            TournamentEnrollment.player_id == player_id,
        )
    ).first()


def list_enrollments(
    session: Session, sub_event_id: int, status: Optional[EnrollmentStatus] = None
) -> List[TournamentEnrollment]:
    get_sub_event(session, sub_event_id)
    query = select(TournamentEnrollment).where(TournamentEnrollment.sub_event_id == sub_event_id)
    if status is not None:
        query = query.where(TournamentEnrollment.status == EnrollmentStatus(status))
    return session.exec(query.order_by(TournamentEnrollment.created_at, TournamentEnrollment.id)).all()


# ============================================================================
# Rules
# ============================================================================


def ensure_enrollment_open(sub_event: TournamentSubEvent, now=None) -> None:
    """Raise EnrollmentClosed unless the tournament, the sub-event phase and the date window all allow enrolling."""
    tournament = sub_event.tournament
    if tournament is None or TournamentPhase(tournament.phase) != TournamentPhase.ENROLLMENT_OPEN:
        raise EnrollmentClosed("Tournament enrollment is not open")
    if EnrollmentPhase(sub_event.enrollment_phase) not in ENROLLABLE_PHASES:
        raise EnrollmentClosed("Enrollment is not open for this event")

    position = window_position(sub_event, now)
    if position == WindowPosition.BEFORE_OPEN:
        raise EnrollmentClosed("Enrollment has not opened yet")
    if position == WindowPosition.AFTER_CLOSE:
        raise EnrollmentClosed("Enrollment has closed")


def decide_placement(
    session: Session, sub_event: TournamentSubEvent, guest: bool = False
) -> Tuple[EnrollmentStatus, Optional[int]]:
    """
    Status and waiting-list position for a new enrollment.

    Singles (and guests) are confirmed right away, doubles wait for their
    partner in PENDING. Once the sub-event is full, or set to WAITLIST_ONLY,
    newcomers go to the end of the waiting list.
    """
    waitlist_only = EnrollmentPhase(sub_event.enrollment_phase) == EnrollmentPhase.WAITLIST_ONLY
    if not waitlist_only and has_room_for_one_more(sub_event):
        if sub_event.is_doubles and not guest:
            return EnrollmentStatus.PENDING, None
        return EnrollmentStatus.CONFIRMED, None

    if not sub_event.waiting_list_enabled:
        raise SubEventFull("This sub-event is full and does not have a waiting list")
    if sub_event.max_waiting_list_size is not None and sub_event.waiting_list_count >= sub_event.max_waiting_list_size:
        raise SubEventFull("The waiting list for this sub-event is full")
    return EnrollmentStatus.WAITING_LIST, get_next_waiting_list_position(session, sub_event.id)


def _validate_partner_choice(
    session: Session, sub_event_id: int, player_id: Optional[int], partner_id: Optional[int]
) -> None:
    if partner_id is None:
        return
    if player_id is not None and partner_id == player_id:
        raise InvalidPartner("You cannot partner with yourself")
    valid, error = validate_partner(session, partner_id, sub_event_id, player_id)
    if not valid:
        raise InvalidPartner(f"Preferred partner {partner_id}: {error}")


# ============================================================================
# Partner matching
# ============================================================================


def try_match_partners(session: Session, enrollment: TournamentEnrollment) -> bool:
    """
    Confirm a doubles pair when both players picked each other.

    Both enrollments must be PENDING in the same sub-event. Returns True on a match.
    """
    if (
        enrollment.is_guest
        or enrollment.player_id is None
        or enrollment.preferred_partner_id is None
        or EnrollmentStatus(enrollment.status) != EnrollmentStatus.PENDING
    ):
        return False

    partner_enrollment = _enrollment_of(session, enrollment.sub_event_id, enrollment.preferred_partner_id)
    if (
        partner_enrollment is None
        or EnrollmentStatus(partner_enrollment.status) != EnrollmentStatus.PENDING
        or partner_enrollment.preferred_partner_id != enrollment.player_id
    ):
        return False

    enrollment.confirmed_partner_id = partner_enrollment.player_id
    partner_enrollment.confirmed_partner_id = enrollment.player_id
    change_status(session, enrollment, EnrollmentStatus.CONFIRMED)
    change_status(session, partner_enrollment, EnrollmentStatus.CONFIRMED)
    logger.info(
        f"Matched partners {enrollment.player_id} and {partner_enrollment.player_id} "
        f"in sub-event {enrollment.sub_event_id}"
    )
    return True


def _unlink_partner(session: Session, enrollment: TournamentEnrollment, reset_self: bool) -> None:
    """Break a confirmed pair. The partner (and optionally this enrollment) fall back to PENDING."""
    partner_id = enrollment.confirmed_partner_id
    if partner_id is None:
        return

    enrollment.confirmed_partner_id = None
    if reset_self and EnrollmentStatus(enrollment.status) == EnrollmentStatus.CONFIRMED:
        change_status(session, enrollment, EnrollmentStatus.PENDING)
    session.add(enrollment)

    partner_enrollment = _enrollment_of(session, enrollment.sub_event_id, partner_id)
    if partner_enrollment is not None and partner_enrollment.confirmed_partner_id == enrollment.player_id:
        partner_enrollment.confirmed_partner_id = None
        if EnrollmentStatus(partner_enrollment.status) == EnrollmentStatus.CONFIRMED:
            change_status(session, partner_enrollment, EnrollmentStatus.PENDING)
        session.add(partner_enrollment)


def find_players_looking_for_partner(session: Session, sub_event_id: int) -> List[TournamentEnrollment]:
    sub_event = get_sub_event(session, sub_event_id)
    if not sub_event.is_doubles:
        return []
    return session.exec(
        select(TournamentEnrollment)
        .where(
            TournamentEnrollment.sub_event_id == sub_event_id,
            TournamentEnrollment.status == EnrollmentStatus.PENDING,
            TournamentEnrollment.confirmed_partner_id.is_(None),
            TournamentEnrollment.is_guest.is_(False),
        )
        .order_by(TournamentEnrollment.created_at, TournamentEnrollment.id)
    ).all()


# ============================================================================
# Enroll
# ============================================================================


def enroll_player(
    session: Session,
    sub_event_id: int,
    player_id: int,
    preferred_partner_id: Optional[int] = None,
    notes: Optional[str] = None,
    source: EnrollmentSource = EnrollmentSource.MANUAL,
    session_id: Optional[int] = None,
    now=None,
) -> TournamentEnrollment:
    """
    Enroll a player into a sub-event.

    Steps:
    1. Sub-event must exist and be open for enrollment (tournament phase, sub-event phase, dates)
    2. Player must exist and not hold an active enrollment
    3. Preferred partner, when given, must exist and differ from the player (ignored for singles)
    4. Placement: CONFIRMED (singles) / PENDING (doubles), or the waiting list when full
    5. Doubles: confirm the pair when the partner already picked this player

    A previously cancelled or withdrawn enrollment for the same player is reused.
    """
    sub_event = get_sub_event(session, sub_event_id)
    ensure_enrollment_open(sub_event, now)
    _get_player(session, player_id)

    if find_active_enrollment(session, sub_event_id, player_id) is not None:
        raise AlreadyEnrolled("Player is already enrolled in this sub-event")

    if not sub_event.is_doubles:
        preferred_partner_id = None
    _validate_partner_choice(session, sub_event_id, player_id, preferred_partner_id)

    status, position = decide_placement(session, sub_event)

    enrollment = _enrollment_of(session, sub_event_id, player_id)
    if enrollment is not None:
        # Re-enrolling after cancel/withdraw reuses the row (one row per player per sub-event)
        enrollment.preferred_partner_id = preferred_partner_id
        enrollment.confirmed_partner_id = None
        enrollment.notes = notes
        enrollment.enrollment_source = source
        enrollment.session_id = session_id
        enrollment.waiting_list_position = position
        enrollment.promoted_from_waiting_list = False
        enrollment.promoted_at = None
        enrollment.original_waiting_list_position = None
        enrollment.requires_approval = sub_event.requires_approval
        change_status(session, enrollment, status)
    else:
        enrollment = TournamentEnrollment(
            sub_event_id=sub_event_id,
            player_id=player_id,
            status=status,
            preferred_partner_id=preferred_partner_id,
            waiting_list_position=position,
            notes=notes,
            enrollment_source=source,
            session_id=session_id,
            requires_approval=sub_event.requires_approval,
        )
        record_enrollment_created(session, enrollment)

    logger.info(f"Player {player_id} enrolled in sub-event {sub_event_id} as {status.value}")

    if status == EnrollmentStatus.PENDING and preferred_partner_id is not None:
        try_match_partners(session, enrollment)
    return enrollment


def enroll_guest(
    session: Session,
    sub_event_id: int,
    guest_name: str,
    guest_email: Optional[str] = None,
    guest_phone: Optional[str] = None,
    notes: Optional[str] = None,
    source: EnrollmentSource = EnrollmentSource.PUBLIC_FORM,
    now=None,
) -> TournamentEnrollment:
    """Enroll someone without a player account. Same phase and capacity rules as enroll_player."""
    sub_event = get_sub_event(session, sub_event_id)
    tournament = sub_event.tournament
    if not sub_event.allow_guest_enrollments or (tournament is not None and not tournament.allow_guest_enrollments):
        raise GuestEnrollmentNotAllowed("Guest enrollments are not allowed for this event")
    ensure_enrollment_open(sub_event, now)

    status, position = decide_placement(session, sub_event, guest=True)
    enrollment = TournamentEnrollment(
        sub_event_id=sub_event_id,
        player_id=None,
        is_guest=True,
        guest_name=guest_name,
        guest_email=guest_email,
        guest_phone=guest_phone,
        status=status,
        waiting_list_position=position,
        notes=notes,
        enrollment_source=source,
        requires_approval=sub_event.requires_approval,
    )
    record_enrollment_created(session, enrollment)
    logger.info(f"Guest '{guest_name}' enrolled in sub-event {sub_event_id} as {status.value}")
    return enrollment


# ============================================================================
# Update / cancel
# ============================================================================


def update_enrollment(session: Session, enrollment_id: int, changes: Dict[str, Any]) -> TournamentEnrollment:
    """
    Apply partner / notes changes.

    Changing the preferred partner breaks any confirmed pair (both sides back
    to PENDING) and then tries to match with the new partner.
    """
    enrollment = get_enrollment(session, enrollment_id)
    if EnrollmentStatus(enrollment.status) in INACTIVE_STATUSES:
        raise InvalidEnrollmentState("Cannot update a cancelled or withdrawn enrollment")

    if "notes" in changes:
        enrollment.notes = changes["notes"]

    if "preferred_partner_id" in changes and changes["preferred_partner_id"] != enrollment.preferred_partner_id:
        new_partner_id = changes["preferred_partner_id"]
        if enrollment.is_guest and new_partner_id is not None:
            raise InvalidPartner("Guest enrollments cannot have a partner")
        _validate_partner_choice(session, enrollment.sub_event_id, enrollment.player_id, new_partner_id)

        _unlink_partner(session, enrollment, reset_self=True)
        enrollment.preferred_partner_id = new_partner_id
        session.add(enrollment)
        try_match_partners(session, enrollment)

    session.add(enrollment)
    return enrollment


def cancel_enrollment(
    session: Session,
    enrollment_id: int,
    cancelled_by_player_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> TournamentEnrollment:
    """
    Cancel an enrollment.

    - Owner cancelling -> WITHDRAWN, anyone else -> CANCELLED
    - A confirmed partner falls back to PENDING
    - The freed place goes to the waiting list (when enabled), which is then renumbered
    """
    enrollment = get_enrollment(session, enrollment_id)
    if EnrollmentStatus(enrollment.status) in INACTIVE_STATUSES:
        raise InvalidEnrollmentState("Enrollment is already cancelled")

    _unlink_partner(session, enrollment, reset_self=False)

    is_owner = cancelled_by_player_id is not None and cancelled_by_player_id == enrollment.player_id
    new_status = EnrollmentStatus.WITHDRAWN if is_owner else EnrollmentStatus.CANCELLED
    change_status(session, enrollment, new_status, triggered_by=TRIGGER_MANUAL, notes=reason)

    sub_event = get_sub_event(session, enrollment.sub_event_id)
    if sub_event.waiting_list_enabled:
        try_promote_from_waiting_list(session, sub_event)
        reorder_waiting_list(session, sub_event.id)
    return enrollment


def approve_enrollment(session: Session, enrollment_id: int, approved_by: Optional[int] = None) -> TournamentEnrollment:
    enrollment = get_enrollment(session, enrollment_id)
    if EnrollmentStatus(enrollment.status) in INACTIVE_STATUSES:
        raise InvalidEnrollmentState("Cannot approve a cancelled or withdrawn enrollment")
    enrollment.approved_by = approved_by
    enrollment.approved_at = utcnow()
    enrollment.rejection_reason = None
    session.add(enrollment)
    return enrollment


def reject_enrollment(session: Session, enrollment_id: int, reason: str) -> TournamentEnrollment:
    """Reject an enrollment awaiting approval; its place is released like a cancellation."""
    enrollment = get_enrollment(session, enrollment_id)
    enrollment.rejection_reason = reason
    return cancel_enrollment(session, enrollment_id, reason=reason)


# ============================================================================
# Waiting list
# ============================================================================


def try_promote_from_waiting_list(session: Session, sub_event: TournamentSubEvent) -> List[TournamentEnrollment]:
    """
    Fill free places from the head of the waiting list.

    Promotes one enrollment at a time while there is room, matching doubles
    partners after each promotion, then renumbers the list.
    """
    promoted: List[TournamentEnrollment] = []
    while True:
        enrollment = promote_from_waiting_list(session, sub_event.id)
        if enrollment is None:
            break
        promoted.append(enrollment)
        logger.info(
            f"Promoted enrollment {enrollment.id} from waiting list position "
            f"{enrollment.original_waiting_list_position} in sub-event {sub_event.id}"
        )
        try_match_partners(session, enrollment)

    if promoted:
        reorder_waiting_list(session, sub_event.id)
    return promoted


def promote_enrollment(session: Session, enrollment_id: int) -> TournamentEnrollment:
    """Organizer promotion of a waiting-list enrollment, regardless of capacity."""
    enrollment = get_enrollment(session, enrollment_id)
    if EnrollmentStatus(enrollment.status) != EnrollmentStatus.WAITING_LIST:
        raise InvalidEnrollmentState("Enrollment is not on the waiting list")

    sub_event = get_sub_event(session, enrollment.sub_event_id)
    enrollment.promoted_at = utcnow()
    enrollment.original_waiting_list_position = enrollment.waiting_list_position
    status = EnrollmentStatus.PENDING if sub_event.is_doubles else EnrollmentStatus.CONFIRMED
    change_status(session, enrollment, status, triggered_by=TRIGGER_MANUAL)
    try_match_partners(session, enrollment)
    reorder_waiting_list(session, sub_event.id)
    return enrollment


def reorder_waiting_list(session: Session, sub_event_id: int) -> List[TournamentEnrollment]:
    return normalize_waiting_list(session, sub_event_id)
