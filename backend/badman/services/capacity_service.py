"""
Capacity accounting for tournament sub-events.

Reads the denormalized counters kept by enrollment_lifecycle and derives
availability, waiting-list size and the next waiting-list position. Also hosts
the automatic promotion used when a place is released.

max_entries counts entries: one per singles player, one per doubles pair.
Waiting-list enrollments never hold a place.
"""
import math
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from badman.models.enrollment import EnrollmentSource, EnrollmentStatus, TournamentEnrollment
from badman.models.sub_event import TournamentSubEvent
from badman.services.enrollment_errors import SubEventNotFound
from badman.services.enrollment_lifecycle import TRIGGER_AUTO_PROMOTE, change_status
from badman.utils.dates import utcnow
from badman.utils.sql import scalar_int

UNLIMITED = -1


@dataclass
class CapacityInfo:
    sub_event_id: int
    max_entries: Optional[int]
    current_enrollment_count: int
    confirmed_enrollment_count: int
    waiting_list_count: int
    entries_taken: int
    available_spots: int  # -1 when unlimited
    is_full: bool
    has_waiting_list: bool

    def to_dict(self) -> Dict:
        return asdict(self)


def build_capacity(sub_event: TournamentSubEvent) -> CapacityInfo:
    max_entries = sub_event.max_entries
    taken = sub_event.entries_taken
    if max_entries is None:
        available = UNLIMITED
        is_full = False
    else:
        available = max(0, max_entries - taken)
        is_full = taken >= max_entries
    return CapacityInfo(
        sub_event_id=sub_event.id,
        max_entries=max_entries,
        current_enrollment_count=sub_event.current_enrollment_count,
        confirmed_enrollment_count=sub_event.confirmed_enrollment_count,
        waiting_list_count=sub_event.waiting_list_count,
        entries_taken=taken,
        available_spots=available,
        is_full=is_full,
        has_waiting_list=bool(sub_event.waiting_list_enabled),
    )


def get_capacity(session: Session, sub_event_id: int) -> CapacityInfo:
    sub_event = session.get(TournamentSubEvent, sub_event_id)
    if sub_event is None:
        raise SubEventNotFound(sub_event_id)
    return build_capacity(sub_event)


def get_capacities(session: Session, sub_event_ids: Iterable[int]) -> Dict[int, CapacityInfo]:
    """Batched get_capacity in a single query. Unknown ids are skipped."""
    ids = list(dict.fromkeys(sub_event_ids))
    if not ids:
        return {}
    sub_events = session.exec(select(TournamentSubEvent).where(TournamentSubEvent.id.in_(ids))).all()
    return {se.id: build_capacity(se) for se in sub_events}


def has_room_for_one_more(sub_event: TournamentSubEvent) -> bool:
    """True when one more placed (non waiting-list) enrollment still fits in max_entries."""
    if sub_event.max_entries is None:
        return True
    placed = max(0, sub_event.current_enrollment_count - sub_event.waiting_list_count) + 1
    entries = math.ceil(placed / 2) if sub_event.is_doubles else placed
    return entries <= sub_event.max_entries


def should_enroll_to_waiting_list(session: Session, sub_event_id: int) -> bool:
    capacity = get_capacity(session, sub_event_id)
    return capacity.is_full and capacity.has_waiting_list


def get_next_waiting_list_position(session: Session, sub_event_id: int) -> int:
    highest = session.exec(
        select(func.max(TournamentEnrollment.waiting_list_position)).where(
            TournamentEnrollment.sub_event_id == sub_event_id,
            TournamentEnrollment.status == EnrollmentStatus.WAITING_LIST,
        )
    ).one()
    return scalar_int(highest) + 1


def get_waiting_list(session: Session, sub_event_id: int) -> List[TournamentEnrollment]:
    return session.exec(
        select(TournamentEnrollment)
        .where(
            TournamentEnrollment.sub_event_id == sub_event_id,
            TournamentEnrollment.status == EnrollmentStatus.WAITING_LIST,
        )
        .order_by(TournamentEnrollment.waiting_list_position, TournamentEnrollment.created_at, TournamentEnrollment.id)
    ).all()


def promote_from_waiting_list(session: Session, sub_event_id: int) -> Optional[TournamentEnrollment]:
    """
    Promote the first waiting-list enrollment.

    Singles become CONFIRMED; doubles become PENDING until the partner is matched.
    Only runs when the sub-event has auto promotion enabled and room for one more.
    Returns the promoted enrollment, or None when nothing was promoted.
    """
    sub_event = session.get(TournamentSubEvent, sub_event_id)
    if sub_event is None:
        raise SubEventNotFound(sub_event_id)
    if not sub_event.auto_promote_from_waiting_list:
        return None
    if not has_room_for_one_more(sub_event):
        return None

    waiting = get_waiting_list(session, sub_event_id)
    if not waiting:
        return None

    enrollment = waiting[0]
    enrollment.promoted_from_waiting_list = True
    enrollment.promoted_at = utcnow()
    enrollment.original_waiting_list_position = enrollment.waiting_list_position
    enrollment.enrollment_source = EnrollmentSource.AUTO_PROMOTED
    status = EnrollmentStatus.PENDING if sub_event.is_doubles else EnrollmentStatus.CONFIRMED
    change_status(session, enrollment, status, triggered_by=TRIGGER_AUTO_PROMOTE)
    return enrollment
