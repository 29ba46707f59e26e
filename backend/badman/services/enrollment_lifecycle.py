"""
Enrollment lifecycle bookkeeping.

Every enrollment insert, status change, waiting-list move and delete goes
through this module. It keeps the denormalized counters on the sub-event in
step with the enrollment rows, flips the sub-event between OPEN and FULL when
capacity is reached or freed, stamps the status timestamps and writes the
waiting-list audit log.

Functions here never commit; callers own the transaction so the counters roll
back together with the status change.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from badman.models.enrollment import (
    ACTIVE_STATUSES,
    INACTIVE_STATUSES,
    EnrollmentStatus,
    TournamentEnrollment,
)
from badman.models.sub_event import EnrollmentPhase, TournamentSubEvent
from badman.models.waiting_list_log import WaitingListAction, WaitingListLog
from badman.utils.dates import utcnow

logger = logging.getLogger(__name__)

TRIGGER_SYSTEM = "SYSTEM"
TRIGGER_AUTO_PROMOTE = "AUTO_PROMOTE"
TRIGGER_MANUAL = "MANUAL"


def _sub_event_for(session: Session, enrollment: TournamentEnrollment) -> TournamentSubEvent:
    sub_event = session.get(TournamentSubEvent, enrollment.sub_event_id)
    if sub_event is None:
        raise ValueError(f"Enrollment {enrollment.id} references missing sub-event {enrollment.sub_event_id}")
    return sub_event


def _log(
    session: Session,
    enrollment: TournamentEnrollment,
    action: WaitingListAction,
    previous_position: Optional[int],
    new_position: Optional[int],
    triggered_by: Optional[str],
    notes: Optional[str] = None,
) -> WaitingListLog:
    entry = WaitingListLog(
        enrollment_id=enrollment.id,
        sub_event_id=enrollment.sub_event_id,
        action=action,
        previous_position=previous_position,
        new_position=new_position,
        triggered_by=triggered_by,
        notes=notes,
    )
    session.add(entry)
    return entry


def _stamp(enrollment: TournamentEnrollment, status: EnrollmentStatus, now: datetime) -> None:
    if status == EnrollmentStatus.CONFIRMED:
        enrollment.confirmed_at = now
    elif status == EnrollmentStatus.CANCELLED:
        enrollment.cancelled_at = now
    elif status == EnrollmentStatus.WITHDRAWN:
        enrollment.withdrawn_at = now


def refresh_capacity_phase(sub_event: TournamentSubEvent, now: Optional[datetime] = None) -> Optional[EnrollmentPhase]:
    """
    Flip OPEN <-> FULL based on the entries taken (see TournamentSubEvent.entries_taken).

    Only OPEN and FULL react to capacity. A FULL sub-event re-opens only while
    its own close date (if any) has not passed.

    Returns the new phase when it changed, else None.
    """
    now = now or utcnow()
    phase = EnrollmentPhase(sub_event.enrollment_phase)
    count = sub_event.entries_taken
    limit = sub_event.max_entries

    if phase == EnrollmentPhase.OPEN and limit is not None and count >= limit:
        sub_event.enrollment_phase = EnrollmentPhase.FULL
    elif (
        phase == EnrollmentPhase.FULL
        and (limit is None or count < limit)
        and (sub_event.enrollment_close_date is None or sub_event.enrollment_close_date >= now)
    ):
        sub_event.enrollment_phase = EnrollmentPhase.OPEN
    else:
        return None

    logger.info(
        f"Sub-event {sub_event.id} phase {phase.value} -> {sub_event.enrollment_phase.value} "
        f"(entries={count}, max={sub_event.max_entries})"
    )
    return sub_event.enrollment_phase


def record_enrollment_created(
    session: Session,
    enrollment: TournamentEnrollment,
    triggered_by: str = TRIGGER_SYSTEM,
) -> TournamentEnrollment:
    """Persist a new enrollment and apply its counter, timestamp and log effects."""
    now = utcnow()
    status = EnrollmentStatus(enrollment.status)
    _stamp(enrollment, status, now)

    session.add(enrollment)
    session.flush()  # id needed for the waiting-list log

    sub_event = _sub_event_for(session, enrollment)
    if status in ACTIVE_STATUSES:
        sub_event.current_enrollment_count += 1
    if status == EnrollmentStatus.CONFIRMED:
        sub_event.confirmed_enrollment_count += 1

    if status == EnrollmentStatus.WAITING_LIST:
        sub_event.waiting_list_count += 1
        _log(session, enrollment, WaitingListAction.ADDED, None, enrollment.waiting_list_position, triggered_by)

    refresh_capacity_phase(sub_event, now)
    session.add(sub_event)
    return enrollment


def change_status(
    session: Session,
    enrollment: TournamentEnrollment,
    new_status: EnrollmentStatus,
    *,
    triggered_by: Optional[str] = None,
    notes: Optional[str] = None,
) -> bool:
    """
    Move an enrollment to a new status.

    The caller sets any other fields (partner links, promotion bookkeeping)
    before calling; the previous waiting-list position must still be on the
    enrollment when leaving WAITING_LIST, it is cleared here.

    Returns False when the status did not change.
    """
    old_status = EnrollmentStatus(enrollment.status)
    new_status = EnrollmentStatus(new_status)
    if old_status == new_status:
        return False

    now = utcnow()
    sub_event = _sub_event_for(session, enrollment)

    if new_status == EnrollmentStatus.CONFIRMED:
        sub_event.confirmed_enrollment_count += 1
    elif old_status == EnrollmentStatus.CONFIRMED:
        sub_event.confirmed_enrollment_count = max(0, sub_event.confirmed_enrollment_count - 1)

    if old_status == EnrollmentStatus.WAITING_LIST:
        sub_event.waiting_list_count = max(0, sub_event.waiting_list_count - 1)
    elif new_status == EnrollmentStatus.WAITING_LIST:
        sub_event.waiting_list_count += 1

    if old_status in ACTIVE_STATUSES and new_status in INACTIVE_STATUSES:
        sub_event.current_enrollment_count = max(0, sub_event.current_enrollment_count - 1)
    elif old_status in INACTIVE_STATUSES and new_status in ACTIVE_STATUSES:
        sub_event.current_enrollment_count += 1

    if old_status == EnrollmentStatus.WAITING_LIST:
        previous_position = enrollment.waiting_list_position
        if new_status in (EnrollmentStatus.CONFIRMED, EnrollmentStatus.PENDING):
            if triggered_by is None:
                triggered_by = TRIGGER_AUTO_PROMOTE if enrollment.promoted_from_waiting_list else TRIGGER_MANUAL
            action = WaitingListAction.PROMOTED
        else:
            action = WaitingListAction.REMOVED
        _log(session, enrollment, action, previous_position, None, triggered_by or TRIGGER_SYSTEM, notes)
        enrollment.waiting_list_position = None
    elif new_status == EnrollmentStatus.WAITING_LIST:
        _log(
            session,
            enrollment,
            WaitingListAction.ADDED,
            None,
            enrollment.waiting_list_position,
            triggered_by or TRIGGER_SYSTEM,
            notes,
        )

    enrollment.status = new_status
    _stamp(enrollment, new_status, now)
    refresh_capacity_phase(sub_event, now)

    session.add(enrollment)
    session.add(sub_event)
    logger.info(f"Enrollment {enrollment.id} {old_status.value} -> {new_status.value}")
    return True


def change_waiting_list_position(
    session: Session,
    enrollment: TournamentEnrollment,
    new_position: int,
    triggered_by: str = TRIGGER_SYSTEM,
) -> bool:
    """Move a waiting-list enrollment to a new position, logging the move."""
    if EnrollmentStatus(enrollment.status) != EnrollmentStatus.WAITING_LIST:
        return False
    previous = enrollment.waiting_list_position
    if previous == new_position:
        return False

    enrollment.waiting_list_position = new_position
    _log(session, enrollment, WaitingListAction.POSITION_CHANGED, previous, new_position, triggered_by)
    session.add(enrollment)
    return True


def record_enrollment_deleted(session: Session, enrollment: TournamentEnrollment) -> None:
    """Delete an enrollment, releasing its place in the counters."""
    sub_event = _sub_event_for(session, enrollment)
    status = EnrollmentStatus(enrollment.status)
    if status in ACTIVE_STATUSES:
        sub_event.current_enrollment_count = max(0, sub_event.current_enrollment_count - 1)
        if status == EnrollmentStatus.CONFIRMED:
            sub_event.confirmed_enrollment_count = max(0, sub_event.confirmed_enrollment_count - 1)
        elif status == EnrollmentStatus.WAITING_LIST:
            sub_event.waiting_list_count = max(0, sub_event.waiting_list_count - 1)

    # Audit rows reference the enrollment
    logs = session.exec(select(WaitingListLog).where(WaitingListLog.enrollment_id == enrollment.id)).all()
    for log in logs:
        session.delete(log)

    session.delete(enrollment)
    refresh_capacity_phase(sub_event)
    session.add(sub_event)


def normalize_waiting_list(
    session: Session,
    sub_event_id: int,
    triggered_by: str = TRIGGER_SYSTEM,
) -> List[TournamentEnrollment]:
    """
    Renumber the waiting list of a sub-event to 1..n without gaps.

    Order: current position (missing positions last), then created_at, then id.
    """
    waiting = session.exec(
        select(TournamentEnrollment).where(
            TournamentEnrollment.sub_event_id == sub_event_id,
            TournamentEnrollment.status == EnrollmentStatus.WAITING_LIST,
        )
    ).all()

    def sort_key(e: TournamentEnrollment):
        return (
            e.waiting_list_position is None,
            e.waiting_list_position or 0,
            e.created_at or datetime.min,
            e.id,
        )

    ordered = sorted(waiting, key=sort_key)
    for index, enrollment in enumerate(ordered, start=1):
        change_waiting_list_position(session, enrollment, index, triggered_by)
    return ordered


def recalculate_counts(session: Session, sub_event: TournamentSubEvent) -> Dict:
    """
    Recount enrollments from rows and repair the denormalized counters.

    Returns before/after counts so callers can report drift.
    """
    rows = session.exec(
        select(TournamentEnrollment.status, func.count())
        .where(TournamentEnrollment.sub_event_id == sub_event.id)
        .group_by(TournamentEnrollment.status)
    ).all()
    by_status = {EnrollmentStatus(status): count for status, count in rows}

    current = sum(by_status.get(s, 0) for s in ACTIVE_STATUSES)
    confirmed = by_status.get(EnrollmentStatus.CONFIRMED, 0)
    waiting = by_status.get(EnrollmentStatus.WAITING_LIST, 0)

    result = {
        "sub_event_id": sub_event.id,
        "current_before": sub_event.current_enrollment_count,
        "confirmed_before": sub_event.confirmed_enrollment_count,
        "current_after": current,
        "confirmed_after": confirmed,
        "waiting_before": sub_event.waiting_list_count,
        "waiting_after": waiting,
    }
    if (current, confirmed, waiting) != (
        sub_event.current_enrollment_count,
        sub_event.confirmed_enrollment_count,
        sub_event.waiting_list_count,
    ):
        logger.warning(
            f"Sub-event {sub_event.id} counter drift: current {sub_event.current_enrollment_count} -> {current}, "
            f"confirmed {sub_event.confirmed_enrollment_count} -> {confirmed}, "
            f"waiting {sub_event.waiting_list_count} -> {waiting}"
        )

    sub_event.current_enrollment_count = current
    sub_event.confirmed_enrollment_count = confirmed
    sub_event.waiting_list_count = waiting
    refresh_capacity_phase(sub_event)
    session.add(sub_event)
    result["phase"] = EnrollmentPhase(sub_event.enrollment_phase).value
    return result
