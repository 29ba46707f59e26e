"""Counter, phase and audit-log bookkeeping of enrollment_lifecycle."""

from datetime import datetime, timedelta

from sqlmodel import Session, select

from badman.models.enrollment import EnrollmentStatus, TournamentEnrollment
from badman.models.sub_event import EnrollmentPhase, GameType, TournamentSubEvent
from badman.models.waiting_list_log import WaitingListAction, WaitingListLog
from badman.services.enrollment_lifecycle import (
    change_status,
    normalize_waiting_list,
    recalculate_counts,
    record_enrollment_created,
    record_enrollment_deleted,
    refresh_capacity_phase,
)


def _enroll(session, sub_event, player, status, position=None):
    enrollment = TournamentEnrollment(
        sub_event_id=sub_event.id,
        player_id=player.id,
        status=status,
        waiting_list_position=position,
    )
    record_enrollment_created(session, enrollment)
    session.commit()
    return enrollment


def _logs(session, sub_event_id):
    return session.exec(
        select(WaitingListLog).where(WaitingListLog.sub_event_id == sub_event_id).order_by(WaitingListLog.id)
    ).all()


def test_created_confirmed_enrollment_updates_counters(session: Session, make_sub_event, make_player):
    sub_event = make_sub_event(max_entries=4)
    enrollment = _enroll(session, sub_event, make_player(), EnrollmentStatus.CONFIRMED)

    session.refresh(sub_event)
    assert sub_event.current_enrollment_count == 1
    assert sub_event.confirmed_enrollment_count == 1
    assert sub_event.waiting_list_count == 0
    assert enrollment.confirmed_at is not None
    assert sub_event.enrollment_phase == EnrollmentPhase.OPEN


def test_reaching_capacity_flips_open_to_full(session: Session, make_sub_event, make_player):
    sub_event = make_sub_event(max_entries=2)
    _enroll(session, sub_event, make_player(), EnrollmentStatus.CONFIRMED)
    _enroll(session, sub_event, make_player(), EnrollmentStatus.CONFIRMED)

    session.refresh(sub_event)
    assert sub_event.enrollment_phase == EnrollmentPhase.FULL


def test_cancelling_reopens_full_sub_event(session: Session, make_sub_event, make_player):
    sub_event = make_sub_event(max_entries=1)
    enrollment = _enroll(session, sub_event, make_player(), EnrollmentStatus.CONFIRMED)
    session.refresh(sub_event)
    assert sub_event.enrollment_phase == EnrollmentPhase.FULL

    assert change_status(session, enrollment, EnrollmentStatus.CANCELLED) is True
    session.commit()

    session.refresh(sub_event)
    assert sub_event.current_enrollment_count == 0
    assert sub_event.confirmed_enrollment_count == 0
    assert sub_event.enrollment_phase == EnrollmentPhase.OPEN
    assert enrollment.cancelled_at is not None


def test_change_to_same_status_is_a_no_op(session: Session, make_sub_event, make_player):
    sub_event = make_sub_event()
    enrollment = _enroll(session, sub_event, make_player(), EnrollmentStatus.CONFIRMED)

    assert change_status(session, enrollment, EnrollmentStatus.CONFIRMED) is False
    session.refresh(sub_event)
    assert sub_event.confirmed_enrollment_count == 1


def test_doubles_capacity_counts_pairs(session: Session, make_sub_event, make_player):
    sub_event = make_sub_event(game_type=GameType.D, max_entries=2)
    for _ in range(3):
        _enroll(session, sub_event, make_player(), EnrollmentStatus.PENDING)

    session.refresh(sub_event)
    assert sub_event.entries_taken == 2
    assert sub_event.enrollment_phase == EnrollmentPhase.FULL


def test_waiting_list_add_and_promotion_are_logged(session: Session, make_sub_event, make_player):
    sub_event = make_sub_event(max_entries=1, waiting_list_enabled=True)
    _enroll(session, sub_event, make_player(), EnrollmentStatus.CONFIRMED)
    waiting = _enroll(session, sub_event, make_player(), EnrollmentStatus.WAITING_LIST, position=1)

    session.refresh(sub_event)
    assert sub_event.waiting_list_count == 1
    assert sub_event.current_enrollment_count == 2

    change_status(session, waiting, EnrollmentStatus.CONFIRMED)
    session.commit()

    session.refresh(sub_event)
    assert waiting.waiting_list_position is None
    assert sub_event.waiting_list_count == 0
    assert sub_event.confirmed_enrollment_count == 2

    actions = [(log.action, log.previous_position, log.new_position) for log in _logs(session, sub_event.id)]
    assert actions == [
        (WaitingListAction.ADDED, None, 1),
        (WaitingListAction.PROMOTED, 1, None),
    ]


def test_leaving_waiting_list_by_cancel_logs_removed(session: Session, make_sub_event, make_player):
    sub_event = make_sub_event(max_entries=1, waiting_list_enabled=True)
    waiting = _enroll(session, sub_event, make_player(), EnrollmentStatus.WAITING_LIST, position=1)

    change_status(session, waiting, EnrollmentStatus.CANCELLED, notes="changed plans")
    session.commit()

    last = _logs(session, sub_event.id)[-1]
    assert last.action == WaitingListAction.REMOVED
    assert last.previous_position == 1
    assert last.notes == "changed plans"
    session.refresh(sub_event)
    assert sub_event.waiting_list_count == 0
    assert sub_event.current_enrollment_count == 0


def test_normalize_waiting_list_closes_gaps(session: Session, make_sub_event, make_player):
    sub_event = make_sub_event(max_entries=1, waiting_list_enabled=True)
    first = _enroll(session, sub_event, make_player(), EnrollmentStatus.WAITING_LIST, position=2)
    second = _enroll(session, sub_event, make_player(), EnrollmentStatus.WAITING_LIST, position=5)
    third = _enroll(session, sub_event, make_player(), EnrollmentStatus.WAITING_LIST, position=9)

    ordered = normalize_waiting_list(session, sub_event.id)
    session.commit()

    assert [e.id for e in ordered] == [first.id, second.id, third.id]
    assert [e.waiting_list_position for e in ordered] == [1, 2, 3]
    moves = [log for log in _logs(session, sub_event.id) if log.action == WaitingListAction.POSITION_CHANGED]
    assert [(m.previous_position, m.new_position) for m in moves] == [(2, 1), (5, 2), (9, 3)]


def test_recalculate_counts_repairs_drift(session: Session, make_sub_event, make_player):
    sub_event = make_sub_event(max_entries=10, waiting_list_enabled=True)
    _enroll(session, sub_event, make_player(), EnrollmentStatus.CONFIRMED)
    _enroll(session, sub_event, make_player(), EnrollmentStatus.PENDING)

    sub_event = session.get(TournamentSubEvent, sub_event.id)
    sub_event.current_enrollment_count = 7
    sub_event.confirmed_enrollment_count = 0
    session.add(sub_event)
    session.commit()

    result = recalculate_counts(session, sub_event)
    session.commit()

    assert result["current_before"] == 7
    assert result["current_after"] == 2
    assert result["confirmed_after"] == 1
    assert result["phase"] == "OPEN"
    session.refresh(sub_event)
    assert sub_event.current_enrollment_count == 2


def test_deleting_enrollment_releases_place(session: Session, make_sub_event, make_player):
    sub_event = make_sub_event(max_entries=1, waiting_list_enabled=True)
    enrollment = _enroll(session, sub_event, make_player(), EnrollmentStatus.WAITING_LIST, position=1)

    record_enrollment_deleted(session, enrollment)
    session.commit()

    session.refresh(sub_event)
    assert sub_event.current_enrollment_count == 0
    assert sub_event.waiting_list_count == 0
    assert _logs(session, sub_event.id) == []


def test_full_sub_event_stays_full_after_its_close_date(session: Session, make_sub_event):
    sub_event = make_sub_event(
        max_entries=2,
        enrollment_phase=EnrollmentPhase.FULL,
        enrollment_close_date=datetime.utcnow() - timedelta(hours=1),
    )
    assert refresh_capacity_phase(sub_event) is None
    assert sub_event.enrollment_phase == EnrollmentPhase.FULL
