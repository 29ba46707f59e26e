"""Enrollment window helpers shared by the phase machine and validation."""
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from badman.models.sub_event import TournamentSubEvent


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the models store datetimes."""
    return datetime.utcnow()


def effective_window(sub_event: TournamentSubEvent) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Return (open_date, close_date) for a sub-event.

    Each bound comes from the sub-event when set, otherwise from its tournament.
    """
    tournament = sub_event.tournament
    open_date = sub_event.enrollment_open_date
    close_date = sub_event.enrollment_close_date
    if open_date is None and tournament is not None:
        open_date = tournament.enrollment_open_date
    if close_date is None and tournament is not None:
        close_date = tournament.enrollment_close_date
    return open_date, close_date


class WindowPosition(str, Enum):
    BEFORE_OPEN = "BEFORE_OPEN"
    OPEN = "OPEN"
    AFTER_CLOSE = "AFTER_CLOSE"


def window_position(sub_event: TournamentSubEvent, now: Optional[datetime] = None) -> WindowPosition:
    """Where now falls in the effective window. Missing bounds never block."""
    now = now or utcnow()
    open_date, close_date = effective_window(sub_event)
    if close_date is not None and now > close_date:
        return WindowPosition.AFTER_CLOSE
    if open_date is not None and now < open_date:
        return WindowPosition.BEFORE_OPEN
    return WindowPosition.OPEN
