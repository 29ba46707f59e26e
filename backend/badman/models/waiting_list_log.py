from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String
from sqlmodel import Column, Field, SQLModel


class WaitingListAction(str, Enum):
    ADDED = "ADDED"
    PROMOTED = "PROMOTED"
    POSITION_CHANGED = "POSITION_CHANGED"
    REMOVED = "REMOVED"


class WaitingListLog(SQLModel, table=True):
    """Audit trail of every waiting-list movement."""

    __tablename__ = "waiting_list_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    enrollment_id: int = Field(foreign_key="tournament_enrollment.id", index=True)
    sub_event_id: int = Field(foreign_key="tournament_sub_event.id", index=True)
    action: WaitingListAction = Field(sa_column=Column(String, nullable=False))
    previous_position: Optional[int] = None
    new_position: Optional[int] = None
    triggered_by: Optional[str] = None  # SYSTEM | AUTO_PROMOTE | MANUAL
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
