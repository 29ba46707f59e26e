from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from badman.models.sub_event import TournamentSubEvent


class TournamentPhase(str, Enum):
    DRAFT = "DRAFT"
    ENROLLMENT_OPEN = "ENROLLMENT_OPEN"
    ENROLLMENT_CLOSED = "ENROLLMENT_CLOSED"
    DRAWS_MADE = "DRAWS_MADE"
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class TournamentEvent(SQLModel, table=True):
    __tablename__ = "tournament_event"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    visual_code: Optional[str] = Field(default=None, unique=True, index=True)  # vendor tournament code
    first_day: Optional[date] = None
    phase: TournamentPhase = Field(default=TournamentPhase.DRAFT, sa_column=Column(String, nullable=False))
    enrollment_open_date: Optional[datetime] = None
    enrollment_close_date: Optional[datetime] = None
    allow_guest_enrollments: bool = Field(default=True)
    last_sync: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    sub_events: List["TournamentSubEvent"] = Relationship(back_populates="tournament")
