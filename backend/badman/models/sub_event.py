import math
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import CheckConstraint, String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from badman.models.draw import TournamentDraw
    from badman.models.enrollment import TournamentEnrollment
    from badman.models.tournament import TournamentEvent


class EnrollmentPhase(str, Enum):
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    WAITLIST_ONLY = "WAITLIST_ONLY"
    FULL = "FULL"
    LOCKED = "LOCKED"


class GameType(str, Enum):
    S = "S"
    D = "D"
    MX = "MX"


class SubEventType(str, Enum):
    M = "M"
    F = "F"
    MX = "MX"
    MINIBAD = "MINIBAD"


class TournamentSubEvent(SQLModel, table=True):
    __tablename__ = "tournament_sub_event"
    __table_args__ = (
        SAUniqueConstraint("event_id", "visual_code", name="uq_sub_event_visual_code"),
        CheckConstraint("max_entries IS NULL OR max_entries > 0", name="ck_sub_event_max_entries_positive"),
        CheckConstraint(
            "current_enrollment_count >= 0 AND confirmed_enrollment_count >= 0 AND waiting_list_count >= 0",
            name="ck_sub_event_counts_non_negative",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    # Nullable so a sub-event that lost its tournament link can still be stored and repaired by sync
    event_id: Optional[int] = Field(default=None, foreign_key="tournament_event.id", index=True)
    name: str
    visual_code: Optional[str] = Field(default=None, index=True)
    game_type: GameType = Field(default=GameType.S, sa_column=Column(String, nullable=False))
    event_type: SubEventType = Field(default=SubEventType.M, sa_column=Column(String, nullable=False))
    level: Optional[int] = None
    min_level: Optional[int] = None
    max_level: Optional[int] = None
    max_entries: Optional[int] = None  # None = unlimited
    waiting_list_enabled: bool = Field(default=False)

    # Enrollment control
    enrollment_phase: EnrollmentPhase = Field(
        default=EnrollmentPhase.DRAFT, sa_column=Column(String, nullable=False, index=True)
    )
    enrollment_open_date: Optional[datetime] = None
    enrollment_close_date: Optional[datetime] = None
    current_enrollment_count: int = Field(default=0)  # PENDING + CONFIRMED + WAITING_LIST
    confirmed_enrollment_count: int = Field(default=0)
    waiting_list_count: int = Field(default=0)
    auto_promote_from_waiting_list: bool = Field(default=True)
    max_waiting_list_size: Optional[int] = None
    requires_approval: bool = Field(default=False)
    allow_guest_enrollments: bool = Field(default=True)
    enrollment_notes: Optional[str] = None

    last_sync: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: Optional["TournamentEvent"] = Relationship(back_populates="sub_events")
    enrollments: List["TournamentEnrollment"] = Relationship(back_populates="sub_event")
    draws: List["TournamentDraw"] = Relationship(back_populates="sub_event")

    @property
    def is_doubles(self) -> bool:
        return self.game_type in (GameType.D, GameType.MX)

    @property
    def entries_taken(self) -> int:
        """Places held outside the waiting list: one per singles player, one per doubles pair."""
        placed = max(0, self.current_enrollment_count - self.waiting_list_count)
        return math.ceil(placed / 2) if self.is_doubles else placed
