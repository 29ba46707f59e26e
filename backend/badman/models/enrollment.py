from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from badman.models.sub_event import TournamentSubEvent


class EnrollmentStatus(str, Enum):
    PENDING = "PENDING"  # waiting for partner confirmation (doubles)
    CONFIRMED = "CONFIRMED"
    WAITING_LIST = "WAITING_LIST"
    CANCELLED = "CANCELLED"
    WITHDRAWN = "WITHDRAWN"


ACTIVE_STATUSES = (EnrollmentStatus.PENDING, EnrollmentStatus.CONFIRMED, EnrollmentStatus.WAITING_LIST)
INACTIVE_STATUSES = (EnrollmentStatus.CANCELLED, EnrollmentStatus.WITHDRAWN)


class EnrollmentSource(str, Enum):
    MANUAL = "MANUAL"
    PUBLIC_FORM = "PUBLIC_FORM"
    IMPORT = "IMPORT"
    AUTO_PROMOTED = "AUTO_PROMOTED"


class TournamentEnrollment(SQLModel, table=True):
    __tablename__ = "tournament_enrollment"
    __table_args__ = (
        # Guests have no player_id; NULLs never collide in a unique index
        SAUniqueConstraint("sub_event_id", "player_id", name="uq_enrollment_sub_event_player"),
        CheckConstraint(
            "waiting_list_position IS NULL OR waiting_list_position > 0",
            name="ck_enrollment_waiting_list_position_positive",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    sub_event_id: int = Field(foreign_key="tournament_sub_event.id", index=True)
    player_id: Optional[int] = Field(default=None, foreign_key="player.id", index=True)
    status: EnrollmentStatus = Field(
        default=EnrollmentStatus.PENDING, sa_column=Column(String, nullable=False, index=True)
    )
    preferred_partner_id: Optional[int] = Field(default=None, foreign_key="player.id")
    confirmed_partner_id: Optional[int] = Field(default=None, foreign_key="player.id")

    # Guest enrollment (no player account)
    is_guest: bool = Field(default=False)
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None

    waiting_list_position: Optional[int] = None
    notes: Optional[str] = None

    # Tracking
    session_id: Optional[int] = Field(default=None, foreign_key="enrollment_session.id")
    enrollment_source: EnrollmentSource = Field(
        default=EnrollmentSource.MANUAL, sa_column=Column(String, nullable=False)
    )
    promoted_at: Optional[datetime] = None
    promoted_from_waiting_list: bool = Field(default=False)
    original_waiting_list_position: Optional[int] = None

    # Approval workflow
    requires_approval: bool = Field(default=False)
    approved_by: Optional[int] = Field(default=None, foreign_key="player.id")
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    # Status timestamps, maintained by services.enrollment_lifecycle
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    withdrawn_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    sub_event: "TournamentSubEvent" = Relationship(back_populates="enrollments")
