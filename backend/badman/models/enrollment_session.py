from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel


class EnrollmentSessionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


class ItemValidationStatus(str, Enum):
    PENDING = "PENDING"
    VALID = "VALID"
    INVALID = "INVALID"


class EnrollmentSession(SQLModel, table=True):
    """A player's enrollment cart: sub-events picked but not yet submitted."""

    __tablename__ = "enrollment_session"

    id: Optional[int] = Field(default=None, primary_key=True)
    session_key: str = Field(unique=True, index=True)
    tournament_event_id: int = Field(foreign_key="tournament_event.id", index=True)
    player_id: Optional[int] = Field(default=None, foreign_key="player.id", index=True)
    status: EnrollmentSessionStatus = Field(
        default=EnrollmentSessionStatus.PENDING, sa_column=Column(String, nullable=False, index=True)
    )
    expires_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    total_sub_events: int = Field(default=0)
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    items: List["EnrollmentSessionItem"] = Relationship(
        back_populates="session", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )


class EnrollmentSessionItem(SQLModel, table=True):
    __tablename__ = "enrollment_session_item"
    __table_args__ = (SAUniqueConstraint("session_id", "sub_event_id", name="uq_session_item_sub_event"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: int = Field(foreign_key="enrollment_session.id", index=True)
    sub_event_id: int = Field(foreign_key="tournament_sub_event.id")
    preferred_partner_id: Optional[int] = Field(default=None, foreign_key="player.id")
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    validation_status: ItemValidationStatus = Field(
        default=ItemValidationStatus.PENDING, sa_column=Column(String, nullable=False)
    )
    validation_errors: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    session: EnrollmentSession = Relationship(back_populates="items")
