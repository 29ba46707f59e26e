from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from badman.models.entry import Entry
    from badman.models.sub_event import TournamentSubEvent


class DrawType(str, Enum):
    KO = "KO"
    POULE = "POULE"
    QUALIFICATION = "QUALIFICATION"


class TournamentDraw(SQLModel, table=True):
    __tablename__ = "tournament_draw"
    __table_args__ = (SAUniqueConstraint("sub_event_id", "visual_code", name="uq_draw_sub_event_visual_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    sub_event_id: int = Field(foreign_key="tournament_sub_event.id", index=True)
    visual_code: str = Field(index=True)
    name: str
    type: DrawType = Field(default=DrawType.KO, sa_column=Column(String, nullable=False))
    size: Optional[int] = None
    risers: int = Field(default=0)
    fallers: int = Field(default=0)
    last_sync: Optional[datetime] = None

    # Relationships
    sub_event: "TournamentSubEvent" = Relationship(back_populates="draws")
    entries: List["Entry"] = Relationship(back_populates="draw")
