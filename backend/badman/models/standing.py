from typing import Optional

from sqlmodel import Field, SQLModel


class Standing(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    entry_id: int = Field(foreign_key="entry.id", unique=True, index=True)
    position: int
    size: Optional[int] = None
    points: int = Field(default=0)
    played: int = Field(default=0)
    won: int = Field(default=0)
    lost: int = Field(default=0)
    tied: int = Field(default=0)
    games_won: int = Field(default=0)
    games_lost: int = Field(default=0)
    sets_won: int = Field(default=0)
    sets_lost: int = Field(default=0)
    total_points_won: int = Field(default=0)
    total_points_lost: int = Field(default=0)
    risers: int = Field(default=0)
    fallers: int = Field(default=0)
