from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class Player(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    member_id: Optional[str] = Field(default=None, unique=True, index=True)  # federation member number
    first_name: str
    last_name: str
    gender: Optional[str] = None  # "M" / "F"
    level_single: Optional[int] = None
    level_double: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
