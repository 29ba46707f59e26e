from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session

from badman.database import get_session
from badman.models.player import Player
from badman.utils.http_errors import commit_or_409

router = APIRouter()


class PlayerCreate(BaseModel):
    first_name: str
    last_name: str
    member_id: Optional[str] = None
    gender: Optional[str] = None
    level_single: Optional[int] = None
    level_double: Optional[int] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_names(cls, v):
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()

    @field_validator("gender")
    @classmethod
    def validate_gender(cls, v):
        if v is not None and v not in ("M", "F"):
            raise ValueError("gender must be 'M' or 'F'")
        return v


class PlayerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    member_id: Optional[str] = None
    first_name: str
    last_name: str
    gender: Optional[str] = None
    level_single: Optional[int] = None
    level_double: Optional[int] = None
    created_at: datetime


@router.post("/players", response_model=PlayerResponse, status_code=201)
def create_player(data: PlayerCreate, session: Session = Depends(get_session)):
    player = Player(**data.model_dump())
    session.add(player)
    commit_or_409(session)
    session.refresh(player)
    return player


@router.get("/players/{player_id}", response_model=PlayerResponse)
def get_player(player_id: int, session: Session = Depends(get_session)):
    player = session.get(Player, player_id)
    if not player:
        raise HTTPException(status_code=404, detail="Player not found")
    return player
