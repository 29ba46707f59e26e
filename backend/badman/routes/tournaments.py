from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from sqlmodel import Session, select

from badman.database import get_session
from badman.models.tournament import TournamentEvent, TournamentPhase
from badman.services.enrollment_phase import apply_tournament_phase
from badman.utils.http_errors import commit_or_409, service_errors

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    visual_code: Optional[str] = None
    first_day: Optional[date] = None
    enrollment_open_date: Optional[datetime] = None
    enrollment_close_date: Optional[datetime] = None
    allow_guest_enrollments: bool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_window(self):
        if self.enrollment_open_date and self.enrollment_close_date:
            if self.enrollment_close_date < self.enrollment_open_date:
                raise ValueError("enrollment_close_date must be after enrollment_open_date")
        return self


class TournamentUpdate(BaseModel):
    name: Optional[str] = None
    visual_code: Optional[str] = None
    first_day: Optional[date] = None
    enrollment_open_date: Optional[datetime] = None
    enrollment_close_date: Optional[datetime] = None
    allow_guest_enrollments: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if v is not None and not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip() if v else v


class PhaseChange(BaseModel):
    phase: TournamentPhase


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    visual_code: Optional[str] = None
    first_day: Optional[date] = None
    phase: TournamentPhase
    enrollment_open_date: Optional[datetime] = None
    enrollment_close_date: Optional[datetime] = None
    allow_guest_enrollments: bool
    last_sync: Optional[datetime] = None
    created_at: datetime


class PhaseChangeResponse(BaseModel):
    tournament_id: int
    phase: TournamentPhase
    sub_events_updated: List[int]


def _get_tournament(session: Session, tournament_id: int) -> TournamentEvent:
    tournament = session.get(TournamentEvent, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    return session.exec(select(TournamentEvent).order_by(TournamentEvent.first_day, TournamentEvent.id)).all()


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(data: TournamentCreate, session: Session = Depends(get_session)):
    tournament = TournamentEvent(**data.model_dump())
    session.add(tournament)
    commit_or_409(session)
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    return _get_tournament(session, tournament_id)


@router.patch("/tournaments/{tournament_id}", response_model=TournamentResponse)
def update_tournament(tournament_id: int, data: TournamentUpdate, session: Session = Depends(get_session)):
    tournament = _get_tournament(session, tournament_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(tournament, key, value)
    session.add(tournament)
    commit_or_409(session)
    session.refresh(tournament)
    return tournament


@router.put("/tournaments/{tournament_id}/phase", response_model=PhaseChangeResponse)
def change_tournament_phase(tournament_id: int, data: PhaseChange, session: Session = Depends(get_session)):
    """Set the tournament phase; sub-event enrollment phases follow."""
    tournament = _get_tournament(session, tournament_id)
    with service_errors(session):
        result = apply_tournament_phase(session, tournament, data.phase)
    commit_or_409(session)
    return result
