from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from sqlmodel import Session, select

from badman.database import get_session
from badman.models.enrollment import EnrollmentStatus
from badman.models.sub_event import EnrollmentPhase, GameType, SubEventType, TournamentSubEvent
from badman.models.tournament import TournamentEvent
from badman.models.waiting_list_log import WaitingListAction, WaitingListLog
from badman.services.capacity_service import get_capacities, get_capacity, get_waiting_list
from badman.services.enrollment_lifecycle import recalculate_counts, refresh_capacity_phase
from badman.services.enrollment_phase import transition_sub_event_phase
from badman.services.enrollment_service import get_sub_event, reorder_waiting_list, try_promote_from_waiting_list
from badman.utils.http_errors import commit_or_409, service_errors

router = APIRouter()


class SubEventCreate(BaseModel):
    name: str
    visual_code: Optional[str] = None
    game_type: GameType = GameType.S
    event_type: SubEventType = SubEventType.M
    level: Optional[int] = None
    min_level: Optional[int] = None
    max_level: Optional[int] = None
    max_entries: Optional[int] = None
    waiting_list_enabled: bool = False
    enrollment_open_date: Optional[datetime] = None
    enrollment_close_date: Optional[datetime] = None
    auto_promote_from_waiting_list: bool = True
    max_waiting_list_size: Optional[int] = None
    requires_approval: bool = False
    allow_guest_enrollments: bool = True
    enrollment_notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()

    @field_validator("max_entries", "max_waiting_list_size")
    @classmethod
    def validate_positive(cls, v):
        if v is not None and v <= 0:
            raise ValueError("must be > 0")
        return v

    @model_validator(mode="after")
    def validate_levels(self):
        if self.min_level is not None and self.max_level is not None and self.min_level > self.max_level:
            raise ValueError("min_level must be <= max_level")
        return self


class SubEventUpdate(BaseModel):
    name: Optional[str] = None
    level: Optional[int] = None
    min_level: Optional[int] = None
    max_level: Optional[int] = None
    max_entries: Optional[int] = None
    waiting_list_enabled: Optional[bool] = None
    enrollment_open_date: Optional[datetime] = None
    enrollment_close_date: Optional[datetime] = None
    auto_promote_from_waiting_list: Optional[bool] = None
    max_waiting_list_size: Optional[int] = None
    requires_approval: Optional[bool] = None
    allow_guest_enrollments: Optional[bool] = None
    enrollment_notes: Optional[str] = None

    @field_validator("max_entries", "max_waiting_list_size")
    @classmethod
    def validate_positive(cls, v):
        if v is not None and v <= 0:
            raise ValueError("must be > 0")
        return v


class SubEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: Optional[int] = None
    name: str
    visual_code: Optional[str] = None
    game_type: GameType
    event_type: SubEventType
    level: Optional[int] = None
    min_level: Optional[int] = None
    max_level: Optional[int] = None
    max_entries: Optional[int] = None
    waiting_list_enabled: bool
    enrollment_phase: EnrollmentPhase
    enrollment_open_date: Optional[datetime] = None
    enrollment_close_date: Optional[datetime] = None
    current_enrollment_count: int
    confirmed_enrollment_count: int
    waiting_list_count: int
    auto_promote_from_waiting_list: bool
    max_waiting_list_size: Optional[int] = None
    requires_approval: bool
    allow_guest_enrollments: bool
    enrollment_notes: Optional[str] = None
    last_sync: Optional[datetime] = None


class SubEventPhaseChange(BaseModel):
    phase: EnrollmentPhase


class CapacityResponse(BaseModel):
    sub_event_id: int
    max_entries: Optional[int] = None
    current_enrollment_count: int
    confirmed_enrollment_count: int
    waiting_list_count: int
    entries_taken: int
    available_spots: int
    is_full: bool
    has_waiting_list: bool


class CapacitiesRequest(BaseModel):
    sub_event_ids: List[int]


class WaitingListEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    player_id: Optional[int] = None
    is_guest: bool
    guest_name: Optional[str] = None
    status: EnrollmentStatus
    waiting_list_position: Optional[int] = None
    created_at: datetime


class WaitingListLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    enrollment_id: int
    action: WaitingListAction
    previous_position: Optional[int] = None
    new_position: Optional[int] = None
    triggered_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class RecalculateResponse(BaseModel):
    sub_event_id: int
    current_before: int
    current_after: int
    confirmed_before: int
    confirmed_after: int
    waiting_before: int
    waiting_after: int
    phase: EnrollmentPhase


# ============================================================================
# Sub-event CRUD
# ============================================================================


@router.get("/tournaments/{tournament_id}/sub-events", response_model=List[SubEventResponse])
def list_sub_events(tournament_id: int, session: Session = Depends(get_session)):
    if not session.get(TournamentEvent, tournament_id):
        raise HTTPException(status_code=404, detail="Tournament not found")
    return session.exec(
        select(TournamentSubEvent).where(TournamentSubEvent.event_id == tournament_id).order_by(TournamentSubEvent.id)
    ).all()


@router.post("/tournaments/{tournament_id}/sub-events", response_model=SubEventResponse, status_code=201)
def create_sub_event(tournament_id: int, data: SubEventCreate, session: Session = Depends(get_session)):
    if not session.get(TournamentEvent, tournament_id):
        raise HTTPException(status_code=404, detail="Tournament not found")
    sub_event = TournamentSubEvent(event_id=tournament_id, **data.model_dump())
    session.add(sub_event)
    commit_or_409(session)
    session.refresh(sub_event)
    return sub_event


@router.get("/sub-events/{sub_event_id}", response_model=SubEventResponse)
def get_sub_event_detail(sub_event_id: int, session: Session = Depends(get_session)):
    with service_errors(session):
        return get_sub_event(session, sub_event_id)


@router.patch("/sub-events/{sub_event_id}", response_model=SubEventResponse)
def update_sub_event(sub_event_id: int, data: SubEventUpdate, session: Session = Depends(get_session)):
    """Update settings. Raising max_entries re-opens a FULL sub-event and promotes from the waiting list."""
    with service_errors(session):
        sub_event = get_sub_event(session, sub_event_id)
        changes = data.model_dump(exclude_unset=True)
        for key, value in changes.items():
            setattr(sub_event, key, value)
        if "max_entries" in changes:
            refresh_capacity_phase(sub_event)
        session.add(sub_event)
        session.flush()
        if sub_event.waiting_list_enabled and ("max_entries" in changes or "auto_promote_from_waiting_list" in changes):
            try_promote_from_waiting_list(session, sub_event)
    commit_or_409(session)
    session.refresh(sub_event)
    return sub_event


@router.put("/sub-events/{sub_event_id}/phase", response_model=SubEventResponse)
def change_sub_event_phase(sub_event_id: int, data: SubEventPhaseChange, session: Session = Depends(get_session)):
    with service_errors(session):
        sub_event = get_sub_event(session, sub_event_id)
        transition_sub_event_phase(session, sub_event, data.phase)
    commit_or_409(session)
    session.refresh(sub_event)
    return sub_event


# ============================================================================
# Capacity and waiting list
# ============================================================================


@router.get("/sub-events/{sub_event_id}/capacity", response_model=CapacityResponse)
def get_sub_event_capacity(sub_event_id: int, session: Session = Depends(get_session)):
    with service_errors(session):
        return get_capacity(session, sub_event_id).to_dict()


@router.post("/sub-events/capacities", response_model=Dict[int, CapacityResponse])
def get_sub_event_capacities(data: CapacitiesRequest, session: Session = Depends(get_session)):
    return {sid: info.to_dict() for sid, info in get_capacities(session, data.sub_event_ids).items()}


@router.get("/sub-events/{sub_event_id}/waiting-list", response_model=List[WaitingListEntryResponse])
def get_sub_event_waiting_list(sub_event_id: int, session: Session = Depends(get_session)):
    with service_errors(session):
        get_sub_event(session, sub_event_id)
    return get_waiting_list(session, sub_event_id)


@router.get("/sub-events/{sub_event_id}/waiting-list/log", response_model=List[WaitingListLogResponse])
def get_waiting_list_log(sub_event_id: int, session: Session = Depends(get_session)):
    with service_errors(session):
        get_sub_event(session, sub_event_id)
    return session.exec(
        select(WaitingListLog)
        .where(WaitingListLog.sub_event_id == sub_event_id)
        .order_by(WaitingListLog.created_at, WaitingListLog.id)
    ).all()


@router.post("/sub-events/{sub_event_id}/waiting-list/reorder", response_model=List[WaitingListEntryResponse])
def reorder_sub_event_waiting_list(sub_event_id: int, session: Session = Depends(get_session)):
    with service_errors(session):
        get_sub_event(session, sub_event_id)
        reorder_waiting_list(session, sub_event_id)
    commit_or_409(session)
    return get_waiting_list(session, sub_event_id)


@router.post("/sub-events/{sub_event_id}/recalculate", response_model=RecalculateResponse)
def recalculate_sub_event_counts(sub_event_id: int, session: Session = Depends(get_session)):
    """Rebuild the enrollment counters from the enrollment rows."""
    with service_errors(session):
        sub_event = get_sub_event(session, sub_event_id)
        result = recalculate_counts(session, sub_event)
    commit_or_409(session)
    return result
