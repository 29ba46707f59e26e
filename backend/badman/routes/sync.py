from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from badman.database import get_session
from badman.models.sync_job_log import SyncJobStatus
from badman.services.structure_sync import get_tournament_by_code
from badman.services.sync_jobs import create_job, generate_job_id, list_jobs
from badman.tasks.sync_tasks import (
    JOB_GAMES,
    JOB_STANDINGS,
    JOB_STRUCTURE,
    sync_draw_standings_task,
    sync_tournament_games_task,
    sync_tournament_structure_task,
)
from badman.utils.http_errors import commit_or_409, service_errors

router = APIRouter()


class StructureSyncRequest(BaseModel):
    event_codes: Optional[List[str]] = None


class GameSyncRequest(BaseModel):
    draw_codes: Optional[List[str]] = None


class SyncJobQueued(BaseModel):
    job_id: str
    job_type: str
    tournament_code: str
    status: SyncJobStatus


class SyncJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_type: str
    job_id: str
    tournament_code: Optional[str] = None
    event_code: Optional[str] = None
    status: SyncJobStatus
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    processing_time_ms: Optional[int] = None
    items_processed: int
    created_at: datetime


def _queue(
    session: Session,
    job_type: str,
    tournament_code: str,
    event_code: Optional[str] = None,
    job_data: Optional[Dict[str, Any]] = None,
) -> str:
    """Register a PENDING job log row; the worker picks it up by job id."""
    with service_errors(session):
        get_tournament_by_code(session, tournament_code)
    job_id = generate_job_id(job_type, tournament_code, event_code)
    create_job(session, job_type, job_id, tournament_code, event_code, job_data)
    commit_or_409(session)
    return job_id


@router.post("/sync/tournaments/{tournament_code}/structure", response_model=SyncJobQueued, status_code=202)
def queue_structure_sync(
    tournament_code: str, data: Optional[StructureSyncRequest] = None, session: Session = Depends(get_session)
):
    event_codes = data.event_codes if data else None
    job_id = _queue(session, JOB_STRUCTURE, tournament_code, job_data={"event_codes": event_codes})
    sync_tournament_structure_task.delay(tournament_code, event_codes, job_id=job_id)
    return {
        "job_id": job_id,
        "job_type": JOB_STRUCTURE,
        "tournament_code": tournament_code,
        "status": SyncJobStatus.PENDING,
    }


@router.post("/sync/tournaments/{tournament_code}/games", response_model=SyncJobQueued, status_code=202)
def queue_game_sync(
    tournament_code: str, data: Optional[GameSyncRequest] = None, session: Session = Depends(get_session)
):
    draw_codes = data.draw_codes if data else None
    job_id = _queue(session, JOB_GAMES, tournament_code, job_data={"draw_codes": draw_codes})
    sync_tournament_games_task.delay(tournament_code, draw_codes, job_id=job_id)
    return {
        "job_id": job_id,
        "job_type": JOB_GAMES,
        "tournament_code": tournament_code,
        "status": SyncJobStatus.PENDING,
    }


@router.post(
    "/sync/tournaments/{tournament_code}/draws/{draw_code}/standings", response_model=SyncJobQueued, status_code=202
)
def queue_standing_sync(tournament_code: str, draw_code: str, session: Session = Depends(get_session)):
    job_id = _queue(session, JOB_STANDINGS, tournament_code, event_code=draw_code)
    sync_draw_standings_task.delay(tournament_code, draw_code, job_id=job_id)
    return {
        "job_id": job_id,
        "job_type": JOB_STANDINGS,
        "tournament_code": tournament_code,
        "status": SyncJobStatus.PENDING,
    }


@router.get("/sync/jobs", response_model=List[SyncJobResponse])
def get_sync_jobs(
    tournament_code: Optional[str] = None,
    status: Optional[SyncJobStatus] = None,
    limit: int = 50,
    session: Session = Depends(get_session),
):
    return list_jobs(session, tournament_code, status, limit)
