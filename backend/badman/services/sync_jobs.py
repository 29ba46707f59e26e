"""
Bookkeeping for vendor sync job runs.

Every sync run is recorded in a SyncJobLog row: PENDING when enqueued,
IN_PROGRESS while the worker runs it, then COMPLETED or FAILED with timing,
item count and (on failure) the error and traceback.
"""
import logging
import traceback
import uuid
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from badman.models.sync_job_log import SyncJobLog, SyncJobStatus
from badman.utils.dates import utcnow

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """A sync run could not proceed (unknown tournament, draw, ...)."""

    status_code = 404


def generate_job_id(*parts: Any) -> str:
    prefix = "-".join(str(p) for p in parts if p not in (None, ""))
    suffix = uuid.uuid4().hex[:8]
    return f"{prefix}-{suffix}" if prefix else suffix


def get_job(session: Session, job_id: str) -> Optional[SyncJobLog]:
    return session.exec(select(SyncJobLog).where(SyncJobLog.job_id == job_id)).first()


def create_job(
    session: Session,
    job_type: str,
    job_id: str,
    tournament_code: Optional[str] = None,
    event_code: Optional[str] = None,
    job_data: Optional[Dict[str, Any]] = None,
) -> SyncJobLog:
    job = SyncJobLog(
        job_type=job_type,
        job_id=job_id,
        tournament_code=tournament_code,
        event_code=event_code,
        status=SyncJobStatus.PENDING,
        job_data=job_data,
    )
    session.add(job)
    session.flush()
    return job


def start_job(
    session: Session,
    job_type: str,
    job_id: str,
    tournament_code: Optional[str] = None,
    event_code: Optional[str] = None,
    job_data: Optional[Dict[str, Any]] = None,
) -> SyncJobLog:
    """Mark a job IN_PROGRESS, creating its log row when the job was not pre-registered."""
    job = get_job(session, job_id)
    if job is None:
        job = create_job(session, job_type, job_id, tournament_code, event_code, job_data)
    job.status = SyncJobStatus.IN_PROGRESS
    job.started_at = utcnow()
    session.add(job)
    session.flush()
    logger.info(f"Sync job {job_id} ({job_type}) started")
    return job


def _elapsed_ms(job: SyncJobLog) -> Optional[int]:
    if job.started_at is None or job.completed_at is None:
        return None
    return int((job.completed_at - job.started_at).total_seconds() * 1000)


def complete_job(
    session: Session,
    job: SyncJobLog,
    result: Optional[Dict[str, Any]] = None,
    items_processed: int = 0,
) -> SyncJobLog:
    job.status = SyncJobStatus.COMPLETED
    job.completed_at = utcnow()
    job.result = result
    job.items_processed = items_processed
    job.processing_time_ms = _elapsed_ms(job)
    session.add(job)
    logger.info(f"Sync job {job.job_id} completed: {items_processed} item(s) in {job.processing_time_ms} ms")
    return job


def fail_job(session: Session, job: SyncJobLog, error: BaseException) -> SyncJobLog:
    job.status = SyncJobStatus.FAILED
    job.completed_at = utcnow()
    job.error_message = str(error)
    job.error_stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    job.processing_time_ms = _elapsed_ms(job)
    session.add(job)
    logger.error(f"Sync job {job.job_id} failed: {error}")
    return job


def list_jobs(
    session: Session,
    tournament_code: Optional[str] = None,
    status: Optional[SyncJobStatus] = None,
    limit: int = 50,
) -> List[SyncJobLog]:
    query = select(SyncJobLog)
    if tournament_code:
        query = query.where(SyncJobLog.tournament_code == tournament_code)
    if status is not None:
        query = query.where(SyncJobLog.status == SyncJobStatus(status))
    return session.exec(query.order_by(SyncJobLog.created_at.desc(), SyncJobLog.id.desc()).limit(limit)).all()
