"""Vendor sync tasks.

Each task runs in its own database session, records its run in SyncJobLog
and commits once at the end. Network failures retry with backoff; unknown
tournaments or draws fail immediately.
"""

import logging
from typing import Callable, Dict, List, Optional

from sqlmodel import Session

from badman.database import engine
from badman.services.game_sync import sync_tournament_games
from badman.services.standing_sync import sync_draw_standings
from badman.services.structure_sync import sync_tournament_structure
from badman.services.sync_jobs import SyncError, complete_job, fail_job, generate_job_id, start_job
from badman.services.tournament_api_client import TournamentApiClient
from badman.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

JOB_STRUCTURE = "tournament-structure"
JOB_GAMES = "tournament-games"
JOB_STANDINGS = "draw-standings"


def get_api_client() -> TournamentApiClient:
    return TournamentApiClient()


def run_sync_job(
    job_type: str,
    job_id: Optional[str],
    tournament_code: str,
    work: Callable[[Session], Dict],
    event_code: Optional[str] = None,
    job_data: Optional[Dict] = None,
) -> Dict:
    """Run work(session) wrapped in a SyncJobLog row; failures are logged on the row and re-raised."""
    job_id = job_id or generate_job_id(job_type, tournament_code)
    with Session(engine) as session:
        job = start_job(session, job_type, job_id, tournament_code, event_code, job_data)
        session.commit()
        try:
            result = work(session)
            items = sum(v for v in result.values() if isinstance(v, int) and not isinstance(v, bool))
            complete_job(session, job, result, items_processed=items)
            session.commit()
        except Exception as e:
            session.rollback()
            session.refresh(job)
            fail_job(session, job, e)
            session.commit()
            raise
    return {"job_id": job_id, **result}


@celery_app.task(
    bind=True,
    name="badman.tasks.sync_tasks.sync_tournament_structure_task",
    max_retries=3,
    autoretry_for=(Exception,),
    dont_autoretry_for=(SyncError,),
    retry_backoff=True,
)
def sync_tournament_structure_task(
    self, tournament_code: str, event_codes: Optional[List[str]] = None, job_id: Optional[str] = None
):
    logger.info(f"Structure sync for {tournament_code} (attempt {self.request.retries + 1})")

    def work(session: Session) -> Dict:
        with get_api_client() as client:
            return sync_tournament_structure(session, client, tournament_code, event_codes)

    return run_sync_job(JOB_STRUCTURE, job_id, tournament_code, work, job_data={"event_codes": event_codes})


@celery_app.task(
    bind=True,
    name="badman.tasks.sync_tasks.sync_tournament_games_task",
    max_retries=3,
    autoretry_for=(Exception,),
    dont_autoretry_for=(SyncError,),
    retry_backoff=True,
)
def sync_tournament_games_task(
    self, tournament_code: str, draw_codes: Optional[List[str]] = None, job_id: Optional[str] = None
):
    logger.info(f"Game sync for {tournament_code} (attempt {self.request.retries + 1})")

    def work(session: Session) -> Dict:
        with get_api_client() as client:
            return sync_tournament_games(session, client, tournament_code, draw_codes)

    return run_sync_job(JOB_GAMES, job_id, tournament_code, work, job_data={"draw_codes": draw_codes})


@celery_app.task(
    bind=True,
    name="badman.tasks.sync_tasks.sync_draw_standings_task",
    max_retries=3,
    autoretry_for=(Exception,),
    dont_autoretry_for=(SyncError,),
    retry_backoff=True,
)
def sync_draw_standings_task(self, tournament_code: str, draw_code: str, job_id: Optional[str] = None):
    logger.info(f"Standings sync for {tournament_code}/{draw_code} (attempt {self.request.retries + 1})")

    def work(session: Session) -> Dict:
        return sync_draw_standings(session, tournament_code, draw_code)

    return run_sync_job(JOB_STANDINGS, job_id, tournament_code, work, event_code=draw_code)
