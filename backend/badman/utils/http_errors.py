"""Translate service-layer errors into HTTP responses."""
import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from badman.services.enrollment_errors import EnrollmentError
from badman.services.sync_jobs import SyncError
from badman.services.tournament_api_client import TournamentApiError

logger = logging.getLogger(__name__)


@contextmanager
def service_errors(session: Session) -> Iterator[None]:
    """Roll back and raise HTTPException(e.status_code) for domain errors raised inside the block."""
    try:
        yield
    except (EnrollmentError, SyncError) as e:
        session.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except TournamentApiError as e:
        session.rollback()
        raise HTTPException(status_code=502, detail=str(e))


def commit_or_409(session: Session) -> None:
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Integrity error on commit: {e.orig}")
        raise HTTPException(status_code=409, detail="Conflicting change, the record already exists or was modified")
