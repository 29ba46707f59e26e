"""Periodic enrollment maintenance tasks (see schedules.py)."""

import logging

from sqlmodel import Session

from badman.database import engine
from badman.services.enrollment_cart import cleanup_expired_carts
from badman.services.enrollment_phase import sweep_enrollment_windows
from badman.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="badman.tasks.enrollment_tasks.sweep_enrollment_windows_task",
    max_retries=3,
    autoretry_for=(Exception,),
    retry_backoff=True,
)
def sweep_enrollment_windows_task(self):
    with Session(engine) as session:
        result = sweep_enrollment_windows(session)
        session.commit()
    if result["opened"] or result["closed"]:
        logger.info(f"Enrollment window sweep: {result}")
    return result


@celery_app.task(
    bind=True,
    name="badman.tasks.enrollment_tasks.cleanup_expired_carts_task",
    max_retries=3,
    autoretry_for=(Exception,),
    retry_backoff=True,
)
def cleanup_expired_carts_task(self):
    with Session(engine) as session:
        expired = cleanup_expired_carts(session)
        session.commit()
    return {"expired": expired}
