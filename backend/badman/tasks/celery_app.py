"""Celery application configuration.

Redis is both broker and result backend. The broker and backend can be
pointed elsewhere with CELERY_BROKER_URL / CELERY_RESULT_BACKEND.
"""

import os

from celery import Celery
from dotenv import load_dotenv

from badman.tasks.schedules import CELERY_BEAT_SCHEDULE, CELERY_TASK_ROUTES

load_dotenv()

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

celery_app = Celery(
    "badman_tasks",
    broker=os.getenv("CELERY_BROKER_URL", f"{REDIS_URL.rsplit('/', 1)[0]}/1"),
    backend=os.getenv("CELERY_RESULT_BACKEND", f"{REDIS_URL.rsplit('/', 1)[0]}/2"),
    include=[
        "badman.tasks.sync_tasks",
        "badman.tasks.enrollment_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    timezone="UTC",
    enable_utc=True,

    task_routes=CELERY_TASK_ROUTES,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    result_expires=86400,  # 24 hours

    beat_schedule=CELERY_BEAT_SCHEDULE,

    task_default_retry_delay=60,
    task_max_retries=3,
)

if os.getenv("CELERY_TASK_ALWAYS_EAGER", "false").lower() in ("1", "true", "yes"):
    celery_app.conf.update(
        task_always_eager=True,
        task_eager_propagates=True,
    )
