"""Celery application for metadata event consumers."""

import logging

from celery import Celery
from celery.signals import worker_process_init

from metaledger_worker.settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
)
logger = logging.getLogger(__name__)

SUGGESTION_TASK = "metaledger_worker.tasks.generate_metadata_suggestions"

celery_app = Celery(
    "metaledger_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # Redelivered jobs re-check their own preconditions
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue=settings.suggestion_queue,
    task_routes={SUGGESTION_TASK: {"queue": settings.suggestion_queue}},
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes
)


@worker_process_init.connect
def _validate_settings(**kwargs):
    settings.validate_production_settings()
    logger.info("Suggestion worker ready", extra={"queue": settings.suggestion_queue})


# Import tasks to register them with Celery
# This must be done after celery_app is created
from metaledger_worker import tasks  # noqa: F401, E402
