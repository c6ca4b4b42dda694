"""Producer-side Celery client used to publish metadata events.

The API never runs tasks; it only sends them by name to the worker's
queue, so no worker modules are imported here.
"""

import logging
from typing import Optional

from celery import Celery

from metaledger_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)

_celery_app: Optional[Celery] = None


def build_celery_app(settings: Settings) -> Celery:
    """Celery client whose serializer, timezone and routing match the worker."""
    app = Celery("metaledger_api")
    app.conf.update(
        broker_url=settings.redis_url,
        result_backend=settings.redis_url,
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_default_queue=settings.suggestion_queue,
        task_routes={settings.suggestion_task_name: {"queue": settings.suggestion_queue}},
        # Events are fire-and-forget; a broker outage surfaces at once
        broker_connection_retry_on_startup=False,
        broker_transport_options={"max_retries": 1},
    )
    return app


def get_celery_app() -> Celery:
    """Get or create the process-wide Celery client."""
    global _celery_app

    if _celery_app is None:
        settings = get_settings()
        _celery_app = build_celery_app(settings)
        logger.info(
            "Initialized Celery client for metaledger_api",
            extra={"queue": settings.suggestion_queue},
        )

    return _celery_app
