"""Fire-and-forget dispatch of metadata lifecycle events."""

import logging
from dataclasses import asdict, dataclass, replace
from typing import Optional

from metaledger_api.celery_client import get_celery_app
from metaledger_api.middleware.correlation import current_correlation_id
from metaledger_api.settings import Settings, get_settings
from metaledger_api.utils import metrics

logger = logging.getLogger(__name__)

STATE_COMPLETE = "metadata.state_complete"


@dataclass(frozen=True)
class MetadataStateComplete:
    """An approval committed and the asset has no pending ai/user entries left."""

    tenant_id: int
    asset_id: int
    actor_id: Optional[str] = None
    correlation_id: Optional[str] = None


class CeleryEventDispatcher:
    """Sends state-complete events to the worker queue.

    Dispatch never raises: the approval that triggered it has already
    committed. The consumer re-checks its own preconditions, so duplicate
    or stale events are harmless.
    """

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize dispatcher."""
        self.settings = settings or get_settings()

    def emit(self, event: MetadataStateComplete) -> Optional[str]:
        if event.correlation_id is None:
            event = replace(event, correlation_id=current_correlation_id())
        log_extra = {"event": STATE_COMPLETE, **asdict(event)}
        if not self.settings.suggestion_dispatch_enabled:
            logger.debug("Suggestion dispatch disabled, dropping event", extra=log_extra)
            metrics.event_dispatches.labels(status="disabled").inc()
            return None

        try:
            celery_app = get_celery_app()
            task = celery_app.signature(
                self.settings.suggestion_task_name,
                kwargs={
                    "asset_id": event.asset_id,
                    "tenant_id": event.tenant_id,
                    "correlation_id": event.correlation_id,
                },
            ).apply_async()
        except Exception as e:
            metrics.event_dispatches.labels(status="failed").inc()
            logger.error(f"Failed to dispatch {STATE_COMPLETE}: {e}", extra=log_extra, exc_info=True)
            return None

        metrics.event_dispatches.labels(status="sent").inc()
        logger.info(f"Dispatched {STATE_COMPLETE} as task {task.id}", extra=log_extra)
        return task.id


_dispatcher: Optional[CeleryEventDispatcher] = None


def get_event_dispatcher() -> CeleryEventDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = CeleryEventDispatcher()
    return _dispatcher
