"""Suggestion job run when an asset's metadata reaches a complete state."""

import logging
from typing import Optional

from celery import Task
from sqlalchemy.orm import Session

from metaledger_worker.celery_app import celery_app
from metaledger_worker.db import open_session
from metaledger_worker.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class DatabaseTask(Task):
    """Task holding one ledger session for the duration of a run."""

    _db: Optional[Session] = None

    @property
    def db(self) -> Session:
        """Get database session."""
        if self._db is None:
            self._db = open_session()
        return self._db

    def after_return(self, *args, **kwargs):
        """Close database session after task."""
        if self._db:
            self._db.close()
            self._db = None


def run_suggestion_job(
    db: Session,
    asset_id: int,
    tenant_id: int,
    settings: Settings,
    correlation_id: Optional[str] = None,
) -> Optional[list[int]]:
    """
    Offer high-confidence candidates for an asset whose metadata is complete.

    Preconditions are re-checked here because the triggering event may be
    stale or delivered twice. Returns the forwarded candidate ids, or None
    when the job was skipped.
    """
    from metaledger_api.events.suggestions import (
        eligible_candidates,
        mark_suggestions_completed,
        should_generate_suggestions,
    )
    from metaledger_api.models import Asset

    log_extra = {
        "task": "generate_metadata_suggestions",
        "asset_id": asset_id,
        "tenant_id": tenant_id,
        "correlation_id": correlation_id,
    }

    asset = db.query(Asset).filter(Asset.id == asset_id, Asset.tenant_id == tenant_id).first()
    if asset is None:
        logger.error(f"Asset {asset_id} not found for tenant {tenant_id}", extra=log_extra)
        return None

    if not should_generate_suggestions(db, asset):
        return None

    candidates = eligible_candidates(db, asset.id, settings.suggestion_min_confidence)
    candidate_ids = [candidate.id for candidate in candidates]

    if candidate_ids and settings.suggestion_pipeline_task:
        celery_app.signature(
            settings.suggestion_pipeline_task,
            kwargs={
                "asset_id": asset.id,
                "tenant_id": tenant_id,
                "candidate_ids": candidate_ids,
                "correlation_id": correlation_id,
            },
        ).apply_async()

    mark_suggestions_completed(db, asset)
    db.commit()

    logger.info(
        f"Suggestions generated for asset {asset_id}: {len(candidate_ids)} eligible candidate(s)",
        extra=log_extra,
    )
    return candidate_ids


@celery_app.task(
    base=DatabaseTask,
    bind=True,
    max_retries=get_settings().suggestion_max_retries,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
)
def generate_metadata_suggestions(self, asset_id: int, tenant_id: int, correlation_id: Optional[str] = None):
    """Follow-on job for the metadata.state_complete event."""
    db = self.db
    try:
        return run_suggestion_job(db, asset_id, tenant_id, get_settings(), correlation_id)
    except Exception as e:
        logger.error(
            f"Error generating suggestions for asset {asset_id}: {e}",
            exc_info=True,
            extra={"task": "generate_metadata_suggestions", "asset_id": asset_id, "correlation_id": correlation_id},
        )
        db.rollback()
        raise
