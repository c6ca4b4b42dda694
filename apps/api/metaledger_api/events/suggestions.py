"""Preconditions and bookkeeping for the follow-on suggestion job."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from metaledger_api.ledger.service import ValueLedger
from metaledger_api.models import Asset, MetadataCandidate
from metaledger_api.utils.time import utcnow

logger = logging.getLogger(__name__)


def should_generate_suggestions(db: Session, asset: Optional[Asset]) -> bool:
    """No pending metadata remains and the job has not already completed."""
    if asset is None:
        return False
    if asset.suggestions_completed_at is not None:
        logger.info(
            "Suggestions already completed, skipping",
            extra={"asset_id": asset.id, "completed_at": asset.suggestions_completed_at.isoformat()},
        )
        return False
    if ValueLedger(db).has_pending(asset.id):
        logger.info("Asset still has pending metadata, skipping suggestions", extra={"asset_id": asset.id})
        return False
    return True


def eligible_candidates(db: Session, asset_id: int, min_confidence: float) -> list[MetadataCandidate]:
    """Open candidates confident enough to be offered as suggestions."""
    return (
        db.query(MetadataCandidate)
        .filter(
            MetadataCandidate.asset_id == asset_id,
            MetadataCandidate.resolved_at.is_(None),
            MetadataCandidate.dismissed_at.is_(None),
            MetadataCandidate.confidence >= min_confidence,
        )
        .order_by(MetadataCandidate.confidence.desc(), MetadataCandidate.id.asc())
        .all()
    )


def mark_suggestions_completed(db: Session, asset: Asset) -> None:
    asset.suggestions_completed_at = utcnow()
    db.flush()
