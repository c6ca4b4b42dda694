"""Best-effort activity trail."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from metaledger_api.auth.capabilities import Actor
from metaledger_api.models import ActivityEvent
from metaledger_api.utils import metrics

logger = logging.getLogger(__name__)


class ActivityRecorder:
    """Records activity after the primary transaction has committed.

    Failures are logged and counted, never raised: the ledger is the
    authoritative record and activity is informational.
    """

    def __init__(self, db: Session):
        """Initialize activity recorder."""
        self.db = db

    def record(
        self,
        actor: Actor,
        event_type: str,
        subject_type: str,
        subject_id,
        asset_id: Optional[int] = None,
        brand_id: Optional[int] = None,
        payload: Optional[dict] = None,
    ) -> Optional[ActivityEvent]:
        try:
            event = ActivityEvent(
                tenant_id=actor.tenant_id,
                brand_id=brand_id,
                actor_id=actor.actor_id,
                event_type=event_type,
                subject_type=subject_type,
                subject_id=str(subject_id),
                asset_id=asset_id,
                payload_json=payload,
            )
            self.db.add(event)
            self.db.commit()
            return event
        except Exception as e:
            self.db.rollback()
            metrics.activity_record_failures.inc()
            logger.error(
                f"Failed to record activity {event_type}: {e}",
                extra={"event_type": event_type, "subject_id": str(subject_id), "asset_id": asset_id},
            )
            return None
