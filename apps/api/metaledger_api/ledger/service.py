"""Append-only metadata value ledger with paired history."""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from metaledger_api.metadata.enums import HistoryAction, Producer, ValueSource
from metaledger_api.metadata.errors import AlreadyResolved, InvalidValue, LedgerIntegrityError
from metaledger_api.models import MetadataHistory, MetadataValue
from metaledger_api.utils import metrics
from metaledger_api.utils.time import utcnow

logger = logging.getLogger(__name__)


class ValueLedger:
    """Writes value entries and their history rows.

    Every method adds rows to the caller's session and flushes; the caller
    owns the transaction so an entry and its history commit together.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        """Initialize ledger."""
        self.db = db
        self.clock = clock

    def _record_history(
        self,
        entry: MetadataValue,
        action: HistoryAction,
        old_value: Any,
        new_value: Any,
        actor_id: Optional[str],
        context: Optional[dict] = None,
    ) -> MetadataHistory:
        history = MetadataHistory(
            asset_metadata_id=entry.id,
            asset_id=entry.asset_id,
            field_id=entry.field_id,
            action=action,
            old_value_json=old_value,
            new_value_json=new_value,
            source=entry.source,
            changed_by=actor_id,
            context_json=context,
            created_at=self.clock(),
        )
        self.db.add(history)
        self.db.flush()
        return history

    def append(
        self,
        asset_id: int,
        field_id: int,
        value: Any,
        source: ValueSource,
        producer: Producer,
        confidence: Optional[float] = None,
        approved_immediately: bool = False,
        actor_id: Optional[str] = None,
        old_value: Any = None,
        action: HistoryAction = HistoryAction.WRITE,
        overridden: bool = False,
        replaces: bool = False,
        context: Optional[dict] = None,
    ) -> MetadataValue:
        """Append a new value entry plus its history row."""
        if source.is_rejected:
            raise LedgerIntegrityError("Rejected sources are only reachable by rejecting a pending entry")
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            raise InvalidValue(f"Confidence must be within [0, 1], got {confidence}")

        now = self.clock()
        entry = MetadataValue(
            asset_id=asset_id,
            field_id=field_id,
            value_json=value,
            is_replacement=replaces,
            source=source,
            producer=producer,
            confidence=confidence,
            approved_at=now if approved_immediately else None,
            approved_by=actor_id if approved_immediately else None,
            overridden_at=now if overridden else None,
            overridden_by=actor_id if overridden else None,
            created_at=now,
        )
        self.db.add(entry)
        self.db.flush()
        self._record_history(entry, action, old_value, value, actor_id, context)

        metrics.ledger_writes.labels(source=source.value, pending=str(not approved_immediately).lower()).inc()
        logger.info(
            f"Appended metadata entry {entry.id}",
            extra={
                "entry_id": entry.id,
                "asset_id": asset_id,
                "field_id": field_id,
                "source": source.value,
                "pending": not approved_immediately,
            },
        )
        return entry

    def approve(
        self,
        entry: MetadataValue,
        actor_id: str,
        old_value: Any = None,
        context: Optional[dict] = None,
    ) -> MetadataHistory:
        """Stamp a pending entry approved."""
        if entry.is_approved or entry.is_rejected:
            raise AlreadyResolved(f"Metadata entry {entry.id} is already resolved", entry_id=entry.id)

        entry.approved_at = self.clock()
        entry.approved_by = actor_id
        self.db.flush()
        return self._record_history(entry, HistoryAction.APPROVE, old_value, entry.value_json, actor_id, context)

    def reject(
        self,
        entry: MetadataValue,
        actor_id: str,
        action: HistoryAction = HistoryAction.REJECT,
        context: Optional[dict] = None,
    ) -> MetadataHistory:
        """Flip a pending entry to its rejected source; the row is kept for audit."""
        if entry.is_approved or entry.is_rejected:
            raise AlreadyResolved(f"Metadata entry {entry.id} is already resolved", entry_id=entry.id)
        variant = entry.source.rejected_variant()
        if variant is None:
            raise AlreadyResolved(
                f"Metadata entry {entry.id} with source {entry.source.value} cannot be rejected",
                entry_id=entry.id,
            )

        history_context = {
            "previous_source": entry.source.value,
            "previous_confidence": entry.confidence,
        }
        history_context.update(context or {})

        entry.source = variant
        entry.confidence = None
        self.db.flush()
        return self._record_history(entry, action, entry.value_json, None, actor_id, history_context)

    def get_entry(self, entry_id: int) -> Optional[MetadataValue]:
        return self.db.query(MetadataValue).filter(MetadataValue.id == entry_id).first()

    def entries_for(self, asset_id: int, field_id: Optional[int] = None) -> list[MetadataValue]:
        """All rows for an asset in insertion order."""
        query = self.db.query(MetadataValue).filter(MetadataValue.asset_id == asset_id)
        if field_id is not None:
            query = query.filter(MetadataValue.field_id == field_id)
        return query.order_by(MetadataValue.id.asc()).all()

    def pending_entries(self, asset_id: int) -> list[MetadataValue]:
        """Unapproved ai/user rows still awaiting review."""
        return (
            self.db.query(MetadataValue)
            .filter(
                MetadataValue.asset_id == asset_id,
                MetadataValue.approved_at.is_(None),
                MetadataValue.source.in_([ValueSource.AI, ValueSource.USER]),
            )
            .order_by(MetadataValue.id.asc())
            .all()
        )

    def has_pending(self, asset_id: int) -> bool:
        return (
            self.db.query(MetadataValue.id)
            .filter(
                MetadataValue.asset_id == asset_id,
                MetadataValue.approved_at.is_(None),
                MetadataValue.source.in_([ValueSource.AI, ValueSource.USER]),
            )
            .first()
            is not None
        )

    def history_for(self, asset_id: int, field_id: Optional[int] = None) -> list[MetadataHistory]:
        query = self.db.query(MetadataHistory).filter(MetadataHistory.asset_id == asset_id)
        if field_id is not None:
            query = query.filter(MetadataHistory.field_id == field_id)
        return query.order_by(MetadataHistory.id.asc()).all()
