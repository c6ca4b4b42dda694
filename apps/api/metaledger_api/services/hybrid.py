"""Override and revert transitions for hybrid fields."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from metaledger_api.auth.capabilities import OVERRIDE, Actor
from metaledger_api.db.session import unit_of_work
from metaledger_api.ledger.resolver import CanonicalStateResolver
from metaledger_api.ledger.service import ValueLedger
from metaledger_api.metadata.enums import HistoryAction, Producer, ValueSource
from metaledger_api.metadata.errors import InvalidFieldOperation, NotFound
from metaledger_api.models import Asset, MetadataField, MetadataValue
from metaledger_api.services.activity import ActivityRecorder
from metaledger_api.services.base import BaseService
from metaledger_api.utils import metrics
from metaledger_api.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass
class OverrideResult:
    entry_id: int
    overridden_at: datetime
    overridden_by: Optional[str]
    already_overridden: bool


class HybridOverrideService(BaseService):
    """State machine for hybrid fields: Automatic <-> Overridden.

    A field is Overridden while its canonical row is a manual_override row.
    Edits made while overridden go through MetadataService.write_value with
    override intent.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        """Initialize hybrid override service."""
        super().__init__(db)
        self.ledger = ValueLedger(db, clock)
        self.resolver = CanonicalStateResolver(db)
        self.activity = ActivityRecorder(db)

    def _load_hybrid(self, asset_id: int, field_id: int, actor: Actor) -> tuple[Asset, MetadataField]:
        asset = self._load_asset(asset_id, actor)
        field = self._load_field(field_id, asset)
        if not field.is_hybrid:
            raise InvalidFieldOperation(
                f"Field '{field.key}' is not a hybrid field",
                field_id=field.id,
                population_mode=field.population_mode.value,
            )
        actor.require(OVERRIDE, asset.brand_id, action=f"override field '{field.key}'")
        return asset, field

    def latest_automatic(self, asset: Asset, field: MetadataField) -> Optional[MetadataValue]:
        """Most recently approved automatic or ai row for the field."""
        return (
            self.db.query(MetadataValue)
            .filter(
                MetadataValue.asset_id == asset.id,
                MetadataValue.field_id == field.id,
                MetadataValue.source.in_([ValueSource.AUTOMATIC, ValueSource.AI]),
                MetadataValue.approved_at.isnot(None),
            )
            .order_by(MetadataValue.approved_at.desc(), MetadataValue.id.desc())
            .first()
        )

    def override(self, asset_id: int, field_id: int, actor: Actor) -> OverrideResult:
        """Freeze the current automatic value under a manual_override row."""
        asset, field = self._load_hybrid(asset_id, field_id, actor)
        current = self.resolver.resolve_field(asset, field, suppress=False)
        if current.is_overridden:
            existing = current.approved
            return OverrideResult(
                entry_id=existing.id,
                overridden_at=existing.overridden_at or existing.approved_at,
                overridden_by=existing.overridden_by or existing.approved_by,
                already_overridden=True,
            )

        automatic = self.latest_automatic(asset, field)
        if automatic is None:
            raise NotFound(f"No automatic value to override for field '{field.key}'", field_id=field.id)

        with unit_of_work(self.db):
            entry = self.ledger.append(
                asset.id,
                field.id,
                automatic.value_json,
                ValueSource.MANUAL_OVERRIDE,
                Producer.USER,
                confidence=1.0,
                approved_immediately=True,
                actor_id=actor.actor_id,
                old_value=current.value,
                action=HistoryAction.OVERRIDE,
                overridden=True,
                context={"automatic_entry_id": automatic.id},
            )

        metrics.hybrid_transitions.labels(transition="override").inc()
        logger.info(
            f"Overrode hybrid field '{field.key}'",
            extra={"asset_id": asset.id, "field_id": field.id, "entry_id": entry.id, "actor_id": actor.actor_id},
        )
        self.activity.record(
            actor,
            "metadata.override.enabled",
            "metadata_value",
            entry.id,
            asset_id=asset.id,
            brand_id=asset.brand_id,
            payload={"field_key": field.key},
        )
        return OverrideResult(
            entry_id=entry.id,
            overridden_at=entry.overridden_at,
            overridden_by=entry.overridden_by,
            already_overridden=False,
        )

    def revert(self, asset_id: int, field_id: int, actor: Actor) -> MetadataValue:
        """Restore the automatic value; the override rows stay in the ledger."""
        asset, field = self._load_hybrid(asset_id, field_id, actor)
        current = self.resolver.resolve_field(asset, field, suppress=False)
        if not current.is_overridden:
            raise NotFound(f"Field '{field.key}' has no manual override to revert", field_id=field.id)

        automatic = self.latest_automatic(asset, field)
        if automatic is None:
            raise NotFound(f"No automatic value to restore for field '{field.key}'", field_id=field.id)

        with unit_of_work(self.db):
            entry = self.ledger.append(
                asset.id,
                field.id,
                automatic.value_json,
                ValueSource.AUTOMATIC,
                automatic.producer,
                confidence=automatic.confidence,
                approved_immediately=True,
                actor_id=actor.actor_id,
                old_value=current.value,
                action=HistoryAction.REVERT,
                context={"restored_entry_id": automatic.id, "override_entry_id": current.approved.id},
            )

        metrics.hybrid_transitions.labels(transition="revert").inc()
        logger.info(
            f"Reverted hybrid field '{field.key}' to automatic",
            extra={"asset_id": asset.id, "field_id": field.id, "entry_id": entry.id, "actor_id": actor.actor_id},
        )
        self.activity.record(
            actor,
            "metadata.override.reverted",
            "metadata_value",
            entry.id,
            asset_id=asset.id,
            brand_id=asset.brand_id,
            payload={"field_key": field.key, "restored_entry_id": automatic.id},
        )
        return entry
