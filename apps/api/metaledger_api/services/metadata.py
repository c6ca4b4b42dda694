"""Single-asset metadata write, review and read paths."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from metaledger_api.auth.capabilities import APPROVE, EDIT, OVERRIDE, PRODUCER_WRITE, Actor
from metaledger_api.db.session import unit_of_work
from metaledger_api.events.dispatcher import MetadataStateComplete, get_event_dispatcher
from metaledger_api.ledger.resolver import CanonicalStateResolver, ResolvedField
from metaledger_api.ledger.service import ValueLedger
from metaledger_api.metadata.enums import HistoryAction, Producer, ValueSource, producer_for
from metaledger_api.metadata.errors import (
    AlreadyResolved,
    InvalidValue,
    NotFound,
    ReadOnlyField,
    RequiresOverrideIntent,
)
from metaledger_api.metadata.values import validate_value, values_equal
from metaledger_api.models import Asset, MetadataField, MetadataHistory, MetadataValue
from metaledger_api.policy.approval import ApprovalGate
from metaledger_api.policy.confidence import ConfidenceSuppressor
from metaledger_api.services.activity import ActivityRecorder
from metaledger_api.services.base import BaseService
from metaledger_api.utils import metrics
from metaledger_api.utils.time import utcnow

logger = logging.getLogger(__name__)

MACHINE_SOURCES = (ValueSource.AUTOMATIC, ValueSource.SYSTEM, ValueSource.AI)


def require_override_intent(field: MetadataField, asset: Asset, actor: Actor, override_intent: bool) -> ValueSource:
    """Source for a user-authored value; hybrid fields only accept it as an override."""
    if not field.is_hybrid:
        return ValueSource.USER
    if not override_intent:
        raise RequiresOverrideIntent(
            f"Field '{field.key}' is populated automatically; editing requires override intent",
            field_id=field.id,
        )
    actor.require(OVERRIDE, asset.brand_id, action=f"override field '{field.key}'")
    return ValueSource.MANUAL_OVERRIDE


@dataclass
class WriteResult:
    entry_id: int
    pending: bool


@dataclass
class EditableField:
    """One row of the edit form for an asset."""

    field_id: int
    key: str
    label: Optional[str]
    field_type: str
    population_mode: str
    current_value: Any
    can_edit: bool
    is_pending: bool
    readonly: bool
    is_overridden: bool
    suppressed: bool
    options: list


class MetadataService(BaseService):
    """Write, approval and read paths for one asset at a time.

    Each mutating method commits its own transaction so that activity
    recording and event dispatch only ever follow a committed ledger write.
    """

    def __init__(
        self,
        db: Session,
        gate: Optional[ApprovalGate] = None,
        suppressor: Optional[ConfidenceSuppressor] = None,
        dispatcher=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize metadata service."""
        super().__init__(db)
        self.ledger = ValueLedger(db, clock)
        self.resolver = CanonicalStateResolver(db, suppressor)
        self.gate = gate or ApprovalGate()
        self.dispatcher = dispatcher or get_event_dispatcher()
        self.activity = ActivityRecorder(db)

    # Read path

    def resolve_state(self, asset_id: int, actor: Actor, suppress: bool = True) -> dict[int, ResolvedField]:
        asset = self._load_asset(asset_id, actor)
        return self.resolver.resolve(asset, suppress=suppress)

    def get_editable_fields(self, asset_id: int, actor: Actor) -> list[EditableField]:
        """Fields of an asset with the value this actor should see and edit."""
        asset = self._load_asset(asset_id, actor)
        can_approve = actor.can(APPROVE, asset.brand_id)
        can_edit = actor.can(EDIT, asset.brand_id)
        can_override = actor.can(OVERRIDE, asset.brand_id)

        fields = [field for field in self.resolver.applicable_fields(asset) if not field.is_internal_only]
        state = self.resolver.resolve(asset, fields=fields)

        editable = []
        for field in fields:
            resolved = state[field.id]
            editable.append(
                EditableField(
                    field_id=field.id,
                    key=field.key,
                    label=field.label,
                    field_type=field.field_type.value,
                    population_mode=field.population_mode.value,
                    current_value=resolved.current_value(can_approve),
                    can_edit=can_edit and not field.is_readonly and (not field.is_hybrid or can_override),
                    is_pending=resolved.has_pending,
                    readonly=field.is_readonly,
                    is_overridden=resolved.is_overridden,
                    suppressed=resolved.suppressed,
                    options=field.allowed_options,
                )
            )
        return editable

    def list_pending(self, asset_id: int, actor: Actor) -> list[MetadataValue]:
        """Approval surface: every pending entry, including low-confidence ones."""
        asset = self._load_asset(asset_id, actor)
        actor.require(APPROVE, asset.brand_id, action="review pending metadata")
        return self.ledger.pending_entries(asset.id)

    def history(self, asset_id: int, actor: Actor, field_id: Optional[int] = None) -> list[MetadataHistory]:
        asset = self._load_asset(asset_id, actor)
        return self.ledger.history_for(asset.id, field_id)

    # Write path

    def write_value(
        self,
        asset_id: int,
        field_id: int,
        value: Any,
        actor: Actor,
        override_intent: bool = False,
    ) -> WriteResult:
        """User edit of one field; pending or canonical depending on the approval gate."""
        asset = self._load_asset(asset_id, actor)
        field = self._load_field(field_id, asset)
        actor.require(EDIT, asset.brand_id, action=f"edit field '{field.key}'")

        if field.is_readonly:
            raise ReadOnlyField(f"Field '{field.key}' is not editable", field_id=field.id)
        source = require_override_intent(field, asset, actor, override_intent)

        value = validate_value(field, value)
        current = self.resolver.resolve_field(asset, field, suppress=False)
        tenant = self._load_tenant(asset.tenant_id)
        pending = self.gate.requires_approval(source, field, tenant, actor, asset.brand_id)

        with unit_of_work(self.db):
            entry = self.ledger.append(
                asset.id,
                field.id,
                value,
                source,
                Producer.USER,
                confidence=1.0 if field.is_hybrid else None,
                approved_immediately=not pending,
                actor_id=actor.actor_id,
                old_value=current.value,
                action=HistoryAction.OVERRIDE if field.is_hybrid else HistoryAction.WRITE,
                overridden=field.is_hybrid,
            )

        self.activity.record(
            actor,
            "metadata.value.written",
            "metadata_value",
            entry.id,
            asset_id=asset.id,
            brand_id=asset.brand_id,
            payload={"field_key": field.key, "source": source.value, "pending": pending},
        )
        return WriteResult(entry_id=entry.id, pending=pending)

    def write_machine_value(
        self,
        asset_id: int,
        field_id: int,
        value: Any,
        source: ValueSource,
        actor: Actor,
        confidence: Optional[float] = None,
    ) -> Optional[WriteResult]:
        """Producer write of automatic, system or ai output.

        Returns None when the write is skipped because a hybrid field is
        manually overridden.
        """
        if source not in MACHINE_SOURCES:
            raise InvalidValue(f"Machine writes must use one of {[s.value for s in MACHINE_SOURCES]}")

        asset = self._load_asset(asset_id, actor)
        field = self._load_field(field_id, asset)
        actor.require(PRODUCER_WRITE, asset.brand_id, action="write pipeline metadata")
        value = validate_value(field, value)

        current = self.resolver.resolve_field(asset, field, suppress=False)
        log_extra = {"asset_id": asset.id, "field_key": field.key, "source": source.value}
        if field.is_hybrid and current.is_overridden:
            metrics.skipped_pipeline_writes.labels(reason="manual_override").inc()
            logger.info("Manual override exists, skipping pipeline write", extra=log_extra)
            return None
        approved = current.approved
        if (
            approved is not None
            and approved.source == source
            and approved.confidence == confidence
            and values_equal(field, approved.value_json, value)
        ):
            metrics.skipped_pipeline_writes.labels(reason="unchanged").inc()
            logger.debug("Pipeline value unchanged, skipping write", extra=log_extra)
            return WriteResult(entry_id=approved.id, pending=False)

        tenant = self._load_tenant(asset.tenant_id)
        pending = self.gate.requires_approval(source, field, tenant, actor, asset.brand_id)
        with unit_of_work(self.db):
            entry = self.ledger.append(
                asset.id,
                field.id,
                value,
                source,
                producer_for(source),
                confidence=confidence,
                approved_immediately=not pending,
                actor_id=actor.actor_id,
                old_value=current.value,
            )
        return WriteResult(entry_id=entry.id, pending=pending)

    # Review path

    def _load_entry(self, entry_id: int, actor: Actor) -> tuple[MetadataValue, Asset, MetadataField]:
        entry = self.ledger.get_entry(entry_id)
        if not entry:
            raise NotFound(f"Metadata entry {entry_id} not found", entry_id=entry_id)
        asset = self._load_asset(entry.asset_id, actor)
        return entry, asset, entry.field

    def _ensure_reviewable(self, entry: MetadataValue):
        if entry.is_approved or entry.is_rejected:
            raise AlreadyResolved(f"Metadata entry {entry.id} is already resolved", entry_id=entry.id)

    def approve(self, entry_id: int, actor: Actor) -> MetadataValue:
        """Approve a pending entry, making it canonical."""
        entry, asset, field = self._load_entry(entry_id, actor)
        actor.require(APPROVE, asset.brand_id, action="approve metadata")
        self._ensure_reviewable(entry)

        current = self.resolver.resolve_field(asset, field, suppress=False)
        if field.is_hybrid and current.is_overridden:
            raise RequiresOverrideIntent(
                f"Field '{field.key}' is manually overridden; revert before approving pipeline values",
                field_id=field.id,
            )

        with unit_of_work(self.db):
            self.ledger.approve(entry, actor.actor_id, old_value=current.value)

        metrics.entry_reviews.labels(action="approve").inc()
        logger.info(
            f"Approved metadata entry {entry.id}",
            extra={"entry_id": entry.id, "asset_id": asset.id, "field_key": field.key, "actor_id": actor.actor_id},
        )
        self.activity.record(
            actor,
            "metadata.value.approved",
            "metadata_value",
            entry.id,
            asset_id=asset.id,
            brand_id=asset.brand_id,
            payload={"field_key": field.key, "source": entry.source.value},
        )
        self.notify_if_complete(asset, actor)
        return entry

    def reject_entry(self, entry_id: int, actor: Actor) -> MetadataValue:
        """Reject a pending entry; it stays in the ledger as *_rejected."""
        entry, asset, field = self._load_entry(entry_id, actor)
        actor.require(APPROVE, asset.brand_id, action="reject metadata")
        self._ensure_reviewable(entry)

        with unit_of_work(self.db):
            self.ledger.reject(entry, actor.actor_id)

        metrics.entry_reviews.labels(action="reject").inc()
        logger.info(
            f"Rejected metadata entry {entry.id}",
            extra={"entry_id": entry.id, "asset_id": asset.id, "field_key": field.key, "actor_id": actor.actor_id},
        )
        self.activity.record(
            actor,
            "metadata.value.rejected",
            "metadata_value",
            entry.id,
            asset_id=asset.id,
            brand_id=asset.brand_id,
            payload={"field_key": field.key, "source": entry.source.value},
        )
        self.notify_if_complete(asset, actor)
        return entry

    def edit_and_approve(
        self,
        entry_id: int,
        new_value: Any,
        actor: Actor,
        override_intent: bool = False,
    ) -> MetadataValue:
        """Replace a pending proposal with an approved user value.

        The proposal keeps its value and attribution and is marked rejected
        so it no longer counts as pending. On hybrid fields the edited value
        is a manual override and needs override intent.
        """
        entry, asset, field = self._load_entry(entry_id, actor)
        actor.require(APPROVE, asset.brand_id, action="approve metadata")
        actor.require(EDIT, asset.brand_id, action=f"edit field '{field.key}'")
        self._ensure_reviewable(entry)
        if field.is_readonly:
            raise ReadOnlyField(f"Field '{field.key}' is not editable", field_id=field.id)
        source = require_override_intent(field, asset, actor, override_intent)

        value = validate_value(field, new_value)
        with unit_of_work(self.db):
            edited = self.ledger.append(
                asset.id,
                field.id,
                value,
                source,
                Producer.USER,
                confidence=1.0,
                approved_immediately=True,
                actor_id=actor.actor_id,
                old_value=entry.value_json,
                action=HistoryAction.EDIT_APPROVE,
                overridden=field.is_hybrid,
                context={"edited_entry_id": entry.id},
            )
            self.ledger.reject(
                entry,
                actor.actor_id,
                action=HistoryAction.SUPERSEDE,
                context={"superseded_by": edited.id},
            )

        metrics.entry_reviews.labels(action="edit_approve").inc()
        self.activity.record(
            actor,
            "metadata.value.edited_approved",
            "metadata_value",
            edited.id,
            asset_id=asset.id,
            brand_id=asset.brand_id,
            payload={"field_key": field.key, "edited_entry_id": entry.id},
        )
        self.notify_if_complete(asset, actor)
        return edited

    def notify_if_complete(self, asset: Asset, actor: Actor) -> None:
        """Emit the state-complete event once no pending ai/user entries remain."""
        try:
            if self.ledger.has_pending(asset.id):
                return
            self.dispatcher.emit(
                MetadataStateComplete(tenant_id=asset.tenant_id, asset_id=asset.id, actor_id=actor.actor_id)
            )
        except Exception as e:
            logger.error(f"State-complete notification failed: {e}", extra={"asset_id": asset.id}, exc_info=True)
