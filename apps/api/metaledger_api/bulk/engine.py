"""Two-phase (preview/execute) bulk metadata operations."""

import logging
import secrets
from dataclasses import dataclass, field as dataclass_field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from metaledger_api.auth.capabilities import BULK_EDIT, EDIT, Actor
from metaledger_api.bulk.tokens import PreviewGrant, get_preview_token_store
from metaledger_api.db.session import unit_of_work
from metaledger_api.ledger.resolver import CanonicalStateResolver
from metaledger_api.ledger.service import ValueLedger
from metaledger_api.metadata.enums import BulkOperation, HistoryAction, Producer, ValueSource
from metaledger_api.metadata.errors import (
    InvalidValue,
    MetadataError,
    NotFound,
    ReadOnlyField,
    RequiresOverrideIntent,
    TokenExpired,
    TokenNotFound,
)
from metaledger_api.metadata.values import validate_value, values_equal
from metaledger_api.models import Asset, MetadataField
from metaledger_api.policy.approval import ApprovalGate
from metaledger_api.services.activity import ActivityRecorder
from metaledger_api.services.base import BaseService
from metaledger_api.settings import Settings, get_settings
from metaledger_api.utils import metrics
from metaledger_api.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass
class BulkPreview:
    diff: dict
    token: Optional[str]
    expires_at: Optional[datetime]


@dataclass
class BulkResult:
    total: int
    successes: list = dataclass_field(default_factory=list)
    failures: list = dataclass_field(default_factory=list)


def _chunks(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class BulkOperationEngine(BaseService):
    """Preview validates and issues a token; execute re-validates and writes per asset.

    Execute is not atomic across assets: each asset commits on its own and
    a failure is reported for that asset only.
    """

    def __init__(
        self,
        db: Session,
        token_store=None,
        gate: Optional[ApprovalGate] = None,
        clock: Callable[[], datetime] = utcnow,
        settings: Optional[Settings] = None,
    ):
        """Initialize bulk operation engine."""
        super().__init__(db)
        self.settings = settings or get_settings()
        self.token_store = token_store or get_preview_token_store(db, self.settings)
        self.gate = gate or ApprovalGate(self.settings)
        self.clock = clock
        self.ledger = ValueLedger(db, clock)
        self.resolver = CanonicalStateResolver(db)
        self.activity = ActivityRecorder(db)

    # Request handling

    @staticmethod
    def normalize_request(asset_ids: list, operation: str, payload: dict) -> dict:
        """Canonical parameter set a preview token is bound to."""
        try:
            operation = BulkOperation(operation)
        except ValueError:
            raise InvalidValue(
                f"Unknown bulk operation '{operation}'",
                allowed=[op.value for op in BulkOperation],
            ) from None

        unique_ids = []
        for asset_id in asset_ids or []:
            if isinstance(asset_id, bool) or not isinstance(asset_id, int):
                raise InvalidValue(f"Asset ids must be integers, got {asset_id!r}")
            if asset_id not in unique_ids:
                unique_ids.append(asset_id)
        if not unique_ids:
            raise InvalidValue("At least one asset id is required")

        if not isinstance(payload, dict) or not payload:
            raise InvalidValue("Payload must map at least one field key to a value")
        if operation == BulkOperation.CLEAR:
            payload = {key: None for key in payload}

        return {"asset_ids": unique_ids, "operation": operation.value, "payload": dict(payload)}

    def _fields_by_key(self, tenant_id: int, keys) -> dict[str, MetadataField]:
        fields = (
            self.db.query(MetadataField)
            .filter(
                MetadataField.key.in_(list(keys)),
                MetadataField.is_active == True,  # noqa: E712
                or_(MetadataField.tenant_id.is_(None), MetadataField.tenant_id == tenant_id),
            )
            .all()
        )
        by_key = {}
        # Tenant fields shadow system fields with the same key
        for field in sorted(fields, key=lambda f: f.tenant_id is not None):
            by_key[field.key] = field
        return by_key

    def _check_field(self, field: Optional[MetadataField], key: str, operation: BulkOperation, raw: Any):
        """Validate one payload entry; returns the normalized value."""
        if field is None:
            raise NotFound(f"Metadata field '{key}' not found", field_key=key)
        if field.is_readonly or field.is_internal_only:
            raise ReadOnlyField(f"Field '{key}' is not editable", field_key=key)
        if field.is_hybrid:
            raise RequiresOverrideIntent(
                f"Field '{key}' is populated automatically; bulk edits cannot override it",
                field_key=key,
            )
        if operation == BulkOperation.CLEAR:
            return None
        return validate_value(field, raw)

    @staticmethod
    def _next_value(operation: BulkOperation, field: MetadataField, current: Any, value: Any) -> Any:
        if operation == BulkOperation.CLEAR:
            return [] if field.is_multiselect else None
        if field.is_multiselect and operation == BulkOperation.ADD:
            merged = list(current or [])
            return merged + [item for item in value if item not in merged]
        return value

    # Preview

    def preview(self, asset_ids: list, operation: str, payload: dict, actor: Actor) -> BulkPreview:
        """Validate without writing and return a diff plus a preview token."""
        tenant_id = self._enforce_tenant(actor)
        actor.require(BULK_EDIT, action="run bulk metadata operations")
        params = self.normalize_request(asset_ids, operation, payload)
        op = BulkOperation(params["operation"])

        assets = {
            asset.id: asset
            for asset in self.db.query(Asset)
            .filter(Asset.id.in_(params["asset_ids"]), Asset.tenant_id == tenant_id)
            .all()
        }
        missing = [asset_id for asset_id in params["asset_ids"] if asset_id not in assets]
        if missing:
            raise NotFound(f"Assets not found: {missing}", asset_ids=missing)

        errors = []
        warnings = []
        valid = []
        fields = self._fields_by_key(tenant_id, params["payload"].keys())
        for key, raw in params["payload"].items():
            field = fields.get(key)
            try:
                value = self._check_field(field, key, op, raw)
            except MetadataError as e:
                errors.append({"field_key": key, "error": e.code, "message": e.message})
                continue
            valid.append((field, value))

        affected = []
        for asset_id in params["asset_ids"]:
            asset = assets[asset_id]
            if not actor.can(EDIT, asset.brand_id):
                warnings.append(
                    {"asset_id": asset_id, "warning": "permission_denied", "message": "No edit permission for this asset"}
                )
                continue
            state = self.resolver.resolve(asset, fields=[f for f, _ in valid], suppress=False)
            changes = []
            for field, value in valid:
                old_value = state[field.id].value
                new_value = self._next_value(op, field, old_value, value)
                if values_equal(field, old_value, new_value) or (old_value is None and new_value == []):
                    warnings.append({"asset_id": asset_id, "field_key": field.key, "warning": "unchanged"})
                    continue
                changes.append(
                    {"field_id": field.id, "field_key": field.key, "old_value": old_value, "new_value": new_value}
                )
            if changes:
                affected.append({"asset_id": asset_id, "changes": changes})

        diff = {
            "operation": op.value,
            "total_assets": len(params["asset_ids"]),
            "affected_assets": affected,
            "warnings": warnings,
            "errors": errors,
        }
        metrics.bulk_previews.labels(operation=op.value).inc()

        if errors:
            logger.info("Bulk preview has errors, no token issued", extra={"tenant_id": tenant_id, "errors": len(errors)})
            return BulkPreview(diff=diff, token=None, expires_at=None)

        ttl = self.settings.bulk_preview_ttl_seconds
        token = secrets.token_urlsafe(32)
        expires_at = self.clock() + timedelta(seconds=ttl)
        self.token_store.save(
            token,
            PreviewGrant(
                tenant_id=tenant_id,
                actor_id=actor.actor_id,
                params=params,
                expires_at=expires_at,
            ),
            ttl,
        )
        logger.info(
            "Issued bulk preview token",
            extra={
                "tenant_id": tenant_id,
                "actor_id": actor.actor_id,
                "operation": op.value,
                "total_assets": len(params["asset_ids"]),
            },
        )
        return BulkPreview(diff=diff, token=token, expires_at=expires_at)

    # Execute

    def _redeem(self, token: str, actor: Actor) -> PreviewGrant:
        grant = self.token_store.consume(token) if token else None
        if grant is None:
            raise TokenNotFound("Preview token not found or already used")
        if grant.tenant_id != actor.tenant_id or grant.actor_id != actor.actor_id:
            raise TokenNotFound("Preview token was issued to a different actor")
        if grant.expires_at <= self.clock():
            raise TokenExpired("Preview token has expired; run preview again", expired_at=grant.expires_at.isoformat())
        return grant

    def execute(self, token: str, actor: Actor) -> BulkResult:
        """Apply a previewed operation asset by asset."""
        grant = self._redeem(token, actor)
        actor.require(BULK_EDIT, action="run bulk metadata operations")
        params = grant.params
        op = BulkOperation(params["operation"])
        asset_ids = params["asset_ids"]
        fields = self._fields_by_key(grant.tenant_id, params["payload"].keys())
        tenant = self._load_tenant(grant.tenant_id)

        result = BulkResult(total=len(asset_ids))
        with metrics.bulk_execute_duration.time():
            for chunk in _chunks(asset_ids, self.settings.bulk_chunk_size):
                assets = {
                    asset.id: asset
                    for asset in self.db.query(Asset)
                    .filter(Asset.id.in_(chunk), Asset.tenant_id == grant.tenant_id)
                    .all()
                }
                for asset_id in chunk:
                    try:
                        asset = assets.get(asset_id)
                        if asset is None:
                            raise NotFound(f"Asset {asset_id} not found", asset_id=asset_id)
                        entry_ids = self._apply_to_asset(asset, op, params["payload"], fields, tenant, actor)
                    except MetadataError as e:
                        self.db.rollback()
                        result.failures.append({"asset_id": asset_id, "error": e.code, "message": e.message})
                        metrics.bulk_asset_results.labels(outcome="failure").inc()
                        continue
                    except SQLAlchemyError as e:
                        self.db.rollback()
                        logger.error(f"Bulk write failed for asset {asset_id}: {e}", extra={"asset_id": asset_id}, exc_info=True)
                        result.failures.append({"asset_id": asset_id, "error": "storage_error", "message": str(e)})
                        metrics.bulk_asset_results.labels(outcome="failure").inc()
                        continue
                    result.successes.append({"asset_id": asset_id, "entry_ids": entry_ids})
                    metrics.bulk_asset_results.labels(outcome="success").inc()

        logger.info(
            "Bulk operation executed",
            extra={
                "tenant_id": grant.tenant_id,
                "actor_id": actor.actor_id,
                "operation": op.value,
                "total": result.total,
                "successes": len(result.successes),
                "failures": len(result.failures),
            },
        )
        self.activity.record(
            actor,
            "metadata.bulk.executed",
            "bulk",
            op.value,
            payload={
                "field_keys": sorted(params["payload"].keys()),
                "total": result.total,
                "successes": len(result.successes),
                "failures": len(result.failures),
            },
        )
        return result

    def _apply_to_asset(self, asset: Asset, op: BulkOperation, payload: dict, fields: dict, tenant, actor: Actor) -> list[int]:
        """Re-validate and write one asset in its own transaction."""
        actor.require(EDIT, asset.brand_id, action=f"edit asset {asset.id}")
        writes = [(fields.get(key), self._check_field(fields.get(key), key, op, raw)) for key, raw in payload.items()]
        state = self.resolver.resolve(asset, fields=[f for f, _ in writes], suppress=False)

        entry_ids = []
        with unit_of_work(self.db):
            for field, value in writes:
                current = state[field.id].value
                new_value = self._next_value(op, field, current, value)
                if values_equal(field, current, new_value) or (current is None and new_value == []):
                    continue

                replaces = field.is_multiselect and op == BulkOperation.REPLACE
                if not field.is_multiselect or replaces:
                    row_value = new_value
                elif op == BulkOperation.CLEAR:
                    row_value = None
                else:
                    row_value = [item for item in value if item not in (current or [])]

                # One entry per field; approving it applies the whole change
                pending = self.gate.requires_approval(ValueSource.USER, field, tenant, actor, asset.brand_id)
                entry = self.ledger.append(
                    asset.id,
                    field.id,
                    row_value,
                    ValueSource.USER,
                    Producer.USER,
                    confidence=1.0,
                    approved_immediately=not pending,
                    actor_id=actor.actor_id,
                    old_value=current,
                    action=HistoryAction.WRITE,
                    replaces=replaces,
                    context={"bulk_operation": op.value},
                )
                entry_ids.append(entry.id)
        return entry_ids
