"""Canonical state resolution over the value ledger."""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from metaledger_api.metadata.enums import PopulationMode, ValueSource, precedence_rank
from metaledger_api.metadata.values import is_clear_marker
from metaledger_api.models import Asset, MetadataField, MetadataValue
from metaledger_api.policy.confidence import ConfidenceSuppressor
from metaledger_api.utils import metrics

logger = logging.getLogger(__name__)


def _approval_order(row: MetadataValue):
    return (row.approved_at, row.id)


def _winner_key(row: MetadataValue):
    # Latest approval wins; equal timestamps fall back to precedence, then entry id.
    return (row.approved_at, -precedence_rank(row.source), row.id)


@dataclass
class ResolvedField:
    """Resolved view of one field on one asset. Never persisted."""

    field: MetadataField
    approved: Optional[MetadataValue] = None
    pending: Optional[MetadataValue] = None
    has_pending: bool = False
    value: Any = None
    suppressed: bool = False

    @property
    def is_overridden(self) -> bool:
        return self.approved is not None and self.approved.source == ValueSource.MANUAL_OVERRIDE

    def current_value(self, can_approve: bool = False) -> Any:
        """Value a consumer sees: approved, else pending for approvers and automatic fields."""
        if self.approved is not None:
            return self.value
        if self.pending is not None and (
            can_approve or self.field.population_mode == PopulationMode.AUTOMATIC
        ):
            return self.pending.value_json
        return None


class CanonicalStateResolver:
    """Computes the authoritative row per field from the full ledger row set."""

    def __init__(self, db: Session, suppressor: Optional[ConfidenceSuppressor] = None):
        """Initialize resolver."""
        self.db = db
        self.suppressor = suppressor or ConfidenceSuppressor()

    def applicable_fields(self, asset: Asset) -> list[MetadataField]:
        """Active system fields plus the asset tenant's own fields."""
        return (
            self.db.query(MetadataField)
            .filter(
                MetadataField.is_active == True,  # noqa: E712
                or_(MetadataField.tenant_id.is_(None), MetadataField.tenant_id == asset.tenant_id),
            )
            .order_by(MetadataField.id.asc())
            .all()
        )

    def resolve(
        self,
        asset: Asset,
        fields: Optional[Iterable[MetadataField]] = None,
        suppress: bool = True,
    ) -> dict[int, ResolvedField]:
        """Resolve every applicable field of an asset, keyed by field id."""
        with metrics.resolve_duration.time():
            fields = list(fields) if fields is not None else self.applicable_fields(asset)
            field_ids = [field.id for field in fields]
            rows_by_field = defaultdict(list)
            if field_ids:
                rows = (
                    self.db.query(MetadataValue)
                    .filter(
                        MetadataValue.asset_id == asset.id,
                        MetadataValue.field_id.in_(field_ids),
                    )
                    .order_by(MetadataValue.id.asc())
                    .all()
                )
                for row in rows:
                    rows_by_field[row.field_id].append(row)

            return {
                field.id: self.resolve_rows(field, rows_by_field[field.id], suppress=suppress)
                for field in fields
            }

    def resolve_field(self, asset: Asset, field: MetadataField, suppress: bool = True) -> ResolvedField:
        return self.resolve(asset, [field], suppress=suppress)[field.id]

    def resolve_rows(
        self,
        field: MetadataField,
        rows: Iterable[MetadataValue],
        suppress: bool = True,
    ) -> ResolvedField:
        """Resolve one field from its ledger rows."""
        live = [row for row in rows if not row.source.is_rejected]
        approved_rows = [row for row in live if row.approved_at is not None]
        pending_rows = [row for row in live if row.approved_at is None]

        pending = max(pending_rows, key=lambda row: row.id, default=None)
        resolved = ResolvedField(
            field=field,
            pending=pending,
            has_pending=pending is not None and pending.source.is_reviewable,
        )

        if field.is_multiselect:
            self._accumulate(resolved, approved_rows, suppress)
            return resolved

        winner = max(approved_rows, key=_winner_key, default=None)
        if winner is not None and suppress and self.suppressor.suppresses_row(field, winner):
            resolved.suppressed = True
            return resolved
        resolved.approved = winner
        resolved.value = winner.value_json if winner is not None else None
        return resolved

    def _accumulate(self, resolved: ResolvedField, approved_rows: list, suppress: bool):
        """Union the values of rows approved since the last clear marker or replacement."""
        ordered = sorted(approved_rows, key=_approval_order)
        clear_row = None
        for index in range(len(ordered) - 1, -1, -1):
            if is_clear_marker(ordered[index].value_json):
                clear_row = ordered[index]
                ordered = ordered[index + 1:]
                break
            if ordered[index].is_replacement:
                ordered = ordered[index:]
                break

        contributing = []
        for row in ordered:
            if suppress and self.suppressor.suppresses_row(resolved.field, row):
                resolved.suppressed = True
                continue
            contributing.append(row)

        if not contributing:
            resolved.approved = clear_row
            resolved.value = [] if clear_row is not None else None
            return

        resolved.approved = max(contributing, key=_winner_key)
        # Strongest source first, most recent first within a source.
        by_precedence = sorted(contributing, key=_approval_order, reverse=True)
        by_precedence.sort(key=lambda row: precedence_rank(row.source))

        values = []
        for row in by_precedence:
            items = row.value_json if isinstance(row.value_json, list) else [row.value_json]
            for item in items:
                if item not in values:
                    values.append(item)
        resolved.value = values
