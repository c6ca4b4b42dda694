"""Candidate intake and review workflow."""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from metaledger_api.auth.capabilities import (
    EDIT,
    PRODUCER_WRITE,
    SUGGESTIONS_APPLY,
    SUGGESTIONS_DISMISS,
    SUGGESTIONS_VIEW,
    Actor,
)
from metaledger_api.db.session import unit_of_work
from metaledger_api.events.dispatcher import MetadataStateComplete, get_event_dispatcher
from metaledger_api.ledger.resolver import CanonicalStateResolver
from metaledger_api.ledger.service import ValueLedger
from metaledger_api.metadata.enums import HistoryAction, Producer, ValueSource, producer_for
from metaledger_api.metadata.errors import AlreadyResolved, InvalidValue, NotFound, RequiresOverrideIntent
from metaledger_api.metadata.tags import TagNormalizer
from metaledger_api.metadata.values import canonical_key, validate_value
from metaledger_api.models import Asset, MetadataCandidate, MetadataField, MetadataValue
from metaledger_api.services.activity import ActivityRecorder
from metaledger_api.services.base import BaseService
from metaledger_api.services.metadata import require_override_intent
from metaledger_api.utils import metrics
from metaledger_api.utils.time import utcnow

logger = logging.getLogger(__name__)


class CandidateReviewService(BaseService):
    """Open -> Approved | Dismissed lifecycle for producer proposals.

    Candidates never count as pending ledger entries. Free-tagging fields
    store one normalized tag per candidate; dismissal applies to every open
    candidate on the asset that normalizes to the same tag.
    """

    def __init__(self, db: Session, dispatcher=None, clock: Callable[[], datetime] = utcnow):
        """Initialize candidate review service."""
        super().__init__(db)
        self.clock = clock
        self.ledger = ValueLedger(db, clock)
        self.resolver = CanonicalStateResolver(db)
        self.dispatcher = dispatcher or get_event_dispatcher()
        self.activity = ActivityRecorder(db)

    def _load_candidate(self, candidate_id: int, actor: Actor) -> tuple[MetadataCandidate, Asset, MetadataField]:
        candidate = self.db.query(MetadataCandidate).filter(MetadataCandidate.id == candidate_id).first()
        if not candidate:
            raise NotFound(f"Candidate {candidate_id} not found", candidate_id=candidate_id)
        asset = self._load_asset(candidate.asset_id, actor)
        return candidate, asset, candidate.field

    def _ensure_open(self, candidate: MetadataCandidate):
        if not candidate.is_open:
            raise AlreadyResolved(f"Candidate {candidate.id} is already resolved", candidate_id=candidate.id)

    def _same_identity(self, candidate: MetadataCandidate):
        return self.db.query(MetadataCandidate).filter(
            MetadataCandidate.asset_id == candidate.asset_id,
            MetadataCandidate.field_id == candidate.field_id,
            MetadataCandidate.canonical_key == candidate.canonical_key,
        )

    def _normalize(self, field: MetadataField, asset: Asset, value: Any) -> Optional[Any]:
        """Canonical candidate value, or None for an invalid or blocked tag."""
        if field.is_free_tagging:
            if not isinstance(value, str):
                raise InvalidValue(f"Tag candidates for '{field.key}' must be strings", field_id=field.id)
            return TagNormalizer.for_tenant(self._load_tenant(asset.tenant_id)).normalize(value)
        return validate_value(field, value)

    @staticmethod
    def _ledger_value(field: MetadataField, value: Any) -> Any:
        if field.is_free_tagging:
            return [value]
        return value

    def list_candidates(self, asset_id: int, actor: Actor) -> list[MetadataCandidate]:
        """Open candidates for an asset, most confident first."""
        asset = self._load_asset(asset_id, actor)
        actor.require(SUGGESTIONS_VIEW, asset.brand_id, action="view suggestions")
        return (
            self.db.query(MetadataCandidate)
            .filter(
                MetadataCandidate.asset_id == asset.id,
                MetadataCandidate.resolved_at.is_(None),
                MetadataCandidate.dismissed_at.is_(None),
            )
            .order_by(MetadataCandidate.confidence.desc(), MetadataCandidate.id.asc())
            .all()
        )

    def record_candidate(
        self,
        asset_id: int,
        field_id: int,
        value: Any,
        actor: Actor,
        confidence: Optional[float] = None,
        source: ValueSource = ValueSource.AI,
        producer: Optional[Producer] = None,
    ) -> Optional[MetadataCandidate]:
        """Producer intake. Returns None when the proposal is not admitted."""
        asset = self._load_asset(asset_id, actor)
        field = self._load_field(field_id, asset)
        actor.require(PRODUCER_WRITE, asset.brand_id, action="submit candidates")
        if source not in (ValueSource.AI, ValueSource.AUTOMATIC, ValueSource.SYSTEM):
            raise InvalidValue("Candidates must come from a pipeline source")
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            raise InvalidValue(f"Confidence must be within [0, 1], got {confidence}")

        log_extra = {"asset_id": asset.id, "field_key": field.key}
        normalized = self._normalize(field, asset, value)
        if normalized is None:
            metrics.candidates_recorded.labels(outcome="invalid_or_blocked").inc()
            logger.info("Candidate tag invalid or blocked, skipping", extra={**log_extra, "raw_value": value})
            return None

        if field.is_hybrid and self.resolver.resolve_field(asset, field, suppress=False).is_overridden:
            metrics.candidates_recorded.labels(outcome="manual_override").inc()
            logger.info("Manual override exists, skipping candidate", extra=log_extra)
            return None

        key = canonical_key(normalized)
        existing = (
            self.db.query(MetadataCandidate)
            .filter(
                MetadataCandidate.asset_id == asset.id,
                MetadataCandidate.field_id == field.id,
                MetadataCandidate.canonical_key == key,
            )
            .order_by(MetadataCandidate.id.asc())
            .all()
        )
        if any(c.dismissed_at is not None for c in existing):
            metrics.candidates_recorded.labels(outcome="previously_dismissed").inc()
            logger.info("Candidate was dismissed before, skipping", extra={**log_extra, "canonical_key": key})
            return None
        open_duplicate = next((c for c in existing if c.is_open), None)
        if open_duplicate is not None:
            metrics.candidates_recorded.labels(outcome="duplicate").inc()
            return open_duplicate
        if existing:
            metrics.candidates_recorded.labels(outcome="already_applied").inc()
            return None

        with unit_of_work(self.db):
            candidate = MetadataCandidate(
                asset_id=asset.id,
                field_id=field.id,
                value_json=normalized,
                canonical_key=key,
                confidence=confidence,
                source=source,
                producer=producer or producer_for(source),
                created_at=self.clock(),
            )
            self.db.add(candidate)
            self.db.flush()

        metrics.candidates_recorded.labels(outcome="created").inc()
        logger.info(f"Recorded candidate {candidate.id}", extra={**log_extra, "candidate_id": candidate.id})
        return candidate

    def approve_candidate(self, candidate_id: int, actor: Actor) -> MetadataValue:
        """Materialize a candidate with its original source, producer and confidence."""
        candidate, asset, field = self._load_candidate(candidate_id, actor)
        actor.require(SUGGESTIONS_APPLY, asset.brand_id, action="apply suggestions")
        self._ensure_open(candidate)

        current = self.resolver.resolve_field(asset, field, suppress=False)
        if field.is_hybrid and current.is_overridden:
            raise RequiresOverrideIntent(
                f"Field '{field.key}' is manually overridden; revert before applying suggestions",
                field_id=field.id,
            )

        with unit_of_work(self.db):
            entry = self.ledger.append(
                asset.id,
                field.id,
                self._ledger_value(field, candidate.value_json),
                candidate.source,
                candidate.producer,
                confidence=candidate.confidence,
                approved_immediately=True,
                actor_id=actor.actor_id,
                old_value=current.value,
                action=HistoryAction.APPROVE,
                context={"candidate_id": candidate.id},
            )
            now = self.clock()
            for resolved in self._same_identity(candidate).filter(
                MetadataCandidate.resolved_at.is_(None),
                MetadataCandidate.dismissed_at.is_(None),
            ):
                resolved.resolved_at = now
                resolved.resolved_by = actor.actor_id
                resolved.value_entry_id = entry.id
            self.db.flush()

        self._after_review(candidate, asset, actor, "approved", {"entry_id": entry.id})
        self._notify_if_complete(asset, actor)
        return entry

    def edit_and_approve_candidate(
        self,
        candidate_id: int,
        new_value: Any,
        actor: Actor,
        override_intent: bool = False,
    ) -> MetadataValue:
        """Materialize an edited value as a user row; the candidate keeps its own value."""
        candidate, asset, field = self._load_candidate(candidate_id, actor)
        actor.require(SUGGESTIONS_APPLY, asset.brand_id, action="apply suggestions")
        actor.require(EDIT, asset.brand_id, action=f"edit field '{field.key}'")
        self._ensure_open(candidate)
        source = require_override_intent(field, asset, actor, override_intent)

        value = self._normalize(field, asset, new_value)
        if value is None:
            raise InvalidValue(f"'{new_value}' is not a valid tag for '{field.key}'", field_id=field.id)
        current = self.resolver.resolve_field(asset, field, suppress=False)

        with unit_of_work(self.db):
            entry = self.ledger.append(
                asset.id,
                field.id,
                self._ledger_value(field, value),
                source,
                Producer.USER,
                confidence=1.0,
                approved_immediately=True,
                actor_id=actor.actor_id,
                old_value=current.value,
                action=HistoryAction.EDIT_APPROVE,
                overridden=field.is_hybrid,
                context={"candidate_id": candidate.id},
            )
            candidate.resolved_at = self.clock()
            candidate.resolved_by = actor.actor_id
            candidate.value_entry_id = entry.id
            self.db.flush()

        self._after_review(candidate, asset, actor, "edited_approved", {"entry_id": entry.id})
        self._notify_if_complete(asset, actor)
        return entry

    def reject_candidate(self, candidate_id: int, actor: Actor) -> list[int]:
        """Dismiss a candidate and every open candidate with the same canonical form."""
        candidate, asset, field = self._load_candidate(candidate_id, actor)
        actor.require(SUGGESTIONS_DISMISS, asset.brand_id, action="dismiss suggestions")
        self._ensure_open(candidate)

        with unit_of_work(self.db):
            now = self.clock()
            dismissed = []
            for duplicate in self._same_identity(candidate).filter(
                MetadataCandidate.resolved_at.is_(None),
                MetadataCandidate.dismissed_at.is_(None),
            ):
                duplicate.dismissed_at = now
                duplicate.dismissed_by = actor.actor_id
                dismissed.append(duplicate.id)
            self.db.flush()

        self._after_review(candidate, asset, actor, "rejected", {"dismissed_ids": dismissed})
        return dismissed

    def defer_candidate(self, candidate_id: int, actor: Actor) -> MetadataCandidate:
        """No state change; recorded for review telemetry only."""
        candidate, asset, field = self._load_candidate(candidate_id, actor)
        actor.require(SUGGESTIONS_VIEW, asset.brand_id, action="view suggestions")
        self._ensure_open(candidate)
        self._after_review(candidate, asset, actor, "deferred")
        return candidate

    def _after_review(self, candidate: MetadataCandidate, asset: Asset, actor: Actor, action: str, payload=None):
        metrics.candidate_reviews.labels(action=action).inc()
        logger.info(
            f"Candidate {candidate.id} {action}",
            extra={"candidate_id": candidate.id, "asset_id": asset.id, "actor_id": actor.actor_id},
        )
        self.activity.record(
            actor,
            f"metadata.candidate.{action}",
            "candidate",
            candidate.id,
            asset_id=asset.id,
            brand_id=asset.brand_id,
            payload={"canonical_key": candidate.canonical_key, "confidence": candidate.confidence, **(payload or {})},
        )

    def _notify_if_complete(self, asset: Asset, actor: Actor) -> None:
        try:
            if not self.ledger.has_pending(asset.id):
                self.dispatcher.emit(
                    MetadataStateComplete(tenant_id=asset.tenant_id, asset_id=asset.id, actor_id=actor.actor_id)
                )
        except Exception as e:
            logger.error(f"State-complete notification failed: {e}", extra={"asset_id": asset.id}, exc_info=True)
