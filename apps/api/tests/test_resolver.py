"""Tests for canonical state resolution."""

from datetime import datetime

from metaledger_api.ledger.resolver import CanonicalStateResolver
from metaledger_api.ledger.service import ValueLedger
from metaledger_api.metadata.enums import FieldType, PopulationMode, Producer, ValueSource
from metaledger_api.models import MetadataValue
from metaledger_api.policy.confidence import ConfidenceSuppressor


class TestSingleValued:
    """Winner selection for single-valued fields."""

    def test_pending_only(self, db, asset, quality_rating, seed_value, suppressor):
        entry = seed_value(asset, quality_rating, 4, approved=False)
        resolved = CanonicalStateResolver(db, suppressor).resolve_field(asset, quality_rating)

        assert resolved.approved is None
        assert resolved.pending.id == entry.id
        assert resolved.has_pending is True
        assert resolved.value is None

    def test_latest_approval_wins(self, db, asset, quality_rating, seed_value, suppressor):
        seed_value(asset, quality_rating, 3)
        latest = seed_value(asset, quality_rating, 5, source=ValueSource.AUTOMATIC)
        resolved = CanonicalStateResolver(db, suppressor).resolve_field(asset, quality_rating)

        assert resolved.approved.id == latest.id
        assert resolved.value == 5
        assert resolved.has_pending is False

    def test_tie_on_timestamp_falls_back_to_precedence_then_id(self, db, asset, quality_rating, suppressor):
        stamp = datetime(2026, 1, 1, 12, 0, 0)
        ledger = ValueLedger(db, clock=lambda: stamp)
        ai_row = ledger.append(
            asset.id, quality_rating.id, 1, ValueSource.AI, Producer.AI, approved_immediately=True
        )
        user_row = ledger.append(
            asset.id, quality_rating.id, 2, ValueSource.USER, Producer.USER, approved_immediately=True
        )
        ledger.append(asset.id, quality_rating.id, 3, ValueSource.AI, Producer.AI, approved_immediately=True)
        db.commit()

        resolved = CanonicalStateResolver(db, suppressor).resolve_field(asset, quality_rating)
        assert resolved.approved.id == user_row.id
        assert ai_row.id < user_row.id

        second_user = ledger.append(
            asset.id, quality_rating.id, 4, ValueSource.USER, Producer.USER, approved_immediately=True
        )
        db.commit()
        resolved = CanonicalStateResolver(db, suppressor).resolve_field(asset, quality_rating)
        assert resolved.approved.id == second_user.id

    def test_rejected_rows_are_never_surfaced(self, db, clock, asset, photo_type, seed_value, suppressor):
        entry = seed_value(asset, photo_type, "product", source=ValueSource.AI, confidence=0.9, approved=False)
        ValueLedger(db, clock).reject(entry, "approver")
        db.commit()

        resolved = CanonicalStateResolver(db, suppressor).resolve_field(asset, photo_type)
        assert resolved.approved is None
        assert resolved.pending is None
        assert resolved.has_pending is False

    def test_at_most_one_approved_and_one_pending(self, db, asset, quality_rating, seed_value, suppressor):
        seed_value(asset, quality_rating, 1)
        seed_value(asset, quality_rating, 2)
        seed_value(asset, quality_rating, 3, approved=False)
        newest_pending = seed_value(asset, quality_rating, 4, approved=False)

        resolved = CanonicalStateResolver(db, suppressor).resolve_field(asset, quality_rating)
        assert resolved.value == 2
        assert resolved.pending.id == newest_pending.id

    def test_resolve_covers_system_and_tenant_fields_only(
        self, db, asset, other_tenant, make_field, quality_rating, suppressor
    ):
        own = make_field("brand_code", tenant_id=asset.tenant_id)
        foreign = make_field("foreign_code", tenant_id=other_tenant.id)
        state = CanonicalStateResolver(db, suppressor).resolve(asset)

        assert quality_rating.id in state
        assert own.id in state
        assert foreign.id not in state


class TestSuppression:
    """Read-time confidence suppression."""

    def test_low_confidence_ai_value_is_hidden_but_kept(self, db, asset, photo_type, seed_value):
        entry = seed_value(asset, photo_type, "product", source=ValueSource.AI, confidence=0.4)
        resolver = CanonicalStateResolver(db, ConfidenceSuppressor(default_threshold=0.6, thresholds={}))

        hidden = resolver.resolve_field(asset, photo_type)
        assert hidden.suppressed is True
        assert hidden.value is None

        visible = resolver.resolve_field(asset, photo_type, suppress=False)
        assert visible.approved.id == entry.id
        assert db.query(MetadataValue).filter(MetadataValue.id == entry.id).count() == 1

    def test_user_rows_in_ai_fields_are_not_suppressed(self, db, asset, photo_type, seed_value):
        seed_value(asset, photo_type, "portrait", source=ValueSource.USER, confidence=0.1)
        resolver = CanonicalStateResolver(db, ConfidenceSuppressor(default_threshold=0.6, thresholds={}))
        assert resolver.resolve_field(asset, photo_type).value == "portrait"

    def test_manual_fields_ignore_confidence(self, db, asset, quality_rating, seed_value):
        seed_value(asset, quality_rating, 2, source=ValueSource.AI, confidence=0.1)
        resolver = CanonicalStateResolver(db, ConfidenceSuppressor(default_threshold=0.6, thresholds={}))
        assert resolver.resolve_field(asset, quality_rating).value == 2


class TestMultiselect:
    """Accumulation for multiselect fields."""

    def test_values_accumulate_across_approved_rows(self, db, asset, tags_field, seed_value, suppressor):
        seed_value(asset, tags_field, ["beach"], source=ValueSource.AI, confidence=0.9)
        seed_value(asset, tags_field, ["sunset", "beach"], source=ValueSource.USER)

        resolved = CanonicalStateResolver(db, suppressor).resolve_field(asset, tags_field)
        assert resolved.value == ["sunset", "beach"]

    def test_clear_marker_resets_accumulation(self, db, asset, tags_field, seed_value, suppressor):
        seed_value(asset, tags_field, ["beach"])
        seed_value(asset, tags_field, None)
        resolver = CanonicalStateResolver(db, suppressor)
        assert resolver.resolve_field(asset, tags_field).value == []

        seed_value(asset, tags_field, ["forest"])
        assert resolver.resolve_field(asset, tags_field).value == ["forest"]

    def test_suppressed_rows_do_not_contribute(self, db, asset, tags_field, seed_value, suppressor):
        seed_value(asset, tags_field, ["beach"], source=ValueSource.AI, confidence=0.95)
        seed_value(asset, tags_field, ["blurry"], source=ValueSource.AI, confidence=0.2)

        resolver = CanonicalStateResolver(db, suppressor)
        resolved = resolver.resolve_field(asset, tags_field)
        assert resolved.value == ["beach"]
        assert resolved.suppressed is True
        assert set(resolver.resolve_field(asset, tags_field, suppress=False).value) == {"beach", "blurry"}

    def test_empty_field_resolves_to_none(self, db, asset, make_field, suppressor):
        field = make_field("keywords", FieldType.MULTISELECT, PopulationMode.MANUAL)
        assert CanonicalStateResolver(db, suppressor).resolve_field(asset, field).value is None
