"""Tests for the hybrid override state machine."""

import pytest

from metaledger_api.auth import capabilities as caps
from metaledger_api.metadata.enums import HistoryAction, Producer, ValueSource
from metaledger_api.metadata.errors import InvalidFieldOperation, NotFound, PermissionDenied, RequiresOverrideIntent
from metaledger_api.models import MetadataHistory, MetadataValue
from metaledger_api.services.hybrid import HybridOverrideService
from metaledger_api.services.metadata import MetadataService


@pytest.fixture
def hybrid(db, clock):
    return HybridOverrideService(db, clock=clock)


@pytest.fixture
def metadata_service(db, gate, suppressor, dispatcher, clock):
    return MetadataService(db, gate=gate, suppressor=suppressor, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def automatic_outdoor(asset, scene_classification, seed_value):
    return seed_value(asset, scene_classification, "outdoor", source=ValueSource.AUTOMATIC, confidence=0.83)


class TestOverride:
    """Automatic -> Overridden."""

    def test_override_freezes_automatic_value(self, db, hybrid, asset, scene_classification, automatic_outdoor, reviewer):
        result = hybrid.override(asset.id, scene_classification.id, reviewer)

        assert result.already_overridden is False
        entry = db.query(MetadataValue).filter(MetadataValue.id == result.entry_id).one()
        assert entry.source == ValueSource.MANUAL_OVERRIDE
        assert entry.value_json == "outdoor"
        assert entry.overridden_by == reviewer.actor_id
        assert hybrid.resolver.resolve_field(asset, scene_classification).is_overridden is True

    def test_override_is_idempotent(self, db, hybrid, asset, scene_classification, automatic_outdoor, reviewer):
        first = hybrid.override(asset.id, scene_classification.id, reviewer)
        second = hybrid.override(asset.id, scene_classification.id, reviewer)

        assert second.already_overridden is True
        assert second.entry_id == first.entry_id
        assert db.query(MetadataValue).filter(MetadataValue.source == ValueSource.MANUAL_OVERRIDE).count() == 1

    def test_override_needs_an_automatic_value(self, hybrid, asset, scene_classification, reviewer):
        with pytest.raises(NotFound):
            hybrid.override(asset.id, scene_classification.id, reviewer)

    def test_override_requires_capability(self, hybrid, asset, scene_classification, automatic_outdoor, editor):
        with pytest.raises(PermissionDenied):
            hybrid.override(asset.id, scene_classification.id, editor)

    def test_non_hybrid_field_is_invalid_operation(self, hybrid, asset, quality_rating, reviewer):
        with pytest.raises(InvalidFieldOperation):
            hybrid.override(asset.id, quality_rating.id, reviewer)
        with pytest.raises(InvalidFieldOperation):
            hybrid.revert(asset.id, quality_rating.id, reviewer)


class TestRevert:
    """Overridden -> Automatic."""

    def test_scene_classification_round_trip(
        self, db, hybrid, metadata_service, asset, scene_classification, automatic_outdoor, reviewer
    ):
        hybrid.override(asset.id, scene_classification.id, reviewer)
        edit = metadata_service.write_value(
            asset.id, scene_classification.id, "indoor", reviewer, override_intent=True
        )
        edited = db.query(MetadataValue).filter(MetadataValue.id == edit.entry_id).one()
        assert edited.source == ValueSource.MANUAL_OVERRIDE
        assert hybrid.resolver.resolve_field(asset, scene_classification).value == "indoor"

        restored = hybrid.revert(asset.id, scene_classification.id, reviewer)

        assert restored.source == ValueSource.AUTOMATIC
        assert restored.value_json == "outdoor"
        assert restored.confidence == 0.83
        assert restored.producer == Producer.SYSTEM
        resolved = hybrid.resolver.resolve_field(asset, scene_classification)
        assert resolved.value == "outdoor"
        assert resolved.is_overridden is False

        # Override rows stay in the ledger and history
        assert db.query(MetadataValue).filter(MetadataValue.source == ValueSource.MANUAL_OVERRIDE).count() == 2
        actions = [h.action for h in db.query(MetadataHistory).order_by(MetadataHistory.id)]
        assert actions[-1] == HistoryAction.REVERT
        assert HistoryAction.OVERRIDE in actions

    def test_revert_without_override_is_not_found(self, hybrid, asset, scene_classification, automatic_outdoor, reviewer):
        with pytest.raises(NotFound):
            hybrid.revert(asset.id, scene_classification.id, reviewer)

    def test_pipeline_writes_resume_after_revert(
        self, hybrid, metadata_service, asset, scene_classification, automatic_outdoor, reviewer, system_pipeline
    ):
        hybrid.override(asset.id, scene_classification.id, reviewer)
        skipped = metadata_service.write_machine_value(
            asset.id, scene_classification.id, "studio", ValueSource.AUTOMATIC, system_pipeline
        )
        assert skipped is None

        hybrid.revert(asset.id, scene_classification.id, reviewer)
        written = metadata_service.write_machine_value(
            asset.id, scene_classification.id, "studio", ValueSource.AUTOMATIC, system_pipeline
        )
        assert written is not None
        assert hybrid.resolver.resolve_field(asset, scene_classification).value == "studio"


class TestEditAndApproveOnHybrid:
    """Edited approvals on a hybrid field are manual overrides."""

    @pytest.fixture
    def pending_studio(self, asset, scene_classification, automatic_outdoor, seed_value):
        return seed_value(asset, scene_classification, "studio", source=ValueSource.AI, confidence=0.9, approved=False)

    def test_edit_without_intent_is_rejected(
        self, db, hybrid, metadata_service, asset, scene_classification, pending_studio, reviewer
    ):
        hybrid.override(asset.id, scene_classification.id, reviewer)

        with pytest.raises(RequiresOverrideIntent):
            metadata_service.edit_and_approve(pending_studio.id, "indoor", reviewer)

        db.refresh(pending_studio)
        assert pending_studio.approved_at is None
        assert pending_studio.source == ValueSource.AI

    def test_edit_with_intent_stays_overridden(
        self, db, hybrid, metadata_service, asset, scene_classification, pending_studio, reviewer, system_pipeline
    ):
        hybrid.override(asset.id, scene_classification.id, reviewer)

        edited = metadata_service.edit_and_approve(pending_studio.id, "indoor", reviewer, override_intent=True)

        assert edited.source == ValueSource.MANUAL_OVERRIDE
        assert edited.overridden_by == reviewer.actor_id
        resolved = hybrid.resolver.resolve_field(asset, scene_classification)
        assert resolved.value == "indoor"
        assert resolved.is_overridden is True

        # Pipeline output no longer replaces the edited value
        skipped = metadata_service.write_machine_value(
            asset.id, scene_classification.id, "studio", ValueSource.AUTOMATIC, system_pipeline
        )
        assert skipped is None
        assert hybrid.resolver.resolve_field(asset, scene_classification).value == "indoor"

    def test_edit_with_intent_requires_override_capability(
        self, metadata_service, asset, scene_classification, pending_studio, make_actor
    ):
        approver = make_actor("approver@test", {caps.EDIT, caps.APPROVE})

        with pytest.raises(PermissionDenied):
            metadata_service.edit_and_approve(pending_studio.id, "indoor", approver, override_intent=True)
