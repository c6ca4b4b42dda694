"""Tests for the approval gate, confidence suppressor and capability checks."""

import pytest

from metaledger_api.auth import capabilities as caps
from metaledger_api.auth.capabilities import (
    Actor,
    format_capabilities,
    parse_brand_capabilities,
    validate_capabilities,
)
from metaledger_api.metadata.enums import FieldType, PopulationMode, Producer, ValueSource
from metaledger_api.metadata.errors import PermissionDenied
from metaledger_api.models import MetadataField, MetadataValue, Tenant
from metaledger_api.policy.approval import ApprovalGate
from metaledger_api.policy.confidence import ConfidenceSuppressor
from metaledger_api.settings import Settings


def _field(mode=PopulationMode.MANUAL, requires_review=True, key="quality_rating"):
    return MetadataField(
        key=key,
        field_type=FieldType.NUMBER,
        population_mode=mode,
        requires_review=requires_review,
    )


def _actor(*capabilities, producer=Producer.USER, brand_capabilities=None):
    return Actor(
        actor_id="actor",
        tenant_id=1,
        producer=producer,
        capabilities=frozenset(capabilities),
        brand_capabilities=brand_capabilities or {},
    )


class TestApprovalGate:
    """Rule order of the approval gate."""

    @pytest.fixture
    def gate(self):
        return ApprovalGate(Settings(metadata_approval_enabled=True))

    @pytest.mark.parametrize(
        "source", [ValueSource.AUTOMATIC, ValueSource.SYSTEM, ValueSource.MANUAL_OVERRIDE]
    )
    def test_machine_and_override_sources_are_never_gated(self, gate, source):
        decision = gate.decide(source, _field(), None, _actor())
        assert decision == (False, "SOURCE_NOT_GATED")

    def test_automatic_fields_are_not_gated(self, gate):
        decision = gate.decide(ValueSource.AI, _field(PopulationMode.AUTOMATIC), None, _actor())
        assert decision.reason == "AUTOMATIC_FIELD"

    def test_system_producer_is_not_gated(self, gate):
        decision = gate.decide(ValueSource.AI, _field(), None, _actor(producer=Producer.SYSTEM))
        assert decision.reason == "SYSTEM_PRODUCER"

    def test_field_without_review_is_not_gated(self, gate):
        decision = gate.decide(ValueSource.USER, _field(requires_review=False), None, _actor())
        assert decision.reason == "REVIEW_NOT_REQUIRED"

    def test_tenant_can_disable_approval(self, gate):
        tenant = Tenant(label="t", settings_json={"metadata_approval_enabled": False})
        decision = gate.decide(ValueSource.USER, _field(), tenant, _actor())
        assert decision.reason == "APPROVAL_DISABLED"

    def test_deployment_default_applies_without_tenant_override(self):
        gate = ApprovalGate(Settings(metadata_approval_enabled=False))
        assert gate.approval_enabled(Tenant(label="t", settings_json={})) is False
        assert gate.approval_enabled(Tenant(label="t", settings_json={"metadata_approval_enabled": True})) is True

    def test_bypass_capability(self, gate):
        decision = gate.decide(ValueSource.USER, _field(), None, _actor(caps.BYPASS_APPROVAL))
        assert decision.reason == "BYPASS_CAPABILITY"

    def test_bypass_respects_brand_grants(self, gate):
        actor = _actor(caps.BYPASS_APPROVAL, brand_capabilities={7: frozenset({caps.EDIT})})
        assert gate.requires_approval(ValueSource.USER, _field(), None, actor, brand_id=7) is True
        assert gate.requires_approval(ValueSource.USER, _field(), None, actor, brand_id=8) is False

    def test_user_and_ai_values_require_review_by_default(self, gate):
        assert gate.decide(ValueSource.USER, _field(), None, _actor()) == (True, "REVIEW_REQUIRED")
        assert gate.requires_approval(ValueSource.AI, _field(PopulationMode.AI), None, _actor(producer=Producer.AI))


class TestConfidenceSuppressor:
    """Threshold handling."""

    def test_unknown_confidence_is_never_suppressed(self):
        assert ConfidenceSuppressor(0.6, {}).should_suppress("tags", None) is False

    def test_threshold_is_inclusive(self):
        suppressor = ConfidenceSuppressor(0.6, {})
        assert suppressor.should_suppress("tags", 0.59) is True
        assert suppressor.should_suppress("tags", 0.6) is False

    def test_per_field_threshold_overrides_default(self):
        suppressor = ConfidenceSuppressor(0.6, {"photo_type": 0.8})
        assert suppressor.threshold_for("photo_type") == 0.8
        assert suppressor.should_suppress("photo_type", 0.7) is True
        assert suppressor.should_suppress("tags", 0.7) is False

    def test_only_ai_rows_in_ai_fields(self):
        suppressor = ConfidenceSuppressor(0.6, {})
        ai_field = _field(PopulationMode.AI, key="photo_type")
        row = MetadataValue(producer=Producer.AI, confidence=0.1)
        assert suppressor.suppresses_row(ai_field, row) is True
        assert suppressor.suppresses_row(_field(PopulationMode.HYBRID), row) is False
        assert suppressor.suppresses_row(ai_field, MetadataValue(producer=Producer.USER, confidence=0.1)) is False


class TestCapabilities:
    """Brand-then-tenant capability rule."""

    def test_tenant_grants_apply_without_brand_grant(self):
        actor = _actor(caps.EDIT)
        assert actor.can(caps.EDIT) is True
        assert actor.can(caps.EDIT, brand_id=3) is True

    def test_brand_grant_is_authoritative(self):
        actor = _actor(caps.EDIT, caps.APPROVE, brand_capabilities={3: frozenset({caps.EDIT})})
        assert actor.can(caps.APPROVE, brand_id=3) is False
        assert actor.can(caps.APPROVE, brand_id=4) is True

    def test_require_raises_permission_denied(self):
        with pytest.raises(PermissionDenied) as exc_info:
            _actor().require(caps.APPROVE, action="approve metadata")
        assert exc_info.value.details["capability"] == caps.APPROVE

    def test_capability_parsing(self):
        assert validate_capabilities('["metadata.approve"]') == ["metadata.approve"]
        assert validate_capabilities(None) == []
        with pytest.raises(ValueError):
            validate_capabilities('{"not": "a list"}')
        assert parse_brand_capabilities({"5": [caps.EDIT]}) == {5: frozenset({caps.EDIT})}
        assert format_capabilities([caps.EDIT, caps.APPROVE, caps.EDIT]) == (
            '["metadata.approve", "metadata.edit_post_upload"]'
        )
