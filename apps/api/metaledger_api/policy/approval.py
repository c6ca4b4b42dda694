"""Approval gate deciding whether a new value is canonical immediately."""

import logging
from typing import NamedTuple, Optional

from metaledger_api.auth.capabilities import BYPASS_APPROVAL, Actor
from metaledger_api.metadata.enums import PopulationMode, Producer, ValueSource
from metaledger_api.models import MetadataField, Tenant
from metaledger_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class ApprovalDecision(NamedTuple):
    requires_approval: bool
    reason: str


class ApprovalGate:
    """Deterministic write-time approval policy."""

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize approval gate."""
        self.settings = settings or get_settings()

    def approval_enabled(self, tenant: Optional[Tenant]) -> bool:
        """Tenant override, falling back to the deployment default."""
        default = self.settings.metadata_approval_enabled
        if tenant is None:
            return default
        return bool(tenant.setting("metadata_approval_enabled", default))

    def decide(
        self,
        source: ValueSource,
        field: MetadataField,
        tenant: Optional[Tenant],
        actor: Actor,
        brand_id: Optional[int] = None,
    ) -> ApprovalDecision:
        """Evaluate the gate for a value about to be written."""
        if source in (ValueSource.AUTOMATIC, ValueSource.SYSTEM, ValueSource.MANUAL_OVERRIDE):
            decision = ApprovalDecision(False, "SOURCE_NOT_GATED")
        elif field.population_mode == PopulationMode.AUTOMATIC:
            decision = ApprovalDecision(False, "AUTOMATIC_FIELD")
        elif actor.producer == Producer.SYSTEM:
            decision = ApprovalDecision(False, "SYSTEM_PRODUCER")
        elif not field.requires_review:
            decision = ApprovalDecision(False, "REVIEW_NOT_REQUIRED")
        elif not self.approval_enabled(tenant):
            decision = ApprovalDecision(False, "APPROVAL_DISABLED")
        elif actor.can(BYPASS_APPROVAL, brand_id):
            decision = ApprovalDecision(False, "BYPASS_CAPABILITY")
        else:
            decision = ApprovalDecision(True, "REVIEW_REQUIRED")

        logger.debug(
            "Approval gate evaluated",
            extra={
                "source": source.value,
                "field_key": field.key,
                "actor_id": actor.actor_id,
                "brand_id": brand_id,
                "requires_approval": decision.requires_approval,
                "reason": decision.reason,
            },
        )
        return decision

    def requires_approval(
        self,
        source: ValueSource,
        field: MetadataField,
        tenant: Optional[Tenant],
        actor: Actor,
        brand_id: Optional[int] = None,
    ) -> bool:
        return self.decide(source, field, tenant, actor, brand_id).requires_approval
