"""Actor capabilities and brand-then-tenant capability checks."""

import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional

from metaledger_api.metadata.enums import Producer
from metaledger_api.metadata.errors import PermissionDenied

logger = logging.getLogger(__name__)

EDIT = "metadata.edit_post_upload"
APPROVE = "metadata.approve"
BYPASS_APPROVAL = "metadata.bypass_approval"
OVERRIDE = "metadata.override_automatic"
BULK_EDIT = "metadata.bulk_edit"
SUGGESTIONS_VIEW = "metadata.suggestions.view"
SUGGESTIONS_APPLY = "metadata.suggestions.apply"
SUGGESTIONS_DISMISS = "metadata.suggestions.dismiss"
PRODUCER_WRITE = "metadata.producer.write"

VALID_CAPABILITIES = {
    EDIT,
    APPROVE,
    BYPASS_APPROVAL,
    OVERRIDE,
    BULK_EDIT,
    SUGGESTIONS_VIEW,
    SUGGESTIONS_APPLY,
    SUGGESTIONS_DISMISS,
    PRODUCER_WRITE,
}


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as seen by the metadata services.

    Brand grants, when present for a brand, replace the tenant-level
    grants for assets of that brand.
    """

    actor_id: str
    tenant_id: int
    producer: Producer = Producer.USER
    capabilities: frozenset = frozenset()
    brand_capabilities: Mapping[int, frozenset] = field(default_factory=dict)

    def can(self, capability: str, brand_id: Optional[int] = None) -> bool:
        if brand_id is not None and brand_id in self.brand_capabilities:
            return capability in self.brand_capabilities[brand_id]
        return capability in self.capabilities

    def require(self, capability: str, brand_id: Optional[int] = None, action: str = "perform this action"):
        """Raise PermissionDenied unless the actor holds the capability."""
        if not self.can(capability, brand_id):
            raise PermissionDenied(
                f"Actor {self.actor_id} is not allowed to {action}",
                capability=capability,
                brand_id=brand_id,
            )


def validate_capabilities(capabilities) -> List[str]:
    """
    Validate and parse capabilities from a JSON string or list.

    Args:
        capabilities: JSON string array (or list) of capabilities

    Returns:
        List of validated capability strings

    Raises:
        ValueError: If capabilities are invalid
    """
    if not capabilities:
        return []

    try:
        capability_list = json.loads(capabilities) if isinstance(capabilities, str) else capabilities
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in capabilities: {e}") from e

    if not isinstance(capability_list, list):
        raise ValueError("Capabilities must be a JSON array")

    validated = []
    for capability in capability_list:
        if not isinstance(capability, str):
            raise ValueError(f"Capability must be a string: {capability}")
        if capability not in VALID_CAPABILITIES:
            logger.warning(f"Unknown capability: {capability} (will be accepted but grants nothing)")
        validated.append(capability)
    return validated


def parse_brand_capabilities(brand_scopes: Optional[Mapping]) -> dict[int, frozenset]:
    """Parse {"<brand_id>": [capabilities]} into integer-keyed grant sets."""
    grants = {}
    for brand_id, capabilities in (brand_scopes or {}).items():
        grants[int(brand_id)] = frozenset(validate_capabilities(capabilities))
    return grants


def format_capabilities(capabilities: Iterable[str]) -> str:
    """Format a capability list as JSON for storage (sorted, deduplicated)."""
    capabilities = list(capabilities or [])
    if not capabilities:
        return "[]"
    return json.dumps(sorted(set(capabilities)))
