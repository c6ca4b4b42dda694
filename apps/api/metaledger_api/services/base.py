"""Base service class with tenant isolation guardrails."""

from sqlalchemy import or_
from sqlalchemy.orm import Session

from metaledger_api.auth.capabilities import Actor
from metaledger_api.metadata.errors import NotFound
from metaledger_api.models import Asset, MetadataField, Tenant


class BaseService:
    """Base service with tenant isolation enforcement."""

    def __init__(self, db: Session):
        """Initialize service."""
        self.db = db

    def _enforce_tenant(self, actor: Actor) -> int:
        """Enforce the actor carries a tenant and return it."""
        if not actor.tenant_id:
            raise ValueError("tenant_id must be provided for tenant-isolated operations")
        return actor.tenant_id

    def _load_asset(self, asset_id: int, actor: Actor) -> Asset:
        """Load an asset visible to the actor's tenant."""
        tenant_id = self._enforce_tenant(actor)
        asset = (
            self.db.query(Asset)
            .filter(Asset.id == asset_id, Asset.tenant_id == tenant_id)
            .first()
        )
        if not asset:
            raise NotFound(f"Asset {asset_id} not found", asset_id=asset_id)
        return asset

    def _load_field(self, field_id: int, asset: Asset) -> MetadataField:
        """Load an active field applicable to the asset."""
        field = (
            self.db.query(MetadataField)
            .filter(
                MetadataField.id == field_id,
                MetadataField.is_active == True,  # noqa: E712
                or_(MetadataField.tenant_id.is_(None), MetadataField.tenant_id == asset.tenant_id),
            )
            .first()
        )
        if not field:
            raise NotFound(f"Metadata field {field_id} not found", field_id=field_id)
        return field

    def _load_tenant(self, tenant_id: int) -> Tenant:
        return self.db.query(Tenant).filter(Tenant.id == tenant_id).first()
