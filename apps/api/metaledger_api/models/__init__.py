"""Database models - import all models here for Alembic discovery."""

from metaledger_api.models.activity import ActivityEvent
from metaledger_api.models.asset import Asset
from metaledger_api.models.bulk import BulkPreviewToken
from metaledger_api.models.candidate import MetadataCandidate
from metaledger_api.models.field import MetadataField
from metaledger_api.models.ledger import MetadataHistory, MetadataValue
from metaledger_api.models.tenant import APIKey, Brand, Tenant

__all__ = [
    "Tenant",
    "Brand",
    "APIKey",
    "Asset",
    "MetadataField",
    "MetadataValue",
    "MetadataHistory",
    "MetadataCandidate",
    "BulkPreviewToken",
    "ActivityEvent",
]
