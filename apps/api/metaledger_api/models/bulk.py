"""Bulk preview token storage."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String

from metaledger_api.db.base import Base
from metaledger_api.utils.time import utcnow


class BulkPreviewToken(Base):
    """Server-side binding of a preview token to its request and actor."""

    __tablename__ = "bulk_preview_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token_digest = Column(String(64), nullable=False, unique=True, index=True)  # sha256 of the token
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    actor_id = Column(String(255), nullable=False)
    params_json = Column(JSON, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
