"""Asset model."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from metaledger_api.db.base import Base
from metaledger_api.utils.time import utcnow


class Asset(Base):
    """Digital asset that metadata values are attached to."""

    __tablename__ = "assets"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    brand_id = Column(Integer, ForeignKey("brands.id"), nullable=True, index=True)
    title = Column(String(255), nullable=True)
    # Set once the follow-on suggestion job has run for this asset
    suggestions_completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant")
    brand = relationship("Brand")
