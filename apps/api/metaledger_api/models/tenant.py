"""Tenant, brand and API key models."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from metaledger_api.db.base import Base
from metaledger_api.metadata.enums import Producer, enum_type
from metaledger_api.utils.time import utcnow


class Tenant(Base):
    """Tenant model for multi-tenancy."""

    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    label = Column(String(255), nullable=False, unique=True, index=True)
    status = Column(String(50), default="active", nullable=False)  # active, suspended, deleted
    # metadata_approval_enabled, tag_synonyms, blocked_tags
    settings_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    api_keys = relationship("APIKey", back_populates="tenant", cascade="all, delete-orphan")
    brands = relationship("Brand", back_populates="tenant", cascade="all, delete-orphan")

    def setting(self, key: str, default=None):
        """Read a tenant-level override from settings_json."""
        return (self.settings_json or {}).get(key, default)


class Brand(Base):
    """Brand within a tenant; capability grants may be scoped to it."""

    __tablename__ = "brands"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="brands")


class APIKey(Base):
    """API key model; each key authenticates one actor within a tenant."""

    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    prefix = Column(String(8), nullable=False, index=True)
    digest = Column(String(64), nullable=False, index=True)
    label = Column(String(255), nullable=True)
    actor_id = Column(String(255), nullable=False)
    producer = Column(enum_type(Producer), default=Producer.USER, nullable=False)
    scopes = Column(Text, nullable=True)  # JSON array of capabilities
    brand_scopes = Column(JSON, nullable=True)  # {"<brand_id>": [capabilities]}
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_used_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="api_keys")
