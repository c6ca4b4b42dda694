"""Metadata field definitions."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from metaledger_api.db.base import Base
from metaledger_api.metadata.enums import FieldType, PopulationMode, enum_type
from metaledger_api.utils.time import utcnow


class MetadataField(Base):
    """Field definition and policy. Rows with tenant_id NULL are system fields."""

    __tablename__ = "metadata_fields"
    __table_args__ = (UniqueConstraint("tenant_id", "key", name="uq_metadata_fields_tenant_key"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=True, index=True)
    key = Column(String(100), nullable=False, index=True)
    label = Column(String(255), nullable=True)
    field_type = Column(enum_type(FieldType), nullable=False)
    population_mode = Column(enum_type(PopulationMode), default=PopulationMode.MANUAL, nullable=False)
    is_user_editable = Column(Boolean, default=True, nullable=False)
    requires_review = Column(Boolean, default=True, nullable=False)
    is_internal_only = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    options_json = Column(JSON, nullable=True)  # [value, ...] or [{"value": ..., "label": ...}]
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def is_hybrid(self) -> bool:
        return self.population_mode == PopulationMode.HYBRID

    @property
    def is_multiselect(self) -> bool:
        return self.field_type == FieldType.MULTISELECT

    @property
    def is_readonly(self) -> bool:
        """Users can never write this field directly."""
        return not self.is_user_editable or self.population_mode == PopulationMode.AUTOMATIC

    @property
    def allowed_options(self) -> list:
        options = self.options_json or []
        return [option["value"] if isinstance(option, dict) else option for option in options]

    @property
    def is_free_tagging(self) -> bool:
        """Multiselect without a fixed option list holds free-form tags."""
        return self.is_multiselect and not self.allowed_options
