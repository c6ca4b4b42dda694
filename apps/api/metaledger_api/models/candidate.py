"""Candidate values awaiting review outside the ledger."""

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from metaledger_api.db.base import Base
from metaledger_api.metadata.enums import Producer, ValueSource, enum_type
from metaledger_api.utils.time import utcnow


class MetadataCandidate(Base):
    """Producer proposal; resolved_at and dismissed_at are exclusive terminal markers."""

    __tablename__ = "metadata_candidates"
    __table_args__ = (
        Index("ix_metadata_candidates_asset_field", "asset_id", "field_id"),
        Index("ix_metadata_candidates_canonical", "asset_id", "field_id", "canonical_key"),
        CheckConstraint(
            "resolved_at IS NULL OR dismissed_at IS NULL",
            name="ck_metadata_candidates_single_terminal",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    field_id = Column(Integer, ForeignKey("metadata_fields.id"), nullable=False)
    value_json = Column(JSON, nullable=False)
    canonical_key = Column(String(255), nullable=False)
    confidence = Column(Float, nullable=True)
    source = Column(enum_type(ValueSource), default=ValueSource.AI, nullable=False)
    producer = Column(enum_type(Producer), default=Producer.AI, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(String(255), nullable=True)
    dismissed_at = Column(DateTime, nullable=True)
    dismissed_by = Column(String(255), nullable=True)
    value_entry_id = Column(Integer, ForeignKey("asset_metadata.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    field = relationship("MetadataField")
    value_entry = relationship("MetadataValue")

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None and self.dismissed_at is None
