"""Metadata value ledger and history models."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    event,
    inspect,
    select,
)
from sqlalchemy.orm import relationship

from metaledger_api.db.base import Base
from metaledger_api.metadata.enums import HistoryAction, Producer, ValueSource, enum_type
from metaledger_api.metadata.errors import LedgerIntegrityError
from metaledger_api.utils.time import utcnow


class MetadataValue(Base):
    """Append-only ledger row holding one proposed or approved value."""

    __tablename__ = "asset_metadata"
    __table_args__ = (Index("ix_asset_metadata_asset_field_id", "asset_id", "field_id", "id"),)

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    field_id = Column(Integer, ForeignKey("metadata_fields.id"), nullable=False, index=True)
    value_json = Column(JSON, nullable=True)  # NULL is the clear marker
    # Multiselect: discards rows approved before this one instead of adding to them
    is_replacement = Column(Boolean, default=False, nullable=False)
    source = Column(enum_type(ValueSource), nullable=False, index=True)
    producer = Column(enum_type(Producer), nullable=False)
    confidence = Column(Float, nullable=True)
    approved_at = Column(DateTime, nullable=True, index=True)
    approved_by = Column(String(255), nullable=True)
    overridden_at = Column(DateTime, nullable=True)  # hybrid only
    overridden_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    field = relationship("MetadataField")
    history = relationship("MetadataHistory", back_populates="entry", order_by="MetadataHistory.id")

    @property
    def is_approved(self) -> bool:
        return self.approved_at is not None

    @property
    def is_rejected(self) -> bool:
        return self.source.is_rejected


class MetadataHistory(Base):
    """Audit trail entry for a committed value transition."""

    __tablename__ = "asset_metadata_history"

    id = Column(Integer, primary_key=True, index=True)
    asset_metadata_id = Column(Integer, ForeignKey("asset_metadata.id"), nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    field_id = Column(Integer, ForeignKey("metadata_fields.id"), nullable=False)
    action = Column(enum_type(HistoryAction), nullable=False)
    old_value_json = Column(JSON, nullable=True)
    new_value_json = Column(JSON, nullable=True)
    source = Column(enum_type(ValueSource), nullable=False)
    changed_by = Column(String(255), nullable=True)
    context_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    # Relationships
    entry = relationship("MetadataValue", back_populates="history")


_FROZEN_ENTRY_ATTRS = (
    "asset_id",
    "field_id",
    "value_json",
    "is_replacement",
    "producer",
    "overridden_at",
    "overridden_by",
    "created_at",
)


@event.listens_for(MetadataValue, "before_update")
def _guard_entry_update(mapper, connection, target):
    """Allow only approval stamps and the terminal rejected transition."""
    state = inspect(target)
    for attr in _FROZEN_ENTRY_ATTRS:
        if state.attrs[attr].history.has_changes():
            raise LedgerIntegrityError(f"asset_metadata.{attr} is immutable (entry {target.id})")

    approved_history = state.attrs.approved_at.history
    if approved_history.has_changes():
        previous = approved_history.deleted
        if not previous:
            # Attribute was expired when set; read the stored value
            previous = [
                connection.scalar(select(MetadataValue.approved_at).where(MetadataValue.id == target.id))
            ]
        if any(v is not None for v in previous):
            raise LedgerIntegrityError(f"Entry {target.id} is already approved")

    source_history = state.attrs.source.history
    if source_history.has_changes():
        if source_history.deleted:
            previous = source_history.deleted[0]
        else:
            stored = connection.scalar(select(MetadataValue.source).where(MetadataValue.id == target.id))
            previous = ValueSource(stored) if stored is not None else None
        if previous is None or previous.rejected_variant() is not target.source:
            raise LedgerIntegrityError(
                f"Entry {target.id} source may only move to its rejected variant"
            )

    if target.source.is_rejected and target.confidence is not None:
        raise LedgerIntegrityError(f"Rejected entry {target.id} cannot carry a confidence")


@event.listens_for(MetadataValue, "before_delete")
def _guard_entry_delete(mapper, connection, target):
    raise LedgerIntegrityError(f"asset_metadata rows are never deleted (entry {target.id})")


@event.listens_for(MetadataHistory, "before_update")
@event.listens_for(MetadataHistory, "before_delete")
def _guard_history(mapper, connection, target):
    raise LedgerIntegrityError(f"asset_metadata_history is append-only (row {target.id})")
