"""Activity trail models."""

from sqlalchemy import JSON, Column, DateTime, Integer, String

from metaledger_api.db.base import Base
from metaledger_api.utils.time import utcnow


class ActivityEvent(Base):
    """Best-effort activity trail; the ledger remains authoritative."""

    __tablename__ = "activity_events"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    brand_id = Column(Integer, nullable=True)
    actor_id = Column(String(255), nullable=True)
    event_type = Column(String(100), nullable=False, index=True)
    subject_type = Column(String(50), nullable=False)  # asset, metadata_value, candidate, bulk
    subject_id = Column(String(100), nullable=False)
    asset_id = Column(Integer, nullable=True, index=True)
    payload_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
