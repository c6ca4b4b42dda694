"""Service dependencies for metadata routes."""

from fastapi import Depends
from sqlalchemy.orm import Session

from metaledger_api.bulk.engine import BulkOperationEngine
from metaledger_api.db.session import get_db
from metaledger_api.events.dispatcher import get_event_dispatcher
from metaledger_api.services.candidates import CandidateReviewService
from metaledger_api.services.hybrid import HybridOverrideService
from metaledger_api.services.metadata import MetadataService


def get_dispatcher():
    return get_event_dispatcher()


def get_metadata_service(db: Session = Depends(get_db), dispatcher=Depends(get_dispatcher)) -> MetadataService:
    return MetadataService(db, dispatcher=dispatcher)


def get_hybrid_service(db: Session = Depends(get_db)) -> HybridOverrideService:
    return HybridOverrideService(db)


def get_candidate_service(db: Session = Depends(get_db), dispatcher=Depends(get_dispatcher)) -> CandidateReviewService:
    return CandidateReviewService(db, dispatcher=dispatcher)


def get_bulk_engine(db: Session = Depends(get_db)) -> BulkOperationEngine:
    return BulkOperationEngine(db)
