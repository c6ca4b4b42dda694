"""Candidate review endpoints."""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from metaledger_api.auth.api_key import get_current_actor
from metaledger_api.auth.capabilities import Actor
from metaledger_api.metadata.enums import ValueSource
from metaledger_api.models import MetadataCandidate
from metaledger_api.routes.deps import get_candidate_service
from metaledger_api.routes.metadata import EditApproveRequest, EntryResponse
from metaledger_api.services.candidates import CandidateReviewService

router = APIRouter(prefix="/v1", tags=["candidates"])


class CandidateResponse(BaseModel):
    """Open candidate."""

    id: int
    asset_id: int
    field_id: int
    value: Any = None
    canonical_key: str
    confidence: Optional[float] = None
    source: str
    producer: str
    created_at: datetime

    @classmethod
    def from_candidate(cls, candidate: MetadataCandidate) -> "CandidateResponse":
        return cls(
            id=candidate.id,
            asset_id=candidate.asset_id,
            field_id=candidate.field_id,
            value=candidate.value_json,
            canonical_key=candidate.canonical_key,
            confidence=candidate.confidence,
            source=candidate.source.value,
            producer=candidate.producer.value,
            created_at=candidate.created_at,
        )


class RecordCandidateRequest(BaseModel):
    """Producer proposal."""

    field_id: int
    value: Any = Field(..., description="Proposed value; a single tag for free-tagging fields")
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    source: ValueSource = Field(default=ValueSource.AI)


class RecordCandidateResponse(BaseModel):
    admitted: bool
    candidate: Optional[CandidateResponse] = None


class DismissResponse(BaseModel):
    dismissed_ids: list[int]


class DeferResponse(BaseModel):
    candidate_id: int
    deferred: bool = True


@router.get("/assets/{asset_id}/candidates", response_model=list[CandidateResponse])
def list_candidates(
    asset_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CandidateReviewService = Depends(get_candidate_service),
):
    return [CandidateResponse.from_candidate(c) for c in service.list_candidates(asset_id, actor)]


@router.post("/assets/{asset_id}/candidates", response_model=RecordCandidateResponse)
def record_candidate(
    asset_id: int,
    request_data: RecordCandidateRequest,
    actor: Actor = Depends(get_current_actor),
    service: CandidateReviewService = Depends(get_candidate_service),
):
    """Submit a candidate; duplicates and previously dismissed values are not admitted."""
    candidate = service.record_candidate(
        asset_id,
        request_data.field_id,
        request_data.value,
        actor,
        confidence=request_data.confidence,
        source=request_data.source,
    )
    if candidate is None:
        return RecordCandidateResponse(admitted=False)
    return RecordCandidateResponse(admitted=True, candidate=CandidateResponse.from_candidate(candidate))


@router.post("/candidates/{candidate_id}/approve", response_model=EntryResponse)
def approve_candidate(
    candidate_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CandidateReviewService = Depends(get_candidate_service),
):
    return EntryResponse.from_entry(service.approve_candidate(candidate_id, actor))


@router.post("/candidates/{candidate_id}/edit-approve", response_model=EntryResponse)
def edit_and_approve_candidate(
    candidate_id: int,
    request_data: EditApproveRequest,
    actor: Actor = Depends(get_current_actor),
    service: CandidateReviewService = Depends(get_candidate_service),
):
    entry = service.edit_and_approve_candidate(
        candidate_id, request_data.value, actor, override_intent=request_data.override_intent
    )
    return EntryResponse.from_entry(entry)


@router.post("/candidates/{candidate_id}/reject", response_model=DismissResponse)
def reject_candidate(
    candidate_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CandidateReviewService = Depends(get_candidate_service),
):
    """Dismiss permanently, together with open duplicates of the same canonical form."""
    return DismissResponse(dismissed_ids=service.reject_candidate(candidate_id, actor))


@router.post("/candidates/{candidate_id}/defer", response_model=DeferResponse)
def defer_candidate(
    candidate_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CandidateReviewService = Depends(get_candidate_service),
):
    candidate = service.defer_candidate(candidate_id, actor)
    return DeferResponse(candidate_id=candidate.id)
