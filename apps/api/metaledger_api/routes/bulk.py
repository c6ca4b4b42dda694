"""Bulk preview/execute endpoints."""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from metaledger_api.auth.api_key import get_current_actor
from metaledger_api.auth.capabilities import Actor
from metaledger_api.bulk.engine import BulkOperationEngine
from metaledger_api.routes.deps import get_bulk_engine

router = APIRouter(prefix="/v1/metadata/bulk", tags=["bulk"])


class BulkPreviewRequest(BaseModel):
    """Bulk operation to preview."""

    asset_ids: list[int] = Field(..., description="Target assets")
    operation: str = Field(..., description="add, replace or clear")
    payload: dict[str, Any] = Field(..., description="Field key to value")


class BulkPreviewResponse(BaseModel):
    diff: dict
    token: Optional[str] = None
    expires_at: Optional[datetime] = None


class BulkExecuteRequest(BaseModel):
    token: str = Field(..., description="Preview token")


class BulkExecuteResponse(BaseModel):
    total: int
    successes: list[dict]
    failures: list[dict]


@router.post("/preview", response_model=BulkPreviewResponse)
def preview_bulk(
    request_data: BulkPreviewRequest,
    actor: Actor = Depends(get_current_actor),
    engine: BulkOperationEngine = Depends(get_bulk_engine),
):
    """Validate without writing; returns a diff and a 10-minute token."""
    preview = engine.preview(request_data.asset_ids, request_data.operation, request_data.payload, actor)
    return BulkPreviewResponse(diff=preview.diff, token=preview.token, expires_at=preview.expires_at)


@router.post("/execute", response_model=BulkExecuteResponse)
def execute_bulk(
    request_data: BulkExecuteRequest,
    actor: Actor = Depends(get_current_actor),
    engine: BulkOperationEngine = Depends(get_bulk_engine),
):
    """Apply a previewed operation; per-asset partial failure."""
    result = engine.execute(request_data.token, actor)
    return BulkExecuteResponse(total=result.total, successes=result.successes, failures=result.failures)
