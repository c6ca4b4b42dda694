"""Metadata write, review, override and read endpoints."""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from metaledger_api.auth.api_key import get_current_actor
from metaledger_api.auth.capabilities import Actor
from metaledger_api.ledger.resolver import ResolvedField
from metaledger_api.metadata.enums import ValueSource
from metaledger_api.models import MetadataHistory, MetadataValue
from metaledger_api.routes.deps import get_hybrid_service, get_metadata_service
from metaledger_api.services.hybrid import HybridOverrideService
from metaledger_api.services.metadata import MetadataService

router = APIRouter(prefix="/v1", tags=["metadata"])


class EntryResponse(BaseModel):
    """Ledger entry."""

    id: int
    asset_id: int
    field_id: int
    value: Any = None
    is_replacement: bool = False
    source: str
    producer: str
    confidence: Optional[float] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    overridden_at: Optional[datetime] = None
    overridden_by: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: MetadataValue) -> "EntryResponse":
        return cls(
            id=entry.id,
            asset_id=entry.asset_id,
            field_id=entry.field_id,
            value=entry.value_json,
            is_replacement=bool(entry.is_replacement),
            source=entry.source.value,
            producer=entry.producer.value,
            confidence=entry.confidence,
            approved_at=entry.approved_at,
            approved_by=entry.approved_by,
            overridden_at=entry.overridden_at,
            overridden_by=entry.overridden_by,
            created_at=entry.created_at,
        )


def _entry_or_none(entry: Optional[MetadataValue]) -> Optional[EntryResponse]:
    return EntryResponse.from_entry(entry) if entry is not None else None


class ResolvedFieldResponse(BaseModel):
    """Resolved state of one field."""

    field_id: int
    key: str
    value: Any = None
    approved: Optional[EntryResponse] = None
    pending: Optional[EntryResponse] = None
    has_pending: bool
    suppressed: bool
    is_overridden: bool

    @classmethod
    def from_resolved(cls, resolved: ResolvedField) -> "ResolvedFieldResponse":
        return cls(
            field_id=resolved.field.id,
            key=resolved.field.key,
            value=resolved.value,
            approved=_entry_or_none(resolved.approved),
            pending=_entry_or_none(resolved.pending),
            has_pending=resolved.has_pending,
            suppressed=resolved.suppressed,
            is_overridden=resolved.is_overridden,
        )


class StateResponse(BaseModel):
    asset_id: int
    fields: list[ResolvedFieldResponse]


class EditableFieldResponse(BaseModel):
    field_id: int
    key: str
    label: Optional[str] = None
    field_type: str
    population_mode: str
    current_value: Any = None
    can_edit: bool
    is_pending: bool
    readonly: bool
    is_overridden: bool
    suppressed: bool
    options: list = Field(default_factory=list)


class HistoryResponse(BaseModel):
    id: int
    entry_id: int
    field_id: int
    action: str
    old_value: Any = None
    new_value: Any = None
    source: str
    changed_by: Optional[str] = None
    context: Optional[dict] = None
    created_at: datetime

    @classmethod
    def from_history(cls, history: MetadataHistory) -> "HistoryResponse":
        return cls(
            id=history.id,
            entry_id=history.asset_metadata_id,
            field_id=history.field_id,
            action=history.action.value,
            old_value=history.old_value_json,
            new_value=history.new_value_json,
            source=history.source.value,
            changed_by=history.changed_by,
            context=history.context_json,
            created_at=history.created_at,
        )


class WriteValueRequest(BaseModel):
    """User edit of one field."""

    field_id: int = Field(..., description="Metadata field id")
    value: Any = Field(..., description="New value, typed per the field definition")
    override_intent: bool = Field(default=False, description="Required to edit hybrid fields")


class WriteValueResponse(BaseModel):
    entry_id: Optional[int] = None
    pending: bool = False
    skipped: bool = False


class MachineValueRequest(BaseModel):
    """Pipeline write of automatic, system or ai output."""

    field_id: int
    value: Any = Field(...)
    source: ValueSource = Field(default=ValueSource.AUTOMATIC, description="automatic, system or ai")
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)


class EditApproveRequest(BaseModel):
    value: Any = Field(..., description="Value to approve in place of the proposal")
    override_intent: bool = Field(default=False, description="Required on hybrid fields")


class OverrideResponse(BaseModel):
    entry_id: int
    overridden_at: datetime
    overridden_by: Optional[str] = None
    already_overridden: bool


@router.get("/assets/{asset_id}/metadata/state", response_model=StateResponse)
def get_state(
    asset_id: int,
    suppress: bool = Query(True, description="Hide low-confidence AI values"),
    actor: Actor = Depends(get_current_actor),
    service: MetadataService = Depends(get_metadata_service),
):
    """Resolved state per field: approved row, pending row, has_pending."""
    state = service.resolve_state(asset_id, actor, suppress=suppress)
    return StateResponse(
        asset_id=asset_id,
        fields=[ResolvedFieldResponse.from_resolved(resolved) for resolved in state.values()],
    )


@router.get("/assets/{asset_id}/metadata/editable", response_model=list[EditableFieldResponse])
def get_editable_fields(
    asset_id: int,
    actor: Actor = Depends(get_current_actor),
    service: MetadataService = Depends(get_metadata_service),
):
    """Fields of an asset as the caller should see and edit them."""
    return [EditableFieldResponse(**vars(field)) for field in service.get_editable_fields(asset_id, actor)]


@router.get("/assets/{asset_id}/metadata/pending", response_model=list[EntryResponse])
def list_pending(
    asset_id: int,
    actor: Actor = Depends(get_current_actor),
    service: MetadataService = Depends(get_metadata_service),
):
    """Pending entries awaiting approval, including low-confidence ones."""
    return [EntryResponse.from_entry(entry) for entry in service.list_pending(asset_id, actor)]


@router.get("/assets/{asset_id}/metadata/history", response_model=list[HistoryResponse])
def get_history(
    asset_id: int,
    field_id: Optional[int] = None,
    actor: Actor = Depends(get_current_actor),
    service: MetadataService = Depends(get_metadata_service),
):
    """Audit trail for an asset."""
    return [HistoryResponse.from_history(row) for row in service.history(asset_id, actor, field_id)]


@router.post("/assets/{asset_id}/metadata", response_model=WriteValueResponse)
def write_value(
    asset_id: int,
    request_data: WriteValueRequest,
    actor: Actor = Depends(get_current_actor),
    service: MetadataService = Depends(get_metadata_service),
):
    """Write a value; pending unless the approval gate lets it through."""
    result = service.write_value(
        asset_id,
        request_data.field_id,
        request_data.value,
        actor,
        override_intent=request_data.override_intent,
    )
    return WriteValueResponse(entry_id=result.entry_id, pending=result.pending)


@router.post("/assets/{asset_id}/metadata/machine", response_model=WriteValueResponse)
def write_machine_value(
    asset_id: int,
    request_data: MachineValueRequest,
    actor: Actor = Depends(get_current_actor),
    service: MetadataService = Depends(get_metadata_service),
):
    """Pipeline write; skipped when a hybrid field is manually overridden."""
    result = service.write_machine_value(
        asset_id,
        request_data.field_id,
        request_data.value,
        request_data.source,
        actor,
        confidence=request_data.confidence,
    )
    if result is None:
        return WriteValueResponse(skipped=True)
    return WriteValueResponse(entry_id=result.entry_id, pending=result.pending)


@router.post("/metadata/{entry_id}/approve", response_model=EntryResponse)
def approve_entry(
    entry_id: int,
    actor: Actor = Depends(get_current_actor),
    service: MetadataService = Depends(get_metadata_service),
):
    return EntryResponse.from_entry(service.approve(entry_id, actor))


@router.post("/metadata/{entry_id}/reject", response_model=EntryResponse)
def reject_entry(
    entry_id: int,
    actor: Actor = Depends(get_current_actor),
    service: MetadataService = Depends(get_metadata_service),
):
    return EntryResponse.from_entry(service.reject_entry(entry_id, actor))


@router.post("/metadata/{entry_id}/edit-approve", response_model=EntryResponse)
def edit_and_approve_entry(
    entry_id: int,
    request_data: EditApproveRequest,
    actor: Actor = Depends(get_current_actor),
    service: MetadataService = Depends(get_metadata_service),
):
    """Approve an edited value in place of a pending proposal."""
    return EntryResponse.from_entry(
        service.edit_and_approve(
            entry_id, request_data.value, actor, override_intent=request_data.override_intent
        )
    )


@router.post("/assets/{asset_id}/metadata/{field_id}/override", response_model=OverrideResponse)
def override_field(
    asset_id: int,
    field_id: int,
    actor: Actor = Depends(get_current_actor),
    service: HybridOverrideService = Depends(get_hybrid_service),
):
    """Freeze a hybrid field at its automatic value. Idempotent."""
    result = service.override(asset_id, field_id, actor)
    return OverrideResponse(**vars(result))


@router.post("/assets/{asset_id}/metadata/{field_id}/revert", response_model=EntryResponse)
def revert_field(
    asset_id: int,
    field_id: int,
    actor: Actor = Depends(get_current_actor),
    service: HybridOverrideService = Depends(get_hybrid_service),
):
    """Return a hybrid field to its automatic value."""
    return EntryResponse.from_entry(service.revert(asset_id, field_id, actor))
