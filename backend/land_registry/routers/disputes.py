"""Disputes router"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from land_registry.database import get_db
from land_registry.models.dispute import DisputePriority, DisputeStatus, DisputeType
from land_registry.models.user import User
from land_registry.routers.auth import get_current_admin, get_current_officer, get_current_user
from land_registry.services.disputes import DESCRIPTION_MAX_LENGTH, TITLE_MAX_LENGTH, DisputeService

router = APIRouter(prefix="/disputes", tags=["Disputes"])


class DisputeCreate(BaseModel):
    property_id: int
    dispute_type: DisputeType
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str = Field(..., min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    priority: DisputePriority = DisputePriority.MEDIUM


class DisputeResponse(BaseModel):
    id: int
    property_id: int
    disputant_id: int
    dispute_type: DisputeType
    title: str
    description: str
    priority: DisputePriority
    status: DisputeStatus
    assigned_to: Optional[int]
    assigned_date: Optional[datetime]
    evidence: Optional[List[Dict[str, Any]]] = None
    timeline: Optional[List[Dict[str, Any]]] = None
    resolution_decision: Optional[str]
    resolution_notes: Optional[str]
    action_required: Optional[str]
    resolved_by: Optional[int]
    resolution_date: Optional[datetime]
    submission_date: datetime

    model_config = ConfigDict(from_attributes=True)


class DisputeListResponse(BaseModel):
    disputes: List[DisputeResponse]
    total: int


class WithdrawRequest(BaseModel):
    reason: str = ""


class EvidenceRequest(BaseModel):
    document_type: str
    document_name: str = Field(..., min_length=1, max_length=255)
    file_reference: Optional[str] = None
    description: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: DisputeStatus
    notes: Optional[str] = None


class AssignRequest(BaseModel):
    assigned_to: int
    notes: Optional[str] = None


class ResolveRequest(BaseModel):
    decision: str = Field(..., min_length=1, max_length=100)
    resolution_notes: Optional[str] = None
    action_required: Optional[str] = None


def _response(dispute) -> DisputeResponse:
    response = DisputeResponse.model_validate(dispute)
    response.evidence = response.evidence or []
    response.timeline = response.timeline or []
    return response


@router.post("", response_model=DisputeResponse, status_code=status.HTTP_201_CREATED)
async def submit_dispute(
    request: DisputeCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """File a dispute against one of the user's properties"""
    dispute = await DisputeService(db).submit(
        current_user,
        property_id=request.property_id,
        dispute_type=request.dispute_type,
        title=request.title,
        description=request.description,
        priority=request.priority,
    )
    await db.commit()
    await db.refresh(dispute)
    return _response(dispute)


@router.get("/my-disputes", response_model=List[DisputeResponse])
async def list_my_disputes(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return [_response(d) for d in await DisputeService(db).list_for_user(current_user)]


@router.get("", response_model=DisputeListResponse)
async def list_disputes(
    status_filter: Optional[DisputeStatus] = Query(None, alias="status"),
    dispute_type: Optional[DisputeType] = None,
    priority: Optional[DisputePriority] = None,
    assigned_to: Optional[int] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    """All disputes, for land officers"""
    disputes, total = await DisputeService(db).list_all(
        status=status_filter, dispute_type=dispute_type, priority=priority,
        assigned_to=assigned_to, limit=limit, offset=offset,
    )
    return DisputeListResponse(disputes=[_response(d) for d in disputes], total=total)


@router.get("/{dispute_id}", response_model=DisputeResponse)
async def get_dispute(
    dispute_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return _response(await DisputeService(db).get_for_user(dispute_id, current_user))


@router.put("/{dispute_id}/withdraw", response_model=DisputeResponse)
async def withdraw_dispute(
    dispute_id: int,
    request: WithdrawRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Withdraw a dispute that is still in an early stage"""
    service = DisputeService(db)
    dispute = await service.withdraw(await service.get_for_user(dispute_id, current_user), current_user, request.reason)
    await db.commit()
    await db.refresh(dispute)
    return _response(dispute)


@router.post("/{dispute_id}/evidence", response_model=DisputeResponse)
async def add_evidence(
    dispute_id: int,
    request: EvidenceRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = DisputeService(db)
    dispute = await service.add_evidence(
        await service.get_for_user(dispute_id, current_user),
        current_user,
        document_type=request.document_type,
        document_name=request.document_name,
        file_reference=request.file_reference,
        description=request.description,
    )
    await db.commit()
    await db.refresh(dispute)
    return _response(dispute)


@router.put("/{dispute_id}/status", response_model=DisputeResponse)
async def update_dispute_status(
    dispute_id: int,
    request: StatusUpdateRequest,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    service = DisputeService(db)
    dispute = await service.update_status(await service.get(dispute_id), officer, request.status, request.notes)
    await db.commit()
    await db.refresh(dispute)
    return _response(dispute)


@router.put("/{dispute_id}/assign", response_model=DisputeResponse)
async def assign_dispute(
    dispute_id: int,
    request: AssignRequest,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Assign a dispute to a land officer"""
    service = DisputeService(db)
    dispute = await service.assign(await service.get(dispute_id), admin, request.assigned_to, request.notes)
    await db.commit()
    await db.refresh(dispute)
    return _response(dispute)


@router.put("/{dispute_id}/resolve", response_model=DisputeResponse)
async def resolve_dispute(
    dispute_id: int,
    request: ResolveRequest,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    service = DisputeService(db)
    dispute = await service.resolve(
        await service.get(dispute_id), officer,
        decision=request.decision,
        resolution_notes=request.resolution_notes,
        action_required=request.action_required,
    )
    await db.commit()
    await db.refresh(dispute)
    return _response(dispute)
