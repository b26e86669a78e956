"""Application log (timeline) router"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta

from land_registry.database import get_db
from land_registry.models.application_log import ApplicationLog
from land_registry.models.user import User
from land_registry.routers.auth import get_current_officer, get_current_user
from land_registry.services.properties import PropertyService
from land_registry.services.timeline import record_action

router = APIRouter(prefix="/logs", tags=["Application Logs"])

TIMEFRAMES = {"week": 7, "month": 30, "year": 365}


class LogResponse(BaseModel):
    id: int
    property_id: Optional[int]
    user_id: Optional[int]
    action: str
    status: str
    previous_status: Optional[str]
    performed_by: Optional[int]
    performed_by_role: str
    notes: Optional[str]
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="extra")
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class LogListResponse(BaseModel):
    logs: List[LogResponse]
    total: int


class CommentRequest(BaseModel):
    comment: str = Field(..., min_length=1, max_length=2000)


def _logs(rows) -> List[LogResponse]:
    return [LogResponse.model_validate(row) for row in rows]


@router.get("/property/{property_id}", response_model=List[LogResponse])
async def get_property_timeline(
    property_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Timeline of one property, oldest first"""
    await PropertyService(db).get_for_user(property_id, current_user)
    result = await db.execute(
        select(ApplicationLog)
        .where(ApplicationLog.property_id == property_id)
        .order_by(ApplicationLog.timestamp.asc(), ApplicationLog.id.asc())
    )
    return _logs(result.scalars().all())


@router.post("/property/{property_id}/comment", response_model=LogResponse, status_code=status.HTTP_201_CREATED)
async def add_comment(
    property_id: int,
    request: CommentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    property_obj = await PropertyService(db).get_for_user(property_id, current_user)
    entry = record_action(
        db, "comment_added", property_obj.status,
        property_id=property_obj.id, owner_id=property_obj.owner_id, actor=current_user,
        notes=request.comment,
    )
    await db.commit()
    await db.refresh(entry)
    return LogResponse.model_validate(entry)


@router.get("/user", response_model=List[LogResponse])
async def get_my_activity(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Log entries on the current user's applications"""
    result = await db.execute(
        select(ApplicationLog)
        .where(ApplicationLog.user_id == current_user.id)
        .order_by(ApplicationLog.timestamp.desc())
        .limit(200)
    )
    return _logs(result.scalars().all())


@router.get("/user/recent", response_model=List[LogResponse])
async def get_my_recent_activity(
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(ApplicationLog)
        .where(ApplicationLog.user_id == current_user.id)
        .order_by(ApplicationLog.timestamp.desc(), ApplicationLog.id.desc())
        .limit(limit)
    )
    return _logs(result.scalars().all())


@router.get("", response_model=LogListResponse)
async def list_logs(
    action: Optional[str] = None,
    property_id: Optional[int] = None,
    user_id: Optional[int] = None,
    performed_by_role: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    """All log entries with filters and pagination"""
    filters = []
    if action:
        filters.append(ApplicationLog.action == action)
    if property_id is not None:
        filters.append(ApplicationLog.property_id == property_id)
    if user_id is not None:
        filters.append(ApplicationLog.user_id == user_id)
    if performed_by_role:
        filters.append(ApplicationLog.performed_by_role == performed_by_role)
    if start_date:
        filters.append(ApplicationLog.timestamp >= start_date)
    if end_date:
        filters.append(ApplicationLog.timestamp <= end_date)

    total = (await db.execute(select(func.count(ApplicationLog.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(ApplicationLog).where(*filters)
        .order_by(ApplicationLog.timestamp.desc(), ApplicationLog.id.desc())
        .offset(offset).limit(limit)
    )
    return LogListResponse(logs=_logs(result.scalars().all()), total=total)


@router.get("/recent", response_model=List[LogResponse])
async def get_recent_activity(
    limit: int = Query(10, ge=1, le=50),
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(ApplicationLog).order_by(ApplicationLog.timestamp.desc(), ApplicationLog.id.desc()).limit(limit)
    )
    return _logs(result.scalars().all())


@router.get("/stats")
async def get_application_stats(
    timeframe: str = Query("month", pattern="^(week|month|year)$"),
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    """Counts of workflow actions over a time window"""
    end_date = datetime.utcnow()
    start_date = end_date - timedelta(days=TIMEFRAMES[timeframe])

    result = await db.execute(
        select(ApplicationLog.action, func.count(ApplicationLog.id))
        .where(ApplicationLog.timestamp >= start_date, ApplicationLog.timestamp <= end_date)
        .group_by(ApplicationLog.action)
    )
    counts = {action: count for action, count in result.all()}

    submitted = counts.get("application_submitted", 0)
    approved = counts.get("application_approved", 0)
    rejected = counts.get("application_rejected", 0)
    return {
        "timeframe": timeframe,
        "period": {"start": start_date, "end": end_date},
        "applications": {
            "total": submitted,
            "approved": approved,
            "rejected": rejected,
            "pending": max(0, submitted - approved - rejected),
        },
        "documents": {
            "uploaded": counts.get("document_uploaded", 0),
            "verified": counts.get("document_verified", 0),
            "rejected": counts.get("document_rejected", 0),
        },
        "payments": {
            "initiated": counts.get("payment_initiated", 0) + counts.get("payment_made", 0),
            "completed": counts.get("payment_completed", 0),
            "failed": counts.get("payment_failed", 0),
        },
        "actions": counts,
    }
