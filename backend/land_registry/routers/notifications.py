"""Notifications router"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from land_registry.database import get_db
from land_registry.models.user import User
from land_registry.routers.auth import get_current_user
from land_registry.services.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    priority: str
    action_required: bool
    action_url: Optional[str]
    property_id: Optional[int]
    payment_id: Optional[int]
    dispute_id: Optional[int]
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="extra")
    read: bool
    read_at: Optional[datetime]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = False,
    type: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The current user's notifications, newest first"""
    service = NotificationService(db)
    notifications = await service.list_for_user(
        current_user.id, unread_only=unread_only, type=type, limit=limit, offset=offset
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=await service.unread_count(current_user.id),
    )


@router.get("/unread-count")
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return {"unread_count": await NotificationService(db).unread_count(current_user.id)}


@router.put("/read-all")
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    updated = await NotificationService(db).mark_all_read(current_user.id)
    await db.commit()
    return {"updated": updated}


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    notification = await NotificationService(db).mark_read(notification_id, current_user.id)
    await db.commit()
    await db.refresh(notification)
    return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await NotificationService(db).delete(notification_id, current_user.id)
    await db.commit()
    return {"message": "Notification deleted"}
