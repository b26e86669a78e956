"""Reports router"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Any, Dict

from land_registry.database import get_db
from land_registry.models.dispute import Dispute
from land_registry.models.document import Document
from land_registry.models.notification import Notification
from land_registry.models.payment import Payment, PaymentStatus
from land_registry.models.property import Property, PropertyStatus
from land_registry.models.user import User
from land_registry.routers.auth import get_current_admin, get_current_officer, get_current_user
from land_registry.services import workflow

router = APIRouter(prefix="/reports", tags=["Reports"])


async def _count_by(db: AsyncSession, column, *filters) -> Dict[str, int]:
    """Row counts grouped by an enum or string column"""
    result = await db.execute(select(column, func.count()).where(*filters).group_by(column))
    return {getattr(key, "value", key): count for key, count in result.all()}


@router.get("/dashboard")
async def officer_dashboard(
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """Registry-wide counts for land officers"""
    properties_by_status = await _count_by(db, Property.status)
    collected = (await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0.0)).where(Payment.status == PaymentStatus.COMPLETED)
    )).scalar()

    return {
        "properties": {
            "total": sum(properties_by_status.values()),
            "by_status": properties_by_status,
            "by_type": await _count_by(db, Property.property_type),
            "ready_for_approval": properties_by_status.get(PropertyStatus.PAYMENT_COMPLETED.value, 0)
            + properties_by_status.get(PropertyStatus.UNDER_REVIEW.value, 0),
        },
        "documents": {
            "by_status": await _count_by(db, Document.status),
            "by_type": await _count_by(db, Document.document_type),
        },
        "payments": {
            "by_status": await _count_by(db, Payment.status),
            "by_method": await _count_by(db, Payment.payment_method),
            "total_collected": round(collected or 0.0, 2),
        },
        "disputes": {
            "by_status": await _count_by(db, Dispute.status),
            "active": (await db.execute(
                select(func.count(Dispute.id)).where(Dispute.status.in_(workflow.ACTIVE_DISPUTE_STATUSES))
            )).scalar() or 0,
        },
    }


@router.get("/users")
async def user_stats(
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    by_role = await _count_by(db, User.role)
    active = (await db.execute(select(func.count(User.id)).where(User.is_active.is_(True)))).scalar() or 0
    return {"total": sum(by_role.values()), "active": active, "by_role": by_role}


@router.get("/user-dashboard")
async def user_dashboard(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """Summary of the current user's applications"""
    by_status = await _count_by(db, Property.status, Property.owner_id == current_user.id)
    awaiting_payment = (await db.execute(
        select(func.count(Property.id)).where(
            Property.owner_id == current_user.id,
            Property.documents_validated.is_(True),
            Property.payment_completed.is_(False),
            Property.status.in_([PropertyStatus.DOCUMENTS_VALIDATED, PropertyStatus.PAYMENT_PENDING]),
        )
    )).scalar() or 0
    paid = (await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0.0)).where(
            Payment.user_id == current_user.id,
            Payment.status == PaymentStatus.COMPLETED,
        )
    )).scalar()

    return {
        "properties": {"total": sum(by_status.values()), "by_status": by_status},
        "payments": {
            "awaiting_payment": awaiting_payment,
            "pending": (await db.execute(
                select(func.count(Payment.id)).where(
                    Payment.user_id == current_user.id, Payment.status == PaymentStatus.PENDING
                )
            )).scalar() or 0,
            "total_paid": round(paid or 0.0, 2),
        },
        "disputes": {
            "active": (await db.execute(
                select(func.count(Dispute.id)).where(
                    Dispute.disputant_id == current_user.id,
                    Dispute.status.in_(workflow.ACTIVE_DISPUTE_STATUSES),
                )
            )).scalar() or 0,
        },
        "notifications": {
            "unread": (await db.execute(
                select(func.count(Notification.id)).where(
                    Notification.user_id == current_user.id, Notification.read.is_(False)
                )
            )).scalar() or 0,
        },
    }
