"""Notification Service

Creates user-scoped notifications for workflow events and, when SMTP is
configured, queues them for email delivery.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from land_registry.exceptions import NotFoundError, ValidationError
from land_registry.models.dispute import Dispute
from land_registry.models.notification import Notification
from land_registry.models.payment import Payment, PaymentType
from land_registry.models.property import Property
from land_registry.models.transfer import PropertyTransfer, TransferStatus
from land_registry.models.user import User, UserRole
from land_registry.services.email import get_email_service

logger = logging.getLogger(__name__)


NOTIFICATION_TYPES = (
    "payment_required",
    "payment_success",
    "payment_failed",
    "payment_reminder",
    "property_ready_approval",
    "property_approved",
    "property_rejected",
    "update_requested",
    "document_rejected",
    "dispute_submitted",
    "dispute_status_update",
    "dispute_resolved",
    "transfer_initiated",
    "transfer_update",
    "transfer_completed",
)


# Message builders shared by the async service and the Celery tasks

def payment_reminder_message(property_obj: Property, days_overdue: int) -> Dict[str, Any]:
    return {
        "user_id": property_obj.owner_id,
        "type": "payment_reminder",
        "title": "Payment Reminder",
        "message": (
            f"Payment for property {property_obj.plot_number} has been due for {days_overdue} days. "
            f"Complete the registration payment to continue your application."
        ),
        "priority": "high",
        "action_required": True,
        "action_url": f"/property/{property_obj.id}/payment",
        "property_id": property_obj.id,
        "extra": {"days_overdue": days_overdue, "plot_number": property_obj.plot_number},
    }


def _dispute_url(dispute: Dispute) -> str:
    return f"/disputes/{dispute.id}"


class NotificationService:
    """Persisted notifications for one database session"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        user_id: int,
        type: str,
        title: str,
        message: str,
        priority: str = "medium",
        action_required: bool = False,
        action_url: Optional[str] = None,
        property_id: Optional[int] = None,
        payment_id: Optional[int] = None,
        dispute_id: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            priority=priority,
            action_required=action_required,
            action_url=action_url,
            property_id=property_id,
            payment_id=payment_id,
            dispute_id=dispute_id,
            extra=extra,
        )
        self.db.add(notification)
        await self.db.flush()

        logger.info(f"Notification {notification.id} ({type}) created for user {user_id}")
        self._queue_email(notification.id)
        return notification

    def _queue_email(self, notification_id: int) -> None:
        if not get_email_service().is_configured():
            return
        try:
            from tasks.notification_tasks import send_notification_email

            # Delay so the surrounding request has committed
            send_notification_email.apply_async(args=[notification_id], countdown=5)
        except Exception as e:
            logger.error(f"Failed to queue notification email {notification_id}: {e}")

    async def notify_officers(self, **kwargs) -> List[Notification]:
        result = await self.db.execute(
            select(User.id).where(
                User.role.in_([UserRole.LAND_OFFICER, UserRole.ADMIN]),
                User.is_active.is_(True),
            )
        )
        return [await self.create(user_id=officer_id, **kwargs) for officer_id in result.scalars().all()]

    # Workflow producers

    async def payment_required(self, property_obj: Property, amount: float, currency: str = "ETB") -> Notification:
        return await self.create(
            user_id=property_obj.owner_id,
            type="payment_required",
            title="Payment Required for Property Registration",
            message=(
                f"Payment of {amount:.2f} {currency} is required to complete registration for property "
                f"{property_obj.plot_number}. Documents have been validated and payment is now due."
            ),
            priority="high",
            action_required=True,
            action_url=f"/property/{property_obj.id}/payment",
            property_id=property_obj.id,
            extra={"amount": amount, "currency": currency, "payment_type": "registration_fee"},
        )

    async def payment_success(self, payment: Payment, property_obj: Property) -> Notification:
        if payment.payment_type == PaymentType.TRANSFER_FEE:
            follow_up = "The transfer can now be completed by the registry."
        else:
            follow_up = "Your property is now ready for final approval by the land officer."
        return await self.create(
            user_id=payment.user_id,
            type="payment_success",
            title="Payment Completed Successfully",
            message=(
                f"Your payment of {payment.amount:.2f} {payment.currency.value} for property "
                f"{property_obj.plot_number} has been completed successfully. {follow_up}"
            ),
            property_id=property_obj.id,
            payment_id=payment.id,
            extra={
                "receipt_number": payment.receipt_number,
                "transaction_id": payment.transaction_id,
                "payment_method": payment.payment_method.value,
            },
        )

    async def payment_failed(self, payment: Payment, property_obj: Property, reason: str) -> Notification:
        return await self.create(
            user_id=payment.user_id,
            type="payment_failed",
            title="Payment Failed",
            message=(
                f"Your payment of {payment.amount:.2f} {payment.currency.value} for property "
                f"{property_obj.plot_number} has failed. Reason: {reason}. Please try again or contact support."
            ),
            priority="high",
            action_required=True,
            action_url=f"/property/{property_obj.id}/payment",
            property_id=property_obj.id,
            payment_id=payment.id,
            extra={"reason": reason},
        )

    async def property_ready_for_approval(self, property_obj: Property) -> List[Notification]:
        return await self.notify_officers(
            type="property_ready_approval",
            title="Property Ready for Approval",
            message=(
                f"Property {property_obj.plot_number} has validated documents and a completed payment "
                f"and is ready for final approval."
            ),
            action_required=True,
            action_url=f"/land-officer/properties/{property_obj.id}",
            property_id=property_obj.id,
        )

    async def property_decision(self, property_obj: Property, approved: bool, notes: Optional[str]) -> Notification:
        if approved:
            title = "Property Registration Approved"
            message = f"Your registration for property {property_obj.plot_number} has been approved."
        else:
            title = "Property Registration Rejected"
            message = f"Your registration for property {property_obj.plot_number} has been rejected."
        if notes:
            message += f" Notes: {notes}"
        return await self.create(
            user_id=property_obj.owner_id,
            type="property_approved" if approved else "property_rejected",
            title=title,
            message=message,
            priority="high",
            action_required=not approved,
            action_url=f"/property/{property_obj.id}",
            property_id=property_obj.id,
        )

    async def update_requested(self, property_obj: Property, notes: Optional[str]) -> Notification:
        return await self.create(
            user_id=property_obj.owner_id,
            type="update_requested",
            title="Application Update Requested",
            message=(
                f"A land officer requested changes to property {property_obj.plot_number}."
                + (f" Notes: {notes}" if notes else "")
            ),
            priority="high",
            action_required=True,
            action_url=f"/property/{property_obj.id}",
            property_id=property_obj.id,
        )

    async def document_rejected(self, property_obj: Property, document_name: str, notes: Optional[str]) -> Notification:
        return await self.create(
            user_id=property_obj.owner_id,
            type="document_rejected",
            title="Document Rejected",
            message=(
                f"'{document_name}' for property {property_obj.plot_number} was rejected. "
                f"Please upload a corrected copy." + (f" Notes: {notes}" if notes else "")
            ),
            priority="high",
            action_required=True,
            action_url=f"/property/{property_obj.id}/documents",
            property_id=property_obj.id,
        )

    async def dispute_submitted(self, dispute: Dispute, property_obj: Property) -> List[Notification]:
        return await self.notify_officers(
            type="dispute_submitted",
            title="New Dispute Submitted",
            message=f"A {dispute.dispute_type.value.replace('_', ' ')} was filed for property {property_obj.plot_number}: {dispute.title}",
            priority="high" if dispute.priority.value in ("high", "urgent") else "medium",
            action_required=True,
            action_url=f"/land-officer/disputes/{dispute.id}",
            property_id=property_obj.id,
            dispute_id=dispute.id,
        )

    async def dispute_status_update(self, dispute: Dispute, notes: Optional[str]) -> Notification:
        return await self.create(
            user_id=dispute.disputant_id,
            type="dispute_status_update",
            title="Dispute Status Updated",
            message=(
                f"Your dispute '{dispute.title}' is now {dispute.status.value.replace('_', ' ')}."
                + (f" Notes: {notes}" if notes else "")
            ),
            action_url=_dispute_url(dispute),
            property_id=dispute.property_id,
            dispute_id=dispute.id,
        )

    async def dispute_resolved(self, dispute: Dispute) -> Notification:
        return await self.create(
            user_id=dispute.disputant_id,
            type="dispute_resolved",
            title="Dispute Resolved",
            message=f"Your dispute '{dispute.title}' was resolved: {dispute.resolution_decision}.",
            priority="high",
            action_required=bool(dispute.action_required),
            action_url=_dispute_url(dispute),
            property_id=dispute.property_id,
            dispute_id=dispute.id,
        )

    async def transfer_initiated(self, transfer: PropertyTransfer, property_obj: Property) -> List[Notification]:
        notifications = [await self.create(
            user_id=transfer.new_owner_id,
            type="transfer_initiated",
            title="Incoming Property Transfer",
            message=f"Property {property_obj.plot_number} is being transferred to you ({transfer.transfer_type.value}).",
            action_url=f"/transfers/{transfer.id}",
            property_id=property_obj.id,
            extra={"transfer_id": transfer.id},
        )]
        notifications += await self.notify_officers(
            type="transfer_initiated",
            title="New Transfer Request",
            message=f"A {transfer.transfer_type.value} transfer was requested for property {property_obj.plot_number}.",
            action_required=True,
            action_url=f"/land-officer/transfers/{transfer.id}",
            property_id=property_obj.id,
            extra={"transfer_id": transfer.id},
        )
        return notifications

    async def transfer_update(self, transfer: PropertyTransfer, notes: Optional[str] = None) -> List[Notification]:
        """Tell both parties where the transfer stands"""
        status = transfer.status.value.replace("_", " ")
        message = f"Transfer #{transfer.id} is now {status}." + (f" Notes: {notes}" if notes else "")
        fee_due = transfer.status == TransferStatus.APPROVED and not transfer.fee_paid
        return [
            await self.create(
                user_id=user_id,
                type="transfer_update",
                title="Transfer Status Updated",
                message=message,
                action_required=fee_due and user_id == transfer.previous_owner_id,
                action_url=f"/transfers/{transfer.id}",
                property_id=transfer.property_id,
                extra={"transfer_id": transfer.id, "status": transfer.status.value},
            )
            for user_id in (transfer.previous_owner_id, transfer.new_owner_id)
        ]

    async def transfer_completed(self, transfer: PropertyTransfer, property_obj: Property) -> List[Notification]:
        return [
            await self.create(
                user_id=user_id,
                type="transfer_completed",
                title="Property Transfer Completed",
                message=f"Ownership of property {property_obj.plot_number} has been transferred.",
                priority="high",
                action_url=f"/property/{property_obj.id}",
                property_id=property_obj.id,
                extra={"transfer_id": transfer.id},
            )
            for user_id in (transfer.previous_owner_id, transfer.new_owner_id)
        ]

    # Queries

    async def list_for_user(
        self,
        user_id: int,
        unread_only: bool = False,
        type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Notification]:
        if type is not None and type not in NOTIFICATION_TYPES:
            raise ValidationError(message="Unknown notification type", details={"type": type})
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.read.is_(False))
        if type:
            query = query.where(Notification.type == type)
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def unread_count(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.read.is_(False),
            )
        )
        return result.scalar() or 0

    async def get_for_user(self, notification_id: int, user_id: int) -> Notification:
        result = await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if not notification:
            raise NotFoundError(message="Notification not found")
        return notification

    async def mark_read(self, notification_id: int, user_id: int) -> Notification:
        notification = await self.get_for_user(notification_id, user_id)
        if not notification.read:
            notification.read = True
            notification.read_at = datetime.utcnow()
        return notification

    async def mark_all_read(self, user_id: int) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True, read_at=datetime.utcnow())
        )
        return result.rowcount or 0

    async def delete(self, notification_id: int, user_id: int) -> None:
        await self.get_for_user(notification_id, user_id)
        await self.db.execute(
            delete(Notification).where(Notification.id == notification_id)
        )
