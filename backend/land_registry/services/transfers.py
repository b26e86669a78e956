"""Transfer Service

Moves an approved property to a new owner. The previous owner requests the
transfer, a land officer reviews it, the previous owner pays the transfer
fee and an administrator completes the change of ownership.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from land_registry.exceptions import (
    AuthorizationError, ConflictError, InvalidTransitionError, NotFoundError, ValidationError,
)
from land_registry.models.property import Property
from land_registry.models.transfer import PropertyTransfer, TransferStatus, TransferType
from land_registry.models.user import User
from land_registry.services import workflow
from land_registry.services.fees import calculate_transfer_fee
from land_registry.services.notifications import NotificationService
from land_registry.services.timeline import record_action

logger = logging.getLogger(__name__)


REASON_MAX_LENGTH = 1000


class TransferService:
    """Ownership transfer operations for one database session"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.notifications = NotificationService(db)

    async def get(self, transfer_id: int) -> PropertyTransfer:
        result = await self.db.execute(select(PropertyTransfer).where(PropertyTransfer.id == transfer_id))
        transfer = result.scalar_one_or_none()
        if not transfer:
            raise NotFoundError(message="Transfer not found")
        return transfer

    async def get_for_user(self, transfer_id: int, user: User) -> PropertyTransfer:
        """Both parties and officers can see a transfer"""
        transfer = await self.get(transfer_id)
        if user.id not in (transfer.previous_owner_id, transfer.new_owner_id) and not user.is_officer:
            raise NotFoundError(message="Transfer not found")
        return transfer

    async def _property(self, property_id: int) -> Property:
        result = await self.db.execute(select(Property).where(Property.id == property_id))
        property_obj = result.scalar_one_or_none()
        if not property_obj:
            raise NotFoundError(message="Property not found")
        return property_obj

    async def _active_count(self, property_id: int) -> int:
        result = await self.db.execute(
            select(func.count(PropertyTransfer.id)).where(
                PropertyTransfer.property_id == property_id,
                PropertyTransfer.status.in_(workflow.ACTIVE_TRANSFER_STATUSES),
            )
        )
        return result.scalar() or 0

    async def request(
        self,
        owner: User,
        property_id: int,
        new_owner_email: str,
        transfer_type: TransferType,
        transfer_reason: str,
        transfer_value: float = 0.0,
    ) -> PropertyTransfer:
        reason = (transfer_reason or "").strip()
        if not reason or len(reason) > REASON_MAX_LENGTH:
            raise ValidationError(
                message=f"A transfer reason is required and must be at most {REASON_MAX_LENGTH} characters"
            )
        fee = calculate_transfer_fee(transfer_value)

        property_obj = await self._property(property_id)
        if property_obj.owner_id != owner.id:
            raise AuthorizationError(message="Only the property owner can transfer it")
        if not workflow.can_initiate_transfer(property_obj.status, property_obj.has_active_dispute):
            message = (
                "Properties with an active dispute cannot be transferred" if property_obj.has_active_dispute
                else "Only approved properties can be transferred"
            )
            raise InvalidTransitionError(property_obj.status.value, "transfer_initiated", message)
        if await self._active_count(property_id) > 0:
            raise ConflictError(
                message="There is already an active transfer for this property",
                details={"property_id": property_id},
            )

        result = await self.db.execute(
            select(User).where(func.lower(User.email) == new_owner_email.strip().lower(), User.is_active.is_(True))
        )
        new_owner = result.scalar_one_or_none()
        if not new_owner:
            raise NotFoundError(message="New owner not found. They must be registered in the system.")
        if new_owner.id == owner.id:
            raise ValidationError(message="A property cannot be transferred to its current owner")

        transfer = PropertyTransfer(
            property_id=property_id,
            previous_owner_id=owner.id,
            new_owner_id=new_owner.id,
            transfer_type=transfer_type,
            transfer_reason=reason,
            transfer_value=transfer_value,
            currency=fee.currency,
            transfer_tax=fee.base_fee,
            stamp_duty=fee.tax_amount,
            processing_fee=fee.processing_fee,
            total_fee=fee.total_amount,
            status=TransferStatus.INITIATED,
        )
        self.db.add(transfer)
        await self.db.flush()

        record_action(
            self.db, "transfer_initiated", TransferStatus.INITIATED,
            property_id=property_id, owner_id=owner.id, actor=owner,
            notes=f"Transfer to user {new_owner.id} requested ({transfer_type.value})",
            metadata={"transfer_id": transfer.id, "new_owner_id": new_owner.id},
        )
        logger.info(f"Transfer {transfer.id} requested for property {property_id}: {owner.id} -> {new_owner.id}")

        await self.notifications.transfer_initiated(transfer, property_obj)
        return transfer

    async def list_for_user(self, user: User) -> List[PropertyTransfer]:
        result = await self.db.execute(
            select(PropertyTransfer)
            .where(or_(PropertyTransfer.previous_owner_id == user.id, PropertyTransfer.new_owner_id == user.id))
            .order_by(PropertyTransfer.initiation_date.desc(), PropertyTransfer.id.desc())
        )
        return list(result.scalars().all())

    async def list_all(
        self,
        status: Optional[TransferStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[PropertyTransfer], int]:
        filters = [PropertyTransfer.status == status] if status else []
        total = (await self.db.execute(select(func.count(PropertyTransfer.id)).where(*filters))).scalar() or 0
        result = await self.db.execute(
            select(PropertyTransfer).where(*filters)
            .order_by(PropertyTransfer.initiation_date.desc(), PropertyTransfer.id.desc())
            .offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    def _move(self, transfer: PropertyTransfer, target: TransferStatus, actor: User, action: str,
              notes: Optional[str] = None) -> TransferStatus:
        previous = transfer.status
        transfer.status = workflow.advance_transfer(transfer.status, target)
        transfer.last_updated = datetime.utcnow()
        record_action(
            self.db, action, transfer.status,
            property_id=transfer.property_id, owner_id=transfer.previous_owner_id, actor=actor,
            previous_status=previous, notes=notes,
            metadata={"transfer_id": transfer.id},
        )
        logger.info(f"Transfer {transfer.id}: {previous.value} -> {transfer.status.value}")
        return previous

    async def cancel(self, transfer: PropertyTransfer, owner: User, reason: Optional[str] = None) -> PropertyTransfer:
        if transfer.previous_owner_id != owner.id:
            raise AuthorizationError(message="Only the current owner can cancel a transfer")
        if transfer.status not in workflow.CANCELLABLE_TRANSFER_STATUSES:
            raise InvalidTransitionError(
                transfer.status.value, TransferStatus.CANCELLED.value,
                "Only transfers that are initiated or under review can be cancelled",
            )
        reason = (reason or "").strip() or "Transfer cancelled by previous owner"
        self._move(transfer, TransferStatus.CANCELLED, owner, "transfer_cancelled", reason)
        transfer.cancellation_reason = reason
        await self.notifications.transfer_update(transfer, reason)
        return transfer

    async def start_review(self, transfer: PropertyTransfer, officer: User, notes: Optional[str] = None) -> PropertyTransfer:
        self._move(transfer, TransferStatus.UNDER_REVIEW, officer, "transfer_review_started", notes)
        transfer.reviewed_by = officer.id
        await self.notifications.transfer_update(transfer, notes)
        return transfer

    async def approve(self, transfer: PropertyTransfer, officer: User, notes: Optional[str] = None) -> PropertyTransfer:
        # Approval comes after review; an initiated transfer is moved through it
        if transfer.status == TransferStatus.INITIATED:
            self._move(transfer, TransferStatus.UNDER_REVIEW, officer, "transfer_review_started")
        self._move(transfer, TransferStatus.APPROVED, officer, "transfer_approved", notes)
        transfer.reviewed_by = officer.id
        transfer.review_notes = notes
        await self.notifications.transfer_update(transfer, notes)
        return transfer

    async def reject(self, transfer: PropertyTransfer, officer: User, reason: str) -> PropertyTransfer:
        if not (reason and reason.strip()):
            raise ValidationError(message="A reason is required to reject a transfer")
        self._move(transfer, TransferStatus.REJECTED, officer, "transfer_rejected", reason)
        transfer.reviewed_by = officer.id
        transfer.rejection_reason = reason
        await self.notifications.transfer_update(transfer, reason)
        return transfer

    async def complete(self, transfer: PropertyTransfer, admin: User) -> PropertyTransfer:
        """Hand the property to the new owner once the fee is paid"""
        if transfer.status == TransferStatus.APPROVED and not transfer.fee_paid:
            raise InvalidTransitionError(
                transfer.status.value, TransferStatus.COMPLETED.value,
                "The transfer fee must be paid before the transfer is completed",
            )
        property_obj = await self._property(transfer.property_id)
        if property_obj.has_active_dispute:
            raise ConflictError(
                message="Properties with an active dispute cannot change owner",
                details={"property_id": property_obj.id},
            )

        self._move(transfer, TransferStatus.COMPLETED, admin, "transfer_completed",
                   "Property ownership transferred")
        transfer.completion_date = datetime.utcnow()

        property_obj.owner_id = transfer.new_owner_id
        property_obj.is_transferred = True
        property_obj.last_updated = datetime.utcnow()
        record_action(
            self.db, "ownership_changed", property_obj.status,
            property_id=property_obj.id, owner_id=transfer.new_owner_id, actor=admin,
            notes=f"Ownership moved from user {transfer.previous_owner_id} to user {transfer.new_owner_id}",
            metadata={"transfer_id": transfer.id, "previous_owner_id": transfer.previous_owner_id},
        )

        await self.notifications.transfer_completed(transfer, property_obj)
        return transfer
