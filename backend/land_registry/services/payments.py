"""Payment Service

Initiates registration payments on the simulated gateway, confirms them
and keeps the property's payment flag and status in step with the payment
outcome.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from land_registry.exceptions import AuthorizationError, InvalidTransitionError, NotFoundError, ValidationError
from land_registry.models.document import Document
from land_registry.models.payment import Currency, Payment, PaymentMethod, PaymentStatus, PaymentType
from land_registry.models.property import Property, PropertyStatus
from land_registry.models.transfer import PropertyTransfer, TransferStatus
from land_registry.models.user import User
from land_registry.services import workflow
from land_registry.services.fees import FeeBreakdown, calculate_registration_fee, calculate_transfer_fee
from land_registry.services.notifications import NotificationService
from land_registry.services.payment_gateway import GatewayInitResult, SimulatedPaymentGateway
from land_registry.services.timeline import record_action
from land_registry.services.workflow import WorkflowEvent

logger = logging.getLogger(__name__)


MANUAL_PAYMENT_METHODS = (PaymentMethod.BANK_TRANSFER, PaymentMethod.CASH)


def registration_fee_for(property_obj: Property, discounts: Optional[Dict[str, bool]] = None) -> FeeBreakdown:
    return calculate_registration_fee(
        property_obj.property_type.value,
        property_obj.area,
        property_obj.sub_city,
        **(discounts or {}),
    )


class PaymentService:
    """Payment operations for one database session"""

    def __init__(self, db: AsyncSession, gateway: SimulatedPaymentGateway):
        self.db = db
        self.gateway = gateway
        self.notifications = NotificationService(db)

    async def get(self, payment_id: int) -> Payment:
        result = await self.db.execute(select(Payment).where(Payment.id == payment_id))
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError(message="Payment not found")
        return payment

    async def get_by_transaction(self, transaction_id: str) -> Payment:
        result = await self.db.execute(select(Payment).where(Payment.transaction_id == transaction_id))
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError(message="Payment not found", details={"transaction_id": transaction_id})
        return payment

    async def _property(self, property_id: int) -> Property:
        result = await self.db.execute(select(Property).where(Property.id == property_id))
        property_obj = result.scalar_one_or_none()
        if not property_obj:
            raise NotFoundError(message="Property not found")
        return property_obj

    async def list_for_property(self, property_id: int) -> List[Payment]:
        result = await self.db.execute(
            select(Payment).where(Payment.property_id == property_id).order_by(Payment.payment_date.desc())
        )
        return list(result.scalars().all())

    async def list_for_user(self, user_id: int) -> List[Payment]:
        result = await self.db.execute(
            select(Payment).where(Payment.user_id == user_id).order_by(Payment.payment_date.desc())
        )
        return list(result.scalars().all())

    async def list_all(
        self,
        status: Optional[PaymentStatus] = None,
        method: Optional[PaymentMethod] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Payment], int]:
        query = select(Payment)
        count_query = select(func.count(Payment.id))
        if status:
            query = query.where(Payment.status == status)
            count_query = count_query.where(Payment.status == status)
        if method:
            query = query.where(Payment.payment_method == method)
            count_query = count_query.where(Payment.payment_method == method)

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(query.order_by(Payment.payment_date.desc()).offset(offset).limit(limit))
        return list(result.scalars().all()), total

    def _ensure_payable(self, property_obj: Property) -> None:
        if not workflow.can_initiate_payment(
            property_obj.status, property_obj.documents_validated, property_obj.payment_completed
        ):
            if property_obj.payment_completed:
                message = "Payment has already been completed for this property"
            elif not property_obj.documents_validated:
                message = "All documents must be validated before payment"
            else:
                message = "Payment cannot be made in the property's current status"
            raise InvalidTransitionError(property_obj.status.value, WorkflowEvent.PAYMENT_INITIATED.value, message)

    async def cancel_open_payments(
        self,
        property_obj: Property,
        reason: str = "Superseded by a new payment attempt",
        payment_type: PaymentType = PaymentType.REGISTRATION_FEE,
        transfer_id: Optional[int] = None,
    ) -> int:
        """Cancel pending payments of one kind so at most one stays open"""
        query = select(Payment).where(
            Payment.property_id == property_obj.id,
            Payment.payment_type == payment_type,
            Payment.status == PaymentStatus.PENDING,
        )
        if transfer_id is not None:
            query = query.where(Payment.transfer_id == transfer_id)
        previous = list((await self.db.execute(query)).scalars().all())
        for payment in previous:
            payment.status = workflow.advance_payment(payment.status, PaymentStatus.CANCELLED)
            payment.failure_reason = reason
            if payment.transaction_id:
                self.gateway.cancel(payment.transaction_id, reason)
        if previous:
            logger.info(f"Cancelled {len(previous)} open {payment_type.value} payment(s) for property {property_obj.id}")
        return len(previous)

    async def _attempt_number(
        self,
        property_obj: Property,
        payment_type: PaymentType = PaymentType.REGISTRATION_FEE,
        transfer_id: Optional[int] = None,
    ) -> int:
        query = select(func.count(Payment.id)).where(
            Payment.property_id == property_obj.id,
            Payment.payment_type == payment_type,
        )
        if transfer_id is not None:
            query = query.where(Payment.transfer_id == transfer_id)
        return ((await self.db.execute(query)).scalar() or 0) + 1

    def _move_to_payment_pending(self, property_obj: Property) -> PropertyStatus:
        previous = property_obj.status
        property_obj.status = workflow.next_status(
            property_obj.status,
            WorkflowEvent.PAYMENT_INITIATED,
            documents_validated=property_obj.documents_validated,
        )
        property_obj.last_updated = datetime.utcnow()
        return previous

    async def _open_gateway_payment(
        self,
        property_obj: Property,
        user: User,
        method: PaymentMethod,
        fee: FeeBreakdown,
        payment_type: PaymentType,
        description: str,
        transfer_id: Optional[int] = None,
        customer_phone: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> Tuple[Payment, GatewayInitResult]:
        channel = self.gateway.get_channel(method)
        await self.cancel_open_payments(property_obj, payment_type=payment_type, transfer_id=transfer_id)
        attempt = await self._attempt_number(property_obj, payment_type, transfer_id)
        reference = f"PROP-{property_obj.id}-{attempt}"
        if transfer_id is not None:
            reference = f"TRF-{transfer_id}-{attempt}"

        init = self.gateway.initialize(
            method=channel.method,
            amount=fee.total_amount,
            currency=fee.currency,
            reference=reference,
            customer_name=user.full_name,
            customer_phone=customer_phone or user.phone_number,
            customer_email=customer_email or user.email,
            description=description,
        )

        payment = Payment(
            property_id=property_obj.id,
            user_id=user.id,
            transfer_id=transfer_id,
            amount=fee.total_amount,
            currency=Currency(fee.currency),
            payment_type=payment_type,
            payment_method=channel.method,
            base_fee=fee.base_fee,
            processing_fee=fee.processing_fee,
            tax_amount=fee.tax_amount,
            discount_amount=fee.discount_amount,
            total_amount=fee.total_amount,
            transaction_id=init.transaction_id,
            session_id=init.session_id,
            expires_at=init.expires_at,
            method_details={"payment_url": init.payment_url, "instructions": init.instructions},
            status=PaymentStatus.PENDING,
            attempt_count=attempt,
        )
        self.db.add(payment)
        await self.db.flush()
        logger.info(
            f"Payment {payment.id} ({payment_type.value}) initiated via {channel.method.value} "
            f"for property {property_obj.id} (attempt {attempt})"
        )
        return payment, init

    async def initiate(
        self,
        property_obj: Property,
        user: User,
        method: PaymentMethod,
        discounts: Optional[Dict[str, bool]] = None,
        customer_phone: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> Tuple[Payment, GatewayInitResult]:
        """Open a gateway session for the registration fee"""
        self._ensure_payable(property_obj)
        channel = self.gateway.get_channel(method)
        fee = registration_fee_for(property_obj, discounts)

        payment, init = await self._open_gateway_payment(
            property_obj, user, method, fee, PaymentType.REGISTRATION_FEE,
            description=f"Registration fee for property {property_obj.plot_number}",
            customer_phone=customer_phone,
            customer_email=customer_email,
        )

        previous = self._move_to_payment_pending(property_obj)
        record_action(
            self.db, "payment_initiated", property_obj.status,
            property_id=property_obj.id, owner_id=property_obj.owner_id, actor=user,
            previous_status=previous,
            notes=f"{channel.display_name} payment initiated - Amount: {fee.total_amount} {fee.currency}",
            metadata={"payment_id": payment.id, "transaction_id": init.transaction_id, "attempt": payment.attempt_count},
        )
        return payment, init

    async def initiate_transfer_fee(
        self,
        transfer: PropertyTransfer,
        user: User,
        method: PaymentMethod,
        customer_phone: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> Tuple[Payment, GatewayInitResult]:
        """Open a gateway session for an approved transfer's fee"""
        if transfer.status != TransferStatus.APPROVED or transfer.fee_paid:
            raise InvalidTransitionError(
                transfer.status.value, "transfer_fee_initiated",
                "Transfer fees are paid once, after the transfer is approved",
            )
        property_obj = await self._property(transfer.property_id)
        fee = calculate_transfer_fee(transfer.transfer_value)

        payment, init = await self._open_gateway_payment(
            property_obj, user, method, fee, PaymentType.TRANSFER_FEE,
            description=f"Transfer fee for property {property_obj.plot_number}",
            transfer_id=transfer.id,
            customer_phone=customer_phone,
            customer_email=customer_email,
        )
        record_action(
            self.db, "transfer_payment_initiated", property_obj.status,
            property_id=property_obj.id, owner_id=property_obj.owner_id, actor=user,
            notes=f"Transfer fee payment initiated - Amount: {fee.total_amount} {fee.currency}",
            metadata={"payment_id": payment.id, "transfer_id": transfer.id, "transaction_id": init.transaction_id},
        )
        return payment, init

    async def _transfer(self, transfer_id: int) -> PropertyTransfer:
        result = await self.db.execute(select(PropertyTransfer).where(PropertyTransfer.id == transfer_id))
        transfer = result.scalar_one_or_none()
        if not transfer:
            raise NotFoundError(message="Transfer not found")
        return transfer

    async def _settlement_target(self, payment: Payment) -> Tuple[Property, Optional[PropertyTransfer]]:
        """Refuse to settle a payment whose property or transfer stopped waiting for it"""
        property_obj = await self._property(payment.property_id)
        transfer = None
        if payment.payment_type == PaymentType.REGISTRATION_FEE:
            if property_obj.payment_completed or not workflow.awaits_registration_payment(property_obj.status):
                raise InvalidTransitionError(
                    property_obj.status.value, WorkflowEvent.PAYMENT_COMPLETED.value,
                    "The property is no longer awaiting this payment",
                )
        elif payment.transfer_id is not None:
            transfer = await self._transfer(payment.transfer_id)
            if transfer.status != TransferStatus.APPROVED or transfer.fee_paid:
                raise InvalidTransitionError(
                    transfer.status.value, "transfer_fee_paid",
                    "The transfer is no longer awaiting this payment",
                )
        return property_obj, transfer

    async def confirm(self, payment: Payment, user: User, details: Optional[Dict[str, Any]] = None) -> Payment:
        """Run the gateway for a pending payment and apply the outcome"""
        if payment.payment_method == PaymentMethod.CASH or not payment.transaction_id:
            raise ValidationError(message="Cash payments are confirmed by a land officer")

        payment.status = workflow.advance_payment(payment.status, PaymentStatus.PROCESSING)
        property_obj, transfer = await self._settlement_target(payment)
        result = self.gateway.process(payment.transaction_id, details)

        if result.success:
            payment.method_details = {
                **(payment.method_details or {}),
                **result.details,
                "confirmation_code": result.confirmation_code,
            }
            await self._complete(payment, user, property_obj, transfer)
        else:
            await self._fail(payment, user, result.error or "Payment failed", property_obj)
        return payment

    async def _complete(
        self,
        payment: Payment,
        actor: User,
        property_obj: Property,
        transfer: Optional[PropertyTransfer] = None,
    ) -> None:
        payment.status = workflow.advance_payment(payment.status, PaymentStatus.COMPLETED)
        payment.completed_date = datetime.utcnow()
        payment.failure_reason = None
        payment.generate_receipt_number()

        previous = property_obj.status
        action = "payment_completed"
        if payment.payment_type == PaymentType.REGISTRATION_FEE:
            property_obj.status = workflow.next_status(property_obj.status, WorkflowEvent.PAYMENT_COMPLETED)
            property_obj.payment_completed = True
            property_obj.last_updated = datetime.utcnow()
        elif transfer is not None:
            transfer.fee_paid = True
            transfer.last_updated = datetime.utcnow()
            action = "transfer_fee_paid"

        record_action(
            self.db, action, property_obj.status,
            property_id=property_obj.id, owner_id=property_obj.owner_id, actor=actor,
            previous_status=previous,
            notes=f"Payment completed - Receipt: {payment.receipt_number}",
            metadata={"payment_id": payment.id, "transaction_id": payment.transaction_id,
                      "transfer_id": payment.transfer_id},
        )
        logger.info(f"Payment {payment.id} completed, receipt {payment.receipt_number}")

        await self.notifications.payment_success(payment, property_obj)
        if payment.payment_type == PaymentType.REGISTRATION_FEE and property_obj.documents_validated:
            await self.notifications.property_ready_for_approval(property_obj)

    async def _fail(self, payment: Payment, actor: User, reason: str, property_obj: Property) -> None:
        payment.status = workflow.advance_payment(payment.status, PaymentStatus.FAILED)
        payment.failure_reason = reason

        record_action(
            self.db, "payment_failed", property_obj.status,
            property_id=property_obj.id, owner_id=property_obj.owner_id, actor=actor,
            notes=f"Payment failed: {reason}",
            metadata={"payment_id": payment.id, "transaction_id": payment.transaction_id},
        )
        logger.warning(f"Payment {payment.id} failed: {reason}")
        await self.notifications.payment_failed(payment, property_obj, reason)

    async def record_manual(
        self,
        property_obj: Property,
        user: User,
        payment_method: PaymentMethod,
        payment_type: PaymentType = PaymentType.REGISTRATION_FEE,
        amount: Optional[float] = None,
        currency: Currency = Currency.ETB,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Payment:
        """Record an offline payment that a land officer verifies later"""
        payment_method = PaymentMethod(payment_method)
        if payment_method not in MANUAL_PAYMENT_METHODS:
            raise ValidationError(
                message="Only bank transfer and cash payments can be recorded manually",
                details={"payment_method": payment_method.value},
            )
        if payment_method != PaymentMethod.CASH and not (transaction_id and transaction_id.strip()):
            raise ValidationError(message="Transaction ID is required for non-cash payments")
        if payment_type == PaymentType.TRANSFER_FEE:
            raise ValidationError(message="Transfer fees are paid through the transfer they belong to")

        fee = None
        if payment_type == PaymentType.REGISTRATION_FEE:
            self._ensure_payable(property_obj)
            await self.cancel_open_payments(property_obj)
            fee = registration_fee_for(property_obj)
            amount = fee.total_amount
        elif amount is None or amount <= 0:
            raise ValidationError(message="Payment amount must be positive", details={"amount": amount})

        payment = Payment(
            property_id=property_obj.id,
            user_id=user.id,
            amount=amount,
            currency=currency,
            payment_type=payment_type,
            payment_method=payment_method,
            base_fee=fee.base_fee if fee else 0.0,
            processing_fee=fee.processing_fee if fee else 0.0,
            tax_amount=fee.tax_amount if fee else 0.0,
            discount_amount=fee.discount_amount if fee else 0.0,
            total_amount=amount,
            transaction_id=transaction_id.strip() if transaction_id else None,
            method_details={},
            status=PaymentStatus.PENDING,
            attempt_count=await self._attempt_number(property_obj) if fee else 1,
            notes=notes,
        )
        self.db.add(payment)
        await self.db.flush()

        previous = property_obj.status
        if fee:
            self._move_to_payment_pending(property_obj)
        record_action(
            self.db, "payment_made", property_obj.status,
            property_id=property_obj.id, owner_id=property_obj.owner_id, actor=user,
            previous_status=previous,
            notes=f"Payment of {amount} {currency.value} made for {payment_type.value}",
            metadata={"payment_id": payment.id},
        )
        return payment

    async def verify(self, payment: Payment, officer: User, notes: Optional[str] = None) -> Payment:
        """Officer confirms an offline payment"""
        if payment.status == PaymentStatus.PENDING:
            payment.status = workflow.advance_payment(payment.status, PaymentStatus.PROCESSING)
        property_obj, transfer = await self._settlement_target(payment)
        payment.verified_by = officer.id
        payment.verification_date = datetime.utcnow()
        payment.notes = notes or payment.notes
        await self._complete(payment, officer, property_obj, transfer)
        return payment

    async def reject(self, payment: Payment, officer: User, reason: str) -> Payment:
        if not (reason and reason.strip()):
            raise ValidationError(message="A reason is required to reject a payment")
        payment.verified_by = officer.id
        payment.verification_date = datetime.utcnow()
        payment.notes = reason
        await self._fail(payment, officer, reason, await self._property(payment.property_id))
        return payment

    async def refund(self, payment: Payment, admin: User, reason: str, amount: Optional[float] = None) -> Payment:
        if not (reason and reason.strip()):
            raise ValidationError(message="A reason is required for refunds")
        refund_amount = payment.amount if amount is None else amount
        if refund_amount <= 0 or refund_amount > payment.amount:
            raise ValidationError(
                message="Refund amount must be positive and not exceed the paid amount",
                details={"amount": refund_amount, "paid": payment.amount},
            )

        property_obj = await self._property(payment.property_id)
        if payment.payment_type == PaymentType.REGISTRATION_FEE and property_obj.status not in (
            PropertyStatus.APPROVED, PropertyStatus.REJECTED
        ):
            raise InvalidTransitionError(
                property_obj.status.value, "payment_refunded",
                "Registration fees can only be refunded once the application is decided",
            )

        payment.status = workflow.advance_payment(payment.status, PaymentStatus.REFUNDED)
        payment.refund_reason = reason
        payment.refund_amount = refund_amount
        payment.refund_date = datetime.utcnow()
        payment.refunded_by = admin.id
        if payment.payment_type == PaymentType.REGISTRATION_FEE and property_obj.status == PropertyStatus.REJECTED:
            # A resubmitted application pays again
            property_obj.payment_completed = False

        record_action(
            self.db, "payment_refunded", property_obj.status,
            property_id=property_obj.id, owner_id=property_obj.owner_id, actor=admin,
            notes=f"Refund of {refund_amount} {payment.currency.value}: {reason}",
            metadata={"payment_id": payment.id},
        )
        logger.info(f"Payment {payment.id} refunded ({refund_amount})")
        return payment

    async def requirements(self, property_obj: Property) -> Dict[str, Any]:
        """Where the property stands on payment, and what comes next"""
        payments = await self.list_for_property(property_obj.id)
        doc_count = (await self.db.execute(
            select(func.count(Document.id)).where(Document.property_id == property_obj.id)
        )).scalar() or 0

        completed = [p for p in payments if p.status == PaymentStatus.COMPLETED]
        workflow_status = {
            "documents_submitted": doc_count > 0,
            "documents_validated": property_obj.documents_validated,
            "payment_required": property_obj.documents_validated and not property_obj.payment_completed,
            "payment_completed": property_obj.payment_completed,
            "ready_for_approval": property_obj.documents_validated and property_obj.payment_completed,
            "approved": property_obj.status == PropertyStatus.APPROVED,
        }
        fee = registration_fee_for(property_obj)
        return {
            "property": {
                "id": property_obj.id,
                "plot_number": property_obj.plot_number,
                "status": property_obj.status.value,
                "property_type": property_obj.property_type.value,
                "area": property_obj.area,
            },
            "workflow_status": workflow_status,
            "payment_info": {
                "required": workflow_status["payment_required"],
                "completed": property_obj.payment_completed,
                "amount_due": fee.total_amount if workflow_status["payment_required"] else 0.0,
                "currency": fee.currency,
                "total_paid": round(sum(p.amount for p in completed), 2),
                "completed_payments": len(completed),
                "pending_payments": sum(1 for p in payments if p.status == PaymentStatus.PENDING),
                "failed_payments": sum(1 for p in payments if p.status == PaymentStatus.FAILED),
            },
            "next_steps": workflow.next_steps(
                doc_count > 0, property_obj.documents_validated, property_obj.payment_completed, property_obj.status
            ),
        }

    def ensure_access(self, payment: Payment, user: User) -> None:
        if payment.user_id != user.id and not user.is_officer:
            raise AuthorizationError(message="Not authorized to access this payment")
