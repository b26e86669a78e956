"""Payments router"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from land_registry.database import get_db
from land_registry.models.payment import Currency, PaymentMethod, PaymentStatus, PaymentType
from land_registry.models.user import User
from land_registry.routers.auth import get_current_admin, get_current_officer, get_current_user
from land_registry.routers.properties import PropertyResponse
from land_registry.services.fees import calculate_transfer_fee
from land_registry.services.payment_gateway import SimulatedPaymentGateway, get_payment_gateway
from land_registry.services.payments import PaymentService
from land_registry.services.properties import PropertyService

router = APIRouter(prefix="/payments", tags=["Payments"])


class PaymentResponse(BaseModel):
    id: int
    property_id: int
    user_id: int
    transfer_id: Optional[int] = None
    amount: float
    currency: Currency
    payment_type: PaymentType
    payment_method: PaymentMethod
    status: PaymentStatus
    base_fee: float
    processing_fee: float
    tax_amount: float
    discount_amount: float
    total_amount: float
    transaction_id: Optional[str]
    receipt_number: Optional[str]
    method_details: Optional[Dict[str, Any]]
    session_id: Optional[str]
    expires_at: Optional[datetime]
    failure_reason: Optional[str]
    attempt_count: Optional[int]
    notes: Optional[str]
    verified_by: Optional[int]
    verification_date: Optional[datetime]
    refund_amount: Optional[float]
    refund_reason: Optional[str]
    refund_date: Optional[datetime]
    payment_date: datetime
    completed_date: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class PaymentListResponse(BaseModel):
    payments: List[PaymentResponse]
    total: int


class InitiatePaymentRequest(BaseModel):
    payment_method: PaymentMethod
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    first_time_owner: bool = False
    veteran: bool = False
    disability: bool = False
    low_income: bool = False


class InitiatePaymentResponse(BaseModel):
    payment: PaymentResponse
    transaction_id: Optional[str]
    payment_url: Optional[str]
    session_id: str
    expires_at: datetime
    instructions: List[str]


class ProcessPaymentRequest(BaseModel):
    """Channel specific confirmation details (account number, PIN, reference...)"""
    details: Dict[str, Any] = {}


class ProcessPaymentResponse(BaseModel):
    success: bool
    payment: PaymentResponse
    property: PropertyResponse
    error: Optional[str] = None


class ManualPaymentRequest(BaseModel):
    property_id: int
    payment_method: PaymentMethod
    payment_type: PaymentType = PaymentType.REGISTRATION_FEE
    amount: Optional[float] = Field(None, gt=0)
    currency: Currency = Currency.ETB
    transaction_id: Optional[str] = None
    notes: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    notes: Optional[str] = None


class RejectPaymentRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class RefundRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    amount: Optional[float] = Field(None, gt=0)


def get_payment_service(
    db: AsyncSession = Depends(get_db),
    gateway: SimulatedPaymentGateway = Depends(get_payment_gateway)
) -> PaymentService:
    return PaymentService(db, gateway)


@router.get("/methods")
async def list_payment_methods(gateway: SimulatedPaymentGateway = Depends(get_payment_gateway)):
    """Supported payment channels"""
    return [
        {
            "method": channel.method.value,
            "name": channel.display_name,
            "online": channel.online,
            "session_minutes": channel.session_minutes,
            "instructions": channel.instructions,
        }
        for channel in gateway.channels.values()
    ]


@router.get("/calculate/transfer")
async def calculate_transfer(
    transfer_value: float = Query(..., ge=0),
    current_user: User = Depends(get_current_user)
):
    """Fee breakdown for a property transfer of the given value"""
    return calculate_transfer_fee(transfer_value).to_dict()


@router.post("/initialize/{property_id}", response_model=InitiatePaymentResponse, status_code=status.HTTP_201_CREATED)
async def initiate_payment(
    property_id: int,
    request: InitiatePaymentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service)
):
    """Open a payment session for the registration fee"""
    property_obj = await PropertyService(db).get_owned(property_id, current_user)
    payment, init = await service.initiate(
        property_obj,
        current_user,
        request.payment_method,
        discounts={
            "first_time_owner": request.first_time_owner,
            "veteran": request.veteran,
            "disability": request.disability,
            "low_income": request.low_income,
        },
        customer_phone=request.customer_phone,
        customer_email=request.customer_email,
    )
    await db.commit()
    await db.refresh(payment)
    return InitiatePaymentResponse(
        payment=PaymentResponse.model_validate(payment),
        transaction_id=init.transaction_id,
        payment_url=init.payment_url,
        session_id=init.session_id,
        expires_at=init.expires_at,
        instructions=init.instructions,
    )


@router.post("/process/{transaction_id}", response_model=ProcessPaymentResponse)
async def process_payment(
    transaction_id: str,
    request: ProcessPaymentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service)
):
    """Complete a gateway payment with the customer's channel details"""
    payment = await service.get_by_transaction(transaction_id)
    service.ensure_access(payment, current_user)
    await service.confirm(payment, current_user, request.details)
    await db.commit()
    await db.refresh(payment)

    property_obj = await PropertyService(db).get(payment.property_id)
    return ProcessPaymentResponse(
        success=payment.status == PaymentStatus.COMPLETED,
        payment=PaymentResponse.model_validate(payment),
        property=PropertyResponse.model_validate(property_obj),
        error=payment.failure_reason,
    )


@router.get("/verify/{transaction_id}")
async def verify_transaction(
    transaction_id: str,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    """Gateway-side status of a transaction"""
    payment = await service.get_by_transaction(transaction_id)
    service.ensure_access(payment, current_user)
    return {
        "payment_id": payment.id,
        "payment_status": payment.status.value,
        "gateway": service.gateway.verify(transaction_id),
    }


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(
    request: ManualPaymentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service)
):
    """Record a bank transfer or cash payment for officer verification"""
    property_obj = await PropertyService(db).get_owned(request.property_id, current_user)
    payment = await service.record_manual(
        property_obj,
        current_user,
        payment_method=request.payment_method,
        payment_type=request.payment_type,
        amount=request.amount,
        currency=request.currency,
        transaction_id=request.transaction_id,
        notes=request.notes,
    )
    await db.commit()
    await db.refresh(payment)
    return PaymentResponse.model_validate(payment)


@router.get("/user", response_model=List[PaymentResponse])
async def list_my_payments(
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    return [PaymentResponse.model_validate(p) for p in await service.list_for_user(current_user.id)]


@router.get("/property/{property_id}", response_model=List[PaymentResponse])
async def list_property_payments(
    property_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service)
):
    await PropertyService(db).get_for_user(property_id, current_user)
    return [PaymentResponse.model_validate(p) for p in await service.list_for_property(property_id)]


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    payment_method: Optional[PaymentMethod] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    officer: User = Depends(get_current_officer),
    service: PaymentService = Depends(get_payment_service)
):
    """All payments, for land officers"""
    payments, total = await service.list_all(status=status_filter, method=payment_method, limit=limit, offset=offset)
    return PaymentListResponse(payments=[PaymentResponse.model_validate(p) for p in payments], total=total)


@router.get("/pending", response_model=PaymentListResponse)
async def list_pending_payments(
    officer: User = Depends(get_current_officer),
    service: PaymentService = Depends(get_payment_service)
):
    payments, total = await service.list_all(status=PaymentStatus.PENDING, limit=200)
    return PaymentListResponse(payments=[PaymentResponse.model_validate(p) for p in payments], total=total)


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    payment = await service.get(payment_id)
    service.ensure_access(payment, current_user)
    return PaymentResponse.model_validate(payment)


@router.get("/{payment_id}/receipt")
async def get_receipt(
    payment_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service)
):
    """Receipt for a completed payment"""
    payment = await service.get(payment_id)
    service.ensure_access(payment, current_user)
    if payment.status not in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
        return {"payment_id": payment.id, "status": payment.status.value, "receipt_available": False}

    property_obj = await PropertyService(db).get(payment.property_id)
    return {
        "receipt_available": True,
        "receipt_number": payment.receipt_number,
        "payment_id": payment.id,
        "transaction_id": payment.transaction_id,
        "plot_number": property_obj.plot_number,
        "payment_type": payment.payment_type.value,
        "payment_method": payment.payment_method.value,
        "base_fee": payment.base_fee,
        "processing_fee": payment.processing_fee,
        "tax_amount": payment.tax_amount,
        "discount_amount": payment.discount_amount,
        "total_amount": payment.total_amount,
        "currency": payment.currency.value,
        "completed_date": payment.completed_date,
        "status": payment.status.value,
    }


@router.put("/{payment_id}/verify", response_model=PaymentResponse)
async def verify_payment(
    payment_id: int,
    request: VerifyPaymentRequest,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service)
):
    """Confirm an offline payment"""
    payment = await service.verify(await service.get(payment_id), officer, request.notes)
    await db.commit()
    await db.refresh(payment)
    return PaymentResponse.model_validate(payment)


@router.put("/{payment_id}/reject", response_model=PaymentResponse)
async def reject_payment(
    payment_id: int,
    request: RejectPaymentRequest,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service)
):
    payment = await service.reject(await service.get(payment_id), officer, request.reason)
    await db.commit()
    await db.refresh(payment)
    return PaymentResponse.model_validate(payment)


@router.post("/{payment_id}/refund", response_model=PaymentResponse)
async def refund_payment(
    payment_id: int,
    request: RefundRequest,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service)
):
    payment = await service.refund(await service.get(payment_id), admin, request.reason, request.amount)
    await db.commit()
    await db.refresh(payment)
    return PaymentResponse.model_validate(payment)
