"""Property transfers router"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional
from datetime import datetime

from land_registry.database import get_db
from land_registry.exceptions import AuthorizationError
from land_registry.models.payment import PaymentMethod
from land_registry.models.transfer import TransferStatus, TransferType
from land_registry.models.user import User
from land_registry.routers.auth import get_current_admin, get_current_officer, get_current_user
from land_registry.routers.payments import InitiatePaymentResponse, PaymentResponse, get_payment_service
from land_registry.services.payments import PaymentService
from land_registry.services.transfers import REASON_MAX_LENGTH, TransferService

router = APIRouter(prefix="/transfers", tags=["Transfers"])


class TransferCreate(BaseModel):
    property_id: int
    new_owner_email: EmailStr
    transfer_type: TransferType
    transfer_reason: str = Field(..., min_length=1, max_length=REASON_MAX_LENGTH)
    transfer_value: float = Field(0.0, ge=0)


class TransferResponse(BaseModel):
    id: int
    property_id: int
    previous_owner_id: int
    new_owner_id: int
    transfer_type: TransferType
    transfer_reason: str
    transfer_value: float
    currency: str
    transfer_tax: float
    stamp_duty: float
    processing_fee: float
    total_fee: float
    fee_paid: bool
    status: TransferStatus
    reviewed_by: Optional[int]
    review_notes: Optional[str]
    rejection_reason: Optional[str]
    cancellation_reason: Optional[str]
    initiation_date: datetime
    completion_date: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class TransferListResponse(BaseModel):
    transfers: List[TransferResponse]
    total: int


class CancelTransferRequest(BaseModel):
    reason: str = ""


class ReviewTransferRequest(BaseModel):
    notes: Optional[str] = None


class RejectTransferRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class TransferPaymentRequest(BaseModel):
    payment_method: PaymentMethod
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None


@router.post("", response_model=TransferResponse, status_code=status.HTTP_201_CREATED)
async def request_transfer(
    request: TransferCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Start moving one of the user's approved properties to another registered user"""
    transfer = await TransferService(db).request(
        current_user,
        property_id=request.property_id,
        new_owner_email=request.new_owner_email,
        transfer_type=request.transfer_type,
        transfer_reason=request.transfer_reason,
        transfer_value=request.transfer_value,
    )
    await db.commit()
    await db.refresh(transfer)
    return TransferResponse.model_validate(transfer)


@router.get("/my-transfers", response_model=List[TransferResponse])
async def list_my_transfers(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return [TransferResponse.model_validate(t) for t in await TransferService(db).list_for_user(current_user)]


@router.get("", response_model=TransferListResponse)
async def list_transfers(
    status_filter: Optional[TransferStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    transfers, total = await TransferService(db).list_all(status=status_filter, limit=limit, offset=offset)
    return TransferListResponse(transfers=[TransferResponse.model_validate(t) for t in transfers], total=total)


@router.get("/{transfer_id}", response_model=TransferResponse)
async def get_transfer(
    transfer_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return TransferResponse.model_validate(await TransferService(db).get_for_user(transfer_id, current_user))


@router.put("/{transfer_id}/cancel", response_model=TransferResponse)
async def cancel_transfer(
    transfer_id: int,
    request: CancelTransferRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = TransferService(db)
    transfer = await service.cancel(await service.get_for_user(transfer_id, current_user), current_user, request.reason)
    await db.commit()
    await db.refresh(transfer)
    return TransferResponse.model_validate(transfer)


@router.put("/{transfer_id}/review", response_model=TransferResponse)
async def start_transfer_review(
    transfer_id: int,
    request: ReviewTransferRequest,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    service = TransferService(db)
    transfer = await service.start_review(await service.get(transfer_id), officer, request.notes)
    await db.commit()
    await db.refresh(transfer)
    return TransferResponse.model_validate(transfer)


@router.put("/{transfer_id}/approve", response_model=TransferResponse)
async def approve_transfer(
    transfer_id: int,
    request: ReviewTransferRequest,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    service = TransferService(db)
    transfer = await service.approve(await service.get(transfer_id), officer, request.notes)
    await db.commit()
    await db.refresh(transfer)
    return TransferResponse.model_validate(transfer)


@router.put("/{transfer_id}/reject", response_model=TransferResponse)
async def reject_transfer(
    transfer_id: int,
    request: RejectTransferRequest,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    service = TransferService(db)
    transfer = await service.reject(await service.get(transfer_id), officer, request.reason)
    await db.commit()
    await db.refresh(transfer)
    return TransferResponse.model_validate(transfer)


@router.post("/{transfer_id}/pay", response_model=InitiatePaymentResponse, status_code=status.HTTP_201_CREATED)
async def pay_transfer_fee(
    transfer_id: int,
    request: TransferPaymentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service)
):
    """Open a payment session for the transfer fee; settle it through /payments/process"""
    transfer = await TransferService(db).get_for_user(transfer_id, current_user)
    if transfer.previous_owner_id != current_user.id:
        raise AuthorizationError(message="The transfer fee is paid by the current owner")
    payment, init = await payments.initiate_transfer_fee(
        transfer,
        current_user,
        request.payment_method,
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


@router.put("/{transfer_id}/complete", response_model=TransferResponse)
async def complete_transfer(
    transfer_id: int,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Change the property's owner"""
    service = TransferService(db)
    transfer = await service.complete(await service.get(transfer_id), admin)
    await db.commit()
    await db.refresh(transfer)
    return TransferResponse.model_validate(transfer)
