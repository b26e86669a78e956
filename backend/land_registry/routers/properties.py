"""Properties router"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from land_registry.database import get_db
from land_registry.models.property import PropertyStatus, PropertyType
from land_registry.models.user import User
from land_registry.routers.auth import get_current_user, get_current_officer
from land_registry.services.fees import calculate_registration_fee
from land_registry.services.payment_gateway import SimulatedPaymentGateway, get_payment_gateway
from land_registry.services.payments import PaymentService
from land_registry.services.properties import OFFICER_QUEUE_STATUSES, PropertyService

router = APIRouter(prefix="/properties", tags=["Properties"])


class PropertyCreate(BaseModel):
    plot_number: str = Field(..., min_length=1, max_length=50)
    property_type: PropertyType
    area: float = Field(..., gt=0)
    sub_city: str = Field(..., min_length=1, max_length=100)
    kebele: str = Field(..., min_length=1, max_length=100)
    street: Optional[str] = None
    house_number: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class PropertyUpdate(BaseModel):
    plot_number: Optional[str] = Field(None, min_length=1, max_length=50)
    property_type: Optional[PropertyType] = None
    area: Optional[float] = Field(None, gt=0)
    sub_city: Optional[str] = None
    kebele: Optional[str] = None
    street: Optional[str] = None
    house_number: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class PropertyResponse(BaseModel):
    id: int
    owner_id: int
    plot_number: str
    property_type: PropertyType
    area: float
    sub_city: str
    kebele: str
    street: Optional[str]
    house_number: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    status: PropertyStatus
    documents_validated: bool
    payment_completed: bool
    is_transferred: bool
    has_active_dispute: bool
    reviewed_by: Optional[int]
    review_notes: Optional[str]
    registration_date: datetime
    last_updated: datetime

    model_config = ConfigDict(from_attributes=True)


class PropertyDetailResponse(PropertyResponse):
    next_steps: List[Dict[str, Any]] = []


class PropertyListResponse(BaseModel):
    properties: List[PropertyResponse]
    total: int


class ReviewDecision(BaseModel):
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class UpdateRequest(BaseModel):
    notes: str = Field(..., min_length=1)


@router.post("", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED)
async def register_property(
    request: PropertyCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Register a new property application"""
    property_obj = await PropertyService(db).create(current_user, **request.model_dump())
    await db.commit()
    await db.refresh(property_obj)
    return PropertyResponse.model_validate(property_obj)


@router.get("/user", response_model=List[PropertyResponse])
async def list_my_properties(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the current user's properties"""
    properties = await PropertyService(db).list_for_owner(current_user.id)
    return [PropertyResponse.model_validate(p) for p in properties]


@router.get("", response_model=PropertyListResponse)
async def list_properties(
    status_filter: Optional[PropertyStatus] = Query(None, alias="status"),
    property_type: Optional[PropertyType] = None,
    sub_city: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    """List all properties with filters"""
    properties, total = await PropertyService(db).list_all(
        status=status_filter, property_type=property_type, sub_city=sub_city,
        search=search, limit=limit, offset=offset,
    )
    return PropertyListResponse(properties=[PropertyResponse.model_validate(p) for p in properties], total=total)


@router.get("/pending", response_model=PropertyListResponse)
async def list_pending_properties(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    """Properties waiting on a land officer"""
    properties, total = await PropertyService(db).list_all(
        statuses=OFFICER_QUEUE_STATUSES, limit=limit, offset=offset
    )
    return PropertyListResponse(properties=[PropertyResponse.model_validate(p) for p in properties], total=total)


@router.get("/{property_id}", response_model=PropertyDetailResponse)
async def get_property(
    property_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = PropertyService(db)
    property_obj = await service.get_for_user(property_id, current_user)
    response = PropertyDetailResponse.model_validate(property_obj)
    response.next_steps = await service.next_steps(property_obj)
    return response


@router.put("/{property_id}", response_model=PropertyResponse)
async def update_property(
    property_id: int,
    request: PropertyUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Edit a property; editing a rejected application resubmits it"""
    service = PropertyService(db)
    property_obj = await service.get_owned(property_id, current_user)
    await service.update(property_obj, current_user, request.model_dump(exclude_unset=True))
    await db.commit()
    await db.refresh(property_obj)
    return PropertyResponse.model_validate(property_obj)


@router.delete("/{property_id}")
async def delete_property(
    property_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = PropertyService(db)
    property_obj = await service.get_owned(property_id, current_user)
    await service.delete(property_obj, current_user)
    await db.commit()
    return {"message": "Property deleted successfully"}


@router.put("/{property_id}/review", response_model=PropertyResponse)
async def start_review(
    property_id: int,
    request: ReviewDecision,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    """Mark a paid property as under review"""
    service = PropertyService(db)
    property_obj = await service.start_review(await service.get(property_id), officer, request.notes)
    await db.commit()
    await db.refresh(property_obj)
    return PropertyResponse.model_validate(property_obj)


@router.put("/{property_id}/approve", response_model=PropertyResponse)
async def approve_property(
    property_id: int,
    request: ReviewDecision,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    """Approve a property with validated documents and a completed payment"""
    service = PropertyService(db)
    property_obj = await service.approve(await service.get(property_id), officer, request.notes)
    await db.commit()
    await db.refresh(property_obj)
    return PropertyResponse.model_validate(property_obj)


@router.put("/{property_id}/reject", response_model=PropertyResponse)
async def reject_property(
    property_id: int,
    request: RejectRequest,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db),
    gateway: SimulatedPaymentGateway = Depends(get_payment_gateway)
):
    service = PropertyService(db, gateway)
    property_obj = await service.reject(await service.get(property_id), officer, request.reason)
    await db.commit()
    await db.refresh(property_obj)
    return PropertyResponse.model_validate(property_obj)


@router.put("/{property_id}/request-update", response_model=PropertyResponse)
async def request_property_update(
    property_id: int,
    request: UpdateRequest,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    """Send the application back to the owner for changes"""
    service = PropertyService(db)
    property_obj = await service.request_update(await service.get(property_id), officer, request.notes)
    await db.commit()
    await db.refresh(property_obj)
    return PropertyResponse.model_validate(property_obj)


@router.get("/{property_id}/payment-requirements")
async def get_payment_requirements(
    property_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: SimulatedPaymentGateway = Depends(get_payment_gateway)
):
    """Workflow flags, amounts paid and next steps for a property"""
    property_obj = await PropertyService(db).get_for_user(property_id, current_user)
    return await PaymentService(db, gateway).requirements(property_obj)


@router.get("/{property_id}/fee")
async def get_registration_fee(
    property_id: int,
    first_time_owner: bool = False,
    veteran: bool = False,
    disability: bool = False,
    low_income: bool = False,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Registration fee breakdown for a property"""
    property_obj = await PropertyService(db).get_for_user(property_id, current_user)
    fee = calculate_registration_fee(
        property_obj.property_type.value,
        property_obj.area,
        property_obj.sub_city,
        first_time_owner=first_time_owner,
        veteran=veteran,
        disability=disability,
        low_income=low_income,
    )
    return fee.to_dict()


@router.get("/{property_id}/certificate")
async def get_certificate(
    property_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Registration certificate for an approved property"""
    service = PropertyService(db)
    return await service.certificate(await service.get_for_user(property_id, current_user))
