"""User administration router"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional

from land_registry.database import get_db
from land_registry.models.user import User, UserRole
from land_registry.routers.auth import UserResponse, get_current_admin, get_current_officer
from land_registry.services.auth import AuthService

router = APIRouter(prefix="/users", tags=["Users"])


class AdminUserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    role: UserRole = UserRole.LAND_OFFICER


class RoleUpdate(BaseModel):
    role: UserRole


class ActiveUpdate(BaseModel):
    is_active: bool


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int


@router.get("", response_model=UserListResponse)
async def list_users(
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """List user accounts"""
    users, total = await AuthService(db).list_users(role=role, search=search, limit=limit, offset=offset)
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users], total=total)


@router.get("/land-officers", response_model=List[UserResponse])
async def list_land_officers(
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    """List land officers, for dispute assignment"""
    users, _ = await AuthService(db).list_users(role=UserRole.LAND_OFFICER, limit=200)
    return [UserResponse.model_validate(u) for u in users if u.is_active]


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: AdminUserCreate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create an account with any role"""
    user = await AuthService(db).create_user(
        email=request.email,
        password=request.password,
        full_name=request.full_name,
        phone_number=request.phone_number,
        role=request.role,
    )
    return UserResponse.model_validate(user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    user = await AuthService(db).require_user(user_id)
    return UserResponse.model_validate(user)


@router.put("/{user_id}/role", response_model=UserResponse)
async def update_role(
    user_id: int,
    request: RoleUpdate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    service = AuthService(db)
    user = await service.set_role(await service.require_user(user_id), request.role, admin)
    return UserResponse.model_validate(user)


@router.put("/{user_id}/active", response_model=UserResponse)
async def update_active(
    user_id: int,
    request: ActiveUpdate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Activate or deactivate an account"""
    service = AuthService(db)
    user = await service.set_active(await service.require_user(user_id), request.is_active, admin)
    return UserResponse.model_validate(user)
