"""Authentication router"""
from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional
from datetime import datetime
import logging

from land_registry.config import settings
from land_registry.database import get_db
from land_registry.services.auth import AuthService
from land_registry.services.email import get_email_service
from land_registry.exceptions import AuthenticationError, AuthorizationError, ValidationError
from land_registry.models.user import User, UserRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login")


# Request/Response Models
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    national_id: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: Optional[str]
    phone_number: Optional[str]
    national_id: Optional[str]
    role: UserRole
    is_active: bool
    created_at: datetime
    last_login: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    national_id: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse


class PasswordChangeRequest(BaseModel):
    old_password: str
    new_password: str = Field(..., min_length=8)


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str = Field(..., min_length=8)


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=AuthService.create_access_token(data={"sub": str(user.id), "role": user.role.value}),
        refresh_token=AuthService.create_refresh_token(data={"sub": str(user.id)}),
        user=UserResponse.model_validate(user),
    )


# Dependencies
async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current authenticated user from JWT token"""
    try:
        payload = AuthService.decode_token(token)
        user_id = int(payload.get("sub"))
        token_type = payload.get("type")

        if token_type != "access":
            raise AuthenticationError(message="Invalid token type")

    except (TypeError, ValueError, KeyError):
        raise AuthenticationError(message="Invalid token")

    auth_service = AuthService(db)
    user = await auth_service.get_user_by_id(user_id)

    if not user:
        raise AuthenticationError(message="User not found")

    if not user.is_active:
        raise AuthenticationError(message="Account is disabled")

    return user


async def get_current_officer(user: User = Depends(get_current_user)) -> User:
    """Require a land officer or admin"""
    if not user.is_officer:
        raise AuthorizationError(message="Land officer access required")
    return user


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    """Require admin user"""
    if not user.is_admin:
        raise AuthorizationError(message="Admin access required")
    return user


# Endpoints
@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: UserCreate,
    db: AsyncSession = Depends(get_db)
):
    """Register a new property owner account"""
    auth_service = AuthService(db)
    user = await auth_service.create_user(
        email=request.email,
        password=request.password,
        full_name=request.full_name,
        phone_number=request.phone_number,
        national_id=request.national_id,
    )
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db)
):
    """Login and get access token"""
    auth_service = AuthService(db)
    user = await auth_service.authenticate_user(form_data.username, form_data.password)
    logger.info(f"User {user.id} logged in")
    return _token_response(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    refresh_token: str,
    db: AsyncSession = Depends(get_db)
):
    """Refresh access token using refresh token"""
    payload = AuthService.decode_token(refresh_token)
    if payload.get("type") != "refresh":
        raise AuthenticationError(message="Invalid token type")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthenticationError(message="Invalid token")

    auth_service = AuthService(db)
    user = await auth_service.get_user_by_id(user_id)

    if not user or not user.is_active:
        raise AuthenticationError(message="Invalid user")

    return _token_response(user)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current user profile"""
    return UserResponse.model_validate(current_user)


@router.put("/me", response_model=UserResponse)
async def update_me(
    request: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update current user profile"""
    user = await AuthService(db).update_profile(
        current_user,
        full_name=request.full_name,
        phone_number=request.phone_number,
        national_id=request.national_id,
    )
    return UserResponse.model_validate(user)


@router.post("/change-password")
async def change_password(
    request: PasswordChangeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Change current user password"""
    auth_service = AuthService(db)
    await auth_service.change_password(
        user=current_user,
        old_password=request.old_password,
        new_password=request.new_password
    )
    return {"message": "Password changed successfully"}


@router.post("/forgot-password")
async def forgot_password(
    request: PasswordResetRequest,
    db: AsyncSession = Depends(get_db)
):
    """Request password reset email"""
    auth_service = AuthService(db)
    token = await auth_service.generate_reset_token(request.email)

    # Always return success to prevent email enumeration
    if token:
        email_service = get_email_service()
        if email_service.is_configured():
            email_sent = email_service.send_password_reset_email(
                to_email=request.email,
                reset_token=token
            )
            if not email_sent:
                logger.warning(f"Failed to send password reset email to {request.email}")
        else:
            # Log token in development when email is not configured
            logger.info(
                f"Email not configured. Password reset token for {request.email}: {token}"
            )

    return {"message": "If the email exists, a reset link has been sent"}


@router.post("/reset-password")
async def reset_password(
    request: PasswordResetConfirm,
    db: AsyncSession = Depends(get_db)
):
    """Reset password using token"""
    auth_service = AuthService(db)
    success = await auth_service.reset_password(request.token, request.new_password)
    if not success:
        raise ValidationError(message="Invalid or expired reset token")
    return {"message": "Password reset successfully"}
