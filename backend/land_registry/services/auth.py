"""Authentication service"""
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
import logging
import secrets

from land_registry.config import settings
from land_registry.models.user import User, UserRole
from land_registry.exceptions import AuthenticationError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


# Password hashing context - argon2 has no 72-byte input limit
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return pwd_context.hash(password)


def validate_password_strength(password: str) -> None:
    """Validate password meets requirements"""
    errors = []

    if len(password) < settings.PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters")

    if settings.PASSWORD_REQUIRE_UPPERCASE and not any(c.isupper() for c in password):
        errors.append("Password must contain at least one uppercase letter")

    if settings.PASSWORD_REQUIRE_LOWERCASE and not any(c.islower() for c in password):
        errors.append("Password must contain at least one lowercase letter")

    if settings.PASSWORD_REQUIRE_DIGIT and not any(c.isdigit() for c in password):
        errors.append("Password must contain at least one digit")

    if settings.PASSWORD_REQUIRE_SPECIAL:
        special_chars = "!@#$%^&*()_+-=[]{}|;':\",./<>?"
        if not any(c in special_chars for c in password):
            errors.append("Password must contain at least one special character")

    if errors:
        raise ValidationError(message="Password does not meet requirements", details={"errors": errors})


class AuthService:
    """Authentication and account management"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def authenticate_user(self, email: str, password: str) -> User:
        """Authenticate a user by email and password"""
        user = await self.get_user_by_email(email)

        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationError(message="Invalid email or password")

        if not user.is_active:
            raise AuthenticationError(message="Account is disabled")

        user.last_login = datetime.utcnow()
        await self.db.commit()

        return user

    async def create_user(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        phone_number: Optional[str] = None,
        national_id: Optional[str] = None,
        role: UserRole = UserRole.USER,
    ) -> User:
        """Create a new user"""
        validate_password_strength(password)

        if await self.get_user_by_email(email):
            raise ConflictError(message="Email already registered")

        user = User(
            email=email.lower(),
            hashed_password=get_password_hash(password),
            full_name=full_name,
            phone_number=phone_number,
            national_id=national_id,
            role=role,
        )

        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"User {user.id} created with role {role.value}")
        return user

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID"""
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email"""
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def require_user(self, user_id: int) -> User:
        user = await self.get_user_by_id(user_id)
        if not user:
            raise NotFoundError(message="User not found")
        return user

    async def list_users(
        self,
        role: Optional[UserRole] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[User], int]:
        query = select(User)
        count_query = select(func.count(User.id))
        if role:
            query = query.where(User.role == role)
            count_query = count_query.where(User.role == role)
        if search:
            pattern = f"%{search.lower()}%"
            condition = func.lower(User.email).like(pattern) | func.lower(User.full_name).like(pattern)
            query = query.where(condition)
            count_query = count_query.where(condition)

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(query.order_by(User.created_at.desc()).offset(offset).limit(limit))
        return list(result.scalars().all()), total

    async def update_profile(
        self,
        user: User,
        full_name: Optional[str] = None,
        phone_number: Optional[str] = None,
        national_id: Optional[str] = None,
    ) -> User:
        if full_name is not None:
            user.full_name = full_name
        if phone_number is not None:
            user.phone_number = phone_number
        if national_id is not None:
            user.national_id = national_id
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def set_role(self, user: User, role: UserRole, acting_admin: User) -> User:
        if user.id == acting_admin.id and role != UserRole.ADMIN:
            raise ValidationError(message="Administrators cannot remove their own admin role")
        user.role = role
        await self.db.commit()
        await self.db.refresh(user)
        logger.info(f"User {user.id} role set to {role.value} by admin {acting_admin.id}")
        return user

    async def set_active(self, user: User, is_active: bool, acting_admin: User) -> User:
        if user.id == acting_admin.id and not is_active:
            raise ValidationError(message="Administrators cannot deactivate their own account")
        user.is_active = is_active
        await self.db.commit()
        await self.db.refresh(user)
        logger.info(f"User {user.id} {'activated' if is_active else 'deactivated'} by admin {acting_admin.id}")
        return user

    async def change_password(self, user: User, old_password: str, new_password: str) -> None:
        """Change user password"""
        if not verify_password(old_password, user.hashed_password):
            raise AuthenticationError(message="Current password is incorrect")

        validate_password_strength(new_password)

        user.hashed_password = get_password_hash(new_password)
        await self.db.commit()

    async def generate_reset_token(self, email: str) -> Optional[str]:
        """Generate password reset token"""
        user = await self.get_user_by_email(email)
        if not user:
            return None

        token = secrets.token_urlsafe(32)
        user.reset_token = token
        user.reset_token_expires = datetime.utcnow() + timedelta(hours=24)
        await self.db.commit()

        return token

    async def reset_password(self, token: str, new_password: str) -> bool:
        """Reset password using token"""
        result = await self.db.execute(
            select(User).where(
                User.reset_token == token,
                User.reset_token_expires > datetime.utcnow()
            )
        )
        user = result.scalar_one_or_none()

        if not user:
            return False

        validate_password_strength(new_password)

        user.hashed_password = get_password_hash(new_password)
        user.reset_token = None
        user.reset_token_expires = None
        await self.db.commit()

        return True

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create JWT access token"""
        to_encode = data.copy()
        expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
        to_encode.update({"exp": expire, "type": "access"})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def create_refresh_token(data: dict) -> str:
        """Create JWT refresh token"""
        to_encode = data.copy()
        expire = datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        to_encode.update({"exp": expire, "type": "refresh"})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> dict:
        """Decode and validate JWT token"""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
            return payload
        except JWTError:
            raise AuthenticationError(message="Invalid or expired token")
