"""User model for authentication"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum
from datetime import datetime
from land_registry.database import Base
import enum


class UserRole(str, enum.Enum):
    """Roles recognised by the registry"""
    USER = "user"
    LAND_OFFICER = "landOfficer"
    ADMIN = "admin"


class User(Base):
    """User model for authentication and authorization"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # Authentication
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)

    # Profile
    full_name = Column(String(255), nullable=True)
    phone_number = Column(String(30), nullable=True)
    national_id = Column(String(50), nullable=True)

    # Status
    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False, index=True)
    is_active = Column(Boolean, default=True)

    # Password reset
    reset_token = Column(String(255), nullable=True)
    reset_token_expires = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_officer(self) -> bool:
        return self.role in (UserRole.LAND_OFFICER, UserRole.ADMIN)
