"""Application configuration using pydantic-settings"""
from functools import lru_cache
from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import field_validator
import logging

logger = logging.getLogger(__name__)

# Persistent development secret key - stable across restarts
# In production, this MUST be overridden via SECRET_KEY environment variable
_DEV_SECRET_KEY = "dev-secret-key-for-local-development-only-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Land Registry System"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # API
    API_PREFIX: str = "/api"
    ALLOWED_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    FRONTEND_URL: str = "http://localhost:5173"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./land_registry.db"
    DATABASE_ECHO: bool = False

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"
    CELERY_TASK_ALWAYS_EAGER: bool = False

    # JWT Authentication
    # Uses persistent dev key for stability; override with SECRET_KEY env var in production
    SECRET_KEY: str = _DEV_SECRET_KEY
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Password Requirements
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_REQUIRE_UPPERCASE: bool = True
    PASSWORD_REQUIRE_LOWERCASE: bool = True
    PASSWORD_REQUIRE_DIGIT: bool = True
    PASSWORD_REQUIRE_SPECIAL: bool = False

    # Storage
    STORAGE_PATH: str = "./storage"

    # File Upload Settings
    MAX_UPLOAD_SIZE_MB: int = 5  # Maximum file upload size in MB
    ALLOWED_UPLOAD_EXTENSIONS: str = ".pdf,.jpg,.jpeg,.png,.doc,.docx"
    ALLOWED_UPLOAD_MIMETYPES: str = (
        "application/pdf,image/jpeg,image/jpg,image/png,application/msword,"
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    )

    @property
    def max_upload_size_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    @property
    def allowed_extensions_list(self) -> List[str]:
        return [ext.strip().lower() for ext in self.ALLOWED_UPLOAD_EXTENSIONS.split(",")]

    @property
    def allowed_mimetypes_list(self) -> List[str]:
        return [mime.strip().lower() for mime in self.ALLOWED_UPLOAD_MIMETYPES.split(",")]

    # Fees (ETB)
    DEFAULT_CURRENCY: str = "ETB"
    REGISTRATION_PROCESSING_FEE: float = 550.0  # Fixed registration fee
    TRANSFER_PROCESSING_FEE: float = 300.0
    TRANSFER_TAX_RATE: float = 0.03
    STAMP_DUTY_RATE: float = 0.005
    MAX_DISCOUNT_RATE: float = 0.5

    # Simulated payment gateway
    PAYMENT_GATEWAY_SUCCESS_RATE: float = 1.0
    CBE_BIRR_SESSION_MINUTES: int = 30
    TELEBIRR_SESSION_MINUTES: int = 15
    CHAPA_SESSION_MINUTES: int = 30
    BANK_TRANSFER_SESSION_MINUTES: int = 1440

    # Reminders and cleanup
    PAYMENT_REMINDER_AFTER_DAYS: int = 7
    STALE_PAYMENT_HOURS: int = 24

    # Admin
    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None

    # Email/SMTP Settings
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_TLS: bool = True
    FROM_EMAIL: Optional[str] = None
    FROM_NAME: str = "Land Registry System"

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_secret_key(cls, v: str, info) -> str:
        environment = info.data.get("ENVIRONMENT", "development")
        if environment == "production":
            if v == _DEV_SECRET_KEY:
                raise ValueError(
                    "SECRET_KEY must be set via environment variable in production. "
                    "Do not use the default development key."
                )
            if len(v) < 32:
                raise ValueError("SECRET_KEY must be at least 32 characters in production")
        elif v == _DEV_SECRET_KEY:
            logger.warning(
                "Using default development SECRET_KEY. This is fine for development, "
                "but MUST be overridden in production via the SECRET_KEY environment variable."
            )
        return v

    @field_validator("PAYMENT_GATEWAY_SUCCESS_RATE")
    @classmethod
    def validate_success_rate(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("PAYMENT_GATEWAY_SUCCESS_RATE must be between 0 and 1")
        return v

    @property
    def allowed_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
