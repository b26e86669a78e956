"""Client configuration"""
from dataclasses import dataclass, field
from typing import Tuple


@dataclass
class ClientConfig:
    """Connection settings for LandRegistryClient"""

    base_url: str = "http://localhost:8000/api"

    # Timeout tiers in seconds
    default_timeout: float = 15.0
    dashboard_timeout: float = 5.0
    activity_timeout: float = 12.0
    upload_timeout: float = 60.0

    # Storage keys
    user_key: str = "user"
    token_key: str = "token"
    notifications_key: str = "notifications"

    # Checked locally before any upload request is sent
    max_upload_size_mb: int = 5
    allowed_extensions: Tuple[str, ...] = field(
        default_factory=lambda: (".pdf", ".jpg", ".jpeg", ".png", ".doc", ".docx")
    )
    allowed_mimetypes: Tuple[str, ...] = field(
        default_factory=lambda: (
            "application/pdf",
            "image/jpeg",
            "image/png",
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        )
    )

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024
