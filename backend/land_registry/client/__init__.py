"""Python client for the land registry REST API"""
from land_registry.client.config import ClientConfig
from land_registry.client.errors import ApiError
from land_registry.client.session import AuthContext, ClientStorage
from land_registry.client.notifications import NotificationStore
from land_registry.client.api import LandRegistryClient, validate_upload
from land_registry.client.payments import PaymentFlow, PaymentOutcome

__all__ = [
    "ClientConfig",
    "ApiError",
    "AuthContext",
    "ClientStorage",
    "NotificationStore",
    "LandRegistryClient",
    "validate_upload",
    "PaymentFlow",
    "PaymentOutcome",
]
