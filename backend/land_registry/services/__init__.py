"""Services package"""
from land_registry.services.auth import AuthService, get_password_hash, verify_password

__all__ = ["AuthService", "get_password_hash", "verify_password"]
