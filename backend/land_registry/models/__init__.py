"""Database models package"""
from land_registry.models.user import User, UserRole
from land_registry.models.property import Property, PropertyType, PropertyStatus
from land_registry.models.document import Document, DocumentType, DocumentStatus, REQUIRED_DOCUMENT_TYPES
from land_registry.models.payment import Payment, PaymentType, PaymentMethod, PaymentStatus, Currency
from land_registry.models.dispute import Dispute, DisputeType, DisputePriority, DisputeStatus
from land_registry.models.notification import Notification
from land_registry.models.application_log import ApplicationLog
from land_registry.models.transfer import PropertyTransfer, TransferStatus, TransferType

__all__ = [
    "User",
    "UserRole",
    "Property",
    "PropertyType",
    "PropertyStatus",
    "Document",
    "DocumentType",
    "DocumentStatus",
    "REQUIRED_DOCUMENT_TYPES",
    "Payment",
    "PaymentType",
    "PaymentMethod",
    "PaymentStatus",
    "Currency",
    "Dispute",
    "DisputeType",
    "DisputePriority",
    "DisputeStatus",
    "Notification",
    "ApplicationLog",
    "PropertyTransfer",
    "TransferStatus",
    "TransferType",
]
