"""Document model for registration documents"""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum, Index
from datetime import datetime
from land_registry.database import Base
import enum


class DocumentType(str, enum.Enum):
    """Document slots attached to a property"""
    TITLE_DEED = "title_deed"
    ID_COPY = "id_copy"
    APPLICATION_FORM = "application_form"
    TAX_CLEARANCE = "tax_clearance"
    OTHER = "other"


class DocumentStatus(str, enum.Enum):
    """Verification states set by a land officer"""
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    NEEDS_UPDATE = "needs_update"


REQUIRED_DOCUMENT_TYPES = frozenset({
    DocumentType.TITLE_DEED,
    DocumentType.ID_COPY,
    DocumentType.TAX_CLEARANCE,
    DocumentType.APPLICATION_FORM,
})


class Document(Base):
    """Uploaded document owned by exactly one property"""
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    # Identification
    document_type = Column(Enum(DocumentType), nullable=False)
    document_name = Column(String(255), nullable=False)

    # File storage
    file_name = Column(String(255), nullable=False)  # original filename
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=False)  # bytes
    file_hash = Column(String(64), nullable=True)  # SHA256
    mime_type = Column(String(100), nullable=False)

    # Verification
    status = Column(Enum(DocumentStatus), default=DocumentStatus.PENDING, nullable=False, index=True)
    verification_notes = Column(Text, nullable=True)
    verified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime, nullable=True)

    # Timestamps
    upload_date = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_document_property_type", "property_id", "document_type"),
    )
