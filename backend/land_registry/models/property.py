"""Property model for land registration applications"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Float, Boolean, ForeignKey, Enum, Index
from datetime import datetime
from land_registry.database import Base
import enum


class PropertyType(str, enum.Enum):
    """Land use categories"""
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    INDUSTRIAL = "industrial"
    AGRICULTURAL = "agricultural"


class PropertyStatus(str, enum.Enum):
    """Status states for a registration application"""
    PENDING = "pending"
    DOCUMENTS_PENDING = "documents_pending"
    DOCUMENTS_VALIDATED = "documents_validated"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_COMPLETED = "payment_completed"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_UPDATE = "needs_update"


class Property(Base):
    """Property model representing one registration application"""
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Parcel information
    plot_number = Column(String(50), unique=True, nullable=False, index=True)
    property_type = Column(Enum(PropertyType), nullable=False)
    area = Column(Float, nullable=False)  # square meters

    # Location
    sub_city = Column(String(100), nullable=False)
    kebele = Column(String(100), nullable=False)
    street = Column(String(255), nullable=True)
    house_number = Column(String(50), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Workflow
    status = Column(Enum(PropertyStatus), default=PropertyStatus.PENDING, nullable=False, index=True)
    documents_validated = Column(Boolean, default=False, nullable=False)
    payment_completed = Column(Boolean, default=False, nullable=False)
    is_transferred = Column(Boolean, default=False, nullable=False)
    has_active_dispute = Column(Boolean, default=False, nullable=False)

    # Review
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    review_notes = Column(Text, nullable=True)

    # Timestamps
    registration_date = Column(DateTime, default=datetime.utcnow)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_property_owner_status", "owner_id", "status"),
        Index("ix_property_location", "sub_city", "kebele"),
    )
