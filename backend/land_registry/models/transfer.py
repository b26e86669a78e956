"""Property transfer model for ownership changes"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Float, Boolean, ForeignKey, Enum
from datetime import datetime
from land_registry.database import Base
import enum


class TransferType(str, enum.Enum):
    SALE = "sale"
    INHERITANCE = "inheritance"
    GIFT = "gift"
    COURT_ORDER = "court_order"
    GOVERNMENT_ACQUISITION = "government_acquisition"
    EXCHANGE = "exchange"
    OTHER = "other"


class TransferStatus(str, enum.Enum):
    INITIATED = "initiated"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PropertyTransfer(Base):
    """Request to move a registered property to a new owner"""
    __tablename__ = "property_transfers"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    previous_owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    new_owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    transfer_type = Column(Enum(TransferType), nullable=False)
    transfer_reason = Column(Text, nullable=False)
    transfer_value = Column(Float, default=0.0, nullable=False)
    currency = Column(String(3), default="ETB", nullable=False)

    # Fee breakdown from the transfer tariff
    transfer_tax = Column(Float, default=0.0)
    stamp_duty = Column(Float, default=0.0)
    processing_fee = Column(Float, default=0.0)
    total_fee = Column(Float, default=0.0)
    fee_paid = Column(Boolean, default=False, nullable=False)

    status = Column(Enum(TransferStatus), default=TransferStatus.INITIATED, nullable=False, index=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    review_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    initiation_date = Column(DateTime, default=datetime.utcnow, index=True)
    completion_date = Column(DateTime, nullable=True)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
