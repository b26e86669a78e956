"""Dispute model for property disputes"""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, ForeignKey, Enum
from datetime import datetime
from land_registry.database import Base
import enum


class DisputeType(str, enum.Enum):
    OWNERSHIP_DISPUTE = "ownership_dispute"
    BOUNDARY_DISPUTE = "boundary_dispute"
    DOCUMENTATION_ERROR = "documentation_error"
    FRAUDULENT_REGISTRATION = "fraudulent_registration"
    INHERITANCE_DISPUTE = "inheritance_dispute"
    OTHER = "other"


class DisputePriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class DisputeStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    INVESTIGATION = "investigation"
    MEDIATION = "mediation"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class Dispute(Base):
    """Dispute filed against a property"""
    __tablename__ = "disputes"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    disputant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Details
    dispute_type = Column(Enum(DisputeType), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    priority = Column(Enum(DisputePriority), default=DisputePriority.MEDIUM, nullable=False)

    # Status
    status = Column(Enum(DisputeStatus), default=DisputeStatus.SUBMITTED, nullable=False, index=True)
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True)
    assigned_date = Column(DateTime, nullable=True)

    # Append-only lists of dicts
    evidence = Column(JSON, default=list)
    timeline = Column(JSON, default=list)

    # Resolution
    resolution_decision = Column(String(100), nullable=True)
    resolution_notes = Column(Text, nullable=True)
    action_required = Column(Text, nullable=True)
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolution_date = Column(DateTime, nullable=True)

    # Timestamps
    submission_date = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
