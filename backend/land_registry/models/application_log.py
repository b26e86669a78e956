"""Application log model - the timeline of a registration application"""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, ForeignKey
from datetime import datetime
from land_registry.database import Base


class ApplicationLog(Base):
    """Append-only record of workflow actions on a property"""
    __tablename__ = "application_logs"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)  # application owner

    # Action details
    action = Column(String(100), nullable=False, index=True)  # application_submitted, document_verified, ...
    status = Column(String(50), nullable=False)
    previous_status = Column(String(50), nullable=True)

    # Actor
    performed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    performed_by_role = Column(String(20), nullable=False, default="system")  # user, landOfficer, admin, system

    notes = Column(Text, nullable=True)
    extra = Column("metadata", JSON, nullable=True)

    timestamp = Column(DateTime, default=datetime.utcnow, index=True)
