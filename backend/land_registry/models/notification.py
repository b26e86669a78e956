"""Notification model for user-facing messages"""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Boolean, ForeignKey
from datetime import datetime
from land_registry.database import Base


class Notification(Base):
    """Message addressed to a single user"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    type = Column(String(50), nullable=False, index=True)  # payment_required, payment_success, ...
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(20), default="medium")  # low, medium, high
    action_required = Column(Boolean, default=False)
    action_url = Column(String(500), nullable=True)  # deep link into the frontend

    # Optional references
    property_id = Column(Integer, nullable=True)
    payment_id = Column(Integer, nullable=True)
    dispute_id = Column(Integer, nullable=True)
    extra = Column("metadata", JSON, nullable=True)

    read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
