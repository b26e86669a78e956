"""Payment model for registration fees and other charges"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Float, JSON, ForeignKey, Enum
from datetime import datetime
from land_registry.database import Base
import secrets
import enum


class Currency(str, enum.Enum):
    ETB = "ETB"
    USD = "USD"


class PaymentType(str, enum.Enum):
    REGISTRATION_FEE = "registration_fee"
    TAX = "tax"
    TRANSFER_FEE = "transfer_fee"
    PENALTY = "penalty"
    SERVICE_FEE = "service_fee"
    OTHER = "other"


class PaymentMethod(str, enum.Enum):
    CBE_BIRR = "cbe_birr"
    TELEBIRR = "telebirr"
    CHAPA = "chapa"
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    CASH = "cash"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class Payment(Base):
    """Payment made against a property"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    transfer_id = Column(Integer, ForeignKey("property_transfers.id"), nullable=True, index=True)

    # Amount
    amount = Column(Float, nullable=False)
    currency = Column(Enum(Currency), default=Currency.ETB, nullable=False)
    payment_type = Column(Enum(PaymentType), nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)

    # Fee breakdown
    base_fee = Column(Float, default=0.0)
    processing_fee = Column(Float, default=0.0)
    tax_amount = Column(Float, default=0.0)
    discount_amount = Column(Float, default=0.0)
    total_amount = Column(Float, nullable=False)

    # Gateway
    transaction_id = Column(String(100), unique=True, nullable=True, index=True)
    method_details = Column(JSON, default=dict)  # channel specific references
    session_id = Column(String(64), nullable=True)
    expires_at = Column(DateTime, nullable=True)

    # Status
    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)
    failure_reason = Column(Text, nullable=True)
    attempt_count = Column(Integer, default=1)
    notes = Column(Text, nullable=True)

    # Receipt
    receipt_number = Column(String(50), unique=True, nullable=True)

    # Verification / refund
    verified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    verification_date = Column(DateTime, nullable=True)
    refund_reason = Column(Text, nullable=True)
    refund_amount = Column(Float, nullable=True)
    refund_date = Column(DateTime, nullable=True)
    refunded_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Timestamps
    payment_date = Column(DateTime, default=datetime.utcnow, index=True)
    completed_date = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def generate_receipt_number(self) -> str:
        """Assign a receipt number of the form RCP-YYYYMMDD-XXXXXX"""
        today = datetime.utcnow().strftime("%Y%m%d")
        self.receipt_number = f"RCP-{today}-{secrets.token_hex(3).upper()}"
        return self.receipt_number
