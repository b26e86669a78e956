"""Simulated Payment Gateway

Simulates the Ethiopian payment channels (CBE Birr, TeleBirr, Chapa) plus
bank transfer and cash desk payments. No real provider protocol is spoken;
transactions live in memory for the lifetime of the gateway instance.

Each channel has its own detail type. A transaction moves
pending -> processing -> completed | failed.
"""

import logging
import random
import secrets
import string
import time
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Any, ClassVar, Dict, List, Optional, Type

from land_registry.config import settings
from land_registry.exceptions import ConflictError, NotFoundError, ValidationError
from land_registry.models.payment import PaymentMethod

logger = logging.getLogger(__name__)


def _random_code(length: int) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


# Channel detail types. The ``method`` class attribute is the union tag.

@dataclass
class CBEBirrDetails:
    method: ClassVar[PaymentMethod] = PaymentMethod.CBE_BIRR
    account_number: str = ""
    pin: str = ""

    def validate(self) -> Optional[str]:
        if len(self.account_number or "") < 10 or len(self.pin or "") < 4:
            return "Invalid CBE account number or PIN"
        return None

    def public(self) -> Dict[str, Any]:
        return {"account_number": f"****{self.account_number[-4:]}"}


@dataclass
class TeleBirrDetails:
    method: ClassVar[PaymentMethod] = PaymentMethod.TELEBIRR
    phone_number: str = ""
    pin: str = ""

    def validate(self) -> Optional[str]:
        if not self.phone_number or len(self.pin or "") < 4:
            return "Invalid TeleBirr phone number or PIN"
        return None

    def public(self) -> Dict[str, Any]:
        return {"phone_number": self.phone_number}


@dataclass
class ChapaDetails:
    method: ClassVar[PaymentMethod] = PaymentMethod.CHAPA
    email: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def validate(self) -> Optional[str]:
        if "@" not in (self.email or ""):
            return "A valid email address is required for Chapa checkout"
        return None

    def public(self) -> Dict[str, Any]:
        return {"email": self.email}


@dataclass
class BankTransferDetails:
    method: ClassVar[PaymentMethod] = PaymentMethod.BANK_TRANSFER
    bank_name: str = ""
    account_number: str = ""
    reference_number: str = ""

    def validate(self) -> Optional[str]:
        if not self.bank_name or not self.reference_number:
            return "Bank name and transfer reference are required"
        return None

    def public(self) -> Dict[str, Any]:
        return {"bank_name": self.bank_name, "reference_number": self.reference_number}


@dataclass
class CashDetails:
    method: ClassVar[PaymentMethod] = PaymentMethod.CASH
    receipt_reference: Optional[str] = None

    def validate(self) -> Optional[str]:
        return None

    def public(self) -> Dict[str, Any]:
        return {"receipt_reference": self.receipt_reference}


@dataclass(frozen=True)
class PaymentChannel:
    """Static description of one payment channel"""
    method: PaymentMethod
    display_name: str
    transaction_prefix: Optional[str]
    session_minutes: int
    details_type: Type
    instructions: List[str]
    online: bool = True

    def payment_url(self, transaction_id: str) -> Optional[str]:
        if not self.online:
            return None
        slug = self.method.value.replace("_", "-")
        return f"{settings.FRONTEND_URL.rstrip('/')}/payment/{slug}/{transaction_id}"


def _build_channels() -> Dict[PaymentMethod, PaymentChannel]:
    return {
        PaymentMethod.CBE_BIRR: PaymentChannel(
            method=PaymentMethod.CBE_BIRR,
            display_name="CBE Birr",
            transaction_prefix="CBE",
            session_minutes=settings.CBE_BIRR_SESSION_MINUTES,
            details_type=CBEBirrDetails,
            instructions=[
                "You will be redirected to CBE Birr payment interface",
                "Enter your CBE account number and PIN",
                "Confirm the payment details",
                "Complete the transaction",
            ],
        ),
        PaymentMethod.TELEBIRR: PaymentChannel(
            method=PaymentMethod.TELEBIRR,
            display_name="TeleBirr",
            transaction_prefix="TB",
            session_minutes=settings.TELEBIRR_SESSION_MINUTES,
            details_type=TeleBirrDetails,
            instructions=[
                "You will be redirected to TeleBirr payment interface",
                "Enter your TeleBirr PIN",
                "Confirm the payment amount",
                "Complete the transaction",
            ],
        ),
        PaymentMethod.CHAPA: PaymentChannel(
            method=PaymentMethod.CHAPA,
            display_name="Chapa",
            transaction_prefix="CHP",
            session_minutes=settings.CHAPA_SESSION_MINUTES,
            details_type=ChapaDetails,
            instructions=[
                "You will be redirected to the Chapa checkout page",
                "Choose a card, bank or wallet option",
                "Complete the checkout",
            ],
        ),
        PaymentMethod.BANK_TRANSFER: PaymentChannel(
            method=PaymentMethod.BANK_TRANSFER,
            display_name="Bank Transfer",
            transaction_prefix="BT",
            session_minutes=settings.BANK_TRANSFER_SESSION_MINUTES,
            details_type=BankTransferDetails,
            instructions=[
                "Transfer the amount to the land registry account",
                "Quote the transaction id as the transfer reason",
                "Submit the bank reference number to confirm",
            ],
            online=False,
        ),
        PaymentMethod.CASH: PaymentChannel(
            method=PaymentMethod.CASH,
            display_name="Cash",
            transaction_prefix=None,
            session_minutes=settings.BANK_TRANSFER_SESSION_MINUTES,
            details_type=CashDetails,
            instructions=[
                "Visit the land registry office",
                "Pay the amount at the cashier desk",
                "A land officer will verify the payment",
            ],
            online=False,
        ),
    }


@dataclass
class GatewayTransaction:
    """A transaction as the simulated provider sees it"""
    transaction_id: str
    method: PaymentMethod
    amount: float
    currency: str
    reference: Optional[str]
    session_id: str
    expires_at: datetime
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    description: Optional[str] = None
    status: str = "pending"
    created_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    confirmation_code: Optional[str] = None
    failure_reason: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayInitResult:
    transaction_id: Optional[str]
    payment_url: Optional[str]
    session_id: str
    expires_at: datetime
    instructions: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class GatewayProcessResult:
    success: bool
    transaction_id: str
    status: str
    amount: float
    currency: str
    confirmation_code: Optional[str] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class SimulatedPaymentGateway:
    """In-memory payment provider simulation"""

    def __init__(self, success_rate: Optional[float] = None):
        self.success_rate = settings.PAYMENT_GATEWAY_SUCCESS_RATE if success_rate is None else success_rate
        self.channels = _build_channels()
        self.transactions: Dict[str, GatewayTransaction] = {}

    def get_channel(self, method: PaymentMethod) -> PaymentChannel:
        channel = self.channels.get(PaymentMethod(method))
        if channel is None:
            raise ValidationError(
                message=f"Payment method '{PaymentMethod(method).value}' is not supported online",
                details={"payment_method": PaymentMethod(method).value,
                         "supported": [m.value for m in self.channels]},
            )
        return channel

    def parse_details(self, method: PaymentMethod, details: Optional[Dict[str, Any]]):
        """Build the channel's detail object from a plain dict"""
        channel = self.get_channel(method)
        details_type = channel.details_type
        known = set(details_type.__dataclass_fields__)
        return details_type(**{k: v for k, v in (details or {}).items() if k in known})

    def generate_transaction_id(self, channel: PaymentChannel) -> Optional[str]:
        if channel.transaction_prefix is None:
            return None
        return f"{channel.transaction_prefix}{int(time.time() * 1000)}{_random_code(6)}"

    def initialize(
        self,
        method: PaymentMethod,
        amount: float,
        currency: str = "ETB",
        reference: Optional[str] = None,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        customer_email: Optional[str] = None,
        description: Optional[str] = None,
    ) -> GatewayInitResult:
        """Open a payment session on the given channel"""
        channel = self.get_channel(method)
        if amount is None or amount <= 0:
            raise ValidationError(message="Payment amount must be positive", details={"amount": amount})

        transaction_id = self.generate_transaction_id(channel)
        session_id = str(uuid.uuid4())
        expires_at = datetime.utcnow() + timedelta(minutes=channel.session_minutes)

        if transaction_id:
            self.transactions[transaction_id] = GatewayTransaction(
                transaction_id=transaction_id,
                method=channel.method,
                amount=amount,
                currency=currency,
                reference=reference,
                session_id=session_id,
                expires_at=expires_at,
                customer_name=customer_name,
                customer_phone=customer_phone,
                customer_email=customer_email,
                description=description,
            )

        logger.info(f"{channel.display_name} session opened: {transaction_id or session_id} for {amount} {currency}")
        return GatewayInitResult(
            transaction_id=transaction_id,
            payment_url=channel.payment_url(transaction_id) if transaction_id else None,
            session_id=session_id,
            expires_at=expires_at,
            instructions=list(channel.instructions),
        )

    def get_transaction(self, transaction_id: str) -> GatewayTransaction:
        transaction = self.transactions.get(transaction_id)
        if transaction is None:
            raise NotFoundError(message="Transaction not found", details={"transaction_id": transaction_id})
        return transaction

    def process(self, transaction_id: str, details: Optional[Dict[str, Any]] = None) -> GatewayProcessResult:
        """Simulate the customer completing the payment"""
        transaction = self.get_transaction(transaction_id)
        if transaction.status != "pending":
            raise ConflictError(
                message="Transaction already processed",
                details={"transaction_id": transaction_id, "status": transaction.status},
            )

        parsed = self.parse_details(transaction.method, details)
        transaction.status = "processing"

        if datetime.utcnow() > transaction.expires_at:
            return self._fail(transaction, "Payment session expired")

        invalid = parsed.validate()
        if invalid:
            return self._fail(transaction, invalid)

        if random.random() >= self.success_rate:
            return self._fail(transaction, "Transaction declined by provider")

        transaction.status = "completed"
        transaction.completed_at = datetime.utcnow()
        transaction.confirmation_code = f"{self.channels[transaction.method].transaction_prefix}{_random_code(8)}"
        transaction.details = parsed.public()

        logger.info(f"Transaction {transaction_id} completed ({transaction.confirmation_code})")
        return GatewayProcessResult(
            success=True,
            transaction_id=transaction_id,
            status=transaction.status,
            amount=transaction.amount,
            currency=transaction.currency,
            confirmation_code=transaction.confirmation_code,
            completed_at=transaction.completed_at,
            details=transaction.details,
        )

    def _fail(self, transaction: GatewayTransaction, reason: str) -> GatewayProcessResult:
        transaction.status = "failed"
        transaction.failure_reason = reason
        logger.warning(f"Transaction {transaction.transaction_id} failed: {reason}")
        return GatewayProcessResult(
            success=False,
            transaction_id=transaction.transaction_id,
            status=transaction.status,
            amount=transaction.amount,
            currency=transaction.currency,
            error=reason,
        )

    def cancel(self, transaction_id: str, reason: str = "Cancelled by merchant") -> bool:
        """Close a session that has not been paid; False if it already ran"""
        transaction = self.transactions.get(transaction_id)
        if transaction is None or transaction.status != "pending":
            return False
        transaction.status = "cancelled"
        transaction.failure_reason = reason
        logger.info(f"Transaction {transaction_id} cancelled: {reason}")
        return True

    def verify(self, transaction_id: str) -> Dict[str, Any]:
        transaction = self.get_transaction(transaction_id)
        return {
            "transaction_id": transaction.transaction_id,
            "reference": transaction.reference,
            "status": transaction.status,
            "amount": transaction.amount,
            "currency": transaction.currency,
            "payment_method": transaction.method.value,
            "created_at": transaction.created_at,
            "completed_at": transaction.completed_at,
            "failure_reason": transaction.failure_reason,
        }

    def clear(self) -> None:
        self.transactions.clear()


_gateway: Optional[SimulatedPaymentGateway] = None


def get_payment_gateway() -> SimulatedPaymentGateway:
    """FastAPI dependency returning the process-wide gateway"""
    global _gateway
    if _gateway is None:
        _gateway = SimulatedPaymentGateway()
    return _gateway
