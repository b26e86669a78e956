"""Client-side registration payment flow"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from land_registry.client.api import LandRegistryClient
from land_registry.client.errors import ApiError, VALIDATION_ERROR
from land_registry.client.notifications import NotificationStore

logger = logging.getLogger(__name__)


@dataclass
class PaymentOutcome:
    success: bool
    payment: Dict[str, Any]
    property: Dict[str, Any]
    error: Optional[str] = None
    instructions: List[str] = field(default_factory=list)


class PaymentFlow:
    """
    Pays the registration fee of one property through a payment channel.

    The flow refuses to start until the property's documents are validated,
    then initializes the channel and confirms it with the payer's details.
    """

    def __init__(self, client: LandRegistryClient, notifications: Optional[NotificationStore] = None):
        self.client = client
        self.notifications = notifications

    def check_ready(self, property_id: int) -> Dict[str, Any]:
        property_obj = self.client.get_property(property_id)
        if property_obj.get("payment_completed"):
            raise ApiError("Payment has already been completed for this property", code=VALIDATION_ERROR)
        if not property_obj.get("documents_validated"):
            raise ApiError(
                "Documents must be validated by a land officer before payment",
                code=VALIDATION_ERROR,
                details={"status": property_obj.get("status")},
            )
        return property_obj

    def start(self, property_id: int, payment_method: str, **options) -> Dict[str, Any]:
        """Check the property and open a payment session; returns the initialization response"""
        self.check_ready(property_id)
        init = self.client.initialize_payment(property_id, payment_method, **options)
        logger.info(f"Payment {init['payment']['id']} initialized via {payment_method}")
        return init

    def confirm(self, transaction_id: str, details: Dict[str, Any]) -> PaymentOutcome:
        result = self.client.process_payment(transaction_id, details)
        outcome = PaymentOutcome(
            success=result["success"],
            payment=result["payment"],
            property=result["property"],
            error=result.get("error"),
        )
        self._notify(outcome)
        return outcome

    def pay(self, property_id: int, payment_method: str, details: Dict[str, Any], **options) -> PaymentOutcome:
        """Run the whole flow for an online channel"""
        init = self.start(property_id, payment_method, **options)
        if not init.get("transaction_id"):
            raise ApiError(
                f"{payment_method} payments are confirmed by a land officer",
                code=VALIDATION_ERROR,
                details={"instructions": init.get("instructions", [])},
            )
        outcome = self.confirm(init["transaction_id"], details)
        outcome.instructions = init.get("instructions", [])
        return outcome

    def _notify(self, outcome: PaymentOutcome) -> None:
        if self.notifications is None:
            return
        amount = outcome.payment.get("total_amount")
        currency = outcome.payment.get("currency")
        if outcome.success:
            self.notifications.add({
                "type": "payment_success",
                "title": "Payment Successful",
                "message": f"Your payment of {amount} {currency} was completed.",
                "property_id": outcome.property.get("id"),
            })
        else:
            self.notifications.add({
                "type": "payment_failed",
                "title": "Payment Failed",
                "message": outcome.error or "The payment could not be completed.",
                "property_id": outcome.property.get("id"),
            })
