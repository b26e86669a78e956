"""Fee calculation for registration and transfer payments"""

import logging
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Dict, Optional

from land_registry.config import settings
from land_registry.exceptions import ValidationError
from land_registry.models.property import PropertyType

logger = logging.getLogger(__name__)


# Discount rates for special cases
DISCOUNT_RATES = {
    "first_time_owner": 0.10,
    "veteran": 0.15,
    "disability": 0.20,
    "low_income": 0.25,
}

URBAN_KEYWORDS = ("city", "town", "urban", "municipality", "metro")
RURAL_KEYWORDS = ("rural", "village", "countryside", "woreda")
MAJOR_SUB_CITIES = (
    "bole", "kirkos", "arada", "addis ketema", "lideta", "yeka",
    "nifas silk-lafto", "kolfe keranio", "gulele", "akaky kaliti",
)


@dataclass
class FeeBreakdown:
    """Fee summary shown to the applicant"""
    base_fee: float
    processing_fee: float
    tax_amount: float
    discount_amount: float
    total_amount: float = field(init=False)
    currency: str = "ETB"
    calculated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        self.total_amount = compute_total(
            self.base_fee, self.processing_fee, self.tax_amount, self.discount_amount
        )

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def compute_total(base_fee: float, processing_fee: float, tax_amount: float, discount_amount: float) -> float:
    """total = base + processing + tax - discount, never negative"""
    return round(max(0.0, base_fee + processing_fee + tax_amount - discount_amount), 2)


def is_urban_location(sub_city: str) -> bool:
    sub_city_lower = sub_city.lower()
    if any(keyword in sub_city_lower for keyword in URBAN_KEYWORDS):
        return True
    if any(keyword in sub_city_lower for keyword in RURAL_KEYWORDS):
        return False
    return any(name in sub_city_lower for name in MAJOR_SUB_CITIES)


def discount_rate(
    first_time_owner: bool = False,
    veteran: bool = False,
    disability: bool = False,
    low_income: bool = False,
) -> float:
    """Sum of applicable discount rates, capped at MAX_DISCOUNT_RATE"""
    flags = {
        "first_time_owner": first_time_owner,
        "veteran": veteran,
        "disability": disability,
        "low_income": low_income,
    }
    rate = sum(DISCOUNT_RATES[name] for name, applies in flags.items() if applies)
    return min(rate, settings.MAX_DISCOUNT_RATE)


def validate_calculation_inputs(property_type: str, area: float, sub_city: Optional[str]) -> None:
    try:
        PropertyType(property_type)
    except ValueError:
        raise ValidationError(message="Invalid property type", details={"property_type": property_type})
    if area is None or area <= 0:
        raise ValidationError(message="Invalid property area", details={"area": area})
    if not sub_city:
        raise ValidationError(message="Invalid property location")


def calculate_registration_fee(
    property_type: str,
    area: float,
    sub_city: str,
    first_time_owner: bool = False,
    veteran: bool = False,
    disability: bool = False,
    low_income: bool = False,
) -> FeeBreakdown:
    """Registration fee: a fixed processing fee less any discounts.

    Base fee and taxes are zero under the current tariff; they stay in the
    breakdown so that receipts keep the same shape as transfer fees.
    """
    validate_calculation_inputs(property_type, area, sub_city)

    processing_fee = settings.REGISTRATION_PROCESSING_FEE
    rate = discount_rate(first_time_owner, veteran, disability, low_income)
    discount_amount = round(processing_fee * rate, 2)

    breakdown = FeeBreakdown(
        base_fee=0.0,
        processing_fee=processing_fee,
        tax_amount=0.0,
        discount_amount=discount_amount,
        currency=settings.DEFAULT_CURRENCY,
    )
    logger.debug(
        f"Registration fee for {property_type} ({'urban' if is_urban_location(sub_city) else 'rural'}): "
        f"{breakdown.total_amount} {breakdown.currency}"
    )
    return breakdown


def calculate_transfer_fee(transfer_value: float) -> FeeBreakdown:
    """Transfer fee: transfer tax as base, stamp duty as tax, plus processing"""
    if transfer_value is None or transfer_value < 0:
        raise ValidationError(message="Invalid transfer value", details={"transfer_value": transfer_value})

    return FeeBreakdown(
        base_fee=round(transfer_value * settings.TRANSFER_TAX_RATE, 2),
        processing_fee=settings.TRANSFER_PROCESSING_FEE,
        tax_amount=round(transfer_value * settings.STAMP_DUTY_RATE, 2),
        discount_amount=0.0,
        currency=settings.DEFAULT_CURRENCY,
    )
