"""
Simulated payment gateway.

Deterministic on purpose so checkout flows can be reproduced in tests:

* brand comes from the leading digit (4 VISA, 5 MASTERCARD, 3 AMEX),
* any card whose last four digits are ``0000`` is declined,
* every other card is approved with a fresh ``TXN-XXXXXXXX`` reference.

No Luhn check, no network, and no inventory access.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.utils import timezone
from rest_framework import serializers

from apps.utils.exceptions import InvalidCardDetails
from apps.utils.validators import (
    normalize_card_number,
    validate_card_number,
    validate_cvv,
    validate_expiry_date,
)
from .models import DEFAULT_GATEWAY, PaymentStatus

logger = logging.getLogger(__name__)

DECLINED_SUFFIX = "0000"
CARD_BRANDS = (
    ("4", "VISA"),
    ("5", "MASTERCARD"),
    ("3", "AMEX"),
)
UNKNOWN_BRAND = "UNKNOWN"


def detect_card_brand(card_number: str) -> str:
    for prefix, brand in CARD_BRANDS:
        if card_number.startswith(prefix):
            return brand
    return UNKNOWN_BRAND


def generate_transaction_id(prefix="TXN") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


@dataclass(frozen=True)
class CardDetails:
    card_number: str
    expiry_date: str
    cvv: str
    holder_name: str

    def validate(self) -> "CardDetails":
        errors = {}
        checks = (
            ("card_number", validate_card_number, self.card_number),
            ("expiry_date", validate_expiry_date, self.expiry_date),
            ("cvv", validate_cvv, self.cvv),
        )
        for field, validator, value in checks:
            try:
                validator(value)
            except serializers.ValidationError as exc:
                errors[field] = [str(detail) for detail in exc.detail]
        if not (self.holder_name or "").strip():
            errors["holder_name"] = ["Card holder name is required."]
        if errors:
            raise InvalidCardDetails("Invalid card details.", fields=errors)
        return self

    @property
    def last_four(self) -> str:
        return normalize_card_number(self.card_number)[-4:]

    def __repr__(self):
        return f"CardDetails(****{self.last_four}, holder={self.holder_name!r})"


@dataclass(frozen=True)
class AuthorizationResult:
    status: str
    transaction_id: Optional[str] = None
    card_brand: Optional[str] = None
    card_last_four: Optional[str] = None
    authorized_at: Optional[datetime] = None

    @property
    def approved(self) -> bool:
        return self.status == PaymentStatus.COMPLETED


class SimulatedAuthorizer:

    def __init__(self, gateway_name=None, clock=timezone.now):
        self.gateway_name = gateway_name or getattr(settings, "PAYMENT_GATEWAY_NAME", DEFAULT_GATEWAY)
        self.clock = clock

    def authorize(self, amount: Decimal, card_number: str, expiry: str, cvv: str, holder_name: str) -> AuthorizationResult:
        number = normalize_card_number(card_number)
        if len(number) < 4 or not (number.isascii() and number.isdigit()):
            raise InvalidCardDetails(
                "Card number must contain only digits.",
                fields={"card_number": ["Card number must contain only digits."]},
            )

        last_four = number[-4:]
        brand = detect_card_brand(number)

        if last_four == DECLINED_SUFFIX:
            logger.warning(f"{self.gateway_name}: card ending in {last_four} declined for amount {amount}")
            return AuthorizationResult(status=PaymentStatus.FAILED)

        result = AuthorizationResult(
            status=PaymentStatus.COMPLETED,
            transaction_id=generate_transaction_id(),
            card_brand=brand,
            card_last_four=last_four,
            authorized_at=self.clock(),
        )
        logger.info(f"{self.gateway_name}: approved {amount} on {brand} ****{last_four}, txn {result.transaction_id}")
        return result

    def authorize_card(self, amount: Decimal, card: CardDetails) -> AuthorizationResult:
        return self.authorize(amount, card.card_number, card.expiry_date, card.cvv, card.holder_name)
