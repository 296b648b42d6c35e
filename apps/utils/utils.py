import uuid
from decimal import Decimal, ROUND_HALF_UP
from django.utils import timezone

MONEY_QUANTUM = Decimal("0.01")


def now():
    return timezone.now()


def generate_order_number(when=None):
    """
    Human-legible order number, e.g. ORD-20250129-A3F9.
    Not sequential; uniqueness is enforced by the database.
    """
    date_part = (when or now()).strftime("%Y%m%d")
    return f"ORD-{date_part}-{uuid.uuid4().hex[:4].upper()}"


def quantize_money(value) -> Decimal:
    """
    Round to the currency minor unit. Only ever applied to the final amount.
    """
    return Decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
