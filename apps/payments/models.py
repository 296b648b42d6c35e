from django.db import models

from apps.orders.models import Order
from apps.utils.models import PublicIdModel, TimestampedModel

DEFAULT_GATEWAY = "DUMMY_GATEWAY"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
    REFUNDED = "REFUNDED", "Refunded"
    CANCELLED = "CANCELLED", "Cancelled"


class PaymentMethod(models.TextChoices):
    CREDIT_CARD = "CREDIT_CARD", "Credit Card"
    DEBIT_CARD = "DEBIT_CARD", "Debit Card"
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY", "Cash on Delivery"

    @classmethod
    def card_methods(cls):
        return {cls.CREDIT_CARD, cls.DEBIT_CARD}


class Payment(PublicIdModel, TimestampedModel):
    """
    The single payment attached to an order.
    Created PENDING with the order; only the authorizer or an admin moves it.
    """
    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name="payment")

    payment_method = models.CharField(max_length=50, choices=PaymentMethod.choices)
    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING, db_index=True
    )
    amount = models.DecimalField(max_digits=19, decimal_places=2)

    # Assigned only once the payment completes
    transaction_id = models.CharField(max_length=100, unique=True, null=True, blank=True)

    # Masked card metadata
    card_last_four = models.CharField(max_length=4, blank=True)
    card_brand = models.CharField(max_length=20, blank=True)

    payment_gateway = models.CharField(max_length=50, default=DEFAULT_GATEWAY)
    payment_date = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"{self.order_id} | {self.amount} | {self.payment_status}"
