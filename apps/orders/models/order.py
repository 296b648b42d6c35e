from django.db import models
from django.conf import settings

from apps.utils.models import PublicIdModel, TimestampedModel
from apps.utils.utils import generate_order_number


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending Payment"
    CONFIRMED = "CONFIRMED", "Confirmed (Paid)"
    PROCESSING = "PROCESSING", "Processing"
    SHIPPED = "SHIPPED", "Shipped"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"
    REFUNDED = "REFUNDED", "Refunded"


ADDRESS_PARTS = ("line1", "line2", "city", "state", "postal_code", "country")


class OrderQuerySet(models.QuerySet):
    def with_details(self):
        return self.select_related("payment").prefetch_related("items")

    def newest_first(self):
        return self.order_by("-created_at", "-id")


class Order(PublicIdModel, TimestampedModel):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='orders')
    order_number = models.CharField(max_length=50, unique=True, editable=False)

    status = models.CharField(max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING, db_index=True)
    # Frozen at creation, never recomputed
    total_amount = models.DecimalField(max_digits=19, decimal_places=2)

    shipping_address_line1 = models.CharField(max_length=255)
    shipping_address_line2 = models.CharField(max_length=255, blank=True)
    shipping_city = models.CharField(max_length=100)
    shipping_state = models.CharField(max_length=100)
    shipping_postal_code = models.CharField(max_length=20)
    shipping_country = models.CharField(max_length=100)

    billing_address_line1 = models.CharField(max_length=255)
    billing_address_line2 = models.CharField(max_length=255, blank=True)
    billing_city = models.CharField(max_length=100)
    billing_state = models.CharField(max_length=100)
    billing_postal_code = models.CharField(max_length=20)
    billing_country = models.CharField(max_length=100)

    customer_email = models.EmailField()
    customer_phone = models.CharField(max_length=20, blank=True)
    notes = models.TextField(blank=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="order_user_created_idx"),
        ]

    def __str__(self):
        return f"{self.order_number} [{self.status}]"

    def save(self, *args, **kwargs):
        if not self.order_number:
            candidate = generate_order_number()
            while Order.objects.filter(order_number=candidate).exists():
                candidate = generate_order_number()
            self.order_number = candidate
        super().save(*args, **kwargs)

    def _address(self, prefix):
        from apps.orders.dto import Address
        return Address(**{part: getattr(self, f"{prefix}_{self._column(part)}") for part in ADDRESS_PARTS})

    def _set_address(self, prefix, address):
        for part in ADDRESS_PARTS:
            setattr(self, f"{prefix}_{self._column(part)}", getattr(address, part) or "")

    @staticmethod
    def _column(part):
        return f"address_{part}" if part.startswith("line") else part

    @property
    def shipping_address(self):
        return self._address("shipping")

    @shipping_address.setter
    def shipping_address(self, address):
        self._set_address("shipping", address)

    @property
    def billing_address(self):
        return self._address("billing")

    @billing_address.setter
    def billing_address(self, address):
        self._set_address("billing", address)
