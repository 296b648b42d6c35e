# apps/catalog/models.py
import uuid
from decimal import Decimal

from django.db import models

from apps.utils.models import TimestampedModel


class Product(TimestampedModel):
    """
    Sellable catalog item.

    Checkout only reads sku/name/price from here. ``stock_quantity`` is
    written exclusively through the Stock Ledger (apps.inventory).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    sku = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="Human-readable code (e.g. MUG-350ML-BLK)",
    )
    name = models.CharField(max_length=255)

    price = models.DecimalField(max_digits=19, decimal_places=2)
    sale_price = models.DecimalField(
        max_digits=19,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Used instead of price when greater than zero",
    )

    stock_quantity = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock_quantity__gte=0),
                name="product_stock_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.sku} | {self.name} | Stock: {self.stock_quantity}"

    @property
    def current_price(self) -> Decimal:
        if self.sale_price and self.sale_price > 0:
            return self.sale_price
        return self.price
