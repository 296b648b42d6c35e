from decimal import Decimal

from django.conf import settings
from django.db import models

from apps.utils.models import TimestampedModel


class Cart(TimestampedModel):
    """
    Per-customer cart.
    One active cart per customer.
    """

    owner = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        related_name="cart",
        on_delete=models.CASCADE,
    )

    class Meta:
        db_table = "carts"

    def __str__(self):
        return f"Cart for {self.owner_id}"

    @property
    def total_amount(self) -> Decimal:
        return sum((item.subtotal for item in self.items.all()), Decimal("0.00"))

    @property
    def is_empty(self) -> bool:
        return not self.items.exists()


class CartItem(TimestampedModel):
    """
    A product line in the cart, with the price captured when it was added.
    """

    cart = models.ForeignKey(
        Cart,
        related_name="items",
        on_delete=models.CASCADE,
    )
    product = models.ForeignKey(
        "catalog.Product",
        related_name="cart_items",
        on_delete=models.CASCADE,
    )

    quantity = models.PositiveIntegerField(default=1)
    price_at_addition = models.DecimalField(max_digits=19, decimal_places=2, null=True, blank=True)

    class Meta:
        db_table = "cart_items"
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["cart", "product"], name="uniq_cart_product"),
            models.CheckConstraint(condition=models.Q(quantity__gte=1), name="cart_item_quantity_positive"),
        ]

    def __str__(self):
        return f"{self.cart_id} -> {self.product_id} x {self.quantity}"

    @property
    def subtotal(self) -> Decimal:
        price = self.price_at_addition if self.price_at_addition is not None else self.product.current_price
        return price * self.quantity
