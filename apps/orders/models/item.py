from django.db import models

from apps.catalog.models import Product
from apps.utils.models import PublicIdModel, TimestampedModel
from apps.utils.utils import quantize_money
from .order import Order


class OrderItem(PublicIdModel, TimestampedModel):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_items')

    # Snapshot fields (Critical for audit)
    product_name = models.CharField(max_length=255)
    product_sku = models.CharField(max_length=100)

    quantity = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=19, decimal_places=2)
    subtotal = models.DecimalField(max_digits=19, decimal_places=2)

    class Meta:
        ordering = ["id"]

    def save(self, *args, **kwargs):
        if self.price is not None and self.quantity is not None:
            self.subtotal = quantize_money(self.price * self.quantity)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.quantity}x {self.product_name}"
