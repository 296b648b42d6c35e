from django.db import models

from apps.catalog.models import Product


class StockMovementLog(models.Model):
    """
    Immutable ledger of permanent stock changes.
    One row per (order, product, movement) doubles as the idempotency
    record for ``StockLedger.commit``.
    """
    class MovementType(models.TextChoices):
        COMMIT = "COMMIT", "Commit (Paid Order)"

    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="stock_movements")
    order = models.ForeignKey("orders.Order", on_delete=models.PROTECT, related_name="stock_movements")

    quantity_change = models.IntegerField(help_text="Delta value (+/-)")
    movement_type = models.CharField(max_length=20, choices=MovementType.choices)

    # Traceability
    reference = models.CharField(max_length=100, db_index=True, help_text="Order number")
    balance_after = models.IntegerField(help_text="Stock quantity after the change")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "product", "movement_type"],
                name="uniq_stock_movement_per_order_product",
            ),
        ]

    def __str__(self):
        return f"{self.movement_type} {self.quantity_change} | {self.reference}"
