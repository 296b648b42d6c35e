import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="StockMovementLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("quantity_change", models.IntegerField(help_text="Delta value (+/-)")),
                ("movement_type", models.CharField(choices=[("COMMIT", "Commit (Paid Order)")], max_length=20)),
                ("reference", models.CharField(db_index=True, help_text="Order number", max_length=100)),
                ("balance_after", models.IntegerField(help_text="Stock quantity after the change")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="stock_movements", to="orders.order")),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="stock_movements", to="catalog.product")),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("order", "product", "movement_type"),
                        name="uniq_stock_movement_per_order_product",
                    ),
                ],
            },
        ),
    ]
