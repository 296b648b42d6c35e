import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("payment_method", models.CharField(choices=[("CREDIT_CARD", "Credit Card"), ("DEBIT_CARD", "Debit Card"), ("CASH_ON_DELIVERY", "Cash on Delivery")], max_length=50)),
                ("payment_status", models.CharField(choices=[("PENDING", "Pending"), ("PROCESSING", "Processing"), ("COMPLETED", "Completed"), ("FAILED", "Failed"), ("REFUNDED", "Refunded"), ("CANCELLED", "Cancelled")], db_index=True, default="PENDING", max_length=20)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=19)),
                ("transaction_id", models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ("card_last_four", models.CharField(blank=True, max_length=4)),
                ("card_brand", models.CharField(blank=True, max_length=20)),
                ("payment_gateway", models.CharField(default="DUMMY_GATEWAY", max_length=50)),
                ("payment_date", models.DateTimeField(blank=True, null=True)),
                ("order", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="payment", to="orders.order")),
            ],
        ),
    ]
