# apps/orders/apps.py

from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.orders"

    def ready(self):
        # Side-effect receivers only; money and stock logic lives in services.py
        import apps.orders.receivers  # noqa: F401
