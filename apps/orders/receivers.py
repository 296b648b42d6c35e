import logging

from django.dispatch import receiver

from .signals import order_confirmed, order_placed, order_status_changed

logger = logging.getLogger(__name__)


@receiver(order_placed)
def log_order_placed(sender, order, **kwargs):
    logger.info(
        f"Order {order.order_number} placed: {order.total_amount}",
        extra={"order_number": order.order_number, "user_id": order.user_id},
    )


@receiver(order_confirmed)
def log_order_confirmed(sender, order, payment, **kwargs):
    logger.info(
        f"Order {order.order_number} confirmed, txn {payment.transaction_id}",
        extra={"order_number": order.order_number, "user_id": order.user_id},
    )


@receiver(order_status_changed)
def log_status_override(sender, order, old_status, new_status, field="status", **kwargs):
    logger.info(
        f"Order {order.order_number} {field} changed {old_status} -> {new_status}",
        extra={"order_number": order.order_number},
    )
