"""
Legal order/payment transitions and the side effects each one triggers.

Normal flow is validated against the transition tables below. Admin
overrides may jump anywhere, but they still go through here so that a
forced COMPLETED commits stock exactly like a real payment does.
"""
import logging
from functools import partial

from django.db import transaction

from apps.inventory.services import StockLedger
from apps.payments.authorizer import AuthorizationResult, generate_transaction_id
from apps.payments.models import PaymentMethod, PaymentStatus
from apps.utils.exceptions import IllegalStateError, PaymentMethodNotAllowed
from apps.utils.utils import now
from .models import OrderStatus, OrderTimeline
from .signals import order_confirmed, order_status_changed

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PROCESSING, PaymentStatus.CANCELLED},
    PaymentStatus.PROCESSING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED, PaymentStatus.CANCELLED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
    PaymentStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = {
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
    PaymentStatus.FAILED,
}


def can_transition_order(current, target) -> bool:
    return target in ORDER_TRANSITIONS.get(current, set())


def can_transition_payment(current, target) -> bool:
    return target in PAYMENT_TRANSITIONS.get(current, set())


def is_terminal(status) -> bool:
    return status in TERMINAL_STATUSES


class OrderStateMachine:
    """
    Wraps a locked order and its locked payment.
    Callers own the transaction; every method here assumes it runs
    inside the same ``transaction.atomic`` block that took the locks.
    """

    def __init__(self, order, payment, actor=None):
        self.order = order
        self.payment = payment
        # User id recorded on timeline rows (None for the owner's own actions)
        self.actor = actor

    # --- normal flow ---

    def ensure_payable(self):
        if self.payment.payment_method == PaymentMethod.CASH_ON_DELIVERY:
            raise PaymentMethodNotAllowed(
                "Cash on delivery orders cannot be paid by card.",
                order_number=self.order.order_number,
            )
        if self.payment.payment_status != PaymentStatus.PENDING:
            raise IllegalStateError(
                f"Payment is {self.payment.payment_status}, only PENDING payments can be processed.",
                order_number=self.order.order_number,
            )
        if self.order.status != OrderStatus.PENDING:
            raise IllegalStateError(
                f"Order is {self.order.status}, only PENDING orders can be paid.",
                order_number=self.order.order_number,
            )

    def begin_payment(self):
        self._move_payment(PaymentStatus.PROCESSING)
        self.payment.save(update_fields=["payment_status", "updated_at"])

    def confirm_payment(self, result: AuthorizationResult):
        """
        Authorizer approved: commit stock, confirm the order, clear the cart.
        All of it lands in the caller's transaction.
        """
        from apps.orders.services import CartService

        self._move_payment(PaymentStatus.COMPLETED)
        self._move_order(OrderStatus.CONFIRMED)

        StockLedger.commit_many(self.order, self.order.items.all())

        self.payment.transaction_id = result.transaction_id
        self.payment.card_last_four = result.card_last_four or ""
        self.payment.card_brand = result.card_brand or ""
        self.payment.payment_date = result.authorized_at or now()
        self.payment.save(update_fields=[
            "payment_status", "transaction_id", "card_last_four",
            "card_brand", "payment_date", "updated_at",
        ])
        self.order.save(update_fields=["status", "updated_at"])

        CartService.clear_cart(self.order.user_id)
        self._record(OrderStatus.CONFIRMED, f"Payment {result.transaction_id} completed")

        transaction.on_commit(partial(
            order_confirmed.send, sender=self.order.__class__, order=self.order, payment=self.payment,
        ))

    def fail_payment(self):
        """Authorizer declined: payment FAILED, order stays PENDING, nothing else moves."""
        self._move_payment(PaymentStatus.FAILED)
        self.payment.save(update_fields=["payment_status", "updated_at"])
        self._record(self.order.status, "Payment declined")

    # --- admin overrides ---

    def force_order_status(self, new_status):
        old_status = self.order.status
        self.order.status = new_status
        self.order.save(update_fields=["status", "updated_at"])
        self._record(new_status, f"Status set by admin (was {old_status})")
        self._announce(old_status, new_status, "status")

    def force_payment_status(self, new_status):
        old_status = self.payment.payment_status
        if new_status == PaymentStatus.COMPLETED:
            if old_status == PaymentStatus.COMPLETED:
                logger.info(f"Payment for {self.order.order_number} already COMPLETED, nothing to do")
                return
            self._complete_manually()
        else:
            self.payment.payment_status = new_status
            self.payment.save(update_fields=["payment_status", "updated_at"])
            self._record(self.order.status, f"Payment status set by admin to {new_status} (was {old_status})")

        self._announce(old_status, new_status, "payment_status")

    def _complete_manually(self):
        # Lines committed by an earlier completion stay committed
        pending = StockLedger.uncommitted(self.order, self.order.items.all())

        # Stock may have moved since the order was placed
        StockLedger.reserve_many({"product_id": i.product_id, "quantity": i.quantity} for i in pending)
        StockLedger.commit_many(self.order, pending)

        self.payment.payment_status = PaymentStatus.COMPLETED
        if not self.payment.transaction_id:
            self.payment.transaction_id = generate_transaction_id("TXN-ADMIN")
        self.payment.payment_date = now()
        self.payment.save(update_fields=["payment_status", "transaction_id", "payment_date", "updated_at"])

        self.order.status = OrderStatus.CONFIRMED
        self.order.save(update_fields=["status", "updated_at"])
        self._record(OrderStatus.CONFIRMED, f"Payment marked COMPLETED by admin ({self.payment.transaction_id})")

        logger.warning(f"Manual payment completion for {self.order.order_number} by user {self.actor}")
        transaction.on_commit(partial(
            order_confirmed.send, sender=self.order.__class__, order=self.order, payment=self.payment,
        ))

    # --- helpers ---

    def _move_order(self, target):
        if not can_transition_order(self.order.status, target):
            raise IllegalStateError(f"Order cannot move from {self.order.status} to {target}.")
        self.order.status = target

    def _move_payment(self, target):
        if not can_transition_payment(self.payment.payment_status, target):
            raise IllegalStateError(f"Payment cannot move from {self.payment.payment_status} to {target}.")
        self.payment.payment_status = target

    def _record(self, status, note):
        OrderTimeline.objects.create(
            order=self.order,
            status=status,
            note=note,
            created_by_id=self.actor,
        )

    def _announce(self, old_status, new_status, field):
        transaction.on_commit(partial(
            order_status_changed.send,
            sender=self.order.__class__,
            order=self.order,
            old_status=old_status,
            new_status=new_status,
            field=field,
        ))
