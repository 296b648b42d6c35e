# apps/orders/tests.py
import uuid
from unittest import mock
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import connection
from django.test import SimpleTestCase, TestCase

from rest_framework import status
from rest_framework.test import APITestCase

from apps.accounts.identity import Identity
from apps.catalog.models import Product
from apps.catalog.services import CatalogService
from apps.inventory.models import StockMovementLog
from apps.payments.authorizer import CardDetails
from apps.payments.models import PaymentMethod, PaymentStatus
from apps.utils.exceptions import (
    AdminRequired,
    EmptyCart,
    IllegalStateError,
    InsufficientStock,
    InvalidCardDetails,
    OrderNotFound,
    PaymentMethodNotAllowed,
    ProductNotFound,
    ProductUnavailable,
    ValidationFailed,
)
from .dto import Address, ContactInfo
from .models import CartItem, Order, OrderStatus, OrderTimeline
from .pricing import order_total, snapshot_line
from .services import CartService, CheckoutService
from .signals import order_confirmed
from .state_machine import can_transition_order, can_transition_payment, is_terminal

User = get_user_model()

GOOD_CARD = CardDetails("4111111111111111", "12/29", "123", "Jane Doe")
DECLINED_CARD = CardDetails("4111111111110000", "12/29", "123", "Jane Doe")

SHIPPING = Address(line1="1 Main St", city="Springfield", state="IL", postal_code="62701", country="US")
BILLING = Address(line1="9 Bank Rd", line2="Suite 4", city="Chicago", state="IL", postal_code="60601", country="US")


def identity_for(user):
    return Identity.from_user(user)


class CheckoutFixtures:
    """Users, products and a filled cart shared by the checkout tests."""

    def setUp(self):
        super().setUp()
        self.buyer = User.objects.create_user(username="buyer", password="testpass", email="buyer@example.com")
        self.stranger = User.objects.create_user(username="stranger", password="testpass")
        self.admin = User.objects.create_user(username="admin", password="testpass", is_staff=True)

        self.mug = Product.objects.create(
            sku="MUG-350ML-BLK", name="Black Mug", price=Decimal("12.00"), sale_price=Decimal("10.00"), stock_quantity=5,
        )
        self.pen = Product.objects.create(sku="PEN-BLU", name="Blue Pen", price=Decimal("1.25"), stock_quantity=20)

        CartService.add_item(self.buyer.pk, self.mug.pk, 2)
        CartService.add_item(self.buyer.pk, self.pen.pk, 3)

    @property
    def me(self):
        return identity_for(self.buyer)

    def create_order(self, identity=None, method=PaymentMethod.CREDIT_CARD, billing=BILLING):
        return CheckoutService.create_order(
            identity or self.me,
            SHIPPING,
            billing,
            ContactInfo(email="buyer@example.com", phone="+15551234567"),
            method,
        )

    def cart_size(self, user=None):
        return CartItem.objects.filter(cart__owner=user or self.buyer).count()


# --- pure helpers ---

class TransitionTableTests(SimpleTestCase):
    def test_order_happy_path(self):
        path = [
            OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING,
            OrderStatus.SHIPPED, OrderStatus.DELIVERED,
        ]
        for current, target in zip(path, path[1:]):
            self.assertTrue(can_transition_order(current, target), f"{current} -> {target}")

        self.assertFalse(can_transition_order(OrderStatus.PENDING, OrderStatus.SHIPPED))
        self.assertFalse(can_transition_order(OrderStatus.DELIVERED, OrderStatus.CANCELLED))

    def test_cancel_and_refund_from_any_non_terminal_order_state(self):
        for current in (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED):
            self.assertTrue(can_transition_order(current, OrderStatus.CANCELLED))
            self.assertTrue(can_transition_order(current, OrderStatus.REFUNDED))

    def test_payment_transitions(self):
        self.assertTrue(can_transition_payment(PaymentStatus.PENDING, PaymentStatus.PROCESSING))
        self.assertTrue(can_transition_payment(PaymentStatus.PROCESSING, PaymentStatus.COMPLETED))
        self.assertTrue(can_transition_payment(PaymentStatus.PROCESSING, PaymentStatus.FAILED))
        self.assertTrue(can_transition_payment(PaymentStatus.COMPLETED, PaymentStatus.REFUNDED))
        self.assertFalse(can_transition_payment(PaymentStatus.PENDING, PaymentStatus.COMPLETED))
        self.assertFalse(can_transition_payment(PaymentStatus.FAILED, PaymentStatus.PROCESSING))

    def test_terminal_statuses(self):
        for terminal in ("DELIVERED", "CANCELLED", "REFUNDED", "FAILED"):
            self.assertTrue(is_terminal(terminal))
        for live in ("PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "COMPLETED"):
            self.assertFalse(is_terminal(live))


class PricingTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="pricing", password="testpass")
        self.product = Product.objects.create(
            sku="LAMP", name="Desk Lamp", price=Decimal("19.99"), sale_price=Decimal("15.49"), stock_quantity=5,
        )

    def test_price_at_addition_wins_over_catalog(self):
        item = CartService.add_item(self.user.pk, self.product.pk, 3)
        Product.objects.filter(pk=self.product.pk).update(sale_price=Decimal("1.00"))
        item.refresh_from_db()

        line = snapshot_line(item)
        self.assertEqual(line.price, Decimal("15.49"))
        self.assertEqual(line.subtotal, Decimal("46.47"))
        self.assertEqual(line.product_name, "Desk Lamp")
        self.assertEqual(line.product_sku, "LAMP")
        self.assertIsNone(line.pk)

    def test_falls_back_to_current_price(self):
        item = CartService.add_item(self.user.pk, self.product.pk, 2)
        CartItem.objects.filter(pk=item.pk).update(price_at_addition=None)
        item.refresh_from_db()

        self.assertEqual(snapshot_line(item).price, Decimal("15.49"))

    def test_order_total_sums_subtotals(self):
        item = CartService.add_item(self.user.pk, self.product.pk, 2)
        lines = [snapshot_line(item), snapshot_line(item)]
        self.assertEqual(order_total(lines), Decimal("61.96"))
        self.assertEqual(order_total([]), Decimal("0.00"))


class CartServiceTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="cart", password="testpass")
        self.product = Product.objects.create(sku="CUP", name="Cup", price=Decimal("4.00"), stock_quantity=5)

    def test_adding_twice_increases_quantity(self):
        CartService.add_item(self.user.pk, self.product.pk, 1)
        item = CartService.add_item(self.user.pk, self.product.pk, 2)

        self.assertEqual(item.quantity, 3)
        self.assertEqual(item.price_at_addition, Decimal("4.00"))
        self.assertEqual(CartService.get_cart(self.user.pk).total_amount, Decimal("12.00"))

    def test_rejects_bad_quantity_and_unknown_product(self):
        with self.assertRaises(ValidationFailed):
            CartService.add_item(self.user.pk, self.product.pk, 0)
        with self.assertRaises(ProductNotFound):
            CartService.add_item(self.user.pk, uuid.uuid4(), 1)

    def test_rejects_inactive_product(self):
        Product.objects.filter(pk=self.product.pk).update(is_active=False)

        with self.assertRaises(ProductUnavailable):
            CartService.add_item(self.user.pk, self.product.pk, 1)
        self.assertTrue(CartService.get_cart(self.user.pk).is_empty)

    def test_clear_cart(self):
        CartService.add_item(self.user.pk, self.product.pk, 1)
        self.assertEqual(CartService.clear_cart(self.user.pk), 1)
        self.assertTrue(CartService.get_cart(self.user.pk).is_empty)


# --- orchestrator ---

class CreateOrderTests(CheckoutFixtures, TestCase):

    def test_creates_pending_order_with_frozen_lines(self):
        order = self.create_order()

        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.payment.payment_status, PaymentStatus.PENDING)
        self.assertEqual(order.payment.payment_method, PaymentMethod.CREDIT_CARD)
        self.assertEqual(order.payment.amount, order.total_amount)
        self.assertIsNone(order.payment.transaction_id)
        self.assertRegex(order.order_number, r"^ORD-\d{8}-[0-9A-F]{4}$")

        # 2 x 10.00 (sale price) + 3 x 1.25
        self.assertEqual(order.total_amount, Decimal("23.75"))
        self.assertEqual(
            order.total_amount,
            sum((item.price * item.quantity for item in order.items.all()), Decimal("0")),
        )
        self.assertEqual(OrderTimeline.objects.filter(order=order, status=OrderStatus.PENDING).count(), 1)

    def test_does_not_touch_stock_or_card_cart(self):
        self.create_order()

        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock_quantity, 5)
        self.assertEqual(self.cart_size(), 2)
        self.assertFalse(StockMovementLog.objects.exists())

    def test_total_is_immune_to_later_price_changes(self):
        order = self.create_order()
        Product.objects.filter(pk=self.mug.pk).update(price=Decimal("99.00"), sale_price=Decimal("0.00"))

        fetched = CheckoutService.get_order(self.me, str(order.public_id))
        self.assertEqual(fetched.total_amount, Decimal("23.75"))
        self.assertEqual(fetched.items.get(product=self.mug).price, Decimal("10.00"))

    def test_empty_cart(self):
        with self.assertRaises(EmptyCart):
            self.create_order(identity_for(self.stranger))

        self.assertFalse(Order.objects.exists())
        self.assertEqual(self.cart_size(), 2)

    def test_insufficient_stock_leaves_no_order(self):
        scarce = Product.objects.create(sku="RARE", name="Rare Vase", price=Decimal("50.00"), stock_quantity=2)
        CartService.add_item(self.stranger.pk, scarce.pk, 3)

        with self.assertRaises(InsufficientStock) as ctx:
            self.create_order(identity_for(self.stranger))

        self.assertEqual(ctx.exception.requested, 3)
        self.assertEqual(ctx.exception.available, 2)
        self.assertFalse(Order.objects.exists())
        self.assertEqual(self.cart_size(self.stranger), 1)

    def test_billing_defaults_to_shipping(self):
        order = self.create_order(billing=None)
        self.assertEqual(order.billing_address, SHIPPING)

    def test_incomplete_address_is_rejected(self):
        with self.assertRaises(ValidationFailed):
            CheckoutService.create_order(
                self.me,
                Address(line1="", city="X", state="Y", postal_code="1", country="US"),
                None,
                ContactInfo(email="buyer@example.com"),
                PaymentMethod.CREDIT_CARD,
            )
        self.assertFalse(Order.objects.exists())

    def test_round_trip(self):
        order = self.create_order()
        fetched = CheckoutService.get_order(self.me, str(order.public_id))

        self.assertEqual(fetched.total_amount, order.total_amount)
        self.assertEqual(fetched.shipping_address, SHIPPING)
        self.assertEqual(fetched.billing_address, BILLING)
        self.assertEqual(
            [(i.product_id, i.product_name, i.product_sku, i.quantity, i.price, i.subtotal) for i in fetched.items.all()],
            [(i.product_id, i.product_name, i.product_sku, i.quantity, i.price, i.subtotal) for i in order.items.all()],
        )


class PayOrderTests(CheckoutFixtures, TestCase):

    def test_successful_payment_confirms_commits_and_clears_cart(self):
        order = self.create_order()
        paid = CheckoutService.pay_order(self.me, str(order.public_id), GOOD_CARD)

        self.assertEqual(paid.status, OrderStatus.CONFIRMED)
        self.assertEqual(paid.payment.payment_status, PaymentStatus.COMPLETED)
        self.assertRegex(paid.payment.transaction_id, r"^TXN-[0-9A-F]{8}$")
        self.assertEqual(paid.payment.card_last_four, "1111")
        self.assertEqual(paid.payment.card_brand, "VISA")
        self.assertIsNotNone(paid.payment.payment_date)

        self.mug.refresh_from_db()
        self.pen.refresh_from_db()
        self.assertEqual(self.mug.stock_quantity, 3)
        self.assertEqual(self.pen.stock_quantity, 17)
        self.assertEqual(StockMovementLog.objects.filter(order=order).count(), 2)
        self.assertEqual(self.cart_size(), 0)

    def test_card_ending_0000_fails_and_keeps_order_pending(self):
        order = self.create_order()
        result = CheckoutService.pay_order(self.me, str(order.public_id), DECLINED_CARD)

        self.assertEqual(result.status, OrderStatus.PENDING)
        self.assertEqual(result.payment.payment_status, PaymentStatus.FAILED)
        self.assertIsNone(result.payment.transaction_id)

        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock_quantity, 5)
        self.assertEqual(self.cart_size(), 2)

    def test_transaction_refs_are_unique(self):
        first = CheckoutService.pay_order(self.me, str(self.create_order().public_id), GOOD_CARD)
        CartService.add_item(self.buyer.pk, self.pen.pk, 1)
        second = CheckoutService.pay_order(self.me, str(self.create_order().public_id), GOOD_CARD)

        self.assertNotEqual(first.payment.transaction_id, second.payment.transaction_id)

    def test_paying_twice_is_illegal(self):
        order = self.create_order()
        CheckoutService.pay_order(self.me, str(order.public_id), GOOD_CARD)
        CartService.add_item(self.buyer.pk, self.pen.pk, 1)

        with self.assertRaises(IllegalStateError):
            CheckoutService.pay_order(self.me, str(order.public_id), GOOD_CARD)
        self.assertEqual(StockMovementLog.objects.filter(order=order).count(), 2)

    def test_failed_payment_cannot_be_retried(self):
        order = self.create_order()
        CheckoutService.pay_order(self.me, str(order.public_id), DECLINED_CARD)

        with self.assertRaises(IllegalStateError):
            CheckoutService.pay_order(self.me, str(order.public_id), GOOD_CARD)

    def test_emptied_cart_is_illegal_state(self):
        first = self.create_order()
        second = self.create_order()
        CheckoutService.pay_order(self.me, str(first.public_id), GOOD_CARD)

        with self.assertRaises(IllegalStateError):
            CheckoutService.pay_order(self.me, str(second.public_id), GOOD_CARD)

        second.payment.refresh_from_db()
        self.assertEqual(second.payment.payment_status, PaymentStatus.PENDING)

    def test_only_the_owner_can_pay(self):
        order = self.create_order()

        with self.assertRaises(OrderNotFound):
            CheckoutService.pay_order(identity_for(self.stranger), str(order.public_id), GOOD_CARD)
        with self.assertRaises(OrderNotFound):
            CheckoutService.pay_order(identity_for(self.admin), str(order.public_id), GOOD_CARD)

    def test_invalid_card_rejected_before_any_change(self):
        order = self.create_order()

        with self.assertRaises(InvalidCardDetails):
            CheckoutService.pay_order(self.me, str(order.public_id), CardDetails("1234", "13/99", "1", ""))

        order.payment.refresh_from_db()
        self.assertEqual(order.payment.payment_status, PaymentStatus.PENDING)

    def test_stock_is_rechecked_at_payment_time(self):
        order = self.create_order()
        # Someone else bought most of the mugs in the meantime
        CatalogService.adjust_stock(self.mug.pk, -4)

        with self.assertRaises(InsufficientStock) as ctx:
            CheckoutService.pay_order(self.me, str(order.public_id), GOOD_CARD)

        self.assertEqual(ctx.exception.requested, 2)
        self.assertEqual(ctx.exception.available, 1)
        order.refresh_from_db()
        order.payment.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.payment.payment_status, PaymentStatus.PENDING)
        self.assertEqual(self.cart_size(), 2)

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFound):
            CheckoutService.pay_order(self.me, str(uuid.uuid4()), GOOD_CARD)
        with self.assertRaises(OrderNotFound):
            CheckoutService.pay_order(self.me, "not-a-uuid", GOOD_CARD)

    def test_confirmation_signal_fires_on_commit(self):
        received = []

        def listener(sender, order, payment, **kwargs):
            received.append((order.order_number, payment.payment_status))

        order_confirmed.connect(listener)
        self.addCleanup(order_confirmed.disconnect, listener)

        order = self.create_order()
        with self.captureOnCommitCallbacks(execute=True):
            CheckoutService.pay_order(self.me, str(order.public_id), GOOD_CARD)

        self.assertEqual(received, [(order.order_number, PaymentStatus.COMPLETED)])


class CashOnDeliveryTests(CheckoutFixtures, TestCase):

    def test_cod_creation_clears_cart_and_rejects_card_pay(self):
        order = self.create_order(method=PaymentMethod.CASH_ON_DELIVERY)
        self.assertEqual(self.cart_size(), 0)

        CartService.add_item(self.buyer.pk, self.pen.pk, 1)
        with self.assertRaises(PaymentMethodNotAllowed):
            CheckoutService.pay_order(self.me, str(order.public_id), GOOD_CARD)

    def test_admin_completion_commits_once(self):
        order = self.create_order(method=PaymentMethod.CASH_ON_DELIVERY)
        admin = identity_for(self.admin)

        completed = CheckoutService.set_payment_status(admin, str(order.public_id), PaymentStatus.COMPLETED)
        self.assertEqual(completed.status, OrderStatus.CONFIRMED)
        self.assertEqual(completed.payment.payment_status, PaymentStatus.COMPLETED)
        self.assertRegex(completed.payment.transaction_id, r"^TXN-ADMIN-[0-9A-F]{8}$")
        self.assertIsNotNone(completed.payment.payment_date)

        again = CheckoutService.set_payment_status(admin, str(order.public_id), PaymentStatus.COMPLETED)
        self.assertEqual(again.payment.transaction_id, completed.payment.transaction_id)

        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock_quantity, 3)
        self.assertEqual(StockMovementLog.objects.filter(order=order).count(), 2)

    def test_admin_completion_needs_stock(self):
        order = self.create_order(method=PaymentMethod.CASH_ON_DELIVERY)
        CatalogService.adjust_stock(self.mug.pk, -5)

        with self.assertRaises(InsufficientStock):
            CheckoutService.set_payment_status(identity_for(self.admin), str(order.public_id), PaymentStatus.COMPLETED)

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.PENDING)

    def test_recompletion_skips_already_committed_lines(self):
        order = self.create_order(method=PaymentMethod.CASH_ON_DELIVERY)
        admin = identity_for(self.admin)
        order_id = str(order.public_id)

        CheckoutService.set_payment_status(admin, order_id, PaymentStatus.COMPLETED)
        CheckoutService.set_payment_status(admin, order_id, PaymentStatus.REFUNDED)
        # Someone else buys the remaining mugs
        CatalogService.adjust_stock(self.mug.pk, -3)

        again = CheckoutService.set_payment_status(admin, order_id, PaymentStatus.COMPLETED)

        self.assertEqual(again.status, OrderStatus.CONFIRMED)
        self.assertEqual(again.payment.payment_status, PaymentStatus.COMPLETED)
        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock_quantity, 0)
        self.assertEqual(StockMovementLog.objects.filter(order=order).count(), 2)


class AdminOverrideTests(CheckoutFixtures, TestCase):

    def test_set_order_status_overwrites_and_records(self):
        order = self.create_order()
        updated = CheckoutService.set_order_status(identity_for(self.admin), str(order.public_id), OrderStatus.SHIPPED)

        self.assertEqual(updated.status, OrderStatus.SHIPPED)
        row = OrderTimeline.objects.filter(order=order).last()
        self.assertEqual(row.status, OrderStatus.SHIPPED)
        self.assertEqual(row.created_by, self.admin)
        # No side effects on stock
        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock_quantity, 5)

    def test_other_payment_statuses_are_direct_writes(self):
        order = self.create_order()
        updated = CheckoutService.set_payment_status(identity_for(self.admin), str(order.public_id), PaymentStatus.REFUNDED)

        self.assertEqual(updated.payment.payment_status, PaymentStatus.REFUNDED)
        self.assertEqual(updated.status, OrderStatus.PENDING)
        self.assertFalse(StockMovementLog.objects.exists())

    def test_admin_can_reopen_failed_payment(self):
        order = self.create_order()
        CheckoutService.pay_order(self.me, str(order.public_id), DECLINED_CARD)
        CheckoutService.set_payment_status(identity_for(self.admin), str(order.public_id), PaymentStatus.PENDING)

        paid = CheckoutService.pay_order(self.me, str(order.public_id), GOOD_CARD)
        self.assertEqual(paid.status, OrderStatus.CONFIRMED)

    def test_non_admins_are_rejected(self):
        order = self.create_order()

        with self.assertRaises(AdminRequired):
            CheckoutService.set_order_status(self.me, str(order.public_id), OrderStatus.SHIPPED)
        with self.assertRaises(AdminRequired):
            CheckoutService.set_payment_status(self.me, str(order.public_id), PaymentStatus.COMPLETED)

    def test_unknown_status_is_rejected(self):
        order = self.create_order()
        with self.assertRaises(ValidationFailed):
            CheckoutService.set_order_status(identity_for(self.admin), str(order.public_id), "LOST")


class LockTimeoutTests(CheckoutFixtures, TestCase):
    """The lock wait is bounded before the order row is locked."""

    def _events_for(self, call):
        events = []

        def record_query(execute, sql, params, many, context):
            if sql.lstrip().upper().startswith("SELECT") and 'FROM "orders_order"' in sql:
                events.append("order_query")
            return execute(sql, params, many, context)

        with mock.patch("apps.orders.services.apply_lock_timeout", side_effect=lambda: events.append("lock_timeout")):
            with connection.execute_wrapper(record_query):
                call()
        return events

    def assertTimeoutFirst(self, events):
        self.assertIn("lock_timeout", events)
        self.assertIn("order_query", events)
        self.assertLess(events.index("lock_timeout"), events.index("order_query"))

    def test_pay_order(self):
        order_id = str(self.create_order().public_id)
        self.assertTimeoutFirst(self._events_for(lambda: CheckoutService.pay_order(self.me, order_id, GOOD_CARD)))

    def test_admin_overrides(self):
        order_id = str(self.create_order().public_id)
        admin = identity_for(self.admin)

        self.assertTimeoutFirst(self._events_for(
            lambda: CheckoutService.set_order_status(admin, order_id, OrderStatus.PROCESSING)
        ))
        self.assertTimeoutFirst(self._events_for(
            lambda: CheckoutService.set_payment_status(admin, order_id, PaymentStatus.CANCELLED)
        ))


class ReadTests(CheckoutFixtures, TestCase):

    def test_get_order_visibility(self):
        order = self.create_order()
        order_id = str(order.public_id)

        self.assertEqual(CheckoutService.get_order(self.me, order_id).pk, order.pk)
        self.assertEqual(CheckoutService.get_order(identity_for(self.admin), order_id).pk, order.pk)
        with self.assertRaises(OrderNotFound):
            CheckoutService.get_order(identity_for(self.stranger), order_id)
        with self.assertRaises(OrderNotFound):
            CheckoutService.get_order(self.me, "garbage")

    def test_list_orders_newest_first_and_scoped(self):
        first = self.create_order()
        second = self.create_order()
        CartService.add_item(self.stranger.pk, self.pen.pk, 1)
        foreign = self.create_order(identity_for(self.stranger))

        mine = CheckoutService.list_orders(self.me)
        self.assertEqual([o.pk for o in mine], [second.pk, first.pk])

        everyone = CheckoutService.list_orders(identity_for(self.admin), all_orders=True)
        self.assertEqual([o.pk for o in everyone], [foreign.pk, second.pk, first.pk])

        filtered = CheckoutService.list_orders(identity_for(self.admin), owner_id=self.stranger.pk)
        self.assertEqual([o.pk for o in filtered], [foreign.pk])

    def test_listing_others_requires_admin(self):
        with self.assertRaises(AdminRequired):
            CheckoutService.list_orders(self.me, all_orders=True)
        with self.assertRaises(AdminRequired):
            CheckoutService.list_orders(self.me, owner_id=self.stranger.pk)

    def test_pagination(self):
        created = [self.create_order() for _ in range(3)]

        page1 = CheckoutService.list_orders(self.me, page=1, page_size=2)
        page2 = CheckoutService.list_orders(self.me, page=2, page_size=2)
        self.assertEqual([o.pk for o in page1], [created[2].pk, created[1].pk])
        self.assertEqual([o.pk for o in page2], [created[0].pk])
        self.assertEqual(CheckoutService.list_orders(self.me, page=5, page_size=2), [])

        with self.assertRaises(ValidationFailed):
            CheckoutService.list_orders(self.me, page="abc")


class SingleStepCheckoutTests(CheckoutFixtures, TestCase):

    def _checkout(self, card, method=PaymentMethod.CREDIT_CARD):
        return CheckoutService.checkout(
            self.me, SHIPPING, BILLING, ContactInfo(email="buyer@example.com"), method, card_details=card,
        )

    def test_checkout_confirms_in_one_call(self):
        order = self._checkout(GOOD_CARD)
        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        self.assertEqual(self.cart_size(), 0)

    def test_declined_checkout_keeps_cart(self):
        order = self._checkout(DECLINED_CARD)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.payment.payment_status, PaymentStatus.FAILED)
        self.assertEqual(self.cart_size(), 2)

    def test_bad_card_creates_nothing(self):
        with self.assertRaises(InvalidCardDetails):
            self._checkout(CardDetails("4111", "12/29", "123", "Jane Doe"))
        with self.assertRaises(InvalidCardDetails):
            self._checkout(None)
        self.assertFalse(Order.objects.exists())

    def test_cod_checkout_needs_no_card(self):
        order = self._checkout(None, method=PaymentMethod.CASH_ON_DELIVERY)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.payment.payment_method, PaymentMethod.CASH_ON_DELIVERY)


# --- HTTP layer ---

class OrderAPITests(CheckoutFixtures, APITestCase):
    url = "/api/v1/orders/"

    def _payload(self, **overrides):
        payload = {
            "shipping_address": {
                "line1": "1 Main St", "city": "Springfield", "state": "IL",
                "postal_code": "62701", "country": "US",
            },
            "customer_email": "buyer@example.com",
            "customer_phone": "+15551234567",
            "payment_method": "CREDIT_CARD",
        }
        payload.update(overrides)
        return payload

    def _card(self, number="4111111111111111"):
        return {"card_number": number, "expiry_date": "12/29", "cvv": "123", "holder_name": "Jane Doe"}

    def test_requires_authentication(self):
        response = self.client.get(f"{self.url}my-orders/")
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_create_then_pay(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(self.url, self._payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["status"], "PENDING")
        self.assertEqual(response.data["total_amount"], "23.75")
        self.assertEqual(len(response.data["items"]), 2)
        self.assertEqual(response.data["billing_address"]["line1"], "1 Main St")
        self.assertEqual(response.data["payment"]["payment_status"], "PENDING")

        order_id = response.data["id"]
        response = self.client.post(f"{self.url}{order_id}/pay/", self._card(), format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "CONFIRMED")
        self.assertEqual(response.data["payment"]["masked_card"], "**** **** **** 1111")
        self.assertNotIn("cvv", response.data["payment"])

    def test_single_step_create(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(self.url, self._payload(payment_details=self._card()), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["status"], "CONFIRMED")

    def test_declined_card_is_not_an_error(self):
        self.client.force_authenticate(user=self.buyer)
        order = self.create_order()

        response = self.client.post(f"{self.url}{order.public_id}/pay/", self._card("4111111111110000"), format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "PENDING")
        self.assertEqual(response.data["payment"]["payment_status"], "FAILED")

    def test_malformed_card_is_400(self):
        self.client.force_authenticate(user=self.buyer)
        order = self.create_order()

        response = self.client.post(f"{self.url}{order.public_id}/pay/", self._card("1234"), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_conflicts_are_409(self):
        self.client.force_authenticate(user=self.buyer)
        Product.objects.filter(pk=self.mug.pk).update(stock_quantity=1)

        response = self.client.post(self.url, self._payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "insufficient_stock")
        self.assertEqual(response.data["requested"], 2)
        self.assertEqual(response.data["available"], 1)

    def test_empty_cart_is_400(self):
        self.client.force_authenticate(user=self.stranger)

        response = self.client.post(self.url, self._payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "empty_cart")

    def test_strangers_get_404(self):
        order = self.create_order()
        self.client.force_authenticate(user=self.stranger)

        response = self.client.get(f"{self.url}{order.public_id}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_my_orders(self):
        self.create_order()
        self.client.force_authenticate(user=self.buyer)

        response = self.client.get(f"{self.url}my-orders/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["user_id"], self.buyer.pk)

    def test_admin_endpoints(self):
        order = self.create_order(method=PaymentMethod.CASH_ON_DELIVERY)
        self.client.force_authenticate(user=self.admin)

        response = self.client.get(self.url, {"user": self.buyer.pk})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([o["order_number"] for o in response.data], [order.order_number])

        response = self.client.patch(
            f"{self.url}{order.public_id}/payment-status/", {"payment_status": "COMPLETED"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "CONFIRMED")

        response = self.client.patch(f"{self.url}{order.public_id}/status/", {"status": "SHIPPED"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "SHIPPED")

    def test_non_admin_status_change_is_404(self):
        order = self.create_order()
        self.client.force_authenticate(user=self.buyer)

        response = self.client.patch(f"{self.url}{order.public_id}/status/", {"status": "SHIPPED"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
