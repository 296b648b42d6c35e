import concurrent.futures
import uuid
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import connection, transaction
from django.test import TestCase, TransactionTestCase

from apps.catalog.models import Product
from apps.orders.models import Order, OrderItem
from apps.utils.exceptions import BusinessLogicException, InsufficientStock, ProductNotFound, ProductUnavailable
from .models import StockMovementLog
from .services import StockLedger

User = get_user_model()


def make_order(user, total="10.00"):
    return Order.objects.create(
        user=user,
        total_amount=Decimal(total),
        shipping_address_line1="1 Main St",
        shipping_city="Springfield",
        shipping_state="IL",
        shipping_postal_code="62701",
        shipping_country="US",
        billing_address_line1="1 Main St",
        billing_city="Springfield",
        billing_state="IL",
        billing_postal_code="62701",
        billing_country="US",
        customer_email=f"{user.username}@example.com",
    )


class StockLedgerTests(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username="buyer", password="testpass")
        self.mug = Product.objects.create(sku="MUG", name="Mug", price=Decimal("10.00"), stock_quantity=2)
        self.pen = Product.objects.create(sku="PEN", name="Pen", price=Decimal("1.50"), stock_quantity=10)

    def test_reserve_does_not_decrement(self):
        reservation = StockLedger.reserve(self.mug.pk, 2)

        self.assertEqual(reservation.requested, 2)
        self.assertEqual(reservation.available, 2)
        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock_quantity, 2)

    def test_reserve_reports_requested_and_available(self):
        with self.assertRaises(InsufficientStock) as ctx:
            StockLedger.reserve(self.mug.pk, 3)

        self.assertEqual(ctx.exception.product_name, "Mug")
        self.assertEqual(ctx.exception.requested, 3)
        self.assertEqual(ctx.exception.available, 2)

    def test_reserve_many_sums_duplicate_products(self):
        with self.assertRaises(InsufficientStock) as ctx:
            StockLedger.reserve_many([
                {"product_id": self.mug.pk, "quantity": 1},
                {"product_id": self.pen.pk, "quantity": 1},
                {"product_id": self.mug.pk, "quantity": 2},
            ])
        self.assertEqual(ctx.exception.requested, 3)

    def test_reserve_many_rejects_unknown_and_inactive(self):
        with self.assertRaises(ProductNotFound):
            StockLedger.reserve_many([{"product_id": uuid.uuid4(), "quantity": 1}])

        self.pen.is_active = False
        self.pen.save()
        with self.assertRaises(ProductUnavailable):
            StockLedger.reserve_many([{"product_id": self.pen.pk, "quantity": 1}])

    def test_commit_is_idempotent_per_order_and_product(self):
        order = make_order(self.user)

        self.assertTrue(StockLedger.commit(order, self.mug.pk, 2))
        self.assertFalse(StockLedger.commit(order, self.mug.pk, 2))

        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock_quantity, 0)

        log = StockMovementLog.objects.get(order=order, product=self.mug)
        self.assertEqual(log.quantity_change, -2)
        self.assertEqual(log.balance_after, 0)
        self.assertEqual(log.reference, order.order_number)

    def test_uncommitted_filters_committed_lines(self):
        order = make_order(self.user)
        lines = [
            OrderItem(order=order, product=self.mug, product_name="Mug", product_sku="MUG", price=Decimal("10.00"), quantity=1),
            OrderItem(order=order, product=self.pen, product_name="Pen", product_sku="PEN", price=Decimal("1.50"), quantity=2),
        ]
        StockLedger.commit(order, self.mug.pk, 1)

        pending = StockLedger.uncommitted(order, lines)

        self.assertEqual([line.product_id for line in pending], [self.pen.pk])

    def test_commit_never_goes_below_zero(self):
        first = make_order(self.user)
        second = make_order(self.user)

        StockLedger.commit(first, self.mug.pk, 2)
        with self.assertRaises(InsufficientStock):
            StockLedger.commit(second, self.mug.pk, 1)

        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock_quantity, 0)
        self.assertFalse(StockMovementLog.objects.filter(order=second).exists())


class ConcurrencyTests(TransactionTestCase):
    # Use TransactionTestCase to allow real DB transactions for concurrency testing

    def setUp(self):
        self.product = Product.objects.create(sku="LAST", name="Last Units", price=Decimal("5.00"), stock_quantity=3)
        self.orders = [
            make_order(User.objects.create_user(username=f"user{i}", password="testpass"))
            for i in range(6)
        ]

    def test_concurrent_commits_never_oversell(self):
        """Six buyers race for three units: exactly three win."""
        def buy(order_id):
            try:
                order = Order.objects.get(pk=order_id)
                with transaction.atomic():
                    StockLedger.reserve(self.product.pk, 1)
                    StockLedger.commit(order, self.product.pk, 1)
                return "SUCCESS"
            except BusinessLogicException:
                return "FAILED"
            finally:
                connection.close()

        with concurrent.futures.ThreadPoolExecutor(max_workers=6) as executor:
            results = list(executor.map(buy, [o.pk for o in self.orders]))

        self.assertEqual(results.count("SUCCESS"), 3)
        self.assertEqual(results.count("FAILED"), 3)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 0)
        self.assertEqual(StockMovementLog.objects.filter(product=self.product).count(), 3)
