import concurrent.futures
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import connection
from django.test import TransactionTestCase

from apps.accounts.identity import Identity
from apps.catalog.models import Product
from apps.inventory.models import StockMovementLog
from apps.payments.models import PaymentMethod, PaymentStatus
from apps.utils.exceptions import BusinessLogicException, IllegalStateError
from .dto import ContactInfo
from .models import Order, OrderStatus
from .services import CartService, CheckoutService
from .tests import GOOD_CARD, SHIPPING

User = get_user_model()


class ConcurrentCheckoutTests(TransactionTestCase):
    # Use TransactionTestCase to allow real DB transactions for concurrency testing

    def setUp(self):
        self.product = Product.objects.create(
            sku="LAST-UNITS", name="Limited Print", price=Decimal("40.00"), stock_quantity=2,
        )
        self.buyers = [User.objects.create_user(username=f"buyer{i}", password="testpass") for i in range(5)]
        for buyer in self.buyers:
            CartService.add_item(buyer.pk, self.product.pk, 1)

    def _run(self, fn, args):
        def wrapped(arg):
            try:
                return fn(arg)
            finally:
                connection.close()

        with concurrent.futures.ThreadPoolExecutor(max_workers=len(args)) as executor:
            return list(executor.map(wrapped, args))

    def test_concurrent_checkouts_never_oversell(self):
        """Five buyers, two units: exactly two confirmed orders."""
        def checkout(user_id):
            try:
                order = CheckoutService.checkout(
                    Identity(user_id=user_id),
                    SHIPPING,
                    None,
                    ContactInfo(email=f"{user_id}@example.com"),
                    PaymentMethod.CREDIT_CARD,
                    card_details=GOOD_CARD,
                )
                return "SUCCESS" if order.status == OrderStatus.CONFIRMED else "FAILED"
            except BusinessLogicException:
                return "FAILED"

        results = self._run(checkout, [b.pk for b in self.buyers])

        self.assertEqual(results.count("SUCCESS"), 2)
        self.assertEqual(results.count("FAILED"), 3)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 0)
        self.assertEqual(Order.objects.filter(status=OrderStatus.CONFIRMED).count(), 2)
        self.assertEqual(StockMovementLog.objects.filter(product=self.product).count(), 2)

    def test_double_payment_succeeds_once(self):
        """Two concurrent pay calls for the same order: one COMPLETED payment, one stock commit."""
        buyer = self.buyers[0]
        identity = Identity(user_id=buyer.pk)
        order = CheckoutService.create_order(
            identity, SHIPPING, None, ContactInfo(email="buyer@example.com"), PaymentMethod.CREDIT_CARD,
        )
        order_id = str(order.public_id)

        def pay(_):
            try:
                CheckoutService.pay_order(identity, order_id, GOOD_CARD)
                return "SUCCESS"
            except IllegalStateError:
                return "REJECTED"

        results = self._run(pay, [1, 2])

        self.assertEqual(sorted(results), ["REJECTED", "SUCCESS"])

        order.refresh_from_db()
        order.payment.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        self.assertEqual(order.payment.payment_status, PaymentStatus.COMPLETED)
        self.assertEqual(StockMovementLog.objects.filter(order=order).count(), 1)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 1)
