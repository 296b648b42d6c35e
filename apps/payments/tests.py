from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from django.urls import reverse

from apps.orders.models import Order, OrderStatus
from apps.utils.exceptions import InvalidCardDetails
from .authorizer import CardDetails, SimulatedAuthorizer, detect_card_brand, generate_transaction_id
from .models import Payment, PaymentMethod, PaymentStatus

User = get_user_model()


class CardBrandTests(SimpleTestCase):
    def test_brand_from_leading_digit(self):
        self.assertEqual(detect_card_brand("4111111111111111"), "VISA")
        self.assertEqual(detect_card_brand("5500000000000004"), "MASTERCARD")
        self.assertEqual(detect_card_brand("3400000000000009"), "AMEX")
        self.assertEqual(detect_card_brand("6011000000000004"), "UNKNOWN")

    def test_transaction_id_format(self):
        self.assertRegex(generate_transaction_id(), r"^TXN-[0-9A-F]{8}$")
        self.assertRegex(generate_transaction_id("TXN-ADMIN"), r"^TXN-ADMIN-[0-9A-F]{8}$")


class SimulatedAuthorizerTests(SimpleTestCase):
    def setUp(self):
        self.authorizer = SimulatedAuthorizer(gateway_name="TEST_GATEWAY")

    def test_card_ending_0000_is_declined(self):
        result = self.authorizer.authorize(Decimal("25.00"), "4111111111110000", "12/29", "123", "Jane Doe")

        self.assertEqual(result.status, PaymentStatus.FAILED)
        self.assertFalse(result.approved)
        self.assertIsNone(result.transaction_id)
        self.assertIsNone(result.card_last_four)

    def test_other_cards_are_approved(self):
        result = self.authorizer.authorize(Decimal("25.00"), "5500 0000 0000 0004", "12/29", "123", "Jane Doe")

        self.assertTrue(result.approved)
        self.assertEqual(result.card_brand, "MASTERCARD")
        self.assertEqual(result.card_last_four, "0004")
        self.assertIsNotNone(result.authorized_at)
        self.assertRegex(result.transaction_id, r"^TXN-[0-9A-F]{8}$")

    def test_transaction_ids_are_unique(self):
        ids = {
            self.authorizer.authorize(Decimal("1.00"), "4111111111111111", "12/29", "123", "J").transaction_id
            for _ in range(50)
        }
        self.assertEqual(len(ids), 50)

    def test_non_digit_card_is_rejected(self):
        with self.assertRaises(InvalidCardDetails):
            self.authorizer.authorize(Decimal("1.00"), "4111-abcd-1111", "12/29", "123", "J")

    def test_non_ascii_digits_are_rejected(self):
        number = "\u0664\u0661\u0661\u0661" * 3 + "1234"
        with self.assertRaises(InvalidCardDetails):
            self.authorizer.authorize(Decimal("1.00"), number, "12/29", "123", "J")
        with self.assertRaises(InvalidCardDetails):
            CardDetails(number, "12/29", "123", "Jane Doe").validate()


class CardDetailsTests(SimpleTestCase):
    def test_valid_card(self):
        card = CardDetails("4111 1111 1111 1111", "12/29", "123", "Jane Doe").validate()
        self.assertEqual(card.last_four, "1111")
        self.assertNotIn("4111", repr(card))

    def test_collects_every_invalid_field(self):
        with self.assertRaises(InvalidCardDetails) as ctx:
            CardDetails("4111", "2029-12", "1", " ").validate()

        fields = ctx.exception.details["fields"]
        self.assertEqual(set(fields), {"card_number", "expiry_date", "cvv", "holder_name"})


class PaymentMethodTests(SimpleTestCase):
    def test_card_methods(self):
        self.assertIn(PaymentMethod.CREDIT_CARD, PaymentMethod.card_methods())
        self.assertIn("DEBIT_CARD", PaymentMethod.card_methods())
        self.assertNotIn(PaymentMethod.CASH_ON_DELIVERY, PaymentMethod.card_methods())


class PaymentAdminTests(TestCase):
    """Payments are read-only in the Django admin."""

    def setUp(self):
        self.superuser = User.objects.create_superuser(username="root", password="testpass", email="root@example.com")
        buyer = User.objects.create_user(username="buyer", password="testpass")
        order = Order.objects.create(
            user=buyer,
            total_amount=Decimal("20.00"),
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
            customer_email="buyer@example.com",
        )
        self.payment = Payment.objects.create(
            order=order,
            payment_method=PaymentMethod.CASH_ON_DELIVERY,
            amount=Decimal("20.00"),
        )
        self.client.force_login(self.superuser)
        self.url = reverse("admin:payments_payment_change", args=[self.payment.pk])

    def test_change_view_is_view_only(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 200)
        self.assertNotContains(response, 'name="payment_status"')

    def test_posting_changes_is_forbidden(self):
        response = self.client.post(self.url, {
            "order": self.payment.order_id,
            "payment_method": PaymentMethod.CASH_ON_DELIVERY,
            "payment_status": PaymentStatus.COMPLETED,
            "amount": "0.01",
        })

        self.assertEqual(response.status_code, 403)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.payment_status, PaymentStatus.PENDING)
        self.assertEqual(self.payment.amount, Decimal("20.00"))
        self.assertEqual(self.payment.order.status, OrderStatus.PENDING)
