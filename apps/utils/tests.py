# apps/utils/tests.py
import json
import logging
from datetime import datetime
from unittest import mock

from django.db import OperationalError
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from rest_framework.exceptions import ValidationError

from .exceptions import (
    ContentionError,
    EmptyCart,
    ErrorKind,
    InsufficientStock,
    OrderNotFound,
    custom_exception_handler,
)
from .logging import JSONFormatter
from .middleware import GlobalExceptionMiddleware
from .resilience import apply_lock_timeout, is_contention, retry_on_contention
from .utils import generate_order_number, quantize_money
from .validators import (
    normalize_card_number,
    validate_card_number,
    validate_cvv,
    validate_expiry_date,
    validate_phone,
)


class ValidatorTests(SimpleTestCase):
    def test_phone_validator(self):
        self.assertEqual(validate_phone("+919876543210"), "+919876543210")
        with self.assertRaises(ValidationError):
            validate_phone("123")  # Invalid

    def test_card_number_strips_spaces_and_dashes(self):
        self.assertEqual(normalize_card_number("4111 1111-1111 1111"), "4111111111111111")
        validate_card_number("4111 1111 1111 1111")

        with self.assertRaises(ValidationError):
            validate_card_number("4111")
        with self.assertRaises(ValidationError):
            validate_card_number("4111abcd11111111")

    def test_only_ascii_digits_are_accepted(self):
        arabic_indic = "\u0664\u0661\u0661\u0661" * 3 + "1234"
        with self.assertRaises(ValidationError):
            validate_card_number(arabic_indic)
        with self.assertRaises(ValidationError):
            validate_cvv("\u0661\u0662\u0663")

    def test_expiry_and_cvv(self):
        validate_expiry_date("12/29")
        validate_cvv("123")
        validate_cvv("1234")

        for bad in ("13/29", "1/29", "2029-12"):
            with self.assertRaises(ValidationError):
                validate_expiry_date(bad)
        for bad in ("12", "12345", "abc"):
            with self.assertRaises(ValidationError):
                validate_cvv(bad)


class MoneyAndCodeTests(SimpleTestCase):
    def test_quantize_rounds_half_up_to_cents(self):
        self.assertEqual(str(quantize_money("10.005")), "10.01")
        self.assertEqual(str(quantize_money("10.004")), "10.00")
        self.assertEqual(str(quantize_money(3)), "3.00")

    def test_order_number_format(self):
        number = generate_order_number(datetime(2025, 1, 29, 10, 0))
        self.assertRegex(number, r"^ORD-20250129-[0-9A-F]{4}$")


class ExceptionTests(SimpleTestCase):
    def test_kinds(self):
        self.assertEqual(EmptyCart().kind, ErrorKind.VALIDATION)
        self.assertEqual(OrderNotFound("x").kind, ErrorKind.NOT_FOUND)
        self.assertTrue(ContentionError("busy").retryable)

    def test_insufficient_stock_carries_quantities(self):
        exc = InsufficientStock("Mug", 3, 2)
        body = exc.as_dict()
        self.assertEqual(exc.kind, ErrorKind.CONFLICT)
        self.assertEqual(body["requested"], 3)
        self.assertEqual(body["available"], 2)
        self.assertEqual(body["code"], "insufficient_stock")

    def test_handler_maps_kind_to_status(self):
        self.assertEqual(custom_exception_handler(EmptyCart(), {}).status_code, 400)
        self.assertEqual(custom_exception_handler(InsufficientStock("Mug", 3, 2), {}).status_code, 409)
        self.assertEqual(custom_exception_handler(OrderNotFound("x"), {}).status_code, 404)

        response = custom_exception_handler(ContentionError("busy"), {})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response["Retry-After"], "1")

    def test_handler_hides_unhandled_errors(self):
        with self.assertLogs("apps.utils.exceptions", level="ERROR"):
            response = custom_exception_handler(RuntimeError("boom"), {})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["code"], "server_error")


class JSONFormatterTests(SimpleTestCase):
    def _record(self, msg, **extra):
        record = logging.LogRecord("apps.test", logging.INFO, __file__, 1, msg, None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_scrubs_card_data(self):
        record = self._record({"card_number": "4111111111111111", "cvv": "123", "amount": "10.00"})
        payload = json.loads(JSONFormatter().format(record))

        self.assertNotIn("4111111111111111", payload["msg"])
        self.assertNotIn("'123'", payload["msg"])
        self.assertIn("10.00", payload["msg"])

    def test_context_fields(self):
        record = self._record("Order placed", order_number="ORD-20250129-ABCD", user_id=7)
        payload = json.loads(JSONFormatter().format(record))

        self.assertEqual(payload["order_number"], "ORD-20250129-ABCD")
        self.assertEqual(payload["user_id"], "7")
        self.assertEqual(payload["lvl"], "INFO")


@override_settings(CONTENTION_RETRY_ATTEMPTS=3, CONTENTION_RETRY_BACKOFF=0)
class RetryOnContentionTests(SimpleTestCase):
    def test_is_contention(self):
        self.assertTrue(is_contention(OperationalError("database is locked")))
        self.assertTrue(is_contention(OperationalError("canceling statement due to lock timeout")))
        self.assertFalse(is_contention(OperationalError("no such table: foo")))

    def test_retries_until_success(self):
        calls = []

        @retry_on_contention
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OperationalError("database is locked")
            return "ok"

        self.assertEqual(flaky(), "ok")
        self.assertEqual(len(calls), 3)

    def test_gives_up_with_contention_error(self):
        calls = []

        @retry_on_contention(attempts=2)
        def always_locked():
            calls.append(1)
            raise OperationalError("database is locked")

        with self.assertRaises(ContentionError) as ctx:
            always_locked()
        self.assertEqual(len(calls), 2)
        self.assertTrue(ctx.exception.retryable)

    def test_other_operational_errors_propagate(self):
        @retry_on_contention
        def broken():
            raise OperationalError("no such table: foo")

        with self.assertRaises(OperationalError):
            broken()


class GlobalExceptionMiddlewareTests(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()
        self.middleware = GlobalExceptionMiddleware(lambda request: None)

    def test_business_error_keeps_envelope(self):
        request = self.factory.get("/api/v1/orders/")
        response = self.middleware.process_exception(request, InsufficientStock("Mug", 3, 2))

        self.assertEqual(response.status_code, 409)
        self.assertEqual(json.loads(response.content)["code"], "insufficient_stock")

    def test_unhandled_error_is_500_for_api(self):
        request = self.factory.get("/api/v1/orders/")
        with self.assertLogs("apps.utils.middleware", level="ERROR"):
            response = self.middleware.process_exception(request, RuntimeError("boom"))
        self.assertEqual(response.status_code, 500)

    def test_html_paths_fall_through(self):
        request = self.factory.get("/admin/")
        self.assertIsNone(self.middleware.process_exception(request, RuntimeError("boom")))


class HealthCheckTests(TestCase):
    def test_reports_database_ok(self):
        response = self.client.get("/api/v1/utils/health/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["components"]["db"], "ok")


class ApplyLockTimeoutTests(SimpleTestCase):
    def _connection(self, vendor, in_atomic_block=True):
        conn = mock.MagicMock(vendor=vendor, in_atomic_block=in_atomic_block)
        return conn, conn.cursor.return_value.__enter__.return_value

    @override_settings(STOCK_LOCK_TIMEOUT_MS=1500)
    def test_sets_transaction_local_timeout_on_postgres(self):
        conn, cursor = self._connection("postgresql")
        with mock.patch("apps.utils.resilience.connections", {"default": conn}):
            apply_lock_timeout()

        cursor.execute.assert_called_once_with("SELECT set_config('lock_timeout', %s, true)", ["1500ms"])

    def test_noop_outside_postgres_or_transaction(self):
        for conn, cursor in (self._connection("sqlite"), self._connection("postgresql", in_atomic_block=False)):
            with mock.patch("apps.utils.resilience.connections", {"default": conn}):
                apply_lock_timeout()
            cursor.execute.assert_not_called()
