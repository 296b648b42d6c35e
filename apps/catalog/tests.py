# apps/catalog/tests.py
from decimal import Decimal
import uuid

from django.db import IntegrityError, transaction
from django.test import TestCase

from apps.utils.exceptions import InsufficientStock, ProductNotFound
from .models import Product
from .services import CatalogService


class ProductModelTests(TestCase):
    def test_current_price_prefers_positive_sale_price(self):
        product = Product(sku="MUG-1", name="Mug", price=Decimal("12.00"), sale_price=Decimal("9.50"))
        self.assertEqual(product.current_price, Decimal("9.50"))

        product.sale_price = Decimal("0.00")
        self.assertEqual(product.current_price, Decimal("12.00"))

    def test_stock_cannot_be_negative_at_database_level(self):
        product = Product.objects.create(sku="MUG-1", name="Mug", price=Decimal("12.00"), stock_quantity=1)

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Product.objects.filter(pk=product.pk).update(stock_quantity=-1)


class CatalogServiceTests(TestCase):
    def setUp(self):
        self.product = Product.objects.create(
            sku="MUG-350ML-BLK",
            name="Black Mug",
            price=Decimal("12.00"),
            sale_price=Decimal("10.00"),
            stock_quantity=5,
        )

    def test_get_product_snapshot(self):
        snapshot = CatalogService.get_product(self.product.pk)

        self.assertEqual(snapshot.sku, "MUG-350ML-BLK")
        self.assertEqual(snapshot.stock_quantity, 5)
        self.assertEqual(snapshot.current_price, Decimal("10.00"))
        self.assertTrue(snapshot.is_active)

    def test_get_product_unknown_or_malformed_id(self):
        with self.assertRaises(ProductNotFound):
            CatalogService.get_product(uuid.uuid4())
        with self.assertRaises(ProductNotFound):
            CatalogService.get_product("not-a-uuid")

    def test_adjust_stock_is_guarded(self):
        self.assertEqual(CatalogService.adjust_stock(self.product.pk, -3), 2)
        self.assertEqual(CatalogService.adjust_stock(self.product.pk, 4), 6)

        with self.assertRaises(InsufficientStock) as ctx:
            CatalogService.adjust_stock(self.product.pk, -7)
        self.assertEqual(ctx.exception.requested, 7)
        self.assertEqual(ctx.exception.available, 6)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 6)

    def test_adjust_stock_unknown_product(self):
        with self.assertRaises(ProductNotFound):
            CatalogService.adjust_stock(uuid.uuid4(), -1)
