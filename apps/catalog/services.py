import logging
from dataclasses import dataclass
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db.models import F
from django.utils import timezone

from apps.utils.exceptions import InsufficientStock, ProductNotFound
from .models import Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductSnapshot:
    id: str
    sku: str
    name: str
    price: Decimal
    sale_price: Decimal
    stock_quantity: int
    is_active: bool = True

    @property
    def current_price(self) -> Decimal:
        if self.sale_price and self.sale_price > 0:
            return self.sale_price
        return self.price


class CatalogService:
    """
    Read side of the catalog as seen by checkout, plus the single guarded
    stock write used by the Stock Ledger.
    """

    @staticmethod
    def get_product(product_id) -> ProductSnapshot:
        try:
            product = Product.objects.get(pk=product_id)
        except (Product.DoesNotExist, ValueError, ValidationError):
            raise ProductNotFound(product_id)

        return ProductSnapshot(
            id=str(product.pk),
            sku=product.sku,
            name=product.name,
            price=product.price,
            sale_price=product.sale_price,
            stock_quantity=product.stock_quantity,
            is_active=product.is_active,
        )

    @staticmethod
    def adjust_stock(product_id, delta: int) -> int:
        """
        Apply ``delta`` to the stock counter in one conditional UPDATE.
        A negative delta only applies while enough stock remains, so
        the counter can never be driven below zero.
        Returns the balance after the change.
        """
        queryset = Product.objects.filter(pk=product_id)
        if delta < 0:
            queryset = queryset.filter(stock_quantity__gte=-delta)

        updated = queryset.update(
            stock_quantity=F("stock_quantity") + delta,
            updated_at=timezone.now(),
        )
        if not updated:
            product = Product.objects.filter(pk=product_id).only("name", "stock_quantity").first()
            if product is None:
                raise ProductNotFound(product_id)
            raise InsufficientStock(product.name, -delta, product.stock_quantity)

        balance = Product.objects.values_list("stock_quantity", flat=True).get(pk=product_id)
        logger.debug(f"Stock for {product_id} adjusted by {delta}, balance {balance}")
        return balance
