from decimal import Decimal
from typing import Iterable

from apps.utils.utils import quantize_money
from .models import OrderItem


def line_price(cart_item) -> Decimal:
    """Price captured when the line was added wins over the live catalog price."""
    if cart_item.price_at_addition is not None:
        return cart_item.price_at_addition
    return cart_item.product.current_price


def snapshot_line(cart_item, order=None) -> OrderItem:
    """
    Freeze a cart line into an unsaved OrderItem.
    Subtotal is set here because ``bulk_create`` skips ``save()``.
    """
    product = cart_item.product
    price = quantize_money(line_price(cart_item))

    return OrderItem(
        order=order,
        product=product,
        product_name=product.name,
        product_sku=product.sku,
        quantity=cart_item.quantity,
        price=price,
        subtotal=quantize_money(price * cart_item.quantity),
    )


def order_total(items: Iterable[OrderItem]) -> Decimal:
    return quantize_money(sum((item.subtotal for item in items), Decimal("0.00")))
