import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from apps.catalog.models import Product
from apps.catalog.services import CatalogService
from apps.utils.exceptions import InsufficientStock, ProductNotFound, ProductUnavailable
from apps.utils.resilience import apply_lock_timeout

from .models import StockMovementLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    product_id: str
    product_name: str
    requested: int
    available: int


class StockLedger:
    """
    Core logic for stock checks and permanent decrements.
    ALL stock changes made by checkout pass through here.
    """

    @staticmethod
    @transaction.atomic
    def reserve(product_id, quantity: int) -> Reservation:
        """
        Check availability under a row lock.
        Nothing is held back: the lock lives until the surrounding
        transaction ends, which is what serializes competing checkouts.
        """
        return StockLedger.reserve_many([{"product_id": product_id, "quantity": quantity}])[0]

    @staticmethod
    @transaction.atomic
    def reserve_many(lines: Iterable[Dict]) -> List[Reservation]:
        """
        Locks product rows in deterministic order to prevent deadlocks,
        then validates every line. Duplicate products are summed first.
        """
        apply_lock_timeout()

        # 1. Aggregate by product, keyed the same way the rows are sorted
        wanted = OrderedDict()
        for line in lines:
            pid = str(line["product_id"])
            wanted[pid] = wanted.get(pid, 0) + int(line["quantity"])

        if not wanted:
            return []

        # 2. Select For Update (Pessimistic Lock), sorted by primary key
        try:
            products = list(
                Product.objects
                .select_for_update()
                .filter(pk__in=list(wanted))
                .order_by("pk")
            )
        except (ValueError, ValidationError):
            # A malformed product id cannot match any row
            raise ProductNotFound(next(iter(wanted)))
        product_map = {str(p.pk): p for p in products}

        # 3. Validation Loop
        reservations = []
        for pid in sorted(wanted):
            qty_needed = wanted[pid]
            product = product_map.get(pid)

            if product is None:
                raise ProductNotFound(pid)
            if not product.is_active:
                raise ProductUnavailable(f"{product.name} is no longer available.", product_id=pid)
            if product.stock_quantity < qty_needed:
                logger.info(f"Reservation rejected for {product.sku}: requested {qty_needed}, available {product.stock_quantity}")
                raise InsufficientStock(product.name, qty_needed, product.stock_quantity)

            reservations.append(Reservation(
                product_id=pid,
                product_name=product.name,
                requested=qty_needed,
                available=product.stock_quantity,
            ))

        return reservations

    @staticmethod
    @transaction.atomic
    def commit(order, product_id, quantity: int) -> bool:
        """
        Permanently decrement stock for one order line.
        Returns False when this (order, product) was already committed.
        """
        already = StockMovementLog.objects.filter(
            order=order,
            product_id=product_id,
            movement_type=StockMovementLog.MovementType.COMMIT,
        ).exists()
        if already:
            logger.warning(f"Stock for {product_id} already committed for {order.order_number}, skipping")
            return False

        try:
            with transaction.atomic():
                balance = CatalogService.adjust_stock(product_id, -quantity)
                StockMovementLog.objects.create(
                    product_id=product_id,
                    order=order,
                    quantity_change=-quantity,
                    movement_type=StockMovementLog.MovementType.COMMIT,
                    reference=order.order_number,
                    balance_after=balance,
                )
        except IntegrityError:
            # Lost the race to a concurrent commit of the same line
            logger.warning(f"Concurrent commit detected for {product_id} on {order.order_number}")
            return False

        logger.info(f"Committed {quantity} of {product_id} for {order.order_number}, balance {balance}")
        return True

    @staticmethod
    @transaction.atomic
    def commit_many(order, items) -> int:
        """
        Commit every order item, in the same order rows were locked.
        Returns how many lines actually decremented stock.
        """
        committed = 0
        for item in sorted(items, key=lambda i: str(i.product_id)):
            if StockLedger.commit(order, item.product_id, item.quantity):
                committed += 1
        return committed

    @staticmethod
    def uncommitted(order, items) -> list:
        """Order items whose stock has not been committed for this order yet."""
        done = set(
            StockMovementLog.objects.filter(
                order=order,
                movement_type=StockMovementLog.MovementType.COMMIT,
            ).values_list("product_id", flat=True)
        )
        return [item for item in items if item.product_id not in done]
