import logging
from functools import partial
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.paginator import EmptyPage, PageNotAnInteger, Paginator
from django.db import transaction

from apps.accounts.identity import Identity
from apps.catalog.services import CatalogService
from apps.inventory.services import StockLedger
from apps.payments.authorizer import CardDetails, SimulatedAuthorizer
from apps.payments.models import Payment, PaymentMethod, PaymentStatus
from apps.utils.exceptions import (
    AdminRequired,
    EmptyCart,
    IllegalStateError,
    InvalidCardDetails,
    OrderNotFound,
    ProductUnavailable,
    ValidationFailed,
)
from apps.utils.resilience import apply_lock_timeout, retry_on_contention
from .dto import Address, ContactInfo
from .models import Cart, CartItem, Order, OrderItem, OrderStatus, OrderTimeline
from .pricing import order_total, snapshot_line
from .signals import order_placed
from .state_machine import OrderStateMachine

logger = logging.getLogger(__name__)


class CartService:
    """
    Cart store used by checkout. Carts are created lazily, one per owner.
    """

    @staticmethod
    def get_cart(owner_id) -> Cart:
        cart, _ = Cart.objects.get_or_create(owner_id=owner_id)
        return cart

    @staticmethod
    def clear_cart(owner_id) -> int:
        deleted, _ = CartItem.objects.filter(cart__owner_id=owner_id).delete()
        logger.debug(f"Cleared {deleted} cart line(s) for user {owner_id}")
        return deleted

    @staticmethod
    @transaction.atomic
    def add_item(owner_id, product_id, quantity: int = 1) -> CartItem:
        """
        Add a product to the owner's cart, capturing the price at this moment.
        Adding the same product again only increases the quantity.
        """
        if quantity < 1:
            raise ValidationFailed("Quantity must be at least 1.", code="invalid_quantity")

        product = CatalogService.get_product(product_id)
        if not product.is_active:
            raise ProductUnavailable(f"{product.name} is no longer available.", product_id=product.id)

        cart = CartService.get_cart(owner_id)
        item, created = CartItem.objects.select_for_update().get_or_create(
            cart=cart,
            product_id=product.id,
            defaults={"quantity": quantity, "price_at_addition": product.current_price},
        )
        if not created:
            item.quantity += quantity
            item.save(update_fields=["quantity", "updated_at"])
        return item


class CheckoutService:
    """
    Orchestrates cart -> order -> payment.

    Every public mutation is one atomic unit, retried as a whole on lock
    contention. The caller's identity is always passed in explicitly.
    """

    # --- order creation ---

    @staticmethod
    @retry_on_contention
    @transaction.atomic
    def create_order(
        identity: Identity,
        shipping_address: Address,
        billing_address: Optional[Address],
        contact: ContactInfo,
        payment_method: str,
        notes: str = "",
    ) -> Order:
        """
        Freeze the owner's cart into a PENDING order with a PENDING payment.
        Either the whole aggregate is written or nothing is.
        """
        # 1. Input validation (no writes yet)
        shipping_address.validate("shipping address")
        billing_address = (billing_address or shipping_address).validate("billing address")
        contact.validate()
        if payment_method not in PaymentMethod.values:
            raise ValidationFailed(f"Unknown payment method: {payment_method}", code="invalid_payment_method")

        # 2. Cart lines, with product data for the snapshot
        cart_items = list(
            CartItem.objects
            .select_related("product")
            .filter(cart__owner_id=identity.user_id)
        )
        if not cart_items:
            raise EmptyCart()

        # 3. Stock check under row locks (held until commit)
        StockLedger.reserve_many(
            {"product_id": ci.product_id, "quantity": ci.quantity} for ci in cart_items
        )

        # 4. Price snapshot
        items = [snapshot_line(ci) for ci in cart_items]
        total = order_total(items)

        # 5. Persist the aggregate
        order = Order(
            user_id=identity.user_id,
            total_amount=total,
            customer_email=contact.email,
            customer_phone=contact.phone or "",
            notes=notes or "",
        )
        order.shipping_address = shipping_address
        order.billing_address = billing_address
        order.save()

        for item in items:
            item.order = order
        OrderItem.objects.bulk_create(items)

        Payment.objects.create(
            order=order,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING,
            amount=total,
            payment_gateway=settings.PAYMENT_GATEWAY_NAME,
        )
        OrderTimeline.objects.create(order=order, status=OrderStatus.PENDING, note="Order placed")

        # No card payment will follow, so the cart is converted right away
        if payment_method == PaymentMethod.CASH_ON_DELIVERY:
            CartService.clear_cart(identity.user_id)

        logger.info(
            f"Order {order.order_number} created for user {identity.user_id}: {total} via {payment_method}",
            extra={"order_number": order.order_number, "user_id": identity.user_id},
        )
        transaction.on_commit(partial(order_placed.send, sender=Order, order=order))

        return Order.objects.with_details().get(pk=order.pk)

    # --- payment ---

    @staticmethod
    @retry_on_contention
    @transaction.atomic
    def pay_order(identity: Identity, order_id, card_details: CardDetails) -> Order:
        """
        Authorize a card payment for a PENDING order.
        A declined card is a normal outcome: the order comes back PENDING
        with a FAILED payment. Only the owner may pay.
        """
        if card_details is None:
            raise InvalidCardDetails("Card details are required.")
        card = card_details.validate()

        # 1. Lock the order, then its payment
        order = CheckoutService._locked_order(order_id)
        if order.user_id != identity.user_id:
            raise OrderNotFound(order_id)
        payment = Payment.objects.select_for_update().get(order=order)

        # 2. Preconditions
        machine = OrderStateMachine(order, payment)
        machine.ensure_payable()

        if not CartItem.objects.filter(cart__owner_id=order.user_id).exists():
            raise IllegalStateError(
                "The cart for this order has already been emptied.",
                order_number=order.order_number,
            )

        # 3. PENDING -> PROCESSING under the lock
        machine.begin_payment()

        # 4. Re-check stock right before anything is committed
        items = list(order.items.all())
        StockLedger.reserve_many({"product_id": i.product_id, "quantity": i.quantity} for i in items)

        # 5. Authorize
        result = SimulatedAuthorizer().authorize_card(order.total_amount, card)
        if result.approved:
            machine.confirm_payment(result)
        else:
            machine.fail_payment()
            logger.info(
                f"Payment for {order.order_number} declined, order stays {order.status}",
                extra={"order_number": order.order_number, "user_id": identity.user_id},
            )

        return Order.objects.with_details().get(pk=order.pk)

    @staticmethod
    def checkout(
        identity: Identity,
        shipping_address: Address,
        billing_address: Optional[Address],
        contact: ContactInfo,
        payment_method: str,
        card_details: Optional[CardDetails] = None,
        notes: str = "",
    ) -> Order:
        """
        Single-step flow: create the order and, for card methods, pay it
        straight away. Card details are checked before anything is written.
        """
        is_card = payment_method in PaymentMethod.card_methods()
        if is_card:
            if card_details is None:
                raise InvalidCardDetails("Card details are required for card payments.")
            card_details.validate()

        order = CheckoutService.create_order(
            identity, shipping_address, billing_address, contact, payment_method, notes=notes,
        )
        if not is_card:
            return order
        return CheckoutService.pay_order(identity, str(order.public_id), card_details)

    # --- reads ---

    @staticmethod
    def get_order(identity: Identity, order_id) -> Order:
        order = CheckoutService._fetch(Order.objects.with_details(), order_id)
        if order.user_id != identity.user_id and not identity.is_admin:
            raise OrderNotFound(order_id)
        return order

    @staticmethod
    def list_orders(
        identity: Identity,
        owner_id=None,
        all_orders: bool = False,
        page=None,
        page_size: Optional[int] = None,
    ) -> List[Order]:
        """
        Newest first. Users see their own orders; admins may list everyone's
        or filter by owner. ``page`` switches on pagination (1-based).
        """
        if owner_id is not None:
            try:
                owner_id = int(owner_id)
            except (TypeError, ValueError):
                raise ValidationFailed(f"Invalid owner id: {owner_id}", code="invalid_owner")

        foreign_owner = owner_id is not None and owner_id != identity.user_id
        if (all_orders or foreign_owner) and not identity.is_admin:
            raise AdminRequired()

        queryset = Order.objects.with_details().newest_first()
        if owner_id is not None:
            queryset = queryset.filter(user_id=owner_id)
        elif not all_orders:
            queryset = queryset.filter(user_id=identity.user_id)

        if page is None:
            return list(queryset)

        try:
            per_page = int(page_size or settings.ORDERS_PAGE_SIZE)
        except (TypeError, ValueError):
            per_page = 0
        if per_page < 1:
            raise ValidationFailed(f"Invalid page size: {page_size}", code="invalid_page")

        paginator = Paginator(queryset, per_page)
        try:
            return list(paginator.page(page).object_list)
        except PageNotAnInteger:
            raise ValidationFailed(f"Invalid page: {page}", code="invalid_page")
        except EmptyPage:
            return []

    # --- admin overrides ---

    @staticmethod
    @retry_on_contention
    @transaction.atomic
    def set_order_status(identity: Identity, order_id, status: str) -> Order:
        if not identity.is_admin:
            raise AdminRequired()
        if status not in OrderStatus.values:
            raise ValidationFailed(f"Unknown order status: {status}", code="invalid_status")

        order = CheckoutService._locked_order(order_id)
        payment = Payment.objects.select_for_update().get(order=order)
        OrderStateMachine(order, payment, actor=identity.user_id).force_order_status(status)

        logger.info(
            f"Admin {identity.user_id} set {order.order_number} status to {status}",
            extra={"order_number": order.order_number, "user_id": identity.user_id},
        )
        return Order.objects.with_details().get(pk=order.pk)

    @staticmethod
    @retry_on_contention
    @transaction.atomic
    def set_payment_status(identity: Identity, order_id, status: str) -> Order:
        """
        Admin override. COMPLETED goes through the same stock commit as a
        real payment; any other status is written as-is.
        """
        if not identity.is_admin:
            raise AdminRequired()
        if status not in PaymentStatus.values:
            raise ValidationFailed(f"Unknown payment status: {status}", code="invalid_status")

        order = CheckoutService._locked_order(order_id)
        payment = Payment.objects.select_for_update().get(order=order)
        OrderStateMachine(order, payment, actor=identity.user_id).force_payment_status(status)

        logger.info(
            f"Admin {identity.user_id} set {order.order_number} payment status to {status}",
            extra={"order_number": order.order_number, "user_id": identity.user_id},
        )
        return Order.objects.with_details().get(pk=order.pk)

    # --- helpers ---

    @staticmethod
    def _fetch(queryset, order_id) -> Order:
        try:
            return queryset.get(public_id=order_id)
        except (Order.DoesNotExist, ValueError, ValidationError):
            raise OrderNotFound(order_id)

    @staticmethod
    def _locked_order(order_id) -> Order:
        # Bound the wait before the first row lock of the unit of work
        apply_lock_timeout()
        return CheckoutService._fetch(Order.objects.select_for_update(), order_id)
