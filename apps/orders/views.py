from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from apps.accounts.identity import Identity
from apps.payments.authorizer import CardDetails
from .serializers import (
    CreateOrderSerializer,
    OrderSerializer,
    OrderStatusUpdateSerializer,
    PaymentDetailsSerializer,
    PaymentStatusUpdateSerializer,
)
from .services import CheckoutService


class OrderViewSet(viewsets.GenericViewSet):
    """
    Thin HTTP layer over CheckoutService.
    Business errors are rendered by apps.utils.exceptions.custom_exception_handler.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer

    def _identity(self, request):
        return Identity.from_user(request.user)

    def _page_params(self, request):
        return {
            "page": request.query_params.get("page"),
            "page_size": request.query_params.get("page_size"),
        }

    def create(self, request):
        """
        Create an order from the caller's cart.
        With ``payment_details`` the order is paid in the same request.
        """
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        card = serializer.card_details()
        if card is not None:
            order = CheckoutService.checkout(self._identity(request), card_details=card, **serializer.to_kwargs())
        else:
            order = CheckoutService.create_order(self._identity(request), **serializer.to_kwargs())

        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        order = CheckoutService.get_order(self._identity(request), pk)
        return Response(OrderSerializer(order).data)

    def list(self, request):
        """Admin listing of every order, optionally filtered with ``?user=<id>``."""
        orders = CheckoutService.list_orders(
            self._identity(request),
            owner_id=request.query_params.get("user"),
            all_orders=True,
            **self._page_params(request),
        )
        return Response(OrderSerializer(orders, many=True).data)

    @action(detail=False, methods=["get"], url_path="my-orders")
    def my_orders(self, request):
        orders = CheckoutService.list_orders(self._identity(request), **self._page_params(request))
        return Response(OrderSerializer(orders, many=True).data)

    @action(detail=True, methods=["post"])
    def pay(self, request, pk=None):
        serializer = PaymentDetailsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = CheckoutService.pay_order(
            self._identity(request), pk, CardDetails(**serializer.validated_data)
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["patch"], url_path="status")
    def set_status(self, request, pk=None):
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = CheckoutService.set_order_status(
            self._identity(request), pk, serializer.validated_data["status"]
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["patch"], url_path="payment-status")
    def set_payment_status(self, request, pk=None):
        serializer = PaymentStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = CheckoutService.set_payment_status(
            self._identity(request), pk, serializer.validated_data["payment_status"]
        )
        return Response(OrderSerializer(order).data)
