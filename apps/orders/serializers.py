from rest_framework import serializers

from apps.payments.authorizer import CardDetails
from apps.payments.models import Payment, PaymentMethod, PaymentStatus
from apps.utils.validators import validate_card_number, validate_cvv, validate_expiry_date, validate_phone
from .dto import Address, ContactInfo
from .models.item import OrderItem
from .models.order import Order, OrderStatus


class AddressSerializer(serializers.Serializer):
    line1 = serializers.CharField(max_length=255)
    line2 = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    postal_code = serializers.CharField(max_length=20)
    country = serializers.CharField(max_length=100)


class PaymentDetailsSerializer(serializers.Serializer):
    card_number = serializers.CharField(validators=[validate_card_number])
    expiry_date = serializers.CharField(validators=[validate_expiry_date])
    cvv = serializers.CharField(validators=[validate_cvv], write_only=True)
    holder_name = serializers.CharField(max_length=255)


class CreateOrderSerializer(serializers.Serializer):
    shipping_address = AddressSerializer()
    billing_address = AddressSerializer(required=False)
    customer_email = serializers.EmailField()
    customer_phone = serializers.CharField(required=False, allow_blank=True, default="")
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    # Present only for the single-step flow
    payment_details = PaymentDetailsSerializer(required=False)

    def validate_customer_phone(self, value):
        if value:
            validate_phone(value)
        return value

    def to_kwargs(self):
        data = self.validated_data
        billing = data.get("billing_address")
        return {
            "shipping_address": Address(**data["shipping_address"]),
            "billing_address": Address(**billing) if billing else None,
            "contact": ContactInfo(email=data["customer_email"], phone=data.get("customer_phone", "")),
            "payment_method": data["payment_method"],
            "notes": data.get("notes", ""),
        }

    def card_details(self):
        details = self.validated_data.get("payment_details")
        return CardDetails(**details) if details else None


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)


class PaymentStatusUpdateSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices)


class OrderItemSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    product_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = OrderItem
        fields = ["id", "product_id", "product_name", "product_sku", "quantity", "price", "subtotal"]


class PaymentSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    masked_card = serializers.SerializerMethodField()

    class Meta:
        model = Payment
        fields = [
            "id", "payment_method", "payment_status", "amount", "transaction_id",
            "card_brand", "card_last_four", "masked_card", "payment_gateway",
            "payment_date", "created_at", "updated_at",
        ]

    def get_masked_card(self, obj):
        if not obj.card_last_four:
            return None
        return f"**** **** **** {obj.card_last_four}"


class OrderSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    user_id = serializers.IntegerField(read_only=True)
    status_display = serializers.CharField(source="get_status_display", read_only=True)
    shipping_address = serializers.SerializerMethodField()
    billing_address = serializers.SerializerMethodField()
    items = OrderItemSerializer(many=True, read_only=True)
    payment = PaymentSerializer(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id", "order_number", "user_id", "status", "status_display", "total_amount",
            "shipping_address", "billing_address", "customer_email", "customer_phone",
            "notes", "items", "payment", "created_at", "updated_at",
        ]

    def get_shipping_address(self, obj):
        return obj.shipping_address.as_dict()

    def get_billing_address(self, obj):
        return obj.billing_address.as_dict()
