from django.contrib import admin

from apps.payments.models import Payment
from .models import Cart, CartItem, Order, OrderItem, OrderTimeline


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('product', 'product_name', 'product_sku', 'price', 'quantity', 'subtotal')

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class OrderTimelineInline(admin.TabularInline):
    model = OrderTimeline
    extra = 0
    readonly_fields = ('timestamp', 'status', 'note', 'created_by')

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class PaymentInline(admin.StackedInline):
    model = Payment
    extra = 0
    can_delete = False
    readonly_fields = (
        'payment_method', 'payment_status', 'amount', 'transaction_id',
        'card_brand', 'card_last_four', 'payment_gateway', 'payment_date',
    )

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Read-only view of orders. Status overrides go through the API so
    that stock and payment side effects stay consistent.
    """
    list_display = ('order_number', 'user', 'status', 'total_amount', 'customer_email', 'created_at')
    list_filter = ('status', 'created_at')
    search_fields = ('order_number', 'public_id', 'customer_email', 'user__username')

    inlines = [OrderItemInline, PaymentInline, OrderTimelineInline]

    readonly_fields = (
        'public_id', 'order_number', 'user', 'status', 'total_amount',
        'customer_email', 'customer_phone', 'notes', 'created_at', 'updated_at',
    )

    fieldsets = (
        ('Order Details', {
            'fields': ('order_number', 'public_id', 'status', 'user', 'total_amount', 'notes')
        }),
        ('Contact', {
            'fields': ('customer_email', 'customer_phone')
        }),
        ('Shipping Address', {
            'fields': (
                'shipping_address_line1', 'shipping_address_line2', 'shipping_city',
                'shipping_state', 'shipping_postal_code', 'shipping_country',
            )
        }),
        ('Billing Address', {
            'fields': (
                'billing_address_line1', 'billing_address_line2', 'billing_city',
                'billing_state', 'billing_postal_code', 'billing_country',
            ),
            'classes': ('collapse',)
        }),
        ('System Data', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        return False


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    readonly_fields = ('product', 'quantity', 'price_at_addition', 'created_at')
    can_delete = False


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ('id', 'owner', 'updated_at')
    search_fields = ('owner__username', 'owner__email')
    readonly_fields = ('owner', 'created_at', 'updated_at')
    inlines = [CartItemInline]

    def has_add_permission(self, request):
        return False
