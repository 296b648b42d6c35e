from django.contrib import admin
from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Read-only. Payment status overrides go through the orders API so that
    stock commits and order status move together with the payment.
    """
    list_display = ('transaction_id', 'order', 'amount', 'payment_status', 'payment_method', 'card_brand', 'created_at')
    list_filter = ('payment_status', 'payment_method', 'created_at')
    search_fields = ('transaction_id', 'order__order_number')
    readonly_fields = (
        'public_id', 'order', 'payment_method', 'payment_status', 'amount', 'transaction_id',
        'card_last_four', 'card_brand', 'payment_gateway', 'payment_date', 'created_at', 'updated_at',
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
