# apps/catalog/admin.py
from django.contrib import admin
from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = (
        "sku",
        "name",
        "price",
        "sale_price",
        "stock_quantity",
        "is_active",
    )
    search_fields = ("sku", "name")
    list_filter = ("is_active",)
    list_editable = ("sale_price", "is_active")
    readonly_fields = ("created_at", "updated_at")

    def get_readonly_fields(self, request, obj=None):
        # Existing stock only moves through the Stock Ledger
        if obj is not None:
            return self.readonly_fields + ("stock_quantity",)
        return self.readonly_fields
