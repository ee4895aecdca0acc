from django.contrib import admin
from inventory.models import Product, StockRecord, StockMove

@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("sku", "name", "org", "mrp", "tax_rate", "is_active")
    search_fields = ("sku", "name", "barcode")

@admin.register(StockRecord)
class StockRecordAdmin(admin.ModelAdmin):
    list_display = ("product", "org", "stock", "updated_at")
    readonly_fields = ("stock",)

@admin.register(StockMove)
class StockMoveAdmin(admin.ModelAdmin):
    list_display = ("product", "qty", "reason", "ref_type", "ref_id", "created_at")
    list_filter = ("reason",)
