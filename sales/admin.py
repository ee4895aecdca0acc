from django.contrib import admin
from sales.models import Invoice, InvoiceLine, ReturnRecord, SequenceCounter

MONEY_FIELDS = (
    "subtotal", "total_discount", "manual_discount", "taxable_amount",
    "tax_amount", "total_amount", "payment_methods",
)

class InvoiceLineInline(admin.TabularInline):
    model = InvoiceLine
    extra = 0
    can_delete = False
    readonly_fields = (
        "position", "product", "name", "mrp", "quantity", "discount_pct", "override_price",
        "tax_rate", "tax_mode", "effective_unit_price", "taxable_base", "tax_amount", "final_line_total",
    )

class ReturnRecordInline(admin.TabularInline):
    model = ReturnRecord
    extra = 0
    can_delete = False
    readonly_fields = (
        "created_at", "mode_of_return", "gross_return_value", "discount_deducted",
        "exchange_value", "final_balance", "returned_items", "exchange_items", "payment_details",
    )

    def has_add_permission(self, request, obj=None):
        return False

@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ("number", "org", "kind", "status", "party_name", "total_amount", "created_at")
    list_filter = ("kind", "status")
    search_fields = ("number", "party_name", "party_identifier")
    readonly_fields = ("number", "sequence_value", "voucher_number") + MONEY_FIELDS
    inlines = [InvoiceLineInline, ReturnRecordInline]

@admin.register(SequenceCounter)
class SequenceCounterAdmin(admin.ModelAdmin):
    list_display = ("org", "series", "current_number", "updated_at")
    list_filter = ("series",)
    readonly_fields = ("current_number",)
