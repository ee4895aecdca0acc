from django.contrib import admin
from contacts.models import CustomerLedger

@admin.register(CustomerLedger)
class CustomerLedgerAdmin(admin.ModelAdmin):
    list_display = ("identifier", "name", "org", "credit_balance", "debit_balance", "updated_at")
    search_fields = ("identifier", "name")
    readonly_fields = ("credit_balance", "debit_balance")
