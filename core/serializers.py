# --- FILE: core/serializers.py
from rest_framework import serializers
from core.models import OrganizationSalesSettings

class OrganizationSalesSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrganizationSalesSettings
        fields = [
            "tax_type",
            "enable_rounding",
            "rounding_interval",
            "allow_negative_stock",
            "allow_due_billing",
            "invoice_prefix",
            "purchase_prefix",
            "company_prefix",
        ]
