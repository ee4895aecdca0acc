# contacts/serializers.py
from rest_framework import serializers
from .models import CustomerLedger


class CustomerLedgerSerializer(serializers.ModelSerializer):
    class Meta:
        model = CustomerLedger
        fields = ["id", "identifier", "name", "credit_balance", "debit_balance", "created_at", "updated_at"]
        read_only_fields = fields
