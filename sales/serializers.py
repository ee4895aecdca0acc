# sales/serializers.py
from rest_framework import serializers

from .models import Invoice, InvoiceLine, ReturnRecord
from .services_payment import DUE, PAYMENT_CHANNELS
from .services_return import CASH_REFUND, CREDIT_NOTE, DEBIT_NOTE, EXCHANGE


class InvoiceLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceLine
        fields = [
            "id",
            "position",
            "product",
            "name",
            "mrp",
            "quantity",
            "discount_pct",
            "override_price",
            "tax_rate",
            "tax_mode",
            "effective_unit_price",
            "taxable_base",
            "tax_amount",
            "final_line_total",
        ]
        read_only_fields = fields


class ReturnRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = ReturnRecord
        fields = [
            "id",
            "created_at",
            "returned_items",
            "exchange_items",
            "gross_return_value",
            "discount_deducted",
            "exchange_value",
            "final_balance",
            "mode_of_return",
            "payment_details",
        ]
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    lines = InvoiceLineSerializer(many=True, read_only=True)
    return_history = ReturnRecordSerializer(many=True, read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "id",
            "kind",
            "number",
            "voucher_number",
            "date_issue",
            "status",
            "party_name",
            "party_identifier",
            "tax_type",
            "subtotal",
            "total_discount",
            "manual_discount",
            "taxable_amount",
            "tax_amount",
            "total_amount",
            "payment_methods",
            "lines",
            "return_history",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


# --- Entrada (borradores). La validación de negocio vive en los servicios.

class DraftLineSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=0)
    discount_pct = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100,
                                            required=False, allow_null=True)
    override_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0,
                                              required=False, allow_null=True)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0,
                                        required=False, allow_null=True)
    mrp = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True)
    name = serializers.CharField(max_length=240, required=False, allow_blank=True)


class PaymentMethodsField(serializers.DictField):
    child = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)

    def __init__(self, *args, allow_due=True, **kwargs):
        self.allowed = PAYMENT_CHANNELS + ((DUE,) if allow_due else ())
        super().__init__(*args, **kwargs)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        unknown = sorted(set(value) - set(self.allowed))
        if unknown:
            raise serializers.ValidationError(f"Canal(es) no permitido(s): {', '.join(unknown)}")
        return value


class InvoiceDraftSerializer(serializers.Serializer):
    lines = DraftLineSerializer(many=True)
    payment_methods = PaymentMethodsField(required=False)
    party_name = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    party_identifier = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    manual_discount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False,
                                               default=0)


class PricingRequestSerializer(serializers.Serializer):
    lines = DraftLineSerializer(many=True)
    manual_discount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False,
                                               default=0)


class ReplaceLinesSerializer(serializers.Serializer):
    lines = DraftLineSerializer(many=True)
    manual_discount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False,
                                               allow_null=True, default=None)
    payment_methods = PaymentMethodsField(required=False, allow_null=True, default=None)


class ReturnedLineSerializer(serializers.Serializer):
    line_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=0)


class ReturnRequestSerializer(serializers.Serializer):
    MODES = (CREDIT_NOTE, DEBIT_NOTE, CASH_REFUND, EXCHANGE)

    returned_lines = ReturnedLineSerializer(many=True, required=False, default=list)
    exchange_lines = DraftLineSerializer(many=True, required=False, default=list)
    mode = serializers.ChoiceField(choices=MODES)
    settlement = PaymentMethodsField(required=False, allow_null=True, default=None, allow_due=False)


class ReturnResultSerializer(serializers.Serializer):
    state = serializers.CharField()
    gross_return_value = serializers.DecimalField(max_digits=14, decimal_places=2)
    discount_deducted = serializers.DecimalField(max_digits=14, decimal_places=2)
    net_return_value = serializers.DecimalField(max_digits=14, decimal_places=2)
    exchange_value = serializers.DecimalField(max_digits=14, decimal_places=2)
    final_balance = serializers.DecimalField(max_digits=14, decimal_places=2)
    amount_due = serializers.DecimalField(max_digits=14, decimal_places=2)
    totals = serializers.DictField(child=serializers.DecimalField(max_digits=14, decimal_places=2))
    invoice_id = serializers.IntegerField(required=False, allow_null=True)
    return_record_id = serializers.IntegerField(required=False, allow_null=True)
