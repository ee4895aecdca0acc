# sales/models.py
from decimal import Decimal
from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import Organization, TAX_TYPE_CHOICES
from inventory.models import Product


class OrgScopedModel(models.Model):
    org = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="%(class)ss",
    )

    class Meta:
        abstract = True


SERIES_CHOICES = (
    ("invoice", "Invoice"),
    ("purchase", "Purchase"),
    ("company", "Company"),
    ("sales_voucher", "Sales voucher"),
    ("purchase_voucher", "Purchase voucher"),
)

DEFAULT_BASE_NUMBER = 1000


class SequenceCounter(OrgScopedModel):
    """
    Contador por organización y serie.
    Solo se toca desde services_numbering (numeración) y desde el commit
    de factura (vouchers). Nunca se lee y se incrementa fuera de una transacción.
    """
    series = models.CharField(max_length=24, choices=SERIES_CHOICES)
    current_number = models.BigIntegerField(default=DEFAULT_BASE_NUMBER)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("org", "series")

    def __str__(self):
        return f"{self.series}={self.current_number}"


class Invoice(OrgScopedModel):
    KIND_SALE = "sale"
    KIND_PURCHASE = "purchase"
    KIND_CHOICES = ((KIND_SALE, "Sale"), (KIND_PURCHASE, "Purchase"))

    STATUS_OPEN = "open"
    STATUS_COMPLETED = "completed"
    STATUS_RETURNED = "returned"
    STATUS_CHOICES = (
        (STATUS_OPEN, "Open"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_RETURNED, "Returned"),
    )

    kind = models.CharField(max_length=16, choices=KIND_CHOICES, default=KIND_SALE)
    number = models.CharField(max_length=32)  # ej: INV-1001
    sequence_value = models.BigIntegerField()
    voucher_number = models.BigIntegerField(null=True, blank=True)
    date_issue = models.DateField(default=timezone.now)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_COMPLETED)

    party_name = models.CharField(max_length=200, blank=True, default="")
    party_identifier = models.CharField(max_length=64, blank=True, default="")  # teléfono

    tax_type = models.CharField(max_length=16, choices=TAX_TYPE_CHOICES, default="inclusive")
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    total_discount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    manual_discount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    taxable_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))

    # {"cash": "100.00", "card": "50.00", "due": "0.00"}; claves validadas en services_payment
    payment_methods = models.JSONField(default=dict, blank=True)

    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("org", "number")
        indexes = [
            models.Index(fields=["org", "kind", "status"]),
            models.Index(fields=["org", "party_identifier"]),
        ]
        ordering = ["-created_at"]

    def __str__(self):
        return self.number


class InvoiceLine(models.Model):
    """
    Línea con la foto del precio/impuesto en el momento del commit.
    Los cambios posteriores del catálogo no alteran facturas ya emitidas.
    """
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="lines")
    position = models.PositiveIntegerField(default=0)
    product = models.ForeignKey(Product, on_delete=models.PROTECT)
    name = models.CharField(max_length=240, blank=True, default="")
    mrp = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()
    discount_pct = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    override_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    tax_mode = models.CharField(max_length=16, choices=TAX_TYPE_CHOICES, default="none")

    effective_unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    taxable_base = models.DecimalField(max_digits=14, decimal_places=2)
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2)
    final_line_total = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        ordering = ["position", "id"]

    def __str__(self):
        return f"{self.invoice_id}#{self.position} {self.product_id} x{self.quantity}"


class ReturnRecord(OrgScopedModel):
    RETURN_MODES = (
        ("Credit Note", "Credit Note"),
        ("Debit Note", "Debit Note"),
        ("Cash Refund", "Cash Refund"),
        ("Exchange", "Exchange"),
    )

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="return_history")
    returned_items = models.JSONField(default=list)
    exchange_items = models.JSONField(default=list, blank=True)
    gross_return_value = models.DecimalField(max_digits=14, decimal_places=2)
    discount_deducted = models.DecimalField(max_digits=14, decimal_places=2)
    exchange_value = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    final_balance = models.DecimalField(max_digits=14, decimal_places=2)
    mode_of_return = models.CharField(max_length=16, choices=RETURN_MODES)
    payment_details = models.JSONField(default=dict, blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["created_at", "id"]

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError("Las devoluciones registradas no se modifican")
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.invoice_id} · {self.mode_of_return} · {self.final_balance}"
