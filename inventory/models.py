from decimal import Decimal
from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import Organization

class OrgScopedModel(models.Model):
    org = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="%(class)ss")
    class Meta:
        abstract = True

class Product(OrgScopedModel):
    sku = models.CharField(max_length=64)
    name = models.CharField(max_length=200)
    barcode = models.CharField(max_length=64, blank=True, default="")
    mrp = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    # % de descuento por defecto del artículo (se aplica al añadirlo como cambio)
    discount_pct = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("org", "sku")
        indexes = [models.Index(fields=["org", "name"]), models.Index(fields=["org", "sku"])]
        ordering = ["name"]

    def __str__(self):
        return f"{self.sku} · {self.name}"

class StockRecord(OrgScopedModel):
    """
    Existencias por producto. Solo se modifica con deltas firmados
    co-confirmados con la factura/devolución que los provoca
    (inventory.services.apply_stock_deltas).
    """
    product = models.OneToOneField(Product, on_delete=models.CASCADE, related_name="stock_record")
    stock = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("org", "product")

    def __str__(self):
        return f"{self.product_id}: {self.stock}"

class StockMove(OrgScopedModel):
    REASONS = (
        ("sale", "Sale"),
        ("purchase", "Purchase"),
        ("edit", "Edit"),
        ("return", "Return"),
    )
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="stock_moves")
    qty = models.IntegerField()  # signed (+/-)
    reason = models.CharField(max_length=16, choices=REASONS)
    ref_type = models.CharField(max_length=64, blank=True, default="")
    ref_id = models.CharField(max_length=64, blank=True, default="")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]
