from decimal import Decimal
from django.db import models

from core.models import TimeStampedModel, Organization

from .validators import validate_identifier_basic


class CustomerLedger(TimeStampedModel):
    """
    Saldo acumulado por contraparte (cliente o proveedor), con clave el
    teléfono/identificador. Solo se actualiza sumando deltas dentro de un
    commit (contacts.services.apply_balance_delta), nunca sobrescribiendo.
    """
    org = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="customer_ledgers")
    identifier = models.CharField(max_length=40, validators=[validate_identifier_basic])
    name = models.CharField(max_length=200, blank=True)

    # a favor del cliente (notas de crédito) / a favor nuestro frente a proveedor (notas de débito)
    credit_balance = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    debit_balance = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        unique_together = ("org", "identifier")
        indexes = [models.Index(fields=["org", "identifier"])]
        ordering = ["name", "identifier"]

    def __str__(self):
        return f"{self.identifier} · {self.name}"
