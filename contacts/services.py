# contacts/services.py
import logging
from decimal import Decimal

from django.db.models import F
from rest_framework.exceptions import ValidationError

from core.transactions import require_atomic
from sales.pricing import money
from .models import CustomerLedger
from .validators import normalize_identifier

logger = logging.getLogger(__name__)


def get_ledger(org, identifier):
    identifier = normalize_identifier(identifier)
    if not identifier:
        return None
    return CustomerLedger.objects.filter(org=org, identifier=identifier).first()


def available_balances(org, identifier):
    """(credit_balance, debit_balance) actuales; ceros si no existe."""
    ledger = get_ledger(org, identifier)
    if not ledger:
        return Decimal("0.00"), Decimal("0.00")
    return ledger.credit_balance, ledger.debit_balance


def apply_balance_delta(org, identifier, *, name="", credit=0, debit=0):
    """
    Suma (o resta, si el delta es negativo) a los saldos de la contraparte.
    Solo se ejecuta dentro del commit de factura/devolución.
    Un saldo no puede quedar negativo: gastar más crédito del que hay es un error.
    """
    require_atomic("apply_balance_delta")
    identifier = normalize_identifier(identifier)
    if not identifier:
        raise ValidationError("Falta el teléfono/identificador de la contraparte")

    credit = money(credit)
    debit = money(debit)

    ledger, created = CustomerLedger.objects.select_for_update().get_or_create(
        org=org, identifier=identifier, defaults={"name": (name or "").strip()}
    )
    if ledger.credit_balance + credit < 0:
        raise ValidationError(f"Saldo a favor insuficiente: disponible {ledger.credit_balance}")
    if ledger.debit_balance + debit < 0:
        raise ValidationError(f"Saldo de notas de débito insuficiente: disponible {ledger.debit_balance}")

    ledger.credit_balance = F("credit_balance") + credit
    ledger.debit_balance = F("debit_balance") + debit
    update_fields = ["credit_balance", "debit_balance", "updated_at"]
    if name and not created and name.strip() != ledger.name:
        ledger.name = name.strip()
        update_fields.append("name")
    ledger.save(update_fields=update_fields)
    ledger.refresh_from_db(fields=["credit_balance", "debit_balance"])

    logger.info(
        f"[Ledger] {identifier}: credit {credit:+} -> {ledger.credit_balance}, "
        f"debit {debit:+} -> {ledger.debit_balance}"
    )
    return ledger
