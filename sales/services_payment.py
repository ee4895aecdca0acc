# sales/services_payment.py
"""
Reparto del cobro/pago de una factura entre canales.

Conjunto cerrado de canales + residual explícito `due`:
    sum(canales sin due) + due == total_amount  (tolerancia 0.01)
"""
from decimal import Decimal, InvalidOperation

from rest_framework.exceptions import ValidationError

from .pricing import money

EPSILON = Decimal("0.01")
ZERO = Decimal("0.00")

PAYMENT_CHANNELS = (
    "cash",
    "card",
    "upi",
    "bank_transfer",
    "cheque",
    "credit_note",
    "debit_note",
)
DUE = "due"

# canal que gasta saldo del ledger, según el tipo de factura
LEDGER_CHANNEL = {"sale": "credit_note", "purchase": "debit_note"}


def _parse_channels(raw, *, kind, allow_due=True):
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError({"payment_methods": "Debe ser un objeto canal -> importe"})

    allowed = set(PAYMENT_CHANNELS) | ({DUE} if allow_due else set())
    unknown = sorted(set(raw) - allowed)
    if unknown:
        raise ValidationError({"payment_methods": f"Canal(es) no permitido(s): {', '.join(unknown)}"})

    other = LEDGER_CHANNEL["purchase" if kind == "sale" else "sale"]
    parsed = {}
    for key, value in raw.items():
        try:
            amount = money(value)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError({"payment_methods": f"Importe no válido en '{key}'"})
        if amount < 0:
            raise ValidationError({"payment_methods": f"El importe de '{key}' no puede ser negativo"})
        if key == other and amount > 0:
            raise ValidationError({"payment_methods": f"'{key}' no se admite en facturas de tipo {kind}"})
        parsed[key] = amount
    return parsed


def paid_total(methods) -> Decimal:
    """Suma de canales sin contar `due`."""
    return money(sum((money(v) for k, v in methods.items() if k != DUE), ZERO))


def normalize_payment_methods(raw, *, total_amount, kind):
    """
    Valida el reparto y devuelve {canal: Decimal} con `due` siempre presente.
    Si no viene `due` se calcula como residual.
    """
    methods = _parse_channels(raw, kind=kind)
    total_amount = money(total_amount)
    paid = paid_total(methods)

    if DUE not in methods:
        residual = money(total_amount - paid)
        if residual < -EPSILON:
            raise ValidationError(
                {"payment_methods": f"Se ha asignado {paid} y el total es {total_amount}"}
            )
        methods[DUE] = max(residual, ZERO)
    elif abs(paid + methods[DUE] - total_amount) > EPSILON:
        raise ValidationError(
            {"payment_methods": f"Los canales suman {paid + methods[DUE]} y el total es {total_amount}"}
        )

    return {k: v for k, v in methods.items() if v > 0 or k == DUE}


def parse_settlement(raw, *, kind):
    """Pago extra para cerrar una devolución con saldo negativo. Sin `due`."""
    return {k: v for k, v in _parse_channels(raw, kind=kind, allow_due=False).items() if v > 0}


def rebalance_after_return(methods, *, new_total, settlement=None, mode=""):
    """
    Reajusta el reparto para que vuelva a cuadrar con el nuevo total:
      1. se suma el pago de liquidación (si lo hay)
      2. el sobrante sale primero de `due`
      3. luego de `cash` si es Cash Refund, y después del resto en orden
      4. si falta, va a `due`
    """
    result = {k: money(v) for k, v in (methods or {}).items()}
    for key, amount in (settlement or {}).items():
        result[key] = money(result.get(key, ZERO) + amount)
    result.setdefault(DUE, ZERO)

    new_total = money(new_total)
    surplus = money(paid_total(result) + result[DUE] - new_total)

    if surplus < 0:
        result[DUE] = money(result[DUE] - surplus)
        return result

    order = [DUE]
    if mode == "Cash Refund":
        order.append("cash")
    order += [c for c in PAYMENT_CHANNELS if c not in order]

    for key in order:
        if surplus <= 0:
            break
        available = result.get(key, ZERO)
        if available <= 0:
            continue
        taken = min(available, surplus)
        result[key] = money(available - taken)
        surplus = money(surplus - taken)

    return {k: v for k, v in result.items() if v > 0 or k == DUE}


def to_json(methods):
    return {k: str(money(v)) for k, v in methods.items()}


def is_settled(methods) -> bool:
    return money(methods.get(DUE, ZERO)) <= EPSILON
