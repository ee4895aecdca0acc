# sales/services_return.py
"""
Devoluciones y cambios sobre una factura ya emitida.

    grossReturnValue = suma del total de las líneas devueltas, prorrateado por cantidad
    discountDeducted = D * gross / total de líneas antes del descuento manual
    netReturnValue   = gross - discountDeducted
    finalBalance     = net - valor de los artículos de cambio

finalBalance >= 0: se confirma directamente (se debe dinero/saldo al cliente).
finalBalance < 0: el cliente debe pagar; sin liquidación no se escribe nada
y se devuelve el estado AwaitingPayment.
"""
import logging
from collections import defaultdict
from decimal import Decimal

from rest_framework.exceptions import ValidationError

from contacts.services import apply_balance_delta
from contacts.validators import normalize_identifier
from core.models import get_sales_settings
from core.transactions import run_in_transaction
from inventory.services import apply_stock_deltas, compute_stock_deltas
from .models import Invoice, InvoiceLine, ReturnRecord
from .pricing import compute_invoice_totals, compute_line_pricing, money
from .rounding import BracketCeilingRounding, IntervalRounding
from .services_invoice import (
    KIND_CONFIG,
    LINE_FIELDS,
    _build_lines,
    _status_for,
    ensure_payment_invariant,
    get_invoice,
    line_snapshot,
    load_products,
    parse_quantity,
    price_line,
)
from .services_payment import (
    DUE,
    EPSILON,
    LEDGER_CHANNEL,
    paid_total,
    parse_settlement,
    rebalance_after_return,
    to_json,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

CREDIT_NOTE = "Credit Note"
DEBIT_NOTE = "Debit Note"
CASH_REFUND = "Cash Refund"
EXCHANGE = "Exchange"

RETURN_MODES = {
    Invoice.KIND_SALE: (CREDIT_NOTE, CASH_REFUND, EXCHANGE),
    Invoice.KIND_PURCHASE: (DEBIT_NOTE, CASH_REFUND, EXCHANGE),
}
LEDGER_MODES = (CREDIT_NOTE, DEBIT_NOTE, EXCHANGE)

COMMITTED = "committed"
AWAITING_PAYMENT = "awaiting_payment"


def _returned_quantities(returned_lines):
    """[{line_id, quantity}] -> {line_id: cantidad}, sin ceros."""
    quantities = defaultdict(int)
    for item in returned_lines or []:
        try:
            line_id = int(item["line_id"])
            quantity = int(item.get("quantity", 0))
        except (KeyError, TypeError, ValueError):
            raise ValidationError({"returned_lines": "Cada línea devuelta necesita line_id y quantity"})
        if quantity < 0:
            raise ValidationError({"returned_lines": f"Cantidad negativa en la línea {line_id}"})
        if quantity:
            quantities[line_id] += quantity
    return dict(quantities)


def _same_line(a, b):
    return (
        a["product_id"] == b["product_id"]
        and money(a["effective_unit_price"]) == money(b["effective_unit_price"])
        and money(a["tax_rate"]) == money(b["tax_rate"])
        and a["tax_mode"] == b["tax_mode"]
    )


def _reprice(snapshot, quantity):
    """Cambia la cantidad conservando el precio unitario confirmado."""
    pricing = compute_line_pricing(
        mrp=snapshot["mrp"],
        quantity=quantity,
        override_price=snapshot["effective_unit_price"],
        tax_rate=snapshot["tax_rate"],
        tax_mode=snapshot["tax_mode"],
        rounding=IntervalRounding(enabled=False),
    )
    updated = dict(snapshot)
    updated.update(
        quantity=quantity,
        effective_unit_price=pricing.unit_price,
        taxable_base=pricing.taxable_base,
        tax_amount=pricing.tax_amount,
        final_line_total=pricing.final_line_total,
    )
    return updated


def compute_return(invoice, lines, *, returned_lines, exchange_lines, mode):
    """
    Cálculo puro de una devolución/cambio sobre `lines` (fotos de las líneas
    actuales). No escribe nada; lo usan tanto el preview como el commit.
    """
    if mode not in RETURN_MODES[invoice.kind]:
        raise ValidationError({"mode": f"Modo de devolución no válido para {invoice.kind}: {mode}"})
    if invoice.status == Invoice.STATUS_RETURNED:
        raise ValidationError("La factura ya está devuelta por completo")

    returned = _returned_quantities(returned_lines)
    exchange_raw = [
        ln for ln in (exchange_lines or [])
        if parse_quantity(ln, ln.get("product_id"), field="exchange_lines") != 0
    ]
    if not returned and not exchange_raw:
        raise ValidationError("No hay artículos que devolver ni cambiar")

    by_id = {ln["id"]: ln for ln in lines}
    unknown = sorted(set(returned) - set(by_id))
    if unknown:
        raise ValidationError({"returned_lines": f"Línea(s) que no son de esta factura: {unknown}"})

    # 1. valor bruto devuelto
    gross = ZERO
    returned_items = []
    for line_id, quantity in sorted(returned.items()):
        line = by_id[line_id]
        if quantity > line["quantity"]:
            raise ValidationError(
                {"returned_lines": f"Línea {line_id}: se devuelven {quantity} y quedan {line['quantity']}"}
            )
        amount = money(money(line["final_line_total"]) * quantity / line["quantity"])
        gross = money(gross + amount)
        returned_items.append({
            "line_id": line_id,
            "product_id": line["product_id"],
            "name": line["name"],
            "quantity": quantity,
            "unit_price": str(money(line["effective_unit_price"])),
            "amount": str(amount),
        })

    # 2. parte proporcional del descuento manual
    manual_discount = money(invoice.manual_discount)
    lines_total = money(sum((money(ln["final_line_total"]) for ln in lines), ZERO))
    discount_deducted = ZERO
    if manual_discount > 0 and lines_total > 0:
        discount_deducted = money(manual_discount * gross / lines_total)
        discount_deducted = min(max(discount_deducted, ZERO), gross, manual_discount)
    net = money(gross - discount_deducted)

    # 3. artículos de cambio: redondeo por tramos
    exchange = []
    if exchange_raw:
        products = load_products(invoice.org, [ln["product_id"] for ln in exchange_raw])
        rounding = BracketCeilingRounding()
        for raw in exchange_raw:
            product = products[raw["product_id"]]
            exchange.append(price_line(
                product, raw,
                kind=invoice.kind,
                tax_mode=invoice.tax_type,
                rounding=rounding,
            ))
    exchange_value = money(sum((ln["final_line_total"] for ln in exchange), ZERO))
    final_balance = money(net - exchange_value)

    # 4. conciliación de líneas
    reconciled = []
    for line in lines:
        remaining = line["quantity"] - returned.get(line["id"], 0)
        if remaining <= 0:
            continue
        reconciled.append(line if remaining == line["quantity"] else _reprice(line, remaining))
    for new in exchange:
        target = next((i for i, ln in enumerate(reconciled) if _same_line(ln, new)), None)
        if target is None:
            reconciled.append(dict(new, id=None))
        else:
            current = reconciled[target]
            reconciled[target] = _reprice(current, current["quantity"] + new["quantity"])

    new_manual_discount = money(max(ZERO, manual_discount - discount_deducted))
    totals = compute_invoice_totals(reconciled, new_manual_discount)

    return {
        "gross_return_value": gross,
        "discount_deducted": discount_deducted,
        "net_return_value": net,
        "exchange_value": exchange_value,
        "final_balance": final_balance,
        "returned_items": returned_items,
        "exchange_items": exchange,
        "lines": reconciled,
        "totals": totals,
        "mode": mode,
    }


def preview_return(org, invoice_id, *, kind=Invoice.KIND_SALE, returned_lines=None, exchange_lines=None,
                   mode=CREDIT_NOTE):
    """Cifras de la devolución sin efectos (para mostrar en vivo)."""
    invoice = get_invoice(org, invoice_id, kind=kind)
    lines = [line_snapshot(ln) for ln in invoice.lines.all()]
    result = compute_return(invoice, lines, returned_lines=returned_lines, exchange_lines=exchange_lines, mode=mode)
    result["state"] = AWAITING_PAYMENT if result["final_balance"] < 0 else "ready"
    result["amount_due"] = max(-result["final_balance"], ZERO)
    return result


def _jsonable(line):
    return {f: str(line[f]) if isinstance(line[f], Decimal) else line[f] for f in LINE_FIELDS}


def _ledger_credit(invoice, final_balance, mode):
    """Lo que va al saldo de la contraparte: la parte no absorbida por lo pendiente."""
    if final_balance <= 0 or mode not in LEDGER_MODES:
        return ZERO
    outstanding = money(invoice.payment_methods.get(DUE, 0))
    return money(final_balance - min(outstanding, final_balance))


def _apply_ledger(invoice, amount, *, spend=ZERO):
    """Abona `amount` y descuenta `spend` en el saldo que corresponde al tipo."""
    if not amount and not spend:
        return
    delta = money(amount - spend)
    if invoice.kind == Invoice.KIND_SALE:
        apply_balance_delta(invoice.org, invoice.party_identifier, name=invoice.party_name, credit=delta)
    else:
        apply_balance_delta(invoice.org, invoice.party_identifier, name=invoice.party_name, debit=delta)


def _update_lines(invoice, old_lines, new_lines):
    kept_ids = {ln["id"] for ln in new_lines if ln.get("id")}
    InvoiceLine.objects.filter(invoice=invoice).exclude(id__in=kept_ids).delete()

    old_by_id = {ln["id"]: ln for ln in old_lines}
    to_create = []
    for ln in new_lines:
        if not ln.get("id"):
            to_create.append(ln)
            continue
        old = old_by_id[ln["id"]]
        if old["quantity"] != ln["quantity"]:
            InvoiceLine.objects.filter(id=ln["id"]).update(**{
                f: ln[f] for f in ("quantity", "effective_unit_price", "taxable_base", "tax_amount", "final_line_total")
            })
    if to_create:
        start = max((ln.position for ln in invoice.lines.all()), default=-1) + 1
        InvoiceLine.objects.bulk_create(_build_lines(invoice, to_create, start=start))


def _commit_return_tx(org, invoice_id, *, kind, returned_lines, exchange_lines, mode, settlement, user):
    sales_settings = get_sales_settings(org)
    invoice = get_invoice(org, invoice_id, kind=kind, for_update=True)
    old_lines = [line_snapshot(ln) for ln in invoice.lines.select_for_update().order_by("position", "id")]

    result = compute_return(invoice, old_lines, returned_lines=returned_lines,
                            exchange_lines=exchange_lines, mode=mode)
    final_balance = result["final_balance"]
    invoice.party_identifier = normalize_identifier(invoice.party_identifier)

    # --- routing por saldo
    settlement = parse_settlement(settlement, kind=invoice.kind)
    settlement_total = paid_total(settlement)
    if final_balance < 0:
        owed = -final_balance
        if not settlement:
            logger.info(f"[Return] {invoice.number}: AwaitingPayment ({owed})")
            result.update(state=AWAITING_PAYMENT, amount_due=owed, invoice_id=invoice.id, return_record_id=None)
            return result
        if abs(settlement_total - owed) > EPSILON:
            raise ValidationError({"settlement": f"El pago ({settlement_total}) no cubre el importe pendiente ({owed})"})
    elif settlement_total > 0:
        raise ValidationError({"settlement": "No hay importe pendiente de cobro en esta devolución"})

    if mode in (CREDIT_NOTE, DEBIT_NOTE) and not invoice.party_identifier:
        raise ValidationError({"party_identifier": f"{mode} requiere identificar a la contraparte"})
    credited = _ledger_credit(invoice, final_balance, mode)
    spent = settlement.get(LEDGER_CHANNEL[invoice.kind], ZERO)
    if (credited > 0 or spent > 0) and not invoice.party_identifier:
        raise ValidationError({"party_identifier": "Mover saldo requiere identificar a la contraparte"})

    # --- Committing: stock + líneas + factura + historial + ledger
    logger.info(f"[Return] {invoice.number}: Committing mode={mode} balance={final_balance}")
    deltas = compute_stock_deltas(old_lines, result["lines"], direction=KIND_CONFIG[invoice.kind]["direction"])
    apply_stock_deltas(
        org, deltas,
        allow_negative=sales_settings.allow_negative_stock,
        reason="return",
        ref_type="invoice",
        ref_id=invoice.number,
        user=user,
    )
    _update_lines(invoice, old_lines, result["lines"])

    totals = result["totals"]
    methods = rebalance_after_return(invoice.payment_methods, new_total=totals["total_amount"],
                                     settlement=settlement, mode=mode)
    invoice.subtotal = totals["subtotal"]
    invoice.total_discount = totals["total_discount"]
    invoice.manual_discount = totals["manual_discount"]
    invoice.taxable_amount = totals["taxable_amount"]
    invoice.tax_amount = totals["tax_amount"]
    invoice.total_amount = totals["total_amount"]
    invoice.payment_methods = to_json(methods)
    invoice.status = _status_for(methods, has_lines=bool(result["lines"]))
    ensure_payment_invariant(invoice)
    invoice.save()

    record = ReturnRecord.objects.create(
        org=org,
        invoice=invoice,
        returned_items=result["returned_items"],
        exchange_items=[_jsonable(ln) for ln in result["exchange_items"]],
        gross_return_value=result["gross_return_value"],
        discount_deducted=result["discount_deducted"],
        exchange_value=result["exchange_value"],
        final_balance=final_balance,
        mode_of_return=mode,
        payment_details=to_json(settlement),
        created_by=user,
    )
    _apply_ledger(invoice, credited, spend=spent)

    logger.info(f"[Return] {invoice.number}: Committed record={record.id} credited={credited}")
    result.update(state=COMMITTED, amount_due=ZERO, invoice_id=invoice.id, return_record_id=record.id)
    return result


def commit_return(org, invoice_id, *, kind=Invoice.KIND_SALE, returned_lines=None, exchange_lines=None,
                  mode=CREDIT_NOTE, settlement=None, user=None):
    """
    Única vía de escritura de devoluciones/cambios.
    Devuelve el cálculo con state = committed | awaiting_payment.
    """
    return run_in_transaction(
        _commit_return_tx,
        org,
        invoice_id,
        kind=kind,
        returned_lines=returned_lines,
        exchange_lines=exchange_lines,
        mode=mode,
        settlement=settlement,
        user=user,
    )
