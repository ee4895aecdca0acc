# sales/services_invoice.py
"""
Coordinador de commit de facturas (ventas y compras).

Estados de un alta:
    Draft -> NumberAllocated -> Committing -> Committed | Failed

- Draft: todo se recalcula y valida aquí; sin efectos.
- NumberAllocated: punto de no retorno, el número queda gastado aunque
  lo siguiente falle (hueco permitido, duplicado nunca).
- Committing: factura + líneas + deltas de stock + saldo del ledger +
  voucher en UNA sola transacción.
- Failed: el llamante vuelve a Draft; el siguiente intento pide número nuevo.
"""
import logging
from decimal import Decimal, InvalidOperation

from rest_framework.exceptions import NotFound, ValidationError

from contacts.services import apply_balance_delta, available_balances
from contacts.validators import normalize_identifier
from core.models import get_sales_settings
from core.transactions import run_in_transaction
from inventory.models import Product
from inventory.services import (
    PURCHASE,
    SALE,
    apply_stock_deltas,
    check_stock_available,
    compute_stock_deltas,
)
from .models import Invoice, InvoiceLine
from .pricing import compute_invoice_totals, compute_line_pricing, money, valid_override
from .rounding import IntervalRounding
from .services_numbering import advance_voucher, allocate_sequence
from .services_payment import (
    DUE,
    EPSILON,
    LEDGER_CHANNEL,
    is_settled,
    normalize_payment_methods,
    paid_total,
    rebalance_after_return,
    to_json,
)

logger = logging.getLogger(__name__)

DRAFT = "Draft"
NUMBER_ALLOCATED = "NumberAllocated"
COMMITTING = "Committing"
COMMITTED = "Committed"
FAILED = "Failed"

KIND_CONFIG = {
    Invoice.KIND_SALE: {"series": "invoice", "voucher": "sales_voucher", "direction": SALE},
    Invoice.KIND_PURCHASE: {"series": "purchase", "voucher": "purchase_voucher", "direction": PURCHASE},
}

LINE_FIELDS = (
    "product_id", "name", "mrp", "quantity", "discount_pct", "override_price",
    "tax_rate", "tax_mode", "effective_unit_price", "taxable_base", "tax_amount",
    "final_line_total",
)


def _kind_config(kind):
    try:
        return KIND_CONFIG[kind]
    except KeyError:
        raise ValidationError({"kind": f"Tipo de factura no válido: {kind}"})


def _log_state(ref, state, extra=""):
    logger.info(f"[Commit] {ref}: {state}{' ' + extra if extra else ''}")


def load_products(org, product_ids):
    products = Product.objects.filter(org=org, id__in=set(product_ids)).in_bulk()
    missing = sorted(set(product_ids) - set(products))
    if missing:
        raise NotFound(f"Producto(s) no encontrado(s): {', '.join(str(m) for m in missing)}")
    return products


def parse_quantity(raw, product_id, field="lines"):
    try:
        quantity = int(raw.get("quantity", 0) or 0)
    except (TypeError, ValueError):
        raise ValidationError({field: f"Cantidad no válida para el producto {product_id}"})
    if quantity < 0:
        raise ValidationError({field: f"Cantidad negativa para el producto {product_id}"})
    return quantity


def _default_mrp(product, kind):
    if kind == Invoice.KIND_PURCHASE and product.purchase_price > 0:
        return product.purchase_price
    return product.mrp


def _default_discount(product, kind):
    # el descuento de catálogo es de venta; las compras van sin descuento por defecto
    if kind == Invoice.KIND_SALE:
        return product.discount_pct
    return Decimal("0")


def price_line(product, raw, *, kind, tax_mode, rounding):
    """
    raw: dict con quantity y opcionalmente discount_pct, override_price, tax_rate, mrp, name.
    Devuelve la foto completa de la línea (dict) lista para guardar.
    Sin discount_pct se aplica _default_discount, el mismo en carrito, commit y cambio.
    """
    quantity = parse_quantity(raw, product.id)

    discount = raw.get("discount_pct")
    if discount in (None, ""):
        discount = _default_discount(product, kind)
    try:
        discount = Decimal(str(discount))
    except InvalidOperation:
        raise ValidationError({"lines": f"Descuento no válido para el producto {product.id}"})
    if not discount.is_finite() or discount < 0 or discount > 100:
        raise ValidationError({"lines": f"Descuento fuera de rango (0-100) para el producto {product.id}"})

    override = valid_override(raw.get("override_price"))
    if override is not None:
        discount = Decimal("0")  # override y descuento son excluyentes

    mrp = raw.get("mrp")
    mrp = money(mrp if mrp not in (None, "") else _default_mrp(product, kind))
    tax_rate = raw.get("tax_rate")
    tax_rate = Decimal(str(tax_rate if tax_rate not in (None, "") else product.tax_rate))

    pricing = compute_line_pricing(
        mrp=mrp,
        quantity=quantity,
        discount_pct=discount,
        override_price=override,
        tax_rate=tax_rate,
        tax_mode=tax_mode,
        rounding=rounding,
    )
    return {
        "product_id": product.id,
        "name": raw.get("name") or product.name,
        "mrp": mrp,
        "quantity": quantity,
        "discount_pct": discount,
        "override_price": money(override) if override is not None else None,
        "tax_rate": tax_rate,
        "tax_mode": tax_mode,
        "effective_unit_price": pricing.unit_price,
        "taxable_base": pricing.taxable_base,
        "tax_amount": pricing.tax_amount,
        "final_line_total": pricing.final_line_total,
    }


def compute_draft(org, *, kind, lines, manual_discount=0, tax_mode=None, sales_settings=None):
    """
    Precios y totales de un carrito. Solo lectura: lo usa tanto la vista de
    precios en vivo como el commit, así que lo que ve el cliente es lo que se guarda.
    """
    _kind_config(kind)
    sales_settings = sales_settings or get_sales_settings(org)
    tax_mode = tax_mode or sales_settings.tax_type
    rounding = IntervalRounding.from_settings(sales_settings)

    lines = list(lines or [])
    products = load_products(org, [ln["product_id"] for ln in lines])
    priced = [
        price_line(products[ln["product_id"]], ln, kind=kind, tax_mode=tax_mode, rounding=rounding)
        for ln in lines
    ]
    priced = [ln for ln in priced if ln["quantity"] > 0]

    manual_discount = money(manual_discount)
    if manual_discount < 0:
        raise ValidationError({"manual_discount": "El descuento no puede ser negativo"})
    totals = compute_invoice_totals(priced, manual_discount)
    if manual_discount > totals["lines_total"]:
        raise ValidationError({"manual_discount": "El descuento supera el importe de la factura"})
    return {"lines": priced, "totals": totals, "tax_mode": tax_mode}


def line_snapshot(line: InvoiceLine):
    data = {f: getattr(line, f) for f in LINE_FIELDS}
    data["id"] = line.id
    return data


def _build_lines(invoice, snapshots, start=0):
    return [
        InvoiceLine(invoice=invoice, position=start + i, **{f: ln[f] for f in LINE_FIELDS})
        for i, ln in enumerate(snapshots)
    ]


def _status_for(methods, has_lines=True):
    if not has_lines:
        return Invoice.STATUS_RETURNED
    return Invoice.STATUS_COMPLETED if is_settled(methods) else Invoice.STATUS_OPEN


def check_payment_invariant(invoice) -> bool:
    """Σ canales + due == total (±0.01)."""
    methods = {k: money(v) for k, v in invoice.payment_methods.items()}
    return abs(paid_total(methods) + methods.get(DUE, 0) - money(invoice.total_amount)) <= EPSILON


def ensure_payment_invariant(invoice):
    if not check_payment_invariant(invoice):
        logger.error(f"[Commit] {invoice.number}: pagos {invoice.payment_methods} no cuadran con {invoice.total_amount}")
        raise ValidationError({"payment_methods": "El reparto de pagos no cuadra con el total de la factura"})


def _check_due_policy(methods, sales_settings):
    if not sales_settings.allow_due_billing and methods.get(DUE, 0) > EPSILON:
        raise ValidationError({"payment_methods": "La organización no permite dejar importes pendientes"})


def _ledger_spend(org, kind, identifier, amount):
    """Comprobación previa de saldo para pagar con nota de crédito/débito."""
    if amount <= 0:
        return
    if not identifier:
        raise ValidationError({"party_identifier": "Pagar con saldo requiere identificar a la contraparte"})
    credit, debit = available_balances(org, identifier)
    available = credit if kind == Invoice.KIND_SALE else debit
    if amount > available:
        raise ValidationError({"payment_methods": f"Saldo insuficiente: disponible {available}"})


def _apply_ledger_spend(org, kind, identifier, name, amount):
    if amount == 0:
        return
    if kind == Invoice.KIND_SALE:
        apply_balance_delta(org, identifier, name=name, credit=-amount)
    else:
        apply_balance_delta(org, identifier, name=name, debit=-amount)


def _write_new_invoice(org, *, kind, number, value, draft, methods, party_name, party_identifier,
                       ledger_amount, allow_negative, user):
    cfg = KIND_CONFIG[kind]
    totals = draft["totals"]

    voucher = advance_voucher(org, cfg["voucher"])
    invoice = Invoice.objects.create(
        org=org,
        kind=kind,
        number=number,
        sequence_value=value,
        voucher_number=voucher,
        status=_status_for(methods),
        party_name=party_name,
        party_identifier=party_identifier,
        tax_type=draft["tax_mode"],
        subtotal=totals["subtotal"],
        total_discount=totals["total_discount"],
        manual_discount=totals["manual_discount"],
        taxable_amount=totals["taxable_amount"],
        tax_amount=totals["tax_amount"],
        total_amount=totals["total_amount"],
        payment_methods=to_json(methods),
        created_by=user,
    )
    InvoiceLine.objects.bulk_create(_build_lines(invoice, draft["lines"]))

    deltas = compute_stock_deltas([], draft["lines"], direction=cfg["direction"])
    apply_stock_deltas(
        org, deltas,
        allow_negative=allow_negative,
        reason=kind,
        ref_type="invoice",
        ref_id=number,
        user=user,
    )
    _apply_ledger_spend(org, kind, party_identifier, party_name, ledger_amount)
    return invoice


def commit_invoice(org, *, kind=Invoice.KIND_SALE, lines, payment_methods=None, party_name="",
                   party_identifier="", manual_discount=0, user=None):
    """
    Única vía de escritura de facturas nuevas.
    Devuelve (invoice_id, número formateado).
    """
    cfg = _kind_config(kind)
    sales_settings = get_sales_settings(org)
    party_name = (party_name or "").strip()
    party_identifier = normalize_identifier(party_identifier)

    # --- Draft: validar todo antes de gastar número
    draft = compute_draft(org, kind=kind, lines=lines, manual_discount=manual_discount,
                          sales_settings=sales_settings)
    if not draft["lines"]:
        raise ValidationError({"lines": "La factura no tiene líneas"})
    methods = normalize_payment_methods(payment_methods, total_amount=draft["totals"]["total_amount"], kind=kind)
    _check_due_policy(methods, sales_settings)
    ledger_amount = methods.get(LEDGER_CHANNEL[kind], Decimal("0.00"))
    _ledger_spend(org, kind, party_identifier, ledger_amount)
    check_stock_available(
        org,
        compute_stock_deltas([], draft["lines"], direction=cfg["direction"]),
        allow_negative=sales_settings.allow_negative_stock,
    )

    # --- NumberAllocated
    number, value = allocate_sequence(org, cfg["series"])
    _log_state(number, NUMBER_ALLOCATED)

    # --- Committing
    _log_state(number, COMMITTING)
    try:
        invoice = run_in_transaction(
            _write_new_invoice,
            org,
            kind=kind,
            number=number,
            value=value,
            draft=draft,
            methods=methods,
            party_name=party_name,
            party_identifier=party_identifier,
            ledger_amount=ledger_amount,
            allow_negative=sales_settings.allow_negative_stock,
            user=user,
        )
    except Exception:
        _log_state(number, FAILED, "(número descartado)")
        raise

    _log_state(number, COMMITTED, f"total={invoice.total_amount}")
    return invoice.id, number


def get_invoice(org, invoice_id, *, kind=None, for_update=False):
    qs = Invoice.objects.filter(org=org)
    if kind:
        qs = qs.filter(kind=kind)
    if for_update:
        qs = qs.select_for_update()
    else:
        qs = qs.prefetch_related("lines", "return_history")
    invoice = qs.filter(id=invoice_id).first()
    if not invoice:
        raise NotFound("Factura no encontrada")
    return invoice


def _write_replaced_lines(org, invoice_id, *, kind, lines, manual_discount, payment_methods, user):
    sales_settings = get_sales_settings(org)
    invoice = get_invoice(org, invoice_id, kind=kind, for_update=True)
    if invoice.status == Invoice.STATUS_RETURNED:
        raise ValidationError("La factura está devuelta por completo y no admite cambios")

    if manual_discount is None:
        manual_discount = invoice.manual_discount
    draft = compute_draft(org, kind=kind, lines=lines, manual_discount=manual_discount,
                          tax_mode=invoice.tax_type, sales_settings=sales_settings)
    if not draft["lines"]:
        raise ValidationError({"lines": "La factura no tiene líneas"})
    totals = draft["totals"]

    old_methods = {k: money(v) for k, v in invoice.payment_methods.items()}
    if payment_methods is None:
        methods = rebalance_after_return(old_methods, new_total=totals["total_amount"])
    else:
        methods = normalize_payment_methods(payment_methods, total_amount=totals["total_amount"], kind=kind)
    _check_due_policy(methods, sales_settings)

    channel = LEDGER_CHANNEL[kind]
    ledger_diff = money(methods.get(channel, 0) - old_methods.get(channel, 0))
    if ledger_diff > 0:
        _ledger_spend(org, kind, invoice.party_identifier, ledger_diff)

    old_lines = list(invoice.lines.values("product_id", "quantity"))
    # delta neto por producto: nunca "devolver lo viejo" y "sacar lo nuevo" por separado
    deltas = compute_stock_deltas(old_lines, draft["lines"], direction=KIND_CONFIG[kind]["direction"])
    apply_stock_deltas(
        org, deltas,
        allow_negative=sales_settings.allow_negative_stock,
        reason="edit",
        ref_type="invoice",
        ref_id=invoice.number,
        user=user,
    )
    if ledger_diff != 0:
        _apply_ledger_spend(org, kind, invoice.party_identifier, invoice.party_name, ledger_diff)

    invoice.lines.all().delete()
    InvoiceLine.objects.bulk_create(_build_lines(invoice, draft["lines"]))

    invoice.subtotal = totals["subtotal"]
    invoice.total_discount = totals["total_discount"]
    invoice.manual_discount = totals["manual_discount"]
    invoice.taxable_amount = totals["taxable_amount"]
    invoice.tax_amount = totals["tax_amount"]
    invoice.total_amount = totals["total_amount"]
    invoice.payment_methods = to_json(methods)
    invoice.status = _status_for(methods)
    ensure_payment_invariant(invoice)
    invoice.save()
    return invoice


def replace_lines(org, invoice_id, *, kind=Invoice.KIND_SALE, lines, manual_discount=None,
                  payment_methods=None, user=None):
    """
    Edición de una factura ya emitida: mismo número, nuevas líneas.
    Stock += (viejo - nuevo) por producto en ventas, (nuevo - viejo) en compras,
    dentro de la misma transacción que la actualización de la factura.
    """
    _kind_config(kind)
    _log_state(f"invoice#{invoice_id}", "Editing")
    invoice = run_in_transaction(
        _write_replaced_lines,
        org,
        invoice_id,
        kind=kind,
        lines=lines,
        manual_discount=manual_discount,
        payment_methods=payment_methods,
        user=user,
    )
    _log_state(invoice.number, COMMITTED, f"(edición) total={invoice.total_amount}")
    return invoice
