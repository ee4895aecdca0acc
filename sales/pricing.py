# sales/pricing.py
"""
Motor de precios. Funciones puras: sin BD, sin efectos.
La misma implementación calcula los totales que ve el carrito y los que
se guardan en la factura, así UI y ledger no pueden discrepar.
Todo se fija a 2 decimales en cada paso intermedio.
"""
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation

from .rounding import round2

TAX_INCLUSIVE = "inclusive"
TAX_EXCLUSIVE = "exclusive"
TAX_NONE = "none"
TAX_MODES = (TAX_INCLUSIVE, TAX_EXCLUSIVE, TAX_NONE)

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def money(x):
    if x is None or x == "":
        return ZERO
    return round2(x)


def valid_override(value):
    """Precio manual: solo cuenta si es un número finito >= 0."""
    if value is None or value == "":
        return None
    try:
        value = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or value < 0:
        return None
    return value


@dataclass(frozen=True)
class LinePricing:
    unit_price: Decimal
    line_total: Decimal
    taxable_base: Decimal
    tax_amount: Decimal
    final_line_total: Decimal

    def as_dict(self):
        return asdict(self)


def compute_line_pricing(*, mrp, quantity, rounding, discount_pct=0, override_price=None,
                         tax_rate=0, tax_mode=TAX_NONE) -> LinePricing:
    """
    1. precio con descuento = mrp * (1 - dto/100)
    2. precio unitario = rounding(precio con descuento); un override válido lo sustituye
       (y el descuento no se vuelve a aplicar)
    3. total de línea = unitario * cantidad
    4. impuesto según modo (inclusive / exclusive / none)
    """
    mrp = money(mrp)
    discount = Decimal(str(discount_pct or 0))
    quantity = int(quantity)

    price_after_discount = money(mrp * (Decimal("1") - discount / HUNDRED))
    unit_price = money(rounding(price_after_discount, discount))

    override = valid_override(override_price)
    if override is not None:
        unit_price = money(override)

    line_total = money(unit_price * quantity)

    rate = Decimal(str(tax_rate or 0))
    if tax_mode == TAX_INCLUSIVE and rate != 0:
        taxable_base = money(line_total / (Decimal("1") + rate / HUNDRED))
        tax_amount = money(line_total - taxable_base)
        final_line_total = line_total
    elif tax_mode == TAX_EXCLUSIVE and rate != 0:
        taxable_base = line_total
        tax_amount = money(line_total * rate / HUNDRED)
        final_line_total = money(taxable_base + tax_amount)
    else:
        taxable_base = line_total
        tax_amount = ZERO
        final_line_total = line_total

    return LinePricing(
        unit_price=unit_price,
        line_total=line_total,
        taxable_base=taxable_base,
        tax_amount=tax_amount,
        final_line_total=final_line_total,
    )


def compute_invoice_totals(lines, manual_discount=0):
    """
    lines: iterable de dicts con keys mrp, quantity, taxable_base, tax_amount,
           final_line_total, tax_mode
    manual_discount: descuento a nivel de factura (importe)

    total_discount = bruto (mrp*cant) - neto antes de sumar impuesto exclusivo
                     + descuento manual
    """
    subtotal = ZERO
    taxable_amount = ZERO
    tax_amount = ZERO
    lines_total = ZERO
    net_before_tax = ZERO

    for ln in lines:
        gross = money(Decimal(str(ln["mrp"])) * int(ln["quantity"]))
        taxable = money(ln["taxable_base"])
        tax = money(ln["tax_amount"])

        subtotal = money(subtotal + gross)
        taxable_amount = money(taxable_amount + taxable)
        tax_amount = money(tax_amount + tax)
        lines_total = money(lines_total + money(ln["final_line_total"]))
        if ln.get("tax_mode") == TAX_INCLUSIVE:
            net_before_tax = money(net_before_tax + taxable + tax)
        else:
            net_before_tax = money(net_before_tax + taxable)

    manual_discount = money(manual_discount)
    return {
        "subtotal": subtotal,
        "taxable_amount": taxable_amount,
        "tax_amount": tax_amount,
        "lines_total": lines_total,
        "manual_discount": manual_discount,
        "total_discount": money(subtotal - net_before_tax + manual_discount),
        "total_amount": money(lines_total - manual_discount),
    }
