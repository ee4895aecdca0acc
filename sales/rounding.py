# sales/rounding.py
"""
Estrategias de redondeo del precio unitario.

Cada llamada al motor de precios declara cuál usa:
  - IntervalRounding: venta normal (configuración de la organización).
  - BracketCeilingRounding: repricing de cambios en devoluciones.

Ojo: con el mismo precio de entrada dan resultados distintos
(91.50 -> 92.00 con intervalo 1; 91.50 -> 95.00 con tramos si hay descuento).
"""
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP

CENTS = Decimal("0.01")


def round2(x) -> Decimal:
    if not isinstance(x, Decimal):
        x = Decimal(str(x))
    return x.quantize(CENTS, rounding=ROUND_HALF_UP)


def round_to_interval(amount, enabled=True, interval=Decimal("1")) -> Decimal:
    amount = Decimal(str(amount))
    interval = Decimal(str(interval or 0))
    if not enabled or interval <= 0:
        return round2(amount)
    steps = (amount / interval).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return round2(steps * interval)


def ceil_to_bracket(price, discount_pct) -> Decimal:
    """
    Solo redondea si hay descuento: hacia arriba al múltiplo de 5 por debajo
    de 100 y al múltiplo de 10 a partir de 100. Sin descuento, precio tal cual.
    """
    price = Decimal(str(price))
    if Decimal(str(discount_pct or 0)) <= 0:
        return round2(price)
    step = Decimal("5") if price < 100 else Decimal("10")
    return round2((price / step).quantize(Decimal("1"), rounding=ROUND_CEILING) * step)


class IntervalRounding:
    name = "interval"

    def __init__(self, enabled=True, interval=Decimal("1")):
        self.enabled = enabled
        self.interval = Decimal(str(interval))

    @classmethod
    def from_settings(cls, sales_settings):
        return cls(enabled=sales_settings.enable_rounding, interval=sales_settings.rounding_interval)

    def __call__(self, price_after_discount, discount_pct=0) -> Decimal:
        return round_to_interval(price_after_discount, self.enabled, self.interval)

    def __repr__(self):
        return f"IntervalRounding(enabled={self.enabled}, interval={self.interval})"


class BracketCeilingRounding:
    name = "bracket_ceiling"

    def __call__(self, price_after_discount, discount_pct=0) -> Decimal:
        return ceil_to_bracket(price_after_discount, discount_pct)

    def __repr__(self):
        return "BracketCeilingRounding()"
