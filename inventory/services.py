# inventory/services.py
import logging
from collections import defaultdict

from django.db.models import F
from rest_framework.exceptions import NotFound, ValidationError

from core.transactions import require_atomic
from .models import Product, StockMove, StockRecord

logger = logging.getLogger(__name__)

SALE = -1      # una venta saca stock
PURCHASE = 1   # una compra lo mete


def quantities_by_product(lines):
    """
    lines: iterable de dicts con keys product_id, quantity.
    Devuelve {product_id: cantidad total}.
    """
    totals = defaultdict(int)
    for ln in lines:
        totals[ln["product_id"]] += int(ln["quantity"])
    return dict(totals)


def compute_stock_deltas(old_lines, new_lines, *, direction):
    """
    Delta neto por producto entre dos versiones de las líneas.
    direction=SALE  -> delta = old - new
    direction=PURCHASE -> delta = new - old
    Solo devuelve productos con delta != 0.
    """
    old = quantities_by_product(old_lines)
    new = quantities_by_product(new_lines)
    deltas = {}
    for product_id in set(old) | set(new):
        delta = direction * (new.get(product_id, 0) - old.get(product_id, 0))
        if delta:
            deltas[product_id] = delta
    return deltas


def _ensure_products(org, product_ids):
    found = set(Product.objects.filter(org=org, id__in=product_ids).values_list("id", flat=True))
    missing = sorted(set(product_ids) - found)
    if missing:
        raise NotFound(f"Producto(s) no encontrado(s): {', '.join(str(m) for m in missing)}")


def get_stock(org, product_id) -> int:
    if not Product.objects.filter(org=org, id=product_id).exists():
        raise NotFound("Producto no encontrado")
    return (
        StockRecord.objects.filter(org=org, product_id=product_id)
        .values_list("stock", flat=True)
        .first()
        or 0
    )


def check_stock_available(org, deltas, *, allow_negative=False):
    """
    Comprobación previa (sin bloqueo) para rechazar antes de numerar.
    La comprobación definitiva se repite dentro del commit.
    """
    if allow_negative:
        return
    outgoing = {pid: d for pid, d in deltas.items() if d < 0}
    if not outgoing:
        return
    _ensure_products(org, outgoing.keys())
    current = dict(
        StockRecord.objects.filter(org=org, product_id__in=outgoing.keys()).values_list("product_id", "stock")
    )
    for product_id, delta in sorted(outgoing.items()):
        available = current.get(product_id, 0)
        if available + delta < 0:
            raise ValidationError(
                f"Stock insuficiente para el producto {product_id}: disponible {available}, solicitado {-delta}"
            )


def _get_record_for_update(org, product_id):
    record, _ = StockRecord.objects.select_for_update().get_or_create(
        org=org, product_id=product_id, defaults={"stock": 0}
    )
    return record


def apply_stock_deltas(org, deltas, *, allow_negative=False, reason="sale", ref_type="", ref_id="", user=None):
    """
    Aplica {product_id: delta} dentro de la transacción del commit.
    Bloquea las filas en orden de product_id para que dos commits sobre
    los mismos productos no se crucen.
    """
    require_atomic("apply_stock_deltas")
    if not deltas:
        return {}
    _ensure_products(org, deltas.keys())

    updated = {}
    for product_id in sorted(deltas):
        delta = deltas[product_id]
        record = _get_record_for_update(org, product_id)
        new_stock = record.stock + delta
        if new_stock < 0 and delta < 0:
            if not allow_negative:
                raise ValidationError(
                    f"Stock insuficiente para el producto {product_id}: disponible {record.stock}, solicitado {-delta}"
                )
            logger.warning(f"[Stock] Producto {product_id} queda en negativo ({new_stock}) – ref={ref_type}:{ref_id}")
        record.stock = F("stock") + delta
        record.save(update_fields=["stock", "updated_at"])
        record.refresh_from_db(fields=["stock"])
        StockMove.objects.create(
            org=org, product_id=product_id, qty=delta, reason=reason,
            ref_type=ref_type, ref_id=ref_id, created_by=user,
        )
        updated[product_id] = record.stock
    return updated
