# sales/services_numbering.py
import logging

from django.db.models import F

from core.models import get_sales_settings
from core.transactions import require_atomic, run_in_transaction
from .models import DEFAULT_BASE_NUMBER, SequenceCounter

logger = logging.getLogger(__name__)

DOCUMENT_SERIES = ("invoice", "purchase", "company")
VOUCHER_SERIES = ("sales_voucher", "purchase_voucher")


def _increment(org, series):
    counter, _ = SequenceCounter.objects.select_for_update().get_or_create(
        org=org,
        series=series,
        defaults={"current_number": DEFAULT_BASE_NUMBER},
    )
    counter.current_number = F("current_number") + 1
    counter.save(update_fields=["current_number", "updated_at"])
    counter.refresh_from_db(fields=["current_number"])
    return counter.current_number


def next_number(org, series: str) -> int:
    """
    Siguiente número de la serie, en su PROPIA transacción corta.

    Dos llamadas nunca devuelven el mismo número. Que el número se llegue
    a usar no está garantizado: si el commit posterior falla, ese número
    queda saltado para siempre (hueco sí, duplicado no).
    """
    if series not in DOCUMENT_SERIES:
        raise ValueError(f"Serie desconocida: {series}")
    value = run_in_transaction(_increment, org, series)
    logger.info(f"[Numbering] {org.slug}/{series} -> {value}")
    return value


def format_number(prefix: str, value: int) -> str:
    return f"{prefix}-{value:04d}"


def allocate_sequence(org, series: str):
    """Devuelve (número formateado, valor). Solo se llama al hacer checkout."""
    value = next_number(org, series)
    prefix = get_sales_settings(org).prefix_for(series)
    return format_number(prefix, value), value


def advance_voucher(org, series: str) -> int:
    """
    Contador de vouchers: se avanza DENTRO del commit de la factura,
    así que solo lo consumen facturas confirmadas (sin huecos).
    """
    require_atomic("advance_voucher")
    if series not in VOUCHER_SERIES:
        raise ValueError(f"Serie de voucher desconocida: {series}")
    return _increment(org, series)
