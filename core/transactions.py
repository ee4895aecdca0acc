# core/transactions.py
import logging
import time

from django.conf import settings
from django.db import DatabaseError, OperationalError, transaction

from .exceptions import CommitFailed, PartialStateError

logger = logging.getLogger(__name__)


def _max_attempts():
    return int(getattr(settings, "LEDGER_TRANSACTION_MAX_ATTEMPTS", 5))


def _retry_delay():
    return float(getattr(settings, "LEDGER_TRANSACTION_RETRY_DELAY", 0.05))


def run_in_transaction(fn, *args, attempts=None, **kwargs):
    """
    Ejecuta fn(*args, **kwargs) dentro de un transaction.atomic().

    - Si la BD detecta conflicto (serialización, deadlock, "database is locked")
      se reintenta desde el principio hasta `attempts` veces.
    - Agotados los intentos, o ante cualquier otro error de BD -> CommitFailed.
    - Las excepciones de negocio (ValidationError, NotFound...) salen tal cual.

    fn debe leer con select_for_update() todo lo que luego escribe.
    """
    attempts = attempts or _max_attempts()
    name = getattr(fn, "__name__", repr(fn))

    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                return fn(*args, **kwargs)
        except OperationalError as exc:
            if attempt >= attempts:
                logger.error(f"[Tx] {name}: conflicto tras {attempt} intentos, se aborta", exc_info=True)
                raise CommitFailed() from exc
            logger.warning(f"[Tx] {name}: conflicto en intento {attempt}/{attempts}, reintentando ({exc})")
            time.sleep(_retry_delay() * attempt)
        except DatabaseError as exc:
            logger.error(f"[Tx] {name}: error de BD, sin reintento", exc_info=True)
            raise CommitFailed() from exc


def require_atomic(what: str):
    """Los adaptadores de stock/saldo solo escriben dentro de un commit."""
    if not transaction.get_connection().in_atomic_block:
        raise PartialStateError(f"{what} debe ejecutarse dentro de una transacción de commit")
