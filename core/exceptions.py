# core/exceptions.py
"""
Errores del ledger comercial.

Validación y "no encontrado" usan directamente las excepciones de DRF
(rest_framework.exceptions.ValidationError / NotFound), igual que el resto
de servicios. La contención la señala la propia BD (OperationalError) y se
reintenta en core.transactions.run_in_transaction.
"""
from rest_framework import status
from rest_framework.exceptions import APIException


class CommitFailed(APIException):
    """
    La transacción no pudo confirmarse (contención agotada o error de BD).
    El borrador no se toca: el cliente puede reintentar con los mismos datos.
    """
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "No se pudo guardar la operación, inténtalo de nuevo."
    default_code = "commit_failed"


class PartialStateError(Exception):
    """
    Escritura de stock/saldo fuera de un bloque atómico.
    Nunca es una condición esperada: indica un bug.
    """
