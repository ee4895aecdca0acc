import re
from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _


_IDENTIFIER_RE = re.compile(r"^[+]?[0-9A-Za-z\-]{3,40}$")
MIN_IDENTIFIER_LENGTH = 3


def normalize_identifier(value) -> str:
    """
    Teléfono/identificador de la contraparte tal y como se usa de clave
    en el ledger: sin espacios. Vacío si no llega al mínimo.
    """
    cleaned = re.sub(r"\s+", "", str(value or ""))
    if len(cleaned) < MIN_IDENTIFIER_LENGTH:
        return ""
    return cleaned




def validate_identifier_basic(value: str):
    if value and not _IDENTIFIER_RE.match(value):
        raise ValidationError(_("Identificador de contraparte no válido"))
