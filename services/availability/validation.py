"""Validation des codes postaux, de la disponibilité et des paramètres de liste.

Le jeu de motifs est large : il détermine ce que l'administrateur peut saisir.
Il reprend tel quel l'ensemble accepté historiquement ; le réduire serait un
changement de comportement.
"""
import re

from errors import ValidationError
from models import AVAILABILITY_VALUES

CODE_MAX_LENGTH = 10

CODE_PATTERNS = (
    re.compile(r"^\d{5}$"),                            # ZIP US
    re.compile(r"^\d{5}-\d{4}$"),                      # ZIP+4
    re.compile(r"^[A-Z]\d[A-Z] \d[A-Z]\d$"),           # Canada (A1A 1A1)
    re.compile(r"^[A-Z]{1,2}\d[A-Z\d]? \d[A-Z]{2}$"),  # Royaume-Uni
    re.compile(r"^[A-Z0-9]{2,10}$"),                   # alphanumérique générique
    re.compile(r"^\d{4,6}$"),                          # 4 à 6 chiffres
)

ORDERBY_FIELDS = ("id", "code", "availability", "created_at")
ORDER_VALUES = ("asc", "desc")
MAX_PER_PAGE = 100

_TAGS = re.compile(r"<[^>]*>")
_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def normalize_code(raw) -> str:
    """Trim + majuscules ; la même règle sert à l'écriture et à la recherche."""
    if raw is None:
        return ""
    return str(raw).strip().upper()


def is_valid_code(raw) -> bool:
    if not isinstance(raw, str):
        return False
    code = normalize_code(raw)
    if not code or len(code) > CODE_MAX_LENGTH:
        return False
    return any(p.match(code) for p in CODE_PATTERNS)


def is_valid_availability(value) -> bool:
    return isinstance(value, str) and value in AVAILABILITY_VALUES


def clean_message(value) -> str:
    if value is None:
        return ""
    text = _TAGS.sub("", str(value))
    return _CONTROL.sub("", text).strip()


def check_code(raw) -> str:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError("Zip code is required.", {"code": "required"})
    if not is_valid_code(raw):
        raise ValidationError(
            "Zip code format is invalid. Please enter a valid zip code.",
            {"code": "invalid_format"},
        )
    return normalize_code(raw)


def check_availability(value) -> str:
    if not is_valid_availability(value):
        raise ValidationError(
            'Availability must be either "available" or "unavailable".',
            {"availability": "invalid_choice"},
        )
    return value


def check_list_params(orderby: str, order: str, page: int, per_page: int):
    """Valide les paramètres de liste, retourne (orderby, order) normalisés."""
    fields = {}
    orderby = (orderby or "id").strip().lower()
    order = (order or "desc").strip().lower()
    if orderby not in ORDERBY_FIELDS:
        fields["orderby"] = "must be one of " + ", ".join(ORDERBY_FIELDS)
    if order not in ORDER_VALUES:
        fields["order"] = "must be ASC or DESC"
    if page < 1:
        fields["page"] = "must be >= 1"
    if not 1 <= per_page <= MAX_PER_PAGE:
        fields["per_page"] = f"must be between 1 and {MAX_PER_PAGE}"
    if fields:
        raise ValidationError("Invalid list parameters.", fields)
    return orderby, order
