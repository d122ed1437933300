"""
Name normalization and free-text operation matching.
Shared by history consolidation, planning and reconciliation.
"""

from datetime import datetime, date
from typing import Optional, List, Tuple
import logging
import re
import unicodedata

from gmao_planning.catalog import (
    OPERATION_CATALOG, OPERATION_SYNONYMS, RULE_MARKERS, OperationType, get_operation
)

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_NON_DIGIT = re.compile(r"[^0-9]")

DATE_FORMATS = (
    '%d/%m/%Y',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d',
)


def normalize(text) -> str:
    """
    Canonical comparison key: no accents, lower case, only [a-z0-9].

    "Filtre à huile" -> "filtreahuile"
    """
    if text is None:
        return ""
    decomposed = unicodedata.normalize("NFD", str(text).lower())
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return _NON_ALNUM.sub("", stripped)


def category_key(category) -> str:
    return normalize(category)


def _words(text: str) -> List[str]:
    return [w for w in (normalize(part) for part in text.split(" ")) if w]


# Synonyms first, then the catalog most-specific first. An operation with a
# synonym is matched through it only, never through its own label.
_SYNONYMS: List[Tuple[List[str], str]] = [
    (_words(synonym), code) for synonym, code in OPERATION_SYNONYMS.items()
]

_SYNONYM_TARGETS = frozenset(OPERATION_SYNONYMS.values())

_CATALOG_BY_SPECIFICITY: List[Tuple[List[str], OperationType]] = sorted(
    (
        (_words(op.label), op) for op in OPERATION_CATALOG
        if op.code not in _SYNONYM_TARGETS
    ),
    key=lambda item: (len(item[0]), len(item[1].label)),
    reverse=True,
)


def match_operation(free_text) -> Optional[str]:
    """
    Match a free-text description against the operation catalog.

    Returns:
        Catalog code, or None when the text names no known operation
    """
    normalized = normalize(free_text)
    if not normalized:
        return None

    for tokens, code in _SYNONYMS:
        if tokens and all(token in normalized for token in tokens):
            return code

    for tokens, operation in _CATALOG_BY_SPECIFICITY:
        if tokens and all(token in normalized for token in tokens):
            return operation.code

    return None


def resolve_operation(name) -> Optional[str]:
    """
    Resolve an operation name written in a table (code or label) to its code.
    Comparison is done on normalized keys only.
    """
    if name is None:
        return None
    if get_operation(str(name).strip()):
        return str(name).strip()

    key = normalize(name)
    if not key:
        return None
    for operation in OPERATION_CATALOG:
        if key in (normalize(operation.label), normalize(operation.code)):
            return operation.code
    return None


def extract_meter_reading(free_text) -> Optional[int]:
    """
    Extract a meter reading (km / hours) from free text.
    Small numbers (<= 10) are counts or noise, never readings.
    """
    if free_text is None:
        return None
    for token in _NON_DIGIT.sub(" ", str(free_text)).split():
        value = int(token)
        if value > 10:
            return value
    return None


def parse_french_date(value) -> Optional[date]:
    """
    Parse French date format DD/MM/YYYY (single digit day/month accepted).

    Returns:
        date, or None when the value is missing or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    date_str = str(value).strip()
    if not date_str:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue

    logger.debug(f"Could not parse date: {date_str}")
    return None


def is_marker(value) -> bool:
    """True when a cell holds an interval marker ('*' or '**')"""
    return isinstance(value, str) and value.strip() in RULE_MARKERS


def parse_quantity(value) -> float:
    """Convert a French decimal quantity ("1,5") to float, 0.0 when blank"""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    value_str = str(value).strip().replace(' ', '').replace(',', '.')
    if not value_str:
        return 0.0
    try:
        return float(value_str)
    except ValueError:
        logger.warning(f"Could not convert '{value}' to float, returning 0.0")
        return 0.0
