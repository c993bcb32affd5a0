"""Cell value classification for table detection.

Classifies a single trimmed cell value into a coarse :class:`CellType` using
locale-tolerant pattern rules, and exposes the small multilingual dictionary
of column-name keywords and unit/currency markers that the header detector
uses to recognise header rows.  Everything here is pure and stateless.
"""

from __future__ import annotations

import re

from ingestkit_tables.models import CellType

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

# Optional sign, digits with optional thousands grouping ('.', ',', space or
# apostrophe), optional decimal part with either separator.
_NUMBER_RE = re.compile(
    r"^[+\-−]?(?:\d{1,3}(?:[.,\s']\d{3})+|\d+)(?:[.,]\d+)?$"
)

_DATE_RE = re.compile(r"^\d{1,2}[./-]\d{1,2}[./-]\d{2,4}$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}(?:[ T]\d{2}:\d{2}(?::\d{2})?)?$")

_CURRENCY_SYMBOL_RE = re.compile(r"[$€£¥₽₸₴₩₹%]")
_CURRENCY_CODE_RE = re.compile(
    r"\b(?:usd|eur|rub|rur|gbp|kzt|uah|byn|cny|jpy|chf|руб\w*|грн|тенге"
    r"|vat|ндс|mwst)\b",
    re.IGNORECASE,
)

_SKU_MIN_LENGTH = 5
_SKU_MIN_SHARE = 0.8
_SKU_EXTRA_CHARS = frozenset("-_/")

_WORD_RE = re.compile(r"[^\W\d_]+")

# ---------------------------------------------------------------------------
# Header dictionary
# ---------------------------------------------------------------------------

_HEADER_KEYWORDS = frozenset(
    {
        # English
        "code", "sku", "article", "art", "item", "name", "description",
        "desc", "product", "title", "model", "brand", "manufacturer",
        "vendor", "supplier", "price", "prices", "cost", "amount", "sum",
        "total", "qty", "quantity", "stock", "unit", "units", "uom",
        "category", "group", "barcode", "ean", "upc", "discount", "weight",
        "currency", "retail", "wholesale", "availability", "country",
        # Russian
        "код", "артикул", "арт", "наименование", "название", "товар",
        "описание", "модель", "бренд", "марка", "производитель",
        "поставщик", "цена", "цены", "стоимость", "сумма", "итого", "кол",
        "количество", "остаток", "наличие", "ед", "единица", "изм",
        "категория", "группа", "штрихкод", "скидка", "вес", "валюта",
        "розница", "опт",
    }
)

_HEADER_SYMBOLS = frozenset({"№", "#", "№ п/п"})

_UNIT_TERMS = frozenset(
    {
        "usd", "eur", "rub", "rur", "gbp", "kzt", "uah", "byn", "cny", "jpy",
        "chf", "руб", "рублей", "грн", "тенге", "тг", "vat", "ндс", "mwst",
        "pcs", "pc", "шт", "kg", "кг", "g", "г", "l", "л", "m", "м", "mm",
        "мм", "cm", "см",
    }
)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_cell(value: str) -> CellType:
    """Classify a cell value into a coarse :class:`CellType`.

    Rules apply in priority order: empty, number, date, money, sku-like,
    text.  The value is stripped before matching.
    """
    v = value.strip()
    if not v:
        return CellType.EMPTY
    if _NUMBER_RE.match(v):
        return CellType.NUMBER
    if _DATE_RE.match(v) or _ISO_DATE_RE.match(v):
        return CellType.DATE
    if _CURRENCY_SYMBOL_RE.search(v) or _CURRENCY_CODE_RE.search(v):
        return CellType.MONEY
    if _is_sku_like(v):
        return CellType.SKU_LIKE
    return CellType.TEXT


def _is_sku_like(v: str) -> bool:
    if len(v) < _SKU_MIN_LENGTH or any(ch.isspace() for ch in v):
        return False
    good = sum(1 for ch in v if ch.isalnum() or ch in _SKU_EXTRA_CHARS)
    return good / len(v) >= _SKU_MIN_SHARE


def is_signal_cell(value: str) -> bool:
    """Return True for a non-empty cell that is not a lone symbol."""
    v = value.strip()
    if not v:
        return False
    if len(v) == 1 and not v.isalnum():
        return False
    return True


def is_numeric_like(value: str) -> bool:
    """Return True when the value classifies as a number or a date."""
    return classify_cell(value) in (CellType.NUMBER, CellType.DATE)


# ---------------------------------------------------------------------------
# Header dictionary lookups
# ---------------------------------------------------------------------------


def _words(value: str) -> list[str]:
    return _WORD_RE.findall(value.lower())


def header_keyword_hits(value: str) -> int:
    """Count the column-name keywords contained in *value*."""
    v = value.strip()
    if not v:
        return 0
    if v in _HEADER_SYMBOLS:
        return 1
    return sum(1 for word in _words(v) if word in _HEADER_KEYWORDS)


def is_column_label(value: str) -> bool:
    """Return True when every word of *value* is a column-name keyword."""
    v = value.strip()
    if v in _HEADER_SYMBOLS:
        return True
    words = _words(v)
    return bool(words) and all(word in _HEADER_KEYWORDS for word in words)


def is_unit_marker(value: str) -> bool:
    """Return True when *value* is only a unit or currency qualifier.

    Examples: ``"USD"``, ``"(руб.)"``, ``"%"``, ``"шт"``, ``"EUR/pcs"``.
    """
    v = value.strip()
    if not v or any(ch.isdigit() for ch in v):
        return False
    words = _words(v)
    if not words:
        return bool(_CURRENCY_SYMBOL_RE.search(v))
    return all(word in _UNIT_TERMS for word in words)


def header_weight(value: str) -> float:
    """Dictionary weight of one cell: 1.0 for a keyword, 0.5 for a unit marker."""
    if header_keyword_hits(value):
        return 1.0
    if is_unit_marker(value):
        return 0.5
    return 0.0
