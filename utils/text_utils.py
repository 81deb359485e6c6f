"""
Text utilities for matching spreadsheet headers.

Supplier files mix English and Spanish, with and without accents:
"Descripción", "DESCRIPCION " and "descripcion" must all match.
"""

import re
import unicodedata
from typing import Any, Optional

_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def strip_accents(text: str) -> str:
    """
    Remove accent marks, keeping the base characters.

    "Descripción" -> "Descripcion", "Número" -> "Numero"
    """
    # NFD separates base chars from combining marks (category 'Mn')
    normalized = unicodedata.normalize("NFD", text)
    return "".join(c for c in normalized if unicodedata.category(c) != "Mn")


def normalize_header(header: Optional[str]) -> str:
    """
    Normalize a header for exact alias lookup.

    "  Precio Venta " -> "precio_venta"
    "Descripción"     -> "descripcion"
    """
    if not header:
        return ""
    text = strip_accents(header).lower().strip()
    return _WHITESPACE.sub("_", text)


def compact_header(header: Optional[str]) -> str:
    """
    Reduce a header to lowercase letters and digits, for fuzzy matching.

    "Precio (USD)" -> "preciousd", "stock_minimo" -> "stockminimo"
    """
    if not header:
        return ""
    return _NON_ALNUM.sub("", strip_accents(header).lower())


def cell_to_str(value: Any) -> str:
    """
    Coerce a decoded cell to a trimmed string.

    None and NaN become "". Whole floats keep their ".0" so that the
    validator sees exactly what the workbook stored.
    """
    if value is None:
        return ""
    if isinstance(value, float) and value != value:  # NaN
        return ""
    return str(value).strip()
