"""
Name and number normalization.

Pure, total functions shared by extraction, matching and comparison:
- normalize_name(): canonical comparison key for a free-text product name.
- to_float() / to_int(): tolerant numeric parsing of supplier cell values.
- clamp_confidence(): extraction confidence as an int in [0, 100].
- fold_accents(): diacritic folding, used only for fuzzy search scoring.

None of these raise on bad input; an empty key means "unextractable" and the
caller is expected to discard the record.
"""

from __future__ import annotations

import math
import re
import unicodedata
from typing import Optional

from config import DEFAULT_CONFIDENCE

UNIT_TOKENS = frozenset(
    {
        "kg", "kgs", "gr", "grs", "g", "mg",
        "ml", "l", "lt", "lts", "cc", "oz", "lb",
        "und", "unid", "unidad", "unidades",
        "pza", "pzas", "pieza", "piezas",
        "caja", "cajas", "bulto", "bultos",
        "display", "paq", "paquete", "pack", "x",
    }
)

_DIGIT_LETTER = re.compile(r"(?<=\d)(?=[^\W\d_])|(?<=[^\W\d_])(?=\d)")
_OUTSIDE_ALPHABET = re.compile(r"[^a-z0-9áéíóúüñ\s]")
_WHITESPACE = re.compile(r"\s+")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def normalize_name(raw: Optional[str]) -> str:
    """
    Canonicalize a product name into a comparable key.

    "Café Especial 500 GR Caja" -> "café especial 500"
    "CAFÉ  especial, 500-gr"    -> "café especial 500"
    """
    if not raw:
        return ""

    text = str(raw).lower()
    text = _DIGIT_LETTER.sub(" ", text)
    text = _OUTSIDE_ALPHABET.sub(" ", text)

    tokens = [t for t in _WHITESPACE.split(text) if t and t not in UNIT_TOKENS]
    return " ".join(tokens)


def fold_accents(text: Optional[str]) -> str:
    """Strip diacritics: "café" -> "cafe", "año" -> "ano"."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def to_float(value) -> Optional[float]:
    """
    Convert int/float or numeric-like strings to float. Return None if not possible.

    Handles currency symbols, thousands separators and decimal commas:
    "$1.234,50" -> 1234.5, "12,50" -> 12.5, "Bs. 1,250.00" -> 1250.0
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        v = float(value)
        return None if math.isnan(v) or math.isinf(v) else v

    s = str(value).strip()
    if not s:
        return None

    s = re.sub(r"[^\d,.\-]", "", s)
    if not s:
        return None

    if "," in s and "." in s:
        # The right-most separator is the decimal one.
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        head, _, tail = s.rpartition(",")
        if len(tail) == 3 and head and "," not in head and len(head.lstrip("-")) <= 3:
            s = head + tail
        else:
            s = s.replace(",", ".")
    elif s.count(".") > 1:
        s = s.replace(".", "")

    match = _NUMBER.search(s)
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def to_int(value) -> Optional[int]:
    v = to_float(value)
    return int(round(v)) if v is not None else None


def clamp_confidence(value, default: int = DEFAULT_CONFIDENCE) -> int:
    """Extraction confidence as an integer in [0, 100]; missing values take the default."""
    v = to_float(value)
    if v is None:
        v = float(default)
    return int(round(min(100.0, max(0.0, v))))
