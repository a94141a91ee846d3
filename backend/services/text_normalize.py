"""Text folding helpers shared by candidate preparation and query parsing."""
from __future__ import annotations

import re
import unicodedata
from typing import List, Optional

_COMBINING_MARKS_RE = re.compile(r"[\u0300-\u036f]")
_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def normalize_text(value: Optional[str]) -> str:
    """Fold text to a comparable form: decomposed, diacritic-free, lowercased.

    Lowercasing happens on both sides of the decomposition so that characters
    whose lowercase form carries a combining mark (e.g. 'İ') or whose
    compatibility form is uppercase (e.g. '㎒') end up stable, which keeps the
    function idempotent. Never raises.
    """
    if value is None:
        return ""
    try:
        decomposed = unicodedata.normalize("NFKD", value.lower())
        return _COMBINING_MARKS_RE.sub("", decomposed).lower()
    except (AttributeError, TypeError, ValueError):
        return str(value).lower()


def tokenize(normalized: str) -> List[str]:
    """Split already-normalized text on anything that is not [a-z0-9]."""
    if not normalized:
        return []
    return [token for token in _TOKEN_SPLIT_RE.split(normalized) if token]


def collapse_whitespace(value: Optional[str]) -> str:
    return " ".join((value or "").split())
