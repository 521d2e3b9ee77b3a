"""
Region name normalization.

Geometry files and tabular sources spell region names differently
("St. Mary's County" vs "st marys  county"). Every join compares keys
produced by ``normalize`` on both sides, never raw names.
"""

import re
import string
import unicodedata
from typing import Any

import pandas as pd

_WHITESPACE = re.compile(r"\s+")


def _is_punctuation(char: str) -> bool:
    return char in string.punctuation or unicodedata.category(char).startswith("P")


def normalize(raw: Any) -> str:
    """Canonicalize a free-text region name for matching.

    Case-folds, drops punctuation (Unicode P* plus every ASCII punctuation
    mark such as ``$`` and ``|``), collapses whitespace runs to one space and
    trims. Total on any input: None and NaN normalize to "".

    Args:
        raw: Region name as entered (str, or a number such as a FIPS code)

    Returns:
        Normalized key; ``normalize(normalize(x)) == normalize(x)``
    """
    if raw is None:
        return ""
    if not isinstance(raw, str):
        try:
            if pd.isna(raw):
                return ""
        except (TypeError, ValueError):
            pass
        raw = str(raw)

    folded = raw.casefold()
    stripped = "".join(ch for ch in folded if not _is_punctuation(ch))
    return _WHITESPACE.sub(" ", stripped).strip()


def keys_match(left: Any, right: Any) -> bool:
    """Whether two raw names refer to the same region after normalization."""
    return normalize(left) == normalize(right)
