"""
Canonical text rendering of event attribute values.

Event attributes arrive as strings, numbers (Python or numpy), lists coming
from loaders, or missing values. Every extractor compares values as text, so
they all go through `to_text`.
"""

from __future__ import annotations

import math
from typing import Any

import numpy as np

# Values that mean "no data" for a grouping field.
MISSING_VALUES = frozenset({"?", "0", "", "NA"})


def to_text(value: Any) -> str:
    """
    Convert an attribute value to its canonical text form.

    - None and NaN become ""
    - integral floats drop the decimal part (14.0 -> "14")
    - sequences use their first element
    - bytes are decoded as UTF-8
    """
    if value is None:
        return ""
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace").strip()
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, np.ndarray):
        value = value.tolist()
    if isinstance(value, (list, tuple)):
        return to_text(value[0]) if value else ""
    return str(value).strip()


def is_missing(value: str) -> bool:
    return value in MISSING_VALUES


def contains_any(text: str, tokens) -> bool:
    """Case-insensitive substring test against a collection of tokens."""
    lowered = text.lower()
    return any(tok.lower() in lowered for tok in tokens)
