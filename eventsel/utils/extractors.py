"""
Field extractors: turn one event into an attribute-name -> text mapping.

One pure function per event format. `extract_fields` dispatches through
`EXTRACTORS`, a table keyed by `EventFormat`; adding a format without an
extractor fails at import time.
"""

from __future__ import annotations

import re
from typing import Callable, Dict

from ..models import BASIC_FIELDS, EventFormat, EventRecord
from .text import to_text

# Attribute-record extraction also skips the epoch back-reference.
RECORD_SKIP_FIELDS = frozenset(BASIC_FIELDS) | {"epoch"}

# First delimiter token treated as a non-semantic prefix.
GENERIC_PREFIXES = frozenset({"stim", "event", "trigger", "trial"})

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def bracket_span(text: str):
    """Return the interior of the first [...] span, or None."""
    start = text.find("[")
    if start < 0:
        return None
    end = text.find("]", start + 1)
    if end < 0:
        return None
    return text[start + 1:end]


def extract_bracket_fields(event: EventRecord) -> Dict[str, str]:
    """
    Parse "[key: value, key: value]" notation from the event text.

    Keys are stripped of every non-alphanumeric character ("cel#" -> "cel").
    Two keys that sanitize to the same name overwrite each other.
    """
    fields: Dict[str, str] = {}
    interior = bracket_span(event.type_text)
    if interior is None:
        return fields
    for pair in interior.split(","):
        key, sep, value = pair.strip().partition(":")
        if not sep:
            continue
        key = _NON_ALNUM.sub("", key.strip())
        if key:
            fields[key] = value.strip()
    return fields


def extract_record_fields(event: EventRecord) -> Dict[str, str]:
    """Copy the event's own attributes, minus the basic bookkeeping ones."""
    return {
        name: to_text(value)
        for name, value in event.attributes.items()
        if name not in RECORD_SKIP_FIELDS
    }


def extract_delimiter_fields(event: EventRecord) -> Dict[str, str]:
    """
    Split "STIM_G23_word" style text into positional fields.

    Underscore is preferred over dash. A leading all-uppercase token or a
    generic prefix (stim/event/trigger/trial) is skipped; the remaining tokens
    become field1, field2, ...
    """
    text = event.type_text
    if "_" in text:
        parts = text.split("_")
    elif "-" in text:
        parts = text.split("-")
    else:
        return {}

    start = 0
    first = parts[0]
    if len(parts) > 1 and (first == first.upper() or first.lower() in GENERIC_PREFIXES):
        start = 1
    return {f"field{i}": part for i, part in enumerate(parts[start:], start=1)}


def extract_simple_fields(event: EventRecord) -> Dict[str, str]:
    # The whole code is the only field.
    return {"type": event.type_text}


def extract_unknown_fields(event: EventRecord) -> Dict[str, str]:
    fields = extract_bracket_fields(event)
    if not fields:
        fields = extract_record_fields(event)
    return fields


EXTRACTORS: Dict[EventFormat, Callable[[EventRecord], Dict[str, str]]] = {
    EventFormat.BRACKET: extract_bracket_fields,
    EventFormat.FIELDS: extract_record_fields,
    EventFormat.DELIMITER: extract_delimiter_fields,
    EventFormat.SIMPLE: extract_simple_fields,
    EventFormat.UNKNOWN: extract_unknown_fields,
}

_missing = set(EventFormat) - set(EXTRACTORS)
if _missing:
    raise RuntimeError(f"No field extractor registered for: {sorted(m.value for m in _missing)}")


def extract_fields(event: EventRecord, fmt: EventFormat) -> Dict[str, str]:
    return EXTRACTORS[fmt](event)
