"""Inventory of the label-like fields present in a recording's events."""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from ..models import EventRecord
from .text import to_text

logger = logging.getLogger(__name__)

INVENTORY_KEYS = ("label", "code", "type", "labels", "name", "description", "value")
PREVIEW_VALUES = 10


def _values(event: EventRecord, key: str):
    if key == "type":
        return event.type if event.has_primary else None
    return event.attributes.get(key)


def describe_event_fields(events: Sequence[EventRecord], keys: Sequence[str] = INVENTORY_KEYS) -> Dict[str, dict]:
    """
    Summarize which label-like keys the events carry.

    Returns a mapping key -> {"unique_values": [...], "num_unique": int,
    "num_events": int, "preview": str} for each key found on at least one
    event. Unique values keep first-seen order.
    """
    inventory: Dict[str, dict] = {}
    for key in keys:
        seen: List[str] = []
        present = 0
        for evt in events:
            raw = _values(evt, key)
            if raw is None:
                continue
            text = to_text(raw)
            if text == "":
                continue
            present += 1
            if text not in seen:
                seen.append(text)
        if not present:
            continue
        preview = ", ".join(seen[:PREVIEW_VALUES])
        if len(seen) > PREVIEW_VALUES:
            preview += f", ... (+{len(seen) - PREVIEW_VALUES} more)"
        inventory[key] = {
            "unique_values": seen,
            "num_unique": len(seen),
            "num_events": present,
            "preview": preview,
        }
        logger.debug(f"[describe_event_fields] {key}: {len(seen)} unique ({preview})")
    return inventory
