"""Condition label construction."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..models import DetectedStructure, Discovery, EventFormat, EventRecord
from .extractors import extract_fields
from .text import is_missing

logger = logging.getLogger(__name__)

LABEL_SEPARATOR = "_"


def build_condition_label(
    event: EventRecord,
    structure: DetectedStructure,
    discovery: Discovery,
    grouping_fields: Optional[Sequence[str]] = None,
) -> str:
    """
    Derive the condition label of one event.

    Values of `grouping_fields` (default: the Discovery's) are looked up in
    order, normalized through the discovered value mappings, and joined with
    "_". Missing-data values (?, 0, empty, NA) are left out. Simple-format
    events use their raw text. An empty string means the event carries no
    usable condition information.

    The result depends only on the arguments, so epoch extraction can
    recompute it per event instead of storing it.
    """
    if not event.has_primary:
        return ""
    if structure.format is EventFormat.SIMPLE:
        return event.type_text

    if grouping_fields is None:
        grouping_fields = discovery.grouping_fields

    fields = extract_fields(event, structure.format)
    if not fields:
        return ""

    parts = []
    for name in grouping_fields:
        if name not in fields:
            continue
        value = fields[name]
        mapping = discovery.value_mappings.get(name)
        if mapping:
            value = mapping.get(value, value)
        if not is_missing(value):
            parts.append(value)
    return LABEL_SEPARATOR.join(parts)


@dataclass(frozen=True)
class LabelingResult:
    labeled: Tuple[Tuple[int, str], ...]
    skipped_malformed: int = 0
    skipped_pattern: int = 0
    skipped_empty: int = 0


def label_events(
    events: Sequence[EventRecord],
    structure: DetectedStructure,
    discovery: Discovery,
    grouping_fields: Optional[Sequence[str]] = None,
) -> LabelingResult:
    """
    Label every event of a recording.

    Events without a primary field, events not containing the detected
    pattern (case-insensitive) and events yielding an empty label are
    skipped and counted.
    """
    pattern = structure.event_pattern.lower()
    labeled: List[Tuple[int, str]] = []
    malformed = mismatched = empty = 0
    for idx, event in enumerate(events):
        if not event.has_primary:
            malformed += 1
            continue
        if pattern and pattern not in event.type_text.lower():
            mismatched += 1
            continue
        label = build_condition_label(event, structure, discovery, grouping_fields)
        if not label:
            empty += 1
            continue
        labeled.append((idx, label))

    logger.info(f"[label_events] Parsed {len(labeled)} matching events")
    if mismatched:
        logger.info(f"[label_events] Skipped {mismatched} events (pattern mismatch)")
    if empty:
        logger.info(f"[label_events] Skipped {empty} events (no parseable condition info)")
    if malformed:
        logger.info(f"[label_events] Skipped {malformed} events (no primary field)")
    return LabelingResult(tuple(labeled), malformed, mismatched, empty)
