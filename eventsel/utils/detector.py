"""
Format detection for event markers.

Samples up to 100 evenly spaced events, scores four independent format
signals on each, and picks the format with the highest hit ratio. When the
winning ratio is above 0.3 a common event prefix or trigger keyword is
searched for, which later restricts labeling to matching events.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import Dict, List, Sequence

from ..models import BASIC_FIELDS, DetectedStructure, EventFormat, EventRecord
from .extractors import bracket_span
from .sampling import evenly_spaced_indices

logger = logging.getLogger(__name__)

MAX_DETECTION_SAMPLES = 100
PATTERN_MIN_CONFIDENCE = 0.3
PATTERN_MIN_COVERAGE = 0.5

# Used when detection is inconclusive.
FALLBACK_FORMAT = EventFormat.BRACKET
FALLBACK_PATTERN = "EVNT_TRSP"

TRIGGER_KEYWORDS = ("EVNT", "TRSP", "STIM", "Stimulus", "Trigger", "DIN", "Event")

# Candidate prefix ends at the first delimiter, bracket or whitespace.
_PREFIX_SPLIT = re.compile(r"[_\-\s\[]")

# Order matters: ties go to the earlier format.
_SIGNAL_FORMATS = (
    EventFormat.BRACKET,
    EventFormat.FIELDS,
    EventFormat.DELIMITER,
    EventFormat.SIMPLE,
)


def is_bracket_text(text: str) -> bool:
    interior = bracket_span(text)
    return interior is not None and "," in interior and ":" in interior


def has_rich_attributes(event: EventRecord) -> bool:
    extra = [name for name in event.attributes if name not in BASIC_FIELDS]
    return len(extra) >= 2


def is_delimited_text(text: str) -> bool:
    return len(re.split(r"[_-]", text)) >= 3


def is_simple_text(text: str) -> bool:
    return len(text) <= 10 and "_" not in text and "[" not in text


def detect_event_structure(events: Sequence[EventRecord]) -> DetectedStructure:
    """
    Classify the dominant textual convention of `events`.

    Parameters
    ----------
    events : sequence of EventRecord
        All events of one recording.

    Returns
    -------
    DetectedStructure
        Format, confidence (winning hit ratio), optional common pattern and a
        representative bracket event.
    """
    num_events = len(events)
    if num_events == 0:
        logger.info("[detect_event_structure] No events found; format is unknown.")
        return DetectedStructure(num_events=0)

    logger.info(f"[detect_event_structure] Analyzing {num_events} events...")
    indices = evenly_spaced_indices(num_events, MAX_DETECTION_SAMPLES)

    hits: Dict[EventFormat, int] = {fmt: 0 for fmt in _SIGNAL_FORMATS}
    sample_event = ""
    for idx in indices:
        event = events[idx]
        if not event.has_primary:
            continue
        text = event.type_text

        if is_bracket_text(text):
            hits[EventFormat.BRACKET] += 1
            if not sample_event:
                sample_event = text
        if has_rich_attributes(event):
            hits[EventFormat.FIELDS] += 1
        if is_delimited_text(text):
            hits[EventFormat.DELIMITER] += 1
        if is_simple_text(text):
            hits[EventFormat.SIMPLE] += 1

    total = len(indices)
    ratios = {fmt: hits[fmt] / total for fmt in _SIGNAL_FORMATS}
    for fmt in _SIGNAL_FORMATS:
        logger.info(
            f"[detect_event_structure]   {fmt.value:<10s} {ratios[fmt] * 100:5.0f}% ({hits[fmt]}/{total} events)"
        )

    best = max(_SIGNAL_FORMATS, key=lambda fmt: ratios[fmt])
    confidence = ratios[best]

    pattern = ""
    if confidence > PATTERN_MIN_CONFIDENCE:
        texts = [events[i].type_text for i in indices if events[i].has_primary]
        pattern = detect_event_pattern(texts)

    logger.info(
        f"[detect_event_structure] Detected format: {best.value.upper()} ({confidence * 100:.0f}% confidence)"
    )
    if pattern:
        logger.info(f"[detect_event_structure] Event pattern: '{pattern}'")

    return DetectedStructure(
        format=best,
        confidence=confidence,
        event_pattern=pattern,
        sample_event=sample_event,
        num_events=num_events,
    )


def detect_event_pattern(texts: List[str]) -> str:
    """
    Find a prefix or trigger keyword shared by at least half of `texts`.

    Returns "" when none qualifies, meaning no pattern filtering downstream.
    """
    if not texts:
        return ""

    candidate = _PREFIX_SPLIT.split(texts[0], maxsplit=1)[0]
    if candidate:
        lowered = candidate.lower()
        matches = sum(1 for t in texts if t.lower().startswith(lowered))
        if matches / len(texts) >= PATTERN_MIN_COVERAGE:
            return candidate

    for keyword in TRIGGER_KEYWORDS:
        lowered = keyword.lower()
        matches = sum(1 for t in texts if lowered in t.lower())
        if matches / len(texts) >= PATTERN_MIN_COVERAGE:
            return keyword

    return ""


def apply_detection_fallback(structure: DetectedStructure) -> DetectedStructure:
    """Return a bracket/EVNT_TRSP structure when detection was inconclusive."""
    if structure.format is not EventFormat.UNKNOWN and structure.confidence > PATTERN_MIN_CONFIDENCE:
        return structure
    logger.warning(
        f"[apply_detection_fallback] Could not confidently detect event structure "
        f"(format={structure.format.value}, confidence={structure.confidence:.2f}). "
        f"Falling back to {FALLBACK_FORMAT.value} format with pattern '{FALLBACK_PATTERN}'."
    )
    return dataclasses.replace(structure, format=FALLBACK_FORMAT, event_pattern=FALLBACK_PATTERN)
