"""
Field discovery: which event attributes describe an experimental condition.

Values of every attribute are accumulated over a deterministic sample of up
to 500 events, frozen into `FieldStatistics`, and each attribute is classified
with the rule table in `rules.py`. Discovery also collects practice-trial
markers, boolean-like value mappings for condition fields, and a heuristic
confidence score used to decide whether an external classifier is consulted.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Sequence

from ..models import (
    Discovery,
    DetectedStructure,
    EventRecord,
    FieldClass,
    FieldStatistics,
)
from .extractors import extract_fields
from .rules import classify_field, is_practice_field
from .sampling import evenly_spaced_indices
from .text import contains_any, is_missing

logger = logging.getLogger(__name__)

MAX_DISCOVERY_SAMPLES = 500
MAX_SAMPLE_VALUES = 5
MAX_CLASSIFIER_EVENTS = 30

IDEAL_GROUPING_RANGE = (2, 3)


class _FieldAccumulator:
    """Per-attribute value lists, owned by one discovery run."""

    def __init__(self):
        self._values: Dict[str, List[str]] = {}

    def add(self, fields: Mapping[str, str]) -> None:
        for name, value in fields.items():
            self._values.setdefault(name, []).append(value)

    def freeze(self) -> Dict[str, FieldStatistics]:
        stats = {}
        for name, values in self._values.items():
            unique = frozenset(values)
            stats[name] = FieldStatistics(
                unique_values=unique,
                num_unique=len(unique),
                cardinality=len(unique) / len(values),
                sample_values=tuple(values[:MAX_SAMPLE_VALUES]),
                num_observed=len(values),
            )
        return stats


def sample_event_indices(events: Sequence[EventRecord]) -> List[int]:
    return evenly_spaced_indices(len(events), MAX_DISCOVERY_SAMPLES)


def representative_events(events: Sequence[EventRecord], limit: int = MAX_CLASSIFIER_EVENTS) -> List[EventRecord]:
    """First `limit` sampled events that carry a primary field."""
    out = []
    for idx in sample_event_indices(events):
        if events[idx].has_primary:
            out.append(events[idx])
            if len(out) >= limit:
                break
    return out


def detect_value_mappings(unique_values, field_name: str) -> Dict[str, str]:
    """
    Map boolean-like codes of a condition field to readable words.

    y/n become word/nonword for lexical-status names (word, code, lex),
    verb/nonverb for verb names, and yes/no otherwise. 1/0 become yes/no.
    """
    if contains_any(field_name, ("word", "code", "lex")):
        yes_word, no_word = "word", "nonword"
    elif contains_any(field_name, ("verb",)):
        yes_word, no_word = "verb", "nonverb"
    else:
        yes_word, no_word = "yes", "no"

    mappings: Dict[str, str] = {}
    for value in sorted(unique_values):
        if value in ("y", "Y"):
            mappings[value] = yes_word
        elif value in ("n", "N"):
            mappings[value] = no_word
        elif value == "1":
            mappings[value] = "yes"
        elif value == "0":
            mappings[value] = "no"
    return mappings


def heuristic_confidence(grouping_fields, exclude_fields) -> float:
    confidence = 0.5
    if grouping_fields:
        confidence += 0.2
    n_grouping = len(grouping_fields)
    low, high = IDEAL_GROUPING_RANGE
    if low <= n_grouping <= high:
        confidence += 0.2
    elif n_grouping > high:
        confidence -= 0.1
    if exclude_fields:
        confidence += 0.1
    return max(0.0, min(1.0, confidence))


def discover_fields(events: Sequence[EventRecord], structure: DetectedStructure) -> Discovery:
    """
    Build the heuristic Discovery for one recording.

    Grouping fields are returned in first-seen order; ranking and trimming
    them is left to the prioritizer once the classifier policy has run.
    """
    logger.info(f"[discover_fields] Analyzing {len(events)} events (format={structure.format.value})...")

    accumulator = _FieldAccumulator()
    for idx in sample_event_indices(events):
        event = events[idx]
        if not event.has_primary:
            continue
        accumulator.add(extract_fields(event, structure.format))
    field_stats = accumulator.freeze()

    classifications: Dict[str, FieldClass] = {}
    practice_patterns = set()

    logger.info(f"[discover_fields] {'Field':<20s} {'Unique':>8s} {'Card.':>8s}  Classification (rule)")
    for name, stats in field_stats.items():
        field_class, rule = classify_field(name, stats)
        classifications[name] = field_class
        logger.info(
            f"[discover_fields] {name:<20s} {stats.num_unique:>8d} {stats.cardinality * 100:>7.1f}%  "
            f"{field_class.value} ({rule})"
        )
        if field_class is not FieldClass.METADATA and is_practice_field(name):
            practice_patterns.update(v for v in stats.unique_values if not is_missing(v))

    grouping = tuple(n for n, c in classifications.items() if c is FieldClass.CONDITION)
    excluded = frozenset(n for n, c in classifications.items() if c.excluded)
    value_mappings = {}
    for name in grouping:
        mapping = detect_value_mappings(field_stats[name].unique_values, name)
        if mapping:
            value_mappings[name] = mapping

    confidence = heuristic_confidence(grouping, excluded)
    logger.info(f"[discover_fields] Group by: {', '.join(grouping) or '<none>'}")
    logger.info(f"[discover_fields] Exclude: {', '.join(sorted(excluded)) or '<none>'}")
    if practice_patterns:
        logger.info(f"[discover_fields] Practice values: {', '.join(sorted(practice_patterns)[:5])}")
    logger.info(f"[discover_fields] Heuristic confidence: {confidence * 100:.0f}%")

    return Discovery(
        fields=tuple(field_stats),
        field_stats=field_stats,
        classifications=classifications,
        grouping_fields=grouping,
        exclude_fields=excluded,
        practice_patterns=frozenset(practice_patterns),
        value_mappings=value_mappings,
        confidence=confidence,
    )
