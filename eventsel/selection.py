"""
Automatic trial-event selection.

Runs the full chain on one recording's events:

detect format -> discover fields -> (external classifier) -> prioritize
-> label -> drop practice trials -> select conditions

and returns the condition set together with the DetectedStructure and
Discovery that epoch extraction needs to re-label events.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .errors import NoEventsError
from .models import ConditionSet, DetectedStructure, Discovery, EventFormat, EventRecord
from .utils.classifier import ClassifierMode, ExternalClassifier, resolve_discovery
from .utils.detector import apply_detection_fallback, detect_event_structure
from .utils.discovery import discover_fields, representative_events
from .utils.labels import label_events
from .utils.practice import filter_practice
from .utils.prioritizer import prioritize_grouping_fields
from .utils.selector import select_conditions_from_labels

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionResult:
    conditions: ConditionSet
    structure: DetectedStructure
    discovery: Discovery


def detect_structure(events: Sequence[EventRecord], fallback: bool = True) -> DetectedStructure:
    """Detect the event format; with `fallback`, inconclusive results become bracket/EVNT_TRSP."""
    if not any(evt.has_primary for evt in events):
        raise NoEventsError(
            f"None of the {len(events)} events has a primary (type-like) field; nothing to select."
        )
    structure = detect_event_structure(events)
    return apply_detection_fallback(structure) if fallback else structure


def discover(
    events: Sequence[EventRecord],
    structure: DetectedStructure,
    classifier_mode="auto",
    classifier: Optional[ExternalClassifier] = None,
) -> Discovery:
    """Heuristic discovery, classifier policy, then grouping-field prioritization."""
    heuristic = discover_fields(events, structure)
    resolved = resolve_discovery(
        heuristic,
        structure,
        representative_events(events),
        ClassifierMode.parse(classifier_mode),
        classifier,
    )
    if not resolved.used_external_classifier:
        resolved = dataclasses.replace(
            resolved,
            grouping_fields=prioritize_grouping_fields(resolved.grouping_fields, resolved.field_stats),
        )
    logger.info(f"[discover] Group by: {', '.join(resolved.grouping_fields) or '<none>'}")
    logger.info(f"[discover] Confidence: {resolved.confidence * 100:.0f}%")
    logger.info(
        "[discover] Source: "
        + ("external classifier" if resolved.used_external_classifier else "heuristic analysis")
    )
    return resolved


def select_conditions(
    events: Sequence[EventRecord],
    classifier_mode="auto",
    classifier: Optional[ExternalClassifier] = None,
    group_by: Optional[Sequence[str]] = None,
    exclude_practice: bool = True,
    conditions: Optional[Sequence[str]] = None,
    structure: Optional[DetectedStructure] = None,
    discovery: Optional[Discovery] = None,
) -> SelectionResult:
    """
    Select and label trial events of one recording.

    Parameters
    ----------
    events : sequence of EventRecord
        Events of the recording, in order.
    classifier_mode : {'never', 'always', 'auto'}
        Policy for the external classifier.
    classifier : ExternalClassifier | None
        Backend used when the policy calls for a second opinion.
    group_by : list of str | None
        Grouping fields overriding the discovered ones.
    exclude_practice : bool
        Drop events whose label matches a practice pattern.
    conditions : list of str | None
        Keep only labels containing one of these (ignored when an adopted
        classifier result carries its own include/exclude recommendations).
    structure, discovery : optional
        Precomputed values to reuse instead of running detection/discovery.

    Returns
    -------
    SelectionResult

    Raises
    ------
    NoEventsError
        No event has a primary field.
    NoConditionsError
        No condition label survives.
    """
    events = list(events)
    if structure is None:
        structure = detect_structure(events)
    if discovery is None:
        discovery = discover(events, structure, classifier_mode, classifier)

    if group_by:
        logger.info(
            f"[select_conditions] Overriding grouping fields: {', '.join(discovery.grouping_fields) or '<none>'}"
            f" -> {', '.join(group_by)}"
        )
        discovery = dataclasses.replace(discovery, grouping_fields=tuple(group_by))

    if not discovery.grouping_fields and structure.format is not EventFormat.SIMPLE:
        logger.warning("[select_conditions] No grouping fields detected; grouping by raw event type.")
        structure = dataclasses.replace(structure, format=EventFormat.SIMPLE)

    logger.info(f"[select_conditions] Format: {structure.format.value}")
    logger.info(f"[select_conditions] Grouping by: {', '.join(discovery.grouping_fields) or '<raw event type>'}")

    labeling = label_events(events, structure, discovery)
    labeled = list(labeling.labeled)

    practice_excluded = 0
    if exclude_practice:
        labeled, practice_excluded = filter_practice(labeled, discovery.practice_patterns)
    else:
        logger.info("[select_conditions] Skipping practice exclusion")

    counters = {
        "skipped_malformed": labeling.skipped_malformed,
        "skipped_pattern": labeling.skipped_pattern,
        "skipped_empty": labeling.skipped_empty,
        "skipped_practice": practice_excluded,
    }
    condition_set = select_conditions_from_labels(events, labeled, discovery, conditions, counters)

    logger.info(
        f"[select_conditions] {len(events)} events in file, {condition_set.total_events} selected "
        f"in {len(condition_set.labels)} condition groups"
    )
    return SelectionResult(conditions=condition_set, structure=structure, discovery=discovery)
