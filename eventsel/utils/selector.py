"""
Final condition set: generic-label exclusion, optional include/exclude
filtering, counting and ordering.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import NoConditionsError
from ..models import ConditionSet, Discovery, EventRecord

logger = logging.getLogger(__name__)

# Labels that only name the marker kind, not a condition.
GENERIC_LABELS = frozenset({
    "stim", "evnt", "trig", "trigger", "stimulus", "event", "din", "resp", "response",
})

LOW_COUNT_THRESHOLD = 10


def is_generic_label(label: str) -> bool:
    return label.lower() in GENERIC_LABELS


def _matches_any(label: str, needles: Sequence[str]) -> Optional[str]:
    lowered = label.lower()
    for needle in needles:
        if needle.lower() in lowered:
            return needle
    return None


def apply_condition_filters(
    labeled: Sequence[Tuple[int, str]],
    discovery: Discovery,
    conditions: Optional[Sequence[str]] = None,
) -> Tuple[List[Tuple[int, str]], int]:
    """
    Filter labels by condition recommendations or user-specified conditions.

    An adopted classifier result with include/exclude lists takes precedence:
    exclude matches are dropped first, then labels must match an include
    entry when one is given. Otherwise `conditions`, when given, keeps labels
    containing any of them. Matching is case-insensitive substring.
    """
    result = discovery.external_result
    if discovery.used_external_classifier and result is not None and result.has_condition_recommendations:
        include, exclude = result.include_conditions, result.exclude_conditions
        if include:
            logger.info(f"[apply_condition_filters] Recommended include: {', '.join(include)}")
        if exclude:
            logger.info(f"[apply_condition_filters] Recommended exclude: {', '.join(exclude)}")
        kept = []
        for idx, label in labeled:
            if exclude and _matches_any(label, exclude):
                continue
            if include and not _matches_any(label, include):
                continue
            kept.append((idx, label))
    elif conditions:
        logger.info(f"[apply_condition_filters] Target conditions: {', '.join(conditions)}")
        kept = [(idx, label) for idx, label in labeled if _matches_any(label, conditions)]
    else:
        return list(labeled), 0

    removed = len(labeled) - len(kept)
    logger.info(f"[apply_condition_filters] Removed {removed} events, kept {len(kept)}")
    return kept, removed


def select_conditions_from_labels(
    events: Sequence[EventRecord],
    labeled: Sequence[Tuple[int, str]],
    discovery: Discovery,
    conditions: Optional[Sequence[str]] = None,
    counters: Optional[Dict[str, int]] = None,
) -> ConditionSet:
    """
    Build the ConditionSet from practice-filtered (event index, label) pairs.

    Raises
    ------
    NoConditionsError
        If no label survives.
    """
    counters = dict(counters or {})

    kept = []
    generic = 0
    for idx, label in labeled:
        if is_generic_label(label):
            generic += 1
            continue
        kept.append((idx, label))
    if generic:
        logger.info(f"[select_conditions] Skipped {generic} events (generic labels without condition info)")

    kept, filtered = apply_condition_filters(kept, discovery, conditions)

    counters["skipped_generic"] = generic
    counters["skipped_filtered"] = filtered
    if not kept:
        summary = ", ".join(f"{k}={v}" for k, v in sorted(counters.items()))
        raise NoConditionsError(
            f"No events could be parsed into condition labels ({summary}). "
            "Check the event data or set the grouping fields manually.",
            counters,
        )

    counts = Counter(label for _, label in kept)
    # Alphabetical first so equal counts stay in a stable order.
    labels = tuple(sorted(sorted(counts), key=lambda lab: -counts[lab]))
    representatives: Dict[str, str] = {}
    for idx, label in kept:
        representatives.setdefault(label, events[idx].type_text)

    condition_set = ConditionSet(
        labels=labels,
        counts=dict(counts),
        representatives=representatives,
        event_labels=dict(kept),
        **counters,
    )
    _log_summary(condition_set)
    return condition_set


def _log_summary(condition_set: ConditionSet) -> None:
    logger.info(f"[select_conditions] {'Condition':<40s} {'Trials':>8s}")
    for label in condition_set.labels:
        logger.info(f"[select_conditions] {label:<40s} {condition_set.counts[label]:>8d}")
    total = condition_set.total_events
    logger.info(f"[select_conditions] {'TOTAL':<40s} {total:>8d}")
    logger.info(
        f"[select_conditions] {'AVERAGE per condition':<40s} {total / len(condition_set.labels):>8.1f}"
    )
    low = condition_set.low_count_conditions(LOW_COUNT_THRESHOLD)
    if low:
        logger.warning(
            f"[select_conditions] {len(low)} condition(s) have fewer than {LOW_COUNT_THRESHOLD} trials: "
            f"{', '.join(low)}. Consider grouping by fewer fields."
        )
