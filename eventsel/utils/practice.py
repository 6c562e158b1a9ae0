"""Removal of practice (warm-up) trials by condition label."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

FALLBACK_PRACTICE_PATTERNS = (
    "Prac", "PracSlow", "Practice", "Training", "practice", "training",
    "a_Practice", "s_Practice", "w_Practice", "s1_Practice",
    "1_Practice", "2_Practice", "3_Practice",
)

MAX_LOGGED_EXCLUSIONS = 10


def practice_patterns(discovered: Iterable[str]) -> List[str]:
    """Discovered patterns plus the fallback vocabulary, de-duplicated and sorted."""
    patterns = {p for p in discovered if p}
    patterns.update(FALLBACK_PRACTICE_PATTERNS)
    return sorted(patterns)


def match_practice(label: str, patterns: Sequence[str]) -> Optional[str]:
    """Return the first pattern found in `label` (case-insensitive), or None."""
    lowered = label.lower()
    for pattern in patterns:
        if pattern.lower() in lowered:
            return pattern
    return None


def filter_practice(
    labeled: Sequence[Tuple[int, str]],
    discovered_patterns: Iterable[str],
) -> Tuple[List[Tuple[int, str]], int]:
    """
    Drop (event index, label) pairs whose label matches a practice pattern.

    Returns the kept pairs and the number excluded. The first ten exclusions
    are logged individually.
    """
    patterns = practice_patterns(discovered_patterns)
    logger.info(f"[filter_practice] Practice patterns: {', '.join(patterns)}")

    kept = []
    excluded = 0
    for idx, label in labeled:
        hit = match_practice(label, patterns)
        if hit is None:
            kept.append((idx, label))
            continue
        excluded += 1
        if excluded <= MAX_LOGGED_EXCLUSIONS:
            logger.info(f"[filter_practice]   Excluding event {idx} '{label}' (matches '{hit}')")

    if excluded > MAX_LOGGED_EXCLUSIONS:
        logger.info(f"[filter_practice]   ... and {excluded - MAX_LOGGED_EXCLUSIONS} more practice trials")
    logger.info(f"[filter_practice] Excluded {excluded} practice trials ({len(kept)} remaining)")
    return kept, excluded
