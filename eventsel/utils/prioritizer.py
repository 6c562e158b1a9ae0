"""
Ranking of candidate grouping fields.

Each candidate gets a bucket priority from its name plus a bonus of
(1 - cardinality) * 10, so among equally named fields the more
discriminative one comes first. The result is trimmed to at most three
fields (two when both leaders are namespaced experimental variables) to keep
the number of condition labels manageable.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Sequence, Tuple

from ..models import FieldStatistics
from .text import contains_any

logger = logging.getLogger(__name__)

# Prefix of key-value experimental variables exported by EGI/MFF recordings.
NAMESPACE_PREFIX = "mffkey_"

VERY_HIGH_PRIORITY = 120
MAX_FIELDS = 3
MAX_FIELDS_VERY_HIGH = 2

# (requires namespace prefix, name tokens, priority), checked top-down.
PRIORITY_BUCKETS: Tuple[Tuple[bool, Tuple[str, ...], int], ...] = (
    (True, ("cond", "condition"), 150),
    (True, ("code", "word", "lex"), 140),
    (True, ("verb", "phon", "sylb", "freq", "task"), 130),
    (True, (), 110),
    (False, ("cond", "condition", "stim", "stimulus"), 100),
    (False, ("code", "word", "lex", "status"), 80),
    (False, ("verb", "phon", "sylb", "freq"), 70),
    (False, ("task", "type", "category"), 60),
)
DEFAULT_PRIORITY = 50


def field_priority(field_name: str, stats: FieldStatistics = None) -> float:
    lowered = field_name.lower()
    namespaced = lowered.startswith(NAMESPACE_PREFIX)
    priority = DEFAULT_PRIORITY
    for needs_namespace, tokens, bucket in PRIORITY_BUCKETS:
        if needs_namespace and not namespaced:
            continue
        if not tokens or contains_any(lowered, tokens):
            priority = bucket
            break
    if stats is not None:
        priority += (1.0 - stats.cardinality) * 10
    return priority


def prioritize_grouping_fields(
    fields: Sequence[str],
    field_stats: Mapping[str, FieldStatistics],
) -> Tuple[str, ...]:
    """
    Order grouping candidates by priority and trim them.

    Fields are sorted alphabetically first, then stably by descending
    priority, so ties keep alphabetical order.
    """
    if not fields:
        return ()

    priorities: Dict[str, float] = {
        name: field_priority(name, field_stats.get(name)) for name in fields
    }
    ordered: List[str] = sorted(sorted(fields), key=lambda name: -priorities[name])

    if len(ordered) > 2:
        top, second = priorities[ordered[0]], priorities[ordered[1]]
        if top > VERY_HIGH_PRIORITY and second > VERY_HIGH_PRIORITY:
            ordered = ordered[:MAX_FIELDS_VERY_HIGH]
        else:
            ordered = ordered[:MAX_FIELDS]

    logger.info(
        "[prioritize_grouping_fields] "
        + ", ".join(f"{name} ({priorities[name]:.1f})" for name in ordered)
    )
    return tuple(ordered)
