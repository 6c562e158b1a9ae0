"""
Field classification rules.

`FIELD_RULES` is evaluated top-down and the first rule that matches decides
the class of an attribute. Name-pattern rules sit above the cardinality rule,
so a matching name always wins over the statistics:

1. metadata names          -> METADATA (unconditional)
2. condition-like names    -> CONDITION when cardinality < 0.5 and >= 2 values
3. trial-like names        -> TRIAL_SPECIFIC
4. cardinality             -> CONDITION / TRIAL_SPECIFIC / AMBIGUOUS
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from ..models import FieldClass, FieldStatistics
from .text import contains_any

METADATA_TOKENS = (
    "description", "classid", "label", "sourcedevice", "name",
    "tracktype", "begintime", "endtime", "relativebegintime",
    "age", "exp", "hand", "sex", "subj", "backup", "urevent",
)
TRIAL_TOKENS = ("trial", "trl", "obs", "rep", "response", "rt", "time", "cel", "latency")
CONDITION_TOKENS = ("cond", "condition", "stim", "stimulus", "task")
PRACTICE_TOKENS = ("practice", "prac", "training", "train")

CONDITION_MAX_CARDINALITY = 0.3
CONDITION_MIN_UNIQUE = 2
CONDITION_MAX_UNIQUE = 20
TRIAL_MIN_CARDINALITY = 0.7
TRIAL_MAX_UNIQUE = 50
NAMED_CONDITION_MAX_CARDINALITY = 0.5


def classify_by_cardinality(stats: FieldStatistics) -> FieldClass:
    if (
        stats.cardinality < CONDITION_MAX_CARDINALITY
        and CONDITION_MIN_UNIQUE <= stats.num_unique <= CONDITION_MAX_UNIQUE
    ):
        return FieldClass.CONDITION
    if stats.cardinality > TRIAL_MIN_CARDINALITY or stats.num_unique > TRIAL_MAX_UNIQUE:
        return FieldClass.TRIAL_SPECIFIC
    return FieldClass.AMBIGUOUS


@dataclass(frozen=True)
class FieldRule:
    name: str
    tokens: Tuple[str, ...]
    result: Optional[FieldClass]
    when: Optional[Callable[[FieldStatistics], bool]] = None

    def apply(self, field_name: str, stats: FieldStatistics) -> Optional[FieldClass]:
        if self.tokens and not contains_any(field_name, self.tokens):
            return None
        if self.when is not None and not self.when(stats):
            return None
        if self.result is None:
            return classify_by_cardinality(stats)
        return self.result


FIELD_RULES: Tuple[FieldRule, ...] = (
    FieldRule("metadata-name", METADATA_TOKENS, FieldClass.METADATA),
    FieldRule(
        "condition-name",
        CONDITION_TOKENS,
        FieldClass.CONDITION,
        when=lambda s: s.cardinality < NAMED_CONDITION_MAX_CARDINALITY
        and s.num_unique >= CONDITION_MIN_UNIQUE,
    ),
    FieldRule("trial-name", TRIAL_TOKENS, FieldClass.TRIAL_SPECIFIC),
    FieldRule("cardinality", (), None),
)


def classify_field(field_name: str, stats: FieldStatistics, rules=FIELD_RULES) -> Tuple[FieldClass, str]:
    """Return (class, name of the deciding rule) for one attribute."""
    for rule in rules:
        result = rule.apply(field_name, stats)
        if result is not None:
            return result, rule.name
    return FieldClass.AMBIGUOUS, "none"


def is_practice_field(field_name: str) -> bool:
    return contains_any(field_name, PRACTICE_TOKENS)
