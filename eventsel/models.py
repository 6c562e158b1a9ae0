"""
Data model shared by the event-selection components.

All values are frozen dataclasses. A component that needs to "update" one
(detection fallback, classifier merge, grouping override) builds a new value
with `dataclasses.replace`, so a DetectedStructure or Discovery handed to the
labeling stage never changes underneath it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

import pandas as pd

from .utils.text import to_text

# Attributes every EEGLAB-like event carries; they never describe a condition.
BASIC_FIELDS = ("type", "latency", "duration", "urevent")

# Keys tried, in order, when looking for the primary field of a raw event.
PRIMARY_KEYS = ("type", "trial_type", "label", "code", "value")


class EventFormat(Enum):
    """Textual convention used by a recording's event markers."""

    BRACKET = "bracket"
    FIELDS = "fields"
    DELIMITER = "delimiter"
    SIMPLE = "simple"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "EventFormat":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(
                f"Unknown event format {value!r}. Use one of: "
                + ", ".join(m.value for m in cls)
            ) from None


class FieldClass(Enum):
    """Role of an attribute in condition grouping."""

    CONDITION = "condition"
    TRIAL_SPECIFIC = "trial_specific"
    METADATA = "metadata"
    AMBIGUOUS = "ambiguous"

    @property
    def excluded(self) -> bool:
        return self in (FieldClass.TRIAL_SPECIFIC, FieldClass.METADATA)


@dataclass(frozen=True)
class EventRecord:
    """
    One event marker as read from a recording.

    `type` is the primary value (text or number), `latency` the sample
    position, `attributes` every other named attribute in source order.
    """

    type: Any = None
    latency: Optional[float] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EventRecord":
        """Build an event from a plain mapping (JSON object, table row, EEGLAB struct)."""
        attrs = dict(data)
        primary = None
        for key in PRIMARY_KEYS:
            if key in attrs and attrs[key] is not None:
                primary = attrs.pop(key)
                break
        latency = attrs.pop("latency", None)
        if latency is not None:
            try:
                latency = float(latency)
            except (TypeError, ValueError):
                latency = None
        return cls(type=primary, latency=latency, attributes=attrs)

    @property
    def has_primary(self) -> bool:
        return self.type is not None and self.type_text != ""

    @property
    def type_text(self) -> str:
        return to_text(self.type)

    def field_names(self) -> Tuple[str, ...]:
        names = []
        if self.type is not None:
            names.append("type")
        if self.latency is not None:
            names.append("latency")
        names.extend(self.attributes.keys())
        return tuple(names)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view with every value rendered as text."""
        out = {"type": self.type_text}
        if self.latency is not None:
            out["latency"] = self.latency
        for key, value in self.attributes.items():
            out[key] = to_text(value)
        return out


@dataclass(frozen=True)
class DetectedStructure:
    format: EventFormat = EventFormat.UNKNOWN
    confidence: float = 0.0
    event_pattern: str = ""
    sample_event: str = ""
    num_events: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format.value,
            "confidence": self.confidence,
            "eventPattern": self.event_pattern,
            "sampleEvent": self.sample_event,
            "numEvents": self.num_events,
        }


@dataclass(frozen=True)
class FieldStatistics:
    unique_values: FrozenSet[str]
    num_unique: int
    cardinality: float
    sample_values: Tuple[str, ...]
    num_observed: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uniqueValues": sorted(self.unique_values),
            "numUnique": self.num_unique,
            "cardinality": self.cardinality,
            "sampleValues": list(self.sample_values),
        }


@dataclass(frozen=True)
class ExternalResult:
    """A schema-valid recommendation returned by the external classifier."""

    grouping_fields: Tuple[str, ...]
    exclude_fields: Tuple[str, ...]
    field_classifications: Any
    confidence: Optional[float] = None
    practice_trial_patterns: Tuple[str, ...] = ()
    include_conditions: Tuple[str, ...] = ()
    exclude_conditions: Tuple[str, ...] = ()
    primary_comparisons: Tuple[Any, ...] = ()
    value_mappings: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    experimental_paradigm: Mapping[str, Any] = field(default_factory=dict)
    raw: Mapping[str, Any] = field(default_factory=dict)

    @property
    def has_condition_recommendations(self) -> bool:
        return bool(self.include_conditions or self.exclude_conditions)


@dataclass(frozen=True)
class Discovery:
    fields: Tuple[str, ...] = ()
    field_stats: Mapping[str, FieldStatistics] = field(default_factory=dict)
    classifications: Mapping[str, FieldClass] = field(default_factory=dict)
    grouping_fields: Tuple[str, ...] = ()
    exclude_fields: FrozenSet[str] = frozenset()
    practice_patterns: FrozenSet[str] = frozenset()
    value_mappings: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    confidence: float = 0.0
    used_external_classifier: bool = False
    external_result: Optional[ExternalResult] = None

    def __post_init__(self):
        object.__setattr__(self, "field_stats", MappingProxyType(dict(self.field_stats)))
        object.__setattr__(self, "classifications", MappingProxyType(dict(self.classifications)))
        object.__setattr__(
            self,
            "value_mappings",
            MappingProxyType({k: MappingProxyType(dict(v)) for k, v in self.value_mappings.items()}),
        )

    @property
    def ambiguous_fields(self) -> Tuple[str, ...]:
        return tuple(
            name for name in self.fields
            if name not in self.grouping_fields and name not in self.exclude_fields
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fields": list(self.fields),
            "fieldStats": {k: v.to_dict() for k, v in self.field_stats.items()},
            "classifications": {k: v.value for k, v in self.classifications.items()},
            "groupingFields": list(self.grouping_fields),
            "excludeFields": sorted(self.exclude_fields),
            "practicePatterns": sorted(self.practice_patterns),
            "valueMappings": {k: dict(v) for k, v in self.value_mappings.items()},
            "confidence": self.confidence,
            "usedExternalClassifier": self.used_external_classifier,
        }


@dataclass(frozen=True)
class ConditionSet:
    labels: Tuple[str, ...]
    counts: Mapping[str, int]
    representatives: Mapping[str, str]
    event_labels: Mapping[int, str] = field(default_factory=dict)
    skipped_pattern: int = 0
    skipped_empty: int = 0
    skipped_generic: int = 0
    skipped_practice: int = 0
    skipped_malformed: int = 0
    skipped_filtered: int = 0

    @property
    def total_events(self) -> int:
        return sum(self.counts.values())

    def counters(self) -> Dict[str, int]:
        return {
            "pattern_mismatch": self.skipped_pattern,
            "empty_label": self.skipped_empty,
            "generic_label": self.skipped_generic,
            "practice": self.skipped_practice,
            "malformed": self.skipped_malformed,
            "filtered": self.skipped_filtered,
        }

    def low_count_conditions(self, threshold: int = 10) -> List[str]:
        return [lab for lab in self.labels if self.counts[lab] < threshold]

    def to_frame(self) -> pd.DataFrame:
        """Per-condition table in selection order."""
        return pd.DataFrame(
            {
                "condition": list(self.labels),
                "trials": [self.counts[lab] for lab in self.labels],
                "example_event": [self.representatives.get(lab, "") for lab in self.labels],
            }
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conditions": [
                {"label": lab, "count": self.counts[lab], "representative": self.representatives.get(lab, "")}
                for lab in self.labels
            ],
            "totalEvents": self.total_events,
            "skipped": self.counters(),
        }
