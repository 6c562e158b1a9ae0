"""
Optional second opinion from an external (LLM) field classifier.

The classifier receives per-field statistics, the detected format and up to
30 sample events, and answers with a JSON recommendation. Whether it is
called and whether its answer is adopted is decided by the classifier mode:

- never:  heuristics only
- always: a schema-valid answer is adopted unconditionally
- auto:   called when heuristic confidence < 0.7 or more than three grouping
          fields were found; adopted when its confidence is at least the
          heuristic confidence

Any failure (network, timeout, missing key, invalid JSON, schema violation)
is logged and the heuristic Discovery is kept. No retries.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import re
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import requests
from jsonschema import Draft7Validator

from ..errors import ClassifierError, ClassifierResponseError, ClassifierUnavailableError
from ..models import DetectedStructure, Discovery, EventRecord, ExternalResult
from .text import to_text

logger = logging.getLogger(__name__)

AUTO_CONFIDENCE_THRESHOLD = 0.7
AUTO_MAX_GROUPING_FIELDS = 3
MAX_REQUEST_EVENTS = 30
MAX_REQUEST_SAMPLE_VALUES = 5
DEFAULT_TIMEOUT_SEC = 30.0

_SCHEMA_PATH = Path(__file__).resolve().parent.parent / "classifier_response_schema.json"
_FENCE_OPEN = re.compile(r"^```\w*\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


class ClassifierMode(Enum):
    NEVER = "never"
    ALWAYS = "always"
    AUTO = "auto"

    @classmethod
    def parse(cls, value) -> "ClassifierMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown classifier mode {value!r}. Use 'never', 'always' or 'auto'.") from None


class Decision(Enum):
    USE_HEURISTIC = "use_heuristic"
    USE_EXTERNAL = "use_external"


def should_invoke(mode: ClassifierMode, heuristic_confidence: float, n_grouping: int) -> bool:
    if mode is ClassifierMode.ALWAYS:
        return True
    if mode is ClassifierMode.AUTO:
        return heuristic_confidence < AUTO_CONFIDENCE_THRESHOLD or n_grouping > AUTO_MAX_GROUPING_FIELDS
    return False


def decide(
    mode: ClassifierMode,
    heuristic_confidence: float,
    external_confidence: Optional[float],
    external_valid: bool,
) -> Decision:
    """Single point deciding whose grouping recommendation wins."""
    if not external_valid or mode is ClassifierMode.NEVER:
        return Decision.USE_HEURISTIC
    if mode is ClassifierMode.ALWAYS:
        return Decision.USE_EXTERNAL
    if external_confidence is not None and external_confidence >= heuristic_confidence:
        return Decision.USE_EXTERNAL
    return Decision.USE_HEURISTIC


# ---------------------------------------------------------------------------
# Request / response
# ---------------------------------------------------------------------------

def build_request(
    discovery: Discovery,
    structure: DetectedStructure,
    sample_events: Sequence[EventRecord],
) -> Dict[str, Any]:
    """JSON-serializable classifier request."""
    field_statistics = [
        {
            "name": name,
            "numUnique": stats.num_unique,
            "cardinality": round(stats.cardinality, 4),
            "sampleValues": list(stats.sample_values[:MAX_REQUEST_SAMPLE_VALUES]),
        }
        for name, stats in discovery.field_stats.items()
    ]
    return {
        "fieldStatistics": field_statistics,
        "detectedFormat": structure.format.value,
        "sampleEvents": [evt.to_dict() for evt in list(sample_events)[:MAX_REQUEST_EVENTS]],
    }


PROMPT_TEMPLATE = """You are an expert EEG data analyst. The event markers of an EEG recording \
were parsed into the attributes summarised below. Decide which attributes encode \
experimental conditions (use them to group trials) and which are trial bookkeeping \
(trial counters, reaction times, timestamps, subject metadata) that must be excluded. \
Also identify values that mark practice trials and name the experimental paradigm.

Detected event format: {fmt}

Field statistics:
{stats}

Sample events:
{events}

Respond ONLY with a JSON object with these keys:
  "grouping_fields": [attribute names, most important first],
  "exclude_fields": [attribute names],
  "field_classifications": {{attribute name: "condition" | "trial_specific" | "metadata" | "ambiguous"}},
  "confidence": number between 0 and 1,
  "practice_trial_patterns": [{{"pattern": str, "field": str, "reasoning": str}}],
  "condition_recommendations": {{"include": [str], "exclude": [str], "primary_comparisons": []}},
  "value_mappings": {{attribute name: {{raw value: readable value}}}},
  "experimental_paradigm": {{"type": str, "description": str, "key_manipulations": [str]}}
"""


def build_prompt(request: Dict[str, Any]) -> str:
    return PROMPT_TEMPLATE.format(
        fmt=request["detectedFormat"],
        stats=json.dumps(request["fieldStatistics"], indent=2),
        events=json.dumps(request["sampleEvents"], indent=2),
    )


def strip_fences(text: str) -> str:
    """Remove ```json ... ``` wrapping around a payload."""
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def _load_response_schema() -> Dict[str, Any]:
    with open(_SCHEMA_PATH, "r", encoding="utf-8") as f:
        return json.load(f)


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _practice_patterns(entries) -> tuple:
    patterns = []
    for entry in _as_list(entries):
        pattern = entry.get("pattern", "") if isinstance(entry, dict) else entry
        pattern = to_text(pattern)
        if pattern and pattern not in ('""', "''"):
            patterns.append(pattern)
    return tuple(patterns)


def parse_response(text: str) -> ExternalResult:
    """
    Parse and validate a classifier answer.

    Raises
    ------
    ClassifierResponseError
        If the payload is not JSON or violates the response schema.
    """
    payload = strip_fences(text or "")
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ClassifierResponseError(f"Classifier response is not valid JSON: {e}") from e

    validator = Draft7Validator(_load_response_schema())
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])
    if errors:
        msgs = []
        for err in errors:
            loc = "/".join(str(x) for x in err.path) or "<root>"
            msgs.append(f"{loc}: {err.message}")
        raise ClassifierResponseError("Classifier response failed validation: " + "; ".join(msgs))

    recs = data.get("condition_recommendations") or {}
    mappings = {
        str(name): {str(k): to_text(v) for k, v in mapping.items()}
        for name, mapping in (data.get("value_mappings") or {}).items()
    }
    confidence = data.get("confidence")
    return ExternalResult(
        grouping_fields=tuple(data["grouping_fields"]),
        exclude_fields=tuple(data["exclude_fields"]),
        field_classifications=data["field_classifications"],
        confidence=float(confidence) if confidence is not None else None,
        practice_trial_patterns=_practice_patterns(data.get("practice_trial_patterns")),
        include_conditions=tuple(to_text(c) for c in _as_list(recs.get("include")) if to_text(c)),
        exclude_conditions=tuple(to_text(c) for c in _as_list(recs.get("exclude")) if to_text(c)),
        primary_comparisons=tuple(_as_list(recs.get("primary_comparisons"))),
        value_mappings=mappings,
        experimental_paradigm=data.get("experimental_paradigm") or {},
        raw=data,
    )


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

class ExternalClassifier(ABC):
    """
    A text-completion backend asked to classify event fields.

    Subclasses implement `complete`; `classify` handles prompt building and
    response validation.
    """

    name = "external"

    @abstractmethod
    def complete(self, prompt: str) -> str:
        """Send `prompt` and return the raw text answer."""

    def classify(self, request: Dict[str, Any]) -> ExternalResult:
        logger.info(
            f"[{self.name}] Requesting field classification "
            f"({len(request['fieldStatistics'])} fields, {len(request['sampleEvents'])} sample events)"
        )
        return parse_response(self.complete(build_prompt(request)))


class _HTTPClassifier(ExternalClassifier):
    endpoint = ""
    api_key_env = ""
    default_model = ""

    def __init__(self, api_key=None, model=None, timeout_sec=DEFAULT_TIMEOUT_SEC, max_tokens=4096):
        self.api_key = api_key or os.getenv(self.api_key_env)
        self.model = model or self.default_model
        self.timeout_sec = float(timeout_sec)
        self.max_tokens = int(max_tokens)

    def _post(self, headers: Dict[str, str], body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ClassifierUnavailableError(f"{self.api_key_env} not set; cannot call the {self.name} classifier.")
        resp = requests.post(self.endpoint, headers=headers, json=body, timeout=self.timeout_sec)
        if resp.status_code == 401:
            raise ClassifierUnavailableError(f"Authentication failed. Check your {self.api_key_env}.")
        if resp.status_code == 429:
            raise ClassifierError("Rate limit exceeded by the classifier service.")
        resp.raise_for_status()
        try:
            return resp.json()
        except ValueError as e:
            raise ClassifierResponseError(f"Classifier service returned non-JSON body: {e}") from e


class AnthropicClassifier(_HTTPClassifier):
    name = "anthropic"
    endpoint = "https://api.anthropic.com/v1/messages"
    api_key_env = "ANTHROPIC_API_KEY"
    default_model = "claude-sonnet-4-20250514"

    def complete(self, prompt: str) -> str:
        headers = {
            "x-api-key": self.api_key or "",
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        body = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        result = self._post(headers, body)
        try:
            return result["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ClassifierResponseError(f"Unexpected {self.name} response structure: {e}") from e


class OpenAIClassifier(_HTTPClassifier):
    name = "openai"
    endpoint = "https://api.openai.com/v1/chat/completions"
    api_key_env = "OPENAI_API_KEY"
    default_model = "gpt-4-turbo-preview"

    def complete(self, prompt: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key or ''}",
            "content-type": "application/json",
        }
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": "You are an expert EEG data analyst. Respond only with valid JSON."},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.3,
            "response_format": {"type": "json_object"},
        }
        result = self._post(headers, body)
        try:
            return result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ClassifierResponseError(f"Unexpected {self.name} response structure: {e}") from e


CLASSIFIER_PROVIDERS = {
    "anthropic": AnthropicClassifier,
    "openai": OpenAIClassifier,
}


def make_classifier(provider: str = "anthropic", **kwargs) -> ExternalClassifier:
    try:
        cls = CLASSIFIER_PROVIDERS[str(provider).lower()]
    except KeyError:
        raise ClassifierUnavailableError(
            f"Unknown classifier provider {provider!r}. Use one of: {', '.join(CLASSIFIER_PROVIDERS)}"
        ) from None
    return cls(**kwargs)


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def call_classifier(classifier: ExternalClassifier, request: Dict[str, Any]) -> Optional[ExternalResult]:
    """One classifier round trip; failures are logged and give None."""
    try:
        result = classifier.classify(request)
    except (ClassifierError, requests.RequestException) as e:
        logger.warning(f"[call_classifier] External classification failed: {e}. Continuing with heuristic results.")
        return None
    except Exception as e:
        logger.warning(
            f"[call_classifier] Classifier backend raised {type(e).__name__}: {e}. "
            "Continuing with heuristic results."
        )
        return None
    conf = "n/a" if result.confidence is None else f"{result.confidence * 100:.0f}%"
    logger.info(f"[call_classifier] Recommendation received (confidence: {conf})")
    paradigm = result.experimental_paradigm
    if paradigm:
        logger.info(f"[call_classifier] Paradigm: {paradigm.get('type', 'n/a')}: {paradigm.get('description', '')}")
        if paradigm.get("key_manipulations"):
            logger.info(f"[call_classifier] Key manipulations: {', '.join(paradigm['key_manipulations'])}")
    return result


def merge_external(heuristic: Discovery, result: ExternalResult, decision: Decision) -> Discovery:
    """
    Combine a heuristic Discovery with a valid classifier result.

    The result is always attached and its practice patterns always added.
    Grouping fields, exclusions, value mappings and confidence are taken from
    the classifier only when `decision` is USE_EXTERNAL.
    """
    practice = heuristic.practice_patterns | frozenset(result.practice_trial_patterns)
    if decision is Decision.USE_HEURISTIC:
        return dataclasses.replace(heuristic, practice_patterns=practice, external_result=result)

    grouping = tuple(dict.fromkeys(result.grouping_fields))
    excluded = (heuristic.exclude_fields | frozenset(result.exclude_fields)) - frozenset(grouping)
    mappings = dict(heuristic.value_mappings)
    mappings.update(result.value_mappings)
    confidence = heuristic.confidence if result.confidence is None else result.confidence
    return dataclasses.replace(
        heuristic,
        grouping_fields=grouping,
        exclude_fields=excluded,
        practice_patterns=practice,
        value_mappings=mappings,
        confidence=confidence,
        used_external_classifier=True,
        external_result=result,
    )


def resolve_discovery(
    heuristic: Discovery,
    structure: DetectedStructure,
    sample_events: Sequence[EventRecord],
    mode: ClassifierMode,
    classifier: Optional[ExternalClassifier] = None,
) -> Discovery:
    """Apply the classifier policy to a heuristic Discovery."""
    mode = ClassifierMode.parse(mode)
    if not should_invoke(mode, heuristic.confidence, len(heuristic.grouping_fields)):
        return heuristic

    if mode is ClassifierMode.ALWAYS:
        logger.info("[resolve_discovery] External classification requested (mode: always)")
    elif heuristic.confidence < AUTO_CONFIDENCE_THRESHOLD:
        logger.info("[resolve_discovery] Low heuristic confidence; consulting external classifier...")
    else:
        logger.info("[resolve_discovery] Many grouping fields; consulting external classifier to refine...")

    if classifier is None:
        logger.warning("[resolve_discovery] No external classifier configured. Keeping heuristic results.")
        return heuristic

    result = call_classifier(classifier, build_request(heuristic, structure, sample_events))
    decision = decide(mode, heuristic.confidence, result.confidence if result else None, result is not None)
    if result is None:
        return heuristic

    logger.info(f"[resolve_discovery] Heuristic grouping: {', '.join(heuristic.grouping_fields) or '<none>'}")
    logger.info(f"[resolve_discovery] External grouping:  {', '.join(result.grouping_fields) or '<none>'}")
    if decision is Decision.USE_EXTERNAL:
        logger.info(f"[resolve_discovery] Using external recommendations (mode: {mode.value})")
    else:
        ext = "n/a" if result.confidence is None else f"{result.confidence * 100:.0f}%"
        logger.info(
            f"[resolve_discovery] External confidence ({ext}) lower than heuristic "
            f"({heuristic.confidence * 100:.0f}%). Keeping heuristic results."
        )
    return merge_external(heuristic, result, decision)
