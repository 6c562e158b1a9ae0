import json
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

import requests

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from eventsel.errors import ClassifierError, ClassifierResponseError, ClassifierUnavailableError
from eventsel.models import DetectedStructure, Discovery, EventFormat, EventRecord
from eventsel.utils.classifier import (
    AnthropicClassifier,
    ClassifierMode,
    Decision,
    ExternalClassifier,
    OpenAIClassifier,
    build_request,
    decide,
    make_classifier,
    parse_response,
    resolve_discovery,
    should_invoke,
    strip_fences,
)

BRACKET = DetectedStructure(format=EventFormat.BRACKET, confidence=1.0)

VALID_ANSWER = {
    "grouping_fields": ["Cond", "Code"],
    "exclude_fields": ["cel", "obs"],
    "field_classifications": {"Cond": "condition", "cel": "trial_specific"},
    "confidence": 0.9,
    "practice_trial_patterns": ["Prac", {"pattern": "warmup", "field": "TskB"}, "", '""'],
    "condition_recommendations": {"include": "word", "exclude": ["Prac"]},
    "value_mappings": {"Code": {"y": "word", "n": "nonword"}},
    "experimental_paradigm": {
        "type": "lexical decision",
        "description": "word vs nonword",
        "key_manipulations": ["Cond", "Code"],
    },
}


class StubClassifier(ExternalClassifier):
    """Returns a canned answer and records the prompts it was sent."""

    name = "stub"

    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error
        self.prompts = []

    def complete(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.answer if isinstance(self.answer, str) else json.dumps(self.answer)


def _heuristic(confidence=0.5, grouping=()):
    return Discovery(
        fields=("cel", "Cond", "Code"),
        grouping_fields=tuple(grouping),
        exclude_fields=frozenset({"cel"}),
        practice_patterns=frozenset({"PracBlock"}),
        confidence=confidence,
    )


class TestPolicy(unittest.TestCase):

    def test_should_invoke(self):
        self.assertFalse(should_invoke(ClassifierMode.NEVER, 0.1, 10))
        self.assertTrue(should_invoke(ClassifierMode.ALWAYS, 1.0, 1))
        self.assertTrue(should_invoke(ClassifierMode.AUTO, 0.69, 2))
        self.assertTrue(should_invoke(ClassifierMode.AUTO, 0.9, 4))
        self.assertFalse(should_invoke(ClassifierMode.AUTO, 0.7, 3))

    def test_decide(self):
        self.assertIs(decide(ClassifierMode.ALWAYS, 0.9, 0.1, True), Decision.USE_EXTERNAL)
        self.assertIs(decide(ClassifierMode.ALWAYS, 0.9, 0.1, False), Decision.USE_HEURISTIC)
        self.assertIs(decide(ClassifierMode.AUTO, 0.5, 0.5, True), Decision.USE_EXTERNAL)
        self.assertIs(decide(ClassifierMode.AUTO, 0.6, 0.5, True), Decision.USE_HEURISTIC)
        self.assertIs(decide(ClassifierMode.AUTO, 0.6, None, True), Decision.USE_HEURISTIC)
        self.assertIs(decide(ClassifierMode.NEVER, 0.1, 0.9, True), Decision.USE_HEURISTIC)

    def test_mode_parse(self):
        self.assertIs(ClassifierMode.parse("Auto"), ClassifierMode.AUTO)
        with self.assertRaises(ValueError):
            ClassifierMode.parse("sometimes")


class TestParseResponse(unittest.TestCase):

    def test_fenced_payload(self):
        text = "```json\n" + json.dumps(VALID_ANSWER) + "\n```"
        self.assertEqual(strip_fences(text), json.dumps(VALID_ANSWER))
        result = parse_response(text)
        self.assertEqual(result.grouping_fields, ("Cond", "Code"))
        self.assertEqual(result.exclude_fields, ("cel", "obs"))
        self.assertEqual(result.confidence, 0.9)
        self.assertEqual(result.practice_trial_patterns, ("Prac", "warmup"))
        self.assertEqual(result.include_conditions, ("word",))
        self.assertEqual(result.exclude_conditions, ("Prac",))
        self.assertTrue(result.has_condition_recommendations)
        self.assertEqual(dict(result.value_mappings["Code"]), {"y": "word", "n": "nonword"})
        self.assertEqual(result.experimental_paradigm["type"], "lexical decision")

    def test_not_json(self):
        with self.assertRaises(ClassifierResponseError):
            parse_response("I think you should group by Cond.")

    def test_schema_violation(self):
        bad = dict(VALID_ANSWER)
        del bad["grouping_fields"]
        with self.assertRaises(ClassifierResponseError):
            parse_response(json.dumps(bad))
        bad = dict(VALID_ANSWER, confidence=1.5)
        with self.assertRaises(ClassifierResponseError):
            parse_response(json.dumps(bad))

    def test_optional_confidence(self):
        minimal = {"grouping_fields": ["Cond"], "exclude_fields": [], "field_classifications": []}
        result = parse_response(json.dumps(minimal))
        self.assertIsNone(result.confidence)
        self.assertFalse(result.has_condition_recommendations)
        self.assertEqual(dict(result.experimental_paradigm), {})

    def test_prompt_asks_for_paradigm(self):
        stub = StubClassifier(VALID_ANSWER)
        resolve_discovery(_heuristic(0.5), BRACKET, [], ClassifierMode.ALWAYS, stub)
        self.assertIn("experimental_paradigm", stub.prompts[0])


class TestResolveDiscovery(unittest.TestCase):

    def test_low_confidence_adopts_external(self):
        stub = StubClassifier(VALID_ANSWER)
        resolved = resolve_discovery(_heuristic(0.5), BRACKET, [], ClassifierMode.AUTO, stub)
        self.assertEqual(len(stub.prompts), 1)
        self.assertTrue(resolved.used_external_classifier)
        self.assertEqual(resolved.grouping_fields, ("Cond", "Code"))
        self.assertAlmostEqual(resolved.confidence, 0.9)
        self.assertEqual(resolved.exclude_fields, frozenset({"cel", "obs"}))
        self.assertEqual(dict(resolved.value_mappings["Code"]), {"y": "word", "n": "nonword"})
        self.assertTrue({"PracBlock", "Prac", "warmup"} <= resolved.practice_patterns)

    def test_lower_external_confidence_keeps_heuristic(self):
        answer = dict(VALID_ANSWER, confidence=0.2)
        heuristic = _heuristic(0.6, ("Cond",))
        resolved = resolve_discovery(heuristic, BRACKET, [], ClassifierMode.AUTO, StubClassifier(answer))
        self.assertFalse(resolved.used_external_classifier)
        self.assertEqual(resolved.grouping_fields, ("Cond",))
        self.assertAlmostEqual(resolved.confidence, 0.6)
        self.assertIn("warmup", resolved.practice_patterns)
        self.assertIsNotNone(resolved.external_result)

    def test_always_mode_adopts_even_lower_confidence(self):
        answer = dict(VALID_ANSWER, confidence=0.2)
        resolved = resolve_discovery(_heuristic(1.0, ("Cond",)), BRACKET, [], "always", StubClassifier(answer))
        self.assertTrue(resolved.used_external_classifier)
        self.assertAlmostEqual(resolved.confidence, 0.2)

    def test_confident_heuristic_skips_classifier(self):
        stub = StubClassifier(VALID_ANSWER)
        heuristic = _heuristic(0.9, ("Cond", "Code"))
        self.assertIs(resolve_discovery(heuristic, BRACKET, [], ClassifierMode.AUTO, stub), heuristic)
        self.assertEqual(stub.prompts, [])

    def test_never_mode(self):
        stub = StubClassifier(VALID_ANSWER)
        heuristic = _heuristic(0.1)
        self.assertIs(resolve_discovery(heuristic, BRACKET, [], ClassifierMode.NEVER, stub), heuristic)
        self.assertEqual(stub.prompts, [])

    def test_failures_fall_back_to_heuristic(self):
        heuristic = _heuristic(0.5)
        for stub in (
            StubClassifier("not json at all"),
            StubClassifier(error=ClassifierError("rate limited")),
            StubClassifier(error=requests.ConnectionError("offline")),
            StubClassifier(error=TimeoutError("socket read timed out")),
            StubClassifier(error=KeyError("content")),
        ):
            self.assertIs(resolve_discovery(heuristic, BRACKET, [], ClassifierMode.ALWAYS, stub), heuristic)

    def test_missing_classifier(self):
        heuristic = _heuristic(0.5)
        self.assertIs(resolve_discovery(heuristic, BRACKET, [], ClassifierMode.ALWAYS, None), heuristic)

    def test_request_is_capped(self):
        events = [EventRecord(type=f"[Cond: a, cel#: {i}]") for i in range(50)]
        request = build_request(_heuristic(), BRACKET, events)
        self.assertEqual(len(request["sampleEvents"]), 30)
        self.assertEqual(request["detectedFormat"], "bracket")
        json.dumps(request)


class TestHTTPClassifiers(unittest.TestCase):

    def _response(self, status, body):
        resp = MagicMock()
        resp.status_code = status
        resp.json.return_value = body
        if status >= 400:
            resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
        return resp

    @patch("eventsel.utils.classifier.requests.post")
    def test_anthropic_round_trip(self, mock_post):
        text = "```json\n" + json.dumps(VALID_ANSWER) + "\n```"
        mock_post.return_value = self._response(200, {"content": [{"type": "text", "text": text}]})
        client = AnthropicClassifier(api_key="test-key", timeout_sec=5)
        result = client.classify(build_request(_heuristic(), BRACKET, []))
        self.assertEqual(result.grouping_fields, ("Cond", "Code"))
        _, kwargs = mock_post.call_args
        self.assertEqual(kwargs["timeout"], 5.0)
        self.assertEqual(kwargs["headers"]["x-api-key"], "test-key")
        self.assertEqual(kwargs["json"]["model"], AnthropicClassifier.default_model)

    @patch("eventsel.utils.classifier.requests.post")
    def test_openai_round_trip(self, mock_post):
        body = {"choices": [{"message": {"content": json.dumps(VALID_ANSWER)}}]}
        mock_post.return_value = self._response(200, body)
        client = OpenAIClassifier(api_key="test-key", model="gpt-test")
        result = client.classify(build_request(_heuristic(), BRACKET, []))
        self.assertEqual(result.confidence, 0.9)
        _, kwargs = mock_post.call_args
        self.assertEqual(kwargs["json"]["model"], "gpt-test")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer test-key")

    @patch("eventsel.utils.classifier.requests.post")
    def test_http_errors(self, mock_post):
        client = AnthropicClassifier(api_key="test-key")
        mock_post.return_value = self._response(401, {})
        with self.assertRaises(ClassifierUnavailableError):
            client.complete("prompt")
        mock_post.return_value = self._response(429, {})
        with self.assertRaises(ClassifierError):
            client.complete("prompt")
        mock_post.return_value = self._response(500, {})
        with self.assertRaises(requests.HTTPError):
            client.complete("prompt")
        mock_post.return_value = self._response(200, {"unexpected": True})
        with self.assertRaises(ClassifierResponseError):
            client.complete("prompt")

    @patch("eventsel.utils.classifier.requests.post")
    def test_missing_api_key(self, mock_post):
        with patch.dict(os.environ, {}, clear=True):
            client = OpenAIClassifier()
            with self.assertRaises(ClassifierUnavailableError):
                client.complete("prompt")
        mock_post.assert_not_called()

    def test_api_key_from_environment(self):
        with patch.dict(os.environ, {"ANTHROPIC_API_KEY": "env-key"}):
            self.assertEqual(make_classifier("anthropic").api_key, "env-key")

    def test_unknown_provider(self):
        with self.assertRaises(ClassifierUnavailableError):
            make_classifier("mystery")


if __name__ == '__main__':
    unittest.main()
