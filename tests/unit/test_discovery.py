import os
import sys
import unittest

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from eventsel.models import DetectedStructure, EventFormat, EventRecord, FieldClass
from eventsel.utils.discovery import (
    detect_value_mappings,
    discover_fields,
    heuristic_confidence,
    representative_events,
    sample_event_indices,
)
from eventsel.utils.sampling import evenly_spaced_indices

BRACKET = DetectedStructure(format=EventFormat.BRACKET, confidence=1.0)
FIELDS = DetectedStructure(format=EventFormat.FIELDS, confidence=1.0)


def make_bracket_events(n=40, n_practice=4):
    events = []
    for i in range(n):
        cond = "a" if i % 2 == 0 else "b"
        code = "y" if (i // 2) % 2 == 0 else "n"
        task = "Prac" if i < n_practice else "Test"
        events.append(
            EventRecord(
                type=f"[cel#: {i + 1}, obs#: {i + 1}, Cond: {cond}, TskB: {task}, Code: {code}]",
                latency=float(100 * (i + 1)),
            )
        )
    return events


class TestSampling(unittest.TestCase):

    def test_small_inputs_use_every_index(self):
        self.assertEqual(evenly_spaced_indices(5, 100), [0, 1, 2, 3, 4])

    def test_first_and_last_included(self):
        indices = evenly_spaced_indices(1000, 100)
        self.assertEqual(len(indices), 100)
        self.assertEqual(indices[0], 0)
        self.assertEqual(indices[-1], 999)
        self.assertEqual(indices, sorted(set(indices)))

    def test_degenerate(self):
        self.assertEqual(evenly_spaced_indices(0, 10), [])
        self.assertEqual(evenly_spaced_indices(10, 1), [0])

    def test_discovery_sample_cap(self):
        self.assertEqual(len(sample_event_indices([EventRecord(type="x")] * 2000)), 500)


class TestDiscoverFields(unittest.TestCase):

    def setUp(self):
        self.events = make_bracket_events()
        self.discovery = discover_fields(self.events, BRACKET)

    def test_classifications(self):
        cls = self.discovery.classifications
        self.assertIs(cls["cel"], FieldClass.TRIAL_SPECIFIC)
        self.assertIs(cls["obs"], FieldClass.TRIAL_SPECIFIC)
        self.assertIs(cls["Cond"], FieldClass.CONDITION)
        self.assertIs(cls["TskB"], FieldClass.CONDITION)
        self.assertIs(cls["Code"], FieldClass.CONDITION)

    def test_grouping_in_first_seen_order(self):
        self.assertEqual(self.discovery.grouping_fields, ("Cond", "TskB", "Code"))
        self.assertEqual(self.discovery.exclude_fields, frozenset({"cel", "obs"}))
        self.assertEqual(self.discovery.fields, ("cel", "obs", "Cond", "TskB", "Code"))

    def test_grouping_and_excluded_are_disjoint(self):
        self.assertFalse(set(self.discovery.grouping_fields) & self.discovery.exclude_fields)
        self.assertEqual(self.discovery.ambiguous_fields, ())

    def test_value_mappings_only_for_boolean_codes(self):
        self.assertEqual(self.discovery.value_mappings, {"Code": {"n": "nonword", "y": "word"}})

    def test_confidence(self):
        self.assertAlmostEqual(self.discovery.confidence, 1.0)
        self.assertFalse(self.discovery.used_external_classifier)

    def test_deterministic(self):
        again = discover_fields(self.events, BRACKET)
        self.assertEqual(again.to_dict(), self.discovery.to_dict())

    def test_unique_attribute_is_excluded_regardless_of_name(self):
        events = [
            EventRecord(type="stim", attributes={"cond_id": i, "Cond": "a" if i % 2 else "b", "blk": i % 3})
            for i in range(600)
        ]
        discovery = discover_fields(events, FIELDS)
        stats = discovery.field_stats["cond_id"]
        self.assertEqual(stats.num_unique, 500)
        self.assertEqual(stats.cardinality, 1.0)
        self.assertIs(discovery.classifications["cond_id"], FieldClass.TRIAL_SPECIFIC)
        self.assertIn("cond_id", discovery.exclude_fields)
        self.assertNotIn("cond_id", discovery.grouping_fields)

    def test_practice_values_collected(self):
        events = [
            EventRecord(type="stim", attributes={"Cond": "a" if i % 2 else "b", "practice": "PracBlock" if i < 5 else "?"})
            for i in range(20)
        ]
        discovery = discover_fields(events, FIELDS)
        self.assertEqual(discovery.practice_patterns, frozenset({"PracBlock"}))

    def test_metadata_fields_give_no_practice_values(self):
        events = [
            EventRecord(type="stim", attributes={"Cond": "a" if i % 2 else "b", "prac_label": "PracBlock"})
            for i in range(20)
        ]
        discovery = discover_fields(events, FIELDS)
        self.assertIs(discovery.classifications["prac_label"], FieldClass.METADATA)
        self.assertEqual(discovery.practice_patterns, frozenset())

    def test_discovery_mappings_are_read_only(self):
        with self.assertRaises(TypeError):
            self.discovery.value_mappings["Code"]["y"] = "changed"
        with self.assertRaises(TypeError):
            self.discovery.value_mappings["Cond"] = {}
        with self.assertRaises(TypeError):
            self.discovery.field_stats["Cond"] = None
        with self.assertRaises(TypeError):
            self.discovery.classifications["Cond"] = FieldClass.METADATA

    def test_events_without_primary_are_ignored(self):
        events = make_bracket_events(10, 0) + [EventRecord(type=None, attributes={"junk": "1"})]
        discovery = discover_fields(events, BRACKET)
        self.assertNotIn("junk", discovery.fields)


class TestHelpers(unittest.TestCase):

    def test_value_mappings(self):
        self.assertEqual(detect_value_mappings({"y", "n"}, "Code"), {"y": "word", "n": "nonword"})
        self.assertEqual(detect_value_mappings({"Y", "N"}, "verb_type"), {"Y": "verb", "N": "nonverb"})
        self.assertEqual(detect_value_mappings({"y", "n"}, "Cond"), {"y": "yes", "n": "no"})
        self.assertEqual(detect_value_mappings({"1", "0"}, "Cond"), {"1": "yes", "0": "no"})
        self.assertEqual(detect_value_mappings({"a", "b"}, "Cond"), {})

    def test_heuristic_confidence(self):
        self.assertAlmostEqual(heuristic_confidence((), frozenset()), 0.5)
        self.assertAlmostEqual(heuristic_confidence(("a",), frozenset()), 0.7)
        self.assertAlmostEqual(heuristic_confidence(("a", "b"), frozenset({"x"})), 1.0)
        self.assertAlmostEqual(heuristic_confidence(("a", "b", "c", "d"), frozenset()), 0.6)

    def test_representative_events(self):
        events = [EventRecord(type=None)] + make_bracket_events(50, 0)
        reps = representative_events(events)
        self.assertEqual(len(reps), 30)
        self.assertTrue(all(evt.has_primary for evt in reps))


if __name__ == '__main__':
    unittest.main()
