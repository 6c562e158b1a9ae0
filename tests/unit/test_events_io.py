import json
import os
import sys

import mne
import numpy as np
import pytest

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from eventsel.models import ConditionSet, DetectedStructure, Discovery, EventFormat, EventRecord
from eventsel.utils.diagnostics import describe_event_fields
from eventsel.utils.events_io import find_condition_events, load_events, to_mne_events


def test_load_json_list(tmp_path):
    path = tmp_path / "events.json"
    path.write_text(json.dumps([
        {"type": "[Cond: a, Code: y]", "latency": 100, "urevent": 1},
        {"type": "[Cond: b, Code: n]", "latency": 250.0},
    ]))
    events = load_events(path)
    assert [e.type_text for e in events] == ["[Cond: a, Code: y]", "[Cond: b, Code: n]"]
    assert events[0].latency == 100.0
    assert events[0].attributes["urevent"] == 1


def test_load_json_object_with_events_key(tmp_path):
    path = tmp_path / "events.json"
    path.write_text(json.dumps({"events": [{"value": "DIN1"}]}))
    assert load_events(path)[0].type_text == "DIN1"


def test_load_bids_tsv_converts_onset(tmp_path):
    path = tmp_path / "sub-01_task-lex_events.tsv"
    path.write_text(
        "onset\tduration\ttrial_type\tresponse_time\n"
        "1.5\t0.5\tword\tn/a\n"
        "3.0\t0.5\tnonword\t0.61\n"
    )
    events = load_events(path, sfreq=200.0)
    assert [e.type_text for e in events] == ["word", "nonword"]
    assert events[0].latency == pytest.approx(300.0)
    assert "response_time" not in events[0].attributes
    assert events[1].attributes["response_time"] == "0.61"


def test_load_csv_sample_column(tmp_path):
    path = tmp_path / "events.csv"
    path.write_text("sample,type,Cond\n10,stim,a\n20,stim,b\n")
    events = load_events(path)
    assert [e.latency for e in events] == [10.0, 20.0]
    assert events[1].attributes["Cond"] == "b"


def test_load_mne_annotations(tmp_path):
    info = mne.create_info(2, 100.0, ch_types="eeg")
    raw = mne.io.RawArray(np.zeros((2, 1000)), info)
    raw.set_annotations(mne.Annotations(onset=[1.0, 2.5], duration=[0.0, 0.0], description=["DIN1", "DIN2"]))
    path = tmp_path / "sub-01_task-test_raw.fif"
    raw.save(path, overwrite=True)

    events = load_events(path)
    assert [e.type_text for e in events] == ["DIN1", "DIN2"]
    assert events[0].latency == pytest.approx(100.0)
    assert events[1].latency == pytest.approx(250.0)


def test_load_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_events(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(ValueError):
        load_events(bad)
    scalar = tmp_path / "scalar.json"
    scalar.write_text("42")
    with pytest.raises(ValueError):
        load_events(scalar)


def _selection():
    events = [
        EventRecord(type="[Cond: a, Code: y]", latency=300.4),
        EventRecord(type="[Cond: b, Code: y]", latency=100.0),
        EventRecord(type="[Cond: a, Code: y]", latency=None),
        EventRecord(type="[Cond: a, Code: n]", latency=200.0),
    ]
    structure = DetectedStructure(format=EventFormat.BRACKET, confidence=1.0)
    discovery = Discovery(grouping_fields=("Cond",))
    conditions = ConditionSet(
        labels=("a", "b"),
        counts={"a": 3, "b": 1},
        representatives={"a": "[Cond: a, Code: y]", "b": "[Cond: b, Code: y]"},
        event_labels={0: "a", 1: "b", 2: "a", 3: "a"},
    )
    return events, structure, discovery, conditions


def test_find_condition_events():
    events, structure, discovery, _ = _selection()
    assert find_condition_events(events, structure, discovery, "a") == [0, 2, 3]
    assert find_condition_events(events, structure, discovery, "a_y", ["Cond", "Code"]) == [0, 2]
    assert find_condition_events(events, structure, discovery, "c") == []


def test_to_mne_events():
    events, structure, discovery, conditions = _selection()
    arr, event_id = to_mne_events(events, conditions, structure, discovery)
    assert event_id == {"a": 1, "b": 2}
    assert arr.shape == (3, 3)
    assert arr.tolist() == [[100, 0, 2], [200, 0, 1], [300, 0, 1]]


def test_to_mne_events_empty():
    events, structure, discovery, conditions = _selection()
    arr, event_id = to_mne_events(events[2:3], conditions, structure, discovery)
    assert arr.shape == (0, 3)


def test_describe_event_fields():
    events = [
        EventRecord.from_mapping({"type": "DIN1", "description": "stim onset", "code": 1}),
        EventRecord.from_mapping({"type": "DIN2", "description": "stim onset"}),
        EventRecord.from_mapping({"type": "DIN1"}),
    ]
    inventory = describe_event_fields(events)
    assert list(inventory) == ["code", "type", "description"]
    assert inventory["type"]["unique_values"] == ["DIN1", "DIN2"]
    assert inventory["type"]["num_events"] == 3
    assert inventory["description"]["num_unique"] == 1
    assert inventory["code"]["preview"] == "1"
    assert "label" not in inventory


def test_describe_event_fields_preview_is_truncated():
    events = [EventRecord(type=f"S{i}") for i in range(15)]
    preview = describe_event_fields(events)["type"]["preview"]
    assert preview.endswith("(+5 more)")
