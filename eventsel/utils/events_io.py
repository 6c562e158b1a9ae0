"""
Reading event lists and handing selected conditions to MNE.

Supported inputs:
  - .json          list of event objects (EEGLAB-style export)
  - .tsv / .csv    event tables, e.g. BIDS *_events.tsv
  - anything mne.io.read_raw reads (.fif, .edf, .set, .vhdr, .mff, ...):
                   the recording's annotations become events
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import mne
import numpy as np
import pandas as pd

from ..models import ConditionSet, DetectedStructure, Discovery, EventRecord
from .labels import build_condition_label

logger = logging.getLogger(__name__)

TABLE_EXTENSIONS = {".tsv": "\t", ".csv": ","}


def _resolve(path) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(str(path)))).resolve()


def events_from_records(records: Sequence[dict]) -> List[EventRecord]:
    return [EventRecord.from_mapping(rec) for rec in records]


def events_from_frame(frame: pd.DataFrame, sfreq: Optional[float] = None) -> List[EventRecord]:
    """
    Convert an event table to EventRecords.

    Latency comes from a `latency` or `sample` column, else from `onset`
    (seconds) multiplied by `sfreq` when given. "n/a" cells are dropped.
    """
    events = []
    for row in frame.to_dict(orient="records"):
        rec = {k: v for k, v in row.items() if not (isinstance(v, str) and v.strip().lower() == "n/a")}
        rec = {k: v for k, v in rec.items() if not (isinstance(v, float) and np.isnan(v))}
        if "latency" not in rec:
            if "sample" in rec:
                rec["latency"] = rec.pop("sample")
            elif "onset" in rec:
                onset = float(rec.pop("onset"))
                rec["latency"] = onset * sfreq if sfreq else onset
        events.append(EventRecord.from_mapping(rec))
    return events


def events_from_annotations(annotations: mne.Annotations, sfreq: float, first_samp: int = 0) -> List[EventRecord]:
    """One EventRecord per annotation; description is the primary field."""
    events = []
    for ann in annotations:
        latency = float(np.round(ann["onset"] * sfreq)) + first_samp
        events.append(
            EventRecord(
                type=str(ann["description"]),
                latency=latency,
                attributes={"duration": float(ann["duration"])},
            )
        )
    return events


def load_events(path, sfreq: Optional[float] = None) -> List[EventRecord]:
    """
    Load the events of one recording.

    Raises
    ------
    FileNotFoundError
        If `path` does not exist.
    ValueError
        If the file cannot be parsed as events.
    """
    resolved = _resolve(path)
    if not resolved.exists():
        raise FileNotFoundError(f"[load_events] File not found: {resolved}")

    ext = resolved.suffix.lower()
    if ext == ".json":
        with open(resolved, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"[load_events] Invalid JSON in {resolved}: {e}") from e
        if isinstance(data, dict) and "events" in data:
            data = data["events"]
        if not isinstance(data, list):
            raise ValueError(f"[load_events] Expected a list of events in {resolved}")
        events = events_from_records(data)
    elif ext in TABLE_EXTENSIONS:
        frame = pd.read_csv(resolved, sep=TABLE_EXTENSIONS[ext], dtype=str, keep_default_na=False)
        events = events_from_frame(frame, sfreq)
    else:
        try:
            raw = mne.io.read_raw(resolved, preload=False, verbose="error")
        except Exception as e:
            raise ValueError(f"[load_events] Could not read {resolved} as events or an MNE recording: {e}") from e
        events = events_from_annotations(raw.annotations, raw.info["sfreq"], raw.first_samp)

    logger.info(f"[load_events] Loaded {len(events)} events from {resolved.name}")
    return events


def find_condition_events(
    events: Sequence[EventRecord],
    structure: DetectedStructure,
    discovery: Discovery,
    label: str,
    grouping_fields: Optional[Sequence[str]] = None,
) -> List[int]:
    """Indices of the events whose recomputed label equals `label`."""
    return [
        idx for idx, evt in enumerate(events)
        if build_condition_label(evt, structure, discovery, grouping_fields) == label
    ]


def to_mne_events(
    events: Sequence[EventRecord],
    condition_set: ConditionSet,
    structure: DetectedStructure,
    discovery: Discovery,
) -> Tuple[np.ndarray, Dict[str, int]]:
    """
    Build an MNE events array for the selected conditions.

    Each event is re-labeled; those whose label is one of the selected
    conditions and that carry a latency become rows [sample, 0, code].
    Codes follow the condition order, starting at 1.

    Returns
    -------
    events_array : (n, 3) int array, sorted by sample
    event_id : dict label -> code
    """
    event_id = {label: code for code, label in enumerate(condition_set.labels, start=1)}
    rows = []
    missing_latency = 0
    for idx, evt in enumerate(events):
        if idx not in condition_set.event_labels:
            continue
        label = build_condition_label(evt, structure, discovery)
        if label not in event_id:
            continue
        if evt.latency is None:
            missing_latency += 1
            continue
        rows.append((int(np.round(evt.latency)), 0, event_id[label]))

    if missing_latency:
        logger.warning(f"[to_mne_events] Skipped {missing_latency} selected events without latency")
    if not rows:
        return np.empty((0, 3), dtype=int), event_id
    arr = np.array(rows, dtype=int)
    return arr[np.argsort(arr[:, 0], kind="stable")], event_id
