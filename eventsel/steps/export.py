import json
import logging
import os
from pathlib import Path

import pandas as pd

from ..utils.events_io import to_mne_events
from .base import BaseStep

logger = logging.getLogger(__name__)


class ExportConditionsStep(BaseStep):
    """
    Write the selection results to `output_dir`.

    Files (prefix defaults to the input file stem):
    - <prefix>_conditions.json  structure, discovery, condition table, skip counters
    - <prefix>_events.tsv       one row per selected event: index, sample, condition, code, event text

    Example YAML usage:
    - name: ExportConditionsStep
      params:
        output_dir: "derivatives/conditions"
    """

    def run(self, data):
        self._require(data, "conditions")
        out_dir = Path(os.path.expandvars(os.path.expanduser(str(self.params.get("output_dir", ".")))))
        out_dir.mkdir(parents=True, exist_ok=True)
        prefix = self.params.get("prefix") or (Path(data.source).stem if data.source else "events")

        events_array, event_id = to_mne_events(data.events, data.conditions, data.structure, data.discovery)
        summary = {
            "source": data.source,
            "structure": data.structure.to_dict(),
            "discovery": data.discovery.to_dict(),
            "conditions": data.conditions.to_dict(),
            "eventId": event_id,
            "inventory": {k: {"numUnique": v["num_unique"], "preview": v["preview"]} for k, v in data.inventory.items()},
        }
        json_path = out_dir / f"{prefix}_conditions.json"
        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2)

        rows = []
        for idx, label in sorted(data.conditions.event_labels.items()):
            evt = data.events[idx]
            rows.append(
                {
                    "event_index": idx,
                    "sample": "n/a" if evt.latency is None else int(round(evt.latency)),
                    "condition": label,
                    "code": event_id[label],
                    "event": evt.type_text,
                }
            )
        tsv_path = out_dir / f"{prefix}_events.tsv"
        pd.DataFrame(rows, columns=["event_index", "sample", "condition", "code", "event"]).to_csv(
            tsv_path, sep="\t", index=False
        )

        logger.info(f"[ExportConditionsStep] Saved summary to: {json_path}")
        logger.info(f"[ExportConditionsStep] Saved {len(rows)} labeled events to: {tsv_path}")
        logger.info(f"[ExportConditionsStep] MNE events array: {events_array.shape[0]} rows")
        return data
