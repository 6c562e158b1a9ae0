import dataclasses
import logging

from ..utils.diagnostics import describe_event_fields
from ..utils.events_io import load_events
from .base import BaseStep, EventData

logger = logging.getLogger(__name__)


class LoadEventsStep(BaseStep):
    """
    Load the event markers of one recording.

    Params:
    - input_file (str): .json event list, .tsv/.csv event table, or any
      recording mne.io.read_raw can open (annotations become events).
      Injected by the Pipeline from the top-level `input_file` or `--input`.
    - sfreq (float, optional): converts a table's `onset` seconds to samples.
    """

    def run(self, data):
        input_file = self.params.get("input_file")
        if not input_file:
            raise ValueError("[LoadEventsStep] Provide 'input_file' (step param, config key, or --input).")
        if data is not None and data.events:
            logger.warning("[LoadEventsStep] Replacing previously loaded events.")

        sfreq = self.params.get("sfreq")
        events = tuple(load_events(input_file, sfreq=sfreq))
        inventory = describe_event_fields(events)
        for key, info in inventory.items():
            logger.info(f"[LoadEventsStep] {key}: {info['num_unique']} unique ({info['preview']})")

        base = data if data is not None else EventData()
        return dataclasses.replace(
            base,
            events=events,
            source=str(input_file),
            sfreq=sfreq,
            inventory=inventory,
            structure=None,
            discovery=None,
            conditions=None,
        )
