# eventsel/steps/base.py

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..models import ConditionSet, DetectedStructure, Discovery, EventRecord


@dataclass(frozen=True)
class EventData:
    """
    State handed from one pipeline step to the next.

    Steps never mutate it; each returns an updated copy built with
    `dataclasses.replace`.
    """

    events: Tuple[EventRecord, ...] = ()
    source: Optional[str] = None
    sfreq: Optional[float] = None
    inventory: Dict[str, Any] = field(default_factory=dict)
    structure: Optional[DetectedStructure] = None
    discovery: Optional[Discovery] = None
    conditions: Optional[ConditionSet] = None


class BaseStep(ABC):
    """
    Abstract base class for a pipeline step. Each step must implement run().
    """
    def __init__(self, params=None):
        """
        Initialize the step with parameters.
        """
        self.params = params if params is not None else {}

    @abstractmethod
    def run(self, data):
        """
        Execute this step's logic on the incoming data.

        Parameters
        ----------
        data : EventData or None
            State produced by the previous step (None before LoadEventsStep).

        Returns
        -------
        EventData
            The updated state after processing.
        """

    def _require(self, data, attr):
        name = type(self).__name__
        if data is None or not data.events:
            raise ValueError(f"[{name}] No events loaded. Run LoadEventsStep first.")
        if attr and getattr(data, attr) is None:
            raise ValueError(f"[{name}] Missing '{attr}'; run the step that produces it first.")
