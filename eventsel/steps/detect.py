import dataclasses
import logging

from ..models import EventFormat
from ..selection import detect_structure
from .base import BaseStep

logger = logging.getLogger(__name__)


class DetectFormatStep(BaseStep):
    """
    Detect the event-marker format of the loaded events.

    Params:
    - format (str, optional): force one of bracket/fields/delimiter/simple
      instead of detecting it.
    - event_pattern (str, optional): substring every trial event must contain.
    """

    def run(self, data):
        self._require(data, None)
        forced = self.params.get("format")
        # Forced formats skip the bracket/EVNT_TRSP fallback
        structure = detect_structure(data.events, fallback=not forced)
        if forced:
            fmt = EventFormat.parse(forced)
            logger.info(f"[DetectFormatStep] Format forced: {structure.format.value} -> {fmt.value}")
            structure = dataclasses.replace(structure, format=fmt, confidence=1.0)
        pattern = self.params.get("event_pattern")
        if pattern is not None:
            structure = dataclasses.replace(structure, event_pattern=str(pattern))

        logger.info(
            f"[DetectFormatStep] Format: {structure.format.value} "
            f"(confidence {structure.confidence * 100:.0f}%), pattern: '{structure.event_pattern}'"
        )
        return dataclasses.replace(data, structure=structure, discovery=None, conditions=None)
