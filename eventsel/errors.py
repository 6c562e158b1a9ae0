"""
Error taxonomy for event selection.

Whole-recording failures (`NoEventsError`, `NoConditionsError`) escalate to the
caller. Classifier failures are recoverable and are absorbed by the discovery
layer, which logs them and keeps the heuristic result.
"""


class EventSelectionError(ValueError):
    """Base class for all event-selection errors."""


class NoEventsError(EventSelectionError):
    """No event in the recording carries a primary (type-like) field."""


class NoConditionsError(EventSelectionError):
    """No condition label survived parsing, practice filtering and generic-label exclusion."""

    def __init__(self, message, counters=None):
        super().__init__(message)
        self.counters = dict(counters or {})


class ClassifierError(EventSelectionError):
    """Recoverable failure of the external classifier."""


class ClassifierUnavailableError(ClassifierError):
    """The classifier cannot be called (missing API key, unknown provider)."""


class ClassifierResponseError(ClassifierError):
    """The classifier answered with something that is not a valid recommendation."""
