__all__ = [
    "__version__",
    "run_pipeline",
    "select_conditions",
    "load_events",
    "find_condition_events",
    "to_mne_events",
    "describe_event_fields",
]

__version__ = "0.1.0"

from .selection import select_conditions
from .utils.diagnostics import describe_event_fields
from .utils.events_io import find_condition_events, load_events, to_mne_events


def run_pipeline(config_path: str, validate: bool = True, input_file: str = None):
    """Programmatic entry to run the pipeline from a config file."""
    from .pipeline import Pipeline

    pipe = Pipeline(config_file=config_path, validate_config=validate, input_file=input_file)
    return pipe.run()
