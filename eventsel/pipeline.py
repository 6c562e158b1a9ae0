"""
Pipeline entrypoint and runner.

Supports JSON (preferred) and YAML configuration files, with validation
against `eventsel/config_schema.json`.
"""

import argparse
import difflib
import json
import logging
import os
import re
import sys
from pathlib import Path

import yaml
from jsonschema import Draft7Validator

# A global STEP_REGISTRY that maps "step name" -> "step class"
from eventsel.registry import STEP_REGISTRY

# Import all steps to register them
from .steps import *  # noqa: F401,F403

logger = logging.getLogger(__name__)

# Top-level config keys injected into the params of specific steps when unset there.
STEP_DEFAULTS = {
    "LoadEventsStep": ("input_file", "sfreq"),
    "ExportConditionsStep": ("output_dir",),
}


class Pipeline:
    """
    A pipeline that executes a list of steps in order.
    Steps can be specified via a JSON/YAML file or a Python dict.
    """

    def __init__(self, config_file=None, config_dict=None, validate_config=True, input_file=None):
        self.config = self._load_config(config_file, config_dict, validate=validate_config)
        if input_file:
            self.config["input_file"] = input_file
        self.data = None

    def _load_config(self, config_file, config_dict, validate=True):
        """Load config from dict or file (JSON or YAML) and optionally validate."""
        if config_dict is not None:
            config = config_dict
        else:
            if config_file is None:
                raise ValueError("No configuration provided. Use --config to specify a file.")
            cfg_path = Path(os.path.expandvars(os.path.expanduser(str(config_file))))
            if not cfg_path.exists():
                raise FileNotFoundError(f"Config file not found: {cfg_path}")

            ext = cfg_path.suffix.lower()
            try:
                with open(cfg_path, "r", encoding="utf-8") as f:
                    if ext in (".json", ".jsonc"):
                        # Basic JSONC support: strip // and /* */ comments
                        config = json.loads(_strip_json_comments(f.read()))
                    elif ext in (".yml", ".yaml"):
                        config = yaml.safe_load(f)
                    else:
                        raise ValueError(f"Unsupported config extension '{ext}'. Use .json, .yaml, or .yml")
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in config {cfg_path}: {e}") from e
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in config {cfg_path}: {e}") from e

        if not isinstance(config, dict):
            raise ValueError("Configuration must be a mapping at the top level.")
        if validate:
            _validate_config_schema(config)
        return config

    def run(self):
        """Run the configured steps on one recording and return the final EventData."""
        steps_def = self.config.get("pipeline", {}).get("steps")
        if not steps_def:
            raise ValueError("Configuration has no 'pipeline.steps'.")
        logger.info(f"Running pipeline with {len(steps_def)} steps")
        self._run_steps(steps_def)
        logger.info("[SUCCESS] Pipeline completed.")
        return self.data

    def _step_params(self, step_info):
        """Step params with top-level defaults filled in for keys the step leaves unset."""
        step_name = step_info["name"]
        params = dict(step_info.get("params") or {})
        for key in STEP_DEFAULTS.get(step_name, ()):
            if params.get(key) is None and self.config.get(key) is not None:
                params[key] = self.config[key]
        if step_name == "DiscoverFieldsStep":
            for key, value in (self.config.get("classifier") or {}).items():
                params.setdefault(key, value)
        return params

    def _run_steps(self, steps_def):
        for i, step_info in enumerate(steps_def):
            step_name = step_info["name"]
            logger.info(f"Running step {i}: {step_name}")
            try:
                self._run_step(step_name, self._step_params(step_info))
                logger.info(f"Step {step_name} completed successfully")
            except Exception as e:
                logger.error(f"Error executing step {step_name}: {e}")
                # Stop processing further steps on error
                raise

    def _run_step(self, step_name, params):
        """Instantiate and execute one pipeline step."""
        if step_name not in STEP_REGISTRY:
            # Try friendly error with suggestions
            registered = list(STEP_REGISTRY.keys())
            # Common mistake: missing 'Step' suffix
            alt = f"{step_name}Step"
            hints = []
            if alt in STEP_REGISTRY:
                hints.append(alt)
            hints += difflib.get_close_matches(step_name, registered, n=3, cutoff=0.6)
            hint_txt = f" Did you mean: {', '.join(sorted(set(hints)))}?" if hints else ""
            raise ValueError(f"Step '{step_name}' not registered.{hint_txt}")
        step = STEP_REGISTRY[step_name](params)
        self.data = step.run(self.data)


def _strip_json_comments(text: str) -> str:
    """Remove // and /* */ comments from JSON-like text for basic JSONC support."""
    # Line comments only when they start a line or follow whitespace, so URLs survive
    text = re.sub(r"(^|\s)//.*", r"\1", text)
    text = re.sub(r"/\*.*?\*/", "", text, flags=re.DOTALL)
    return text


def _validate_config_schema(config: dict) -> None:
    """Validate config against eventsel/config_schema.json and raise helpful errors."""
    schema_path = Path(__file__).with_name("config_schema.json")
    try:
        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise RuntimeError(f"Failed to load config schema at {schema_path}: {e}") from e

    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(config), key=lambda e: [str(p) for p in e.path])
    if errors:
        msgs = []
        for err in errors:
            loc = "/".join([str(x) for x in err.path]) or "<root>"
            msgs.append(f"- {loc}: {err.message}")
        hint = (
            "Common fixes: ensure 'pipeline.steps' is set, check 'classifier.mode' "
            "(never/always/auto), and verify option names."
        )
        raise ValueError("Configuration validation failed:\n" + "\n".join(msgs) + f"\n{hint}")


def _setup_logging(verbosity: int = 0, log_file=None) -> None:
    """Configure console and optional file logging with timestamps."""
    level = logging.INFO if verbosity <= 0 else logging.DEBUG
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=handlers,
        force=True,
    )


def main(argv=None) -> int:
    """Simple CLI to run the event-selection pipeline from a config file."""
    parser = argparse.ArgumentParser(description="Detect event structure and select trial conditions")
    parser.add_argument("--config", required=True, help="Path to JSON/YAML config file")
    parser.add_argument("--input", default=None, help="Events file overriding the config's input_file")
    parser.add_argument("--no-validate", action="store_true", help="Disable schema validation")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="Increase verbosity")
    parser.add_argument("--log-file", default=None, help="Also write the log to this file")
    args = parser.parse_args(argv)

    # Setup logging early
    _setup_logging(args.verbose, log_file=Path(args.log_file) if args.log_file else None)

    try:
        pipe = Pipeline(config_file=args.config, validate_config=not args.no_validate, input_file=args.input)
        pipe.run()
    except FileNotFoundError as e:
        logger.error(str(e))
        logger.error("Hint: check path spelling and that the file exists.")
        return 2
    except ValueError as e:
        logger.error(str(e))
        return 3
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
