"""
Configuration loader — resolves the action inputs for a run.

Inputs are layered, highest precedence first:
    CLI flags  >  INPUT_* env vars  >  nodeprep.yml ``inputs:``  >  defaults

CI runners pass action inputs as ``INPUT_<NAME>`` environment
variables holding strings; those are handed to the model unchanged
and coerced there. Unrecognized keys are ignored with a warning.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from nodeprep.core.models.inputs import ActionInputs

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "nodeprep.yml"


class ConfigError(Exception):
    """Raised when the inputs or the config file are invalid."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for nodeprep.yml starting from the given directory, walking up.

    Returns:
        Path to nodeprep.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def read_config_file(path: Path) -> dict[str, Any]:
    """Return the ``inputs:`` mapping of a config file.

    Raises:
        ConfigError: If the file is unreadable or not a YAML mapping.
    """
    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Either wrapped under "inputs:" or flat
    inputs = data.get("inputs", data)
    if not isinstance(inputs, dict):
        raise ConfigError(f"'inputs' in {path} must be a mapping")
    return inputs


def inputs_from_env(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect ``INPUT_*`` variables as lower-case input names."""
    environ = os.environ if environ is None else environ
    found = {}
    for name, value in environ.items():
        if name.startswith("INPUT_") and len(name) > len("INPUT_"):
            found[name[len("INPUT_"):].lower().replace("-", "_")] = value
    return found


def load_inputs(
    config_path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    search: bool = True,
    start_dir: Path | None = None,
) -> ActionInputs:
    """Resolve the action inputs for a run.

    Args:
        config_path: Explicit nodeprep.yml. If None and ``search`` is set,
            searches upward from ``start_dir``.
        overrides: Values from the CLI; ``None`` entries are ignored.
        environ: Environment to read ``INPUT_*`` from (default: os.environ).
        search: Whether to look for a config file when none is given.
        start_dir: Where the search begins (default: the current directory).

    Raises:
        ConfigError: If the file is missing, malformed, or an input
            value cannot be read as a boolean.
    """
    merged: dict[str, Any] = {}

    if config_path is None and search:
        config_path = find_config_file(start_dir)
    if config_path is not None:
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
        merged.update(read_config_file(config_path))

    for name, value in inputs_from_env(environ).items():
        # Empty strings mean "input not given"
        if value != "":
            merged[name] = value

    for name, value in (overrides or {}).items():
        if value is not None:
            merged[name] = value

    unknown = sorted(set(merged) - set(ActionInputs.model_fields))
    if unknown:
        logger.warning("Ignoring unrecognized inputs: %s", ", ".join(unknown))

    try:
        inputs = ActionInputs.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid inputs: {e}") from e

    logger.info("Inputs: checkout=%s mode=%s", inputs.checkout, inputs.mode)
    return inputs
