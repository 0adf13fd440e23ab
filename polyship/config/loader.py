# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Config loader: reads YAML from disk and produces a validated, frozen PolyshipConfig.

The loading pipeline is deliberately simple and linear:
  1. Read raw text from the file
  2. Parse as YAML into a plain dict
  3. Hand the dict to pydantic for schema validation
  4. Return the frozen, immutable config object

If anything goes wrong at any step, we fail immediately with a clear error.
A broken config should stop the run before a single build tool is spawned.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from polyship.config.exceptions import ConfigLoadError, ConfigValidationError
from polyship.config.schema import PolyshipConfig

DEFAULT_CONFIG_NAME = ".polyship.yaml"


def _read_yaml_file(config_path: Path) -> dict[str, Any]:
    """
    Read a YAML file and return the parsed dict.

    Raises:
        ConfigLoadError: If the file doesn't exist, isn't readable, or isn't valid YAML.
    """
    if not config_path.exists():
        raise ConfigLoadError(f"Config file not found: {config_path}")

    if not config_path.is_file():
        raise ConfigLoadError(f"Config path is not a file: {config_path}")

    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except OSError as err:
        raise ConfigLoadError(f"Cannot read config file {config_path}: {err}") from err

    try:
        parsed = yaml.safe_load(raw_text)
    except yaml.YAMLError as err:
        raise ConfigLoadError(f"Invalid YAML in {config_path}: {err}") from err

    if not isinstance(parsed, dict):
        raise ConfigLoadError(
            f"Config file must contain a YAML mapping (dict), got {type(parsed).__name__}"
        )

    return parsed


def parse_config(raw_data: dict[str, Any], source: str = "<memory>") -> PolyshipConfig:
    """
    Validate an already-parsed mapping into a PolyshipConfig.

    Raises:
        ConfigValidationError: Schema violations (missing fields, wrong types, unknown keys).
    """
    try:
        return PolyshipConfig.model_validate(raw_data)
    except ValidationError as err:
        raise ConfigValidationError(f"Config validation failed for {source}:\n{err}") from err


def load_config(config_path: Path) -> PolyshipConfig:
    """
    Load, validate, and freeze a config file into a PolyshipConfig object.

    This is the single entry point for config loading in the entire system.
    After this function returns, the config is guaranteed to be:
      - structurally valid (all required fields present)
      - type-safe (all values match their declared types)
      - immutable (frozen pydantic model, no mutation possible)

    Raises:
        ConfigLoadError: File I/O or YAML parse failures.
        ConfigValidationError: Schema violations.
    """
    raw_data = _read_yaml_file(config_path)
    return parse_config(raw_data, source=str(config_path))


def render_config(config: PolyshipConfig) -> str:
    """
    Serialize a config back to YAML, the way `polyship init` writes it.

    Unset optional sections are left out so the generated file stays short.
    """
    data = config.model_dump(by_alias=True, exclude_none=True, exclude_defaults=False)
    if not data.get("packages"):
        data.pop("packages", None)
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
