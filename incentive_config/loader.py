"""
Configuration Loader (``incentive_config.loader``).

Responsibility
--------------
Reads a YAML configuration file and parses it into an ``EngineConfig``.
Runtime callers use ``incentive_config.get_engine_config()`` instead of
this module.

Failure modes
-------------
* Missing YAML file -> ``FileNotFoundError`` propagates.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
* A top-level value that is not a mapping, or an invalid field
  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from incentive_config.schema import EngineConfig
from incentive_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        Returns a ``dict`` (empty if the YAML is empty).
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def load_engine_config(path: Path) -> EngineConfig:
    """Parse the ``engine`` section of ``path`` (or the whole file)."""
    data = load_yaml_file(path)
    section = data.get("engine", data)
    if not isinstance(section, dict):
        raise ConfigurationError("engine", "section must be a mapping")
    return EngineConfig.from_dict(section)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
