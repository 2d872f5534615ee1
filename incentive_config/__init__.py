"""
incentive_config -- single public entrypoint for payout engine configuration.

Responsibility:
    ``get_engine_config()`` is the only way services obtain an
    ``EngineConfig``.  It reads ``defaults.yaml`` shipped with this package
    unless a path is given.

Architecture position:
    Configuration -- sits above ``incentive_kernel`` and below
    ``incentive_engines`` / ``incentive_services``.  The kernel never
    imports from this package.

Audit relevance:
    Every call emits an ``INCENTIVE_CONFIG_TRACE`` record with the source
    path and the checksum of the parsed YAML, tying a run to the exact
    parameters it used.
"""

from __future__ import annotations

import logging
from pathlib import Path

from incentive_config.loader import compute_checksum, load_engine_config, load_yaml_file
from incentive_config.schema import EngineConfig

_logger = logging.getLogger("incentive_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_engine_config(path: Path | None = None) -> EngineConfig:
    """
    Load the engine configuration.

    Args:
        path: YAML file to read.  Defaults to the packaged defaults.yaml.

    Raises:
        FileNotFoundError: the file does not exist.
        ConfigurationError: a value is invalid.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_engine_config(source)
    _logger.info(
        "INCENTIVE_CONFIG_TRACE",
        extra={
            "trace_type": "INCENTIVE_CONFIG_TRACE",
            "source": str(source),
            "checksum": compute_checksum(load_yaml_file(source)),
            "batch_size": config.batch_size,
            "max_workers": config.max_workers,
        },
    )
    return config


__all__ = ["EngineConfig", "get_engine_config", "DEFAULT_CONFIG_PATH"]
