"""
costing_config -- single public entrypoint for costing configuration.

Responsibility:
    ``get_active_config()`` is the only way services and scripts obtain
    configuration.  It loads a named YAML set from ``costing_config/sets``,
    validates it and returns a frozen ``CostingConfig``.

Architecture position:
    Configuration -- sits above ``costing_kernel`` and below
    ``costing_services``.  Engines and the kernel never import it; services
    translate the settings into engine parameters.

Invariants enforced:
    - Single entrypoint: runtime configuration flows through
      ``get_active_config()``.
    - Deterministic checksum: the same YAML always gives the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- no set file with the requested name.
    - ``ValueError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful call emits a ``COSTING_CONFIG_TRACE`` log record with
    the set name, version and checksum, tying a recompute to the exact
    configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from costing_config.loader import load_config_file
from costing_config.schema import (
    CostingConfig,
    DatabaseSettings,
    EngineSettings,
    LoggingSettings,
    ReportingSettings,
)

_logger = logging.getLogger("costing_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    set_name: str = "default",
    config_dir: Path | None = None,
) -> CostingConfig:
    """
    Load and validate the configuration set ``set_name``.

    Args:
        set_name: File stem under the sets directory.
        config_dir: Override of the sets directory (tests).

    Raises:
        FileNotFoundError: If the set file does not exist.
        ValueError: If validation fails.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{set_name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Configuration set not found: {path}")

    config = load_config_file(path)

    _logger.info(
        "COSTING_CONFIG_TRACE",
        extra={
            "trace_type": "COSTING_CONFIG_TRACE",
            "config_set_name": config.name,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "license_per_use_types": list(config.engine.license_per_use_types),
            "it_recurrent_available": config.engine.it_recurrent_available,
        },
    )
    return config


__all__ = [
    "CostingConfig",
    "DatabaseSettings",
    "EngineSettings",
    "LoggingSettings",
    "ReportingSettings",
    "get_active_config",
]
