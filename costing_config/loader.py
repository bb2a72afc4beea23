"""
Configuration Loader (``costing_config.loader``).

Responsibility
--------------
Reads one YAML set file and parses it into ``costing_config.schema``
dataclasses.  Build and test tooling only: runtime callers go through
``costing_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError``; typos never fall back to
  defaults silently.
* Values are type-checked and range-checked at load time.
* ``compute_checksum`` is a deterministic SHA-256 over canonical JSON.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid content  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from costing_config.schema import (
    CostingConfig,
    DatabaseSettings,
    EngineSettings,
    LoggingSettings,
    ReportingSettings,
)

_VALID_CONTEXTS = frozenset({"it", "travel", "subcontract"})
_VALID_LEVELS = frozenset(logging.getLevelNamesMapping())


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialisation."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str, allowed: set[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Section '{name}' must be a mapping")
    unknown = set(section) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {sorted(unknown)}")
    return section


def _bool(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{section}.{key} must be a boolean, got {value!r}")
    return value


def _non_negative_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{section}.{key} must be a non-negative integer, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    section = _section(data, "database", {"url", "echo", "pool_size", "max_overflow"})
    defaults = DatabaseSettings()
    url = section.get("url", defaults.url)
    if not isinstance(url, str) or not url:
        raise ValueError(f"database.url must be a non-empty string, got {url!r}")
    return DatabaseSettings(
        url=url,
        echo=_bool("database", "echo", section.get("echo", defaults.echo)),
        pool_size=_non_negative_int("database", "pool_size", section.get("pool_size", defaults.pool_size)),
        max_overflow=_non_negative_int(
            "database", "max_overflow", section.get("max_overflow", defaults.max_overflow)
        ),
    )


def parse_engine(data: dict[str, Any]) -> EngineSettings:
    section = _section(
        data,
        "engine",
        {
            "storage_places",
            "output_places",
            "license_per_use_types",
            "it_recurrent_available",
            "contexts",
        },
    )
    defaults = EngineSettings()

    types = section.get("license_per_use_types", list(defaults.license_per_use_types))
    if not isinstance(types, list) or not all(isinstance(t, str) and t for t in types):
        raise ValueError("engine.license_per_use_types must be a list of non-empty strings")

    contexts = section.get("contexts", list(defaults.contexts))
    if not isinstance(contexts, list) or not contexts:
        raise ValueError("engine.contexts must be a non-empty list")
    unknown = set(contexts) - _VALID_CONTEXTS
    if unknown:
        raise ValueError(f"engine.contexts has unknown values: {sorted(unknown)}")

    storage_places = _non_negative_int(
        "engine", "storage_places", section.get("storage_places", defaults.storage_places)
    )
    output_places = _non_negative_int(
        "engine", "output_places", section.get("output_places", defaults.output_places)
    )
    if output_places > storage_places:
        raise ValueError("engine.output_places cannot exceed engine.storage_places")

    return EngineSettings(
        storage_places=storage_places,
        output_places=output_places,
        license_per_use_types=tuple(types),
        it_recurrent_available=_bool(
            "engine",
            "it_recurrent_available",
            section.get("it_recurrent_available", defaults.it_recurrent_available),
        ),
        contexts=tuple(contexts),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    section = _section(data, "logging", {"level"})
    level = str(section.get("level", LoggingSettings().level)).upper()
    if level not in _VALID_LEVELS:
        raise ValueError(f"logging.level must be a logging level name, got {level!r}")
    return LoggingSettings(level=level)


def parse_reporting(data: dict[str, Any]) -> ReportingSettings:
    section = _section(data, "reporting", {"hours_per_fte"})
    raw = section.get("hours_per_fte", ReportingSettings().hours_per_fte)
    try:
        hours = Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValueError(f"reporting.hours_per_fte must be numeric, got {raw!r}") from exc
    if not hours.is_finite() or hours <= 0:
        raise ValueError(f"reporting.hours_per_fte must be > 0, got {raw!r}")
    return ReportingSettings(hours_per_fte=hours)


def parse_config(data: dict[str, Any], default_name: str) -> CostingConfig:
    """Parse a whole set file."""
    unknown = set(data) - {"name", "version", "database", "engine", "logging", "reporting"}
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    return CostingConfig(
        name=str(data.get("name", default_name)),
        version=str(data.get("version", "1")),
        checksum=compute_checksum(data),
        database=parse_database(data),
        engine=parse_engine(data),
        logging=parse_logging(data),
        reporting=parse_reporting(data),
    )


def load_config_file(path: Path) -> CostingConfig:
    return parse_config(load_yaml_file(path), default_name=path.stem)
