"""
Costing configuration schema.

Frozen dataclasses produced by ``costing_config.loader`` from a YAML set
file.  ``CostingConfig`` is the only runtime artifact; callers never see
the raw YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection parameters passed to init_engine_from_url."""

    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class EngineSettings:
    """Numeric and allocation behaviour of the costing engines."""

    storage_places: int = 9
    output_places: int = 2
    license_per_use_types: tuple[str, ...] = ("License Per Use",)
    it_recurrent_available: bool = True
    contexts: tuple[str, ...] = ("it", "travel", "subcontract")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class ReportingSettings:
    hours_per_fte: Decimal = Decimal("1600")


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CostingConfig:
    """A loaded, validated configuration set."""

    name: str
    version: str
    checksum: str
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    engine: EngineSettings = field(default_factory=EngineSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    reporting: ReportingSettings = field(default_factory=ReportingSettings)
