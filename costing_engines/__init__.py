"""
Module: costing_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used by
    costing_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import costing_kernel.domain, costing_kernel.exceptions and
    costing_kernel.logging_config.  MUST NOT import costing_services,
    costing_config or SQLAlchemy.

Invariants enforced:
    - Decimal-only arithmetic.
    - Determinism: identical inputs always produce identical outputs.
    - Every engine entry point is wrapped with ``@traced_engine``.
"""

from costing_kernel.logging_config import get_logger

logger = get_logger("engines")

from costing_engines.aggregation import (
    Aggregator,
    BreakdownTotals,
    DeliverableBreakdown,
    DeliverableYearBreakdown,
    FteGroup,
    FteSummary,
    ProjectBreakdown,
    WorkPackageBreakdown,
)
from costing_engines.allocation import (
    DEFAULT_TARGET_STRATEGIES,
    DEFAULT_WEIGHT_RULES,
    AllocationLine,
    AllocationSettings,
    ContextPassResult,
    CostWeight,
    EqualWeight,
    ExplicitAssociationTargets,
    GenericPooledCost,
    LicensePerUseCost,
    PooledAllocationResult,
    PooledCostAllocator,
    ProcessTimeWeight,
    ProjectWideTargets,
    classify_cost,
)
from costing_engines.ledger import CostLedger
from costing_engines.margin import (
    BucketSums,
    DeliverableYearMargin,
    MarginSolution,
    MarginSolver,
    RealizedMargins,
    parse_margin_type,
)
from costing_engines.rates import CountryRates, RateResolver, SalaryResolver, annual_hours
from costing_engines.step_costs import StepCostCalculator, StepCostResult
from costing_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # aggregation
    "Aggregator",
    "BreakdownTotals",
    "DeliverableBreakdown",
    "DeliverableYearBreakdown",
    "FteGroup",
    "FteSummary",
    "ProjectBreakdown",
    "WorkPackageBreakdown",
    # allocation
    "DEFAULT_TARGET_STRATEGIES",
    "DEFAULT_WEIGHT_RULES",
    "AllocationLine",
    "AllocationSettings",
    "ContextPassResult",
    "CostWeight",
    "EqualWeight",
    "ExplicitAssociationTargets",
    "GenericPooledCost",
    "LicensePerUseCost",
    "PooledAllocationResult",
    "PooledCostAllocator",
    "ProcessTimeWeight",
    "ProjectWideTargets",
    "classify_cost",
    # ledger
    "CostLedger",
    # margin
    "BucketSums",
    "DeliverableYearMargin",
    "MarginSolution",
    "MarginSolver",
    "RealizedMargins",
    "parse_margin_type",
    # rates
    "CountryRates",
    "RateResolver",
    "SalaryResolver",
    "annual_hours",
    # step costs
    "StepCostCalculator",
    "StepCostResult",
    # tracer
    "compute_input_fingerprint",
    "traced_engine",
]

logger.debug("engines_package_loaded", extra={"export_count": len(__all__)})
