"""
Records -- Immutable inputs of the costing engines.

Responsibility:
    Frozen dataclasses describing everything a recompute reads: project margin
    configuration, country configuration, profile salaries, steps and their
    yearly data, pooled cost records and deliverable quantities.  Selectors
    build them from the database; tests build them directly.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Engines import these; they never see
    ORM models.

Invariants enforced:
    - All numeric fields are Decimal.
    - Step ids, deliverable ids and work package ids are opaque hashables
      (UUIDs in production, strings in tests).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Hashable

from costing_kernel.domain.values import ZERO


class MarginType(str, Enum):
    """Which margin the project price is solved for."""

    DM = "DM"  # Direct Margin
    GMBS = "GMBS"  # Gross Margin Before Subcontracting


class TimeUnit(str, Enum):
    """Unit of a step's process time."""

    HOURS = "hours"
    DAYS = "days"

    @classmethod
    def parse(cls, value: str | None) -> TimeUnit:
        """Anything other than 'days' (case-insensitive) is hours."""
        if value is not None and str(value).strip().lower() == cls.DAYS.value:
            return cls.DAYS
        return cls.HOURS


class CostContext(str, Enum):
    """Pooled cost families; each one feeds its own bucket."""

    IT = "it"
    SUBCONTRACT = "subcontract"
    TRAVEL = "travel"


class CostBucket(str, Enum):
    """StepYearlyData output columns."""

    FTE = "fte"
    SALARIES = "salaries_cost"
    MANAGEMENT = "management_costs"
    NPT = "npt_costs"
    PREMISES = "premises_costs"
    IT = "it_costs"
    IT_RECURRENT = "it_recurrent_costs"
    TRAVEL = "travel_costs"
    SUBCO = "subco_costs"
    SUPPORT = "support_costs"
    QUALITY = "quality_costs"
    OPS_MANAGEMENT = "ops_management_costs"
    LEAN_MANAGEMENT = "lean_management_costs"


# Buckets the step cost calculator owns
STEP_COST_BUCKETS: tuple[CostBucket, ...] = (
    CostBucket.FTE,
    CostBucket.SALARIES,
    CostBucket.MANAGEMENT,
    CostBucket.NPT,
    CostBucket.PREMISES,
)

# Scale with deliverable quantity
RECURRENT_BUCKETS: tuple[CostBucket, ...] = (
    CostBucket.SALARIES,
    CostBucket.MANAGEMENT,
    CostBucket.NPT,
    CostBucket.PREMISES,
    CostBucket.IT_RECURRENT,
)

# Added once per deliverable-year
NON_RECURRENT_BUCKETS: tuple[CostBucket, ...] = (
    CostBucket.IT,
    CostBucket.TRAVEL,
    CostBucket.SUBCO,
)

# Non-operational, scale with deliverable quantity
NON_OPERATIONAL_BUCKETS: tuple[CostBucket, ...] = (
    CostBucket.SUPPORT,
    CostBucket.QUALITY,
    CostBucket.OPS_MANAGEMENT,
    CostBucket.LEAN_MANAGEMENT,
)

CONTEXT_BUCKET: dict[CostContext, CostBucket] = {
    CostContext.IT: CostBucket.IT,
    CostContext.SUBCONTRACT: CostBucket.SUBCO,
    CostContext.TRAVEL: CostBucket.TRAVEL,
}


@dataclass(frozen=True)
class ProjectMarginConfig:
    """Margin configuration and calendar anchor of one project."""

    project_id: Hashable
    margin_type: str | None
    margin_goal: Decimal | None
    start_date: date | None = None
    end_date: date | None = None


@dataclass(frozen=True)
class CountryConfig:
    """Working-time and overhead parameters of one country in one project."""

    project_id: Hashable
    country_id: str
    working_days: Decimal = ZERO
    activity_rate: Decimal = ZERO
    hours_per_day: Decimal = ZERO
    social_contribution_rate: Decimal = ZERO
    npt_rate: Decimal = ZERO
    it_cost: Decimal = ZERO
    premises_rate: Decimal = ZERO
    total_days: Decimal = ZERO
    management_yearly_salary: Decimal | None = None


@dataclass(frozen=True)
class ProfileSalary:
    """Yearly salary of a profile in a country for one calendar year."""

    project_id: Hashable
    profile_id: str
    country_id: str
    year: int
    salary: Decimal


@dataclass(frozen=True)
class Step:
    """Identity fields of a step."""

    step_id: Hashable
    deliverable_id: Hashable
    profile_id: str
    country_id: str
    unit: TimeUnit = TimeUnit.HOURS
    name: str = ""


@dataclass(frozen=True)
class StepYear:
    """
    Inputs of one step in one calendar year plus its currently stored buckets.

    ``buckets`` holds the values as last persisted; the allocator uses
    salaries_cost + management_costs from it as the cost weight when the
    step cost pass is not part of the same recompute.
    """

    step_id: Hashable
    year: int
    process_time: Decimal = ZERO
    mng: Decimal = ZERO
    office: bool = False
    hardware: bool = False
    buckets: dict[CostBucket, Decimal] = field(default_factory=dict)

    @property
    def key(self) -> tuple[Hashable, int]:
        return (self.step_id, self.year)

    def bucket(self, bucket: CostBucket) -> Decimal:
        return self.buckets.get(bucket, ZERO)


@dataclass(frozen=True)
class NonOperationalCost:
    """
    A pooled cost record.

    ``step_ids`` empty means no explicit association: the allocator falls back
    to project-wide allocation.
    """

    cost_id: Hashable
    project_id: Hashable
    context: CostContext
    type: str
    quantity: Decimal
    unit_cost: Decimal
    year: int | None = None
    reinvoiced: bool = False
    step_ids: tuple[Hashable, ...] = ()
    concept: str | None = None

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.unit_cost

    def applies_to(self, year: int) -> bool:
        return self.year is None or self.year == year


@dataclass(frozen=True)
class DeliverableYearQuantity:
    """Quantity of a deliverable in one ordinal project year."""

    deliverable_id: Hashable
    year_number: int
    quantity: Decimal
    operational_to: Decimal | None = None
    dm_real: Decimal | None = None
    gmbs_real: Decimal | None = None


@dataclass(frozen=True)
class Deliverable:
    """Identity fields of a deliverable."""

    deliverable_id: Hashable
    work_package_id: Hashable
    name: str = ""


@dataclass(frozen=True)
class WorkPackage:
    """Identity fields of a work package."""

    work_package_id: Hashable
    project_id: Hashable
    name: str = ""


@dataclass(frozen=True)
class QuoteSnapshot:
    """
    Everything one recompute reads for one project, loaded in one go.

    Contract:
        Built by the quote selector inside the recompute transaction so every
        cost record is allocated against the same rates and weights.
    Guarantees:
        - Sequences are ordered deterministically (by name then id for the
          project tree, by year for step years).
    Non-goals:
        - Holds no ORM objects and performs no lazy loading.
    """

    project: ProjectMarginConfig
    countries: tuple[CountryConfig, ...] = ()
    salaries: tuple[ProfileSalary, ...] = ()
    work_packages: tuple[WorkPackage, ...] = ()
    deliverables: tuple[Deliverable, ...] = ()
    quantities: tuple[DeliverableYearQuantity, ...] = ()
    steps: tuple[Step, ...] = ()
    step_years: tuple[StepYear, ...] = ()
    costs: tuple[NonOperationalCost, ...] = ()

    @property
    def project_id(self) -> Hashable:
        return self.project.project_id

    def steps_by_id(self) -> dict[Hashable, Step]:
        return {step.step_id: step for step in self.steps}

    def years(self) -> tuple[int, ...]:
        """Calendar years that have at least one step year."""
        return tuple(sorted({sy.year for sy in self.step_years}))

    def costs_for(self, context: CostContext) -> tuple[NonOperationalCost, ...]:
        return tuple(c for c in self.costs if c.context == context)

    def start_year(self) -> int:
        """Calendar year of ordinal year 1 (earliest step year when undated)."""
        if self.project.start_date is not None:
            return self.project.start_date.year
        years = self.years()
        return years[0] if years else 1

    def calendar_year(self, year_number: int) -> int:
        """Map an ordinal (1-based) project year to its calendar year."""
        return self.start_year() + year_number - 1
