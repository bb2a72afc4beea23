"""
Module: costing_engines.step_costs
Responsibility:
    Turn one step's yearly inputs into its people-related cost buckets:
    salaries, management, non-productive time (NPT), premises and FTE.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Depends on costing_engines.rates for rate and salary lookups.

Invariants enforced:
    - process_hours = process_time x hours_per_day when the unit is days,
      else process_time.
    - hourly_rate = salary x (1 + scr/100) / annual_hours.
    - salaries_cost = process_hours x hourly_rate.
    - management_cost = process_hours x management_hourly_rate x mng/100,
      where the management hourly rate comes from the country's management
      salary and falls back to the profile hourly rate.
    - total_process_hours = process_hours / (1 - mng/100 - npt/100), or 0 when
      the denominator is not positive.
    - Full precision throughout; nothing is rounded here.

Failure modes:
    - ConfigNotFoundError, InvalidAnnualHoursError, SalaryNotFoundError
      propagate from the resolvers and abort the recompute.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Hashable

from costing_engines.rates import CountryRates, RateResolver, SalaryResolver
from costing_engines.tracer import traced_engine
from costing_kernel.domain.records import CostBucket, Step, StepYear, TimeUnit
from costing_kernel.domain.values import ONE, ZERO, percent
from costing_kernel.logging_config import get_logger

logger = get_logger("engines.step_costs")


def process_hours(process_time: Decimal, unit: TimeUnit, hours_per_day: Decimal) -> Decimal:
    if unit == TimeUnit.DAYS:
        return process_time * hours_per_day
    return process_time


def total_process_hours(hours: Decimal, mng: Decimal, npt_rate: Decimal) -> Decimal:
    """Hours including management and non-productive time on top of process time."""
    denominator = ONE - percent(mng) - percent(npt_rate)
    if denominator <= ZERO:
        return ZERO
    return hours / denominator


def premises_cost(rates: CountryRates, total_hours: Decimal) -> Decimal:
    """premises_rate x (total_days / effective working days) x total hours."""
    effective_days = rates.working_days * percent(rates.activity_rate)
    if rates.premises_rate <= ZERO or rates.total_days <= ZERO or effective_days <= ZERO:
        return ZERO
    if total_hours <= ZERO:
        return ZERO
    return rates.premises_rate * (rates.total_days / effective_days) * total_hours


@dataclass(frozen=True)
class StepCostResult:
    """
    Computed people costs of one step in one year.

    Guarantees:
        - Every monetary field is at full precision.
        - ``buckets()`` returns exactly the buckets the calculator owns.
    """

    step_id: Hashable
    year: int
    annual_hours: Decimal
    process_hours: Decimal
    total_process_hours: Decimal
    hourly_rate: Decimal
    management_hourly_rate: Decimal
    salaries_cost: Decimal
    management_cost: Decimal
    npt_cost: Decimal
    premises_cost: Decimal
    fte: Decimal

    def buckets(self) -> dict[CostBucket, Decimal]:
        return {
            CostBucket.FTE: self.fte,
            CostBucket.SALARIES: self.salaries_cost,
            CostBucket.MANAGEMENT: self.management_cost,
            CostBucket.NPT: self.npt_cost,
            CostBucket.PREMISES: self.premises_cost,
        }

    @property
    def cost_weight(self) -> Decimal:
        """Weight used by the pooled cost allocator."""
        return self.salaries_cost + self.management_cost


class StepCostCalculator:
    """
    Compute salary, management, NPT and premises costs per step-year.

    Contract:
        Pure with respect to its resolvers; the same step-year always
        yields the same result.
    Non-goals:
        - Does not allocate pooled costs; see costing_engines.allocation.
    """

    def __init__(self, rates: RateResolver, salaries: SalaryResolver):
        self._rates = rates
        self._salaries = salaries

    @traced_engine("step_costs", "1.0", fingerprint_fields=("step", "step_year"))
    def calculate(self, *, step: Step, step_year: StepYear) -> StepCostResult:
        """
        Compute the cost buckets of ``step`` in ``step_year.year``.

        Raises:
            ConfigNotFoundError: Country has no configuration.
            InvalidAnnualHoursError: Country annual hours <= 0.
            SalaryNotFoundError: No salary for the exact year.
        """
        rates = self._rates.resolve(country_id=step.country_id)
        salary = self._salaries.resolve(
            profile_id=step.profile_id,
            country_id=step.country_id,
            year=step_year.year,
        )

        hourly_rate = salary * rates.loaded_factor / rates.annual_hours
        if rates.management_yearly_salary is not None and rates.management_yearly_salary > ZERO:
            management_hourly_rate = (
                rates.management_yearly_salary * rates.loaded_factor / rates.annual_hours
            )
        else:
            management_hourly_rate = hourly_rate

        hours = process_hours(step_year.process_time, step.unit, rates.hours_per_day)
        total_hours = total_process_hours(hours, step_year.mng, rates.npt_rate)

        salaries_cost = hours * hourly_rate
        management_cost = hours * management_hourly_rate * percent(step_year.mng)
        npt_cost = total_hours * hourly_rate * percent(rates.npt_rate)
        premises = premises_cost(rates, total_hours) if step_year.office else ZERO

        result = StepCostResult(
            step_id=step.step_id,
            year=step_year.year,
            annual_hours=rates.annual_hours,
            process_hours=hours,
            total_process_hours=total_hours,
            hourly_rate=hourly_rate,
            management_hourly_rate=management_hourly_rate,
            salaries_cost=salaries_cost,
            management_cost=management_cost,
            npt_cost=npt_cost,
            premises_cost=premises,
            fte=hours / rates.annual_hours,
        )

        logger.debug(
            "step_cost_calculated",
            extra={
                "step_id": str(step.step_id),
                "year": step_year.year,
                "process_hours": str(hours),
                "hourly_rate": str(hourly_rate),
                "salaries_cost": str(salaries_cost),
                "management_cost": str(management_cost),
            },
        )
        return result
