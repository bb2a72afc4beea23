"""
Module: costing_engines.allocation
Responsibility:
    Spread pooled (non-operational) IT, travel and subcontracting costs over
    the steps that consume them, apply the per-use licence formula, and add
    the IT seat premium of hardware-equipped steps.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Reads frozen records and
    writes into an in-memory CostLedger; persisting the ledger is the
    service's job.

Invariants enforced:
    - Conservation: for a generic pooled cost the shares of all targets sum
      exactly to quantity x unit_cost.  Shares are rounded to the storage
      precision and the last target absorbs the rounding residual.
    - Idempotence: every context pass resets the buckets it owns for the
      step-years in scope before re-applying all cost records.
    - Reinvoiced cost records are never allocated.
    - Target selection and weighting are ordered lists of strategies; the
      first strategy that yields a result wins.

Failure modes:
    - None raised for soft conditions: zero amounts, equalised weights,
      project-wide fallback, skipped licence steps and the unavailable
      recurrent bucket are logged at WARNING and the pass continues.
    - ConfigNotFoundError propagates when a hardware step's country has no
      configuration.

Usage:
    allocator = PooledCostAllocator(steps=steps, rates=rate_resolver)
    allocator.recompute_context(
        context=CostContext.IT,
        costs=snapshot.costs_for(CostContext.IT),
        step_years=snapshot.step_years,
        ledger=ledger,
        years=(2025,),
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Hashable, Protocol

from costing_engines.ledger import CostLedger
from costing_engines.rates import RateResolver
from costing_engines.tracer import traced_engine
from costing_kernel.domain.records import (
    CONTEXT_BUCKET,
    CostBucket,
    CostContext,
    NonOperationalCost,
    Step,
    StepYear,
)
from costing_kernel.domain.values import ONE, ZERO, percent, quantize, round2
from costing_kernel.exceptions import InvalidAnnualHoursError
from costing_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class AllocationSettings:
    """Knobs the allocator reads; built by the service from configuration."""

    license_per_use_types: tuple[str, ...] = ("License Per Use",)
    it_recurrent_available: bool = True
    storage_places: int = 9

    def is_license_per_use(self, cost_type: str) -> bool:
        wanted = cost_type.strip().lower()
        return any(wanted == name.strip().lower() for name in self.license_per_use_types)


# ---------------------------------------------------------------------------
# Pooled cost variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GenericPooledCost:
    """A lump amount spread over targets by weight."""

    cost: NonOperationalCost


@dataclass(frozen=True)
class LicensePerUseCost:
    """An IT licence billed per hour of use of each target step."""

    cost: NonOperationalCost


PooledCost = GenericPooledCost | LicensePerUseCost


def classify_cost(cost: NonOperationalCost, settings: AllocationSettings) -> PooledCost:
    """Per-use licences are IT records whose type is a configured licence type."""
    if cost.context == CostContext.IT and settings.is_license_per_use(cost.type):
        return LicensePerUseCost(cost)
    return GenericPooledCost(cost)


# ---------------------------------------------------------------------------
# Target strategies
# ---------------------------------------------------------------------------


class TargetStrategy(Protocol):
    name: str

    def select(
        self, cost: NonOperationalCost, candidates: Sequence[StepYear]
    ) -> tuple[StepYear, ...] | None:
        """Return targets, or None when the strategy does not apply."""


class ExplicitAssociationTargets:
    """Steps explicitly associated with the cost record."""

    name = "explicit"

    def select(
        self, cost: NonOperationalCost, candidates: Sequence[StepYear]
    ) -> tuple[StepYear, ...] | None:
        if not cost.step_ids:
            return None
        wanted = set(cost.step_ids)
        return tuple(sy for sy in candidates if sy.step_id in wanted)


class ProjectWideTargets:
    """Every project step that has yearly data for the year."""

    name = "project_wide"

    def select(
        self, cost: NonOperationalCost, candidates: Sequence[StepYear]
    ) -> tuple[StepYear, ...] | None:
        return tuple(candidates)


DEFAULT_TARGET_STRATEGIES: tuple[TargetStrategy, ...] = (
    ExplicitAssociationTargets(),
    ProjectWideTargets(),
)


# ---------------------------------------------------------------------------
# Weight rules
# ---------------------------------------------------------------------------


class WeightRule(Protocol):
    name: str

    def weight(self, step_year: StepYear, ledger: CostLedger) -> Decimal | None:
        """Return a positive weight, or None to defer to the next rule."""


class CostWeight:
    """salaries_cost + management_costs as currently held by the ledger."""

    name = "cost"

    def weight(self, step_year: StepYear, ledger: CostLedger) -> Decimal | None:
        value = ledger.get(step_year.key, CostBucket.SALARIES) + ledger.get(
            step_year.key, CostBucket.MANAGEMENT
        )
        return value if value > ZERO else None


class ProcessTimeWeight:
    name = "process_time"

    def weight(self, step_year: StepYear, ledger: CostLedger) -> Decimal | None:
        return step_year.process_time if step_year.process_time > ZERO else None


class EqualWeight:
    name = "equal"

    def weight(self, step_year: StepYear, ledger: CostLedger) -> Decimal | None:
        return ONE


DEFAULT_WEIGHT_RULES: tuple[WeightRule, ...] = (
    CostWeight(),
    ProcessTimeWeight(),
    EqualWeight(),
)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AllocationLine:
    """Share of one cost record credited to one step-year bucket."""

    step_id: Hashable
    year: int
    bucket: CostBucket
    weight: Decimal
    share: Decimal


@dataclass(frozen=True)
class PooledAllocationResult:
    """
    Outcome of allocating one cost record for one year.

    Guarantees:
        - For generic costs with lines, sum(line.share) == amount.
        - ``skipped_reason`` is set when nothing was allocated.
    """

    cost_id: Hashable
    year: int
    kind: str
    amount: Decimal
    strategy: str | None
    lines: tuple[AllocationLine, ...] = ()
    skipped_reason: str | None = None

    @property
    def total_allocated(self) -> Decimal:
        return sum((line.share for line in self.lines), ZERO)


@dataclass(frozen=True)
class ContextPassResult:
    """Summary of one context pass over one or more years."""

    context: CostContext
    years: tuple[int, ...]
    reset_count: int
    allocations: tuple[PooledAllocationResult, ...] = ()
    premium_lines: tuple[AllocationLine, ...] = ()

    @property
    def allocated_count(self) -> int:
        return sum(1 for a in self.allocations if a.lines)


# ---------------------------------------------------------------------------
# Allocator
# ---------------------------------------------------------------------------


class PooledCostAllocator:
    """
    Allocate pooled costs to step-years.

    Contract:
        Reads steps, step years, rates and the ledger; writes only the ledger.
    Guarantees:
        - Generic shares are computed amount x weight / total (multiply first),
          rounded ROUND_HALF_UP to ``storage_places``, residual to last target.
        - Per-use licence shares are rounded to two places.
    Non-goals:
        - Does not compute step people costs; the ledger must already hold
          fresh salaries and management buckets for cost weighting.
    """

    def __init__(
        self,
        steps: Mapping[Hashable, Step],
        rates: RateResolver,
        settings: AllocationSettings | None = None,
        target_strategies: Sequence[TargetStrategy] = DEFAULT_TARGET_STRATEGIES,
        weight_rules: Sequence[WeightRule] = DEFAULT_WEIGHT_RULES,
    ):
        self._steps = steps
        self._rates = rates
        self._settings = settings or AllocationSettings()
        self._target_strategies = tuple(target_strategies)
        self._weight_rules = tuple(weight_rules)

    # -- context passes ----------------------------------------------------

    @traced_engine("pooled_cost_allocator", "1.0", fingerprint_fields=("context", "years"))
    def recompute_context(
        self,
        *,
        context: CostContext,
        costs: Iterable[NonOperationalCost],
        step_years: Iterable[StepYear],
        ledger: CostLedger,
        years: Sequence[int],
    ) -> ContextPassResult:
        """
        Reset the context's buckets for ``years`` and re-apply everything.

        The IT pass also owns it_recurrent_costs and applies the hardware
        premium before the cost records.
        """
        years = tuple(sorted(set(years)))
        step_years = tuple(sy for sy in step_years if sy.year in years)
        costs = tuple(costs)

        if context == CostContext.IT:
            owned = (CostBucket.IT, CostBucket.IT_RECURRENT)
        else:
            owned = (CONTEXT_BUCKET[context],)
        reset_count = ledger.reset(owned, [sy.key for sy in step_years])

        premium_lines: list[AllocationLine] = []
        allocations: list[PooledAllocationResult] = []
        for year in years:
            candidates = tuple(sy for sy in step_years if sy.year == year)
            if context == CostContext.IT:
                premium_lines.extend(self.apply_it_premium(candidates, ledger))
            for cost in costs:
                if not cost.applies_to(year):
                    continue
                result = self.allocate(cost=cost, year=year, candidates=candidates, ledger=ledger)
                self.apply(result, ledger)
                allocations.append(result)

        logger.info(
            "pooled_context_recomputed",
            extra={
                "context": context.value,
                "years": list(years),
                "reset_count": reset_count,
                "cost_count": len(costs),
                "allocation_count": len(allocations),
                "premium_count": len(premium_lines),
            },
        )
        return ContextPassResult(
            context=context,
            years=years,
            reset_count=reset_count,
            allocations=tuple(allocations),
            premium_lines=tuple(premium_lines),
        )

    @staticmethod
    def apply(result: PooledAllocationResult, ledger: CostLedger) -> None:
        for line in result.lines:
            ledger.add((line.step_id, line.year), line.bucket, line.share)

    # -- single cost record --------------------------------------------------

    def allocate(
        self,
        *,
        cost: NonOperationalCost,
        year: int,
        candidates: Sequence[StepYear],
        ledger: CostLedger,
    ) -> PooledAllocationResult:
        """Allocate one cost record for one year without touching the ledger."""
        amount = cost.amount
        pooled = classify_cost(cost, self._settings)
        kind = "license_per_use" if isinstance(pooled, LicensePerUseCost) else "generic"

        if cost.reinvoiced:
            logger.debug(
                "allocation_reinvoiced_skipped",
                extra={"cost_id": str(cost.cost_id), "year": year},
            )
            return PooledAllocationResult(
                cost.cost_id, year, kind, amount, None, skipped_reason="reinvoiced"
            )

        if amount == ZERO:
            logger.warning(
                "allocation_zero_amount_skipped",
                extra={"cost_id": str(cost.cost_id), "year": year},
            )
            return PooledAllocationResult(
                cost.cost_id, year, kind, amount, None, skipped_reason="zero_amount"
            )

        strategy, targets = self._select_targets(cost, year, candidates)
        if not targets:
            logger.warning(
                "allocation_no_targets",
                extra={
                    "cost_id": str(cost.cost_id),
                    "year": year,
                    "strategy": strategy,
                    "amount": str(amount),
                },
            )
            return PooledAllocationResult(
                cost.cost_id, year, kind, amount, strategy, skipped_reason="no_targets"
            )

        match pooled:
            case LicensePerUseCost():
                lines = self._license_per_use_lines(cost, amount, targets)
            case GenericPooledCost():
                lines = self._weighted_lines(cost, amount, targets, ledger)
            case _:
                raise ValueError(f"Unknown pooled cost variant: {pooled!r}")

        logger.info(
            "pooled_cost_allocated",
            extra={
                "cost_id": str(cost.cost_id),
                "context": cost.context.value,
                "kind": kind,
                "year": year,
                "strategy": strategy,
                "amount": str(amount),
                "target_count": len(targets),
                "line_count": len(lines),
            },
        )
        return PooledAllocationResult(
            cost_id=cost.cost_id,
            year=year,
            kind=kind,
            amount=amount,
            strategy=strategy,
            lines=tuple(lines),
            skipped_reason=None if lines else "no_eligible_targets",
        )

    def _select_targets(
        self,
        cost: NonOperationalCost,
        year: int,
        candidates: Sequence[StepYear],
    ) -> tuple[str | None, tuple[StepYear, ...]]:
        for strategy in self._target_strategies:
            targets = strategy.select(cost, candidates)
            if targets is None:
                continue
            if strategy.name == ProjectWideTargets.name:
                logger.warning(
                    "allocation_project_wide_fallback",
                    extra={
                        "cost_id": str(cost.cost_id),
                        "year": year,
                        "target_count": len(targets),
                    },
                )
            return strategy.name, targets
        return None, ()

    def _weights(
        self, cost: NonOperationalCost, targets: Sequence[StepYear], ledger: CostLedger
    ) -> list[Decimal]:
        weights: list[Decimal] = []
        for step_year in targets:
            for rule in self._weight_rules:
                value = rule.weight(step_year, ledger)
                if value is not None:
                    weights.append(value)
                    break
            else:
                weights.append(ZERO)

        total = sum(weights, ZERO)
        if not total.is_finite() or total <= ZERO:
            logger.warning(
                "allocation_weights_equalised",
                extra={"cost_id": str(cost.cost_id), "target_count": len(targets)},
            )
            return [ONE] * len(targets)
        return weights

    def _weighted_lines(
        self,
        cost: NonOperationalCost,
        amount: Decimal,
        targets: Sequence[StepYear],
        ledger: CostLedger,
    ) -> list[AllocationLine]:
        bucket = CONTEXT_BUCKET[cost.context]
        weights = self._weights(cost, targets, ledger)
        total = sum(weights, ZERO)

        lines: list[AllocationLine] = []
        allocated_so_far = ZERO
        last = len(targets) - 1
        for i, (step_year, weight) in enumerate(zip(targets, weights)):
            if i == last:
                # Residual keeps the total exact
                share = amount - allocated_so_far
            else:
                share = quantize(amount * weight / total, self._settings.storage_places)
                allocated_so_far += share
            lines.append(AllocationLine(step_year.step_id, step_year.year, bucket, weight, share))
        return lines

    def _license_per_use_lines(
        self,
        cost: NonOperationalCost,
        amount: Decimal,
        targets: Sequence[StepYear],
    ) -> list[AllocationLine]:
        bucket = CostBucket.IT_RECURRENT
        if not self._settings.it_recurrent_available:
            logger.warning(
                "it_recurrent_bucket_unavailable",
                extra={"cost_id": str(cost.cost_id), "fallback_bucket": CostBucket.IT.value},
            )
            bucket = CostBucket.IT

        lines: list[AllocationLine] = []
        for step_year in targets:
            step = self._steps[step_year.step_id]
            try:
                rates = self._rates.resolve(country_id=step.country_id)
            except InvalidAnnualHoursError as exc:
                logger.warning(
                    "license_per_use_step_skipped",
                    extra={
                        "cost_id": str(cost.cost_id),
                        "step_id": str(step_year.step_id),
                        "year": step_year.year,
                        "reason": exc.code,
                    },
                )
                continue

            denominator = ONE - percent(rates.npt_rate)
            if denominator <= ZERO:
                logger.warning(
                    "license_per_use_step_skipped",
                    extra={
                        "cost_id": str(cost.cost_id),
                        "step_id": str(step_year.step_id),
                        "year": step_year.year,
                        "reason": "NPT_RATE_NOT_BELOW_100",
                    },
                )
                continue

            share = round2((amount / rates.annual_hours) * (step_year.process_time / denominator))
            lines.append(AllocationLine(step_year.step_id, step_year.year, bucket, ONE, share))
        return lines

    # -- IT premium -------------------------------------------------------------

    def apply_it_premium(
        self, candidates: Sequence[StepYear], ledger: CostLedger
    ) -> list[AllocationLine]:
        """
        Add process_time x it_cost / (1 - npt/100) for hardware step-years.

        Only countries with it_cost > 0 and npt_rate < 100 contribute.
        """
        bucket = CostBucket.IT_RECURRENT if self._settings.it_recurrent_available else CostBucket.IT
        lines: list[AllocationLine] = []
        for step_year in candidates:
            if not step_year.hardware:
                continue
            step = self._steps[step_year.step_id]
            config = self._rates.config(country_id=step.country_id)
            if config.it_cost <= ZERO or config.npt_rate >= Decimal("100"):
                continue
            premium = quantize(
                step_year.process_time * config.it_cost / (ONE - percent(config.npt_rate)),
                self._settings.storage_places,
            )
            ledger.add(step_year.key, bucket, premium)
            lines.append(AllocationLine(step_year.step_id, step_year.year, bucket, ONE, premium))

        if lines:
            logger.info(
                "it_premium_applied",
                extra={"step_year_count": len(lines), "bucket": bucket.value},
            )
        return lines
