"""
Module: costing_engines.aggregation
Responsibility:
    Roll per-step-year buckets up to deliverable-year, deliverable, work
    package and project totals, with hourly cost, hourly price and realised
    margins at each level, plus the project FTE summary.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The result is returned to
    the caller, never persisted.

Invariants enforced:
    - Recurrent buckets scale with the deliverable quantity; non-recurrent
      buckets are added once per deliverable-year.
    - total_work_time = sum of process hours x quantity for the calendar year.
    - Every division is guarded: hourly figures are 0 when total_work_time is
      0, margins are 0 when TO is 0.
    - Higher levels are built from summed totals, never from averaged ratios.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Hashable

from costing_engines.ledger import CostLedger
from costing_engines.margin import BucketSums, MarginSolution, MarginSolver
from costing_engines.step_costs import process_hours
from costing_engines.tracer import traced_engine
from costing_kernel.domain.records import (
    NON_OPERATIONAL_BUCKETS,
    NON_RECURRENT_BUCKETS,
    RECURRENT_BUCKETS,
    CostBucket,
    QuoteSnapshot,
)
from costing_kernel.domain.values import ZERO, round2
from costing_kernel.logging_config import get_logger

logger = get_logger("engines.aggregation")


@dataclass(frozen=True)
class BreakdownTotals:
    """Rounded totals of one aggregation level."""

    total_costs: Decimal
    nop_costs: Decimal
    operational_to: Decimal
    total_work_time: Decimal
    hourly_cost: Decimal
    hourly_price: Decimal
    dm: Decimal
    gmbs: Decimal
    buckets: dict[str, Decimal] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_costs": str(self.total_costs),
            "nop_costs": str(self.nop_costs),
            "operational_to": str(self.operational_to),
            "total_work_time": str(self.total_work_time),
            "hourly_cost": str(self.hourly_cost),
            "hourly_price": str(self.hourly_price),
            "dm": str(self.dm),
            "gmbs": str(self.gmbs),
            "buckets": {k: str(v) for k, v in self.buckets.items()},
        }


class _Accumulator:
    """Unrounded running sums; rounding happens once in ``totals``."""

    def __init__(self) -> None:
        self.total_costs = ZERO
        self.nop_costs = ZERO
        self.operational_to = ZERO
        self.total_work_time = ZERO
        self.buckets: dict[CostBucket, Decimal] = defaultdict(lambda: ZERO)

    def merge(self, other: _Accumulator) -> None:
        self.total_costs += other.total_costs
        self.nop_costs += other.nop_costs
        self.operational_to += other.operational_to
        self.total_work_time += other.total_work_time
        for bucket, amount in other.buckets.items():
            self.buckets[bucket] += amount

    def totals(self, solver: MarginSolver) -> BreakdownTotals:
        if self.total_work_time > ZERO:
            hourly_cost = self.total_costs / self.total_work_time
            hourly_price = self.operational_to / self.total_work_time
        else:
            hourly_cost = hourly_price = ZERO
        margins = solver.realized_margins(
            total_to=self.operational_to,
            total_costs=self.total_costs,
            nop_costs=self.nop_costs,
        )
        return BreakdownTotals(
            total_costs=round2(self.total_costs),
            nop_costs=round2(self.nop_costs),
            operational_to=round2(self.operational_to),
            total_work_time=round2(self.total_work_time),
            hourly_cost=round2(hourly_cost),
            hourly_price=round2(hourly_price),
            dm=margins.dm,
            gmbs=margins.gmbs,
            buckets={b.value: round2(self.buckets[b]) for b in CostBucket if b != CostBucket.FTE},
        )


@dataclass(frozen=True)
class DeliverableYearBreakdown:
    year_number: int
    calendar_year: int
    quantity: Decimal
    totals: BreakdownTotals

    def to_dict(self) -> dict[str, Any]:
        return {
            "year_number": self.year_number,
            "calendar_year": self.calendar_year,
            "quantity": str(self.quantity),
            **self.totals.to_dict(),
        }


@dataclass(frozen=True)
class DeliverableBreakdown:
    deliverable_id: Hashable
    name: str
    years: tuple[DeliverableYearBreakdown, ...]
    totals: BreakdownTotals

    def to_dict(self) -> dict[str, Any]:
        return {
            "deliverable_id": str(self.deliverable_id),
            "name": self.name,
            "years": [y.to_dict() for y in self.years],
            **self.totals.to_dict(),
        }


@dataclass(frozen=True)
class WorkPackageBreakdown:
    work_package_id: Hashable
    name: str
    deliverables: tuple[DeliverableBreakdown, ...]
    totals: BreakdownTotals

    def to_dict(self) -> dict[str, Any]:
        return {
            "work_package_id": str(self.work_package_id),
            "name": self.name,
            "deliverables": [d.to_dict() for d in self.deliverables],
            **self.totals.to_dict(),
        }


@dataclass(frozen=True)
class FteGroup:
    key: str
    hours: Decimal
    fte: Decimal


@dataclass(frozen=True)
class FteSummary:
    """Process hours and FTE grouped four ways."""

    hours_per_fte: Decimal
    total_hours: Decimal
    total_fte: Decimal
    by_work_package: tuple[FteGroup, ...] = ()
    by_deliverable: tuple[FteGroup, ...] = ()
    by_country: tuple[FteGroup, ...] = ()
    by_profile: tuple[FteGroup, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        def groups(rows: tuple[FteGroup, ...]) -> list[dict[str, str]]:
            return [{"name": g.key, "hours": str(g.hours), "fte": str(g.fte)} for g in rows]

        return {
            "hours_per_fte": str(self.hours_per_fte),
            "total_hours": str(self.total_hours),
            "total_fte": str(self.total_fte),
            "by_work_package": groups(self.by_work_package),
            "by_deliverable": groups(self.by_deliverable),
            "by_country": groups(self.by_country),
            "by_profile": groups(self.by_profile),
        }


@dataclass(frozen=True)
class ProjectBreakdown:
    project_id: Hashable
    work_packages: tuple[WorkPackageBreakdown, ...]
    totals: BreakdownTotals
    fte: FteSummary

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": str(self.project_id),
            "work_packages": [wp.to_dict() for wp in self.work_packages],
            "fte": self.fte.to_dict(),
            **self.totals.to_dict(),
        }


class Aggregator:
    """
    Build the reporting breakdown of one project.

    Contract:
        Reads the snapshot, the ledger (current buckets) and optionally the
        margin solutions of the same recompute.  When a solution is missing
        for a deliverable-year, the stored operational_to is used.
    Non-goals:
        - No formatting or export; callers serialise with ``to_dict``.
    """

    def __init__(
        self,
        snapshot: QuoteSnapshot,
        ledger: CostLedger,
        solver: MarginSolver | None = None,
        hours_per_fte: Decimal = Decimal("1600"),
    ):
        self._snapshot = snapshot
        self._ledger = ledger
        self._solver = solver or MarginSolver()
        self._hours_per_fte = hours_per_fte
        self._hours_per_day = {c.country_id: c.hours_per_day for c in snapshot.countries}
        self._steps_by_deliverable: dict[Hashable, list] = defaultdict(list)
        for step in snapshot.steps:
            self._steps_by_deliverable[step.deliverable_id].append(step)
        self._step_years = {sy.key: sy for sy in snapshot.step_years}

    def _hours(self, step, step_year) -> Decimal:
        return process_hours(
            step_year.process_time,
            step.unit,
            self._hours_per_day.get(step.country_id, ZERO),
        )

    def deliverable_year(
        self,
        deliverable_id: Hashable,
        year_number: int,
        quantity: Decimal,
        operational_to: Decimal,
    ) -> _Accumulator:
        calendar_year = self._snapshot.calendar_year(year_number)
        acc = _Accumulator()
        entries = []
        work_hours = ZERO
        for step in self._steps_by_deliverable.get(deliverable_id, ()):
            key = (step.step_id, calendar_year)
            step_year = self._step_years.get(key)
            if step_year is None:
                continue
            entry = self._ledger.buckets(key) if key in self._ledger else step_year.buckets
            entries.append(entry)
            work_hours += self._hours(step, step_year)
            for bucket in RECURRENT_BUCKETS + NON_OPERATIONAL_BUCKETS:
                acc.buckets[bucket] += entry.get(bucket, ZERO) * quantity
            for bucket in NON_RECURRENT_BUCKETS:
                acc.buckets[bucket] += entry.get(bucket, ZERO)

        sums = BucketSums.from_buckets(entries)
        acc.total_costs = sums.op_cost_year(quantity)
        acc.nop_costs = sums.nop_cost_year(quantity)
        acc.operational_to = operational_to
        acc.total_work_time = work_hours * quantity
        return acc

    @traced_engine("aggregator", "1.0", fingerprint_fields=("solutions",))
    def build(
        self,
        *,
        solutions: Mapping[tuple[Hashable, int], MarginSolution] | None = None,
    ) -> ProjectBreakdown:
        """Assemble the project breakdown."""
        solutions = solutions or {}
        quantities: dict[Hashable, list] = defaultdict(list)
        for q in self._snapshot.quantities:
            quantities[q.deliverable_id].append(q)

        project_acc = _Accumulator()
        wp_rows: list[WorkPackageBreakdown] = []
        for wp in self._snapshot.work_packages:
            wp_acc = _Accumulator()
            deliverable_rows: list[DeliverableBreakdown] = []
            for deliverable in self._snapshot.deliverables:
                if deliverable.work_package_id != wp.work_package_id:
                    continue
                d_acc = _Accumulator()
                year_rows: list[DeliverableYearBreakdown] = []
                for q in sorted(quantities.get(deliverable.deliverable_id, ()), key=lambda r: r.year_number):
                    solution = solutions.get((deliverable.deliverable_id, q.year_number))
                    if solution is not None:
                        operational_to = solution.operational_to
                    else:
                        operational_to = q.operational_to if q.operational_to is not None else ZERO
                    y_acc = self.deliverable_year(
                        deliverable.deliverable_id, q.year_number, q.quantity, operational_to
                    )
                    d_acc.merge(y_acc)
                    year_rows.append(
                        DeliverableYearBreakdown(
                            year_number=q.year_number,
                            calendar_year=self._snapshot.calendar_year(q.year_number),
                            quantity=q.quantity,
                            totals=y_acc.totals(self._solver),
                        )
                    )
                wp_acc.merge(d_acc)
                deliverable_rows.append(
                    DeliverableBreakdown(
                        deliverable_id=deliverable.deliverable_id,
                        name=deliverable.name,
                        years=tuple(year_rows),
                        totals=d_acc.totals(self._solver),
                    )
                )
            project_acc.merge(wp_acc)
            wp_rows.append(
                WorkPackageBreakdown(
                    work_package_id=wp.work_package_id,
                    name=wp.name,
                    deliverables=tuple(deliverable_rows),
                    totals=wp_acc.totals(self._solver),
                )
            )

        breakdown = ProjectBreakdown(
            project_id=self._snapshot.project_id,
            work_packages=tuple(wp_rows),
            totals=project_acc.totals(self._solver),
            fte=self.fte_summary(),
        )
        logger.info(
            "project_breakdown_built",
            extra={
                "project_id": str(self._snapshot.project_id),
                "work_package_count": len(wp_rows),
                "operational_to": str(breakdown.totals.operational_to),
            },
        )
        return breakdown

    def fte_summary(self, year: int | None = None) -> FteSummary:
        """Process hours per work package, deliverable, country and profile."""
        deliverables = {d.deliverable_id: d for d in self._snapshot.deliverables}
        work_packages = {wp.work_package_id: wp for wp in self._snapshot.work_packages}
        steps = self._snapshot.steps_by_id()

        by_wp: dict[str, Decimal] = defaultdict(lambda: ZERO)
        by_deliverable: dict[str, Decimal] = defaultdict(lambda: ZERO)
        by_country: dict[str, Decimal] = defaultdict(lambda: ZERO)
        by_profile: dict[str, Decimal] = defaultdict(lambda: ZERO)
        total = ZERO
        for step_year in self._snapshot.step_years:
            if year is not None and step_year.year != year:
                continue
            step = steps.get(step_year.step_id)
            if step is None:
                continue
            hours = self._hours(step, step_year)
            deliverable = deliverables.get(step.deliverable_id)
            wp = work_packages.get(deliverable.work_package_id) if deliverable else None
            total += hours
            by_wp[wp.name if wp else "Unknown"] += hours
            by_deliverable[deliverable.name if deliverable else "Unknown"] += hours
            by_country[step.country_id] += hours
            by_profile[step.profile_id] += hours

        def groups(values: dict[str, Decimal]) -> tuple[FteGroup, ...]:
            return tuple(
                FteGroup(key=k, hours=round2(v), fte=round2(self._fte(v)))
                for k, v in sorted(values.items())
            )

        return FteSummary(
            hours_per_fte=self._hours_per_fte,
            total_hours=round2(total),
            total_fte=round2(self._fte(total)),
            by_work_package=groups(by_wp),
            by_deliverable=groups(by_deliverable),
            by_country=groups(by_country),
            by_profile=groups(by_profile),
        )

    def _fte(self, hours: Decimal) -> Decimal:
        if self._hours_per_fte <= ZERO:
            return ZERO
        return hours / self._hours_per_fte
