"""
Module: costing_engines.margin
Responsibility:
    Solve the margin equation forward (yearly cost + target margin ->
    required Operational TO and the realised value of the other margin) and
    in reverse (TO + cost -> realised DM and GMBS).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - op_cost_year = op_recurrent_sum x quantity + op_non_recurrent_sum.
    - nop_cost_year = nop_sum x quantity.
    - DM:   TO = op / (1 - goal/100);      dm = goal, gmbs from TO.
    - GMBS: TO = (op + nop) / (1 - goal/100); gmbs = goal, dm from TO.
    - Full precision inside; outputs rounded ROUND_HALF_UP at the boundary.
    - A realised margin over a TO of zero (or below) is reported as 0.

Failure modes:
    - DivisionByZeroError when goal = 100.
    - UnknownMarginTypeError when the type is neither DM nor GMBS.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Hashable

from costing_engines.tracer import traced_engine
from costing_kernel.domain.records import (
    NON_OPERATIONAL_BUCKETS,
    NON_RECURRENT_BUCKETS,
    RECURRENT_BUCKETS,
    CostBucket,
    MarginType,
)
from costing_kernel.domain.values import HUNDRED, ONE, ZERO, percent, quantize
from costing_kernel.exceptions import DivisionByZeroError, UnknownMarginTypeError
from costing_kernel.logging_config import get_logger

logger = get_logger("engines.margin")


def parse_margin_type(value: str | MarginType | None) -> MarginType:
    """Case-insensitive DM / GMBS parse."""
    if isinstance(value, MarginType):
        return value
    normalised = (value or "").strip().upper()
    try:
        return MarginType(normalised)
    except ValueError as exc:
        raise UnknownMarginTypeError(str(value)) from exc


@dataclass(frozen=True)
class BucketSums:
    """Per-unit recurrent, flat non-recurrent and per-unit non-operational sums."""

    op_recurrent: Decimal = ZERO
    op_non_recurrent: Decimal = ZERO
    nop: Decimal = ZERO

    @classmethod
    def from_buckets(cls, buckets: Iterable[Mapping[CostBucket, Decimal]]) -> BucketSums:
        op_recurrent = op_non_recurrent = nop = ZERO
        for entry in buckets:
            op_recurrent += sum((entry.get(b, ZERO) for b in RECURRENT_BUCKETS), ZERO)
            op_non_recurrent += sum((entry.get(b, ZERO) for b in NON_RECURRENT_BUCKETS), ZERO)
            nop += sum((entry.get(b, ZERO) for b in NON_OPERATIONAL_BUCKETS), ZERO)
        return cls(op_recurrent, op_non_recurrent, nop)

    def op_cost_year(self, quantity: Decimal) -> Decimal:
        return self.op_recurrent * quantity + self.op_non_recurrent

    def nop_cost_year(self, quantity: Decimal) -> Decimal:
        return self.nop * quantity


@dataclass(frozen=True)
class MarginSolution:
    """
    Solved price of one deliverable-year.

    Guarantees:
        - operational_to, dm_real and gmbs_real are rounded to output places.
        - The margin matching ``margin_type`` equals the goal.
    """

    margin_type: MarginType
    margin_goal: Decimal
    op_cost: Decimal
    nop_cost: Decimal
    operational_to: Decimal
    dm_real: Decimal
    gmbs_real: Decimal


@dataclass(frozen=True)
class RealizedMargins:
    dm: Decimal
    gmbs: Decimal


@dataclass(frozen=True)
class DeliverableYearMargin:
    """Margin solution tagged with the deliverable-year it belongs to."""

    deliverable_id: Hashable
    year_number: int
    calendar_year: int
    quantity: Decimal
    solution: MarginSolution


class MarginSolver:
    """
    Forward and reverse margin computation.

    Contract:
        Pure; identical inputs give identical outputs.
    Non-goals:
        - Does not sum buckets over steps; callers pass op and nop totals
          (see BucketSums).
    """

    def __init__(self, output_places: int = 2):
        self._places = output_places

    def _out(self, value: Decimal) -> Decimal:
        return quantize(value, self._places)

    @traced_engine(
        "margin_solver", "1.0",
        fingerprint_fields=("margin_type", "margin_goal", "op_cost", "nop_cost"),
    )
    def solve(
        self,
        *,
        margin_type: str | MarginType,
        margin_goal: Decimal,
        op_cost: Decimal,
        nop_cost: Decimal,
    ) -> MarginSolution:
        """
        Required Operational TO for ``margin_goal`` of ``margin_type``.

        Raises:
            UnknownMarginTypeError: Type not DM or GMBS.
            DivisionByZeroError: margin_goal == 100.
        """
        kind = parse_margin_type(margin_type)
        denominator = ONE - percent(margin_goal)
        if denominator == ZERO:
            raise DivisionByZeroError(kind.value, str(margin_goal))

        match kind:
            case MarginType.DM:
                operational_to = op_cost / denominator
                dm = margin_goal
                gmbs = self._ratio_margin(op_cost + nop_cost, operational_to)
            case MarginType.GMBS:
                operational_to = (op_cost + nop_cost) / denominator
                dm = self._ratio_margin(op_cost, operational_to)
                gmbs = margin_goal
            case _:
                raise UnknownMarginTypeError(str(kind))

        return MarginSolution(
            margin_type=kind,
            margin_goal=margin_goal,
            op_cost=op_cost,
            nop_cost=nop_cost,
            operational_to=self._out(operational_to),
            dm_real=self._out(dm),
            gmbs_real=self._out(gmbs),
        )

    @traced_engine(
        "margin_solver", "1.0",
        fingerprint_fields=("total_to", "total_costs", "nop_costs"),
    )
    def realized_margins(
        self,
        *,
        total_to: Decimal,
        total_costs: Decimal,
        nop_costs: Decimal,
    ) -> RealizedMargins:
        """dm = (1 - cost/TO) x 100, gmbs = (1 - (cost + nop)/TO) x 100."""
        return RealizedMargins(
            dm=self._out(self._ratio_margin(total_costs, total_to)),
            gmbs=self._out(self._ratio_margin(total_costs + nop_costs, total_to)),
        )

    @staticmethod
    def _ratio_margin(cost: Decimal, turnover: Decimal) -> Decimal:
        if turnover <= ZERO:
            return ZERO
        return (ONE - cost / turnover) * HUNDRED
