"""
Hypothesis property tests for allocation and margin solving.

Properties:
- Generic pooled allocation conserves the amount exactly
- Each share stays within rounding distance of amount x weight / total
- Re-running an IT context pass never changes the ledger
- Solving a margin and reading it back gives the goal
"""

from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from costing_engines.allocation import PooledCostAllocator
from costing_engines.ledger import CostLedger
from costing_engines.margin import MarginSolver
from costing_engines.rates import RateResolver
from costing_kernel.domain.records import (
    CostBucket,
    CostContext,
    CountryConfig,
    NonOperationalCost,
    Step,
    StepYear,
)

_amounts = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("999999999.99"), places=2,
    allow_nan=False, allow_infinity=False,
)
_weights = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("1000000"), places=2,
    allow_nan=False, allow_infinity=False,
)


def _setup(weights, hardware=False):
    step_years = [
        StepYear(
            f"S{i}", 2025, process_time=Decimal("10"), hardware=hardware,
            buckets={CostBucket.SALARIES: w},
        )
        for i, w in enumerate(weights)
    ]
    allocator = PooledCostAllocator(
        steps={sy.step_id: Step(sy.step_id, "D1", "DEV", "ES") for sy in step_years},
        rates=RateResolver(
            "P1",
            [
                CountryConfig(
                    "P1", "ES",
                    working_days=Decimal("220"), activity_rate=Decimal("90"),
                    hours_per_day=Decimal("8"), npt_rate=Decimal("15"), it_cost=Decimal("1.5"),
                )
            ],
        ),
    )
    return step_years, allocator


def _cost(amount, cost_type="License") -> NonOperationalCost:
    return NonOperationalCost(
        cost_id="C1", project_id="P1", context=CostContext.IT, type=cost_type,
        quantity=Decimal("1"), unit_cost=amount, year=2025,
    )


class TestAllocationConservation:

    @given(amount=_amounts, weights=st.lists(_weights, min_size=1, max_size=20))
    @settings(max_examples=200, suppress_health_check=[HealthCheck.too_slow])
    def test_shares_sum_to_amount(self, amount, weights):
        step_years, allocator = _setup(weights)
        ledger = CostLedger.from_step_years(step_years)
        result = allocator.allocate(cost=_cost(amount), year=2025, candidates=step_years, ledger=ledger)
        assert sum(line.share for line in result.lines) == amount
        assert len(result.lines) == len(weights)

    @given(amount=_amounts, weights=st.lists(_weights, min_size=1, max_size=20))
    @settings(max_examples=200, suppress_health_check=[HealthCheck.too_slow])
    def test_shares_close_to_exact_ratio(self, amount, weights):
        step_years, allocator = _setup(weights)
        ledger = CostLedger.from_step_years(step_years)
        result = allocator.allocate(cost=_cost(amount), year=2025, candidates=step_years, ledger=ledger)
        effective = [line.weight for line in result.lines]
        total = sum(effective)
        tolerance = Decimal("1e-9") * len(weights)
        for line in result.lines:
            assert abs(line.share - amount * line.weight / total) <= tolerance


class TestContextPassIdempotence:

    @given(
        amounts=st.lists(_amounts, min_size=1, max_size=5),
        weights=st.lists(_weights, min_size=1, max_size=8),
        hardware=st.booleans(),
    )
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_second_pass_changes_nothing(self, amounts, weights, hardware):
        step_years, allocator = _setup(weights, hardware=hardware)
        costs = [
            NonOperationalCost(
                cost_id=f"C{i}", project_id="P1", context=CostContext.IT,
                type="License Per Use" if i % 2 else "License",
                quantity=Decimal("1"), unit_cost=amount, year=2025,
            )
            for i, amount in enumerate(amounts)
        ]
        ledger = CostLedger.from_step_years(step_years)

        def run():
            allocator.recompute_context(
                context=CostContext.IT, costs=costs, step_years=step_years,
                ledger=ledger, years=(2025,),
            )
            return ledger.dirty()

        assert run() == run()


class TestMarginRoundTrip:

    @given(
        op_cost=st.decimals(min_value=Decimal("100"), max_value=Decimal("10000000"), places=2),
        nop_cost=st.decimals(min_value=Decimal("0"), max_value=Decimal("1000000"), places=2),
        goal=st.decimals(min_value=Decimal("0"), max_value=Decimal("95"), places=2),
        margin_type=st.sampled_from(["DM", "GMBS"]),
    )
    @settings(max_examples=200)
    def test_realised_margin_matches_goal(self, op_cost, nop_cost, goal, margin_type):
        solver = MarginSolver()
        solution = solver.solve(
            margin_type=margin_type, margin_goal=goal, op_cost=op_cost, nop_cost=nop_cost
        )
        realised = solver.realized_margins(
            total_to=solution.operational_to, total_costs=op_cost, nop_costs=nop_cost
        )
        achieved = realised.dm if margin_type == "DM" else realised.gmbs
        assert abs(achieved - goal) <= Decimal("0.02")
