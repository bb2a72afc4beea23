"""
Tests for the pooled cost allocator.

Covers:
- Weighted conservation and residual handling
- Weight fallback rules and equalised weights
- Target selection (explicit associations, project-wide fallback)
- Per-use licence formula and skipped steps
- IT hardware premium
- Reset-then-accumulate idempotence
- Soft conditions (zero amount, reinvoiced, missing targets)
"""

from decimal import Decimal

from costing_engines.allocation import (
    AllocationSettings,
    GenericPooledCost,
    LicensePerUseCost,
    PooledCostAllocator,
    classify_cost,
)
from costing_engines.ledger import CostLedger
from costing_engines.rates import RateResolver
from costing_kernel.domain.records import (
    CostBucket,
    CostContext,
    CountryConfig,
    NonOperationalCost,
    Step,
    StepYear,
    TimeUnit,
)


def _country(**overrides) -> CountryConfig:
    values = dict(
        project_id="P1",
        country_id="ES",
        working_days=Decimal("200"),
        activity_rate=Decimal("100"),
        hours_per_day=Decimal("8"),
        npt_rate=Decimal("20"),
        it_cost=Decimal("0"),
    )
    values.update(overrides)
    return CountryConfig(**values)


def _cost(amount="1000", context=CostContext.IT, **overrides) -> NonOperationalCost:
    values = dict(
        cost_id="C1",
        project_id="P1",
        context=context,
        type="License",
        quantity=Decimal("1"),
        unit_cost=Decimal(amount),
        year=2025,
    )
    values.update(overrides)
    return NonOperationalCost(**values)


def _step_year(step_id, process_time="0", salaries="0", management="0", **kwargs) -> StepYear:
    return StepYear(
        step_id=step_id,
        year=kwargs.pop("year", 2025),
        process_time=Decimal(process_time),
        buckets={
            CostBucket.SALARIES: Decimal(salaries),
            CostBucket.MANAGEMENT: Decimal(management),
        },
        **kwargs,
    )


def _allocator(step_ids, settings=None, unit=TimeUnit.HOURS, **country_overrides) -> PooledCostAllocator:
    steps = {
        sid: Step(step_id=sid, deliverable_id="D1", profile_id="DEV", country_id="ES", unit=unit)
        for sid in step_ids
    }
    return PooledCostAllocator(
        steps=steps,
        rates=RateResolver("P1", [_country(**country_overrides)]),
        settings=settings,
    )


class TestWeightedAllocation:
    """Generic pooled costs are split by cost weight."""

    def setup_method(self):
        self.step_years = [
            _step_year("S1", salaries="100"),
            _step_year("S2", salaries="250", management="50"),
            _step_year("S3", salaries="600"),
        ]
        self.ledger = CostLedger.from_step_years(self.step_years)
        self.allocator = _allocator(["S1", "S2", "S3"])

    def test_shares_follow_cost_weights(self):
        result = self.allocator.allocate(
            cost=_cost("1000"), year=2025, candidates=self.step_years, ledger=self.ledger
        )
        assert [line.share for line in result.lines] == [
            Decimal("100"), Decimal("300"), Decimal("600"),
        ]
        assert result.total_allocated == Decimal("1000")
        assert result.strategy == "project_wide"

    def test_residual_goes_to_last_target(self):
        step_years = [_step_year(s, salaries="1") for s in ("S1", "S2", "S3")]
        ledger = CostLedger.from_step_years(step_years)
        result = _allocator(["S1", "S2", "S3"]).allocate(
            cost=_cost("100"), year=2025, candidates=step_years, ledger=ledger
        )
        shares = [line.share for line in result.lines]
        assert shares[0] == Decimal("33.333333333")
        assert shares[1] == Decimal("33.333333333")
        assert shares[2] == Decimal("33.333333334")
        assert sum(shares) == Decimal("100")

    def test_allocate_does_not_touch_ledger(self):
        self.allocator.allocate(
            cost=_cost("1000"), year=2025, candidates=self.step_years, ledger=self.ledger
        )
        assert self.ledger.get(("S1", 2025), CostBucket.IT) == Decimal("0")

    def test_context_selects_bucket(self):
        travel = self.allocator.allocate(
            cost=_cost("90", context=CostContext.TRAVEL),
            year=2025, candidates=self.step_years, ledger=self.ledger,
        )
        subco = self.allocator.allocate(
            cost=_cost("90", context=CostContext.SUBCONTRACT),
            year=2025, candidates=self.step_years, ledger=self.ledger,
        )
        assert {line.bucket for line in travel.lines} == {CostBucket.TRAVEL}
        assert {line.bucket for line in subco.lines} == {CostBucket.SUBCO}


class TestWeightFallback:

    def test_zero_weights_split_equally(self):
        step_years = [_step_year(s) for s in ("S1", "S2", "S3")]
        ledger = CostLedger.from_step_years(step_years)
        result = _allocator(["S1", "S2", "S3"]).allocate(
            cost=_cost("900"), year=2025, candidates=step_years, ledger=ledger
        )
        assert [line.share for line in result.lines] == [
            Decimal("300"), Decimal("300"), Decimal("300"),
        ]

    def test_process_time_used_without_costs(self):
        step_years = [_step_year("S1", process_time="10"), _step_year("S2", process_time="30")]
        ledger = CostLedger.from_step_years(step_years)
        result = _allocator(["S1", "S2"]).allocate(
            cost=_cost("400"), year=2025, candidates=step_years, ledger=ledger
        )
        assert [line.weight for line in result.lines] == [Decimal("10"), Decimal("30")]
        assert [line.share for line in result.lines] == [Decimal("100"), Decimal("300")]

    def test_rules_apply_per_target(self):
        step_years = [_step_year("S1", salaries="5"), _step_year("S2", process_time="5")]
        ledger = CostLedger.from_step_years(step_years)
        result = _allocator(["S1", "S2"]).allocate(
            cost=_cost("10"), year=2025, candidates=step_years, ledger=ledger
        )
        assert [line.share for line in result.lines] == [Decimal("5"), Decimal("5")]

    def test_equalised_when_total_weight_is_zero(self, captured_logs):
        class ZeroWeight:
            name = "zero"

            def weight(self, step_year, ledger):
                return Decimal("0")

        step_years = [_step_year("S1"), _step_year("S2")]
        ledger = CostLedger.from_step_years(step_years)
        allocator = PooledCostAllocator(
            steps={s: Step(s, "D1", "DEV", "ES") for s in ("S1", "S2")},
            rates=RateResolver("P1", [_country()]),
            weight_rules=[ZeroWeight()],
        )
        result = allocator.allocate(cost=_cost("50"), year=2025, candidates=step_years, ledger=ledger)

        assert [line.share for line in result.lines] == [Decimal("25"), Decimal("25")]
        messages = [r["message"] for r in captured_logs()]
        assert "allocation_weights_equalised" in messages


class TestTargetSelection:

    def setup_method(self):
        self.step_years = [_step_year("S1", salaries="1"), _step_year("S2", salaries="1")]
        self.ledger = CostLedger.from_step_years(self.step_years)
        self.allocator = _allocator(["S1", "S2"])

    def test_explicit_association_wins(self):
        result = self.allocator.allocate(
            cost=_cost("100", step_ids=("S2",)),
            year=2025, candidates=self.step_years, ledger=self.ledger,
        )
        assert result.strategy == "explicit"
        assert [(line.step_id, line.share) for line in result.lines] == [("S2", Decimal("100"))]

    def test_project_wide_fallback_is_logged(self, captured_logs):
        self.allocator.allocate(
            cost=_cost("100"), year=2025, candidates=self.step_years, ledger=self.ledger
        )
        records = [r for r in captured_logs() if r["message"] == "allocation_project_wide_fallback"]
        assert len(records) == 1
        assert records[0]["level"] == "WARNING"
        assert records[0]["target_count"] == 2

    def test_associated_step_without_year_data_is_skipped(self, captured_logs):
        result = self.allocator.allocate(
            cost=_cost("100", step_ids=("S9",)),
            year=2025, candidates=self.step_years, ledger=self.ledger,
        )
        assert result.lines == ()
        assert result.skipped_reason == "no_targets"
        assert "allocation_no_targets" in [r["message"] for r in captured_logs()]


class TestSoftSkips:

    def setup_method(self):
        self.step_years = [_step_year("S1", salaries="1")]
        self.ledger = CostLedger.from_step_years(self.step_years)
        self.allocator = _allocator(["S1"])

    def test_zero_amount_is_noop(self, captured_logs):
        result = self.allocator.allocate(
            cost=_cost("0"), year=2025, candidates=self.step_years, ledger=self.ledger
        )
        assert result.lines == ()
        assert result.skipped_reason == "zero_amount"
        assert "allocation_zero_amount_skipped" in [r["message"] for r in captured_logs()]

    def test_reinvoiced_is_never_allocated(self):
        result = self.allocator.allocate(
            cost=_cost("100", reinvoiced=True),
            year=2025, candidates=self.step_years, ledger=self.ledger,
        )
        assert result.lines == ()
        assert result.skipped_reason == "reinvoiced"


class TestLicensePerUse:
    """share = round2((amount / annual_hours) x (process_time / (1 - npt/100)))."""

    def test_classification(self):
        settings = AllocationSettings()
        assert isinstance(classify_cost(_cost(type="License Per Use"), settings), LicensePerUseCost)
        assert isinstance(classify_cost(_cost(type="license per use"), settings), LicensePerUseCost)
        assert isinstance(classify_cost(_cost(type="License"), settings), GenericPooledCost)
        travel = _cost(type="License Per Use", context=CostContext.TRAVEL)
        assert isinstance(classify_cost(travel, settings), GenericPooledCost)

    def test_per_use_share(self):
        step_years = [_step_year("S1", process_time="200")]
        ledger = CostLedger.from_step_years(step_years)
        # annual hours 200 x 100% x 8 = 1600, npt 20
        result = _allocator(["S1"]).allocate(
            cost=_cost("500", type="License Per Use"),
            year=2025, candidates=step_years, ledger=ledger,
        )
        assert result.kind == "license_per_use"
        assert [(line.bucket, line.share) for line in result.lines] == [
            (CostBucket.IT_RECURRENT, Decimal("78.13")),
        ]

    def test_npt_of_100_skips_step(self, captured_logs):
        step_years = [_step_year("S1", process_time="200")]
        ledger = CostLedger.from_step_years(step_years)
        result = _allocator(["S1"], npt_rate=Decimal("100")).allocate(
            cost=_cost("500", type="License Per Use"),
            year=2025, candidates=step_years, ledger=ledger,
        )
        assert result.lines == ()
        assert "license_per_use_step_skipped" in [r["message"] for r in captured_logs()]

    def test_invalid_annual_hours_skips_step(self, captured_logs):
        step_years = [_step_year("S1", process_time="200")]
        ledger = CostLedger.from_step_years(step_years)
        result = _allocator(["S1"], working_days=Decimal("0")).allocate(
            cost=_cost("500", type="License Per Use"),
            year=2025, candidates=step_years, ledger=ledger,
        )
        assert result.lines == ()
        skipped = [r for r in captured_logs() if r["message"] == "license_per_use_step_skipped"]
        assert skipped[0]["reason"] == "INVALID_ANNUAL_HOURS"

    def test_falls_back_to_it_costs(self, captured_logs):
        step_years = [_step_year("S1", process_time="200")]
        ledger = CostLedger.from_step_years(step_years)
        allocator = _allocator(["S1"], settings=AllocationSettings(it_recurrent_available=False))
        result = allocator.allocate(
            cost=_cost("500", type="License Per Use"),
            year=2025, candidates=step_years, ledger=ledger,
        )
        assert result.lines[0].bucket == CostBucket.IT
        assert "it_recurrent_bucket_unavailable" in [r["message"] for r in captured_logs()]

    def test_day_unit_uses_process_time_as_entered(self):
        step_years = [_step_year("S1", process_time="200")]
        ledger = CostLedger.from_step_years(step_years)
        result = _allocator(["S1"], unit=TimeUnit.DAYS).allocate(
            cost=_cost("500", type="License Per Use"),
            year=2025, candidates=step_years, ledger=ledger,
        )
        assert [line.share for line in result.lines] == [Decimal("78.13")]


class TestItPremium:

    def test_hardware_steps_get_premium(self):
        step_years = [
            _step_year("S1", process_time="100", hardware=True),
            _step_year("S2", process_time="100", hardware=False),
        ]
        ledger = CostLedger.from_step_years(step_years)
        lines = _allocator(["S1", "S2"], it_cost=Decimal("2")).apply_it_premium(step_years, ledger)

        # 100 x 2 / (1 - 0.2)
        assert [(line.step_id, line.share) for line in lines] == [("S1", Decimal("250"))]
        assert ledger.get(("S1", 2025), CostBucket.IT_RECURRENT) == Decimal("250")
        assert ledger.get(("S2", 2025), CostBucket.IT_RECURRENT) == Decimal("0")

    def test_premium_is_plain_storage_amount(self):
        step_years = [_step_year("S1", process_time="100", hardware=True)]
        ledger = CostLedger.from_step_years(step_years)
        lines = _allocator(["S1"], it_cost=Decimal("2")).apply_it_premium(step_years, ledger)
        assert str(lines[0].share) == "250.000000000"

    def test_day_unit_uses_process_time_as_entered(self):
        step_years = [_step_year("S1", process_time="100", hardware=True)]
        ledger = CostLedger.from_step_years(step_years)
        allocator = _allocator(["S1"], unit=TimeUnit.DAYS, it_cost=Decimal("2"))
        lines = allocator.apply_it_premium(step_years, ledger)
        assert [line.share for line in lines] == [Decimal("250")]
        assert ledger.get(("S1", 2025), CostBucket.IT_RECURRENT) == Decimal("250")

    def test_no_premium_without_it_cost(self):
        step_years = [_step_year("S1", process_time="100", hardware=True)]
        ledger = CostLedger.from_step_years(step_years)
        assert _allocator(["S1"]).apply_it_premium(step_years, ledger) == []

    def test_no_premium_when_npt_is_100(self):
        step_years = [_step_year("S1", process_time="100", hardware=True)]
        ledger = CostLedger.from_step_years(step_years)
        allocator = _allocator(["S1"], it_cost=Decimal("2"), npt_rate=Decimal("100"))
        assert allocator.apply_it_premium(step_years, ledger) == []


class TestContextPass:
    """recompute_context resets owned buckets then re-applies everything."""

    def setup_method(self):
        self.step_years = [
            _step_year("S1", process_time="100", salaries="300", hardware=True),
            _step_year("S2", process_time="100", salaries="100"),
            _step_year("S1", process_time="100", salaries="300", year=2026),
        ]
        self.costs = [
            _cost("1000", cost_id="C1"),
            _cost("500", cost_id="C2", type="License Per Use", step_ids=("S2",)),
            _cost("200", cost_id="C3", year=None),
        ]
        self.allocator = _allocator(["S1", "S2"], it_cost=Decimal("2"))

    def _run(self, ledger, years=(2025, 2026)):
        return self.allocator.recompute_context(
            context=CostContext.IT,
            costs=self.costs,
            step_years=self.step_years,
            ledger=ledger,
            years=years,
        )

    def test_running_twice_gives_identical_buckets(self):
        ledger = CostLedger.from_step_years(self.step_years)
        self._run(ledger)
        first = ledger.dirty()
        self._run(ledger)
        assert ledger.dirty() == first

    def test_stale_values_are_reset(self):
        stale = [
            StepYear(sy.step_id, sy.year, sy.process_time, hardware=sy.hardware,
                     buckets={**sy.buckets, CostBucket.IT: Decimal("9999")})
            for sy in self.step_years
        ]
        ledger = CostLedger.from_step_years(stale)
        self._run(ledger)
        total_it = sum(ledger.get(key, CostBucket.IT) for key in ledger.keys(2025))
        # C1 and the 2025 share of C3
        assert total_it == Decimal("1200")

    def test_null_year_cost_applies_to_every_year(self):
        ledger = CostLedger.from_step_years(self.step_years)
        self._run(ledger)
        assert ledger.get(("S1", 2026), CostBucket.IT) == Decimal("200")

    def test_single_year_leaves_other_years_alone(self):
        ledger = CostLedger.from_step_years(self.step_years)
        result = self._run(ledger, years=(2025,))
        assert result.years == (2025,)
        assert ledger.get(("S1", 2026), CostBucket.IT) == Decimal("0")
        assert ("S1", 2026) not in ledger.dirty()

    def test_premium_and_licence_land_in_recurrent_bucket(self):
        ledger = CostLedger.from_step_years(self.step_years)
        result = self._run(ledger)
        assert len(result.premium_lines) == 1
        # 100 x 2 / 0.8 = 250 premium on S1; per-use licence only on S2
        assert ledger.get(("S1", 2025), CostBucket.IT_RECURRENT) == Decimal("250")
        # 500 / 1600 x 100 / 0.8 = 39.0625
        assert ledger.get(("S2", 2025), CostBucket.IT_RECURRENT) == Decimal("39.06")
