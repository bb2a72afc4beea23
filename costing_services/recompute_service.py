"""
costing_services.recompute_service -- Project cost and price recompute.

Responsibility:
    Orchestrate one recompute of a project: load a snapshot, compute step
    people costs, allocate pooled IT / travel / subcontracting costs, solve
    deliverable margins, write everything back once, and build the
    reporting breakdown on request.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes QuoteSelector (read), StepCostCalculator, PooledCostAllocator,
    MarginSolver and Aggregator (pure), and LedgerWriter (write).

Invariants enforced:
    - One transaction per recompute: the service flushes, the caller's
      session_scope commits or rolls back.
    - Fresh inputs: every call re-reads rates, salaries and weights; there
      is no cache across calls.
    - Pooled allocation in a full pass is weighted by the step costs of the
      same pass.
    - Buckets are reset then accumulated in memory and written once.

Failure modes:
    - ProjectNotFoundError, InvalidCostContextError from the selector.
    - ConfigNotFoundError, InvalidAnnualHoursError, SalaryNotFoundError
      from the step cost pass.
    - MarginConfigMissingError, DivisionByZeroError, UnknownMarginTypeError
      from the margin pass.
    All propagate unchanged; nothing is caught and retried here.

Usage:
    with session_scope() as session:
        summary = RecomputeService(session, get_active_config()).recompute_project(project_id)
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from costing_config import CostingConfig
from costing_engines.aggregation import Aggregator, ProjectBreakdown
from costing_engines.allocation import AllocationSettings, ContextPassResult, PooledCostAllocator
from costing_engines.ledger import CostLedger
from costing_engines.margin import BucketSums, DeliverableYearMargin, MarginSolver
from costing_engines.rates import RateResolver, SalaryResolver
from costing_engines.step_costs import StepCostCalculator, StepCostResult
from costing_kernel.domain.records import (
    STEP_COST_BUCKETS,
    CostContext,
    QuoteSnapshot,
)
from costing_kernel.exceptions import MarginConfigMissingError
from costing_kernel.logging_config import LogContext, get_logger
from costing_kernel.selectors.quote_selector import QuoteSelector
from costing_services.ledger_writer import LedgerWriter

logger = get_logger("services.recompute")

_CONTEXT_ORDER = (CostContext.IT, CostContext.TRAVEL, CostContext.SUBCONTRACT)


@dataclass(frozen=True)
class RecomputeSummary:
    """What a recompute changed."""

    project_id: UUID
    recompute_id: str
    step_costs: tuple[StepCostResult, ...] = ()
    context_passes: tuple[ContextPassResult, ...] = ()
    margins: tuple[DeliverableYearMargin, ...] = ()
    step_years_written: int = 0
    margin_rows_written: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "project_id": str(self.project_id),
            "recompute_id": self.recompute_id,
            "step_cost_count": len(self.step_costs),
            "context_passes": [
                {
                    "context": p.context.value,
                    "years": list(p.years),
                    "reset_count": p.reset_count,
                    "allocated_count": p.allocated_count,
                    "premium_count": len(p.premium_lines),
                }
                for p in self.context_passes
            ],
            "margins": [
                {
                    "deliverable_id": str(m.deliverable_id),
                    "year_number": m.year_number,
                    "calendar_year": m.calendar_year,
                    "operational_to": str(m.solution.operational_to),
                    "dm_real": str(m.solution.dm_real),
                    "gmbs_real": str(m.solution.gmbs_real),
                }
                for m in self.margins
            ],
            "step_years_written": self.step_years_written,
            "margin_rows_written": self.margin_rows_written,
            "duration_ms": self.duration_ms,
        }


class _RecomputeRun:
    """Engines wired to one snapshot and one ledger."""

    def __init__(self, snapshot: QuoteSnapshot, config: CostingConfig | None):
        engine_settings = config.engine if config is not None else None
        self.snapshot = snapshot
        self.ledger = CostLedger.from_step_years(snapshot.step_years)
        self.rates = RateResolver(snapshot.project_id, snapshot.countries)
        self.salaries = SalaryResolver(snapshot.project_id, snapshot.salaries)
        self.calculator = StepCostCalculator(self.rates, self.salaries)
        self.allocator = PooledCostAllocator(
            steps=snapshot.steps_by_id(),
            rates=self.rates,
            settings=(
                AllocationSettings(
                    license_per_use_types=engine_settings.license_per_use_types,
                    it_recurrent_available=engine_settings.it_recurrent_available,
                    storage_places=engine_settings.storage_places,
                )
                if engine_settings is not None
                else AllocationSettings()
            ),
        )
        self.solver = MarginSolver(
            output_places=engine_settings.output_places if engine_settings is not None else 2
        )

    def years(self, year: int | None) -> tuple[int, ...]:
        if year is not None:
            return (year,)
        return self.snapshot.years()


class RecomputeService:
    """
    Recompute step costs, pooled allocations and deliverable margins.

    Contract:
        Receives a Session via constructor injection; the caller owns the
        transaction.  Each public method loads its own snapshot.
    Guarantees:
        - Running any recompute twice on unchanged inputs writes identical
          figures.
    Non-goals:
        - Does not commit, retry or cache.
    """

    def __init__(self, session: Session, config: CostingConfig | None = None):
        self.session = session
        self.config = config
        self._selector = QuoteSelector(session)
        self._writer = LedgerWriter(
            session,
            storage_places=config.engine.storage_places if config is not None else 9,
        )

    # -- helpers -----------------------------------------------------------------

    def _run(self, project_id: UUID) -> _RecomputeRun:
        return _RecomputeRun(self._selector.load_snapshot(project_id), self.config)

    def _enabled_contexts(self, contexts: Iterable[CostContext | str] | None) -> tuple[CostContext, ...]:
        if contexts is None:
            if self.config is None:
                return _CONTEXT_ORDER
            wanted = {CostContext(c) for c in self.config.engine.contexts}
        else:
            wanted = {CostContext(c) for c in contexts}
        return tuple(c for c in _CONTEXT_ORDER if c in wanted)

    def _step_pass(self, run: _RecomputeRun, year: int | None) -> list[StepCostResult]:
        steps = run.snapshot.steps_by_id()
        results: list[StepCostResult] = []
        for step_year in run.snapshot.step_years:
            if year is not None and step_year.year != year:
                continue
            step = steps[step_year.step_id]
            result = run.calculator.calculate(step=step, step_year=step_year)
            run.ledger.reset(STEP_COST_BUCKETS, [step_year.key])
            for bucket, amount in result.buckets().items():
                run.ledger.set(step_year.key, bucket, amount)
            results.append(result)
        return results

    def _pooled_pass(
        self,
        run: _RecomputeRun,
        year: int | None,
        contexts: Sequence[CostContext],
    ) -> list[ContextPassResult]:
        years = run.years(year)
        passes: list[ContextPassResult] = []
        for context in contexts:
            passes.append(
                run.allocator.recompute_context(
                    context=context,
                    costs=run.snapshot.costs_for(context),
                    step_years=run.snapshot.step_years,
                    ledger=run.ledger,
                    years=years,
                )
            )
        return passes

    def _margin_pass(self, run: _RecomputeRun) -> list[DeliverableYearMargin]:
        project = run.snapshot.project
        if not project.margin_type or project.margin_goal is None:
            raise MarginConfigMissingError(str(project.project_id))

        steps_by_deliverable: dict = {}
        for step in run.snapshot.steps:
            steps_by_deliverable.setdefault(step.deliverable_id, []).append(step)

        margins: list[DeliverableYearMargin] = []
        for quantity in run.snapshot.quantities:
            calendar_year = run.snapshot.calendar_year(quantity.year_number)
            entries = [
                run.ledger.buckets((step.step_id, calendar_year))
                for step in steps_by_deliverable.get(quantity.deliverable_id, ())
                if (step.step_id, calendar_year) in run.ledger
            ]
            sums = BucketSums.from_buckets(entries)
            solution = run.solver.solve(
                margin_type=project.margin_type,
                margin_goal=project.margin_goal,
                op_cost=sums.op_cost_year(quantity.quantity),
                nop_cost=sums.nop_cost_year(quantity.quantity),
            )
            margins.append(
                DeliverableYearMargin(
                    deliverable_id=quantity.deliverable_id,
                    year_number=quantity.year_number,
                    calendar_year=calendar_year,
                    quantity=quantity.quantity,
                    solution=solution,
                )
            )
        return margins

    def _summary(
        self,
        project_id: UUID,
        recompute_id: str,
        t0: float,
        **fields,
    ) -> RecomputeSummary:
        return RecomputeSummary(
            project_id=project_id,
            recompute_id=recompute_id,
            duration_ms=round((time.monotonic() - t0) * 1000, 2),
            **fields,
        )

    # -- public operations ----------------------------------------------------

    def recompute_step_costs(self, project_id: UUID, year: int | None = None) -> RecomputeSummary:
        """Recompute salaries, management, NPT, premises and FTE of every step-year."""
        recompute_id = str(uuid4())
        with LogContext.bind(project_id=str(project_id), recompute_id=recompute_id):
            t0 = time.monotonic()
            logger.info("step_costs_recompute_started", extra={"year": year})
            run = self._run(project_id)
            results = self._step_pass(run, year)
            written = self._writer.write_buckets(run.ledger)
            summary = self._summary(
                project_id, recompute_id, t0,
                step_costs=tuple(results),
                step_years_written=written,
            )
            logger.info(
                "step_costs_recompute_completed",
                extra={"step_year_count": len(results), "duration_ms": summary.duration_ms},
            )
            return summary

    def recompute_pooled_costs(
        self,
        project_id: UUID,
        year: int | None = None,
        contexts: Iterable[CostContext | str] | None = None,
    ) -> RecomputeSummary:
        """
        Reset and re-allocate the pooled cost buckets of the given contexts.

        Weights come from the salaries and management buckets as currently
        stored.
        """
        recompute_id = str(uuid4())
        with LogContext.bind(project_id=str(project_id), recompute_id=recompute_id):
            t0 = time.monotonic()
            enabled = self._enabled_contexts(contexts)
            logger.info(
                "pooled_costs_recompute_started",
                extra={"year": year, "contexts": [c.value for c in enabled]},
            )
            run = self._run(project_id)
            passes = self._pooled_pass(run, year, enabled)
            written = self._writer.write_buckets(run.ledger)
            summary = self._summary(
                project_id, recompute_id, t0,
                context_passes=tuple(passes),
                step_years_written=written,
            )
            logger.info(
                "pooled_costs_recompute_completed",
                extra={"step_years_written": written, "duration_ms": summary.duration_ms},
            )
            return summary

    def recompute_it_costs(self, project_id: UUID, year: int | None = None) -> RecomputeSummary:
        """IT pass only: premium, licences and generic IT costs."""
        return self.recompute_pooled_costs(project_id, year, contexts=[CostContext.IT])

    def recompute_deliverable_margins(self, project_id: UUID) -> RecomputeSummary:
        """Solve operational TO and realised margins from the stored buckets."""
        recompute_id = str(uuid4())
        with LogContext.bind(project_id=str(project_id), recompute_id=recompute_id):
            t0 = time.monotonic()
            run = self._run(project_id)
            margins = self._margin_pass(run)
            written = self._writer.write_margins(margins)
            summary = self._summary(
                project_id, recompute_id, t0,
                margins=tuple(margins),
                margin_rows_written=written,
            )
            logger.info(
                "deliverable_margins_recomputed",
                extra={"row_count": written, "duration_ms": summary.duration_ms},
            )
            return summary

    def recompute_project(self, project_id: UUID) -> RecomputeSummary:
        """
        Full pass: step costs, every enabled pooled context, then margins.

        All of it runs against one snapshot and one ledger, written once.
        """
        recompute_id = str(uuid4())
        with LogContext.bind(project_id=str(project_id), recompute_id=recompute_id):
            t0 = time.monotonic()
            logger.info("project_recompute_started")
            run = self._run(project_id)
            results = self._step_pass(run, None)
            passes = self._pooled_pass(run, None, self._enabled_contexts(None))
            margins = self._margin_pass(run)
            written = self._writer.write_buckets(run.ledger)
            margin_rows = self._writer.write_margins(margins)
            summary = self._summary(
                project_id, recompute_id, t0,
                step_costs=tuple(results),
                context_passes=tuple(passes),
                margins=tuple(margins),
                step_years_written=written,
                margin_rows_written=margin_rows,
            )
            logger.info(
                "project_recompute_completed",
                extra={
                    "step_year_count": len(results),
                    "step_years_written": written,
                    "margin_rows_written": margin_rows,
                    "duration_ms": summary.duration_ms,
                },
            )
            return summary

    def build_breakdown(self, project_id: UUID) -> ProjectBreakdown:
        """Reporting payload from the stored figures; writes nothing."""
        with LogContext.bind(project_id=str(project_id)):
            run = self._run(project_id)
            hours_per_fte = (
                self.config.reporting.hours_per_fte
                if self.config is not None
                else Decimal("1600")
            )
            aggregator = Aggregator(
                run.snapshot,
                run.ledger,
                solver=run.solver,
                hours_per_fte=hours_per_fte,
            )
            return aggregator.build()
