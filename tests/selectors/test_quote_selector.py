"""Tests for QuoteSelector snapshot loading."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from costing_kernel.db.engine import session_scope
from costing_kernel.domain.records import CostBucket, CostContext, TimeUnit
from costing_kernel.exceptions import InvalidCostContextError, ProjectNotFoundError
from costing_kernel.models import CountryConfigModel, NonOperationalCostModel
from costing_kernel.selectors.quote_selector import QuoteSelector


class TestLoadSnapshot:

    def test_project_tree(self, seeded_project):
        with session_scope() as session:
            snapshot = QuoteSelector(session).load_snapshot(seeded_project.project_id)

        assert snapshot.project_id == seeded_project.project_id
        assert snapshot.project.margin_goal == Decimal("20")
        assert [wp.name for wp in snapshot.work_packages] == ["WP1"]
        assert [d.name for d in snapshot.deliverables] == ["Ticket handling"]
        assert sorted(q.year_number for q in snapshot.quantities) == [1, 2]
        assert {s.name for s in snapshot.steps} == {"Develop", "Manage"}
        assert all(s.unit is TimeUnit.HOURS for s in snapshot.steps)
        assert snapshot.years() == (2025, 2026)
        assert snapshot.start_year() == 2025

    def test_step_years_carry_buckets(self, seeded_project):
        with session_scope() as session:
            snapshot = QuoteSelector(session).load_snapshot(seeded_project.project_id)

        dev_2025 = next(
            sy for sy in snapshot.step_years
            if sy.step_id == seeded_project.dev_step_id and sy.year == 2025
        )
        assert dev_2025.hardware is True
        assert dev_2025.process_time == Decimal("100")
        assert set(dev_2025.buckets) == set(CostBucket)
        assert dev_2025.bucket(CostBucket.SALARIES) == 0

    def test_costs_in_creation_order_with_associations(self, seeded_project):
        with session_scope() as session:
            snapshot = QuoteSelector(session).load_snapshot(seeded_project.project_id)

        by_id = {c.cost_id: c for c in snapshot.costs}
        travel = by_id[seeded_project.travel_cost_id]
        assert travel.context is CostContext.TRAVEL
        assert travel.year is None
        assert travel.amount == Decimal("600")
        assert travel.step_ids == (seeded_project.dev_step_id,)
        assert by_id[seeded_project.licence_cost_id].step_ids == ()
        assert by_id[seeded_project.subcontract_cost_id].reinvoiced is True
        assert len(snapshot.costs_for(CostContext.IT)) == 2

    def test_management_salary_stays_unset(self, seeded_project):
        with session_scope() as session:
            snapshot = QuoteSelector(session).load_snapshot(seeded_project.project_id)
        assert snapshot.countries[0].management_yearly_salary is None

    def test_management_salary_loaded(self, seeded_project):
        with session_scope() as session:
            country = session.scalars(select(CountryConfigModel)).one()
            country.management_yearly_salary = Decimal("70000")
        with session_scope() as session:
            snapshot = QuoteSelector(session).load_snapshot(seeded_project.project_id)
        assert snapshot.countries[0].management_yearly_salary == Decimal("70000")


class TestFailures:

    def test_unknown_project(self, db):
        with session_scope() as session:
            with pytest.raises(ProjectNotFoundError):
                QuoteSelector(session).load_snapshot(uuid4())

    def test_unknown_context(self, seeded_project):
        with session_scope() as session:
            session.add(
                NonOperationalCostModel(
                    project_id=seeded_project.project_id,
                    context="catering",
                    type="Lunch",
                    quantity=Decimal("1"),
                    unit_cost=Decimal("10"),
                )
            )
        with session_scope() as session:
            with pytest.raises(InvalidCostContextError) as exc_info:
                QuoteSelector(session).load_snapshot(seeded_project.project_id)
        assert exc_info.value.context == "catering"
