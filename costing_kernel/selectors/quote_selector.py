"""
Module: costing_kernel.selectors.quote_selector
Responsibility: Load every row a project recompute needs and convert it to a
    QuoteSnapshot of frozen domain records.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only: never writes.
    - Nullable numeric columns are read as 0 (management salary stays None
      so the step cost calculator can fall back to the profile rate).
    - Pooled cost contexts are validated; an unknown context aborts the load.

Failure modes:
    - ProjectNotFoundError if the project id does not exist.
    - InvalidCostContextError if a cost record carries an unknown context.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from costing_kernel.domain.records import (
    CostBucket,
    CostContext,
    CountryConfig,
    Deliverable,
    DeliverableYearQuantity,
    NonOperationalCost,
    ProfileSalary,
    ProjectMarginConfig,
    QuoteSnapshot,
    Step,
    StepYear,
    TimeUnit,
    WorkPackage,
)
from costing_kernel.domain.values import to_decimal
from costing_kernel.exceptions import InvalidCostContextError, ProjectNotFoundError
from costing_kernel.logging_config import get_logger
from costing_kernel.models import (
    CountryConfigModel,
    DeliverableModel,
    NonOperationalCostModel,
    ProfileSalaryModel,
    ProjectModel,
    StepModel,
    WorkPackageModel,
)
from costing_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.quote")


class QuoteSelector(BaseSelector):
    """Builds QuoteSnapshot records for one project."""

    def load_snapshot(self, project_id: UUID) -> QuoteSnapshot:
        """
        Read the whole project tree, rate tables and pooled costs.

        Raises:
            ProjectNotFoundError: Unknown project id.
            InvalidCostContextError: A cost context is not it/subcontract/travel.
        """
        project = self.session.get(ProjectModel, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))

        work_packages = self.session.scalars(
            select(WorkPackageModel)
            .where(WorkPackageModel.project_id == project_id)
            .order_by(WorkPackageModel.name, WorkPackageModel.id)
        ).all()
        wp_ids = [wp.id for wp in work_packages]

        deliverables = []
        if wp_ids:
            deliverables = self.session.scalars(
                select(DeliverableModel)
                .where(DeliverableModel.work_package_id.in_(wp_ids))
                .options(selectinload(DeliverableModel.yearly_quantities))
                .order_by(DeliverableModel.name, DeliverableModel.id)
            ).all()
        deliverable_ids = [d.id for d in deliverables]

        steps = []
        if deliverable_ids:
            steps = self.session.scalars(
                select(StepModel)
                .where(StepModel.deliverable_id.in_(deliverable_ids))
                .options(selectinload(StepModel.yearly_data))
                .order_by(StepModel.name, StepModel.id)
            ).all()

        countries = self.session.scalars(
            select(CountryConfigModel)
            .where(CountryConfigModel.project_id == project_id)
            .order_by(CountryConfigModel.country_id)
        ).all()

        salaries = self.session.scalars(
            select(ProfileSalaryModel)
            .where(ProfileSalaryModel.project_id == project_id)
            .order_by(
                ProfileSalaryModel.profile_id,
                ProfileSalaryModel.country_id,
                ProfileSalaryModel.year,
            )
        ).all()

        costs = self.session.scalars(
            select(NonOperationalCostModel)
            .where(NonOperationalCostModel.project_id == project_id)
            .options(selectinload(NonOperationalCostModel.steps))
            .order_by(NonOperationalCostModel.created_at, NonOperationalCostModel.id)
        ).all()

        snapshot = QuoteSnapshot(
            project=ProjectMarginConfig(
                project_id=project.id,
                margin_type=project.margin_type,
                margin_goal=(
                    to_decimal(project.margin_goal)
                    if project.margin_goal is not None
                    else None
                ),
                start_date=project.start_date,
                end_date=project.end_date,
            ),
            countries=tuple(self._country(c) for c in countries),
            salaries=tuple(
                ProfileSalary(
                    project_id=s.project_id,
                    profile_id=s.profile_id,
                    country_id=s.country_id,
                    year=s.year,
                    salary=to_decimal(s.salary),
                )
                for s in salaries
            ),
            work_packages=tuple(
                WorkPackage(work_package_id=wp.id, project_id=wp.project_id, name=wp.name)
                for wp in work_packages
            ),
            deliverables=tuple(
                Deliverable(
                    deliverable_id=d.id,
                    work_package_id=d.work_package_id,
                    name=d.name,
                )
                for d in deliverables
            ),
            quantities=tuple(
                DeliverableYearQuantity(
                    deliverable_id=q.deliverable_id,
                    year_number=q.year_number,
                    quantity=to_decimal(q.quantity),
                    operational_to=q.operational_to,
                    dm_real=q.dm_real,
                    gmbs_real=q.gmbs_real,
                )
                for d in deliverables
                for q in d.yearly_quantities
            ),
            steps=tuple(
                Step(
                    step_id=s.id,
                    deliverable_id=s.deliverable_id,
                    profile_id=s.profile_id,
                    country_id=s.country_id,
                    unit=TimeUnit.parse(s.unit),
                    name=s.name,
                )
                for s in steps
            ),
            step_years=tuple(
                StepYear(
                    step_id=yd.step_id,
                    year=yd.year,
                    process_time=to_decimal(yd.process_time),
                    mng=to_decimal(yd.mng),
                    office=bool(yd.office),
                    hardware=bool(yd.hardware),
                    buckets={
                        bucket: to_decimal(getattr(yd, bucket.value))
                        for bucket in CostBucket
                    },
                )
                for s in steps
                for yd in s.yearly_data
            ),
            costs=tuple(self._cost(c) for c in costs),
        )

        logger.debug(
            "quote_snapshot_loaded",
            extra={
                "project_id": str(project_id),
                "step_count": len(snapshot.steps),
                "step_year_count": len(snapshot.step_years),
                "cost_count": len(snapshot.costs),
            },
        )
        return snapshot

    @staticmethod
    def _country(model: CountryConfigModel) -> CountryConfig:
        return CountryConfig(
            project_id=model.project_id,
            country_id=model.country_id,
            working_days=to_decimal(model.working_days),
            activity_rate=to_decimal(model.activity_rate),
            hours_per_day=to_decimal(model.hours_per_day),
            social_contribution_rate=to_decimal(model.social_contribution_rate),
            npt_rate=to_decimal(model.npt_rate),
            it_cost=to_decimal(model.it_cost),
            premises_rate=to_decimal(model.premises_rate),
            total_days=to_decimal(model.total_days),
            management_yearly_salary=(
                to_decimal(model.management_yearly_salary)
                if model.management_yearly_salary is not None
                else None
            ),
        )

    @staticmethod
    def _cost(model: NonOperationalCostModel) -> NonOperationalCost:
        try:
            context = CostContext(str(model.context).strip().lower())
        except ValueError as exc:
            raise InvalidCostContextError(str(model.id), model.context) from exc
        return NonOperationalCost(
            cost_id=model.id,
            project_id=model.project_id,
            context=context,
            type=model.type,
            quantity=to_decimal(model.quantity),
            unit_cost=to_decimal(model.unit_cost),
            year=model.year,
            reinvoiced=bool(model.reinvoiced),
            step_ids=tuple(sorted((s.id for s in model.steps), key=str)),
            concept=model.concept,
        )
