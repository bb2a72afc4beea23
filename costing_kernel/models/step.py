"""
Module: costing_kernel.models.step
Responsibility: ORM persistence for steps and their per-calendar-year data.
    StepYearlyDataModel holds both the operator inputs (process_time, mng,
    office, hardware) and every cost bucket a recompute writes.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (step_id, year) is unique: one yearly row per step and calendar year.
    - Cost buckets are overwritten as a whole by each recompute pass (reset
      then accumulate in memory, written once), never incremented in SQL.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from costing_kernel.db.base import TrackedBase, UUIDString


class StepModel(TrackedBase):
    """One unit of work inside a deliverable, staffed by a profile in a country."""

    __tablename__ = "steps"

    __table_args__ = (
        Index("idx_step_deliverable", "deliverable_id"),
    )

    deliverable_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("deliverables.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    profile_id: Mapped[str] = mapped_column(String(50), nullable=False)

    country_id: Mapped[str] = mapped_column(String(50), nullable=False)

    # hours | days
    unit: Mapped[str] = mapped_column(String(10), nullable=False, default="hours")

    yearly_data: Mapped[list[StepYearlyDataModel]] = relationship(
        back_populates="step",
        cascade="all, delete-orphan",
        order_by="StepYearlyDataModel.year",
    )


def _bucket() -> Mapped[Decimal]:
    return mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))


class StepYearlyDataModel(TrackedBase):
    """
    Inputs and computed cost buckets of one step in one calendar year.

    Contract:
        process_time is expressed in the step's unit.  mng is a percentage.
        Every *_cost(s) column is engine output.
    """

    __tablename__ = "step_yearly_data"

    __table_args__ = (
        UniqueConstraint("step_id", "year", name="uq_step_year"),
        Index("idx_step_yearly_data_year", "year"),
    )

    step_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("steps.id", ondelete="CASCADE"),
        nullable=False,
    )

    year: Mapped[int] = mapped_column(nullable=False)

    # Inputs
    process_time: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )
    mng: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    office: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hardware: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Outputs
    fte: Mapped[Decimal] = _bucket()
    salaries_cost: Mapped[Decimal] = _bucket()
    management_costs: Mapped[Decimal] = _bucket()
    npt_costs: Mapped[Decimal] = _bucket()
    premises_costs: Mapped[Decimal] = _bucket()
    it_costs: Mapped[Decimal] = _bucket()
    it_recurrent_costs: Mapped[Decimal] = _bucket()
    travel_costs: Mapped[Decimal] = _bucket()
    subco_costs: Mapped[Decimal] = _bucket()
    support_costs: Mapped[Decimal] = _bucket()
    quality_costs: Mapped[Decimal] = _bucket()
    ops_management_costs: Mapped[Decimal] = _bucket()
    lean_management_costs: Mapped[Decimal] = _bucket()

    step: Mapped[StepModel] = relationship(back_populates="yearly_data")
