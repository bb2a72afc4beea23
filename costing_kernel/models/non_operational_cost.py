"""
Module: costing_kernel.models.non_operational_cost
Responsibility: ORM persistence for pooled (non-operational) costs and their
    optional explicit step associations.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - context is one of it / subcontract / travel (validated when the
      selector builds records; CRUD validates on write).
    - The allocator never mutates a cost record; it only feeds the
      StepYearlyData buckets.
    - year NULL means the cost applies to every project year.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Column, ForeignKey, Index, Numeric, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship

from costing_kernel.db.base import Base, TrackedBase, UUIDString
from costing_kernel.models.step import StepModel

step_non_operational_costs = Table(
    "step_non_operational_costs",
    Base.metadata,
    Column("step_id", UUIDString(), ForeignKey("steps.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "cost_id",
        UUIDString(),
        ForeignKey("non_operational_costs.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class NonOperationalCostModel(TrackedBase):
    """A lump IT / travel / subcontracting cost to be spread over steps."""

    __tablename__ = "non_operational_costs"

    __table_args__ = (
        Index("idx_non_operational_cost_project_context", "project_id", "context"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )

    # it | subcontract | travel
    context: Mapped[str] = mapped_column(String(20), nullable=False)

    # e.g. "License", "License Per Use"
    type: Mapped[str] = mapped_column(String(100), nullable=False)

    concept: Mapped[str | None] = mapped_column(String(200), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("1")
    )

    unit_cost: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    year: Mapped[int | None] = mapped_column(nullable=True)

    reinvoiced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    steps: Mapped[list[StepModel]] = relationship(secondary=step_non_operational_costs)
