"""
Module: costing_kernel.models.project
Responsibility: ORM persistence for the project tree: Project -> WorkPackage ->
    Deliverable, plus the per-ordinal-year deliverable quantities that carry the
    solved Operational TO and realised margins.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - margin_goal != 100 is required for solving (checked by the margin engine,
      not by a constraint, so CRUD can store a draft value).
    - (deliverable_id, year_number) is unique: one quantity row per ordinal year.
    - operational_to, dm_real and gmbs_real are written only by a recompute.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from costing_kernel.db.base import TrackedBase, UUIDString


class ProjectModel(TrackedBase):
    """
    A quoted services project.

    Contract:
        start_date maps ordinal year n to calendar year
        start_date.year + n - 1.  margin_type / margin_goal drive the
        margin solver for every deliverable in the project.
    """

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # DM | GMBS
    margin_type: Mapped[str | None] = mapped_column(String(10), nullable=True)

    margin_goal: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    work_packages: Mapped[list[WorkPackageModel]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
    )


class WorkPackageModel(TrackedBase):
    """A work package groups deliverables inside a project."""

    __tablename__ = "work_packages"

    __table_args__ = (
        Index("idx_work_package_project", "project_id"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    project: Mapped[ProjectModel] = relationship(back_populates="work_packages")

    deliverables: Mapped[list[DeliverableModel]] = relationship(
        back_populates="work_package",
        cascade="all, delete-orphan",
    )


class DeliverableModel(TrackedBase):
    """A deliverable is produced by a sequence of steps."""

    __tablename__ = "deliverables"

    __table_args__ = (
        Index("idx_deliverable_work_package", "work_package_id"),
    )

    work_package_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("work_packages.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    work_package: Mapped[WorkPackageModel] = relationship(back_populates="deliverables")

    yearly_quantities: Mapped[list[DeliverableYearlyQuantityModel]] = relationship(
        back_populates="deliverable",
        cascade="all, delete-orphan",
        order_by="DeliverableYearlyQuantityModel.year_number",
    )


class DeliverableYearlyQuantityModel(TrackedBase):
    """
    Volume of a deliverable in one ordinal project year, with the solved price.

    Guarantees:
        - year_number is 1-based.
        - operational_to, dm_real, gmbs_real are rounded to 2 places when
          written by the margin recompute.
    """

    __tablename__ = "deliverable_yearly_quantities"

    __table_args__ = (
        UniqueConstraint("deliverable_id", "year_number", name="uq_deliverable_year"),
    )

    deliverable_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("deliverables.id", ondelete="CASCADE"),
        nullable=False,
    )

    year_number: Mapped[int] = mapped_column(nullable=False)

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    operational_to: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    dm_real: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    gmbs_real: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    deliverable: Mapped[DeliverableModel] = relationship(back_populates="yearly_quantities")
