"""
Module: costing_kernel.models.rates
Responsibility: ORM persistence for the rate tables the step cost calculator
    reads: per-project country configuration and per-profile yearly salaries.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (project_id, country_id) is unique in project_countries.
    - (project_id, profile_id, country_id, year) is unique in
      project_profile_salaries; lookups are exact-year only.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from costing_kernel.db.base import TrackedBase, UUIDString


class CountryConfigModel(TrackedBase):
    """
    Working-time and overhead parameters of one country inside one project.

    annual_hours = working_days * activity_rate / 100 * hours_per_day.
    Percent columns hold percentages (20 means 20%).
    """

    __tablename__ = "project_countries"

    __table_args__ = (
        UniqueConstraint("project_id", "country_id", name="uq_project_country"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )

    country_id: Mapped[str] = mapped_column(String(50), nullable=False)

    working_days: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    activity_rate: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    hours_per_day: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    social_contribution_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9), nullable=True
    )

    npt_rate: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    # Per-hour IT seat premium for hardware-equipped steps
    it_cost: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    premises_rate: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    # Calendar days used by the premises utilisation factor
    total_days: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    management_yearly_salary: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9), nullable=True
    )


class ProfileSalaryModel(TrackedBase):
    """Yearly salary of a profile in a country for one calendar year."""

    __tablename__ = "project_profile_salaries"

    __table_args__ = (
        UniqueConstraint(
            "project_id", "profile_id", "country_id", "year",
            name="uq_project_profile_salary",
        ),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )

    profile_id: Mapped[str] = mapped_column(String(50), nullable=False)

    country_id: Mapped[str] = mapped_column(String(50), nullable=False)

    year: Mapped[int] = mapped_column(nullable=False)

    salary: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
