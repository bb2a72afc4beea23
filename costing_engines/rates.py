"""
Module: costing_engines.rates
Responsibility:
    Resolve the rate-table values a step cost needs: annual hours and
    percentage rates from the project's country configuration, and the exact
    yearly salary of a profile.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Operates on frozen records
    already loaded by the quote selector.

Invariants enforced:
    - annual_hours = working_days * activity_rate / 100 * hours_per_day > 0.
    - Salary lookup is exact-year; there is no nearest-year fallback.

Failure modes:
    - ConfigNotFoundError when the country has no configuration.
    - InvalidAnnualHoursError when annual hours are not positive.
    - SalaryNotFoundError when no salary row matches exactly.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Hashable

from costing_engines.tracer import traced_engine
from costing_kernel.domain.records import CountryConfig, ProfileSalary
from costing_kernel.domain.values import ZERO, percent
from costing_kernel.exceptions import (
    ConfigNotFoundError,
    InvalidAnnualHoursError,
    SalaryNotFoundError,
)
from costing_kernel.logging_config import get_logger

logger = get_logger("engines.rates")


def annual_hours(config: CountryConfig) -> Decimal:
    """working_days x activity_rate/100 x hours_per_day, unchecked."""
    return config.working_days * percent(config.activity_rate) * config.hours_per_day


@dataclass(frozen=True)
class CountryRates:
    """
    Resolved rates of one country.

    Guarantees:
        - annual_hours > 0.
    """

    country_id: str
    annual_hours: Decimal
    hours_per_day: Decimal
    social_contribution_rate: Decimal
    npt_rate: Decimal
    it_cost: Decimal
    premises_rate: Decimal
    total_days: Decimal
    working_days: Decimal
    activity_rate: Decimal
    management_yearly_salary: Decimal | None = None

    @property
    def loaded_factor(self) -> Decimal:
        """1 + social contribution rate as a fraction."""
        return Decimal("1") + percent(self.social_contribution_rate)


class RateResolver:
    """
    Resolve country configuration for one project.

    Contract:
        Built from the project's country rows; ``resolve`` is a pure lookup.
    Non-goals:
        - Does not cache across recomputes; a new resolver is built per run.
    """

    def __init__(self, project_id: Hashable, countries: Iterable[CountryConfig]):
        self.project_id = project_id
        self._countries = {c.country_id: c for c in countries}

    @traced_engine("rate_resolver", "1.0", fingerprint_fields=("country_id",))
    def resolve(self, *, country_id: str) -> CountryRates:
        """
        Return the rates of ``country_id``.

        Raises:
            ConfigNotFoundError: No configuration row for the country.
            InvalidAnnualHoursError: Computed annual hours <= 0.
        """
        config = self._countries.get(country_id)
        if config is None:
            logger.warning(
                "country_config_not_found",
                extra={"project_id": str(self.project_id), "country_id": country_id},
            )
            raise ConfigNotFoundError(str(self.project_id), country_id)

        hours = annual_hours(config)
        if hours <= ZERO:
            raise InvalidAnnualHoursError(str(self.project_id), country_id, str(hours))

        return CountryRates(
            country_id=country_id,
            annual_hours=hours,
            hours_per_day=config.hours_per_day,
            social_contribution_rate=config.social_contribution_rate,
            npt_rate=config.npt_rate,
            it_cost=config.it_cost,
            premises_rate=config.premises_rate,
            total_days=config.total_days,
            working_days=config.working_days,
            activity_rate=config.activity_rate,
            management_yearly_salary=config.management_yearly_salary,
        )

    def config(self, *, country_id: str) -> CountryConfig:
        """
        Raw configuration of ``country_id`` without the annual hours check.

        Raises:
            ConfigNotFoundError: No configuration row for the country.
        """
        config = self._countries.get(country_id)
        if config is None:
            raise ConfigNotFoundError(str(self.project_id), country_id)
        return config


class SalaryResolver:
    """Exact-year salary lookup for one project."""

    def __init__(self, project_id: Hashable, salaries: Iterable[ProfileSalary]):
        self.project_id = project_id
        self._salaries = {
            (s.profile_id, s.country_id, s.year): s.salary for s in salaries
        }

    @traced_engine(
        "salary_resolver", "1.0", fingerprint_fields=("profile_id", "country_id", "year")
    )
    def resolve(self, *, profile_id: str, country_id: str, year: int) -> Decimal:
        """
        Return the yearly salary.

        Raises:
            SalaryNotFoundError: No row for this exact year.
        """
        salary = self._salaries.get((profile_id, country_id, year))
        if salary is None:
            raise SalaryNotFoundError(str(self.project_id), profile_id, country_id, year)
        return salary
