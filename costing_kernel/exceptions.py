"""
Typed Exception Hierarchy for the Costing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A recompute either applies completely or not at all. When it aborts, the
caller must learn *which* piece of master data is missing so it can be fixed
before quoting resumes. Parsing messages for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        service.recompute_project(project_id)
    except SalaryNotFoundError as e:
        api_response(code=e.code, profile=e.profile_id, year=e.year)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CostingError (base)
    |
    +-- ReferenceDataError
    |   +-- ConfigNotFoundError
    |   +-- InvalidAnnualHoursError
    |   +-- SalaryNotFoundError
    |   +-- StepYearNotFoundError
    |
    +-- MarginError
    |   +-- DivisionByZeroError
    |   +-- UnknownMarginTypeError
    |   +-- MarginConfigMissingError
    |
    +-- ProjectError
    |   +-- ProjectNotFoundError
    |
    +-- CostRecordError
        +-- InvalidCostContextError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                     | When Raised
----------------|--------------------------|-----------------------------------
Reference data  | CONFIG_NOT_FOUND         | No country config for project/country
                | INVALID_ANNUAL_HOURS     | working_days x activity x hours <= 0
                | SALARY_NOT_FOUND         | No exact-year profile salary
                | STEP_YEAR_NOT_FOUND      | Step has no yearly row for the year
----------------|--------------------------|-----------------------------------
Margin          | DIVISION_BY_ZERO         | margin_goal = 100%
                | UNKNOWN_MARGIN_TYPE      | margin_type not DM / GMBS
                | MARGIN_CONFIG_MISSING    | Project has no margin type or goal
----------------|--------------------------|-----------------------------------
Project         | PROJECT_NOT_FOUND        | Project ID doesn't exist
----------------|--------------------------|-----------------------------------
Cost record     | INVALID_COST_CONTEXT     | context not it/subcontract/travel

None of these are retried: they describe missing master data, not transient
faults. All of them abort the surrounding recompute transaction.
"""


class CostingError(Exception):
    """
    Base exception for all costing errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "COSTING_ERROR"


# Reference data exceptions


class ReferenceDataError(CostingError):
    """Base exception for missing or invalid rate-table data."""

    code: str = "REFERENCE_DATA_ERROR"


class ConfigNotFoundError(ReferenceDataError):
    """No country configuration exists for the project/country pair."""

    code: str = "CONFIG_NOT_FOUND"

    def __init__(self, project_id: str, country_id: str):
        self.project_id = str(project_id)
        self.country_id = str(country_id)
        super().__init__(
            f"No country configuration for project {project_id}, country {country_id}"
        )


class InvalidAnnualHoursError(ReferenceDataError):
    """Annual hours computed from the country configuration are not positive."""

    code: str = "INVALID_ANNUAL_HOURS"

    def __init__(self, project_id: str, country_id: str, annual_hours: str):
        self.project_id = str(project_id)
        self.country_id = str(country_id)
        self.annual_hours = str(annual_hours)
        super().__init__(
            f"Annual hours must be > 0 for project {project_id}, "
            f"country {country_id}: got {annual_hours}"
        )


class SalaryNotFoundError(ReferenceDataError):
    """
    No salary row exists for the exact (project, profile, country, year).

    The lookup is strict: no nearest-year fallback is attempted.
    """

    code: str = "SALARY_NOT_FOUND"

    def __init__(self, project_id: str, profile_id: str, country_id: str, year: int):
        self.project_id = str(project_id)
        self.profile_id = str(profile_id)
        self.country_id = str(country_id)
        self.year = year
        super().__init__(
            f"No salary for project {project_id}, profile {profile_id}, "
            f"country {country_id}, year {year}"
        )


class StepYearNotFoundError(ReferenceDataError):
    """Step has no yearly data row for the requested year."""

    code: str = "STEP_YEAR_NOT_FOUND"

    def __init__(self, step_id: str, year: int):
        self.step_id = str(step_id)
        self.year = year
        super().__init__(f"No yearly data for step {step_id} in year {year}")


# Margin exceptions


class MarginError(CostingError):
    """Base exception for margin solving errors."""

    code: str = "MARGIN_ERROR"


class DivisionByZeroError(MarginError):
    """Margin goal of 100% makes the margin equation unsolvable."""

    code: str = "DIVISION_BY_ZERO"

    def __init__(self, margin_type: str, margin_goal: str):
        self.margin_type = str(margin_type)
        self.margin_goal = str(margin_goal)
        super().__init__(
            f"Division by zero solving {margin_type} margin: margin_goal = {margin_goal}%"
        )


class UnknownMarginTypeError(MarginError):
    """Margin type is neither DM nor GMBS."""

    code: str = "UNKNOWN_MARGIN_TYPE"

    def __init__(self, margin_type: str):
        self.margin_type = str(margin_type)
        super().__init__(f"Unknown margin type: {margin_type!r}")


class MarginConfigMissingError(MarginError):
    """Project has no margin type or margin goal configured."""

    code: str = "MARGIN_CONFIG_MISSING"

    def __init__(self, project_id: str):
        self.project_id = str(project_id)
        super().__init__(f"Project {project_id} has no margin_type or margin_goal")


# Project exceptions


class ProjectError(CostingError):
    """Base exception for project lookup errors."""

    code: str = "PROJECT_ERROR"


class ProjectNotFoundError(ProjectError):
    """Project with given ID was not found."""

    code: str = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: str):
        self.project_id = str(project_id)
        super().__init__(f"Project not found: {project_id}")


# Cost record exceptions


class CostRecordError(CostingError):
    """Base exception for non-operational cost record errors."""

    code: str = "COST_RECORD_ERROR"


class InvalidCostContextError(CostRecordError):
    """Non-operational cost context is not one of it/subcontract/travel."""

    code: str = "INVALID_COST_CONTEXT"

    def __init__(self, cost_id: str, context: str):
        self.cost_id = str(cost_id)
        self.context = str(context)
        super().__init__(f"Invalid context {context!r} on non-operational cost {cost_id}")
