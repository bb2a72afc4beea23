"""ORM models for projects, rate tables, steps and pooled costs."""

from costing_kernel.models.non_operational_cost import (
    NonOperationalCostModel,
    step_non_operational_costs,
)
from costing_kernel.models.project import (
    DeliverableModel,
    DeliverableYearlyQuantityModel,
    ProjectModel,
    WorkPackageModel,
)
from costing_kernel.models.rates import CountryConfigModel, ProfileSalaryModel
from costing_kernel.models.step import StepModel, StepYearlyDataModel

__all__ = [
    "ProjectModel",
    "WorkPackageModel",
    "DeliverableModel",
    "DeliverableYearlyQuantityModel",
    "CountryConfigModel",
    "ProfileSalaryModel",
    "StepModel",
    "StepYearlyDataModel",
    "NonOperationalCostModel",
    "step_non_operational_costs",
]
