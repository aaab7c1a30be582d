# payroll_engine/rates/__init__.py

from .tables import (
    BracketTable, ContributionBracket, DayType, EmployeeOverrides, PayFrequency,
    PayrollConfig, RateMultiplierTable, TimeType,
)
from .defaults import default_config
from .resolver import resolve
from .store import ConfigEntry, OverrideEntry, RateTableStore
