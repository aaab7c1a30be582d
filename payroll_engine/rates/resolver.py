# payroll_engine/rates/resolver.py

from payroll_engine.errors import ConfigurationError
from .tables import DayType, TimeType, multiplier_key


def resolve(day_type, time_type, config):
    """
    Composite multiplier for a worked segment.
    The table is looked up as-is; a missing key is a configuration error.
    """
    multiplier = config.rate_table.get(DayType(day_type), TimeType(time_type))
    if multiplier is None:
        raise ConfigurationError(f'No multiplier configured for {multiplier_key(DayType(day_type), TimeType(time_type))}')
    return multiplier
