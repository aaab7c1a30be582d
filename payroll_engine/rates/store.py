# payroll_engine/rates/store.py

import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Optional

from payroll_engine.errors import ConfigurationError
from payroll_engine.utils import to_decimal
from .defaults import DEFAULT_MULTIPLIERS, default_brackets
from .tables import (
    OVERRIDE_TYPES, REQUIRED_TABLES, BracketTable, EmployeeOverrides, PayrollConfig,
    RateMultiplierTable, parse_setting,
)

logger = logging.getLogger(__name__)

MULTIPLIER = 'multiplier'
SETTINGS = 'rates'


@dataclass(frozen=True)
class ConfigEntry:
    """One effective-dated configuration value, as stored in payroll_configuration."""
    config_type: str
    config_key: str
    config_value: str
    effective_date: date
    expiry_date: Optional[date] = None
    is_active: bool = True

    def active_on(self, as_of):
        return (self.is_active and self.effective_date <= as_of
                and (self.expiry_date is None or self.expiry_date > as_of))


@dataclass(frozen=True)
class OverrideEntry:
    employee_id: str
    override_type: str
    value: str
    effective_from: date
    effective_until: Optional[date] = None
    is_active: bool = True

    def active_on(self, as_of):
        return (self.is_active and self.effective_from <= as_of
                and (self.effective_until is None or self.effective_until > as_of))


def _latest(entries, key, date_attr):
    """Keep, per key, the entry with the most recent effective date."""
    chosen = {}
    for entry in entries:
        k = key(entry)
        if k not in chosen or getattr(entry, date_attr) > getattr(chosen[k], date_attr):
            chosen[k] = entry
    return chosen


class RateTableStore:
    """
    Read model over effective-dated payroll configuration.

    Rows are written by configuration administration elsewhere; this class
    only answers "what was in force on date X" by producing an immutable
    PayrollConfig snapshot.
    """

    def __init__(self, entries=(), overrides=(), settings=None):
        self._entries = tuple(entries)
        self._overrides = tuple(overrides)
        self._settings = dict(settings or {})

    @classmethod
    def from_database(cls, session, settings=None):
        from payroll_engine.models.payroll import EmployeeOverride, PayrollConfiguration

        entries = [
            ConfigEntry(
                config_type=row.config_type,
                config_key=row.config_key,
                config_value=row.config_value,
                effective_date=row.effective_date,
                expiry_date=row.expiry_date,
                is_active=row.is_active,
            )
            for row in session.query(PayrollConfiguration).all()
        ]
        overrides = [
            OverrideEntry(
                employee_id=row.employee.employee_id_number,
                override_type=row.override_type,
                value=str(row.override_value),
                effective_from=row.effective_from,
                effective_until=row.effective_until,
                is_active=row.is_active,
            )
            for row in session.query(EmployeeOverride).all()
        ]
        logger.debug('Loaded %d configuration rows and %d employee overrides', len(entries), len(overrides))
        return cls(entries, overrides, settings)

    def active_entries(self, as_of):
        active = [e for e in self._entries if e.active_on(as_of)]
        return _latest(active, lambda e: (e.config_type, e.config_key), 'effective_date')

    def overrides_on(self, as_of):
        active = [o for o in self._overrides if o.active_on(as_of)]
        latest = _latest(active, lambda o: (o.employee_id, o.override_type), 'effective_from')

        values = defaultdict(dict)
        for (employee_id, override_type), entry in latest.items():
            if override_type not in OVERRIDE_TYPES:
                raise ConfigurationError(f'Unknown override type {override_type!r} for employee {employee_id}')
            try:
                values[employee_id][override_type] = to_decimal(entry.value)
            except ValueError as e:
                raise ConfigurationError(f'Override {override_type} for employee {employee_id}: {e}') from e
        return {employee_id: EmployeeOverrides(**fields) for employee_id, fields in values.items()}

    def snapshot(self, as_of):
        """Build and validate the PayrollConfig in force on `as_of`."""
        settings = {name: parse_setting(name, value) for name, value in self._settings.items()}
        multipliers = {}
        brackets = default_brackets()

        for (config_type, config_key), entry in sorted(self.active_entries(as_of).items()):
            if config_type == MULTIPLIER:
                multipliers[config_key] = entry.config_value
            elif config_type == SETTINGS:
                settings[config_key] = parse_setting(config_key, entry.config_value)
            elif config_type in REQUIRED_TABLES:
                if config_key != 'brackets':
                    raise ConfigurationError(f'Unknown key {config_key!r} for {config_type}')
                try:
                    rows = json.loads(entry.config_value)
                except ValueError as e:
                    raise ConfigurationError(f'{config_type} brackets are not valid JSON') from e
                brackets[config_type] = BracketTable(config_type, rows)
            else:
                raise ConfigurationError(f'Unknown configuration type {config_type!r}')

        config = PayrollConfig(
            effective_date=as_of,
            rate_table=RateMultiplierTable(DEFAULT_MULTIPLIERS).merged(multipliers),
            brackets=brackets,
            employee_overrides=self.overrides_on(as_of),
            **settings
        )
        config.validate()
        logger.info('Payroll configuration snapshot for %s (%s)', as_of.isoformat(), config.fingerprint[:12])
        return config
