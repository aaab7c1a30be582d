# payroll_engine/rates/tables.py

import dataclasses
import hashlib
import json
from bisect import bisect_right
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

import pytz

from payroll_engine.errors import ConfigurationError, InputError, InvariantViolation
from payroll_engine.utils import ZERO, decimal_str, round_money, to_decimal


# --- DAY / TIME CLASSIFICATION ---

class DayType(Enum):
    REGULAR = 'regular'
    REST_DAY = 'rest_day'
    REGULAR_HOLIDAY = 'regular_holiday'
    SPECIAL_HOLIDAY = 'special_holiday'
    REGULAR_HOLIDAY_REST_DAY = 'regular_holiday_rest_day'
    SPECIAL_HOLIDAY_REST_DAY = 'special_holiday_rest_day'

    @classmethod
    def from_flags(cls, rest_day, regular_holiday, special_holiday):
        if regular_holiday and special_holiday:
            raise InputError('conflicting_day_flags', 'a day cannot be both a regular and a special holiday')
        if regular_holiday:
            return cls.REGULAR_HOLIDAY_REST_DAY if rest_day else cls.REGULAR_HOLIDAY
        if special_holiday:
            return cls.SPECIAL_HOLIDAY_REST_DAY if rest_day else cls.SPECIAL_HOLIDAY
        return cls.REST_DAY if rest_day else cls.REGULAR

    @property
    def is_rest_day(self):
        return self in (DayType.REST_DAY, DayType.REGULAR_HOLIDAY_REST_DAY, DayType.SPECIAL_HOLIDAY_REST_DAY)


class TimeType(Enum):
    REGULAR = 'regular'
    NIGHT_DIFF = 'night_diff'
    OVERTIME = 'overtime'
    NIGHT_DIFF_OVERTIME = 'night_diff_overtime'

    @classmethod
    def of(cls, overtime, night):
        if overtime:
            return cls.NIGHT_DIFF_OVERTIME if night else cls.OVERTIME
        return cls.NIGHT_DIFF if night else cls.REGULAR

    @property
    def is_overtime(self):
        return self in (TimeType.OVERTIME, TimeType.NIGHT_DIFF_OVERTIME)

    @property
    def is_night(self):
        return self in (TimeType.NIGHT_DIFF, TimeType.NIGHT_DIFF_OVERTIME)


class PayFrequency(Enum):
    WEEKLY = 'weekly'
    BI_WEEKLY = 'bi-weekly'
    SEMI_MONTHLY = 'semi-monthly'
    MONTHLY = 'monthly'

    @property
    def monthly_factor(self):
        """How many pay periods of this frequency make up one month."""
        return _MONTHLY_FACTORS[self]


_MONTHLY_FACTORS = {
    PayFrequency.WEEKLY: Decimal('4.33'),
    PayFrequency.BI_WEEKLY: Decimal('2.167'),
    PayFrequency.SEMI_MONTHLY: Decimal('2'),
    PayFrequency.MONTHLY: Decimal('1'),
}


# --- MULTIPLIER TABLE ---

def multiplier_key(day_type, time_type):
    return f'{day_type.value}.{time_type.value}'


def _parse_multiplier_key(key):
    try:
        if isinstance(key, tuple):
            day_part, time_part = key
        else:
            day_part, time_part = str(key).split('.')
        return DayType(day_part), TimeType(time_part)
    except ValueError:
        raise ConfigurationError(f'Malformed multiplier key {key!r}; expected "<day_type>.<time_type>"')


class RateMultiplierTable:
    """
    Composite-key table: (DayType, TimeType) -> multiplier.
    Stacked premiums (e.g. rest day + night diff + overtime) are one key each.
    """

    def __init__(self, entries):
        table = {}
        for key, value in dict(entries).items():
            try:
                multiplier = to_decimal(value)
            except ValueError as e:
                raise ConfigurationError(f'Multiplier for {key!r} is not a number') from e
            table[_parse_multiplier_key(key)] = multiplier
        self._entries = MappingProxyType(table)

    def __len__(self):
        return len(self._entries)

    def __eq__(self, other):
        return isinstance(other, RateMultiplierTable) and dict(self._entries) == dict(other._entries)

    def get(self, day_type, time_type):
        return self._entries.get((day_type, time_type))

    def merged(self, overrides):
        entries = dict(self._entries)
        entries.update(RateMultiplierTable(overrides)._entries)
        return RateMultiplierTable(entries)

    def validate(self):
        missing = [multiplier_key(d, t) for d in DayType for t in TimeType if (d, t) not in self._entries]
        if missing:
            raise ConfigurationError(f'Rate table has no multiplier for: {", ".join(missing)}')
        for (day_type, time_type), multiplier in self._entries.items():
            if multiplier < Decimal('1'):
                raise ConfigurationError(
                    f'Multiplier for {multiplier_key(day_type, time_type)} is {multiplier}; must be at least 1.0'
                )

    def to_dict(self):
        return {multiplier_key(d, t): decimal_str(m) for (d, t), m in sorted(
            self._entries.items(), key=lambda item: multiplier_key(*item[0]))}


# --- CONTRIBUTION / TAX BRACKETS ---

@dataclass(frozen=True)
class ContributionBracket:
    lower: Decimal
    upper: Optional[Decimal]
    fixed_amount: Decimal = ZERO
    rate: Decimal = ZERO
    cap: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, data):
        try:
            return cls(
                lower=to_decimal(data['lower']),
                upper=None if data.get('upper') is None else to_decimal(data['upper']),
                fixed_amount=to_decimal(data.get('fixed_amount', '0')),
                rate=to_decimal(data.get('rate', '0')),
                cap=None if data.get('cap') is None else to_decimal(data['cap']),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f'Malformed bracket {data!r}') from e

    def contains(self, amount):
        return self.lower <= amount and (self.upper is None or amount < self.upper)

    def apply(self, amount):
        value = self.fixed_amount + self.rate * (amount - self.lower)
        if self.cap is not None:
            value = min(value, self.cap)
        return value

    def to_dict(self):
        return {
            'lower': decimal_str(self.lower),
            'upper': decimal_str(self.upper),
            'fixed_amount': decimal_str(self.fixed_amount),
            'rate': decimal_str(self.rate),
            'cap': decimal_str(self.cap),
        }


class BracketTable:
    """Half-open brackets sorted by lower bound; together they cover [0, inf)."""

    def __init__(self, name, brackets):
        self.name = name
        self.brackets = tuple(sorted(
            (b if isinstance(b, ContributionBracket) else ContributionBracket.from_dict(b) for b in brackets),
            key=lambda b: b.lower,
        ))
        self._check_partition()
        self._lowers = [b.lower for b in self.brackets]

    def _check_partition(self):
        if not self.brackets:
            raise ConfigurationError(f'Bracket table {self.name!r} is empty')
        if self.brackets[0].lower != 0:
            raise ConfigurationError(f'Bracket table {self.name!r} does not start at 0')
        for bracket in self.brackets:
            if bracket.upper is not None and bracket.upper <= bracket.lower:
                raise ConfigurationError(f'Bracket table {self.name!r} has an empty range at {bracket.lower}')
            if bracket.rate < 0 or bracket.fixed_amount < 0:
                raise ConfigurationError(f'Bracket table {self.name!r} has a negative amount at {bracket.lower}')
        for previous, current in zip(self.brackets, self.brackets[1:]):
            if previous.upper is None or previous.upper > current.lower:
                raise ConfigurationError(f'Bracket table {self.name!r} overlaps at {current.lower}')
            if previous.upper < current.lower:
                raise ConfigurationError(
                    f'Bracket table {self.name!r} has a gap between {previous.upper} and {current.lower}'
                )
        if self.brackets[-1].upper is not None:
            raise ConfigurationError(f'Bracket table {self.name!r} stops at {self.brackets[-1].upper}')

    def __eq__(self, other):
        return isinstance(other, BracketTable) and self.brackets == other.brackets

    def lookup(self, amount):
        amount = to_decimal(amount)
        if amount < 0:
            raise InvariantViolation(f'{self.name}: bracket lookup on negative amount {amount}')
        return self.brackets[bisect_right(self._lowers, amount) - 1]

    def compute(self, amount):
        amount = to_decimal(amount)
        return round_money(self.lookup(amount).apply(amount))

    def to_list(self):
        return [b.to_dict() for b in self.brackets]


# --- PER-EMPLOYEE OVERRIDES ---

@dataclass(frozen=True)
class EmployeeOverrides:
    hours_per_day: Optional[Decimal] = None
    monthly_working_days: Optional[Decimal] = None
    custom_rate: Optional[Decimal] = None

    def to_dict(self):
        return {k: decimal_str(v) for k, v in dataclasses.asdict(self).items() if v is not None}


NO_OVERRIDES = EmployeeOverrides()

OVERRIDE_TYPES = ('hours_per_day', 'monthly_working_days', 'custom_rate')


# --- CONFIG SNAPSHOT ---

REQUIRED_TABLES = (
    'sss', 'sss_employer', 'philhealth', 'philhealth_employer',
    'pagibig', 'pagibig_employer', 'income_tax',
)


def _parse_time(value):
    if isinstance(value, time):
        return value
    try:
        return datetime.strptime(str(value), '%H:%M').time()
    except ValueError as e:
        raise ConfigurationError(f'Expected HH:MM, got {value!r}') from e


def _parse_bool(value):
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ('1', 'true', 'yes', 'on'):
        return True
    if text in ('0', 'false', 'no', 'off'):
        return False
    raise ConfigurationError(f'Expected a boolean, got {value!r}')


def _parse_names(value):
    if isinstance(value, (set, frozenset, list, tuple)):
        return frozenset(str(v).strip().lower() for v in value)
    return frozenset(v.strip().lower() for v in str(value).split(',') if v.strip())


def _parse_decimal(value):
    try:
        return to_decimal(value)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def _parse_int(value):
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f'Expected a whole number, got {value!r}') from e


def _parse_frequency(value):
    try:
        return PayFrequency(value)
    except ValueError as e:
        raise ConfigurationError(f'Unknown pay frequency {value!r}') from e


# Scalar settings that can be set through "rates" configuration rows.
SETTING_PARSERS = {
    'timezone': str,
    'pay_frequency': _parse_frequency,
    'standard_daily_hours': _parse_decimal,
    'monthly_working_days': _parse_decimal,
    'night_diff_start': _parse_time,
    'night_diff_end': _parse_time,
    'rest_day_regular_minutes': _parse_int,
    'undertime_tolerance_minutes': _parse_int,
    'early_clockin_offsets_overtime': _parse_bool,
    'payroll_increment_rounding': _parse_bool,
    'late_deduction_enabled': _parse_bool,
    'undertime_deduction_enabled': _parse_bool,
    'contribution_employment_types': _parse_names,
    'holiday_pay_employment_types': _parse_names,
    'holiday_unworked_multiplier': _parse_decimal,
    'thirteenth_month_exempt_ceiling': _parse_decimal,
}


def parse_setting(name, value):
    if name not in SETTING_PARSERS:
        raise ConfigurationError(f'Unknown payroll setting {name!r}')
    return SETTING_PARSERS[name](value)


@dataclass(frozen=True)
class PayrollConfig:
    """
    One immutable rate version. A payroll run takes a single snapshot at
    start and passes it to every calculation; nothing reads configuration
    from anywhere else.
    """
    effective_date: date
    rate_table: RateMultiplierTable
    brackets: Mapping[str, BracketTable]
    timezone: str = 'Asia/Manila'
    pay_frequency: PayFrequency = PayFrequency.MONTHLY
    standard_daily_hours: Decimal = Decimal('8')
    monthly_working_days: Decimal = Decimal('22')
    night_diff_start: time = time(22, 0)
    night_diff_end: time = time(6, 0)
    rest_day_regular_minutes: int = 480
    undertime_tolerance_minutes: int = 30
    early_clockin_offsets_overtime: bool = True
    payroll_increment_rounding: bool = False
    late_deduction_enabled: bool = False
    undertime_deduction_enabled: bool = False
    contribution_employment_types: frozenset = frozenset({'regular'})
    holiday_pay_employment_types: frozenset = frozenset({'regular'})
    holiday_unworked_multiplier: Decimal = Decimal('1.00')
    thirteenth_month_exempt_ceiling: Decimal = Decimal('90000.00')
    employee_overrides: Mapping[str, EmployeeOverrides] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'brackets', MappingProxyType(dict(self.brackets)))
        object.__setattr__(self, 'employee_overrides', MappingProxyType(
            {str(k): v for k, v in dict(self.employee_overrides).items()}))

    def bracket_table(self, name):
        try:
            return self.brackets[name]
        except KeyError:
            raise ConfigurationError(f'No bracket table named {name!r}')

    def overrides_for(self, employee_id):
        return self.employee_overrides.get(str(employee_id), NO_OVERRIDES)

    def with_settings(self, **changes):
        return dataclasses.replace(self, **changes)

    def validate(self):
        """Fail fast on anything that would silently mis-price a payslip."""
        self.rate_table.validate()
        missing = [name for name in REQUIRED_TABLES if name not in self.brackets]
        if missing:
            raise ConfigurationError(f'Missing bracket tables: {", ".join(missing)}')
        try:
            pytz.timezone(self.timezone)
        except pytz.UnknownTimeZoneError as e:
            raise ConfigurationError(f'Unknown timezone {self.timezone!r}') from e
        if self.standard_daily_hours <= 0 or self.monthly_working_days <= 0:
            raise ConfigurationError('standard_daily_hours and monthly_working_days must be positive')
        if self.night_diff_start == self.night_diff_end:
            raise ConfigurationError('Night differential window is empty')
        if self.rest_day_regular_minutes <= 0:
            raise ConfigurationError('rest_day_regular_minutes must be positive')
        for employee_id, overrides in self.employee_overrides.items():
            for name, value in dataclasses.asdict(overrides).items():
                if value is not None and value <= 0:
                    raise ConfigurationError(f'Override {name} for employee {employee_id} must be positive')
        return self

    def to_dict(self):
        settings = {}
        for name in SETTING_PARSERS:
            value = getattr(self, name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, time):
                value = value.strftime('%H:%M')
            elif isinstance(value, frozenset):
                value = sorted(value)
            elif isinstance(value, Decimal):
                value = decimal_str(value)
            settings[name] = value
        return {
            'effective_date': self.effective_date.isoformat(),
            'settings': settings,
            'multipliers': self.rate_table.to_dict(),
            'brackets': {name: table.to_list() for name, table in sorted(self.brackets.items())},
            'employee_overrides': {k: v.to_dict() for k, v in sorted(self.employee_overrides.items())},
        }

    @property
    def fingerprint(self):
        payload = json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(payload.encode('utf-8')).hexdigest()
