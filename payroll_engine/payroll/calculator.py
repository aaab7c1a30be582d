# payroll_engine/payroll/calculator.py

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from payroll_engine.attendance.calculator import RecordStatus, round_to_payroll_increment
from payroll_engine.errors import InputError
from payroll_engine.rates.resolver import resolve
from payroll_engine.utils import ZERO, round_line, round_money, to_decimal
from .breakdown import BreakdownLine, PayCategory, PayrollBreakdown, price_line

logger = logging.getLogger(__name__)


class RateType(Enum):
    HOURLY = 'hourly'
    DAILY = 'daily'
    MONTHLY = 'monthly'


def _optional_date(value):
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


@dataclass(frozen=True)
class EmployeeContract:
    employee_id: str
    rate: Decimal
    rate_type: RateType = RateType.MONTHLY
    employment_type: str = 'regular'
    name: str = ''
    contract_start: Optional[date] = None
    contract_end: Optional[date] = None

    def __post_init__(self):
        if self.rate is None or self.rate <= 0:
            raise InputError('invalid_rate', f'employee {self.employee_id} has no positive pay rate')

    def check_period(self, period_start, period_end):
        """Employees are only paid for periods that overlap their contract."""
        if self.contract_start is not None and self.contract_start > period_end:
            raise InputError('outside_contract', f'contract starts {self.contract_start}, after {period_end}')
        if self.contract_end is not None and self.contract_end < period_start:
            raise InputError('outside_contract', f'contract ended {self.contract_end}, before {period_start}')

    @classmethod
    def from_dict(cls, data):
        return cls(
            employee_id=str(data['employee_id']),
            rate=to_decimal(data['rate']),
            rate_type=RateType(data.get('rate_type', 'monthly')),
            employment_type=str(data.get('employment_type', 'regular')).lower(),
            name=data.get('name', ''),
            contract_start=_optional_date(data.get('contract_start')),
            contract_end=_optional_date(data.get('contract_end')),
        )


@dataclass(frozen=True)
class Deduction:
    code: str
    amount: Decimal
    description: str = ''


@dataclass(frozen=True)
class Bonus:
    code: str
    amount: Decimal
    taxable: bool = True
    description: str = ''


# --- HELPER: CONTRACT RATE CONVERSION ---

def _contract_terms(employee, config):
    overrides = config.overrides_for(employee.employee_id)
    rate = overrides.custom_rate or employee.rate
    hours = overrides.hours_per_day or config.standard_daily_hours
    days = overrides.monthly_working_days or config.monthly_working_days
    return rate, hours, days


def hourly_rate_for(employee, config):
    rate, hours, days = _contract_terms(employee, config)
    if employee.rate_type is RateType.HOURLY:
        return round_line(rate)
    if employee.rate_type is RateType.DAILY:
        return round_line(rate / hours)
    return round_line(rate / (days * hours))


def daily_rate_for(employee, config):
    rate, hours, days = _contract_terms(employee, config)
    if employee.rate_type is RateType.HOURLY:
        return round_line(rate * hours)
    if employee.rate_type is RateType.DAILY:
        return round_line(rate)
    return round_line(rate / days)


# --- CORE LOGIC: PRICE WORKED SEGMENTS ---

def _flatten(segments):
    for item in segments:
        inner = getattr(item, 'segments', None)
        if inner is not None:
            yield from inner
        else:
            yield item


def price(segments, hourly_rate, config):
    """
    Price worked segments into worked_hours / overtime.computed lines.

    `segments` may be WorkedSegment objects or whole WorkedSegments results.
    Minutes are grouped per category first, then each category is priced
    once: hourly_rate x multiplier x minutes / 60. With
    `payroll_increment_rounding` on, each category's minutes are first rounded
    to the payroll increment.
    """
    hourly_rate = to_decimal(hourly_rate)
    minutes = {}
    for segment in _flatten(segments):
        category = PayCategory.for_segment(segment.day_type, segment.time_type)
        minutes[category] = minutes.get(category, 0) + segment.minutes

    lines = []
    for category, total in minutes.items():
        if total <= 0:
            continue
        multiplier = resolve(category.day_type, category.time_type, config)
        minutes_paid = total
        if config.payroll_increment_rounding:
            minutes_paid = round_to_payroll_increment(total)
            if minutes_paid == 0:
                continue
        pay = price_line(hourly_rate, multiplier, minutes_paid)
        lines.append(BreakdownLine(category, minutes_paid, hourly_rate, multiplier, pay))
    return PayrollBreakdown.from_lines(lines)


# --- NON-WORKED PAY ---

def leave_pay(days, daily_rate):
    total = ZERO
    for day in days:
        if day.status is RecordStatus.ON_LEAVE and day.record.is_paid:
            total += daily_rate * day.record.pay_percentage / 100
    return round_money(total)


def unworked_holiday_pay(days, daily_rate, employee, config):
    if employee.employment_type not in config.holiday_pay_employment_types:
        return ZERO
    count = sum(1 for d in days if d.status is RecordStatus.ABSENT and d.record.is_regular_holiday)
    return round_money(daily_rate * config.holiday_unworked_multiplier * count)


def attendance_deductions(days, hourly_rate, config):
    """Late and undertime deductions; both are off unless enabled in configuration."""
    deductions = []
    late = sum(d.flags.late_minutes for d in days)
    undertime = sum(d.flags.undertime_minutes for d in days)
    if config.late_deduction_enabled and late:
        deductions.append(Deduction('late', round_money(hourly_rate * late / 60), f'{late} minutes late'))
    if config.undertime_deduction_enabled and undertime:
        deductions.append(Deduction('undertime', round_money(hourly_rate * undertime / 60),
                                    f'{undertime} minutes undertime'))
    return deductions


# --- AUDIT: STORED BREAKDOWN SUMS ---

def _sections(data):
    return (data.get('worked_hours', {}), data.get('overtime', {}).get('computed', {}))


def _repriced(entry):
    rate = entry['rate']
    return price_line(to_decimal(rate['base']), to_decimal(rate['multiplier']), int(entry['minutes']))


def recompute_gross(breakdowns):
    """
    Gross earnings rebuilt from stored breakdowns: every line is repriced
    from its minutes and rate, ignoring the stored pay and totals.
    """
    total = ZERO
    for data in breakdowns:
        for section in _sections(data):
            lines = (_repriced(entry) for key, entry in section.items() if key != 'total')
            total += round_money(sum(lines, ZERO))
    return total


def stored_gross(breakdowns):
    """Gross earnings read from the stored `total` entries only."""
    total = ZERO
    for data in breakdowns:
        for section in _sections(data):
            if 'total' in section:
                total += to_decimal(section['total']['pay'])
    return total
