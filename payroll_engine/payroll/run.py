# payroll_engine/payroll/run.py

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from payroll_engine.attendance.calculator import normalize
from payroll_engine.attendance.records import Schedule, check_one_per_day
from payroll_engine.errors import InputError, InvariantViolation
from payroll_engine.utils import ZERO
from .breakdown import combine
from .calculator import (
    EmployeeContract, attendance_deductions, daily_rate_for, hourly_rate_for, leave_pay, price,
    unworked_holiday_pay,
)
from .payslip import assemble
from .statutory import compute_contributions, compute_thirteenth_month, compute_withholding

logger = logging.getLogger(__name__)

CANCELLED = 'cancelled'


@dataclass(frozen=True)
class EmployeePayrollInput:
    """Everything one employee's payslip is computed from, already in memory."""
    employee: EmployeeContract
    schedule: Optional[Schedule]
    records: tuple = ()
    bonuses: tuple = ()
    deductions: tuple = ()
    loans: tuple = ()
    # Basic pay already earned this year; set only when 13th month pay is due
    year_to_date_basic: Optional[Decimal] = None


@dataclass(frozen=True)
class SkippedEmployee:
    employee_id: str
    reason: str
    detail: Optional[str] = None

    def to_dict(self):
        return {'employee_id': self.employee_id, 'reason': self.reason, 'detail': self.detail}


@dataclass
class RunResult:
    period_start: date
    period_end: date
    config_effective_date: date
    config_fingerprint: str
    payslips: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    cancelled: list = field(default_factory=list)

    def skip(self, employee_id, error):
        if isinstance(error, InputError):
            entry = SkippedEmployee(str(employee_id), error.reason, error.detail)
        else:
            entry = SkippedEmployee(str(employee_id), type(error).__name__, str(error))
        self.skipped.append(entry)
        return entry

    def summary(self):
        return {
            'period_start': self.period_start.isoformat(),
            'period_end': self.period_end.isoformat(),
            'config_effective_date': self.config_effective_date.isoformat(),
            'config_fingerprint': self.config_fingerprint,
            'processed': len(self.payslips),
            'skipped': [s.to_dict() for s in self.skipped],
            'cancelled': list(self.cancelled),
        }


# --- ONE EMPLOYEE ---

def compute_payslip(data, config, period, version=1):
    """Full pipeline for one employee. Pure: reads only its arguments."""
    period_start, period_end = period
    employee = data.employee
    employee.check_period(period_start, period_end)

    records = check_one_per_day(sorted(data.records, key=lambda r: r.work_date))
    for record in records:
        if not period_start <= record.work_date <= period_end:
            raise InputError('record_outside_period', f'{record.work_date} is outside {period_start}..{period_end}')

    days = [normalize(record, data.schedule, config) for record in records]
    open_days = [d.work_date.isoformat() for d in days if d.is_open]
    if open_days:
        raise InputError('open_attendance', f'no time_out on {", ".join(open_days)}')

    hourly_rate = hourly_rate_for(employee, config)
    daily_rate = daily_rate_for(employee, config)

    daily = tuple((d.work_date, price([d], hourly_rate, config)) for d in days if d.segments)
    breakdown = combine(b for _, b in daily)
    leave = leave_pay(days, daily_rate)
    holiday = unworked_holiday_pay(days, daily_rate, employee, config)
    deductions = attendance_deductions(days, hourly_rate, config) + list(data.deductions)

    bonuses = tuple(data.bonuses)
    if data.year_to_date_basic is not None:
        basic_pay = breakdown.worked_total.pay + leave + holiday
        thirteenth = compute_thirteenth_month(data.year_to_date_basic + basic_pay, config)
        bonuses += tuple(thirteenth.as_bonuses())

    basic = breakdown.earnings + leave + holiday
    contributions = compute_contributions(basic, employee, config)
    taxable_bonuses = sum((b.amount for b in bonuses if b.taxable), ZERO)
    tax = compute_withholding(basic + taxable_bonuses, contributions, config)

    return assemble(
        employee, breakdown, bonuses, deductions, contributions, tax,
        loans=data.loans, leave_pay=leave, holiday_pay=holiday,
        period=period, daily=daily, config=config, version=version,
    )


# --- BATCH ---

def run_payroll(inputs, config, period_start, period_end, max_workers=4, cancel_event=None,
                on_complete=None, versions=None):
    """
    Compute payslips for many employees against one config snapshot.

    A bad config aborts before any employee is touched. Bad input for one
    employee skips only that employee. Setting `cancel_event` stops the run
    between employees; payslips already computed are kept.
    """
    config.validate()
    if period_end < period_start:
        raise InputError('invalid_period', f'{period_end} is before {period_start}')

    inputs = list(inputs)
    cancel_event = cancel_event or threading.Event()
    versions = versions or {}
    period = (period_start, period_end)

    def work(item):
        employee_id = item.employee.employee_id
        if cancel_event.is_set():
            return CANCELLED
        try:
            outcome = compute_payslip(item, config, period, versions.get(employee_id, 1))
        except (InputError, InvariantViolation) as e:
            logger.warning('Skipping employee %s: %s', employee_id, e)
            outcome = e
        if on_complete is not None:
            on_complete(employee_id, outcome)
        return outcome

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        outcomes = [f.result() for f in [executor.submit(work, item) for item in inputs]]

    result = RunResult(period_start, period_end, config.effective_date, config.fingerprint)
    for item, outcome in zip(inputs, outcomes):
        if outcome is CANCELLED:
            result.cancelled.append(item.employee.employee_id)
        elif isinstance(outcome, Exception):
            result.skip(item.employee.employee_id, outcome)
        else:
            result.payslips.append(outcome)

    logger.info(
        'Payroll run %s..%s: %d processed, %d skipped, %d cancelled',
        period_start, period_end, len(result.payslips), len(result.skipped), len(result.cancelled),
    )
    return result
