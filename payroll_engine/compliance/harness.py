# payroll_engine/compliance/harness.py
"""
Regression gate for rate-table changes.

A scenario is literal input (employee, schedule, attendance, items) plus the
payslip fields it must produce. Fields are addressed by dotted path into
`Payslip.to_dict()`, e.g. `breakdown.overtime.computed.regular_overtime.minutes`.
Hour and minute fields must match exactly; money may differ by at most 0.01.

Broken invariants (a total that disagrees with its lines, net pay that does
not reconcile) are defects and raise InvariantViolation instead of being
reported as a diff.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional

from payroll_engine.attendance.records import Schedule, record_from_dict
from payroll_engine.errors import InputError, InvariantViolation
from payroll_engine.payroll.breakdown import PayrollBreakdown
from payroll_engine.payroll.calculator import Bonus, Deduction, EmployeeContract, recompute_gross, stored_gross
from payroll_engine.payroll.payslip import LoanInstallment
from payroll_engine.payroll.run import EmployeePayrollInput, compute_payslip
from payroll_engine.rates.defaults import default_config
from payroll_engine.rates.tables import parse_setting
from payroll_engine.utils import to_decimal

logger = logging.getLogger(__name__)

MONEY_TOLERANCE = Decimal('0.01')
EXACT_FIELDS = ('minutes', 'value', 'version')

BUILTIN_SCENARIOS = Path(__file__).with_name('scenarios.json')


@dataclass(frozen=True)
class Scenario:
    name: str
    payroll_input: EmployeePayrollInput
    period: tuple
    expected: dict = field(default_factory=dict)
    expected_error: Optional[str] = None
    settings: dict = field(default_factory=dict)
    multipliers: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data):
        records = tuple(record_from_dict(r) for r in data.get('records', []))
        dates = [r.work_date for r in records]
        period = data.get('period')
        if period:
            period = (date.fromisoformat(period['start']), date.fromisoformat(period['end']))
        else:
            period = (min(dates), max(dates))
        schedule = data.get('schedule')
        return cls(
            name=data['name'],
            payroll_input=EmployeePayrollInput(
                employee=EmployeeContract.from_dict(data['employee']),
                schedule=None if schedule is None else Schedule.from_dict(schedule),
                records=records,
                bonuses=tuple(Bonus(b['code'], to_decimal(b['amount']), b.get('taxable', True))
                              for b in data.get('bonuses', [])),
                deductions=tuple(Deduction(d['code'], to_decimal(d['amount']))
                                 for d in data.get('deductions', [])),
                loans=tuple(LoanInstallment(
                    l['loan_id'], to_decimal(l['amount_due']),
                    None if l.get('remaining_balance') is None else to_decimal(l['remaining_balance']),
                ) for l in data.get('loans', [])),
                year_to_date_basic=(None if data.get('year_to_date_basic') is None
                                    else to_decimal(data['year_to_date_basic'])),
            ),
            period=period,
            expected=dict(data.get('expected', {})),
            expected_error=data.get('expected_error'),
            settings=dict(data.get('settings', {})),
            multipliers=dict(data.get('multipliers', {})),
        )


@dataclass(frozen=True)
class Diff:
    scenario: str
    field: str
    expected: object
    actual: object
    tolerance: Optional[Decimal] = None

    def to_dict(self):
        return {
            'scenario': self.scenario,
            'field': self.field,
            'expected': None if self.expected is None else str(self.expected),
            'actual': None if self.actual is None else str(self.actual),
            'tolerance': None if self.tolerance is None else str(self.tolerance),
        }


@dataclass
class ComplianceReport:
    passed: list = field(default_factory=list)
    failed: list = field(default_factory=list)
    diffs: list = field(default_factory=list)

    @property
    def ok(self):
        return not self.failed

    def to_dict(self):
        return {
            'summary': {'total': len(self.passed) + len(self.failed),
                        'passed': len(self.passed), 'failed': len(self.failed)},
            'passed': list(self.passed),
            'failed': list(self.failed),
            'diffs': [d.to_dict() for d in self.diffs],
        }


def load_scenarios(path=BUILTIN_SCENARIOS):
    with open(path, encoding='utf-8') as f:
        return [Scenario.from_dict(item) for item in json.load(f)]


def _lookup(data, path):
    for part in path.split('.'):
        if not isinstance(data, dict) or part not in data:
            return None
        data = data[part]
    return data


def _compare(scenario, path, expected, actual):
    if actual is None:
        return Diff(scenario, path, expected, None)
    if not (_numeric(expected) and _numeric(actual)):
        return None if str(actual) == str(expected) else Diff(scenario, path, expected, actual)
    tolerance = Decimal('0') if path.rsplit('.', 1)[-1] in EXACT_FIELDS else MONEY_TOLERANCE
    if abs(to_decimal(actual) - to_decimal(expected)) > tolerance:
        return Diff(scenario, path, expected, actual, tolerance)
    return None


def _numeric(value):
    try:
        to_decimal(value)
        return True
    except ValueError:
        return False


def check_invariants(payslip):
    """Re-audit a payslip from its own stored form."""
    data = payslip.to_dict()
    PayrollBreakdown.from_dict(data['breakdown'])
    dailies = [d['breakdown'] for d in data['daily']]
    for daily in dailies:
        PayrollBreakdown.from_dict(daily)
    if recompute_gross(dailies) != stored_gross(dailies):
        raise InvariantViolation('Daily breakdown lines do not add up to their stored totals')

    earnings = payslip.breakdown.earnings
    expected_gross = earnings + payslip.leave_pay + payslip.holiday_pay + payslip.bonuses
    if payslip.gross_pay != expected_gross:
        raise InvariantViolation(f'gross_pay {payslip.gross_pay} != parts {expected_gross}')
    deductions = payslip.contributions + payslip.withholding_tax + payslip.loan_deductions + payslip.other_deductions
    if payslip.total_deductions != deductions or payslip.net_pay != payslip.gross_pay - deductions:
        raise InvariantViolation('Payslip deductions do not reconcile with net pay')
    if payslip.breakdown.paid_minutes != sum(b.paid_minutes for _, b in payslip.daily):
        raise InvariantViolation('Period minutes differ from the sum of daily minutes')


def run(scenarios, config=None):
    """Run scenarios through the full pipeline and diff against expectations."""
    report = ComplianceReport()
    for scenario in scenarios:
        base = config or default_config(scenario.period[0])
        scenario_config = base
        if scenario.settings:
            scenario_config = scenario_config.with_settings(
                **{name: parse_setting(name, value) for name, value in scenario.settings.items()})
        if scenario.multipliers:
            scenario_config = scenario_config.with_settings(
                rate_table=scenario_config.rate_table.merged(scenario.multipliers))
        scenario_config.validate()

        diffs = []
        try:
            payslip = compute_payslip(scenario.payroll_input, scenario_config, scenario.period)
        except InputError as e:
            if e.reason != scenario.expected_error:
                diffs.append(Diff(scenario.name, 'error', scenario.expected_error, e.reason))
        else:
            if scenario.expected_error:
                diffs.append(Diff(scenario.name, 'error', scenario.expected_error, None))
            check_invariants(payslip)
            actual = payslip.to_dict()
            for path, expected in sorted(scenario.expected.items()):
                diff = _compare(scenario.name, path, expected, _lookup(actual, path))
                if diff:
                    diffs.append(diff)

        if diffs:
            logger.warning('Compliance scenario %r failed on %d field(s)', scenario.name, len(diffs))
            report.failed.append(scenario.name)
            report.diffs.extend(diffs)
        else:
            report.passed.append(scenario.name)
    return report
