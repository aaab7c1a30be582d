# payroll_engine/payroll/payslip.py

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from payroll_engine.errors import InvariantViolation
from payroll_engine.utils import ZERO, decimal_str, round_money, to_decimal
from .breakdown import PayrollBreakdown


def _iso(day):
    return None if day is None else day.isoformat()


@dataclass(frozen=True)
class LoanInstallment:
    """Amount due this period, as reported by the loan ledger."""
    loan_id: str
    amount_due: Decimal
    remaining_balance: Optional[Decimal] = None
    description: str = ''

    @property
    def amount(self):
        if self.remaining_balance is not None:
            return min(self.amount_due, max(self.remaining_balance, ZERO))
        return self.amount_due


@dataclass(frozen=True)
class Payslip:
    employee_id: str
    period_start: date
    period_end: date
    breakdown: PayrollBreakdown
    gross_pay: Decimal
    overtime_pay: Decimal
    night_diff_pay: Decimal
    holiday_pay: Decimal
    leave_pay: Decimal
    bonuses: Decimal
    contributions: Decimal
    withholding_tax: Decimal
    loan_deductions: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    bonus_items: tuple = ()
    deduction_items: tuple = ()
    loan_items: tuple = ()
    daily: tuple = ()
    version: int = 1
    config_effective_date: Optional[date] = None
    config_fingerprint: Optional[str] = None

    def to_dict(self):
        return {
            'employee_id': self.employee_id,
            'period_start': _iso(self.period_start),
            'period_end': _iso(self.period_end),
            'version': self.version,
            'gross_pay': decimal_str(self.gross_pay),
            'overtime_pay': decimal_str(self.overtime_pay),
            'night_diff_pay': decimal_str(self.night_diff_pay),
            'holiday_pay': decimal_str(self.holiday_pay),
            'leave_pay': decimal_str(self.leave_pay),
            'bonuses': decimal_str(self.bonuses),
            'contributions': decimal_str(self.contributions),
            'withholding_tax': decimal_str(self.withholding_tax),
            'loan_deductions': decimal_str(self.loan_deductions),
            'other_deductions': decimal_str(self.other_deductions),
            'total_deductions': decimal_str(self.total_deductions),
            'net_pay': decimal_str(self.net_pay),
            'bonus_items': [
                {'code': b.code, 'amount': decimal_str(b.amount), 'taxable': b.taxable, 'description': b.description}
                for b in self.bonus_items
            ],
            'deduction_items': [
                {'code': d.code, 'amount': decimal_str(d.amount), 'description': d.description}
                for d in self.deduction_items
            ],
            'loan_items': [
                {'loan_id': l.loan_id, 'amount': decimal_str(l.amount), 'description': l.description}
                for l in self.loan_items
            ],
            'breakdown': self.breakdown.to_dict(),
            'daily': [{'date': day.isoformat(), 'breakdown': b.to_dict()} for day, b in self.daily],
            'config_effective_date': _iso(self.config_effective_date),
            'config_fingerprint': self.config_fingerprint,
        }


def assemble(employee, breakdown, bonuses, deductions, contributions, tax, loans=(),
             leave_pay=ZERO, holiday_pay=ZERO, period=None, daily=(), config=None, version=1):
    """
    Combine priced time, statutory amounts and other items into a payslip.

    gross = worked + overtime + leave + unworked holiday + bonuses
    net   = gross - (employee contributions + tax + other deductions + loans)
    """
    if tax.contributions != contributions.employee_total:
        raise InvariantViolation('Withholding tax was not computed after these contributions')

    bonuses = tuple(bonuses)
    deductions = tuple(deductions)
    loans = tuple(loans)

    bonus_total = round_money(sum((to_decimal(b.amount) for b in bonuses), ZERO))
    other_total = round_money(sum((to_decimal(d.amount) for d in deductions), ZERO))
    loan_total = round_money(sum((l.amount for l in loans), ZERO))

    gross = breakdown.earnings + leave_pay + holiday_pay + bonus_total
    total_deductions = contributions.employee_total + tax.withholding + other_total + loan_total
    net = gross - total_deductions
    if net < 0:
        raise InvariantViolation(
            f'Deductions ({total_deductions}) exceed gross pay ({gross}) for employee {employee.employee_id}'
        )

    period_start, period_end = period if period else (None, None)
    return Payslip(
        employee_id=employee.employee_id,
        period_start=period_start,
        period_end=period_end,
        breakdown=breakdown.with_statutory(contributions, tax),
        gross_pay=gross,
        overtime_pay=breakdown.overtime_total.pay,
        night_diff_pay=breakdown.night_diff_pay,
        holiday_pay=holiday_pay,
        leave_pay=leave_pay,
        bonuses=bonus_total,
        contributions=contributions.employee_total,
        withholding_tax=tax.withholding,
        loan_deductions=loan_total,
        other_deductions=other_total,
        total_deductions=total_deductions,
        net_pay=net,
        bonus_items=bonuses,
        deduction_items=deductions,
        loan_items=loans,
        daily=tuple(daily),
        version=version,
        config_effective_date=None if config is None else config.effective_date,
        config_fingerprint=None if config is None else config.fingerprint,
    )
