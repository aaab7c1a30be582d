# payroll_engine/payroll/statutory.py

import logging
from dataclasses import dataclass
from decimal import Decimal

from payroll_engine.errors import InvariantViolation
from payroll_engine.utils import ZERO, round_money, to_decimal
from .breakdown import NO_CONTRIBUTIONS, Contribution, ContributionSet, TaxComputation
from .calculator import Bonus

logger = logging.getLogger(__name__)

EMPLOYEE = 'employee'
EMPLOYER = 'employer'


def _table(name, share):
    if share == EMPLOYEE:
        return name
    if share == EMPLOYER:
        return f'{name}_employer'
    raise ValueError(f'Unknown contribution share {share!r}')


# --- SSS ---
def compute_sss(monthly_salary, config, share=EMPLOYEE):
    return config.bracket_table(_table('sss', share)).compute(monthly_salary)


# --- PHILHEALTH ---
def compute_philhealth(monthly_salary, config, share=EMPLOYEE):
    return config.bracket_table(_table('philhealth', share)).compute(monthly_salary)


# --- PAG-IBIG (HDMF) ---
def compute_pagibig(monthly_salary, config, share=EMPLOYEE):
    return config.bracket_table(_table('pagibig', share)).compute(monthly_salary)


# --- WITHHOLDING TAX ---
def compute_income_tax(taxable_income, config):
    """Monthly withholding on income that already has contributions taken out."""
    taxable_income = to_decimal(taxable_income)
    if taxable_income < 0:
        raise InvariantViolation(f'Income tax requested on negative taxable income {taxable_income}')
    return config.bracket_table('income_tax').compute(taxable_income)


# --- PAY FREQUENCY ---
def monthly_equivalent(amount, config):
    return round_money(to_decimal(amount) * config.pay_frequency.monthly_factor)


def period_share(monthly_amount, config):
    return round_money(to_decimal(monthly_amount) / config.pay_frequency.monthly_factor)


def compute_contributions(period_earnings, employee, config):
    """
    All three contributions, employee and employer shares, for one pay
    period. Brackets are monthly, so earnings are scaled up to a month and
    the results scaled back down.
    """
    if employee.employment_type not in config.contribution_employment_types:
        logger.debug('No contributions for %s (%s)', employee.employee_id, employee.employment_type)
        return NO_CONTRIBUTIONS
    if to_decimal(period_earnings) <= 0:
        return NO_CONTRIBUTIONS

    monthly = monthly_equivalent(period_earnings, config)

    def shares(compute):
        return Contribution(
            employee=period_share(compute(monthly, config, EMPLOYEE), config),
            employer=period_share(compute(monthly, config, EMPLOYER), config),
        )

    return ContributionSet(
        sss=shares(compute_sss),
        philhealth=shares(compute_philhealth),
        pagibig=shares(compute_pagibig),
        monthly_basis=monthly,
    )


def compute_withholding(gross_taxable, contributions, config):
    """Contributions come off first; tax is computed on what is left."""
    gross_taxable = to_decimal(gross_taxable)
    taxable = gross_taxable - contributions.employee_total
    if taxable < 0:
        taxable = ZERO
    monthly_tax = compute_income_tax(monthly_equivalent(taxable, config), config)
    return TaxComputation(
        gross_taxable=gross_taxable,
        contributions=contributions.employee_total,
        taxable_income=taxable,
        withholding=period_share(monthly_tax, config),
    )


# --- 13TH MONTH PAY ---

@dataclass(frozen=True)
class ThirteenthMonthPay:
    amount: Decimal
    exempt: Decimal
    taxable: Decimal

    def as_bonuses(self):
        bonuses = []
        if self.exempt:
            bonuses.append(Bonus('13th_month', self.exempt, taxable=False, description='13th month pay'))
        if self.taxable:
            bonuses.append(Bonus('13th_month_excess', self.taxable, taxable=True,
                                 description='13th month pay above the exemption ceiling'))
        return bonuses


def compute_thirteenth_month(total_basic_salary, config, exempt_used=ZERO):
    """
    One twelfth of the basic salary earned in the year. Up to the exemption
    ceiling (less whatever other exempt benefits already used) is tax-free.
    """
    total_basic_salary = to_decimal(total_basic_salary)
    if total_basic_salary < 0:
        raise InvariantViolation('13th month pay requested on negative basic salary')
    amount = round_money(total_basic_salary / 12)
    room = max(ZERO, config.thirteenth_month_exempt_ceiling - to_decimal(exempt_used))
    exempt = min(amount, room)
    return ThirteenthMonthPay(amount=amount, exempt=exempt, taxable=amount - exempt)
