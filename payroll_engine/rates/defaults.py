# payroll_engine/rates/defaults.py
#
# Philippine statutory tables used when the configuration store has no
# override for a given config_type/config_key.

from datetime import date
from decimal import Decimal

from .tables import BracketTable, ContributionBracket, PayrollConfig, RateMultiplierTable

# --- PREMIUM MULTIPLIERS (composite keys, no runtime stacking) ---
DEFAULT_MULTIPLIERS = {
    'regular.regular': '1.00',
    'regular.night_diff': '1.10',
    'regular.overtime': '1.25',
    'regular.night_diff_overtime': '1.375',

    'rest_day.regular': '1.30',
    'rest_day.night_diff': '1.43',
    'rest_day.overtime': '1.69',
    'rest_day.night_diff_overtime': '1.859',

    'special_holiday.regular': '1.30',
    'special_holiday.night_diff': '1.43',
    'special_holiday.overtime': '1.69',
    'special_holiday.night_diff_overtime': '1.859',

    'special_holiday_rest_day.regular': '1.69',
    'special_holiday_rest_day.night_diff': '1.859',
    'special_holiday_rest_day.overtime': '2.197',
    'special_holiday_rest_day.night_diff_overtime': '2.4167',

    'regular_holiday.regular': '2.00',
    'regular_holiday.night_diff': '2.20',
    'regular_holiday.overtime': '2.60',
    'regular_holiday.night_diff_overtime': '2.86',

    'regular_holiday_rest_day.regular': '2.60',
    'regular_holiday_rest_day.night_diff': '2.86',
    'regular_holiday_rest_day.overtime': '3.38',
    'regular_holiday_rest_day.night_diff_overtime': '3.718',
}

# --- SSS CONTRIBUTION TABLE ---
# (lower bound of monthly salary credit range, employee share, employer share)
SSS_TABLE = [
    ('0.00', '140.00', '325.00'),
    ('3250.00', '162.50', '377.50'),
    ('3750.00', '185.00', '430.00'),
    ('4250.00', '207.50', '482.50'),
    ('4750.00', '230.00', '535.00'),
    ('5250.00', '252.50', '587.50'),
    ('5750.00', '275.00', '640.00'),
    ('6250.00', '297.50', '692.50'),
    ('6750.00', '320.00', '745.00'),
    ('7250.00', '342.50', '797.50'),
    ('7750.00', '365.00', '850.00'),
    ('8250.00', '387.50', '902.50'),
    ('8750.00', '410.00', '955.00'),
    ('9250.00', '432.50', '1007.50'),
    ('9750.00', '455.00', '1060.00'),
    ('10250.00', '477.50', '1112.50'),
    ('10750.00', '500.00', '1165.00'),
    ('11250.00', '522.50', '1217.50'),
    ('11750.00', '545.00', '1270.00'),
    ('12250.00', '567.50', '1322.50'),
    ('12750.00', '590.00', '1375.00'),
    ('13250.00', '612.50', '1427.50'),
    ('13750.00', '635.00', '1480.00'),
    ('14250.00', '657.50', '1532.50'),
    ('14750.00', '680.00', '1585.00'),
    ('15250.00', '702.50', '1637.50'),
    ('15750.00', '725.00', '1690.00'),
    ('16250.00', '747.50', '1742.50'),
    ('16750.00', '770.00', '1795.00'),
    ('17250.00', '792.50', '1847.50'),
    ('17750.00', '815.00', '1900.00'),
    ('18250.00', '837.50', '1952.50'),
    ('18750.00', '860.00', '2005.00'),
    ('19250.00', '882.50', '2057.50'),
    ('19750.00', '905.00', '2110.00'),
    ('20250.00', '930.00', '2170.00'),
]


def _fixed_steps(rows, column):
    """Turn (lower, share...) rows into consecutive fixed-amount brackets."""
    brackets = []
    for index, row in enumerate(rows):
        upper = rows[index + 1][0] if index + 1 < len(rows) else None
        brackets.append(ContributionBracket(
            lower=Decimal(row[0]),
            upper=None if upper is None else Decimal(upper),
            fixed_amount=Decimal(row[column]),
        ))
    return brackets


# --- PHILHEALTH (5.5% premium split evenly, floor 10,000 / ceiling 100,000) ---
PHILHEALTH_SHARE = [
    ContributionBracket(Decimal('0.00'), Decimal('10000.00'), fixed_amount=Decimal('275.00')),
    ContributionBracket(Decimal('10000.00'), Decimal('100000.00'), fixed_amount=Decimal('275.00'),
                        rate=Decimal('0.0275'), cap=Decimal('2750.00')),
    ContributionBracket(Decimal('100000.00'), None, fixed_amount=Decimal('2750.00')),
]

# --- PAG-IBIG (HDMF) ---
# HDMF Circular No. 460: 1% / 2% employee share, maximum fund salary 10,000
# (employee and employer capped at 200.00 from February 2024).
PAGIBIG_EMPLOYEE = [
    ContributionBracket(Decimal('0.00'), Decimal('1500.00'), rate=Decimal('0.01')),
    ContributionBracket(Decimal('1500.00'), Decimal('10000.00'), fixed_amount=Decimal('30.00'),
                        rate=Decimal('0.02'), cap=Decimal('200.00')),
    ContributionBracket(Decimal('10000.00'), None, fixed_amount=Decimal('200.00')),
]

PAGIBIG_EMPLOYER = [
    ContributionBracket(Decimal('0.00'), Decimal('10000.00'), rate=Decimal('0.02'), cap=Decimal('200.00')),
    ContributionBracket(Decimal('10000.00'), None, fixed_amount=Decimal('200.00')),
]

# --- WITHHOLDING TAX (monthly, TRAIN law 2023 onwards) ---
# BIR RR 11-2018 revised withholding tax table, schedule effective 1 January 2023.
TAX_TABLE = [
    ContributionBracket(Decimal('0.00'), Decimal('20833.00')),
    ContributionBracket(Decimal('20833.00'), Decimal('33333.00'), rate=Decimal('0.15')),
    ContributionBracket(Decimal('33333.00'), Decimal('66667.00'), fixed_amount=Decimal('1875.00'),
                        rate=Decimal('0.20')),
    ContributionBracket(Decimal('66667.00'), Decimal('166667.00'), fixed_amount=Decimal('8541.80'),
                        rate=Decimal('0.25')),
    ContributionBracket(Decimal('166667.00'), Decimal('666667.00'), fixed_amount=Decimal('33541.80'),
                        rate=Decimal('0.30')),
    ContributionBracket(Decimal('666667.00'), None, fixed_amount=Decimal('183541.80'),
                        rate=Decimal('0.35')),
]


def default_brackets():
    return {
        'sss': BracketTable('sss', _fixed_steps(SSS_TABLE, 1)),
        'sss_employer': BracketTable('sss_employer', _fixed_steps(SSS_TABLE, 2)),
        'philhealth': BracketTable('philhealth', PHILHEALTH_SHARE),
        'philhealth_employer': BracketTable('philhealth_employer', PHILHEALTH_SHARE),
        'pagibig': BracketTable('pagibig', PAGIBIG_EMPLOYEE),
        'pagibig_employer': BracketTable('pagibig_employer', PAGIBIG_EMPLOYER),
        'income_tax': BracketTable('income_tax', TAX_TABLE),
    }


def default_config(effective_date=None, **settings):
    """The statutory defaults as a ready-to-use snapshot."""
    return PayrollConfig(
        effective_date=effective_date or date.today(),
        rate_table=RateMultiplierTable(DEFAULT_MULTIPLIERS),
        brackets=default_brackets(),
        **settings
    )
