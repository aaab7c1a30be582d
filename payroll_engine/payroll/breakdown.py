# payroll_engine/payroll/breakdown.py
"""
Structured pay breakdown.

Every priced line belongs to one PayCategory, a closed set of
(day type, time type) pairs. Section totals are always derived from the
lines; a stored `total` is only ever compared against the derived one.

Line pay keeps six decimal places. Cents are taken once, when a section is
summed into its total (half-up). Pay for a category is therefore
    hourly_rate x multiplier x minutes / 60
rounded to six places, and the section total is the rounded sum of those.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from payroll_engine.errors import InvariantViolation
from payroll_engine.rates.tables import DayType, TimeType
from payroll_engine.utils import ZERO, decimal_str, minutes_to_hours, round_line, round_money, to_decimal

WORKED_HOURS = 'worked_hours'
OVERTIME = 'overtime'


class PayCategory(Enum):
    REGULAR = ('regular', DayType.REGULAR, TimeType.REGULAR)
    NIGHT_DIFF = ('night_diff', DayType.REGULAR, TimeType.NIGHT_DIFF)
    REST_DAY = ('rest_day', DayType.REST_DAY, TimeType.REGULAR)
    NIGHT_DIFF_REST_DAY = ('night_diff_rest_day', DayType.REST_DAY, TimeType.NIGHT_DIFF)
    REGULAR_HOLIDAY = ('regular_holiday', DayType.REGULAR_HOLIDAY, TimeType.REGULAR)
    NIGHT_DIFF_REGULAR_HOLIDAY = ('night_diff_regular_holiday', DayType.REGULAR_HOLIDAY, TimeType.NIGHT_DIFF)
    SPECIAL_HOLIDAY = ('special_holiday', DayType.SPECIAL_HOLIDAY, TimeType.REGULAR)
    NIGHT_DIFF_SPECIAL_HOLIDAY = ('night_diff_special_holiday', DayType.SPECIAL_HOLIDAY, TimeType.NIGHT_DIFF)
    REGULAR_HOLIDAY_REST_DAY = (
        'regular_holiday_rest_day', DayType.REGULAR_HOLIDAY_REST_DAY, TimeType.REGULAR)
    NIGHT_DIFF_REGULAR_HOLIDAY_REST_DAY = (
        'night_diff_regular_holiday_rest_day', DayType.REGULAR_HOLIDAY_REST_DAY, TimeType.NIGHT_DIFF)
    SPECIAL_HOLIDAY_REST_DAY = (
        'special_holiday_rest_day', DayType.SPECIAL_HOLIDAY_REST_DAY, TimeType.REGULAR)
    NIGHT_DIFF_SPECIAL_HOLIDAY_REST_DAY = (
        'night_diff_special_holiday_rest_day', DayType.SPECIAL_HOLIDAY_REST_DAY, TimeType.NIGHT_DIFF)

    REGULAR_OVERTIME = ('regular_overtime', DayType.REGULAR, TimeType.OVERTIME)
    NIGHT_DIFF_OVERTIME = ('night_diff_overtime', DayType.REGULAR, TimeType.NIGHT_DIFF_OVERTIME)
    REST_DAY_OVERTIME = ('rest_day_overtime', DayType.REST_DAY, TimeType.OVERTIME)
    NIGHT_DIFF_REST_DAY_OVERTIME = (
        'night_diff_rest_day_overtime', DayType.REST_DAY, TimeType.NIGHT_DIFF_OVERTIME)
    REGULAR_HOLIDAY_OVERTIME = ('regular_holiday_overtime', DayType.REGULAR_HOLIDAY, TimeType.OVERTIME)
    NIGHT_DIFF_REGULAR_HOLIDAY_OVERTIME = (
        'night_diff_regular_holiday_overtime', DayType.REGULAR_HOLIDAY, TimeType.NIGHT_DIFF_OVERTIME)
    SPECIAL_HOLIDAY_OVERTIME = ('special_holiday_overtime', DayType.SPECIAL_HOLIDAY, TimeType.OVERTIME)
    NIGHT_DIFF_SPECIAL_HOLIDAY_OVERTIME = (
        'night_diff_special_holiday_overtime', DayType.SPECIAL_HOLIDAY, TimeType.NIGHT_DIFF_OVERTIME)
    REGULAR_HOLIDAY_REST_DAY_OVERTIME = (
        'regular_holiday_rest_day_overtime', DayType.REGULAR_HOLIDAY_REST_DAY, TimeType.OVERTIME)
    NIGHT_DIFF_REGULAR_HOLIDAY_REST_DAY_OVERTIME = (
        'night_diff_regular_holiday_rest_day_overtime', DayType.REGULAR_HOLIDAY_REST_DAY,
        TimeType.NIGHT_DIFF_OVERTIME)
    SPECIAL_HOLIDAY_REST_DAY_OVERTIME = (
        'special_holiday_rest_day_overtime', DayType.SPECIAL_HOLIDAY_REST_DAY, TimeType.OVERTIME)
    NIGHT_DIFF_SPECIAL_HOLIDAY_REST_DAY_OVERTIME = (
        'night_diff_special_holiday_rest_day_overtime', DayType.SPECIAL_HOLIDAY_REST_DAY,
        TimeType.NIGHT_DIFF_OVERTIME)

    def __init__(self, key, day_type, time_type):
        self.key = key
        self.day_type = day_type
        self.time_type = time_type

    @property
    def section(self):
        return OVERTIME if self.time_type.is_overtime else WORKED_HOURS

    @classmethod
    def for_segment(cls, day_type, time_type):
        return _BY_TYPES[(day_type, time_type)]

    @classmethod
    def from_key(cls, key):
        try:
            return _BY_KEY[key]
        except KeyError:
            raise InvariantViolation(f'Unknown breakdown category {key!r}')


_BY_TYPES = {(c.day_type, c.time_type): c for c in PayCategory}
_BY_KEY = {c.key: c for c in PayCategory}


# --- LINES AND TOTALS ---

def price_line(base_rate, multiplier, minutes):
    return round_line(base_rate * multiplier * minutes / 60)


@dataclass(frozen=True)
class BreakdownLine:
    category: PayCategory
    minutes: int
    base_rate: Decimal
    multiplier: Decimal
    pay: Decimal

    @property
    def value(self):
        return minutes_to_hours(self.minutes)

    @property
    def rate_total(self):
        return round_line(self.base_rate * self.multiplier)

    def repriced(self):
        return price_line(self.base_rate, self.multiplier, self.minutes)

    def to_dict(self):
        return {
            'value': decimal_str(self.value),
            'minutes': self.minutes,
            'rate': {
                'base': decimal_str(self.base_rate),
                'multiplier': decimal_str(self.multiplier),
                'total': decimal_str(self.rate_total),
            },
            'pay': decimal_str(self.pay),
        }

    @classmethod
    def from_dict(cls, category, data):
        """Rebuild a stored line; its hours and pay must follow from its minutes and rate."""
        rate = data['rate']
        line = cls(
            category=category,
            minutes=int(data['minutes']),
            base_rate=to_decimal(rate['base']),
            multiplier=to_decimal(rate['multiplier']),
            pay=to_decimal(data['pay']),
        )
        if 'value' in data and to_decimal(data['value']) != line.value:
            raise InvariantViolation(
                f'{category.key}: {data["value"]} hours stored for {line.minutes} minutes')
        if line.pay != line.repriced():
            raise InvariantViolation(
                f'{category.key}: stored pay {line.pay} does not match {line.minutes} minutes '
                f'at {line.base_rate} x {line.multiplier} ({line.repriced()})')
        return line


@dataclass(frozen=True)
class SectionTotal:
    minutes: int
    value: Decimal
    pay: Decimal

    def to_dict(self):
        return {'value': decimal_str(self.value), 'minutes': self.minutes, 'pay': decimal_str(self.pay)}


def section_total(lines):
    lines = list(lines)
    return SectionTotal(
        minutes=sum(line.minutes for line in lines),
        value=sum((line.value for line in lines), Decimal('0.0000')),
        pay=round_money(sum((line.pay for line in lines), ZERO)),
    )


# --- STATUTORY PARTS ---

@dataclass(frozen=True)
class Contribution:
    employee: Decimal = ZERO
    employer: Decimal = ZERO

    def to_dict(self):
        return {'employee': decimal_str(self.employee), 'employer': decimal_str(self.employer)}


@dataclass(frozen=True)
class ContributionSet:
    """Per-period employee and employer shares."""
    sss: Contribution = Contribution()
    philhealth: Contribution = Contribution()
    pagibig: Contribution = Contribution()
    monthly_basis: Decimal = ZERO

    @property
    def employee_total(self):
        return self.sss.employee + self.philhealth.employee + self.pagibig.employee

    @property
    def employer_total(self):
        return self.sss.employer + self.philhealth.employer + self.pagibig.employer

    def to_dict(self):
        return {
            'sss': self.sss.to_dict(),
            'philhealth': self.philhealth.to_dict(),
            'pagibig': self.pagibig.to_dict(),
            'monthly_basis': decimal_str(self.monthly_basis),
            'total': Contribution(self.employee_total, self.employer_total).to_dict(),
        }

    @classmethod
    def from_dict(cls, data):
        def share(name):
            part = data[name]
            return Contribution(to_decimal(part['employee']), to_decimal(part['employer']))
        return cls(share('sss'), share('philhealth'), share('pagibig'), to_decimal(data['monthly_basis']))


NO_CONTRIBUTIONS = ContributionSet()


@dataclass(frozen=True)
class TaxComputation:
    gross_taxable: Decimal
    contributions: Decimal
    taxable_income: Decimal
    withholding: Decimal

    def to_dict(self):
        return {
            'gross_taxable': decimal_str(self.gross_taxable),
            'contributions': decimal_str(self.contributions),
            'taxable_income': decimal_str(self.taxable_income),
            'withholding': decimal_str(self.withholding),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(**{name: to_decimal(data[name]) for name in
                      ('gross_taxable', 'contributions', 'taxable_income', 'withholding')})


# --- BREAKDOWN ---

def _section_map(lines, section):
    mapping = {}
    for line in lines:
        if line.category.section != section:
            raise InvariantViolation(f'{line.category.key} does not belong in {section}')
        if line.category in mapping:
            raise InvariantViolation(f'{line.category.key} appears twice in {section}')
        mapping[line.category] = line
    ordered = {c: mapping[c] for c in PayCategory if c in mapping}
    return MappingProxyType(ordered)


@dataclass(frozen=True)
class PayrollBreakdown:
    worked_hours: Mapping[PayCategory, BreakdownLine] = field(default_factory=dict)
    overtime: Mapping[PayCategory, BreakdownLine] = field(default_factory=dict)
    contributions: Optional[ContributionSet] = None
    tax: Optional[TaxComputation] = None

    def __post_init__(self):
        object.__setattr__(self, 'worked_hours', _section_map(self.worked_hours.values(), WORKED_HOURS))
        object.__setattr__(self, 'overtime', _section_map(self.overtime.values(), OVERTIME))

    @classmethod
    def from_lines(cls, lines):
        lines = list(lines)
        return cls(
            worked_hours={l.category: l for l in lines if l.category.section == WORKED_HOURS},
            overtime={l.category: l for l in lines if l.category.section == OVERTIME},
        )

    def lines(self):
        return list(self.worked_hours.values()) + list(self.overtime.values())

    @property
    def worked_total(self):
        return section_total(self.worked_hours.values())

    @property
    def overtime_total(self):
        return section_total(self.overtime.values())

    @property
    def earnings(self):
        return self.worked_total.pay + self.overtime_total.pay

    @property
    def night_diff_pay(self):
        return round_money(sum((l.pay for l in self.worked_hours.values() if l.category.time_type.is_night), ZERO))

    @property
    def paid_minutes(self):
        return self.worked_total.minutes + self.overtime_total.minutes

    def with_statutory(self, contributions, tax):
        return PayrollBreakdown(dict(self.worked_hours), dict(self.overtime), contributions, tax)

    def to_dict(self):
        worked = {c.key: line.to_dict() for c, line in self.worked_hours.items()}
        worked['total'] = self.worked_total.to_dict()
        computed = {c.key: line.to_dict() for c, line in self.overtime.items()}
        computed['total'] = self.overtime_total.to_dict()
        return {
            WORKED_HOURS: worked,
            OVERTIME: {'computed': computed},
            'contributions': None if self.contributions is None else self.contributions.to_dict(),
            'tax': None if self.tax is None else self.tax.to_dict(),
        }

    @classmethod
    def from_dict(cls, data):
        """Rebuild a stored breakdown; stored totals must match the lines."""
        lines = []
        for section_data in (data.get(WORKED_HOURS, {}), data.get(OVERTIME, {}).get('computed', {})):
            for key, entry in section_data.items():
                if key != 'total':
                    lines.append(BreakdownLine.from_dict(PayCategory.from_key(key), entry))
        breakdown = cls.from_lines(lines)
        if data.get('contributions') is not None:
            breakdown = breakdown.with_statutory(ContributionSet.from_dict(data['contributions']), breakdown.tax)
        if data.get('tax') is not None:
            breakdown = breakdown.with_statutory(breakdown.contributions, TaxComputation.from_dict(data['tax']))

        for name, stored, derived in (
            (WORKED_HOURS, data.get(WORKED_HOURS, {}).get('total'), breakdown.worked_total),
            ('overtime.computed', data.get(OVERTIME, {}).get('computed', {}).get('total'), breakdown.overtime_total),
        ):
            if stored is None:
                continue
            if (int(stored['minutes']) != derived.minutes or to_decimal(stored['value']) != derived.value
                    or to_decimal(stored['pay']) != derived.pay):
                raise InvariantViolation(
                    f'{name} total ({stored["minutes"]} min, {stored["value"]} h, {stored["pay"]}) does not match '
                    f'its lines ({derived.minutes} min, {derived.value} h, {derived.pay})'
                )
        return breakdown


def combine(breakdowns):
    """
    Aggregate daily breakdowns into one period breakdown. Lines of the same
    category must have been priced at the same rate.
    """
    merged = {}
    for breakdown in breakdowns:
        for line in breakdown.lines():
            existing = merged.get(line.category)
            if existing is None:
                merged[line.category] = line
                continue
            if (existing.base_rate, existing.multiplier) != (line.base_rate, line.multiplier):
                raise InvariantViolation(f'{line.category.key} priced at two different rates in one period')
            minutes = existing.minutes + line.minutes
            merged[line.category] = BreakdownLine(
                category=line.category,
                minutes=minutes,
                base_rate=line.base_rate,
                multiplier=line.multiplier,
                pay=price_line(line.base_rate, line.multiplier, minutes),
            )
    return PayrollBreakdown.from_lines(merged.values())
