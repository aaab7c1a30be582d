# payroll_engine/utils.py

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ZERO = Decimal('0.00')
CENTS = Decimal('0.01')
# Line pay keeps sub-cent precision; cents are only taken at totals.
LINE_PLACES = Decimal('0.000001')
HOUR_PLACES = Decimal('0.0001')


def to_decimal(value):
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValueError(f'Not a decimal amount: {value!r}')
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f'Not a decimal amount: {value!r}')


def round_money(amount):
    return to_decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def round_line(amount):
    return to_decimal(amount).quantize(LINE_PLACES, rounding=ROUND_HALF_UP)


def minutes_to_hours(minutes):
    return (Decimal(minutes) / 60).quantize(HOUR_PLACES, rounding=ROUND_HALF_UP)


def decimal_str(value):
    """Stable text form used in persisted breakdowns (never exponent notation)."""
    if value is None:
        return None
    return format(to_decimal(value), 'f')
