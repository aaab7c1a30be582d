# payroll_engine/attendance/records.py

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional

from payroll_engine.errors import InputError
from payroll_engine.utils import to_decimal

MONDAY_TO_FRIDAY = 0b0011111
EVERY_DAY = 0b1111111


def _parse_date(value):
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _parse_datetime(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _parse_time(value):
    if value is None or isinstance(value, time):
        return value
    return datetime.strptime(value, '%H:%M').time()


@dataclass(frozen=True)
class Schedule:
    """
    An employee's shift. `end_time` at or before `start_time` means the
    shift runs past midnight. Either a break window or a plain
    `break_duration` (minutes) may be given. `days_of_week` is a bitset,
    bit 0 being Monday.
    """
    start_time: time
    end_time: time
    break_start: Optional[time] = None
    break_end: Optional[time] = None
    break_duration: int = 0
    days_of_week: int = MONDAY_TO_FRIDAY

    def __post_init__(self):
        if (self.break_start is None) != (self.break_end is None):
            raise InputError('invalid_schedule', 'break_start and break_end must be given together')
        if self.break_duration < 0:
            raise InputError('invalid_schedule', 'break_duration cannot be negative')
        if not 0 <= self.days_of_week <= EVERY_DAY:
            raise InputError('invalid_schedule', f'days_of_week {self.days_of_week} is not a weekday bitset')

    @classmethod
    def from_dict(cls, data):
        return cls(
            start_time=_parse_time(data['start_time']),
            end_time=_parse_time(data['end_time']),
            break_start=_parse_time(data.get('break_start')),
            break_end=_parse_time(data.get('break_end')),
            break_duration=int(data.get('break_duration', 0)),
            days_of_week=int(data.get('days_of_week', MONDAY_TO_FRIDAY)),
        )

    def works_on(self, day):
        return bool(self.days_of_week & (1 << day.weekday()))

    def window(self, work_date):
        start = datetime.combine(work_date, self.start_time)
        end = datetime.combine(work_date, self.end_time)
        if end <= start:
            end += timedelta(days=1)
        return start, end

    def break_window(self, work_date):
        if self.break_start is None:
            return None
        shift_start, _ = self.window(work_date)
        start = datetime.combine(work_date, self.break_start)
        if start < shift_start:
            start += timedelta(days=1)
        end = datetime.combine(start.date(), self.break_end)
        if end <= start:
            end += timedelta(days=1)
        return start, end

    @property
    def break_minutes(self):
        if self.break_start is None:
            return self.break_duration
        start, end = self.break_window(date(2000, 1, 3))
        return int((end - start).total_seconds() // 60)

    @property
    def scheduled_minutes(self):
        start, end = self.window(date(2000, 1, 3))
        return int((end - start).total_seconds() // 60) - self.break_minutes


# --- ATTENDANCE RECORD VARIANTS ---

@dataclass(frozen=True)
class OpenRecord:
    """Clocked in, not yet clocked out."""
    work_date: date
    time_in: datetime


@dataclass(frozen=True)
class ClosedRecord:
    work_date: date
    time_in: datetime
    time_out: datetime
    is_dayoff: bool = False
    is_regular_holiday: bool = False
    is_special_holiday: bool = False

    def __post_init__(self):
        if (self.time_in.tzinfo is None) != (self.time_out.tzinfo is None):
            raise InputError('invalid_interval', f'{self.work_date}: mixed naive and aware clock times')
        if self.time_out <= self.time_in:
            raise InputError('invalid_interval', f'{self.work_date}: time_out is not after time_in')
        if self.is_regular_holiday and self.is_special_holiday:
            raise InputError('conflicting_day_flags', f'{self.work_date}: both regular and special holiday')


@dataclass(frozen=True)
class OnLeaveRecord:
    work_date: date
    leave_type: str = 'vacation'
    is_paid: bool = True
    pay_percentage: Decimal = Decimal('100')

    def __post_init__(self):
        if not Decimal('0') <= self.pay_percentage <= Decimal('100'):
            raise InputError('invalid_leave', f'{self.work_date}: pay_percentage {self.pay_percentage}')


@dataclass(frozen=True)
class AbsentRecord:
    """No work on a date the employee would otherwise be paid for (e.g. a regular holiday)."""
    work_date: date
    is_regular_holiday: bool = False


def record_from_dict(data):
    """Build the right record variant from a plain mapping (fixtures, API payloads)."""
    work_date = _parse_date(data['work_date'])
    if data.get('on_leave'):
        return OnLeaveRecord(
            work_date=work_date,
            leave_type=data.get('leave_type', 'vacation'),
            is_paid=bool(data.get('is_paid', True)),
            pay_percentage=to_decimal(data.get('pay_percentage', '100')),
        )
    if data.get('absent'):
        return AbsentRecord(work_date=work_date, is_regular_holiday=bool(data.get('is_regular_holiday')))
    time_in = _parse_datetime(data.get('time_in'))
    if time_in is None:
        raise InputError('missing_time_in', str(work_date))
    time_out = _parse_datetime(data.get('time_out'))
    if time_out is None:
        return OpenRecord(work_date=work_date, time_in=time_in)
    return ClosedRecord(
        work_date=work_date,
        time_in=time_in,
        time_out=time_out,
        is_dayoff=bool(data.get('is_dayoff')),
        is_regular_holiday=bool(data.get('is_regular_holiday')),
        is_special_holiday=bool(data.get('is_special_holiday')),
    )


def check_one_per_day(records):
    seen = set()
    for record in records:
        if record.work_date in seen:
            raise InputError('duplicate_attendance', f'more than one record for {record.work_date}')
        seen.add(record.work_date)
    return records
