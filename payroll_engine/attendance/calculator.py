# payroll_engine/attendance/calculator.py

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

import pytz

from payroll_engine.errors import InputError, InvariantViolation
from payroll_engine.rates.tables import DayType, TimeType
from payroll_engine.utils import minutes_to_hours
from .records import AbsentRecord, ClosedRecord, OnLeaveRecord, OpenRecord

logger = logging.getLogger(__name__)

# A break without a fixed window is only taken from shifts at least this long.
UNPLACED_BREAK_MIN_WORK = 4 * 60


class RecordStatus(Enum):
    CLOSED = 'closed'
    OPEN = 'open'
    ON_LEAVE = 'on_leave'
    ABSENT = 'absent'


@dataclass(frozen=True)
class WorkedSegment:
    day_type: DayType
    time_type: TimeType
    start: datetime
    end: datetime

    @property
    def minutes(self):
        return _minutes(self.start, self.end)

    @property
    def hours(self):
        return minutes_to_hours(self.minutes)


@dataclass(frozen=True)
class AttendanceFlags:
    late_minutes: int = 0
    undertime_minutes: int = 0
    is_late: bool = False
    is_undertime: bool = False
    is_halfday: bool = False


@dataclass(frozen=True)
class WorkedSegments:
    """
    Normalized result for one attendance record.

    For closed records, `paid_minutes + excluded_minutes` always equals
    `elapsed_minutes - break_minutes`. Excluded time is early arrival
    plus the overtime it cancelled.
    """
    work_date: date
    status: RecordStatus
    day_type: Optional[DayType] = None
    segments: tuple = ()
    flags: AttendanceFlags = AttendanceFlags()
    elapsed_minutes: int = 0
    break_minutes: int = 0
    early_minutes: int = 0
    overtime_offset_minutes: int = 0
    record: object = None

    @property
    def is_open(self):
        return self.status is RecordStatus.OPEN

    @property
    def paid_minutes(self):
        return sum(s.minutes for s in self.segments)

    @property
    def excluded_minutes(self):
        return self.early_minutes + self.overtime_offset_minutes

    @property
    def overtime_minutes(self):
        return sum(s.minutes for s in self.segments if s.time_type.is_overtime)

    def minutes_by_time_type(self):
        totals = {}
        for segment in self.segments:
            totals[segment.time_type] = totals.get(segment.time_type, 0) + segment.minutes
        return totals

    def check_conservation(self):
        worked = self.elapsed_minutes - self.break_minutes
        if self.paid_minutes + self.excluded_minutes != worked:
            raise InvariantViolation(
                f'{self.work_date}: {self.paid_minutes} paid + {self.excluded_minutes} excluded minutes '
                f'!= {worked} worked'
            )
        return self


# --- INTERVAL HELPERS ---

def _minutes(start, end):
    return int((end - start).total_seconds() // 60)


def _local_minute(moment, tz):
    """Clock time in the payroll timezone, truncated to the minute."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(tz).replace(tzinfo=None)
    return moment.replace(second=0, microsecond=0)


def _subtract(intervals, window):
    start, end = window
    result = []
    for a, b in intervals:
        if b <= start or a >= end:
            result.append((a, b))
            continue
        if a < start:
            result.append((a, start))
        if b > end:
            result.append((end, b))
    return result


def _instant_after(intervals, minutes):
    """The moment at which `minutes` of worked time have accumulated, or None."""
    remaining = minutes
    for a, b in intervals:
        span = _minutes(a, b)
        if span >= remaining:
            return a + timedelta(minutes=remaining)
        remaining -= span
    return None


def _split(intervals, cuts):
    pieces = []
    for a, b in intervals:
        points = sorted({c for c in cuts if a < c < b})
        edges = [a] + points + [b]
        pieces.extend(zip(edges, edges[1:]))
    return pieces


def _merge(segments):
    merged = []
    for segment in segments:
        last = merged[-1] if merged else None
        if last and last.time_type == segment.time_type and last.end == segment.start:
            merged[-1] = replace(last, end=segment.end)
        else:
            merged.append(segment)
    return tuple(merged)


# --- BREAK DEDUCTION ---

def _take_break(time_in, time_out, schedule, work_date):
    worked = [(time_in, time_out)]
    window = schedule.break_window(work_date)
    if window is not None:
        return _subtract(worked, window)

    elapsed = _minutes(time_in, time_out)
    if schedule.break_duration and elapsed >= UNPLACED_BREAK_MIN_WORK:
        # No fixed window: take the break from the middle of the worked span.
        start = time_in + timedelta(minutes=(elapsed - schedule.break_duration) // 2)
        return _subtract(worked, (start, start + timedelta(minutes=schedule.break_duration)))
    return worked


# --- NIGHT DIFFERENTIAL ---

def _night_boundaries(first, last, config):
    cuts = []
    day = first.date() - timedelta(days=1)
    while day <= last.date():
        cuts.append(datetime.combine(day, config.night_diff_start))
        cuts.append(datetime.combine(day, config.night_diff_end))
        day += timedelta(days=1)
    return cuts


def _is_night(moment, config):
    t = moment.time()
    start, end = config.night_diff_start, config.night_diff_end
    if start > end:
        return t >= start or t < end
    return start <= t < end


# --- PAYROLL INCREMENTS ---

def round_to_payroll_increment(minutes):
    """
    Round worked minutes to the payroll increment: up to 15 minutes past the
    hour rounds down, 16 to 45 to the half hour, anything later up to the
    next hour.
    """
    hours, rest = divmod(minutes, 60)
    if rest <= 15:
        return hours * 60
    if rest <= 45:
        return hours * 60 + 30
    return (hours + 1) * 60


# --- EARLY CLOCK-IN ---

def _offset_overtime(segments, early_minutes):
    """
    Cancel overtime equal to the early-arrival minutes, starting from the
    end of the shift. Never takes more than the overtime there is.
    """
    remaining = early_minutes
    result = list(segments)
    for index in range(len(result) - 1, -1, -1):
        if remaining == 0:
            break
        segment = result[index]
        if not segment.time_type.is_overtime:
            continue
        taken = min(remaining, segment.minutes)
        remaining -= taken
        if taken == segment.minutes:
            result[index] = None
        else:
            result[index] = replace(segment, end=segment.end - timedelta(minutes=taken))
    return [s for s in result if s is not None], early_minutes - remaining


def _flags(time_in, time_out, segments, schedule, shift, day_type, config):
    if day_type.is_rest_day:
        return AttendanceFlags()
    shift_start, shift_end = shift
    late = _minutes(shift_start, time_in) if time_in > shift_start else 0
    undertime = _minutes(time_out, shift_end) if time_out < shift_end else 0

    scheduled = schedule.scheduled_minutes
    regular = sum(s.minutes for s in segments if not s.time_type.is_overtime)
    paid = sum(s.minutes for s in segments)
    return AttendanceFlags(
        late_minutes=late,
        undertime_minutes=undertime,
        is_late=late > 0,
        is_undertime=scheduled > 0 and regular < scheduled - config.undertime_tolerance_minutes,
        is_halfday=scheduled > 0 and paid * 2 < scheduled,
    )


# --- CORE LOGIC: NORMALIZE ONE RECORD ---

def normalize(record, schedule, config):
    """
    Split one attendance record into priced-ready worked segments.

    Open records come back with status OPEN and no segments; a time-out is
    never invented. Leave and absence records carry no segments either.
    """
    if isinstance(record, OpenRecord):
        logger.debug('Open attendance record on %s', record.work_date)
        return WorkedSegments(work_date=record.work_date, status=RecordStatus.OPEN, record=record)
    if isinstance(record, OnLeaveRecord):
        return WorkedSegments(work_date=record.work_date, status=RecordStatus.ON_LEAVE, record=record)
    if isinstance(record, AbsentRecord):
        return WorkedSegments(work_date=record.work_date, status=RecordStatus.ABSENT, record=record)
    if not isinstance(record, ClosedRecord):
        raise InputError('unknown_record', type(record).__name__)
    if schedule is None:
        raise InputError('missing_schedule', f'no schedule for attendance on {record.work_date}')

    tz = pytz.timezone(config.timezone)
    time_in = _local_minute(record.time_in, tz)
    time_out = _local_minute(record.time_out, tz)
    if time_out <= time_in:
        raise InputError('invalid_interval', f'{record.work_date}: less than a minute worked')
    elapsed = _minutes(time_in, time_out)

    rest_day = record.is_dayoff or not schedule.works_on(record.work_date)
    day_type = DayType.from_flags(rest_day, record.is_regular_holiday, record.is_special_holiday)

    worked = _take_break(time_in, time_out, schedule, record.work_date)
    break_minutes = elapsed - sum(_minutes(a, b) for a, b in worked)

    shift = schedule.window(record.work_date)
    if day_type.is_rest_day:
        # Rest days have no shift to arrive early for; overtime starts after
        # a full day's worth of work.
        early_before = None
        overtime_from = _instant_after(worked, config.rest_day_regular_minutes)
    else:
        early_before, overtime_from = shift

    cuts = _night_boundaries(time_in, time_out, config)
    cuts.extend(c for c in (early_before, overtime_from) if c is not None)

    segments = []
    early = 0
    for a, b in _split(worked, cuts):
        if early_before is not None and b <= early_before:
            early += _minutes(a, b)
            continue
        overtime = overtime_from is not None and a >= overtime_from
        segments.append(WorkedSegment(day_type, TimeType.of(overtime, _is_night(a, config)), a, b))

    offset = 0
    if early and config.early_clockin_offsets_overtime:
        segments, offset = _offset_overtime(segments, early)
        if offset:
            logger.debug('%s: %d early minutes cancelled %d overtime minutes', record.work_date, early, offset)

    segments = _merge(segments)
    result = WorkedSegments(
        work_date=record.work_date,
        status=RecordStatus.CLOSED,
        day_type=day_type,
        segments=segments,
        flags=_flags(time_in, time_out, segments, schedule, shift, day_type, config),
        elapsed_minutes=elapsed,
        break_minutes=break_minutes,
        early_minutes=early,
        overtime_offset_minutes=offset,
        record=record,
    )
    return result.check_conservation()
