"""
Tests for attendance normalization: breaks, overtime, night differential,
rest days, early clock-in and the minute-conservation rule.
"""

from datetime import date, datetime, time

import pytest
import pytz

from payroll_engine.attendance.calculator import RecordStatus, WorkedSegment, WorkedSegments, normalize
from payroll_engine.attendance.records import (
    AbsentRecord, ClosedRecord, OnLeaveRecord, OpenRecord, Schedule, check_one_per_day, record_from_dict,
)
from payroll_engine.errors import InputError, InvariantViolation
from payroll_engine.rates.tables import DayType, TimeType

MONDAY = date(2024, 1, 15)
SATURDAY = date(2024, 1, 20)


def minutes(result, time_type):
    return result.minutes_by_time_type().get(time_type, 0)


def assert_conserved(result):
    assert result.paid_minutes + result.excluded_minutes == result.elapsed_minutes - result.break_minutes


# =============================================================================
# Regular days
# =============================================================================


class TestRegularDay:

    def test_full_shift(self, config, day_shift, closed):
        result = normalize(closed(MONDAY, '08:00', '17:00'), day_shift, config)
        assert result.status is RecordStatus.CLOSED
        assert result.day_type is DayType.REGULAR
        assert minutes(result, TimeType.REGULAR) == 480
        assert result.break_minutes == 60
        assert result.overtime_minutes == 0
        assert_conserved(result)

    def test_overtime_after_shift_end(self, config, day_shift, closed):
        result = normalize(closed(MONDAY, '08:00', '19:00'), day_shift, config)
        assert minutes(result, TimeType.REGULAR) == 480
        assert minutes(result, TimeType.OVERTIME) == 120
        assert_conserved(result)

    def test_seconds_are_truncated(self, config, day_shift):
        record = ClosedRecord(MONDAY, datetime(2024, 1, 15, 8, 0, 59), datetime(2024, 1, 15, 17, 0, 30))
        result = normalize(record, day_shift, config)
        assert result.paid_minutes == 480

    def test_aware_times_are_converted_to_payroll_timezone(self, config, day_shift):
        record = ClosedRecord(
            MONDAY,
            pytz.UTC.localize(datetime(2024, 1, 15, 0, 0)),
            pytz.UTC.localize(datetime(2024, 1, 15, 9, 0)),
        )
        result = normalize(record, day_shift, config)
        assert minutes(result, TimeType.REGULAR) == 480
        assert result.overtime_minutes == 0

    def test_late_and_undertime_flags(self, config, day_shift, closed):
        result = normalize(closed(MONDAY, '08:15', '16:00'), day_shift, config)
        assert result.flags.is_late
        assert result.flags.late_minutes == 15
        assert result.flags.undertime_minutes == 60
        assert result.flags.is_undertime
        assert not result.flags.is_halfday

    def test_halfday_flag(self, config, day_shift, closed):
        result = normalize(closed(MONDAY, '08:00', '11:00'), day_shift, config)
        assert result.flags.is_halfday
        assert result.paid_minutes == 180

    def test_undertime_within_tolerance_is_not_flagged(self, config, day_shift, closed):
        result = normalize(closed(MONDAY, '08:00', '16:45'), day_shift, config)
        assert result.flags.undertime_minutes == 15
        assert not result.flags.is_undertime


# =============================================================================
# Breaks
# =============================================================================


class TestBreaks:

    def setup_method(self):
        self.floating = Schedule(start_time=time(8, 0), end_time=time(17, 0), break_duration=60)

    def test_break_window_outside_worked_time_costs_nothing(self, config, day_shift, closed):
        result = normalize(closed(MONDAY, '13:00', '17:00'), day_shift, config)
        assert result.break_minutes == 0
        assert result.paid_minutes == 240

    def test_unplaced_break_is_taken_from_the_middle(self, config, closed):
        result = normalize(closed(MONDAY, '08:00', '17:00'), self.floating, config)
        assert result.break_minutes == 60
        assert result.paid_minutes == 480
        assert [(s.start.time(), s.end.time()) for s in result.segments] == [
            (time(8, 0), time(12, 0)), (time(13, 0), time(17, 0)),
        ]

    def test_short_shift_has_no_unplaced_break(self, config, closed):
        result = normalize(closed(MONDAY, '08:00', '11:00'), self.floating, config)
        assert result.break_minutes == 0
        assert result.paid_minutes == 180


# =============================================================================
# Night differential
# =============================================================================


class TestNightDifferential:

    def setup_method(self):
        self.evening = Schedule(start_time=time(14, 0), end_time=time(23, 0),
                                break_start=time(18, 0), break_end=time(19, 0))
        self.graveyard = Schedule(start_time=time(22, 0), end_time=time(7, 0),
                                  break_start=time(2, 0), break_end=time(3, 0))

    def test_hours_after_22_are_night(self, config, closed):
        result = normalize(closed(MONDAY, '14:00', '23:00'), self.evening, config)
        assert minutes(result, TimeType.REGULAR) == 420
        assert minutes(result, TimeType.NIGHT_DIFF) == 60

    def test_overtime_past_midnight_is_night_overtime(self, config, closed):
        result = normalize(closed(MONDAY, '14:00', '01:00'), self.evening, config)
        assert minutes(result, TimeType.NIGHT_DIFF) == 60
        assert minutes(result, TimeType.NIGHT_DIFF_OVERTIME) == 120
        assert_conserved(result)

    def test_overnight_shift(self, config, closed):
        result = normalize(closed(MONDAY, '22:00', '07:00'), self.graveyard, config)
        # 22:00-02:00 and 03:00-06:00 are night, 06:00-07:00 is not
        assert minutes(result, TimeType.NIGHT_DIFF) == 420
        assert minutes(result, TimeType.REGULAR) == 60
        assert result.break_minutes == 60
        assert result.day_type is DayType.REGULAR

    def test_custom_night_window(self, config, closed):
        config = config.with_settings(night_diff_start=time(20, 0))
        result = normalize(closed(MONDAY, '14:00', '23:00'), self.evening, config)
        assert minutes(result, TimeType.NIGHT_DIFF) == 180


# =============================================================================
# Rest days and holidays
# =============================================================================


class TestRestDays:

    def test_day_outside_schedule_is_a_rest_day(self, config, day_shift, closed):
        result = normalize(closed(SATURDAY, '08:00', '17:00'), day_shift, config)
        assert result.day_type is DayType.REST_DAY
        assert minutes(result, TimeType.REGULAR) == 480
        assert result.overtime_minutes == 0

    def test_rest_day_overtime_starts_after_eight_worked_hours(self, config, day_shift, closed):
        result = normalize(closed(SATURDAY, '06:00', '17:00'), day_shift, config)
        # 06:00-12:00 and 13:00-15:00 are the first 480 minutes
        assert minutes(result, TimeType.REGULAR) == 480
        assert minutes(result, TimeType.OVERTIME) == 120
        assert result.early_minutes == 0
        assert_conserved(result)

    def test_dayoff_flag_on_a_scheduled_day(self, config, day_shift, closed):
        result = normalize(closed(MONDAY, '08:00', '17:00', is_dayoff=True, is_regular_holiday=True),
                           day_shift, config)
        assert result.day_type is DayType.REGULAR_HOLIDAY_REST_DAY

    def test_rest_day_has_no_lateness(self, config, day_shift, closed):
        result = normalize(closed(SATURDAY, '10:00', '12:00'), day_shift, config)
        assert not result.flags.is_late
        assert not result.flags.is_halfday

    def test_special_holiday(self, config, day_shift, closed):
        result = normalize(closed(MONDAY, '08:00', '17:00', is_special_holiday=True), day_shift, config)
        assert result.day_type is DayType.SPECIAL_HOLIDAY


# =============================================================================
# Early clock-in
# =============================================================================


class TestEarlyClockIn:

    def test_early_minutes_offset_overtime(self, config, day_shift, closed):
        result = normalize(closed(MONDAY, '07:50', '17:30'), day_shift, config)
        assert result.early_minutes == 10
        assert result.overtime_offset_minutes == 10
        assert minutes(result, TimeType.REGULAR) == 480
        assert minutes(result, TimeType.OVERTIME) == 20
        assert_conserved(result)

    def test_offset_never_exceeds_overtime(self, config, day_shift, closed):
        result = normalize(closed(MONDAY, '07:00', '17:10'), day_shift, config)
        assert result.early_minutes == 60
        assert result.overtime_offset_minutes == 10
        assert result.overtime_minutes == 0
        assert minutes(result, TimeType.REGULAR) == 480
        assert_conserved(result)

    def test_offset_can_be_disabled(self, config, day_shift, closed):
        config = config.with_settings(early_clockin_offsets_overtime=False)
        result = normalize(closed(MONDAY, '07:50', '17:30'), day_shift, config)
        assert result.overtime_minutes == 30
        assert result.overtime_offset_minutes == 0
        assert_conserved(result)

    def test_offset_takes_latest_overtime_first(self, config, closed):
        evening = Schedule(start_time=time(14, 0), end_time=time(21, 0))
        result = normalize(closed(MONDAY, '13:30', '23:00'), evening, config)
        # 21:00-22:00 overtime, 22:00-23:00 night overtime; 30 early minutes come off the night end
        assert minutes(result, TimeType.OVERTIME) == 60
        assert minutes(result, TimeType.NIGHT_DIFF_OVERTIME) == 30


# =============================================================================
# Record variants and input errors
# =============================================================================


class TestRecords:

    def test_open_record_is_never_closed(self, config, day_shift):
        result = normalize(OpenRecord(MONDAY, datetime(2024, 1, 15, 8, 0)), day_shift, config)
        assert result.is_open
        assert result.segments == ()
        assert result.paid_minutes == 0

    def test_leave_and_absence_carry_no_segments(self, config, day_shift):
        assert normalize(OnLeaveRecord(MONDAY), day_shift, config).status is RecordStatus.ON_LEAVE
        assert normalize(AbsentRecord(MONDAY, True), day_shift, config).status is RecordStatus.ABSENT

    def test_missing_schedule(self, config, closed):
        with pytest.raises(InputError) as exc:
            normalize(closed(MONDAY, '08:00', '17:00'), None, config)
        assert exc.value.reason == 'missing_schedule'

    def test_unknown_record(self, config, day_shift):
        with pytest.raises(InputError) as exc:
            normalize({'work_date': MONDAY}, day_shift, config)
        assert exc.value.reason == 'unknown_record'

    def test_time_out_before_time_in(self):
        with pytest.raises(InputError) as exc:
            ClosedRecord(MONDAY, datetime(2024, 1, 15, 17, 0), datetime(2024, 1, 15, 8, 0))
        assert exc.value.reason == 'invalid_interval'

    def test_conflicting_holiday_flags(self, closed):
        with pytest.raises(InputError) as exc:
            closed(MONDAY, '08:00', '17:00', is_regular_holiday=True, is_special_holiday=True)
        assert exc.value.reason == 'conflicting_day_flags'

    def test_invalid_leave_percentage(self):
        with pytest.raises(InputError):
            OnLeaveRecord(MONDAY, pay_percentage=150)

    def test_record_from_dict_variants(self):
        assert isinstance(record_from_dict({'work_date': '2024-01-15', 'time_in': '2024-01-15T08:00:00'}),
                          OpenRecord)
        assert isinstance(record_from_dict({'work_date': '2024-01-15', 'on_leave': True}), OnLeaveRecord)
        assert isinstance(record_from_dict({'work_date': '2024-01-15', 'absent': True}), AbsentRecord)
        with pytest.raises(InputError) as exc:
            record_from_dict({'work_date': '2024-01-15'})
        assert exc.value.reason == 'missing_time_in'

    def test_one_record_per_day(self, closed):
        with pytest.raises(InputError) as exc:
            check_one_per_day([closed(MONDAY, '08:00', '12:00'), closed(MONDAY, '13:00', '17:00')])
        assert exc.value.reason == 'duplicate_attendance'

    def test_schedule_break_must_be_complete(self):
        with pytest.raises(InputError) as exc:
            Schedule(start_time=time(8, 0), end_time=time(17, 0), break_start=time(12, 0))
        assert exc.value.reason == 'invalid_schedule'

    def test_schedule_works_on(self, day_shift):
        assert day_shift.works_on(MONDAY)
        assert not day_shift.works_on(SATURDAY)
        assert day_shift.scheduled_minutes == 480


# =============================================================================
# Minute conservation
# =============================================================================


class TestConservation:

    def test_normalized_day_passes(self, config, day_shift, closed):
        result = normalize(closed(MONDAY, '07:30', '19:00'), day_shift, config)
        assert result.check_conservation() is result

    def test_lost_minutes_are_a_defect(self):
        result = WorkedSegments(MONDAY, RecordStatus.CLOSED, DayType.REGULAR, elapsed_minutes=600, break_minutes=60)
        with pytest.raises(InvariantViolation, match='0 paid \\+ 0 excluded minutes != 540 worked'):
            result.check_conservation()

    def test_extra_minutes_are_a_defect(self):
        segment = WorkedSegment(DayType.REGULAR, TimeType.REGULAR,
                                datetime(2024, 1, 15, 8, 0), datetime(2024, 1, 15, 17, 0))
        result = WorkedSegments(MONDAY, RecordStatus.CLOSED, DayType.REGULAR, segments=(segment,),
                                elapsed_minutes=540, break_minutes=60)
        with pytest.raises(InvariantViolation):
            result.check_conservation()
