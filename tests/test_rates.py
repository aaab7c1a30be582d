"""
Tests for the rate tables, the effective-dated configuration store and the
multiplier resolver. Pure: no database.
"""

import json
from datetime import date, time
from decimal import Decimal

import pytest

from payroll_engine.errors import ConfigurationError, InputError, InvariantViolation
from payroll_engine.rates import (
    BracketTable, ConfigEntry, ContributionBracket, DayType, OverrideEntry, PayFrequency,
    RateMultiplierTable, RateTableStore, TimeType, default_config, resolve,
)
from payroll_engine.rates.defaults import DEFAULT_MULTIPLIERS


# =============================================================================
# Day / time classification
# =============================================================================


class TestDayType:

    def test_flags_combine_into_one_day_type(self):
        assert DayType.from_flags(False, False, False) is DayType.REGULAR
        assert DayType.from_flags(True, False, False) is DayType.REST_DAY
        assert DayType.from_flags(False, True, False) is DayType.REGULAR_HOLIDAY
        assert DayType.from_flags(True, True, False) is DayType.REGULAR_HOLIDAY_REST_DAY
        assert DayType.from_flags(True, False, True) is DayType.SPECIAL_HOLIDAY_REST_DAY

    def test_both_holiday_kinds_are_rejected(self):
        with pytest.raises(InputError) as exc:
            DayType.from_flags(False, True, True)
        assert exc.value.reason == 'conflicting_day_flags'

    def test_time_type_of(self):
        assert TimeType.of(overtime=True, night=True) is TimeType.NIGHT_DIFF_OVERTIME
        assert TimeType.of(overtime=False, night=True).is_night
        assert not TimeType.of(overtime=False, night=False).is_overtime

    def test_pay_frequency_factors(self):
        assert PayFrequency('weekly').monthly_factor == Decimal('4.33')
        assert PayFrequency('bi-weekly').monthly_factor == Decimal('2.167')
        assert PayFrequency('semi-monthly').monthly_factor == Decimal('2')
        assert PayFrequency('monthly').monthly_factor == Decimal('1')


# =============================================================================
# Multiplier table
# =============================================================================


class TestRateMultiplierTable:

    def setup_method(self):
        self.table = RateMultiplierTable(DEFAULT_MULTIPLIERS)

    def test_default_table_is_complete(self):
        self.table.validate()
        assert len(self.table) == len(DayType) * len(TimeType)

    def test_stacked_premium_is_a_single_entry(self):
        assert self.table.get(DayType.REGULAR_HOLIDAY_REST_DAY, TimeType.OVERTIME) == Decimal('3.38')
        assert self.table.get(DayType.REST_DAY, TimeType.NIGHT_DIFF_OVERTIME) == Decimal('1.859')

    def test_merged_overrides_one_key(self):
        merged = self.table.merged({'regular.overtime': '1.30'})
        assert merged.get(DayType.REGULAR, TimeType.OVERTIME) == Decimal('1.30')
        assert self.table.get(DayType.REGULAR, TimeType.OVERTIME) == Decimal('1.25')

    def test_missing_key_fails_validation(self):
        partial = RateMultiplierTable({'regular.regular': '1.00'})
        with pytest.raises(ConfigurationError, match='no multiplier'):
            partial.validate()

    def test_multiplier_below_one_fails_validation(self):
        with pytest.raises(ConfigurationError, match='at least 1.0'):
            self.table.merged({'rest_day.regular': '0.90'}).validate()

    def test_malformed_key(self):
        with pytest.raises(ConfigurationError, match='Malformed'):
            RateMultiplierTable({'weekend.overtime': '1.5'})

    def test_tuple_keys_are_accepted(self):
        table = RateMultiplierTable({('regular', 'regular'): '1'})
        assert table.get(DayType.REGULAR, TimeType.REGULAR) == Decimal('1')

    def test_non_numeric_multiplier(self):
        with pytest.raises(ConfigurationError):
            RateMultiplierTable({'regular.regular': 'double'})


# =============================================================================
# Brackets
# =============================================================================


class TestBracketTable:

    def setup_method(self):
        self.table = BracketTable('sample', [
            {'lower': '0', 'upper': '1000', 'fixed_amount': '10'},
            {'lower': '1000', 'upper': '5000', 'fixed_amount': '10', 'rate': '0.1', 'cap': '300'},
            {'lower': '5000', 'upper': None, 'fixed_amount': '300'},
        ])

    def test_lower_bound_is_inclusive(self):
        assert self.table.lookup(Decimal('1000')).lower == Decimal('1000')
        assert self.table.lookup(Decimal('999.99')).lower == Decimal('0')

    def test_rate_applies_above_lower_bound(self):
        assert self.table.compute(Decimal('2000')) == Decimal('110.00')

    def test_cap(self):
        assert self.table.compute(Decimal('4999.99')) == Decimal('300.00')

    def test_rounds_half_up(self):
        table = BracketTable('half', [{'lower': '0', 'rate': '0.005'}])
        assert table.compute(Decimal('1')) == Decimal('0.01')

    def test_brackets_are_sorted_on_construction(self):
        table = BracketTable('unsorted', [
            ContributionBracket(Decimal('100'), None, Decimal('5')),
            ContributionBracket(Decimal('0'), Decimal('100'), Decimal('1')),
        ])
        assert table.compute(Decimal('50')) == Decimal('1.00')

    def test_gap_is_rejected(self):
        with pytest.raises(ConfigurationError, match='gap'):
            BracketTable('gap', [{'lower': '0', 'upper': '100'}, {'lower': '200', 'upper': None}])

    def test_overlap_is_rejected(self):
        with pytest.raises(ConfigurationError, match='overlaps'):
            BracketTable('overlap', [{'lower': '0', 'upper': '150'}, {'lower': '100', 'upper': None}])

    def test_must_start_at_zero(self):
        with pytest.raises(ConfigurationError, match='start at 0'):
            BracketTable('late', [{'lower': '10', 'upper': None}])

    def test_must_be_unbounded(self):
        with pytest.raises(ConfigurationError, match='stops at'):
            BracketTable('bounded', [{'lower': '0', 'upper': '100'}])

    def test_malformed_row(self):
        with pytest.raises(ConfigurationError, match='Malformed'):
            BracketTable('broken', [{'upper': '100'}])

    def test_negative_lookup_is_a_defect(self):
        with pytest.raises(InvariantViolation):
            self.table.lookup(Decimal('-1'))


# =============================================================================
# Config snapshot
# =============================================================================


class TestPayrollConfig:

    def test_defaults_validate(self, config):
        assert config.validate() is config

    def test_fingerprint_changes_with_rates(self, config):
        changed = config.with_settings(rate_table=config.rate_table.merged({'regular.overtime': '1.30'}))
        assert changed.fingerprint != config.fingerprint
        assert default_config(date(2024, 1, 1)).fingerprint == config.fingerprint

    def test_unknown_timezone(self, config):
        with pytest.raises(ConfigurationError, match='timezone'):
            config.with_settings(timezone='Mars/Olympus').validate()

    def test_missing_bracket_table(self, config):
        brackets = dict(config.brackets)
        del brackets['income_tax']
        with pytest.raises(ConfigurationError, match='income_tax'):
            config.with_settings(brackets=brackets).validate()

    def test_empty_night_window(self, config):
        with pytest.raises(ConfigurationError, match='Night'):
            config.with_settings(night_diff_start=time(6, 0)).validate()

    def test_mappings_are_read_only(self, config):
        with pytest.raises(TypeError):
            config.brackets['sss'] = None

    def test_to_dict_lists_settings(self, config):
        data = config.to_dict()
        assert data['settings']['night_diff_start'] == '22:00'
        assert data['settings']['pay_frequency'] == 'monthly'
        assert data['multipliers']['regular.overtime'] == '1.25'

    def test_payroll_increment_rounding_setting(self, config):
        assert config.payroll_increment_rounding is False
        rounded = config.with_settings(payroll_increment_rounding=True)
        assert rounded.fingerprint != config.fingerprint
        store = RateTableStore([ConfigEntry('rates', 'payroll_increment_rounding', 'yes', date(2024, 1, 1))])
        assert store.snapshot(date(2024, 1, 1)).payroll_increment_rounding is True
        with pytest.raises(ConfigurationError, match='boolean'):
            RateTableStore([ConfigEntry('rates', 'payroll_increment_rounding', 'maybe', date(2024, 1, 1))]).snapshot(
                date(2024, 1, 1))


# =============================================================================
# Configuration store (effective dating)
# =============================================================================


class TestRateTableStore:

    def setup_method(self):
        self.entries = [
            ConfigEntry('multiplier', 'regular.overtime', '1.25', date(2024, 1, 1)),
            ConfigEntry('multiplier', 'regular.overtime', '1.30', date(2024, 6, 1)),
            ConfigEntry('rates', 'night_diff_start', '21:00', date(2024, 1, 1), expiry_date=date(2024, 3, 1)),
            ConfigEntry('rates', 'pay_frequency', 'weekly', date(2024, 1, 1), is_active=False),
        ]

    def test_snapshot_uses_latest_effective_row(self):
        store = RateTableStore(self.entries)
        before = store.snapshot(date(2024, 5, 31))
        after = store.snapshot(date(2024, 6, 1))
        assert before.rate_table.get(DayType.REGULAR, TimeType.OVERTIME) == Decimal('1.25')
        assert after.rate_table.get(DayType.REGULAR, TimeType.OVERTIME) == Decimal('1.30')

    def test_expiry_date_is_exclusive(self):
        store = RateTableStore(self.entries)
        assert store.snapshot(date(2024, 2, 29)).night_diff_start == time(21, 0)
        assert store.snapshot(date(2024, 3, 1)).night_diff_start == time(22, 0)

    def test_inactive_rows_are_ignored(self):
        store = RateTableStore(self.entries)
        assert store.snapshot(date(2024, 2, 1)).pay_frequency is PayFrequency.MONTHLY

    def test_snapshot_is_stamped_with_its_date(self):
        assert RateTableStore().snapshot(date(2024, 4, 15)).effective_date == date(2024, 4, 15)

    def test_application_settings_are_fallbacks(self):
        store = RateTableStore(self.entries, settings={'pay_frequency': 'semi-monthly', 'timezone': 'UTC'})
        config = store.snapshot(date(2024, 2, 1))
        assert config.pay_frequency is PayFrequency.SEMI_MONTHLY
        assert config.timezone == 'UTC'

    def test_bracket_rows_replace_default_table(self):
        rows = [{'lower': '0', 'upper': None, 'rate': '0.10'}]
        store = RateTableStore([ConfigEntry('income_tax', 'brackets', json.dumps(rows), date(2024, 1, 1))])
        config = store.snapshot(date(2024, 1, 1))
        assert config.bracket_table('income_tax').compute(Decimal('1000')) == Decimal('100.00')

    def test_invalid_bracket_row_aborts(self):
        rows = [{'lower': '100', 'upper': None}]
        store = RateTableStore([ConfigEntry('sss', 'brackets', json.dumps(rows), date(2024, 1, 1))])
        with pytest.raises(ConfigurationError):
            store.snapshot(date(2024, 1, 1))

    def test_bad_multiplier_row_aborts(self):
        store = RateTableStore([ConfigEntry('multiplier', 'regular.overtime', '0.5', date(2024, 1, 1))])
        with pytest.raises(ConfigurationError):
            store.snapshot(date(2024, 1, 1))

    def test_unknown_config_type(self):
        store = RateTableStore([ConfigEntry('bonus', 'x', '1', date(2024, 1, 1))])
        with pytest.raises(ConfigurationError, match='Unknown configuration type'):
            store.snapshot(date(2024, 1, 1))

    def test_unknown_setting(self):
        store = RateTableStore([ConfigEntry('rates', 'coffee_allowance', '1', date(2024, 1, 1))])
        with pytest.raises(ConfigurationError, match='Unknown payroll setting'):
            store.snapshot(date(2024, 1, 1))

    def test_employee_overrides_are_effective_dated(self):
        overrides = [
            OverrideEntry('E-1', 'hours_per_day', '10', date(2024, 1, 1), effective_until=date(2024, 2, 1)),
            OverrideEntry('E-1', 'hours_per_day', '9', date(2024, 2, 1)),
        ]
        store = RateTableStore(overrides=overrides)
        assert store.snapshot(date(2024, 1, 31)).overrides_for('E-1').hours_per_day == Decimal('10')
        assert store.snapshot(date(2024, 2, 1)).overrides_for('E-1').hours_per_day == Decimal('9')
        assert store.snapshot(date(2024, 2, 1)).overrides_for('E-2').hours_per_day is None

    def test_unknown_override_type(self):
        store = RateTableStore(overrides=[OverrideEntry('E-1', 'shoe_size', '9', date(2024, 1, 1))])
        with pytest.raises(ConfigurationError, match='shoe_size'):
            store.snapshot(date(2024, 1, 1))

    def test_non_positive_override(self):
        store = RateTableStore(overrides=[OverrideEntry('E-1', 'custom_rate', '0', date(2024, 1, 1))])
        with pytest.raises(ConfigurationError, match='positive'):
            store.snapshot(date(2024, 1, 1))


# =============================================================================
# Resolver
# =============================================================================


class TestResolve:

    def test_resolves_composite_key(self, config):
        assert resolve(DayType.SPECIAL_HOLIDAY_REST_DAY, TimeType.NIGHT_DIFF_OVERTIME, config) == Decimal('2.4167')

    def test_accepts_enum_values(self, config):
        assert resolve('regular_holiday', 'night_diff', config) == Decimal('2.20')

    def test_missing_key_is_a_configuration_error(self, config):
        partial = config.with_settings(rate_table=RateMultiplierTable({'regular.regular': '1.00'}))
        with pytest.raises(ConfigurationError, match='regular.overtime'):
            resolve(DayType.REGULAR, TimeType.OVERTIME, partial)
