"""
Tests for the compliance harness: the bundled scenarios must pass against
the bundled tables, and a wrong expectation must surface as a diff.
"""

import json

import pytest

from payroll_engine.compliance import harness


def scenario(**overrides):
    data = {
        'name': 'probe',
        'employee': {'employee_id': 'C-001', 'rate': '500', 'rate_type': 'hourly',
                     'employment_type': 'contractual'},
        'schedule': {'start_time': '08:00', 'end_time': '17:00', 'break_start': '12:00', 'break_end': '13:00'},
        'records': [{'work_date': '2024-01-15', 'time_in': '2024-01-15T08:00:00',
                     'time_out': '2024-01-15T19:00:00'}],
    }
    data.update(overrides)
    return harness.Scenario.from_dict(data)


class TestBuiltinScenarios:

    def setup_method(self):
        self.scenarios = harness.load_scenarios()

    def test_all_pass(self):
        report = harness.run(self.scenarios)
        assert report.diffs == []
        assert report.ok
        assert len(report.passed) == len(self.scenarios)

    def test_names_are_unique(self):
        names = [s.name for s in self.scenarios]
        assert len(names) == len(set(names))


class TestDiffs:

    def test_wrong_money_expectation(self):
        report = harness.run([scenario(expected={'gross_pay': '5250.02'})])
        assert report.failed == ['probe']
        assert report.diffs[0].field == 'gross_pay'
        assert report.diffs[0].actual == '5250.00'

    def test_money_tolerance_is_one_cent(self):
        report = harness.run([scenario(expected={'gross_pay': '5250.01'})])
        assert report.ok

    def test_minutes_must_match_exactly(self):
        path = 'breakdown.overtime.computed.regular_overtime.minutes'
        report = harness.run([scenario(expected={path: 121})])
        assert not report.ok
        assert report.diffs[0].tolerance == 0

    def test_missing_field_is_a_diff(self):
        report = harness.run([scenario(expected={'breakdown.worked_hours.rest_day.minutes': 480})])
        assert report.diffs[0].actual is None

    def test_expected_error_not_raised(self):
        report = harness.run([scenario(expected_error='open_attendance')])
        assert [d.field for d in report.diffs] == ['error']

    def test_settings_and_multipliers_apply(self):
        report = harness.run([scenario(
            multipliers={'regular.overtime': '1.50'},
            expected={'overtime_pay': '1500.00',
                      'breakdown.overtime.computed.regular_overtime.rate.multiplier': '1.50'},
        )])
        assert report.ok, [d.to_dict() for d in report.diffs]

    def test_report_to_dict(self):
        report = harness.run([scenario(expected={'net_pay': '1.00'})])
        data = report.to_dict()
        assert data['summary'] == {'total': 1, 'passed': 0, 'failed': 1}
        assert data['diffs'][0]['expected'] == '1.00'


class TestLoadScenarios:

    def test_from_file(self, tmp_path):
        path = tmp_path / 'scenarios.json'
        path.write_text(json.dumps([{
            'name': 'from-file',
            'employee': {'employee_id': 'X', 'rate': '100', 'rate_type': 'hourly', 'employment_type': 'contractual'},
            'schedule': {'start_time': '08:00', 'end_time': '17:00'},
            'period': {'start': '2024-01-01', 'end': '2024-01-31'},
            'records': [],
            'expected': {'gross_pay': '0.00'},
        }]), encoding='utf-8')
        scenarios = harness.load_scenarios(path)
        assert scenarios[0].period[1].day == 31
        assert harness.run(scenarios).ok

    def test_bad_rate_in_scenario(self):
        with pytest.raises(ValueError):
            scenario(employee={'employee_id': 'X', 'rate': 'lots'})
