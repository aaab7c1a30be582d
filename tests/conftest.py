# tests/conftest.py

from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest

from payroll_engine import create_app, db
from payroll_engine.attendance.records import ClosedRecord, Schedule
from payroll_engine.payroll.calculator import EmployeeContract, RateType
from payroll_engine.rates.defaults import default_config


# --- PURE PIPELINE FIXTURES ---

@pytest.fixture
def config():
    return default_config(date(2024, 1, 1))


@pytest.fixture
def day_shift():
    """08:00-17:00, lunch 12:00-13:00, Monday to Friday."""
    return Schedule(start_time=time(8, 0), end_time=time(17, 0), break_start=time(12, 0), break_end=time(13, 0))


@pytest.fixture
def hourly_employee():
    return EmployeeContract('C-001', Decimal('500'), RateType.HOURLY, 'contractual')


@pytest.fixture
def closed():
    """Build a ClosedRecord from 'HH:MM' strings; an end at or before the start rolls to the next day."""
    def build(day, start, end, **flags):
        time_in = datetime.combine(day, datetime.strptime(start, '%H:%M').time())
        time_out = datetime.combine(day, datetime.strptime(end, '%H:%M').time())
        if time_out <= time_in:
            time_out += timedelta(days=1)
        return ClosedRecord(day, time_in, time_out, **flags)
    return build


# --- FLASK APP FIXTURES ---

@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
