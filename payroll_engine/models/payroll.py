# payroll_engine/models/payroll.py

from datetime import datetime, time
from decimal import Decimal

from sqlalchemy import event, func, select

from payroll_engine import db
from payroll_engine.errors import InputError
from payroll_engine.attendance.records import (
    MONDAY_TO_FRIDAY, AbsentRecord, ClosedRecord, OnLeaveRecord, OpenRecord, Schedule,
)
from payroll_engine.payroll.calculator import EmployeeContract, RateType
from payroll_engine.payroll.payslip import LoanInstallment


class Employee(db.Model):
    __tablename__ = 'employee'
    id = db.Column(db.Integer, primary_key=True)
    employee_id_number = db.Column(db.String(20), index=True, unique=True, nullable=False)
    first_name = db.Column(db.String(64), nullable=False)
    last_name = db.Column(db.String(64), nullable=False)
    rate = db.Column(db.Numeric(12, 2), nullable=False)
    rate_type = db.Column(db.String(10), nullable=False, default='monthly')
    employment_type = db.Column(db.String(20), nullable=False, default='regular')
    status = db.Column(db.String(20), default='Active')
    contract_start = db.Column(db.Date, nullable=True)
    contract_end = db.Column(db.Date, nullable=True)

    schedule = db.relationship('EmployeeSchedule', back_populates='employee', uselist=False)
    attendance_records = db.relationship('AttendanceRecord', back_populates='employee', lazy='dynamic')
    overrides = db.relationship('EmployeeOverride', back_populates='employee', lazy='select')
    loans = db.relationship('LoanDeduction', back_populates='employee', lazy='select')
    payslips = db.relationship('Payslip', back_populates='employee', lazy='dynamic')

    def __repr__(self):
        return f'<Employee {self.employee_id_number}>'

    def to_contract(self):
        try:
            rate_type = RateType(self.rate_type)
        except ValueError:
            raise InputError('invalid_rate_type', f'{self.employee_id_number}: {self.rate_type!r}')
        return EmployeeContract(
            employee_id=self.employee_id_number,
            rate=Decimal(self.rate) if self.rate is not None else None,
            rate_type=rate_type,
            employment_type=(self.employment_type or 'regular').lower(),
            name=f'{self.first_name} {self.last_name}',
            contract_start=self.contract_start,
            contract_end=self.contract_end,
        )


class EmployeeSchedule(db.Model):
    __tablename__ = 'employee_schedule'

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey('employee.id'), unique=True, nullable=False)
    start_time = db.Column(db.Time, nullable=False, default=time(8, 0, 0))
    end_time = db.Column(db.Time, nullable=False, default=time(17, 0, 0))
    break_start = db.Column(db.Time, nullable=True)
    break_end = db.Column(db.Time, nullable=True)
    break_duration = db.Column(db.Integer, nullable=False, default=0)
    days_of_week = db.Column(db.Integer, nullable=False, default=MONDAY_TO_FRIDAY)

    employee = db.relationship('Employee', back_populates='schedule')

    def __repr__(self):
        return f'<Schedule for {self.employee.employee_id_number}>'

    def to_schedule(self):
        return Schedule(
            start_time=self.start_time,
            end_time=self.end_time,
            break_start=self.break_start,
            break_end=self.break_end,
            break_duration=self.break_duration or 0,
            days_of_week=self.days_of_week,
        )


class AttendanceRecord(db.Model):
    __tablename__ = 'attendance_record'

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey('employee.id'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    time_in = db.Column(db.DateTime, nullable=True)
    time_out = db.Column(db.DateTime, nullable=True)
    is_dayoff = db.Column(db.Boolean, nullable=False, default=False)
    is_regular_holiday = db.Column(db.Boolean, nullable=False, default=False)
    is_special_holiday = db.Column(db.Boolean, nullable=False, default=False)
    on_leave = db.Column(db.Boolean, nullable=False, default=False)
    leave_type = db.Column(db.String(50), nullable=True)
    leave_is_paid = db.Column(db.Boolean, nullable=False, default=True)
    leave_pay_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal('100.00'))

    employee = db.relationship('Employee', back_populates='attendance_records')

    __table_args__ = (db.UniqueConstraint('employee_id', 'date', name='_employee_attendance_date_uc'),)

    def __repr__(self):
        return f'<Attendance {self.date} for {self.employee_id}>'

    def to_record(self):
        """The pipeline's view of this row; raises InputError for rows that cannot be paid."""
        if self.on_leave:
            return OnLeaveRecord(
                work_date=self.date,
                leave_type=self.leave_type or 'vacation',
                is_paid=self.leave_is_paid,
                pay_percentage=Decimal(self.leave_pay_percentage),
            )
        if self.time_in is None:
            return AbsentRecord(work_date=self.date, is_regular_holiday=self.is_regular_holiday)
        if self.time_out is None:
            return OpenRecord(work_date=self.date, time_in=self.time_in)
        return ClosedRecord(
            work_date=self.date,
            time_in=self.time_in,
            time_out=self.time_out,
            is_dayoff=self.is_dayoff,
            is_regular_holiday=self.is_regular_holiday,
            is_special_holiday=self.is_special_holiday,
        )


class PayrollConfiguration(db.Model):
    __tablename__ = 'payroll_configuration'

    id = db.Column(db.Integer, primary_key=True)
    config_type = db.Column(db.String(50), nullable=False, index=True)
    config_key = db.Column(db.String(100), nullable=False)
    config_value = db.Column(db.Text, nullable=False)
    effective_date = db.Column(db.Date, nullable=False)
    expiry_date = db.Column(db.Date, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    description = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f'<PayrollConfiguration {self.config_type}.{self.config_key} from {self.effective_date}>'


class EmployeeOverride(db.Model):
    __tablename__ = 'employee_override'

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey('employee.id'), nullable=False)
    override_type = db.Column(db.String(30), nullable=False)
    override_value = db.Column(db.Numeric(12, 4), nullable=False)
    effective_from = db.Column(db.Date, nullable=False)
    effective_until = db.Column(db.Date, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    employee = db.relationship('Employee', back_populates='overrides')


class LoanDeduction(db.Model):
    """Read-only view of the loan ledger: what is due per pay period."""
    __tablename__ = 'loan_deduction'

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey('employee.id'), nullable=False)
    description = db.Column(db.String(100), nullable=False)
    installment_amount = db.Column(db.Numeric(10, 2), nullable=False)
    remaining_balance = db.Column(db.Numeric(12, 2), nullable=True)
    start_date = db.Column(db.Date, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    employee = db.relationship('Employee', back_populates='loans')

    def to_installment(self):
        return LoanInstallment(
            loan_id=str(self.id),
            amount_due=Decimal(self.installment_amount),
            remaining_balance=None if self.remaining_balance is None else Decimal(self.remaining_balance),
            description=self.description,
        )


class PayrollRun(db.Model):
    __tablename__ = 'payroll_run'
    id = db.Column(db.Integer, primary_key=True)
    pay_period_start = db.Column(db.Date, nullable=False)
    pay_period_end = db.Column(db.Date, nullable=False)
    pay_date = db.Column(db.Date, nullable=False)
    config_effective_date = db.Column(db.Date, nullable=True)
    config_fingerprint = db.Column(db.String(64), nullable=True)
    total_gross_pay = db.Column(db.Numeric(12, 2), default=0.00)
    total_deductions = db.Column(db.Numeric(12, 2), default=0.00)
    total_net_pay = db.Column(db.Numeric(12, 2), default=0.00)
    include_thirteenth_month = db.Column(db.Boolean, nullable=False, default=False)
    skipped = db.Column(db.JSON, nullable=True)
    status = db.Column(db.String(20), default='Pending')
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    payslips = db.relationship('Payslip', back_populates='payroll_run', lazy='dynamic')

    def __repr__(self):
        return f'<PayrollRun {self.pay_period_start}>'


class Payslip(db.Model):
    __tablename__ = 'payslip'
    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey('employee.id'), nullable=False)
    payroll_run_id = db.Column(db.Integer, db.ForeignKey('payroll_run.id'), nullable=False)
    version = db.Column(db.Integer, nullable=False, default=1)
    superseded = db.Column(db.Boolean, nullable=False, default=False)
    employee = db.relationship('Employee', back_populates='payslips')
    payroll_run = db.relationship('PayrollRun', back_populates='payslips')

    gross_pay = db.Column(db.Numeric(12, 2), nullable=False)
    overtime_pay = db.Column(db.Numeric(12, 2), default=0.00)
    night_diff_pay = db.Column(db.Numeric(12, 2), default=0.00)
    holiday_pay = db.Column(db.Numeric(12, 2), default=0.00)
    leave_pay = db.Column(db.Numeric(12, 2), default=0.00)
    bonuses = db.Column(db.Numeric(12, 2), default=0.00)
    contributions = db.Column(db.Numeric(12, 2), default=0.00)
    withholding_tax = db.Column(db.Numeric(12, 2), default=0.00)
    loan_deductions = db.Column(db.Numeric(12, 2), default=0.00)
    other_deductions = db.Column(db.Numeric(12, 2), default=0.00)
    total_deductions = db.Column(db.Numeric(12, 2), nullable=False)
    net_pay = db.Column(db.Numeric(12, 2), nullable=False)
    breakdown = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('employee_id', 'payroll_run_id', 'version', name='_payslip_version_uc'),
    )

    def __repr__(self):
        return f'<Payslip v{self.version} for Employee ID {self.employee_id}>'

    @property
    def basic_pay(self):
        """Pay for regular hours, leave and unworked holidays; the 13th month basis."""
        return self.gross_pay - (self.overtime_pay or 0) - (self.bonuses or 0)

    @classmethod
    def from_result(cls, employee_row, run, payslip):
        return cls(
            employee_id=employee_row.id,
            payroll_run_id=run.id,
            version=payslip.version,
            gross_pay=payslip.gross_pay,
            overtime_pay=payslip.overtime_pay,
            night_diff_pay=payslip.night_diff_pay,
            holiday_pay=payslip.holiday_pay,
            leave_pay=payslip.leave_pay,
            bonuses=payslip.bonuses,
            contributions=payslip.contributions,
            withholding_tax=payslip.withholding_tax,
            loan_deductions=payslip.loan_deductions,
            other_deductions=payslip.other_deductions,
            total_deductions=payslip.total_deductions,
            net_pay=payslip.net_pay,
            breakdown=payslip.to_dict(),
        )


# ==========================================
# DATABASE TRIGGERS (ORM EVENTS)
# ==========================================

# Keep run totals equal to the sum of the current (non-superseded) payslips.
def update_payroll_run_totals(mapper, connection, target):
    run_id = target.payroll_run_id
    payroll_run_table = PayrollRun.__table__
    payslip_table = Payslip.__table__

    totals = connection.execute(
        select(
            func.sum(payslip_table.c.gross_pay),
            func.sum(payslip_table.c.total_deductions),
            func.sum(payslip_table.c.net_pay)
        ).where(
            (payslip_table.c.payroll_run_id == run_id) & (payslip_table.c.superseded == False)  # noqa: E712
        )
    ).first()

    connection.execute(
        payroll_run_table.update()
        .where(payroll_run_table.c.id == run_id)
        .values(
            total_gross_pay=totals[0] or 0,
            total_deductions=totals[1] or 0,
            total_net_pay=totals[2] or 0,
        )
    )


event.listen(Payslip, 'after_insert', update_payroll_run_totals)
event.listen(Payslip, 'after_update', update_payroll_run_totals)
event.listen(Payslip, 'after_delete', update_payroll_run_totals)
