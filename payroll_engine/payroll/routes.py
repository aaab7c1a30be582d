# payroll_engine/payroll/routes.py

from datetime import date

from flask import abort, current_app, jsonify

from config import Config
from payroll_engine import db
from payroll_engine.errors import InputError
from payroll_engine.models.payroll import AttendanceRecord, Employee, PayrollRun, Payslip
from payroll_engine.payroll import bp
from payroll_engine.payroll.forms import RunPayrollForm
from payroll_engine.rates.store import RateTableStore
from payroll_engine.utils import ZERO
from .breakdown import PayrollBreakdown
from .run import EmployeePayrollInput, run_payroll as run_batch


# --- HELPERS ---

def _snapshot(as_of):
    settings = Config.payroll_settings(current_app.config)
    return RateTableStore.from_database(db.session, settings).snapshot(as_of)


def _active_employees():
    employees = Employee.query.filter_by(status='Active').order_by(Employee.employee_id_number).all()
    if not employees:
        raise InputError('no_active_employees', 'payroll run cancelled')
    return employees


def _year_to_date_basic(emp, run):
    """Basic pay from the employee's current payslips in earlier runs of the same year."""
    earlier = (Payslip.query.join(PayrollRun)
               .filter(Payslip.employee_id == emp.id,
                       Payslip.superseded == False,  # noqa: E712
                       PayrollRun.id != run.id,
                       PayrollRun.pay_period_end >= date(run.pay_period_end.year, 1, 1),
                       PayrollRun.pay_period_end < run.pay_period_start)
               .all())
    return sum((p.basic_pay for p in earlier), ZERO)


def _payroll_input(emp, run):
    """Read one employee's period data out of the database. Raises InputError for unusable rows."""
    start, end = run.pay_period_start, run.pay_period_end
    rows = (emp.attendance_records
            .filter(AttendanceRecord.date.between(start, end))
            .order_by(AttendanceRecord.date)
            .all())
    loans = [loan.to_installment() for loan in emp.loans if loan.is_active and loan.start_date <= end]
    return EmployeePayrollInput(
        employee=emp.to_contract(),
        schedule=emp.schedule.to_schedule() if emp.schedule else None,
        records=tuple(row.to_record() for row in rows),
        loans=tuple(loans),
        year_to_date_basic=_year_to_date_basic(emp, run) if run.include_thirteenth_month else None,
    )


def _compute(employees, run, config, versions=None):
    inputs, rejected = [], []
    for emp in employees:
        try:
            inputs.append(_payroll_input(emp, run))
        except InputError as e:
            rejected.append((emp.employee_id_number, e))

    result = run_batch(
        inputs, config, run.pay_period_start, run.pay_period_end,
        max_workers=current_app.config.get('PAYROLL_MAX_WORKERS', 4),
        versions=versions,
    )
    for employee_id, error in rejected:
        current_app.logger.warning('Skipping employee %s: %s', employee_id, error)
        result.skip(employee_id, error)
    return result


def _record_result(run, result):
    run.config_effective_date = result.config_effective_date
    run.config_fingerprint = result.config_fingerprint
    run.skipped = [s.to_dict() for s in result.skipped]
    run.status = 'Processed'


def _run_summary(run, result=None):
    summary = {
        'run_id': run.id,
        'pay_period_start': run.pay_period_start.isoformat(),
        'pay_period_end': run.pay_period_end.isoformat(),
        'pay_date': run.pay_date.isoformat(),
        'status': run.status,
        'total_gross_pay': str(run.total_gross_pay),
        'total_deductions': str(run.total_deductions),
        'total_net_pay': str(run.total_net_pay),
        'config_fingerprint': run.config_fingerprint,
        'include_thirteenth_month': run.include_thirteenth_month,
        'skipped': run.skipped or [],
        'payslips': [
            {'id': p.id, 'employee_id': p.employee.employee_id_number, 'version': p.version,
             'net_pay': str(p.net_pay)}
            for p in run.payslips.filter_by(superseded=False).order_by(Payslip.id)
        ],
    }
    if result is not None:
        summary['processed'] = len(result.payslips)
    return summary


# --- ROUTES ---

@bp.route('/run', methods=['POST'])
def run_payroll():
    form = RunPayrollForm()
    if not form.validate_on_submit():
        return jsonify(error='invalid_form', fields=form.errors), 400

    pay_period_start = form.pay_period_start.data
    pay_period_end = form.pay_period_end.data
    pay_date = form.pay_date.data or pay_period_end

    # Rate tables are read once; every employee in the run uses this snapshot
    config = _snapshot(pay_period_start)
    employees = _active_employees()

    new_run = PayrollRun(
        pay_period_start=pay_period_start,
        pay_period_end=pay_period_end,
        pay_date=pay_date,
        include_thirteenth_month=form.include_thirteenth_month.data,
        status='Processing'
    )
    db.session.add(new_run)
    db.session.flush()

    result = _compute(employees, new_run, config)
    rows = {emp.employee_id_number: emp for emp in employees}
    for payslip in result.payslips:
        db.session.add(Payslip.from_result(rows[payslip.employee_id], new_run, payslip))
    _record_result(new_run, result)
    db.session.commit()

    current_app.logger.info(
        'Payroll run #%s processed: %d payslips, %d skipped',
        new_run.id, len(result.payslips), len(result.skipped),
    )
    return jsonify(_run_summary(new_run, result)), 201


@bp.route('/run/<int:run_id>/recompute', methods=['POST'])
def recompute_run(run_id):
    """Compute fresh payslip versions; the versions they replace are kept but marked superseded."""
    run = db.session.get(PayrollRun, run_id)
    if run is None:
        abort(404, description=f'Payroll run {run_id} not found.')

    config = _snapshot(run.pay_period_start)
    employees = _active_employees()
    current = {p.employee_id: p for p in run.payslips.filter_by(superseded=False)}
    versions = {
        emp.employee_id_number: current[emp.id].version + 1
        for emp in employees if emp.id in current
    }

    result = _compute(employees, run, config, versions)
    rows = {emp.employee_id_number: emp for emp in employees}
    for payslip in result.payslips:
        emp = rows[payslip.employee_id]
        if emp.id in current:
            current[emp.id].superseded = True
        db.session.add(Payslip.from_result(emp, run, payslip))
    _record_result(run, result)
    db.session.commit()

    current_app.logger.info('Payroll run #%s recomputed: %d new payslip versions', run.id, len(result.payslips))
    return jsonify(_run_summary(run, result))


@bp.route('/run/<int:run_id>')
def payroll_summary(run_id):
    run = db.session.get(PayrollRun, run_id)
    if run is None:
        abort(404, description=f'Payroll run {run_id} not found.')
    return jsonify(_run_summary(run))


@bp.route('/payslip/<int:payslip_id>')
def payslip_detail(payslip_id):
    payslip = db.session.get(Payslip, payslip_id)
    if payslip is None:
        abort(404, description=f'Payslip {payslip_id} not found.')

    # Stored totals must still match their lines before they are shown
    PayrollBreakdown.from_dict(payslip.breakdown['breakdown'])
    return jsonify({
        'id': payslip.id,
        'payroll_run_id': payslip.payroll_run_id,
        'employee_id': payslip.employee.employee_id_number,
        'version': payslip.version,
        'superseded': payslip.superseded,
        'payslip': payslip.breakdown,
    })
