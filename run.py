# run.py

import json
import os

import click

from payroll_engine import create_app, db
from payroll_engine.compliance import harness
# Models exposed in the shell context
from payroll_engine.models.payroll import (
    AttendanceRecord, Employee, EmployeeOverride, EmployeeSchedule, LoanDeduction, PayrollConfiguration,
    PayrollRun, Payslip,
)


app = create_app(os.environ.get('FLASK_ENV', 'default'))

@app.shell_context_processor
def make_shell_context():
    """Adds database instance and models to the Flask shell."""
    return dict(db=db, Employee=Employee, EmployeeSchedule=EmployeeSchedule, AttendanceRecord=AttendanceRecord,
                PayrollConfiguration=PayrollConfiguration, EmployeeOverride=EmployeeOverride,
                LoanDeduction=LoanDeduction, PayrollRun=PayrollRun, Payslip=Payslip)

@app.cli.command('compliance')
@click.option('--scenarios', 'path', type=click.Path(exists=True, dir_okay=False),
              default=None, help='JSON scenario file (defaults to the bundled scenarios).')
@click.option('--json', 'as_json', is_flag=True, help='Print the full report as JSON.')
def compliance(path, as_json):
    """Run the compliance scenarios against the bundled rate tables."""
    scenarios = harness.load_scenarios(path or harness.BUILTIN_SCENARIOS)
    report = harness.run(scenarios)
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        for name in report.passed:
            click.echo(f'PASS  {name}')
        for name in report.failed:
            click.echo(f'FAIL  {name}')
        for diff in report.diffs:
            click.echo(f'      {diff.scenario}: {diff.field} expected {diff.expected}, got {diff.actual}')
        summary = report.to_dict()['summary']
        click.echo(f"{summary['passed']}/{summary['total']} scenarios passed")
    if not report.ok:
        raise SystemExit(1)

if __name__ == '__main__':
    app.run()
