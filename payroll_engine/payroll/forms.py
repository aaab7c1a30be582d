# payroll_engine/payroll/forms.py

from flask_wtf import FlaskForm
from wtforms import BooleanField, DateField
from wtforms.validators import DataRequired, Optional, ValidationError

class RunPayrollForm(FlaskForm):
    """Pay period for a new payroll run. Accepts form data or a JSON body."""

    class Meta:
        # Called by other services, not from a rendered page
        csrf = False

    pay_period_start = DateField('Pay Period Start', format='%Y-%m-%d', validators=[DataRequired()])
    pay_period_end = DateField('Pay Period End', format='%Y-%m-%d', validators=[DataRequired()])
    pay_date = DateField('Payment Date', format='%Y-%m-%d', validators=[Optional()])
    include_thirteenth_month = BooleanField('13th Month Pay')

    def validate_pay_period_end(self, field):
        start = self.pay_period_start.data
        if start and field.data and field.data < start:
            raise ValidationError('Pay period end date must be on or after start date.')
