# payroll_engine/errors.py


class PayrollError(Exception):
    """Base class for everything the payroll pipeline raises on purpose."""
    status_code = 400


class ConfigurationError(PayrollError, ValueError):
    """Rate tables or brackets are unusable. Aborts a whole run."""
    status_code = 422


class InputError(PayrollError, ValueError):
    """
    Bad attendance or schedule data for one employee.
    The batch skips that employee and records `reason`.
    """

    def __init__(self, reason, detail=None):
        self.reason = reason
        self.detail = detail
        message = reason if detail is None else f'{reason}: {detail}'
        super().__init__(message)


class InvariantViolation(PayrollError):
    """A computed value broke an arithmetic invariant (a defect, not bad input)."""
    status_code = 500
