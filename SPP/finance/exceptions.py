"""
Error taxonomy for billing, savings and scholarship operations.

Services raise these; views turn them into JSON responses through
``FinanceError.as_dict()`` and ``status_code``.
"""


class FinanceError(Exception):
    """Base class for every rejected finance operation."""

    status_code = 400
    default_message = 'Finance operation failed.'

    def __init__(self, message=None, payload=None):
        self.message = message or self.default_message
        self.payload = payload or {}
        super().__init__(self.message)

    @property
    def code(self):
        return type(self).__name__

    def as_dict(self):
        return {
            'status': 'error',
            'error': self.code,
            'message': self.message,
            'data': self.payload,
        }


# ─── Input ────────────────────────────────────────────────────────

class InvalidRequest(FinanceError):
    """Malformed or missing input, caught before anything is written."""

    status_code = 422
    default_message = 'The submitted data is invalid.'

    def __init__(self, errors, message=None):
        self.errors = errors
        super().__init__(message, {'errors': errors})


class NotFoundError(FinanceError):
    status_code = 404
    default_message = 'Record not found.'


# ─── Business rules ───────────────────────────────────────────────

class ConflictError(FinanceError):
    status_code = 409
    default_message = 'The operation conflicts with existing records.'


class MonthAlreadyPaid(ConflictError):
    default_message = 'Some of the requested months are already paid.'


class SequenceGap(ConflictError):
    default_message = 'Tuition months must be paid in order.'


class MonthOutsideAcademicYear(ConflictError):
    default_message = 'The requested month is not part of the academic year.'


class InsufficientFunds(ConflictError):
    default_message = 'Savings balance is not enough for this withdrawal.'


class NotLastEntry(ConflictError):
    default_message = 'Only the most recent entry can be changed.'


class OverlappingScholarship(ConflictError):
    default_message = 'The student already has an active scholarship in this period.'


class AcademicYearLocked(ConflictError):
    default_message = 'The academic year cannot be changed in its current state.'


class PaymentLocked(ConflictError):
    default_message = 'The payment can no longer be deleted.'


class DuplicateTuitionRate(ConflictError):
    default_message = 'A tuition rate already exists for this grade level and academic year.'


# ─── Arithmetic ───────────────────────────────────────────────────

class ArithmeticMismatchError(FinanceError):
    status_code = 422
    default_message = 'Submitted totals do not match the recalculated values.'


class SubtotalMismatch(ArithmeticMismatchError):
    default_message = 'Subtotal does not match the sum of the payment details.'


class TotalMismatch(ArithmeticMismatchError):
    default_message = 'Total amount does not equal subtotal - discount + late fee.'


class AmountMismatch(ArithmeticMismatchError):
    default_message = 'Monthly amount does not match the tuition rate.'


class LateFeeMismatch(ArithmeticMismatchError):
    default_message = 'Late fee does not match the late fee policy.'


# ─── Infrastructure ───────────────────────────────────────────────

class FinanceSystemError(FinanceError):
    status_code = 500
    default_message = 'An unexpected error occurred. Nothing was saved.'
