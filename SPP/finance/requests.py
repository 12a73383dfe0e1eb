"""
Typed requests handed to the finance services.

Raw input (a JSON body or a dict built in code) is validated once here
with the forms in ``finance.forms``; services only ever see these
dataclasses. Unknown keys and malformed values raise ``InvalidRequest``
with field-level errors such as ``details.0.month``.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from .exceptions import InvalidRequest
from .forms import (
    BillFilterForm, BillingMonthForm, PaymentForm, PaymentLineForm, PaymentUpdateForm,
    QuoteForm, SavingsCorrectionForm, SavingsTransactionForm,
)


@dataclass(frozen=True)
class PaymentLine:
    month: int
    year: int
    amount: Decimal

    @property
    def key(self):
        return (self.month, self.year)


@dataclass(frozen=True)
class PaymentRequest:
    student_id: Optional[int]
    payment_date: date
    details: List[PaymentLine]
    subtotal: Decimal
    total_amount: Decimal
    payment_method: str = 'cash'
    discount: Decimal = Decimal('0')
    late_fee: Decimal = Decimal('0')
    notes: str = ''


@dataclass(frozen=True)
class SavingsRequest:
    student_id: int
    transaction_type: str
    amount: Decimal
    transaction_date: date
    notes: str = ''


@dataclass(frozen=True)
class SavingsCorrection:
    """Fields to change on the ledger tail; ``None`` keeps the stored value."""

    transaction_type: Optional[str] = None
    amount: Optional[Decimal] = None
    transaction_date: Optional[date] = None
    notes: Optional[str] = None

    def changes(self):
        return {
            name: value for name, value in self.__dict__.items() if value is not None
        }


def form_errors(form, prefix=''):
    """Flatten a bound form's errors into ``{'prefix.field': [messages]}``."""
    return {
        f"{prefix}{name}": [str(message) for message in messages]
        for name, messages in form.errors.items()
    }


def _reject_unknown(data, form_class, extra=()):
    allowed = set(form_class.base_fields) | set(extra)
    return {key: ['Unknown field.'] for key in data if key not in allowed}


def _require_mapping(data):
    if not isinstance(data, dict):
        raise InvalidRequest({'__all__': ['Request body must be a JSON object.']})


def _parse_items(data, key, form_class, errors):
    """
    Validate the non-empty list ``data[key]`` item by item with ``form_class``.
    Errors are added to ``errors`` as ``key.<index>.<field>``; the cleaned
    data of the valid items is returned.
    """
    items = data.get(key)
    if not isinstance(items, list) or not items:
        errors[key] = ['At least one month is required.']
        return []

    cleaned = []
    fields = ', '.join(form_class.base_fields)
    for index, item in enumerate(items):
        prefix = f"{key}.{index}."
        if not isinstance(item, dict):
            errors[f"{key}.{index}"] = [f"Each item must be an object with {fields}."]
            continue
        for name, messages in _reject_unknown(item, form_class).items():
            errors[f"{prefix}{name}"] = messages
        form = form_class(item)
        if form.is_valid():
            cleaned.append(form.cleaned_data)
        else:
            errors.update(form_errors(form, prefix))
    return cleaned


def parse_payment_request(data, update=False):
    """
    Validate a tuition payment request.

    ``details`` must be a non-empty list of {month, year, amount}.
    When ``update`` is set the student may be omitted; it is taken
    from the payment being updated.
    """
    _require_mapping(data)
    form_class = PaymentUpdateForm if update else PaymentForm

    errors = _reject_unknown(data, form_class, extra=('details',))
    form = form_class({k: v for k, v in data.items() if k != 'details'})
    if not form.is_valid():
        errors.update(form_errors(form))

    lines = [PaymentLine(**cd) for cd in _parse_items(data, 'details', PaymentLineForm, errors)]

    if errors:
        raise InvalidRequest(errors)

    cd = form.cleaned_data
    return PaymentRequest(
        student_id=cd.get('student_id'),
        payment_date=cd['payment_date'],
        details=lines,
        subtotal=cd['subtotal'],
        discount=cd['discount'],
        late_fee=cd['late_fee'],
        total_amount=cd['total_amount'],
        payment_method=cd['payment_method'],
        notes=cd['notes'],
    )


def parse_savings_request(data):
    _require_mapping(data)
    errors = _reject_unknown(data, SavingsTransactionForm)
    form = SavingsTransactionForm(data)
    if not form.is_valid():
        errors.update(form_errors(form))
    if errors:
        raise InvalidRequest(errors)

    cd = form.cleaned_data
    return SavingsRequest(
        student_id=cd['student_id'],
        transaction_type=cd['transaction_type'],
        amount=cd['amount'],
        transaction_date=cd['transaction_date'],
        notes=cd['notes'] or '',
    )


def parse_savings_correction(data):
    _require_mapping(data)
    errors = _reject_unknown(data, SavingsCorrectionForm)
    form = SavingsCorrectionForm(data)
    if not form.is_valid():
        errors.update(form_errors(form))
    if errors:
        raise InvalidRequest(errors)

    cd = form.cleaned_data
    return SavingsCorrection(
        transaction_type=cd['transaction_type'] or None,
        amount=cd['amount'],
        transaction_date=cd['transaction_date'],
        notes=cd['notes'] if 'notes' in data else None,
    )


def parse_quote_request(data):
    """
    Validate a payment quote request: ``months`` is a non-empty list of
    {month, year}; ``payment_date`` is optional.

    Returns:
        ([(month, year), ...], payment_date or None)
    """
    _require_mapping(data)
    errors = _reject_unknown(data, QuoteForm, extra=('months',))
    form = QuoteForm({k: v for k, v in data.items() if k != 'months'})
    if not form.is_valid():
        errors.update(form_errors(form))
    months = [(cd['month'], cd['year']) for cd in _parse_items(data, 'months', BillingMonthForm, errors)]
    if errors:
        raise InvalidRequest(errors)
    return months, form.cleaned_data['payment_date']


def parse_bill_filters(params):
    form = BillFilterForm(params)
    if not form.is_valid():
        raise InvalidRequest(form_errors(form))
    return {key: value for key, value in form.cleaned_data.items() if value not in (None, '')}
