"""
Tuition payment checks.

Pure functions over a PaymentRequest, the set of already paid
(month, year) pairs and the academic year's month list. Each check
raises the matching FinanceError; ``validate_payment`` runs them all in
order. Nothing here touches the database.
"""

from collections import Counter

from academics.utils import month_name, month_position, sort_key
from .calculations import ZERO, total_late_fee
from .exceptions import (
    AmountMismatch, InvalidRequest, LateFeeMismatch, MonthAlreadyPaid,
    MonthOutsideAcademicYear, SequenceGap, SubtotalMismatch, TotalMismatch,
)


def _label(month, year):
    return f"{month_name(month)} {year}"


def unpaid_months(months, paid):
    """Months of the academic year not in ``paid``, earliest first."""
    return sorted(
        (item for item in months if (item.month, item.year) not in paid),
        key=sort_key,
    )


def check_within_academic_year(lines, months):
    invalid = [line for line in lines if not 1 <= line.month <= 12]
    if invalid:
        raise InvalidRequest(
            {'months': [f"{line.month} is not a valid month." for line in invalid]},
            'Months must be between 1 and 12.',
        )

    outside = [line for line in lines if month_position(months, line.month, line.year) is None]
    if outside:
        raise MonthOutsideAcademicYear(
            f"{_label(outside[0].month, outside[0].year)} is not part of the academic year.",
            {'months': [{'month': line.month, 'year': line.year} for line in outside]},
        )


def check_conflicts(lines, paid):
    duplicates = [key for key, count in Counter(line.key for line in lines).items() if count > 1]
    if duplicates:
        raise InvalidRequest(
            {'details': [f"{_label(*key)} is listed more than once." for key in duplicates]},
            'The same month cannot be paid twice in one payment.',
        )

    conflicts = sorted(
        (line for line in lines if line.key in paid),
        key=sort_key,
    )
    if conflicts:
        labels = ', '.join(_label(line.month, line.year) for line in conflicts)
        raise MonthAlreadyPaid(
            f"Already paid: {labels}.",
            {'months': [{'month': line.month, 'year': line.year} for line in conflicts]},
        )


def check_sequence(lines, paid, months):
    """
    Paid and requested months together must form an unbroken run from the
    first month of the academic year.
    """
    positions = {
        month_position(months, month, year) for month, year in paid
    } | {
        month_position(months, line.month, line.year) for line in lines
    }
    positions.discard(None)
    if not positions:
        return

    for position in range(1, max(positions) + 1):
        if position not in positions:
            missing = months[position - 1]
            raise SequenceGap(
                f"{_label(missing.month, missing.year)} must be paid first.",
                {'missing_month': {'month': missing.month, 'year': missing.year}},
            )


def check_amounts(lines, monthly_amount):
    wrong = [line for line in lines if line.amount != monthly_amount]
    if wrong:
        raise AmountMismatch(
            f"Each month must be paid at {monthly_amount}.",
            {
                'expected': str(monthly_amount),
                'months': [
                    {'month': line.month, 'year': line.year, 'amount': str(line.amount)}
                    for line in wrong
                ],
            },
        )


def check_arithmetic(request):
    subtotal = sum((line.amount for line in request.details), ZERO)
    if request.subtotal != subtotal:
        raise SubtotalMismatch(
            payload={'expected': str(subtotal), 'submitted': str(request.subtotal)},
        )

    if request.discount < 0 or request.discount > request.subtotal:
        raise InvalidRequest({'discount': ['Discount must be between 0 and the subtotal.']})

    total = request.subtotal - request.discount + request.late_fee
    if request.total_amount != total:
        raise TotalMismatch(
            payload={'expected': str(total), 'submitted': str(request.total_amount)},
        )


def check_late_fee(request, rate):
    """A zero late fee is always accepted; anything else must match the policy."""
    if request.late_fee == 0:
        return
    if not rate.late_fee_enabled:
        raise LateFeeMismatch(
            'No late fee applies to this grade level.',
            {'expected': '0', 'submitted': str(request.late_fee)},
        )
    expected = total_late_fee(rate, request.details, request.payment_date)
    if request.late_fee != expected:
        raise LateFeeMismatch(
            payload={'expected': str(expected), 'submitted': str(request.late_fee)},
        )


def validate_payment(request, paid, months, rate):
    check_within_academic_year(request.details, months)
    check_conflicts(request.details, paid)
    check_sequence(request.details, paid, months)
    check_amounts(request.details, rate.monthly_amount)
    check_arithmetic(request)
    check_late_fee(request, rate)
    return request
