"""
Money calculations shared by billing, bills and quotes.

Everything here is pure: plain values in, ``Decimal`` out, no queries.
"""

import calendar
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal('0.01')
ZERO = Decimal('0')
HUNDRED = Decimal('100')


def to_money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_day(year, month, day):
    """``date(year, month, day)`` with ``day`` capped at the month's last day."""
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def due_date_for(rate, year, month):
    return clamp_day(year, month, rate.due_date)


def late_fee_for_month(rate, year, month, payment_date):
    """
    Late fee owed for one month of tuition paid on ``payment_date``.

    Nothing is owed up to and including the due day, nor during the grace
    window between the due day and ``late_fee_start_day``. From the start
    day on the fee is the fixed amount, or a percentage of the monthly
    amount.
    """
    if not rate.late_fee_enabled or not rate.late_fee_amount:
        return ZERO

    if payment_date <= due_date_for(rate, year, month):
        return ZERO

    start_day = rate.late_fee_start_day or rate.due_date
    if payment_date < clamp_day(year, month, start_day):
        return ZERO

    if rate.late_fee_type == 'percentage':
        return to_money(rate.monthly_amount * rate.late_fee_amount / HUNDRED)
    return to_money(rate.late_fee_amount)


def total_late_fee(rate, months, payment_date):
    """Sum of ``late_fee_for_month`` over (month, year) items."""
    return sum(
        (late_fee_for_month(rate, item.year, item.month, payment_date) for item in months),
        ZERO,
    )


def scholarship_discount(scholarship_type, percentage, fixed_amount, gross_amount):
    """
    Discount granted on ``gross_amount``.
    Full scholarships cover everything; a fixed amount is capped at the
    gross amount; otherwise the percentage applies.
    """
    gross_amount = Decimal(gross_amount)
    if scholarship_type == 'full':
        return gross_amount
    if fixed_amount:
        return min(Decimal(fixed_amount), gross_amount)
    if percentage:
        return to_money(gross_amount * Decimal(percentage) / HUNDRED)
    return ZERO
