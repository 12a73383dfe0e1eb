"""
Academic calendar helpers.

An academic year is described by its first and last month and the calendar
year it starts in. Years whose start month comes after the end month
(e.g. July -> June) roll over into the next calendar year.
"""

import calendar
from collections import namedtuple


AcademicMonth = namedtuple('AcademicMonth', ['month', 'year', 'month_name'])


def month_name(month):
    return calendar.month_name[month]


def academic_months(start_month, end_month, start_year):
    """
    Return the ordered (month, year) pairs covered by an academic year.

    >>> [(m.month, m.year) for m in academic_months(11, 2, 2024)]
    [(11, 2024), (12, 2024), (1, 2025), (2, 2025)]
    """
    if not 1 <= start_month <= 12 or not 1 <= end_month <= 12:
        raise ValueError('Months must be between 1 and 12.')

    if start_month <= end_month:
        spans = [(range(start_month, end_month + 1), start_year)]
    else:
        spans = [
            (range(start_month, 13), start_year),
            (range(1, end_month + 1), start_year + 1),
        ]

    return [
        AcademicMonth(month, year, month_name(month))
        for months, year in spans
        for month in months
    ]


def month_position(months, month, year):
    """1-based position of (month, year) in ``months``, or None if absent."""
    for index, item in enumerate(months, start=1):
        if item.month == month and item.year == year:
            return index
    return None


def sort_key(item):
    """Chronological sort key for anything with ``month`` and ``year``."""
    return (item.year, item.month)
