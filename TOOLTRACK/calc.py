"""
TOOLTRACK/calc.py

Date arithmetic for checked out tools.
"""

from datetime import date


def days_overdue(expected_return_date, today=None):
    """
    Number of whole days a check out is past its expected return date.

    Returns 0 while the return date has not been reached yet.
    """
    if not today:
        today = date.today()
    if not isinstance(expected_return_date, date) or not isinstance(today, date):
        raise TypeError("Dates must be date objects.")
    return max((today - expected_return_date).days, 0)
