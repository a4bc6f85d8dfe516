"""
TOOLTRACK/validators.py

Field level validation of the date fields used by tools and transactions.
"""

import datetime

from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils import timezone
from django.utils.dateparse import parse_date

from .constants import DEFAULT_MIN_PURCHASE_DATE


def to_date(value, field_label='Date'):
    """
    Converts a date, datetime or ISO string into a date.

    Raises:
        ValidationError: When the value is not a calendar date
    """
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value

    parsed = None
    if isinstance(value, str):
        try:
            parsed = parse_date(value.strip()[:10])
        except ValueError:
            parsed = None

    if parsed is None:
        raise ValidationError(
            f"{field_label} must be a valid calendar date (YYYY-MM-DD).",
            code='invalid'
        )
    return parsed


def get_min_purchase_date():
    value = getattr(settings, 'TOOLTRACK_MIN_PURCHASE_DATE', DEFAULT_MIN_PURCHASE_DATE)
    return to_date(value, 'TOOLTRACK_MIN_PURCHASE_DATE')


def validate_purchase_date(value, today=None):
    """
    Validates a tool purchase date.

    Args:
        value: date or ISO string
        today: Reference date (defaults to the local date)

    Returns:
        date: The parsed date

    Raises:
        ValidationError: When the date is invalid, in the future
            or before the configured minimum
    """
    purchase_date = to_date(value, 'Purchase date')
    today = today or timezone.localdate()

    if purchase_date > today:
        raise ValidationError("Purchase date cannot be in the future.", code='future')

    min_date = get_min_purchase_date()
    if purchase_date < min_date:
        raise ValidationError(
            f"Purchase date cannot be before {min_date.isoformat()}.",
            code='too_early'
        )

    return purchase_date


def validate_expected_return_date(value, today=None):
    """
    Validates the expected return date of a check out or maintenance.

    Raises:
        ValidationError: When the date is invalid or already in the past
    """
    return_date = to_date(value, 'Expected return date')
    today = today or timezone.localdate()

    if return_date < today:
        raise ValidationError("Expected return date cannot be in the past.", code='past')

    return return_date
