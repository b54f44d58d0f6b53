"""
Month arithmetic shared by payroll, reports and exports.
"""

from datetime import date, datetime, time

from django.utils import timezone


def first_of_month(value):
    """Normalise a date or datetime to the first day of its month."""
    if isinstance(value, datetime):
        value = value.date()
    return date(value.year, value.month, 1)


def add_months(value, months):
    """First day of the month `months` away from `value`'s month."""
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_bounds(value):
    """
    Aware datetimes [start, end) covering the month of `value`.
    """
    start = first_of_month(value)
    end = add_months(start, 1)
    tz = timezone.get_current_timezone()
    return (
        timezone.make_aware(datetime.combine(start, time.min), tz),
        timezone.make_aware(datetime.combine(end, time.min), tz),
    )


def parse_month(value):
    """
    Parse 'YYYY-MM', 'YYYY-MM-DD' or an ISO datetime into the first day of that month.

    Raises ValueError on anything else.
    """
    if isinstance(value, (date, datetime)):
        return first_of_month(value)
    if not value:
        raise ValueError('Month is required')
    text = str(value).strip()
    if len(text) == 7:
        return first_of_month(datetime.strptime(text, '%Y-%m'))
    return first_of_month(datetime.fromisoformat(text.replace('Z', '+00:00')))


def month_label(value):
    """'March 2025' style label."""
    return first_of_month(value).strftime('%B %Y')
