from datetime import date

from django.utils import timezone
from django.utils.dateparse import parse_date as _parse_iso_date
from django.utils.dateparse import parse_datetime

from tracker.domain.exceptions import InvalidInput


def parse_timestamp(value, field_name, default_now=True):
    """Aware datetime from a datetime or ISO 8601 string; now() when empty."""
    if value in (None, ""):
        return timezone.now() if default_now else None
    if hasattr(value, "tzinfo"):
        parsed = value
    else:
        try:
            parsed = parse_datetime(str(value))
        except ValueError:
            parsed = None
    if parsed is None:
        raise InvalidInput(f"{field_name} must be an ISO 8601 datetime", field=field_name)
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def parse_date(value, field_name):
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        parsed = _parse_iso_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise InvalidInput(f"{field_name} must be a YYYY-MM-DD date", field=field_name)
    return parsed


def parse_int(value, field_name):
    if isinstance(value, bool):
        raise InvalidInput(f"{field_name} must be an integer", field=field_name)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field_name} must be an integer", field=field_name)


def parse_coordinate(value, field_name):
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field_name} must be a number", field=field_name)
