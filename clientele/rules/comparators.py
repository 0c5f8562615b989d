"""Typed comparators used by rule conditions.

Each comparator receives the raw extracted field value and an already
parsed expected value, and never raises.
"""

from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

TRUE_STRINGS = {"1", "true", "on", "yes"}
FALSE_STRINGS = {"0", "false", "off", "no", ""}


# =============================================================================
# Parsers
# =============================================================================


def to_decimal(value) -> Decimal | None:
    """Numeric value as Decimal, or None when the value is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        number = Decimal(value.strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def parse_bool(value) -> bool | None:
    """
    Tri-state boolean parse.

    None and "" read as False; unrecognized values read as None, which
    satisfies neither is_true nor is_false.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        if value == 1:
            return True
        if value == 0:
            return False
        return None
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    return None


def _aware(value: datetime) -> datetime:
    if timezone.is_naive(value):
        return timezone.make_aware(value, timezone.get_default_timezone())
    return value


def to_datetime(value) -> datetime | None:
    """Parse a datetime/date/ISO string into an aware datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _aware(value)
    if isinstance(value, date):
        return _aware(datetime.combine(value, time.min))
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        parsed = parse_datetime(text)
        if parsed is None:
            parsed_date = parse_date(text)
            if parsed_date is None:
                return None
            parsed = datetime.combine(parsed_date, time.min)
    except ValueError:
        return None
    return _aware(parsed)


# =============================================================================
# Comparators
# =============================================================================


def compare_number(actual, operator: str, expected: Decimal) -> bool:
    number = to_decimal(actual)
    if number is None or expected is None:
        return False

    if operator == "=":
        return number == expected
    if operator == "!=":
        return number != expected
    if operator == ">":
        return number > expected
    if operator == ">=":
        return number >= expected
    if operator == "<":
        return number < expected
    if operator == "<=":
        return number <= expected
    return False


def _lower(value) -> str | list[str] | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple, set)):
        return [item.lower() for item in value if isinstance(item, str)]
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).lower()


def compare_string(actual, operator: str, expected) -> bool:
    """
    Case-insensitive string comparison.

    ``expected`` is a lower-cased str for =/!=, a frozenset of lower-cased
    strs for in/not_in and None for the null checks.
    """
    if operator == "is_null":
        return actual is None or actual == ""
    if operator == "is_not_null":
        return actual is not None and actual != ""

    actual = _lower(actual)

    if operator in ("in", "not_in"):
        if not expected:
            return False
        if isinstance(actual, list):
            found = bool(set(actual) & set(expected))
        else:
            found = actual is not None and actual in expected
        return found if operator == "in" else not found

    if operator == "=":
        return actual == expected
    if operator == "!=":
        return actual != expected
    return False


def compare_boolean(actual, operator: str) -> bool:
    value = parse_bool(actual)
    if operator in ("=", "is_true"):
        return value is True
    if operator in ("!=", "is_false"):
        return value is False
    return False


def compare_datetime(actual, operator: str, expected: datetime | None) -> bool:
    if operator in ("is_null", "is_not_null"):
        is_null = actual is None
        return is_null if operator == "is_null" else not is_null

    if actual is None or expected is None:
        return False
    if not isinstance(actual, (datetime, date)):
        return False
    actual = to_datetime(actual)

    if operator == "=":
        return actual == expected
    if operator == "!=":
        return actual != expected
    if operator in (">", "after"):
        return actual > expected
    if operator in (">=", "on_or_after"):
        return actual >= expected
    if operator in ("<", "before"):
        return actual < expected
    if operator in ("<=", "on_or_before"):
        return actual <= expected
    return False
