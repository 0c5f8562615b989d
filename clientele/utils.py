"""Contact normalization and JSON encoding helpers."""

import logging
import re

from django.core.serializers.json import DjangoJSONEncoder

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D+")


def normalize_email(raw) -> str | None:
    """Trim and lower-case an email. Empty values become None."""
    if raw is None:
        return None
    value = str(raw).strip().lower()
    return value or None


def normalize_phone(raw) -> str | None:
    """
    Reduce a phone number to a comparison key.

    Keeps a single leading "+" and strips every other non-digit.

        "+420 777 123 456" -> "+420777123456"
        "(41) 99999-0001"  -> "41999990001"
    """
    if raw is None:
        return None
    value = str(raw).strip()
    if not value:
        return None

    digits = _NON_DIGITS.sub("", value)
    if not digits:
        return None

    return f"+{digits}" if value.startswith("+") else digits


def normalize_label(raw) -> str | None:
    """Normalize a tag/group label for comparison."""
    if not isinstance(raw, str):
        return None
    value = raw.strip().lower()
    return value or None


def get_path(data, path: str, default=None):
    """Read a dotted path ("customer.group.name") from nested dicts."""
    if not isinstance(data, dict) or not path:
        return default
    if path in data:
        return data[path]

    current = data
    for segment in path.split("."):
        if isinstance(current, dict) and segment in current:
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit() and int(segment) < len(current):
            current = current[int(segment)]
        else:
            return default
    return current


class LenientJSONEncoder(DjangoJSONEncoder):
    """
    JSON encoder for extension data.

    Falls back to ``str()`` for values Django's encoder does not know, so a
    stray object in a payload degrades to its text form instead of failing
    the write.
    """

    def default(self, o):
        try:
            return super().default(o)
        except TypeError:
            if isinstance(o, (set, frozenset)):
                return sorted(o, key=str)
            if isinstance(o, bytes):
                return o.decode("utf-8", errors="replace")
            logger.warning(
                "Clientele: encoding %s as text in JSON field", type(o).__name__
            )
            return str(o)
