"""
Rule condition values.

Stored conditions are plain dicts ({field, operator, value, type}).
parse_condition() validates one of them against the field catalog and turns
its value into one of the tagged value classes below, so evaluation never
has to guess what it is comparing against.

    NumberValue | StringValue | StringSetValue | BoolValue | DateTimeValue | NullValue
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Union

from django.db import models
from django.utils.translation import gettext_lazy as _

from clientele.rules import comparators


class ValueType(models.TextChoices):
    NUMBER = "number", _("Number")
    STRING = "string", _("Text")
    DATETIME = "datetime", _("Date and time")
    BOOLEAN = "boolean", _("Yes/No")


NULL_OPERATORS = ("is_null", "is_not_null")

TYPE_OPERATORS: dict[str, tuple[str, ...]] = {
    ValueType.NUMBER: ("=", "!=", ">", ">=", "<", "<="),
    ValueType.STRING: ("=", "!=", "in", "not_in", "is_null", "is_not_null"),
    ValueType.BOOLEAN: ("is_true", "is_false", "=", "!="),
    ValueType.DATETIME: (
        "before",
        "after",
        "on_or_before",
        "on_or_after",
        "=",
        "!=",
        ">",
        ">=",
        "<",
        "<=",
        "is_null",
        "is_not_null",
    ),
}

OPERATOR_SYNONYMS = {"==": "=", "<>": "!="}


class ConditionError(ValueError):
    """A stored condition cannot be evaluated."""


# =============================================================================
# Tagged values
# =============================================================================


@dataclass(frozen=True)
class NumberValue:
    value: Decimal


@dataclass(frozen=True)
class StringValue:
    value: str  # lower-cased


@dataclass(frozen=True)
class StringSetValue:
    values: frozenset[str]  # lower-cased, never empty


@dataclass(frozen=True)
class BoolValue:
    value: bool


@dataclass(frozen=True)
class DateTimeValue:
    value: datetime  # aware


@dataclass(frozen=True)
class NullValue:
    pass


ConditionValue = Union[NumberValue, StringValue, StringSetValue, BoolValue, DateTimeValue, NullValue]


# =============================================================================
# Conditions
# =============================================================================


@dataclass(frozen=True)
class Condition:
    """A validated condition, ready for evaluation."""

    field: str  # catalog key, or extension path into Customer.data
    operator: str
    value: ConditionValue
    value_type: str
    is_extension: bool = False

    def matches(self, actual: Any) -> bool:
        value = self.value
        if self.value_type == ValueType.NUMBER:
            return isinstance(value, NumberValue) and comparators.compare_number(
                actual, self.operator, value.value
            )
        if self.value_type == ValueType.STRING:
            if isinstance(value, StringSetValue):
                expected = value.values
            elif isinstance(value, StringValue):
                expected = value.value
            else:
                expected = None
            return comparators.compare_string(actual, self.operator, expected)
        if self.value_type == ValueType.BOOLEAN:
            return comparators.compare_boolean(actual, self.operator)
        if self.value_type == ValueType.DATETIME:
            expected = value.value if isinstance(value, DateTimeValue) else None
            return comparators.compare_datetime(actual, self.operator, expected)
        return False

    def as_dict(self) -> dict:
        """Storage shape, as written by the rule store."""
        value = self.value
        if isinstance(value, NumberValue):
            raw = float(value.value)
        elif isinstance(value, StringValue):
            raw = value.value
        elif isinstance(value, StringSetValue):
            raw = sorted(value.values)
        elif isinstance(value, DateTimeValue):
            raw = value.value.isoformat()
        else:
            raw = None
        field = f"data.{self.field}" if self.is_extension else self.field
        return {
            "field": field,
            "operator": self.operator,
            "value": raw,
            "type": self.value_type,
        }


@dataclass(frozen=True)
class InvalidCondition:
    """Stand-in for a malformed stored condition. Never matches."""

    raw: Any
    reason: str
    field: str = ""

    def matches(self, actual: Any) -> bool:
        return False


def _parse_value(value_type: str, operator: str, raw) -> ConditionValue:
    if operator in NULL_OPERATORS:
        return NullValue()

    if value_type == ValueType.NUMBER:
        number = comparators.to_decimal(raw)
        if number is None:
            raise ConditionError(f"Expected a number, got {raw!r}")
        return NumberValue(number)

    if value_type == ValueType.STRING:
        if operator in ("in", "not_in"):
            items = raw if isinstance(raw, (list, tuple, set, frozenset)) else [raw]
            values = frozenset(
                str(item).strip().lower()
                for item in items
                if isinstance(item, (str, int)) and not isinstance(item, bool)
                and str(item).strip()
            )
            if not values:
                raise ConditionError("Expected a non-empty list of values")
            return StringSetValue(values)

        if isinstance(raw, (list, tuple)):
            raw = ",".join(str(item) for item in raw)
        if raw is None or not str(raw).strip():
            raise ConditionError("Expected a non-empty value")
        return StringValue(str(raw).strip().lower())

    if value_type == ValueType.BOOLEAN:
        return BoolValue(operator in ("=", "is_true"))

    if value_type == ValueType.DATETIME:
        if not isinstance(raw, (str, datetime)):
            raise ConditionError(f"Expected a date, got {raw!r}")
        moment = comparators.to_datetime(raw)
        if moment is None:
            raise ConditionError(f"Unparseable date {raw!r}")
        return DateTimeValue(moment)

    raise ConditionError(f"Unknown value type {value_type!r}")


def parse_condition(raw) -> Condition:
    """
    Validate a stored condition dict.

    Raises:
        ConditionError: unknown field, operator not allowed for the field's
            type, or a value that does not parse for that type.
    """
    from clientele.rules.catalog import extension_path, resolve_field

    if not isinstance(raw, dict):
        raise ConditionError("Condition must be a mapping")

    field_name = str(raw.get("field") or "").strip()
    if not field_name:
        raise ConditionError("Condition has no field")

    operator = str(raw.get("operator") or "").strip().lower()
    operator = OPERATOR_SYNONYMS.get(operator, operator)
    if not operator:
        raise ConditionError("Condition has no operator")

    spec = resolve_field(field_name)
    if spec is not None:
        field, default_type, is_extension = spec.key, spec.value_type, False
    else:
        field = extension_path(field_name)
        if not field:
            raise ConditionError(f"Unknown field {field_name!r}")
        default_type, is_extension = ValueType.STRING, True

    # Catalog fields always compare with their own type.
    if is_extension:
        value_type = str(raw.get("type") or default_type).strip().lower()
    else:
        value_type = default_type
    if value_type not in TYPE_OPERATORS:
        raise ConditionError(f"Unknown value type {value_type!r}")
    allowed = TYPE_OPERATORS[value_type] if is_extension else spec.operators
    if operator not in allowed:
        raise ConditionError(f"Operator {operator!r} not allowed for {value_type}")

    return Condition(
        field=field,
        operator=operator,
        value=_parse_value(value_type, operator, raw.get("value")),
        value_type=value_type,
        is_extension=is_extension,
    )
