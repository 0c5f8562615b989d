"""
Rule condition catalog, values and comparators.

    from clientele.rules import parse_condition, FIELD_CATALOG

    condition = parse_condition({"field": "orders_count", "operator": ">=", "value": 5})
"""

from clientele.rules.values import (
    Condition,
    ConditionError,
    InvalidCondition,
    ValueType,
    parse_condition,
)
from clientele.rules.catalog import (
    FIELD_CATALOG,
    ConditionField,
    FieldContext,
    FieldSpec,
    field_definitions,
    resolve_field,
)

__all__ = [
    "Condition",
    "ConditionError",
    "InvalidCondition",
    "ValueType",
    "parse_condition",
    "FIELD_CATALOG",
    "ConditionField",
    "FieldContext",
    "FieldSpec",
    "field_definitions",
    "resolve_field",
]
