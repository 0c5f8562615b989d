"""
Condition field catalog.

Every field a rule condition can reference is registered in FIELD_CATALOG
with its extractor, its value type and the operators the rule editor
offers for it. Fields outside the catalog are read from Customer.data by
dotted path (optionally written with a "data." prefix) and compared as
strings.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from django.db import models
from django.utils.translation import gettext_lazy as _

from clientele.rules.comparators import to_datetime
from clientele.rules.values import ValueType
from clientele.utils import get_path

EXTENSION_PREFIX = "data."

NUMBER_OPERATORS = (">=", ">", "<=", "<", "=", "!=")
DATETIME_OPERATORS = (
    "after",
    "before",
    "on_or_after",
    "on_or_before",
    "=",
    "!=",
    "is_null",
    "is_not_null",
)
STRING_OPERATORS = ("=", "!=", "in", "not_in", "is_null", "is_not_null")
BOOLEAN_OPERATORS = ("is_true", "is_false", "=", "!=")


class ConditionField(models.TextChoices):
    ORDERS_COUNT = "orders_count", _("Completed orders")
    TOTAL_SPENT = "total_spent", _("Total spent")
    TOTAL_SPENT_BASE = "total_spent_base", _("Total spent (base currency)")
    AVERAGE_ORDER_VALUE = "average_order_value", _("Average order value")
    AVERAGE_ORDER_VALUE_BASE = "average_order_value_base", _(
        "Average order value (base currency)"
    )
    FIRST_ORDER_DAYS_AGO = "first_order_days_ago", _("Days since first order")
    LAST_ORDER_DAYS_AGO = "last_order_days_ago", _("Days since last order")
    FIRST_ORDER_AT = "first_order_at", _("First order date")
    LAST_ORDER_AT = "last_order_at", _("Last order date")
    PROVIDER = "provider", _("Shop provider")
    SHOP_ID = "shop_id", _("Shop")
    CUSTOMER_GROUP = "customer_group", _("Customer group")
    IS_VIP = "is_vip", _("Current VIP status")


FIELD_ALIASES = {
    "clv_base": ConditionField.TOTAL_SPENT_BASE,
    "aov": ConditionField.AVERAGE_ORDER_VALUE,
    "aov_base": ConditionField.AVERAGE_ORDER_VALUE_BASE,
}


@dataclass(frozen=True)
class FieldContext:
    """What an extractor may look at."""

    customer: Any
    metrics: Any
    now: datetime


@dataclass(frozen=True)
class FieldSpec:
    key: str
    label: str
    value_type: str
    operators: tuple[str, ...]
    extractor: Callable[[FieldContext], Any]

    def extract(self, context: FieldContext) -> Any:
        return self.extractor(context)

    def as_definition(self) -> dict:
        return {
            "value": self.key,
            "label": str(self.label),
            "type": self.value_type,
            "operators": list(self.operators),
        }


# =============================================================================
# Extractors
# =============================================================================


def _metric_number(name: str):
    def extract(ctx: FieldContext):
        # No metrics row yet means no orders yet.
        if ctx.metrics is None:
            return 0
        return getattr(ctx.metrics, name, None)

    return extract


def _metric_datetime(name: str):
    def extract(ctx: FieldContext):
        if ctx.metrics is None:
            return None
        return to_datetime(getattr(ctx.metrics, name, None))

    return extract


def _days_ago(name: str):
    def extract(ctx: FieldContext):
        moment = _metric_datetime(name)(ctx)
        if moment is None:
            return None
        return int(abs((ctx.now - moment).total_seconds()) // 86400)

    return extract


def _provider(ctx: FieldContext):
    shop = getattr(ctx.customer, "shop", None)
    return shop.provider if shop is not None else None


def _shop_id(ctx: FieldContext):
    return getattr(ctx.customer, "shop_id", None)


def _customer_group(ctx: FieldContext):
    return getattr(ctx.customer, "customer_group", None)


def _is_vip(ctx: FieldContext):
    return getattr(ctx.customer, "is_vip", None)


def _spec(field, value_type, operators, extractor) -> FieldSpec:
    return FieldSpec(
        key=field.value,
        label=field.label,
        value_type=value_type,
        operators=operators,
        extractor=extractor,
    )


FIELD_CATALOG: dict[str, FieldSpec] = {
    spec.key: spec
    for spec in (
        _spec(ConditionField.ORDERS_COUNT, ValueType.NUMBER, NUMBER_OPERATORS,
              _metric_number("orders_count")),
        _spec(ConditionField.TOTAL_SPENT, ValueType.NUMBER, NUMBER_OPERATORS,
              _metric_number("total_spent")),
        _spec(ConditionField.TOTAL_SPENT_BASE, ValueType.NUMBER, NUMBER_OPERATORS,
              _metric_number("total_spent_base")),
        _spec(ConditionField.AVERAGE_ORDER_VALUE, ValueType.NUMBER, NUMBER_OPERATORS,
              _metric_number("average_order_value")),
        _spec(ConditionField.AVERAGE_ORDER_VALUE_BASE, ValueType.NUMBER, NUMBER_OPERATORS,
              _metric_number("average_order_value_base")),
        _spec(ConditionField.FIRST_ORDER_DAYS_AGO, ValueType.NUMBER, NUMBER_OPERATORS,
              _days_ago("first_order_at")),
        _spec(ConditionField.LAST_ORDER_DAYS_AGO, ValueType.NUMBER, NUMBER_OPERATORS,
              _days_ago("last_order_at")),
        _spec(ConditionField.FIRST_ORDER_AT, ValueType.DATETIME, DATETIME_OPERATORS,
              _metric_datetime("first_order_at")),
        _spec(ConditionField.LAST_ORDER_AT, ValueType.DATETIME, DATETIME_OPERATORS,
              _metric_datetime("last_order_at")),
        _spec(ConditionField.PROVIDER, ValueType.STRING, STRING_OPERATORS, _provider),
        _spec(ConditionField.SHOP_ID, ValueType.NUMBER, ("=", "!="), _shop_id),
        _spec(ConditionField.CUSTOMER_GROUP, ValueType.STRING, STRING_OPERATORS,
              _customer_group),
        _spec(ConditionField.IS_VIP, ValueType.BOOLEAN, BOOLEAN_OPERATORS, _is_vip),
    )
}


# =============================================================================
# Lookup
# =============================================================================

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def resolve_field(name: str) -> FieldSpec | None:
    """
    Catalog entry for a field name, or None for extension-data fields.

    Accepts catalog keys, legacy aliases (aov, clv_base) and camelCase
    spellings (ordersCount, lastOrderAt).
    """
    if not name:
        return None
    for candidate in (name, _snake(name)):
        if candidate in FIELD_CATALOG:
            return FIELD_CATALOG[candidate]
        if candidate in FIELD_ALIASES:
            return FIELD_CATALOG[FIELD_ALIASES[candidate].value]
    return None


def extension_path(name: str) -> str:
    """Dotted path into Customer.data for a non-catalog field."""
    name = name.strip()
    if name.startswith(EXTENSION_PREFIX):
        name = name[len(EXTENSION_PREFIX):]
    return name.strip(".")


def extract_extension(customer, path: str):
    return get_path(getattr(customer, "data", None) or {}, path)


def field_definitions() -> list[dict]:
    """Catalog as served to rule editors."""
    return [spec.as_definition() for spec in FIELD_CATALOG.values()]
