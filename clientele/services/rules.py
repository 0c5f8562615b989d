"""Tag rule store.

CRUD over TagRule with server-side validation. Every write sends
tag_rules_changed so cached rule sets reload before the next evaluation.

Payloads use the external shape; snake_case keys are accepted as well:

    {
        "tagKey": "loyal",
        "label": "Loyal",
        "color": "green",
        "priority": 10,
        "isActive": True,
        "matchType": "all",
        "setVip": False,
        "conditions": [{"field": "ordersCount", "operator": ">=", "value": 5}],
        "description": "",
    }
"""

import logging
import uuid

from django.db import IntegrityError, transaction
from django.utils.text import slugify

from clientele.exceptions import ClienteleError
from clientele.models import MatchType, TagRule
from clientele.rules import ConditionError, parse_condition
from clientele.rules import field_definitions as catalog_definitions
from clientele.signals import tag_rules_changed

logger = logging.getLogger(__name__)

MAX_CONDITIONS = 50
TAG_KEY_MAX_LENGTH = 64

PAYLOAD_KEYS = {
    "tag_key": ("tagKey", "tag_key"),
    "label": ("label",),
    "color": ("color",),
    "priority": ("priority",),
    "is_active": ("isActive", "is_active"),
    "match_type": ("matchType", "match_type"),
    "set_vip": ("setVip", "set_vip"),
    "conditions": ("conditions",),
    "description": ("description",),
}


def _read(payload: dict, name: str):
    for key in PAYLOAD_KEYS[name]:
        if key in payload:
            return True, payload[key]
    return False, None


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "on", "yes")
    return bool(value)


def sanitize_conditions(raw) -> list[dict]:
    """
    Keep the valid conditions, in storage shape.

    Unknown fields, operators the field does not allow and values
    that do not parse are dropped. At most MAX_CONDITIONS are kept.
    """
    if not isinstance(raw, list):
        return []

    cleaned = []
    for entry in raw:
        if len(cleaned) >= MAX_CONDITIONS:
            logger.info("Clientele: rule conditions truncated to %d", MAX_CONDITIONS)
            break
        try:
            condition = parse_condition(entry)
        except ConditionError as exc:
            logger.info("Clientele: dropping invalid condition %r (%s)", entry, exc)
            continue
        cleaned.append(condition.as_dict())
    return cleaned


def validate_payload(payload, rule: TagRule | None = None) -> dict:
    """
    Validate a rule payload and return model field values.

    When ``rule`` is given, missing keys keep the rule's current values.

    Raises:
        ClienteleError: INVALID_RULE or DUPLICATE_TAG_KEY
    """
    if not isinstance(payload, dict):
        raise ClienteleError("INVALID_RULE", "Rule payload must be a mapping")

    partial = rule is not None
    cleaned: dict = {}

    present, value = _read(payload, "tag_key")
    if present or not partial:
        tag_key = slugify(str(value or "")).lower()[:TAG_KEY_MAX_LENGTH]
        if not tag_key:
            raise ClienteleError("INVALID_RULE", "Tag key is required", field="tag_key")
        duplicates = TagRule.objects.filter(tag_key=tag_key)
        if rule is not None:
            duplicates = duplicates.exclude(pk=rule.pk)
        if duplicates.exists():
            raise ClienteleError("DUPLICATE_TAG_KEY", tag_key=tag_key)
        cleaned["tag_key"] = tag_key

    present, value = _read(payload, "label")
    if present or not partial:
        label = str(value or "").strip()
        if not label:
            raise ClienteleError("INVALID_RULE", "Label is required", field="label")
        cleaned["label"] = label[:255]

    present, value = _read(payload, "color")
    if present or not partial:
        cleaned["color"] = str(value or "").strip()[:32] or "gray"

    present, value = _read(payload, "priority")
    if present or not partial:
        try:
            cleaned["priority"] = int(value or 0)
        except (TypeError, ValueError):
            raise ClienteleError("INVALID_RULE", "Priority must be an integer", field="priority")

    present, value = _read(payload, "is_active")
    if present or not partial:
        cleaned["is_active"] = _to_bool(value) if present else True

    present, value = _read(payload, "match_type")
    if present or not partial:
        match_type = str(value or MatchType.ALL).strip().lower()
        if match_type not in MatchType.values:
            raise ClienteleError(
                "INVALID_RULE", "Match type must be 'all' or 'any'", field="match_type"
            )
        cleaned["match_type"] = match_type

    present, value = _read(payload, "set_vip")
    if present or not partial:
        cleaned["set_vip"] = _to_bool(value)

    present, value = _read(payload, "conditions")
    if present or not partial:
        if value is not None and not isinstance(value, list):
            raise ClienteleError(
                "INVALID_RULE", "Conditions must be a list", field="conditions"
            )
        cleaned["conditions"] = sanitize_conditions(value or [])

    present, value = _read(payload, "description")
    if present:
        cleaned["description"] = str(value).strip() if value is not None else None

    return cleaned


def serialize_rule(rule: TagRule) -> dict:
    """External shape of a rule."""
    return {
        "id": str(rule.pk),
        "tagKey": rule.tag_key,
        "label": rule.label,
        "color": rule.color,
        "priority": rule.priority,
        "isActive": rule.is_active,
        "matchType": rule.match_type,
        "setVip": rule.set_vip,
        "conditions": list(rule.conditions or []),
        "description": rule.description,
    }


def notify_rules_changed() -> None:
    """Tell every cached rule set to reload."""
    tag_rules_changed.send(sender=TagRule)


def get_rule(rule_id) -> TagRule:
    try:
        pk = uuid.UUID(str(rule_id))
    except ValueError:
        raise ClienteleError("RULE_NOT_FOUND", rule_id=str(rule_id))
    try:
        return TagRule.objects.get(pk=pk)
    except TagRule.DoesNotExist:
        raise ClienteleError("RULE_NOT_FOUND", rule_id=str(rule_id))


def list_rules(active_only: bool = False) -> list[dict]:
    qs = TagRule.objects.all()
    if active_only:
        qs = qs.filter(is_active=True)
    return [serialize_rule(rule) for rule in qs.order_by("-priority", "label")]


def field_definitions() -> list[dict]:
    """Condition fields and their operators, for rule editors."""
    return catalog_definitions()


def create_rule(payload) -> TagRule:
    cleaned = validate_payload(payload)
    try:
        with transaction.atomic():
            rule = TagRule.objects.create(**cleaned)
    except IntegrityError as e:
        raise ClienteleError("DUPLICATE_TAG_KEY", tag_key=cleaned["tag_key"]) from e

    logger.info("Clientele: tag rule %s created", rule.tag_key)
    notify_rules_changed()
    return rule


def update_rule(rule_id, payload) -> TagRule:
    try:
        with transaction.atomic():
            rule = get_rule(rule_id)
            cleaned = validate_payload(payload, rule=rule)
            for name, value in cleaned.items():
                setattr(rule, name, value)
            rule.save()
    except IntegrityError as e:
        raise ClienteleError("DUPLICATE_TAG_KEY", tag_key=rule.tag_key) from e

    logger.info("Clientele: tag rule %s updated", rule.tag_key)
    notify_rules_changed()
    return rule


def delete_rule(rule_id) -> None:
    rule = get_rule(rule_id)
    tag_key = rule.tag_key
    rule.delete()

    logger.info("Clientele: tag rule %s deleted", tag_key)
    notify_rules_changed()
