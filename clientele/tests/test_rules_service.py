"""Tests for the tag rule store."""

import uuid

import pytest

from clientele.exceptions import ClienteleError
from clientele.models import TagRule
from clientele.services import rules
from clientele.services.rule_engine import RuleSet

pytestmark = pytest.mark.django_db


VALID_CONDITION = {"field": "ordersCount", "operator": ">=", "value": 5}


class TestValidatePayload:
    def test_defaults(self):
        cleaned = rules.validate_payload({"tagKey": "Loyal Buyers", "label": " Loyal "})

        assert cleaned == {
            "tag_key": "loyal-buyers",
            "label": "Loyal",
            "color": "gray",
            "priority": 0,
            "is_active": True,
            "match_type": "all",
            "set_vip": False,
            "conditions": [],
        }

    def test_snake_case_keys(self):
        cleaned = rules.validate_payload(
            {"tag_key": "big", "label": "Big", "match_type": "ANY", "set_vip": "yes", "is_active": "0"}
        )

        assert cleaned["match_type"] == "any"
        assert cleaned["set_vip"] is True
        assert cleaned["is_active"] is False

    @pytest.mark.parametrize(
        "payload,field",
        [
            ({"tagKey": "  ", "label": "X"}, "tag_key"),
            ({"tagKey": "x"}, "label"),
            ({"tagKey": "x", "label": "X", "priority": "high"}, "priority"),
            ({"tagKey": "x", "label": "X", "matchType": "most"}, "match_type"),
            ({"tagKey": "x", "label": "X", "conditions": {"field": "provider"}}, "conditions"),
        ],
    )
    def test_invalid(self, payload, field):
        with pytest.raises(ClienteleError) as exc:
            rules.validate_payload(payload)

        assert exc.value.code == "INVALID_RULE"
        assert exc.value.data["field"] == field

    def test_not_a_mapping(self):
        with pytest.raises(ClienteleError) as exc:
            rules.validate_payload(["tagKey"])
        assert exc.value.code == "INVALID_RULE"

    def test_duplicate_tag_key(self, make_rule):
        make_rule("loyal")

        with pytest.raises(ClienteleError) as exc:
            rules.validate_payload({"tagKey": "LOYAL", "label": "Loyal"})

        assert exc.value.code == "DUPLICATE_TAG_KEY"

    def test_invalid_conditions_dropped(self):
        cleaned = rules.validate_payload(
            {
                "tagKey": "x",
                "label": "X",
                "conditions": [
                    VALID_CONDITION,
                    {"field": "ordersCount", "operator": "in", "value": [1]},
                    {"field": "lastOrderAt", "operator": "before", "value": "soon"},
                    "garbage",
                ],
            }
        )

        assert cleaned["conditions"] == [
            {"field": "orders_count", "operator": ">=", "value": 5.0, "type": "number"}
        ]

    def test_operators_limited_to_field(self):
        cleaned = rules.sanitize_conditions(
            [
                {"field": "shopId", "operator": ">", "value": 3},
                {"field": "lastOrderAt", "operator": "<", "value": "2025-01-01"},
                {"field": "shopId", "operator": "=", "value": 3},
            ]
        )

        assert cleaned == [{"field": "shop_id", "operator": "=", "value": 3.0, "type": "number"}]

    def test_conditions_truncated(self):
        conditions = [dict(VALID_CONDITION, value=i) for i in range(rules.MAX_CONDITIONS + 10)]

        cleaned = rules.validate_payload({"tagKey": "x", "label": "X", "conditions": conditions})

        assert len(cleaned["conditions"]) == rules.MAX_CONDITIONS
        assert cleaned["conditions"][-1]["value"] == float(rules.MAX_CONDITIONS - 1)


class TestCrud:
    @pytest.fixture
    def competing_insert(self, monkeypatch, make_rule):
        """Insert the same tag key right after the duplicate check passes."""
        validate = rules.validate_payload

        def racing(payload, rule=None):
            cleaned = validate(payload, rule=rule)
            make_rule(cleaned["tag_key"])
            return cleaned

        monkeypatch.setattr(rules, "validate_payload", racing)

    def test_concurrent_create_is_duplicate(self, competing_insert):
        with pytest.raises(ClienteleError) as exc:
            rules.create_rule({"tagKey": "loyal", "label": "Loyal"})

        assert exc.value.code == "DUPLICATE_TAG_KEY"
        assert exc.value.data == {"tag_key": "loyal"}
        assert TagRule.objects.filter(tag_key="loyal").count() == 1

    def test_concurrent_rename_is_duplicate(self, make_rule, competing_insert):
        rule = make_rule("vip")

        with pytest.raises(ClienteleError) as exc:
            rules.update_rule(rule.pk, {"tagKey": "loyal"})

        rule.refresh_from_db()
        assert exc.value.code == "DUPLICATE_TAG_KEY"
        assert rule.tag_key == "vip"

    def test_create_and_serialize(self):
        rule = rules.create_rule(
            {
                "tagKey": "loyal",
                "label": "Loyal",
                "color": "green",
                "priority": "10",
                "conditions": [VALID_CONDITION],
                "description": " Five or more orders ",
            }
        )

        assert rules.serialize_rule(rule) == {
            "id": str(rule.pk),
            "tagKey": "loyal",
            "label": "Loyal",
            "color": "green",
            "priority": 10,
            "isActive": True,
            "matchType": "all",
            "setVip": False,
            "conditions": [{"field": "orders_count", "operator": ">=", "value": 5.0, "type": "number"}],
            "description": "Five or more orders",
        }

    def test_partial_update_keeps_other_fields(self, make_rule):
        rule = make_rule("loyal", label="Loyal", color="green", priority=3, set_vip=True)

        updated = rules.update_rule(rule.pk, {"label": "Very loyal"})

        assert updated.label == "Very loyal"
        assert updated.color == "green"
        assert updated.priority == 3
        assert updated.set_vip is True

    def test_update_to_own_tag_key_allowed(self, make_rule):
        rule = make_rule("loyal")

        assert rules.update_rule(str(rule.pk), {"tagKey": "loyal"}).tag_key == "loyal"

    def test_update_to_taken_tag_key(self, make_rule):
        make_rule("loyal")
        other = make_rule("big")

        with pytest.raises(ClienteleError) as exc:
            rules.update_rule(other.pk, {"tagKey": "loyal"})

        assert exc.value.code == "DUPLICATE_TAG_KEY"

    @pytest.mark.parametrize("rule_id", ["not-a-uuid", uuid.uuid4()])
    def test_not_found(self, rule_id):
        with pytest.raises(ClienteleError) as exc:
            rules.get_rule(rule_id)
        assert exc.value.code == "RULE_NOT_FOUND"

    def test_delete(self, make_rule):
        rule = make_rule("loyal")

        rules.delete_rule(rule.pk)

        assert not TagRule.objects.filter(pk=rule.pk).exists()

    def test_list_rules(self, make_rule):
        make_rule("a", label="Alpha", priority=1)
        make_rule("b", label="Beta", priority=5)
        make_rule("c", label="Gamma", priority=5, is_active=False)

        assert [r["tagKey"] for r in rules.list_rules()] == ["b", "c", "a"]
        assert [r["tagKey"] for r in rules.list_rules(active_only=True)] == ["b", "a"]


class TestCacheInvalidation:
    def test_every_write_refreshes_rule_sets(self):
        rule_set = RuleSet()
        assert rule_set.rules == []

        rule = rules.create_rule({"tagKey": "loyal", "label": "Loyal"})
        assert [r.tag_key for r in rule_set.rules] == ["loyal"]

        rules.update_rule(rule.pk, {"isActive": False})
        assert rule_set.rules == []

        rules.update_rule(rule.pk, {"isActive": True})
        assert len(rule_set.rules) == 1

        rules.delete_rule(rule.pk)
        assert rule_set.rules == []


class TestFieldDefinitions:
    def test_catalog(self):
        definitions = {d["value"]: d for d in rules.field_definitions()}

        assert definitions["orders_count"]["type"] == "number"
        assert ">=" in definitions["orders_count"]["operators"]
        assert definitions["last_order_at"]["type"] == "datetime"
        assert "is_null" in definitions["last_order_at"]["operators"]
        assert definitions["is_vip"]["operators"] == ["is_true", "is_false", "=", "!="]
        assert isinstance(definitions["customer_group"]["label"], str)
