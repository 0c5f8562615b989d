"""Tests for contact normalization and JSON helpers."""

import json
from decimal import Decimal

import pytest

from clientele.utils import (
    LenientJSONEncoder,
    get_path,
    normalize_email,
    normalize_label,
    normalize_phone,
)


class TestNormalizeEmail:
    def test_trims_and_lowercases(self):
        assert normalize_email("  Jane@Example.COM ") == "jane@example.com"

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_is_none(self, raw):
        assert normalize_email(raw) is None


class TestNormalizePhone:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("+420 777 123 456", "+420777123456"),
            ("(41) 99999-0001", "41999990001"),
            ("  777-123-456  ", "777123456"),
            ("+1 (555) 010-9999 ext", "+15550109999"),
        ],
    )
    def test_strips_formatting(self, raw, expected):
        assert normalize_phone(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "+", "n/a", "++"])
    def test_no_digits_is_none(self, raw):
        assert normalize_phone(raw) is None

    def test_plus_only_kept_when_leading(self):
        assert normalize_phone("777+123") == "777123"

    @pytest.mark.parametrize(
        "raw",
        ["+420 777 123 456", "(41) 99999-0001", "++420 1", " +0 ", "abc 12 def 3", "007"],
    )
    def test_idempotent(self, raw):
        once = normalize_phone(raw)
        assert normalize_phone(once) == once


class TestNormalizeLabel:
    def test_lowercases(self):
        assert normalize_label("  VIP ") == "vip"

    @pytest.mark.parametrize("raw", [None, "", "  ", 3])
    def test_empty_or_not_text(self, raw):
        assert normalize_label(raw) is None


class TestGetPath:
    def test_nested(self):
        data = {"customer": {"customerGroup": {"name": "B2B"}}}
        assert get_path(data, "customer.customerGroup.name") == "B2B"

    def test_literal_dotted_key_wins(self):
        assert get_path({"a.b": 1, "a": {"b": 2}}, "a.b") == 1

    def test_list_index(self):
        assert get_path({"items": [{"sku": "A"}, {"sku": "B"}]}, "items.1.sku") == "B"

    def test_missing_returns_default(self):
        assert get_path({"a": {}}, "a.b.c", default="x") == "x"
        assert get_path(None, "a") is None


class TestLenientJSONEncoder:
    def test_decimal_uses_django_encoding(self):
        assert json.loads(json.dumps({"v": Decimal("1.50")}, cls=LenientJSONEncoder)) == {"v": "1.50"}

    def test_set_becomes_sorted_list(self):
        assert json.dumps({"s": {"b", "a"}}, cls=LenientJSONEncoder) == '{"s": ["a", "b"]}'

    def test_bytes_decoded(self):
        assert json.loads(json.dumps({"b": b"abc"}, cls=LenientJSONEncoder)) == {"b": "abc"}

    def test_unknown_object_falls_back_to_text(self):
        class Thing:
            def __str__(self):
                return "thing"

        assert json.loads(json.dumps({"t": Thing()}, cls=LenientJSONEncoder)) == {"t": "thing"}
