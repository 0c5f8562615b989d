"""Tests for merging order contact data into customers."""

from clientele.models import Customer
from clientele.protocols.orders import OrderRecord
from clientele.services.merger import (
    CustomerSnapshot,
    merge,
    merge_address,
    merge_addresses,
    should_replace,
)


def snapshot(**values):
    return CustomerSnapshot(**values)


class TestShouldReplace:
    def test_empty_incoming_never_wins(self):
        assert should_replace("John", "") is False
        assert should_replace("John", None) is False
        assert should_replace("John", "   ") is False

    def test_fills_empty(self):
        assert should_replace("", "John") is True

    def test_longer_or_different_wins(self):
        assert should_replace("John", "John Doe") is True
        assert should_replace("John Doe", "Jane") is True

    def test_same_value_does_not(self):
        assert should_replace("John Doe", " John Doe ") is False


class TestMergeAddress:
    def test_key_by_key(self):
        existing = {"street": "Main 1", "city": "", "zip": "11000"}
        incoming = {"street": "Main 1a", "city": "Prague", "zip": "110", "country": "CZ"}

        assert merge_address(existing, incoming) == {
            "street": "Main 1a",
            "city": "Prague",
            "zip": "11000",
            "country": "CZ",
        }

    def test_empty_incoming_values_skipped(self):
        assert merge_address({"city": "Prague"}, {"city": "", "zip": None}) == {"city": "Prague"}

    def test_existing_untouched(self):
        existing = {"city": ""}
        merge_address(existing, {"city": "Brno"})
        assert existing == {"city": ""}


class TestMergeAddresses:
    def test_appends_new_only(self):
        home = {"street": "Main 1"}
        work = {"street": "Office 2"}

        assert merge_addresses([home], [dict(home), work, {}]) == [home, work]


class TestMerge:
    def test_idempotent(self):
        existing = snapshot(full_name="John", phone="777")
        incoming = snapshot(
            full_name="John Doe",
            phone="+420 777",
            email="john@example.com",
            billing_address={"city": "Prague"},
            delivery_addresses=[{"street": "Main 1"}],
        )

        first = merge(existing, incoming)
        second = merge(first.snapshot, incoming)

        assert first.changed is True
        assert second.changed is False
        assert second.snapshot == first.snapshot

    def test_customer_merged_with_itself_is_unchanged(self):
        existing = snapshot(
            full_name="John Doe",
            email="john@example.com",
            phone="+420 777",
            billing_address={"city": "Prague"},
            delivery_addresses=[{"street": "Main 1"}],
        )

        result = merge(existing, existing)

        assert result.changed is False
        assert result.snapshot == existing

    def test_empty_incoming_changes_nothing(self):
        existing = snapshot(full_name="John Doe", phone="777", billing_address={"city": "Prague"})

        result = merge(existing, snapshot())

        assert result.changed is False
        assert result.snapshot is existing

    def test_email_only_filled_when_missing(self):
        kept = merge(snapshot(email="old@example.com"), snapshot(email="new@example.com"))
        filled = merge(snapshot(), snapshot(email=" New@Example.com "))

        assert kept.changed is False
        assert filled.snapshot.email == "new@example.com"
        assert filled.changed_fields == ("email",)

    def test_changed_fields(self):
        result = merge(snapshot(full_name="Jo"), snapshot(full_name="Joe", phone="777"))

        assert set(result.changed_fields) == {"full_name", "phone"}


class TestSnapshot:
    def test_from_order_fallbacks(self):
        order = OrderRecord(
            ref="A1",
            billing_address={
                "firstName": "Jane",
                "lastName": "Roe",
                "email": " Jane@Example.com",
                "phone": "777 123",
            },
            delivery_address={"street": "Main 1"},
        )

        result = CustomerSnapshot.from_order(order)

        assert result.full_name == "Jane Roe"
        assert result.email == "jane@example.com"
        assert result.phone == "777 123"
        assert result.delivery_addresses == [{"street": "Main 1"}]

    def test_from_order_without_addresses(self):
        result = CustomerSnapshot.from_order(OrderRecord(ref="A1", name="Jane"))

        assert result.billing_address == {}
        assert result.delivery_addresses == []

    def test_apply_to_recomputes_normalized_phone(self):
        customer = Customer(full_name="John", phone="777")

        changed = snapshot(full_name="John", phone="+420 777 111").apply_to(customer)

        assert changed == ["phone", "normalized_phone"]
        assert customer.normalized_phone == "+420777111"

    def test_from_customer_round_trip_has_no_changes(self):
        customer = Customer(
            full_name="John",
            email="john@example.com",
            billing_address={"city": "Prague"},
            delivery_addresses=[{"street": "Main 1"}],
        )

        assert CustomerSnapshot.from_customer(customer).apply_to(customer) == []
