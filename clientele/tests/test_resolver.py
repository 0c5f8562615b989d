"""Tests for order grouping, identity resolution and race-safe creation."""

import pytest
from django.db import IntegrityError

from clientele.exceptions import ClienteleError
from clientele.models import Customer, IdentityClaim
from clientele.protocols import OrderRecord
from clientele.services.repository import CustomerRepository
from clientele.services.resolver import EntityResolver

pytestmark = pytest.mark.django_db


def group_for(*orders):
    groups, _ = EntityResolver.group_orders(orders)
    assert len(groups) == 1
    return groups[0]


# ═══════════════════════════════════════════════════════════════════
# Grouping
# ═══════════════════════════════════════════════════════════════════


class TestGroupOrders:
    def test_same_email_one_group(self):
        orders = [
            OrderRecord(ref="A1", email="Jane@Example.com"),
            OrderRecord(ref="A2", billing_address={"email": " jane@example.com "}),
        ]

        groups, skipped = EntityResolver.group_orders(orders)

        assert skipped == 0
        assert [g.key for g in groups] == ["email:jane@example.com"]
        assert groups[0].refs == ["A1", "A2"]

    def test_email_beats_phone_for_key(self):
        groups, _ = EntityResolver.group_orders(
            [OrderRecord(ref="A1", email="jane@example.com", phone="777 111 222")]
        )

        assert groups[0].key == "email:jane@example.com"
        assert groups[0].normalized_phone == "777111222"

    def test_phone_only(self):
        groups, _ = EntityResolver.group_orders([OrderRecord(ref="A1", phone="+420 777 111 222")])

        assert groups[0].key == "phone:+420777111222"
        assert groups[0].normalized_email is None

    def test_missing_phone_filled_from_later_order(self):
        group = group_for(
            OrderRecord(ref="A1", email="jane@example.com"),
            OrderRecord(ref="A2", email="jane@example.com", phone="777"),
        )

        assert group.normalized_phone == "777"
        assert group.representative.ref == "A1"

    def test_orders_without_contact_skipped(self):
        groups, skipped = EntityResolver.group_orders(
            [OrderRecord(ref="A1", name="Nobody"), OrderRecord(ref="A2", phone="n/a")]
        )

        assert groups == []
        assert skipped == 2


# ═══════════════════════════════════════════════════════════════════
# Resolution
# ═══════════════════════════════════════════════════════════════════


class TestResolve:
    def test_finds_existing_by_email(self, config, customer, shop):
        resolver = EntityResolver(config)

        resolution = resolver.resolve(
            group_for(OrderRecord(ref="A1", shop_id=shop.pk, email="JOHN@example.com"))
        )

        assert resolution.customer.pk == customer.pk
        assert resolution.created is False

    def test_falls_back_to_phone(self, config, customer, shop):
        resolver = EntityResolver(config)

        resolution = resolver.resolve(
            group_for(OrderRecord(ref="A1", shop_id=shop.pk, phone="+420777000111"))
        )

        assert resolution.customer.pk == customer.pk

    def test_creates_from_representative_order(self, config, shop):
        resolver = EntityResolver(config)
        group = group_for(
            OrderRecord(
                ref="A1",
                code="2025-0001",
                shop_id=shop.pk,
                email="jane@example.com",
                name="Jane Roe",
                billing_address={"city": "Prague"},
            )
        )

        resolution = resolver.resolve(group)
        customer = resolution.customer

        assert resolution.created is True
        assert customer.shop_id == shop.pk
        assert customer.full_name == "Jane Roe"
        assert customer.billing_address == {"city": "Prague"}
        assert customer.data == {
            "created_from_order_ref": "A1",
            "created_from_order_code": "2025-0001",
            "source": "orders",
        }
        assert IdentityClaim.objects.get(key="email:jane@example.com").customer_id == customer.pk

    def test_memo_answers_repeat_lookups(self, config, shop, django_assert_num_queries):
        resolver = EntityResolver(config)
        group = group_for(OrderRecord(ref="A1", shop_id=shop.pk, email="jane@example.com"))
        first = resolver.resolve(group)

        with django_assert_num_queries(0):
            second = resolver.resolve(group)

        assert second.customer is first.customer
        assert second.created is False

    def test_prepare_runs_before_save(self, config):
        resolver = EntityResolver(config)
        seen = []

        def prepare(customer, group):
            seen.append(customer.pk)
            customer.notes = "prepared"

        resolution = resolver.resolve(
            group_for(OrderRecord(ref="A1", email="jane@example.com")), prepare=prepare
        )

        assert seen == [None]
        assert Customer.objects.get(pk=resolution.customer.pk).notes == "prepared"


class TestShops:
    def test_prefers_customer_of_order_shop(self, config, customer, shop, other_shop):
        other = Customer.objects.create(shop=other_shop, email="john@example.com")
        resolver = EntityResolver(config)

        from_other = resolver.resolve(
            group_for(OrderRecord(ref="A1", shop_id=other_shop.pk, email="john@example.com"))
        )
        without_shop = EntityResolver(config).resolve(
            group_for(OrderRecord(ref="A2", email="john@example.com"))
        )

        assert from_other.customer.pk == other.pk
        assert without_shop.customer.pk == customer.pk

    def test_other_shop_customer_used_as_fallback(self, config, customer, other_shop):
        resolution = EntityResolver(config).resolve(
            group_for(OrderRecord(ref="A1", shop_id=other_shop.pk, email="john@example.com"))
        )

        assert resolution.customer.pk == customer.pk
        assert resolution.created is False

    def test_linked_shop_owns_new_customers(self, config, shop, other_shop):
        other_shop.customer_link_shop = shop
        other_shop.save()
        resolver = EntityResolver(config)

        resolution = resolver.resolve(
            group_for(OrderRecord(ref="A1", shop_id=other_shop.pk, email="jane@example.com"))
        )

        assert resolution.preferred_shop_id == shop.pk
        assert resolution.customer.shop_id == shop.pk

    def test_explicit_preferred_shop_hint(self, config, shop, other_shop):
        resolver = EntityResolver(config)
        order = OrderRecord(ref="A1", shop_id=other_shop.pk, preferred_shop_id=shop.pk)

        assert resolver.preferred_shop_id(order) == shop.pk

    def test_shop_looked_up_once(self, config, shop, other_shop, django_assert_num_queries):
        other_shop.customer_link_shop = shop
        other_shop.save()
        resolver = EntityResolver(config)
        order = OrderRecord(ref="A1", shop_id=other_shop.pk)

        assert resolver.preferred_shop_id(order) == shop.pk
        with django_assert_num_queries(0):
            assert resolver.preferred_shop_id(order) == shop.pk

    def test_unknown_shop_kept(self, config):
        order = OrderRecord(ref="A1", shop_id=999)

        assert EntityResolver(config).preferred_shop_id(order) == 999


class TestCreationPolicy:
    def test_guest_creation_denied(self, config_values, config):
        config_values["auto_create_guests"] = False
        resolver = EntityResolver(config)

        resolution = resolver.resolve(group_for(OrderRecord(ref="A1", email="jane@example.com")))

        assert resolution is None
        assert not Customer.objects.exists()
        assert not IdentityClaim.objects.exists()

    def test_registered_created_despite_policy(self, config_values, config):
        config_values["auto_create_guests"] = False
        resolver = EntityResolver(config)

        resolution = resolver.resolve(
            group_for(OrderRecord(ref="A1", email="jane@example.com", account_reference="acc-1"))
        )

        assert resolution.created is True
        assert resolution.customer.guid == "acc-1"

    def test_denied_group_still_finds_existing(self, config_values, config, customer):
        config_values["auto_create_guests"] = False

        resolution = EntityResolver(config).resolve(
            group_for(OrderRecord(ref="A1", email="john@example.com"))
        )

        assert resolution.customer.pk == customer.pk

    def test_policy_read_once_per_resolver(self, config_values, config):
        resolver = EntityResolver(config)
        order = OrderRecord(ref="A1", email="jane@example.com")
        assert resolver.may_create(order) is True

        config_values["auto_create_guests"] = False
        config.refresh()

        assert resolver.may_create(order) is True
        assert EntityResolver(config).may_create(order) is False

    def test_taken_account_reference_gets_fresh_guid(self, config):
        Customer.objects.create(guid="acc-1", email="someone@example.com")

        resolution = EntityResolver(config).resolve(
            group_for(OrderRecord(ref="A1", email="jane@example.com", account_reference="acc-1"))
        )

        assert resolution.created is True
        assert resolution.customer.guid != "acc-1"


# ═══════════════════════════════════════════════════════════════════
# Repository
# ═══════════════════════════════════════════════════════════════════


class TestFindOrCreateWithLock:
    def test_claim_resolves_to_owner(self, customer):
        IdentityClaim.objects.create(key="phone:999", customer=customer)
        built = []

        found, created = CustomerRepository().find_or_create_with_lock(
            "phone:999",
            email=None,
            phone="999",
            preferred_shop_id=None,
            build=lambda: built.append(1),
        )

        assert found.pk == customer.pk
        assert created is False
        assert built == []

    def test_retries_after_conflict(self):
        calls = []

        def build():
            calls.append(1)
            if len(calls) == 1:
                raise IntegrityError("UNIQUE constraint failed: clientele_identity_claim.key")
            return Customer(email="jane@example.com")

        customer, created = CustomerRepository().find_or_create_with_lock(
            "email:jane@example.com",
            email="jane@example.com",
            phone=None,
            preferred_shop_id=None,
            build=build,
        )

        assert created is True
        assert len(calls) == 2
        assert Customer.objects.filter(email="jane@example.com").count() == 1

    def test_contention_after_bounded_retries(self):
        calls = []

        def build():
            calls.append(1)
            raise IntegrityError("UNIQUE constraint failed: clientele_identity_claim.key")

        with pytest.raises(ClienteleError) as exc:
            CustomerRepository().find_or_create_with_lock(
                "email:jane@example.com",
                email="jane@example.com",
                phone=None,
                preferred_shop_id=None,
                build=build,
            )

        assert exc.value.code == "LOCK_CONTENTION"
        assert exc.value.is_transient is True
        assert len(calls) == 3
        assert not Customer.objects.exists()

    def test_custom_attempts(self):
        calls = []

        def build():
            calls.append(1)
            raise IntegrityError("conflict")

        with pytest.raises(ClienteleError):
            CustomerRepository(retry_attempts=5).find_or_create_with_lock(
                "email:x@example.com",
                email="x@example.com",
                phone=None,
                preferred_shop_id=None,
                build=build,
            )

        assert len(calls) == 5
