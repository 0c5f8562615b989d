"""Pytest fixtures for Clientele tests."""

from datetime import datetime, timezone as dt_timezone

import pytest
from django.core.cache import cache

from clientele.conf import ClassificationConfig
from clientele.models import Customer, Shop, TagRule
from clientele.services.classification import GroupClassifier
from clientele.services.rule_engine import RuleEngine, RuleSet
from clientele.services.sync import SyncCoordinator

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=dt_timezone.utc)


class RecordingOrderLinks:
    """OrderLinkBackend that remembers what it was asked to link."""

    def __init__(self):
        self.calls = []

    def attach(self, order_refs, customer_guid, email, phone):
        self.calls.append(
            {"refs": list(order_refs), "guid": customer_guid, "email": email, "phone": phone}
        )

    def guid_for(self, ref):
        for call in self.calls:
            if ref in call["refs"]:
                return call["guid"]
        return None


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def config_values():
    """Mutable classification settings, read by the ``config`` fixture."""
    return {
        "auto_create_guests": True,
        "auto_register_guests": False,
        "labels": {},
        "aliases": {},
        "forbidden_signatures": [],
    }


@pytest.fixture
def config(config_values):
    return ClassificationConfig(loader=lambda: config_values)


@pytest.fixture
def classifier(config):
    return GroupClassifier(config)


@pytest.fixture
def engine(classifier):
    """RuleEngine over the active TagRule rows, with a fixed clock."""
    return RuleEngine(rule_set=RuleSet(), classifier=classifier, clock=lambda: FIXED_NOW)


@pytest.fixture
def order_links():
    return RecordingOrderLinks()


@pytest.fixture
def coordinator(config, classifier, engine, order_links):
    return SyncCoordinator(
        config=config,
        classifier=classifier,
        rule_engine=engine,
        order_links=order_links,
    )


@pytest.fixture
def shop(db):
    return Shop.objects.create(code="main", name="Main shop", provider="shoptet")


@pytest.fixture
def other_shop(db):
    return Shop.objects.create(code="outlet", name="Outlet", provider="woocommerce")


@pytest.fixture
def customer(db, shop):
    return Customer.objects.create(
        shop=shop,
        email="john@example.com",
        phone="+420 777 000 111",
        full_name="John Doe",
    )


@pytest.fixture
def make_rule(db):
    """Create a TagRule row directly."""

    def make(tag_key, label=None, conditions=None, **kwargs):
        return TagRule.objects.create(
            tag_key=tag_key,
            label=label or tag_key.title(),
            conditions=conditions or [],
            **kwargs,
        )

    return make
