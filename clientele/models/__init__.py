"""Clientele models."""

from clientele.models.shop import Shop
from clientele.models.customer import Customer, CustomerGroup
from clientele.models.account import CustomerAccount
from clientele.models.metric import CustomerMetric
from clientele.models.tag_rule import TagRule, MatchType
from clientele.models.identity_claim import IdentityClaim

__all__ = [
    "Shop",
    # Identity
    "Customer",
    "CustomerGroup",
    "CustomerAccount",
    "IdentityClaim",
    # Read-only metrics
    "CustomerMetric",
    # Classification rules
    "TagRule",
    "MatchType",
]
