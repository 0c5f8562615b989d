"""Customer group classification and tag-list construction.

Groups are a closed set (registered, guest, company). VIP is a separate
flag that only contributes a label. The tag list is rebuilt from scratch on
every pass, in this order:

    1. label of the canonical group
    2. VIP label, if the customer is VIP
    3. auto-tag labels (rule output)
    4. remaining custom tags typed by staff

Tags matching a forbidden signature are dropped at every step.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from django.utils.text import slugify

from clientele.conf import COMPANY, GUEST, REGISTERED, VIP, ClassificationConfig
from clientele.utils import get_path, normalize_label

logger = logging.getLogger(__name__)

STANDARD_KEYS = (REGISTERED, GUEST, COMPANY, VIP)


@dataclass
class ClassificationContext:
    """Signals the group decision is based on."""

    source_group: str | None = None  # storefront group name
    is_guest: bool = False
    force_company: bool = False
    is_company: bool | None = None  # None = decide from addresses/VAT id
    billing_address: dict[str, Any] = field(default_factory=dict)
    delivery_addresses: list[dict[str, Any]] = field(default_factory=list)
    company_name: str | None = None
    vat_id: str | None = None

    @classmethod
    def for_customer(cls, customer, **overrides) -> "ClassificationContext":
        """Context filled from what the customer record already knows."""
        billing = customer.billing_address if isinstance(customer.billing_address, dict) else {}
        data = customer.data if isinstance(customer.data, dict) else {}
        values = {
            "billing_address": billing,
            "delivery_addresses": [
                a for a in (customer.delivery_addresses or []) if isinstance(a, dict)
            ],
            "company_name": billing.get("company"),
            "vat_id": data.get("vat_id") or billing.get("vatId") or billing.get("vat_id"),
        }
        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class Badge:
    """Display badge for one tag."""

    key: str
    label: str
    type: str  # "standard" | "automatic" | "custom"
    color: str | None = None
    source: dict | None = None


class GroupClassifier:
    """
    Decides canonical groups and builds display tags.

    Usage:
        classifier = GroupClassifier(ClassificationConfig())
        group = classifier.classify(ClassificationContext(source_group="B2B"))
        classifier.apply(customer, ClassificationContext.for_customer(customer))
    """

    def __init__(self, config: ClassificationConfig | None = None):
        self.config = config or ClassificationConfig()

    def refresh(self) -> None:
        self.config.refresh()

    @property
    def labels(self) -> dict[str, str]:
        return self.config.labels

    @property
    def aliases(self) -> dict[str, list[str]]:
        return self.config.aliases

    def label_for(self, group_key: str | None) -> str:
        labels = self.labels
        return labels.get(group_key or REGISTERED) or labels[REGISTERED]

    # ======================================================================
    # Group decision
    # ======================================================================

    def match_alias(self, value: str | None) -> str | None:
        normalized = normalize_label(value)
        if normalized is None:
            return None
        for group, entries in self.aliases.items():
            if normalized in entries:
                return group
        return None

    def classify(self, context: ClassificationContext) -> str:
        matched = self.match_alias(context.source_group)
        if matched:
            return matched

        if context.force_company:
            return COMPANY

        is_company = context.is_company
        if is_company is None:
            candidates = [get_path(context.billing_address or {}, "company")]
            candidates += [
                get_path(address, "company")
                for address in context.delivery_addresses or []
                if isinstance(address, dict)
            ]
            candidates += [context.company_name, context.vat_id]
            is_company = any(
                isinstance(candidate, str) and candidate.strip()
                for candidate in candidates
            )

        if is_company:
            return COMPANY
        if context.is_guest:
            return GUEST
        return REGISTERED

    def apply(self, customer, context: ClassificationContext | None = None, stale_labels=()) -> str:
        """Set customer_group and rebuild tags. Does not save."""
        context = context or ClassificationContext.for_customer(customer)
        group = self.classify(context)
        customer.customer_group = group
        self.refresh_tags(customer, stale_labels)
        return group

    # ======================================================================
    # Tags
    # ======================================================================

    def is_forbidden(self, value: str | None) -> bool:
        normalized = normalize_label(value)
        return normalized is not None and normalized in self.config.forbidden_signatures

    def standard_signatures(self) -> set[str]:
        """Normalized labels and aliases of every standard group."""
        signatures = {normalize_label(label) for label in self.labels.values()}
        for entries in self.aliases.values():
            signatures.update(normalize_label(alias) for alias in entries)
        signatures.discard(None)
        return signatures

    def sanitize_auto_tags(self, raw) -> list[dict]:
        """Clean stored auto-tags: unique keys, no blank or forbidden labels."""
        if not isinstance(raw, list):
            return []

        sanitized: dict[str, dict] = {}
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            label = str(entry.get("label") or "").strip()
            if not label or self.is_forbidden(label):
                continue

            key = str(entry.get("key") or "") or slugify(label.lower())
            if key in sanitized:
                continue
            sanitized[key] = {
                "key": key,
                "label": label,
                "color": str(entry.get("color") or "") or "gray",
                "source_rule_id": str(entry.get("source_rule_id") or "") or None,
                "source_rule_name": str(entry.get("source_rule_name") or "") or None,
            }
        return list(sanitized.values())

    def build_tag_list(self, customer, stale_labels=()) -> list[str]:
        """
        Ordered, de-duplicated display tags for a customer.

        stale_labels are auto-tag labels the last rule pass removed; they are
        dropped from the custom tags instead of lingering there.
        """
        auto_tags = self.sanitize_auto_tags(customer.auto_tags)
        standard = self.standard_signatures()
        auto_signatures = {normalize_label(tag["label"]) for tag in auto_tags}
        stale = {normalize_label(label) for label in stale_labels}

        tags: list[str] = []
        seen: set[str] = set()

        def push(label):
            normalized = normalize_label(label)
            if normalized is None or normalized in seen or self.is_forbidden(label):
                return
            seen.add(normalized)
            tags.append(label.strip())

        push(self.label_for(customer.customer_group))
        if customer.is_vip:
            push(self.labels[VIP])
        for tag in auto_tags:
            push(tag["label"])

        for tag in customer.tags or []:
            normalized = normalize_label(tag)
            if normalized is None:
                continue
            if normalized in standard or normalized in auto_signatures or normalized in stale:
                continue
            push(tag)

        return tags

    def refresh_tags(self, customer, stale_labels=()) -> None:
        customer.auto_tags = self.sanitize_auto_tags(customer.auto_tags)
        customer.tags = self.build_tag_list(customer, stale_labels)

    # ======================================================================
    # Badges (presentation)
    # ======================================================================

    def _badge_key_map(self) -> dict[str, str]:
        mapping = {}
        for key, label in self.labels.items():
            normalized = normalize_label(label)
            if normalized:
                mapping[normalized] = key
        for key, entries in self.aliases.items():
            for alias in entries:
                normalized = normalize_label(alias)
                if normalized:
                    mapping[normalized] = key
        return mapping

    def badges(self, customer) -> list[Badge]:
        """Classify each display tag as standard, automatic or custom."""
        key_map = self._badge_key_map()
        auto_by_label = {
            normalize_label(tag["label"]): tag
            for tag in self.sanitize_auto_tags(customer.auto_tags)
        }

        badges: list[Badge] = []
        seen: set[str] = set()

        def add(badge: Badge):
            if badge.key in seen:
                return
            seen.add(badge.key)
            badges.append(badge)

        def automatic(tag: dict, label: str) -> Badge:
            return Badge(
                key=tag["key"],
                label=label,
                type="automatic",
                color=tag["color"],
                source={
                    "rule_id": tag["source_rule_id"],
                    "rule_name": tag["source_rule_name"],
                },
            )

        for tag in customer.tags or []:
            if not isinstance(tag, str) or not tag.strip():
                continue
            label = tag.strip()
            normalized = normalize_label(label)

            if normalized in key_map:
                key = key_map[normalized]
                add(Badge(key=key, label=label, type="standard" if key in STANDARD_KEYS else "custom"))
            elif normalized in auto_by_label:
                add(automatic(auto_by_label[normalized], label))
            else:
                slug = slugify(label)
                add(Badge(key=f"custom:{slug}" if slug else "custom", label=label, type="custom"))

        for tag in auto_by_label.values():
            add(automatic(tag, tag["label"]))

        if not badges:
            group = customer.customer_group or REGISTERED
            badges.append(Badge(key=group, label=self.label_for(group), type="standard"))

        return badges
