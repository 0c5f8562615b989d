"""Tag rule evaluation.

RuleSet owns the cached, compiled list of active rules. RuleEngine
evaluates them against a customer and its metrics and writes the resulting
auto-tags and VIP flag back onto the customer.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable

from django.utils import timezone

from clientele.rules.catalog import FIELD_CATALOG, FieldContext, extract_extension
from clientele.rules.values import Condition, ConditionError, InvalidCondition, parse_condition
from clientele.services.classification import GroupClassifier
from clientele.signals import tag_rules_changed
from clientele.utils import normalize_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledRule:
    """Active rule with its conditions parsed."""

    id: str
    tag_key: str
    label: str
    color: str
    priority: int
    match_type: str
    set_vip: bool
    conditions: tuple[Condition | InvalidCondition, ...]

    def matches(self, resolve: Callable[[Condition], Any]) -> bool:
        if not self.conditions:
            return True

        results = (
            condition.matches(resolve(condition)) if isinstance(condition, Condition) else False
            for condition in self.conditions
        )
        if self.match_type == "any":
            return any(results)
        return all(results)


@dataclass(frozen=True)
class AutoTag:
    key: str
    label: str
    color: str
    rule_id: str
    rule_label: str
    priority: int

    def as_stored(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "color": self.color,
            "source_rule_id": self.rule_id,
            "source_rule_name": self.rule_label,
        }


@dataclass(frozen=True)
class RuleEvaluation:
    auto_tags: tuple[AutoTag, ...]
    vip_matched: bool
    vip_rules_present: bool

    @property
    def tag_keys(self) -> list[str]:
        return [tag.key for tag in self.auto_tags]


def _active_rules():
    from clientele.models import TagRule

    return TagRule.objects.filter(is_active=True).order_by("-priority", "label")


class RuleSet:
    """
    Compiled active rules, cached until refreshed.

    Listens to the tag_rules_changed signal, so any write made through
    clientele.services.rules invalidates every live RuleSet.
    """

    def __init__(self, loader: Callable[[], Iterable[Any]] | None = None):
        self._loader = loader or _active_rules
        self._rules: list[CompiledRule] | None = None

        tag_rules_changed.connect(self._on_rules_changed)

    def _on_rules_changed(self, sender=None, **kwargs):
        self.refresh()

    def refresh(self) -> None:
        self._rules = None

    @property
    def rules(self) -> list[CompiledRule]:
        if self._rules is None:
            compiled = [
                self.compile(rule)
                for rule in self._loader()
                if getattr(rule, "is_active", True)
            ]
            compiled.sort(key=lambda rule: (-rule.priority, rule.label))
            self._rules = compiled
            logger.debug("Clientele: loaded %d active tag rules", len(compiled))
        return self._rules

    @property
    def has_vip_rules(self) -> bool:
        return any(rule.set_vip for rule in self.rules)

    @staticmethod
    def compile(rule) -> CompiledRule:
        raw_conditions = rule.conditions if isinstance(rule.conditions, list) else []

        conditions = []
        for raw in raw_conditions:
            try:
                conditions.append(parse_condition(raw))
            except ConditionError as exc:
                logger.warning(
                    "Clientele: rule %s has an invalid condition (%s), it will never match",
                    rule.tag_key,
                    exc,
                )
                conditions.append(InvalidCondition(raw=raw, reason=str(exc)))

        match_type = "any" if str(rule.match_type or "").lower() == "any" else "all"
        return CompiledRule(
            id=str(rule.pk),
            tag_key=str(rule.tag_key),
            label=rule.label,
            color=rule.color or "gray",
            priority=int(rule.priority or 0),
            match_type=match_type,
            set_vip=bool(rule.set_vip),
            conditions=tuple(conditions),
        )


class RuleEngine:
    """
    Applies tag rules to customers.

    Usage:
        engine = RuleEngine()
        result = engine.evaluate(customer, metrics)
        engine.sync(customer)            # writes auto_tags/is_vip/tags and saves
        engine.refresh()                 # after rule changes outside this process
    """

    def __init__(
        self,
        rule_set: RuleSet | None = None,
        classifier: GroupClassifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.rule_set = rule_set or RuleSet()
        self.classifier = classifier or GroupClassifier()
        self.clock = clock or timezone.now

    def refresh(self) -> None:
        self.rule_set.refresh()

    @staticmethod
    def load_metrics(customer):
        from clientele.models import CustomerMetric

        if not customer.guid:
            return None
        return CustomerMetric.objects.filter(customer_id=customer.guid).first()

    def evaluate(self, customer, metrics=None) -> RuleEvaluation:
        """
        Evaluate active rules in priority order.

        The first matching rule for a tag_key decides its label and color;
        later rules for the same key only contribute their VIP flag.
        """
        context = FieldContext(customer=customer, metrics=metrics, now=self.clock())

        def resolve(condition: Condition):
            if condition.is_extension:
                return extract_extension(customer, condition.field)
            return FIELD_CATALOG[condition.field].extract(context)

        matched: dict[str, AutoTag] = {}
        vip_matched = False

        for rule in self.rule_set.rules:
            if not rule.matches(resolve):
                continue

            if rule.tag_key not in matched:
                matched[rule.tag_key] = AutoTag(
                    key=rule.tag_key,
                    label=rule.label,
                    color=rule.color,
                    rule_id=rule.id,
                    rule_label=rule.label,
                    priority=rule.priority,
                )
            if rule.set_vip:
                vip_matched = True

        return RuleEvaluation(
            auto_tags=tuple(matched.values()),
            vip_matched=vip_matched,
            vip_rules_present=self.rule_set.has_vip_rules,
        )

    def sync(
        self,
        customer,
        metrics=None,
        persist: bool = True,
        load_metrics: bool = True,
    ) -> RuleEvaluation:
        """
        Evaluate and apply rules to the customer.

        When ``metrics`` is None they are looked up, unless ``load_metrics``
        is False (the caller already knows there are none).

        VIP handling: a matching VIP rule sets is_vip; when VIP rules exist
        but none matched, is_vip is cleared, including a VIP flag set by
        hand; without any VIP rule the flag is left alone.
        """
        if metrics is None and load_metrics:
            metrics = self.load_metrics(customer)

        before = customer.tracked_state()
        previous_labels = [
            tag.get("label") for tag in customer.auto_tags or [] if isinstance(tag, dict)
        ]

        result = self.evaluate(customer, metrics)
        customer.auto_tags = [tag.as_stored() for tag in result.auto_tags]

        if result.vip_matched:
            customer.is_vip = True
        elif result.vip_rules_present:
            customer.is_vip = False

        current = {normalize_label(tag.label) for tag in result.auto_tags}
        stale = [label for label in previous_labels if normalize_label(label) not in current]
        self.classifier.refresh_tags(customer, stale)

        if persist and customer.pk is not None and customer.tracked_state() != before:
            customer.save(update_fields=["auto_tags", "is_vip", "tags", "updated_at"])

        return result
