"""Clientele services.

    classification  GroupClassifier, ClassificationContext
    rule_engine     RuleSet, RuleEngine
    rules           tag rule store (CRUD + validation)
    merger          pure merge of order data into a customer
    repository      lookups and atomic find-or-create
    resolver        EntityResolver
    sync            SyncCoordinator
"""

from clientele.services import classification, merger, rules
from clientele.services.classification import ClassificationContext, GroupClassifier
from clientele.services.rule_engine import RuleEngine, RuleSet
from clientele.services.sync import SyncCoordinator, SyncStats

__all__ = [
    "classification",
    "merger",
    "rules",
    "ClassificationContext",
    "GroupClassifier",
    "RuleEngine",
    "RuleSet",
    "SyncCoordinator",
    "SyncStats",
]
