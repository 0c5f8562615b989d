"""
Clientele signals: public event API.

Emitted signals:
- customer_created: Emitted when an order creates a new identity
- customer_updated: Emitted when a resync actually changed a customer
- tag_rules_changed: Emitted by services.rules after any rule write.
  RuleSet instances listen and drop their cached rules.
- classification_changed: Send after group labels/aliases/policy change.
  ClassificationConfig instances listen and reload.
"""

from django.dispatch import Signal

# Customer signals (emitted by services)
customer_created = Signal()  # sender=Customer, customer=Customer
customer_updated = Signal()  # sender=Customer, customer=Customer

# Configuration signals (cache invalidation)
tag_rules_changed = Signal()  # sender=TagRule
classification_changed = Signal()
