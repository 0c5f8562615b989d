"""Merging incoming order contact data into a known customer.

merge() is pure: it never touches the Customer, it returns a new snapshot
and a flag. Longer or newly supplied data wins; non-empty data is never
replaced with empty data.
"""

from dataclasses import dataclass, field, replace
from typing import Any

from clientele.utils import normalize_email, normalize_phone


def _is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (dict, list, tuple)):
        return not value
    return False


@dataclass(frozen=True)
class CustomerSnapshot:
    """The mergeable part of a customer."""

    full_name: str = ""
    email: str = ""
    phone: str = ""
    billing_address: dict[str, Any] = field(default_factory=dict)
    delivery_addresses: list[dict[str, Any]] = field(default_factory=list)

    FIELDS = ("full_name", "email", "phone", "billing_address", "delivery_addresses")

    @classmethod
    def from_customer(cls, customer) -> "CustomerSnapshot":
        billing = customer.billing_address if isinstance(customer.billing_address, dict) else {}
        delivery = customer.delivery_addresses if isinstance(customer.delivery_addresses, list) else []
        return cls(
            full_name=customer.full_name or "",
            email=customer.email or "",
            phone=customer.phone or "",
            billing_address=dict(billing),
            delivery_addresses=[dict(a) for a in delivery if isinstance(a, dict)],
        )

    @classmethod
    def from_order(cls, order) -> "CustomerSnapshot":
        delivery = order.extract_delivery_address()
        return cls(
            full_name=order.extract_full_name() or "",
            email=normalize_email(order.extract_email()) or "",
            phone=order.extract_phone() or "",
            billing_address=order.extract_billing_address() or {},
            delivery_addresses=[delivery] if delivery else [],
        )

    def apply_to(self, customer) -> list[str]:
        """Copy differing values onto the customer. Returns changed field names."""
        changed = []
        for name in self.FIELDS:
            value = getattr(self, name)
            if getattr(customer, name) != value:
                setattr(customer, name, value)
                changed.append(name)

        if "phone" in changed:
            customer.normalized_phone = normalize_phone(customer.phone) or ""
            changed.append("normalized_phone")
        return changed


@dataclass(frozen=True)
class MergeResult:
    snapshot: CustomerSnapshot
    changed: bool
    changed_fields: tuple[str, ...] = ()


def should_replace(existing, incoming) -> bool:
    """
    Scalar rule: a non-empty incoming value wins when the existing value is
    empty, shorter or different. Empty incoming never wins.
    """
    if _is_empty(incoming):
        return False
    if _is_empty(existing):
        return True
    existing, incoming = str(existing).strip(), str(incoming).strip()
    return len(incoming) > len(existing) or incoming != existing


def merge_address(existing: dict, incoming: dict) -> dict:
    """
    Key-by-key address merge.

    An incoming key overwrites only an empty existing value, or a shorter
    string.
    """
    merged = dict(existing or {})
    for key, value in (incoming or {}).items():
        if _is_empty(value):
            continue
        current = merged.get(key)
        if _is_empty(current):
            merged[key] = value
        elif isinstance(current, str) and isinstance(value, str) and len(value) > len(current):
            merged[key] = value
    return merged


def merge_addresses(existing: list, incoming: list) -> list:
    """Append incoming addresses that are not already present."""
    merged = [a for a in existing or [] if isinstance(a, dict)]
    for address in incoming or []:
        if isinstance(address, dict) and address and address not in merged:
            merged.append(dict(address))
    return merged


def merge(existing: CustomerSnapshot, incoming: CustomerSnapshot) -> MergeResult:
    """
    Merge incoming data into an existing snapshot.

    Email is only filled in when the customer has none: it is the identity
    key and is never rewritten by order data.
    """
    values = {}

    if should_replace(existing.full_name, incoming.full_name):
        values["full_name"] = incoming.full_name.strip()
    if should_replace(existing.phone, incoming.phone):
        values["phone"] = incoming.phone.strip()
    if _is_empty(existing.email) and not _is_empty(incoming.email):
        values["email"] = normalize_email(incoming.email)

    billing = merge_address(existing.billing_address, incoming.billing_address)
    if billing != existing.billing_address:
        values["billing_address"] = billing

    delivery = merge_addresses(existing.delivery_addresses, incoming.delivery_addresses)
    if delivery != existing.delivery_addresses:
        values["delivery_addresses"] = delivery

    if not values:
        return MergeResult(snapshot=existing, changed=False)

    return MergeResult(
        snapshot=replace(existing, **values),
        changed=True,
        changed_fields=tuple(values),
    )
