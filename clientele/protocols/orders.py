"""Order protocols for cross-app communication."""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


def _first_text(*candidates) -> str | None:
    for candidate in candidates:
        if candidate is None:
            continue
        text = str(candidate).strip()
        if text:
            return text
    return None


@dataclass(frozen=True)
class OrderRecord:
    """
    Order as delivered by the order source.

    Only the contact-related part of an order is needed here. Fields that
    the storefront did not send stay None/empty.
    """

    ref: str
    shop_id: int | None = None
    preferred_shop_id: int | None = None  # linked shop hint, falls back to shop_id
    customer_guid: str | None = None  # identity already attached to the order
    account_reference: str | None = None  # storefront owner account (registered)
    email: str | None = None
    phone: str | None = None
    name: str | None = None
    billing_address: dict[str, Any] = field(default_factory=dict)
    delivery_address: dict[str, Any] = field(default_factory=dict)
    source_group: str | None = None  # storefront group name, e.g. "B2B"
    code: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_registered(self) -> bool:
        return bool(self.account_reference)

    def extract_email(self) -> str | None:
        billing = self.billing_address or {}
        delivery = self.delivery_address or {}
        return _first_text(self.email, billing.get("email"), delivery.get("email"))

    def extract_phone(self) -> str | None:
        billing = self.billing_address or {}
        delivery = self.delivery_address or {}
        return _first_text(self.phone, billing.get("phone"), delivery.get("phone"))

    def extract_full_name(self) -> str | None:
        billing = self.billing_address or {}
        delivery = self.delivery_address or {}

        name = _first_text(self.name, billing.get("fullName"), delivery.get("fullName"))
        if name:
            return name

        first = _first_text(billing.get("firstName"), delivery.get("firstName")) or ""
        last = _first_text(billing.get("lastName"), delivery.get("lastName")) or ""
        composed = f"{first} {last}".strip()
        return composed or None

    def extract_billing_address(self) -> dict[str, Any] | None:
        return dict(self.billing_address) if self.billing_address else None

    def extract_delivery_address(self) -> dict[str, Any] | None:
        return dict(self.delivery_address) if self.delivery_address else None


@runtime_checkable
class OrderLinkBackend(Protocol):
    """
    Protocol for writing resolved identities back to the order source.

    Configuration in settings.py:
        CLIENTELE = {
            "ORDER_LINK_BACKEND": "myshop.adapters.OrderLinks",
        }
    """

    def attach(
        self,
        order_refs: list[str],
        customer_guid: str,
        email: str | None,
        phone: str | None,
    ) -> None:
        """
        Point the given orders at the resolved customer.

        Args:
            order_refs: Orders belonging to the same identity
            customer_guid: Resolved customer guid
            email: Email to store on the orders
            phone: Phone to store on the orders
        """
        ...
