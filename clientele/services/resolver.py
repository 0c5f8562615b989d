"""Identity resolution: which customer does an order belong to."""

import logging
from dataclasses import dataclass, field
from functools import cached_property
from typing import Callable, Iterable

from clientele.conf import ClassificationConfig
from clientele.models import Customer, Shop
from clientele.protocols import OrderRecord
from clientele.services.merger import CustomerSnapshot
from clientele.services.repository import CustomerRepository
from clientele.utils import normalize_email, normalize_phone

logger = logging.getLogger(__name__)


@dataclass
class OrderGroup:
    """Orders that must resolve to one identity."""

    key: str  # "email:<normalized>" or "phone:<normalized>"
    orders: list[OrderRecord] = field(default_factory=list)
    normalized_email: str | None = None
    normalized_phone: str | None = None

    @property
    def representative(self) -> OrderRecord:
        return self.orders[0]

    @property
    def refs(self) -> list[str]:
        return [order.ref for order in self.orders]


@dataclass
class Resolution:
    customer: Customer
    created: bool
    group: OrderGroup
    preferred_shop_id: int | None = None


class EntityResolver:
    """
    Finds or creates one customer per order group.

    One resolver serves one batch: it memoizes resolved identities by
    (normalized email or phone, preferred shop), so the first order of a
    new customer creates it and the following orders in the batch reuse it
    without querying again. The creation policy is read once, on first use.

    Usage:
        resolver = EntityResolver(config)
        groups, skipped = resolver.group_orders(orders)
        for group in groups:
            resolution = resolver.resolve(group)
    """

    def __init__(
        self,
        config: ClassificationConfig | None = None,
        repository: CustomerRepository | None = None,
    ):
        self.config = config or ClassificationConfig()
        self.repository = repository or CustomerRepository()
        self._by_email: dict[tuple[str, int | None], Customer] = {}
        self._by_phone: dict[tuple[str, int | None], Customer] = {}
        self._shops: dict[int, Shop | None] = {}

    # ======================================================================
    # Policy
    # ======================================================================

    @cached_property
    def create_guests(self) -> bool:
        return self.config.auto_create_guests

    def may_create(self, order: OrderRecord) -> bool:
        return order.is_registered or self.create_guests

    # ======================================================================
    # Grouping
    # ======================================================================

    @staticmethod
    def group_orders(orders: Iterable[OrderRecord]) -> tuple[list[OrderGroup], int]:
        """
        Partition orders by identity key.

        Returns:
            (groups in first-seen order, number of orders without any
            email or phone)
        """
        groups: dict[str, OrderGroup] = {}
        skipped = 0

        for order in orders:
            email = normalize_email(order.extract_email())
            phone = normalize_phone(order.extract_phone())
            if not email and not phone:
                skipped += 1
                continue

            key = f"email:{email}" if email else f"phone:{phone}"
            group = groups.get(key)
            if group is None:
                group = groups[key] = OrderGroup(key=key)

            group.orders.append(order)
            if not group.normalized_email and email:
                group.normalized_email = email
            if not group.normalized_phone and phone:
                group.normalized_phone = phone

        return list(groups.values()), skipped

    # ======================================================================
    # Shops
    # ======================================================================

    def preferred_shop_id(self, order: OrderRecord) -> int | None:
        """Linked shop of the order's shop, else the order's shop."""
        if order.preferred_shop_id:
            return order.preferred_shop_id
        if not order.shop_id:
            return None

        if order.shop_id not in self._shops:
            self._shops[order.shop_id] = Shop.objects.filter(pk=order.shop_id).first()
        shop = self._shops[order.shop_id]
        return shop.preferred_shop_id if shop else order.shop_id

    # ======================================================================
    # Memo
    # ======================================================================

    def remember(
        self,
        customer: Customer,
        email: str | None,
        phone: str | None,
        shop_id: int | None,
    ) -> None:
        if email:
            self._by_email[(email, shop_id)] = customer
        if phone:
            self._by_phone[(phone, shop_id)] = customer

    def recall(self, email: str | None, phone: str | None, shop_id: int | None) -> Customer | None:
        if email and (email, shop_id) in self._by_email:
            return self._by_email[(email, shop_id)]
        if phone and (phone, shop_id) in self._by_phone:
            return self._by_phone[(phone, shop_id)]
        return None

    # ======================================================================
    # Resolution
    # ======================================================================

    def build_customer(self, group: OrderGroup, preferred_shop_id: int | None) -> Customer:
        """Unsaved customer made from the group's representative order."""
        order = group.representative
        snapshot = CustomerSnapshot.from_order(order)

        customer = Customer(
            shop_id=preferred_shop_id,
            full_name=snapshot.full_name,
            email=snapshot.email or group.normalized_email or "",
            phone=snapshot.phone or group.normalized_phone or "",
            billing_address=snapshot.billing_address,
            delivery_addresses=snapshot.delivery_addresses,
            data={
                "created_from_order_ref": order.ref,
                "created_from_order_code": order.code,
                "source": "orders",
            },
        )
        # Registered storefront customers keep their account guid.
        if order.is_registered and not self.repository.guid_taken(order.account_reference):
            customer.guid = order.account_reference
        return customer

    def resolve(
        self,
        group: OrderGroup,
        prepare: Callable[[Customer, OrderGroup], None] | None = None,
        on_create: Callable[[Customer], None] | None = None,
    ) -> Resolution | None:
        """
        Find or create the customer for a group.

        ``prepare`` may adjust a new customer before it is saved (group,
        tags). ``on_create`` runs in the creating transaction.

        Returns None when no customer exists and policy forbids creating one.
        """
        order = group.representative
        shop_id = self.preferred_shop_id(order)

        customer = self.recall(group.normalized_email, group.normalized_phone, shop_id)
        if customer is not None:
            logger.debug("Clientele: memo hit for %s", group.key)
            return Resolution(customer=customer, created=False, group=group, preferred_shop_id=shop_id)

        def build():
            if not self.may_create(order):
                return None
            customer = self.build_customer(group, shop_id)
            if prepare is not None:
                prepare(customer, group)
            return customer

        customer, created = self.repository.find_or_create_with_lock(
            group.key,
            email=group.normalized_email,
            phone=group.normalized_phone,
            preferred_shop_id=shop_id,
            build=build,
            on_create=on_create,
        )
        if customer is None:
            logger.warning(
                "Clientele: no customer for %s, guest creation is disabled", group.key
            )
            return None

        self.remember(
            customer,
            normalize_email(customer.email) or group.normalized_email,
            customer.normalized_phone or group.normalized_phone,
            shop_id,
        )
        return Resolution(customer=customer, created=created, group=group, preferred_shop_id=shop_id)
