"""
Order-driven customer synchronization.

    orders -> EntityResolver (find-or-create)
           -> RecordMerger (enrich)
           -> GroupClassifier (group + tags)
           -> RuleEngine (auto-tags + VIP)
           -> saved Customer, orders linked back to it

Every update of an existing customer happens inside transaction.atomic()
with the customer row locked (select_for_update), retried a bounded number
of times on lock/unique conflicts.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Iterable

from django.db import transaction
from django.utils.module_loading import import_string

from clientele.conf import GUEST, ClassificationConfig, clientele_settings
from clientele.exceptions import ClienteleError
from clientele.locks import advisory_lock, retry_on_contention
from clientele.models import Customer, CustomerAccount, CustomerMetric
from clientele.protocols import OrderLinkBackend, OrderRecord
from clientele.services.classification import ClassificationContext, GroupClassifier
from clientele.services.merger import CustomerSnapshot, merge
from clientele.services.repository import CustomerRepository
from clientele.services.resolver import EntityResolver, OrderGroup
from clientele.services.rule_engine import RuleEngine
from clientele.signals import customer_created, customer_updated
from clientele.utils import get_path, normalize_email, normalize_label

logger = logging.getLogger(__name__)

RECOMPUTE_LOCK = "recompute-all"
SOURCE_GROUP_PATH = "customer.customerGroup.name"


@dataclass
class SyncStats:
    """Counters reported by a sync run."""

    orders_attached: int = 0
    customers_created: int = 0
    customers_updated: int = 0
    accounts_created: int = 0
    orders_skipped_no_contact: int = 0
    errors: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


def load_order_link_backend() -> OrderLinkBackend | None:
    """Configured OrderLinkBackend, if any."""
    backend_path = clientele_settings.ORDER_LINK_BACKEND
    if backend_path:
        backend_class = import_string(backend_path)
        return backend_class()
    return None


def source_group(order: OrderRecord) -> str | None:
    return order.source_group or get_path(order.data or {}, SOURCE_GROUP_PATH)


class SyncCoordinator:
    """
    Keeps customers in step with their orders.

    Usage:
        coordinator = SyncCoordinator()
        stats = coordinator.process(orders)      # batch backfill
        coordinator.attach_order(order)          # new order
        coordinator.sync_order(order)            # order changed
        coordinator.recompute_all()              # after rule changes
    """

    def __init__(
        self,
        config: ClassificationConfig | None = None,
        classifier: GroupClassifier | None = None,
        rule_engine: RuleEngine | None = None,
        repository: CustomerRepository | None = None,
        order_links: OrderLinkBackend | None = None,
    ):
        self.config = config or ClassificationConfig()
        self.classifier = classifier or GroupClassifier(self.config)
        self.rule_engine = rule_engine or RuleEngine(classifier=self.classifier)
        self.repository = repository or CustomerRepository()
        self.order_links = order_links if order_links is not None else load_order_link_backend()

    def refresh(self) -> None:
        """Drop cached configuration and rules."""
        self.config.refresh()
        self.rule_engine.refresh()

    def new_resolver(self) -> EntityResolver:
        return EntityResolver(self.config, self.repository)

    # ======================================================================
    # Per-customer pipeline
    # ======================================================================

    def context_for(
        self, customer: Customer, order: OrderRecord, stored_group: str | None = None
    ) -> ClassificationContext:
        """Without a storefront group on the order, the stored group keeps its own alias."""
        return ClassificationContext.for_customer(
            customer,
            source_group=source_group(order) or stored_group,
            is_guest=not order.is_registered,
        )

    def prepare_new(self, customer: Customer, group: OrderGroup) -> None:
        """Classify and tag a customer before its first save."""
        self.classifier.apply(customer, self.context_for(customer, group.representative))
        self.rule_engine.sync(customer, persist=False)

    def apply_order(self, customer: Customer, order: OrderRecord) -> list[str]:
        """
        Merge the order into the customer, then classify and tag it.

        Does not save. Returns the names of tracked fields that changed.
        """
        before = dict(zip(Customer.TRACKED_FIELDS, customer.tracked_state()))

        result = merge(CustomerSnapshot.from_customer(customer), CustomerSnapshot.from_order(order))
        if result.changed:
            result.snapshot.apply_to(customer)

        self.classifier.apply(customer, self.context_for(customer, order, customer.customer_group))
        self.rule_engine.sync(customer, persist=False)

        after = dict(zip(Customer.TRACKED_FIELDS, customer.tracked_state()))
        return [name for name in Customer.TRACKED_FIELDS if before[name] != after[name]]

    def ensure_account(self, customer: Customer, normalized_email: str | None, phone: str | None) -> bool:
        """
        Make sure the customer has an account for this email.

        Returns True when an account was created.
        """
        if not normalized_email:
            return False
        if customer.accounts.filter(email__iexact=normalized_email).exists():
            return False

        CustomerAccount.objects.create(
            customer=customer,
            email=normalized_email,
            phone=phone or "",
            is_main=not customer.accounts.exists(),
            data={"source": "orders"},
        )
        logger.debug("Clientele: account %s created for %s", normalized_email, customer.guid)
        return True

    def ensure_account_for_order(self, customer: Customer, order: OrderRecord) -> bool:
        """Account upkeep: registered orders always, guests only when enabled."""
        if not (order.is_registered or self.config.auto_register_guests):
            return False
        email = normalize_email(customer.email) or normalize_email(order.extract_email())
        return self.ensure_account(customer, email, customer.phone)

    def update_existing(self, guid: str, order: OrderRecord) -> tuple[Customer, list[str], bool]:
        """
        Locked read-modify-write of a known customer.

        Returns:
            (fresh customer, changed fields, account created)

        Raises:
            ClienteleError: CUSTOMER_NOT_FOUND, LOCK_CONTENTION
        """

        def attempt():
            with transaction.atomic():
                customer = self.repository.get_for_update(guid)
                if customer is None:
                    raise ClienteleError("CUSTOMER_NOT_FOUND", guid=guid)

                changed = self.apply_order(customer, order)
                if changed:
                    customer.save()
                account_created = self.ensure_account_for_order(customer, order)
                return customer, changed, account_created

        customer, changed, account_created = retry_on_contention(attempt, label=f"customer:{guid}")
        if changed:
            logger.debug("Clientele: customer %s updated (%s)", guid, ", ".join(changed))
            customer_updated.send(sender=Customer, customer=customer, changes=changed)
        return customer, changed, account_created

    # ======================================================================
    # Batch
    # ======================================================================

    def process(self, orders: Iterable[OrderRecord]) -> SyncStats:
        """
        Resolve a batch of orders to customers.

        A group that fails (lock contention, vanished customer) is logged
        and recorded in stats.errors; the remaining groups still run.
        """
        return self._run(orders, raise_errors=False)

    def _run(self, orders: Iterable[OrderRecord], raise_errors: bool) -> SyncStats:
        stats = SyncStats()
        resolver = self.new_resolver()

        groups, skipped = resolver.group_orders(orders)
        stats.orders_skipped_no_contact += skipped

        for group in groups:
            try:
                self._process_group(group, resolver, stats)
            except ClienteleError as exc:
                if raise_errors:
                    raise
                logger.exception("Clientele: order group %s failed", group.key)
                stats.errors.append({"key": group.key, "orders": group.refs, **exc.as_dict()})

        logger.info(
            "Clientele: sync done, %d orders attached, %d created, %d updated, %d skipped",
            stats.orders_attached,
            stats.customers_created,
            stats.customers_updated,
            stats.orders_skipped_no_contact,
        )
        return stats

    def _process_group(self, group: OrderGroup, resolver: EntityResolver, stats: SyncStats) -> None:
        order = group.representative
        accounts: list[str] = []

        def on_create(customer: Customer) -> None:
            if self.ensure_account_for_order(customer, order):
                accounts.append(customer.guid)

        resolution = resolver.resolve(group, prepare=self.prepare_new, on_create=on_create)
        if resolution is None:
            return

        customer = resolution.customer
        if resolution.created:
            stats.customers_created += 1
            stats.accounts_created += len(accounts)
            customer_created.send(sender=Customer, customer=customer, order_refs=group.refs)
        else:
            customer, changed, account_created = self.update_existing(customer.guid, order)
            if changed:
                stats.customers_updated += 1
            if account_created:
                stats.accounts_created += 1
            resolver.remember(
                customer,
                normalize_email(customer.email) or group.normalized_email,
                customer.normalized_phone or group.normalized_phone,
                resolution.preferred_shop_id,
            )

        self.link_orders(group, customer)
        stats.orders_attached += len(group.orders)

    def link_orders(self, group: OrderGroup, customer: Customer) -> None:
        if self.order_links is None:
            return
        order = group.representative
        self.order_links.attach(
            group.refs,
            customer.guid,
            customer.email or order.extract_email(),
            customer.phone or order.extract_phone(),
        )

    # ======================================================================
    # Single order
    # ======================================================================

    def attach_order(self, order: OrderRecord) -> SyncStats:
        """
        Attach a new order to its customer.

        No-op when the order already points at an existing customer.

        Raises:
            ClienteleError: LOCK_CONTENTION, CUSTOMER_NOT_FOUND
        """
        if order.customer_guid and self.repository.get(order.customer_guid) is not None:
            return SyncStats()
        return self._run([order], raise_errors=True)

    def sync_order(self, order: OrderRecord) -> SyncStats:
        """
        Re-sync the customer an order is attached to.

        Merges, classifies and re-tags the known customer; writes only when
        something changed. Orders without a known customer are attached.

        Raises:
            ClienteleError: LOCK_CONTENTION, CUSTOMER_NOT_FOUND
        """
        if not order.customer_guid or self.repository.get(order.customer_guid) is None:
            return self.attach_order(order)

        stats = SyncStats()
        _, changed, account_created = self.update_existing(order.customer_guid, order)
        stats.customers_updated = int(bool(changed))
        stats.accounts_created = int(account_created)
        return stats

    # ======================================================================
    # Full population
    # ======================================================================

    def _chunks(self, chunk_size: int):
        """Customers in primary key order, one locked chunk at a time."""
        last_pk = 0
        while True:
            with transaction.atomic():
                chunk = list(
                    Customer.objects.select_for_update(of=("self",))
                    .select_related("shop")
                    .filter(pk__gt=last_pk)
                    .order_by("pk")[:chunk_size]
                )
                if not chunk:
                    return
                yield chunk
            last_pk = chunk[-1].pk

    def recompute_all(self, chunk_size: int | None = None) -> int | None:
        """
        Re-evaluate tag rules for every customer.

        Only one run at a time: when another run holds the lock this one is
        skipped and None is returned. Otherwise returns the number of
        customers whose tags or VIP flag changed.
        """
        chunk_size = chunk_size or clientele_settings.REBUILD_CHUNK_SIZE

        with advisory_lock(RECOMPUTE_LOCK) as acquired:
            if not acquired:
                logger.info("Clientele: tag rebuild already running, skipping")
                return None

            self.refresh()
            processed = updated = 0

            for chunk in self._chunks(chunk_size):
                metrics = {
                    metric.customer_id: metric
                    for metric in CustomerMetric.objects.filter(
                        customer_id__in=[customer.guid for customer in chunk]
                    )
                }
                for customer in chunk:
                    before = customer.tracked_state()
                    self.rule_engine.sync(
                        customer, metrics=metrics.get(customer.guid), load_metrics=False
                    )
                    processed += 1
                    if customer.tracked_state() != before:
                        updated += 1

            logger.info(
                "Clientele: tag rebuild done, %d customers processed, %d updated",
                processed,
                updated,
            )
            return updated

    def guest_signatures(self) -> set[str]:
        signatures = {GUEST, normalize_label(self.classifier.label_for(GUEST))}
        signatures.update(self.classifier.aliases.get(GUEST, []))
        signatures.discard(None)
        return signatures

    def normalize_groups(self, dry_run: bool = False, chunk_size: int | None = None) -> tuple[int, int]:
        """
        Re-classify every customer with the current configuration.

        The stored group is used as source group, so customers keep it
        unless the configured aliases no longer recognize it.

        Returns:
            (processed, updated); with dry_run nothing is saved.
        """
        chunk_size = chunk_size or clientele_settings.REBUILD_CHUNK_SIZE
        self.config.refresh()
        guests = self.guest_signatures()
        processed = updated = 0

        for chunk in self._chunks(chunk_size):
            for customer in chunk:
                processed += 1
                before = customer.tracked_state()

                is_guest = normalize_label(customer.customer_group) in guests or any(
                    normalize_label(tag) in guests for tag in customer.tags or []
                )
                data = customer.data if isinstance(customer.data, dict) else {}
                context = ClassificationContext.for_customer(
                    customer,
                    source_group=get_path(data, "customerGroup.name") or customer.customer_group,
                    is_guest=is_guest,
                )
                self.classifier.apply(customer, context)

                if customer.tracked_state() == before:
                    continue
                updated += 1
                if not dry_run:
                    customer.save(update_fields=["customer_group", "tags", "auto_tags", "updated_at"])

        logger.info(
            "Clientele: groups normalized, %d processed, %d updated%s",
            processed,
            updated,
            " (dry run)" if dry_run else "",
        )
        return processed, updated
