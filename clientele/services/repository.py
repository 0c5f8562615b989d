"""Customer lookup and race-safe creation."""

import logging
from typing import Callable

from django.db import transaction
from django.db.models import Case, IntegerField, Value, When

from clientele.locks import retry_on_contention
from clientele.models import Customer, IdentityClaim

logger = logging.getLogger(__name__)


class CustomerRepository:
    """
    Storage access for identity resolution.

    Lookups prefer customers of the preferred shop and fall back to the
    oldest matching customer of any other shop.

    Usage:
        repo = CustomerRepository()
        customer = repo.find_by_email("jane@example.com", preferred_shop_id=1)
        customer, created = repo.find_or_create_with_lock(
            "email:jane@example.com",
            email="jane@example.com",
            phone=None,
            preferred_shop_id=1,
            build=lambda: Customer(email="jane@example.com", shop_id=1),
        )
    """

    def __init__(self, retry_attempts: int | None = None):
        self.retry_attempts = retry_attempts

    @staticmethod
    def _prefer_shop(qs, preferred_shop_id: int | None):
        if preferred_shop_id is None:
            return qs.order_by("created_at", "pk")
        return qs.annotate(
            shop_preference=Case(
                When(shop_id=preferred_shop_id, then=Value(0)),
                default=Value(1),
                output_field=IntegerField(),
            )
        ).order_by("shop_preference", "created_at", "pk")

    def find_by_email(self, email: str | None, preferred_shop_id: int | None = None) -> Customer | None:
        if not email:
            return None
        qs = Customer.objects.select_related("shop").filter(email__iexact=email)
        return self._prefer_shop(qs, preferred_shop_id).first()

    def find_by_phone(self, phone: str | None, preferred_shop_id: int | None = None) -> Customer | None:
        if not phone:
            return None
        qs = Customer.objects.select_related("shop").filter(normalized_phone=phone)
        return self._prefer_shop(qs, preferred_shop_id).first()

    def find(
        self,
        email: str | None,
        phone: str | None,
        preferred_shop_id: int | None = None,
    ) -> Customer | None:
        """Email match first, then phone."""
        return self.find_by_email(email, preferred_shop_id) or self.find_by_phone(
            phone, preferred_shop_id
        )

    def get(self, guid: str | None) -> Customer | None:
        if not guid:
            return None
        return Customer.objects.select_related("shop").filter(guid=guid).first()

    def get_for_update(self, guid: str) -> Customer | None:
        """
        Customer with an exclusive row lock.

        MUST be called inside transaction.atomic().
        """
        return Customer.objects.select_for_update().select_related("shop").filter(guid=guid).first()

    def guid_taken(self, guid: str) -> bool:
        return Customer.objects.filter(guid=guid).exists()

    def find_or_create_with_lock(
        self,
        key: str,
        *,
        email: str | None,
        phone: str | None,
        preferred_shop_id: int | None,
        build: Callable[[], Customer | None],
        on_create: Callable[[Customer], None] | None = None,
    ) -> tuple[Customer | None, bool]:
        """
        Atomic find-or-create for one identity key.

        The new customer and its IdentityClaim are written in one
        transaction. A concurrent creator for the same key hits the unique
        constraint on the claim, its transaction rolls back and the retry
        finds the winner.

        ``build`` returns an unsaved Customer, or None when the creation
        policy refuses to create one. ``on_create`` runs inside the same
        transaction, after the customer is saved.

        Returns:
            (customer, created); customer is None when ``build`` refused.

        Raises:
            ClienteleError: LOCK_CONTENTION when retries are exhausted
        """

        def attempt():
            with transaction.atomic():
                existing = self.find(email, phone, preferred_shop_id)
                if existing is not None:
                    return existing, False

                claim = IdentityClaim.objects.select_related("customer").filter(key=key).first()
                if claim is not None:
                    return claim.customer, False

                customer = build()
                if customer is None:
                    return None, False

                customer.save()
                IdentityClaim.objects.create(key=key, customer=customer)
                if on_create is not None:
                    on_create(customer)

                logger.debug("Clientele: created customer %s for %s", customer.guid, key)
                return customer, True

        return retry_on_contention(attempt, attempts=self.retry_attempts, label=key)
