"""Customer model.

Data architecture:
    Customer.email / Customer.normalized_phone
        Lookup keys for identity resolution. email is stored lower-cased,
        normalized_phone is recomputed from phone on every save().

    Customer.tags
        Display list: canonical group label, VIP label, auto-tag labels and
        free-form custom tags, in that order. Rebuilt by GroupClassifier.

    Customer.auto_tags
        Structured rule output ({key, label, color, source_rule_id,
        source_rule_name}). Kept apart from tags so rules can be
        re-evaluated without losing tags typed by staff.

    IdentityClaim
        One row per identity key that created this customer. Serializes
        concurrent creation for the same email/phone.
"""

import uuid as uuid_lib

from django.db import models
from django.utils.translation import gettext_lazy as _

from clientele.utils import LenientJSONEncoder


class CustomerGroup(models.TextChoices):
    REGISTERED = "registered", _("Registered")
    GUEST = "guest", _("Guest")
    COMPANY = "company", _("Company")


def _new_guid() -> str:
    return str(uuid_lib.uuid4())


class Customer(models.Model):
    """
    Canonical customer identity.

    ``guid`` never changes once assigned. Orders, accounts and metrics refer
    to the customer through it.
    """

    TRACKED_FIELDS = (
        "email",
        "phone",
        "normalized_phone",
        "full_name",
        "billing_address",
        "delivery_addresses",
        "customer_group",
        "is_vip",
        "tags",
        "auto_tags",
        "data",
    )

    guid = models.CharField(
        _("guid"),
        max_length=64,
        unique=True,
        default=_new_guid,
        editable=False,
    )
    shop = models.ForeignKey(
        "clientele.Shop",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="customers",
        verbose_name=_("shop"),
    )

    # Contact
    email = models.EmailField(_("email"), blank=True, db_index=True)
    phone = models.CharField(_("phone"), max_length=50, blank=True)
    normalized_phone = models.CharField(
        _("normalized phone"),
        max_length=50,
        blank=True,
        db_index=True,
    )
    full_name = models.CharField(_("full name"), max_length=255, blank=True)

    # Addresses
    billing_address = models.JSONField(
        _("billing address"), default=dict, blank=True, encoder=LenientJSONEncoder
    )
    delivery_addresses = models.JSONField(
        _("delivery addresses"), default=list, blank=True, encoder=LenientJSONEncoder
    )

    # Classification
    customer_group = models.CharField(
        _("group"),
        max_length=20,
        choices=CustomerGroup.choices,
        default=CustomerGroup.REGISTERED,
        db_index=True,
    )
    is_vip = models.BooleanField(_("VIP"), default=False, db_index=True)
    tags = models.JSONField(_("tags"), default=list, blank=True, encoder=LenientJSONEncoder)
    auto_tags = models.JSONField(
        _("automatic tags"), default=list, blank=True, encoder=LenientJSONEncoder
    )

    # Extension point (source-specific fields, vat_id, ...)
    data = models.JSONField(_("data"), default=dict, blank=True, encoder=LenientJSONEncoder)
    notes = models.TextField(_("notes"), blank=True)

    # Audit
    created_at = models.DateTimeField(_("created at"), auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(_("updated at"), auto_now=True)

    class Meta:
        verbose_name = _("customer")
        verbose_name_plural = _("customers")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["shop", "email"], name="clientele_cust_shop_email_idx"),
            models.Index(
                fields=["shop", "normalized_phone"], name="clientele_cust_shop_phone_idx"
            ),
        ]

    def __str__(self):
        return f"{self.full_name or self.email or self.phone} ({self.guid})"

    def tracked_state(self) -> tuple:
        """Values compared to decide whether a resync needs a write."""
        return tuple(getattr(self, name) for name in self.TRACKED_FIELDS)

    def save(self, *args, **kwargs):
        from clientele.utils import normalize_email, normalize_phone

        self.email = normalize_email(self.email) or ""
        self.phone = (self.phone or "").strip()
        self.normalized_phone = normalize_phone(self.phone) or ""

        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "phone" in update_fields:
            kwargs["update_fields"] = set(update_fields) | {"normalized_phone"}

        super().save(*args, **kwargs)
