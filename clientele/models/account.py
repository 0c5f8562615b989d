"""CustomerAccount model."""

import uuid

from django.db import models
from django.utils.translation import gettext_lazy as _

from clientele.utils import LenientJSONEncoder


def _new_account_guid() -> str:
    return str(uuid.uuid4())


class CustomerAccount(models.Model):
    """
    Storefront login/contact account linked to a customer.

    A customer can own several accounts (one per storefront or per email).
    Matching is by lower-cased email.
    """

    customer = models.ForeignKey(
        "clientele.Customer",
        on_delete=models.CASCADE,
        related_name="accounts",
        verbose_name=_("customer"),
    )
    account_guid = models.CharField(
        _("account guid"),
        max_length=64,
        unique=True,
        default=_new_account_guid,
    )
    email = models.EmailField(_("email"), blank=True, db_index=True)
    phone = models.CharField(_("phone"), max_length=50, blank=True)

    # Flags
    is_main = models.BooleanField(_("main account"), default=False)
    is_authorized = models.BooleanField(_("authorized"), default=False)
    is_email_verified = models.BooleanField(_("email verified"), default=False)

    data = models.JSONField(_("data"), default=dict, blank=True, encoder=LenientJSONEncoder)

    # Timestamps
    created_at = models.DateTimeField(_("created at"), auto_now_add=True)
    updated_at = models.DateTimeField(_("updated at"), auto_now=True)

    class Meta:
        verbose_name = _("customer account")
        verbose_name_plural = _("customer accounts")
        ordering = ["-is_main", "created_at"]
        indexes = [
            models.Index(fields=["customer", "email"], name="clientele_acct_cust_email_idx"),
        ]

    def __str__(self):
        main = " [main]" if self.is_main else ""
        return f"{self.email or self.account_guid}{main}"
