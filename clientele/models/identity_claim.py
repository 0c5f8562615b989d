"""
IdentityClaim model - atomic find-or-create for customer identities.

A claim row is inserted in the same transaction that creates a Customer.
The unique constraint on ``key`` makes the second of two concurrent
creators fail with IntegrityError; it then retries and finds the winner.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class IdentityClaim(models.Model):
    """Identity key ("email:..." / "phone:...") owned by one customer."""

    key = models.CharField(_("key"), max_length=320, unique=True)
    customer = models.ForeignKey(
        "clientele.Customer",
        on_delete=models.CASCADE,
        related_name="identity_claims",
        verbose_name=_("customer"),
    )
    created_at = models.DateTimeField(_("created at"), auto_now_add=True)

    class Meta:
        db_table = "clientele_identity_claim"
        verbose_name = _("identity claim")
        verbose_name_plural = _("identity claims")

    def __str__(self):
        return f"{self.key} -> {self.customer_id}"
