"""Shop model."""

from django.db import models
from django.utils.translation import gettext_lazy as _


class Shop(models.Model):
    """
    Storefront that orders and customers come from.

    Shops can share one customer base: when ``customer_link_shop`` is set,
    identities for this shop's orders are preferably resolved (and created)
    under the linked shop.
    """

    code = models.SlugField(_("code"), max_length=50, unique=True)
    name = models.CharField(_("name"), max_length=200)
    provider = models.CharField(
        _("provider"),
        max_length=50,
        blank=True,
        db_index=True,
        help_text=_("Platform the shop runs on (shoptet, woocommerce, ...)"),
    )
    customer_link_shop = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="linked_shops",
        verbose_name=_("shares customers with"),
    )

    # Audit
    created_at = models.DateTimeField(_("created at"), auto_now_add=True)
    updated_at = models.DateTimeField(_("updated at"), auto_now=True)

    class Meta:
        verbose_name = _("shop")
        verbose_name_plural = _("shops")
        ordering = ["name"]

    def __str__(self):
        return self.name

    @property
    def preferred_shop_id(self) -> int:
        """Shop whose customers this shop's orders should resolve to."""
        return self.customer_link_shop_id or self.pk
