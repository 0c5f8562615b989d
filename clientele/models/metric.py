"""CustomerMetric model (externally calculated)."""

from django.db import models
from django.utils.translation import gettext_lazy as _


class CustomerMetric(models.Model):
    """
    Order metrics for a customer.

    Written by the metrics pipeline, read by the rule engine. Keyed by the
    customer's guid so it can be filled before the customer row is loaded.
    """

    customer = models.OneToOneField(
        "clientele.Customer",
        on_delete=models.CASCADE,
        to_field="guid",
        db_column="customer_guid",
        primary_key=True,
        related_name="metrics",
        verbose_name=_("customer"),
    )

    orders_count = models.IntegerField(_("orders count"), null=True, default=0)
    total_spent = models.DecimalField(
        _("total spent"), max_digits=14, decimal_places=2, null=True, default=0
    )
    total_spent_base = models.DecimalField(
        _("total spent (base currency)"),
        max_digits=14,
        decimal_places=2,
        null=True,
        default=0,
    )
    average_order_value = models.DecimalField(
        _("average order value"), max_digits=14, decimal_places=2, null=True, default=0
    )
    average_order_value_base = models.DecimalField(
        _("average order value (base currency)"),
        max_digits=14,
        decimal_places=2,
        null=True,
        default=0,
    )
    currency = models.CharField(_("currency"), max_length=3, blank=True)

    first_order_at = models.DateTimeField(_("first order at"), null=True, blank=True)
    last_order_at = models.DateTimeField(_("last order at"), null=True, blank=True)

    calculated_at = models.DateTimeField(_("calculated at"), auto_now=True)

    class Meta:
        verbose_name = _("customer metric")
        verbose_name_plural = _("customer metrics")

    def __str__(self):
        return f"Metrics: {self.customer_id}"
