"""TagRule model - user-authored classification rules."""

import uuid

from django.db import models
from django.utils.translation import gettext_lazy as _

from clientele.utils import LenientJSONEncoder


class MatchType(models.TextChoices):
    ALL = "all", _("All conditions")
    ANY = "any", _("Any condition")


class TagRule(models.Model):
    """
    Rule that tags customers whose metrics/attributes match its conditions.

    conditions is a list of {field, operator, value, type} dicts, as
    accepted by clientele.rules.values.parse_condition(). Rules are
    evaluated by descending priority; the first matching rule for a
    tag_key decides that tag's label and color.

    Write through clientele.services.rules so rule caches are refreshed.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tag_key = models.SlugField(_("tag key"), max_length=64, unique=True)
    label = models.CharField(_("label"), max_length=255)
    color = models.CharField(_("color"), max_length=32, default="gray")
    description = models.TextField(_("description"), blank=True, null=True)

    priority = models.IntegerField(
        _("priority"),
        default=0,
        help_text=_("Higher = evaluated first"),
    )
    is_active = models.BooleanField(_("active"), default=True, db_index=True)
    match_type = models.CharField(
        _("match type"),
        max_length=3,
        choices=MatchType.choices,
        default=MatchType.ALL,
    )
    set_vip = models.BooleanField(
        _("sets VIP"),
        default=False,
        help_text=_("Customers matching this rule become VIP"),
    )

    conditions = models.JSONField(
        _("conditions"), default=list, blank=True, encoder=LenientJSONEncoder
    )
    metadata = models.JSONField(
        _("metadata"), default=dict, blank=True, encoder=LenientJSONEncoder
    )

    # Audit
    created_at = models.DateTimeField(_("created at"), auto_now_add=True)
    updated_at = models.DateTimeField(_("updated at"), auto_now=True)

    class Meta:
        db_table = "clientele_tag_rule"
        verbose_name = _("tag rule")
        verbose_name_plural = _("tag rules")
        ordering = ["-priority", "label"]

    def __str__(self):
        vip = " [VIP]" if self.set_vip else ""
        return f"{self.label} ({self.tag_key}){vip}"
