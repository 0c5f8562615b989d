"""Clientele admin.

Tag rules edited here go through the same condition validation as the rule
store, and every save or delete refreshes cached rule sets.
"""

from django.contrib import admin
from django.utils.html import format_html, format_html_join
from django.utils.text import slugify

from clientele.models import Customer, CustomerAccount, Shop, TagRule
from clientele.services.classification import GroupClassifier
from clientele.services.rules import notify_rules_changed, sanitize_conditions


# ===========================================
# Shop Admin
# ===========================================


@admin.register(Shop)
class ShopAdmin(admin.ModelAdmin):
    list_display = ["code", "name", "provider", "customer_link_shop", "customer_count"]
    list_filter = ["provider"]
    search_fields = ["code", "name"]
    raw_id_fields = ["customer_link_shop"]

    def customer_count(self, obj):
        return obj.customers.count()

    customer_count.short_description = "Customers"


# ===========================================
# Inline Classes (must be defined before CustomerAdmin)
# ===========================================


class CustomerAccountInline(admin.TabularInline):
    model = CustomerAccount
    extra = 0
    fields = ["account_guid", "email", "phone", "is_main", "is_authorized", "is_email_verified"]
    readonly_fields = ["account_guid"]


# ===========================================
# Customer Admin
# ===========================================


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = [
        "guid",
        "full_name",
        "email",
        "phone",
        "customer_group",
        "is_vip",
        "shop",
    ]
    list_filter = ["customer_group", "is_vip", "shop"]
    search_fields = ["guid", "full_name", "email", "normalized_phone"]
    readonly_fields = [
        "guid",
        "normalized_phone",
        "auto_tags",
        "tag_badges",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["shop"]
    inlines = [CustomerAccountInline]

    fieldsets = [
        ("Identification", {"fields": ["guid", "shop", "full_name"]}),
        ("Contact", {"fields": ["email", "phone", "normalized_phone"]}),
        ("Addresses", {"fields": ["billing_address", "delivery_addresses"]}),
        (
            "Segmentation",
            {"fields": ["customer_group", "is_vip", "tag_badges", "tags", "auto_tags", "notes"]},
        ),
        (
            "System",
            {
                "fields": ["data", "created_at", "updated_at"],
                "classes": ["collapse"],
            },
        ),
    ]

    def tag_badges(self, obj):
        if obj.pk is None:
            return "-"
        badges = GroupClassifier().badges(obj)
        return format_html_join(
            " ",
            '<span title="{}" style="color: {};">{}</span>',
            ((badge.type, badge.color or "inherit", badge.label) for badge in badges),
        )

    tag_badges.short_description = "Badges"


# ===========================================
# TagRule Admin
# ===========================================


@admin.register(TagRule)
class TagRuleAdmin(admin.ModelAdmin):
    list_display = [
        "label",
        "tag_key",
        "priority",
        "match_type",
        "vip_badge",
        "condition_count",
        "is_active",
    ]
    list_filter = ["is_active", "match_type", "set_vip"]
    search_fields = ["tag_key", "label", "description"]
    list_editable = ["is_active"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-priority", "label"]

    fieldsets = [
        (None, {"fields": ["id", "tag_key", "label", "color", "description"]}),
        ("Matching", {"fields": ["priority", "match_type", "conditions", "set_vip", "is_active"]}),
        ("Metadata", {"fields": ["metadata"], "classes": ["collapse"]}),
        ("Timestamps", {"fields": ["created_at", "updated_at"], "classes": ["collapse"]}),
    ]

    def vip_badge(self, obj):
        if obj.set_vip:
            return format_html('<span style="color: goldenrod;">VIP</span>')
        return ""

    vip_badge.short_description = "VIP"

    def condition_count(self, obj):
        return len(obj.conditions or [])

    condition_count.short_description = "Conditions"

    def save_model(self, request, obj, form, change):
        obj.tag_key = slugify(obj.tag_key).lower()
        obj.conditions = sanitize_conditions(obj.conditions)
        super().save_model(request, obj, form, change)
        notify_rules_changed()

    def delete_model(self, request, obj):
        super().delete_model(request, obj)
        notify_rules_changed()

    def delete_queryset(self, request, queryset):
        super().delete_queryset(request, queryset)
        notify_rules_changed()
