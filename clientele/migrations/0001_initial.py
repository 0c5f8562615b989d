# Initial schema for shops, customers, accounts, metrics, tag rules and identity claims

import uuid

import django.db.models.deletion
from django.db import migrations, models

import clientele.models.account
import clientele.models.customer
import clientele.utils


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Shop",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("code", models.SlugField(unique=True, verbose_name="code")),
                ("name", models.CharField(max_length=200, verbose_name="name")),
                (
                    "provider",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Platform the shop runs on (shoptet, woocommerce, ...)",
                        max_length=50,
                        verbose_name="provider",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
                (
                    "customer_link_shop",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="linked_shops",
                        to="clientele.shop",
                        verbose_name="shares customers with",
                    ),
                ),
            ],
            options={
                "verbose_name": "shop",
                "verbose_name_plural": "shops",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Customer",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "guid",
                    models.CharField(
                        default=clientele.models.customer._new_guid,
                        editable=False,
                        max_length=64,
                        unique=True,
                        verbose_name="guid",
                    ),
                ),
                (
                    "email",
                    models.EmailField(
                        blank=True, db_index=True, max_length=254, verbose_name="email"
                    ),
                ),
                ("phone", models.CharField(blank=True, max_length=50, verbose_name="phone")),
                (
                    "normalized_phone",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        max_length=50,
                        verbose_name="normalized phone",
                    ),
                ),
                (
                    "full_name",
                    models.CharField(blank=True, max_length=255, verbose_name="full name"),
                ),
                (
                    "billing_address",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        encoder=clientele.utils.LenientJSONEncoder,
                        verbose_name="billing address",
                    ),
                ),
                (
                    "delivery_addresses",
                    models.JSONField(
                        blank=True,
                        default=list,
                        encoder=clientele.utils.LenientJSONEncoder,
                        verbose_name="delivery addresses",
                    ),
                ),
                (
                    "customer_group",
                    models.CharField(
                        choices=[
                            ("registered", "Registered"),
                            ("guest", "Guest"),
                            ("company", "Company"),
                        ],
                        db_index=True,
                        default="registered",
                        max_length=20,
                        verbose_name="group",
                    ),
                ),
                ("is_vip", models.BooleanField(db_index=True, default=False, verbose_name="VIP")),
                (
                    "tags",
                    models.JSONField(
                        blank=True,
                        default=list,
                        encoder=clientele.utils.LenientJSONEncoder,
                        verbose_name="tags",
                    ),
                ),
                (
                    "auto_tags",
                    models.JSONField(
                        blank=True,
                        default=list,
                        encoder=clientele.utils.LenientJSONEncoder,
                        verbose_name="automatic tags",
                    ),
                ),
                (
                    "data",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        encoder=clientele.utils.LenientJSONEncoder,
                        verbose_name="data",
                    ),
                ),
                ("notes", models.TextField(blank=True, verbose_name="notes")),
                (
                    "created_at",
                    models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="created at"),
                ),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
                (
                    "shop",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="customers",
                        to="clientele.shop",
                        verbose_name="shop",
                    ),
                ),
            ],
            options={
                "verbose_name": "customer",
                "verbose_name_plural": "customers",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["shop", "email"], name="clientele_cust_shop_email_idx"),
                    models.Index(
                        fields=["shop", "normalized_phone"], name="clientele_cust_shop_phone_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="TagRule",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("tag_key", models.SlugField(max_length=64, unique=True, verbose_name="tag key")),
                ("label", models.CharField(max_length=255, verbose_name="label")),
                ("color", models.CharField(default="gray", max_length=32, verbose_name="color")),
                (
                    "description",
                    models.TextField(blank=True, null=True, verbose_name="description"),
                ),
                (
                    "priority",
                    models.IntegerField(
                        default=0,
                        help_text="Higher = evaluated first",
                        verbose_name="priority",
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(db_index=True, default=True, verbose_name="active"),
                ),
                (
                    "match_type",
                    models.CharField(
                        choices=[("all", "All conditions"), ("any", "Any condition")],
                        default="all",
                        max_length=3,
                        verbose_name="match type",
                    ),
                ),
                (
                    "set_vip",
                    models.BooleanField(
                        default=False,
                        help_text="Customers matching this rule become VIP",
                        verbose_name="sets VIP",
                    ),
                ),
                (
                    "conditions",
                    models.JSONField(
                        blank=True,
                        default=list,
                        encoder=clientele.utils.LenientJSONEncoder,
                        verbose_name="conditions",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        encoder=clientele.utils.LenientJSONEncoder,
                        verbose_name="metadata",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
            ],
            options={
                "verbose_name": "tag rule",
                "verbose_name_plural": "tag rules",
                "db_table": "clientele_tag_rule",
                "ordering": ["-priority", "label"],
            },
        ),
        migrations.CreateModel(
            name="IdentityClaim",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("key", models.CharField(max_length=320, unique=True, verbose_name="key")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="created at")),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="identity_claims",
                        to="clientele.customer",
                        verbose_name="customer",
                    ),
                ),
            ],
            options={
                "verbose_name": "identity claim",
                "verbose_name_plural": "identity claims",
                "db_table": "clientele_identity_claim",
            },
        ),
        migrations.CreateModel(
            name="CustomerMetric",
            fields=[
                (
                    "customer",
                    models.OneToOneField(
                        db_column="customer_guid",
                        on_delete=django.db.models.deletion.CASCADE,
                        primary_key=True,
                        related_name="metrics",
                        serialize=False,
                        to="clientele.customer",
                        to_field="guid",
                        verbose_name="customer",
                    ),
                ),
                (
                    "orders_count",
                    models.IntegerField(default=0, null=True, verbose_name="orders count"),
                ),
                (
                    "total_spent",
                    models.DecimalField(
                        decimal_places=2,
                        default=0,
                        max_digits=14,
                        null=True,
                        verbose_name="total spent",
                    ),
                ),
                (
                    "total_spent_base",
                    models.DecimalField(
                        decimal_places=2,
                        default=0,
                        max_digits=14,
                        null=True,
                        verbose_name="total spent (base currency)",
                    ),
                ),
                (
                    "average_order_value",
                    models.DecimalField(
                        decimal_places=2,
                        default=0,
                        max_digits=14,
                        null=True,
                        verbose_name="average order value",
                    ),
                ),
                (
                    "average_order_value_base",
                    models.DecimalField(
                        decimal_places=2,
                        default=0,
                        max_digits=14,
                        null=True,
                        verbose_name="average order value (base currency)",
                    ),
                ),
                ("currency", models.CharField(blank=True, max_length=3, verbose_name="currency")),
                (
                    "first_order_at",
                    models.DateTimeField(blank=True, null=True, verbose_name="first order at"),
                ),
                (
                    "last_order_at",
                    models.DateTimeField(blank=True, null=True, verbose_name="last order at"),
                ),
                ("calculated_at", models.DateTimeField(auto_now=True, verbose_name="calculated at")),
            ],
            options={
                "verbose_name": "customer metric",
                "verbose_name_plural": "customer metrics",
            },
        ),
        migrations.CreateModel(
            name="CustomerAccount",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "account_guid",
                    models.CharField(
                        default=clientele.models.account._new_account_guid,
                        max_length=64,
                        unique=True,
                        verbose_name="account guid",
                    ),
                ),
                (
                    "email",
                    models.EmailField(
                        blank=True, db_index=True, max_length=254, verbose_name="email"
                    ),
                ),
                ("phone", models.CharField(blank=True, max_length=50, verbose_name="phone")),
                ("is_main", models.BooleanField(default=False, verbose_name="main account")),
                ("is_authorized", models.BooleanField(default=False, verbose_name="authorized")),
                (
                    "is_email_verified",
                    models.BooleanField(default=False, verbose_name="email verified"),
                ),
                (
                    "data",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        encoder=clientele.utils.LenientJSONEncoder,
                        verbose_name="data",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="accounts",
                        to="clientele.customer",
                        verbose_name="customer",
                    ),
                ),
            ],
            options={
                "verbose_name": "customer account",
                "verbose_name_plural": "customer accounts",
                "ordering": ["-is_main", "created_at"],
                "indexes": [
                    models.Index(
                        fields=["customer", "email"], name="clientele_acct_cust_email_idx"
                    ),
                ],
            },
        ),
    ]
