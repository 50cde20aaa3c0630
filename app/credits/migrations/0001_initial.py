import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="CreditAccount",
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
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                    ),
                ),
                (
                    "balance",
                    models.BigIntegerField(
                        default=0, help_text="Spendable credits (never negative)"
                    ),
                ),
                (
                    "last_sequence",
                    models.PositiveBigIntegerField(
                        default=0,
                        help_text="Sequence number of the most recent ledger row for this account",
                    ),
                ),
                (
                    "tier",
                    models.CharField(
                        choices=[
                            ("free", "Free"),
                            ("starter", "Starter"),
                            ("pro", "Pro"),
                            ("business", "Business"),
                        ],
                        db_index=True,
                        default="free",
                        help_text="Subscription tier determining the monthly allowance",
                        max_length=20,
                    ),
                ),
                (
                    "tier_status",
                    django_fsm.FSMField(
                        choices=[
                            ("active", "Active"),
                            ("past_due", "Past Due"),
                            ("canceled", "Canceled"),
                            ("inactive", "Inactive"),
                        ],
                        db_index=True,
                        default="active",
                        help_text="Billing status of the subscription (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "period_end",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the current billing period's allowance renews",
                        null=True,
                    ),
                ),
                (
                    "is_admin",
                    models.BooleanField(
                        default=False,
                        help_text="Admins are never blocked by balance checks",
                    ),
                ),
                (
                    "billing_customer_ref",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Customer ID (cus_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "subscription_ref",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Subscription ID (sub_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        help_text="User that owns this credit account",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="credit_account",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Credit Account",
                "verbose_name_plural": "Credit Accounts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["tier", "tier_status"],
                        name="credits_cre_tier_6b1f0e_idx",
                    )
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("balance__gte", 0)),
                        name="credit_account_balance_non_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="CreditTransaction",
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
                (
                    "sequence",
                    models.PositiveBigIntegerField(
                        help_text="Per-account gapless position in the ledger"
                    ),
                ),
                (
                    "amount",
                    models.BigIntegerField(help_text="Signed change to the balance"),
                ),
                (
                    "balance_after",
                    models.BigIntegerField(
                        help_text="Balance snapshot after this row was applied"
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("deduction", "Deduction"),
                            ("admin_usage", "Admin Usage"),
                            ("bonus", "Bonus"),
                            ("refund", "Refund"),
                            ("purchase", "Purchase"),
                            ("subscription_credit", "Subscription Credit"),
                        ],
                        help_text="Category of this ledger row",
                        max_length=32,
                    ),
                ),
                (
                    "action_tag",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Paid action that produced this row, if any",
                        max_length=64,
                    ),
                ),
                (
                    "note",
                    models.TextField(
                        blank=True, default="", help_text="Human-readable description"
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Arbitrary JSON context for auditing",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this row was recorded",
                    ),
                ),
                (
                    "account",
                    models.ForeignKey(
                        help_text="Account this ledger row belongs to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="credits.creditaccount",
                    ),
                ),
            ],
            options={
                "verbose_name": "Credit Transaction",
                "verbose_name_plural": "Credit Transactions",
                "ordering": ["-created_at", "-sequence"],
                "indexes": [
                    models.Index(
                        fields=["account", "created_at"],
                        name="credits_cre_account_2d9c4a_idx",
                    ),
                    models.Index(
                        fields=["kind", "created_at"],
                        name="credits_cre_kind_8e3b7d_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("account", "sequence"),
                        name="credit_transaction_unique_sequence",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("balance_after__gte", 0)),
                        name="credit_transaction_balance_after_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("amount__lte", 0), ("kind", "deduction")),
                            models.Q(("amount", 0), ("kind", "admin_usage")),
                            models.Q(
                                ("amount__gt", 0),
                                ("kind__in", ["bonus", "refund", "purchase"]),
                            ),
                            ("kind", "subscription_credit"),
                            _connector="OR",
                        ),
                        name="credit_transaction_amount_matches_kind",
                    ),
                ],
            },
        ),
    ]
