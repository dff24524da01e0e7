import uuid

import django.core.serializers.json
import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="EscrowOrder",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "product_snapshot",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Title, price and location captured at creation",
                    ),
                ),
                (
                    "subtotal_kobo",
                    models.PositiveBigIntegerField(
                        help_text="Item price (principal) in kobo"
                    ),
                ),
                (
                    "fee_kobo",
                    models.PositiveBigIntegerField(help_text="Escrow fee in kobo"),
                ),
                (
                    "total_kobo",
                    models.PositiveBigIntegerField(
                        help_text="Amount payable: subtotal + fee"
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="NGN",
                        help_text="ISO 4217 currency code",
                        max_length=3,
                    ),
                ),
                (
                    "buyer_tier",
                    models.CharField(
                        default="free",
                        help_text="Tier the fee was priced with",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("initialized", "Initialized"),
                            ("paid", "Paid"),
                            ("funded", "Funded"),
                            ("released_to_seller", "Released to Seller"),
                            ("refund_to_buyer", "Refunded to Buyer"),
                            ("expired", "Expired"),
                        ],
                        db_index=True,
                        default="initialized",
                        help_text="Payment lifecycle status (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "delivery_status",
                    django_fsm.FSMField(
                        choices=[("pending", "Pending"), ("confirmed", "Confirmed")],
                        default="pending",
                        help_text="Buyer delivery confirmation",
                        max_length=50,
                    ),
                ),
                (
                    "dispute_status",
                    django_fsm.FSMField(
                        choices=[
                            ("none", "None"),
                            ("open", "Open"),
                            ("resolved", "Resolved"),
                        ],
                        db_index=True,
                        default="none",
                        help_text="Dispute lifecycle",
                        max_length=50,
                    ),
                ),
                (
                    "settlement_status",
                    models.CharField(
                        choices=[
                            ("holding", "Holding"),
                            ("released", "Released"),
                            ("refunded", "Refunded"),
                        ],
                        default="holding",
                        help_text="Where the held funds went",
                        max_length=20,
                    ),
                ),
                (
                    "paystack_reference",
                    models.CharField(
                        help_text="Paystack transaction reference",
                        max_length=100,
                        unique=True,
                    ),
                ),
                (
                    "authorization_url",
                    models.URLField(
                        blank=True,
                        default="",
                        help_text="Hosted checkout URL returned by initialize",
                        max_length=500,
                    ),
                ),
                (
                    "access_code",
                    models.CharField(blank=True, default="", max_length=100),
                ),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("dispute_reason", models.TextField(blank=True, default="")),
                ("dispute_opened_at", models.DateTimeField(blank=True, null=True)),
                ("dispute_resolution_note", models.TextField(blank=True, default="")),
                ("dispute_resolved_at", models.DateTimeField(blank=True, null=True)),
                (
                    "resolution",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("release_to_seller", "Release to Seller"),
                            ("refund_buyer", "Refund Buyer"),
                        ],
                        default="",
                        max_length=30,
                    ),
                ),
                ("settlement_note", models.TextField(blank=True, default="")),
                ("released_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("expired_at", models.DateTimeField(blank=True, null=True)),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Incremented by each guarded update",
                    ),
                ),
                (
                    "buyer",
                    models.ForeignKey(
                        help_text="User paying into escrow",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="escrow_purchases",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="escrow_orders",
                        to="catalog.product",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        help_text="User receiving funds on release",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="escrow_sales",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "settlement_admin",
                    models.ForeignKey(
                        blank=True,
                        help_text="Admin who released or refunded the funds",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="escrow_settlements",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Escrow Order",
                "verbose_name_plural": "Escrow Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="escrow_escr_status_5d1c1e_idx",
                    ),
                    models.Index(
                        fields=["buyer", "status"],
                        name="escrow_escr_buyer_i_8a2f4b_idx",
                    ),
                    models.Index(
                        fields=["seller", "status"],
                        name="escrow_escr_seller__c47e90_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("buyer", models.F("seller")), _negated=True
                        ),
                        name="escrow_order_buyer_not_seller",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("subtotal_kobo__gt", 0)),
                        name="escrow_order_subtotal_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "total_kobo",
                                models.F("subtotal_kobo") + models.F("fee_kobo"),
                            )
                        ),
                        name="escrow_order_total_is_subtotal_plus_fee",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("released_at__isnull", True),
                            ("refunded_at__isnull", True),
                            _connector="OR",
                        ),
                        name="escrow_order_single_settlement",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="EscrowEvent",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("order_created", "Order Created"),
                            ("paystack.initialize", "Paystack Initialize"),
                            (
                                "paystack.initialize_failed",
                                "Paystack Initialize Failed",
                            ),
                            ("paystack.webhook.success", "Paystack Webhook Success"),
                            (
                                "paystack.verified.success",
                                "Paystack Verified Success",
                            ),
                            (
                                "paystack.reconciled.success",
                                "Paystack Reconciled Success",
                            ),
                            ("paystack.amount_mismatch", "Paystack Amount Mismatch"),
                            ("delivery_confirmed", "Delivery Confirmed"),
                            ("dispute_opened", "Dispute Opened"),
                            ("dispute_resolved", "Dispute Resolved"),
                            ("funds_released_to_seller", "Funds Released to Seller"),
                        ],
                        db_index=True,
                        max_length=64,
                    ),
                ),
                (
                    "payload",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        encoder=django.core.serializers.json.DjangoJSONEncoder,
                    ),
                ),
                (
                    "event_key",
                    models.CharField(
                        blank=True,
                        help_text="Idempotency key; duplicates are absorbed, not stored",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="events",
                        to="escrow.escroworder",
                    ),
                ),
            ],
            options={
                "verbose_name": "Escrow Event",
                "verbose_name_plural": "Escrow Events",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["order", "event_type"],
                        name="escrow_escr_order_i_3b9d27_idx",
                    )
                ],
            },
        ),
    ]
