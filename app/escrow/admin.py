"""
Escrow admin configuration.

Orders are read-mostly here: every state change goes through
SettlementService (the escrow actions endpoint), never through the
admin form. Events are fully read-only.
"""

from django.contrib import admin

from escrow.models import EscrowEvent, EscrowOrder

__all__ = [
    "EscrowEventAdmin",
    "EscrowOrderAdmin",
]


def format_naira(kobo: int | None) -> str:
    if kobo is None:
        return "-"
    return f"₦{kobo / 100:,.2f}"


class EscrowEventInline(admin.TabularInline):
    """Inline display of an order's audit trail."""

    model = EscrowEvent
    extra = 0
    fields = ["event_type", "event_key", "payload", "created_at"]
    readonly_fields = fields
    can_delete = False
    ordering = ["created_at"]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(EscrowOrder)
class EscrowOrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for EscrowOrder.

    Provides visibility into escrow orders and their four state axes.
    """

    list_display = [
        "id",
        "buyer",
        "seller",
        "total_display",
        "status",
        "delivery_status",
        "dispute_status",
        "settlement_status",
        "created_at",
    ]
    list_filter = [
        "status",
        "delivery_status",
        "dispute_status",
        "settlement_status",
        "created_at",
    ]
    search_fields = [
        "id",
        "paystack_reference",
        "buyer__email",
        "seller__email",
    ]
    readonly_fields = [field.name for field in EscrowOrder._meta.fields]
    ordering = ["-created_at"]
    inlines = [EscrowEventInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "buyer", "seller", "product", "product_snapshot"),
            },
        ),
        (
            "Amounts",
            {
                "fields": (
                    "subtotal_kobo",
                    "fee_kobo",
                    "total_kobo",
                    "currency",
                    "buyer_tier",
                ),
            },
        ),
        (
            "Status",
            {
                "fields": (
                    "status",
                    "delivery_status",
                    "dispute_status",
                    "settlement_status",
                ),
            },
        ),
        (
            "Paystack",
            {
                "fields": ("paystack_reference", "authorization_url", "access_code"),
            },
        ),
        (
            "Dispute",
            {
                "fields": (
                    "dispute_reason",
                    "dispute_opened_at",
                    "resolution",
                    "dispute_resolution_note",
                    "dispute_resolved_at",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Settlement",
            {
                "fields": ("settlement_admin", "settlement_note"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": (
                    "created_at",
                    "updated_at",
                    "paid_at",
                    "confirmed_at",
                    "released_at",
                    "refunded_at",
                    "expired_at",
                    "version",
                ),
            },
        ),
    )

    def total_display(self, obj: EscrowOrder) -> str:
        """Display the total formatted as naira."""
        return format_naira(obj.total_kobo)

    total_display.short_description = "Total"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for escrow orders (audit trail)."""
        return False


@admin.register(EscrowEvent)
class EscrowEventAdmin(admin.ModelAdmin):
    """Read-only view of the escrow audit trail."""

    list_display = ["id", "order", "event_type", "event_key", "created_at"]
    list_filter = ["event_type", "created_at"]
    search_fields = ["id", "order__id", "event_key"]
    readonly_fields = ["id", "order", "event_type", "event_key", "payload", "created_at"]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
