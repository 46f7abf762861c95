"""Admin configuration for assets app using django-unfold."""

from unfold.admin import ModelAdmin
from unfold.contrib.filters.admin import (
    ChoicesDropdownFilter,
    RelatedDropdownFilter,
)
from unfold.decorators import display

from django.contrib import admin

from .models import Asset, AuditLog, Sector, TransferRequest
from .services.state import TransferStatus, status_q

STATUS_LABELS = {
    TransferStatus.PENDING: "info",
    TransferStatus.APPROVED: "warning",
    TransferStatus.REJECTED: "danger",
    TransferStatus.COMPLETED: "success",
}


@admin.register(Sector)
class SectorAdmin(ModelAdmin):
    list_display = [
        "name",
        "description",
        "display_active",
        "display_asset_count",
    ]
    list_filter = ["is_active"]
    search_fields = ["name", "description"]

    @display(description="Active", boolean=True)
    def display_active(self, obj):
        return obj.is_active

    @display(description="Assets")
    def display_asset_count(self, obj):
        return obj.assets.count()


@admin.register(Asset)
class AssetAdmin(ModelAdmin):
    list_display = [
        "display_header",
        "display_status",
        "sector",
        "display_custodian",
        "updated_at",
    ]
    list_filter = [
        ("status", ChoicesDropdownFilter),
        ("sector", RelatedDropdownFilter),
    ]
    list_filter_submit = True
    search_fields = ["name", "serial_number", "description"]
    readonly_fields = ["created_by", "created_at", "updated_at"]
    autocomplete_fields = ["sector", "custodian"]

    fieldsets = (
        (
            None,
            {
                "fields": (
                    "name",
                    "description",
                    "serial_number",
                    "status",
                )
            },
        ),
        (
            "Custody",
            {
                "fields": ("sector", "custodian"),
                "classes": ["tab"],
            },
        ),
        (
            "Tracking",
            {
                "fields": ("created_by", "created_at", "updated_at"),
                "classes": ["tab"],
            },
        ),
    )

    @display(description="Asset", header=True, ordering="name")
    def display_header(self, obj):
        return obj.name, obj.serial_number

    @display(
        description="Status",
        label={
            Asset.STATUS_ACTIVE: "success",
            Asset.STATUS_MAINTENANCE: "info",
            Asset.STATUS_RETIRED: "warning",
        },
    )
    def display_status(self, obj):
        return obj.status

    @display(description="Custodian", empty_value="-")
    def display_custodian(self, obj):
        if obj.custodian:
            return obj.custodian.get_display_name()
        return None

    def get_readonly_fields(self, request, obj=None):
        readonly = list(super().get_readonly_fields(request, obj))
        if obj is not None:
            # Custody only moves by effectuating a transfer
            readonly.extend(["sector", "custodian"])
        return readonly

    def save_model(self, request, obj, form, change):
        if not change:
            obj.created_by = request.user
        super().save_model(request, obj, form, change)


class TransferStatusFilter(admin.SimpleListFilter):
    """Filter on the derived transfer status."""

    title = "status"
    parameter_name = "status"

    def lookups(self, request, model_admin):
        return TransferStatus.choices

    def queryset(self, request, queryset):
        if self.value() in TransferStatus.values:
            return queryset.filter(status_q(self.value()))
        return queryset


@admin.register(TransferRequest)
class TransferRequestAdmin(ModelAdmin):
    """Transfers are created and resolved through the workflow only."""

    list_display = [
        "display_header",
        "display_status",
        "origin_sector",
        "destination_sector",
        "requester",
        "approver",
        "created_at",
    ]
    list_filter = [
        TransferStatusFilter,
        ("origin_sector", RelatedDropdownFilter),
        ("destination_sector", RelatedDropdownFilter),
    ]
    list_filter_submit = True
    search_fields = ["asset__name", "asset__serial_number", "reason"]
    date_hierarchy = "created_at"
    list_select_related = [
        "asset",
        "origin_sector",
        "destination_sector",
        "requester",
        "approver",
    ]
    readonly_fields = [
        "asset",
        "origin_sector",
        "origin_custodian",
        "destination_sector",
        "destination_custodian",
        "reason",
        "requester",
        "approver",
        "approval_notes",
        "rejection_reason",
        "approved_at",
        "effectuated",
        "effectuated_at",
        "created_at",
        "updated_at",
        "display_status",
    ]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(description="Transfer", header=True, ordering="pk")
    def display_header(self, obj):
        return f"#{obj.pk}", str(obj.asset)

    @display(description="Status", label=STATUS_LABELS)
    def display_status(self, obj):
        return obj.status


@admin.register(AuditLog)
class AuditLogAdmin(ModelAdmin):
    list_display = [
        "display_action",
        "entity",
        "entity_id",
        "actor",
        "created_at",
    ]
    list_filter = [("action", ChoicesDropdownFilter), "entity"]
    search_fields = ["entity", "entity_id"]
    date_hierarchy = "created_at"
    readonly_fields = [
        "action",
        "entity",
        "entity_id",
        "actor",
        "payload",
        "created_at",
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(
        description="Action",
        label={
            "create_transfer": "info",
            "approve_transfer": "success",
            "reject_transfer": "danger",
            "effectuate_transfer": "warning",
        },
    )
    def display_action(self, obj):
        return obj.action
