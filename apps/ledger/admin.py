"""Admin configuration for ledger models."""

from django.contrib import admin
from django.db.models import Count, Sum

from apps.ledger.models import (
    ExclusionList,
    Organization,
    OssUsageSnapshot,
    Package,
    PackageDonation,
)


class OssUsageSnapshotInline(admin.TabularInline):
    """Inline display of usage snapshots within an organization."""

    model = OssUsageSnapshot
    extra = 0
    readonly_fields = ["timestamp", "top_level_dependencies", "total_dependencies"]
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "id",
        "billing_mode",
        "total_donated",
        "remaining_donation",
        "created_at",
    ]
    list_filter = ["billing_mode"]
    search_fields = ["name", "id", "installation_id"]
    readonly_fields = ["id", "total_donated", "created_at", "updated_at"]
    inlines = [OssUsageSnapshotInline]


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ["name", "registry", "language", "donation_count", "donated_total"]
    list_filter = ["registry", "language"]
    search_fields = ["name", "id"]
    readonly_fields = ["id", "created_at"]

    def get_queryset(self, request):
        return (
            super()
            .get_queryset(request)
            .annotate(_donation_count=Count("donations"), _donated_total=Sum("donations__amount"))
        )

    @admin.display(description="Donations", ordering="_donation_count")
    def donation_count(self, obj):
        return obj._donation_count

    @admin.display(description="Total (millicents)", ordering="_donated_total")
    def donated_total(self, obj):
        return round(obj._donated_total or 0)


@admin.register(PackageDonation)
class PackageDonationAdmin(admin.ModelAdmin):
    list_display = ["id", "package", "organization_id", "amount", "timestamp"]
    search_fields = ["organization_id", "package__name", "description"]
    list_select_related = ["package"]
    readonly_fields = [
        "id",
        "package",
        "organization_id",
        "amount",
        "timestamp",
        "description",
    ]

    def has_change_permission(self, request, obj=None):
        # Ledger entries are append-only.
        return False


@admin.register(ExclusionList)
class ExclusionListAdmin(admin.ModelAdmin):
    list_display = ["language", "registry", "excluded_count"]

    @admin.display(description="Excluded")
    def excluded_count(self, obj):
        return len(obj.names or [])
