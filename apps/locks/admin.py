"""Admin configuration for org locks."""

from django.contrib import admin
from django_object_actions import DjangoObjectActions
from django_object_actions import action as object_action

from apps.locks.models import OrgLock
from apps.locks.services import unlock_org


@admin.register(OrgLock)
class OrgLockAdmin(DjangoObjectActions, admin.ModelAdmin):
    """Admin for OrgLock model."""

    list_display = ["organization_id", "locked_until", "expired", "created_at"]
    search_fields = ["organization_id"]
    readonly_fields = ["organization_id", "locked_until", "created_at"]
    actions = ["release_selected"]
    change_actions = ["release"]

    @admin.display(boolean=True, description="Expired")
    def expired(self, obj):
        return obj.is_expired()

    @admin.action(description="Release selected locks")
    def release_selected(self, request, queryset):
        count = 0
        for lock in queryset:
            unlock_org(lock.organization_id)
            count += 1
        self.message_user(request, f"{count} lock(s) released.")

    @object_action(label="Release Lock", description="Delete this lock immediately")
    def release(self, request, obj):
        unlock_org(obj.organization_id)
        self.message_user(request, f"Lock on '{obj.organization_id}' released.")

    def has_add_permission(self, request):
        return False
