"""Admin configuration for donation runs."""

from django.contrib import admin
from django.utils.html import format_html
from django.utils.safestring import mark_safe
from django_object_actions import DjangoObjectActions
from django_object_actions import action as object_action

from apps.distribution.models import STATUS_ORDER, DonationRun, RunStatus


@admin.register(DonationRun)
class DonationRunAdmin(DjangoObjectActions, admin.ModelAdmin):
    """Admin for DonationRun model."""

    list_display = [
        "correlation_id",
        "organization_id",
        "status",
        "top_level_dependencies",
        "total_dependencies",
        "created_at",
        "has_error",
    ]
    list_filter = ["status", "crawled"]
    search_fields = ["correlation_id", "organization_id"]
    readonly_fields = [
        "correlation_id",
        "organization_id",
        "status",
        "request",
        "groups",
        "crawled",
        "top_level_dependencies",
        "total_dependencies",
        "last_error_type",
        "last_error_message",
        "created_at",
        "updated_at",
        "scraped_at",
        "weighed_at",
        "distributed_at",
        "run_flow",
    ]
    change_actions = ["requeue_stage"]

    @admin.display(boolean=True, description="Error")
    def has_error(self, obj):
        return bool(obj.last_error_type)

    @admin.display(description="Flow")
    def run_flow(self, obj):
        reached = STATUS_ORDER.index(obj.status)
        parts = []
        for index, status in enumerate(STATUS_ORDER):
            color = "#2e7d32" if index <= reached else "#9e9e9e"
            parts.append(format_html('<span style="color: {}">{}</span>', color, status.label))
        return mark_safe(" → ".join(parts))

    @object_action(label="Requeue Stage", description="Send the next stage's message again")
    def requeue_stage(self, request, obj):
        from django.conf import settings

        from apps.distribution import queue

        next_task = {
            RunStatus.PENDING: settings.DONATIONS_SCRAPE_TASK,
            RunStatus.SCRAPED: settings.DONATIONS_WEIGH_TASK,
            RunStatus.WEIGHED: settings.DONATIONS_DISTRIBUTE_TASK,
        }.get(obj.status)
        if next_task is None:
            self.message_user(request, f"Run '{obj.correlation_id}' is already distributed.")
            return
        queue.send(next_task, {"correlationId": obj.correlation_id})
        self.message_user(request, f"Queued {next_task} for '{obj.correlation_id}'.")
