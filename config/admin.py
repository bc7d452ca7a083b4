"""Custom admin site for the donation distribution console."""

import time
from datetime import timedelta

from django.contrib.admin import AdminSite
from django.db.models import Count, Sum
from django.utils import timezone


class DonationsAdminSite(AdminSite):
    site_header = "Org Donations"
    site_title = "Org Donations"
    index_title = "Dashboard"
    index_template = "admin/dashboard.html"

    def index(self, request, extra_context=None):
        extra_context = extra_context or {}
        extra_context.update(self._get_dashboard_context())
        return super().index(request, extra_context=extra_context)

    def _get_dashboard_context(self):
        from apps.distribution.models import DonationRun, RunStatus
        from apps.ledger.models import PackageDonation
        from apps.locks.models import OrgLock

        now = timezone.now()
        last_24h = now - timedelta(hours=24)
        # Ledger timestamps are epoch milliseconds.
        last_7d_ms = int((time.time() - 7 * 24 * 3600) * 1000)

        # --- Split Runs (24h) ---
        status_counts = dict(
            DonationRun.objects.filter(created_at__gte=last_24h)
            .values_list("status")
            .annotate(count=Count("id"))
            .values_list("status", "count")
        )
        run_health = {
            "total": sum(status_counts.values()),
            "distributed": status_counts.get(RunStatus.DISTRIBUTED, 0),
            "in_flight": sum(
                status_counts.get(s, 0)
                for s in (RunStatus.PENDING, RunStatus.SCRAPED, RunStatus.WEIGHED)
            ),
        }

        # --- Runs With Errors (last 5) ---
        failing_runs = list(
            DonationRun.objects.exclude(last_error_type="")
            .exclude(status=RunStatus.DISTRIBUTED)
            .order_by("-updated_at")
            .only(
                "id",
                "correlation_id",
                "organization_id",
                "status",
                "last_error_type",
                "last_error_message",
            )[:5]
        )

        # --- Locks ---
        held_locks = OrgLock.objects.filter(locked_until__gt=int(time.time())).count()

        # --- 7-Day Aggregations ---
        top_packages = list(
            PackageDonation.objects.filter(timestamp__gte=last_7d_ms)
            .values("package__name", "package__registry")
            .annotate(total=Sum("amount"), entries=Count("id"))
            .order_by("-total")[:10]
        )

        return {
            "run_health": run_health,
            "failing_runs": failing_runs,
            "held_locks": held_locks,
            "top_packages": top_packages,
        }
