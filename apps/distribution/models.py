"""
Models for the split distribution pipeline.

A DonationRun is the durable checkpoint of one correlation id. Its status
only ever moves forward: PENDING → SCRAPED → WEIGHED → DISTRIBUTED.
"""

from django.db import models
from django.utils import timezone


class RunStatus(models.TextChoices):
    """Split pipeline state machine."""

    PENDING = "pending", "Pending"
    SCRAPED = "scraped", "Scraped"
    WEIGHED = "weighed", "Weighed"
    DISTRIBUTED = "distributed", "Distributed"


STATUS_ORDER = [
    RunStatus.PENDING,
    RunStatus.SCRAPED,
    RunStatus.WEIGHED,
    RunStatus.DISTRIBUTED,
]


class DonationRun(models.Model):
    """
    One split-pipeline run of a donation.

    The queue only carries ``correlation_id``; everything a stage needs is
    read back from here and from the state store.
    """

    correlation_id = models.CharField(
        max_length=64,
        unique=True,
        help_text="Correlation ID tying together the run's artifacts and messages.",
    )
    organization_id = models.CharField(max_length=64, db_index=True)
    status = models.CharField(
        max_length=20,
        choices=RunStatus.choices,
        default=RunStatus.PENDING,
        db_index=True,
    )
    request = models.JSONField(
        default=dict,
        help_text="The donation request as received (camelCase keys).",
    )

    # Scrape output
    groups = models.JSONField(
        default=list,
        blank=True,
        help_text="(language, registry) pairs with artifacts under this correlation id.",
    )
    crawled = models.BooleanField(
        default=False,
        help_text="Whether dependencies were crawled from the organization's repositories.",
    )
    top_level_dependencies = models.PositiveIntegerField(default=0)

    # Weigh output
    total_dependencies = models.PositiveIntegerField(default=0)

    # Error tracking
    last_error_type = models.CharField(max_length=255, blank=True, default="")
    last_error_message = models.TextField(blank=True, default="")

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    scraped_at = models.DateTimeField(null=True, blank=True)
    weighed_at = models.DateTimeField(null=True, blank=True)
    distributed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="distribution_status_idx"),
        ]

    def __str__(self):
        return f"Run {self.correlation_id} [{self.status}]"

    def group_keys(self) -> list[tuple[str, str]]:
        return [(group["language"], group["registry"]) for group in self.groups]

    def advance_to(self, status: str, **fields) -> bool:
        """
        Move forward to ``status`` and save ``fields``.

        Fields are saved regardless; the status is only changed when it moves
        forward, so re-running an earlier stage never rewinds the run.

        Returns:
            True if the status changed.
        """
        earlier = STATUS_ORDER[: STATUS_ORDER.index(status)]
        fields["updated_at"] = timezone.now()
        advanced = DonationRun.objects.filter(pk=self.pk, status__in=earlier).update(
            status=status, **fields
        )
        if not advanced:
            DonationRun.objects.filter(pk=self.pk).update(**fields)
        self.refresh_from_db()
        return bool(advanced)

    def claim_distribution(self) -> bool:
        """Atomically move WEIGHED → DISTRIBUTED; False if another claim won or not weighed."""
        now = timezone.now()
        claimed = DonationRun.objects.filter(pk=self.pk, status=RunStatus.WEIGHED).update(
            status=RunStatus.DISTRIBUTED,
            distributed_at=now,
            updated_at=now,
        )
        self.refresh_from_db()
        return bool(claimed)

    def record_failure(self, exc: BaseException) -> None:
        self.last_error_type = type(exc).__name__
        self.last_error_message = str(exc)
        self.save(update_fields=["last_error_type", "last_error_message", "updated_at"])
