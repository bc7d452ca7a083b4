"""
Models for organizations, packages, and the package donation ledger.

All currency amounts are millicents (1/1000 of a cent).
"""

import uuid

from django.db import models


def generate_id() -> str:
    """Opaque string identifier used for organizations and packages."""
    return uuid.uuid4().hex


class BillingMode(models.TextChoices):
    """How an organization pays for its donations."""

    STANDARD = "standard", "Standard"
    MANUALLY_BILLED = "manually_billed", "Manually billed"


class Organization(models.Model):
    """
    A donating organization.

    Manually billed organizations prepay a lump sum; ``remaining_donation`` is
    drawn down as their donations are distributed.
    """

    id = models.CharField(primary_key=True, max_length=64, default=generate_id, editable=False)
    name = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Organization login on the code host.",
    )
    installation_id = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="Code host app installation reference used to read repositories.",
    )
    billing_mode = models.CharField(
        max_length=20,
        choices=BillingMode.choices,
        default=BillingMode.STANDARD,
    )
    remaining_donation = models.BigIntegerField(
        default=0,
        help_text="Prepaid balance left to distribute (millicents).",
    )
    total_donated = models.BigIntegerField(
        default=0,
        help_text="Lifetime new money donated (millicents).",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.billing_mode})"

    @property
    def is_manually_billed(self) -> bool:
        return self.billing_mode == BillingMode.MANUALLY_BILLED


class OssUsageSnapshot(models.Model):
    """Point-in-time count of the dependencies found in an organization's repositories."""

    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="snapshots",
    )
    total_dependencies = models.PositiveIntegerField(default=0)
    top_level_dependencies = models.PositiveIntegerField(default=0)
    timestamp = models.DateTimeField(db_index=True)

    class Meta:
        ordering = ["organization", "timestamp"]

    def __str__(self):
        return (
            f"{self.organization_id} @ {self.timestamp:%Y-%m-%d}: "
            f"{self.top_level_dependencies}/{self.total_dependencies}"
        )


class Package(models.Model):
    """An open-source package, identified by (name, language, registry)."""

    id = models.CharField(primary_key=True, max_length=64, default=generate_id, editable=False)
    name = models.CharField(max_length=255)
    language = models.CharField(max_length=50)
    registry = models.CharField(max_length=50)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["registry", "name"]
        constraints = [
            models.UniqueConstraint(
                fields=["name", "language", "registry"],
                name="unique_package_per_registry",
            ),
        ]

    def __str__(self):
        return f"{self.registry}:{self.name} ({self.language})"


class PackageDonation(models.Model):
    """
    One entry in a package's append-only donation ledger.

    Rows are only ever inserted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    package = models.ForeignKey(
        Package,
        on_delete=models.CASCADE,
        related_name="donations",
    )
    organization_id = models.CharField(max_length=64, db_index=True)
    amount = models.FloatField(help_text="Share of the donation (millicents).")
    timestamp = models.BigIntegerField(help_text="Donation time as epoch milliseconds.")
    description = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["package", "timestamp"]
        indexes = [
            models.Index(fields=["organization_id", "timestamp"], name="ledger_donation_org_ts_idx"),
        ]

    def __str__(self):
        return f"{self.package} <- {self.organization_id}: {self.amount:.0f}"


class ExclusionList(models.Model):
    """Packages of one (language, registry) that are not eligible for compensation."""

    language = models.CharField(max_length=50)
    registry = models.CharField(max_length=50)
    names = models.JSONField(default=list, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["language", "registry"],
                name="unique_exclusion_list",
            ),
        ]

    def __str__(self):
        return f"{self.language}/{self.registry} ({len(self.names)} excluded)"
