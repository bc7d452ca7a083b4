"""
Ledger store operations used by the distribution pipeline.

Narrow projections and writes only: fetch an organization or package,
append ledger entries, bump counters, append usage snapshots.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.ledger.models import (
    ExclusionList,
    Organization,
    OssUsageSnapshot,
    Package,
    PackageDonation,
)

logger = logging.getLogger(__name__)

# Keeps IN (...) clauses under SQLite's bound-parameter limit.
LOOKUP_CHUNK_SIZE = 500


def get_organization(organization_id: str) -> Organization | None:
    return Organization.objects.filter(pk=organization_id).first()


def get_package(package_id: str) -> Package | None:
    return Package.objects.filter(pk=package_id).only("name", "language", "registry").first()


def get_exclusion_list(language: str, registry: str) -> set[str]:
    """Return the names of packages ineligible for compensation in a registry."""
    names = (
        ExclusionList.objects.filter(language=language, registry=registry)
        .values_list("names", flat=True)
        .first()
    )
    return set(names or [])


def distribute_org_donation(
    *,
    organization_id: str,
    donation_amount: int,
    package_weights: Mapping[str, float],
    language: str,
    registry: str,
    timestamp: int,
    description: str = "",
) -> int:
    """
    Post one ledger entry per weighted package.

    Packages not yet known are created on write. Each package receives
    ``donation_amount * weight``.

    Returns:
        Number of ledger entries written.
    """
    names = list(package_weights.keys())
    if not names:
        return 0

    with transaction.atomic():
        Package.objects.bulk_create(
            [Package(name=name, language=language, registry=registry) for name in names],
            ignore_conflicts=True,
        )

        package_ids: dict[str, str] = {}
        for start in range(0, len(names), LOOKUP_CHUNK_SIZE):
            chunk = names[start : start + LOOKUP_CHUNK_SIZE]
            package_ids.update(
                Package.objects.filter(
                    language=language, registry=registry, name__in=chunk
                ).values_list("name", "id")
            )

        entries = [
            PackageDonation(
                package_id=package_ids[name],
                organization_id=organization_id,
                amount=donation_amount * weight,
                timestamp=timestamp,
                description=description or "",
            )
            for name, weight in package_weights.items()
        ]
        PackageDonation.objects.bulk_create(entries)

    logger.info(
        f"Posted {len(entries)} ledger entries for {language}/{registry}",
        extra={"organization_id": organization_id, "amount": donation_amount},
    )
    return len(entries)


def create_usage_snapshot(
    *,
    organization_id: str,
    total_dependencies: int,
    top_level_dependencies: int,
) -> OssUsageSnapshot:
    return OssUsageSnapshot.objects.create(
        organization_id=organization_id,
        total_dependencies=total_dependencies,
        top_level_dependencies=top_level_dependencies,
        timestamp=timezone.now(),
    )


def increment_total_donated(*, organization_id: str, amount: int) -> None:
    Organization.objects.filter(pk=organization_id).update(
        total_donated=F("total_donated") + amount
    )


def decrement_remaining_donation(*, organization_id: str, amount: int) -> None:
    Organization.objects.filter(pk=organization_id).update(
        remaining_donation=F("remaining_donation") - amount
    )
