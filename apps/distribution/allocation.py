"""
Allocation engine: turns a donation and weight maps into ledger postings.

Currency is integer millicents at the boundary. Each (language, registry)
group gets ``floor(donation * group_size / total_packages)``; flooring happens
once per group so the groups never receive more than the donation, and the
rounding loss is at most one millicent per group. Package shares inside a
group are ``group_amount * weight`` (floating point).
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Sequence

from django.db import transaction

from apps.distribution.dtos import (
    DistributionResult,
    DonationRequest,
    GroupAllocation,
    PackageWeightMap,
)
from apps.ledger import services as ledger
from apps.ledger.models import Organization

logger = logging.getLogger(__name__)

# ~3% card processing + 1% platform fee, and the processor's fixed charge.
FEE_MULTIPLIER = 0.96
BASE_CHARGE = 30


def adjust_amount(amount: int) -> float:
    """Amount left of new money once fees are taken out (never negative)."""
    if amount <= 0:
        return 0
    return max(0, amount * FEE_MULTIPLIER - BASE_CHARGE)


def donation_amount_for(request: DonationRequest) -> float:
    # Redistributed money already had its fees taken.
    if request.redistributed_donation:
        return request.amount
    return adjust_amount(request.amount)


def allocate(donation_amount: float, weight_maps: Sequence[PackageWeightMap]) -> list[GroupAllocation]:
    """
    Split the donation across groups in proportion to their package counts.

    Groups whose floor-rounded share is zero are left out.
    """
    total_packages = sum(weight_map.size for weight_map in weight_maps)
    if total_packages == 0:
        return []

    allocations = []
    for weight_map in weight_maps:
        group_amount = math.floor(donation_amount * weight_map.size / total_packages)
        if not group_amount:
            continue
        allocations.append(
            GroupAllocation(
                language=weight_map.language,
                registry=weight_map.registry,
                amount=group_amount,
                weights=dict(weight_map.weights),
            )
        )
    return allocations


class AllocationEngine:
    """Posts allocations to the ledger and applies the organization side effects."""

    def post(
        self,
        request: DonationRequest,
        organization: Organization,
        weight_maps: Sequence[PackageWeightMap],
        *,
        top_level_dependencies: int = 0,
        crawled: bool = True,
    ) -> DistributionResult:
        """
        Distribute the donation.

        Args:
            request: The donation being distributed.
            organization: The donating organization.
            weight_maps: One weight map per (language, registry).
            top_level_dependencies: Count of top-level specifiers found.
            crawled: Whether dependencies came from crawling the organization
                (a usage snapshot is only recorded then).
        """
        start_time = time.perf_counter()
        donation_amount = donation_amount_for(request)
        total_packages = sum(weight_map.size for weight_map in weight_maps)
        logger.info(
            f"Dependencies across all supported manifests: {total_packages}",
            extra={"organization_id": request.organization_id},
        )

        allocations = allocate(donation_amount, weight_maps)
        result = DistributionResult(
            organization_id=request.organization_id,
            requested_amount=request.amount,
            donation_amount=donation_amount,
            total_packages=total_packages,
            top_level_dependencies=top_level_dependencies,
            allocations=allocations,
        )

        with transaction.atomic():
            for allocation in allocations:
                result.ledger_entries += ledger.distribute_org_donation(
                    organization_id=request.organization_id,
                    donation_amount=allocation.amount,
                    package_weights=allocation.weights,
                    language=allocation.language,
                    registry=allocation.registry,
                    timestamp=request.timestamp,
                    description=request.description,
                )

            if crawled:
                ledger.create_usage_snapshot(
                    organization_id=request.organization_id,
                    total_dependencies=total_packages,
                    top_level_dependencies=top_level_dependencies,
                )

            if not request.redistributed_donation:
                ledger.increment_total_donated(
                    organization_id=request.organization_id, amount=request.amount
                )

            # The prepaid balance is drawn down by the raw amount, fees included.
            if organization.is_manually_billed:
                ledger.decrement_remaining_donation(
                    organization_id=request.organization_id, amount=request.amount
                )

        result.duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Distributed {result.distributed_amount} of {request.amount} millicents "
            f"across {len(allocations)} group(s)",
            extra={"organization_id": request.organization_id},
        )
        return result
