"""Celery tasks for donation distribution.

These tasks wrap the DonationOrchestrator for execution by Celery workers.
Each inbound message is one task; the split-pipeline stage tasks receive
``{"correlationId": ...}`` and nothing else.
"""

from __future__ import annotations

from typing import Any

from celery import shared_task


@shared_task(bind=True)
def distribute_donation(self, body: dict[str, Any]) -> dict[str, Any]:
    """
    Distribute one donation synchronously (lock → crawl → weigh → post).

    Args:
        body: Donation request ``{amount, timestamp, organizationId, ...}``.

    Returns:
        DistributionResult as dict.
    """
    from apps.distribution.orchestrator import DonationOrchestrator

    return DonationOrchestrator().distribute(body).to_dict()


@shared_task(bind=True)
def distribute_donation_batch(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Distribute a batch of donations, each independently of the others.

    Raises:
        BatchProcessingError: If any donation failed; the others stay applied.
    """
    from apps.distribution.orchestrator import DonationOrchestrator, process_batch

    orchestrator = DonationOrchestrator()
    return process_batch(records, lambda body: orchestrator.distribute(body).to_dict())


@shared_task(bind=True)
def start_donation_run(self, body: dict[str, Any]) -> dict[str, Any]:
    """Create a split-pipeline run for a donation and queue its first stage."""
    from apps.distribution.orchestrator import DonationOrchestrator

    run = DonationOrchestrator().start(body)
    return {"status": "queued", "correlationId": run.correlation_id}


@shared_task(bind=True)
def scrape_dependencies(self, message: dict[str, Any]) -> dict[str, Any]:
    """Stage 1: crawl the organization and write top-level dependency artifacts."""
    from apps.distribution.dtos import parse_stage_message
    from apps.distribution.orchestrator import DonationOrchestrator

    run = DonationOrchestrator().scrape(parse_stage_message(message))
    return {"correlationId": run.correlation_id, "status": run.status, "groups": run.groups}


@shared_task(bind=True)
def weigh_dependencies(self, message: dict[str, Any]) -> dict[str, Any]:
    """Stage 2: weigh each group and write package weight map artifacts."""
    from apps.distribution.dtos import parse_stage_message
    from apps.distribution.orchestrator import DonationOrchestrator

    run = DonationOrchestrator().weigh(parse_stage_message(message))
    return {
        "correlationId": run.correlation_id,
        "status": run.status,
        "totalDependencies": run.total_dependencies,
    }


@shared_task(bind=True)
def distribute_weighed_donation(self, message: dict[str, Any]) -> dict[str, Any]:
    """Stage 3: post the weighed donation. Must run at most once per correlation id."""
    from apps.distribution.dtos import parse_stage_message
    from apps.distribution.orchestrator import DonationOrchestrator

    return DonationOrchestrator().distribute_weighed(parse_stage_message(message)).to_dict()
