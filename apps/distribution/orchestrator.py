"""
Donation orchestrator.

Sequences locking, dependency discovery, weighting, and allocation.

Two flows:
1. Synchronous (one invocation): lock → resolve groups → weigh → post → unlock.
2. Split (one invocation per stage, hand-off through the state store):
   start → scrape → weigh → distribute_weighed, keyed by correlation id.

Failure policy: nothing here retries. Errors propagate so the queue can
redeliver or dead-letter the message. In the synchronous flow the org lock is
only released on success; after a failure it expires by TTL.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from django.conf import settings
from django.db import connections, transaction
from django.utils import timezone

from apps.crawler.dtos import OrgIdentity
from apps.crawler.retriever import GithubRetriever
from apps.distribution import queue
from apps.distribution.allocation import AllocationEngine
from apps.distribution.dtos import (
    DependencyGroup,
    DistributionResult,
    DonationRequest,
    PackageWeightMap,
)
from apps.distribution.exceptions import (
    BatchProcessingError,
    DonationValidationError,
    InvalidTransition,
)
from apps.distribution.models import DonationRun, RunStatus
from apps.distribution.oracle import BaseWeightingOracle, get_oracle
from apps.distribution.signals import SignalTags, StageTimer
from apps.distribution.state import StateStore
from apps.ledger import services as ledger
from apps.ledger.models import Organization
from apps.locks.services import lock_org, unlock_org

logger = logging.getLogger(__name__)

DEFAULT_WEIGHING_WORKERS = 8
DEFAULT_BATCH_WORKERS = 10


class DonationOrchestrator:
    """
    Main orchestrator service for donation distribution.

    Usage:
        orchestrator = DonationOrchestrator()
        result = orchestrator.distribute({"organizationId": "...", "amount": 1000000, ...})
    """

    def __init__(
        self,
        oracle: BaseWeightingOracle | None = None,
        retriever_factory: Callable[[], GithubRetriever] | None = None,
        state: StateStore | None = None,
        queue_send: Callable[[str, dict[str, Any]], Any] | None = None,
        engine: AllocationEngine | None = None,
        weighing_workers: int = DEFAULT_WEIGHING_WORKERS,
    ):
        """
        Initialize the orchestrator.

        Args:
            oracle: Weighting oracle (default from settings, created lazily).
            retriever_factory: Builds a fresh crawler per invocation.
            state: State store for the split flow.
            queue_send: ``send(destination, payload)`` for the split flow.
            engine: Allocation engine.
            weighing_workers: Max (language, registry) groups weighed at once.
        """
        self._oracle = oracle
        self.retriever_factory = retriever_factory or GithubRetriever
        self._state = state
        self.queue_send = queue_send or queue.send
        self.engine = engine or AllocationEngine()
        self.weighing_workers = weighing_workers

    @property
    def oracle(self) -> BaseWeightingOracle:
        if self._oracle is None:
            self._oracle = get_oracle()
        return self._oracle

    @property
    def state(self) -> StateStore:
        if self._state is None:
            self._state = StateStore()
        return self._state

    # ------------------------------------------------------------------
    # Synchronous flow
    # ------------------------------------------------------------------

    def distribute(self, request: DonationRequest | dict[str, Any]) -> DistributionResult:
        """
        Distribute one donation within this invocation.

        Raises:
            DonationValidationError: Bad request, unknown organization or
                unusable target package. No ledger writes happen.
            AlreadyLocked: Another invocation is distributing for the org.
        """
        request = self._coerce_request(request)
        correlation_id = str(uuid.uuid4())
        logger.info(
            "Distributing donation",
            extra={"correlation_id": correlation_id, "donation": request.to_dict()},
        )
        tags = SignalTags(
            correlation_id=correlation_id,
            organization_id=request.organization_id,
            stage="distribute",
        )

        with StageTimer(tags):
            # Raises AlreadyLocked if another invocation picked up this org,
            # which keeps an org's donation from being paid out twice.
            lock_info = lock_org(request.organization_id)
            logger.info(f"Lock acquired: {lock_info.to_dict()}")

            organization = self._get_organization(request)
            groups, crawled = self.resolve_dependency_groups(request, organization)
            weight_maps = self.compute_weight_maps(groups)
            result = self.engine.post(
                request,
                organization,
                weight_maps,
                top_level_dependencies=count_top_level(groups),
                crawled=crawled,
            )

            unlock_org(request.organization_id)

        result.correlation_id = correlation_id
        return result

    # ------------------------------------------------------------------
    # Split flow
    # ------------------------------------------------------------------

    def start(self, request: DonationRequest | dict[str, Any]) -> DonationRun:
        """Persist the request under a new correlation id and enqueue the scrape stage."""
        request = self._coerce_request(request)
        run = DonationRun.objects.create(
            correlation_id=str(uuid.uuid4()),
            organization_id=request.organization_id,
            request=request.to_dict(),
        )
        logger.info(
            f"Donation run started: correlation_id={run.correlation_id}",
            extra={"correlation_id": run.correlation_id, "organization_id": run.organization_id},
        )
        self._enqueue("DONATIONS_SCRAPE_TASK", run.correlation_id)
        return run

    def scrape(self, correlation_id: str) -> DonationRun:
        """Stage 1: find top-level dependencies and write them per group."""
        run = self._get_run(correlation_id)
        request = DonationRequest.from_dict(run.request)

        with self._stage(run, "scrape"):
            organization = self._get_organization(request)
            groups, crawled = self.resolve_dependency_groups(request, organization)
            self.state.put_top_level_packages(correlation_id, groups)
            run.advance_to(
                RunStatus.SCRAPED,
                groups=[{"language": g.language, "registry": g.registry} for g in groups],
                crawled=crawled,
                top_level_dependencies=count_top_level(groups),
                scraped_at=timezone.now(),
            )

        self._enqueue("DONATIONS_WEIGH_TASK", correlation_id)
        return run

    def weigh(self, correlation_id: str) -> DonationRun:
        """
        Stage 2: weigh each group's dependency tree and write the weight maps.

        Raises:
            InvalidTransition: The run has not been scraped yet.
            ArtifactNotFound: A group's top-level packages are missing.
        """
        run = self._get_run(correlation_id)

        with self._stage(run, "weigh"):
            if run.status == RunStatus.PENDING:
                raise InvalidTransition(correlation_id, run.status, "weigh")
            groups = self.state.get_top_level_packages(correlation_id, run.group_keys())
            weight_maps = self.compute_weight_maps(groups)
            self.state.put_package_weight_maps(correlation_id, weight_maps)
            run.advance_to(
                RunStatus.WEIGHED,
                total_dependencies=sum(weight_map.size for weight_map in weight_maps),
                weighed_at=timezone.now(),
            )

        self._enqueue("DONATIONS_DISTRIBUTE_TASK", correlation_id)
        return run

    def distribute_weighed(self, correlation_id: str) -> DistributionResult:
        """
        Stage 3: post the weighed donation to the ledger.

        Not idempotent: the claim on WEIGHED → DISTRIBUTED commits together
        with the postings, and a run that was already distributed is refused.

        Raises:
            InvalidTransition: The run is not in the WEIGHED state.
        """
        run = self._get_run(correlation_id)
        request = DonationRequest.from_dict(run.request)

        with self._stage(run, "post"):
            organization = self._get_organization(request)
            weight_maps = self.state.get_package_weight_maps(correlation_id, run.group_keys())
            with transaction.atomic():
                if not run.claim_distribution():
                    raise InvalidTransition(correlation_id, run.status, "distribute")
                result = self.engine.post(
                    request,
                    organization,
                    weight_maps,
                    top_level_dependencies=run.top_level_dependencies,
                    crawled=run.crawled,
                )

        result.correlation_id = correlation_id
        return result

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def resolve_dependency_groups(
        self,
        request: DonationRequest,
        organization: Organization,
    ) -> tuple[list[DependencyGroup], bool]:
        """
        Find the top-level dependency specifiers to donate to.

        Returns:
            (groups, crawled): one group per (language, registry), and whether
            they came from crawling the organization's repositories.
        """
        if request.target_package_id:
            return [self._target_package_group(request.target_package_id)], False

        search_patterns = self.oracle.get_supported_manifest_patterns()
        logger.info(
            f"Using {len(search_patterns)} search pattern(s) to find package manifest files within org"
        )

        retriever = self.retriever_factory()
        manifests = retriever.get_all_manifests_for_org(
            OrgIdentity(name=organization.name, installation_id=organization.installation_id),
            search_patterns,
        )
        logger.info(f"Downloaded {len(manifests)} package manifests")

        groups = self.oracle.extract_dependencies(manifests)
        logger.info(
            f"Dependencies extracted for {len(groups)} different registry/language combinations"
        )
        return list(groups), True

    def compute_weight_maps(self, groups: Sequence[DependencyGroup]) -> list[PackageWeightMap]:
        """Weigh every group's dependency tree, groups in parallel."""
        exclusions = {
            (group.language, group.registry): ledger.get_exclusion_list(group.language, group.registry)
            for group in groups
            if group.deps
        }

        def weigh(group: DependencyGroup) -> PackageWeightMap:
            if not group.deps:
                return PackageWeightMap(language=group.language, registry=group.registry)
            weights = self.oracle.compute_package_weight(
                top_level_packages=group.deps,
                language=group.language,
                registry=group.registry,
                excluded=exclusions[(group.language, group.registry)],
            )
            return PackageWeightMap(
                language=group.language, registry=group.registry, weights=dict(weights)
            )

        if len(groups) <= 1:
            return [weigh(group) for group in groups]

        with ThreadPoolExecutor(max_workers=min(len(groups), self.weighing_workers)) as pool:
            return list(pool.map(weigh, groups))

    def _target_package_group(self, package_id: str) -> DependencyGroup:
        package = ledger.get_package(package_id)
        if package is None:
            raise DonationValidationError(f"targetPackageId not found in db: {package_id}")
        if not package.name or not package.language or not package.registry:
            raise DonationValidationError(
                f"missing properties on target package: "
                f"{package.name} {package.language} {package.registry}"
            )

        # A specifier that looks like a top-level dependency, so the oracle
        # walks this package's own dependency tree.
        spec = self.oracle.build_latest_spec(
            package.name, language=package.language, registry=package.registry
        )
        return DependencyGroup(language=package.language, registry=package.registry, deps=[spec])

    def _coerce_request(self, request: DonationRequest | dict[str, Any]) -> DonationRequest:
        if isinstance(request, DonationRequest):
            return request
        return DonationRequest.from_dict(request)

    def _get_organization(self, request: DonationRequest) -> Organization:
        organization = ledger.get_organization(request.organization_id)
        if organization is None:
            raise DonationValidationError(f"organization not found: {request.organization_id}")
        return organization

    def _get_run(self, correlation_id: str) -> DonationRun:
        try:
            return DonationRun.objects.get(correlation_id=correlation_id)
        except DonationRun.DoesNotExist:
            raise DonationValidationError(f"Unknown correlation id: {correlation_id}")

    def _stage(self, run: DonationRun, stage: str) -> _RunStage:
        return _RunStage(run, stage)

    def _enqueue(self, setting_name: str, correlation_id: str) -> None:
        destination = getattr(settings, setting_name)
        self.queue_send(destination, {"correlationId": correlation_id})


class _RunStage(StageTimer):
    """StageTimer that also records a failing stage's error on the run."""

    def __init__(self, run: DonationRun, stage: str):
        super().__init__(
            SignalTags(
                correlation_id=run.correlation_id,
                organization_id=run.organization_id,
                stage=stage,
                flow="split",
            )
        )
        self.run = run

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            logger.exception(
                f"Stage {self.tags.stage} failed for run {self.run.correlation_id}",
                extra={"correlation_id": self.run.correlation_id},
            )
            self.run.record_failure(exc_val)
        return super().__exit__(exc_type, exc_val, exc_tb)


def count_top_level(groups: Sequence[DependencyGroup]) -> int:
    return sum(len(group.deps) for group in groups)


def process_batch(
    records: Sequence[dict[str, Any]],
    handler: Callable[[dict[str, Any]], dict[str, Any]],
    max_workers: int = DEFAULT_BATCH_WORKERS,
) -> list[dict[str, Any]]:
    """
    Run ``handler`` on every message of a batch concurrently and independently.

    A failing or slow message neither undoes nor holds up the others. Results
    are returned in the order of ``records``.

    Raises:
        BatchProcessingError: If any message failed, after all were tried.
    """
    if not records:
        return []

    def handle(record: dict[str, Any]) -> dict[str, Any]:
        try:
            return handler(record)
        except Exception as e:
            logger.exception("Donation message failed")
            return {"success": False, "error_type": type(e).__name__, "error": str(e)}
        finally:
            # Worker threads open their own database connections.
            connections.close_all()

    with ThreadPoolExecutor(max_workers=min(len(records), max_workers)) as pool:
        results = list(pool.map(handle, records))

    if not all(result.get("success") for result in results):
        raise BatchProcessingError(results)
    return results
