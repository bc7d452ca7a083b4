"""Tests for the split (scrape → weigh → distribute) pipeline."""

from unittest.mock import MagicMock

from django.conf import settings
from django.core.files.storage import InMemoryStorage
from django.test import TestCase

from apps.distribution._tests.fakes import FakeOracle, FakeRetriever, sample_manifests
from apps.distribution.exceptions import DonationValidationError, InvalidTransition
from apps.distribution.models import DonationRun, RunStatus
from apps.distribution.orchestrator import DonationOrchestrator
from apps.distribution.state import ArtifactNotFound, StateStore
from apps.ledger.models import Organization, OssUsageSnapshot, Package, PackageDonation
from apps.locks.models import OrgLock


class SplitFlowTests(TestCase):
    def setUp(self):
        self.org = Organization.objects.create(name="acme", installation_id="42")
        self.storage = InMemoryStorage()
        self.queue_send = MagicMock()
        self.retriever = FakeRetriever(sample_manifests())
        self.orchestrator = DonationOrchestrator(
            oracle=FakeOracle(),
            retriever_factory=lambda: self.retriever,
            state=StateStore(self.storage),
            queue_send=self.queue_send,
        )
        self.body = {
            "organizationId": self.org.id,
            "amount": 1_000_000,
            "timestamp": 1_700_000_000_000,
        }

    def _run_to(self, status):
        run = self.orchestrator.start(self.body)
        cid = run.correlation_id
        if status in (RunStatus.SCRAPED, RunStatus.WEIGHED, RunStatus.DISTRIBUTED):
            self.orchestrator.scrape(cid)
        if status in (RunStatus.WEIGHED, RunStatus.DISTRIBUTED):
            self.orchestrator.weigh(cid)
        if status == RunStatus.DISTRIBUTED:
            self.orchestrator.distribute_weighed(cid)
        return cid

    def _sent(self):
        return [c.args for c in self.queue_send.call_args_list]

    def test_start_persists_request_and_enqueues_scrape(self):
        run = self.orchestrator.start(self.body)

        assert run.status == RunStatus.PENDING
        assert run.request["organizationId"] == self.org.id
        assert self._sent() == [
            (settings.DONATIONS_SCRAPE_TASK, {"correlationId": run.correlation_id})
        ]

    def test_start_validates_request(self):
        with self.assertRaises(DonationValidationError):
            self.orchestrator.start({"amount": 100})

        assert not DonationRun.objects.exists()
        self.queue_send.assert_not_called()

    def test_scrape_writes_top_level_artifacts(self):
        cid = self._run_to(RunStatus.SCRAPED)

        run = DonationRun.objects.get(correlation_id=cid)
        assert run.status == RunStatus.SCRAPED
        assert run.crawled
        assert run.top_level_dependencies == 4
        assert sorted(run.group_keys()) == [("javascript", "npm"), ("python", "pypi")]
        assert self.storage.exists(f"{cid}/javascript_npm_top_level_packages.json")
        assert self.storage.exists(f"{cid}/python_pypi_top_level_packages.json")
        assert self._sent()[-1] == (settings.DONATIONS_WEIGH_TASK, {"correlationId": cid})

    def test_weigh_writes_weight_maps(self):
        cid = self._run_to(RunStatus.WEIGHED)

        run = DonationRun.objects.get(correlation_id=cid)
        assert run.status == RunStatus.WEIGHED
        assert run.total_dependencies == 4
        weights = StateStore(self.storage).get(cid, "javascript_npm_package_weight_map")
        assert set(weights) == {"react", "lodash", "express"}
        assert self._sent()[-1] == (settings.DONATIONS_DISTRIBUTE_TASK, {"correlationId": cid})

    def test_full_run_posts_donation(self):
        cid = self._run_to(RunStatus.DISTRIBUTED)

        run = DonationRun.objects.get(correlation_id=cid)
        assert run.status == RunStatus.DISTRIBUTED
        assert run.distributed_at is not None
        assert PackageDonation.objects.count() == 4
        self.org.refresh_from_db()
        assert self.org.total_donated == 1_000_000
        assert OssUsageSnapshot.objects.filter(organization=self.org).count() == 1
        assert not OrgLock.objects.exists()

    def test_rerunning_scrape_overwrites_and_never_rewinds(self):
        cid = self._run_to(RunStatus.WEIGHED)

        self.orchestrator.scrape(cid)

        run = DonationRun.objects.get(correlation_id=cid)
        assert run.status == RunStatus.WEIGHED
        assert StateStore(self.storage).get(cid, "python_pypi_top_level_packages") == ["flask"]

    def test_rerunning_weigh_is_harmless(self):
        cid = self._run_to(RunStatus.WEIGHED)

        self.orchestrator.weigh(cid)

        assert DonationRun.objects.get(correlation_id=cid).status == RunStatus.WEIGHED

    def test_distribute_twice_is_refused(self):
        cid = self._run_to(RunStatus.DISTRIBUTED)

        with self.assertRaises(InvalidTransition):
            self.orchestrator.distribute_weighed(cid)

        assert PackageDonation.objects.count() == 4
        run = DonationRun.objects.get(correlation_id=cid)
        assert run.last_error_type == "InvalidTransition"

    def test_distribute_before_weigh_is_refused(self):
        cid = self._run_to(RunStatus.SCRAPED)

        with self.assertRaises((InvalidTransition, ArtifactNotFound)):
            self.orchestrator.distribute_weighed(cid)

        assert not PackageDonation.objects.exists()

    def test_weigh_before_scrape_is_refused(self):
        cid = self._run_to(RunStatus.PENDING)

        with self.assertRaises(InvalidTransition):
            self.orchestrator.weigh(cid)

    def test_missing_top_level_artifact(self):
        cid = self._run_to(RunStatus.SCRAPED)
        self.storage.delete(f"{cid}/python_pypi_top_level_packages.json")

        with self.assertRaises(ArtifactNotFound):
            self.orchestrator.weigh(cid)

        run = DonationRun.objects.get(correlation_id=cid)
        assert run.status == RunStatus.SCRAPED
        assert run.last_error_type == "ArtifactNotFound"

    def test_missing_weight_map_artifact(self):
        cid = self._run_to(RunStatus.WEIGHED)
        self.storage.delete(f"{cid}/javascript_npm_package_weight_map.json")

        with self.assertRaises(ArtifactNotFound):
            self.orchestrator.distribute_weighed(cid)

        assert DonationRun.objects.get(correlation_id=cid).status == RunStatus.WEIGHED
        assert not PackageDonation.objects.exists()

    def test_unknown_correlation_id(self):
        with self.assertRaises(DonationValidationError):
            self.orchestrator.scrape("does-not-exist")

    def test_targeted_run(self):
        package = Package.objects.create(name="left-pad", language="javascript", registry="npm")
        self.body["targetPackageId"] = package.id

        cid = self._run_to(RunStatus.DISTRIBUTED)

        run = DonationRun.objects.get(correlation_id=cid)
        assert not run.crawled
        assert run.group_keys() == [("javascript", "npm")]
        assert self.retriever.calls == []
        assert not OssUsageSnapshot.objects.exists()
