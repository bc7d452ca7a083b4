import io
import json
import os
import tempfile
from unittest import mock

from django.core.management import CommandError, call_command
from django.test import TestCase

from apps.distribution.dtos import DistributionResult, GroupAllocation

PAYLOAD = json.dumps({"organizationId": "org-1", "amount": 1_000_000, "timestamp": 1})


def _result():
    return DistributionResult(
        organization_id="org-1",
        requested_amount=1_000_000,
        donation_amount=959_970.0,
        total_packages=4,
        allocations=[GroupAllocation("javascript", "npm", 719_977, {"a": 1.0})],
        correlation_id="cid-1",
    )


class DistributeDonationCommandTest(TestCase):
    @mock.patch(
        "apps.distribution.management.commands.distribute_donation.DonationOrchestrator"
    )
    def test_distributes_and_displays_result(self, mock_orchestrator):
        mock_orchestrator.return_value.distribute.return_value = _result()

        out = io.StringIO()
        call_command("distribute_donation", "--payload", PAYLOAD, stdout=out)
        output = out.getvalue()

        self.assertIn("DISTRIBUTION RESULT", output)
        self.assertIn("javascript/npm: 719977 millicents", output)
        self.assertIn("✓ Donation distributed", output)

    @mock.patch(
        "apps.distribution.management.commands.distribute_donation.DonationOrchestrator"
    )
    def test_json_output(self, mock_orchestrator):
        mock_orchestrator.return_value.distribute.return_value = _result()

        out = io.StringIO()
        call_command("distribute_donation", "--payload", PAYLOAD, "--json", stdout=out)
        output = out.getvalue()

        data = json.loads(output[output.index("{") :])
        self.assertEqual(data["correlation_id"], "cid-1")
        self.assertEqual(data["distributed_amount"], 719_977)

    @mock.patch(
        "apps.distribution.management.commands.distribute_donation.DonationOrchestrator"
    )
    def test_split_queues_run(self, mock_orchestrator):
        mock_orchestrator.return_value.start.return_value.correlation_id = "cid-2"

        out = io.StringIO()
        call_command("distribute_donation", "--payload", PAYLOAD, "--split", stdout=out)

        self.assertIn("Queued run cid-2", out.getvalue())
        mock_orchestrator.return_value.distribute.assert_not_called()

    @mock.patch(
        "apps.distribution.management.commands.distribute_donation.DonationOrchestrator"
    )
    def test_dry_run_does_nothing(self, mock_orchestrator):
        out = io.StringIO()
        call_command("distribute_donation", "--payload", PAYLOAD, "--dry-run", stdout=out)

        self.assertIn("DRY RUN", out.getvalue())
        self.assertIn("959970.00", out.getvalue())
        mock_orchestrator.assert_not_called()

    @mock.patch(
        "apps.distribution.management.commands.distribute_donation.DonationOrchestrator"
    )
    def test_reads_payload_from_file(self, mock_orchestrator):
        mock_orchestrator.return_value.distribute.return_value = _result()
        with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False) as f:
            f.write(PAYLOAD)
        self.addCleanup(os.unlink, f.name)

        call_command("distribute_donation", "--file", f.name, stdout=io.StringIO())

        request = mock_orchestrator.return_value.distribute.call_args[0][0]
        self.assertEqual(request.organization_id, "org-1")

    def test_requires_payload(self):
        with self.assertRaisesMessage(CommandError, "Must specify --payload or --file"):
            call_command("distribute_donation", stdout=io.StringIO())

    def test_invalid_json(self):
        with self.assertRaisesMessage(CommandError, "Invalid JSON payload"):
            call_command("distribute_donation", "--payload", "{nope", stdout=io.StringIO())

    def test_invalid_request(self):
        with self.assertRaisesMessage(CommandError, "undefined organization id"):
            call_command("distribute_donation", "--payload", '{"amount": 1}', stdout=io.StringIO())

    def test_missing_file(self):
        with self.assertRaisesMessage(CommandError, "File not found"):
            call_command("distribute_donation", "--file", "/nonexistent.json", stdout=io.StringIO())

    @mock.patch(
        "apps.distribution.management.commands.distribute_donation.DonationOrchestrator"
    )
    def test_failure_raises_command_error(self, mock_orchestrator):
        mock_orchestrator.return_value.distribute.side_effect = RuntimeError("oracle down")

        with self.assertRaisesMessage(CommandError, "Distribution failed: oracle down"):
            call_command("distribute_donation", "--payload", PAYLOAD, stdout=io.StringIO())
