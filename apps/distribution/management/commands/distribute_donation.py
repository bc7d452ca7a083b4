"""
Management command to distribute a donation.

Usage:
    # Distribute synchronously (lock → crawl → weigh → post)
    python manage.py distribute_donation --payload '{"organizationId": "...", "amount": 1000000}'

    # Distribute from a JSON file
    python manage.py distribute_donation --file donation.json

    # Start a split-pipeline run instead (queues the scrape stage)
    python manage.py distribute_donation --file donation.json --split

    # Show what would happen
    python manage.py distribute_donation --file donation.json --dry-run
"""

import json

from django.core.management.base import BaseCommand, CommandError

from apps.distribution.allocation import donation_amount_for
from apps.distribution.dtos import DonationRequest
from apps.distribution.exceptions import DonationValidationError
from apps.distribution.orchestrator import DonationOrchestrator


class Command(BaseCommand):
    help = "Distribute an organization's donation to the packages it depends on"

    def add_arguments(self, parser):
        parser.add_argument(
            "--payload",
            type=str,
            help="Donation request as a JSON string",
        )
        parser.add_argument(
            "--file",
            type=str,
            help="Path to JSON file containing the donation request",
        )
        parser.add_argument(
            "--split",
            action="store_true",
            help="Start a split-pipeline run (scrape → weigh → distribute) via the queue",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would happen without executing",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Output result as JSON",
        )

    def handle(self, *args, **options):
        try:
            request = DonationRequest.from_dict(self._get_payload(options))
        except DonationValidationError as e:
            raise CommandError(f"Invalid donation request: {e}")

        if options["dry_run"]:
            self._show_dry_run(request, options)
            return

        orchestrator = DonationOrchestrator()

        if options["split"]:
            run = orchestrator.start(request)
            if options["json"]:
                self.stdout.write(
                    json.dumps({"status": "queued", "correlationId": run.correlation_id})
                )
            else:
                self.stdout.write(self.style.SUCCESS(f"Queued run {run.correlation_id}"))
            return

        self.stdout.write(self.style.NOTICE("Distributing donation..."))
        try:
            result = orchestrator.distribute(request)
        except Exception as e:
            raise CommandError(f"Distribution failed: {e}")

        if options["json"]:
            self.stdout.write(json.dumps(result.to_dict(), indent=2, default=str))
        else:
            self._display_result(result)

    def _get_payload(self, options) -> dict:
        if options["payload"]:
            try:
                return json.loads(options["payload"])
            except json.JSONDecodeError as e:
                raise CommandError(f"Invalid JSON payload: {e}")
        if options["file"]:
            try:
                with open(options["file"]) as f:
                    return json.load(f)
            except FileNotFoundError:
                raise CommandError(f"File not found: {options['file']}")
            except json.JSONDecodeError as e:
                raise CommandError(f"Invalid JSON in file: {e}")
        raise CommandError("Must specify --payload or --file")

    def _show_dry_run(self, request: DonationRequest, options: dict):
        self.stdout.write(self.style.WARNING("=== DRY RUN ==="))
        self.stdout.write("")
        self.stdout.write("Donation:")
        self.stdout.write(json.dumps(request.to_dict(), indent=2))
        self.stdout.write(f"  Amount after fees: {donation_amount_for(request):.2f} millicents")
        self.stdout.write("")
        if options["split"]:
            self.stdout.write("Pipeline Stages:")
            self.stdout.write("  1. SCRAPE     - Find top-level dependencies, write artifacts")
            self.stdout.write("  2. WEIGH      - Weigh dependency trees, write weight maps")
            self.stdout.write("  3. DISTRIBUTE - Post ledger entries")
        else:
            self.stdout.write("Steps:")
            if request.target_package_id:
                self.stdout.write(f"  - Target package {request.target_package_id} (no crawl)")
            else:
                self.stdout.write("  - Crawl organization repositories for manifests")
            self.stdout.write("  - Lock organization, weigh, post, unlock")
        self.stdout.write("")
        self.stdout.write(self.style.SUCCESS("Use without --dry-run to execute"))

    def _display_result(self, result):
        self.stdout.write("")
        self.stdout.write("=" * 60)
        self.stdout.write(self.style.HTTP_INFO("DISTRIBUTION RESULT"))
        self.stdout.write("=" * 60)
        self.stdout.write(f"Organization: {result.organization_id}")
        self.stdout.write(f"Correlation ID: {result.correlation_id}")
        self.stdout.write(f"Requested: {result.requested_amount} millicents")
        self.stdout.write(f"After fees: {result.donation_amount:.2f} millicents")
        self.stdout.write(f"Distributed: {result.distributed_amount} millicents")
        self.stdout.write(f"Packages: {result.total_packages}")
        self.stdout.write("")
        for allocation in result.allocations:
            self.stdout.write(
                f"  {allocation.language}/{allocation.registry}: "
                f"{allocation.amount} millicents to {len(allocation.weights)} package(s)"
            )
        self.stdout.write("")
        self.stdout.write(self.style.SUCCESS("✓ Donation distributed"))
