"""Errors raised by the distribution pipeline."""

from __future__ import annotations

from typing import Any


class DonationValidationError(ValueError):
    """The donation request or the records it refers to are unusable."""


class InvalidTransition(Exception):
    """A split-pipeline stage was asked to run from a state it cannot run from."""

    def __init__(self, correlation_id: str, status: str, stage: str):
        self.correlation_id = correlation_id
        self.status = status
        self.stage = stage
        super().__init__(f"Run {correlation_id} cannot {stage} from status '{status}'")


class BatchProcessingError(Exception):
    """At least one message of a batch failed; carries every message's outcome."""

    def __init__(self, results: list[dict[str, Any]]):
        self.results = results
        failed = sum(1 for result in results if not result.get("success"))
        super().__init__(f"{failed} of {len(results)} donation message(s) failed")
