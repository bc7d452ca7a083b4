"""
Data Transfer Objects (DTOs) for the distribution pipeline.

Inbound messages use camelCase keys; everything inside the pipeline uses
these dataclasses.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any

from apps.distribution.exceptions import DonationValidationError


@dataclass
class DonationRequest:
    """
    One donation to distribute.

    Attributes:
        amount: Donation in millicents.
        timestamp: Epoch milliseconds recorded on every ledger entry.
        organization_id: The donating organization.
        target_package_id: Donate to this package's dependency tree only
            (skips crawling the organization's repositories).
        redistributed_donation: Money the organization already donated being
            moved; fees were taken the first time around.
        description: Optional message for the ledger entries.
    """

    amount: int
    timestamp: int
    organization_id: str
    target_package_id: str | None = None
    redistributed_donation: bool = False
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DonationRequest:
        if not isinstance(data, dict):
            raise DonationValidationError("donation request must be a JSON object")

        organization_id = data.get("organizationId")
        if not organization_id:
            raise DonationValidationError("undefined organization id passed in")

        amount = data.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise DonationValidationError(f"amount must be an integer (millicents), got {amount!r}")

        timestamp = data.get("timestamp")
        if timestamp is None:
            timestamp = int(time.time() * 1000)
        elif isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise DonationValidationError(f"timestamp must be an integer, got {timestamp!r}")

        return cls(
            amount=amount,
            timestamp=timestamp,
            organization_id=str(organization_id),
            target_package_id=data.get("targetPackageId") or None,
            redistributed_donation=bool(data.get("redistributedDonation", False)),
            description=data.get("description") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "amount": self.amount,
            "timestamp": self.timestamp,
            "organizationId": self.organization_id,
            "redistributedDonation": self.redistributed_donation,
            "description": self.description,
        }
        if self.target_package_id:
            data["targetPackageId"] = self.target_package_id
        return data


def parse_stage_message(message: dict[str, Any]) -> str:
    """Return the correlation id of a pipeline-stage message."""
    correlation_id = message.get("correlationId") if isinstance(message, dict) else None
    if not correlation_id:
        raise DonationValidationError("pipeline stage message requires a correlationId")
    return str(correlation_id)


@dataclass
class DependencyGroup:
    """Top-level dependency specifiers found for one (language, registry)."""

    language: str
    registry: str
    deps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PackageWeightMap:
    """Package name → fraction of the group's donation. Sums to 1 unless empty."""

    language: str
    registry: str
    weights: dict[str, float] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.weights)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class GroupAllocation:
    """Floor-rounded share of the donation for one (language, registry)."""

    language: str
    registry: str
    amount: int
    weights: dict[str, float] = field(default_factory=dict)

    def shares(self) -> dict[str, float]:
        return {name: self.amount * weight for name, weight in self.weights.items()}


@dataclass
class DistributionResult:
    """Outcome of posting one donation."""

    organization_id: str
    requested_amount: int
    donation_amount: float
    total_packages: int = 0
    top_level_dependencies: int = 0
    allocations: list[GroupAllocation] = field(default_factory=list)
    ledger_entries: int = 0
    correlation_id: str | None = None
    duration_ms: float = 0.0

    @property
    def distributed_amount(self) -> int:
        return sum(allocation.amount for allocation in self.allocations)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "organization_id": self.organization_id,
            "correlation_id": self.correlation_id,
            "requested_amount": self.requested_amount,
            "donation_amount": self.donation_amount,
            "distributed_amount": self.distributed_amount,
            "total_packages": self.total_packages,
            "top_level_dependencies": self.top_level_dependencies,
            "ledger_entries": self.ledger_entries,
            "groups": [
                {
                    "language": allocation.language,
                    "registry": allocation.registry,
                    "amount": allocation.amount,
                    "packages": len(allocation.weights),
                }
                for allocation in self.allocations
            ],
            "duration_ms": self.duration_ms,
        }
