"""
Distributed lock manager for organizations.

Acquisition is a conditional write, never a read followed by a write:

1. take over an expired row with ``UPDATE ... WHERE locked_until <= now``;
2. otherwise ``INSERT`` a new row, relying on the unique constraint on
   ``organization_id`` to reject a concurrent or live holder.

The TTL matches the longest an invocation may run, so a lock left behind by
a crashed run expires no later than that run could still be executing.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

from django.conf import settings
from django.db import IntegrityError, transaction

from apps.locks.models import OrgLock

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL_SECONDS = 15 * 60


class AlreadyLocked(Exception):
    """Raised when another invocation holds a live lock on the organization."""

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(f"Organization {organization_id} is already locked")


@dataclass
class LockInfo:
    organization_id: str
    locked_until: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def get_lock_ttl() -> int:
    return int(getattr(settings, "DONATIONS_LOCK_TTL_SECONDS", DEFAULT_LOCK_TTL_SECONDS))


def lock_org(organization_id: str, now: float | None = None) -> LockInfo:
    """
    Acquire the lock for an organization.

    Args:
        organization_id: Organization to lock.
        now: Current epoch seconds (defaults to the wall clock).

    Returns:
        LockInfo with the expiry of the newly held lock.

    Raises:
        AlreadyLocked: If a live lock exists for the organization.
    """
    current = int(time.time() if now is None else now)
    locked_until = current + get_lock_ttl()

    taken_over = OrgLock.objects.filter(
        organization_id=organization_id,
        locked_until__lte=current,
    ).update(locked_until=locked_until)

    if not taken_over:
        try:
            with transaction.atomic():
                OrgLock.objects.create(organization_id=organization_id, locked_until=locked_until)
        except IntegrityError:
            logger.warning(
                f"Lock contention on organization {organization_id}",
                extra={"organization_id": organization_id},
            )
            raise AlreadyLocked(organization_id) from None

    logger.info(
        f"Locked organization {organization_id} until {locked_until}",
        extra={"organization_id": organization_id, "locked_until": locked_until},
    )
    return LockInfo(organization_id=organization_id, locked_until=locked_until)


def unlock_org(organization_id: str) -> None:
    """Release the lock for an organization. Releasing an absent lock is a no-op."""
    OrgLock.objects.filter(organization_id=organization_id).delete()


def is_locked(organization_id: str, now: float | None = None) -> bool:
    current = int(time.time() if now is None else now)
    return OrgLock.objects.filter(
        organization_id=organization_id,
        locked_until__gt=current,
    ).exists()
