"""Lock table for per-organization mutual exclusion."""

import time

from django.db import models


class OrgLock(models.Model):
    """
    A lock held on one organization while its donation is being posted.

    ``locked_until`` is an epoch time in seconds. A row whose expiry has
    passed is treated as absent and may be taken over.
    """

    organization_id = models.CharField(
        max_length=64,
        unique=True,
        help_text="Organization this lock is held on.",
    )
    locked_until = models.BigIntegerField(
        db_index=True,
        help_text="Epoch seconds after which the lock is considered released.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-locked_until"]

    def __str__(self):
        state = "expired" if self.is_expired() else "held"
        return f"Lock {self.organization_id} [{state}]"

    def is_expired(self, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return self.locked_until <= current
