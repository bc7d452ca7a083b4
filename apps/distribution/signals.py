"""
Monitoring signals for donation distribution.

Emits structured signals at every stage boundary:
- donation.stage.started
- donation.stage.succeeded
- donation.stage.failed
- donation.stage.duration (timing)

Tags on every signal: correlation_id, organization_id, stage, flow.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from django.conf import settings
from django.utils.module_loading import import_string

from apps.distribution.exceptions import DonationValidationError

logger = logging.getLogger("apps.distribution.signals")


@dataclass
class SignalTags:
    """Required tags for all monitoring signals."""

    correlation_id: str
    organization_id: str
    stage: str  # distribute, scrape, weigh, post
    flow: str = "sync"
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        base = {
            "correlation_id": self.correlation_id,
            "organization_id": self.organization_id,
            "stage": self.stage,
            "flow": self.flow,
        }
        base.update(self.extra)
        return base


class MonitoringBackend:
    """
    Abstract monitoring backend.

    Override emit() to send signals elsewhere; the default logs them.
    """

    def emit(
        self,
        signal_name: str,
        tags: SignalTags,
        value: float | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        raise NotImplementedError


class LoggingBackend(MonitoringBackend):
    """Default backend: structured logging."""

    def emit(
        self,
        signal_name: str,
        tags: SignalTags,
        value: float | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        data = {
            "signal": signal_name,
            "value": value,
            **tags.to_dict(),
            **(extra or {}),
        }
        logger.info(f"[SIGNAL] {signal_name}", extra={"signal_data": data})


def get_monitoring_backend() -> MonitoringBackend:
    """Backend named by DONATIONS_MONITORING_BACKEND (dotted path), else logging."""
    path = getattr(settings, "DONATIONS_MONITORING_BACKEND", "")
    if path:
        return import_string(path)()
    return LoggingBackend()


_backend: MonitoringBackend | None = None


def _get_backend() -> MonitoringBackend:
    global _backend
    if _backend is None:
        _backend = get_monitoring_backend()
    return _backend


def emit_stage_started(tags: SignalTags) -> None:
    _get_backend().emit("donation.stage.started", tags)


def emit_stage_succeeded(tags: SignalTags, duration_ms: float) -> None:
    _get_backend().emit("donation.stage.succeeded", tags, extra={"duration_ms": duration_ms})
    _get_backend().emit("donation.stage.duration", tags, value=duration_ms)


def emit_stage_failed(
    tags: SignalTags,
    error_type: str,
    error_message: str,
    retryable: bool,
    duration_ms: float,
) -> None:
    _get_backend().emit(
        "donation.stage.failed",
        tags,
        extra={
            "error_type": error_type,
            "error_message": error_message,
            "retryable": retryable,
            "duration_ms": duration_ms,
        },
    )
    _get_backend().emit("donation.stage.duration", tags, value=duration_ms)


class StageTimer:
    """Context manager that times a stage and emits its boundary signals."""

    def __init__(self, tags: SignalTags):
        self.tags = tags
        self.start_time: float = 0.0
        self.duration_ms: float = 0.0

    def __enter__(self) -> "StageTimer":
        self.start_time = time.perf_counter()
        emit_stage_started(self.tags)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000

        if exc_type is None:
            emit_stage_succeeded(self.tags, self.duration_ms)
        else:
            # Bad input fails the same way on redelivery.
            retryable = not isinstance(exc_val, DonationValidationError)
            emit_stage_failed(
                self.tags,
                error_type=exc_type.__name__,
                error_message=str(exc_val),
                retryable=retryable,
                duration_ms=self.duration_ms,
            )
        return False
