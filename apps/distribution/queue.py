"""Queue adapter: hand a JSON message to a named Celery task (at-least-once)."""

from __future__ import annotations

import logging
from typing import Any

from celery import current_app

logger = logging.getLogger(__name__)


def send(destination: str, payload: dict[str, Any]) -> str:
    """
    Enqueue ``payload`` for the task registered as ``destination``.

    Returns:
        The Celery task id.
    """
    result = current_app.send_task(destination, args=[payload])
    logger.info(f"Enqueued {destination}", extra={"task_id": result.id, "payload": payload})
    return result.id
