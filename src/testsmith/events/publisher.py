# src/testsmith/events/publisher.py

from __future__ import annotations

import logging
from typing import Any

from ..core.ports import EventPublisher
from .models import EventKind

logger = logging.getLogger(__name__)


class LoggingEventPublisher:
    """Default publisher when no push channel is wired: progress goes to the log only."""

    def publish(self, kind: str, payload: dict[str, Any]) -> None:
        logger.info(
            "event %s task=%s type=%s %s",
            kind,
            payload.get("taskId"),
            payload.get("eventType", "-"),
            payload.get("message", ""),
        )


def publish_safely(publisher: EventPublisher | None, kind: EventKind, payload: dict[str, Any]) -> None:
    """Progress reporting must never fail a task."""
    if publisher is None:
        return
    try:
        publisher.publish(kind.value, payload)
    except Exception:
        logger.exception("publish failed kind=%s task=%s", kind.value, payload.get("taskId"))
