#!/usr/bin/env python3
"""Outbound notification channel.

The coordinator publishes role and membership changes to a Notifier. It
has no knowledge of who listens; a desktop UI, a CLI or a test recorder
can all implement the same one-method interface.

Topics:
- queue-status: payload is a QueueStatus.
- queue-members: payload is a list of QueueMember, self first.
"""

from __future__ import annotations

import logging
from typing import Protocol

QUEUE_STATUS: str = "queue-status"
QUEUE_MEMBERS: str = "queue-members"

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Receiver of queue notifications."""

    def publish(self, topic: str, payload: object) -> None:
        """Deliver one notification. Must not block."""
        ...


class NullNotifier:
    """Notifier that drops everything."""

    def publish(self, topic: str, payload: object) -> None:
        pass


class LoggingNotifier:
    """Notifier that writes every notification to the log at INFO level."""

    def publish(self, topic: str, payload: object) -> None:
        logger.info("%s: %s", topic, payload)
