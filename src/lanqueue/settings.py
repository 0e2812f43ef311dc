#!/usr/bin/env python3
"""Queue configuration.

QueueSettings mirrors what the surrounding application persists for the
queue (role, host, port, password, queue name, display name). The queue
never writes it; load_settings() only reads a JSON file in that shape so
the CLI can start from a saved configuration.

QueueTuning groups the timing and sizing knobs of the running queue.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from lanqueue import queue_constants
from lanqueue.dedup import DEFAULT_CAPACITY, DEFAULT_TTL
from lanqueue.protocol import MAX_FRAME_SIZE

ROLES = ("off", "host", "client")


class SettingsError(ValueError):
    """A settings file is unreadable or has invalid values."""

    pass


@dataclass(frozen=True)
class QueueTuning:
    """Timing and sizing for a running queue.

    Attributes:
        bind_host: Address the host listener binds to.
        handshake_timeout: Seconds allowed for connect plus Hello exchange.
        heartbeat_interval: Seconds between pings on active connections.
        max_missed_pongs: Unanswered pings before a peer is dropped.
        max_frame_size: Largest frame body sent or accepted.
        outbound_queue_size: Frames buffered per connection.
        slow_peer_drop_limit: Consecutive refused frames before a peer is
            disconnected as too slow.
        dedup_capacity: Message ids kept by the dedup cache.
        dedup_ttl: Seconds a message id stays in the dedup cache.
    """

    bind_host: str = queue_constants.DEFAULT_BIND_HOST
    handshake_timeout: float = queue_constants.HANDSHAKE_TIMEOUT
    heartbeat_interval: float = queue_constants.HEARTBEAT_INTERVAL
    max_missed_pongs: int = queue_constants.MAX_MISSED_PONGS
    max_frame_size: int = MAX_FRAME_SIZE
    outbound_queue_size: int = queue_constants.OUTBOUND_QUEUE_SIZE
    slow_peer_drop_limit: int = queue_constants.SLOW_PEER_DROP_LIMIT
    dedup_capacity: int = DEFAULT_CAPACITY
    dedup_ttl: float = DEFAULT_TTL


@dataclass(frozen=True)
class QueueSettings:
    """Persisted queue configuration."""

    role: str = "off"
    host: str | None = None
    port: int | None = None
    password: str = ""
    queue_name: str | None = None
    member_name: str | None = None

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> QueueSettings:
        """Build settings from a decoded JSON object.

        Raises:
            SettingsError: If a value has the wrong type or range.
        """
        role = data.get("role", "off")
        if role not in ROLES:
            raise SettingsError(f"role must be one of {', '.join(ROLES)}, got {role!r}")
        port = data.get("port")
        if port is not None and (
            isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535
        ):
            raise SettingsError(f"port must be an integer in 0-65535, got {port!r}")
        for key in ("host", "queue_name", "member_name"):
            if data.get(key) is not None and not isinstance(data[key], str):
                raise SettingsError(f"{key} must be a string")
        password = data.get("password", "")
        if not isinstance(password, str):
            raise SettingsError("password must be a string")
        return cls(
            role=role,
            host=data.get("host"),
            port=port,
            password=password,
            queue_name=data.get("queue_name"),
            member_name=data.get("member_name"),
        )


def load_settings(path: str | Path) -> QueueSettings:
    """Read queue settings from a JSON file.

    Args:
        path: Path to the settings file.

    Returns:
        The parsed settings.

    Raises:
        SettingsError: If the file cannot be read or parsed.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise SettingsError(f"Cannot read settings {path}: {e}") from e
    if not isinstance(data, dict):
        raise SettingsError(f"Settings {path} must contain a JSON object")
    return QueueSettings.from_mapping(data)
