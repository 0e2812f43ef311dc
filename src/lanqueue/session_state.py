#!/usr/bin/env python3
"""Queue session state.

This module provides the SessionState dataclass owned by the coordinator,
plus the immutable snapshots (QueueStatus, QueueMember) it publishes to
the rest of the application.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import asdict, dataclass, field


class QueueRole(str, enum.Enum):
    """Role of this process in the queue."""

    OFF = "off"
    HOSTING = "hosting"
    JOINING = "joining"
    CONNECTED = "connected"


@dataclass(frozen=True)
class QueueStatus:
    """Snapshot published on every role or connection transition."""

    role: QueueRole
    connected: bool
    self_id: str
    host: str | None = None
    port: int | None = None
    self_name: str | None = None
    queue_name: str | None = None

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["role"] = self.role.value
        return data


@dataclass(frozen=True)
class QueueMember:
    """One entry of a members snapshot."""

    id: str
    name: str | None = None
    addr: str | None = None
    is_self: bool = False


def normalize_name(name: str | None) -> str | None:
    """Trim a display name; blank names become None."""
    if name is None:
        return None
    trimmed = name.strip()
    return trimmed or None


@dataclass
class SessionState:
    """State of the one queue session in this process.

    Only the coordinator mutates this. self_id is generated once and kept
    across leave() so a member keeps its identity between sessions.

    Attributes:
        role: Current role.
        self_id: Identifier of this member.
        self_name: Display name of this member, if any.
        host: Bound address when hosting, remote host when joining.
        port: Bound port when hosting, remote port when joining.
        password_digest: SHA-256 digest of the configured password (host only).
        queue_name: Name of the queue, if any.
    """

    role: QueueRole = QueueRole.OFF
    self_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    self_name: str | None = None
    host: str | None = None
    port: int | None = None
    password_digest: str | None = None
    queue_name: str | None = None

    def reset(self) -> None:
        """Return to Off, keeping self_id and self_name."""
        self.role = QueueRole.OFF
        self.host = None
        self.port = None
        self.password_digest = None
        self.queue_name = None

    def status(self) -> QueueStatus:
        """Build a status snapshot of the current state."""
        return QueueStatus(
            role=self.role,
            connected=self.role in (QueueRole.HOSTING, QueueRole.CONNECTED),
            self_id=self.self_id,
            host=self.host,
            port=self.port,
            self_name=self.self_name,
            queue_name=self.queue_name,
        )
