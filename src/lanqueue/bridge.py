#!/usr/bin/env python3
"""Clipboard bridge interface.

The queue does not own clipboard history. When a clipboard envelope passes
the dedup check, the coordinator hands a LanClipboardItem to the bridge the
application supplied, which inserts it into local history tagged as
coming from the LAN.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from lanqueue.envelope import ClipboardEnvelope, Image

# Origin marker attached to every item received from the queue.
LAN_ORIGIN: str = "lan"


@dataclass(frozen=True)
class LanClipboardItem:
    """A clipboard event received from another member.

    Attributes:
        message_id: Identifier of the event, unique per logical copy.
        kind: "text" or "image".
        content: str for text, raw bytes for images.
        created_at: ISO-8601 UTC timestamp set by the sender.
        sender_id: Member id of the original sender.
        sender_name: Display name of the sender, if known.
        origin: Always LAN_ORIGIN.
    """

    message_id: str
    kind: str
    content: str | bytes
    created_at: str
    sender_id: str
    sender_name: str | None = None
    origin: str = LAN_ORIGIN

    @classmethod
    def from_envelope(
        cls, envelope: ClipboardEnvelope, sender_name: str | None = None
    ) -> LanClipboardItem:
        return cls(
            message_id=envelope.message_id,
            kind="image" if isinstance(envelope, Image) else "text",
            content=envelope.content,
            created_at=envelope.created_at,
            sender_id=envelope.sender_id,
            sender_name=envelope.sender_name or sender_name,
        )


class ClipboardBridge(Protocol):
    """Receiver of clipboard events from the queue."""

    def insert(self, item: LanClipboardItem) -> None:
        """Insert one remote clipboard item into local history."""
        ...


class NullBridge:
    """Bridge that discards every item."""

    def insert(self, item: LanClipboardItem) -> None:
        pass
