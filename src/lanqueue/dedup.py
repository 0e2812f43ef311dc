#!/usr/bin/env python3
"""
Message-id tracking for loop and duplicate prevention.

Loop prevention is critical for a relaying host. A clipboard event
published by one member is relayed by the host to every other member, and
a transport that redelivers bytes or a peer that re-sends an event would
otherwise produce a second history insertion and a second relay.

Every clipboard envelope carries a message_id. The cache remembers ids it
has handled, bounded both by count and by age, so that a resident id is
never processed twice.

Critical ordering: remember() must be called BEFORE inserting into
history or relaying, so a duplicate arriving while the first copy is being
handled is already recognized.
"""
import time
from collections import OrderedDict
from typing import Callable

# Default number of ids kept resident.
DEFAULT_CAPACITY: int = 512

# Default lifetime of an entry in seconds.
DEFAULT_TTL: float = 300.0


class DedupCache:
    """
    Bounded LRU/TTL set of recently handled message ids.

    Attributes:
        capacity: Maximum number of resident ids; the least recently seen
            id is evicted first.
        ttl: Seconds after insertion when an id stops being resident.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[str, float] = OrderedDict()

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._entries)

    def __contains__(self, message_id: str) -> bool:
        self._purge_expired()
        return message_id in self._entries

    def remember(self, message_id: str) -> bool:
        """
        Record a message id if it is not already resident.

        Args:
            message_id: Identifier of the clipboard event.

        Returns:
            True if the id was new and is now recorded, False if it was
            already resident and the event must be dropped.
        """
        self._purge_expired()
        if message_id in self._entries:
            self._entries.move_to_end(message_id)
            return False
        self._entries[message_id] = self._clock()
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)
        return True

    def clear(self) -> None:
        """Forget every resident id."""
        self._entries.clear()

    def _purge_expired(self) -> None:
        # Insertion times are not monotonic in OrderedDict order once
        # move_to_end has run, so scan rather than stop at the first live one.
        cutoff = self._clock() - self.ttl
        expired = [mid for mid, inserted in self._entries.items() if inserted <= cutoff]
        for mid in expired:
            del self._entries[mid]
