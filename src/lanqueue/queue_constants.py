#!/usr/bin/env python3
"""Default timing and sizing for queue connections.

QueueTuning in settings.py takes its defaults from here; tests shrink the
intervals to keep heartbeat scenarios fast.
"""

# Address the host listener binds to.
DEFAULT_BIND_HOST: str = "0.0.0.0"

# Seconds allowed for connect plus Hello/HelloAck exchange.
HANDSHAKE_TIMEOUT: float = 5.0

# Seconds between pings on an active connection.
HEARTBEAT_INTERVAL: float = 15.0

# Unanswered pings after which the peer is considered gone (3 x 15 s = 45 s).
MAX_MISSED_PONGS: int = 3

# Frames buffered per connection before sends start to be refused.
OUTBOUND_QUEUE_SIZE: int = 256

# Consecutive refused frames after which a slow peer is disconnected.
SLOW_PEER_DROP_LIMIT: int = 32

# Reason sent in HelloReject on a password mismatch.
REJECT_INVALID_PASSWORD: str = "invalid_password"

# Backoff used by the CLI when --reconnect is given. The queue core itself
# never reconnects.
# First delay between join attempts in seconds.
RECONNECT_INITIAL_WAIT: float = 1.0

# Longest delay between join attempts in seconds.
RECONNECT_MAX_WAIT: float = 30.0

# Growth factor of the delay (delay = initial * multiplier^attempt).
RECONNECT_MULTIPLIER: float = 2.0
