#!/usr/bin/env python3
"""Typed failures raised by the LAN clipboard queue.

Errors raised while starting or joining a queue reach the caller directly.
Errors on an already active connection are logged by the coordinator and
only tear down that connection.
"""


class QueueError(Exception):
    """Base class for all queue failures."""

    pass


class AuthenticationFailed(QueueError):
    """The host rejected the join password."""

    pass


class ConnectionTimeout(QueueError):
    """A connect, handshake or heartbeat wait ran out of time."""

    pass


class AddressInUse(QueueError):
    """The host listener could not bind its port."""

    pass


class HostUnreachable(QueueError):
    """The host could not be reached or closed the link during the handshake."""

    pass


class MemberDisconnected(QueueError):
    """A peer went away or stopped answering heartbeats."""

    pass


class QueueNotActive(QueueError):
    """The operation needs a hosting or connected session."""

    pass


class QueueAlreadyActive(QueueError):
    """start_host or join was called while a session is running."""

    pass


class ProtocolError(QueueError):
    """
    Exception raised for protocol-level errors.

    Raised when a frame cannot be read or its body cannot be turned into
    an envelope. The connection that produced it is torn down.
    """

    pass


class FrameTooLarge(ProtocolError):
    """A frame length prefix exceeds the configured maximum."""

    pass


class MalformedEnvelope(ProtocolError):
    """A frame body is not a valid envelope."""

    pass
