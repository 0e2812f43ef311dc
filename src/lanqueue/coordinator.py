#!/usr/bin/env python3
"""Queue coordinator: the single owner of session state.

The coordinator runs as one asyncio task consuming an inbox of commands
(from the QueueSession facade) and events (from connection units, the
listener and the join handshake). It applies them one at a time, so the
role, the membership map, the client roster and the dedup cache are only
ever touched from here and need no locks.

Failures on one connection are logged and end that connection only.
Failures of a command are returned to whoever issued it.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import suppress
from typing import TYPE_CHECKING

from lanqueue import fanout, heartbeat
from lanqueue.bridge import LanClipboardItem
from lanqueue.connection import MemberConnection
from lanqueue.coordinator_messages import (
    Accepted,
    Command,
    ConnectionLost,
    FrameReceived,
    HandshakeFinished,
    HeartbeatDue,
    Join,
    Leave,
    Publish,
    Shutdown,
    StartHost,
)
from lanqueue.dedup import DedupCache
from lanqueue.envelope import (
    ClipboardEnvelope,
    Envelope,
    Hello,
    HelloAck,
    HelloReject,
    Image,
    MemberInfo,
    MemberList,
    Ping,
    Pong,
    Text,
    frame_envelope,
    new_message_id,
    utc_timestamp,
)
from lanqueue.errors import (
    AddressInUse,
    MalformedEnvelope,
    MemberDisconnected,
    QueueAlreadyActive,
    QueueError,
    QueueNotActive,
)
from lanqueue.handshake import client_handshake
from lanqueue.hashing import password_digest, password_matches
from lanqueue.notify import QUEUE_MEMBERS, QUEUE_STATUS
from lanqueue.protocol import CLOSE_DRAIN_TIMEOUT
from lanqueue.queue_constants import REJECT_INVALID_PASSWORD
from lanqueue.session_state import QueueMember, QueueRole, SessionState, normalize_name

if TYPE_CHECKING:
    from lanqueue.bridge import ClipboardBridge
    from lanqueue.notify import Notifier
    from lanqueue.settings import QueueTuning

logger = logging.getLogger(__name__)

# Returned by a command handler that resolves its reply later.
_DEFERRED = object()


class Coordinator:
    """Owns the queue session and applies commands and events serially.

    Attributes:
        state: The session state; read-only outside the coordinator.
        dedup: Message ids already handled.
        last_error: Why the last client session ended, if it was not leave().
    """

    def __init__(
        self, tuning: QueueTuning, notifier: Notifier, bridge: ClipboardBridge
    ) -> None:
        self.tuning = tuning
        self.state = SessionState()
        self.dedup = DedupCache(tuning.dedup_capacity, tuning.dedup_ttl)
        self.last_error: QueueError | None = None
        self._notifier = notifier
        self._bridge = bridge
        self._inbox: asyncio.Queue[object] = asyncio.Queue()
        self._server: asyncio.AbstractServer | None = None
        self._pending: set[MemberConnection] = set()
        self._members: dict[str, MemberConnection] = {}
        self._host_link: MemberConnection | None = None
        self._roster: tuple[MemberInfo, ...] = ()
        self._join_task: asyncio.Task | None = None
        self._join_reply: asyncio.Future | None = None
        self._congested: list[MemberConnection] = []
        self._handlers = {
            StartHost: self._start_host,
            Join: self._join,
            Leave: self._leave,
            Publish: self._publish,
            Accepted: self._accepted,
            FrameReceived: self._frame_received,
            ConnectionLost: self._connection_lost,
            HeartbeatDue: self._heartbeat_due,
            HandshakeFinished: self._handshake_finished,
        }

    def submit(self, message: object) -> None:
        """Queue a command or event for the coordinator loop."""
        self._inbox.put_nowait(message)

    def connections(self) -> list[MemberConnection]:
        """Every connection the coordinator currently tracks."""
        tracked = list(self._pending) + list(self._members.values())
        if self._host_link is not None:
            tracked.append(self._host_link)
        return tracked

    def member_snapshot(self) -> list[QueueMember]:
        """Current members, self first, exactly one entry marked is_self."""
        self_entry = QueueMember(
            id=self.state.self_id, name=self.state.self_name, addr=None, is_self=True
        )
        if self.state.role is QueueRole.CONNECTED:
            others = [
                QueueMember(id=m.id, name=m.name, addr=m.addr)
                for m in self._roster
                if m.id != self.state.self_id
            ]
        else:
            others = [
                QueueMember(id=c.member_id, name=c.display_name, addr=c.address)
                for c in self._members.values()
            ]
        return [self_entry, *others]

    async def run(self) -> None:
        """Process the inbox until a Shutdown command arrives."""
        while True:
            message = await self._inbox.get()
            if isinstance(message, Shutdown):
                await self._leave(message)
                _resolve(message.reply, None)
                return
            handler = self._handlers[type(message)]
            try:
                result = await handler(message)
            except QueueError as e:
                if isinstance(message, Command):
                    _fail(message.reply, e)
                else:
                    logger.warning("Failed handling %s: %s", type(message).__name__, e)
            except Exception as e:
                logger.exception("Coordinator failed handling %s", type(message).__name__)
                if isinstance(message, Command):
                    _fail(message.reply, e)
            else:
                if isinstance(message, Command) and result is not _DEFERRED:
                    _resolve(message.reply, result)
            await self._drop_congested()

    # Commands

    async def _start_host(self, command: StartHost) -> object:
        self._require_off()
        bind_host = self.tuning.bind_host
        try:
            server = await asyncio.start_server(self._on_accept, bind_host, command.port)
        except OSError as e:
            raise AddressInUse(f"Failed to bind {bind_host}:{command.port}: {e}") from e
        self._server = server
        sockets = server.sockets or ()
        port = sockets[0].getsockname()[1] if sockets else command.port
        self.last_error = None
        self.state.role = QueueRole.HOSTING
        self.state.host = bind_host
        self.state.port = port
        self.state.queue_name = normalize_name(command.queue_name)
        self.state.self_name = normalize_name(command.member_name) or self.state.queue_name
        self.state.password_digest = password_digest(command.password)
        logger.info("Hosting queue %s on %s:%s", self.state.queue_name, bind_host, port)
        self._emit_status()
        self._emit_members()
        return self.state.status()

    async def _join(self, command: Join) -> object:
        self._require_off()
        self.last_error = None
        self.state.role = QueueRole.JOINING
        self.state.host = command.host
        self.state.port = command.port
        self.state.self_name = normalize_name(command.member_name)
        self._emit_status()
        hello = Hello(
            password=command.password,
            member_name=self.state.self_name,
            member_id=self.state.self_id,
        )
        task = asyncio.create_task(
            client_handshake(command.host, command.port, hello, self.tuning)
        )
        task.add_done_callback(lambda t: self.submit(HandshakeFinished(t)))
        self._join_task = task
        self._join_reply = command.reply
        return _DEFERRED

    async def _leave(self, command: Leave | Shutdown) -> None:
        if self.state.role is QueueRole.OFF and not self.connections():
            return
        await self._teardown()

    async def _publish(self, command: Publish) -> str:
        role = self.state.role
        if role not in (QueueRole.HOSTING, QueueRole.CONNECTED):
            raise QueueNotActive(f"Cannot publish while {role.value}")
        message_id = command.message_id or new_message_id()
        envelope: ClipboardEnvelope
        if command.kind == "image":
            envelope = Image(
                message_id=message_id,
                sender_id=self.state.self_id,
                content=bytes(command.content),
                created_at=utc_timestamp(),
                sender_name=self.state.self_name,
            )
        else:
            envelope = Text(
                message_id=message_id,
                sender_id=self.state.self_id,
                content=str(command.content),
                created_at=utc_timestamp(),
                sender_name=self.state.self_name,
            )
        frame = frame_envelope(envelope, self.tuning.max_frame_size)
        if not self.dedup.remember(message_id):
            logger.debug("Message %s already sent, skipping", message_id)
            return message_id
        if role is QueueRole.HOSTING:
            self._congested.extend(
                fanout.relay(
                    self._members.values(), frame, None, self.tuning.slow_peer_drop_limit
                )
            )
        elif self._host_link is not None:
            self._send_frame(self._host_link, frame)
        logger.debug("Published %s %s", command.kind, message_id)
        return message_id

    # Events

    async def _accepted(self, event: Accepted) -> None:
        connection = event.connection
        if self.state.role is not QueueRole.HOSTING:
            await connection.close()
            return
        logger.debug("Accepted connection from %s", connection.address)
        self._pending.add(connection)
        connection.start()

    async def _frame_received(self, event: FrameReceived) -> None:
        connection, envelope = event.connection, event.envelope
        if connection in self._pending:
            await self._authenticate(connection, envelope)
        elif connection is self._host_link:
            await self._from_host(connection, envelope)
        elif self._members.get(connection.member_id) is connection:
            await self._from_member(connection, envelope)
        else:
            logger.debug("Ignoring frame from untracked %r", connection)

    async def _connection_lost(self, event: ConnectionLost) -> None:
        connection, error = event.connection, event.error
        if connection in self._pending:
            self._pending.discard(connection)
            logger.warning("Handshake with %s failed: %s", connection.address, error)
            await connection.close()
        elif connection is self._host_link:
            await self._lose_host(error)
        elif self._members.get(connection.member_id) is connection:
            await self._drop_member(connection, error)
        else:
            await connection.close()

    async def _heartbeat_due(self, event: HeartbeatDue) -> None:
        connection = event.connection
        if connection.closed or connection not in self.connections():
            return
        if heartbeat.ping_due(connection, self.tuning.max_missed_pongs):
            self._send(connection, Ping())
            return
        error = MemberDisconnected(
            f"No pong from {connection.member_id} after "
            f"{self.tuning.max_missed_pongs} pings"
        )
        await self._connection_lost(ConnectionLost(connection, error))

    async def _handshake_finished(self, event: HandshakeFinished) -> None:
        task = event.task
        if task is not self._join_task:
            _close_handshake(task)
            return
        reply = self._join_reply
        self._join_task = None
        self._join_reply = None
        if task.cancelled():
            self._reset()
            return
        error = task.exception()
        if error is not None:
            logger.warning("Join %s:%s failed: %s", self.state.host, self.state.port, error)
            self._reset()
            _fail(reply, error)
            return
        reader, writer, ack = task.result()
        if reply is None or reply.done():
            writer.close()
            self._reset()
            return
        connection = MemberConnection(reader, writer, self.submit, self.tuning)
        host_entry = next((m for m in ack.members if m.id == ack.host_id), None)
        connection.activate(ack.host_id or "host", host_entry.name if host_entry else None)
        self._host_link = connection
        self.state.self_id = ack.self_id
        self.state.queue_name = ack.queue_name
        self.state.role = QueueRole.CONNECTED
        self._roster = ack.members
        connection.start()
        connection.start_heartbeat()
        logger.info("Joined queue %s at %s", ack.queue_name, connection.address)
        self._emit_status()
        self._emit_members()
        _resolve(reply, self.state.status())

    # Host side

    def _on_accept(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        connection = MemberConnection(
            reader, writer, self.submit, self.tuning, awaiting_hello=True
        )
        self.submit(Accepted(connection))

    async def _authenticate(self, connection: MemberConnection, envelope: Envelope) -> None:
        self._pending.discard(connection)
        if not isinstance(envelope, Hello):
            logger.warning(
                "Dropping %s: %s",
                connection.address,
                MalformedEnvelope(f"expected hello, got {type(envelope).__name__}"),
            )
            await connection.close()
            return
        if not password_matches(envelope.password, self.state.password_digest):
            logger.warning("Rejected %s: invalid password", connection.address)
            self._send(connection, HelloReject(reason=REJECT_INVALID_PASSWORD))
            await connection.close(flush=True)
            return
        member_id = self._assign_member_id(envelope.member_id)
        connection.activate(member_id, normalize_name(envelope.member_name))
        self._members[member_id] = connection
        self._send(
            connection,
            HelloAck(
                self_id=member_id,
                queue_name=self.state.queue_name,
                members=self._roster_info(),
                host_id=self.state.self_id,
            ),
        )
        connection.start_heartbeat()
        logger.info(
            "Member %s (%s) joined from %s",
            member_id,
            connection.display_name,
            connection.address,
        )
        self._broadcast_members(exclude=member_id)
        self._emit_members()

    def _assign_member_id(self, offered: str | None) -> str:
        offered = normalize_name(offered)
        if offered and offered != self.state.self_id and offered not in self._members:
            return offered
        return uuid.uuid4().hex

    async def _from_member(self, connection: MemberConnection, envelope: Envelope) -> None:
        if isinstance(envelope, Ping):
            self._send(connection, Pong())
        elif isinstance(envelope, Pong):
            heartbeat.record_pong(connection)
        elif isinstance(envelope, (Text, Image)):
            self._receive_clipboard(envelope, source_id=connection.member_id)
        else:
            logger.debug(
                "Ignoring %s from member %s", type(envelope).__name__, connection.member_id
            )

    async def _drop_member(self, connection: MemberConnection, error: Exception) -> None:
        del self._members[connection.member_id]
        logger.warning("Member %s disconnected: %s", connection.member_id, error)
        await connection.close()
        self._broadcast_members(exclude=None)
        self._emit_members()

    async def _drop_congested(self) -> None:
        while self._congested:
            connection = self._congested.pop()
            if self._members.get(connection.member_id) is connection:
                await self._drop_member(
                    connection,
                    MemberDisconnected(
                        f"{self.tuning.slow_peer_drop_limit} frames refused by slow peer"
                    ),
                )
            elif connection is self._host_link:
                await self._lose_host(MemberDisconnected("Link to host is congested"))

    def _broadcast_members(self, exclude: str | None) -> None:
        frame = frame_envelope(MemberList(members=self._roster_info()), self.tuning.max_frame_size)
        self._congested.extend(
            fanout.relay(self._members.values(), frame, exclude, self.tuning.slow_peer_drop_limit)
        )

    def _roster_info(self) -> tuple[MemberInfo, ...]:
        host = MemberInfo(id=self.state.self_id, name=self.state.self_name, addr=None)
        return (host,) + tuple(
            MemberInfo(id=c.member_id, name=c.display_name, addr=c.address)
            for c in self._members.values()
        )

    # Client side

    async def _from_host(self, connection: MemberConnection, envelope: Envelope) -> None:
        if isinstance(envelope, Ping):
            self._send(connection, Pong())
        elif isinstance(envelope, Pong):
            heartbeat.record_pong(connection)
        elif isinstance(envelope, (Text, Image)):
            self._receive_clipboard(envelope, source_id=None)
        elif isinstance(envelope, MemberList):
            self._roster = envelope.members
            self._emit_members()
        else:
            logger.debug("Ignoring %s from host", type(envelope).__name__)

    async def _lose_host(self, error: Exception) -> None:
        connection = self._host_link
        self._host_link = None
        logger.warning("Lost connection to host %s: %s", self.state.host, error)
        if connection is not None:
            await connection.close()
        self.last_error = (
            error if isinstance(error, MemberDisconnected) else MemberDisconnected(str(error))
        )
        self._reset()

    # Shared

    def _receive_clipboard(self, envelope: ClipboardEnvelope, source_id: str | None) -> None:
        if not self.dedup.remember(envelope.message_id):
            logger.debug("Dropping duplicate message %s", envelope.message_id)
            return
        item = LanClipboardItem.from_envelope(envelope, self._name_of(envelope.sender_id))
        try:
            self._bridge.insert(item)
        except Exception:
            logger.exception("Clipboard bridge failed for message %s", envelope.message_id)
        if self.state.role is QueueRole.HOSTING:
            frame = frame_envelope(envelope, self.tuning.max_frame_size)
            self._congested.extend(
                fanout.relay(
                    self._members.values(), frame, source_id, self.tuning.slow_peer_drop_limit
                )
            )

    def _name_of(self, member_id: str) -> str | None:
        connection = self._members.get(member_id)
        if connection is not None:
            return connection.display_name
        for member in self._roster:
            if member.id == member_id:
                return member.name
        return None

    def _send(self, connection: MemberConnection, envelope: Envelope) -> None:
        self._send_frame(connection, frame_envelope(envelope, self.tuning.max_frame_size))

    def _send_frame(self, connection: MemberConnection, frame: bytes) -> None:
        if not connection.send_frame(frame) and connection.is_congested(
            self.tuning.slow_peer_drop_limit
        ):
            self._congested.append(connection)

    def _require_off(self) -> None:
        if self.state.role is not QueueRole.OFF:
            raise QueueAlreadyActive(f"Queue is already {self.state.role.value}")

    def _reset(self) -> None:
        self.state.reset()
        self._roster = ()
        self._emit_status()
        self._emit_members()

    async def _teardown(self) -> None:
        if self._join_task is not None:
            task, reply = self._join_task, self._join_reply
            self._join_task = None
            self._join_reply = None
            task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await task
            _close_handshake(task)
            _fail(reply, QueueNotActive("Left before the join completed"))
        server, self._server = self._server, None
        if server is not None:
            server.close()
        connections = self.connections()
        self._pending.clear()
        self._members.clear()
        self._host_link = None
        self._congested.clear()
        await asyncio.gather(*(c.close() for c in connections))
        if server is not None:
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(server.wait_closed(), CLOSE_DRAIN_TIMEOUT)
        if self.state.role is not QueueRole.OFF:
            logger.info("Left queue")
        self._reset()

    def _emit_status(self) -> None:
        self._notify(QUEUE_STATUS, self.state.status())

    def _emit_members(self) -> None:
        self._notify(QUEUE_MEMBERS, self.member_snapshot())

    def _notify(self, topic: str, payload: object) -> None:
        try:
            self._notifier.publish(topic, payload)
        except Exception:
            logger.exception("Notifier failed for %s", topic)


def _resolve(reply: asyncio.Future | None, result: object) -> None:
    if reply is not None and not reply.done():
        reply.set_result(result)


def _fail(reply: asyncio.Future | None, error: BaseException) -> None:
    if reply is not None and not reply.done():
        reply.set_exception(error)


def _close_handshake(task: asyncio.Task) -> None:
    """Close the socket of a join handshake that completed but was not used."""
    if task.done() and not task.cancelled() and task.exception() is None:
        task.result()[1].close()
