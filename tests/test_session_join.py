#!/usr/bin/env python3
"""Tests for joining a queue: authentication, rosters and leaving."""
import asyncio

import pytest
from conftest import (
    RecordingBridge,
    RecordingNotifier,
    free_port,
    raw_join,
    read_envelope,
    send_envelope,
    wait_until,
)

from lanqueue.coordinator import Coordinator
from lanqueue.coordinator_messages import Join
from lanqueue.envelope import Hello, HelloAck, HelloReject, MemberList, Ping, frame_envelope
from lanqueue.errors import (
    AuthenticationFailed,
    ConnectionTimeout,
    HostUnreachable,
    MalformedEnvelope,
    MemberDisconnected,
    QueueNotActive,
)
from lanqueue.protocol import encode_frame
from lanqueue.session_state import QueueRole
from lanqueue.settings import QueueTuning

pytestmark = pytest.mark.integration


async def start_host(make_member, **kwargs):
    host = make_member(**kwargs)
    status = await host.session.start_host(0, "secret", queue_name="office", member_name="host")
    return host, status.port


async def start_fake_host(handler):
    """Run a listener whose connections are handed to handler."""
    writers = []

    async def on_accept(reader, writer):
        writers.append(writer)
        await handler(reader, writer)

    server = await asyncio.start_server(on_accept, "127.0.0.1", 0)
    return server, server.sockets[0].getsockname()[1], writers


async def stop_fake_host(server, writers):
    for writer in writers:
        writer.close()
    server.close()
    await server.wait_closed()


@pytest.mark.asyncio
async def test_join_lists_both_members(make_member) -> None:
    """Test host and client each see two members, one marked as self."""
    host, port = await start_host(make_member)
    client = make_member()
    status = await client.session.join("127.0.0.1", port, "secret", member_name="laptop")

    assert status.role is QueueRole.CONNECTED
    assert status.connected is True
    assert status.queue_name == "office"
    assert status.self_name == "laptop"
    await wait_until(lambda: len(host.session.members()) == 2)

    host_members = host.session.members()
    client_members = client.session.members()
    assert len(client_members) == 2
    assert sum(m.is_self for m in host_members) == 1
    assert sum(m.is_self for m in client_members) == 1
    assert {m.id for m in host_members} == {m.id for m in client_members}
    assert host_members[1].id == status.self_id
    assert host_members[1].name == "laptop"
    assert host_members[1].addr.startswith("127.0.0.1:")
    assert client_members[1].name == "host"


@pytest.mark.asyncio
async def test_join_notifies_joining_then_connected(make_member) -> None:
    """Test the client publishes its role transitions in order."""
    _, port = await start_host(make_member)
    client = make_member()
    await client.session.join("127.0.0.1", port, "secret")
    roles = [s.role for s in client.notifier.statuses]
    assert roles == [QueueRole.JOINING, QueueRole.CONNECTED]


@pytest.mark.asyncio
async def test_third_member_updates_existing_client(make_member) -> None:
    """Test a roster broadcast reaches members that joined earlier."""
    host, port = await start_host(make_member)
    first = make_member()
    second = make_member()
    await first.session.join("127.0.0.1", port, "secret", member_name="a")
    await second.session.join("127.0.0.1", port, "secret", member_name="b")
    await wait_until(lambda: len(first.session.members()) == 3)
    assert len(second.session.members()) == 3
    assert len(host.session.members()) == 3
    assert {m.name for m in first.session.members()} == {"host", "a", "b"}


@pytest.mark.asyncio
async def test_wrong_password_rejected(make_member) -> None:
    """Test a wrong password fails the join and leaves the host unchanged."""
    host, port = await start_host(make_member)
    member = make_member()
    await member.session.join("127.0.0.1", port, "secret")
    await wait_until(lambda: len(host.session.members()) == 2)

    intruder = make_member()
    with pytest.raises(AuthenticationFailed, match="invalid_password"):
        await intruder.session.join("127.0.0.1", port, "wrong")
    assert intruder.session.status().role is QueueRole.OFF
    await asyncio.sleep(0.05)
    assert len(host.session.members()) == 2


@pytest.mark.asyncio
async def test_password_is_case_sensitive(make_member) -> None:
    """Test a password differing in case is rejected."""
    _, port = await start_host(make_member)
    client = make_member()
    with pytest.raises(AuthenticationFailed):
        await client.session.join("127.0.0.1", port, "SECRET")


@pytest.mark.asyncio
async def test_raw_wrong_password_gets_reject_then_close(make_member) -> None:
    """Test the host answers HelloReject and closes the socket."""
    _, port = await start_host(make_member)
    reader, writer, reply = await raw_join(port, "wrong")
    assert reply == HelloReject(reason="invalid_password")
    assert await asyncio.wait_for(reader.read(), 2.0) == b""
    writer.close()


@pytest.mark.asyncio
async def test_join_unreachable_host(make_member) -> None:
    """Test a refused connection raises HostUnreachable and resets to off."""
    client = make_member()
    with pytest.raises(HostUnreachable):
        await client.session.join("127.0.0.1", free_port(), "secret")
    assert client.session.status().role is QueueRole.OFF
    assert [s.role for s in client.notifier.statuses] == [QueueRole.JOINING, QueueRole.OFF]


@pytest.mark.asyncio
async def test_join_silent_host_times_out(make_member) -> None:
    """Test a host that never answers the hello raises ConnectionTimeout."""

    async def silent(reader, writer):
        await reader.read()

    server, port, writers = await start_fake_host(silent)
    client = make_member(QueueTuning(bind_host="127.0.0.1", handshake_timeout=0.2))
    try:
        with pytest.raises(ConnectionTimeout):
            await client.session.join("127.0.0.1", port, "secret")
        assert client.session.status().role is QueueRole.OFF
    finally:
        await stop_fake_host(server, writers)


@pytest.mark.asyncio
async def test_join_garbage_reply(make_member) -> None:
    """Test a reply that is not an envelope raises MalformedEnvelope."""

    async def garbage(reader, writer):
        writer.write(encode_frame(b"\x00\x01 not json"))
        await writer.drain()

    server, port, writers = await start_fake_host(garbage)
    client = make_member()
    try:
        with pytest.raises(MalformedEnvelope):
            await client.session.join("127.0.0.1", port, "secret")
    finally:
        await stop_fake_host(server, writers)


@pytest.mark.asyncio
async def test_join_unexpected_reply(make_member) -> None:
    """Test a valid envelope other than hello_ack raises MalformedEnvelope."""

    async def pinger(reader, writer):
        writer.write(frame_envelope(Ping()))
        await writer.drain()

    server, port, writers = await start_fake_host(pinger)
    client = make_member()
    try:
        with pytest.raises(MalformedEnvelope, match="hello_ack"):
            await client.session.join("127.0.0.1", port, "secret")
    finally:
        await stop_fake_host(server, writers)


@pytest.mark.asyncio
async def test_leave_while_joining(make_member) -> None:
    """Test leave during the handshake fails the pending join."""

    async def silent(reader, writer):
        await reader.read()

    server, port, writers = await start_fake_host(silent)
    client = make_member()
    try:
        join = asyncio.create_task(client.session.join("127.0.0.1", port, "secret"))
        await wait_until(lambda: client.session.status().role is QueueRole.JOINING)
        await client.session.leave()
        with pytest.raises(QueueNotActive):
            await join
        assert client.session.status().role is QueueRole.OFF
    finally:
        await stop_fake_host(server, writers)


@pytest.mark.asyncio
async def test_client_leave_removes_member(make_member) -> None:
    """Test the host drops a member that leaves."""
    host, port = await start_host(make_member)
    client = make_member()
    await client.session.join("127.0.0.1", port, "secret")
    await wait_until(lambda: len(host.session.members()) == 2)
    await client.session.leave()
    assert client.session.status().role is QueueRole.OFF
    assert client.session.last_error is None
    await wait_until(lambda: len(host.session.members()) == 1)
    assert len(host.notifier.member_lists[-1]) == 1


@pytest.mark.asyncio
async def test_host_leave_disconnects_client(make_member) -> None:
    """Test members return to off with MemberDisconnected when the host leaves."""
    host, port = await start_host(make_member)
    client = make_member()
    await client.session.join("127.0.0.1", port, "secret")
    await host.session.leave()
    await wait_until(lambda: client.session.status().role is QueueRole.OFF)
    assert isinstance(client.session.last_error, MemberDisconnected)
    assert len(client.session.members()) == 1


@pytest.mark.asyncio
async def test_client_keeps_host_assigned_id(make_member) -> None:
    """Test the client adopts the id the host assigned."""
    host, port = await start_host(make_member)
    client = make_member()
    status = await client.session.join("127.0.0.1", port, "secret")
    await wait_until(lambda: len(host.session.members()) == 2)
    assert host.session.members()[1].id == status.self_id == client.session.status().self_id


@pytest.mark.asyncio
async def test_colliding_member_id_is_replaced(make_member) -> None:
    """Test an offered id already in use gets a fresh one."""
    host, port = await start_host(make_member)
    host_id = host.session.status().self_id

    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    await send_envelope(writer, Hello(password="secret", member_id=host_id))
    ack = await read_envelope(reader)
    assert isinstance(ack, HelloAck)
    assert ack.self_id != host_id
    assert ack.host_id == host_id

    reader2, writer2 = await asyncio.open_connection("127.0.0.1", port)
    await send_envelope(writer2, Hello(password="secret", member_id=ack.self_id))
    ack2 = await read_envelope(reader2)
    assert ack2.self_id not in (host_id, ack.self_id)
    writer.close()
    writer2.close()


@pytest.mark.asyncio
async def test_raw_join_receives_roster_updates(make_member) -> None:
    """Test an authenticated raw member gets a member_list when others join."""
    _, port = await start_host(make_member)
    reader, writer, ack = await raw_join(port, "secret", member_name="raw")
    assert isinstance(ack, HelloAck)
    assert ack.queue_name == "office"
    assert [m.name for m in ack.members] == ["host", "raw"]

    client = make_member()
    await client.session.join("127.0.0.1", port, "secret", member_name="late")
    while True:
        envelope = await read_envelope(reader)
        if isinstance(envelope, MemberList):
            break
    assert [m.name for m in envelope.members] == ["host", "raw", "late"]
    writer.close()


@pytest.mark.asyncio
async def test_unauthenticated_connection_dropped_after_timeout(make_member) -> None:
    """Test a socket that never says hello is closed by the host."""
    host, port = await start_host(
        make_member, member_tuning=QueueTuning(bind_host="127.0.0.1", handshake_timeout=0.2)
    )
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    assert await asyncio.wait_for(reader.read(), 2.0) == b""
    assert len(host.session.members()) == 1
    writer.close()


@pytest.mark.asyncio
async def test_non_hello_first_frame_dropped(make_member) -> None:
    """Test a first frame other than hello closes the socket."""
    host, port = await start_host(make_member)
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    await send_envelope(writer, Ping())
    assert await asyncio.wait_for(reader.read(), 2.0) == b""
    assert len(host.session.members()) == 1
    writer.close()


@pytest.mark.asyncio
async def test_leave_after_handshake_completed_closes_socket(make_member, tuning) -> None:
    """Test a finished but unprocessed join handshake is closed by leave."""
    host, port = await start_host(make_member)
    coordinator = Coordinator(tuning, RecordingNotifier(), RecordingBridge())
    reply = asyncio.get_running_loop().create_future()
    await coordinator._join(Join("127.0.0.1", port, "secret", "late", reply))
    task = coordinator._join_task
    await wait_until(task.done)
    await wait_until(lambda: len(host.session.members()) == 2)

    await coordinator._teardown()
    with pytest.raises(QueueNotActive):
        await reply
    await coordinator._handshake_finished(coordinator._inbox.get_nowait())
    await wait_until(lambda: len(host.session.members()) == 1)
    assert coordinator.state.role is QueueRole.OFF
