#!/usr/bin/env python3
"""Tests for liveness detection with short heartbeat intervals."""
import asyncio

import pytest
from conftest import raw_join, read_envelope, send_envelope, wait_until

from lanqueue.envelope import Hello, HelloAck, MemberInfo, Ping, Pong
from lanqueue.errors import MemberDisconnected
from lanqueue.session_state import QueueRole
from lanqueue.settings import QueueTuning

pytestmark = pytest.mark.integration

FAST = QueueTuning(
    bind_host="127.0.0.1", handshake_timeout=1.0, heartbeat_interval=0.05, max_missed_pongs=3
)


async def answer_pings(reader, writer) -> None:
    """Reply to every ping like a live member would."""
    while True:
        envelope = await read_envelope(reader, timeout=5.0)
        if isinstance(envelope, Ping):
            await send_envelope(writer, Pong())


@pytest.mark.asyncio
async def test_silent_member_dropped(make_member) -> None:
    """Test a member that never answers pings is removed from every roster."""
    host = make_member(FAST)
    status = await host.session.start_host(0, "secret", member_name="host")
    client = make_member(FAST)
    await client.session.join("127.0.0.1", status.port, "secret", member_name="live")

    reader, writer, ack = await raw_join(status.port, "secret", member_name="silent")
    assert isinstance(ack, HelloAck)

    await wait_until(lambda: len(host.session.members()) == 2, timeout=3.0)
    await wait_until(lambda: len(client.session.members()) == 2)
    assert "silent" not in {m.name for m in host.session.members()}
    assert client.session.status().role is QueueRole.CONNECTED
    writer.close()


@pytest.mark.asyncio
async def test_answering_member_kept(make_member) -> None:
    """Test pongs keep a member in the queue past several intervals."""
    host = make_member(FAST)
    status = await host.session.start_host(0, "secret")
    reader, writer, _ = await raw_join(status.port, "secret", member_name="alive")
    responder = asyncio.create_task(answer_pings(reader, writer))
    try:
        await asyncio.sleep(0.5)
        assert len(host.session.members()) == 2
    finally:
        responder.cancel()
        await asyncio.gather(responder, return_exceptions=True)
        writer.close()


@pytest.mark.asyncio
async def test_sessions_stay_connected(make_member) -> None:
    """Test two sessions answering each other's pings stay connected."""
    host = make_member(FAST)
    status = await host.session.start_host(0, "secret")
    client = make_member(FAST)
    await client.session.join("127.0.0.1", status.port, "secret")
    await asyncio.sleep(0.5)
    assert client.session.status().role is QueueRole.CONNECTED
    assert len(host.session.members()) == 2


@pytest.mark.asyncio
async def test_client_loses_silent_host(make_member) -> None:
    """Test a client returns to off when the host stops answering pings."""

    async def mute_host(reader, writer):
        hello = await read_envelope(reader)
        assert isinstance(hello, Hello)
        ack = HelloAck(
            self_id="c1",
            queue_name="mute",
            members=(MemberInfo(id="h", name="mute host"), MemberInfo(id="c1")),
            host_id="h",
        )
        await send_envelope(writer, ack)
        await reader.read()

    writers = []

    async def on_accept(reader, writer):
        writers.append(writer)
        await mute_host(reader, writer)

    server = await asyncio.start_server(on_accept, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    client = make_member(FAST)
    try:
        status = await client.session.join("127.0.0.1", port, "secret")
        assert status.self_id == "c1"
        assert [m.name for m in client.session.members()] == [None, "mute host"]
        await wait_until(lambda: client.session.status().role is QueueRole.OFF)
        assert isinstance(client.session.last_error, MemberDisconnected)
        assert "pings" in str(client.session.last_error)
    finally:
        for writer in writers:
            writer.close()
        server.close()
        await server.wait_closed()
