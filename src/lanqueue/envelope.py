#!/usr/bin/env python3
"""Queue envelopes and their JSON body encoding.

Each message kind is its own frozen dataclass and Envelope is the union of
all of them. Frame bodies are decoded into one of these exactly once, at
the connection boundary, so the rest of the package dispatches on type
instead of inspecting dictionaries.

The body is a UTF-8 JSON object whose "type" field names the kind. Image
bytes travel base64-encoded in "content_encoded".
"""

from __future__ import annotations

import base64
import binascii
import json
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Union

from lanqueue.errors import MalformedEnvelope
from lanqueue.protocol import MAX_FRAME_SIZE, encode_frame


@dataclass(frozen=True)
class MemberInfo:
    """One roster entry as it travels on the wire."""

    id: str
    name: str | None = None
    addr: str | None = None


@dataclass(frozen=True)
class Hello:
    """First frame a joining client sends."""

    password: str
    member_name: str | None = None
    member_id: str | None = None


@dataclass(frozen=True)
class HelloAck:
    """Host accepted the client; self_id is the id the client is known by."""

    self_id: str
    queue_name: str | None = None
    members: tuple[MemberInfo, ...] = ()
    host_id: str | None = None


@dataclass(frozen=True)
class HelloReject:
    reason: str


@dataclass(frozen=True)
class MemberList:
    members: tuple[MemberInfo, ...] = ()


@dataclass(frozen=True)
class Ping:
    pass


@dataclass(frozen=True)
class Pong:
    pass


@dataclass(frozen=True)
class Text:
    """A clipboard text event."""

    message_id: str
    sender_id: str
    content: str
    created_at: str
    sender_name: str | None = None


@dataclass(frozen=True)
class Image:
    """A clipboard image event carrying raw image bytes."""

    message_id: str
    sender_id: str
    content: bytes
    created_at: str
    sender_name: str | None = None


Envelope = Union[Hello, HelloAck, HelloReject, MemberList, Ping, Pong, Text, Image]
ClipboardEnvelope = Union[Text, Image]

_TAGS: dict[type, str] = {
    Hello: "hello",
    HelloAck: "hello_ack",
    HelloReject: "hello_reject",
    MemberList: "member_list",
    Ping: "ping",
    Pong: "pong",
    Text: "text",
    Image: "image",
}


def new_message_id() -> str:
    """Return a fresh message identifier."""
    return uuid.uuid4().hex


def utc_timestamp() -> str:
    """Return the current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def encode_envelope(envelope: Envelope) -> bytes:
    """
    Encode an envelope as a UTF-8 JSON body.

    Args:
        envelope: Any envelope kind.

    Returns:
        The body bytes, without the length prefix.
    """
    tag = _TAGS[type(envelope)]
    fields = asdict(envelope)
    if isinstance(envelope, Image):
        del fields["content"]
        fields["content_encoded"] = base64.b64encode(envelope.content).decode("ascii")
    return json.dumps({"type": tag, **fields}, ensure_ascii=False).encode("utf-8")


def frame_envelope(envelope: Envelope, max_size: int = MAX_FRAME_SIZE) -> bytes:
    """
    Encode an envelope as a complete frame.

    Raises:
        FrameTooLarge: If the encoded body exceeds max_size.
    """
    return encode_frame(encode_envelope(envelope), max_size)


def decode_envelope(body: bytes) -> Envelope:
    """
    Decode a frame body into an envelope.

    Args:
        body: Frame body bytes.

    Returns:
        The decoded envelope.

    Raises:
        MalformedEnvelope: If the body is not UTF-8 JSON, names an unknown
            kind, or is missing a required field.
    """
    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        raise MalformedEnvelope(f"Body is not UTF-8 JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedEnvelope("Body is not a JSON object")
    tag = data.get("type")
    decoder = _DECODERS.get(tag) if isinstance(tag, str) else None
    if decoder is None:
        raise MalformedEnvelope(f"Unknown envelope type: {tag!r}")
    return decoder(data)


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise MalformedEnvelope(f"Field {key!r} must be a string")
    return value


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise MalformedEnvelope(f"Field {key!r} must be a string or null")
    return value


def _members(data: dict[str, Any]) -> tuple[MemberInfo, ...]:
    entries = data.get("members")
    if not isinstance(entries, list):
        raise MalformedEnvelope("Field 'members' must be a list")
    members = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise MalformedEnvelope("Member entries must be objects")
        members.append(
            MemberInfo(
                id=_require_str(entry, "id"),
                name=_optional_str(entry, "name"),
                addr=_optional_str(entry, "addr"),
            )
        )
    return tuple(members)


def _decode_image(data: dict[str, Any]) -> Image:
    try:
        content = base64.b64decode(_require_str(data, "content_encoded"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedEnvelope(f"Image content is not valid base64: {e}") from e
    return Image(
        message_id=_require_str(data, "message_id"),
        sender_id=_require_str(data, "sender_id"),
        content=content,
        created_at=_require_str(data, "created_at"),
        sender_name=_optional_str(data, "sender_name"),
    )


_DECODERS: dict[Any, Callable[[dict[str, Any]], Envelope]] = {
    "hello": lambda d: Hello(
        password=_require_str(d, "password"),
        member_name=_optional_str(d, "member_name"),
        member_id=_optional_str(d, "member_id"),
    ),
    "hello_ack": lambda d: HelloAck(
        self_id=_require_str(d, "self_id"),
        queue_name=_optional_str(d, "queue_name"),
        members=_members(d),
        host_id=_optional_str(d, "host_id"),
    ),
    "hello_reject": lambda d: HelloReject(reason=_require_str(d, "reason")),
    "member_list": lambda d: MemberList(members=_members(d)),
    "ping": lambda d: Ping(),
    "pong": lambda d: Pong(),
    "text": lambda d: Text(
        message_id=_require_str(d, "message_id"),
        sender_id=_require_str(d, "sender_id"),
        content=_require_str(d, "content"),
        created_at=_require_str(d, "created_at"),
        sender_name=_optional_str(d, "sender_name"),
    ),
    "image": _decode_image,
}
