"""Wire format: framed JSON messages.

A frame is six ASCII hex digits giving the payload length in bytes,
followed by the UTF-8 JSON payload. The payload is an :class:`RpcMessage`.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from cellsync.constants import FRAME_HEADER_BYTES, MAX_FRAME_PAYLOAD
from cellsync.resilience.errors import ConnectionLost, ProtocolError

MessageKind = Literal["call", "return", "error"]


class RpcErrorBody(BaseModel):
    """Failure reported by the side that ran the call."""

    type: str
    message: str = ""


class RpcMessage(BaseModel):
    """One framed message. ``id`` correlates a reply with its call."""

    kind: MessageKind
    id: str
    method: str | None = None
    params: list[Any] = Field(default_factory=lambda: list[Any]())
    result: Any = None
    error: RpcErrorBody | None = None


def new_call_id() -> str:
    return uuid.uuid4().hex


def make_call(method: str, params: list[Any]) -> RpcMessage:
    return RpcMessage(
        kind="call", id=new_call_id(), method=method, params=params
    )


def make_return(call_id: str, result: Any) -> RpcMessage:
    return RpcMessage(kind="return", id=call_id, result=result)


def make_error(call_id: str, exc: BaseException) -> RpcMessage:
    return RpcMessage(
        kind="error",
        id=call_id,
        error=RpcErrorBody(type=type(exc).__name__, message=str(exc)),
    )


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------


def encode_frame(message: RpcMessage) -> bytes:
    """Serialize *message* into a length-prefixed frame."""
    payload = message.model_dump_json().encode("utf-8")
    if len(payload) > MAX_FRAME_PAYLOAD:
        raise ProtocolError(
            f"payload of {len(payload)} bytes exceeds frame limit"
        )
    header = f"{len(payload):0{FRAME_HEADER_BYTES}x}".encode("ascii")
    return header + payload


def parse_header(header: bytes) -> int:
    """Return the payload length announced by a frame header."""
    try:
        return int(header.decode("ascii"), 16)
    except (UnicodeDecodeError, ValueError) as exc:
        raise ProtocolError(f"bad frame header {header!r}") from exc


def decode_payload(payload: bytes) -> RpcMessage:
    try:
        return RpcMessage.model_validate_json(payload)
    except ValidationError as exc:
        raise ProtocolError(f"bad message: {exc}") from exc


async def read_frame(reader: asyncio.StreamReader) -> RpcMessage | None:
    """Read one message; ``None`` on a clean end-of-stream.

    A stream that ends mid-frame raises :class:`ConnectionLost`.
    """
    try:
        header = await reader.readexactly(FRAME_HEADER_BYTES)
    except asyncio.IncompleteReadError as exc:
        if not exc.partial:
            return None
        raise ConnectionLost("stream ended inside a frame header") from exc
    size = parse_header(header)
    try:
        payload = await reader.readexactly(size)
    except asyncio.IncompleteReadError as exc:
        raise ConnectionLost("stream ended inside a frame") from exc
    return decode_payload(payload)
