"""Runtime-side notifier imported by instrumented code.

Instrumented source runs inside the execution runtime, usually without
an event loop of its own, so this client is synchronous: one blocking
socket, one call at a time, each waiting for the session's reply. Calls
are spaced at least ``notify_min_interval_ms`` apart to bound bursts.

The session's host/port arrive in the preamble of the submitted source,
so one runtime process can serve several sessions. Code run without that
preamble falls back to ``CELLSYNC_NOTIFY_HOST`` / ``CELLSYNC_NOTIFY_PORT``.
"""

from __future__ import annotations

import logging
import socket
import time
from types import TracebackType

from cellsync.config import Settings
from cellsync.constants import FRAME_HEADER_BYTES, NO_LINE, RpcMethod
from cellsync.resilience.errors import (
    ConnectionLost,
    ProtocolError,
    RemoteError,
)
from cellsync.rpc.protocol import (
    RpcMessage,
    decode_payload,
    encode_frame,
    make_call,
    parse_header,
)

logger = logging.getLogger(__name__)


class ArtifactNotifier:
    """Sends notifyArtifactCreated for one surface."""

    def __init__(
        self,
        surface_id: str,
        host: str,
        port: int,
        *,
        generation: int | None = None,
        min_interval_ms: float = 10.0,
        timeout: float | None = None,
    ) -> None:
        self.surface_id = surface_id
        self.generation = generation
        self._address = (host, port)
        self._min_interval = min_interval_ms / 1000
        self._timeout = timeout
        self._sock: socket.socket | None = None
        self._last_sent = 0.0
        self.sent = 0

    @classmethod
    def from_env(
        cls,
        surface_id: str,
        generation: int | None = None,
        address: tuple[str, int] | None = None,
    ) -> ArtifactNotifier:
        """Build from ``CELLSYNC_*`` settings; an explicit *address* or
        *generation* (from the submitted preamble) takes precedence."""
        settings = Settings()
        host, port = (
            address
            if address is not None
            else (settings.notify_host, settings.notify_port)
        )
        return cls(
            surface_id,
            host,
            port,
            generation=(
                generation
                if generation is not None
                else settings.notify_generation
            ),
            min_interval_ms=settings.notify_min_interval_ms,
            timeout=settings.rpc_call_timeout_seconds,
        )

    def emit(
        self, content: str, kind: str = "code", line: int = NO_LINE
    ) -> None:
        """Notify the session and wait until it has processed the cell."""
        params: list[object] = [content, self.surface_id, kind, line]
        if self.generation is not None:
            params.append(self.generation)
        message = make_call(RpcMethod.NOTIFY_ARTIFACT_CREATED, params)

        self._throttle()
        sock = self._connect()
        try:
            sock.sendall(encode_frame(message))
            reply = self._read_reply(sock)
        except ConnectionLost:
            self.close()
            raise
        except OSError as exc:
            self.close()
            raise ConnectionLost(
                f"notify {self._address[0]}:{self._address[1]}: {exc}"
            ) from exc
        self._last_sent = time.monotonic()
        self.sent += 1

        if reply.id != message.id:
            self.close()
            raise ProtocolError(f"reply for unknown call {reply.id}")
        if reply.kind == "error":
            body = reply.error
            raise RemoteError(
                body.type if body else "Error",
                body.message if body else "",
            )

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> ArtifactNotifier:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ── internals ─────────────────────────────────────────

    def _throttle(self) -> None:
        wait = self._last_sent + self._min_interval - time.monotonic()
        if wait > 0:
            time.sleep(wait)

    def _connect(self) -> socket.socket:
        if self._sock is None:
            try:
                self._sock = socket.create_connection(
                    self._address, timeout=self._timeout
                )
            except OSError as exc:
                raise ConnectionLost(
                    f"cannot reach {self._address[0]}:{self._address[1]}: "
                    f"{exc}"
                ) from exc
        return self._sock

    def _read_reply(self, sock: socket.socket) -> RpcMessage:
        size = parse_header(_recv_exact(sock, FRAME_HEADER_BYTES))
        return decode_payload(_recv_exact(sock, size))


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    chunks: list[bytes] = []
    remaining = size
    while remaining:
        chunk = sock.recv(remaining)
        if not chunk:
            raise ConnectionLost("session closed the connection")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)
