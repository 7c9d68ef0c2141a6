"""Duplex RPC connection over an asyncio stream pair.

One connection both issues calls (``call``) and serves handlers
(``serve``). Replies are correlated by the token the caller generated,
so any number of calls may be outstanding and replies may arrive in any
order. When the stream ends every outstanding call fails with
:class:`ConnectionLost`.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from cellsync.resilience.errors import (
    ConnectionLost,
    ProtocolError,
    RemoteError,
)
from cellsync.rpc.protocol import (
    RpcMessage,
    encode_frame,
    make_call,
    make_error,
    make_return,
    read_frame,
)

logger = logging.getLogger(__name__)

type Handler = Callable[..., Any]


class UnknownMethodError(LookupError):
    """Inbound call named a method nobody serves."""


class RpcConnection:
    """Call/serve endpoint bound to one byte-stream connection."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        name: str = "peer",
        call_timeout: float | None = None,
    ) -> None:
        self.name = name
        self._reader = reader
        self._writer = writer
        self._call_timeout = call_timeout
        self._handlers: dict[str, Handler] = {}
        self._pending: dict[str, asyncio.Future[Any]] = {}
        self._handler_tasks: set[asyncio.Task[None]] = set()
        self._reader_task: asyncio.Task[None] | None = None
        self._write_lock = asyncio.Lock()
        self._closed = asyncio.Event()

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        *,
        call_timeout: float | None = None,
    ) -> RpcConnection:
        """Connect to *host*:*port* and start reading."""
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as exc:
            raise ConnectionLost(
                f"cannot reach {host}:{port}: {exc}"
            ) from exc
        conn = cls(
            reader,
            writer,
            name=f"{host}:{port}",
            call_timeout=call_timeout,
        )
        conn.start()
        return conn

    # ── lifecycle ─────────────────────────────────────────

    def start(self) -> None:
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(
                self._read_loop(), name=f"rpc-reader-{self.name}"
            )

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def close(self) -> None:
        """Close the stream; outstanding calls fail with ConnectionLost."""
        self._shutdown("connection closed locally")
        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
        for task in list(self._handler_tasks):
            task.cancel()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            pass

    # ── calling ───────────────────────────────────────────

    def serve(self, method: str, handler: Handler) -> None:
        """Register *handler* for inbound calls to *method*."""
        self._handlers[method] = handler

    async def call(
        self,
        method: str,
        *params: Any,
        timeout: float | None = None,
    ) -> Any:
        """Issue a call and wait for its correlated reply.

        Raises :class:`RemoteError` if the peer's handler failed,
        :class:`ConnectionLost` if the peer went away, and
        :class:`TimeoutError` past the deadline.
        """
        if self.closed:
            raise ConnectionLost(f"connection to {self.name} is closed")
        message = make_call(method, list(params))
        future: asyncio.Future[Any] = (
            asyncio.get_running_loop().create_future()
        )
        self._pending[message.id] = future
        deadline = timeout if timeout is not None else self._call_timeout
        try:
            await self._write(encode_frame(message))
            if deadline is None:
                return await future
            return await asyncio.wait_for(future, deadline)
        finally:
            self._pending.pop(message.id, None)

    # ── internals ─────────────────────────────────────────

    async def _write(self, frame: bytes) -> None:
        async with self._write_lock:
            if self.closed:
                raise ConnectionLost(
                    f"connection to {self.name} is closed"
                )
            try:
                self._writer.write(frame)
                await self._writer.drain()
            except (ConnectionError, OSError) as exc:
                raise ConnectionLost(
                    f"write to {self.name} failed: {exc}"
                ) from exc

    async def _read_loop(self) -> None:
        reason = f"{self.name} closed the connection"
        try:
            while True:
                message = await read_frame(self._reader)
                if message is None:
                    break
                self._dispatch(message)
        except (ConnectionLost, ProtocolError) as exc:
            reason = f"{self.name}: {exc}"
            logger.warning("event=rpc_stream_error peer=%s error=%s",
                           self.name, exc)
        except (ConnectionError, OSError) as exc:
            reason = f"{self.name}: {exc}"
        finally:
            self._shutdown(reason)

    def _dispatch(self, message: RpcMessage) -> None:
        if message.kind == "call":
            task = asyncio.create_task(self._handle_call(message))
            self._handler_tasks.add(task)
            task.add_done_callback(self._handler_tasks.discard)
            return

        future = self._pending.get(message.id)
        if future is None or future.done():
            logger.debug(
                "event=rpc_orphan_reply peer=%s id=%s",
                self.name,
                message.id,
            )
            return
        if message.kind == "return":
            future.set_result(message.result)
        else:
            body = message.error
            future.set_exception(
                RemoteError(
                    body.type if body else "Error",
                    body.message if body else "",
                )
            )

    async def _handle_call(self, message: RpcMessage) -> None:
        method = message.method or ""
        handler = self._handlers.get(method)
        try:
            if handler is None:
                raise UnknownMethodError(f"no handler for {method!r}")
            result = handler(*message.params)
            if inspect.isawaitable(result):
                result = await result
            # A result that cannot be framed is answered with an error
            frame = encode_frame(make_return(message.id, result))
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "event=rpc_handler_error peer=%s method=%s error=%s",
                self.name,
                method,
                exc,
            )
            frame = encode_frame(make_error(message.id, exc))
        try:
            await self._write(frame)
        except ConnectionLost:
            logger.debug(
                "event=rpc_reply_dropped peer=%s method=%s",
                self.name,
                method,
            )

    def _shutdown(self, reason: str) -> None:
        if self.closed:
            return
        self._closed.set()
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ConnectionLost(reason))
        self._writer.close()
        logger.debug("event=rpc_closed peer=%s reason=%s", self.name, reason)
