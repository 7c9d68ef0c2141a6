"""Inbound RPC server and per-session port allocation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from cellsync.rpc.connection import Handler, RpcConnection

logger = logging.getLogger(__name__)


class PortAllocator:
    """Hands out one port per concurrently active session.

    Ports are taken from *base* upwards; a released port is reused by
    the next session. A base of 0 asks the OS for an ephemeral port
    every time.
    """

    def __init__(self, base: int) -> None:
        self._base = base
        self._in_use: set[int] = set()

    def acquire(self) -> int:
        if self._base == 0:
            return 0
        port = self._base
        while port in self._in_use:
            port += 1
        self._in_use.add(port)
        return port

    def release(self, port: int) -> None:
        self._in_use.discard(port)

    @property
    def in_use(self) -> set[int]:
        return set(self._in_use)


class RpcServer:
    """Accepts peers and serves the registered handlers on each.

    Every accepted stream becomes an :class:`RpcConnection` sharing the
    same handler table.
    """

    def __init__(
        self,
        handlers: Mapping[str, Handler],
        *,
        host: str = "127.0.0.1",
        port: int = 0,
        name: str = "rpc",
    ) -> None:
        self._handlers = dict(handlers)
        self._host = host
        self._requested_port = port
        self._name = name
        self._server: asyncio.Server | None = None
        self._connections: set[RpcConnection] = set()

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        """Bound port (differs from the requested one when that was 0)."""
        if self._server is None or not self._server.sockets:
            return self._requested_port
        return int(self._server.sockets[0].getsockname()[1])

    @property
    def address(self) -> tuple[str, int]:
        return self._host, self.port

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def running(self) -> bool:
        return self._server is not None

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await asyncio.start_server(
            self._accept, self._host, self._requested_port
        )
        logger.info(
            "event=rpc_server_started server=%s host=%s port=%d",
            self._name,
            self._host,
            self.port,
        )

    async def serve_forever(self) -> None:
        await self.start()
        if self._server is None:
            raise RuntimeError("unreachable: server unset")
        async with self._server:
            await self._server.serve_forever()

    async def stop(self) -> None:
        if self._server is None:
            return
        server, self._server = self._server, None
        server.close()
        for conn in list(self._connections):
            await conn.close()
        await server.wait_closed()
        logger.info("event=rpc_server_stopped server=%s", self._name)

    async def _accept(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        peer = writer.get_extra_info("peername")
        conn = RpcConnection(reader, writer, name=f"{self._name}<-{peer}")
        for method, handler in self._handlers.items():
            conn.serve(method, handler)
        self._connections.add(conn)
        conn.start()
        try:
            await conn.wait_closed()
        finally:
            self._connections.discard(conn)
