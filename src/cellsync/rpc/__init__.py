"""Transport layer -- framed duplex RPC over asyncio streams."""

from __future__ import annotations

from cellsync.rpc.client import ExtractorClient, Region
from cellsync.rpc.connection import RpcConnection
from cellsync.rpc.server import PortAllocator, RpcServer

__all__ = [
    "ExtractorClient",
    "PortAllocator",
    "Region",
    "RpcConnection",
    "RpcServer",
]
