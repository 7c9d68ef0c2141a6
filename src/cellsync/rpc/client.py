"""Typed client for the Region Extractor service."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import BaseModel, ValidationError

from cellsync.constants import RpcMethod
from cellsync.resilience.errors import ProtocolError
from cellsync.rpc.connection import RpcConnection

logger = logging.getLogger(__name__)


class Region(BaseModel):
    """A named line range returned by extractRegions."""

    name: str
    start_line: int
    end_line: int


def parse_regions(raw: Any) -> list[Region]:
    """Convert ``[[name, start, end], ...]`` into Region models."""
    if not isinstance(raw, list):
        raise ProtocolError(f"extractRegions returned {type(raw).__name__}")
    regions: list[Region] = []
    for item in raw:  # pyright: ignore[reportUnknownVariableType]
        if not isinstance(item, (list, tuple)) or len(item) != 3:  # pyright: ignore[reportUnknownArgumentType]
            raise ProtocolError(f"bad region entry: {item!r}")
        name, start, end = item  # pyright: ignore[reportUnknownVariableType]
        try:
            regions.append(
                Region(name=name, start_line=start, end_line=end)
            )
        except ValidationError as exc:
            raise ProtocolError(f"bad region entry: {item!r}") from exc
    return regions


class RegionExtractor(Protocol):
    """What the orchestrator needs from the analysis service."""

    async def extract_regions(
        self, source: str, root_name: str
    ) -> list[Region]: ...

    async def annotate(self, source: str, namespace: str) -> str: ...

    async def close(self) -> None: ...


class ExtractorClient:
    """Outbound-only role: the session calls, the extractor answers."""

    def __init__(self, connection: RpcConnection) -> None:
        self._conn = connection

    @classmethod
    async def connect(
        cls,
        host: str,
        port: int,
        *,
        call_timeout: float | None = None,
    ) -> ExtractorClient:
        conn = await RpcConnection.open(
            host, port, call_timeout=call_timeout
        )
        return cls(conn)

    @property
    def connection(self) -> RpcConnection:
        return self._conn

    async def extract_regions(
        self, source: str, root_name: str
    ) -> list[Region]:
        raw = await self._conn.call(
            RpcMethod.EXTRACT_REGIONS, source, root_name
        )
        regions = parse_regions(raw)
        logger.debug(
            "event=regions_received root=%s count=%d",
            root_name,
            len(regions),
        )
        return regions

    async def annotate(self, source: str, namespace: str) -> str:
        result = await self._conn.call(RpcMethod.ANNOTATE, source, namespace)
        if not isinstance(result, str):
            raise ProtocolError(
                f"annotate returned {type(result).__name__}, expected str"
            )
        return result

    async def close(self) -> None:
        await self._conn.close()
