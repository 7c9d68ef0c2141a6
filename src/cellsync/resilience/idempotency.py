"""One in-flight region extraction per buffer.

A rebuild that starts while another rebuild of the same buffer is still
waiting on ``extractRegions`` joins it: both get the same namespaces, or
the same error, from a single extractor call.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cellsync.core.namespaces import Namespace

logger = logging.getLogger(__name__)


class ExtractionGuard:
    """Shares a running rebuild with overlapping rebuilds of its buffer."""

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Future[list[Namespace]]] = {}
        self.joined = 0

    def in_flight(self, buffer_id: str) -> bool:
        return buffer_id in self._in_flight

    async def rebuild(
        self,
        buffer_id: str,
        operation: Callable[[], Awaitable[list[Namespace]]],
    ) -> list[Namespace]:
        pending = self._in_flight.get(buffer_id)
        if pending is not None:
            self.joined += 1
            logger.debug("event=rebuild_joined buffer=%s", buffer_id)
            return await asyncio.shield(pending)

        shared: asyncio.Future[list[Namespace]] = (
            asyncio.get_running_loop().create_future()
        )
        self._in_flight[buffer_id] = shared
        try:
            namespaces = await operation()
        except asyncio.CancelledError:
            shared.cancel()
            raise
        except Exception as exc:
            shared.set_exception(exc)
            shared.exception()  # retrieved here even when nobody joined
            raise
        else:
            shared.set_result(namespaces)
            return namespaces
        finally:
            del self._in_flight[buffer_id]
