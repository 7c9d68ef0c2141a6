"""Inbound ``notifyArtifactCreated`` handling.

Each notification is validated and stamped with a generation the moment
it arrives, then queued on its surface's FIFO. One worker per surface
realizes cells strictly in arrival order and appends them to the
Artifact Index. The RPC reply goes out once the notification has been
processed, which keeps a fast runtime from running ahead of the notebook.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any

from cellsync.constants import MAX_HEADING_LEVEL, NO_LINE, ArtifactKind
from cellsync.core.artifacts import Artifact, ArtifactIndex
from cellsync.observability.dispatcher import TraceDispatcher
from cellsync.observability.events import TraceEvent
from cellsync.resilience.errors import ProtocolError
from cellsync.surfaces.protocols import Notebook

logger = logging.getLogger(__name__)

_HEADING_RE = re.compile(r"^heading(\d)?$")


@dataclass(frozen=True)
class Notification:
    """A validated artifact-creation notification."""

    content: str
    surface_id: str
    kind: ArtifactKind
    level: int | None
    line: int
    generation: int


def parse_kind(kind: str) -> tuple[ArtifactKind, int | None]:
    """``code`` | ``markdown`` | ``heading`` | ``headingN`` -> kind, level."""
    if kind == ArtifactKind.CODE:
        return ArtifactKind.CODE, None
    if kind in (ArtifactKind.MARKDOWN, "narrative"):
        return ArtifactKind.MARKDOWN, None
    match = _HEADING_RE.match(kind)
    if match:
        level = int(match.group(1) or 1)
        if 1 <= level <= MAX_HEADING_LEVEL:
            return ArtifactKind.HEADING, level
    raise ProtocolError(f"unknown artifact kind {kind!r}")


type _Job = tuple[Notification, asyncio.Future[None]]


class NotificationHandler:
    """Serves notifyArtifactCreated against one session's index."""

    def __init__(
        self,
        index: ArtifactIndex,
        notebook: Notebook,
        *,
        dispatcher: TraceDispatcher | None = None,
        trace_id: str = "",
    ) -> None:
        self._index = index
        self._notebook = notebook
        self._dispatcher = dispatcher
        self._trace_id = trace_id
        self._queues: dict[str, asyncio.Queue[_Job]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self.received = 0
        self.dropped = 0

    def notify_artifact_created(
        self,
        content: Any,
        surface_id: Any,
        kind: Any,
        line_number: Any,
        generation: Any = None,
    ) -> asyncio.Future[None]:
        """Validate, stamp and enqueue; the returned future resolves
        once the artifact has been realized (or discarded).

        Deliberately not a coroutine: enqueueing happens synchronously at
        dispatch time, so queue order is arrival order.
        """
        notification = self._stamp(
            content, surface_id, kind, line_number, generation
        )
        self.received += 1
        future: asyncio.Future[None] = (
            asyncio.get_running_loop().create_future()
        )
        self._queue_for(notification.surface_id).put_nowait(
            (notification, future)
        )
        return future

    async def drain(self) -> None:
        """Wait until every queued notification has been processed."""
        for queue in list(self._queues.values()):
            await queue.join()

    async def close(self) -> None:
        for task in self._workers.values():
            task.cancel()
        for task in self._workers.values():
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._workers.clear()
        self._queues.clear()

    # ── internals ─────────────────────────────────────────

    def _stamp(
        self,
        content: Any,
        surface_id: Any,
        kind: Any,
        line_number: Any,
        generation: Any,
    ) -> Notification:
        if not isinstance(content, str) or not isinstance(surface_id, str):
            raise ProtocolError("content and surfaceId must be strings")
        if not isinstance(kind, str):
            raise ProtocolError("kind must be a string")
        if not isinstance(line_number, int) or isinstance(line_number, bool):
            raise ProtocolError(f"lineNumber must be an int, got {line_number!r}")
        if line_number < 1 and line_number != NO_LINE:
            raise ProtocolError(f"lineNumber out of range: {line_number}")
        if generation is not None and not isinstance(generation, int):
            raise ProtocolError(f"generation must be an int, got {generation!r}")
        artifact_kind, level = parse_kind(kind)
        return Notification(
            content=content,
            surface_id=surface_id,
            kind=artifact_kind,
            level=level,
            line=line_number,
            generation=(
                generation
                if generation is not None
                else self._index.generation(surface_id)
            ),
        )

    def _queue_for(self, surface_id: str) -> asyncio.Queue[_Job]:
        queue = self._queues.get(surface_id)
        if queue is None:
            queue = self._queues[surface_id] = asyncio.Queue()
            self._workers[surface_id] = asyncio.create_task(
                self._drain_surface(queue),
                name=f"notify-{surface_id}",
            )
        return queue

    async def _drain_surface(self, queue: asyncio.Queue[_Job]) -> None:
        while True:
            notification, future = await queue.get()
            try:
                await self._process(notification)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "event=notification_failed surface=%s line=%d error=%s",
                    notification.surface_id,
                    notification.line,
                    exc,
                )
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(None)
            finally:
                queue.task_done()

    async def _process(self, notification: Notification) -> Artifact | None:
        surface_id = notification.surface_id
        if not self._index.is_current(surface_id, notification.generation):
            self._record_drop(notification, realized=False)
            return None

        ref = await self._notebook.append_cell(
            surface_id,
            notification.content,
            notification.kind,
            notification.level,
        )
        # The surface may have been reset and cleared while the cell was
        # being realized; a stale cell must not outlive that clear.
        if not self._index.is_current(surface_id, notification.generation):
            await self._notebook.remove_cell(ref)
            self._record_drop(notification, realized=True)
            return None
        if notification.line == NO_LINE:
            return None
        return self._index.append(
            surface_id, notification.line, ref, notification.generation
        )

    def _record_drop(
        self, notification: Notification, *, realized: bool
    ) -> None:
        self.dropped += 1
        logger.info(
            "event=notification_dropped surface=%s generation=%d line=%d "
            "realized=%s",
            notification.surface_id,
            notification.generation,
            notification.line,
            realized,
        )
        if self._dispatcher is not None:
            self._dispatcher.emit(
                TraceEvent(
                    type="notification_dropped",
                    trace_id=self._trace_id,
                    category="notifications",
                    surface_id=notification.surface_id,
                    generation=notification.generation,
                    data={"line": notification.line, "realized": realized},
                )
            )
