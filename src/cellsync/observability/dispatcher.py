"""Synchronous fan-out of a session's trace events.

Emitting never suspends: the orchestrator traces state transitions
between its awaits and the resolver path is synchronous, so handlers run
inline and must not block.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Protocol

from cellsync.observability.events import TraceEvent, TraceEventType

logger = logging.getLogger(__name__)


class TraceHandler(Protocol):
    """Receives every trace event of a session."""

    @property
    def name(self) -> str: ...

    def handle(self, event: TraceEvent) -> None: ...


class TraceDispatcher:
    """Delivers events to handlers keyed by name; a failing handler is
    logged and skipped."""

    def __init__(self) -> None:
        self._handlers: dict[str, TraceHandler] = {}
        self.counts: Counter[TraceEventType] = Counter()

    def register(self, handler: TraceHandler) -> None:
        self._handlers.setdefault(handler.name, handler)

    def emit(self, event: TraceEvent) -> None:
        self.counts[event.type] += 1
        for handler in self._handlers.values():
            try:
                handler.handle(event)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "event=trace_handler_error handler=%s trace_type=%s "
                    "error=%s",
                    handler.name,
                    event.type,
                    exc,
                )

    @property
    def handler_count(self) -> int:
        return len(self._handlers)
