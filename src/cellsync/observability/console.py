"""Console trace handler: one key=value log line per event."""

from __future__ import annotations

import logging

from cellsync.observability.events import TraceEvent

logger = logging.getLogger(__name__)

_LEVELS = {
    "error": logging.WARNING,
    "notification_dropped": logging.INFO,
    "state_change": logging.DEBUG,
}


class ConsoleTraceHandler:
    """Logs events as ``trace_type=... surface=... generation=...``."""

    name = "console"

    def handle(self, event: TraceEvent) -> None:
        parts = [
            f"trace_type={event.type}",
            f"trace_id={event.trace_id}",
            f"category={event.category}",
        ]
        parts.extend(f"{k}={v}" for k, v in event.fields().items())
        logger.log(_LEVELS.get(event.type, logging.INFO), " ".join(parts))
