"""Typed trace events emitted during a sync session."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

TraceEventType = Literal[
    "command_start",
    "command_end",
    "state_change",
    "notification_dropped",
    "error",
]

TraceCategory = Literal["orchestrator", "notifications"]


@dataclass(frozen=True)
class TraceEvent:
    """Immutable trace event.

    ``surface_id``, ``generation`` and ``state`` locate the event in the
    session: which notebook surface, which execution pass, and which
    orchestrator state it belongs to. Anything else goes in ``data``.
    """

    type: TraceEventType
    trace_id: str
    category: TraceCategory = "orchestrator"
    surface_id: str | None = None
    generation: int | None = None
    state: str | None = None
    data: dict[str, Any] = field(
        default_factory=lambda: dict[str, Any]()
    )
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC)
    )

    def fields(self) -> dict[str, Any]:
        """Session fields that are set, followed by ``data``."""
        located = {
            "surface": self.surface_id,
            "generation": self.generation,
            "state": self.state,
        }
        result = {k: v for k, v in located.items() if v is not None}
        result.update(self.data)
        return result
