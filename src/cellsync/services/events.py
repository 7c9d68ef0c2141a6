"""Shared event types for user-facing command progress.

The editor host passes an ``on_event`` callback to the session; failed
commands surface there as ERROR events carrying the user message.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from cellsync.constants import COMMAND_LABELS, CommandProgress


@dataclass(frozen=True)
class CommandEvent:
    """Typed event emitted while a command runs."""

    name: str
    status: CommandProgress
    message: str = ""
    duration_ms: float = 0.0

    @property
    def label(self) -> str:
        """User-friendly display label from COMMAND_LABELS."""
        return COMMAND_LABELS[self.name]


type EventCallback = Callable[[CommandEvent], None]
