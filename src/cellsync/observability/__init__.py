"""Observability layer: session trace events, dispatcher and console handler."""

from __future__ import annotations

from cellsync.config import Settings
from cellsync.observability.console import ConsoleTraceHandler
from cellsync.observability.dispatcher import TraceDispatcher, TraceHandler
from cellsync.observability.events import (
    TraceCategory,
    TraceEvent,
    TraceEventType,
)

__all__ = [
    "ConsoleTraceHandler",
    "TraceCategory",
    "TraceDispatcher",
    "TraceEvent",
    "TraceEventType",
    "TraceHandler",
    "initialize_tracing",
]


def initialize_tracing(settings: Settings) -> TraceDispatcher:
    """Dispatcher for one session; console output when tracing is on."""
    dispatcher = TraceDispatcher()
    if settings.trace_enabled:
        dispatcher.register(ConsoleTraceHandler())
    return dispatcher
