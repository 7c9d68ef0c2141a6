"""Tests for the trace dispatcher, console handler and bootstrap."""

from __future__ import annotations

import logging

import pytest

from cellsync.config import Settings
from cellsync.observability import initialize_tracing
from cellsync.observability.console import ConsoleTraceHandler
from cellsync.observability.dispatcher import TraceDispatcher
from cellsync.observability.events import TraceEvent


class _Collector:
    name = "collector"

    def __init__(self) -> None:
        self.events: list[TraceEvent] = []

    def handle(self, event: TraceEvent) -> None:
        self.events.append(event)


class _Broken:
    name = "broken"

    def handle(self, event: TraceEvent) -> None:
        raise RuntimeError("handler down")


# ── events ───────────────────────────────────────────────


class TestTraceEvent:
    def test_fields_put_session_location_first(self) -> None:
        event = TraceEvent(
            type="state_change",
            trace_id="t1",
            surface_id="ns=f",
            generation=2,
            state="executing",
            data={"from": "annotation_requested"},
        )
        assert list(event.fields().items()) == [
            ("surface", "ns=f"),
            ("generation", 2),
            ("state", "executing"),
            ("from", "annotation_requested"),
        ]

    def test_unset_location_omitted(self) -> None:
        event = TraceEvent(type="command_start", trace_id="t1",
                           data={"command": "execute_active"})
        assert event.fields() == {"command": "execute_active"}


# ── dispatcher ───────────────────────────────────────────


class TestTraceDispatcher:
    def test_emit_reaches_every_handler(self) -> None:
        first, second = _Collector(), _Collector()
        second.name = "second"
        dispatcher = TraceDispatcher()
        dispatcher.register(first)
        dispatcher.register(second)

        dispatcher.emit(TraceEvent(type="command_start", trace_id="t1"))

        assert [e.trace_id for e in first.events] == ["t1"]
        assert [e.trace_id for e in second.events] == ["t1"]

    def test_same_name_registered_once(self) -> None:
        dispatcher = TraceDispatcher()
        dispatcher.register(ConsoleTraceHandler())
        dispatcher.register(ConsoleTraceHandler())
        assert dispatcher.handler_count == 1

    def test_counts_by_type(self) -> None:
        dispatcher = TraceDispatcher()
        dispatcher.emit(TraceEvent(type="state_change", trace_id="t1"))
        dispatcher.emit(TraceEvent(type="state_change", trace_id="t1"))
        dispatcher.emit(TraceEvent(type="error", trace_id="t1"))
        assert dispatcher.counts["state_change"] == 2
        assert dispatcher.counts["error"] == 1

    def test_failing_handler_skipped(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        collector = _Collector()
        dispatcher = TraceDispatcher()
        dispatcher.register(_Broken())
        dispatcher.register(collector)

        with caplog.at_level(logging.WARNING):
            dispatcher.emit(TraceEvent(type="error", trace_id="t1"))

        assert "event=trace_handler_error handler=broken" in caplog.text
        assert len(collector.events) == 1


# ── console handler ──────────────────────────────────────


class TestConsoleTraceHandler:
    def test_logs_session_fields(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        event = TraceEvent(
            type="notification_dropped",
            trace_id="t1",
            category="notifications",
            surface_id="ns=f",
            generation=1,
            data={"line": 4},
        )
        with caplog.at_level(logging.DEBUG, logger="cellsync"):
            ConsoleTraceHandler().handle(event)

        assert (
            "trace_type=notification_dropped trace_id=t1 "
            "category=notifications surface=ns=f generation=1 line=4"
        ) in caplog.text

    def test_error_events_log_as_warning(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.DEBUG, logger="cellsync"):
            ConsoleTraceHandler().handle(
                TraceEvent(type="error", trace_id="t1")
            )
        assert caplog.records[-1].levelno == logging.WARNING

    def test_state_changes_log_at_debug(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.DEBUG, logger="cellsync"):
            ConsoleTraceHandler().handle(
                TraceEvent(type="state_change", trace_id="t1", state="idle")
            )
        assert caplog.records[-1].levelno == logging.DEBUG


class TestInitializeTracing:
    def test_enabled_registers_console(self) -> None:
        settings = Settings(trace_enabled=True)
        assert initialize_tracing(settings).handler_count == 1

    def test_disabled_returns_empty(self) -> None:
        settings = Settings(trace_enabled=False)
        assert initialize_tracing(settings).handler_count == 0
