"""Execution orchestration: rebuild namespaces, execute the active one.

rebuild:  IDLE -> REGIONS_REQUESTED -> REGIONS_READY -> IDLE
execute:  IDLE -> ANNOTATION_REQUESTED -> EXECUTING -> IDLE

Every command ends in IDLE. Failures become a failed CommandStatus plus
an ERROR CommandEvent; the registry and index are only touched after
the remote call they depend on has succeeded.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from cellsync.config import Settings
from cellsync.constants import (
    GENERATION_GLOBAL,
    ID_HEX_LENGTH,
    NOTIFY_ADDRESS_GLOBAL,
    CommandName,
    CommandProgress,
    OrchestratorState,
)
from cellsync.core.artifacts import ArtifactIndex
from cellsync.core.namespaces import (
    Namespace,
    NamespaceRegistry,
    module_namespace_name,
)
from cellsync.core.scroll import ScrollResolver
from cellsync.observability.dispatcher import TraceDispatcher
from cellsync.observability.events import TraceEvent, TraceEventType
from cellsync.resilience.errors import (
    CommandRejected,
    ConfigurationError,
    classify_error,
    is_command_failure,
    user_message,
)
from cellsync.resilience.idempotency import ExtractionGuard
from cellsync.rpc.client import RegionExtractor
from cellsync.services.events import CommandEvent, EventCallback
from cellsync.surfaces.protocols import (
    ExecutionRuntime,
    Notebook,
    SourceBuffer,
)

logger = logging.getLogger(__name__)


@dataclass
class CommandStatus:
    """Outcome of one orchestrator command."""

    name: str
    ok: bool
    duration_ms: float = 0.0
    error: str | None = None
    message: str = ""


SUPERSEDED = "superseded by a later execution"


def generation_preamble(
    generation: int, notify_address: tuple[str, int] | None = None
) -> str:
    """Lines prepended to instrumented source: the generation its
    notifications carry and, when known, the session they go to."""
    lines = [f"{GENERATION_GLOBAL} = {generation}"]
    if notify_address is not None:
        lines.append(f"{NOTIFY_ADDRESS_GLOBAL} = {tuple(notify_address)!r}")
    return "\n".join(lines) + "\n"


class ExecutionOrchestrator:
    """Drives extractor and runtime for one source buffer."""

    def __init__(
        self,
        *,
        buffer: SourceBuffer,
        registry: NamespaceRegistry,
        index: ArtifactIndex,
        resolver: ScrollResolver,
        extractor: RegionExtractor,
        runtime: ExecutionRuntime,
        notebook: Notebook,
        settings: Settings,
        dispatcher: TraceDispatcher | None = None,
        on_event: EventCallback | None = None,
        trace_id: str | None = None,
        notify_address: tuple[str, int] | None = None,
    ) -> None:
        self._buffer = buffer
        self._registry = registry
        self._index = index
        self._resolver = resolver
        self._extractor = extractor
        self._runtime = runtime
        self._notebook = notebook
        self._settings = settings
        self._dispatcher = dispatcher
        self._on_event = on_event
        self._notify_address = notify_address
        self.trace_id = trace_id or uuid.uuid4().hex[:ID_HEX_LENGTH]
        self._guard = ExtractionGuard()
        self._tickets: dict[str, int] = {}
        self._annotations_in_flight = 0
        self.state = OrchestratorState.IDLE

    # ── commands ──────────────────────────────────────────

    async def rebuild_namespaces(self) -> CommandStatus:
        """Re-extract regions and replace the registry wholesale."""
        return await self._run(
            CommandName.REBUILD_NAMESPACES, self._rebuild_shared
        )

    async def execute_active(self) -> CommandStatus:
        """Annotate the active namespace and hand it to the runtime."""
        return await self._run(CommandName.EXECUTE_ACTIVE, self._execute)

    def select_namespace(self, name: str) -> CommandStatus:
        start = time.monotonic()
        try:
            ns = self._registry.activate(name)
        except ConfigurationError as exc:
            return self._failed(CommandName.SELECT_NAMESPACE, exc, start)
        self._resolver.reset_occurrence()
        logger.info("event=namespace_selected namespace=%s", ns.name)
        return self._succeeded(CommandName.SELECT_NAMESPACE, start)

    def select_namespace_at(self, line: int) -> CommandStatus:
        """Activate the innermost namespace containing *line*."""
        ns = self._registry.namespace_at(line)
        if ns is None:
            return self._failed(
                CommandName.SELECT_NAMESPACE,
                ConfigurationError(f"no namespace contains line {line}"),
                time.monotonic(),
            )
        return self.select_namespace(ns.name)

    # ── phases ────────────────────────────────────────────

    async def _rebuild_shared(self) -> None:
        await self._guard.rebuild(self._registry.buffer_id, self._rebuild)

    async def _rebuild(self) -> list[Namespace]:
        root = module_namespace_name(self._buffer.path)
        source = self._buffer.text()

        self._transition(OrchestratorState.REGIONS_REQUESTED)
        regions = await self._extractor.extract_regions(source, root)

        previous_active = self._registry.active
        namespaces = self._registry.replace(regions)
        self._transition(OrchestratorState.REGIONS_READY)

        for ns in namespaces:
            self._index.reset(ns.surface_id)
            await self._notebook.clear_surface(ns.surface_id)
        active = self._registry.active
        if previous_active is None or active is None or (
            active.name != previous_active.name
        ):
            self._resolver.reset_occurrence()
        logger.info(
            "event=namespaces_rebuilt buffer=%s count=%d active=%s",
            self._registry.buffer_id,
            len(namespaces),
            active.name if active else None,
        )
        return namespaces

    async def _execute(self) -> str | None:
        if self._settings.serialize_executions and self._annotations_in_flight:
            raise CommandRejected("an execution is already being prepared")
        ns = self._registry.active
        if ns is None:
            raise ConfigurationError(
                "no active namespace; rebuild namespaces first"
            )
        surface_id = ns.surface_id
        ticket = self._tickets.get(surface_id, 0) + 1
        self._tickets[surface_id] = ticket
        source = self._buffer.text()

        self._transition(
            OrchestratorState.ANNOTATION_REQUESTED, surface_id=surface_id
        )
        self._annotations_in_flight += 1
        try:
            annotated = await self._extractor.annotate(source, ns.name)
        finally:
            self._annotations_in_flight -= 1

        if self._tickets[surface_id] != ticket:
            logger.info(
                "event=execution_superseded surface=%s ticket=%d",
                surface_id,
                ticket,
            )
            return SUPERSEDED

        generation = self._index.reset(surface_id)
        await self._notebook.clear_surface(surface_id)
        self._transition(
            OrchestratorState.EXECUTING,
            surface_id=surface_id,
            generation=generation,
        )
        await self._runtime.submit(
            generation_preamble(generation, self._notify_address) + annotated
        )
        logger.info(
            "event=execution_submitted namespace=%s generation=%d",
            ns.name,
            generation,
        )
        return None

    # ── plumbing ──────────────────────────────────────────

    async def _run(
        self,
        name: CommandName,
        operation: Callable[[], Awaitable[str | None]],
    ) -> CommandStatus:
        """Run one command; *operation* may return a note for DONE."""
        start = time.monotonic()
        self._report(CommandEvent(name=name, status=CommandProgress.RUNNING))
        self._trace("command_start", command=name)
        try:
            note = await operation()
        except Exception as exc:
            if not is_command_failure(exc):
                self.state = OrchestratorState.IDLE
                raise
            status = self._failed(name, exc, start)
            self._trace(
                "error",
                command=name,
                error_class=classify_error(exc).value,
            )
        else:
            status = self._succeeded(name, start, note or "")
        self.state = OrchestratorState.IDLE
        self._trace(
            "command_end",
            command=name,
            ok=status.ok,
            duration_ms=round(status.duration_ms, 1),
        )
        return status

    def _succeeded(
        self, name: CommandName, start: float, message: str = ""
    ) -> CommandStatus:
        duration_ms = (time.monotonic() - start) * 1000
        self._report(
            CommandEvent(
                name=name,
                status=CommandProgress.DONE,
                message=message,
                duration_ms=duration_ms,
            )
        )
        return CommandStatus(
            name=name, ok=True, duration_ms=duration_ms, message=message
        )

    def _failed(
        self, name: CommandName, exc: Exception, start: float
    ) -> CommandStatus:
        duration_ms = (time.monotonic() - start) * 1000
        message = user_message(exc)
        logger.warning(
            "event=command_failed command=%s error_class=%s error=%s",
            name,
            classify_error(exc).value,
            exc,
        )
        self._report(
            CommandEvent(
                name=name,
                status=CommandProgress.ERROR,
                message=message,
                duration_ms=duration_ms,
            )
        )
        return CommandStatus(
            name=name, ok=False, duration_ms=duration_ms, error=message
        )

    def _report(self, event: CommandEvent) -> None:
        if self._on_event:
            self._on_event(event)

    def _transition(
        self,
        state: OrchestratorState,
        *,
        surface_id: str | None = None,
        generation: int | None = None,
    ) -> None:
        previous, self.state = self.state, state
        if self._dispatcher is None:
            return
        self._dispatcher.emit(
            TraceEvent(
                type="state_change",
                trace_id=self.trace_id,
                surface_id=surface_id,
                generation=generation,
                state=state.value,
                data={"from": previous.value},
            )
        )

    def _trace(self, event_type: TraceEventType, **data: object) -> None:
        if self._dispatcher is None:
            return
        self._dispatcher.emit(
            TraceEvent(
                type=event_type,
                trace_id=self.trace_id,
                state=self.state.value,
                data=data,
            )
        )
