"""One synchronization session per source document.

The session owns every piece of per-document state (registry, index,
occurrence cursor) and both RPC roles: the outbound extractor client and
the inbound notification server. Nothing is process-global except the
PortAllocator handed in by whoever runs several sessions side by side.
"""

from __future__ import annotations

import logging
import uuid
from types import TracebackType

from cellsync.config import Settings
from cellsync.constants import ID_HEX_LENGTH, RpcMethod
from cellsync.core.artifacts import ArtifactIndex
from cellsync.core.namespaces import NamespaceRegistry
from cellsync.core.scroll import (
    ActiveNamespaceState,
    ScrollResolver,
    ScrollTarget,
)
from cellsync.observability import initialize_tracing
from cellsync.observability.dispatcher import TraceDispatcher
from cellsync.rpc.client import ExtractorClient, RegionExtractor
from cellsync.rpc.server import PortAllocator, RpcServer
from cellsync.services.events import EventCallback
from cellsync.services.notifications import NotificationHandler
from cellsync.services.orchestrator import (
    CommandStatus,
    ExecutionOrchestrator,
)
from cellsync.surfaces.protocols import (
    ExecutionRuntime,
    Notebook,
    SourceBuffer,
    SurfaceViewer,
)

logger = logging.getLogger(__name__)


class SyncSession:
    """Explicit session object; use ``async with`` or start()/close()."""

    def __init__(
        self,
        *,
        buffer: SourceBuffer,
        notebook: Notebook,
        viewer: SurfaceViewer,
        runtime: ExecutionRuntime,
        settings: Settings | None = None,
        extractor: RegionExtractor | None = None,
        ports: PortAllocator | None = None,
        dispatcher: TraceDispatcher | None = None,
        on_event: EventCallback | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.session_id = uuid.uuid4().hex[:ID_HEX_LENGTH]
        self.buffer = buffer
        self.dispatcher = dispatcher or initialize_tracing(self.settings)
        self.registry = NamespaceRegistry(buffer.buffer_id)
        self.index = ArtifactIndex()
        self.resolver = ScrollResolver(
            self.registry, self.index, notebook, viewer
        )
        self.notifications = NotificationHandler(
            self.index,
            notebook,
            dispatcher=self.dispatcher,
            trace_id=self.session_id,
        )
        self._notebook = notebook
        self._runtime = runtime
        self._on_event = on_event
        self._extractor = extractor
        self._owns_extractor = extractor is None
        self._ports = ports or PortAllocator(self.settings.notify_port)
        self._port: int | None = None
        self._server: RpcServer | None = None
        self._orchestrator: ExecutionOrchestrator | None = None

    # ── lifecycle ─────────────────────────────────────────

    async def start(self) -> None:
        if self._orchestrator is not None:
            return
        if self._extractor is None:
            self._extractor = await ExtractorClient.connect(
                self.settings.extractor_host,
                self.settings.extractor_port,
                call_timeout=self.settings.rpc_call_timeout_seconds,
            )

        self._port = self._ports.acquire()
        self._server = RpcServer(
            {
                RpcMethod.NOTIFY_ARTIFACT_CREATED: (
                    self.notifications.notify_artifact_created
                ),
            },
            host=self.settings.notify_host,
            port=self._port,
            name=f"notify-{self.session_id}",
        )
        try:
            await self._server.start()
        except OSError:
            self._ports.release(self._port)
            self._port = None
            raise

        self._orchestrator = ExecutionOrchestrator(
            buffer=self.buffer,
            registry=self.registry,
            index=self.index,
            resolver=self.resolver,
            extractor=self._extractor,
            runtime=self._runtime,
            notebook=self._notebook,
            settings=self.settings,
            dispatcher=self.dispatcher,
            on_event=self._on_event,
            trace_id=self.session_id,
            notify_address=self.notify_address,
        )
        logger.info(
            "event=session_started session=%s buffer=%s notify=%s:%d",
            self.session_id,
            self.buffer.buffer_id,
            *self.notify_address,
        )

    async def close(self) -> None:
        if self._server is not None:
            await self._server.stop()
            self._server = None
        if self._port is not None:
            self._ports.release(self._port)
            self._port = None
        await self.notifications.close()
        if self._extractor is not None and self._owns_extractor:
            await self._extractor.close()
            self._extractor = None
        self._orchestrator = None
        logger.info("event=session_closed session=%s", self.session_id)

    async def __aenter__(self) -> SyncSession:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def orchestrator(self) -> ExecutionOrchestrator:
        if self._orchestrator is None:
            raise RuntimeError("session is not started")
        return self._orchestrator

    @property
    def notify_address(self) -> tuple[str, int]:
        """Host/port the execution runtime must be configured with."""
        if self._server is None:
            raise RuntimeError("session is not started")
        return self._server.address

    # ── commands ──────────────────────────────────────────

    async def rebuild_namespaces(self) -> CommandStatus:
        return await self.orchestrator.rebuild_namespaces()

    async def execute_active(self) -> CommandStatus:
        return await self.orchestrator.execute_active()

    def select_namespace(self, name: str) -> CommandStatus:
        return self.orchestrator.select_namespace(name)

    def select_namespace_at(self, line: int) -> CommandStatus:
        return self.orchestrator.select_namespace_at(line)

    # ── navigation (synchronous, no I/O) ──────────────────

    def active_state(self) -> ActiveNamespaceState | None:
        return self.resolver.active_state()

    def scroll(self, line: int, screen_offset: int = 0) -> ScrollTarget | None:
        return self.resolver.scroll(line, screen_offset)

    def next_occurrence(
        self, line: int, screen_offset: int = 0
    ) -> ScrollTarget | None:
        return self.resolver.next_occurrence(line, screen_offset)

    def previous_occurrence(
        self, line: int, screen_offset: int = 0
    ) -> ScrollTarget | None:
        return self.resolver.previous_occurrence(line, screen_offset)
