"""Shared test fixtures: fake collaborators and a wired-up session."""

import os

# Drop any CELLSYNC_* settings from the developer's shell so every
# Settings() built during the tests sees the defaults.
for _key in [k for k in os.environ if k.startswith("CELLSYNC_")]:
    del os.environ[_key]

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from cellsync.config import Settings
from cellsync.core.artifacts import ArtifactIndex
from cellsync.core.namespaces import NamespaceRegistry
from cellsync.core.scroll import ScrollResolver
from cellsync.rpc.server import PortAllocator
from cellsync.services.session import SyncSession
from cellsync.surfaces.fakes import (
    FakeBuffer,
    FakeExtractorClient,
    FakeNotebook,
    FakeRuntime,
    FakeViewer,
)

SCENARIO_SOURCE = "def f():\n  x=1\n"
SCENARIO_REGIONS = [("*mod*", -1, -1), ("f", 1, 2)]


@pytest.fixture
def settings() -> Settings:
    """Ephemeral notify port, tracing off."""
    return Settings(
        notify_port=0,
        trace_enabled=False,
        notify_min_interval_ms=0,
        _env_file=None,  # type: ignore[call-arg]
    )


@pytest.fixture
def notebook() -> FakeNotebook:
    return FakeNotebook()


@pytest.fixture
def viewer() -> FakeViewer:
    return FakeViewer()


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def buffer() -> FakeBuffer:
    return FakeBuffer(SCENARIO_SOURCE)


@pytest.fixture
def extractor() -> FakeExtractorClient:
    return FakeExtractorClient(
        regions=list(SCENARIO_REGIONS),
        annotated="# instrumented\n",
    )


@pytest.fixture
def registry() -> NamespaceRegistry:
    return NamespaceRegistry("buf-1")


@pytest.fixture
def index() -> ArtifactIndex:
    return ArtifactIndex()


@pytest.fixture
def resolver(
    registry: NamespaceRegistry,
    index: ArtifactIndex,
    notebook: FakeNotebook,
    viewer: FakeViewer,
) -> ScrollResolver:
    return ScrollResolver(registry, index, notebook, viewer)


@pytest_asyncio.fixture
async def session(
    buffer: FakeBuffer,
    notebook: FakeNotebook,
    viewer: FakeViewer,
    runtime: FakeRuntime,
    extractor: FakeExtractorClient,
    settings: Settings,
) -> AsyncIterator[SyncSession]:
    """Started session over fakes with a live notification server."""
    sync = SyncSession(
        buffer=buffer,
        notebook=notebook,
        viewer=viewer,
        runtime=runtime,
        settings=settings,
        extractor=extractor,
        ports=PortAllocator(0),
    )
    await sync.start()
    try:
        yield sync
    finally:
        await sync.close()
