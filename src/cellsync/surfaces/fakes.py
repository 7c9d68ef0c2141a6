"""In-memory fake collaborators for testing.

List-backed implementations of the notebook, viewer, runtime and
extractor protocols. No sockets and no notebook server, so every
operation is instant in unit tests.
"""

# pyright: reportUnusedFunction=false

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass

from cellsync.constants import ArtifactKind
from cellsync.resilience.errors import ConnectionLost
from cellsync.rpc.client import Region
from cellsync.surfaces.protocols import CellLocation, CellRef


@dataclass
class FakeCell:
    ref: int
    surface_id: str
    content: str
    kind: ArtifactKind
    level: int | None = None


class FakeNotebook:
    """Dict-backed Notebook. ``delete_cell`` mimics a user deletion."""

    def __init__(self, append_delay: float = 0.0) -> None:
        self._ids = itertools.count(1)
        self._surfaces: dict[str, list[FakeCell]] = {}
        self.append_delay = append_delay
        self.cleared: list[str] = []
        self.removed: list[CellRef] = []

    async def append_cell(
        self,
        surface_id: str,
        content: str,
        kind: ArtifactKind,
        level: int | None = None,
    ) -> CellRef:
        if self.append_delay:
            await asyncio.sleep(self.append_delay)
        cell = FakeCell(
            ref=next(self._ids),
            surface_id=surface_id,
            content=content,
            kind=kind,
            level=level,
        )
        self._surfaces.setdefault(surface_id, []).append(cell)
        return cell.ref

    async def clear_surface(self, surface_id: str) -> None:
        self._surfaces[surface_id] = []
        self.cleared.append(surface_id)

    async def remove_cell(self, ref: CellRef) -> None:
        self.removed.append(ref)
        self.delete_cell(ref)

    def locate(self, ref: CellRef) -> CellLocation | None:
        for surface_id, cells in self._surfaces.items():
            for pos, cell in enumerate(cells):
                if cell.ref == ref:
                    return CellLocation(surface_id, pos)
        return None

    def delete_cell(self, ref: CellRef) -> None:
        for cells in self._surfaces.values():
            cells[:] = [c for c in cells if c.ref != ref]

    def cells(self, surface_id: str) -> list[FakeCell]:
        return list(self._surfaces.get(surface_id, []))

    def contents(self, surface_id: str) -> list[str]:
        return [c.content for c in self.cells(surface_id)]


class FakeViewer:
    """Records show_cell requests."""

    def __init__(self, displayed: str | None = None) -> None:
        self.displayed = displayed
        self.shown: list[tuple[str, int, int]] = []

    def show_cell(
        self, surface_id: str, position: int, screen_offset: int
    ) -> None:
        self.displayed = surface_id
        self.shown.append((surface_id, position, screen_offset))


class FakeRuntime:
    """Captures submitted source instead of running it."""

    def __init__(self, fail: bool = False) -> None:
        self.submitted: list[str] = []
        self.fail = fail

    async def submit(self, source: str) -> None:
        if self.fail:
            raise ConnectionLost("runtime went away")
        self.submitted.append(source)


class FakeExtractorClient:
    """Canned extractRegions/annotate replies; can simulate a lost peer."""

    def __init__(
        self,
        regions: list[tuple[str, int, int]] | None = None,
        annotated: str = "",
    ) -> None:
        self.regions = regions or []
        self.annotated = annotated
        self.fail_with: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[str, str, str]] = []

    async def extract_regions(
        self, source: str, root_name: str
    ) -> list[Region]:
        self.calls.append(("extractRegions", source, root_name))
        await self._maybe_block()
        return [
            Region(name=n, start_line=s, end_line=e)
            for n, s, e in self.regions
        ]

    async def annotate(self, source: str, namespace: str) -> str:
        self.calls.append(("annotate", source, namespace))
        await self._maybe_block()
        return self.annotated

    async def close(self) -> None:
        return None

    async def _maybe_block(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with


class FakeBuffer:
    """Editor buffer holding plain text."""

    def __init__(
        self, source: str, path: str = "mod.py", buffer_id: str = "buf-1"
    ) -> None:
        self.source = source
        self._path = path
        self._buffer_id = buffer_id

    @property
    def buffer_id(self) -> str:
        return self._buffer_id

    @property
    def path(self) -> str:
        return self._path

    def text(self) -> str:
        return self.source
