"""Protocol-based interfaces to the collaborators outside cellsync.

The notebook UI, its scroll viewport and the execution runtime satisfy
these protocols structurally (no inheritance). Test doubles live in
``cellsync.surfaces.fakes``.
"""

from collections.abc import Hashable
from typing import NamedTuple, Protocol

from cellsync.constants import ArtifactKind

type CellRef = Hashable
"""Opaque handle the notebook returns for a realized cell."""


class CellLocation(NamedTuple):
    """Where a live cell currently sits."""

    surface_id: str
    position: int


class Notebook(Protocol):
    """Surfaces (one per namespace) holding ordered cells."""

    async def append_cell(
        self,
        surface_id: str,
        content: str,
        kind: ArtifactKind,
        level: int | None = None,
    ) -> CellRef: ...

    async def clear_surface(self, surface_id: str) -> None: ...

    async def remove_cell(self, ref: CellRef) -> None:
        """Remove one realized cell; a no-op if it is already gone."""
        ...

    def locate(self, ref: CellRef) -> CellLocation | None:
        """Current location of the cell, None once it was deleted."""
        ...


class SourceBuffer(Protocol):
    """The editor buffer being synchronized."""

    @property
    def buffer_id(self) -> str: ...

    @property
    def path(self) -> str: ...

    def text(self) -> str: ...


class SurfaceViewer(Protocol):
    """Brings a cell into view."""

    def show_cell(
        self, surface_id: str, position: int, screen_offset: int
    ) -> None: ...


class ExecutionRuntime(Protocol):
    """Evaluates instrumented source; completion is not reported."""

    async def submit(self, source: str) -> None: ...
