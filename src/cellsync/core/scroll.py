"""Scroll Resolver: which cell to show for a source line.

Resolution is a pure lookup returning an optional target: an empty
sequence, a deleted cell, or a cell outside the active surface all
resolve to ``None`` and the view is left alone. Nothing here performs
I/O or suspends.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cellsync.core.artifacts import Artifact, ArtifactIndex
from cellsync.core.namespaces import NamespaceRegistry
from cellsync.surfaces.protocols import Notebook, SurfaceViewer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActiveNamespaceState:
    """Snapshot of the active selection."""

    name: str
    surface_id: str
    occurrence: int


@dataclass(frozen=True)
class ScrollTarget:
    """A live cell chosen for a line and occurrence."""

    artifact: Artifact
    surface_id: str
    position: int
    occurrence_position: int
    occurrence_count: int


def wrap_occurrence(occurrence: int, count: int) -> int:
    """Map any signed occurrence onto ``0..count-1``, wrapping both ways."""
    return ((occurrence % count) + count) % count


class ScrollResolver:
    """Line + occurrence index -> cell in the active surface."""

    def __init__(
        self,
        registry: NamespaceRegistry,
        index: ArtifactIndex,
        notebook: Notebook,
        viewer: SurfaceViewer,
    ) -> None:
        self._registry = registry
        self._index = index
        self._notebook = notebook
        self._viewer = viewer
        self.occurrence = 0

    def active_state(self) -> ActiveNamespaceState | None:
        ns = self._registry.active
        if ns is None:
            return None
        return ActiveNamespaceState(
            name=ns.name,
            surface_id=ns.surface_id,
            occurrence=self.occurrence,
        )

    def reset_occurrence(self) -> None:
        self.occurrence = 0

    def resolve(
        self, line: int, occurrence: int | None = None
    ) -> ScrollTarget | None:
        ns = self._registry.active
        if ns is None:
            return None
        sequence = self._index.sequence(ns.surface_id, line)
        if not sequence:
            return None

        count = len(sequence)
        pos = wrap_occurrence(
            self.occurrence if occurrence is None else occurrence, count
        )
        artifact = sequence[pos]
        location = self._notebook.locate(artifact.handle)
        if location is None or location.surface_id != ns.surface_id:
            logger.debug(
                "event=stale_reference surface=%s line=%d occurrence=%d",
                ns.surface_id,
                line,
                pos,
            )
            return None
        return ScrollTarget(
            artifact=artifact,
            surface_id=location.surface_id,
            position=location.position,
            occurrence_position=pos,
            occurrence_count=count,
        )

    def scroll(self, line: int, screen_offset: int = 0) -> ScrollTarget | None:
        """Show the resolved cell at the cursor's screen offset."""
        target = self.resolve(line)
        if target is None:
            return None
        self._viewer.show_cell(
            target.surface_id, target.position, screen_offset
        )
        return target

    def next_occurrence(
        self, line: int, screen_offset: int = 0
    ) -> ScrollTarget | None:
        self.occurrence += 1
        return self.scroll(line, screen_offset)

    def previous_occurrence(
        self, line: int, screen_offset: int = 0
    ) -> ScrollTarget | None:
        self.occurrence -= 1
        return self.scroll(line, screen_offset)
