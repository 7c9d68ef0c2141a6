"""Artifact Index: source line to the cells its executions produced.

Per surface, each line maps to an append-only sequence of artifacts in
arrival order. ``reset`` clears a surface and starts a new generation;
artifacts stamped with an older generation are refused, so a line never
holds artifacts from two execution passes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from cellsync.constants import NO_LINE
from cellsync.surfaces.protocols import CellRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Artifact:
    """One realized cell tied to the line that produced it."""

    handle: CellRef
    surface_id: str
    line: int
    ordinal: int
    generation: int


@dataclass
class _SurfaceIndex:
    generation: int = 0
    lines: dict[int, list[Artifact]] = field(
        default_factory=lambda: dict[int, list[Artifact]]()
    )
    dropped: int = 0


class ArtifactIndex:
    """Ordered multimap ``(surface, line) -> [Artifact, ...]``."""

    def __init__(self) -> None:
        self._surfaces: dict[str, _SurfaceIndex] = {}

    def _surface(self, surface_id: str) -> _SurfaceIndex:
        idx = self._surfaces.get(surface_id)
        if idx is None:
            idx = self._surfaces[surface_id] = _SurfaceIndex()
        return idx

    def generation(self, surface_id: str) -> int:
        return self._surface(surface_id).generation

    def reset(self, surface_id: str) -> int:
        """Clear *surface_id* and return its new generation."""
        idx = self._surface(surface_id)
        idx.generation += 1
        idx.lines = {}
        logger.debug(
            "event=index_reset surface=%s generation=%d",
            surface_id,
            idx.generation,
        )
        return idx.generation

    def is_current(self, surface_id: str, generation: int) -> bool:
        return generation == self._surface(surface_id).generation

    def append(
        self,
        surface_id: str,
        line: int,
        handle: CellRef,
        generation: int,
    ) -> Artifact | None:
        """Record *handle* for *line*; None when nothing was recorded.

        Synthetic artifacts (``NO_LINE``) are never indexed. A stale
        generation is dropped and counted.
        """
        if line == NO_LINE:
            return None
        idx = self._surface(surface_id)
        if generation != idx.generation:
            idx.dropped += 1
            logger.info(
                "event=stale_artifact_dropped surface=%s "
                "generation=%d current=%d line=%d",
                surface_id,
                generation,
                idx.generation,
                line,
            )
            return None
        sequence = idx.lines.setdefault(line, [])
        artifact = Artifact(
            handle=handle,
            surface_id=surface_id,
            line=line,
            ordinal=len(sequence),
            generation=generation,
        )
        sequence.append(artifact)
        return artifact

    def sequence(self, surface_id: str, line: int) -> list[Artifact]:
        """Copy of the artifacts for *line*, in execution order."""
        idx = self._surfaces.get(surface_id)
        if idx is None:
            return []
        return list(idx.lines.get(line, ()))

    def lines(self, surface_id: str) -> list[int]:
        idx = self._surfaces.get(surface_id)
        if idx is None:
            return []
        return sorted(idx.lines)

    def dropped_count(self, surface_id: str) -> int:
        idx = self._surfaces.get(surface_id)
        return idx.dropped if idx else 0

    def __len__(self) -> int:
        return sum(
            len(seq)
            for idx in self._surfaces.values()
            for seq in idx.lines.values()
        )
