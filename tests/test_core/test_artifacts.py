"""Tests for the Artifact Index."""

from __future__ import annotations

from cellsync.constants import NO_LINE
from cellsync.core.artifacts import ArtifactIndex

S = "ns=f"


class TestAppend:
    def test_sequence_keeps_arrival_order(self, index: ArtifactIndex) -> None:
        gen = index.generation(S)
        for handle in ("c1", "c2", "c3"):
            index.append(S, 5, handle, gen)

        seq = index.sequence(S, 5)
        assert [a.handle for a in seq] == ["c1", "c2", "c3"]
        assert [a.ordinal for a in seq] == [0, 1, 2]
        assert all(a.line == 5 and a.surface_id == S for a in seq)

    def test_lines_are_independent(self, index: ArtifactIndex) -> None:
        gen = index.generation(S)
        index.append(S, 2, "a", gen)
        index.append(S, 7, "b", gen)
        index.append(S, 2, "c", gen)

        assert index.lines(S) == [2, 7]
        assert [a.handle for a in index.sequence(S, 2)] == ["a", "c"]
        assert len(index) == 3

    def test_no_line_is_never_indexed(self, index: ArtifactIndex) -> None:
        assert index.append(S, NO_LINE, "h", index.generation(S)) is None
        assert index.lines(S) == []
        assert len(index) == 0

    def test_sequence_is_a_copy(self, index: ArtifactIndex) -> None:
        index.append(S, 1, "a", index.generation(S))
        index.sequence(S, 1).clear()
        assert len(index.sequence(S, 1)) == 1

    def test_unknown_surface_is_empty(self, index: ArtifactIndex) -> None:
        assert index.sequence("ns=nope", 1) == []
        assert index.lines("ns=nope") == []
        assert index.dropped_count("ns=nope") == 0

    def test_surfaces_are_independent(self, index: ArtifactIndex) -> None:
        index.append(S, 1, "a", index.generation(S))
        index.append("ns=g", 1, "b", index.generation("ns=g"))
        index.reset(S)
        assert index.sequence(S, 1) == []
        assert [a.handle for a in index.sequence("ns=g", 1)] == ["b"]


class TestGenerations:
    def test_reset_clears_and_bumps(self, index: ArtifactIndex) -> None:
        assert index.generation(S) == 0
        index.append(S, 1, "old", 0)

        assert index.reset(S) == 1
        assert index.generation(S) == 1
        assert index.sequence(S, 1) == []
        assert index.is_current(S, 1)
        assert not index.is_current(S, 0)

    def test_stale_generation_dropped(self, index: ArtifactIndex) -> None:
        stale = index.generation(S)
        current = index.reset(S)

        assert index.append(S, 3, "late", stale) is None
        artifact = index.append(S, 3, "fresh", current)

        assert artifact is not None
        assert artifact.generation == current
        assert [a.handle for a in index.sequence(S, 3)] == ["fresh"]
        assert index.dropped_count(S) == 1

    def test_line_never_mixes_generations(self, index: ArtifactIndex) -> None:
        gen = index.generation(S)
        index.append(S, 4, "a", gen)
        gen = index.reset(S)
        index.append(S, 4, "b", gen)
        index.append(S, 4, "c", gen - 1)
        gens = [a.generation for a in index.sequence(S, 4)]
        assert set(gens) == {gen}
