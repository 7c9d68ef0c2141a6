"""Namespace Registry: the named regions of one source buffer.

The registry is replaced wholesale after every extraction; exactly one
namespace is active once the registry is populated.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import PurePath

from cellsync.constants import RESERVED_NAME_CHARS, SURFACE_PREFIX, UNBOUNDED
from cellsync.resilience.errors import ConfigurationError
from cellsync.rpc.client import Region

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Namespace:
    """A line-bounded, independently executable region of source."""

    name: str
    start_line: int
    end_line: int
    buffer_id: str

    @property
    def surface_id(self) -> str:
        return surface_id_for(self.name)

    @property
    def unbounded(self) -> bool:
        return self.start_line == UNBOUNDED and self.end_line == UNBOUNDED

    def contains(self, line: int) -> bool:
        if self.unbounded:
            return True
        return self.start_line <= line <= self.end_line

    @property
    def span(self) -> int:
        """Number of lines covered; unbounded sorts after everything."""
        if self.unbounded:
            return 2**31
        return self.end_line - self.start_line + 1


def validate_namespace_name(name: str) -> str:
    """Raise ConfigurationError for names the surface id cannot carry."""
    if not name:
        raise ConfigurationError("namespace name must not be empty")
    bad = [c for c in RESERVED_NAME_CHARS if c in name]
    if bad:
        raise ConfigurationError(
            f"namespace name {name!r} contains reserved "
            f"character(s) {' '.join(bad)}"
        )
    return name


def surface_id_for(name: str) -> str:
    return SURFACE_PREFIX + name


def module_namespace_name(document: str | PurePath) -> str:
    """Document base name with its extension stripped, validated."""
    return validate_namespace_name(PurePath(document).stem)


class NamespaceRegistry:
    """Known namespaces of one buffer plus the active selection."""

    def __init__(self, buffer_id: str) -> None:
        self._buffer_id = buffer_id
        self._namespaces: dict[str, Namespace] = {}
        self._active: str | None = None

    @property
    def buffer_id(self) -> str:
        return self._buffer_id

    def __len__(self) -> int:
        return len(self._namespaces)

    def __iter__(self) -> Iterator[Namespace]:
        return iter(self._namespaces.values())

    def __contains__(self, name: object) -> bool:
        return name in self._namespaces

    def names(self) -> list[str]:
        return list(self._namespaces)

    def get(self, name: str) -> Namespace | None:
        return self._namespaces.get(name)

    @property
    def active(self) -> Namespace | None:
        if self._active is None:
            return None
        return self._namespaces.get(self._active)

    @property
    def module_namespace(self) -> Namespace | None:
        for ns in self._namespaces.values():
            if ns.unbounded:
                return ns
        return None

    def replace(self, regions: Iterable[Region]) -> list[Namespace]:
        """Swap in a fresh set of namespaces.

        Every name is validated before anything changes, so a bad
        region leaves the previous registry untouched. The previous
        active namespace survives if its name is still present;
        otherwise the module namespace (or the first region) is active.
        """
        fresh: dict[str, Namespace] = {}
        for region in regions:
            validate_namespace_name(region.name)
            if region.name in fresh:
                raise ConfigurationError(
                    f"duplicate namespace name {region.name!r}"
                )
            fresh[region.name] = Namespace(
                name=region.name,
                start_line=region.start_line,
                end_line=region.end_line,
                buffer_id=self._buffer_id,
            )

        previous = self._active
        self._namespaces = fresh
        if previous in fresh:
            self._active = previous
        else:
            module = self.module_namespace
            first = next(iter(fresh), None)
            self._active = module.name if module else first
        logger.debug(
            "event=registry_replaced buffer=%s count=%d active=%s",
            self._buffer_id,
            len(fresh),
            self._active,
        )
        return list(fresh.values())

    def activate(self, name: str) -> Namespace:
        ns = self._namespaces.get(name)
        if ns is None:
            raise ConfigurationError(f"unknown namespace {name!r}")
        self._active = name
        return ns

    def namespace_at(self, line: int) -> Namespace | None:
        """Innermost namespace whose range contains *line*."""
        candidates = [ns for ns in self._namespaces.values() if ns.contains(line)]
        if not candidates:
            return None
        return min(candidates, key=lambda ns: ns.span)
