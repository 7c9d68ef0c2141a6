"""Shared constants: single source of truth for cross-module values.

StrEnum members are str-compatible, so they travel over the wire
(JSON payloads, RPC params) unchanged.
"""

from __future__ import annotations

from enum import StrEnum

# ── Wire sentinels ───────────────────────────────────────

NO_LINE = -1
"""Line number carried by notifications for synthetic artifacts."""

UNBOUNDED = -1
"""Start/end line of the module-level namespace."""

SURFACE_PREFIX = "ns="
RESERVED_NAME_CHARS = (".", "=")
REGION_PATH_SEPARATOR = "/"

MAX_HEADING_LEVEL = 6

# ── RPC method names ─────────────────────────────────────


class RpcMethod(StrEnum):
    """Method names on the wire."""

    EXTRACT_REGIONS = "extractRegions"
    ANNOTATE = "annotate"
    NOTIFY_ARTIFACT_CREATED = "notifyArtifactCreated"


# ── String Enums ─────────────────────────────────────────


class ArtifactKind(StrEnum):
    """How a notebook cell is realized."""

    CODE = "code"
    MARKDOWN = "markdown"
    HEADING = "heading"


class OrchestratorState(StrEnum):
    """Execution orchestrator lifecycle."""

    IDLE = "idle"
    REGIONS_REQUESTED = "regions_requested"
    REGIONS_READY = "regions_ready"
    ANNOTATION_REQUESTED = "annotation_requested"
    EXECUTING = "executing"


class CommandProgress(StrEnum):
    """Progress status for user-facing command events."""

    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class CommandName(StrEnum):
    """Commands the orchestrator accepts."""

    REBUILD_NAMESPACES = "rebuild_namespaces"
    EXECUTE_ACTIVE = "execute_active"
    SELECT_NAMESPACE = "select_namespace"


COMMAND_LABELS: dict[str, str] = {
    CommandName.REBUILD_NAMESPACES: "Building namespaces",
    CommandName.EXECUTE_ACTIVE: "Executing namespace",
    CommandName.SELECT_NAMESPACE: "Selecting namespace",
}

# ── Framing ──────────────────────────────────────────────

FRAME_HEADER_BYTES = 6
MAX_FRAME_PAYLOAD = 0xFFFFFF

# ── Misc ─────────────────────────────────────────────────

ID_HEX_LENGTH = 12
GENERATION_GLOBAL = "__cellsync_generation__"
NOTIFY_ADDRESS_GLOBAL = "__cellsync_notify__"
