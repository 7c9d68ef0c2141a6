"""Error taxonomy and classification for structured error handling.

Classifies exceptions by category to enable:
- Structured logging (which failures are local vs a peer's fault)
- Informative user messages (bad name vs lost peer vs remote failure)
"""

from __future__ import annotations

import asyncio
from enum import Enum


class CellSyncError(Exception):
    """Base class for every error raised by cellsync."""


class ConfigurationError(CellSyncError):
    """Invalid namespace or document name; no state was mutated."""


class ConnectionLost(CellSyncError):
    """RPC peer unreachable, or it went away with calls outstanding."""


class ProtocolError(CellSyncError):
    """Malformed frame, message or reply shape."""


class CommandRejected(CellSyncError):
    """Command refused because another one is still in flight."""


class RemoteError(CellSyncError):
    """The peer ran the call and it failed on its side."""

    def __init__(self, error_type: str, message: str) -> None:
        super().__init__(f"{error_type}: {message}")
        self.error_type = error_type
        self.message = message


class ErrorClass(Enum):
    CONFIGURATION = "configuration"  # bad names: fix input, do NOT retry
    CONNECTION = "connection"  # peer gone: restart peer, then retry
    REMOTE = "remote"  # peer raised: inspect peer log
    PROTOCOL = "protocol"  # wire garbage: version mismatch
    TIMEOUT = "timeout"  # deadline exceeded
    REJECTED = "rejected"  # busy: try again once idle
    UNKNOWN = "unknown"


def classify_error(error: BaseException) -> ErrorClass:
    """Classify an error to determine how it is reported.

    Checks the cellsync taxonomy first, then stdlib timeout and
    connection types raised straight out of asyncio streams.
    """
    if isinstance(error, ConfigurationError):
        return ErrorClass.CONFIGURATION
    if isinstance(error, ConnectionLost):
        return ErrorClass.CONNECTION
    if isinstance(error, RemoteError):
        return ErrorClass.REMOTE
    if isinstance(error, ProtocolError):
        return ErrorClass.PROTOCOL
    if isinstance(error, CommandRejected):
        return ErrorClass.REJECTED
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return ErrorClass.TIMEOUT
    if isinstance(error, (ConnectionError, asyncio.IncompleteReadError)):
        return ErrorClass.CONNECTION
    return ErrorClass.UNKNOWN


_USER_MESSAGES: dict[ErrorClass, str] = {
    ErrorClass.CONFIGURATION: "Invalid namespace name",
    ErrorClass.CONNECTION: "Lost connection to peer",
    ErrorClass.REMOTE: "Peer failed to process the request",
    ErrorClass.PROTOCOL: "Peer sent a malformed message",
    ErrorClass.TIMEOUT: "Peer did not answer in time",
    ErrorClass.REJECTED: "Command rejected",
    ErrorClass.UNKNOWN: "Unexpected error",
}


def user_message(error: BaseException) -> str:
    """One-line failure text suitable for the editor's message area."""
    prefix = _USER_MESSAGES[classify_error(error)]
    detail = str(error)
    return f"{prefix}: {detail}" if detail else prefix


_RECOVERABLE = frozenset({
    ErrorClass.CONFIGURATION,
    ErrorClass.CONNECTION,
    ErrorClass.REMOTE,
    ErrorClass.PROTOCOL,
    ErrorClass.TIMEOUT,
    ErrorClass.REJECTED,
})


def is_command_failure(error: BaseException) -> bool:
    """Return True if the error ends a command without being a bug."""
    return classify_error(error) in _RECOVERABLE
