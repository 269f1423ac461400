"""Exception hierarchy for the Rust+ client.

Every error raised by this package derives from RustPlusError. Where a
builtin category fits (connection, timeout, value) the error also
derives from it so callers can catch either.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .protocol.messages import AppError


class RustPlusError(Exception):
    """Base class for all client errors."""


class NotConnectedError(RustPlusError, ConnectionError):
    """A request was issued without an active connection."""

    def __init__(self, message: str = "Not connected to a Rust+ server") -> None:
        super().__init__(message)


class ConnectionClosedError(RustPlusError, ConnectionError):
    """The connection closed while a request was still waiting."""

    def __init__(self, message: str = "Connection closed before a response arrived") -> None:
        super().__init__(message)


class RequestSendError(RustPlusError):
    """The transport failed to write a request."""

    def __init__(self, seq: int, cause: BaseException) -> None:
        super().__init__(f"Failed to send request seq={seq}: {cause}")
        self.seq = seq
        self.cause = cause


class RequestTimeoutError(RustPlusError, TimeoutError):
    """No response arrived within the configured window."""

    def __init__(self, seq: int, timeout: float) -> None:
        super().__init__(f"Timeout reached while waiting for response to seq={seq} ({timeout}s)")
        self.seq = seq
        self.timeout = timeout


class AppResponseError(RustPlusError):
    """The server answered a request with an AppError."""

    def __init__(self, seq: int, error: AppError) -> None:
        super().__init__(f"Server returned error for seq={seq}: {error.error}")
        self.seq = seq
        self.error = error

    @property
    def reason(self) -> str:
        return self.error.error


class CodecError(RustPlusError, ValueError):
    """A frame could not be encoded or decoded."""


class SequenceExhaustedError(RustPlusError):
    """The sequence counter reached the wire field's upper bound."""


class DuplicateSequenceError(RustPlusError):
    """A sequence number was registered twice. Indicates a defect."""


class TooManyPendingRequestsError(RustPlusError):
    """The correlation registry is at capacity."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Too many pending requests (limit {limit})")
        self.limit = limit
