from __future__ import annotations
import enum
import io
from dataclasses import dataclass
from typing import Any, Dict


@dataclass(slots=True)
class Result:
    success: bool
    data: Dict[str, Any] | None
    error: str | None
    bytes_fetched: int         # filled from the stream counters
    commands_sent: int = 0


class SeekOrigin(enum.IntEnum):
    BEGIN = io.SEEK_SET
    CURRENT = io.SEEK_CUR
    END = io.SEEK_END          # remote memory has no end, rejected by seek()


class ConnectionOptions(enum.Flag):
    NONE = 0
    PROTECTED_MODE = enum.auto()


class MemoryStreamError(RuntimeError):
    """Base class for every error raised by memstream."""
    pass


class AddressViolationError(MemoryStreamError):
    """Raised when a protected-mode range check fails. Nothing was sent."""

    def __init__(self, message: str, start: int, end: int):
        super().__init__(message)
        self.start = start
        self.end = end


class ProtocolFailureError(MemoryStreamError, IOError):
    """Raised when a chunk command is refused or its payload never arrives.

    `address` is the start of the failing chunk, `transferred` the number of
    bytes completed by earlier chunks of the same call.
    """

    def __init__(self, message: str, *, address: int | None = None, transferred: int = 0):
        super().__init__(message)
        self.address = address
        self.transferred = transferred


class SessionUnavailableError(ProtocolFailureError, ConnectionError):
    """Raised when the command session is closed or was never connected."""
    pass


class UnsupportedOperationError(MemoryStreamError, io.UnsupportedOperation):
    """Raised for operations remote memory has no meaning for."""
    pass


class InvalidArgumentError(MemoryStreamError, ValueError):
    """Raised for an unknown seek origin, a negative count or an out-of-range address."""
    pass
