"""Collaborator protocols consumed by the memory stream."""

from typing import Protocol, runtime_checkable

from ..core.model import ConnectionOptions


@runtime_checkable
class Transport(Protocol):
    """Raw byte channel a session exposes for command payloads."""

    def read_bytes(self, n: int) -> bytes:
        """Return exactly `n` bytes.
        If they cannot be obtained → raise OSError (TimeoutError on timeout).
        """
        ...


@runtime_checkable
class CommandSession(Protocol):
    """Protocol for textual command/response debug sessions."""

    options: ConnectionOptions
    receive_timeout: int  # milliseconds
    send_timeout: int     # milliseconds

    @property
    def transport(self) -> Transport:
        ...

    def send_command_strict(self, command: str) -> str:
        """Send `command` and return its acknowledgement line.
        Non-success acknowledgement → raise ProtocolFailureError.
        Not connected → raise SessionUnavailableError.
        """
        ...


@runtime_checkable
class AddressValidator(Protocol):
    """Protocol for answering which remote addresses are safe to touch."""

    def is_valid_address_range(self, start: int, end: int) -> bool:
        """Return True when every address in [start, end) may be accessed."""
        ...
