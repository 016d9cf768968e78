"""In-process command session backed by a memory image."""

import logging
from collections import deque
from pathlib import Path
from typing import BinaryIO, Iterable, Sequence, Tuple, Union

from ..core.chunking import READ_COMMAND, WRITE_COMMAND, format_address, parse_command
from ..core.model import ConnectionOptions, ProtocolFailureError, SessionUnavailableError


log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5000  # ms


class ImageTransport:
    """Payload channel of an ImageSession - bytes queued by the last command."""

    def __init__(self):
        self._pending: deque = deque()
        self._pending_size = 0

    def push(self, data: bytes) -> None:
        self._pending.append(bytes(data))
        self._pending_size += len(data)

    def read_bytes(self, n: int) -> bytes:
        """Return exactly `n` pending bytes."""
        if n > self._pending_size:
            raise TimeoutError(f"Timed out waiting for {n} bytes, only {self._pending_size} pending")

        out = bytearray()
        while len(out) < n:
            block = self._pending.popleft()
            take = n - len(out)
            out += block[:take]
            if take < len(block):
                self._pending.appendleft(block[take:])
        self._pending_size -= n
        return bytes(out)

    def clear(self) -> None:
        self._pending.clear()
        self._pending_size = 0


class ImageSession:
    """Command session serving `getmem2`/`setmem` from a bytearray mapped at `base`."""

    def __init__(self, image: Union[bytes, bytearray], base: int = 0, *,
                 options: ConnectionOptions = ConnectionOptions.NONE,
                 receive_timeout: int = DEFAULT_TIMEOUT, send_timeout: int = DEFAULT_TIMEOUT):
        if base < 0:
            raise ValueError("Base address cannot be negative")
        self.memory = bytearray(image)
        self.base = base
        self.options = options
        self.receive_timeout = receive_timeout
        self.send_timeout = send_timeout
        self.commands: list[str] = []   # every command received, in order
        self._transport = ImageTransport()
        self._connected = True

    @classmethod
    def from_path(cls, source: Union[Path, str, BinaryIO], base: int = 0, **kwargs) -> "ImageSession":
        """Load a memory image from a path or binary file object."""
        if hasattr(source, 'read'):
            return cls(source.read(), base, **kwargs)
        with open(source, 'rb') as f:
            return cls(f.read(), base, **kwargs)

    @property
    def end(self) -> int:
        return self.base + len(self.memory)

    @property
    def transport(self) -> ImageTransport:
        return self._transport

    @property
    def connected(self) -> bool:
        return self._connected

    def send_command_strict(self, command: str) -> str:
        if not self._connected:
            raise SessionUnavailableError("Session is not connected")

        self.commands.append(command)
        try:
            name, args = parse_command(command)
            if name == READ_COMMAND:
                return self._getmem(int(args["addr"], 16), int(args["length"]))
            if name == WRITE_COMMAND:
                return self._setmem(int(args["addr"], 16), bytes.fromhex(args["data"]))
        except (KeyError, ValueError) as e:
            raise ProtocolFailureError(f"407- bad command {command!r}: {e}") from e
        raise ProtocolFailureError(f"407- unknown command {name}")

    def _offset(self, address: int, length: int) -> int:
        offset = address - self.base
        if offset < 0 or length < 0 or offset + length > len(self.memory):
            raise ProtocolFailureError(f"404- memory not mapped at {format_address(address)}")
        return offset

    def _getmem(self, address: int, length: int) -> str:
        offset = self._offset(address, length)
        self._transport.push(self.memory[offset:offset + length])
        return "203- binary response follows"

    def _setmem(self, address: int, data: bytes) -> str:
        offset = self._offset(address, len(data))
        self.memory[offset:offset + len(data)] = data
        log.debug("set %d bytes at %s", len(data), format_address(address))
        return f"200- set {len(data)} bytes"

    def save(self, path: Union[Path, str]) -> None:
        """Write the current memory image to `path`."""
        Path(path).write_bytes(self.memory)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Disconnect; further commands raise SessionUnavailableError."""
        self._connected = False
        self._transport.clear()


class RangeValidator:
    """Address validator accepting ranges that lie inside one known region."""

    def __init__(self, regions: Iterable[Tuple[int, int]]):
        self.regions: Sequence[Tuple[int, int]] = sorted(regions)

    @classmethod
    def for_session(cls, session: ImageSession) -> "RangeValidator":
        return cls([(session.base, session.end)])

    def is_valid_address_range(self, start: int, end: int) -> bool:
        if start < 0 or end < start:
            return False
        return any(lo <= start and end <= hi for lo, hi in self.regions)


def open_image_session(source: Union[Path, str, BinaryIO, bytes, bytearray], base: int = 0,
                       **kwargs) -> ImageSession:
    """Create an image-backed session from raw bytes, a path or a binary file object."""
    if isinstance(source, (bytes, bytearray)):
        return ImageSession(source, base, **kwargs)
    return ImageSession.from_path(source, base, **kwargs)
