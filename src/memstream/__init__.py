"""memstream - seekable byte streams over the memory of a remote debug target."""

from .core.model import (                                              # re-export
    SeekOrigin, ConnectionOptions, MemoryStreamError, AddressViolationError,
    ProtocolFailureError, SessionUnavailableError, UnsupportedOperationError,
    InvalidArgumentError,
)
from .core.chunking import READ_CHUNK_SIZE, WRITE_CHUNK_SIZE, DEFAULT_POSITION
from .io import (
    MemoryStream, AsyncMemoryStream, ImageSession, RangeValidator,
    open_stream, open_stream_async, open_image_session,
)


def read_memory(session, address: int, count: int, validator=None) -> bytes:
    """Read `count` bytes at `address` through a short-lived stream."""
    with open_stream(session, validator) as stream:
        stream.seek(address)
        return stream.read(count)


def write_memory(session, address: int, data, validator=None) -> int:
    """Write `data` at `address` through a short-lived stream."""
    with open_stream(session, validator) as stream:
        stream.seek(address)
        return stream.write(data)


__all__ = [
    "read_memory", "write_memory",
    "MemoryStream", "AsyncMemoryStream", "ImageSession", "RangeValidator",
    "open_stream", "open_stream_async", "open_image_session",
    "SeekOrigin", "ConnectionOptions", "MemoryStreamError", "AddressViolationError",
    "ProtocolFailureError", "SessionUnavailableError", "UnsupportedOperationError",
    "InvalidArgumentError",
    "READ_CHUNK_SIZE", "WRITE_CHUNK_SIZE", "DEFAULT_POSITION",
]
