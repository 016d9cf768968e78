"""Seekable byte stream over remote memory, driven by debug protocol commands."""

import asyncio
import logging
import operator
from typing import Iterator, Optional, Tuple

from ..core.chunking import (
    Chunk, DEFAULT_POSITION, READ_CHUNK_SIZE, WRITE_CHUNK_SIZE,
    format_address, iter_chunks, read_command, write_command,
)
from ..core.model import (
    AddressViolationError, ConnectionOptions, InvalidArgumentError, MemoryStreamError,
    ProtocolFailureError, SeekOrigin, SessionUnavailableError, UnsupportedOperationError,
)
from .base import AddressValidator, CommandSession


log = logging.getLogger(__name__)


def _as_int(value, what: str) -> int:
    try:
        return operator.index(value)
    except TypeError:
        raise InvalidArgumentError(f"{what} must be an integer, got {value!r}") from None


class MemoryStream:
    """Synchronous stream over the memory of a remote device.

    The position is an absolute remote address. Reads and writes are cut into
    bounded chunks, one command round trip per chunk, issued strictly in
    address order. The position moves only after a chunk has fully completed,
    so after a failure it points just past the last byte actually transferred.
    Earlier chunks are never rolled back.

    Not safe for concurrent use: the position is mutated in place and every
    chunk assumes exclusive use of the session transport.
    """

    def __init__(self, session: CommandSession, validator: Optional[AddressValidator] = None,
                 *, logger: Optional[logging.Logger] = None):
        if session is None:
            raise ValueError("A command session is required")

        self._session: Optional[CommandSession] = session
        self._validator = validator
        self._log = logger or log
        self._position = DEFAULT_POSITION    # start at a valid memory address
        self._protected_mode = False
        self.protected_mode = ConnectionOptions.PROTECTED_MODE in session.options

        self.bytes_fetched = 0
        self.bytes_written = 0
        self.commands_sent = 0

    # ------------------------------------------------------------------ #
    @property
    def protected_mode(self) -> bool:
        """Validate every transfer range before any command is sent."""
        return self._protected_mode

    @protected_mode.setter
    def protected_mode(self, enabled: bool) -> None:
        if enabled and self._validator is None:
            raise ValueError("Protected mode requires an address validator")
        self._protected_mode = bool(enabled)

    @property
    def position(self) -> int:
        return self._position

    @position.setter
    def position(self, address: int) -> None:
        self.seek(address, SeekOrigin.BEGIN)

    @property
    def closed(self) -> bool:
        return self._session is None

    # --------------------------- seeking ------------------------------- #
    def seek(self, offset: int, origin: int = SeekOrigin.BEGIN) -> int:
        """Move to an absolute address (BEGIN) or relative to the current one (CURRENT)."""
        offset = _as_int(offset, "Seek offset")
        if origin == SeekOrigin.BEGIN:
            target = offset
        elif origin == SeekOrigin.CURRENT:
            target = self._position + offset
        else:
            raise InvalidArgumentError(f"Unsupported seek origin: {origin!r}")

        if target < 0:
            raise InvalidArgumentError(f"Cannot seek to negative address {target}")

        self._position = target
        return self._position

    def tell(self) -> int:
        return self._position

    # --------------------------- reading ------------------------------- #
    def read(self, count: int) -> bytes:
        """Read `count` bytes at the current position and advance past them."""
        if count < 0:
            raise InvalidArgumentError(f"Count cannot be negative, got {count}")
        buf = bytearray(count)
        self.readinto(buf)
        return bytes(buf)

    def readinto(self, buffer) -> int:
        """Fill `buffer` from the current position. Returns the number of bytes read."""
        with memoryview(buffer) as view, view.cast("B") as out:
            for chunk, data in self._read_chunks(self._position, len(out)):
                out[chunk.offset:chunk.offset + chunk.length] = data
                self._position = chunk.end
            return len(out)

    def fetch(self, start: int, length: int) -> bytes:
        """Return exactly `length` bytes at absolute address `start`, leaving the position alone."""
        start = _as_int(start, "Start address")
        if start < 0:
            raise InvalidArgumentError("Start address cannot be negative")
        if length < 0:
            raise InvalidArgumentError(f"Length cannot be negative, got {length}")
        buf = bytearray(length)
        for chunk, data in self._read_chunks(start, length):
            buf[chunk.offset:chunk.offset + chunk.length] = data
        return bytes(buf)

    def _read_chunks(self, address: int, count: int) -> Iterator[Tuple[Chunk, bytes]]:
        session = self._require_session()
        self._check_range(address, count, "read")

        for chunk in iter_chunks(address, count, READ_CHUNK_SIZE):
            self.commands_sent += 1
            try:
                session.send_command_strict(read_command(chunk.address, chunk.length))
                data = session.transport.read_bytes(chunk.length)
            except ProtocolFailureError as e:
                self._chunk_failed("read", chunk, e)
                raise
            except OSError as e:
                err = ProtocolFailureError(
                    f"Transport failed reading {chunk.length} bytes at {format_address(chunk.address)}: {e}",
                    address=chunk.address, transferred=chunk.offset)
                self._chunk_failed("read", chunk, err)
                raise err from e

            if len(data) != chunk.length:
                err = ProtocolFailureError(
                    f"Short read at {format_address(chunk.address)}: "
                    f"expected {chunk.length} bytes, got {len(data)}",
                    address=chunk.address, transferred=chunk.offset)
                self._chunk_failed("read", chunk, err)
                raise err

            self.bytes_fetched += len(data)
            self._log.debug("read %d bytes at %s", chunk.length, format_address(chunk.address))
            yield chunk, data

    # --------------------------- writing ------------------------------- #
    def write(self, data) -> int:
        """Write a bytes-like object at the current position and advance past it.

        A failure part way leaves the earlier chunks committed on the remote
        side; the position then points just past them.
        """
        with memoryview(data) as view, view.cast("B") as payload:
            for chunk in self._write_chunks(self._position, payload):
                self._position = chunk.end
            return len(payload)

    def store(self, start: int, data) -> int:
        """Write `data` at absolute address `start`, leaving the position alone."""
        start = _as_int(start, "Start address")
        if start < 0:
            raise InvalidArgumentError("Start address cannot be negative")
        with memoryview(data) as view, view.cast("B") as payload:
            for _ in self._write_chunks(start, payload):
                pass
            return len(payload)

    def _write_chunks(self, address: int, payload: memoryview) -> Iterator[Chunk]:
        session = self._require_session()
        self._check_range(address, len(payload), "write")

        for chunk in iter_chunks(address, len(payload), WRITE_CHUNK_SIZE):
            block = payload[chunk.offset:chunk.offset + chunk.length]
            self.commands_sent += 1
            try:
                session.send_command_strict(write_command(chunk.address, block))
            except ProtocolFailureError as e:
                self._chunk_failed("write", chunk, e)
                raise
            except OSError as e:
                err = ProtocolFailureError(
                    f"Transport failed writing {chunk.length} bytes at {format_address(chunk.address)}: {e}",
                    address=chunk.address, transferred=chunk.offset)
                self._chunk_failed("write", chunk, err)
                raise err from e

            self.bytes_written += chunk.length
            self._log.debug("wrote %d bytes at %s", chunk.length, format_address(chunk.address))
            yield chunk

    # --------------------------- helpers ------------------------------- #
    def _require_session(self) -> CommandSession:
        if self._session is None:
            raise SessionUnavailableError("Memory stream is closed")
        return self._session

    def _check_range(self, address: int, count: int, verb: str) -> None:
        if not self._protected_mode:
            return
        end = address + count
        if not self._validator.is_valid_address_range(address, end):
            self._log.warning("Blocked %s of %d bytes at %s: invalid address range",
                              verb, count, format_address(address))
            raise AddressViolationError(f"Invalid address detected during memory {verb}.", address, end)

    def _chunk_failed(self, verb: str, chunk: Chunk, err: ProtocolFailureError) -> None:
        if err.address is None:
            err.address = chunk.address
            err.transferred = chunk.offset
        self._log.warning("Memory %s failed at %s after %d bytes: %s",
                          verb, format_address(chunk.address), chunk.offset, err)

    # --------------------------- timeouts ------------------------------ #
    @property
    def read_timeout(self) -> int:
        return self._session.receive_timeout if self._session is not None else 0

    @read_timeout.setter
    def read_timeout(self, value: int) -> None:
        raise UnsupportedOperationError("Read timeout is owned by the command session")

    @property
    def write_timeout(self) -> int:
        return self._session.send_timeout if self._session is not None else 0

    @write_timeout.setter
    def write_timeout(self, value: int) -> None:
        raise UnsupportedOperationError("Write timeout is owned by the command session")

    # ------------------------- unsupported ----------------------------- #
    def flush(self) -> None:
        raise UnsupportedOperationError("flush is not supported on remote memory")

    @property
    def length(self) -> int:
        raise UnsupportedOperationError("Remote memory has no length")

    def set_length(self, value: int) -> None:
        raise UnsupportedOperationError("Remote memory cannot be truncated")

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    # ------------------------------------------------------------------ #
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Unbind the session. The session itself is shared, don't close it here."""
        self._session = None


class AsyncMemoryStream:
    """Asynchronous memory stream - thin wrapper around the sync stream."""

    def __init__(self, session: CommandSession, validator: Optional[AddressValidator] = None,
                 *, logger: Optional[logging.Logger] = None):
        self._sync_stream = MemoryStream(session, validator, logger=logger)
        self._lock = asyncio.Lock()

    @property
    def position(self) -> int:
        return self._sync_stream.position

    @property
    def protected_mode(self) -> bool:
        return self._sync_stream.protected_mode

    @protected_mode.setter
    def protected_mode(self, enabled: bool) -> None:
        self._check_idle("change protected mode")
        self._sync_stream.protected_mode = enabled

    @property
    def closed(self) -> bool:
        return self._sync_stream.closed

    @property
    def bytes_fetched(self) -> int:
        return self._sync_stream.bytes_fetched

    @property
    def bytes_written(self) -> int:
        return self._sync_stream.bytes_written

    @property
    def commands_sent(self) -> int:
        return self._sync_stream.commands_sent

    @property
    def read_timeout(self) -> int:
        return self._sync_stream.read_timeout

    @property
    def write_timeout(self) -> int:
        return self._sync_stream.write_timeout

    def seek(self, offset: int, origin: int = SeekOrigin.BEGIN) -> int:
        self._check_idle("seek")
        return self._sync_stream.seek(offset, origin)

    def tell(self) -> int:
        return self._sync_stream.tell()

    async def read(self, count: int) -> bytes:
        return await self._run(self._sync_stream.read, count)

    async def write(self, data) -> int:
        return await self._run(self._sync_stream.write, data)

    async def fetch(self, start: int, length: int) -> bytes:
        return await self._run(self._sync_stream.fetch, start, length)

    async def store(self, start: int, data) -> int:
        return await self._run(self._sync_stream.store, start, data)

    def _check_idle(self, what: str) -> None:
        if self._lock.locked():
            raise MemoryStreamError(f"Cannot {what} while a transfer is in flight")

    async def _run(self, func, *args):
        # one chunk sequence at a time per session
        async with self._lock:
            worker = asyncio.ensure_future(asyncio.to_thread(func, *args))
            try:
                return await asyncio.shield(worker)
            except asyncio.CancelledError:
                # the thread cannot be interrupted, keep the lock until it is done
                while not worker.done():
                    try:
                        await asyncio.wait({worker})
                    except asyncio.CancelledError:
                        continue
                if not worker.cancelled():
                    worker.exception()
                raise

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Unbind the underlying sync stream."""
        async with self._lock:
            self._sync_stream.close()
