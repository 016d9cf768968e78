"""Chunk planning and command text for the memory protocol.

Transfers are cut into protocol-legal pieces: reads into blocks of at most
READ_CHUNK_SIZE bytes, writes into blocks of at most WRITE_CHUNK_SIZE bytes
(hex text doubles the payload and the console caps the command line length).
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterator, Tuple

from .model import InvalidArgumentError

READ_CHUNK_SIZE = 1024
WRITE_CHUNK_SIZE = 240

DEFAULT_POSITION = 0x10000     # executable header, always mapped

READ_COMMAND = "getmem2"
WRITE_COMMAND = "setmem"


@dataclass(frozen=True, slots=True)
class Chunk:
    address: int    # absolute remote address
    offset: int     # offset into the caller's buffer
    length: int

    @property
    def end(self) -> int:
        return self.address + self.length


def iter_chunks(address: int, count: int, chunk_size: int) -> Iterator[Chunk]:
    """Yield contiguous chunks covering exactly [address, address + count)."""
    if chunk_size <= 0:
        raise InvalidArgumentError(f"Chunk size must be positive, got {chunk_size}")
    if count < 0:
        raise InvalidArgumentError(f"Count cannot be negative, got {count}")

    offset = 0
    while offset < count:
        length = min(chunk_size, count - offset)
        yield Chunk(address + offset, offset, length)
        offset += length


def format_address(address: int) -> str:
    return f"0x{address:08X}"


def read_command(address: int, length: int) -> str:
    return f"{READ_COMMAND} addr={format_address(address)} length={length}"


def write_command(address: int, data: bytes) -> str:
    return f"{WRITE_COMMAND} addr={format_address(address)} data={bytes(data).hex()}"


def parse_command(text: str) -> Tuple[str, Dict[str, str]]:
    """Split `name key=value ...` into the name and its parameters."""
    if not text.strip():
        raise InvalidArgumentError("Empty command")
    name, *params = text.split()
    args: Dict[str, str] = {}
    for param in params:
        key, sep, value = param.partition("=")
        if not sep:
            raise InvalidArgumentError(f"Malformed command parameter: {param!r}")
        args[key.lower()] = value
    return name.lower(), args
