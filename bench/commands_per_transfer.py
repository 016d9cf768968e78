"""Command-count sanity benchmark for memory streams.

Quick script to show how many round trips a transfer of a given size costs
against an in-process image session. Meant for manual runs.
"""

import asyncio
import sys
import time
from pathlib import Path

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from memstream.io import ImageSession, open_stream, open_stream_async

IMAGE_SIZE = 1024 * 1024
BASE = 0x10000


def test_sync_commands(size: int):
    """Round trip `size` bytes and report the commands spent."""
    session = ImageSession(bytes(IMAGE_SIZE), BASE)
    stream = open_stream(session)

    start = time.perf_counter()
    stream.write(b"\x5a" * size)
    stream.seek(BASE)
    data = stream.read(size)
    elapsed = time.perf_counter() - start

    assert data == b"\x5a" * size
    print(f"{size:>8} bytes: {stream.commands_sent:>5} commands, {elapsed * 1000:.1f} ms")


async def test_async_commands(size: int):
    session = ImageSession(bytes(IMAGE_SIZE), BASE)
    stream = await open_stream_async(session)

    await stream.write(b"\xa5" * size)
    stream.seek(BASE)
    assert await stream.read(size) == b"\xa5" * size
    print(f"{size:>8} bytes: {stream.commands_sent:>5} commands (async)")


if __name__ == "__main__":
    print("memstream command-count benchmark")
    print("=" * 40)

    for size in (1, 240, 1024, 5000, 65536):
        test_sync_commands(size)
    print()

    asyncio.run(test_async_commands(65536))

    print("\nBenchmark complete!")
