"""Tests for the asynchronous memory stream."""

import asyncio
import time

import pytest

from memstream.core.model import AddressViolationError, MemoryStreamError, SessionUnavailableError
from memstream.io.local import ImageSession, RangeValidator
from memstream.io.stream import AsyncMemoryStream

from conftest import BASE, IMAGE, command_args


class SlowSession(ImageSession):
    """ImageSession that takes a while to answer every command."""

    def __init__(self, *args, delay=0.02, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = delay

    def send_command_strict(self, command):
        time.sleep(self.delay)
        return super().send_command_strict(command)


class TestAsyncMemoryStream:
    """Test the async wrapper around MemoryStream."""

    @pytest.mark.asyncio
    async def test_round_trip(self):
        """Write then read back through worker threads."""
        session = ImageSession(IMAGE, BASE)
        payload = bytes(range(200)) * 6

        stream = AsyncMemoryStream(session)
        stream.seek(BASE + 64)
        assert await stream.write(payload) == 1200
        assert stream.position == BASE + 64 + 1200

        stream.seek(BASE + 64)
        assert await stream.read(1200) == payload
        assert stream.bytes_written == 1200
        assert stream.bytes_fetched == 1200
        assert stream.commands_sent == 5 + 2

    @pytest.mark.asyncio
    async def test_positional_calls(self):
        session = ImageSession(IMAGE, BASE)
        async with AsyncMemoryStream(session) as stream:
            assert await stream.store(BASE + 16, b"\x42" * 4) == 4
            assert await stream.fetch(BASE + 16, 4) == b"\x42" * 4
            assert stream.tell() == BASE
        assert stream.closed

    @pytest.mark.asyncio
    async def test_concurrent_calls_stay_ordered(self):
        """Concurrent fetches never interleave their chunk commands."""
        session = ImageSession(IMAGE, BASE)
        stream = AsyncMemoryStream(session)

        results = await asyncio.gather(
            stream.fetch(BASE, 3000),
            stream.fetch(BASE + 4096, 2100),
        )

        assert results[0] == IMAGE[:3000]
        assert results[1] == IMAGE[4096:4096 + 2100]
        addrs = [int(a["addr"], 16) for a in command_args(session, "getmem2")]
        assert sorted(addrs[:3]) == addrs[:3]
        assert sorted(addrs[3:]) == addrs[3:]

    @pytest.mark.asyncio
    async def test_protected_mode(self):
        session = ImageSession(IMAGE, BASE)
        stream = AsyncMemoryStream(session, RangeValidator.for_session(session))
        stream.protected_mode = True
        stream.seek(0)

        with pytest.raises(AddressViolationError):
            await stream.read(4)
        assert session.commands == []

    @pytest.mark.asyncio
    async def test_closed(self):
        session = ImageSession(IMAGE, BASE, receive_timeout=900, send_timeout=300)
        stream = AsyncMemoryStream(session)
        assert stream.read_timeout == 900
        assert stream.write_timeout == 300

        await stream.close()
        assert stream.read_timeout == 0
        with pytest.raises(SessionUnavailableError):
            await stream.read(1)

    @pytest.mark.asyncio
    async def test_cancelled_call_finishes_before_next(self):
        """A cancelled fetch still completes its chunks before the next call starts."""
        session = SlowSession(IMAGE, BASE)
        stream = AsyncMemoryStream(session)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(stream.fetch(BASE, 8192), 0.05)

        assert await stream.fetch(BASE + 9216, 1024) == IMAGE[9216:]

        addrs = [int(a["addr"], 16) for a in command_args(session, "getmem2")]
        assert addrs == [BASE + i * 1024 for i in range(8)] + [BASE + 9216]

    @pytest.mark.asyncio
    async def test_seek_rejected_during_transfer(self):
        """The position cannot be moved under a running transfer."""
        session = SlowSession(IMAGE, BASE)
        stream = AsyncMemoryStream(session)

        task = asyncio.create_task(stream.read(4096))
        await asyncio.sleep(0.01)

        with pytest.raises(MemoryStreamError, match="in flight"):
            stream.seek(BASE + 8192)
        with pytest.raises(MemoryStreamError, match="in flight"):
            stream.protected_mode = False

        assert await task == IMAGE[:4096]
        assert stream.position == BASE + 4096
        assert stream.seek(BASE + 8192) == BASE + 8192
