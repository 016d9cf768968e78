"""I/O layer for memstream - streams over remote memory and the sessions behind them."""

# Re-export these for import convenience
from .base import Transport, CommandSession, AddressValidator
from .stream import MemoryStream, AsyncMemoryStream
from .local import ImageSession, ImageTransport, RangeValidator, open_image_session


def open_stream(session, validator=None, *, logger=None) -> MemoryStream:
    """Factory function to create a MemoryStream bound to `session`."""
    return MemoryStream(session, validator, logger=logger)


async def open_stream_async(session, validator=None, *, logger=None) -> AsyncMemoryStream:
    """Factory function to create an AsyncMemoryStream bound to `session`."""
    return AsyncMemoryStream(session, validator, logger=logger)
