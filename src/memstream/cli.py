"""CLI implementation for memstream."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from .core.model import ConnectionOptions, MemoryStreamError, Result
from .core.util import parse_int, result_asdict
from .io import ImageSession, RangeValidator, open_stream

app = typer.Typer(add_completion=False, help="Read and write the memory of a debug target image.")


def _open_session(image: Path, base: str, protected: bool) -> tuple[ImageSession, RangeValidator]:
    options = ConnectionOptions.PROTECTED_MODE if protected else ConnectionOptions.NONE
    session = ImageSession.from_path(image, parse_int(base), options=options)
    return session, RangeValidator.for_session(session)


def _failed(e: Exception, stream) -> Result:
    """Failed result carrying whatever the stream transferred before the error."""
    if stream is None:
        return Result(success=False, data=None, error=str(e), bytes_fetched=0)
    return Result(False, None, str(e), stream.bytes_fetched, stream.commands_sent)


def _emit(res: Result, output: Optional[Path]) -> None:
    """Write one pretty JSON object to `output` or stdout."""
    sink = open(output, "w", encoding="utf-8") if output else sys.stdout
    try:
        json.dump(result_asdict(res), sink, indent=2)
        sink.write("\n")
    finally:
        if output:
            sink.close()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Log every chunk command"),
):
    """Memory access over a command/response debug protocol."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@app.command()
def read(
    image: Path = typer.Argument(..., help="Memory image file served as remote memory"),
    address: str = typer.Option(..., "--address", "-a", help="Start address (hex with 0x, or decimal)"),
    count: int = typer.Option(..., "--count", "-n", min=0, help="Number of bytes to read"),
    base: str = typer.Option("0", "--base", help="Address the image is mapped at"),
    protected: bool = typer.Option(False, "--protected", help="Reject ranges outside the image before sending"),
    output: Optional[Path] = typer.Option(None, "-o", "--output", help="Write to PATH instead of stdout"),
):
    """Read COUNT bytes at ADDRESS and print them as hex."""
    stream = None
    try:
        start = parse_int(address)
        session, validator = _open_session(image, base, protected)
        with open_stream(session, validator) as stream:
            stream.seek(start)
            data = stream.read(count)
            res = Result(True, {"address": f"0x{start:08X}", "length": len(data), "data_hex": data.hex()},
                         None, stream.bytes_fetched, stream.commands_sent)
    except (MemoryStreamError, OSError, ValueError) as e:
        res = _failed(e, stream)

    _emit(res, output)
    if not res.success:
        raise typer.Exit(code=1)


@app.command()
def write(
    image: Path = typer.Argument(..., help="Memory image file, updated in place"),
    address: str = typer.Option(..., "--address", "-a", help="Start address (hex with 0x, or decimal)"),
    data: str = typer.Option(..., "--data", "-d", help="Bytes to write as a hex string"),
    base: str = typer.Option("0", "--base", help="Address the image is mapped at"),
    protected: bool = typer.Option(False, "--protected", help="Reject ranges outside the image before sending"),
):
    """Write hex DATA at ADDRESS and save the image."""
    stream = None
    try:
        start = parse_int(address)
        payload = bytes.fromhex(data)
        session, validator = _open_session(image, base, protected)
        with open_stream(session, validator) as stream:
            stream.seek(start)
            try:
                written = stream.write(payload)
            finally:
                # chunks acknowledged before a failure stay committed
                session.save(image)
            res = Result(True, {"address": f"0x{start:08X}", "bytes_written": written},
                         None, 0, stream.commands_sent)
    except (MemoryStreamError, OSError, ValueError) as e:
        res = _failed(e, stream)

    _emit(res, None)
    if not res.success:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
