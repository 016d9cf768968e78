from __future__ import annotations
from typing import Dict, Any
from .model import Result


def parse_int(text: str) -> int:
    """Accept `0x`-prefixed hex or decimal, as addresses are usually written in hex."""
    return int(text, 0)


def result_asdict(res: Result) -> Dict[str, Any]:
    """Return a JSON-serialisable dict (skip None)."""
    if not res.success or res.data is None:
        return {"success": False, "error": res.error, "bytes_fetched": res.bytes_fetched, "commands_sent": res.commands_sent}
    payload = {k: v for k, v in res.data.items() if v is not None}
    payload.update({"success": True, "bytes_fetched": res.bytes_fetched, "commands_sent": res.commands_sent})
    return payload
