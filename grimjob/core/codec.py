"""JSON codec for job payloads."""

import json
from typing import Any


def dump_json(value: Any) -> str:
    """Encode a value as compact JSON text.

    Raises TypeError/ValueError for anything that is not plain JSON,
    including NaN and infinities; there is no default=str fallback.
    """
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def load_json(text: str | bytes) -> Any:
    """Decode JSON text (or UTF-8 bytes) produced by dump_json."""
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    return json.loads(text)
