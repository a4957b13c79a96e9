"""
Canonical JSON serialization used for stored records.

Canonical JSON keeps file-backed records byte-stable across writes: sort_keys=True,
compact separators and ensure_ascii=False. Encoded documents only ever contain JSON
types (the codec layer guarantees it), so no custom hooks are needed. Zero-IO.
"""

from __future__ import annotations

import json
from typing import Any

__all__ = ["json_dumps_canonical", "json_loads"]


def json_dumps_canonical(obj: Any) -> str:
    """
    Serialize an object to a canonical JSON string.

    Examples:
        >>> json_dumps_canonical({"b": 1, "a": [True, None]})
        '{"a":[true,null],"b":1}'
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def json_loads(s: str | bytes) -> Any:
    """Deserialize a JSON string with the stdlib json module."""
    return json.loads(s)
