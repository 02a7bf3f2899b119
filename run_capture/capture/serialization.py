"""Canonical JSON serialization."""

from __future__ import annotations

import json
from typing import Any


def stable_dumps(value: Any) -> str:
    """Serialize with sorted keys and no insignificant whitespace.

    Two values that are equal as JSON always serialize to the same string,
    whatever order their keys were inserted in.
    """
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )
