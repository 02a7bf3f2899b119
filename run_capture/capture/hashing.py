"""Content hashing."""

from __future__ import annotations

import hashlib
from typing import Any, Union

from .serialization import stable_dumps


def sha256_hex(content: Union[str, bytes]) -> str:
    """Return the lowercase hex sha256 of text (UTF-8 encoded) or bytes."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def canonical_hash(value: Any) -> str:
    """Hash a JSON-compatible value independent of key order."""
    return sha256_hex(stable_dumps(value))
