"""Bounded tail of a byte stream."""

from __future__ import annotations

from collections import deque
from typing import Deque


class TailBuffer:
    """Keep only the most recent ``max_bytes`` of a stream.

    Eviction is by whole chunk: once the retained total exceeds the limit,
    chunks are dropped from the front until it fits. A single chunk larger
    than the limit is therefore dropped as soon as it arrives.
    ``max_bytes == 0`` disables retention.
    """

    def __init__(self, max_bytes: int):
        self.max_bytes = max(0, int(max_bytes or 0))
        self._chunks: Deque[bytes] = deque()
        self._total = 0

    def add(self, chunk: bytes) -> None:
        if not chunk or self.max_bytes == 0:
            return
        self._chunks.append(bytes(chunk))
        self._total += len(chunk)
        while self._total > self.max_bytes and self._chunks:
            self._total -= len(self._chunks.popleft())

    def __len__(self) -> int:
        return self._total

    def to_bytes(self) -> bytes:
        return b"".join(self._chunks)
