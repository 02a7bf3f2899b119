"""
Error types raised by the capture pipeline.

Expected absence (no secrets, not a repository, empty stream) is never an
error; these cover missing upstream artifacts and broken invariants.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class CaptureError(Exception):
    """Base class for capture pipeline errors."""


class ArtifactNotFoundError(CaptureError):
    """Raised when a stage's upstream artifact is missing.

    Attributes:
        name: File name that was expected (e.g. "events.jsonl")
        path: Full path that was checked
    """

    def __init__(self, name: str, path: Path):
        self.name = name
        self.path = path
        super().__init__(f"{name} not found: {path}")


class EventLogClosedError(CaptureError):
    """Raised when an event is written after run_finish."""


class BundleFormatError(CaptureError):
    """Raised when an upstream JSON artifact cannot be parsed."""

    def __init__(self, path: Path, message: str, line: Optional[int] = None):
        self.path = path
        self.line = line
        location = f"{path}:{line}" if line is not None else str(path)
        super().__init__(f"Malformed artifact {location}: {message}")
