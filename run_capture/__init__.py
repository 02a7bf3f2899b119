"""
run-capture

Supervised command capture with redacted, content-addressed artifact bundles,
a derived episode timeline and basic sequence pattern extraction.
"""

import importlib.metadata

__version__ = importlib.metadata.version("run-capture")

from .capture.orchestrator import CaptureOptions, CaptureResult, capture_run
from .episodes import capture_run_to_episodes
from .errors import (
    ArtifactNotFoundError,
    BundleFormatError,
    CaptureError,
    EventLogClosedError,
)
from .patterns import analyze_patterns, extract_patterns
from .verify import BundleVerifier, verify_bundle

__all__ = [
    "ArtifactNotFoundError",
    "BundleFormatError",
    "BundleVerifier",
    "CaptureError",
    "CaptureOptions",
    "CaptureResult",
    "EventLogClosedError",
    "analyze_patterns",
    "capture_run",
    "capture_run_to_episodes",
    "extract_patterns",
    "verify_bundle",
]
