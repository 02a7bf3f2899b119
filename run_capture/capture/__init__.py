"""
Capture leaves: ids, layout, serialization, hashing, redaction, git
snapshots, tail buffers and the event log.

The orchestrator that composes them lives in ``run_capture.capture.orchestrator``.
"""

from .event_writer import EventWriter
from .git_snapshot import capture_git_snapshot, parse_status_summary
from .hashing import canonical_hash, sha256_hex
from .layout import ArtifactLayout, build_artifact_layout
from .redact import Redactor, redact_text
from .run_id import generate_run_id
from .serialization import stable_dumps
from .tail_buffer import TailBuffer

__all__ = [
    "ArtifactLayout",
    "EventWriter",
    "Redactor",
    "TailBuffer",
    "build_artifact_layout",
    "canonical_hash",
    "capture_git_snapshot",
    "generate_run_id",
    "parse_status_summary",
    "redact_text",
    "sha256_hex",
    "stable_dumps",
]
