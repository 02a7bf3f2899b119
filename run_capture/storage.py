"""
Bundle storage for capture runs.

One BundleStore wraps one run directory. Every artifact is UTF-8 text; JSON
documents are newline-terminated. Writes are not retried: a filesystem error
propagates and aborts the current stage.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Union

from .capture.serialization import stable_dumps
from .errors import ArtifactNotFoundError, BundleFormatError

PathLike = Union[str, Path]


class BundleStore:
    """Local filesystem store rooted at a run directory.

    Structure:
        artifacts/capture_run/{run_id}/
        ├── env.json, hashes.json, events.jsonl, ...
        ├── episodes/episodes.jsonl
        ├── patterns/patterns.json, patterns_core.json
        └── evidence/verdict.json
    """

    def __init__(self, base_path: Path):
        """Initialize with the run directory.

        Args:
            base_path: Absolute path to the run's bundle directory
        """
        self.base_path = Path(base_path)

    def path(self, path: PathLike) -> Path:
        """Resolve a path relative to the bundle directory."""
        return self.base_path / path

    def exists(self, path: PathLike) -> bool:
        return self.path(path).exists()

    def require(self, path: PathLike) -> Path:
        """Return the full path, raising ArtifactNotFoundError if absent."""
        full_path = self.path(path)
        if not full_path.is_file():
            raise ArtifactNotFoundError(full_path.name, full_path)
        return full_path

    def write_text(self, path: PathLike, content: str) -> Path:
        """Write text content to a path within the bundle."""
        full_path = self.path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        with open(full_path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        return full_path

    def write_json(self, path: PathLike, data: Dict[str, Any]) -> Path:
        """Write human-readable JSON (indented, insertion order)."""
        return self.write_text(
            path, json.dumps(data, indent=2, ensure_ascii=False) + "\n"
        )

    def write_canonical_json(self, path: PathLike, data: Any) -> Path:
        """Write key-sorted compact JSON suitable for hashing and diffing."""
        return self.write_text(path, stable_dumps(data) + "\n")

    def write_jsonl(self, path: PathLike, records: List[Dict[str, Any]]) -> Path:
        """Replace a JSON-lines file with canonical lines; no records leaves a lone newline."""
        return self.write_text(path, "".join(stable_dumps(r) + "\n" for r in records) or "\n")

    def read_bytes(self, path: PathLike) -> bytes:
        return self.require(path).read_bytes()

    def read_json(self, path: PathLike) -> Any:
        full_path = self.require(path)
        try:
            return json.loads(full_path.read_bytes().decode("utf-8"))
        except json.JSONDecodeError as e:
            raise BundleFormatError(full_path, e.msg) from e

    def read_jsonl(self, path: PathLike) -> List[Dict[str, Any]]:
        """Read a JSON-lines file, skipping blank lines."""
        full_path = self.require(path)
        records = []
        text = full_path.read_bytes().decode("utf-8")
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise BundleFormatError(full_path, e.msg, line=lineno) from e
        return records
