"""Artifact layout for one run."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

CAPTURE_RUN_DIR = Path("artifacts") / "capture_run"

EVENTS_FILE = "events.jsonl"
HASHES_FILE = "hashes.json"
ENV_FILE = "env.json"
REPO_DIFF_FILE = "repo_diff.patch"
EPISODES_FILE = Path("episodes") / "episodes.jsonl"
PATTERNS_FILE = Path("patterns") / "patterns.json"
PATTERNS_CORE_FILE = Path("patterns") / "patterns_core.json"
VERDICT_FILE = Path("evidence") / "verdict.json"


@dataclass(frozen=True)
class ArtifactLayout:
    """Fixed file paths of a run bundle."""

    base_dir: Path

    @property
    def env(self) -> Path:
        return self.base_dir / ENV_FILE

    @property
    def events(self) -> Path:
        return self.base_dir / EVENTS_FILE

    @property
    def hashes(self) -> Path:
        return self.base_dir / HASHES_FILE

    @property
    def stdout_tail(self) -> Path:
        return self.base_dir / "stdout_tail.txt"

    @property
    def stderr_tail(self) -> Path:
        return self.base_dir / "stderr_tail.txt"

    @property
    def stdout_full(self) -> Path:
        return self.base_dir / "stdout_full.txt"

    @property
    def stderr_full(self) -> Path:
        return self.base_dir / "stderr_full.txt"

    @property
    def redaction_report(self) -> Path:
        return self.base_dir / "redaction_report.json"

    @property
    def repo_before(self) -> Path:
        return self.base_dir / "repo_before.json"

    @property
    def repo_after(self) -> Path:
        return self.base_dir / "repo_after.json"

    @property
    def repo_diff(self) -> Path:
        return self.base_dir / REPO_DIFF_FILE

    @property
    def repo_status_before(self) -> Path:
        return self.base_dir / "repo_status_before.txt"

    @property
    def repo_status_after(self) -> Path:
        return self.base_dir / "repo_status_after.txt"

    @property
    def run_path(self) -> Path:
        return self.base_dir / "run_path.txt"


def build_artifact_layout(root_dir: Path, run_id: str) -> ArtifactLayout:
    """Compute the layout under ``root_dir/artifacts/capture_run/<run_id>`` and create it."""
    base_dir = Path(root_dir) / CAPTURE_RUN_DIR / run_id
    base_dir.mkdir(parents=True, exist_ok=True)
    return ArtifactLayout(base_dir=base_dir)
