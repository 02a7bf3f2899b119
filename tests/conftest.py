"""Test configuration and fixtures."""

import json
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

from run_capture.config import reset_settings

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git binary not available")
requires_posix_shell = pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")

GIT = [
    "git",
    "-c", "user.name=Test User",
    "-c", "user.email=test@example.com",
    "-c", "commit.gpgsign=false",
]


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Isolate tests from RUN_CAPTURE_* variables in the developer's shell."""
    for name in [n for n in os.environ if n.startswith("RUN_CAPTURE_")]:
        monkeypatch.delenv(name)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A repository with one committed file, tracked.txt, on branch main."""
    repo = tmp_path / "repo"
    repo.mkdir()
    subprocess.run(GIT + ["init", "-q"], cwd=repo, check=True)
    subprocess.run(GIT + ["symbolic-ref", "HEAD", "refs/heads/main"], cwd=repo, check=True)
    (repo / "tracked.txt").write_text("hello\n", encoding="utf-8")
    subprocess.run(GIT + ["add", "tracked.txt"], cwd=repo, check=True)
    subprocess.run(GIT + ["commit", "-q", "-m", "initial"], cwd=repo, check=True)
    return repo


RUN_ID = "2024-03-05T07-08-09-123Z_deadbeef"


def make_events(run_id: str = RUN_ID, git: bool = True, exit_code: int = 0) -> List[Dict[str, Any]]:
    """Raw events of a finished run, plus one event type no mapper knows yet."""
    snapshot = {
        "head": "a" * 40,
        "branch": "main",
        "status_summary": {
            "changed_files": 0, "added": 0, "modified": 0,
            "deleted": 0, "renamed": 0, "untracked": 0,
        },
        "diff_hash": "b" * 64,
    }
    snapshot_data = snapshot if git else {"reason": "NOT_A_GIT_REPO"}
    return [
        {"ts_ms": 1000, "run_id": run_id, "type": "run_start",
         "data": {"cwd": "/work", "cmd_redacted": "make test", "git_enabled": True}},
        {"ts_ms": 1001, "run_id": run_id, "type": "repo_snapshot_before", "data": snapshot_data},
        {"ts_ms": 1002, "run_id": run_id, "type": "command_started", "data": {"pid": 4242}},
        {"ts_ms": 1500, "run_id": run_id, "type": "command_finished",
         "data": {"exit_code": exit_code, "stdout_tail_hash": "c" * 64, "stderr_tail_hash": "d" * 64}},
        {"ts_ms": 1501, "run_id": run_id, "type": "repo_snapshot_after", "data": snapshot_data},
        {"ts_ms": 1502, "run_id": run_id, "type": "resource_usage", "data": {"max_rss_kb": 1024}},
        {"ts_ms": 1503, "run_id": run_id, "type": "run_finish",
         "data": {"exit_code": exit_code, "artifact_dir": "/work/artifacts"}},
    ]


def write_bundle(run_dir: Path, events: List[Dict[str, Any]], diff: str = None) -> Path:
    """Write events.jsonl (and optionally repo_diff.patch) into run_dir."""
    run_dir.mkdir(parents=True, exist_ok=True)
    with open(run_dir / "events.jsonl", "w", encoding="utf-8", newline="") as f:
        for event in events:
            f.write(json.dumps(event) + "\n")
    if diff is not None:
        with open(run_dir / "repo_diff.patch", "w", encoding="utf-8", newline="") as f:
            f.write(diff)
    return run_dir
