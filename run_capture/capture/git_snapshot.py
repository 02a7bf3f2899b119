"""
Best-effort git repository snapshots.

Never raises for a directory that is not a repository or a machine without
git; those come back as ``is_git=False`` with a reason.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import structlog

from ..enums import GitSkipReason
from ..models import GitSnapshot, GitSnapshotResult, StatusSummary
from .hashing import sha256_hex

logger = structlog.get_logger(__name__)


@dataclass
class GitCommandResult:
    ok: bool
    stdout: str = ""
    error: str = ""
    missing_binary: bool = False


def run_git(args: List[str], cwd: Path) -> GitCommandResult:
    """Run a git command, returning trailing-whitespace-trimmed stdout."""
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError as e:
        return GitCommandResult(ok=False, error=str(e), missing_binary=True)
    except NotADirectoryError as e:
        return GitCommandResult(ok=False, error=str(e))
    if completed.returncode != 0:
        return GitCommandResult(
            ok=False, error=(completed.stderr or completed.stdout or "").strip()
        )
    return GitCommandResult(ok=True, stdout=(completed.stdout or "").rstrip())


def _write(path: Path, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


def parse_status_summary(status_text: str) -> StatusSummary:
    """Classify each porcelain line by its two-character status code.

    A line may count toward several buckets (``AM`` is both added and
    modified); changed_files counts lines.
    """
    lines = [line for line in status_text.splitlines() if line]
    summary = StatusSummary(changed_files=len(lines))
    for line in lines:
        code = line[:2]
        if "A" in code:
            summary.added += 1
        if "M" in code:
            summary.modified += 1
        if "D" in code:
            summary.deleted += 1
        if "R" in code:
            summary.renamed += 1
        if code == "??":
            summary.untracked += 1
    return summary


def probe_git(cwd: Path) -> Optional[GitSkipReason]:
    """Return None inside a work tree, otherwise the reason it is not usable."""
    if not Path(cwd).is_dir():
        return GitSkipReason.NOT_A_GIT_REPO
    result = run_git(["rev-parse", "--is-inside-work-tree"], cwd)
    if result.missing_binary:
        return GitSkipReason.GIT_UNAVAILABLE
    if not result.ok or result.stdout != "true":
        return GitSkipReason.NOT_A_GIT_REPO
    return None


def capture_git_snapshot(
    cwd: Path,
    status_path: Optional[Path] = None,
    diff_path: Optional[Path] = None,
    probe: bool = True,
) -> GitSnapshotResult:
    """Snapshot HEAD, branch, porcelain status and working tree diff.

    Args:
        cwd: Directory to inspect
        status_path: If given, porcelain status is written here
        diff_path: If given, the diff is written here (overwriting any earlier write)
        probe: Set False to skip the work-tree probe when the caller already knows

    Returns:
        GitSnapshotResult, negative when cwd is not a usable repository
    """
    if probe:
        reason = probe_git(cwd)
        if reason is not None:
            logger.info("git_snapshot_skipped", cwd=str(cwd), reason=reason.value)
            return GitSnapshotResult(is_git=False, reason=reason)

    head = run_git(["rev-parse", "HEAD"], cwd).stdout
    branch = run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd).stdout
    status = run_git(["status", "--porcelain"], cwd).stdout
    diff = run_git(["diff"], cwd).stdout
    diff_hash = sha256_hex(diff)

    if status_path is not None:
        _write(status_path, status + ("\n" if status else ""))
    if diff_path is not None:
        _write(diff_path, diff)

    snapshot = GitSnapshot(
        head=head,
        branch=branch,
        status_summary=parse_status_summary(status),
        diff_hash=diff_hash,
    )
    logger.debug(
        "git_snapshot_captured",
        cwd=str(cwd),
        head=head,
        changed_files=snapshot.status_summary.changed_files,
    )
    return GitSnapshotResult(
        is_git=True,
        snapshot=snapshot,
        status_text=status,
        diff_text=diff,
        diff_hash=diff_hash,
    )
