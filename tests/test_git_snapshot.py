"""Tests for git snapshots."""

import re

from run_capture.capture.git_snapshot import (
    capture_git_snapshot,
    parse_status_summary,
    probe_git,
)
from run_capture.capture.hashing import sha256_hex
from run_capture.enums import GitSkipReason

from .conftest import requires_git


class TestParseStatusSummary:
    """Tests for porcelain status classification."""

    def test_counts_each_bucket(self):
        status = "\n".join(
            [" M a.py", "A  b.py", "D  c.py", "R  d.py -> e.py", "?? f.py", "AM g.py"]
        )
        summary = parse_status_summary(status)
        assert summary.changed_files == 6
        assert summary.added == 2
        assert summary.modified == 2
        assert summary.deleted == 1
        assert summary.renamed == 1
        assert summary.untracked == 1

    def test_empty_status(self):
        summary = parse_status_summary("")
        assert summary.changed_files == 0
        assert summary.model_dump() == {
            "changed_files": 0, "added": 0, "modified": 0,
            "deleted": 0, "renamed": 0, "untracked": 0,
        }


class TestProbe:
    """Tests for detecting a usable repository."""

    def test_missing_directory(self, tmp_path):
        assert probe_git(tmp_path / "nope") == GitSkipReason.NOT_A_GIT_REPO

    def test_git_binary_missing(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path / "empty-bin"))
        result = capture_git_snapshot(tmp_path)
        assert result.is_git is False
        assert result.reason == GitSkipReason.GIT_UNAVAILABLE

    @requires_git
    def test_plain_directory(self, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        result = capture_git_snapshot(plain)
        assert result.is_git is False
        assert result.reason == GitSkipReason.NOT_A_GIT_REPO
        assert result.snapshot is None


@requires_git
class TestCaptureGitSnapshot:
    """Tests for snapshots of a real repository."""

    def test_clean_repository(self, git_repo):
        result = capture_git_snapshot(git_repo)
        assert result.is_git is True
        assert re.match(r"^[0-9a-f]{40}$", result.snapshot.head)
        assert result.snapshot.branch == "main"
        assert result.snapshot.status_summary.changed_files == 0
        assert result.diff_text == ""
        assert result.diff_hash == sha256_hex("")

    def test_modified_repository_writes_files(self, git_repo, tmp_path):
        (git_repo / "tracked.txt").write_text("hello\nchanged\n", encoding="utf-8")
        (git_repo / "new.txt").write_text("new\n", encoding="utf-8")
        status_path = tmp_path / "status.txt"
        diff_path = tmp_path / "diff.patch"

        result = capture_git_snapshot(git_repo, status_path=status_path, diff_path=diff_path)

        summary = result.snapshot.status_summary
        assert summary.changed_files == 2
        assert summary.modified == 1
        assert summary.untracked == 1
        assert "+changed" in result.diff_text
        assert result.snapshot.diff_hash == sha256_hex(result.diff_text)
        assert diff_path.read_bytes() == result.diff_text.encode("utf-8")
        status_text = status_path.read_text(encoding="utf-8")
        assert status_text.endswith("\n")
        assert "?? new.txt" in status_text
