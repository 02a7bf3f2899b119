"""Tests for the capture orchestrator."""

import json

import pytest
from pydantic import ValidationError

from run_capture.capture.hashing import canonical_hash, sha256_hex
from run_capture.capture.orchestrator import CaptureOptions, capture_run
from run_capture.errors import CaptureError

from .conftest import requires_git, requires_posix_shell

pytestmark = requires_posix_shell


def event_types(run_dir):
    lines = (run_dir / "events.jsonl").read_text(encoding="utf-8").splitlines()
    return [json.loads(line)["type"] for line in lines]


def events(run_dir):
    lines = (run_dir / "events.jsonl").read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def all_artifact_text(run_dir):
    return "".join(
        path.read_bytes().decode("utf-8", errors="replace")
        for path in run_dir.rglob("*")
        if path.is_file()
    )


class TestCaptureOptions:
    """Tests for input validation."""

    def test_empty_command_rejected(self, tmp_path):
        with pytest.raises(ValidationError):
            CaptureOptions(cmd="", cwd=tmp_path)

    def test_negative_tail_size_rejected(self, tmp_path):
        with pytest.raises(ValidationError):
            CaptureOptions(cmd="true", cwd=tmp_path, stdout_bytes=-1)

    def test_missing_working_directory(self, tmp_path):
        missing = tmp_path / "missing"
        with pytest.raises(CaptureError):
            capture_run(CaptureOptions(cmd="true", cwd=missing))
        assert not (tmp_path / "artifacts").exists()


class TestCaptureRun:
    """Tests for capture_run without git."""

    def test_exit_code_and_tails(self, tmp_path):
        result = capture_run(
            CaptureOptions(cmd="echo hello; echo oops 1>&2; exit 7", cwd=tmp_path, git_enabled=False)
        )
        run_dir = result.run_dir

        assert result.exit_code == 7
        assert run_dir.parent == tmp_path / "artifacts" / "capture_run"
        assert run_dir.name == result.run_id
        assert (run_dir / "stdout_tail.txt").read_bytes() == b"hello\n"
        assert (run_dir / "stderr_tail.txt").read_bytes() == b"oops\n"
        assert event_types(run_dir) == [
            "run_start", "command_started", "command_finished", "run_finish",
        ]

        recorded = events(run_dir)
        assert recorded[0]["data"]["git_enabled"] is False
        assert recorded[1]["data"]["pid"] == result.pid
        assert recorded[2]["data"]["exit_code"] == 7
        assert recorded[2]["data"]["stdout_tail_hash"] == sha256_hex("hello\n")
        assert recorded[-1]["data"]["exit_code"] == 7
        assert all(event["run_id"] == result.run_id for event in recorded)

        env = json.loads((run_dir / "env.json").read_text(encoding="utf-8"))
        assert env["exit_code"] == 7
        assert env["run_id"] == result.run_id
        assert env["git_enabled"] is False
        assert set(env["host"]) == {"platform", "release", "arch", "python"}

        hashes = json.loads((run_dir / "hashes.json").read_text(encoding="utf-8"))
        assert hashes["stdout_tail_hash"] == sha256_hex("hello\n")
        assert hashes["stderr_tail_hash"] == sha256_hex("oops\n")
        assert hashes["env_hash"] == canonical_hash(env)
        assert "repo_diff_hash" not in hashes

        assert (run_dir / "run_path.txt").read_text(encoding="utf-8").strip() == str(run_dir)
        assert not (run_dir / "redaction_report.json").exists()
        assert not (run_dir / "stdout_full.txt").exists()

    def test_secrets_are_redacted_everywhere(self, tmp_path):
        result = capture_run(
            CaptureOptions(
                cmd="echo token=supersecret123",
                cwd=tmp_path,
                git_enabled=False,
                allow_raw_logs=True,
            )
        )
        run_dir = result.run_dir

        assert "supersecret123" not in all_artifact_text(run_dir)
        assert (run_dir / "stdout_tail.txt").read_text(encoding="utf-8") == (
            "token=[REDACTED_LEN:14]\n"
        )
        report = json.loads((run_dir / "redaction_report.json").read_text(encoding="utf-8"))
        assert report["counts"] == {"cmd": 1, "stdout_full": 1, "stdout_tail": 1}
        assert report["redacted_fields"] == ["cmd", "stdout_full", "stdout_tail"]

        env = json.loads((run_dir / "env.json").read_text(encoding="utf-8"))
        assert env["cmd"] == "echo token=[REDACTED_LEN:14]"
        assert events(run_dir)[0]["data"]["cmd_redacted"] == "echo token=[REDACTED_LEN:14]"

    def test_tail_is_bounded_but_full_log_is_not(self, tmp_path):
        result = capture_run(
            CaptureOptions(
                cmd="head -c 10000 /dev/zero | tr '\\0' a",
                cwd=tmp_path,
                git_enabled=False,
                allow_raw_logs=True,
                stdout_bytes=100,
            )
        )
        tail = (result.run_dir / "stdout_tail.txt").read_bytes()
        assert len(tail) <= 100
        assert set(tail) <= {ord("a")}
        assert (result.run_dir / "stdout_full.txt").read_bytes() == b"a" * 10000

    def test_zero_tail_size(self, tmp_path):
        result = capture_run(
            CaptureOptions(cmd="echo something", cwd=tmp_path, git_enabled=False, stdout_bytes=0)
        )
        assert (result.run_dir / "stdout_tail.txt").read_bytes() == b""
        assert result.hashes.stdout_tail_hash == sha256_hex("")

    def test_signal_termination_reports_zero(self, tmp_path):
        result = capture_run(CaptureOptions(cmd="kill -9 $$", cwd=tmp_path, git_enabled=False))
        assert result.exit_code == 0

    def test_artifacts_root_override(self, tmp_path):
        work = tmp_path / "work"
        work.mkdir()
        out = tmp_path / "out"
        result = capture_run(
            CaptureOptions(cmd="pwd", cwd=work, git_enabled=False, artifacts_root=out)
        )
        assert result.run_dir.parent == out / "artifacts" / "capture_run"
        assert (result.run_dir / "stdout_tail.txt").read_text(encoding="utf-8").strip() == str(
            work.resolve()
        )


@requires_git
class TestCaptureRunWithGit:
    """Tests for capture_run with git snapshots."""

    def test_outside_repository(self, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        result = capture_run(CaptureOptions(cmd="true", cwd=plain))
        run_dir = result.run_dir

        recorded = events(run_dir)
        assert [event["type"] for event in recorded] == [
            "run_start", "repo_snapshot_before", "command_started",
            "command_finished", "repo_snapshot_after", "run_finish",
        ]
        assert recorded[1]["data"] == {"reason": "NOT_A_GIT_REPO"}
        assert recorded[4]["data"] == {"reason": "NOT_A_GIT_REPO"}
        assert not (run_dir / "repo_before.json").exists()
        assert not (run_dir / "repo_after.json").exists()
        assert not (run_dir / "repo_diff.patch").exists()
        hashes = json.loads((run_dir / "hashes.json").read_text(encoding="utf-8"))
        assert "repo_diff_hash" not in hashes

    def test_inside_repository(self, git_repo):
        result = capture_run(CaptureOptions(cmd="echo changed >> tracked.txt", cwd=git_repo))
        run_dir = result.run_dir

        recorded = events(run_dir)
        assert [event["type"] for event in recorded] == [
            "run_start", "repo_snapshot_before", "command_started",
            "command_finished", "repo_snapshot_after", "run_finish",
        ]
        before = json.loads((run_dir / "repo_before.json").read_text(encoding="utf-8"))
        after = json.loads((run_dir / "repo_after.json").read_text(encoding="utf-8"))
        assert recorded[1]["data"] == before
        assert recorded[4]["data"] == after
        assert before["branch"] == "main"
        assert before["diff_hash"] == sha256_hex("")
        assert after["status_summary"]["modified"] == 1

        patch = (run_dir / "repo_diff.patch").read_bytes()
        assert b"+changed" in patch
        hashes = json.loads((run_dir / "hashes.json").read_text(encoding="utf-8"))
        assert hashes["repo_diff_hash"] == sha256_hex(patch) == after["diff_hash"]
        assert (run_dir / "repo_status_after.txt").exists()

        env = json.loads((run_dir / "env.json").read_text(encoding="utf-8"))
        assert env["tool_versions"]["git"].startswith("git version")
