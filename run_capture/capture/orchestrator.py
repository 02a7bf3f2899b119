"""
Capture orchestrator: run one command and build its artifact bundle.

Flow:
1. Allocate run id and bundle directory
2. Record run_start with the redacted command
3. Snapshot git before
4. Spawn through the shell, draining stdout/stderr on reader threads
5. Redact, persist and hash the output tails
6. Snapshot git after
7. Write env.json, hashes.json and the redaction report
8. Record run_finish

The spawned command is the original string; only what is persisted or
logged goes through redaction.
"""
from __future__ import annotations

import os
import platform
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, constr

from ..enums import EventType, GitSkipReason
from ..errors import CaptureError
from ..models import (
    EnvDescriptor,
    GitSnapshotResult,
    HashManifest,
    HostInfo,
    RedactionReport,
)
from ..storage import BundleStore
from .event_writer import EventWriter, now_ms
from .git_snapshot import capture_git_snapshot, run_git
from .hashing import canonical_hash, sha256_hex
from .layout import ArtifactLayout, build_artifact_layout
from .redact import Redactor
from .run_id import generate_run_id
from .tail_buffer import TailBuffer

logger = structlog.get_logger(__name__)

_CHUNK_SIZE = 64 * 1024


class CaptureOptions(BaseModel):
    """Inputs for one capture run."""

    model_config = ConfigDict(extra="forbid")

    cmd: constr(min_length=1) = Field(..., description="Shell command to run")
    cwd: Path = Field(default_factory=Path.cwd, description="Working directory")
    git_enabled: bool = True
    allow_raw_logs: bool = Field(
        default=False, description="Also keep redacted, unbounded full logs"
    )
    stdout_bytes: int = Field(default=4000, ge=0)
    stderr_bytes: int = Field(default=4000, ge=0)
    artifacts_root: Optional[Path] = Field(
        default=None, description="Where artifacts/capture_run/ lives; defaults to cwd"
    )


@dataclass
class CaptureResult:
    """Outcome of a capture run."""

    run_id: str
    run_dir: Path
    exit_code: int
    pid: int
    started_at_ms: int
    finished_at_ms: int
    hashes: HashManifest
    redaction_report: RedactionReport
    git_before: Optional[GitSnapshotResult] = None
    git_after: Optional[GitSnapshotResult] = None


class _StreamReader(threading.Thread):
    """Drains one child stream. Owns its TailBuffer and full-log chunks exclusively."""

    def __init__(self, name: str, stream: IO[bytes], tail: TailBuffer, keep_full: bool):
        super().__init__(name=name, daemon=True)
        self.stream = stream
        self.tail = tail
        self.full: Optional[List[bytes]] = [] if keep_full else None
        self.total_bytes = 0

    def run(self) -> None:
        try:
            while True:
                chunk = self.stream.read1(_CHUNK_SIZE)
                if not chunk:
                    break
                self.total_bytes += len(chunk)
                self.tail.add(chunk)
                if self.full is not None:
                    self.full.append(chunk)
        finally:
            self.stream.close()

    def full_bytes(self) -> bytes:
        return b"".join(self.full or [])


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _tool_versions(cwd: Path) -> dict:
    versions = {}
    git = run_git(["--version"], cwd)
    if git.ok and git.stdout:
        versions["git"] = git.stdout.strip()
    return versions


def _host_info() -> HostInfo:
    return HostInfo(
        platform=sys.platform,
        release=platform.release(),
        arch=platform.machine(),
        python=platform.python_version(),
    )


def _exit_code(returncode: Optional[int], log) -> int:
    if returncode is None:
        return 0
    if returncode < 0:
        try:
            signame = signal.Signals(-returncode).name
        except ValueError:
            signame = str(-returncode)
        log.warning("command_terminated_by_signal", signal=signame, signal_number=-returncode)
        return 0
    return returncode


def _snapshot_event(result: GitSnapshotResult) -> dict:
    if result.is_git and result.snapshot is not None:
        return result.snapshot.model_dump(mode="json")
    reason = result.reason or GitSkipReason.NOT_A_GIT_REPO
    return {"reason": reason.value}


def capture_run(options: CaptureOptions) -> CaptureResult:
    """Run ``options.cmd`` and write its bundle.

    A non-zero exit of the child is a normal outcome and is returned, not
    raised. Spawn and filesystem failures propagate.

    Args:
        options: Capture inputs

    Returns:
        CaptureResult with the bundle directory and the child's exit code
    """
    cwd = options.cwd.resolve()
    if not cwd.is_dir():
        raise CaptureError(f"Working directory does not exist: {cwd}")

    # Step 1: identity and layout
    run_id = generate_run_id()
    layout: ArtifactLayout = build_artifact_layout(options.artifacts_root or cwd, run_id)
    store = BundleStore(layout.base_dir)
    log = logger.bind(run_id=run_id, run_dir=str(layout.base_dir))

    # Step 2: redact the command for the record only
    redactor = Redactor()
    redacted_cmd = redactor.redact(options.cmd, "cmd")

    writer = EventWriter(layout.events, run_id)
    started_at = now_ms()

    # Step 3
    writer.write(
        EventType.RUN_START,
        {"cwd": str(cwd), "cmd_redacted": redacted_cmd, "git_enabled": options.git_enabled},
    )
    log.info("capture_started", cwd=str(cwd), cmd=redacted_cmd, git_enabled=options.git_enabled)

    # Step 4: git before
    git_before: Optional[GitSnapshotResult] = None
    git_after: Optional[GitSnapshotResult] = None
    if options.git_enabled:
        git_before = capture_git_snapshot(
            cwd, status_path=layout.repo_status_before, diff_path=layout.repo_diff
        )
        if git_before.is_git:
            store.write_json(layout.repo_before.name, git_before.snapshot.model_dump(mode="json"))
        writer.write(EventType.REPO_SNAPSHOT_BEFORE, _snapshot_event(git_before))

    # Step 5-6: spawn and start draining
    stdout_tail = TailBuffer(options.stdout_bytes)
    stderr_tail = TailBuffer(options.stderr_bytes)

    process = subprocess.Popen(
        options.cmd,
        shell=True,
        cwd=str(cwd),
        env=os.environ.copy(),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    writer.write(EventType.COMMAND_STARTED, {"pid": process.pid})
    log.info("command_started", pid=process.pid)

    readers = [
        _StreamReader(f"{run_id}-stdout", process.stdout, stdout_tail, options.allow_raw_logs),
        _StreamReader(f"{run_id}-stderr", process.stderr, stderr_tail, options.allow_raw_logs),
    ]
    for reader in readers:
        reader.start()

    # Step 7: wait for exit, then for both streams to drain
    returncode = process.wait()
    for reader in readers:
        reader.join()
    exit_code = _exit_code(returncode, log)
    stdout_reader, stderr_reader = readers
    log.info(
        "command_finished",
        exit_code=exit_code,
        stdout_bytes=stdout_reader.total_bytes,
        stderr_bytes=stderr_reader.total_bytes,
    )

    # Step 8: redact and persist tails (and full logs when allowed)
    redacted_stdout_tail = redactor.redact(_decode(stdout_tail.to_bytes()), "stdout_tail")
    redacted_stderr_tail = redactor.redact(_decode(stderr_tail.to_bytes()), "stderr_tail")
    store.write_text(layout.stdout_tail.name, redacted_stdout_tail)
    store.write_text(layout.stderr_tail.name, redacted_stderr_tail)

    if options.allow_raw_logs:
        store.write_text(
            layout.stdout_full.name,
            redactor.redact(_decode(stdout_reader.full_bytes()), "stdout_full"),
        )
        store.write_text(
            layout.stderr_full.name,
            redactor.redact(_decode(stderr_reader.full_bytes()), "stderr_full"),
        )

    # Step 9-10
    stdout_tail_hash = sha256_hex(redacted_stdout_tail)
    stderr_tail_hash = sha256_hex(redacted_stderr_tail)
    writer.write(
        EventType.COMMAND_FINISHED,
        {
            "exit_code": exit_code,
            "stdout_tail_hash": stdout_tail_hash,
            "stderr_tail_hash": stderr_tail_hash,
        },
    )

    # Step 11: git after, trusting the before probe
    if options.git_enabled:
        if git_before is not None and git_before.is_git:
            git_after = capture_git_snapshot(
                cwd,
                status_path=layout.repo_status_after,
                diff_path=layout.repo_diff,
                probe=False,
            )
            store.write_json(layout.repo_after.name, git_after.snapshot.model_dump(mode="json"))
        else:
            git_after = GitSnapshotResult(
                is_git=False,
                reason=git_before.reason if git_before else GitSkipReason.NOT_A_GIT_REPO,
            )
        writer.write(EventType.REPO_SNAPSHOT_AFTER, _snapshot_event(git_after))

    # Step 12: environment descriptor
    finished_at = now_ms()
    env = EnvDescriptor(
        run_id=run_id,
        started_at_ms=started_at,
        finished_at_ms=finished_at,
        cwd=str(cwd),
        cmd=redacted_cmd,
        exit_code=exit_code,
        git_enabled=options.git_enabled,
        host=_host_info(),
        tool_versions=_tool_versions(cwd),
    )
    env_data = env.model_dump(mode="json")
    store.write_json(layout.env.name, env_data)

    # Step 13: hash manifest; the post-command diff is authoritative
    repo_diff_hash = None
    if git_after is not None and git_after.diff_hash:
        repo_diff_hash = git_after.diff_hash
    elif git_before is not None and git_before.diff_hash:
        repo_diff_hash = git_before.diff_hash
    hashes = HashManifest(
        stdout_tail_hash=stdout_tail_hash,
        stderr_tail_hash=stderr_tail_hash,
        env_hash=canonical_hash(env_data),
        repo_diff_hash=repo_diff_hash,
    )
    store.write_json(layout.hashes.name, hashes.model_dump(exclude_none=True))

    # Step 14
    report = redactor.report
    if not report.is_empty:
        store.write_json(layout.redaction_report.name, report.model_dump(mode="json"))
        log.info("redactions_recorded", counts=report.counts)

    # Step 15
    writer.write(
        EventType.RUN_FINISH,
        {"exit_code": exit_code, "artifact_dir": str(layout.base_dir)},
    )
    store.write_text(layout.run_path.name, f"{layout.base_dir}\n")
    log.info("capture_finished", exit_code=exit_code, duration_ms=finished_at - started_at)

    return CaptureResult(
        run_id=run_id,
        run_dir=layout.base_dir,
        exit_code=exit_code,
        pid=process.pid,
        started_at_ms=started_at,
        finished_at_ms=finished_at,
        hashes=hashes,
        redaction_report=report,
        git_before=git_before,
        git_after=git_after,
    )
