"""
Bundle verifier - re-checks a finished capture bundle against its manifest.

Checks:
- Required files exist
- Event log holds the six lifecycle events in order, ending with run_finish
- Manifest hashes are well-formed sha256 hex strings
- Tail, env and diff hashes match the files on disk
- No unredacted bearer token or sensitive key=value survives in any artifact

Verdict Logic:
- PASS: every check passed
- FAIL: at least one check failed
"""
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import structlog

from .capture.hashing import canonical_hash, sha256_hex
from .capture.layout import (
    ENV_FILE,
    EVENTS_FILE,
    HASHES_FILE,
    REPO_DIFF_FILE,
    VERDICT_FILE,
)
from .enums import REQUIRED_EVENT_ORDER, EventType, Verdict
from .errors import CaptureError
from .storage import BundleStore

logger = structlog.get_logger(__name__)

REQUIRED_FILES = [
    ENV_FILE,
    EVENTS_FILE,
    HASHES_FILE,
    "stdout_tail.txt",
    "stderr_tail.txt",
]

_SHA256_RE = re.compile(r"^[a-f0-9]{64}$")

# Shapes that must never appear outside a placeholder.
LEAK_PATTERNS = [
    re.compile(r"bearer\s+(?!\[REDACTED_LEN:)[A-Za-z0-9._-]{8,}", re.IGNORECASE),
    re.compile(
        r"(token|password|secret|key|authorization)\s*[:=]\s*"
        r"(?!\\?[\"']?(?:bearer\s+)?\[REDACTED_LEN:)[^\s]+",
        re.IGNORECASE,
    ),
]


@dataclass
class CheckResult:
    """Result of a single verification check."""
    name: str
    passed: bool
    detail: Optional[str] = None


@dataclass
class VerificationResult:
    """Result of verifying one bundle."""
    run_dir: Path
    verdict: Verdict
    verdict_reason: str
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def checks_passed(self) -> int:
        return sum(1 for check in self.checks if check.passed)

    @property
    def checks_failed(self) -> int:
        return sum(1 for check in self.checks if not check.passed)

    @property
    def failures(self) -> List[CheckResult]:
        return [check for check in self.checks if not check.passed]


def scan_for_leaks(text: str) -> Optional[str]:
    """Return the first leak pattern that matches ``text``, if any."""
    for pattern in LEAK_PATTERNS:
        if pattern.search(text):
            return pattern.pattern
    return None


class BundleVerifier:
    """Evaluates a capture bundle and writes evidence/verdict.json."""

    def __init__(self, verifier_id: Optional[str] = None):
        self.verifier_id = verifier_id or f"verifier-{uuid.uuid4().hex[:8]}"

    def verify(self, run_dir: Path, write_evidence: bool = True) -> VerificationResult:
        """Verify the bundle at ``run_dir``.

        Raises:
            ArtifactNotFoundError: hashes.json is missing
        """
        run_dir = Path(run_dir).resolve()
        store = BundleStore(run_dir)
        store.require(HASHES_FILE)
        log = logger.bind(run_dir=str(run_dir), verifier_id=self.verifier_id)

        checks: List[CheckResult] = []
        checks.append(self._check_required_files(store))

        manifest = store.read_json(HASHES_FILE)
        checks.append(self._check_manifest_format(manifest))
        checks.append(self._run_check("event_order", lambda: self._check_event_order(store)))
        checks.append(
            self._run_check(
                "stdout_tail_hash",
                lambda: self._check_file_hash(store, "stdout_tail.txt", manifest.get("stdout_tail_hash")),
            )
        )
        checks.append(
            self._run_check(
                "stderr_tail_hash",
                lambda: self._check_file_hash(store, "stderr_tail.txt", manifest.get("stderr_tail_hash")),
            )
        )
        checks.append(self._run_check("env_hash", lambda: self._check_env_hash(store, manifest)))
        if "repo_diff_hash" in manifest:
            checks.append(
                self._run_check(
                    "repo_diff_hash",
                    lambda: self._check_file_hash(store, REPO_DIFF_FILE, manifest["repo_diff_hash"]),
                )
            )
        checks.append(self._check_leaks(store))

        failed = [check.name for check in checks if not check.passed]
        if failed:
            verdict = Verdict.FAIL
            verdict_reason = f"Failed checks: {', '.join(failed)}"
        else:
            verdict = Verdict.PASS
            verdict_reason = "All checks passed"

        result = VerificationResult(
            run_dir=run_dir,
            verdict=verdict,
            verdict_reason=verdict_reason,
            checks=checks,
        )
        if write_evidence:
            self._write_evidence(store, result)

        log.info(
            "bundle_verified",
            verdict=verdict.value,
            checks_passed=result.checks_passed,
            checks_failed=result.checks_failed,
        )
        return result

    @staticmethod
    def _run_check(name: str, check: Callable[[], Optional[str]]) -> CheckResult:
        """Run a check returning a failure detail (or None when it passes)."""
        try:
            detail = check()
        except CaptureError as e:
            detail = str(e)
        return CheckResult(name=name, passed=detail is None, detail=detail)

    def _check_required_files(self, store: BundleStore) -> CheckResult:
        missing = [name for name in REQUIRED_FILES if not store.exists(name)]
        return CheckResult(
            name="required_files",
            passed=not missing,
            detail=f"Missing: {', '.join(missing)}" if missing else None,
        )

    def _check_manifest_format(self, manifest: Dict[str, Any]) -> CheckResult:
        bad = []
        for key in ("stdout_tail_hash", "stderr_tail_hash", "env_hash"):
            if not _SHA256_RE.match(str(manifest.get(key, ""))):
                bad.append(key)
        if "repo_diff_hash" in manifest and not _SHA256_RE.match(str(manifest["repo_diff_hash"])):
            bad.append("repo_diff_hash")
        return CheckResult(
            name="manifest_format",
            passed=not bad,
            detail=f"Invalid hashes: {', '.join(bad)}" if bad else None,
        )

    def _check_event_order(self, store: BundleStore) -> Optional[str]:
        records = store.read_jsonl(EVENTS_FILE)
        types = [record.get("type") for record in records]
        git_enabled = next(
            (
                (record.get("data") or {}).get("git_enabled", True)
                for record in records
                if record.get("type") == EventType.RUN_START.value
            ),
            True,
        )
        skipped = set()
        if git_enabled is False:
            skipped = {EventType.REPO_SNAPSHOT_BEFORE, EventType.REPO_SNAPSHOT_AFTER}
        required = [t.value for t in REQUIRED_EVENT_ORDER if t not in skipped]
        position = 0
        for event_type in types:
            if position < len(required) and event_type == required[position]:
                position += 1
        if position < len(required):
            return f"Missing or out of order: {required[position]}"
        if not types or types[-1] != EventType.RUN_FINISH.value:
            return "run_finish is not the last event"
        return None

    def _check_file_hash(
        self, store: BundleStore, name: str, expected: Optional[str]
    ) -> Optional[str]:
        actual = sha256_hex(store.read_bytes(name))
        if actual != expected:
            return f"{name}: expected {expected}, got {actual}"
        return None

    def _check_env_hash(self, store: BundleStore, manifest: Dict[str, Any]) -> Optional[str]:
        actual = canonical_hash(store.read_json(ENV_FILE))
        if actual != manifest.get("env_hash"):
            return f"{ENV_FILE}: expected {manifest.get('env_hash')}, got {actual}"
        return None

    def _check_leaks(self, store: BundleStore) -> CheckResult:
        hits = []
        for path in sorted(store.base_path.iterdir()):
            if not path.is_file():
                continue
            text = path.read_bytes().decode("utf-8", errors="replace")
            pattern = scan_for_leaks(text)
            if pattern:
                hits.append(path.name)
        return CheckResult(
            name="secret_leak_scan",
            passed=not hits,
            detail=f"Possible secrets in: {', '.join(hits)}" if hits else None,
        )

    def _write_evidence(self, store: BundleStore, result: VerificationResult) -> Path:
        """Write evidence/verdict.json."""
        verdict_data = {
            "verdict": result.verdict.value,
            "verdict_reason": result.verdict_reason,
            "evaluated_at": datetime.now(timezone.utc).isoformat(),
            "evaluated_by": {
                "kind": "system",
                "id": self.verifier_id,
            },
            "summary": {
                "checks_passed": result.checks_passed,
                "checks_failed": result.checks_failed,
            },
            "checks": [
                {"name": check.name, "passed": check.passed, "detail": check.detail}
                for check in result.checks
            ],
        }
        return store.write_json(VERDICT_FILE, verdict_data)


def verify_bundle(run_dir: Path, write_evidence: bool = True) -> VerificationResult:
    """Verify a bundle with a fresh verifier."""
    return BundleVerifier().verify(run_dir, write_evidence=write_evidence)
