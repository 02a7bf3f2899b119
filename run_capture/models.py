"""
Record shapes persisted in a capture bundle.

Every JSON artifact the pipeline writes is built from one of these models so
that field names stay stable across stages. RawEvent is the only permissive
model: new raw event types and payload keys must not break older readers.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import EpisodeKind, GitSkipReason, PatternKind, RedactionType


class StatusSummary(BaseModel):
    """Counts derived from `git status --porcelain` two-character codes."""

    model_config = ConfigDict(extra="forbid")

    changed_files: int = 0
    added: int = 0
    modified: int = 0
    deleted: int = 0
    renamed: int = 0
    untracked: int = 0


class GitSnapshot(BaseModel):
    """Repository state at one instant."""

    model_config = ConfigDict(extra="forbid")

    head: str = Field(..., description="Commit sha of HEAD, empty on an unborn branch")
    branch: str = Field(..., description="Current branch name or HEAD when detached")
    status_summary: StatusSummary
    diff_hash: str = Field(..., description="sha256 of the working tree diff")


class GitSnapshotResult(BaseModel):
    """Either a snapshot or the reason none was taken."""

    model_config = ConfigDict(extra="forbid")

    is_git: bool
    reason: Optional[GitSkipReason] = None
    snapshot: Optional[GitSnapshot] = None
    status_text: str = ""
    diff_text: str = ""
    diff_hash: Optional[str] = None


class RedactionExample(BaseModel):
    """One redaction. Never holds the secret itself."""

    model_config = ConfigDict(extra="forbid")

    field: str
    redaction_type: RedactionType
    length: int = Field(..., ge=0)
    hash: str


class RedactionReport(BaseModel):
    """Accumulated redactions for one run, across every field scrubbed."""

    model_config = ConfigDict(extra="forbid")

    redacted_fields: List[str] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)
    examples: List[RedactionExample] = Field(default_factory=list)

    def record(
        self, field: str, redaction_type: RedactionType, length: int, digest: str
    ) -> None:
        if field not in self.redacted_fields:
            self.redacted_fields.append(field)
            self.redacted_fields.sort()
        self.counts[field] = self.counts.get(field, 0) + 1
        self.examples.append(
            RedactionExample(
                field=field, redaction_type=redaction_type, length=length, hash=digest
            )
        )

    @property
    def is_empty(self) -> bool:
        return not self.redacted_fields


class HostInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    platform: str
    release: str
    arch: str
    python: str


class EnvDescriptor(BaseModel):
    """Contents of env.json."""

    model_config = ConfigDict(extra="forbid")

    run_id: str
    started_at_ms: int
    finished_at_ms: int
    cwd: str
    cmd: str = Field(..., description="Redacted command line")
    exit_code: int
    git_enabled: bool
    host: HostInfo
    tool_versions: Dict[str, str] = Field(default_factory=dict)


class HashManifest(BaseModel):
    """Contents of hashes.json."""

    model_config = ConfigDict(extra="forbid")

    stdout_tail_hash: str
    stderr_tail_hash: str
    env_hash: str
    repo_diff_hash: Optional[str] = None


class RawEvent(BaseModel):
    """One line of events.jsonl as read back by downstream stages."""

    model_config = ConfigDict(extra="allow")

    ts_ms: int
    run_id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class EpisodeRefs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event_index: int = Field(..., ge=0)
    run_dir: str
    patch_ref: Optional[str] = None


class Episode(BaseModel):
    """Normalized, deterministically identified timeline entry."""

    model_config = ConfigDict(extra="forbid")

    episode_id: str
    run_id: str
    ts_ms: int
    kind: EpisodeKind
    refs: EpisodeRefs
    hashes: Dict[str, str] = Field(default_factory=dict)
    outcome: Dict[str, Any] = Field(default_factory=dict)


class PatternCounts(BaseModel):
    model_config = ConfigDict(extra="forbid")

    seen: int = Field(default=0, ge=0)
    cmd_fail: int = Field(default=0, ge=0)
    repo_diff: int = Field(default=0, ge=0)


class PatternScore(BaseModel):
    model_config = ConfigDict(extra="forbid")

    confidence: float = Field(..., ge=0.0, le=1.0)
    stability: float = Field(..., ge=0.0, le=1.0)


class PatternRecord(BaseModel):
    """Aggregate statistics for one episode-kind signature."""

    model_config = ConfigDict(extra="forbid")

    pattern_id: str
    kind: PatternKind = PatternKind.SEQUENCE
    signature: List[EpisodeKind]
    counts: PatternCounts
    score: PatternScore


class PatternReport(BaseModel):
    """Contents of patterns.json. generated_at_ms is excluded from patterns_core.json."""

    model_config = ConfigDict(extra="forbid")

    run_id: str
    generated_at_ms: Optional[int] = None
    patterns: List[PatternRecord] = Field(default_factory=list)
