"""
Canonical enums for capture artifacts.

Raw event types are what the orchestrator writes to events.jsonl. Episode and
pattern kinds are the normalized vocabulary downstream stages emit.
"""

from enum import Enum


class EventType(str, Enum):
    """Raw event types written to events.jsonl, in required order."""

    RUN_START = "run_start"
    REPO_SNAPSHOT_BEFORE = "repo_snapshot_before"
    COMMAND_STARTED = "command_started"
    COMMAND_FINISHED = "command_finished"
    REPO_SNAPSHOT_AFTER = "repo_snapshot_after"
    RUN_FINISH = "run_finish"


REQUIRED_EVENT_ORDER = [
    EventType.RUN_START,
    EventType.REPO_SNAPSHOT_BEFORE,
    EventType.COMMAND_STARTED,
    EventType.COMMAND_FINISHED,
    EventType.REPO_SNAPSHOT_AFTER,
    EventType.RUN_FINISH,
]


class EpisodeKind(str, Enum):
    """Episode kinds derived from raw events."""

    RUN_START = "EP.RUN_START"
    REPO_SNAPSHOT_BEFORE = "EP.REPO_SNAPSHOT_BEFORE"
    REPO_SNAPSHOT_AFTER = "EP.REPO_SNAPSHOT_AFTER"
    GIT_SKIP = "EP.GIT_SKIP"
    CMD_FINISHED = "EP.CMD_FINISHED"
    REPO_DIFF = "EP.REPO_DIFF"
    RUN_FINISH = "EP.RUN_FINISH"


class PatternKind(str, Enum):
    """Pattern record kinds."""

    SEQUENCE = "PATTERN.SEQUENCE"


class GitSkipReason(str, Enum):
    """Why a git snapshot was not taken."""

    NOT_A_GIT_REPO = "NOT_A_GIT_REPO"
    GIT_UNAVAILABLE = "GIT_UNAVAILABLE"


class RedactionType(str, Enum):
    """Which redaction pass matched a secret."""

    URL_USERINFO = "url_userinfo"
    BEARER = "bearer"
    JSON_VALUE = "json_value"
    HEADER = "header"
    KEY_VALUE = "key_value"


class Verdict(str, Enum):
    """Outcome of bundle verification."""

    PASS = "pass"
    FAIL = "fail"
