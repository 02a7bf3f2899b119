"""
Episode mapper: raw event log -> normalized episode timeline.

Each raw event maps to at most one episode; a ``command_finished`` event
additionally yields a REPO_DIFF episode when the bundle holds a diff patch.
Unknown event types are ignored so older mappers accept newer logs.

Mapping is a pure function of events.jsonl, repo_diff.patch and the run
directory reference, so re-mapping produces byte-identical output.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

import structlog
from pydantic import ValidationError

from .capture.hashing import sha256_hex
from .capture.layout import EPISODES_FILE, EVENTS_FILE, REPO_DIFF_FILE
from .enums import EpisodeKind, EventType
from .errors import BundleFormatError
from .models import Episode, EpisodeRefs, RawEvent
from .storage import BundleStore

logger = structlog.get_logger(__name__)

EPISODE_INDEX_WIDTH = 4


def _episode_id(run_id: str, index: int, infix: str = "") -> str:
    return f"{run_id}_{infix}{index + 1:0{EPISODE_INDEX_WIDTH}d}"


def _int_or_none(value) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def map_event_to_episode(event: RawEvent, index: int, run_dir_ref: str) -> Optional[Episode]:
    """Map one raw event to its episode, or None for types with no episode."""
    kind: Optional[EpisodeKind] = None
    hashes = {}
    outcome = {}
    data = event.data or {}

    if event.type == EventType.RUN_START.value:
        kind = EpisodeKind.RUN_START

    elif event.type in (
        EventType.REPO_SNAPSHOT_BEFORE.value,
        EventType.REPO_SNAPSHOT_AFTER.value,
    ):
        if data.get("reason"):
            kind = EpisodeKind.GIT_SKIP
            outcome["git"] = "SKIP"
        else:
            kind = (
                EpisodeKind.REPO_SNAPSHOT_BEFORE
                if event.type == EventType.REPO_SNAPSHOT_BEFORE.value
                else EpisodeKind.REPO_SNAPSHOT_AFTER
            )
            outcome["git"] = "OK"

    elif event.type == EventType.COMMAND_FINISHED.value:
        kind = EpisodeKind.CMD_FINISHED
        for key in ("stdout_tail_hash", "stderr_tail_hash"):
            if data.get(key):
                hashes[key] = data[key]
        exit_code = _int_or_none(data.get("exit_code"))
        if exit_code is not None:
            outcome["exit_code"] = exit_code

    elif event.type == EventType.RUN_FINISH.value:
        kind = EpisodeKind.RUN_FINISH
        exit_code = _int_or_none(data.get("exit_code"))
        if exit_code is not None:
            outcome["exit_code"] = exit_code

    if kind is None:
        return None

    return Episode(
        episode_id=_episode_id(event.run_id, index),
        run_id=event.run_id,
        ts_ms=event.ts_ms,
        kind=kind,
        refs=EpisodeRefs(event_index=index, run_dir=run_dir_ref),
        hashes=hashes,
        outcome=outcome,
    )


def build_repo_diff_episode(
    run_id: str, ts_ms: int, index: int, run_dir_ref: str, diff_hash: str
) -> Episode:
    """Synthetic episode for the bundle's diff, anchored at command_finished."""
    return Episode(
        episode_id=_episode_id(run_id, index, infix="PATCH_"),
        run_id=run_id,
        ts_ms=ts_ms,
        kind=EpisodeKind.REPO_DIFF,
        refs=EpisodeRefs(event_index=index, run_dir=run_dir_ref, patch_ref=REPO_DIFF_FILE),
        hashes={"repo_diff_hash": diff_hash},
    )


def map_events(
    events: List[RawEvent],
    run_dir_ref: str,
    run_id: str,
    diff_hash: Optional[str] = None,
) -> List[Episode]:
    """Map an ordered event list; ``diff_hash`` is None when there is no patch."""
    episodes: List[Episode] = []
    for index, event in enumerate(events):
        episode = map_event_to_episode(event, index, run_dir_ref)
        if episode is not None:
            episodes.append(episode)
        if event.type == EventType.COMMAND_FINISHED.value and diff_hash is not None:
            episodes.append(
                build_repo_diff_episode(run_id, event.ts_ms, index, run_dir_ref, diff_hash)
            )
    return episodes


def _relative_run_dir(run_dir: Path) -> str:
    try:
        return os.path.relpath(run_dir, os.getcwd()) or "."
    except ValueError:
        return str(run_dir)


def load_events(store: BundleStore) -> List[RawEvent]:
    """Read and validate events.jsonl."""
    events = []
    for lineno, record in enumerate(store.read_jsonl(EVENTS_FILE), start=1):
        try:
            events.append(RawEvent.model_validate(record))
        except ValidationError as e:
            raise BundleFormatError(store.path(EVENTS_FILE), str(e), line=lineno) from e
    return events


def capture_run_to_episodes(run_dir: Path, run_dir_ref: Optional[str] = None) -> Path:
    """Write ``<run_dir>/episodes/episodes.jsonl`` from the bundle's event log.

    Args:
        run_dir: Completed capture bundle
        run_dir_ref: How episodes refer to the bundle; defaults to its path
            relative to the current directory

    Returns:
        Path of the episodes file

    Raises:
        ArtifactNotFoundError: events.jsonl is missing (nothing is written)
        BundleFormatError: an event line is not valid JSON or lacks required keys
    """
    run_dir = Path(run_dir).resolve()
    store = BundleStore(run_dir)
    store.require(EVENTS_FILE)

    events = load_events(store)
    run_id = events[0].run_id if events else run_dir.name
    ref = run_dir_ref if run_dir_ref is not None else _relative_run_dir(run_dir)

    diff_hash = None
    if store.exists(REPO_DIFF_FILE):
        diff_hash = sha256_hex(store.read_bytes(REPO_DIFF_FILE))

    episodes = map_events(events, ref, run_id, diff_hash)
    output_path = store.write_jsonl(
        EPISODES_FILE,
        [episode.model_dump(mode="json", exclude_none=True) for episode in episodes],
    )
    logger.info(
        "episodes_written",
        run_id=run_id,
        events=len(events),
        episodes=len(episodes),
        has_repo_diff=diff_hash is not None,
    )
    return output_path
