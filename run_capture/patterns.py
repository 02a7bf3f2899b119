"""
Pattern extraction over a run's episode timeline.

A signature is an ordered list of episode kinds. The canonical signature
(RUN_START, CMD_FINISHED, RUN_FINISH) summarizes the run itself and is
reported exactly once per run. Other signatures are matched as ordered
subsequences of the episode kinds and only reported when they occur.

Output:
    patterns/patterns.json       readable, includes generated_at_ms
    patterns/patterns_core.json  canonical, timestamp-free, hashable
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

import structlog
from pydantic import ValidationError

from .capture.layout import EPISODES_FILE, PATTERNS_CORE_FILE, PATTERNS_FILE
from .enums import EpisodeKind
from .errors import BundleFormatError
from .models import (
    Episode,
    PatternCounts,
    PatternRecord,
    PatternReport,
    PatternScore,
)
from .storage import BundleStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SequenceSignature:
    """A pattern to look for in the episode kind sequence."""

    pattern_id: str
    signature: Tuple[EpisodeKind, ...]
    confidence: float
    stability: float
    canonical: bool = False


CANONICAL_SIGNATURE = SequenceSignature(
    pattern_id="p1",
    signature=(EpisodeKind.RUN_START, EpisodeKind.CMD_FINISHED, EpisodeKind.RUN_FINISH),
    confidence=0.7,
    stability=0.6,
    canonical=True,
)

BASIC_SIGNATURES: Tuple[SequenceSignature, ...] = (CANONICAL_SIGNATURE,)

EXTENDED_SIGNATURES: Tuple[SequenceSignature, ...] = BASIC_SIGNATURES + (
    # Command changed a tracked working tree
    SequenceSignature(
        pattern_id="p2",
        signature=(
            EpisodeKind.REPO_SNAPSHOT_BEFORE,
            EpisodeKind.CMD_FINISHED,
            EpisodeKind.REPO_DIFF,
            EpisodeKind.REPO_SNAPSHOT_AFTER,
        ),
        confidence=0.6,
        stability=0.5,
    ),
    # Command ran outside a repository
    SequenceSignature(
        pattern_id="p3",
        signature=(EpisodeKind.GIT_SKIP, EpisodeKind.CMD_FINISHED, EpisodeKind.GIT_SKIP),
        confidence=0.6,
        stability=0.7,
    ),
)

SIGNATURE_SETS = {
    "basic": BASIC_SIGNATURES,
    "extended": EXTENDED_SIGNATURES,
}


def count_subsequence(kinds: Sequence[EpisodeKind], signature: Sequence[EpisodeKind]) -> int:
    """Count greedy, non-overlapping ordered occurrences of ``signature`` in ``kinds``."""
    if not signature:
        return 0
    matches = 0
    position = 0
    for kind in kinds:
        if kind == signature[position]:
            position += 1
            if position == len(signature):
                matches += 1
                position = 0
    return matches


def extract_patterns(
    episodes: List[Episode],
    signatures: Sequence[SequenceSignature] = BASIC_SIGNATURES,
) -> List[PatternRecord]:
    """Build pattern records for one run, sorted by pattern_id."""
    kinds = [episode.kind for episode in episodes]
    has_repo_diff = EpisodeKind.REPO_DIFF in kinds
    cmd_fail = any(
        episode.kind == EpisodeKind.CMD_FINISHED
        and episode.outcome.get("exit_code", 0) != 0
        for episode in episodes
    )

    records = []
    for sig in signatures:
        seen = 1 if sig.canonical else count_subsequence(kinds, sig.signature)
        if seen == 0:
            continue
        records.append(
            PatternRecord(
                pattern_id=sig.pattern_id,
                signature=list(sig.signature),
                counts=PatternCounts(
                    seen=seen,
                    cmd_fail=1 if cmd_fail else 0,
                    repo_diff=1 if has_repo_diff else 0,
                ),
                score=PatternScore(confidence=sig.confidence, stability=sig.stability),
            )
        )
    return sorted(records, key=lambda record: record.pattern_id)


def load_episodes(store: BundleStore) -> List[Episode]:
    """Read and validate episodes/episodes.jsonl."""
    episodes = []
    for lineno, record in enumerate(store.read_jsonl(EPISODES_FILE), start=1):
        try:
            episodes.append(Episode.model_validate(record))
        except ValidationError as e:
            raise BundleFormatError(store.path(EPISODES_FILE), str(e), line=lineno) from e
    return episodes


def analyze_patterns(
    run_dir: Path,
    signatures: Sequence[SequenceSignature] = BASIC_SIGNATURES,
) -> Path:
    """Write patterns.json and patterns_core.json for a mapped bundle.

    Returns:
        Path of patterns.json

    Raises:
        ArtifactNotFoundError: episodes/episodes.jsonl is missing (nothing is written)
    """
    run_dir = Path(run_dir).resolve()
    store = BundleStore(run_dir)
    store.require(EPISODES_FILE)

    episodes = load_episodes(store)
    run_id = episodes[0].run_id if episodes else run_dir.name
    patterns = extract_patterns(episodes, signatures)

    report = PatternReport(
        run_id=run_id,
        generated_at_ms=int(time.time() * 1000),
        patterns=patterns,
    )
    output_path = store.write_json(PATTERNS_FILE, report.model_dump(mode="json"))
    store.write_canonical_json(
        PATTERNS_CORE_FILE, report.model_dump(mode="json", exclude={"generated_at_ms"})
    )
    logger.info(
        "patterns_written",
        run_id=run_id,
        episodes=len(episodes),
        patterns=[record.pattern_id for record in patterns],
    )
    return output_path
