"""Append-only JSON-lines event log."""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

from ..enums import EventType
from ..errors import EventLogClosedError


def now_ms() -> int:
    return int(time.time() * 1000)


class EventWriter:
    """Writes ``{ts_ms, run_id, type, data}`` lines in call order.

    Each write is flushed before returning. Recording ``run_finish`` closes
    the log; any later write raises EventLogClosedError.
    """

    def __init__(self, path: Path, run_id: str):
        self.path = Path(path)
        self.run_id = run_id
        self.closed = False
        self.count = 0

    def write(self, event_type: EventType, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if self.closed:
            raise EventLogClosedError(
                f"Event log {self.path} is closed; cannot write {EventType(event_type).value}"
            )
        entry = {
            "ts_ms": now_ms(),
            "run_id": self.run_id,
            "type": EventType(event_type).value,
            "data": data or {},
        }
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False, separators=(",", ":")) + "\n")
        self.count += 1
        if entry["type"] == EventType.RUN_FINISH.value:
            self.closed = True
        return entry
