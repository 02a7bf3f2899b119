"""Run identifiers."""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Optional


def generate_run_id(now: Optional[datetime] = None) -> str:
    """Generate a sortable, collision-resistant run id.

    Format: ``YYYY-MM-DDTHH-MM-SS-mmmZ_<8 hex chars>``. The timestamp prefix
    sorts lexicographically in time order; the random suffix separates runs
    started within the same millisecond.
    """
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    millis = now.microsecond // 1000
    return f"{stamp}-{millis:03d}Z_{secrets.token_hex(4)}"
