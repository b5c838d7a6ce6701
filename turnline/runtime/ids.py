from __future__ import annotations

import time
import uuid
from typing import Protocol


def new_id(prefix: str) -> str:
    ts = time.time_ns()
    rand = uuid.uuid4().hex[:12]
    return f"{prefix}_{ts:016x}_{rand}"


class Clock(Protocol):
    def now(self) -> float:
        """Seconds on a monotonic scale."""


class MonotonicClock:
    def now(self) -> float:
        return time.monotonic()
