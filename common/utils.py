from __future__ import annotations

from typing import Deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from collections import deque
import time


def iso_now_ms() -> str:
    """UTC ISO-8601 timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True)
class RateTimer:
    """
    Frame-rate tracker for the stream loop.

    Usage:
        rt = RateTimer(window=30)
        for frame in frames:
            # detect...
            fps = rt.tick()
    """
    window: int = 30
    _times: Deque[float] = field(default_factory=deque)

    def __post_init__(self) -> None:
        self._times = deque(maxlen=max(2, self.window))

    def tick(self) -> float:
        t = time.perf_counter()
        self._times.append(t)
        if len(self._times) < 2:
            return 0.0
        dt = (self._times[-1] - self._times[0]) / (len(self._times) - 1)
        return 0.0 if dt <= 0 else 1.0 / dt


def clamp(v: float, lo: float, hi: float) -> float:
    return float(min(hi, max(lo, v)))

