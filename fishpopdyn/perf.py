"""Stage timing for projections.

Off by default and free when off. Stages used by project_population():
"allocation", "fishing", "transition", "derived", "unfished_reference".

Usage:
    from fishpopdyn.perf import PerfMonitor

    perf = PerfMonitor(enabled=True)
    result = project_population(..., perf=perf)
    perf.summary()   # {'transition': {'total_s': ..., 'calls': ...}, ...}
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass
class StageStats:
    """Accumulated wall-clock time for one stage."""
    total_time: float = 0.0
    call_count: int = 0

    def add(self, elapsed: float) -> None:
        self.total_time += elapsed
        self.call_count += 1


class PerfMonitor:
    """Per-stage wall-clock accumulator; every method is a no-op when disabled."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._stats: Dict[str, StageStats] = defaultdict(StageStats)
        self._start_time: Optional[float] = None
        self._total_time: float = 0.0

    def start(self) -> None:
        if self.enabled:
            self._start_time = time.perf_counter()

    def stop(self) -> None:
        if self.enabled and self._start_time is not None:
            self._total_time += time.perf_counter() - self._start_time
            self._start_time = None

    @contextmanager
    def track(self, stage: str):
        if not self.enabled:
            yield
            return
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self._stats[stage].add(time.perf_counter() - t0)

    def get_stats(self) -> Dict[str, StageStats]:
        return dict(self._stats)

    def summary(self) -> dict:
        """Seconds and call counts per stage, plus '_total_s' for the whole run."""
        result = {
            name: {'total_s': stats.total_time, 'calls': stats.call_count}
            for name, stats in self._stats.items()
        }
        result['_total_s'] = self._total_time
        return result

    def reset(self) -> None:
        self._stats.clear()
        self._start_time = None
        self._total_time = 0.0
