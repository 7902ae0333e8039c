"""In-process counters for timed-out executions."""

import threading
from collections import deque

from rulechain.rule_engine.errors import ErrorCode

HISTOGRAM_BUCKETS = (1, 5, 10, 30, 60)
MAX_SAMPLES = 1000


class TimeoutMetrics:
    """Counts timeouts and keeps recent durations per error code.

    Durations are stored in seconds; only the latest ``MAX_SAMPLES`` per
    code are kept.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[ErrorCode, int] = {}
        self._durations: dict[ErrorCode, deque[float]] = {}
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._counters = {code: 0 for code in ErrorCode}
            self._durations = {code: deque(maxlen=MAX_SAMPLES) for code in ErrorCode}

    def record_timeout(self, code: ErrorCode | str, duration_ms: float) -> None:
        """Record one timeout. Unknown codes are ignored."""
        try:
            code = ErrorCode(code)
        except ValueError:
            return
        with self._lock:
            self._counters[code] += 1
            self._durations[code].append(duration_ms / 1000)

    def get_counter(self, code: ErrorCode | str) -> int:
        try:
            return self._counters[ErrorCode(code)]
        except ValueError:
            return 0

    def get_histogram_buckets(self, code: ErrorCode | str) -> dict[str, int]:
        """Cumulative bucket counts keyed ``le_<seconds>`` plus ``le_inf``."""
        try:
            durations = list(self._durations[ErrorCode(code)])
        except ValueError:
            durations = []
        buckets = {
            f"le_{bound}": sum(1 for d in durations if d <= bound)
            for bound in HISTOGRAM_BUCKETS
        }
        buckets["le_inf"] = len(durations)
        return buckets


timeout_metrics = TimeoutMetrics()
