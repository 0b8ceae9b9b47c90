"""
📊 Telemetry - error reporting and counters

Passed explicitly to the components that report into it instead of a
process-wide registration.
"""
import logging
import time
from collections import Counter
from typing import Dict, Optional


class Telemetry:
    """Named counters + exception capture"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.counters: Counter = Counter()
        self.errors: Counter = Counter()
        self.started_at = time.time()
        self.last_error: Optional[str] = None

    def incr(self, name: str, amount: int = 1) -> None:
        self.counters[name] += amount

    def capture_exception(self, exc: BaseException, where: str) -> None:
        """
        Report an exception with its traceback.

        Args:
            exc: The exception
            where: Origin label ("token_guardian.refresh", "announcer.message", ...)
        """
        self.errors[where] += 1
        self.last_error = f"{where}: {type(exc).__name__}: {exc}"
        self.logger.error(f"🚨 [{where}] {type(exc).__name__}: {exc}", exc_info=exc)

    def get_stats(self) -> Dict[str, object]:
        """Return counters snapshot"""
        return {
            "uptime_seconds": int(time.time() - self.started_at),
            "counters": dict(self.counters),
            "errors": dict(self.errors),
            "last_error": self.last_error,
        }
