"""Metrics tracking for collect and decode runs."""
import time
import logging
from collections import defaultdict
from typing import Dict

logger = logging.getLogger(__name__)


class Metrics:
    """Per-run counters and rate."""

    def __init__(self, total: int = 0):
        self.total = total
        self.start_time = time.time()
        self.counters: Dict[str, int] = defaultdict(int)

    def increment(self, key: str, amount: int = 1) -> None:
        """Increment a counter."""
        self.counters[key] += amount

    def get(self, key: str) -> int:
        return self.counters.get(key, 0)

    def elapsed(self) -> float:
        return time.time() - self.start_time

    def get_rate(self) -> float:
        """Files processed per second."""
        elapsed = self.elapsed()
        if elapsed > 0:
            return self.get("processed") / elapsed
        return 0.0

    def report(self) -> None:
        """Log current progress."""
        processed = self.get("processed")
        pct = processed * 100 // self.total if self.total > 0 else 0
        logger.info(
            f"Progress: {processed}/{self.total} ({pct}%) | "
            f"Rate: {self.get_rate():.2f}/s | "
            f"Downloaded: {self.get('downloaded')} | "
            f"Skipped: {self.get('skipped')} | "
            f"Failed: {self.get('failed')} | "
            f"Already recorded: {self.get('already_recorded')}"
        )

    def get_summary(self) -> Dict:
        """Get summary statistics."""
        summary = {"total": self.total, **dict(self.counters)}
        summary["rate"] = round(self.get_rate(), 3)
        summary["elapsed_seconds"] = round(self.elapsed(), 2)
        return summary
