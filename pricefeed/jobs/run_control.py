"""Run control: per-run circuit breakers."""
import time
import logging
from typing import Optional
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RunControl:
    """Caps successful downloads and optionally stops on elapsed time or error streaks.

    Download slots are reserved before a fetch and released when the fetch
    does not end in a download, so concurrent workers never exceed
    ``max_downloads``.
    """

    max_downloads: Optional[int] = None
    stop_after_minutes: Optional[int] = None
    max_consecutive_errors: Optional[int] = None

    # Internal state
    start_time: float = field(default_factory=time.time)
    reserved: int = 0
    downloaded: int = 0
    error_count: int = 0
    consecutive_errors: int = 0
    stop_reason: Optional[str] = None

    def should_stop(self) -> tuple[bool, Optional[str]]:
        """Check if run should stop. Returns (should_stop, reason)."""
        if self.stop_reason:
            return True, self.stop_reason

        if self.max_downloads is not None and self.downloaded >= self.max_downloads:
            return True, f"Reached max_downloads={self.max_downloads}"

        elapsed_minutes = (time.time() - self.start_time) / 60
        if self.stop_after_minutes and elapsed_minutes >= self.stop_after_minutes:
            return True, f"Reached stop_after_minutes={self.stop_after_minutes}"

        if self.max_consecutive_errors and self.consecutive_errors >= self.max_consecutive_errors:
            return True, f"Reached max_consecutive_errors={self.max_consecutive_errors}"

        return False, None

    def try_reserve(self) -> bool:
        """Reserve a download slot; False once the cap is taken."""
        if self.max_downloads is not None and self.reserved >= self.max_downloads:
            return False
        self.reserved += 1
        return True

    def release(self) -> None:
        self.reserved = max(0, self.reserved - 1)

    def record_download(self) -> None:
        self.downloaded += 1
        self.consecutive_errors = 0

    def record_error(self) -> None:
        self.error_count += 1
        self.consecutive_errors += 1

    def record_skip(self) -> None:
        self.consecutive_errors = 0

    def get_summary(self) -> dict:
        """Get summary statistics."""
        elapsed_minutes = (time.time() - self.start_time) / 60
        return {
            "elapsed_minutes": round(elapsed_minutes, 2),
            "downloaded": self.downloaded,
            "error_count": self.error_count,
            "consecutive_errors": self.consecutive_errors,
            "stop_reason": self.stop_reason,
        }
