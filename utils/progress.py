"""Progress tracking utilities for the visa data refresh tools.

Provides an abstract base class and concrete implementations for:
- Terminal progress lines during a refresh run
- Silent tracking for tests and dry runs
"""

import time
from abc import ABC, abstractmethod


class ProgressTracker(ABC):
    """Abstract base class for refresh progress tracking.

    Subclasses implement concrete progress display in different environments
    (terminal, logging, etc.).
    """

    def __init__(self, total_items: int):
        """Initialize progress tracker.

        Args:
            total_items: Number of pairs queued for this run
        """
        self.total_items = total_items
        self.updated = 0
        self.skipped = 0
        self.failed = 0
        self.start_time = time.time()

    @property
    def processed(self) -> int:
        """Pairs resolved so far (updated + skipped + failed)."""
        return self.updated + self.skipped + self.failed

    @property
    def remaining(self) -> int:
        return max(0, self.total_items - self.processed)

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time

    @property
    def progress_fraction(self) -> float:
        """Get progress as fraction (0.0 to 1.0)."""
        if self.total_items == 0:
            return 0.0
        return min(1.0, self.processed / self.total_items)

    @property
    def progress_percent(self) -> int:
        return int(self.progress_fraction * 100)

    def mark_updated(self, label: str, detail: str = "") -> None:
        """Record a pair whose record was written."""
        self.updated += 1
        self.update(label, "updated", detail)

    def mark_skipped(self, label: str, detail: str = "") -> None:
        """Record a pair left untouched because the lookup was inconclusive."""
        self.skipped += 1
        self.update(label, "skipped", detail)

    def mark_failed(self, label: str, detail: str = "") -> None:
        """Record a pair whose lookup failed."""
        self.failed += 1
        self.update(label, "failed", detail)

    @abstractmethod
    def update(self, label: str, outcome: str, detail: str) -> None:
        """Update progress display. Implemented by subclasses."""
        pass

    @abstractmethod
    def finish(self) -> None:
        """Finish progress tracking. Implemented by subclasses."""
        pass


class TerminalProgressTracker(ProgressTracker):
    """Progress tracker for terminal/CLI output.

    Prints one line per pair for small runs; for large runs only every
    ``show_every_n`` pairs plus every failure.
    """

    def __init__(self, total_items: int, show_every_n: int = 1):
        """Initialize terminal progress tracker.

        Args:
            total_items: Number of pairs queued
            show_every_n: Print a status line every N pairs
        """
        super().__init__(total_items)
        self.show_every_n = max(1, show_every_n)

    def _format_elapsed(self) -> str:
        elapsed_sec = int(self.elapsed_seconds)
        minutes, seconds = divmod(elapsed_sec, 60)
        hours, minutes = divmod(minutes, 60)

        if hours > 0:
            return f"{hours}h {minutes:02d}m {seconds:02d}s"
        return f"{minutes}m {seconds:02d}s"

    def update(self, label: str, outcome: str, detail: str) -> None:
        """Print ``[n/total] GB->FR: updated (visa-free, 90 days)``."""
        if outcome == "updated" and self.processed % self.show_every_n:
            return
        suffix = f" ({detail})" if detail else ""
        print(f"[{self.processed}/{self.total_items}] {label}: {outcome}{suffix}")

    def finish(self) -> None:
        """Print final summary."""
        print(f"\n[{self.progress_percent:3d}%] {self.processed}/{self.total_items} pairs "
              f"in {self._format_elapsed()}")
        print(f"Updated: {self.updated}, Skipped: {self.skipped}, Failed: {self.failed}")


class SilentProgressTracker(ProgressTracker):
    """Progress tracker that doesn't display anything.

    Useful for testing or when output should be suppressed.
    """

    def update(self, label: str, outcome: str, detail: str) -> None:
        pass

    def finish(self) -> None:
        pass
