"""
Refresh Logging: per-run log files and structured skip/error accounting.

Provides:
  - RunLogger: manages a ``logs/refresh/`` directory with one folder per run
    holding the run's log file and a JSON summary.
  - RunReport: what a refresh run did, what it skipped, and why it stopped.
  - SkipRecord: single skip event with a category and detail string.

Usage inside refresh_visa_data.py::

    from pipeline.logging import RunLogger

    rl = RunLogger()                        # creates logs/refresh/<run_id>/
    rl.start()                              # attaches refresh.log handler
    report = executor.run()                 # library code logs normally
    rl.finish(report)                       # detaches handler, appends summary
    rl.write_summary()                      # writes <run_id>/summary.json

Skip categories (for SkipRecord.category):
    unknown_result      lookup answered but the text normalised to ``unknown``
    lookup_error        recoverable lookup failure (transport, HTTP, parse)
    stop_signal         rate limit or quota exhausted; the pair was abandoned
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pipeline.models import RunState
from utils.common import atomic_write_json


UNKNOWN_RESULT = "unknown_result"
LOOKUP_ERROR = "lookup_error"
STOP_SIGNAL = "stop_signal"


# ── Data structures ───────────────────────────────────────────────────────────


@dataclass
class SkipRecord:
    """One pair that was not written, with a machine-readable category."""

    category: str          # e.g. "unknown_result", "lookup_error"
    detail: str            # human-readable explanation
    item: str = ""         # optional: pair label such as "GB->FR"

    def to_dict(self) -> dict[str, str]:
        d: dict[str, str] = {"category": self.category, "detail": self.detail}
        if self.item:
            d["item"] = self.item
        return d


@dataclass
class RunReport:
    """Structured summary of what one refresh run accomplished."""

    state: str = RunState.INIT
    stop_reason: str = ""
    elapsed_seconds: float = 0.0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    requests: int = 0
    checkpoints: int = 0
    queue_size: int = 0
    budget: int = 0
    requests_per_run: int = 0
    skips: list[SkipRecord] = field(default_factory=list)
    error_details: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    detail: str = ""

    # ── helpers ───────────────────────────────────────────────────────────

    @property
    def processed(self) -> int:
        return self.updated + self.skipped + self.errors

    @property
    def stopped(self) -> bool:
        """True when the remote side ended the run (rate limit or quota)."""
        return self.state in RunState.STOP_SIGNALLED

    @property
    def remaining(self) -> int:
        """Queued pairs not resolved by this run."""
        return max(0, self.queue_size - self.processed)

    @property
    def estimated_runs(self) -> int:
        """Further runs needed to drain the remaining queue at this budget."""
        if not self.remaining or self.requests_per_run <= 0:
            return 0
        return math.ceil(self.remaining / self.requests_per_run)

    def add_skip(self, category: str, detail: str, item: str = "") -> None:
        self.skips.append(SkipRecord(category=category, detail=detail, item=item))
        self.skipped += 1

    def add_error(self, message: str, item: str = "") -> None:
        self.skips.append(SkipRecord(category=LOOKUP_ERROR, detail=message, item=item))
        self.error_details.append(f"{item}: {message}" if item else message)
        self.errors += 1

    def record_stop(self, state: str, detail: str, item: str = "") -> None:
        """Note the stop signal; the abandoned pair counts as neither skip nor error."""
        self.state = state
        self.stop_reason = detail
        self.skips.append(SkipRecord(category=STOP_SIGNAL, detail=detail, item=item))

    def skip_counts_by_category(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for s in self.skips:
            counts[s.category] = counts.get(s.category, 0) + 1
        return counts

    def console_summary(self) -> str:
        """One-paragraph summary suitable for the terminal."""
        parts = [f"{self.updated:,} updated"]
        if self.skipped:
            unknown = self.skip_counts_by_category().get(UNKNOWN_RESULT, 0)
            parts.append(f"{self.skipped:,} skipped ({unknown} unknown result)")
        parts.append(f"{self.errors:,} errors")
        parts.append(f"{self.requests:,} requests")
        if self.stop_reason:
            parts.append(f"stopped: {self.stop_reason}")
        if self.remaining:
            parts.append(f"{self.remaining:,} remaining (~{self.estimated_runs} more runs)")
        if self.detail:
            parts.append(self.detail)
        return " | ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        d = {
            "state": self.state,
            "stopped": self.stopped,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "requests": self.requests,
            "checkpoints": self.checkpoints,
            "queue_size": self.queue_size,
            "budget": self.budget,
            "remaining": self.remaining,
            "estimated_runs": self.estimated_runs,
            "metrics": self.metrics,
        }
        if self.stop_reason:
            d["stop_reason"] = self.stop_reason
        if self.detail:
            d["detail"] = self.detail
        if self.skips:
            d["skips"] = [s.to_dict() for s in self.skips]
        if self.error_details:
            d["errors_detail"] = self.error_details
        return d


# ── RunLogger ─────────────────────────────────────────────────────────────────


class RunLogger:
    """Manages per-run log folders under ``logs/refresh/``.

    Creates a directory like::

        logs/refresh/2026-03-01T09-15-00/
            refresh.log
            summary.json
    """

    def __init__(self, logs_dir: Path | str = "logs/refresh") -> None:
        self.logs_root = Path(logs_dir)
        self.run_id = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
        self.run_dir = self.logs_root / self.run_id
        self.run_dir.mkdir(parents=True, exist_ok=True)

        self._handler: Optional[logging.FileHandler] = None
        self.report: Optional[RunReport] = None

        self.run_start = time.monotonic()
        self.args_dict: dict[str, Any] = {}

    @property
    def log_path(self) -> Path:
        return self.run_dir / "refresh.log"

    @property
    def summary_path(self) -> Path:
        return self.run_dir / "summary.json"

    def start(self) -> None:
        """Open the run log file and attach it to the root logger."""
        handler = logging.FileHandler(self.log_path, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
            datefmt="%H:%M:%S",
        ))
        logging.getLogger().addHandler(handler)
        self._handler = handler
        self.run_start = time.monotonic()

    def finish(self, report: Optional[RunReport] = None) -> None:
        """Detach the log handler, writing the run summary block first."""
        if report is not None:
            self.report = report
        handler, self._handler = self._handler, None
        if handler is None:
            return
        report = self.report
        if report is not None:
            handler.stream.write(f"\n{'=' * 60}\n")
            handler.stream.write("RUN SUMMARY\n")
            handler.stream.write(f"  State:     {report.state}\n")
            handler.stream.write(f"  Elapsed:   {report.elapsed_seconds:.1f}s\n")
            handler.stream.write(f"  Updated:   {report.updated}\n")
            handler.stream.write(f"  Skipped:   {report.skipped}\n")
            handler.stream.write(f"  Errors:    {report.errors}\n")
            handler.stream.write(f"  Requests:  {report.requests}\n")
            handler.stream.write(f"  Remaining: {report.remaining}\n")
            if report.stop_reason:
                handler.stream.write(f"  Stopped:   {report.stop_reason}\n")
            if report.error_details:
                handler.stream.write("  Error details:\n")
                for err in report.error_details[:20]:
                    handler.stream.write(f"    - {err}\n")
                if len(report.error_details) > 20:
                    handler.stream.write(
                        f"    ... and {len(report.error_details) - 20} more\n"
                    )
            handler.stream.write(f"{'=' * 60}\n")
        handler.close()
        logging.getLogger().removeHandler(handler)

    @property
    def total_seconds(self) -> float:
        return time.monotonic() - self.run_start

    def write_summary(self) -> Path:
        """Write a JSON summary of the run to the run directory."""
        summary = {
            "run_id": self.run_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_elapsed_seconds": round(self.total_seconds, 2),
            "args": self.args_dict,
            "report": self.report.to_dict() if self.report else None,
        }
        atomic_write_json(self.summary_path, summary, default=str)
        return self.summary_path
