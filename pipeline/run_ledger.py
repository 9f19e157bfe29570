"""
Refresh Run Ledger: append-only JSONL history of refresh runs.

Every time ``refresh_visa_data.py`` finishes (successfully or not), a single
JSON line is appended to ``logs/refresh/ledger.jsonl``.  This makes it trivial
to review how the budget has been spent over recent runs::

    tail -5 logs/refresh/ledger.jsonl | python -m json.tool

The ledger is append-only and never truncated.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pipeline.logging import RunLogger


def append_to_ledger(
    rl: RunLogger,
    exit_code: int,
    ledger_path: Path | None = None,
) -> Path:
    """Append a one-line JSON record summarising this run to the ledger.

    Args:
        rl: The RunLogger for the current run (holds the report + args).
        exit_code: The process exit code (0 = success).
        ledger_path: Override the default ``logs/refresh/ledger.jsonl``.

    Returns:
        The path to the ledger file.
    """
    if ledger_path is None:
        ledger_path = rl.logs_root / "ledger.jsonl"

    record: dict[str, Any] = {
        "run_id": rl.run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "total_seconds": round(rl.total_seconds, 1),
        "exit_code": exit_code,
        "args": rl.args_dict,
    }
    report = rl.report
    if report is not None:
        record.update({
            "state": report.state,
            "updated": report.updated,
            "skipped": report.skipped,
            "errors": report.errors,
            "requests": report.requests,
            "remaining": report.remaining,
        })
        if report.stop_reason:
            record["stop_reason"] = report.stop_reason
        skip_cats = report.skip_counts_by_category()
        if skip_cats:
            record["skip_categories"] = skip_cats

    ledger_path.parent.mkdir(parents=True, exist_ok=True)
    with open(ledger_path, "a") as f:
        f.write(json.dumps(record, separators=(",", ":"), default=str) + "\n")

    return ledger_path
