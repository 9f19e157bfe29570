"""Common utility functions used across the visa data refresh tools.

Timestamp helpers use ISO-8601 UTC strings with a trailing ``Z`` and
millisecond precision, the format the mobile client already parses
(e.g. ``2026-03-01T09:15:00.000Z``).
"""

import json
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


def elapsed(start_time: float) -> str:
    """Format elapsed time from start_time to now as human-readable string.

    Examples:
        0m 30s, 2m 15s, 1h 05m 30s
    """
    secs = int(time.time() - start_time)
    m, s = divmod(secs, 60)
    h, m = divmod(m, 60)
    if h:
        return f"{h}h {m:02d}m {s:02d}s"
    return f"{m}m {s:02d}s"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Render *dt* as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    text = dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp string into an aware UTC datetime.

    Accepts a trailing ``Z``. Returns None for empty or unparseable input
    instead of raising.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def age_in_days(then: datetime, now: datetime) -> float:
    """Fractional days between *then* and *now* (never negative)."""
    delta = (now - then).total_seconds() / 86400.0
    return max(0.0, delta)


def period_token(dt: datetime) -> str:
    """Month identifier (``YYYY-MM``) used to reset periodic request budgets."""
    return f"{dt.year:04d}-{dt.month:02d}"


def atomic_write_json(path: Path, data: Any, indent: int = 2, default=None) -> None:
    """Write *data* as JSON so readers never see a partially-written file.

    *default* is passed through to ``json.dump`` for non-JSON values.

    The document is written to a temporary file in the same directory, flushed
    to disk, then moved over *path* with ``os.replace``.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=indent, ensure_ascii=False, default=default)
            fh.write("\n")
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def format_duration(days: Optional[int]) -> str:
    """Short label for a permitted stay, e.g. ``90 days`` or ``-``."""
    if days is None:
        return "-"
    return f"{days} day" if days == 1 else f"{days} days"
