"""
Tests for utils/common.py

Verifies elapsed, timestamp formatting and parsing, age_in_days,
period_token, atomic_write_json and format_duration.
"""
import json
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from utils.common import (
    age_in_days,
    atomic_write_json,
    elapsed,
    format_duration,
    format_timestamp,
    parse_timestamp,
    period_token,
    utc_now,
)


# ── elapsed ───────────────────────────────────────────────────────────────────

class TestElapsed:
    def test_seconds_only(self):
        assert elapsed(time.time() - 30) == "0m 30s"

    def test_minutes(self):
        assert elapsed(time.time() - 135) == "2m 15s"

    def test_hours(self):
        assert elapsed(time.time() - 3930) == "1h 05m 30s"


# ── Timestamps ────────────────────────────────────────────────────────────────

class TestTimestamps:
    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is not None

    def test_format_millisecond_z(self):
        dt = datetime(2026, 3, 1, 9, 15, 0, 123456, tzinfo=timezone.utc)
        assert format_timestamp(dt) == "2026-03-01T09:15:00.123Z"

    def test_format_naive_assumed_utc(self):
        assert format_timestamp(datetime(2026, 3, 1)) == "2026-03-01T00:00:00.000Z"

    def test_format_converts_offsets(self):
        dt = datetime(2026, 3, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(dt) == "2026-03-01T08:00:00.000Z"

    @pytest.mark.parametrize("text", [
        "2026-03-01T09:15:00.000Z",
        "2026-03-01T09:15:00Z",
        "2026-03-01T09:15:00+00:00",
        "2026-03-01T11:15:00+02:00",
        "2026-03-01T09:15:00",
    ])
    def test_parse_variants(self, text):
        assert parse_timestamp(text) == datetime(2026, 3, 1, 9, 15, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "yesterday", 1709284500, "2026-13-40"])
    def test_parse_invalid_returns_none(self, value):
        assert parse_timestamp(value) is None

    def test_round_trip(self, now):
        assert parse_timestamp(format_timestamp(now)) == now


# ── Ages and periods ──────────────────────────────────────────────────────────

class TestAgeAndPeriod:
    def test_age_in_days(self, now):
        assert age_in_days(now - timedelta(days=45, hours=12), now) == 45.5

    def test_future_timestamp_is_zero_days(self, now):
        assert age_in_days(now + timedelta(days=1), now) == 0.0

    def test_period_token(self):
        assert period_token(datetime(2026, 3, 31, 23, 59, tzinfo=timezone.utc)) == "2026-03"
        assert period_token(datetime(2027, 1, 1, tzinfo=timezone.utc)) == "2027-01"


# ── atomic_write_json ─────────────────────────────────────────────────────────

class TestAtomicWriteJson:
    def test_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "nested" / "out.json"
        atomic_write_json(path, {"a": 1})
        assert json.loads(path.read_text()) == {"a": 1}

    def test_keeps_non_ascii(self, tmp_path):
        path = tmp_path / "out.json"
        atomic_write_json(path, {"notes": "Côte d'Ivoire"})
        assert "Côte" in path.read_text(encoding="utf-8")

    def test_overwrites_existing(self, tmp_path):
        path = tmp_path / "out.json"
        atomic_write_json(path, [1])
        atomic_write_json(path, [2])
        assert json.loads(path.read_text()) == [2]
        assert sorted(p.name for p in tmp_path.iterdir()) == ["out.json"]

    def test_unserialisable_leaves_no_temp_file(self, tmp_path):
        path = tmp_path / "out.json"
        atomic_write_json(path, {"ok": True})
        with pytest.raises(TypeError):
            atomic_write_json(path, {"bad": object()})
        assert json.loads(path.read_text()) == {"ok": True}
        assert sorted(p.name for p in tmp_path.iterdir()) == ["out.json"]

    def test_default_converts_paths(self, tmp_path):
        path = tmp_path / "out.json"
        atomic_write_json(path, {"dir": tmp_path}, default=str)
        assert json.loads(path.read_text()) == {"dir": str(tmp_path)}

    def test_replace_failure_propagates(self, tmp_path):
        path = tmp_path / "out.json"
        with patch("utils.common.os.replace", side_effect=OSError("read-only")):
            with pytest.raises(OSError):
                atomic_write_json(path, {})
        assert list(tmp_path.iterdir()) == []


# ── format_duration ───────────────────────────────────────────────────────────

class TestFormatDuration:
    @pytest.mark.parametrize("days,expected", [
        (None, "-"),
        (1, "1 day"),
        (30, "30 days"),
    ])
    def test_labels(self, days, expected):
        assert format_duration(days) == expected
