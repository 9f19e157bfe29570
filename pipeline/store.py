"""
Ruleset and lifecycle persistence.

Two JSON documents live in the data directory:

  visa-rules.json   the ruleset consumed by the mobile app, plus a companion
                    version.json ({version, lastUpdated, dataVersion}) the app
                    polls to detect new data without downloading the ruleset
  lifecycle.json    internal bookkeeping: when each pair was last verified by
                    a live lookup, the rotation cursor, and the request count
                    for the current period

Loading never fails the run: a missing, unreadable or malformed document is
logged and replaced by an empty default. Saving goes through
``utils.common.atomic_write_json`` so readers never see a half-written file.

Stored record dicts are kept exactly as loaded; a pair that is not written
during a run serialises back byte-for-byte.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional

from pipeline.models import Requirement, RequirementRecord
from utils.common import atomic_write_json, format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "3.0.0"


def _read_json(path: Path, what: str) -> Optional[Any]:
    """Read a JSON document; None (with a log line) if absent or unreadable."""
    if not path.exists():
        logger.info("No %s at %s; starting fresh", what, path)
        return None
    try:
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s at %s (%s); starting fresh", what, path, e)
        return None


# ── Ruleset ───────────────────────────────────────────────────────────────────


@dataclass
class Ruleset:
    """passport -> destination -> record, wrapped with document metadata."""

    rules: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    version: str = SCHEMA_VERSION
    last_updated: Optional[str] = None
    data_version: int = 0
    source: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)   # unrecognised top-level keys

    @classmethod
    def empty(cls, source: Optional[str] = None) -> "Ruleset":
        return cls(source=source)

    @classmethod
    def from_dict(cls, data: Any) -> "Ruleset":
        """Build from a parsed document.

        Raises:
            ValueError: If *data* does not have the ruleset shape.
        """
        if not isinstance(data, dict):
            raise ValueError("ruleset document is not an object")
        rules = data.get("rules", {})
        if not isinstance(rules, dict) or not all(isinstance(v, dict) for v in rules.values()):
            raise ValueError("'rules' must map passport codes to objects")
        data_version = data.get("dataVersion", 0)
        if isinstance(data_version, bool) or not isinstance(data_version, int):
            data_version = 0
        known = {"version", "lastUpdated", "dataVersion", "source", "rules"}
        return cls(
            rules=rules,
            version=str(data.get("version") or SCHEMA_VERSION),
            last_updated=data.get("lastUpdated"),
            data_version=data_version,
            source=data.get("source"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "version": self.version,
            "lastUpdated": self.last_updated,
            "dataVersion": self.data_version,
        }
        if self.source is not None:
            d["source"] = self.source
        d.update(self.extra)
        d["rules"] = self.rules
        return d

    def version_stamp(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "lastUpdated": self.last_updated,
            "dataVersion": self.data_version,
        }

    # ── record access ─────────────────────────────────────────────────────

    def raw_record(self, passport: str, destination: str) -> Optional[dict[str, Any]]:
        return self.rules.get(passport, {}).get(destination)

    def get_record(self, passport: str, destination: str) -> Optional[RequirementRecord]:
        return RequirementRecord.from_dict(self.raw_record(passport, destination))

    def has_good_record(self, passport: str, destination: str) -> bool:
        record = self.get_record(passport, destination)
        return record is not None and record.is_good

    def set_record(self, passport: str, destination: str, record: RequirementRecord) -> None:
        """Store *record*, refusing self-pairs and ``unknown`` results.

        Raises:
            ValueError: For a self-pair or a record that is not good.
        """
        if passport == destination:
            raise ValueError(f"Self-pair {passport}->{destination} cannot be stored")
        if not record.is_good:
            raise ValueError(
                f"Refusing to store {record.requirement!r} for {passport}->{destination}"
            )
        self.rules.setdefault(passport, {})[destination] = record.to_dict()

    def iter_pairs(self) -> Iterator[tuple[str, str, dict[str, Any]]]:
        for passport, destinations in self.rules.items():
            for destination, raw in destinations.items():
                yield passport, destination, raw

    def stats(self) -> dict[str, int]:
        """Counts of records per requirement value, plus totals."""
        counts: dict[str, int] = {r: 0 for r in Requirement.ALL}
        total = 0
        for _, _, raw in self.iter_pairs():
            record = RequirementRecord.from_dict(raw)
            counts[record.requirement if record else Requirement.UNKNOWN] += 1
            total += 1
        counts["total"] = total
        counts["passports"] = len(self.rules)
        return counts


class RulesetStore:
    """Loads and saves the ruleset and its version stamp."""

    def __init__(self, rules_path: Path, version_path: Optional[Path] = None,
                 default_source: Optional[str] = None):
        self.rules_path = Path(rules_path)
        self.version_path = Path(version_path) if version_path else \
            self.rules_path.with_name("version.json")
        self.default_source = default_source

    def load(self) -> Ruleset:
        """Return the persisted ruleset, or an empty one. Never raises."""
        data = _read_json(self.rules_path, "ruleset")
        if data is None:
            return Ruleset.empty(self.default_source)
        try:
            ruleset = Ruleset.from_dict(data)
        except ValueError as e:
            logger.warning("Malformed ruleset at %s (%s); starting fresh", self.rules_path, e)
            return Ruleset.empty(self.default_source)
        logger.debug("Loaded ruleset v%s (dataVersion %s) with %d passports",
                     ruleset.version, ruleset.data_version, len(ruleset.rules))
        return ruleset

    def save(self, ruleset: Ruleset, now: Optional[datetime] = None) -> None:
        """Stamp and persist *ruleset* and the companion version document.

        ``dataVersion`` is a write-time counter in epoch milliseconds, forced
        to increase even if the clock does not.
        """
        now = now or utc_now()
        ruleset.last_updated = format_timestamp(now)
        ruleset.data_version = max(ruleset.data_version + 1, int(now.timestamp() * 1000))
        atomic_write_json(self.rules_path, ruleset.to_dict())
        atomic_write_json(self.version_path, ruleset.version_stamp())
        logger.info("Saved ruleset to %s (dataVersion %d)", self.rules_path, ruleset.data_version)


# ── Lifecycle / progress ─────────────────────────────────────────────────────


@dataclass
class LifecycleState:
    """Per-pair verification timestamps plus rotation and period counters."""

    last_updates: dict[str, dict[str, str]] = field(default_factory=dict)
    cursor: int = 0
    period: Optional[str] = None
    requests_this_period: int = 0
    stats: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "LifecycleState":
        """Build from a parsed document.

        Raises:
            ValueError: If *data* does not have the lifecycle shape.
        """
        if not isinstance(data, dict):
            raise ValueError("lifecycle document is not an object")
        last_updates = data.get("lastUpdates", {})
        if not isinstance(last_updates, dict) or \
                not all(isinstance(v, dict) for v in last_updates.values()):
            raise ValueError("'lastUpdates' must map passport codes to objects")
        cursor = data.get("cursor", 0)
        requests = data.get("requestsThisPeriod", 0)
        stats = data.get("stats", {})
        return cls(
            last_updates={p: {d: ts for d, ts in dests.items() if isinstance(ts, str)}
                          for p, dests in last_updates.items()},
            cursor=cursor if isinstance(cursor, int) and cursor >= 0 else 0,
            period=data.get("period") if isinstance(data.get("period"), str) else None,
            requests_this_period=requests if isinstance(requests, int) and requests >= 0 else 0,
            stats=stats if isinstance(stats, dict) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastUpdates": self.last_updates,
            "cursor": self.cursor,
            "period": self.period,
            "requestsThisPeriod": self.requests_this_period,
            "stats": self.stats,
        }

    def last_verified(self, passport: str, destination: str) -> Optional[datetime]:
        return parse_timestamp(self.last_updates.get(passport, {}).get(destination))

    def mark_verified(self, passport: str, destination: str, timestamp: str) -> None:
        self.last_updates.setdefault(passport, {})[destination] = timestamp

    def forget(self, passport: str, destination: str) -> None:
        dests = self.last_updates.get(passport)
        if dests and destination in dests:
            del dests[destination]
            if not dests:
                del self.last_updates[passport]

    def tracked_pairs(self) -> int:
        return sum(len(d) for d in self.last_updates.values())

    def roll_period(self, token: str) -> bool:
        """Start a new budget period when *token* differs from the stored one.

        Resets the period request counter only; the rotation cursor carries
        over so a rotation longer than one period still reaches every pair.
        Returns True if a new period started.
        """
        if self.period == token:
            return False
        self.period = token
        self.requests_this_period = 0
        return True

    def reconcile(self, ruleset: Ruleset) -> int:
        """Bring lifecycle timestamps in line with the ruleset.

        A record's own ``lastChecked`` is the source of truth: it replaces an
        older or missing lifecycle timestamp. Lifecycle entries for pairs with
        no good record are dropped. Returns the number of entries changed.
        """
        changed = 0
        for passport in list(self.last_updates):
            for destination in list(self.last_updates[passport]):
                if not ruleset.has_good_record(passport, destination):
                    self.forget(passport, destination)
                    changed += 1
        for passport, destination, raw in ruleset.iter_pairs():
            record = RequirementRecord.from_dict(raw)
            if record is None or not record.is_good:
                continue
            checked = parse_timestamp(record.last_checked)
            if checked is None:
                continue
            current = self.last_verified(passport, destination)
            if current is None or checked > current:
                self.mark_verified(passport, destination, record.last_checked)
                changed += 1
        return changed

    def seed_from_ruleset(self, ruleset: Ruleset, timestamp: str) -> tuple[int, int]:
        """Mark every good record as verified at *timestamp*.

        Used once after importing a dataset so the first refresh runs fill
        missing pairs before re-checking seeded ones.

        Returns:
            (good entries marked, unknown entries left for refresh)
        """
        good = unknown = 0
        for passport, destination, raw in ruleset.iter_pairs():
            record = RequirementRecord.from_dict(raw)
            if record is not None and record.is_good:
                self.mark_verified(passport, destination, timestamp)
                good += 1
            else:
                unknown += 1
        self.stats.update({
            "createdAt": timestamp,
            "description": "Tracks when each passport/destination pair was last updated",
        })
        return good, unknown


class LifecycleStore:
    """Loads and saves the lifecycle/progress document."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> LifecycleState:
        """Return the persisted state, or an empty default. Never raises."""
        data = _read_json(self.path, "lifecycle state")
        if data is None:
            return LifecycleState()
        try:
            return LifecycleState.from_dict(data)
        except ValueError as e:
            logger.warning("Malformed lifecycle state at %s (%s); starting fresh", self.path, e)
            return LifecycleState()

    def save(self, state: LifecycleState) -> None:
        state.stats["trackedPairs"] = state.tracked_pairs()
        state.stats["savedAt"] = format_timestamp(utc_now())
        atomic_write_json(self.path, state.to_dict())
        logger.debug("Saved lifecycle state to %s", self.path)
