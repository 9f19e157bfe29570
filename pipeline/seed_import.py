"""
Seed import from the open passport-index dataset.

Reads the "tidy" CSV (one row per pair, columns ``Passport``,
``Destination``, ``Requirement``) and fills the ruleset with records the
refresh runs can then verify. Each row goes through the same normaliser as
live lookups and the same rule applies: a pair that already has a good
record keeps it, and rows that normalise to ``unknown`` are never written.

Bare categories get the usual permitted stay (visa-free 90 days, visa on
arrival 30, ETA 90); a numeric requirement is a visa-free stay of that many
days. Imported records carry ``source="passport-index"`` and no
``lastChecked``, since nothing was verified live.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from pipeline.models import Requirement, RequirementRecord
from pipeline.normalizer import normalize_requirement
from pipeline.store import Ruleset, RulesetStore
from utils.config import KnownValues

logger = logging.getLogger(__name__)

SEED_SOURCE = "passport-index"

# Dataset values meaning "entry not possible"; not representable as a requirement
NO_ADMISSION = frozenset({"no admission", "-1"})

REQUIRED_COLUMNS = ("passport", "destination", "requirement")


@dataclass
class ImportReport:
    """Counts for one dataset import."""

    rows: int = 0
    imported: int = 0
    preserved: int = 0
    skipped: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)

    def skip(self, reason: str) -> None:
        self.skipped += 1
        self.skip_reasons[reason] = self.skip_reasons.get(reason, 0) + 1

    def summary(self) -> str:
        parts = [f"{self.rows:,} rows", f"{self.imported:,} imported",
                 f"{self.preserved:,} preserved"]
        if self.skipped:
            reasons = ", ".join(f"{v} {k}" for k, v in sorted(self.skip_reasons.items()))
            parts.append(f"{self.skipped:,} skipped ({reasons})")
        return " | ".join(parts)


def read_dataset(path: Path) -> Iterator[tuple[str, str, str]]:
    """Yield ``(passport, destination, requirement text)`` rows from a tidy CSV.

    Header names are matched case-insensitively.

    Raises:
        ValueError: If a required column is missing.
    """
    with open(path, newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh)
        columns = {name.strip().lower(): name for name in (reader.fieldnames or [])}
        missing = [c for c in REQUIRED_COLUMNS if c not in columns]
        if missing:
            raise ValueError(f"{path}: missing column(s) {', '.join(missing)}")
        for row in reader:
            yield (
                (row.get(columns["passport"]) or "").strip().upper(),
                (row.get(columns["destination"]) or "").strip().upper(),
                (row.get(columns["requirement"]) or "").strip(),
            )


def seed_record(text: str) -> Optional[RequirementRecord]:
    """Normalise one dataset value; None if it cannot be stored."""
    if text.lower().strip() in NO_ADMISSION:
        return None
    requirement, duration = normalize_requirement(text)
    if requirement == Requirement.UNKNOWN:
        return None
    if duration is None:
        duration = KnownValues.SEED_DEFAULT_DURATIONS.get(requirement)
    return RequirementRecord(requirement=requirement, duration=duration, source=SEED_SOURCE)


def import_rows(ruleset: Ruleset, rows: Iterable[tuple[str, str, str]]) -> ImportReport:
    """Merge dataset rows into *ruleset* without touching good records."""
    report = ImportReport()
    for passport, destination, text in rows:
        report.rows += 1
        if passport == destination:
            report.skip("self-pair")
            continue
        if not (KnownValues.is_valid_country(passport)
                and KnownValues.is_valid_country(destination)):
            report.skip("invalid code")
            continue
        record = seed_record(text)
        if record is None:
            report.skip("unrecognised requirement")
            continue
        if ruleset.has_good_record(passport, destination):
            report.preserved += 1
            continue
        ruleset.set_record(passport, destination, record)
        report.imported += 1
    return report


def import_dataset(csv_path: Path, store: RulesetStore, dry_run: bool = False,
                   now: Optional[datetime] = None) -> ImportReport:
    """Import *csv_path* into the ruleset held by *store*.

    The ruleset is only saved when at least one record was imported and
    *dry_run* is false.
    """
    ruleset = store.load()
    report = import_rows(ruleset, read_dataset(Path(csv_path)))
    logger.info("Dataset import: %s", report.summary())
    if report.imported and not dry_run:
        if ruleset.source is None:
            ruleset.source = SEED_SOURCE
        store.save(ruleset, now=now)
    return report
