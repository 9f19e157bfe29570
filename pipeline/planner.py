"""
Refresh queue planning.

Turns (ruleset, lifecycle state, configuration) into an ordered list of
``WorkItem``s. Planning is a pure function of its inputs and the supplied
``now``: no I/O, no randomness, identical inputs give identical queues.

Lifecycle strategy categories, in queue order:

    missing     no record, or the record is ``unknown``
    unverified  good record that was never confirmed by a live lookup
    critical    last verified at least ``critical_days`` ago
    stale       last verified between ``fresh_days`` and ``critical_days`` ago

Pairs verified less than ``fresh_days`` ago are left out. Inside a category,
priority passports come first, then the oldest verification, then the
enumeration order of the candidate pairs.

Cursor strategy: the candidate pairs in their configured order, starting at
the persisted cursor and wrapping around the end of the list.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

from pipeline.models import (
    CATEGORY_ORDER,
    CRITICAL,
    MISSING,
    ROTATION,
    STALE,
    UNVERIFIED,
    RequirementRecord,
    WorkItem,
)
from pipeline.store import LifecycleState, Ruleset
from utils.common import age_in_days, parse_timestamp
from utils.config import KnownValues, RefreshConfig


def candidate_pairs(config: RefreshConfig) -> list[tuple[str, str]]:
    """Enumerate the (passport, destination) pairs of interest, in order.

    ``priority``: priority passports x all countries.
    ``all``: priority passports first, then every other country, each x all
    countries.
    ``pairs``: the curated pair list as given.

    Self-pairs, malformed codes and duplicates are dropped.
    """
    countries = list(config.countries)
    if config.scope == "pairs":
        raw: Iterable[tuple[str, str]] = (tuple(p) for p in config.pairs)
    else:
        passports = list(config.priority_passports)
        if config.scope == "all":
            passports += [c for c in countries if c not in set(passports)]
        raw = ((p, d) for p in passports for d in countries)

    seen: set[tuple[str, str]] = set()
    pairs: list[tuple[str, str]] = []
    for passport, destination in raw:
        if passport == destination:
            continue
        if not (KnownValues.is_valid_country(passport)
                and KnownValues.is_valid_country(destination)):
            continue
        if (passport, destination) in seen:
            continue
        seen.add((passport, destination))
        pairs.append((passport, destination))
    return pairs


def last_verified(ruleset: Ruleset, lifecycle: LifecycleState,
                  passport: str, destination: str) -> Optional[datetime]:
    """Most recent live verification from either the record or the lifecycle."""
    record = ruleset.get_record(passport, destination)
    stamps = [lifecycle.last_verified(passport, destination)]
    if record is not None:
        stamps.append(parse_timestamp(record.last_checked))
    stamps = [s for s in stamps if s is not None]
    return max(stamps) if stamps else None


def classify_pair(record: Optional[RequirementRecord], verified: Optional[datetime],
                  now: datetime, fresh_days: float,
                  critical_days: float) -> Optional[tuple[str, float, str, Optional[float]]]:
    """Decide the category of one pair.

    Returns:
        (category, priority score, reason, age in days), or None when the
        pair is fresh and must not be queued.
    """
    if record is None or not record.is_good:
        reason = "no record" if record is None else "unknown requirement"
        return MISSING, 0.0, reason, None
    if verified is None:
        return UNVERIFIED, 1.0, "never verified", None
    age = age_in_days(verified, now)
    if age < fresh_days:
        return None
    category = CRITICAL if age >= critical_days else STALE
    return category, 2.0 + age, f"{int(age)} days old", age


def plan_refresh(ruleset: Ruleset, lifecycle: LifecycleState,
                 config: RefreshConfig, now: datetime) -> list[WorkItem]:
    """Priority-ordered queue for the lifecycle strategy."""
    priority_set = set(config.priority_passports)
    keyed: list[tuple[tuple, WorkItem]] = []
    for ordinal, (passport, destination) in enumerate(candidate_pairs(config)):
        record = ruleset.get_record(passport, destination)
        verified = last_verified(ruleset, lifecycle, passport, destination)
        decision = classify_pair(record, verified, now,
                                 config.fresh_days, config.critical_days)
        if decision is None:
            continue
        category, score, reason, age = decision
        is_priority = passport in priority_set
        item = WorkItem(
            passport=passport,
            destination=destination,
            category=category,
            priority=score,
            reason=reason,
            age_days=age,
            priority_passport=is_priority,
        )
        key = (CATEGORY_ORDER[category], 0 if is_priority else 1, -(age or 0.0), ordinal)
        keyed.append((key, item))
    keyed.sort(key=lambda kv: kv[0])
    return [item for _, item in keyed]


def plan_rotation(lifecycle: LifecycleState, config: RefreshConfig) -> list[WorkItem]:
    """Full rotation starting at the cursor, wrapping modulo the list length."""
    pairs = candidate_pairs(config)
    if not pairs:
        return []
    priority_set = set(config.priority_passports)
    start = lifecycle.cursor % len(pairs)
    items = []
    for offset in range(len(pairs)):
        index = (start + offset) % len(pairs)
        passport, destination = pairs[index]
        items.append(WorkItem(
            passport=passport,
            destination=destination,
            category=ROTATION,
            priority=float(offset),
            reason=f"rotation #{index}",
            priority_passport=passport in priority_set,
        ))
    return items


def plan_queue(ruleset: Ruleset, lifecycle: LifecycleState,
               config: RefreshConfig, now: datetime) -> list[WorkItem]:
    """Dispatch to the configured strategy."""
    if config.strategy == "cursor":
        return plan_rotation(lifecycle, config)
    return plan_refresh(ruleset, lifecycle, config, now)


def queue_status(queue: list[WorkItem], total_pairs: int) -> dict[str, int]:
    """Counts used for the pre-run database status report."""
    counts = Counter(item.category for item in queue)
    status = {
        "total_pairs": total_pairs,
        "needs_update": len(queue),
        "up_to_date": max(0, total_pairs - len(queue)),
    }
    for category in (MISSING, UNVERIFIED, CRITICAL, STALE, ROTATION):
        if counts.get(category):
            status[category] = counts[category]
    return status
