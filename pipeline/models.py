"""
Data structures shared by the refresh pipeline.

  - Requirement: canonical entry classifications
  - RequirementRecord: one stored fact for a (passport, destination) pair
  - WorkItem: one queued lookup with its priority category
  - LookupResult: outcome reported by an external lookup collaborator
  - RunState: refresh run states
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


class Requirement:
    """Canonical requirement values as written to the ruleset document."""

    VISA_FREE = "visa-free"
    VISA_ON_ARRIVAL = "visa-on-arrival"
    E_VISA = "e-visa"
    ETA = "eta"
    VISA_REQUIRED = "visa-required"
    UNKNOWN = "unknown"

    ALL = (VISA_FREE, VISA_ON_ARRIVAL, E_VISA, ETA, VISA_REQUIRED, UNKNOWN)

    @classmethod
    def is_known(cls, value: Any) -> bool:
        """True for any recognised value other than ``unknown``."""
        return value in cls.ALL and value != cls.UNKNOWN


@dataclass
class RequirementRecord:
    """Entry classification for one passport/destination pair."""

    requirement: str
    duration: Optional[int] = None
    notes: Optional[str] = None
    last_checked: Optional[str] = None     # ISO-8601; None = never live-checked
    source: Optional[str] = None           # e.g. "passport-index", "rapidapi"

    @property
    def is_good(self) -> bool:
        return Requirement.is_known(self.requirement)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "requirement": self.requirement,
            "duration": self.duration,
            "notes": self.notes,
        }
        if self.last_checked:
            d["lastChecked"] = self.last_checked
        if self.source:
            d["source"] = self.source
        return d

    @classmethod
    def from_dict(cls, data: Any) -> Optional["RequirementRecord"]:
        """Parse a stored record; None when *data* is not a record at all."""
        if not isinstance(data, dict):
            return None
        requirement = data.get("requirement")
        if requirement not in Requirement.ALL:
            requirement = Requirement.UNKNOWN
        duration = data.get("duration")
        if isinstance(duration, bool) or not isinstance(duration, int) or duration < 0:
            duration = None
        notes = data.get("notes")
        return cls(
            requirement=requirement,
            duration=duration,
            notes=notes if isinstance(notes, str) else None,
            last_checked=data.get("lastChecked") or None,
            source=data.get("source") or None,
        )


# Work item categories, in queue order
MISSING = "missing"
UNVERIFIED = "unverified"
CRITICAL = "critical"
STALE = "stale"
ROTATION = "rotation"

CATEGORY_ORDER = {MISSING: 0, UNVERIFIED: 1, CRITICAL: 2, STALE: 3, ROTATION: 4}


@dataclass(frozen=True)
class WorkItem:
    """A (passport, destination) pair queued for a lookup attempt."""

    passport: str
    destination: str
    category: str
    priority: float                        # lower = more urgent
    reason: str = ""
    age_days: Optional[float] = None
    priority_passport: bool = False

    @property
    def pair(self) -> tuple[str, str]:
        return (self.passport, self.destination)

    @property
    def label(self) -> str:
        return f"{self.passport}->{self.destination}"


@dataclass
class LookupResult:
    """What an external lookup returned for one pair.

    ``status`` is one of:
        ok              a response was received; ``requirement_text`` holds
                        the raw classification to normalise
        error           recoverable failure, skip this pair only
        rate_limited    throttled beyond recovery, stop the run
        quota_exceeded  allotment for the period is used up, stop the run
    """

    OK = "ok"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"

    status: str
    requirement_text: Optional[str] = None
    duration: Any = None
    notes: Optional[str] = None
    detail: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_stop_signal(self) -> bool:
        return self.status in (self.RATE_LIMITED, self.QUOTA_EXCEEDED)

    @classmethod
    def ok(cls, requirement_text: Optional[str], duration: Any = None,
           notes: Optional[str] = None, raw: Optional[dict] = None) -> "LookupResult":
        return cls(status=cls.OK, requirement_text=requirement_text,
                   duration=duration, notes=notes, raw=raw or {})

    @classmethod
    def error(cls, detail: str) -> "LookupResult":
        return cls(status=cls.ERROR, detail=detail)

    @classmethod
    def rate_limited(cls, detail: str = "rate limit exhausted") -> "LookupResult":
        return cls(status=cls.RATE_LIMITED, detail=detail)

    @classmethod
    def quota_exceeded(cls, detail: str = "quota exceeded") -> "LookupResult":
        return cls(status=cls.QUOTA_EXCEEDED, detail=detail)


class RunState:
    """States of one refresh run, in the order a run passes through them."""

    INIT = "INIT"
    PLANNING = "PLANNING"
    RUNNING = "RUNNING"
    STOPPED_BUDGET = "STOPPED_BUDGET"
    STOPPED_RATE_LIMIT = "STOPPED_RATE_LIMIT"
    STOPPED_QUOTA = "STOPPED_QUOTA"
    COMPLETE = "COMPLETE"
    CHECKPOINTED = "CHECKPOINTED"
    DONE = "DONE"

    # Run-end conditions reached before the final checkpoint
    TERMINAL = (STOPPED_BUDGET, STOPPED_RATE_LIMIT, STOPPED_QUOTA, COMPLETE)
    # Ended by the remote side rather than by running out of work or budget
    STOP_SIGNALLED = (STOPPED_RATE_LIMIT, STOPPED_QUOTA)
