"""
Requirement normalisation.

Maps the free-text vocabulary used by the lookup API and the open dataset
("visa free", "VOA", "e-Visa", "90", ...) onto the canonical values in
``pipeline.models.Requirement``. Categories are tested in a fixed order and
the first match wins, so e.g. "e-visa" is classified before the generic
"visa" catch-all of visa-required. Unrecognised or empty input yields
``unknown``; nothing here raises.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from pipeline.models import LookupResult, Requirement, RequirementRecord

_NUMERIC = re.compile(r"^\d+$")
_LEADING_INT = re.compile(r"^\s*(\d+)")

# (category, exact values, substring patterns), in priority order
_RULES: list[tuple[str, frozenset[str], re.Pattern]] = [
    (
        Requirement.VISA_FREE,
        frozenset({"free", "visa free", "visa-free", "visa exempt"}),
        re.compile(r"visa[\s-]free|visa not required|no visa|freedom of movement"),
    ),
    (
        Requirement.VISA_ON_ARRIVAL,
        frozenset({"voa", "visa on arrival"}),
        re.compile(r"visa on arrival|\bvoa\b|on arrival"),
    ),
    (
        Requirement.E_VISA,
        frozenset({"e-visa", "evisa", "e visa"}),
        re.compile(r"e-visa|\bevisa\b|electronic visa"),
    ),
    (
        Requirement.ETA,
        frozenset({"eta", "esta", "etias"}),
        re.compile(r"\beta\b|electronic travel|travel authori[sz]ation|\besta\b|\betias\b"),
    ),
    (
        Requirement.VISA_REQUIRED,
        frozenset({"visa required", "visa-required", "required"}),
        re.compile(r"required|\bvisa\b"),
    ),
]


def parse_duration(value: Any) -> Optional[int]:
    """Read a permitted stay in days from an int or a string like "90 days".

    Returns None for missing, negative or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        return int(value) if value >= 0 else None
    if isinstance(value, str):
        m = _LEADING_INT.match(value)
        if m:
            return int(m.group(1))
    return None


def normalize_requirement(text: Any) -> tuple[str, Optional[int]]:
    """Classify a raw requirement description.

    Returns:
        (requirement, duration) where duration is only set for bare numeric
        input, which the dataset uses to mean "visa-free for N days".
        A JSON integer counts as numeric input.
    """
    if isinstance(text, int) and not isinstance(text, bool):
        text = str(text)
    if not isinstance(text, str):
        return Requirement.UNKNOWN, None
    normalized = text.lower().strip()
    if not normalized:
        return Requirement.UNKNOWN, None

    if _NUMERIC.match(normalized):
        return Requirement.VISA_FREE, int(normalized)

    for category, exact, pattern in _RULES:
        if normalized in exact or pattern.search(normalized):
            return category, None

    return Requirement.UNKNOWN, None


def normalize_lookup(result: LookupResult, checked_at: Optional[str] = None,
                     source: Optional[str] = None) -> RequirementRecord:
    """Turn a successful lookup into a canonical record.

    The returned record may carry ``unknown``; callers must not store those.
    """
    requirement, numeric_days = normalize_requirement(result.requirement_text)
    duration = parse_duration(result.duration)
    if duration is None:
        duration = numeric_days
    notes = result.notes if isinstance(result.notes, str) and result.notes.strip() else None
    return RequirementRecord(
        requirement=requirement,
        duration=duration,
        notes=notes,
        last_checked=checked_at,
        source=source,
    )
