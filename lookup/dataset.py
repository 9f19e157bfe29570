"""
Offline lookup answered from the passport-index dataset.

Lets the refresh pipeline run without API access (or in tests and dry
rehearsals): each ``check`` returns the dataset's raw requirement text for
the pair, which the executor normalises like any live answer. A pair absent
from the dataset is a recoverable error.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pipeline.models import LookupResult
from pipeline.seed_import import read_dataset

logger = logging.getLogger(__name__)


class DatasetLookup:
    """Lookup collaborator backed by a tidy CSV loaded into memory."""

    def __init__(self, csv_path: Path):
        self.csv_path = Path(csv_path)
        self._rows: dict[tuple[str, str], str] = {}
        for passport, destination, text in read_dataset(self.csv_path):
            self._rows[(passport, destination)] = text
        logger.info("Loaded %d dataset rows from %s", len(self._rows), self.csv_path)

    def __len__(self) -> int:
        return len(self._rows)

    def check(self, passport: str, destination: str) -> LookupResult:
        text = self._rows.get((passport.upper(), destination.upper()))
        if text is None:
            return LookupResult.error("pair not in dataset")
        return LookupResult.ok(requirement_text=text, raw={"source": str(self.csv_path)})
