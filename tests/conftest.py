"""
Pytest fixtures for the visa data refresh tests.

Provides a small synthetic country set, a fixed clock, an in-memory fake
lookup collaborator, and an executor factory wired with no-op sleeps so no
test touches the network or waits on the request delay.
"""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pipeline.executor import RunExecutor  # noqa: E402
from pipeline.models import LookupResult  # noqa: E402
from utils.config import RefreshConfig  # noqa: E402

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeLookup:
    """Lookup collaborator answering from a dict, recording every call.

    ``answers`` maps (passport, destination) to a LookupResult or to a list
    of results returned in turn; unknown pairs get ``default``.
    """

    def __init__(self, answers=None, default=None):
        self.answers = dict(answers or {})
        self.default = default or LookupResult.ok("visa free", duration=90)
        self.calls = []

    def check(self, passport, destination):
        self.calls.append((passport, destination))
        answer = self.answers.get((passport, destination), self.default)
        if isinstance(answer, list):
            return answer.pop(0) if len(answer) > 1 else answer[0]
        return answer


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def config(tmp_path):
    """Four countries, GB as the only priority passport, no delay."""
    cfg = RefreshConfig()
    cfg.countries = ["GB", "FR", "DE", "IT"]
    cfg.priority_passports = ["GB"]
    cfg.pairs = [("GB", "FR"), ("US", "GB"), ("DE", "IT")]
    cfg.scope = "priority"
    cfg.strategy = "lifecycle"
    cfg.requests_per_run = 30
    cfg.request_delay = 0.0
    cfg.monthly_quota = None
    cfg.checkpoint_interval = 10
    cfg.data_dir = tmp_path / "data"
    cfg.api_key = "test-key"
    return cfg


@pytest.fixture
def fake_lookup():
    """Factory for FakeLookup instances."""
    return FakeLookup


@pytest.fixture
def make_executor(now):
    """Factory building a RunExecutor with a fixed clock and no real sleeping."""

    def _make(config, lookup, **kwargs):
        kwargs.setdefault("now", lambda: now)
        kwargs.setdefault("sleep", lambda seconds: None)
        return RunExecutor(config, lookup=lookup, **kwargs)

    return _make


@pytest.fixture
def write_json():
    """Write a JSON document, creating parent directories."""

    def _write(path, data):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def dataset_csv(tmp_path):
    """Tidy passport-index CSV with a mix of value styles."""
    path = tmp_path / "passport-index-tidy.csv"
    path.write_text(
        "Passport,Destination,Requirement\n"
        "GB,FR,90\n"
        "GB,DE,visa free\n"
        "GB,IT,e-visa\n"
        "GB,GB,-1\n"
        "FR,GB,eta\n"
        "FR,DE,visa on arrival\n"
        "FR,IT,no admission\n"
        "DE,GB,visa required\n"
        "DE,FR,covid ban\n"
        "XX1,FR,visa free\n",
        encoding="utf-8",
    )
    return path
