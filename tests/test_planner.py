"""
Tests for refresh queue planning — pipeline/planner.py

Builds small synthetic rulesets and lifecycle states around a fixed clock
and checks categorisation, ordering, determinism and self-pair exclusion.
"""
import sys
from datetime import timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pipeline.models import CRITICAL, MISSING, ROTATION, STALE, UNVERIFIED, RequirementRecord
from pipeline.planner import (
    candidate_pairs,
    classify_pair,
    plan_queue,
    plan_refresh,
    plan_rotation,
    queue_status,
)
from pipeline.store import LifecycleState, Ruleset
from utils.common import format_timestamp


def _good(requirement="visa-free", duration=90, last_checked=None):
    return RequirementRecord(requirement=requirement, duration=duration,
                             last_checked=last_checked)


def _ago(now, days):
    return format_timestamp(now - timedelta(days=days))


# ── candidate_pairs ───────────────────────────────────────────────────────────

class TestCandidatePairs:
    def test_priority_scope(self, config):
        pairs = candidate_pairs(config)
        assert pairs == [("GB", "FR"), ("GB", "DE"), ("GB", "IT")]

    def test_all_scope_puts_priority_passports_first(self, config):
        config.scope = "all"
        config.priority_passports = ["IT"]
        pairs = candidate_pairs(config)
        assert pairs[:3] == [("IT", "GB"), ("IT", "FR"), ("IT", "DE")]
        assert len(pairs) == 4 * 3

    def test_pairs_scope(self, config):
        config.scope = "pairs"
        assert candidate_pairs(config) == [("GB", "FR"), ("US", "GB"), ("DE", "IT")]

    def test_excludes_self_pairs_invalid_and_duplicates(self, config):
        config.scope = "pairs"
        config.pairs = [("GB", "GB"), ("GB", "FR"), ("gb", "FR"), ("GB", "FR"), ("GBR", "FR")]
        assert candidate_pairs(config) == [("GB", "FR")]

    @pytest.mark.parametrize("scope", ["priority", "all", "pairs"])
    def test_never_self_pairs(self, config, scope):
        config.scope = scope
        config.priority_passports = ["GB", "FR", "DE", "IT"]
        config.pairs = [(c, c) for c in config.countries] + [("GB", "FR")]
        assert all(p != d for p, d in candidate_pairs(config))


# ── classify_pair ─────────────────────────────────────────────────────────────

class TestClassifyPair:
    def test_no_record_is_missing(self, now):
        category, score, reason, age = classify_pair(None, None, now, 30, 90)
        assert (category, score, age) == (MISSING, 0.0, None)
        assert reason == "no record"

    def test_unknown_record_is_missing(self, now):
        record = RequirementRecord(requirement="unknown")
        assert classify_pair(record, now, now, 30, 90)[0] == MISSING

    def test_never_verified(self, now):
        assert classify_pair(_good(), None, now, 30, 90)[:2] == (UNVERIFIED, 1.0)

    def test_fresh_is_excluded(self, now):
        assert classify_pair(_good(), now - timedelta(days=29), now, 30, 90) is None

    def test_stale_boundaries(self, now):
        assert classify_pair(_good(), now - timedelta(days=30), now, 30, 90)[0] == STALE
        assert classify_pair(_good(), now - timedelta(days=89), now, 30, 90)[0] == STALE

    def test_critical_at_threshold(self, now):
        category, score, _, age = classify_pair(_good(), now - timedelta(days=90), now, 30, 90)
        assert category == CRITICAL
        assert age == pytest.approx(90)
        assert score == pytest.approx(92)


# ── plan_refresh ──────────────────────────────────────────────────────────────

class TestPlanRefresh:
    def _mixed_state(self, config, now):
        """GB->FR missing, GB->DE critical, GB->IT stale, FR->* fresh/unverified."""
        config.priority_passports = ["GB", "FR"]
        ruleset = Ruleset()
        lifecycle = LifecycleState()
        ruleset.set_record("GB", "DE", _good())
        lifecycle.mark_verified("GB", "DE", _ago(now, 120))
        ruleset.set_record("GB", "IT", _good())
        lifecycle.mark_verified("GB", "IT", _ago(now, 45))
        ruleset.set_record("FR", "GB", _good())
        lifecycle.mark_verified("FR", "GB", _ago(now, 3))
        ruleset.set_record("FR", "DE", _good())             # never verified
        ruleset.set_record("FR", "IT", _good())
        lifecycle.mark_verified("FR", "IT", _ago(now, 200))
        return ruleset, lifecycle

    def test_categories_and_order(self, config, now):
        ruleset, lifecycle = self._mixed_state(config, now)
        queue = plan_refresh(ruleset, lifecycle, config, now)
        assert [(i.label, i.category) for i in queue] == [
            ("GB->FR", MISSING),
            ("FR->DE", UNVERIFIED),
            ("FR->IT", CRITICAL),       # oldest first within the block
            ("GB->DE", CRITICAL),
            ("GB->IT", STALE),
        ]

    def test_fresh_pairs_excluded(self, config, now):
        ruleset, lifecycle = self._mixed_state(config, now)
        labels = {i.label for i in plan_refresh(ruleset, lifecycle, config, now)}
        assert "FR->GB" not in labels

    def test_priority_passports_sort_first_within_category(self, config, now):
        config.scope = "all"
        config.priority_passports = ["IT"]
        ruleset = Ruleset()
        lifecycle = LifecycleState()
        for passport, dest, days in [("GB", "FR", 300), ("IT", "FR", 100), ("DE", "FR", 95)]:
            ruleset.set_record(passport, dest, _good())
            lifecycle.mark_verified(passport, dest, _ago(now, days))
        queue = [i for i in plan_refresh(ruleset, lifecycle, config, now) if i.category == CRITICAL]
        assert [i.label for i in queue] == ["IT->FR", "GB->FR", "DE->FR"]
        assert queue[0].priority_passport is True

    def test_record_last_checked_counts_as_verification(self, config, now):
        ruleset = Ruleset()
        ruleset.set_record("GB", "FR", _good(last_checked=_ago(now, 2)))
        queue = plan_refresh(ruleset, LifecycleState(), config, now)
        assert "GB->FR" not in {i.label for i in queue}

    def test_newest_of_record_and_lifecycle_wins(self, config, now):
        ruleset = Ruleset()
        lifecycle = LifecycleState()
        ruleset.set_record("GB", "FR", _good(last_checked=_ago(now, 100)))
        lifecycle.mark_verified("GB", "FR", _ago(now, 40))
        item = next(i for i in plan_refresh(ruleset, lifecycle, config, now) if i.label == "GB->FR")
        assert item.category == STALE

    def test_deterministic(self, config, now):
        ruleset, lifecycle = self._mixed_state(config, now)
        first = plan_refresh(ruleset, lifecycle, config, now)
        second = plan_refresh(ruleset, lifecycle, config, now)
        assert first == second

    def test_does_not_mutate_inputs(self, config, now):
        ruleset, lifecycle = self._mixed_state(config, now)
        before = (ruleset.to_dict(), lifecycle.to_dict())
        plan_refresh(ruleset, lifecycle, config, now)
        assert (ruleset.to_dict(), lifecycle.to_dict()) == before

    def test_empty_when_everything_fresh(self, config, now):
        ruleset = Ruleset()
        lifecycle = LifecycleState()
        for dest in ("FR", "DE", "IT"):
            ruleset.set_record("GB", dest, _good())
            lifecycle.mark_verified("GB", dest, _ago(now, 1))
        assert plan_refresh(ruleset, lifecycle, config, now) == []


# ── plan_rotation ─────────────────────────────────────────────────────────────

class TestPlanRotation:
    def test_starts_at_cursor_and_wraps(self, config):
        config.strategy = "cursor"
        config.scope = "pairs"
        lifecycle = LifecycleState(cursor=2)
        queue = plan_rotation(lifecycle, config)
        assert [i.label for i in queue] == ["DE->IT", "GB->FR", "US->GB"]
        assert all(i.category == ROTATION for i in queue)

    def test_cursor_taken_modulo_length(self, config):
        config.scope = "pairs"
        queue = plan_rotation(LifecycleState(cursor=7), config)
        assert queue[0].label == "US->GB"

    def test_plan_queue_dispatches_on_strategy(self, config, now):
        config.strategy = "cursor"
        config.scope = "pairs"
        queue = plan_queue(Ruleset(), LifecycleState(), config, now)
        assert [i.category for i in queue] == [ROTATION] * 3

    def test_empty_pair_list(self, config):
        config.scope = "pairs"
        config.pairs = []
        assert plan_rotation(LifecycleState(cursor=3), config) == []


# ── queue_status ──────────────────────────────────────────────────────────────

class TestQueueStatus:
    def test_counts(self, config, now):
        ruleset = Ruleset()
        ruleset.set_record("GB", "DE", _good())
        queue = plan_refresh(ruleset, LifecycleState(), config, now)
        status = queue_status(queue, total_pairs=3)
        assert status == {
            "total_pairs": 3,
            "needs_update": 3,
            "up_to_date": 0,
            MISSING: 2,
            UNVERIFIED: 1,
        }
