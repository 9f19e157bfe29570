"""
Refresh run executor.

Drives one refresh run through its states::

    INIT -> PLANNING -> RUNNING -> {STOPPED_BUDGET, STOPPED_RATE_LIMIT,
                                    STOPPED_QUOTA, COMPLETE}
         -> CHECKPOINTED -> DONE

The executor loads the ruleset and lifecycle state, asks the planner for a
queue, takes the budget-bounded prefix, and looks each pair up one at a time
with a minimum delay between calls. Only a recognised (non-``unknown``)
answer is written; every other outcome leaves the stored record untouched
and does not advance the pair's lifecycle timestamp. A rate-limit or quota
signal abandons the current pair and ends the loop.

State is persisted every ``checkpoint_interval`` resolved pairs and once
more at the end of every run, whatever the stop reason. The ruleset is
always written before the lifecycle document, so after a crash between the
two writes a lifecycle timestamp never exists without its record.

Usage::

    executor = RunExecutor(config, lookup=VisaApiClient(config))
    report = executor.run()
    print(report.console_summary())

``lookup`` is any object with ``check(passport, destination) -> LookupResult``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from pipeline.logging import UNKNOWN_RESULT, RunReport
from pipeline.models import LookupResult, RunState, WorkItem
from pipeline.normalizer import normalize_lookup
from pipeline.planner import candidate_pairs, plan_queue
from pipeline.store import LifecycleState, LifecycleStore, Ruleset, RulesetStore
from utils.common import format_duration, format_timestamp, period_token, utc_now
from utils.config import RefreshConfig
from utils.http import RequestThrottle
from utils.progress import ProgressTracker, SilentProgressTracker

logger = logging.getLogger(__name__)


@dataclass
class RunPlan:
    """Everything decided before the first lookup of a run."""

    ruleset: Ruleset
    lifecycle: LifecycleState
    queue: list[WorkItem]
    budget: int
    quota_bound: bool = False
    total_pairs: int = 0
    new_period: bool = False
    reconciled: int = 0
    notes: list[str] = field(default_factory=list)

    @property
    def batch(self) -> list[WorkItem]:
        """The budget-bounded prefix of the queue."""
        return self.queue[:self.budget]


class RunExecutor:
    """Runs one refresh: plan, look up, apply, checkpoint."""

    def __init__(
        self,
        config: RefreshConfig,
        lookup: Any,
        ruleset_store: Optional[RulesetStore] = None,
        lifecycle_store: Optional[LifecycleStore] = None,
        progress_factory: Callable[[int], ProgressTracker] = SilentProgressTracker,
        checkpoint_hook: Optional[Callable[[RunReport], None]] = None,
        now: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.lookup = lookup
        self.ruleset_store = ruleset_store or RulesetStore(
            config.rules_path, config.version_path, default_source=config.source_label
        )
        self.lifecycle_store = lifecycle_store or LifecycleStore(config.lifecycle_path)
        self.progress_factory = progress_factory
        self.checkpoint_hook = checkpoint_hook
        self._now = now
        self._monotonic = monotonic
        self.throttle = RequestThrottle(config.request_delay, clock=monotonic, sleep=sleep)

        self.state = RunState.INIT
        self.report = RunReport(requests_per_run=int(config.requests_per_run))
        self._ruleset_dirty = False

    def _transition(self, state: str) -> None:
        """Move the machine; the report keeps the run-end condition."""
        logger.debug("State %s -> %s", self.state, state)
        self.state = state
        if state in RunState.TERMINAL:
            self.report.state = state

    # ── INIT + PLANNING ───────────────────────────────────────────────────

    def prepare(self) -> RunPlan:
        """Load state and plan the run without issuing any lookup.

        Rolls the budget period and reconciles lifecycle timestamps with the
        ruleset in memory; nothing is written until ``run``.
        """
        self._transition(RunState.INIT)
        ruleset = self.ruleset_store.load()
        lifecycle = self.lifecycle_store.load()
        now = self._now()

        new_period = lifecycle.roll_period(period_token(now))
        if new_period:
            logger.info("New budget period %s: request counter reset",
                        lifecycle.period)
        reconciled = lifecycle.reconcile(ruleset)
        if reconciled:
            logger.info("Reconciled %d lifecycle entries with the ruleset", reconciled)

        self._transition(RunState.PLANNING)
        queue = plan_queue(ruleset, lifecycle, self.config, now)

        budget = int(self.config.requests_per_run)
        quota_bound = False
        notes = []
        if self.config.monthly_quota is not None:
            quota_left = max(0, int(self.config.monthly_quota) - lifecycle.requests_this_period)
            notes.append(f"{quota_left} of {self.config.monthly_quota} requests left "
                         f"this period")
            if quota_left < budget:
                budget = quota_left
                quota_bound = True

        plan = RunPlan(
            ruleset=ruleset,
            lifecycle=lifecycle,
            queue=queue,
            budget=budget,
            quota_bound=quota_bound,
            total_pairs=len(candidate_pairs(self.config)),
            new_period=new_period,
            reconciled=reconciled,
            notes=notes,
        )
        self.report.queue_size = len(queue)
        self.report.budget = budget
        logger.info("Planned %d pairs (budget %d%s)", len(queue), budget,
                    ", quota-bound" if quota_bound else "")
        return plan

    # ── RUNNING ───────────────────────────────────────────────────────────

    def run(self, plan: Optional[RunPlan] = None) -> RunReport:
        """Execute a full run and return its report.

        Args:
            plan: Result of an earlier ``prepare()`` call on this executor,
                  e.g. after printing the database status; planned now if
                  omitted.
        """
        started = self._monotonic()
        if plan is None:
            plan = self.prepare()
        try:
            if not plan.queue:
                logger.info("Nothing to refresh")
                self._transition(RunState.COMPLETE)
            elif plan.budget <= 0:
                logger.warning("Request quota for period %s is used up", plan.lifecycle.period)
                self.report.stop_reason = "period quota used up"
                self._transition(RunState.STOPPED_QUOTA)
            else:
                self._drain(plan)
        except KeyboardInterrupt:
            logger.warning("Interrupted; saving progress before exiting")
            self._checkpoint(plan)
            raise
        self._checkpoint(plan)
        self._transition(RunState.CHECKPOINTED)
        self.report.elapsed_seconds = self._monotonic() - started
        self._transition(RunState.DONE)
        return self.report

    def _drain(self, plan: RunPlan) -> None:
        self._transition(RunState.RUNNING)
        batch = plan.batch
        progress = self.progress_factory(len(batch))
        rotating = self.config.strategy == "cursor"
        interval = int(self.config.checkpoint_interval)
        resolved = 0

        for item in batch:
            self.throttle.wait()
            result = self._lookup(item)
            self.report.requests += 1
            plan.lifecycle.requests_this_period += 1

            if result.is_stop_signal:
                state = (RunState.STOPPED_QUOTA
                         if result.status == LookupResult.QUOTA_EXCEEDED
                         else RunState.STOPPED_RATE_LIMIT)
                logger.warning("%s: %s; stopping run", item.label, result.detail or result.status)
                self.report.record_stop(state, result.detail or result.status, item.label)
                progress.finish()
                self._transition(state)
                return

            self._apply(plan, item, result, progress)
            resolved += 1
            if rotating and plan.queue:
                plan.lifecycle.cursor = (plan.lifecycle.cursor + 1) % len(plan.queue)
            if resolved % interval == 0:
                self._checkpoint(plan)

        progress.finish()
        if len(batch) >= len(plan.queue):
            self._transition(RunState.COMPLETE)
        elif plan.quota_bound:
            self.report.stop_reason = "period quota used up"
            self._transition(RunState.STOPPED_QUOTA)
        else:
            self._transition(RunState.STOPPED_BUDGET)

    def _lookup(self, item: WorkItem) -> LookupResult:
        try:
            return self.lookup.check(item.passport, item.destination)
        except Exception as e:
            # per-pair failures never end the run
            logger.warning("%s: lookup raised %s: %s", item.label, type(e).__name__, e)
            return LookupResult.error(f"{type(e).__name__}: {e}")

    def _apply(self, plan: RunPlan, item: WorkItem, result: LookupResult,
               progress: ProgressTracker) -> None:
        """Write a good result; leave the stored record alone otherwise."""
        if result.status != LookupResult.OK:
            detail = result.detail or result.status
            logger.info("%s: lookup failed (%s); keeping existing data", item.label, detail)
            self.report.add_error(detail, item.label)
            progress.mark_failed(item.label, detail)
            return

        timestamp = format_timestamp(self._now())
        record = normalize_lookup(result, checked_at=timestamp,
                                  source=self.config.source_label)
        if not record.is_good:
            detail = f"unrecognised requirement {result.requirement_text!r}"
            logger.info("%s: %s; keeping existing data", item.label, detail)
            self.report.add_skip(UNKNOWN_RESULT, detail, item.label)
            progress.mark_skipped(item.label, detail)
            return

        plan.ruleset.set_record(item.passport, item.destination, record)
        plan.lifecycle.mark_verified(item.passport, item.destination, timestamp)
        self._ruleset_dirty = True
        self.report.updated += 1
        detail = f"{record.requirement}, {format_duration(record.duration)}"
        logger.debug("%s: %s (%s)", item.label, detail, item.category)
        progress.mark_updated(item.label, detail)

    # ── CHECKPOINT ────────────────────────────────────────────────────────

    def _checkpoint(self, plan: RunPlan) -> None:
        """Persist the ruleset (when changed) and then the lifecycle state."""
        if self._ruleset_dirty:
            self.ruleset_store.save(plan.ruleset, now=self._now())
            self._ruleset_dirty = False
        self.lifecycle_store.save(plan.lifecycle)
        self.report.checkpoints += 1
        logger.info("Checkpoint %d: %d updated, %d requests",
                    self.report.checkpoints, self.report.updated, self.report.requests)
        if self.checkpoint_hook is not None:
            self.checkpoint_hook(self.report)
