#!/usr/bin/env python3
"""
Visa Data Refresh Workflow Script

Runs one budget-bounded refresh of the visa requirement ruleset:
1. Load the ruleset and lifecycle state from the data directory
2. Plan which passport/destination pairs to check (missing first, then
   unverified, critically stale and stale)
3. Look pairs up one at a time, with the configured delay between requests
4. Save progress at every checkpoint and once more at the end
5. Write a run summary and append to the run ledger

Usage:
    python refresh_visa_data.py                              # basic tier, 30 requests
    python refresh_visa_data.py --preset pro                 # pro tier subscription
    python refresh_visa_data.py --preset rotation            # rotate through popular pairs
    python refresh_visa_data.py --budget 5 --dry-run         # show the next 5 pairs
    python refresh_visa_data.py --dataset data/passport-index-tidy.csv  # offline
    python refresh_visa_data.py --schedule weekly --at-hour 02:00
    python refresh_visa_data.py --preset pro --save-config pro.json  # snapshot settings
    python refresh_visa_data.py --config pro.json --budget 100

Environment:
    RAPIDAPI_KEY   API key for live lookups (not needed with --dataset or --dry-run)
    VISA_DATA_DIR  Directory holding visa-rules.json (default: data)

Exit codes: 0 done (complete or budget used), 1 unexpected error,
2 configuration error, 3 stopped by rate limit or quota.
"""

import argparse
import logging
import sys
import time
from datetime import datetime, timedelta
from pathlib import Path

from lookup import DatasetLookup, VisaApiClient
from pipeline.executor import RunExecutor, RunPlan
from pipeline.logging import RunLogger, RunReport
from pipeline.planner import queue_status
from pipeline.run_ledger import append_to_ledger
from utils.common import elapsed, format_duration, utc_now
from utils.config import REFRESH_PRESETS, RefreshConfig
from utils.progress import TerminalProgressTracker

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2
EXIT_STOPPED = 3

# Settings never written to logs or the ledger
_SECRET_SETTINGS = {"api_key"}


def public_settings(config: RefreshConfig) -> dict:
    """Config values safe to record in run summaries."""
    settings = {k: v for k, v in config.to_dict().items() if k not in _SECRET_SETTINGS}
    # country lists are long and fixed; record their size only
    for key in ("countries", "priority_passports", "pairs"):
        settings[key] = len(settings.get(key) or [])
    settings["data_dir"] = str(config.data_dir)
    return settings


class RefreshWorkflow:
    """Orchestrates one refresh run of the visa ruleset."""

    def __init__(self, config: RefreshConfig, verbose=False, dry_run=False,
                 dataset=None, logs_dir="logs/refresh", lookup=None,
                 now=utc_now, sleep=time.sleep):
        """Initialize workflow state.

        Args:
            config:    Validated refresh settings.
            verbose:   If True, print every pair and extra detail.
            dry_run:   If True, plan and print the queue without lookups or writes.
            dataset:   Optional passport-index CSV answering lookups offline.
            logs_dir:  Root for per-run log folders and the run ledger.
            lookup:    Lookup collaborator to use instead of building one.
            now/sleep: Clock and sleep, replaceable in tests.
        """
        self.config = config
        self.verbose = verbose
        self.dry_run = dry_run
        self.dataset = Path(dataset) if dataset else None
        self.logs_dir = Path(logs_dir)
        self.lookup = lookup
        self._now = now
        self._sleep = sleep
        self.start_time = None
        self.report = None

    def log(self, msg: str, level="info"):
        """Print a timestamped log message."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        if level == "info":
            print(f"[{timestamp}] {msg}")
        elif level == "warn":
            print(f"[{timestamp}] WARNING: {msg}")
        elif level == "error":
            print(f"[{timestamp}] ERROR: {msg}")
        elif level == "ok":
            print(f"[{timestamp}] OK: {msg}")
        elif level == "detail" and self.verbose:
            print(f"  -> {msg}")

    def _make_lookup(self):
        """Build the lookup collaborator.

        Raises:
            ValueError: For a live run without an API key.
        """
        if self.lookup is not None:
            return self.lookup
        if self.dataset is not None:
            return DatasetLookup(self.dataset)
        if not self.config.api_key:
            raise ValueError("RAPIDAPI_KEY is not set; export it or use --dataset")
        return VisaApiClient(self.config, sleep=self._sleep)

    def _progress(self, total: int) -> TerminalProgressTracker:
        every = 1 if self.verbose or total <= 50 else max(1, total // 20)
        return TerminalProgressTracker(total, show_every_n=every)

    def _on_checkpoint(self, report: RunReport) -> None:
        self.log(f"Checkpoint saved ({report.updated} updated, "
                 f"{report.requests} requests)", "detail")

    # ── status output ─────────────────────────────────────────────────────

    def show_status(self, plan: RunPlan) -> None:
        """Print the database status before the run starts."""
        status = queue_status(plan.queue, plan.total_pairs)
        stats = plan.ruleset.stats()
        self.log("DATABASE STATUS")
        self.log(f"  Records stored:  {stats['total']:,} across {stats['passports']} passports")
        self.log(f"  Pairs in scope:  {status['total_pairs']:,}")
        self.log(f"  Up to date:      {status['up_to_date']:,}")
        self.log(f"  Needing update:  {status['needs_update']:,}")
        for category in ("missing", "unverified", "critical", "stale", "rotation"):
            if category in status:
                self.log(f"    {category:<12} {status[category]:,}")
        for note in plan.notes:
            self.log(f"  {note}")
        if plan.new_period:
            self.log(f"  New period {plan.lifecycle.period}: counters reset", "detail")
        if plan.reconciled:
            self.log(f"  {plan.reconciled} lifecycle entries reconciled", "detail")
        self.log("")

    def show_plan(self, plan: RunPlan) -> None:
        """Print the budget-bounded queue (dry run)."""
        batch = plan.batch
        self.log(f"Would check {len(batch)} of {len(plan.queue)} queued pairs:")
        for item in batch:
            record = plan.ruleset.get_record(item.passport, item.destination)
            current = (f"{record.requirement}, {format_duration(record.duration)}"
                       if record else "no record")
            print(f"  {item.label:<8} {item.category:<10} {item.reason:<22} [{current}]")

    # ── run ───────────────────────────────────────────────────────────────

    def run(self) -> int:
        """Execute the refresh workflow and return the process exit code."""
        self.start_time = time.time()

        self.log("=" * 60)
        self.log("VISA DATA REFRESH")
        self.log("=" * 60)
        self.log(f"Strategy: {self.config.strategy} ({self.config.scope})")
        self.log(f"Budget: {self.config.requests_per_run} requests, "
                 f"{self.config.request_delay}s apart")
        self.log(f"Data: {self.config.data_dir}")
        self.log(f"Lookup: {self.dataset or self.config.api_url}")
        self.log(f"Dry Run: {self.dry_run}")
        self.log("")

        if self.dry_run:
            executor = RunExecutor(self.config, lookup=None, now=self._now, sleep=self._sleep)
            plan = executor.prepare()
            self.show_status(plan)
            self.show_plan(plan)
            return EXIT_OK

        try:
            lookup = self._make_lookup()
        except (ValueError, OSError) as e:
            self.log(str(e), "error")
            return EXIT_CONFIG

        rl = RunLogger(self.logs_dir)
        rl.args_dict = public_settings(self.config)
        rl.start()
        executor = RunExecutor(
            self.config,
            lookup=lookup,
            progress_factory=self._progress,
            checkpoint_hook=self._on_checkpoint,
            now=self._now,
            sleep=self._sleep,
        )
        exit_code = EXIT_ERROR
        try:
            plan = executor.prepare()
            self.show_status(plan)
            self.report = executor.run(plan)
            exit_code = EXIT_STOPPED if self.report.stopped else EXIT_OK
        except Exception as e:
            logging.getLogger(__name__).exception("Refresh failed")
            self.log(f"Refresh failed: {e}", "error")
            self.report = executor.report
            self.report.detail = f"{type(e).__name__}: {e}"
        finally:
            rl.finish(executor.report)
            rl.write_summary()
            append_to_ledger(rl, exit_code)
            close = getattr(lookup, "close", None)
            if close is not None:
                close()

        self.log("=" * 60)
        self.log("REFRESH SUMMARY")
        self.log("=" * 60)
        self.log(f"Result: {self.report.state}")
        self.log(self.report.console_summary())
        if self.report.stopped:
            self.log(f"Stopped early: {self.report.stop_reason}", "warn")
        self.log(f"Total time: {elapsed(self.start_time)}")
        self.log(f"Log: {rl.log_path}", "detail")
        return exit_code


# ── Periodic scheduler ───────────────────────────────────────────────────────

_SCHEDULE_INTERVALS = {
    "daily": 86400,
    "weekly": 604800,
    "monthly": 2592000,  # 30 days
}


def _next_run_time(at_hour: str | None) -> float:
    """Compute the next run time as a Unix timestamp.

    If at_hour is "HH:MM", schedules for that time today (or tomorrow if past).
    Otherwise returns now.
    """
    if not at_hour:
        return time.time()
    try:
        hh, mm = at_hour.split(":")
        now = datetime.now()
        run_today = now.replace(hour=int(hh), minute=int(mm), second=0, microsecond=0)
        if run_today <= now:
            run_today += timedelta(days=1)
        return run_today.timestamp()
    except ValueError:
        print(f"WARNING: Invalid --at-hour value '{at_hour}'; running immediately.")
        return time.time()


def run_scheduled(args, make_workflow) -> None:
    """Run the refresh workflow on a schedule.

    Uses a simple sleep loop rather than sched to avoid drift on long intervals.
    """
    interval = _SCHEDULE_INTERVALS[args.schedule]
    next_run = _next_run_time(args.at_hour)

    print(f"Scheduled refresh every {args.schedule}")
    print(f"  Interval: {interval}s")
    print(f"  Next run: {datetime.fromtimestamp(next_run).isoformat()}")
    print("  Press Ctrl+C to stop.")

    while True:
        wait = max(0, next_run - time.time())
        if wait > 0:
            print(f"  Sleeping {wait:.0f}s until {datetime.fromtimestamp(next_run).isoformat()}...")
            time.sleep(wait)

        print(f"\n[{datetime.now().isoformat()}] Starting scheduled run")
        make_workflow().run()

        next_run = time.time() + interval
        print(f"  Next run scheduled for {datetime.fromtimestamp(next_run).isoformat()}")


def build_config(args) -> RefreshConfig:
    """Preset (or saved settings file) plus command-line overrides, validated.

    Raises:
        KeyError: Unknown preset.
        ValueError: Inconsistent settings, or a settings file that is not JSON.
        OSError: Settings file cannot be read.
    """
    overrides = dict(
        requests_per_run=args.budget,
        request_delay=args.delay,
        data_dir=args.data_dir,
        strategy=args.strategy,
        scope=args.scope,
        fresh_days=args.fresh_days,
        critical_days=args.critical_days,
        checkpoint_interval=args.checkpoint_interval,
    )
    if args.config:
        config = RefreshConfig.load_json(args.config).apply_overrides(**overrides)
    else:
        config = RefreshConfig.from_preset(args.preset, **overrides)
    if args.no_quota:
        config.monthly_quota = None
    return config.validate()


def main():
    """Parse CLI arguments and run the visa data refresh."""
    parser = argparse.ArgumentParser(
        description="Refresh the visa requirement ruleset within an API request budget",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python refresh_visa_data.py --preset basic
  python refresh_visa_data.py --preset pro --dry-run
  python refresh_visa_data.py --dataset data/passport-index-tidy.csv --budget 500 --delay 0
  python refresh_visa_data.py --schedule weekly --at-hour 02:00
        """,
    )
    parser.add_argument(
        "--preset",
        choices=sorted(REFRESH_PRESETS),
        default="basic",
        help="API subscription tier settings (default: basic)",
    )
    parser.add_argument("--config", type=Path, default=None, metavar="FILE",
                        help="Load settings from a JSON file instead of a preset")
    parser.add_argument("--save-config", type=Path, default=None, metavar="FILE",
                        help="Write the effective settings (without the API key) "
                             "to FILE and exit")
    parser.add_argument("--budget", type=int, default=None,
                        help="Maximum lookups this run (overrides the preset)")
    parser.add_argument("--delay", type=float, default=None,
                        help="Seconds between lookups (overrides the preset)")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Directory holding visa-rules.json (default: $VISA_DATA_DIR or data)")
    parser.add_argument("--strategy", choices=["lifecycle", "cursor"], default=None,
                        help="Staleness-driven queue or fixed rotation")
    parser.add_argument("--scope", choices=["priority", "all", "pairs"], default=None,
                        help="Pairs of interest: priority passports, all x all, or curated pairs")
    parser.add_argument("--fresh-days", type=int, default=None,
                        help="Records verified more recently are left alone")
    parser.add_argument("--critical-days", type=int, default=None,
                        help="Records older than this are refreshed before stale ones")
    parser.add_argument("--checkpoint-interval", type=int, default=None,
                        help="Save progress every N pairs")
    parser.add_argument("--no-quota", action="store_true",
                        help="Ignore the preset's monthly request quota")
    parser.add_argument("--dataset", type=Path, default=None, metavar="CSV",
                        help="Answer lookups from a passport-index CSV instead of the API")
    parser.add_argument("--logs-dir", type=Path, default=Path("logs/refresh"),
                        help="Run logs and ledger location (default: logs/refresh)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the planned queue without looking anything up",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose output with per-pair progress",
    )
    parser.add_argument(
        "--schedule",
        choices=["daily", "weekly", "monthly"],
        default=None,
        help="Run the refresh on a repeating schedule",
    )
    parser.add_argument(
        "--at-hour",
        metavar="HH:MM",
        default=None,
        help="Time of day for scheduled refresh, e.g. 02:00",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        force=True,
    )

    try:
        config = build_config(args)
    except (KeyError, ValueError, OSError) as e:
        print(f"ERROR: {e}")
        sys.exit(EXIT_CONFIG)

    if args.save_config:
        config.save_json(args.save_config)
        print(f"Settings written to {args.save_config}")
        sys.exit(EXIT_OK)

    def make_workflow():
        return RefreshWorkflow(
            config,
            verbose=args.verbose,
            dry_run=args.dry_run,
            dataset=args.dataset,
            logs_dir=args.logs_dir,
        )

    if args.schedule:
        run_scheduled(args, make_workflow)
    else:
        sys.exit(make_workflow().run())


if __name__ == "__main__":
    main()
