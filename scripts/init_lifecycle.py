"""
Initialise lifecycle tracking from the current ruleset.

Marks every pair that already has a good record as verified now, so the
first refresh runs spend their budget on missing pairs and only come back
to seeded data once it ages past the freshness threshold. Pairs stored as
``unknown`` are left untracked and will be queued as missing.

Usage:
    python scripts/init_lifecycle.py                 # refuses to overwrite
    python scripts/init_lifecycle.py --force         # start tracking afresh
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pipeline.store import LifecycleState, LifecycleStore, RulesetStore  # noqa: E402
from utils.common import format_timestamp, utc_now  # noqa: E402
from utils.config import RefreshConfig  # noqa: E402

_logger = logging.getLogger("init_lifecycle")


def init_lifecycle(ruleset_store: RulesetStore, lifecycle_store: LifecycleStore,
                   force: bool = False,
                   now: Optional[datetime] = None) -> tuple[int, int]:
    """Build and save a lifecycle document seeded from the ruleset.

    Returns:
        (pairs marked verified, unknown pairs left for refresh)

    Raises:
        FileExistsError: If lifecycle state already exists and *force* is false.
    """
    if lifecycle_store.path.exists() and not force:
        raise FileExistsError(
            f"{lifecycle_store.path} already exists; pass --force to replace it"
        )
    ruleset = ruleset_store.load()
    state = LifecycleState()
    good, unknown = state.seed_from_ruleset(ruleset, format_timestamp(now or utc_now()))
    lifecycle_store.save(state)
    return good, unknown


def main(argv: list[str] | None = None) -> int:
    """Entry point for the lifecycle initialisation script.

    Returns:
        0 on success, 1 on error.
    """
    parser = argparse.ArgumentParser(description="Initialise lifecycle.json from visa-rules.json")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory holding visa-rules.json (default: $VISA_DATA_DIR or data)",
    )
    parser.add_argument("--force", action="store_true",
                        help="Replace an existing lifecycle.json")
    args = parser.parse_args(argv)
    logging.basicConfig(format="%(asctime)s %(levelname)s %(message)s", level=logging.INFO)

    config = RefreshConfig()
    if args.data_dir is not None:
        config.data_dir = args.data_dir

    try:
        good, unknown = init_lifecycle(
            RulesetStore(config.rules_path, config.version_path),
            LifecycleStore(config.lifecycle_path),
            force=args.force,
        )
    except FileExistsError as exc:
        _logger.error("%s", exc)
        return 1

    _logger.info("Tracking %d pairs; %d unknown pairs left for refresh", good, unknown)
    _logger.info("Done. Lifecycle saved to: %s", config.lifecycle_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
