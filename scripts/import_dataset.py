"""
Seed the visa ruleset from the passport-index open dataset.

Reads the tidy CSV (``Passport,Destination,Requirement``) published at
https://github.com/ilyankou/passport-index-dataset and writes every pair
that does not already have a good record. Existing API-verified records are
never replaced, so the import is safe to repeat after a dataset update.

Usage:
    python scripts/import_dataset.py data/passport-index-tidy.csv
    python scripts/import_dataset.py data/passport-index-tidy.csv --data-dir data
    python scripts/import_dataset.py data/passport-index-tidy.csv --dry-run
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pipeline.seed_import import import_dataset  # noqa: E402
from pipeline.store import RulesetStore  # noqa: E402
from utils.config import RefreshConfig  # noqa: E402

_logger = logging.getLogger("import_dataset")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import the passport-index dataset into visa-rules.json",
    )
    parser.add_argument("csv", type=Path, help="Path to the tidy passport-index CSV")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory holding visa-rules.json (default: $VISA_DATA_DIR or data)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be imported without writing",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the import script.

    Returns:
        0 on success, 1 on error.
    """
    args = _build_parser().parse_args(argv)
    logging.basicConfig(format="%(asctime)s %(levelname)s %(message)s", level=logging.INFO)

    config = RefreshConfig()
    if args.data_dir is not None:
        config.data_dir = args.data_dir
    store = RulesetStore(config.rules_path, config.version_path)

    try:
        report = import_dataset(args.csv, store, dry_run=args.dry_run)
    except FileNotFoundError as exc:
        _logger.error("%s", exc)
        return 1
    except ValueError as exc:
        _logger.error("Cannot read dataset: %s", exc)
        return 1

    print(report.summary())
    if args.dry_run:
        _logger.info("Dry run: nothing written")
    elif report.imported:
        _logger.info("Done. Ruleset saved to: %s", store.rules_path)
    else:
        _logger.info("Nothing new to import")
    return 0


if __name__ == "__main__":
    sys.exit(main())
