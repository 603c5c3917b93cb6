"""
Validate the published JSON datasets (or the checked-in fixtures).

Usage:
  python -m scripts.validate_datasets
  python -m scripts.validate_datasets --fixture

Environment:
  HASHMARK_SEASON / HASHMARK_TEAM_ID are the values roster_meta.json must match.
  HASHMARK_DATA_DIR points at the published files (default data/).
"""
from __future__ import annotations

import argparse
import logging

from hashmark.config import PipelineConfig
from hashmark.pipeline.artifacts import ArtifactStore
from hashmark.utils.env import load_env
from hashmark.utils.logging import configure_logging
from hashmark.validation.checks import run_all_checks, validate_fixtures


logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate roster and spotlight datasets")
    parser.add_argument("--fixture", action="store_true", help="Check fixtures/roster_{season}.json against fixtures/spotlight_last.json")
    return parser.parse_args()


def main(fixture: bool = False) -> int:
    load_env()
    configure_logging()
    config = PipelineConfig.from_env()
    store = ArtifactStore(config.data_dir, fixtures_dir=config.fixtures_dir, status_dir=config.status_dir)

    if fixture:
        errors = validate_fixtures(store, config.season)
        label = "fixtures"
    else:
        errors = run_all_checks(store, config)
        label = str(config.data_dir)

    if errors:
        logger.error("Validation failed for %s (%d issues):", label, len(errors))
        for e in errors:
            logger.error(" - %s", e)
        return 1

    logger.info("Dataset validation ok (%s)", label)
    return 0


if __name__ == "__main__":
    args = parse_args()
    raise SystemExit(main(fixture=args.fixture))
