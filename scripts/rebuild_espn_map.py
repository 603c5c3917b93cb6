"""
Rebuild data/espn_map.json (name and slug -> ESPN id) from the published roster.

Usage:
  python -m scripts.rebuild_espn_map
"""
from __future__ import annotations

import logging

from hashmark.config import PipelineConfig
from hashmark.pipeline.artifacts import ArtifactStore
from hashmark.utils.env import load_env
from hashmark.utils.logging import configure_logging


logger = logging.getLogger(__name__)


def main() -> int:
    load_env()
    configure_logging()
    config = PipelineConfig.from_env()
    store = ArtifactStore(config.data_dir, dry_run=config.dry_run)

    roster = store.load_cached_roster()
    if roster is None or not roster.players:
        logger.error("Unable to rebuild map: roster missing at %s", store.roster_path)
        return 1

    entries = store.write_espn_map(roster.players)
    logger.info("Rebuilt %s with %d entries", store.espn_map_path, entries)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
