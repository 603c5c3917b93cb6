from __future__ import annotations

import logging

from hashmark.config import PipelineConfig
from hashmark.pipeline.artifacts import ArtifactStore
from hashmark.pipeline.orchestrator import State, build_context, run_pipeline
from hashmark.utils.env import getenv_bool, load_env
from hashmark.utils.logging import configure_logging
from hashmark.validation.checks import run_all_checks


logger = logging.getLogger(__name__)


def main() -> int:
    load_env()
    configure_logging()

    config = PipelineConfig.from_env()
    validate_after = getenv_bool("VALIDATE_AFTER_BUILD", default=True)

    logger.info(
        "team=%s (%d) season=%d providers=%s strict=%s dry_run=%s",
        config.team,
        config.team_id,
        config.season,
        ",".join(config.providers),
        config.strict_season,
        config.dry_run,
    )

    # 1) Roster + spotlight build with provider fallback
    ctx = build_context(config)
    outcome = run_pipeline(ctx)
    if outcome.state is State.FAILED:
        logger.error("Build failed: %s (published files left untouched)", outcome.reason)
        return 1
    if outcome.meta is None:
        logger.info("Done. %s", outcome.reason)
        return 0

    # 2) Independent validation pass over what is on disk
    if validate_after and not config.dry_run:
        store: ArtifactStore = ctx.store
        errors = run_all_checks(store, config)
        if errors:
            logger.error("Validation failed (%d issues):", len(errors))
            for e in errors[:50]:
                logger.error(" - %s", e)
            if len(errors) > 50:
                logger.error(" ... and %d more", len(errors) - 50)
            return 1

    logger.info("Done. state=%s mode=%s buckets=%s", outcome.state.value, outcome.meta.mode, outcome.meta.buckets)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
