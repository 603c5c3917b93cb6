import pytest

from hashmark.config import PipelineConfig
from hashmark.pipeline.artifacts import ArtifactStore

from tests.helpers import SEASON, TEAM_ID


@pytest.fixture()
def config(tmp_path) -> PipelineConfig:
    return PipelineConfig(
        team="Kentucky",
        team_id=TEAM_ID,
        season=SEASON,
        strict_season=True,
        data_dir=tmp_path / "data",
        fixtures_dir=tmp_path / "fixtures",
        status_dir=tmp_path / "artifacts" / "status",
        providers=("cfbd", "espn", "cfbfastr"),
        backoff_seconds=(0.0,),
    )


@pytest.fixture()
def store(config) -> ArtifactStore:
    return ArtifactStore(config.data_dir, fixtures_dir=config.fixtures_dir, status_dir=config.status_dir)
