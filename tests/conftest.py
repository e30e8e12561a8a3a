from __future__ import annotations

import pytest
from click.testing import CliRunner

from src.datatypes import PipelineConfig
from src.moe_pipeline.store import InMemoryProcessedStore
from tests.helpers.doubles import RecordingDownloader


@pytest.fixture
def runner() -> CliRunner:
    """Provide a Click runner configured for CLI smoke tests."""

    return CliRunner()


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig()


@pytest.fixture
def memory_store() -> InMemoryProcessedStore:
    return InMemoryProcessedStore()


@pytest.fixture
def downloader() -> RecordingDownloader:
    return RecordingDownloader()
