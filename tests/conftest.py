"""Test configuration and fixtures."""

import os

import pytest

from docker_tz_creator.core.types import PipelineConfig
from tests.helpers import FakeBackend


@pytest.fixture
def temp_root(tmp_path):
    """Directory that must be empty again once a pipeline run finishes."""
    root = tmp_path / "tmp"
    root.mkdir()
    return root


@pytest.fixture
def config(temp_root):
    return PipelineConfig(temp_root=temp_root)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def output_dir(tmp_path):
    out = tmp_path / "new_tars"
    out.mkdir()
    return out


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless a Docker engine is declared available."""
    skip_integration = pytest.mark.skip(reason="Docker engine not available")

    for item in items:
        if (
            "integration" in item.keywords
            and os.getenv("DOCKER_AVAILABLE", "false").lower() != "true"
        ):
            item.add_marker(skip_integration)
