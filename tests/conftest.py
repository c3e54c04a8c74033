"""
Shared pytest fixtures.
"""

import shutil
import tempfile
from pathlib import Path

import pytest

from .fixtures.plugin_fixtures import FakePackageIndex, RunnerCore


@pytest.fixture
def workspace():
    """Temporary folder holding plugins, compiled output and the dependency cache."""
    temp_dir = Path(tempfile.mkdtemp())
    (temp_dir / "plugins").mkdir()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def plugins_path(workspace):
    return workspace / "plugins"


@pytest.fixture
def package_index():
    return FakePackageIndex()


@pytest.fixture
def runner_core(workspace, package_index):
    """Runner core over the workspace, downloading from the fake package index."""
    return RunnerCore(
        workspace / "plugins",
        workspace / "compiled",
        workspace / "cache",
        transport=package_index.transport(),
        index_url=package_index.base_url
    )
