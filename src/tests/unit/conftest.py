"""Shared fixtures for unit tests."""

from pathlib import Path

import pytest

from polis.app.config import HealthConfig, ReconcileConfig, RepairConfig, WorkspaceConfig
from tests.unit.fakes import FakeProvisioner, RecordingReporter, write_bundle


@pytest.fixture
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def assets_dir(tmp_path: Path) -> Path:
    """Assets with a valid bundle, an empty digest manifest and a cloud-init file."""
    assets = tmp_path / "assets"
    assets.mkdir()
    write_bundle(assets)
    (assets / "image-digests.json").write_text("{}")
    (assets / "cloud-init.yaml").write_text("#cloud-config\n")
    return assets


@pytest.fixture
def workspace_config(assets_dir: Path) -> WorkspaceConfig:
    return WorkspaceConfig(assets_dir=assets_dir, release_version="0.4.0")


@pytest.fixture
def reconcile_config() -> ReconcileConfig:
    return ReconcileConfig(pull_timeout=600)


@pytest.fixture
def repair_config() -> RepairConfig:
    return RepairConfig(cert_expiry_window=604800)


@pytest.fixture
def health_config() -> HealthConfig:
    return HealthConfig(max_attempts=3, interval=0.0)
