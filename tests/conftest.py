import pytest

from imagematrix.config import MatrixConfig, clear_config_cache


def build_config(**overrides) -> MatrixConfig:
    """Two-version matrix with Ubuntu (default OS) and CentOS (minimum 5.2.5)."""
    data = {
        "runtime_versions": ["5.1.5", "5.5.2"],
        "aliases": {"5.5.2": ["5.5", "5", "latest"], "5.1.5": ["5.1"]},
        "kinds": [{"kind": "ci", "repository": "kitura/swift-ci"}],
        "families": [
            {
                "family": "ubuntu",
                "provides_default": True,
                "versions": [{"version": "18.04", "codename": "bionic"}],
            },
            {
                "family": "centos",
                "minimum_runtime_version": "5.2.5",
                "versions": [{"version": "8"}],
            },
        ],
    }
    data.update(overrides)
    return MatrixConfig.model_validate(data)


@pytest.fixture
def matrix_config():
    return build_config


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    """Every test starts without a cached .image-matrix.yml."""
    monkeypatch.chdir(tmp_path)
    clear_config_cache()
    yield
    clear_config_cache()
