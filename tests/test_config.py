"""Tests for environment-derived settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from certoperator import global_config as g
from certoperator.config import load_settings
from certoperator.errors import ConfigurationError, GitRepoPathNotSpecifiedError, is_fatal


@pytest.mark.unit
def test_missing_git_repo_path_is_fatal() -> None:
    with pytest.raises(GitRepoPathNotSpecifiedError) as excinfo:
        load_settings({})
    assert is_fatal(excinfo.value)
    assert "GIT_REPO_PATH" in str(excinfo.value)


@pytest.mark.unit
def test_defaults() -> None:
    settings = load_settings({"GIT_REPO_PATH": "/var/git"})
    assert settings.git_repo_path == Path("/var/git")
    assert settings.repo_root == Path("/var/git") / g.REPO_DIR_NAME
    assert settings.repo_url == g.OPERATOR_PIPELINES_REPO
    assert settings.pyxis_host == g.DEFAULT_PYXIS_HOST
    assert settings.reconcile_timeout_s == 300.0
    assert settings.resync_interval_s == 600.0
    assert settings.watch_namespace is None


@pytest.mark.unit
def test_overrides() -> None:
    settings = load_settings(
        {
            "GIT_REPO_PATH": "/data",
            "OPERATOR_PIPELINES_REPO": "https://git.example/pipelines.git",
            "PYXIS_HOST": "pyxis.example",
            "RECONCILE_TIMEOUT_SECONDS": "30",
            "RETRY_BACKOFF_SECONDS": "1.5",
            "WATCH_NAMESPACE": "ns1",
        }
    )
    assert settings.repo_url == "https://git.example/pipelines.git"
    assert settings.pyxis_host == "pyxis.example"
    assert settings.reconcile_timeout_s == 30.0
    assert settings.retry_backoff_s == 1.5
    assert settings.watch_namespace == "ns1"


@pytest.mark.unit
@pytest.mark.parametrize("raw", ["abc", "0", "-5"])
def test_invalid_numbers_rejected(raw: str) -> None:
    with pytest.raises(ConfigurationError, match="RESYNC_INTERVAL_SECONDS"):
        load_settings({"GIT_REPO_PATH": "/data", "RESYNC_INTERVAL_SECONDS": raw})
