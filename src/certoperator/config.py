"""Operator settings read from the process environment.

Builds on the constants in `certoperator.global_config`. The only required
binding is GIT_REPO_PATH; its absence is a configuration error that is not
retried automatically.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from . import global_config as g
from .errors import ConfigurationError, GitRepoPathNotSpecifiedError


@dataclass(frozen=True)
class OperatorSettings:
    """Runtime settings for one operator process."""

    git_repo_path: Path
    repo_url: str = g.OPERATOR_PIPELINES_REPO
    pyxis_host: str = g.DEFAULT_PYXIS_HOST
    reconcile_timeout_s: float = 300.0
    resync_interval_s: float = 600.0
    retry_backoff_s: float = 5.0
    retry_backoff_max_s: float = 300.0
    watch_namespace: str | None = None

    @property
    def repo_root(self) -> Path:
        """Directory under the shared mount that holds the release working copies."""
        return self.git_repo_path / g.REPO_DIR_NAME


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as err:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from err
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(env: Mapping[str, str] | None = None) -> OperatorSettings:
    """Build OperatorSettings from environment variables.

    Args:
        env: Mapping to read from. Defaults to os.environ.

    Returns:
        Populated OperatorSettings.

    Raises:
        GitRepoPathNotSpecifiedError: If GIT_REPO_PATH is unset or empty.
        ConfigurationError: If a numeric setting cannot be parsed.
    """
    env = os.environ if env is None else env

    git_repo_path = env.get(g.GIT_REPO_PATH_ENV)
    if not git_repo_path:
        raise GitRepoPathNotSpecifiedError()

    return OperatorSettings(
        git_repo_path=Path(git_repo_path),
        repo_url=env.get("OPERATOR_PIPELINES_REPO") or g.OPERATOR_PIPELINES_REPO,
        pyxis_host=env.get("PYXIS_HOST") or g.DEFAULT_PYXIS_HOST,
        reconcile_timeout_s=_float_env(env, "RECONCILE_TIMEOUT_SECONDS", 300.0),
        resync_interval_s=_float_env(env, "RESYNC_INTERVAL_SECONDS", 600.0),
        retry_backoff_s=_float_env(env, "RETRY_BACKOFF_SECONDS", 5.0),
        retry_backoff_max_s=_float_env(env, "RETRY_BACKOFF_MAX_SECONDS", 300.0),
        watch_namespace=env.get("WATCH_NAMESPACE") or None,
    )
