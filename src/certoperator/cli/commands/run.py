"""CLI command that starts the operator."""

from __future__ import annotations

import typer

from ...config import load_settings
from ...operator import run as run_operator
from ..base import get_logger, handle_errors

logger = get_logger(__name__)


def run_command() -> None:
    """Run the operator against the current cluster until interrupted.

    Reads settings from the environment (GIT_REPO_PATH is required), loads
    in-cluster credentials or the local kube config, and starts watching
    OperatorPipeline descriptors.
    """
    with handle_errors("load settings", logger=logger):
        settings = load_settings()
    typer.echo(f"Starting operator (git repo path: {settings.git_repo_path})")
    run_operator(settings)
