"""CLI command for inspecting release resolution in a local clone."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ...pipeline.git_repo import resolve_local_release
from ..base import BaseCLI


def resolve_release_command(
    path: Annotated[Path, typer.Argument(help="Local clone of the pipeline manifest repository")],
    release: Annotated[str, typer.Argument(help="Branch or tag suffix to resolve")],
) -> None:
    """Print the reference and commit a release resolves to.

    Uses the same suffix match as the operator and does not fetch.
    """
    cli = BaseCLI("release")

    def _resolve() -> dict:
        ref, commit = resolve_local_release(path, release)
        return {"success": True, "message": f"{release} -> {ref}", "items": [{"item": ref, "status": commit}]}

    cli.handle_cli_operation(operation="resolve release", op_callable=_resolve)
