"""CLI command for a single reconcile pass."""

from __future__ import annotations

from typing import Annotated, Any

import typer

from ...config import load_settings
from ...pipeline.orchestrator import ReconcileOrchestrator
from ...store.client import load_client_config
from ...utils.deadline import Deadline
from ..base import BaseCLI


class ReconcileCLI(BaseCLI):
    """CLI helpers for running the engine outside the operator loop."""

    def __init__(self) -> None:
        super().__init__("reconcile")

    def reconcile_once(self, *, namespace: str, name: str) -> dict[str, Any]:
        """Run one pass for `namespace/name` and print the per-step result.

        User Output:
            - "Reconciling {namespace}/{name}..." pre-message.
            - Formatted result via BaseCLI.handle_cli_operation.
        """
        return self.handle_cli_operation(
            operation=f"reconcile {namespace}/{name}",
            op_callable=lambda: self._reconcile_operation(namespace=namespace, name=name),
            pre_message=f"Reconciling {namespace}/{name}...",
            exit_on_failure=True,
        )

    def _reconcile_operation(self, *, namespace: str, name: str) -> dict[str, Any]:
        settings = load_settings()
        load_client_config()
        engine = ReconcileOrchestrator.from_settings(settings)
        result = engine.reconcile(namespace, name, deadline=Deadline(settings.reconcile_timeout_s))
        return result.as_dict()


def reconcile_command(
    namespace: Annotated[str, typer.Argument(help="Namespace of the OperatorPipeline")],
    name: Annotated[str, typer.Argument(help="Name of the OperatorPipeline")],
) -> None:
    """Run a single reconcile pass for one OperatorPipeline.

    Exits with code 1 when the pass fails or asks to be requeued.
    """
    ReconcileCLI().reconcile_once(namespace=namespace, name=name)
