"""Reconcile pass orchestration layer.

One module per sub-reconciler, each exposing a class with a `name` and a
`reconcile(descriptor, deadline)` method:
- `pipeline/git_repo.py` - manifest repository sync
- `pipeline/dependencies.py` - pipelines, tasks and shared cluster resources
- `pipeline/secrets.py` - required secret checks
- `pipeline/image_streams.py` - operator index image streams
- `pipeline/status.py` - condition aggregation and status commit
- `pipeline/orchestrator.py` - step ordering, finalizer handling

Import policy:
- CLI and kopf handlers import only `pipeline.orchestrator`.
- `pipeline.*` may call `store.*` and `catalog`.
- `store.*` must not call `pipeline.*`.
"""

from .orchestrator import ReconcileOrchestrator, ReconcileResult, StepResult

__all__ = ["ReconcileOrchestrator", "ReconcileResult", "StepResult"]
