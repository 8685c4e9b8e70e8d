"""Drive one reconcile pass for a pipeline descriptor.

A pass runs the sub-reconcilers in a fixed order and halts at the first
failing one:

    git repo -> pipeline dependencies -> secrets ->
    certified index image stream -> marketplace index image stream

Status aggregation runs after every pass, whether it halted or not, so the
descriptor always reports the current health of its dependencies. The
engine owns the descriptor's finalizer: it is attached once a pass has made
progress and removed after the shared resources have been released.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from .. import global_config as g
from ..catalog import CatalogClient
from ..config import OperatorSettings
from ..descriptor import PipelineDescriptor
from ..errors import ConflictError, NotFoundError, OperatorError, is_fatal
from ..store import kinds
from ..store.client import KubeStore
from ..utils.deadline import Deadline
from .dependencies import PipelineDependenciesReconciler
from .git_repo import GitRepoSync
from .image_streams import INDEX_IMAGES, ImageStreamReconciler
from .secrets import SecretsReconciler
from .shared import SharedResourceLifecycle
from .status import StatusAggregator

logger = logging.getLogger(__name__)

STEP_OK = "success"
STEP_FAILED = "failed"
STEP_REQUEUE = "requeue"
STEP_SKIPPED = "skipped"


class Reconciler(Protocol):
    """One step of a reconcile pass.

    `reconcile` returns True to ask for a requeue without reporting an
    error, and raises to halt the pass.
    """

    name: str

    def reconcile(self, descriptor: PipelineDescriptor, deadline: Deadline) -> bool: ...


@dataclass
class StepResult:
    name: str
    status: str
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.status == STEP_OK


@dataclass
class ReconcileResult:
    """Outcome of one pass: whether to requeue, the first error and per-step detail."""

    key: str
    requeue: bool = False
    error: BaseException | None = None
    steps: list[StepResult] = field(default_factory=list)
    found: bool = True
    finalized: bool = False
    elapsed_s: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None and not self.requeue

    @property
    def fatal(self) -> bool:
        return self.error is not None and is_fatal(self.error)

    @property
    def message(self) -> str:
        if not self.found:
            return f"{self.key} not found; nothing to do"
        if self.error is not None:
            return f"{self.key}: {type(self.error).__name__}: {self.error}"
        if self.finalized:
            return f"{self.key} finalized"
        if self.requeue:
            return f"{self.key} requeued"
        return f"{self.key} reconciled"

    def record(self, name: str, status: str, error: BaseException | None = None) -> None:
        self.steps.append(StepResult(name, status, error))
        if status == STEP_REQUEUE:
            self.requeue = True
        if error is not None and self.error is None:
            self.error = error

    def as_dict(self) -> dict[str, Any]:
        """Render the result in the shape `cli.base.format_result` understands."""
        return {
            "success": self.success,
            "message": self.message,
            "total": len(self.steps),
            "succeeded": sum(1 for step in self.steps if step.ok),
            "failed": sum(1 for step in self.steps if step.status == STEP_FAILED),
            "skipped": sum(1 for step in self.steps if step.status == STEP_SKIPPED),
            "elapsed_s": self.elapsed_s,
            "items": [
                {"item": step.name, "status": step.status, "detail": str(step.error or "")}
                for step in self.steps
            ],
            "failures": [
                {"item": step.name, "reason": str(step.error)}
                for step in self.steps
                if step.error is not None
            ],
        }


class ReconcileOrchestrator:
    """Sequence the sub-reconcilers for one descriptor and commit its status."""

    def __init__(
        self,
        store: KubeStore,
        git_sync: GitRepoSync,
        catalog: CatalogClient | None = None,
    ) -> None:
        self.store = store
        self.git_sync = git_sync
        self.steps: list[Reconciler] = [
            git_sync,
            PipelineDependenciesReconciler(store, git_sync),
            SecretsReconciler(store),
            *(ImageStreamReconciler(store, index, catalog) for index in INDEX_IMAGES),
        ]
        self.status = StatusAggregator(store, git_sync)
        self.shared = SharedResourceLifecycle(store)

    @classmethod
    def from_settings(
        cls,
        settings: OperatorSettings,
        store: KubeStore | None = None,
    ) -> ReconcileOrchestrator:
        """Build the engine for a running operator.

        The kube client configuration must already be loaded when no store
        is passed in.
        """
        return cls(
            store or KubeStore(),
            GitRepoSync(settings.repo_root, settings.repo_url),
            CatalogClient(settings.pyxis_host),
        )

    def reconcile(self, namespace: str, name: str, deadline: Deadline | None = None) -> ReconcileResult:
        """Run one pass for the descriptor `namespace/name`.

        Never raises for reconcile failures: the first error and the
        per-step outcome are reported in the returned ReconcileResult.

        Args:
            namespace: Descriptor namespace.
            name: Descriptor name.
            deadline: Pass deadline. Unbounded when None.

        Returns:
            ReconcileResult. `requeue` or `error` set means the pass should be
            retried with backoff.
        """
        deadline = deadline or Deadline.none()
        started = time.monotonic()
        result = ReconcileResult(key=f"{namespace}/{name}")

        try:
            obj = self.store.get(kinds.OPERATOR_PIPELINE, name, namespace, deadline=deadline)
        except NotFoundError:
            logger.info("%s not found; assuming it was deleted", result.key)
            result.found = False
            return result
        except OperatorError as exc:
            logger.error("could not read %s: %s", result.key, exc)
            result.error = exc
            return result

        descriptor = PipelineDescriptor(obj)
        try:
            if descriptor.deleting:
                self._finalize(descriptor, deadline, result)
            else:
                self._run(descriptor, deadline, result)
        finally:
            result.elapsed_s = time.monotonic() - started
        logger.info("%s (%.2fs)", result.message, result.elapsed_s)
        return result

    def _run(self, descriptor: PipelineDescriptor, deadline: Deadline, result: ReconcileResult) -> None:
        try:
            self._run_steps(descriptor, deadline, result)
            if any(step.ok for step in result.steps):
                self._ensure_finalizer(descriptor, deadline, result)
        finally:
            self._aggregate_status(descriptor, deadline, result)

    def _run_steps(self, descriptor: PipelineDescriptor, deadline: Deadline, result: ReconcileResult) -> None:
        for index, step in enumerate(self.steps):
            try:
                requeue = step.reconcile(descriptor, deadline)
            except ConflictError:
                logger.info("conflict in %s for %s, requeuing", step.name, descriptor.key)
                result.record(step.name, STEP_REQUEUE)
            except OperatorError as exc:
                logger.error("%s failed for %s: %s", step.name, descriptor.key, exc)
                result.record(step.name, STEP_FAILED, exc)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Unexpected error in %s for %s", step.name, descriptor.key)
                result.record(step.name, STEP_FAILED, exc)
            else:
                result.record(step.name, STEP_REQUEUE if requeue else STEP_OK)
                if not requeue:
                    continue

            for skipped in self.steps[index + 1:]:
                result.record(skipped.name, STEP_SKIPPED)
            return

    def _aggregate_status(self, descriptor: PipelineDescriptor, deadline: Deadline, result: ReconcileResult) -> None:
        try:
            requeue = self.status.reconcile(descriptor, deadline)
        except Exception as exc:  # noqa: BLE001
            logger.error("status update failed for %s: %s", descriptor.key, exc)
            result.record(self.status.name, STEP_FAILED, exc)
            return
        result.record(self.status.name, STEP_REQUEUE if requeue else STEP_OK)

    def _ensure_finalizer(self, descriptor: PipelineDescriptor, deadline: Deadline, result: ReconcileResult) -> None:
        if descriptor.has_finalizer:
            return
        finalizers = [*descriptor.finalizers, g.FINALIZER]
        try:
            updated = self._patch_finalizers(descriptor, finalizers, deadline)
        except ConflictError:
            logger.info("conflict adding finalizer to %s, requeuing", descriptor.key)
            result.requeue = True
            return
        except OperatorError as exc:
            logger.error("could not add finalizer to %s: %s", descriptor.key, exc)
            result.record("finalizer", STEP_FAILED, exc)
            return
        descriptor.obj.metadata["finalizers"] = finalizers
        descriptor.obj.metadata["resourceVersion"] = updated.resource_version
        logger.info("Added finalizer to %s", descriptor.key)

    def _finalize(self, descriptor: PipelineDescriptor, deadline: Deadline, result: ReconcileResult) -> None:
        """Release shared resources, then let the store delete the descriptor."""
        if not descriptor.has_finalizer:
            logger.debug("%s is terminating without our finalizer", descriptor.key)
            return

        try:
            deleted = self.shared.finalize(descriptor, deadline)
        except OperatorError as exc:
            logger.error("could not release shared resources for %s: %s", descriptor.key, exc)
            result.record(self.shared.name, STEP_FAILED, exc)
            return
        result.record(self.shared.name, STEP_OK)
        if deleted:
            logger.info("Released shared resources for %s: %s", descriptor.key, deleted)

        remaining = [f for f in descriptor.finalizers if f != g.FINALIZER]
        try:
            self._patch_finalizers(descriptor, remaining, deadline)
        except NotFoundError:
            logger.debug("%s already gone", descriptor.key)
        except ConflictError:
            logger.info("conflict removing finalizer from %s, requeuing", descriptor.key)
            result.record("finalizer", STEP_REQUEUE)
            return
        except OperatorError as exc:
            logger.error("could not remove finalizer from %s: %s", descriptor.key, exc)
            result.record("finalizer", STEP_FAILED, exc)
            return
        result.record("finalizer", STEP_OK)
        result.finalized = True
        logger.info("Removed finalizer from %s", descriptor.key)

    def _patch_finalizers(self, descriptor: PipelineDescriptor, finalizers: list[str], deadline: Deadline):
        # resourceVersion makes the merge patch conditional on the version we read.
        patch = {
            "metadata": {
                "finalizers": finalizers,
                "resourceVersion": descriptor.obj.resource_version,
            }
        }
        return self.store.patch(
            kinds.OPERATOR_PIPELINE, descriptor.name, descriptor.namespace, patch, deadline=deadline
        )
