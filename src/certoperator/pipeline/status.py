"""Recompute the descriptor's health conditions and commit them on change.

Conditions follow one three-state pattern: Unknown until evaluated, True
with reason AsExpected when the dependency is healthy, False with a
specific reason otherwise. Evaluation runs in a fixed order and stops at
the first False condition; the conditions after it keep the values from an
earlier pass. The status sub-resource is only written when the recomputed
status differs structurally from the one read at the start of the pass.
"""

from __future__ import annotations

import logging
from typing import Any

from .. import global_config as g
from ..descriptor import (
    REASON_AS_EXPECTED,
    REASON_INVALID,
    REASON_NOT_EVALUATED,
    REASON_NOT_FOUND,
    STATUS_FALSE,
    STATUS_TRUE,
    STATUS_UNKNOWN,
    PipelineDescriptor,
)
from ..errors import (
    ConflictError,
    GitSyncError,
    InvalidManifestError,
    NotFoundError,
    OperatorError,
    ReleaseNotFoundError,
)
from ..store import kinds
from ..store.client import KubeStore
from ..utils.deadline import Deadline
from .dependencies import PIPELINE_TOGGLES, PipelineToggle, task_manifests
from .git_repo import GitRepoSync
from .image_streams import INDEX_IMAGES, IndexImage
from .manifests import load_manifest
from .secrets import SecretDependency, check_secret, secret_dependencies

logger = logging.getLogger(__name__)

GIT_REPO_READY = "GitRepoReady"
TASKS_READY = "TasksReady"


def ready(type_prefix: str) -> str:
    return f"{type_prefix}Ready"


def expected_condition_types(descriptor: PipelineDescriptor) -> list[str]:
    """Condition types reported for a descriptor, in evaluation order."""
    types = [GIT_REPO_READY]
    types += [ready(dep.secret_type) for dep in secret_dependencies(descriptor.spec)]
    types += [ready(toggle.pipeline_type) for toggle in PIPELINE_TOGGLES]
    types.append(TASKS_READY)
    types += [ready(index.index_type) for index in INDEX_IMAGES]
    return types


class StatusAggregator:
    """Evaluate every dependency condition and commit the status sub-resource."""

    name = "status"

    def __init__(self, store: KubeStore, git_sync: GitRepoSync) -> None:
        self.store = store
        self.git_sync = git_sync

    def reconcile(self, descriptor: PipelineDescriptor, deadline: Deadline) -> bool:
        """Recompute conditions and commit them if they changed.

        Returns:
            True if the pass should be requeued: a condition is False or the
            commit hit an update conflict.

        Raises:
            StoreError: If a dependency lookup or the commit fails for a
                reason other than not-found or conflict. Conditions computed
                before the failure are still committed on a best-effort basis.
        """
        original = descriptor.status_snapshot()
        descriptor.status["observedGeneration"] = descriptor.generation
        expected = expected_condition_types(descriptor)
        # Drop conditions for optional secrets the descriptor no longer names.
        descriptor.status["conditions"] = [c for c in descriptor.conditions if c.get("type") in expected]
        for condition_type in expected:
            if descriptor.condition(condition_type) is None:
                descriptor.set_condition(condition_type, STATUS_UNKNOWN, REASON_NOT_EVALUATED, "Not yet evaluated")

        try:
            healthy = self.evaluate(descriptor, deadline)
        except Exception:
            self._commit_best_effort(descriptor, original, deadline)
            raise

        conflicted = self.commit(descriptor, original, deadline)
        return conflicted or not healthy

    def evaluate(self, descriptor: PipelineDescriptor, deadline: Deadline) -> bool:
        """Evaluate conditions in order; stop and return False at the first unhealthy one."""
        if not self._git_repo(descriptor):
            return False
        for dependency in secret_dependencies(descriptor.spec):
            if not self._secret(descriptor, dependency, deadline):
                return False
        for toggle in PIPELINE_TOGGLES:
            if not self._pipeline(descriptor, toggle, deadline):
                return False
        if not self._tasks(descriptor, deadline):
            return False
        for index in INDEX_IMAGES:
            if not self._image_stream(descriptor, index, deadline):
                return False
        return True

    def commit(self, descriptor: PipelineDescriptor, original: dict[str, Any], deadline: Deadline) -> bool:
        """Write the status if it changed. Returns True on an update conflict."""
        if descriptor.status == original:
            logger.debug("Status of %s unchanged", descriptor.key)
            return False
        try:
            updated = self.store.replace_status(descriptor.obj, deadline=deadline)
        except ConflictError:
            logger.info("conflict updating status of %s, requeuing", descriptor.key)
            return True
        if updated.resource_version:
            descriptor.obj.metadata["resourceVersion"] = updated.resource_version
        logger.info("updated status of %s (observedGeneration=%s)", descriptor.key, descriptor.generation)
        return False

    def _commit_best_effort(self, descriptor: PipelineDescriptor, original: dict[str, Any], deadline: Deadline) -> None:
        try:
            self.commit(descriptor, original, deadline)
        except OperatorError:
            logger.exception("error updating status of %s", descriptor.key)

    def _fail(self, descriptor: PipelineDescriptor, condition_type: str, reason: str, message: str) -> bool:
        logger.info("%s of %s is False (%s): %s", condition_type, descriptor.key, reason, message)
        descriptor.set_condition(condition_type, STATUS_FALSE, reason, message)
        return False

    def _pass(self, descriptor: PipelineDescriptor, condition_type: str, message: str) -> bool:
        descriptor.set_condition(condition_type, STATUS_TRUE, REASON_AS_EXPECTED, message)
        return True

    def _git_repo(self, descriptor: PipelineDescriptor) -> bool:
        try:
            commit = self.git_sync.head_hash(descriptor.spec.release)
        except FileNotFoundError:
            return self._fail(descriptor, GIT_REPO_READY, REASON_NOT_FOUND, "Local repo unavailable")
        except ReleaseNotFoundError:
            return self._fail(descriptor, GIT_REPO_READY, REASON_NOT_FOUND, "Requested release not found in local repo")
        except GitSyncError:
            return self._fail(descriptor, GIT_REPO_READY, REASON_INVALID, "Local repo invalid")
        descriptor.status["pipelinesRepoHash"] = commit
        return self._pass(descriptor, GIT_REPO_READY, "Git repo is ready")

    def _secret(self, descriptor: PipelineDescriptor, dependency: SecretDependency, deadline: Deadline) -> bool:
        condition_type = ready(dependency.secret_type)
        check = check_secret(self.store, descriptor.namespace, dependency, deadline=deadline)
        if not check.ok:
            return self._fail(descriptor, condition_type, check.reason, check.message)
        return self._pass(descriptor, condition_type, check.message)

    def _pipeline(self, descriptor: PipelineDescriptor, toggle: PipelineToggle, deadline: Deadline) -> bool:
        condition_type = ready(toggle.pipeline_type)
        if not toggle.enabled(descriptor.spec):
            return self._pass(descriptor, condition_type, "Pipeline not requested")

        path = self.git_sync.working_copy(descriptor.spec.release) / g.PIPELINE_MANIFESTS_PATH / toggle.filename
        try:
            pipeline = load_manifest(path, kinds.PIPELINE)
        except OSError:
            return self._fail(descriptor, condition_type, REASON_INVALID, "Pipeline YAML could not be read")
        except InvalidManifestError:
            return self._fail(descriptor, condition_type, REASON_INVALID, "Pipeline YAML not valid")

        try:
            self.store.get(kinds.PIPELINE, pipeline.name, descriptor.namespace, deadline=deadline)
        except NotFoundError:
            return self._fail(descriptor, condition_type, REASON_NOT_FOUND, "Pipeline not found")
        return self._pass(descriptor, condition_type, f"{toggle.pipeline_type} pipeline is ready")

    def _tasks(self, descriptor: PipelineDescriptor, deadline: Deadline) -> bool:
        task_dir = self.git_sync.working_copy(descriptor.spec.release) / g.TASK_MANIFESTS_PATH
        try:
            paths = task_manifests(task_dir)
        except OSError:
            return self._fail(descriptor, TASKS_READY, REASON_INVALID, "Tasks YAML directory could not be read")

        unreadable: list[str] = []
        invalid: list[str] = []
        missing: list[str] = []
        for path in paths:
            try:
                task = load_manifest(path, kinds.TASK)
            except OSError:
                unreadable.append(path.name)
                continue
            except InvalidManifestError:
                invalid.append(path.name)
                continue
            try:
                self.store.get(kinds.TASK, task.name, descriptor.namespace, deadline=deadline)
            except NotFoundError:
                missing.append(task.name)

        if unreadable:
            return self._fail(
                descriptor, TASKS_READY, REASON_NOT_FOUND,
                f"Some tasks YAML files could not be read: {', '.join(unreadable)}",
            )
        if invalid:
            return self._fail(
                descriptor, TASKS_READY, REASON_INVALID,
                f"Some tasks YAML files are not valid: {', '.join(invalid)}",
            )
        if missing:
            return self._fail(
                descriptor, TASKS_READY, REASON_NOT_FOUND,
                f"Some tasks are not present: {', '.join(missing)}",
            )
        return self._pass(descriptor, TASKS_READY, "Tasks are ready")

    def _image_stream(self, descriptor: PipelineDescriptor, index: IndexImage, deadline: Deadline) -> bool:
        condition_type = ready(index.index_type)
        try:
            self.store.get(kinds.IMAGE_STREAM, index.stream_name, descriptor.namespace, deadline=deadline)
        except NotFoundError:
            return self._fail(
                descriptor, condition_type, REASON_NOT_FOUND,
                f"{index.index_type} with name {index.stream_name} not found",
            )
        return self._pass(descriptor, condition_type, f"{index.index_type} with name {index.stream_name} found")
