"""Apply the pipeline, task and shared cluster-resource manifests.

Each of the three pipeline manifests is continuously reconciled against its
descriptor toggle: applied while enabled, deleted while disabled. Every
file in the task directory is applied. The shared cluster role, security
context constraints and the per-namespace cluster role binding are applied
last.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .. import global_config as g
from ..descriptor import PipelineDescriptor, PipelineSpec
from ..store import kinds
from ..store.client import KubeStore
from ..utils.deadline import Deadline
from .git_repo import GitRepoSync
from .manifests import ManifestReconciler, shared_labels

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineToggle:
    """One pipeline manifest and the descriptor flag selecting it."""

    pipeline_type: str
    filename: str
    spec_field: str

    def enabled(self, spec: PipelineSpec) -> bool:
        return bool(getattr(spec, self.spec_field))


PIPELINE_TOGGLES: tuple[PipelineToggle, ...] = (
    PipelineToggle("CIPipeline", g.CI_PIPELINE_YML, "apply_ci_pipeline"),
    PipelineToggle("HostedPipeline", g.HOSTED_PIPELINE_YML, "apply_hosted_pipeline"),
    PipelineToggle("ReleasePipeline", g.RELEASE_PIPELINE_YML, "apply_release_pipeline"),
)


def task_manifests(task_dir: Path) -> list[Path]:
    """Return every file (not directory) directly under `task_dir`, sorted by name."""
    return sorted(path for path in Path(task_dir).iterdir() if not path.is_dir())


class PipelineDependenciesReconciler:
    """Reconcile the manifests the pipelines depend on."""

    name = "pipeline-dependencies"

    def __init__(
        self,
        store: KubeStore,
        git_sync: GitRepoSync,
        manifests: ManifestReconciler | None = None,
        shared_manifests_dir: Path = g.MANIFESTS_DIR,
    ) -> None:
        self.store = store
        self.git_sync = git_sync
        self.manifests = manifests or ManifestReconciler(store)
        self.shared_manifests_dir = Path(shared_manifests_dir)

    def reconcile(self, descriptor: PipelineDescriptor, deadline: Deadline) -> bool:
        release = descriptor.spec.release
        # Raises if the working copy is missing or has no HEAD.
        self.git_sync.head_hash(release)
        root = self.git_sync.working_copy(release)

        self.reconcile_pipelines(descriptor, root / g.PIPELINE_MANIFESTS_PATH, deadline)

        tasks = task_manifests(root / g.TASK_MANIFESTS_PATH)
        for path in tasks:
            self.manifests.apply(path, descriptor, kinds.TASK, deadline=deadline)
        logger.debug("Reconciled %d task manifests for %s", len(tasks), descriptor.key)

        self.reconcile_shared(descriptor, deadline)
        return False

    def reconcile_pipelines(
        self, descriptor: PipelineDescriptor, pipelines_dir: Path, deadline: Deadline
    ) -> None:
        spec = descriptor.spec
        for toggle in PIPELINE_TOGGLES:
            path = pipelines_dir / toggle.filename
            if toggle.enabled(spec):
                self.manifests.apply(path, descriptor, kinds.PIPELINE, deadline=deadline)
                continue
            try:
                self.manifests.delete(path, descriptor, kinds.PIPELINE, deadline=deadline)
            except FileNotFoundError:
                # Without the manifest there is no object name to delete.
                logger.warning("%s manifest %s not found; nothing to delete", toggle.pipeline_type, path)

    def reconcile_shared(self, descriptor: PipelineDescriptor, deadline: Deadline) -> None:
        """Apply the cluster-scoped resources shared by all descriptors."""
        shared = self.shared_manifests_dir
        self.manifests.apply(shared / g.CLUSTER_ROLE_YML, descriptor, kinds.CLUSTER_ROLE, deadline=deadline)
        self.manifests.apply(
            shared / g.SECURITY_CONTEXT_CONSTRAINTS_YML,
            descriptor,
            kinds.SECURITY_CONTEXT_CONSTRAINTS,
            deadline=deadline,
        )
        self.manifests.apply_template(
            shared / g.CLUSTER_ROLE_BINDING_TEMPLATE,
            descriptor,
            kinds.CLUSTER_ROLE_BINDING,
            labels=shared_labels(descriptor.namespace),
            deadline=deadline,
        )
