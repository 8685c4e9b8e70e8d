"""Reference-counted cleanup of shared cluster resources.

Cluster-scoped objects cannot carry an owner reference to a namespaced
descriptor, so they are not garbage-collected with it. Instead, when a
descriptor is finalized, sibling descriptors are counted:

- the last descriptor in a namespace removes that namespace's cluster role
  binding;
- the last descriptor in the cluster removes the cluster role and the
  security context constraints.

Listing and deleting are not atomic. Deletes ignore not-found so that two
finalizers racing on the same object both succeed.
"""

from __future__ import annotations

import logging

from ..descriptor import PipelineDescriptor
from ..errors import NotFoundError
from ..store import kinds
from ..store.client import KubeStore
from ..store.kinds import ResourceKind
from ..utils.deadline import Deadline
from .manifests import shared_labels

logger = logging.getLogger(__name__)


class SharedResourceLifecycle:
    """Delete shared resources once their last referencing descriptor goes away."""

    name = "shared-resources"

    def __init__(self, store: KubeStore) -> None:
        self.store = store

    def finalize(self, descriptor: PipelineDescriptor, deadline: Deadline) -> dict[str, int]:
        """Run the namespace and cluster reference counts for a terminating descriptor.

        Args:
            descriptor: Descriptor being deleted (still counted in the lists).
            deadline: Pass deadline.

        Returns:
            Number of objects deleted per kind.

        Raises:
            StoreError: If listing or deleting fails; the finalizer must stay.

        Logs:
            - INFO: when a shared object is deleted.
        """
        deleted: dict[str, int] = {}

        in_namespace = self.store.list(kinds.OPERATOR_PIPELINE, descriptor.namespace, deadline=deadline)
        if len(in_namespace) == 1:
            logger.info("Last descriptor in %s; removing its cluster role binding", descriptor.namespace)
            deleted[kinds.CLUSTER_ROLE_BINDING.kind] = self._delete_labelled(
                kinds.CLUSTER_ROLE_BINDING, shared_labels(descriptor.namespace), deadline
            )

        in_cluster = self.store.list(kinds.OPERATOR_PIPELINE, deadline=deadline)
        if len(in_cluster) == 1:
            logger.info("Last descriptor in the cluster; removing cluster role and SCC")
            for kind in (kinds.CLUSTER_ROLE, kinds.SECURITY_CONTEXT_CONSTRAINTS):
                deleted[kind.kind] = self._delete_labelled(kind, shared_labels(), deadline)

        return deleted

    def _delete_labelled(self, kind: ResourceKind, labels: dict[str, str], deadline: Deadline) -> int:
        count = 0
        for obj in self.store.list(kind, labels=labels, deadline=deadline):
            try:
                self.store.delete(kind, obj.name, obj.namespace, deadline=deadline)
            except NotFoundError:
                logger.debug("%s %s already deleted", kind.kind, obj.key)
                continue
            logger.info("Deleted shared %s %s", kind.kind, obj.key)
            count += 1
        return count
