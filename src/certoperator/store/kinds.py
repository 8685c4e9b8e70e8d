"""Object kinds managed by the operator."""

from __future__ import annotations

from dataclasses import dataclass

from .. import global_config as g


@dataclass(frozen=True)
class ResourceKind:
    """API coordinates of one object kind in the store."""

    group: str
    version: str
    plural: str
    kind: str
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


OPERATOR_PIPELINE = ResourceKind(
    g.API_GROUP, g.API_VERSION, g.DESCRIPTOR_PLURAL, g.DESCRIPTOR_KIND
)
PIPELINE = ResourceKind("tekton.dev", "v1beta1", "pipelines", "Pipeline")
TASK = ResourceKind("tekton.dev", "v1beta1", "tasks", "Task")
CLUSTER_ROLE = ResourceKind(
    "rbac.authorization.k8s.io", "v1", "clusterroles", "ClusterRole", namespaced=False
)
CLUSTER_ROLE_BINDING = ResourceKind(
    "rbac.authorization.k8s.io", "v1", "clusterrolebindings", "ClusterRoleBinding", namespaced=False
)
SECURITY_CONTEXT_CONSTRAINTS = ResourceKind(
    "security.openshift.io", "v1", "securitycontextconstraints", "SecurityContextConstraints",
    namespaced=False,
)
IMAGE_STREAM = ResourceKind("image.openshift.io", "v1", "imagestreams", "ImageStream")
IMAGE_STREAM_IMPORT = ResourceKind("image.openshift.io", "v1", "imagestreamimports", "ImageStreamImport")
