"""Typed access to the declarative store.

This module provides a small, synchronous API over the kubernetes client
for the kinds in `certoperator.store.kinds`. All objects are exchanged as
`ManifestObject` wrappers around plain dict bodies; every call maps client
exceptions to `certoperator.errors` types and honours the pass deadline.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from ..errors import TransientStoreError, from_api_exception
from ..utils.deadline import Deadline
from .kinds import ResourceKind
from .objects import ManifestObject

logger = logging.getLogger(__name__)


def label_selector(labels: dict[str, str] | None) -> str | None:
    """Render an equality-based label selector, or None when no labels are given."""
    if not labels:
        return None
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


def load_client_config() -> None:
    """Load in-cluster credentials, falling back to the local kube config."""
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("Loaded local Kubernetes config")


class KubeStore:
    """Store client for custom and core objects."""

    def __init__(
        self,
        custom_api: client.CustomObjectsApi | None = None,
        core_api: client.CoreV1Api | None = None,
    ) -> None:
        self.custom_api = custom_api or client.CustomObjectsApi()
        self.core_api = core_api or client.CoreV1Api()

    def _call(
        self,
        operation: str,
        fn: Callable[..., Any],
        *args: Any,
        deadline: Deadline | None = None,
        **kwargs: Any,
    ) -> Any:
        deadline = deadline or Deadline.none()
        deadline.check(operation)
        timeout = deadline.timeout()
        if timeout is not None:
            kwargs["_request_timeout"] = timeout
        try:
            return fn(*args, **kwargs)
        except ApiException as exc:
            logger.debug("%s failed: %s %s", operation, exc.status, exc.reason)
            raise from_api_exception(exc) from exc
        except HTTPError as exc:
            logger.debug("%s failed: %s", operation, exc)
            raise TransientStoreError(f"{operation}: {exc}") from exc

    def get(
        self,
        kind: ResourceKind,
        name: str,
        namespace: str | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> ManifestObject:
        """Fetch one object; raises NotFoundError when it does not exist."""
        if kind.namespaced:
            body = self._call(
                f"get {kind.kind} {namespace}/{name}",
                self.custom_api.get_namespaced_custom_object,
                kind.group, kind.version, namespace, kind.plural, name,
                deadline=deadline,
            )
        else:
            body = self._call(
                f"get {kind.kind} {name}",
                self.custom_api.get_cluster_custom_object,
                kind.group, kind.version, kind.plural, name,
                deadline=deadline,
            )
        return ManifestObject(kind, body)

    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> list[ManifestObject]:
        """List objects of a kind.

        Namespaced kinds are listed across every namespace when `namespace`
        is None.
        """
        kwargs: dict[str, Any] = {}
        selector = label_selector(labels)
        if selector:
            kwargs["label_selector"] = selector
        if kind.namespaced and namespace is not None:
            result = self._call(
                f"list {kind.plural} in {namespace}",
                self.custom_api.list_namespaced_custom_object,
                kind.group, kind.version, namespace, kind.plural,
                deadline=deadline, **kwargs,
            )
        else:
            result = self._call(
                f"list {kind.plural}",
                self.custom_api.list_cluster_custom_object,
                kind.group, kind.version, kind.plural,
                deadline=deadline, **kwargs,
            )
        return [ManifestObject(kind, item) for item in result.get("items", [])]

    def create(self, obj: ManifestObject, *, deadline: Deadline | None = None) -> ManifestObject:
        kind = obj.kind
        if kind.namespaced:
            body = self._call(
                f"create {kind.kind} {obj.key}",
                self.custom_api.create_namespaced_custom_object,
                kind.group, kind.version, obj.namespace, kind.plural, obj.body,
                deadline=deadline,
            )
        else:
            body = self._call(
                f"create {kind.kind} {obj.key}",
                self.custom_api.create_cluster_custom_object,
                kind.group, kind.version, kind.plural, obj.body,
                deadline=deadline,
            )
        return ManifestObject(kind, body)

    def replace(self, obj: ManifestObject, *, deadline: Deadline | None = None) -> ManifestObject:
        """Full replace; the body must carry the live resourceVersion."""
        kind = obj.kind
        if kind.namespaced:
            body = self._call(
                f"replace {kind.kind} {obj.key}",
                self.custom_api.replace_namespaced_custom_object,
                kind.group, kind.version, obj.namespace, kind.plural, obj.name, obj.body,
                deadline=deadline,
            )
        else:
            body = self._call(
                f"replace {kind.kind} {obj.key}",
                self.custom_api.replace_cluster_custom_object,
                kind.group, kind.version, kind.plural, obj.name, obj.body,
                deadline=deadline,
            )
        return ManifestObject(kind, body)

    def patch(
        self,
        kind: ResourceKind,
        name: str,
        namespace: str | None,
        patch: dict[str, Any],
        *,
        deadline: Deadline | None = None,
    ) -> ManifestObject:
        """Apply a JSON merge patch to one object."""
        if kind.namespaced:
            body = self._call(
                f"patch {kind.kind} {namespace}/{name}",
                self.custom_api.patch_namespaced_custom_object,
                kind.group, kind.version, namespace, kind.plural, name, patch,
                deadline=deadline,
            )
        else:
            body = self._call(
                f"patch {kind.kind} {name}",
                self.custom_api.patch_cluster_custom_object,
                kind.group, kind.version, kind.plural, name, patch,
                deadline=deadline,
            )
        return ManifestObject(kind, body)

    def delete(
        self,
        kind: ResourceKind,
        name: str,
        namespace: str | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> None:
        if kind.namespaced:
            self._call(
                f"delete {kind.kind} {namespace}/{name}",
                self.custom_api.delete_namespaced_custom_object,
                kind.group, kind.version, namespace, kind.plural, name,
                deadline=deadline,
            )
        else:
            self._call(
                f"delete {kind.kind} {name}",
                self.custom_api.delete_cluster_custom_object,
                kind.group, kind.version, kind.plural, name,
                deadline=deadline,
            )

    def replace_status(self, obj: ManifestObject, *, deadline: Deadline | None = None) -> ManifestObject:
        """Write the status sub-resource; stale resourceVersions raise ConflictError."""
        kind = obj.kind
        body = self._call(
            f"update status of {kind.kind} {obj.key}",
            self.custom_api.replace_namespaced_custom_object_status,
            kind.group, kind.version, obj.namespace, kind.plural, obj.name, obj.body,
            deadline=deadline,
        )
        return ManifestObject(kind, body)

    def get_secret_data(
        self,
        name: str,
        namespace: str,
        *,
        deadline: Deadline | None = None,
    ) -> dict[str, bytes]:
        """Return the decoded data of a secret; raises NotFoundError when absent."""
        secret = self._call(
            f"get secret {namespace}/{name}",
            self.core_api.read_namespaced_secret,
            name, namespace,
            deadline=deadline,
        )
        data = secret.data or {}
        return {key: base64.b64decode(value or "") for key, value in data.items()}
