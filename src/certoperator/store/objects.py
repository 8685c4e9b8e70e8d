"""Capability wrapper over raw object bodies.

Every kind the operator applies (pipelines, tasks, cluster roles, cluster
role bindings, security context constraints, image streams) is handled as a
plain dict body. `ManifestObject` exposes the handful of metadata
operations the reconcile algorithms need so that those algorithms are
written once, independent of kind.
"""

from __future__ import annotations

import copy
from typing import Any

from .kinds import ResourceKind


class ManifestObject:
    """A store object of a known kind, backed by its dict body."""

    def __init__(self, kind: ResourceKind, body: dict[str, Any]) -> None:
        self.kind = kind
        self.body = body
        self.body.setdefault("apiVersion", kind.api_version)
        self.body.setdefault("kind", kind.kind)
        self.body.setdefault("metadata", {})

    def __repr__(self) -> str:
        return f"ManifestObject({self.kind.kind} {self.key})"

    @property
    def metadata(self) -> dict[str, Any]:
        return self.body["metadata"]

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")

    @property
    def namespace(self) -> str | None:
        return self.metadata.get("namespace") if self.kind.namespaced else None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name

    @property
    def uid(self) -> str | None:
        return self.metadata.get("uid")

    @property
    def resource_version(self) -> str | None:
        return self.metadata.get("resourceVersion")

    @property
    def generation(self) -> int:
        return int(self.metadata.get("generation") or 0)

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.get("labels") or {}

    @property
    def owner_references(self) -> list[dict[str, Any]]:
        return self.metadata.get("ownerReferences") or []

    def set_namespace(self, namespace: str) -> None:
        if self.kind.namespaced:
            self.metadata["namespace"] = namespace

    def set_labels(self, labels: dict[str, str]) -> None:
        merged = dict(self.labels)
        merged.update(labels)
        self.metadata["labels"] = merged

    def has_labels(self, labels: dict[str, str]) -> bool:
        current = self.labels
        return all(current.get(k) == v for k, v in labels.items())

    def is_owned_by(self, owner: ManifestObject) -> bool:
        return any(ref.get("uid") == owner.uid for ref in self.owner_references)

    def has_controller(self) -> bool:
        return any(ref.get("controller") for ref in self.owner_references)

    def set_controller_reference(self, owner: ManifestObject) -> None:
        """Make `owner` the controlling owner of this object.

        Raises:
            ValueError: If the owner has no uid or lives in another namespace.
            ValueError: If a different controller already owns this object.
        """
        if not owner.uid:
            raise ValueError(f"owner {owner.key} has no uid")
        if self.kind.namespaced and owner.namespace != self.namespace:
            raise ValueError(
                f"cross-namespace owner reference {owner.key} -> {self.key} is not allowed"
            )
        refs = [ref for ref in self.owner_references if ref.get("uid") != owner.uid]
        for ref in refs:
            if ref.get("controller"):
                raise ValueError(f"{self.key} is already controlled by {ref.get('kind')} {ref.get('name')}")
        refs.append(
            {
                "apiVersion": owner.kind.api_version,
                "kind": owner.kind.kind,
                "name": owner.name,
                "uid": owner.uid,
                "controller": True,
                "blockOwnerDeletion": True,
            }
        )
        self.metadata["ownerReferences"] = refs

    def content(self) -> dict[str, Any]:
        """Return the body without metadata and status, for desired/live comparison."""
        return {k: v for k, v in self.body.items() if k not in ("metadata", "status")}

    def copy(self) -> ManifestObject:
        return ManifestObject(self.kind, copy.deepcopy(self.body))
