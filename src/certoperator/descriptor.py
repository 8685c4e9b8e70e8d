"""The pipeline descriptor: the user-facing intent object.

The descriptor's spec is owned by the user. Its status (observed
generation, synced repository hash and conditions) is owned by the
reconciliation engine and only ever written through the status
sub-resource.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

from . import global_config as g
from .store import kinds
from .store.objects import ManifestObject
from .utils.time import now_ts_utc_z

STATUS_TRUE = "True"
STATUS_FALSE = "False"
STATUS_UNKNOWN = "Unknown"

REASON_AS_EXPECTED = "AsExpected"
REASON_NOT_FOUND = "NotFound"
REASON_INVALID = "Invalid"
REASON_KEY_NOT_FOUND = "KeyNotFound"
REASON_KEY_DATA_INVALID = "KeyDataInvalid"
REASON_NOT_EVALUATED = "NotEvaluated"


@dataclass(frozen=True)
class PipelineSpec:
    """Spec fields of the descriptor, with defaults applied."""

    release: str = g.DEFAULT_RELEASE
    apply_ci_pipeline: bool = False
    apply_hosted_pipeline: bool = False
    apply_release_pipeline: bool = False
    kubeconfig_secret_name: str = ""
    github_secret_name: str = ""
    pyxis_secret_name: str = ""
    docker_registry_secret_name: str = ""
    github_ssh_secret_name: str = ""

    @classmethod
    def from_dict(cls, spec: dict[str, Any] | None) -> PipelineSpec:
        spec = spec or {}
        return cls(
            release=spec.get("operatorPipelinesRelease") or g.DEFAULT_RELEASE,
            apply_ci_pipeline=bool(spec.get("applyCIPipeline", False)),
            apply_hosted_pipeline=bool(spec.get("applyHostedPipeline", False)),
            apply_release_pipeline=bool(spec.get("applyReleasePipeline", False)),
            kubeconfig_secret_name=spec.get("kubeconfigSecretName") or "",
            github_secret_name=spec.get("gitHubSecretName") or "",
            pyxis_secret_name=spec.get("pyxisSecretName") or "",
            docker_registry_secret_name=spec.get("dockerRegistrySecretName") or "",
            github_ssh_secret_name=spec.get("githubSSHSecretName") or "",
        )


def find_condition(conditions: list[dict[str, Any]], condition_type: str) -> dict[str, Any] | None:
    for condition in conditions:
        if condition.get("type") == condition_type:
            return condition
    return None


def set_condition(conditions: list[dict[str, Any]], new: dict[str, Any]) -> None:
    """Insert or update a condition in place.

    lastTransitionTime is only moved when the status value changes, so
    re-asserting an unchanged condition leaves the list structurally equal.
    """
    existing = find_condition(conditions, new["type"])
    if existing is None:
        entry = dict(new)
        entry.setdefault("lastTransitionTime", now_ts_utc_z())
        conditions.append(entry)
        return

    if existing.get("status") != new.get("status"):
        existing["status"] = new["status"]
        existing["lastTransitionTime"] = new.get("lastTransitionTime") or now_ts_utc_z()
    for field in ("reason", "message", "observedGeneration"):
        if field in new:
            existing[field] = new[field]


class PipelineDescriptor:
    """Typed view over an OperatorPipeline object body."""

    def __init__(self, obj: ManifestObject) -> None:
        if obj.kind != kinds.OPERATOR_PIPELINE:
            raise ValueError(f"expected {kinds.OPERATOR_PIPELINE.kind}, got {obj.kind.kind}")
        self.obj = obj

    def __repr__(self) -> str:
        return f"PipelineDescriptor({self.key})"

    @property
    def name(self) -> str:
        return self.obj.name

    @property
    def namespace(self) -> str:
        return self.obj.namespace or ""

    @property
    def key(self) -> str:
        return self.obj.key

    @property
    def generation(self) -> int:
        return self.obj.generation

    @property
    def spec(self) -> PipelineSpec:
        return PipelineSpec.from_dict(self.obj.body.get("spec"))

    @property
    def status(self) -> dict[str, Any]:
        return self.obj.body.setdefault("status", {})

    @property
    def conditions(self) -> list[dict[str, Any]]:
        return self.status.setdefault("conditions", [])

    @property
    def finalizers(self) -> list[str]:
        return list(self.obj.metadata.get("finalizers") or [])

    @property
    def has_finalizer(self) -> bool:
        return g.FINALIZER in self.finalizers

    @property
    def deleting(self) -> bool:
        return self.obj.metadata.get("deletionTimestamp") is not None

    def condition(self, condition_type: str) -> dict[str, Any] | None:
        return find_condition(self.conditions, condition_type)

    def set_condition(self, condition_type: str, status: str, reason: str, message: str) -> None:
        set_condition(
            self.conditions,
            {
                "type": condition_type,
                "status": status,
                "reason": reason,
                "message": message,
                "observedGeneration": self.generation,
            },
        )

    def status_snapshot(self) -> dict[str, Any]:
        """Deep copy of the current status for later structural comparison."""
        return copy.deepcopy(self.obj.body.get("status") or {})
