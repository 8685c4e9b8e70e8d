"""Presence and validity checks for the secrets the pipelines consume.

Secrets are supplied by the cluster operator; this module never creates
them. A missing secret, a secret without the expected key and a secret with
an empty value at that key are reported as distinct reasons.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .. import global_config as g
from ..descriptor import (
    REASON_AS_EXPECTED,
    REASON_KEY_DATA_INVALID,
    REASON_KEY_NOT_FOUND,
    REASON_NOT_FOUND,
    PipelineDescriptor,
    PipelineSpec,
)
from ..errors import InvalidSecretError, NotFoundError, SecretNotFoundError
from ..store.client import KubeStore
from ..utils.deadline import Deadline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecretDependency:
    """A secret the pipelines need, with the key that must hold data."""

    secret_type: str
    name: str
    key: str


@dataclass(frozen=True)
class SecretCheck:
    ok: bool
    reason: str
    message: str


def _override(default: str, name: str) -> str:
    return name or default


def secret_dependencies(spec: PipelineSpec) -> list[SecretDependency]:
    """Return the secrets required by a descriptor spec, in check order.

    The SSH and registry secrets have no default name and are only required
    when the descriptor names them.
    """
    deps = [
        SecretDependency(
            "KubeconfigSecret",
            _override(g.DEFAULT_KUBECONFIG_SECRET_NAME, spec.kubeconfig_secret_name),
            g.DEFAULT_KUBECONFIG_SECRET_KEY,
        ),
        SecretDependency(
            "GithubApiSecret",
            _override(g.DEFAULT_GITHUB_API_SECRET_NAME, spec.github_secret_name),
            g.DEFAULT_GITHUB_API_SECRET_KEY,
        ),
    ]
    if spec.github_ssh_secret_name:
        deps.append(
            SecretDependency("GithubSSHSecret", spec.github_ssh_secret_name, g.DEFAULT_GITHUB_SSH_SECRET_KEY)
        )
    deps.append(
        SecretDependency(
            "PyxisApiSecret",
            _override(g.DEFAULT_PYXIS_API_SECRET_NAME, spec.pyxis_secret_name),
            g.DEFAULT_PYXIS_API_SECRET_KEY,
        )
    )
    if spec.docker_registry_secret_name:
        deps.append(
            SecretDependency(
                "DockerRegistrySecret", spec.docker_registry_secret_name, g.DEFAULT_DOCKER_REGISTRY_SECRET_KEY
            )
        )
    return deps


def check_secret(
    store: KubeStore,
    namespace: str,
    dependency: SecretDependency,
    *,
    deadline: Deadline | None = None,
) -> SecretCheck:
    """Check that a secret exists and holds non-empty data at its key.

    Raises:
        StoreError: For store failures other than not-found.
    """
    name, key = dependency.name, dependency.key
    try:
        data = store.get_secret_data(name, namespace, deadline=deadline)
    except NotFoundError:
        return SecretCheck(False, REASON_NOT_FOUND, f"{name} secret not found")
    if key not in data:
        return SecretCheck(False, REASON_KEY_NOT_FOUND, f"{key} key not found in secret {name}")
    if not data[key]:
        return SecretCheck(False, REASON_KEY_DATA_INVALID, f"secret data invalid in secret {name}")
    return SecretCheck(True, REASON_AS_EXPECTED, f"{name} secret found")


class SecretsReconciler:
    """Fail the pass on the first missing or invalid secret."""

    name = "secrets"

    def __init__(self, store: KubeStore) -> None:
        self.store = store

    def reconcile(self, descriptor: PipelineDescriptor, deadline: Deadline) -> bool:
        for dependency in secret_dependencies(descriptor.spec):
            check = check_secret(self.store, descriptor.namespace, dependency, deadline=deadline)
            if check.ok:
                continue
            logger.error("%s for %s: %s", dependency.secret_type, descriptor.key, check.message)
            if check.reason == REASON_NOT_FOUND:
                raise SecretNotFoundError(check.message)
            raise InvalidSecretError(check.message)
        return False
