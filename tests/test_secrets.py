"""Tests for secret dependency checks."""

from __future__ import annotations

import pytest

from certoperator import global_config as g
from certoperator.descriptor import (
    REASON_AS_EXPECTED,
    REASON_KEY_DATA_INVALID,
    REASON_KEY_NOT_FOUND,
    REASON_NOT_FOUND,
    PipelineSpec,
)
from certoperator.errors import InvalidSecretError, SecretNotFoundError
from certoperator.pipeline.secrets import SecretDependency, SecretsReconciler, check_secret, secret_dependencies
from certoperator.utils.deadline import Deadline

KUBECONFIG = SecretDependency("KubeconfigSecret", "kubeconfig", "kubeconfig")


class TestSecretDependencies:
    def test_defaults(self) -> None:
        deps = secret_dependencies(PipelineSpec())
        assert [d.secret_type for d in deps] == ["KubeconfigSecret", "GithubApiSecret", "PyxisApiSecret"]
        assert [d.name for d in deps] == [
            g.DEFAULT_KUBECONFIG_SECRET_NAME,
            g.DEFAULT_GITHUB_API_SECRET_NAME,
            g.DEFAULT_PYXIS_API_SECRET_NAME,
        ]

    def test_optional_secrets_in_order(self) -> None:
        spec = PipelineSpec(
            github_secret_name="gh",
            github_ssh_secret_name="ssh",
            docker_registry_secret_name="registry",
        )
        deps = secret_dependencies(spec)
        assert [d.secret_type for d in deps] == [
            "KubeconfigSecret",
            "GithubApiSecret",
            "GithubSSHSecret",
            "PyxisApiSecret",
            "DockerRegistrySecret",
        ]
        assert deps[1].name == "gh"
        assert deps[2].key == g.DEFAULT_GITHUB_SSH_SECRET_KEY
        assert deps[4].key == g.DEFAULT_DOCKER_REGISTRY_SECRET_KEY


class TestCheckSecret:
    def test_missing_secret(self, store) -> None:
        check = check_secret(store, "ns1", KUBECONFIG)
        assert (check.ok, check.reason) == (False, REASON_NOT_FOUND)

    def test_missing_key(self, store) -> None:
        store.put_secret("ns1", "kubeconfig", {"other": b"x"})
        check = check_secret(store, "ns1", KUBECONFIG)
        assert (check.ok, check.reason) == (False, REASON_KEY_NOT_FOUND)

    def test_empty_value(self, store) -> None:
        store.put_secret("ns1", "kubeconfig", {"kubeconfig": b""})
        check = check_secret(store, "ns1", KUBECONFIG)
        assert (check.ok, check.reason) == (False, REASON_KEY_DATA_INVALID)

    def test_valid(self, store) -> None:
        store.put_secret("ns1", "kubeconfig", {"kubeconfig": b"apiVersion: v1"})
        check = check_secret(store, "ns1", KUBECONFIG)
        assert (check.ok, check.reason) == (True, REASON_AS_EXPECTED)


class TestSecretsReconciler:
    def test_all_present(self, store, make_descriptor, required_secrets) -> None:
        required_secrets("ns1")
        assert SecretsReconciler(store).reconcile(make_descriptor(), Deadline.none()) is False

    def test_missing_secret_raises(self, store, make_descriptor) -> None:
        with pytest.raises(SecretNotFoundError, match="kubeconfig"):
            SecretsReconciler(store).reconcile(make_descriptor(), Deadline.none())

    def test_invalid_secret_raises(self, store, make_descriptor, required_secrets) -> None:
        required_secrets("ns1")
        store.put_secret("ns1", g.DEFAULT_PYXIS_API_SECRET_NAME, {g.DEFAULT_PYXIS_API_SECRET_KEY: b""})
        with pytest.raises(InvalidSecretError):
            SecretsReconciler(store).reconcile(make_descriptor(), Deadline.none())

    def test_named_optional_secret_is_required(self, store, make_descriptor, required_secrets) -> None:
        required_secrets("ns1")
        descriptor = make_descriptor(spec={"dockerRegistrySecretName": "registry"})
        with pytest.raises(SecretNotFoundError, match="registry"):
            SecretsReconciler(store).reconcile(descriptor, Deadline.none())
