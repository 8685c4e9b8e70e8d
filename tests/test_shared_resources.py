"""Tests for reference-counted cleanup of shared cluster resources."""

from __future__ import annotations

import pytest

from certoperator.errors import NotFoundError
from certoperator.pipeline.manifests import shared_labels
from certoperator.pipeline.shared import SharedResourceLifecycle
from certoperator.store import kinds
from certoperator.utils.deadline import Deadline


@pytest.fixture
def shared_objects(store):
    """Cluster role, SCC and one binding per namespace, labelled as shared."""

    def _populate(*namespaces: str) -> None:
        store.put(kinds.CLUSTER_ROLE, {"metadata": {"name": "operator-pipeline-role", "labels": shared_labels()}})
        store.put(
            kinds.SECURITY_CONTEXT_CONSTRAINTS,
            {"metadata": {"name": "operator-pipeline-scc", "labels": shared_labels()}},
        )
        for namespace in namespaces:
            labels = {**shared_labels(), **shared_labels(namespace)}
            store.put(
                kinds.CLUSTER_ROLE_BINDING,
                {"metadata": {"name": f"operator-pipeline-role-binding-{namespace}", "labels": labels}},
            )

    return _populate


@pytest.mark.unit
def test_last_descriptor_in_cluster_removes_everything(store, make_descriptor, shared_objects) -> None:
    shared_objects("ns1")
    descriptor = make_descriptor()

    deleted = SharedResourceLifecycle(store).finalize(descriptor, Deadline.none())

    assert deleted == {"ClusterRoleBinding": 1, "ClusterRole": 1, "SecurityContextConstraints": 1}
    assert {key[0] for key in store.objects} == {"OperatorPipeline"}


@pytest.mark.unit
def test_sibling_in_namespace_keeps_binding(store, make_descriptor, shared_objects) -> None:
    shared_objects("ns1")
    descriptor = make_descriptor(name="a")
    make_descriptor(name="b")

    deleted = SharedResourceLifecycle(store).finalize(descriptor, Deadline.none())

    assert deleted == {}
    assert store.stored(kinds.CLUSTER_ROLE_BINDING, "operator-pipeline-role-binding-ns1") is not None
    assert store.stored(kinds.CLUSTER_ROLE, "operator-pipeline-role") is not None


@pytest.mark.unit
def test_descriptor_elsewhere_keeps_cluster_resources(store, make_descriptor, shared_objects) -> None:
    shared_objects("ns1", "ns2")
    descriptor = make_descriptor(namespace="ns1")
    make_descriptor(namespace="ns2")

    deleted = SharedResourceLifecycle(store).finalize(descriptor, Deadline.none())

    assert deleted == {"ClusterRoleBinding": 1}
    assert store.stored(kinds.CLUSTER_ROLE_BINDING, "operator-pipeline-role-binding-ns1") is None
    assert store.stored(kinds.CLUSTER_ROLE_BINDING, "operator-pipeline-role-binding-ns2") is not None
    assert store.stored(kinds.SECURITY_CONTEXT_CONSTRAINTS, "operator-pipeline-scc") is not None


@pytest.mark.unit
def test_concurrent_delete_is_absorbed(store, make_descriptor, shared_objects) -> None:
    shared_objects("ns1")
    descriptor = make_descriptor()
    store.fail("delete", kinds.CLUSTER_ROLE, NotFoundError("gone", 404))

    deleted = SharedResourceLifecycle(store).finalize(descriptor, Deadline.none())

    assert deleted["ClusterRole"] == 0
    assert deleted["SecurityContextConstraints"] == 1
