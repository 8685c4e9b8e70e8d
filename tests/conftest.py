from __future__ import annotations

import copy
import itertools
from collections.abc import Callable
from pathlib import Path
from typing import Any

import git
import pytest

from certoperator import global_config as g
from certoperator.descriptor import PipelineDescriptor
from certoperator.errors import ConflictError, NotFoundError
from certoperator.store import kinds
from certoperator.store.kinds import ResourceKind
from certoperator.store.objects import ManifestObject

PIPELINES_DIR = Path(g.PIPELINE_MANIFESTS_PATH)
TASKS_DIR = Path(g.TASK_MANIFESTS_PATH)

MUTATING_VERBS = {"create", "replace", "patch", "delete", "replace_status"}


def _merge_patch(target: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    for key, value in patch.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge_patch(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


class FakeStore:
    """In-memory stand-in for KubeStore.

    Assigns uids and resource versions, enforces optimistic concurrency on
    writes carrying a resourceVersion, and records every call in `calls`.
    Creating an ImageStreamImport creates the matching ImageStream.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str | None, str], dict[str, Any]] = {}
        self.secrets: dict[tuple[str, str], dict[str, bytes]] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self._uids = itertools.count(1)
        self._versions = itertools.count(1)

    # -- helpers for tests -------------------------------------------------

    @property
    def mutations(self) -> list[tuple[str, str, str]]:
        return [call for call in self.calls if call[0] in MUTATING_VERBS]

    def reset_calls(self) -> None:
        self.calls.clear()

    def fail(self, verb: str, kind: ResourceKind, error: Exception) -> None:
        self.failures[(verb, kind.kind)] = error

    def put(self, kind: ResourceKind, body: dict[str, Any]) -> ManifestObject:
        """Insert an object directly, without recording a call."""
        obj = ManifestObject(kind, copy.deepcopy(body))
        obj.metadata.setdefault("uid", f"uid-{next(self._uids)}")
        obj.metadata["resourceVersion"] = str(next(self._versions))
        self.objects[self._key(kind, obj.namespace, obj.name)] = obj.body
        return obj.copy()

    def stored(self, kind: ResourceKind, name: str, namespace: str | None = None) -> ManifestObject | None:
        body = self.objects.get(self._key(kind, namespace, name))
        return None if body is None else ManifestObject(kind, copy.deepcopy(body))

    def put_secret(self, namespace: str, name: str, data: dict[str, bytes]) -> None:
        self.secrets[(namespace, name)] = dict(data)

    # -- KubeStore interface ----------------------------------------------

    @staticmethod
    def _key(kind: ResourceKind, namespace: str | None, name: str) -> tuple[str, str | None, str]:
        return (kind.kind, namespace if kind.namespaced else None, name)

    def _record(self, verb: str, kind: ResourceKind, key: str) -> None:
        self.calls.append((verb, kind.kind, key))
        error = self.failures.get((verb, kind.kind))
        if error is not None:
            raise error

    def _existing(self, kind: ResourceKind, namespace: str | None, name: str) -> dict[str, Any]:
        body = self.objects.get(self._key(kind, namespace, name))
        if body is None:
            raise NotFoundError(f"{kind.kind} {namespace}/{name} not found", 404)
        return body

    def _check_version(self, live: dict[str, Any], resource_version: str | None) -> None:
        if resource_version and resource_version != live["metadata"]["resourceVersion"]:
            raise ConflictError("the object has been modified", 409)

    def get(self, kind, name, namespace=None, *, deadline=None) -> ManifestObject:
        self._record("get", kind, f"{namespace}/{name}")
        return ManifestObject(kind, copy.deepcopy(self._existing(kind, namespace, name)))

    def list(self, kind, namespace=None, labels=None, *, deadline=None) -> list[ManifestObject]:
        self._record("list", kind, str(namespace))
        result = []
        for (kind_name, ns, _), body in sorted(self.objects.items(), key=lambda item: str(item[0])):
            if kind_name != kind.kind:
                continue
            if kind.namespaced and namespace is not None and ns != namespace:
                continue
            obj = ManifestObject(kind, copy.deepcopy(body))
            if labels and not obj.has_labels(labels):
                continue
            result.append(obj)
        return result

    def create(self, obj, *, deadline=None) -> ManifestObject:
        self._record("create", obj.kind, obj.key)
        if self._key(obj.kind, obj.namespace, obj.name) in self.objects:
            raise ConflictError(f"{obj.key} already exists", 409)
        if obj.kind == kinds.IMAGE_STREAM_IMPORT:
            self.put(
                kinds.IMAGE_STREAM,
                {"metadata": {"name": obj.name, "namespace": obj.namespace}, "spec": {}},
            )
            return obj.copy()
        body = copy.deepcopy(obj.body)
        body["metadata"].pop("resourceVersion", None)
        body["metadata"]["generation"] = 1
        return self.put(obj.kind, body)

    def replace(self, obj, *, deadline=None) -> ManifestObject:
        self._record("replace", obj.kind, obj.key)
        live = self._existing(obj.kind, obj.namespace, obj.name)
        self._check_version(live, obj.resource_version)
        body = copy.deepcopy(obj.body)
        body["metadata"]["uid"] = live["metadata"]["uid"]
        body["metadata"]["resourceVersion"] = str(next(self._versions))
        if "status" in live:
            body["status"] = copy.deepcopy(live["status"])
        self.objects[self._key(obj.kind, obj.namespace, obj.name)] = body
        return ManifestObject(obj.kind, copy.deepcopy(body))

    def patch(self, kind, name, namespace, patch, *, deadline=None) -> ManifestObject:
        self._record("patch", kind, f"{namespace}/{name}")
        live = self._existing(kind, namespace, name)
        patch = copy.deepcopy(patch)
        self._check_version(live, patch.get("metadata", {}).pop("resourceVersion", None))
        _merge_patch(live, patch)
        live["metadata"]["resourceVersion"] = str(next(self._versions))
        return ManifestObject(kind, copy.deepcopy(live))

    def delete(self, kind, name, namespace=None, *, deadline=None) -> None:
        self._record("delete", kind, f"{namespace}/{name}")
        self._existing(kind, namespace, name)
        del self.objects[self._key(kind, namespace, name)]

    def replace_status(self, obj, *, deadline=None) -> ManifestObject:
        self._record("replace_status", obj.kind, obj.key)
        live = self._existing(obj.kind, obj.namespace, obj.name)
        self._check_version(live, obj.resource_version)
        live["status"] = copy.deepcopy(obj.body.get("status") or {})
        live["metadata"]["resourceVersion"] = str(next(self._versions))
        return ManifestObject(obj.kind, copy.deepcopy(live))

    def get_secret_data(self, name, namespace, *, deadline=None) -> dict[str, bytes]:
        self.calls.append(("get", "Secret", f"{namespace}/{name}"))
        try:
            return dict(self.secrets[(namespace, name)])
        except KeyError:
            raise NotFoundError(f"secret {namespace}/{name} not found", 404) from None


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def make_descriptor(store: FakeStore) -> Callable[..., PipelineDescriptor]:
    """Factory that stores an OperatorPipeline and returns a descriptor view of it."""

    def _make(
        name: str = "pipelines",
        namespace: str = "ns1",
        spec: dict[str, Any] | None = None,
        **metadata: Any,
    ) -> PipelineDescriptor:
        body = {
            "metadata": {"name": name, "namespace": namespace, "generation": 1, **metadata},
            "spec": spec if spec is not None else {"operatorPipelinesRelease": "v1.1.0"},
        }
        obj = store.put(kinds.OPERATOR_PIPELINE, body)
        return PipelineDescriptor(obj)

    return _make


@pytest.fixture
def required_secrets(store: FakeStore) -> Callable[[str], None]:
    """Populate the default secrets every descriptor requires in a namespace."""

    def _populate(namespace: str = "ns1") -> None:
        store.put_secret(namespace, g.DEFAULT_KUBECONFIG_SECRET_NAME, {g.DEFAULT_KUBECONFIG_SECRET_KEY: b"config"})
        store.put_secret(namespace, g.DEFAULT_GITHUB_API_SECRET_NAME, {g.DEFAULT_GITHUB_API_SECRET_KEY: b"token"})
        store.put_secret(namespace, g.DEFAULT_PYXIS_API_SECRET_NAME, {g.DEFAULT_PYXIS_API_SECRET_KEY: b"key"})

    return _populate


def pipeline_yaml(name: str) -> str:
    return f"apiVersion: tekton.dev/v1beta1\nkind: Pipeline\nmetadata:\n  name: {name}\nspec:\n  tasks: []\n"


def task_yaml(name: str, image: str = "registry.example/task:1") -> str:
    return (
        "apiVersion: tekton.dev/v1beta1\nkind: Task\n"
        f"metadata:\n  name: {name}\nspec:\n  steps:\n    - name: run\n      image: {image}\n"
    )


def write_manifest_tree(root: Path, *, task_image: str = "registry.example/task:1") -> list[Path]:
    """Lay out the pipeline and task manifests the engine reads, returning the written paths."""
    pipelines = root / PIPELINES_DIR
    tasks = root / TASKS_DIR
    pipelines.mkdir(parents=True, exist_ok=True)
    tasks.mkdir(parents=True, exist_ok=True)
    files = {
        pipelines / g.CI_PIPELINE_YML: pipeline_yaml("operator-ci-pipeline"),
        pipelines / g.HOSTED_PIPELINE_YML: pipeline_yaml("operator-hosted-pipeline"),
        pipelines / g.RELEASE_PIPELINE_YML: pipeline_yaml("operator-release-pipeline"),
        tasks / "bundle-path-validation.yml": task_yaml("bundle-path-validation", task_image),
        tasks / "content-hash.yml": task_yaml("content-hash", task_image),
    }
    for path, text in files.items():
        path.write_text(text, encoding="utf-8")
    return list(files)


@pytest.fixture
def git_actor() -> git.Actor:
    return git.Actor("Test Author", "author@example.com")


@pytest.fixture
def upstream_repo(tmp_path: Path, git_actor: git.Actor) -> git.Repo:
    """
    A local "remote" manifest repository with two tagged releases.

    - v1.0.0: tasks use image :1
    - v1.1.0 (and main): tasks use image :2
    """
    path = tmp_path / "upstream"
    repo = git.Repo.init(path, initial_branch="main")

    written = write_manifest_tree(path, task_image="registry.example/task:1")
    repo.index.add([str(p.relative_to(path)) for p in written])
    repo.index.commit("release 1.0.0", author=git_actor, committer=git_actor)
    repo.create_tag("v1.0.0")

    written = write_manifest_tree(path, task_image="registry.example/task:2")
    repo.index.add([str(p.relative_to(path)) for p in written])
    repo.index.commit("release 1.1.0", author=git_actor, committer=git_actor)
    repo.create_tag("v1.1.0")
    return repo


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    return tmp_path / "git" / g.REPO_DIR_NAME
