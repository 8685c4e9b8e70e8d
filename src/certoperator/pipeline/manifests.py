"""Create-or-update and delete of objects defined by YAML manifest files.

The algorithm is written once against `ManifestObject` and applies to every
kind the operator manages. Namespaced objects are forced into the owner's
namespace and controlled by the descriptor, so they are garbage-collected
with it. Cluster-scoped objects cannot carry a same-namespace owner
reference; they are labelled as shared resources instead and cleaned up by
reference counting (see `certoperator.pipeline.shared`).
"""

from __future__ import annotations

import contextlib
import logging
import string
import tempfile
from collections.abc import Iterator
from pathlib import Path

import yaml

from .. import global_config as g
from ..descriptor import PipelineDescriptor
from ..errors import InvalidManifestError, NotFoundError
from ..store.client import KubeStore
from ..store.kinds import ResourceKind
from ..store.objects import ManifestObject
from ..utils.deadline import Deadline

logger = logging.getLogger(__name__)


def shared_labels(namespace: str | None = None) -> dict[str, str]:
    """Labels marking a cluster-scoped shared resource, optionally per owning namespace."""
    labels = {g.CLUSTER_RESOURCE_LABEL: "true"}
    if namespace:
        labels[g.NAMESPACE_LABEL] = namespace
    return labels


def load_manifest(path: Path, kind: ResourceKind) -> ManifestObject:
    """Read and deserialize one manifest file into an object of `kind`.

    Args:
        path: YAML file holding a single object.
        kind: Kind the file is expected to declare.

    Returns:
        ManifestObject wrapping the parsed body.

    Raises:
        OSError: If the file cannot be read.
        InvalidManifestError: If the YAML is malformed, is not a single
            object with metadata.name, or declares a different kind.
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        body = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise InvalidManifestError(f"could not parse {path}: {exc}") from exc

    if not isinstance(body, dict):
        raise InvalidManifestError(f"{path} does not contain an object")
    metadata = body.get("metadata")
    if not isinstance(metadata, dict) or not metadata.get("name"):
        raise InvalidManifestError(f"{path} has no metadata.name")
    if body.get("kind", kind.kind) != kind.kind:
        raise InvalidManifestError(f"{path} declares kind {body.get('kind')}, expected {kind.kind}")
    return ManifestObject(kind, body)


@contextlib.contextmanager
def rendered_template(template: Path, namespace: str) -> Iterator[Path]:
    """Render a per-namespace manifest template into a temporary file.

    The template uses `string.Template` placeholders (`${namespace}`). The
    rendered file only exists inside the `with` block.
    """
    text = string.Template(Path(template).read_text(encoding="utf-8")).substitute(namespace=namespace)
    with tempfile.TemporaryDirectory(prefix=f"{g.PACKAGE_NAME}-") as tmp:
        rendered = Path(tmp) / Path(template).name
        rendered.write_text(text, encoding="utf-8")
        yield rendered


def _contains(live: object, desired: object) -> bool:
    """True if every field set in `desired` has the same value in `live`.

    Fields the server defaults on top of the manifest are ignored.
    """
    if isinstance(desired, dict) and isinstance(live, dict):
        return all(key in live and _contains(live[key], value) for key, value in desired.items())
    return live == desired


class ManifestReconciler:
    """Apply or delete the object described by one manifest file."""

    def __init__(self, store: KubeStore) -> None:
        self.store = store

    def _desired(
        self,
        path: Path,
        owner: PipelineDescriptor,
        kind: ResourceKind,
        labels: dict[str, str] | None,
    ) -> ManifestObject:
        desired = load_manifest(path, kind)
        if kind.namespaced:
            desired.set_namespace(owner.namespace)
        else:
            desired.set_labels(shared_labels())
        if labels:
            desired.set_labels(labels)
        return desired

    def _fetch(self, desired: ManifestObject, deadline: Deadline | None) -> ManifestObject | None:
        try:
            return self.store.get(desired.kind, desired.name, desired.namespace, deadline=deadline)
        except NotFoundError:
            return None

    @staticmethod
    def _up_to_date(desired: ManifestObject, live: ManifestObject) -> bool:
        if not _contains(live.content(), desired.content()):
            return False
        if not live.has_labels(desired.labels):
            return False
        return not desired.kind.namespaced or live.has_controller()

    def apply(
        self,
        path: Path,
        owner: PipelineDescriptor,
        kind: ResourceKind,
        *,
        labels: dict[str, str] | None = None,
        deadline: Deadline | None = None,
    ) -> ManifestObject:
        """Create the manifest's object, or replace it if it already exists.

        An existing object that already matches the manifest is left alone,
        so repeated applies issue no writes.

        Args:
            path: Manifest file.
            owner: Descriptor owning (namespaced) or referencing (cluster) the object.
            kind: Expected object kind.
            labels: Extra labels to set, e.g. the owning-namespace label.
            deadline: Pass deadline.

        Returns:
            The live object after the operation.

        Raises:
            InvalidManifestError: If the manifest cannot be deserialized.
            StoreError: For any store failure other than not-found on the
                existence check.
        """
        desired = self._desired(path, owner, kind, labels)
        live = self._fetch(desired, deadline)

        if live is None or not live.uid:
            if kind.namespaced:
                desired.set_controller_reference(owner.obj)
            logger.info("Creating %s %s from %s", kind.kind, desired.key, Path(path).name)
            return self.store.create(desired, deadline=deadline)

        if self._up_to_date(desired, live):
            logger.debug("%s %s is up to date", kind.kind, desired.key)
            return live

        desired.metadata["resourceVersion"] = live.resource_version
        desired.metadata["labels"] = {**live.labels, **desired.labels}
        if live.owner_references:
            desired.metadata["ownerReferences"] = live.owner_references
        # Objects shared by several descriptors in a namespace keep their first controller.
        if kind.namespaced and not live.has_controller():
            desired.set_controller_reference(owner.obj)
        logger.info("Updating %s %s from %s", kind.kind, desired.key, Path(path).name)
        return self.store.replace(desired, deadline=deadline)

    def apply_template(
        self,
        template: Path,
        owner: PipelineDescriptor,
        kind: ResourceKind,
        *,
        labels: dict[str, str] | None = None,
        deadline: Deadline | None = None,
    ) -> ManifestObject:
        """Render a per-namespace template for `owner` and apply it."""
        with rendered_template(template, owner.namespace) as rendered:
            return self.apply(rendered, owner, kind, labels=labels, deadline=deadline)

    def delete(
        self,
        path: Path,
        owner: PipelineDescriptor,
        kind: ResourceKind,
        *,
        deadline: Deadline | None = None,
    ) -> bool:
        """Delete the manifest's object if it exists.

        Returns:
            True if a delete was issued, False if the object was already absent.
        """
        desired = load_manifest(path, kind)
        desired.set_namespace(owner.namespace)
        if self._fetch(desired, deadline) is None:
            logger.debug("%s %s already absent", kind.kind, desired.key)
            return False
        try:
            self.store.delete(kind, desired.name, desired.namespace, deadline=deadline)
        except NotFoundError:
            return False
        logger.info("Deleted %s %s", kind.kind, desired.key)
        return True
