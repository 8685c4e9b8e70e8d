"""Ensure the operator index image streams exist in the descriptor's namespace."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .. import global_config as g
from ..catalog import CatalogClient
from ..descriptor import PipelineDescriptor
from ..errors import NotFoundError, StoreError
from ..store import kinds
from ..store.client import KubeStore
from ..store.objects import ManifestObject
from ..utils.deadline import Deadline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexImage:
    """An operator index published by the catalog and imported as an image stream."""

    index_type: str
    stream_name: str
    organization: str
    registry: str


CERTIFIED_INDEX = IndexImage("CertifiedIndex", g.CERTIFIED_INDEX, g.CERTIFIED_ORGANIZATION, g.CERTIFIED_REGISTRY)
MARKETPLACE_INDEX = IndexImage(
    "MarketplaceIndex", g.MARKETPLACE_INDEX, g.MARKETPLACE_ORGANIZATION, g.MARKETPLACE_REGISTRY
)
INDEX_IMAGES: tuple[IndexImage, ...] = (CERTIFIED_INDEX, MARKETPLACE_INDEX)


def image_import_spec(image_ref: str) -> dict:
    return {
        "from": {"kind": "DockerImage", "name": image_ref},
        "importPolicy": {"scheduled": True},
        "referencePolicy": {"type": "Local"},
    }


def new_image_stream_import(index: IndexImage, namespace: str, tags: list[str]) -> ManifestObject:
    """Build an ImageStreamImport importing `<registry>:<tag>` for every tag."""
    return ManifestObject(
        kinds.IMAGE_STREAM_IMPORT,
        {
            "metadata": {"name": index.stream_name, "namespace": namespace},
            "spec": {
                "import": True,
                "images": [image_import_spec(f"{index.registry}:{tag}") for tag in tags],
            },
        },
    )


class ImageStreamReconciler:
    """Ensure one index image stream is present and owned by the descriptor.

    An existing stream without a controller is adopted; failures to do so
    are logged and left for the next pass. A missing stream is created
    through an ImageStreamImport covering every active platform version the
    catalog reports, or `latest` when no catalog client is configured.
    """

    def __init__(self, store: KubeStore, index: IndexImage, catalog: CatalogClient | None = None) -> None:
        self.store = store
        self.index = index
        self.catalog = catalog

    @property
    def name(self) -> str:
        return f"{self.index.stream_name}-image-stream"

    def reconcile(self, descriptor: PipelineDescriptor, deadline: Deadline) -> bool:
        namespace = descriptor.namespace
        try:
            stream = self.store.get(kinds.IMAGE_STREAM, self.index.stream_name, namespace, deadline=deadline)
        except NotFoundError:
            stream = None

        if stream is not None:
            logger.debug("Existing %s image stream found in %s", self.index.stream_name, namespace)
            self._adopt(stream, descriptor, deadline)
            return False

        tags = self._tags(deadline)
        image_import = new_image_stream_import(self.index, namespace, tags)
        logger.info(
            "Creating %s image stream import in %s (%d tags)", self.index.stream_name, namespace, len(tags)
        )
        self.store.create(image_import, deadline=deadline)

        # The import creates the stream synchronously; adopt it in the same pass.
        try:
            stream = self.store.get(kinds.IMAGE_STREAM, self.index.stream_name, namespace, deadline=deadline)
        except NotFoundError:
            return False
        self._adopt(stream, descriptor, deadline)
        return False

    def _tags(self, deadline: Deadline) -> list[str]:
        if self.catalog is None:
            return ["latest"]
        indices = self.catalog.find_operator_indices(self.index.organization, deadline=deadline)
        return [f"v{index.ocp_version}" for index in indices]

    def _adopt(self, stream: ManifestObject, descriptor: PipelineDescriptor, deadline: Deadline) -> None:
        # Already ours, or controlled by another descriptor in the namespace.
        if stream.has_controller():
            return
        try:
            stream.set_controller_reference(descriptor.obj)
            self.store.replace(stream, deadline=deadline)
        except (ValueError, StoreError) as exc:
            logger.info(
                "unable to set owner on %s image stream, this resource will need to be cleaned up "
                "manually on uninstall: %s",
                self.index.stream_name,
                exc,
            )
            return
        logger.info("Set owner reference on %s image stream", self.index.stream_name)
