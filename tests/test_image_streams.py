"""Tests for the operator index image stream reconciler."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from certoperator.catalog import CatalogClient, OperatorIndex
from certoperator.errors import CatalogError, ConflictError
from certoperator.pipeline.image_streams import (
    CERTIFIED_INDEX,
    MARKETPLACE_INDEX,
    ImageStreamReconciler,
    new_image_stream_import,
)
from certoperator.store import kinds
from certoperator.utils.deadline import Deadline


def _catalog(*versions: str) -> MagicMock:
    catalog = MagicMock(spec=CatalogClient)
    catalog.find_operator_indices.return_value = [OperatorIndex(v, "certified-operators") for v in versions]
    return catalog


@pytest.mark.unit
def test_import_spec_lists_every_tag() -> None:
    image_import = new_image_stream_import(CERTIFIED_INDEX, "ns1", ["v4.14", "v4.15"])
    images = image_import.body["spec"]["images"]
    assert image_import.body["spec"]["import"] is True
    assert [i["from"]["name"] for i in images] == [
        f"{CERTIFIED_INDEX.registry}:v4.14",
        f"{CERTIFIED_INDEX.registry}:v4.15",
    ]
    assert images[0]["importPolicy"] == {"scheduled": True}
    assert images[0]["referencePolicy"] == {"type": "Local"}


@pytest.mark.unit
def test_creates_and_adopts_stream(store, make_descriptor) -> None:
    descriptor = make_descriptor()
    catalog = _catalog("4.14", "4.15")

    ImageStreamReconciler(store, CERTIFIED_INDEX, catalog).reconcile(descriptor, Deadline.none())

    catalog.find_operator_indices.assert_called_once()
    assert catalog.find_operator_indices.call_args.args[0] == CERTIFIED_INDEX.organization
    stream = store.stored(kinds.IMAGE_STREAM, CERTIFIED_INDEX.stream_name, "ns1")
    assert stream is not None
    assert stream.is_owned_by(descriptor.obj)


@pytest.mark.unit
def test_existing_owned_stream_is_untouched(store, make_descriptor) -> None:
    descriptor = make_descriptor()
    reconciler = ImageStreamReconciler(store, MARKETPLACE_INDEX)
    reconciler.reconcile(descriptor, Deadline.none())
    store.reset_calls()

    reconciler.reconcile(descriptor, Deadline.none())

    assert store.mutations == []


@pytest.mark.unit
def test_without_catalog_imports_latest(store, make_descriptor) -> None:
    descriptor = make_descriptor()
    created = []
    original_create = store.create

    def _capture(obj, *, deadline=None):
        created.append(obj)
        return original_create(obj, deadline=deadline)

    store.create = _capture
    ImageStreamReconciler(store, MARKETPLACE_INDEX).reconcile(descriptor, Deadline.none())

    assert created[0].kind == kinds.IMAGE_STREAM_IMPORT
    assert created[0].body["spec"]["images"][0]["from"]["name"] == f"{MARKETPLACE_INDEX.registry}:latest"


@pytest.mark.unit
def test_adoption_failure_is_not_fatal(store, make_descriptor) -> None:
    descriptor = make_descriptor()
    store.put(kinds.IMAGE_STREAM, {"metadata": {"name": CERTIFIED_INDEX.stream_name, "namespace": "ns1"}})
    store.fail("replace", kinds.IMAGE_STREAM, ConflictError("stale", 409))

    assert ImageStreamReconciler(store, CERTIFIED_INDEX).reconcile(descriptor, Deadline.none()) is False


@pytest.mark.unit
def test_catalog_failure_propagates(store, make_descriptor) -> None:
    catalog = MagicMock(spec=CatalogClient)
    catalog.find_operator_indices.side_effect = CatalogError("unavailable")
    with pytest.raises(CatalogError):
        ImageStreamReconciler(store, CERTIFIED_INDEX, catalog).reconcile(make_descriptor(), Deadline.none())
    assert store.stored(kinds.IMAGE_STREAM, CERTIFIED_INDEX.stream_name, "ns1") is None
