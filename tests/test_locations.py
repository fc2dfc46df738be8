"""Tests for location descriptors and mutation batches."""

from __future__ import annotations

from blobcatalog.locations import LocationDescriptor, MutationBatch, location_for_key


def test_location_for_key_builds_required_url_location() -> None:
    location = location_for_key(
        "https://acct.blob.core.windows.net/", "catalog", "services/api.yaml"
    )

    assert location == LocationDescriptor(
        target="https://acct.blob.core.windows.net/catalog/services/api.yaml"
    )
    assert location.type == "url"
    assert location.presence == "required"


def test_to_entity_is_stable_for_the_same_target() -> None:
    first = LocationDescriptor(target="https://acct.host/catalog/a.yaml").to_entity()
    second = LocationDescriptor(target="https://acct.host/catalog/a.yaml").to_entity()
    other = LocationDescriptor(target="https://acct.host/catalog/b.yaml").to_entity()

    assert first == second
    assert first["kind"] == "Location"
    assert first["metadata"]["name"].startswith("generated-")
    assert first["metadata"]["name"] != other["metadata"]["name"]
    assert first["spec"] == {
        "type": "url",
        "target": "https://acct.host/catalog/a.yaml",
        "presence": "required",
    }


def test_full_batch_payload_keys_every_entity_by_source() -> None:
    batch = MutationBatch.full(
        "azureBlobStorage-provider:docs",
        [
            LocationDescriptor(target="https://acct.host/catalog/a.yaml"),
            LocationDescriptor(target="https://acct.host/catalog/b.yaml"),
        ],
    )

    payload = batch.to_payload()

    assert len(batch) == 2
    assert payload["type"] == "full"
    assert payload["sourceKey"] == "azureBlobStorage-provider:docs"
    assert [item["locationKey"] for item in payload["entities"]] == [
        "azureBlobStorage-provider:docs",
        "azureBlobStorage-provider:docs",
    ]
