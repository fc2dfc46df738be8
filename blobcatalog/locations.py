"""Location descriptors and the full-state mutation batches built from them."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Literal, Tuple

from .urls import build_object_url

LOCATION_API_VERSION = "backstage.io/v1alpha1"


@dataclass(frozen=True, slots=True)
class LocationDescriptor:
    """A URL location that the downstream catalog must be able to read."""

    target: str
    type: Literal["url"] = "url"
    presence: Literal["required", "optional"] = "required"

    @property
    def entity_name(self) -> str:
        digest = hashlib.sha1(f"{self.type}:{self.target}".encode("utf-8")).hexdigest()
        return f"generated-{digest}"

    def to_entity(self) -> Dict[str, Any]:
        """Render the descriptor as a catalog ``Location`` entity."""

        reference = f"{self.type}:{self.target}"
        return {
            "apiVersion": LOCATION_API_VERSION,
            "kind": "Location",
            "metadata": {
                "name": self.entity_name,
                "annotations": {
                    "backstage.io/managed-by-location": reference,
                    "backstage.io/managed-by-origin-location": reference,
                },
            },
            "spec": {
                "type": self.type,
                "target": self.target,
                "presence": self.presence,
            },
        }


@dataclass(frozen=True, slots=True)
class MutationBatch:
    """The complete set of locations currently owned by one source.

    Applying a batch replaces everything previously stored under
    ``source_key``; it is never merged with earlier batches.
    """

    source_key: str
    entities: Tuple[LocationDescriptor, ...] = field(default_factory=tuple)
    type: Literal["full"] = "full"

    @classmethod
    def full(cls, source_key: str, entities: Iterable[LocationDescriptor]) -> "MutationBatch":
        return cls(source_key=source_key, entities=tuple(entities))

    def __len__(self) -> int:
        return len(self.entities)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "sourceKey": self.source_key,
            "entities": [
                {"locationKey": self.source_key, "entity": location.to_entity()}
                for location in self.entities
            ],
        }


def location_for_key(endpoint: str, container: str, key: str) -> LocationDescriptor:
    """Map a discovered blob key to a required URL location."""

    return LocationDescriptor(target=build_object_url(endpoint, container, key))


__all__ = [
    "LOCATION_API_VERSION",
    "LocationDescriptor",
    "MutationBatch",
    "location_for_key",
]
