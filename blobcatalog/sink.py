"""Downstream sinks that receive full location mutations."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Protocol

from .locations import MutationBatch

LOGGER = logging.getLogger(__name__)


class EntityProviderConnection(Protocol):
    """Receiver of the authoritative location set for each source."""

    def apply_mutation(self, batch: MutationBatch) -> None:
        """Replace everything held under ``batch.source_key`` with the batch."""


@dataclass(slots=True)
class JsonFileSink:
    """Persist the latest full batch per source key in a JSON document."""

    path: Path
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.path = self.path.expanduser().resolve()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self._write_state({"sources": {}})

    def _read_state(self) -> Dict[str, Any]:
        with self.path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def _write_state(self, state: Dict[str, Any]) -> None:
        tmp_path = self.path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(state, handle, indent=2, sort_keys=True)
        tmp_path.replace(self.path)

    def apply_mutation(self, batch: MutationBatch) -> None:
        payload = batch.to_payload()
        with self._lock:
            state = self._read_state()
            sources = state.setdefault("sources", {})
            previous = sources.get(batch.source_key, {}).get("entities", [])
            sources[batch.source_key] = {
                "entities": payload["entities"],
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            self._write_state(state)
        LOGGER.debug(
            "Replaced %s location(s) for %s with %s",
            len(previous),
            batch.source_key,
            len(batch),
        )

    def entities(self, source_key: str) -> List[Dict[str, Any]]:
        with self._lock:
            state = self._read_state()
            return list(state.get("sources", {}).get(source_key, {}).get("entities", []))

    def targets(self, source_key: str) -> List[str]:
        """Return the location targets currently held for ``source_key``."""

        return [item["entity"]["spec"]["target"] for item in self.entities(source_key)]


__all__ = ["EntityProviderConnection", "JsonFileSink"]
