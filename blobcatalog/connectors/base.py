"""Connector interfaces for listing and downloading blobs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Iterator, List, Protocol

if TYPE_CHECKING:
    from ..config import IntegrationConfig


@dataclass(frozen=True, slots=True)
class BlobItem:
    """Metadata describing a blob returned by a listing."""

    name: str
    last_modified: datetime | None = None
    etag: str | None = None
    size: int | None = None


class BlobDownload(Protocol):
    """An open streaming download of a single blob."""

    etag: str | None
    last_modified: datetime | None

    def chunks(self) -> Iterator[bytes]:
        """Yield the blob body; stops with an error once ``close`` was called."""

    def close(self) -> None:
        """Abort the download. Safe to call more than once and from any thread."""


class StorageBackend(Protocol):
    """Abstract representation of one storage account endpoint."""

    @property
    def url(self) -> str:
        """Public endpoint of the account, used to build object URLs."""

    def list_blobs(self, container: str, prefix: str = "") -> List[BlobItem]:
        """Return every blob under ``prefix``, draining all listing pages."""

    def open_download(
        self,
        container: str,
        path: str,
        *,
        etag: str | None = None,
        if_modified_since: datetime | None = None,
    ) -> BlobDownload:
        """Start a download, raising ``NotModifiedError`` when conditions say so."""


BackendFactory = Callable[["IntegrationConfig"], StorageBackend]


__all__ = ["BackendFactory", "BlobDownload", "BlobItem", "StorageBackend"]
