"""Azure Blob Storage connector."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from azure.core import MatchConditions
from azure.core.exceptions import HttpResponseError, ResourceNotModifiedError
from azure.storage.blob import BlobServiceClient

from ..config import IntegrationConfig
from ..credentials import Credential, CredentialsManager
from ..errors import CanceledError, NotModifiedError
from .base import BackendFactory, BlobDownload, BlobItem, StorageBackend

LOGGER = logging.getLogger(__name__)

# The first ranged GET runs inside download_blob() and cannot be interrupted;
# keeping ranges small bounds how long an aborted download keeps running.
FIRST_RANGE_SIZE = 256 * 1024
CHUNK_SIZE = 1024 * 1024


class AzureBlobDownload(BlobDownload):
    """Chunked read over an Azure ``StorageStreamDownloader``."""

    def __init__(self, downloader: Any, name: str):
        self._downloader = downloader
        self._name = name
        self._closed = threading.Event()
        properties = downloader.properties
        self.etag: Optional[str] = getattr(properties, "etag", None)
        self.last_modified: Optional[datetime] = getattr(properties, "last_modified", None)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def chunks(self) -> Iterator[bytes]:
        if self._closed.is_set():
            raise CanceledError(f"Download of {self._name} was aborted")
        for chunk in self._downloader.chunks():
            if self._closed.is_set():
                raise CanceledError(f"Download of {self._name} was aborted")
            yield chunk

    def close(self) -> None:
        if not self._closed.is_set():
            LOGGER.debug("Aborting download of %s", self._name)
        self._closed.set()


class AzureBlobBackend(StorageBackend):
    """Interact with one Azure storage account through ``BlobServiceClient``."""

    def __init__(
        self,
        account_url: str,
        credential: Credential,
        *,
        page_size: int = 5000,
        first_range_size: int = FIRST_RANGE_SIZE,
        chunk_size: int = CHUNK_SIZE,
        service_client: Optional[Any] = None,
    ):
        self._account_url = account_url
        self._page_size = page_size
        self._service = service_client or BlobServiceClient(
            account_url=account_url,
            credential=credential.authorize(),
            max_single_get_size=first_range_size,
            max_chunk_get_size=chunk_size,
        )

    @property
    def url(self) -> str:
        return getattr(self._service, "url", None) or self._account_url

    def list_blobs(self, container: str, prefix: str = "") -> List[BlobItem]:
        container_client = self._service.get_container_client(container)
        pages = container_client.list_blobs(
            name_starts_with=prefix or None,
            results_per_page=self._page_size,
        ).by_page()
        items: List[BlobItem] = []
        page_count = 0
        for page in pages:
            page_count += 1
            for blob in page:
                if not blob.name:
                    continue
                items.append(
                    BlobItem(
                        name=blob.name,
                        last_modified=getattr(blob, "last_modified", None),
                        etag=getattr(blob, "etag", None),
                        size=getattr(blob, "size", None),
                    )
                )
        LOGGER.debug(
            "Listed %s blob(s) in %s page(s) from container %s (prefix=%r)",
            len(items),
            page_count,
            container,
            prefix,
        )
        return items

    def open_download(
        self,
        container: str,
        path: str,
        *,
        etag: Optional[str] = None,
        if_modified_since: Optional[datetime] = None,
    ) -> AzureBlobDownload:
        blob_client = self._service.get_blob_client(container=container, blob=path)
        kwargs: Dict[str, Any] = {}
        if etag:
            kwargs["etag"] = etag
            kwargs["match_condition"] = MatchConditions.IfModified
        if if_modified_since is not None:
            kwargs["if_modified_since"] = if_modified_since
        try:
            downloader = blob_client.download_blob(**kwargs)
        except ResourceNotModifiedError as exc:
            raise NotModifiedError(cause=exc) from exc
        except HttpResponseError as exc:
            if exc.status_code == 304:
                raise NotModifiedError(cause=exc) from exc
            raise
        return AzureBlobDownload(downloader, f"{container}/{path}")


def azure_backend_factory(credentials: CredentialsManager) -> BackendFactory:
    """Return a factory that opens an Azure backend using ``credentials``."""

    def _factory(integration: IntegrationConfig) -> AzureBlobBackend:
        credential = credentials.get_credentials(integration.account_name)
        return AzureBlobBackend(integration.account_url, credential)

    return _factory


__all__ = ["AzureBlobBackend", "AzureBlobDownload", "azure_backend_factory"]
