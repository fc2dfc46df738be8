"""Read single blobs or whole blob trees by URL."""

from __future__ import annotations

import hashlib
import io
import logging
import posixpath
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Iterator, List, Optional, Sequence, Set, Tuple
from urllib.parse import urlparse

from .cancel import CancelSignal
from .config import AppConfig, IntegrationConfig
from .connectors.azure_blob import azure_backend_factory
from .connectors.base import BackendFactory, BlobDownload, BlobItem, StorageBackend
from .credentials import CredentialsManager, DefaultCredentialsManager
from .errors import (
    BlobCatalogError,
    CanceledError,
    NotModifiedError,
    ReadFailedError,
    UnsupportedError,
)
from .urls import ParsedBlobUrl, parse_url

LOGGER = logging.getLogger(__name__)

DEFAULT_TREE_CONCURRENCY = 4


@dataclass(slots=True)
class ReadUrlResponse:
    """Result of a single blob read."""

    content: bytes = field(repr=False)
    etag: Optional[str] = None
    last_modified_at: Optional[datetime] = None

    def stream(self) -> BinaryIO:
        """Return a new binary stream over the blob content."""

        return io.BytesIO(self.content)

    def buffer(self) -> bytes:
        return self.content


@dataclass(frozen=True, slots=True)
class TreeEntry:
    """One blob of a tree, addressed relative to the requested prefix."""

    relative_path: str
    content: bytes = field(repr=False)
    last_modified_at: Optional[datetime] = None
    etag: Optional[str] = None

    def stream(self) -> BinaryIO:
        return io.BytesIO(self.content)


class ReadTreeResponse:
    """The entries of a tree read; they can be consumed exactly once."""

    def __init__(self, entries: Sequence[TreeEntry]):
        self._entries: Optional[List[TreeEntry]] = list(entries)
        self.etag = self._compute_etag(self._entries)

    def __len__(self) -> int:
        return len(self._entries or [])

    def files(self) -> Iterator[TreeEntry]:
        entries = self._take()
        yield from entries

    def write_to_directory(self, directory: str | Path) -> List[Path]:
        """Write every entry below ``directory`` and return the written paths."""

        root = Path(directory).expanduser().resolve()
        written: List[Path] = []
        for entry in self._take():
            target = (root / entry.relative_path).resolve()
            if root != target and root not in target.parents:
                raise BlobCatalogError(
                    f"Tree entry escapes target directory: {entry.relative_path}"
                )
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(entry.content)
            written.append(target)
        return written

    def _take(self) -> List[TreeEntry]:
        if self._entries is None:
            raise RuntimeError("Tree response has already been consumed")
        entries, self._entries = self._entries, None
        return entries

    @staticmethod
    def _compute_etag(entries: Sequence[TreeEntry]) -> str:
        digest = hashlib.sha1()
        for entry in sorted(entries, key=lambda item: item.relative_path):
            digest.update(entry.relative_path.encode("utf-8"))
            digest.update(b"\0")
            digest.update((entry.etag or "").encode("utf-8"))
            digest.update(b"\0")
        return digest.hexdigest()


class _OpenDownloads:
    """Track every download opened for one read so an abort closes all of them.

    ``aborted`` fires when the caller's signal does or when ``abort_all`` is
    called after a sibling failure; downloads registered later are closed on
    arrival.
    """

    def __init__(self, signal: Optional[CancelSignal]):
        self._lock = threading.Lock()
        self._open: Set[BlobDownload] = set()
        self._aborted = False
        self.aborted = CancelSignal()
        self._unregister = signal.add_callback(self.abort_all) if signal else None

    def add(self, download: BlobDownload) -> None:
        with self._lock:
            if not self._aborted:
                self._open.add(download)
                return
        download.close()
        raise CanceledError()

    def discard(self, download: BlobDownload) -> None:
        with self._lock:
            self._open.discard(download)

    def abort_all(self) -> None:
        with self._lock:
            self._aborted = True
            downloads = list(self._open)
            self._open.clear()
        self.aborted.cancel()
        for download in downloads:
            download.close()

    def __enter__(self) -> "_OpenDownloads":
        return self

    def __exit__(self, *exc_info) -> None:
        if self._unregister is not None:
            self._unregister()
        with self._lock:
            leftovers = list(self._open)
            self._open.clear()
        for download in leftovers:
            download.close()


def _close_abandoned(future: Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        LOGGER.debug("Abandoned download failed: %s", error)
        return
    future.result().close()


def _open_download(
    backend: StorageBackend,
    container: str,
    path: str,
    downloads: _OpenDownloads,
    **conditions: Any,
) -> BlobDownload:
    """Open and register a download, giving up as soon as ``downloads`` is aborted.

    The backend call runs on a helper thread because its first request
    cannot be interrupted; a download that arrives after the abort is closed.
    """

    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="open-download")
    try:
        future = pool.submit(backend.open_download, container, path, **conditions)
    finally:
        pool.shutdown(wait=False)

    settled = threading.Event()
    future.add_done_callback(lambda _future: settled.set())
    unregister = downloads.aborted.add_callback(settled.set)
    try:
        settled.wait()
    finally:
        unregister()

    if not future.done():
        future.add_done_callback(_close_abandoned)
        raise CanceledError()
    download = future.result()
    downloads.add(download)
    return download


def _drain(download: BlobDownload, signal: Optional[CancelSignal]) -> bytes:
    buffer = io.BytesIO()
    for chunk in download.chunks():
        if signal is not None and signal.cancelled:
            download.close()
            raise CanceledError()
        buffer.write(chunk)
    if signal is not None and signal.cancelled:
        raise CanceledError()
    return buffer.getvalue()


def _relative_path(key: str, prefix: str) -> Optional[str]:
    """Return ``key`` relative to the tree rooted at ``prefix``.

    The prefix names a directory: ``docs`` covers ``docs/a.md`` but not
    ``docs-old/a.md``, which yields ``None``. A prefix naming a single blob
    yields that blob's base name.

    Raises:
        ReadFailedError: the key contains ``..`` segments.
    """

    root = prefix.rstrip("/")
    if not root:
        relative = key
    elif key == root:
        relative = posixpath.basename(key)
    elif key.startswith(root + "/"):
        relative = key[len(root) + 1 :]
    else:
        return None
    relative = relative.lstrip("/")
    if not relative:
        return None
    if ".." in relative.split("/"):
        raise ReadFailedError(f"Blob {key} resolves outside the requested tree")
    return relative


class BlobStorageUrlReader:
    """Read blobs from one storage account by URL."""

    def __init__(
        self,
        integration: IntegrationConfig,
        credentials: CredentialsManager,
        *,
        backend_factory: Optional[BackendFactory] = None,
        max_concurrency: int = DEFAULT_TREE_CONCURRENCY,
    ) -> None:
        self._integration = integration
        self._backend_factory = backend_factory or azure_backend_factory(credentials)
        self._max_concurrency = max(1, int(max_concurrency))
        self._backend_instance: Optional[StorageBackend] = None
        self._backend_lock = threading.Lock()

    def handles(self, url: str) -> bool:
        """Return whether ``url`` points at this reader's storage host."""

        host = urlparse(url).netloc
        return bool(host) and host.endswith(self._integration.host)

    def read(self, url: str) -> bytes:
        return self.read_url(url).buffer()

    def read_url(
        self,
        url: str,
        *,
        etag: Optional[str] = None,
        last_modified_after: Optional[datetime] = None,
        signal: Optional[CancelSignal] = None,
    ) -> ReadUrlResponse:
        """Download one blob, honouring ETag and modification-time conditions.

        Raises:
            InvalidUrlError: the URL has no container or no blob path.
            NotModifiedError: the blob still matches ``etag`` or has not changed
                since ``last_modified_after``.
            CanceledError: ``signal`` fired before the download finished.
            ReadFailedError: any other failure, with the original error as cause.
        """

        if signal is not None:
            signal.raise_if_cancelled()
        target = parse_url(url)
        try:
            backend = self._backend()
            with _OpenDownloads(signal) as downloads:
                download = _open_download(
                    backend,
                    target.container,
                    target.path,
                    downloads,
                    etag=etag,
                    if_modified_since=last_modified_after,
                )
                content = _drain(download, signal)
            return ReadUrlResponse(
                content=content,
                etag=download.etag,
                last_modified_at=download.last_modified,
            )
        except (NotModifiedError, CanceledError):
            raise
        except Exception as exc:
            if signal is not None and signal.cancelled:
                raise CanceledError(cause=exc) from exc
            raise ReadFailedError(
                "Could not retrieve file from Azure Blob Storage", cause=exc
            ) from exc

    def read_tree(self, url: str, *, signal: Optional[CancelSignal] = None) -> ReadTreeResponse:
        """Download every blob under the directory named by the URL's path.

        Keys that merely share the prefix (``docs-old/`` for ``docs``) are not
        part of the tree. Up to ``max_concurrency`` downloads are open at once.
        Firing ``signal`` closes all of them and the call raises
        :class:`CanceledError`; any other failure aborts the remaining
        downloads and raises :class:`ReadFailedError`. No partial tree is ever
        returned.
        """

        if signal is not None:
            signal.raise_if_cancelled()
        target = parse_url(url)
        try:
            backend = self._backend()
            members = self._tree_members(backend.list_blobs(target.container, target.path), target)
            LOGGER.debug("Reading tree %s with %s blob(s)", url, len(members))
            if signal is not None:
                signal.raise_if_cancelled()
            with _OpenDownloads(signal) as downloads:
                entries = self._download_tree(backend, target, members, downloads, signal)
            return ReadTreeResponse(entries)
        except (CanceledError, ReadFailedError):
            raise
        except Exception as exc:
            if signal is not None and signal.cancelled:
                raise CanceledError(cause=exc) from exc
            raise ReadFailedError(
                "Could not retrieve file tree from Azure Blob Storage", cause=exc
            ) from exc

    def search(self, *args, **kwargs):
        raise UnsupportedError("BlobStorageUrlReader does not implement search")

    @staticmethod
    def _tree_members(
        blobs: Sequence[BlobItem], target: ParsedBlobUrl
    ) -> List[Tuple[BlobItem, str]]:
        members = []
        for blob in blobs:
            relative = _relative_path(blob.name, target.path)
            if relative is None:
                LOGGER.debug("Skipping %s; outside tree %s", blob.name, target.path)
                continue
            members.append((blob, relative))
        return members

    def _download_tree(
        self,
        backend: StorageBackend,
        target: ParsedBlobUrl,
        members: Sequence[Tuple[BlobItem, str]],
        downloads: _OpenDownloads,
        signal: Optional[CancelSignal],
    ) -> List[TreeEntry]:
        if not members:
            return []
        workers = min(self._max_concurrency, len(members))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="read-tree") as pool:
            futures: List[Future] = [
                pool.submit(
                    self._fetch_entry, backend, target.container, blob, relative, downloads, signal
                )
                for blob, relative in members
            ]
            done, _pending = wait(futures, return_when=FIRST_EXCEPTION)
            failed = [future for future in futures if future in done and future.exception()]
            if failed:
                for future in futures:
                    future.cancel()
                downloads.abort_all()
                raise failed[0].exception()  # type: ignore[misc]
            return [future.result() for future in futures]

    def _fetch_entry(
        self,
        backend: StorageBackend,
        container: str,
        blob: BlobItem,
        relative_path: str,
        downloads: _OpenDownloads,
        signal: Optional[CancelSignal],
    ) -> TreeEntry:
        download = _open_download(backend, container, blob.name, downloads)
        try:
            content = _drain(download, signal)
        finally:
            downloads.discard(download)
        return TreeEntry(
            relative_path=relative_path,
            content=content,
            last_modified_at=blob.last_modified or download.last_modified,
            etag=blob.etag or download.etag,
        )

    def _backend(self) -> StorageBackend:
        with self._backend_lock:
            if self._backend_instance is None:
                self._backend_instance = self._backend_factory(self._integration)
            return self._backend_instance

    def __str__(self) -> str:
        authed = "true" if self._integration.authed else "false"
        return f"azureBlobStorage{{accountName={self._integration.account_name},authed={authed}}}"


def build_readers(
    config: AppConfig,
    credentials: Optional[CredentialsManager] = None,
    *,
    backend_factory: Optional[BackendFactory] = None,
) -> List[BlobStorageUrlReader]:
    """Create one reader per configured integration."""

    credentials = credentials or DefaultCredentialsManager.from_integrations(
        config.integrations
    )
    return [
        BlobStorageUrlReader(integration, credentials, backend_factory=backend_factory)
        for integration in config.integrations
    ]


def reader_for_url(readers: Sequence[BlobStorageUrlReader], url: str) -> BlobStorageUrlReader:
    for reader in readers:
        if reader.handles(url):
            return reader
    raise UnsupportedError(f"No reader is configured for {url}")


__all__ = [
    "BlobStorageUrlReader",
    "ReadTreeResponse",
    "ReadUrlResponse",
    "TreeEntry",
    "build_readers",
    "reader_for_url",
]
