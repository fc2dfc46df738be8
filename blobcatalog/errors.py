"""Exception hierarchy shared by the provider and the URL reader."""

from __future__ import annotations


class BlobCatalogError(Exception):
    """Base exception for all blobcatalog operations."""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(message)


class NotInitializedError(BlobCatalogError):
    """Raised when an operation runs before its required setup."""


class InvalidUrlError(BlobCatalogError):
    """Raised when a blob URL cannot be split into container and path."""


class NotModifiedError(BlobCatalogError):
    """Raised when a conditional read finds the cached copy still current."""

    def __init__(self, message: str = "Resource has not been modified", cause: BaseException | None = None):
        super().__init__(message, cause)


class CanceledError(BlobCatalogError):
    """Raised when a cancel signal aborts an in-flight read."""

    def __init__(self, message: str = "Read was canceled", cause: BaseException | None = None):
        super().__init__(message, cause)


class UnsupportedError(BlobCatalogError):
    """Raised for capabilities the reader intentionally does not offer."""


class CredentialError(BlobCatalogError):
    """Raised when no credential can be produced for an account."""


class ReadFailedError(BlobCatalogError):
    """Wraps a backend failure during a URL or tree read."""


class RefreshFailedError(BlobCatalogError):
    """Wraps a backend failure during a provider refresh cycle."""


__all__ = [
    "BlobCatalogError",
    "CanceledError",
    "CredentialError",
    "InvalidUrlError",
    "NotInitializedError",
    "NotModifiedError",
    "ReadFailedError",
    "RefreshFailedError",
    "UnsupportedError",
]
