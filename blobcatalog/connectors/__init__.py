"""Connector implementations for blobcatalog."""

from .azure_blob import AzureBlobBackend, AzureBlobDownload
from .base import BlobDownload, BlobItem, StorageBackend

__all__ = [
    "AzureBlobBackend",
    "AzureBlobDownload",
    "BlobDownload",
    "BlobItem",
    "StorageBackend",
]
