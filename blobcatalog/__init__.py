"""Top-level package for the blobcatalog project."""

from .config import AppConfig, load_config
from .provider import BlobStorageEntityProvider
from .reader import BlobStorageUrlReader, build_readers

__all__ = [
    "AppConfig",
    "BlobStorageEntityProvider",
    "BlobStorageUrlReader",
    "build_readers",
    "load_config",
]
