"""Storage service: verifies signed requests and keeps encrypted blobs."""

from .blob import BlobStorage, MemoryBlobStorage, HTTPBlobStorage
from .service import StorageService, blob_path
from .handlers import create_app

__all__ = [
    "BlobStorage",
    "MemoryBlobStorage",
    "HTTPBlobStorage",
    "StorageService",
    "blob_path",
    "create_app",
]
