from .blob import BlobStore, LocalBlobStore, MinioBlobStore, get_blob_store
from .content_store import ContentStore, StorageSummary, extension_for, storage_key

__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "MinioBlobStore",
    "get_blob_store",
    "ContentStore",
    "StorageSummary",
    "extension_for",
    "storage_key",
]
