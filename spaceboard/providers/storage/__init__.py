"""Storage backends.

Record stores (``IStorageBackend``) hold serialized cache entries, the
asset index and the rate limiter state.  Blob stores (``IBlobStore``)
hold asset bytes and mint the handles the dashboard renders.

FilesystemStorageBackend / FilesystemBlobStore are the server-side
defaults.  MemoryStorageBackend / MemoryBlobStore model a browser's
quota-limited localStorage and object URLs, and back the volatile tier.
"""

from spaceboard.providers.storage.blob_store import FilesystemBlobStore, MemoryBlobStore
from spaceboard.providers.storage.filesystem_storage import FilesystemStorageBackend
from spaceboard.providers.storage.memory_storage import MemoryStorageBackend

__all__ = [
    "FilesystemBlobStore",
    "FilesystemStorageBackend",
    "MemoryBlobStore",
    "MemoryStorageBackend",
]
