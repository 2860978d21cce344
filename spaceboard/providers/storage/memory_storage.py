"""In-memory record store with a localStorage-style quota.

Several backends can share one underlying mapping, each under its own key
prefix, exactly as multiple caches share a browser's ``localStorage``.
The quota applies to the *whole* shared mapping, and sizes are measured as
UTF-16 bytes of key plus value, so one namespace filling up can starve
another.  Values are stored as serialized strings, never live objects.
"""

from __future__ import annotations

from collections.abc import MutableMapping

from spaceboard.interfaces.storage_backend import IStorageBackend
from spaceboard.utils.errors import StorageQuotaError


def _utf16_size(key: str, value: str) -> int:
    return (len(key) + len(value)) * 2


class MemoryStorageBackend(IStorageBackend):
    """Namespaced string store over a (possibly shared) mapping.

    Parameters
    ----------
    prefix:
        Namespace prepended to every key.
    quota_bytes:
        Capacity of the shared mapping.  ``None`` means unbounded.
    store:
        The mapping to store into.  A private dict when omitted.
    """

    def __init__(
        self,
        prefix: str = "spaceboard_",
        quota_bytes: int | None = None,
        store: MutableMapping[str, str] | None = None,
    ) -> None:
        self._prefix = prefix
        self._quota = quota_bytes
        self._store: MutableMapping[str, str] = store if store is not None else {}

    @property
    def quota_bytes(self) -> int | None:
        return self._quota

    def _full(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def used_bytes(self) -> int:
        """Bytes used across the whole shared mapping, all namespaces included."""
        return sum(_utf16_size(k, v) for k, v in self._store.items())

    def read(self, key: str) -> str | None:
        return self._store.get(self._full(key))

    def write(self, key: str, value: str) -> None:
        full = self._full(key)
        if self._quota is not None:
            existing = self._store.get(full)
            current = self.used_bytes() - (_utf16_size(full, existing) if existing is not None else 0)
            required = _utf16_size(full, value)
            if current + required > self._quota:
                raise StorageQuotaError(
                    f"Writing {key!r} needs {required} bytes, "
                    f"{max(self._quota - current, 0)} available",
                    provider_name="memory",
                )
        self._store[full] = value

    def delete(self, key: str) -> bool:
        return self._store.pop(self._full(key), None) is not None

    def keys(self) -> list[str]:
        n = len(self._prefix)
        return [k[n:] for k in list(self._store) if k.startswith(self._prefix)]

    def size_of(self, key: str) -> int:
        full = self._full(key)
        value = self._store.get(full)
        return _utf16_size(full, value) if value is not None else 0
