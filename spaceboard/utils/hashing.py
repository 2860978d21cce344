"""Content fingerprints and asset key derivation.

``fingerprint`` is used for change detection only (``compare_and_update``)
and for naming asset files.  It is a 128-bit BLAKE2b digest over a
canonical JSON encoding, so two structurally equal payloads always hash
the same regardless of dict ordering.  It is not an integrity check.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any
from urllib.parse import urlsplit

_DIGEST_SIZE = 16
_EXTENSION_RE = re.compile(r"\.([A-Za-z0-9]+)$")

_MIME_TYPES: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
    "bmp": "image/bmp",
}


def fingerprint(data: Any) -> str:
    """Return a deterministic hex fingerprint of a JSON-compatible value."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.blake2b(canonical.encode("utf-8"), digest_size=_DIGEST_SIZE).hexdigest()


def extension_from_url(url: str) -> str:
    """Return the lower-cased file extension of *url*'s path, or ``"bin"``.

    Query strings and fragments are ignored:
    ``https://x/img/a.PNG?w=200`` -> ``"png"``.
    """
    path = urlsplit(url).path
    match = _EXTENSION_RE.search(path.rsplit("/", 1)[-1])
    return match.group(1).lower() if match else "bin"


def asset_key(url: str) -> str:
    """Derive the asset cache key (and filename) for *url*."""
    return f"{fingerprint(url)}.{extension_from_url(url)}"


def mime_type_for(extension: str) -> str:
    """Map a file extension to a MIME type, defaulting to octet-stream."""
    return _MIME_TYPES.get(extension.lower(), "application/octet-stream")
