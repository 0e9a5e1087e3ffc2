"""Content digests for uploaded files.

The remote store verifies uploads against ``X-Checksum-Md5``, so the
manifest records MD5 (lowercase hex) rather than a stronger hash.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

_READ_SIZE = 1024 * 1024


def md5_hex(data: bytes) -> str:
    """Return the MD5 hex digest of raw bytes."""
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


def md5_file(path: Path) -> tuple[str, int]:
    """Stream a file through MD5.

    Returns ``(hex_digest, size_in_bytes)``.  ``OSError`` propagates to the
    caller, which decides whether an unreadable file is fatal.
    """
    digest = hashlib.md5(usedforsecurity=False)
    size = 0
    with Path(path).open("rb") as fh:
        while chunk := fh.read(_READ_SIZE):
            digest.update(chunk)
            size += len(chunk)
    return digest.hexdigest(), size
