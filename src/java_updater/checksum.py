"""SHA-256 helpers used to verify downloaded packages."""
from __future__ import annotations

import hashlib
from pathlib import Path
from typing import BinaryIO

__all__ = ["ChecksumWriter", "checksums_match", "compute_checksum"]


class ChecksumWriter:
    """Write-through wrapper that hashes every byte written to *sink*."""

    def __init__(self, sink: BinaryIO) -> None:
        self._sink = sink
        self._digest = hashlib.sha256()

    def write(self, data: bytes) -> int:
        self._digest.update(data)
        return self._sink.write(data)

    def flush(self) -> None:
        self._sink.flush()

    def hexdigest(self) -> str:
        """Return the lowercase hex digest of everything written so far."""
        return self._digest.hexdigest()


def compute_checksum(path: Path) -> str:
    """Return the SHA-256 checksum for *path*."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def checksums_match(left: str, right: str) -> bool:
    """Compare two hex digests case-insensitively."""
    return left.strip().lower() == right.strip().lower()
