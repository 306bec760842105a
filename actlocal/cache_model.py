"""Records kept by the artifact cache server."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass


@dataclass
class Request:
    """A client's request to reserve a cache entry."""

    key: str = ""
    version: str = ""
    size: int = 0

    def to_cache(self) -> Cache:
        """Return a new, unreserved cache entry for this request."""
        return Cache(key=self.key, version=self.version, size=self.size)


@dataclass
class Cache:
    """A cache entry, reserved or complete."""

    id: int = 0
    key: str = ""
    version: str = ""
    key_version_hash: str = ""
    size: int = 0
    complete: bool = False
    used_at: int = 0
    created_at: int = 0

    def fill_key_version_hash(self) -> None:
        """Set ``key_version_hash`` from the key and version."""
        digest = hashlib.sha256(f"{self.key}:{self.version}".encode("utf-8"))
        self.key_version_hash = digest.hexdigest()