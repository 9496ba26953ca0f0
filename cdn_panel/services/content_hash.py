from __future__ import annotations

import hashlib

from .stores import HashCache

_CHUNK = 1024 * 1024


def sha256_bytes(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def sha256_file(path: str) -> str:
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        while chunk := f.read(_CHUNK):
            digest.update(chunk)
    return digest.hexdigest()


class ContentAddresser:
    """Cache policy for SHA-256 digests keyed by virtual path.

    A missing entry means "unknown": the digest is recomputed from disk on the
    next read. Writers record the digest of exactly the bytes they wrote.
    """

    def __init__(self, cache: HashCache):
        self.cache = cache

    def get(self, path: str) -> str | None:
        return self.cache.get(path)

    def put(self, path: str, sha256: str) -> None:
        self.cache.put(path, sha256)

    def invalidate(self, path: str, recursive: bool = False) -> None:
        self.cache.delete(path, recursive=recursive)

    def record(self, path: str, content: bytes) -> str:
        digest = sha256_bytes(content)
        self.put(path, digest)
        return digest

    def hash_of(self, path: str, full_path: str) -> str:
        cached = self.get(path)
        if cached:
            return cached
        digest = sha256_file(full_path)
        self.put(path, digest)
        return digest
