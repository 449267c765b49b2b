"""
Content and URL fingerprints used for duplicate detection
"""

import hashlib
from urllib.parse import urlsplit


def hash_content(content: bytes) -> str:
    """
    SHA-256 hex digest of fetched content.

    Empty content yields "" (unhashable, never matched as a duplicate).
    """
    if not content:
        return ""
    return hashlib.sha256(content).hexdigest()


class ContentHasher:
    """
    Incremental SHA-256 over streamed chunks.

    ``hexdigest()`` follows hash_content: no bytes seen yields "".
    """

    def __init__(self):
        self._digest = hashlib.sha256()
        self.size = 0

    def update(self, chunk: bytes) -> None:
        if chunk:
            self._digest.update(chunk)
            self.size += len(chunk)

    def hexdigest(self) -> str:
        if self.size == 0:
            return ""
        return self._digest.hexdigest()


def normalize_url(url: str) -> str:
    """
    Canonical form of a URL for duplicate comparison: scheme://host/path.

    Query string, fragment, credentials and port are dropped; scheme and host
    are lower-cased, an empty path becomes "/". Input that does not parse
    into scheme and host is returned unchanged.
    """
    if url is None:
        return ""
    candidate = url.strip()
    try:
        parts = urlsplit(candidate)
        hostname = parts.hostname
    except ValueError:
        return candidate

    if not parts.scheme or not hostname:
        return candidate

    return f"{parts.scheme.lower()}://{hostname}{parts.path or '/'}"
