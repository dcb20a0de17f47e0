"""
Local asset store.

Derives a stable file name for every reference and persists fetched bytes
under a flat storage root. The file name depends only on the reference
string, which is what makes re-running a migration idempotent: a file that
already exists is never fetched again.
"""

from __future__ import annotations

import re
import hashlib
import logging
import posixpath
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

from ..utils.file_manager import FileManager


DIGEST_LENGTH = 12
DEFAULT_EXTENSION = ".jpg"
EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


def local_identity(reference: str) -> str:
    """
    Return the storage file name for a reference.

    The name is the first 12 hex characters of the MD5 digest of the URL,
    followed by the extension of the URL path ('.jpg' when there is none).
    """
    digest = hashlib.md5(reference.encode('utf-8')).hexdigest()[:DIGEST_LENGTH]
    return f"{digest}{_extension_for(reference)}"


def _extension_for(reference: str) -> str:
    try:
        path = urlparse(reference).path
    except ValueError:
        return DEFAULT_EXTENSION
    ext = posixpath.splitext(path)[1]
    if not EXTENSION_RE.match(ext):
        return DEFAULT_EXTENSION
    return ext


class AssetStore:
    def __init__(self, storage_root: Union[str, Path] = "public/images", public_prefix: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.files = FileManager(storage_root)
        prefix = public_prefix if public_prefix is not None else self.files.storage_root.name
        self.public_prefix = "/" + prefix.strip("/") if prefix.strip("/") else ""

    @property
    def storage_root(self) -> Path:
        return self.files.storage_root

    def local_identity(self, reference: str) -> str:
        return local_identity(reference)

    def exists(self, filename: str) -> bool:
        return self.files.file_exists(filename)

    def local_path(self, filename: str) -> str:
        """Root-relative path used inside rewritten records, e.g. '/images/abc.png'."""
        return f"{self.public_prefix}/{filename}"

    def persist(self, filename: str, data: bytes) -> str:
        self.files.save_bytes(filename, data)
        return self.local_path(filename)

    def storage_stats(self):
        return self.files.get_storage_stats()
