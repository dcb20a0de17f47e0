"""
File Management Utilities

This module manages the flat local storage directory that holds migrated
images, and provides the atomic write helpers used for both image files and
the output dataset.
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Union
import logging


PathLike = Union[str, Path]


def atomic_write_bytes(path: PathLike, data: bytes) -> int:
    """
    Write bytes to a file atomically.

    The payload is written to a temporary file in the destination directory
    and renamed over the destination, so readers only ever see a missing
    file or a complete one.

    Args:
        path: Destination file path
        data: Payload to write

    Returns:
        Number of bytes written
    """
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.", suffix=".tmp",
                                     dir=str(destination.parent))
    try:
        with os.fdopen(fd, 'wb') as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_name, destination)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
    return len(data)


def atomic_write_text(path: PathLike, text: str, encoding: str = 'utf-8') -> int:
    """Write text to a file atomically; returns the encoded size in bytes."""
    return atomic_write_bytes(path, text.encode(encoding))


class FileManager:
    """
    Manages the storage root for migrated assets.

    All files live directly inside the root; there are no subdirectories.
    """

    def __init__(self, storage_root: PathLike = "public/images"):
        """
        Initialize the file manager.

        Args:
            storage_root: Directory that holds the migrated files
        """
        self.storage_root = Path(storage_root)
        self.logger = logging.getLogger(__name__)

        self._create_directories()

    def _create_directories(self):
        """Create the storage root if needed."""
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self.logger.debug(f"Storage root ready at: {self.storage_root.absolute()}")

    def path_for(self, filename: str) -> Path:
        return self.storage_root / filename

    def file_exists(self, filename: str) -> bool:
        return self.path_for(filename).is_file()

    def save_bytes(self, filename: str, data: bytes) -> Path:
        """
        Save a payload under the storage root.

        Args:
            filename: Flat file name inside the storage root
            data: File content

        Returns:
            Path of the written file
        """
        destination = self.path_for(filename)
        size = atomic_write_bytes(destination, data)
        self.logger.debug(f"Saved {filename} ({size} bytes)")
        return destination

    def get_storage_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the storage root.

        Returns:
            Dictionary with the file count and total size in bytes
        """
        stats = {
            'files': 0,
            'total_size': 0,
            'storage_root': str(self.storage_root),
        }

        try:
            for entry in self.storage_root.iterdir():
                if entry.is_file() and not entry.name.startswith('.'):
                    stats['files'] += 1
                    stats['total_size'] += entry.stat().st_size
        except OSError as e:
            self.logger.error(f"Error calculating storage stats: {e}")

        return stats
