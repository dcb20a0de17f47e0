"""
Data models shared across the migration pipeline.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from .errors import MappingConflict


STATUS_SUCCESS = "success"
STATUS_ALREADY_PRESENT = "already_present"
STATUS_FAILURE = "failure"


@dataclass(frozen=True)
class Record:
    key: str                      # Stable identity of the content item
    fields: Dict[str, str] = field(default_factory=dict)

    def get(self, name: str) -> str:
        return self.fields.get(name) or ""

    def with_fields(self, fields: Dict[str, str]) -> "Record":
        return Record(key=self.key, fields=dict(fields))


@dataclass
class FetchOutcome:
    reference: str
    status: str                   # 'success' | 'already_present' | 'failure'
    local_path: Optional[str] = None
    filename: Optional[str] = None
    size: int = 0
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != STATUS_FAILURE

    @property
    def mapped_value(self) -> str:
        """Value installed in the mapping: the local path, or the reference itself on failure."""
        if self.ok and self.local_path:
            return self.local_path
        return self.reference


class ReferenceMapping:
    """
    Thread-safe, write-once association of reference -> local path.

    Each key may be set exactly once; a second write raises MappingConflict.
    """

    def __init__(self):
        self._entries: Dict[str, str] = {}
        self._lock = threading.Lock()

    def set(self, reference: str, value: str) -> None:
        with self._lock:
            if reference in self._entries:
                raise MappingConflict(f"Reference already mapped: {reference}")
            self._entries[reference] = value

    def get(self, reference: str, default: Optional[str] = None) -> Optional[str]:
        with self._lock:
            return self._entries.get(reference, default)

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._entries)

    def migrated(self) -> Dict[str, str]:
        """Entries whose value differs from the reference (identity fallbacks removed)."""
        return {ref: value for ref, value in self.snapshot().items() if value != ref}

    def __contains__(self, reference: object) -> bool:
        with self._lock:
            return reference in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
