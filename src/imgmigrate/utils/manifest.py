"""
Manifest utilities for auditing per-reference migration outcomes.
Stores an append-only JSON Lines file with one record per attempted reference.
"""

import json
import os
import threading
import time
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, Iterable, Set


DEFAULT_MANIFEST_NAME = "migration_manifest.jsonl"


@dataclass
class ManifestRecord:
    reference: str
    status: str  # success|already_present|failure
    local_path: Optional[str] = None
    filename: Optional[str] = None
    size: int = 0
    reason: Optional[str] = None
    finished_at: float = 0.0


class Manifest:
    def __init__(self, path: str):
        self.path = str(path)
        parent = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(parent, exist_ok=True)
        self._lock = threading.Lock()

    def append(self, rec: ManifestRecord) -> None:
        if not rec.finished_at:
            rec.finished_at = time.time()
        line = json.dumps(asdict(rec), ensure_ascii=False) + "\n"
        with self._lock:
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(line)

    def iter_records(self) -> Iterable[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return
        with open(self.path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    # A run killed mid-write can leave a torn last line
                    continue

    def latest_status(self) -> Dict[str, str]:
        """Latest recorded status per reference."""
        latest = {}
        for rec in self.iter_records():
            ref = rec.get('reference')
            if ref:
                latest[ref] = rec.get('status')
        return latest

    def get_failed_set(self) -> Set[str]:
        return {ref for ref, status in self.latest_status().items() if status == 'failure'}
