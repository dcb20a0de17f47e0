"""
Bounded-concurrency download scheduling.

Drives the unique reference set through the fetcher with at most N
downloads in flight, skipping references whose file already exists in the
asset store, and builds the reference -> local path mapping. A failed
reference is mapped to itself and never aborts the run.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from .errors import FetchError
from .logger import ErrorTracker
from .models import (
    FetchOutcome,
    ReferenceMapping,
    STATUS_ALREADY_PRESENT,
    STATUS_FAILURE,
    STATUS_SUCCESS,
)
from .store import AssetStore
from ..utils.manifest import Manifest, ManifestRecord


DEFAULT_CONCURRENCY = 15
DEFAULT_PROGRESS_INTERVAL = 50

ProgressCallback = Callable[[int, int], None]


@dataclass
class ScheduleResult:
    mapping: ReferenceMapping
    outcomes: List[FetchOutcome] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def fetched(self) -> int:
        return self.count(STATUS_SUCCESS)

    @property
    def already_present(self) -> int:
        return self.count(STATUS_ALREADY_PRESENT)

    @property
    def failed(self) -> int:
        return self.count(STATUS_FAILURE)

    @property
    def bytes_downloaded(self) -> int:
        return sum(o.size for o in self.outcomes if o.status == STATUS_SUCCESS)


def _shorten(url: str, limit: int = 70) -> str:
    return url if len(url) <= limit else url[:limit] + "..."


class MigrationScheduler:
    def __init__(self,
                 store: AssetStore,
                 fetcher,
                 concurrency: int = DEFAULT_CONCURRENCY,
                 progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
                 error_tracker: Optional[ErrorTracker] = None,
                 manifest: Optional[Manifest] = None):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.fetcher = fetcher
        self.concurrency = concurrency
        self.progress_interval = max(1, progress_interval)
        self.errors = error_tracker or ErrorTracker(self.logger)
        self.manifest = manifest

    def run(self, references: Iterable[str], progress: Optional[ProgressCallback] = None) -> ScheduleResult:
        """
        Resolve every reference to a local path (or itself on failure).

        Args:
            references: References to migrate; duplicates are ignored
            progress: Optional callback receiving (completed, total)

        Returns:
            ScheduleResult holding the complete mapping and one outcome per reference
        """
        pending = list(dict.fromkeys(references))
        total = len(pending)
        result = ScheduleResult(mapping=ReferenceMapping())
        if not pending:
            return result

        self.logger.info(f"Migrating {total} unique images with {self.concurrency} workers")
        completed = 0

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="imgmigrate") as ex:
            futures: Dict = {ex.submit(self._process_one, ref): ref for ref in pending}
            for fut in as_completed(futures):
                reference = futures[fut]
                try:
                    outcome = fut.result()
                except Exception as e:
                    # Anything unexpected still degrades to the remote URL for this one reference
                    self.logger.exception(f"Unexpected error migrating {reference}")
                    self.errors.log_error(e, context="unexpected_error", url=reference)
                    outcome = FetchOutcome(reference=reference, status=STATUS_FAILURE, reason="unexpected_error")

                self._record(result, outcome)
                completed += 1
                if completed % self.progress_interval == 0 or completed == total:
                    self._report_progress(progress, completed, total)

        return result

    def _process_one(self, reference: str) -> FetchOutcome:
        filename = self.store.local_identity(reference)

        if self.store.exists(filename):
            self.logger.debug(f"Exists: {filename}")
            return FetchOutcome(reference=reference, status=STATUS_ALREADY_PRESENT,
                                local_path=self.store.local_path(filename), filename=filename)

        try:
            self.logger.debug(f"Downloading: {_shorten(reference)}")
            data = self.fetcher.fetch(reference)
        except FetchError as e:
            self.errors.log_error(e, context=e.reason, url=reference)
            return FetchOutcome(reference=reference, status=STATUS_FAILURE, filename=filename, reason=e.reason)

        try:
            local_path = self.store.persist(filename, data)
        except OSError as e:
            self.errors.log_error(e, context="storage_error", url=reference)
            return FetchOutcome(reference=reference, status=STATUS_FAILURE, filename=filename, reason="storage_error")

        self.logger.info(f"Saved: {filename} ({round(len(data) / 1024)}KB)")
        return FetchOutcome(reference=reference, status=STATUS_SUCCESS, local_path=local_path,
                            filename=filename, size=len(data))

    def _record(self, result: ScheduleResult, outcome: FetchOutcome) -> None:
        result.mapping.set(outcome.reference, outcome.mapped_value)
        result.outcomes.append(outcome)
        if self.manifest is None:
            return
        try:
            self.manifest.append(ManifestRecord(
                reference=outcome.reference,
                status=outcome.status,
                local_path=outcome.local_path,
                filename=outcome.filename,
                size=outcome.size,
                reason=outcome.reason,
            ))
        except OSError as e:
            # The manifest is an audit trail; losing an entry never aborts the run
            self.errors.log_error(e, context="manifest_error", url=outcome.reference,
                                  additional_info={"manifest": self.manifest.path})

    def _report_progress(self, progress: Optional[ProgressCallback], completed: int, total: int) -> None:
        self.logger.info(f"Progress: {completed}/{total} images")
        if progress:
            try:
                progress(completed, total)
            except Exception:
                self.logger.exception(f"Progress callback failed at {completed}/{total}")
