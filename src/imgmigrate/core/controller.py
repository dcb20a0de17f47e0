"""
Imgmigrate Orchestrator: runs the end-to-end image migration.

Load records -> extract references -> download under a concurrency cap ->
rewrite records -> write the output dataset atomically.
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Set, Tuple

from .dataset import Dataset, read_dataset, write_dataset
from .errors import DatasetWriteError
from .extractor import DEFAULT_BODY_FIELDS, DEFAULT_PRIMARY_FIELD, ReferenceExtractor
from .fetcher import AssetFetcher, DEFAULT_MAX_REDIRECTS, DEFAULT_TIMEOUT, DEFAULT_USER_AGENT
from .logger import ErrorTracker
from .rewriter import RecordRewriter
from .scheduler import DEFAULT_CONCURRENCY, DEFAULT_PROGRESS_INTERVAL, MigrationScheduler, ScheduleResult
from .store import AssetStore
from ..utils.manifest import DEFAULT_MANIFEST_NAME, Manifest


@dataclass
class MigrationConfig:
    input_path: str = os.path.join("data", "forem_articles_filtered_by_outdated.csv")
    output_path: str = os.path.join("data", "forem_articles_with_local_images.csv")
    storage_root: str = os.path.join("public", "images")
    public_prefix: Optional[str] = None  # None = storage root directory name
    concurrency: int = DEFAULT_CONCURRENCY
    timeout: float = DEFAULT_TIMEOUT
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL
    body_fields: Tuple[str, ...] = DEFAULT_BODY_FIELDS
    primary_field: str = DEFAULT_PRIMARY_FIELD
    key_field: str = "id"
    rewrite_fields: Optional[Tuple[str, ...]] = None  # None = every column
    use_manifest: bool = True
    manifest_path: Optional[str] = None  # None = next to the output dataset
    user_agent: str = DEFAULT_USER_AGENT

    def resolved_manifest_path(self) -> Optional[str]:
        if not self.use_manifest:
            return None
        if self.manifest_path:
            return self.manifest_path
        return os.path.join(os.path.dirname(os.path.abspath(self.output_path)), DEFAULT_MANIFEST_NAME)


class MigrationController:
    def __init__(self, config: MigrationConfig, fetcher=None, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.errors = ErrorTracker(self.logger)
        self.store = AssetStore(config.storage_root, public_prefix=config.public_prefix)
        self.fetcher = fetcher or AssetFetcher(
            timeout=config.timeout,
            max_redirects=config.max_redirects,
            user_agent=config.user_agent,
            pool_size=config.concurrency,
        )
        self.extractor = ReferenceExtractor(config.body_fields, config.primary_field)
        self.rewriter = RecordRewriter(config.rewrite_fields)
        manifest_path = config.resolved_manifest_path()
        self.manifest = Manifest(manifest_path) if manifest_path else None
        self.scheduler = MigrationScheduler(
            self.store,
            self.fetcher,
            concurrency=config.concurrency,
            progress_interval=config.progress_interval,
            error_tracker=self.errors,
            manifest=self.manifest,
        )
        self.result: Optional[ScheduleResult] = None

    def run(self, progress: Optional[Callable[[int, int], None]] = None) -> Dict[str, int]:
        """
        Run the migration.

        Raises:
            DatasetReadError: the input dataset could not be read
            DatasetWriteError: the output dataset could not be written
        """
        self._check_paths()

        # Step 1: load records and collect references
        self.logger.info(f"Loading records from {self.config.input_path}")
        dataset = read_dataset(self.config.input_path, key_field=self.config.key_field)
        references = self.extractor.collect(dataset.records)
        self.logger.info(f"Found {len(dataset)} records")
        self.logger.info(f"Found {len(references)} unique image URLs")

        # Step 2: download
        self.result = self.scheduler.run(references, progress=progress)

        # Step 3: rewrite and persist
        self.logger.info("Updating records with local image paths")
        rewritten = self.rewriter.rewrite_records(dataset.records, self.result.mapping)
        write_dataset(self.config.output_path, Dataset(fieldnames=dataset.fieldnames, records=rewritten))
        self.logger.info(f"Written to: {self.config.output_path}")

        stats = self._summarize(dataset, references)
        self._log_summary(stats)
        return stats

    def _check_paths(self) -> None:
        if Path(self.config.output_path).resolve() == Path(self.config.input_path).resolve():
            raise DatasetWriteError(self.config.output_path, "output would overwrite the input dataset")

    def _summarize(self, dataset: Dataset, references: Set[str]) -> Dict[str, int]:
        storage = self.store.storage_stats()
        return {
            "records": len(dataset),
            "unique_references": len(references),
            "fetched": self.result.fetched,
            "already_present": self.result.already_present,
            "failed": self.result.failed,
            "bytes_downloaded": self.result.bytes_downloaded,
            "extraction_anomalies": self.extractor.anomaly_count,
            "storage_files": storage["files"],
            "storage_bytes": storage["total_size"],
        }

    def _log_summary(self, stats: Dict[str, int]) -> None:
        self.logger.info("=== Migration Summary ===")
        self.logger.info(f"Records processed: {stats['records']}")
        self.logger.info(f"Unique images: {stats['unique_references']}")
        self.logger.info(f"Downloaded: {stats['fetched']} ({round(stats['bytes_downloaded'] / 1024)}KB)")
        self.logger.info(f"Already present: {stats['already_present']}")
        self.logger.info(f"Failed (kept remote): {stats['failed']}")
        self.logger.info(f"Image directory: {self.store.storage_root} "
                         f"({stats['storage_files']} files, {round(stats['storage_bytes'] / 1024 / 1024)}MB)")

    def close(self):
        close = getattr(self.fetcher, "close", None)
        if close:
            close()
