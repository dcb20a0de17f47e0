"""
Record dataset I/O.

Reads the article CSV into records and writes the rewritten records back
with the identical header. The output is rendered in memory and written
atomically, so a failed run never leaves a truncated output file.
"""

from __future__ import annotations

import csv
import io
import sys
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

from .errors import DatasetReadError, DatasetWriteError
from .models import Record
from ..utils.file_manager import atomic_write_text


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class Dataset:
    fieldnames: List[str]
    records: List[Record] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)


def _raise_field_size_limit() -> None:
    # Article bodies easily exceed the csv module's 128 KiB default
    limit = sys.maxsize
    while True:
        try:
            csv.field_size_limit(limit)
            return
        except OverflowError:
            limit //= 2


def read_dataset(path: PathLike, key_field: str = "id") -> Dataset:
    """
    Load every row of a CSV file as a Record.

    Args:
        path: CSV file with a header row
        key_field: Column holding the record identity; the 1-based row
            number is used when the column is absent or empty

    Raises:
        DatasetReadError: the file is missing, unreadable, not UTF-8 or has no header
    """
    _raise_field_size_limit()
    try:
        with open(path, 'r', encoding='utf-8-sig', newline='') as handle:
            reader = csv.DictReader(handle)
            fieldnames = list(reader.fieldnames or [])
            if not fieldnames:
                raise DatasetReadError(path, "missing header row")

            records = []
            extra_rows = 0
            for index, row in enumerate(reader, 1):
                if None in row:
                    extra_rows += 1
                fields = {name: row.get(name) or "" for name in fieldnames}
                key = fields.get(key_field) or str(index)
                records.append(Record(key=key, fields=fields))
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise DatasetReadError(path, str(e)) from e

    if extra_rows:
        logger.warning(f"{extra_rows} rows in {path} have more values than header columns; extras dropped")

    keys = {r.key for r in records}
    if len(keys) != len(records):
        logger.warning(f"{len(records) - len(keys)} duplicate record keys in {path}")

    logger.debug(f"Read {len(records)} records from {path}")
    return Dataset(fieldnames=fieldnames, records=records)


def render_dataset(dataset: Dataset) -> str:
    """Serialize a dataset to CSV text (minimal quoting, doubled quotes, '\\n' rows)."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, doublequote=True, lineterminator='\n')
    writer.writerow(dataset.fieldnames)
    for record in dataset.records:
        writer.writerow([record.fields.get(name, "") for name in dataset.fieldnames])
    return buffer.getvalue()


def write_dataset(path: PathLike, dataset: Dataset) -> int:
    """
    Atomically write a dataset to a CSV file.

    Returns:
        Number of bytes written

    Raises:
        DatasetWriteError: the file could not be written
    """
    content = render_dataset(dataset)
    try:
        size = atomic_write_text(path, content)
    except OSError as e:
        raise DatasetWriteError(path, str(e)) from e
    logger.debug(f"Wrote {len(dataset)} records ({size} bytes) to {path}")
    return size
