"""
Image reference extraction.

This module discovers remote image references embedded in article fields.
Three syntaxes are recognised, independently, inside the same text:

- HTML image elements with a quoted ``src`` attribute
- Markdown images: ``![alt](url)``
- A malformed markdown variant missing the closing bracket, whose locator
  is an absolute http(s) URL: ``![alt(url)``

The primary image field holds a plain URL and is taken as-is.
"""

from __future__ import annotations

import re
import logging
from typing import Iterable, List, Sequence, Set, Tuple

from .errors import ExtractionAnomaly
from .models import Record


DEFAULT_BODY_FIELDS = ("body_html", "body_markdown")
DEFAULT_PRIMARY_FIELD = "main_image"

IMG_TAG_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)
MARKDOWN_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
# Only absolute http(s) locators are recovered from the malformed form
MALFORMED_MARKDOWN_RE = re.compile(r"!\[([^\(]*)\((https?://[^\s)]+)\)")
MARKDOWN_OPENER_RE = re.compile(r"!\[")


class ReferenceExtractor:
    def __init__(self,
                 body_fields: Sequence[str] = DEFAULT_BODY_FIELDS,
                 primary_field: str = DEFAULT_PRIMARY_FIELD):
        self.logger = logging.getLogger(__name__)
        self.body_fields = tuple(body_fields)
        self.primary_field = primary_field
        self.anomalies: List[ExtractionAnomaly] = []

    @property
    def anomaly_count(self) -> int:
        return len(self.anomalies)

    def extract(self, text: str) -> Set[str]:
        """Return the distinct references embedded in a single text blob."""
        if not text:
            return set()
        urls: Set[str] = set()

        for match in IMG_TAG_RE.finditer(text):
            urls.add(match.group(1))

        matched_spans = []
        for match in MARKDOWN_IMAGE_RE.finditer(text):
            urls.add(match.group(2))
            matched_spans.append(match.span())

        for match in MALFORMED_MARKDOWN_RE.finditer(text):
            urls.add(match.group(2))
            matched_spans.append(match.span())

        for anomaly in self._unmatched_openers(text, matched_spans):
            self.anomalies.append(anomaly)
            self.logger.debug(str(anomaly))

        return urls

    def extract_record(self, record: Record) -> Set[str]:
        """Return every reference found in a record's body and primary image fields."""
        urls: Set[str] = set()
        for name in self.body_fields:
            urls.update(self.extract(record.get(name)))
        if self.primary_field:
            primary = record.get(self.primary_field).strip()
            if primary:
                urls.add(primary)
        return urls

    def collect(self, records: Iterable[Record]) -> Set[str]:
        """Accumulate the corpus-wide set of unique references."""
        references: Set[str] = set()
        for record in records:
            references.update(self.extract_record(record))
        if self.anomaly_count:
            self.logger.debug(f"Dropped {self.anomaly_count} unparseable image references")
        return references

    def _unmatched_openers(self, text: str, matched: List[Tuple[int, int]]) -> List[ExtractionAnomaly]:
        anomalies = []
        for opener in MARKDOWN_OPENER_RE.finditer(text):
            if not any(start <= opener.start() < end for start, end in matched):
                snippet = text[opener.start():opener.start() + 60]
                anomalies.append(ExtractionAnomaly(snippet, opener.start()))
        return anomalies


def extract_references(text: str) -> Set[str]:
    """Convenience wrapper: references embedded in one text blob."""
    return ReferenceExtractor().extract(text)
