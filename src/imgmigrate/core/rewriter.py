"""
Record rewriting.

Replaces every occurrence of every migrated reference in record fields with
its local path. Matching is literal: references are escaped, so characters
such as '?', '+' or '(' in a URL carry no pattern meaning. All references
are replaced in one pass, longest first at each position, so a reference
that is a prefix of another never corrupts it and inserted local paths are
never scanned again.
"""

from __future__ import annotations

import re
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Union

from .models import Record, ReferenceMapping


MappingLike = Union[ReferenceMapping, Mapping[str, str]]


def _migrated_entries(mapping: MappingLike) -> Dict[str, str]:
    if isinstance(mapping, ReferenceMapping):
        return mapping.migrated()
    return {ref: value for ref, value in mapping.items() if value != ref}


def _compile(entries: Dict[str, str]) -> Optional[re.Pattern]:
    if not entries:
        return None
    keys = sorted((k for k in entries if k), key=len, reverse=True)
    if not keys:
        return None
    return re.compile("|".join(re.escape(k) for k in keys))


class RecordRewriter:
    def __init__(self, fields: Optional[Sequence[str]] = None):
        """
        Args:
            fields: Field names to rewrite; every field when None
        """
        self.logger = logging.getLogger(__name__)
        self.fields = tuple(fields) if fields is not None else None

    def rewrite_text(self, text: str, mapping: MappingLike) -> str:
        entries = _migrated_entries(mapping)
        return self._apply(text, entries, _compile(entries))

    def rewrite_records(self, records: Sequence[Record], mapping: MappingLike) -> List[Record]:
        """Return rewritten copies of the records, in the same order."""
        entries = _migrated_entries(mapping)
        pattern = _compile(entries)
        rewritten: List[Record] = []
        changed = 0

        for record in records:
            fields = dict(record.fields)
            for name, value in record.fields.items():
                if self.fields is not None and name not in self.fields:
                    continue
                new_value = self._apply(value, entries, pattern)
                if new_value != value:
                    fields[name] = new_value
                    changed += 1
            rewritten.append(record.with_fields(fields))

        self.logger.debug(f"Rewrote {changed} fields across {len(records)} records")
        return rewritten

    @staticmethod
    def _apply(text: str, entries: Dict[str, str], pattern: Optional[re.Pattern]) -> str:
        if not text or pattern is None:
            return text
        return pattern.sub(lambda m: entries[m.group(0)], text)
