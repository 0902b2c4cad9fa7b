"""
Record index.

In-memory cache built from the latest fetch: canonical identifier -> record
and rendered label -> identifiers producing that label. Rebuilt wholesale
on every fetch; there is no incremental update.
"""

from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from .errors import MalformedFilter
from .logger import get_logger
from .normalize import compute_entity_ref
from .templating import render

logger = get_logger()


class RecordIndex:
    """Identifier and label lookups over one fetch's records."""

    def __init__(self, template: str):
        self.template = template
        self._records: Dict[str, Mapping[str, Any]] = {}
        self._labels: Dict[str, str] = {}
        self._by_label: Dict[str, List[str]] = {}

    @classmethod
    def build(cls, records: Iterable[Mapping[str, Any]], template: str) -> "RecordIndex":
        """
        Build an index. Records without a usable identity are skipped; a
        later record with the same identifier replaces the earlier one and
        takes its place at the end of index order.
        """
        index = cls(template)
        skipped = 0
        for record in records:
            try:
                identifier = compute_entity_ref(record)
            except (MalformedFilter, AttributeError):
                skipped += 1
                continue
            if identifier in index._records:
                index._forget_label(identifier)
                del index._records[identifier]
            index._records[identifier] = record
            label = render(template, record)
            index._labels[identifier] = label
            index._by_label.setdefault(label, []).append(identifier)
        if skipped:
            logger.warning("Skipped records without kind/name", skipped=skipped)
        return index

    def _forget_label(self, identifier: str) -> None:
        label = self._labels.pop(identifier)
        ids = self._by_label[label]
        ids.remove(identifier)
        if not ids:
            del self._by_label[label]

    def lookup(self, identifier: str) -> Optional[Mapping[str, Any]]:
        return self._records.get(identifier)

    def lookup_by_label(self, label: str) -> List[str]:
        """Identifiers whose rendered label equals ``label``, in index order."""
        return list(self._by_label.get(label, ()))

    def label_for(self, identifier: str) -> Optional[str]:
        return self._labels.get(identifier)

    def identifiers(self) -> List[str]:
        return list(self._records)

    def records(self) -> List[Mapping[str, Any]]:
        return list(self._records.values())

    def items(self) -> Iterator[tuple]:
        """(identifier, label) pairs in index order."""
        for identifier in self._records:
            yield identifier, self._labels[identifier]

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._records

    def __len__(self) -> int:
        return len(self._records)
