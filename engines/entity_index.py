"""Lookup indices over a single fetched collection."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Sequence, Tuple

from engines.validation import DataShapeWarning, ensure_collection

logger = logging.getLogger(__name__)

KeyFn = Callable[[Any], Optional[Hashable]]

__all__ = ["EntityIndex", "KeyFn"]


def _is_blank(key: Any) -> bool:
    return key is None or (isinstance(key, str) and not key.strip())


def _is_hashable(key: Any) -> bool:
    try:
        hash(key)
    except TypeError:
        return False
    return True


class EntityIndex:
    """Maps normalised keys to records of one collection.

    In single mode a later record with a duplicate key replaces the earlier
    one (last-wins).  In multi mode every record is kept, in input order,
    under its key.  Records without a usable key are skipped and reported
    through :attr:`warnings` rather than raised.
    """

    def __init__(self, name: str = "records", multi: bool = False):
        self.name = name
        self.multi = multi
        self._entries: Dict[Hashable, Any] = {}
        self._records: Tuple[Any, ...] = ()
        self.warnings: List[DataShapeWarning] = []

    @classmethod
    def build(
        cls,
        records: Sequence[Any],
        key_fn: KeyFn,
        *,
        multi: bool = False,
        name: Optional[str] = None,
    ) -> "EntityIndex":
        label = name or "records"
        items = ensure_collection(records, label)
        index = cls(name=label, multi=multi)
        index._records = tuple(items)
        for position, record in enumerate(items):
            try:
                key = key_fn(record)
            except (KeyError, AttributeError, TypeError) as exc:
                index._skip(record, f"record {position} is missing key field: {exc}")
                continue
            if _is_blank(key):
                index._skip(record, f"record {position} has no usable key")
                continue
            if not _is_hashable(key):
                index._skip(record, f"record {position} has an unhashable key: {type(key).__name__}")
                continue
            if multi:
                index._entries.setdefault(key, []).append(record)
            else:
                index._entries[key] = record
        if index.warnings:
            logger.debug("Index %s skipped %d of %d records", label, index.skipped, len(items))
        return index

    def _skip(self, record: Any, reason: str) -> None:
        self.warnings.append(DataShapeWarning(source=self.name, reason=reason, record=record))

    @property
    def skipped(self) -> int:
        return len(self.warnings)

    @property
    def records(self) -> Tuple[Any, ...]:
        """Source records in input order, skipped ones included."""
        return self._records

    def get(self, key: Hashable, default: Any = None) -> Any:
        if _is_blank(key) or not _is_hashable(key):
            return default
        return self._entries.get(key, default)

    def has(self, key: Hashable) -> bool:
        return not _is_blank(key) and _is_hashable(key) and key in self._entries

    def __contains__(self, key: object) -> bool:
        return self.has(key)  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> List[Hashable]:
        return list(self._entries)

    def items(self) -> Iterator[Tuple[Hashable, Any]]:
        return iter(self._entries.items())

    def candidates(self, key: Hashable) -> List[Any]:
        """All records stored under ``key`` as a list, whatever the mode."""

        found = self.get(key)
        if found is None:
            return []
        if self.multi:
            return list(found)
        return [found]

    def __repr__(self) -> str:
        mode = "multi" if self.multi else "single"
        return f"EntityIndex(name={self.name!r}, mode={mode}, keys={len(self)}, skipped={self.skipped})"
