"""Error taxonomy shared by the correlation engines."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, List, Optional


class CorrelationError(Exception):
    """Base class for correlation engine errors."""
    pass


class ProgrammerError(CorrelationError, TypeError):
    """Raised when a caller wires a non-collection where a collection is required."""
    pass


@dataclass
class DataShapeWarning:
    """A record that lacked an expected key and was left out of a result."""

    source: str
    reason: str
    record: Any = None

    def to_dict(self) -> dict:
        return {"source": self.source, "reason": self.reason}


def ensure_collection(value: Any, name: str = "records") -> List[Any]:
    """Materialise ``value`` as a list or raise :class:`ProgrammerError`.

    Lists, tuples, sets and generators are accepted. Strings, bytes and
    mappings are iterable but never a collection of records, so they are
    rejected along with ``None`` and scalars.
    """
    if isinstance(value, list):
        return value
    if value is None or isinstance(value, (str, bytes, bytearray, Mapping)):
        raise ProgrammerError(
            f"{name} must be a collection of records, got {type(value).__name__}"
        )
    try:
        return list(value)
    except TypeError as exc:
        raise ProgrammerError(
            f"{name} must be a collection of records, got {type(value).__name__}"
        ) from exc


def merge_warnings(*groups: Optional[List[DataShapeWarning]]) -> List[DataShapeWarning]:
    merged: List[DataShapeWarning] = []
    for group in groups:
        if group:
            merged.extend(group)
    return merged
