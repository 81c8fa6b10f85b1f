"""Canonical forms for the identifiers that correlate campus records.

Collections fetched for the dashboards disagree on how they spell the same
thing: a year level arrives as ``1``, ``"1"``, ``"1st Year"`` or ``"first"``,
departments carry legacy aliases, and students are referenced either by
numeric id or by username.  Every helper here is pure and never raises;
input that does not match a known pattern is passed through trimmed.
"""
from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Optional

__all__ = [
    "DEFAULT_DEPARTMENT_ALIASES",
    "FIRST_SEMESTER",
    "SECOND_SEMESTER",
    "OTHER_SEMESTER",
    "SEMESTER_ORDER",
    "DAY_ORDER",
    "as_dict",
    "get_field",
    "normalize_year",
    "normalize_department",
    "normalize_section_key",
    "normalize_semester",
    "normalize_day",
    "normalize_subject_code",
    "normalize_username",
    "normalize_user_id",
    "section_key_of",
    "user_id_of",
    "username_of",
    "subject_code_of",
]


DEFAULT_DEPARTMENT_ALIASES: Dict[str, str] = {
    "BSEED": "BSED",
}

FIRST_SEMESTER = "First Semester"
SECOND_SEMESTER = "Second Semester"
OTHER_SEMESTER = "Other Semester"
SEMESTER_ORDER = (FIRST_SEMESTER, SECOND_SEMESTER, OTHER_SEMESTER)

DAY_ORDER = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_YEAR_TOKENS = {
    "1": "1",
    "2": "2",
    "3": "3",
    "4": "4",
    "1st": "1",
    "2nd": "2",
    "3rd": "3",
    "4th": "4",
    "first": "1",
    "second": "2",
    "third": "3",
    "fourth": "4",
}

_YEAR_PATTERN = re.compile(r"^(?:year\s*)?([a-z0-9]+)(?:\s*year)?(?:\s*level)?$")

_DAY_ALIASES = {
    "mon": "Monday",
    "monday": "Monday",
    "tue": "Tuesday",
    "tues": "Tuesday",
    "tuesday": "Tuesday",
    "wed": "Wednesday",
    "weds": "Wednesday",
    "wednesday": "Wednesday",
    "thu": "Thursday",
    "thur": "Thursday",
    "thurs": "Thursday",
    "thursday": "Thursday",
    "fri": "Friday",
    "friday": "Friday",
    "sat": "Saturday",
    "saturday": "Saturday",
    "sun": "Sunday",
    "sunday": "Sunday",
    "1": "Monday",
    "2": "Tuesday",
    "3": "Wednesday",
    "4": "Thursday",
    "5": "Friday",
    "6": "Saturday",
    "7": "Sunday",
}


def get_field(record: Any, *names: str, default: Any = None) -> Any:
    """Return the first non-``None`` value among ``names`` on ``record``.

    Works for plain mappings and for attribute-style records (pydantic models
    and dataclasses), so callers can list field aliases in preference order.
    """

    if record is None:
        return default
    for name in names:
        if isinstance(record, Mapping):
            value = record.get(name)
        else:
            value = getattr(record, name, None)
        if value is not None:
            return value
    return default


def as_dict(record: Any) -> Dict[str, Any]:
    """Shallow copy of ``record`` as a plain dict; the source is left untouched."""

    if isinstance(record, Mapping):
        return dict(record)
    if hasattr(record, "model_dump"):
        return record.model_dump()
    if is_dataclass(record) and not isinstance(record, type):
        return asdict(record)
    return dict(vars(record))


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def normalize_year(value: Any) -> str:
    """Return ``"1"``..``"4"`` for any recognised year form, else the trimmed input."""

    raw = _as_text(value)
    if not raw:
        return ""
    match = _YEAR_PATTERN.match(raw.lower())
    if match:
        canonical = _YEAR_TOKENS.get(match.group(1))
        if canonical:
            return canonical
    return raw


def normalize_department(value: Any, aliases: Optional[Mapping[str, str]] = None) -> str:
    table = DEFAULT_DEPARTMENT_ALIASES if aliases is None else aliases
    code = _as_text(value).upper()
    return table.get(code, code)


def normalize_section_key(year: Any, section: Any) -> Optional[str]:
    """Composite ``"<year>|<section>"`` key; section names are compared verbatim."""

    year_key = normalize_year(year)
    section_name = _as_text(section)
    if not year_key or not section_name:
        return None
    return f"{year_key}|{section_name}"


def normalize_semester(value: Any) -> str:
    raw = _as_text(value).lower()
    if not raw:
        return OTHER_SEMESTER
    if "1" in raw or "first" in raw:
        return FIRST_SEMESTER
    if "2" in raw or "second" in raw:
        return SECOND_SEMESTER
    return OTHER_SEMESTER


def normalize_day(value: Any) -> str:
    raw = _as_text(value)
    if not raw:
        return "Unknown"
    alias = _DAY_ALIASES.get(raw.lower())
    if alias:
        return alias
    return raw[0].upper() + raw[1:]


def normalize_subject_code(value: Any) -> str:
    return _as_text(value).upper()


def normalize_username(value: Any) -> str:
    return _as_text(value)


def normalize_user_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or not value.is_integer():
            return None
        return int(value)
    text = _as_text(value)
    if not text.lstrip("-").isdigit():
        return None
    return int(text)


# Key extractors shared by the dashboards.  Each returns ``None`` when the
# record lacks the field so indices skip it instead of keying on blanks.

def section_key_of(record: Any) -> Optional[str]:
    year = get_field(record, "year", "grade_level", "year_level")
    section = get_field(record, "section", "section_name", "name")
    return normalize_section_key(year, section)


def user_id_of(record: Any) -> Optional[int]:
    return normalize_user_id(get_field(record, "user_id"))


def username_of(record: Any) -> Optional[str]:
    return normalize_username(get_field(record, "username")) or None


def subject_code_of(record: Any) -> Optional[str]:
    return normalize_subject_code(get_field(record, "subject_code", "code")) or None
