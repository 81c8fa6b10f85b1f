"""Grouping and reduction of joined campus records into per-entity summaries.

The reductions here are the numbers the dashboards show: per-semester and
whole-year grade averages, building status per section, sanction durations,
weekly teaching schedules, study load unit totals and the enrollment counts
on the manage-students overview.  All functions are pure; inputs are read
through :func:`engines.key_normalizer.get_field` and never mutated.
"""
from __future__ import annotations

import logging
import math
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Sequence

from engines.entity_index import EntityIndex
from engines.joiner import ASSIGNED, join_users, location_of
from engines.key_normalizer import (
    DAY_ORDER,
    SEMESTER_ORDER,
    get_field,
    normalize_day,
    normalize_department,
    normalize_semester,
    normalize_year,
    section_key_of,
)
from engines.validation import DataShapeWarning, ensure_collection

logger = logging.getLogger(__name__)

GRADE_FIELDS = ("prelim_grade", "midterm_grade", "finals_grade")
NOT_ASSIGNED = "Not Assigned"

__all__ = [
    "GRADE_FIELDS",
    "NOT_ASSIGNED",
    "SemesterSummary",
    "GradeSummary",
    "SectionBuildingStatus",
    "SanctionStatus",
    "ScheduleDay",
    "StudyLoadSemester",
    "group_by",
    "count_by",
    "coerce_score",
    "reduce_numeric_average",
    "summarize_grades",
    "summarize_grades_by_year",
    "summarize_student_grades",
    "classify_section_buildings",
    "parse_sanction",
    "group_schedule_by_day",
    "summarize_study_load",
    "summarize_enrollment",
]


def group_by(records: Iterable[Any], key_fn: Callable[[Any], Hashable]) -> Dict[Hashable, List[Any]]:
    """Group records by key, keeping first-seen key order and input order within groups."""

    grouped: Dict[Hashable, List[Any]] = defaultdict(list)
    for record in ensure_collection(records):
        grouped[key_fn(record)].append(record)
    return dict(grouped)


def count_by(records: Iterable[Any], key_fn: Callable[[Any], Hashable]) -> Dict[Hashable, int]:
    return {key: len(members) for key, members in group_by(records, key_fn).items()}


def coerce_score(value: Any) -> Optional[float]:
    """Return ``value`` as a float, or ``None`` when it was not entered.

    ``0`` is a real score.  ``None``, blank strings, booleans, NaN and
    non-numeric text all count as "not entered".
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(Decimal(text))
        except (InvalidOperation, ValueError):
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _record_mean(record: Any, fields: Sequence[str]) -> Optional[float]:
    values = [coerce_score(get_field(record, name)) for name in fields]
    present = [value for value in values if value is not None]
    if not present:
        return None
    return sum(present) / len(present)


def reduce_numeric_average(records: Iterable[Any], fields: Sequence[str] = GRADE_FIELDS) -> Optional[float]:
    """Average of per-record means over the named fields.

    Records with no usable value in any field are left out of the
    denominator.  Returns ``None`` when no record contributed, never ``0``.
    """

    means = [_record_mean(record, fields) for record in ensure_collection(records)]
    contributing = [value for value in means if value is not None]
    if not contributing:
        return None
    return sum(contributing) / len(contributing)


# ---------------------------------------------------------------------------
# Grades
# ---------------------------------------------------------------------------


@dataclass
class SemesterSummary:
    semester: str
    subject_count: int
    graded_count: int
    average: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "semester": self.semester,
            "subject_count": self.subject_count,
            "graded_count": self.graded_count,
            "average": self.average,
        }


@dataclass
class GradeSummary:
    subjects_recorded: int
    subjects_graded: int
    overall_average: Optional[float]
    semesters: List[SemesterSummary] = field(default_factory=list)

    def semester(self, name: str) -> Optional[SemesterSummary]:
        for summary in self.semesters:
            if summary.semester == name:
                return summary
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subjects_recorded": self.subjects_recorded,
            "subjects_graded": self.subjects_graded,
            "overall_average": self.overall_average,
            "semesters": [summary.to_dict() for summary in self.semesters],
        }


def _graded(records: Sequence[Any]) -> int:
    return sum(1 for record in records if _record_mean(record, GRADE_FIELDS) is not None)


def summarize_grades(grades: Iterable[Any]) -> GradeSummary:
    """Per-semester and whole-year averages for one student's grade rows.

    Only semesters that have at least one row are listed, always in the
    order First, Second, Other.
    """

    rows = ensure_collection(grades, "grades")
    by_semester = group_by(rows, lambda record: normalize_semester(get_field(record, "semester")))
    semesters = [
        SemesterSummary(
            semester=name,
            subject_count=len(by_semester[name]),
            graded_count=_graded(by_semester[name]),
            average=reduce_numeric_average(by_semester[name]),
        )
        for name in SEMESTER_ORDER
        if name in by_semester
    ]
    return GradeSummary(
        subjects_recorded=len(rows),
        subjects_graded=_graded(rows),
        overall_average=reduce_numeric_average(rows),
        semesters=semesters,
    )


def _year_sort_key(year: str) -> tuple:
    if year in ("1", "2", "3", "4"):
        return (0, year)
    return (1, year)


def summarize_grades_by_year(grades: Iterable[Any]) -> Dict[str, GradeSummary]:
    """Grade summaries per normalised year; years "1".."4" first, the rest alphabetically."""

    by_year = group_by(grades, lambda record: normalize_year(get_field(record, "year", "year_level")))
    return {year: summarize_grades(by_year[year]) for year in sorted(by_year, key=_year_sort_key)}


def summarize_student_grades(users: Any, grades: Any) -> Dict[Hashable, GradeSummary]:
    """Per-student grade summaries keyed by user id (username when the id is missing).

    Grade rows reference students by ``user_id`` with ``username`` as the
    fallback.  Students without grade rows get an empty summary.
    """

    result = join_users(users, grades, cardinality="one-to-many")
    summaries: Dict[Hashable, GradeSummary] = {}
    for row in result.rows:
        key = get_field(row.left, "id", "username")
        summaries[key] = summarize_grades(row.right)
    if result.unmatched_right:
        logger.debug("%d grade rows reference no known student", len(result.unmatched_right))
    return summaries


# ---------------------------------------------------------------------------
# Buildings
# ---------------------------------------------------------------------------


@dataclass
class SectionBuildingStatus:
    key: str
    year: str
    section: str
    status: str
    building: Optional[str] = None
    floor: Optional[int] = None
    room: Optional[str] = None

    @property
    def assigned(self) -> bool:
        return self.status == ASSIGNED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "year": self.year,
            "section": self.section,
            "status": self.status,
            "building": self.building,
            "floor": self.floor,
            "room": self.room,
        }


def classify_section_buildings(
    sections: Any,
    section_assignments: Any,
    warnings: Optional[List[DataShapeWarning]] = None,
) -> List[SectionBuildingStatus]:
    """Building status for every section, in section input order.

    A section is ``Assigned`` only when its room assignment names a building,
    a floor and a room; anything less is ``Not Assigned``.  Duplicate
    ``(year, section)`` pairs are reported once.  When ``warnings`` is given,
    skipped records are appended to it.
    """

    assignment_index = EntityIndex.build(section_assignments, section_key_of, name="section_assignments")
    section_index = EntityIndex.build(sections, section_key_of, multi=True, name="sections")
    if warnings is not None:
        warnings.extend(section_index.warnings)
        warnings.extend(assignment_index.warnings)

    statuses: List[SectionBuildingStatus] = []
    for key, members in section_index.items():
        first = members[0]
        status = SectionBuildingStatus(
            key=key,
            year=normalize_year(get_field(first, "year", "grade_level")),
            section=str(get_field(first, "name", "section_name", "section")).strip(),
            status=NOT_ASSIGNED,
        )
        location = location_of(assignment_index.get(key))
        if location is not None:
            status.status = ASSIGNED
            status.building, status.floor, status.room = location
        statuses.append(status)
    return statuses


# ---------------------------------------------------------------------------
# Sanctions
# ---------------------------------------------------------------------------

_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_DAY_COUNT = re.compile(r"^\d+$")
_SECONDS_PER_DAY = 86400


@dataclass
class SanctionStatus:
    """Decoded sanctions field.

    ``kind`` is one of ``none``, ``date``, ``expired``, ``days`` or ``note``.
    """

    kind: str
    label: str
    days_remaining: Optional[int] = None
    expires_on: Optional[date] = None
    note: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.kind in ("date", "days", "note")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "label": self.label,
            "days_remaining": self.days_remaining,
            "expires_on": self.expires_on.isoformat() if self.expires_on else None,
            "note": self.note,
        }


def _embedded_date(text: str) -> Optional[date]:
    for match in _ISO_DATE.finditer(text):
        year, month, day = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return None


def parse_sanction(value: Any, now: Optional[datetime] = None) -> SanctionStatus:
    """Decode a sanctions string that may hold a date, a day count or free text.

    Tried in order: an embedded ``YYYY-MM-DD`` date (days remaining until UTC
    midnight of that date, rounded up, or ``Expired`` once passed), then a
    bare integer day count, then free text reported as ``Yes`` with the text
    as the note.
    """

    text = str(value).strip() if value is not None else ""
    if not text:
        return SanctionStatus(kind="none", label="No")

    expires_on = _embedded_date(text)
    if expires_on is not None:
        current = now or datetime.now(timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        deadline = datetime.combine(expires_on, time.min, tzinfo=timezone.utc)
        seconds = (deadline - current).total_seconds()
        if seconds > 0:
            days = math.ceil(seconds / _SECONDS_PER_DAY)
            return SanctionStatus(
                kind="date",
                label=f"{days} day{'s' if days != 1 else ''}",
                days_remaining=days,
                expires_on=expires_on,
            )
        return SanctionStatus(kind="expired", label="Expired", expires_on=expires_on)

    if _DAY_COUNT.match(text):
        days = int(text)
        return SanctionStatus(
            kind="days",
            label=f"{days} day{'s' if days != 1 else ''}",
            days_remaining=days,
        )

    return SanctionStatus(kind="note", label="Yes", note=text)


# ---------------------------------------------------------------------------
# Schedules and study load
# ---------------------------------------------------------------------------


@dataclass
class ScheduleDay:
    day: str
    entries: List[Any] = field(default_factory=list)


def _start_time_key(record: Any) -> tuple:
    start = get_field(record, "start_time", "time_start")
    if start is None or not str(start).strip():
        return (1, "")
    parts = str(start).strip().split(":")
    try:
        return (0, tuple(int(part) for part in parts))
    except ValueError:
        return (0, (str(start),))


def group_schedule_by_day(schedules: Any) -> List[ScheduleDay]:
    """Schedule rows grouped by weekday, Monday to Sunday, then unknown labels alphabetically.

    Rows within a day are ordered by start time; rows without one go last.
    """

    by_day = group_by(
        schedules,
        lambda record: normalize_day(get_field(record, "day", "day_of_week", "dayOfWeek")),
    )
    known = [day for day in DAY_ORDER if day in by_day]
    extras = sorted(day for day in by_day if day not in DAY_ORDER)
    return [
        ScheduleDay(day=day, entries=sorted(by_day[day], key=_start_time_key))
        for day in known + extras
    ]


@dataclass
class StudyLoadSemester:
    semester: str
    subjects: List[Any] = field(default_factory=list)
    total_units: float = 0.0

    @property
    def subject_count(self) -> int:
        return len(self.subjects)


def summarize_study_load(rows: Any) -> List[StudyLoadSemester]:
    """Study load split by normalised semester with unit totals."""

    by_semester = group_by(rows, lambda record: normalize_semester(get_field(record, "semester")))
    summaries: List[StudyLoadSemester] = []
    for name in SEMESTER_ORDER:
        if name not in by_semester:
            continue
        members = by_semester[name]
        units = [coerce_score(get_field(record, "units")) for record in members]
        summaries.append(
            StudyLoadSemester(
                semester=name,
                subjects=members,
                total_units=sum(unit for unit in units if unit is not None and unit >= 0),
            )
        )
    return summaries


# ---------------------------------------------------------------------------
# Enrollment overview
# ---------------------------------------------------------------------------


def summarize_enrollment(
    assignments: Any,
    aliases: Optional[Mapping[str, str]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Counts for the manage-students overview.

    Departments are normalised through ``aliases`` so legacy codes count
    toward their current department.
    """

    rows = ensure_collection(assignments, "assignments")
    by_department = count_by(
        rows, lambda record: normalize_department(get_field(record, "department"), aliases) or "Unassigned"
    )
    by_year = count_by(rows, lambda record: normalize_year(get_field(record, "year")) or "Unassigned")
    by_payment = count_by(
        rows, lambda record: str(get_field(record, "payment", default="paid")).strip().lower() or "paid"
    )
    owing_total = Decimal("0")
    for record in rows:
        amount = coerce_score(get_field(record, "owing_amount"))
        if amount is not None and str(get_field(record, "payment", default="")).strip().lower() == "owing":
            owing_total += Decimal(str(amount))
    sanctions = [parse_sanction(get_field(record, "sanctions"), now=now) for record in rows]
    return {
        "total": len(rows),
        "by_department": by_department,
        "by_year": dict(sorted(by_year.items(), key=lambda item: _year_sort_key(item[0]))),
        "by_payment": by_payment,
        "owing_total": owing_total,
        "sanctioned": sum(1 for status in sanctions if status.active),
    }
