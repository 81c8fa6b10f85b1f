"""Presentation-neutral shaping of aggregate results for dashboard sections.

Nothing here knows about markup; every function returns plain data that the
rendering layer can drop into its templates.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from engines.aggregator import (
    GradeSummary,
    SanctionStatus,
    ScheduleDay,
    SectionBuildingStatus,
    StudyLoadSemester,
    coerce_score,
)
from engines.key_normalizer import (
    FIRST_SEMESTER,
    SECOND_SEMESTER,
    as_dict,
    get_field,
    normalize_department,
    normalize_semester,
    normalize_year,
)

DEFAULT_PASSING_CEILING = 3.0

_SUFFIXES = ("th", "st", "nd", "rd", "th", "th", "th", "th", "th", "th")


def _whole_number(value: Any) -> Optional[int]:
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return int(number) if number.is_integer() else None


def ordinal(value: Any) -> str:
    """English ordinal for an integer (``1st``, ``12th``, ``101st``).

    Integral floats and numeric text (``2.0``, ``"3.0"``) count as integers.
    Anything else is returned as text unchanged.
    """

    number = _whole_number(value)
    if number is None:
        return str(value)
    if 11 <= abs(number) % 100 <= 13:
        return f"{number}th"
    return f"{number}{_SUFFIXES[abs(number) % 10]}"


def format_year_label(value: Any) -> str:
    raw = str(value).strip() if value is not None else ""
    if not raw or raw.lower() == "unknown":
        return "Academic Records"
    if "year" in raw.lower():
        return raw
    year = normalize_year(raw)
    if year.isdigit() and 0 < int(year) <= 10:
        return f"{ordinal(year)} Year"
    return raw


def format_semester_label(value: Any) -> str:
    semester = normalize_semester(value)
    if semester == FIRST_SEMESTER:
        return "1st Semester"
    if semester == SECOND_SEMESTER:
        return "2nd Semester"
    return "Other Semester"


def format_time(value: Any) -> str:
    """``"13:05"`` -> ``"1:05 PM"``; missing times read ``TBA``."""

    if value is None or not str(value).strip():
        return "TBA"
    text = str(value).strip()
    parts = text.split(":")
    if len(parts) < 2 or not parts[0].isdigit():
        return text
    hour = int(parts[0])
    suffix = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{parts[1]} {suffix}"


def format_average(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value:.2f}"


def format_course_program(department: Any, major: Any) -> str:
    """``"BSED - English"``; the major is dropped when the department already names it."""

    department_text = str(department or "").strip()
    major_text = str(major or "").strip()
    if department_text and major_text:
        if major_text.lower() not in department_text.lower():
            return f"{department_text} - {major_text}"
        return department_text
    return major_text or department_text or "N/A"


def classify_grade(value: Any, passing_ceiling: float = DEFAULT_PASSING_CEILING) -> str:
    """Status of a single grade on the 1.0 (best) to 5.0 scale."""

    if value is None or not str(value).strip():
        return "Pending"
    score = coerce_score(value)
    if score is None:
        return str(value).strip()
    return "Passed" if score <= passing_ceiling else "Failed"


def display_name(user: Any) -> str:
    for name in ("full_name", "username", "school_id", "id"):
        value = get_field(user, name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return "Unknown"


def project_grade_summary(student: Any, summary: GradeSummary) -> Dict[str, Any]:
    recorded = summary.subjects_recorded
    summary_text = f"{recorded} subject{'s' if recorded != 1 else ''} recorded, {summary.subjects_graded} graded"
    return {
        "display_name": display_name(student),
        "summary_text": summary_text,
        "semester_badges": [
            {
                "label": format_semester_label(semester.semester),
                "subjects": semester.subject_count,
                "graded": semester.graded_count,
                "average": semester.average,
                "average_text": format_average(semester.average),
            }
            for semester in summary.semesters
        ],
        "overall_average": summary.overall_average,
    }


def project_grades_by_year(summaries: Mapping[str, GradeSummary]) -> List[Dict[str, Any]]:
    return [
        {
            "year": year,
            "label": format_year_label(year),
            "overall_average": summary.overall_average,
            "semesters": [semester.to_dict() for semester in summary.semesters],
        }
        for year, summary in summaries.items()
    ]


def _location_text(status: SectionBuildingStatus) -> Optional[str]:
    if not status.assigned:
        return None
    return f"{status.building}/{status.floor}/{status.room}"


def building_status_text(status: SectionBuildingStatus) -> str:
    location = _location_text(status)
    return f"{status.status} ({location})" if location else status.status


def project_building_status(statuses: Iterable[SectionBuildingStatus]) -> List[Dict[str, Any]]:
    return [
        {
            "year_label": format_year_label(status.year),
            "section": status.section,
            "status": status.status,
            "location": _location_text(status),
            "summary": building_status_text(status),
        }
        for status in statuses
    ]


def building_status_map(statuses: Iterable[SectionBuildingStatus]) -> Dict[str, str]:
    """Section name -> status text; use :func:`project_building_status` when names repeat across years."""

    return {status.section: building_status_text(status) for status in statuses}


def project_teacher_schedule(days: Sequence[ScheduleDay]) -> List[Dict[str, Any]]:
    projected = []
    for day in days:
        entries = []
        for entry in day.entries:
            payload = as_dict(entry)
            start = get_field(entry, "start_time", "time_start")
            end = get_field(entry, "end_time", "time_end")
            payload["time_text"] = f"{format_time(start)} - {format_time(end)}"
            entries.append(payload)
        projected.append({"day": day.day, "entries": entries})
    return projected


def project_sanction(status: SanctionStatus) -> Dict[str, Any]:
    return {"label": status.label, "note": status.note, "active": status.active}


def project_study_load(semesters: Sequence[StudyLoadSemester]) -> List[Dict[str, Any]]:
    return [
        {
            "label": format_semester_label(semester.semester),
            "subjects": [as_dict(subject) for subject in semester.subjects],
            "subject_count": semester.subject_count,
            "total_units": semester.total_units,
        }
        for semester in semesters
    ]


def majors_for_department(
    course_majors: Mapping[str, Sequence[str]],
    department: Any,
    aliases: Optional[Mapping[str, str]] = None,
) -> List[str]:
    return list(course_majors.get(normalize_department(department, aliases), []))
