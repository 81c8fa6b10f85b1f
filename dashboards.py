"""Dashboard sections as thin consumers of the correlation engines.

Each function takes the collections one portal section already fetched,
validates them, runs the joins and reductions it needs and returns the
projected payload together with the number of records that had to be
skipped.  None of them perform I/O.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from campus_config import CampusConfig
from engines.aggregator import (
    classify_section_buildings,
    group_schedule_by_day,
    parse_sanction,
    summarize_enrollment,
    summarize_grades,
    summarize_grades_by_year,
    summarize_study_load,
)
from engines.joiner import (
    ASSIGNED,
    attach_subjects,
    attach_teachers,
    join,
    join_users,
    resolve_student_building,
    schedules_for_teacher,
)
from engines.key_normalizer import (
    get_field,
    normalize_department,
    normalize_user_id,
    normalize_username,
    user_id_of,
    username_of,
)
from engines.validation import DataShapeWarning, merge_warnings
from engines.view_projector import (
    classify_grade,
    display_name,
    format_course_program,
    format_semester_label,
    format_year_label,
    majors_for_department,
    project_building_status,
    project_grade_summary,
    project_grades_by_year,
    project_sanction,
    project_study_load,
    project_teacher_schedule,
)
from schemas import (
    AssignmentRecord,
    GradeRecord,
    ScheduleRecord,
    SectionAssignmentRecord,
    SectionRecord,
    StudyLoadRecord,
    SubjectRecord,
    TeacherAssignmentRecord,
    UserRecord,
    parse_records,
)

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "student_grades_dashboard",
    "facilities_dashboard",
    "student_building_dashboard",
    "teacher_schedule_dashboard",
    "study_load_dashboard",
    "manage_students_dashboard",
]


def _log_json(event: str, payload: Dict[str, Any]) -> None:
    record = {"event": event, **payload}
    try:
        message = json.dumps(record, ensure_ascii=False, sort_keys=True)
    except (TypeError, ValueError):
        message = json.dumps({"event": event, "payload_repr": repr(payload)}, sort_keys=True)
    _LOGGER.info(message)


def _report(event: str, warnings: List[DataShapeWarning], **counts: Any) -> int:
    if warnings:
        _LOGGER.warning("%s skipped %d malformed records", event, len(warnings))
    _log_json(event, {"skipped": len(warnings), **counts})
    return len(warnings)


def student_grades_dashboard(
    student: Any,
    grades: Any,
    config: Optional[CampusConfig] = None,
) -> Dict[str, Any]:
    """Grade averages for one student, per semester, per year and overall."""

    config = config or CampusConfig()
    records, warnings = parse_records(grades, GradeRecord, source="grades")
    result = join_users([student], records, cardinality="one-to-many")
    own = result.rows[0].right
    payload = project_grade_summary(student, summarize_grades(own))
    payload["years"] = project_grades_by_year(summarize_grades_by_year(own))
    payload["subjects"] = [
        {
            "subject": grade.subject,
            "instructor": grade.instructor,
            "semester": format_semester_label(grade.semester),
            "year": format_year_label(grade.year),
            "periods": {
                name: {
                    "grade": getattr(grade, name),
                    "status": classify_grade(getattr(grade, name), config.passing_grade_ceiling),
                }
                for name in ("prelim_grade", "midterm_grade", "finals_grade")
            },
        }
        for grade in own
    ]
    warnings = merge_warnings(warnings, result.warnings)
    payload["warnings"] = _report("student_grades", warnings, grades=len(own))
    return payload


def facilities_dashboard(sections: Any, section_assignments: Any) -> Dict[str, Any]:
    """Building/room status for every section."""

    section_rows, section_warnings = parse_records(sections, SectionRecord, source="sections")
    room_rows, room_warnings = parse_records(
        section_assignments, SectionAssignmentRecord, source="section_assignments"
    )
    warnings = merge_warnings(section_warnings, room_warnings)
    statuses = classify_section_buildings(section_rows, room_rows, warnings=warnings)
    assigned = sum(1 for status in statuses if status.assigned)
    return {
        "sections": project_building_status(statuses),
        "assigned": assigned,
        "not_assigned": len(statuses) - assigned,
        "warnings": _report("facilities", warnings, sections=len(statuses), assigned=assigned),
    }


def student_building_dashboard(student: Any, assignments: Any, section_assignments: Any) -> Dict[str, Any]:
    """Where a student's section meets, or ``Unassigned``."""

    assignment_rows, assignment_warnings = parse_records(assignments, AssignmentRecord, source="assignments")
    room_rows, room_warnings = parse_records(
        section_assignments, SectionAssignmentRecord, source="section_assignments"
    )
    warnings = merge_warnings(assignment_warnings, room_warnings)
    lookup = resolve_student_building(student, assignment_rows, room_rows, warnings=warnings)
    location = None
    if lookup.status == ASSIGNED:
        location = f"{lookup.building}/{lookup.floor}/{lookup.room}"
    payload = lookup.to_dict()
    payload.update(
        {
            "display_name": display_name(student),
            "year_label": format_year_label(lookup.year) if lookup.year else None,
            "location": location,
        }
    )
    payload["warnings"] = _report("student_building", warnings, status=lookup.status)
    return payload


def teacher_schedule_dashboard(teacher: Any, teacher_assignments: Any, schedules: Any) -> Dict[str, Any]:
    """A teacher's classes grouped by weekday."""

    assignment_rows, assignment_warnings = parse_records(
        teacher_assignments, TeacherAssignmentRecord, source="teacher_assignments"
    )
    schedule_rows, schedule_warnings = parse_records(schedules, ScheduleRecord, source="schedules")
    entries, result = schedules_for_teacher(teacher, assignment_rows, schedule_rows)
    days = group_schedule_by_day(entries)
    warnings = merge_warnings(assignment_warnings, schedule_warnings, result.warnings)
    return {
        "teacher": display_name(teacher),
        "days": project_teacher_schedule(days),
        "classes": len(entries),
        "warnings": _report("teacher_schedule", warnings, classes=len(entries), days=len(days)),
    }


def study_load_dashboard(
    study_load: Any,
    teacher_assignments: Any,
    assignment: Any = None,
    config: Optional[CampusConfig] = None,
    subjects: Any = None,
) -> Dict[str, Any]:
    """A section's study load by semester, with teachers filled in.

    When the subject catalogue is given, missing titles, units and semesters
    are taken from it before teachers are attached.
    """

    config = config or CampusConfig()
    load_rows, load_warnings = parse_records(study_load, StudyLoadRecord, source="study_load")
    assignment_rows, assignment_warnings = parse_records(
        teacher_assignments, TeacherAssignmentRecord, source="teacher_assignments"
    )
    warnings = merge_warnings(load_warnings, assignment_warnings)
    if subjects is not None:
        subject_rows, subject_warnings = parse_records(subjects, SubjectRecord, source="subjects")
        load_rows, subject_result = attach_subjects(load_rows, subject_rows)
        warnings = merge_warnings(warnings, subject_warnings, subject_result.warnings)
    rows, teacher_result = attach_teachers(load_rows, assignment_rows)
    warnings = merge_warnings(warnings, teacher_result.warnings)
    semesters = summarize_study_load(rows)
    department = normalize_department(get_field(assignment, "department"), config.department_aliases)
    return {
        "course_program": format_course_program(department, get_field(assignment, "major")),
        "semesters": project_study_load(semesters),
        "without_teacher": sum(1 for row in rows if not row.get("teacher")),
        "warnings": _report("study_load", warnings, subjects=len(rows)),
    }


def _user_id(user: Any) -> Optional[int]:
    return normalize_user_id(get_field(user, "id"))


def _username(user: Any) -> Optional[str]:
    return normalize_username(get_field(user, "username")) or None


def manage_students_dashboard(
    users: Any,
    assignments: Any,
    config: Optional[CampusConfig] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Student assignment rows with payment and sanction status, plus overview counts.

    Assignments are listed even when no user matches them; those rows fall
    back to the assignment's own username.
    """

    config = config or CampusConfig()
    user_rows, user_warnings = parse_records(users, UserRecord, source="users")
    assignment_rows, assignment_warnings = parse_records(assignments, AssignmentRecord, source="assignments")
    result = join(
        assignment_rows,
        user_rows,
        on=user_id_of,
        right_on=_user_id,
        fallbacks=[(username_of, _username)],
    )
    students = []
    for row in result.rows:
        assignment = row.left
        sanction = parse_sanction(assignment.sanctions, now=now)
        department = normalize_department(assignment.department, config.department_aliases)
        students.append(
            {
                "assignment_id": assignment.id,
                "display_name": display_name(row.right) if row.right is not None else assignment.username or "Unknown",
                "year_label": format_year_label(assignment.year),
                "section": assignment.section,
                "course_program": format_course_program(department, assignment.major),
                "payment": assignment.payment,
                "owing_amount": float(assignment.owing_amount) if assignment.owing_amount is not None else None,
                "sanction": project_sanction(sanction),
            }
        )
    overview = summarize_enrollment(assignment_rows, config.department_aliases, now=now)
    overview["owing_total"] = float(overview["owing_total"])
    overview["department_majors"] = {
        department: majors_for_department(config.course_majors, department, config.department_aliases)
        for department in overview["by_department"]
    }
    warnings = merge_warnings(user_warnings, assignment_warnings, result.warnings)
    return {
        "students": students,
        "overview": overview,
        "unlinked_students": [
            display_name(user) for user in result.unmatched_right if user.role == "student"
        ],
        "warnings": _report("manage_students", warnings, students=len(students)),
    }
