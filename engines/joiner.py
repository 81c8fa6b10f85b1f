"""Value-based joins across independently fetched collections.

Every relationship between campus records is a weak reference: a grade row
points at a student through ``user_id`` *or* ``username``, a section
assignment is found through the composite ``(year, section)`` key, a study
load row finds its teacher through a case-insensitive subject code.  The
helpers here materialise transient joined views for one aggregation pass and
keep track of what failed to match on either side.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

from engines.entity_index import EntityIndex, KeyFn
from engines.key_normalizer import (
    as_dict,
    get_field,
    normalize_user_id,
    normalize_username,
    section_key_of,
    subject_code_of,
    user_id_of,
    username_of,
)
from engines.validation import DataShapeWarning, ProgrammerError, ensure_collection

logger = logging.getLogger(__name__)

ONE_TO_ONE = "one-to-one"
ONE_TO_MANY = "one-to-many"

ASSIGNED = "Assigned"
UNASSIGNED = "Unassigned"

__all__ = [
    "ONE_TO_ONE",
    "ONE_TO_MANY",
    "ASSIGNED",
    "UNASSIGNED",
    "JoinedRow",
    "JoinResult",
    "BuildingLookup",
    "join",
    "join_users",
    "location_of",
    "resolve_buildings",
    "resolve_student_building",
    "attach_subjects",
    "attach_teachers",
    "schedules_for_teacher",
]


@dataclass
class JoinedRow:
    """A left record and whatever it attached on the right."""

    left: Any
    right: Any


@dataclass
class JoinResult:
    rows: List[JoinedRow] = field(default_factory=list)
    matched: List[JoinedRow] = field(default_factory=list)
    unmatched_left: List[Any] = field(default_factory=list)
    unmatched_right: List[Any] = field(default_factory=list)
    warnings: List[DataShapeWarning] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return len(self.warnings)


def _safe_key(key_fn: KeyFn, record: Any) -> Optional[Hashable]:
    try:
        key = key_fn(record)
        hash(key)
    except (KeyError, AttributeError, TypeError):
        return None
    if isinstance(key, str) and not key.strip():
        return None
    return key


def join(
    left: Any,
    right: Any,
    *,
    on: KeyFn,
    right_on: Optional[KeyFn] = None,
    cardinality: str = ONE_TO_ONE,
    fallbacks: Sequence[Tuple[KeyFn, KeyFn]] = (),
) -> JoinResult:
    """Attach right records to each left record by key.

    ``left`` may be a collection or an :class:`EntityIndex` (its source
    records are walked in input order).  ``right`` may be a collection, keyed
    with ``right_on`` (defaults to ``on``), or a prebuilt index whose own
    key function and mode are respected; passing ``right_on`` with an index
    raises :class:`ProgrammerError`.  For one-to-one joins against a
    collection the first right record in input order wins.

    ``fallbacks`` are extra ``(left_key, right_key)`` pairs: a one-to-one join
    tries them in order whenever the previous key is missing or finds
    nothing, a one-to-many join collects right records matching any of the
    keys.  Fallback lookups are always built from the right source records in
    multi mode, so they are first-wins even when the primary index is a
    last-wins single-mode index.
    """

    if cardinality not in (ONE_TO_ONE, ONE_TO_MANY):
        raise ProgrammerError(f"Unknown join cardinality: {cardinality!r}")
    if isinstance(right, EntityIndex) and right_on is not None:
        raise ProgrammerError("right_on cannot be combined with a prebuilt index; the index's own key is used")

    if isinstance(left, EntityIndex):
        left_records = list(left.records)
    else:
        left_records = ensure_collection(left, "left")

    if isinstance(right, EntityIndex):
        right_records = list(right.records)
        primary = right
    else:
        right_records = ensure_collection(right, "right")
        primary = EntityIndex.build(right_records, right_on or on, multi=True, name="right")

    lookups: List[Tuple[KeyFn, EntityIndex]] = [(on, primary)]
    for left_key, right_key in fallbacks:
        lookups.append(
            (left_key, EntityIndex.build(right_records, right_key, multi=True, name="right"))
        )

    position = {id(record): offset for offset, record in enumerate(right_records)}
    result = JoinResult()
    attached: set = set()
    for record in left_records:
        candidates: List[Any] = []
        keyed = False
        for key_fn, index in lookups:
            key = _safe_key(key_fn, record)
            if key is None:
                continue
            keyed = True
            found = index.candidates(key)
            if cardinality == ONE_TO_ONE:
                if found:
                    candidates = found
                    break
            else:
                # Keys are alternatives: a right record matching any of them belongs to this row.
                seen = {id(candidate) for candidate in candidates}
                candidates.extend(candidate for candidate in found if id(candidate) not in seen)
        if len(lookups) > 1 and cardinality == ONE_TO_MANY:
            candidates.sort(key=lambda candidate: position.get(id(candidate), len(position)))
        if not keyed:
            result.warnings.append(
                DataShapeWarning(source="left", reason="no usable join key", record=record)
            )

        if cardinality == ONE_TO_ONE:
            attachment = candidates[0] if candidates else None
            if attachment is not None:
                attached.add(id(attachment))
        else:
            attachment = list(candidates)
            attached.update(id(candidate) for candidate in candidates)

        row = JoinedRow(left=record, right=attachment)
        result.rows.append(row)
        if candidates:
            result.matched.append(row)
        else:
            result.unmatched_left.append(record)

    # A right record only counts as malformed when no lookup could key it.
    skipped_everywhere = None
    for _, index in lookups:
        ids = {id(warning.record) for warning in index.warnings}
        skipped_everywhere = ids if skipped_everywhere is None else skipped_everywhere & ids
    for warning in primary.warnings:
        if id(warning.record) in (skipped_everywhere or set()):
            result.warnings.append(warning)

    result.unmatched_right = [record for record in right_records if id(record) not in attached]
    logger.debug(
        "Joined %d left / %d right records: %d matched, %d unmatched left, %d unmatched right",
        len(left_records),
        len(right_records),
        len(result.matched),
        len(result.unmatched_left),
        len(result.unmatched_right),
    )
    return result


def _user_record_id(user: Any) -> Optional[int]:
    return normalize_user_id(get_field(user, "id", "user_id"))


def _user_record_name(user: Any) -> Optional[str]:
    return normalize_username(get_field(user, "username")) or None


def join_users(users: Any, records: Any, *, cardinality: str = ONE_TO_ONE) -> JoinResult:
    """Join user records to rows that reference them by ``user_id`` or ``username``."""

    return join(
        users,
        records,
        on=_user_record_id,
        right_on=user_id_of,
        cardinality=cardinality,
        fallbacks=[(_user_record_name, username_of)],
    )


# ---------------------------------------------------------------------------
# Building / room resolution
# ---------------------------------------------------------------------------


def location_of(section_assignment: Any) -> Optional[Tuple[str, int, str]]:
    """``(building, floor, room)`` when all three are present, else ``None``."""

    if section_assignment is None:
        return None
    building = str(get_field(section_assignment, "building", default="")).strip()
    room = str(get_field(section_assignment, "room", default="")).strip()
    floor = normalize_user_id(get_field(section_assignment, "floor"))
    if not building or not room or floor is None or floor < 1:
        return None
    return building, floor, room


@dataclass
class BuildingLookup:
    user: Any
    status: str
    reason: Optional[str] = None
    year: Optional[str] = None
    section: Optional[str] = None
    building: Optional[str] = None
    floor: Optional[int] = None
    room: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "reason": self.reason,
            "year": self.year,
            "section": self.section,
            "building": self.building,
            "floor": self.floor,
            "room": self.room,
        }


def resolve_buildings(
    users: Any,
    assignments: Any,
    section_assignments: Any,
    warnings: Optional[List[DataShapeWarning]] = None,
) -> List[BuildingLookup]:
    """Find each user's building through user -> assignment -> section assignment.

    The first assignment per user wins and the last section assignment per
    ``(year, section)`` wins; callers sort both collections beforehand when
    recency matters.  A broken link at any stage yields ``Unassigned``.
    When ``warnings`` is given, records skipped by either join are appended
    to it.
    """

    user_rows = join_users(users, assignments)
    section_index = EntityIndex.build(section_assignments, section_key_of, name="section_assignments")
    linked = [row.right for row in user_rows.matched]
    room_rows = join(linked, section_index, on=section_key_of)
    if warnings is not None:
        warnings.extend(user_rows.warnings)
        # Includes the section assignments the index could not key.
        warnings.extend(room_rows.warnings)
    rooms_by_assignment = {id(row.left): row.right for row in room_rows.rows}

    lookups: List[BuildingLookup] = []
    for row in user_rows.rows:
        assignment = row.right
        if assignment is None:
            lookups.append(BuildingLookup(user=row.left, status=UNASSIGNED, reason="no assignment"))
            continue
        year = get_field(assignment, "year", "grade_level", "year_level")
        section = get_field(assignment, "section", "section_name")
        lookup = BuildingLookup(
            user=row.left,
            status=UNASSIGNED,
            year=str(year).strip() if year is not None else None,
            section=str(section).strip() if section is not None else None,
        )
        section_assignment = rooms_by_assignment.get(id(assignment))
        location = location_of(section_assignment)
        if section_assignment is None:
            lookup.reason = "no room assignment"
        elif location is None:
            lookup.reason = "incomplete room assignment"
        else:
            lookup.status = ASSIGNED
            lookup.building, lookup.floor, lookup.room = location
        lookups.append(lookup)
    return lookups


def resolve_student_building(
    student: Any,
    assignments: Any,
    section_assignments: Any,
    warnings: Optional[List[DataShapeWarning]] = None,
) -> BuildingLookup:
    return resolve_buildings([student], assignments, section_assignments, warnings=warnings)[0]


# ---------------------------------------------------------------------------
# Teachers
# ---------------------------------------------------------------------------


def _teacher_name(teacher_assignment: Any) -> Optional[str]:
    name = get_field(teacher_assignment, "teacher_name", "full_name", "teacher")
    text = str(name).strip() if name is not None else ""
    return text or None


def attach_teachers(study_load: Any, teacher_assignments: Any) -> Tuple[List[Dict[str, Any]], JoinResult]:
    """Copy study load rows, filling ``teacher`` from the subject's teacher assignment.

    A teacher already present on the row is kept.  Subject codes match
    case-insensitively and the first teacher assignment per code wins.
    """

    result = join(study_load, teacher_assignments, on=subject_code_of)
    rows: List[Dict[str, Any]] = []
    for row in result.rows:
        payload = as_dict(row.left)
        current = str(payload.get("teacher") or "").strip()
        if not current and row.right is not None:
            payload["teacher"] = _teacher_name(row.right)
        elif not current:
            payload["teacher"] = None
        rows.append(payload)
    return rows, result


_SUBJECT_FIELDS = (
    ("subject_title", ("title", "subject_name")),
    ("units", ("units",)),
    ("semester", ("semester",)),
)


def attach_subjects(study_load: Any, subjects: Any) -> Tuple[List[Dict[str, Any]], JoinResult]:
    """Copy study load rows, filling title, units and semester from the subject catalogue.

    Values already on the row are kept.  Subject codes match case-insensitively
    and the first subject per code wins.
    """

    result = join(study_load, subjects, on=subject_code_of)
    rows: List[Dict[str, Any]] = []
    for row in result.rows:
        payload = as_dict(row.left)
        if row.right is not None:
            for target, sources in _SUBJECT_FIELDS:
                current = payload.get(target)
                if current is None or (isinstance(current, str) and not current.strip()):
                    payload[target] = get_field(row.right, *sources)
        rows.append(payload)
    return rows, result


def _assignment_id(record: Any) -> Optional[int]:
    return normalize_user_id(get_field(record, "id"))


def _schedule_assignment_id(record: Any) -> Optional[int]:
    return normalize_user_id(get_field(record, "teacher_assignment_id"))


def schedules_for_teacher(
    teacher: Any,
    teacher_assignments: Any,
    schedules: Any,
) -> Tuple[List[Dict[str, Any]], JoinResult]:
    """Schedule rows taught by ``teacher``, enriched with subject and teacher name.

    Teacher assignments belong to the teacher by ``user_id`` or, when that is
    absent, by matching full name.
    """

    assignments = ensure_collection(teacher_assignments, "teacher_assignments")
    teacher_id = _user_record_id(teacher)
    teacher_full_name = str(get_field(teacher, "full_name", "username", default="")).strip().lower()

    def _belongs(record: Any) -> bool:
        owner_id = user_id_of(record)
        if owner_id is not None and teacher_id is not None:
            return owner_id == teacher_id
        name = (_teacher_name(record) or "").lower()
        return bool(name) and name == teacher_full_name

    owned = [record for record in assignments if _belongs(record)]
    result = join(schedules, owned, on=_schedule_assignment_id, right_on=_assignment_id)
    rows: List[Dict[str, Any]] = []
    for row in result.matched:
        payload = as_dict(row.left)
        if not payload.get("subject_code"):
            payload["subject_code"] = get_field(row.right, "subject_code")
        payload["teacher"] = _teacher_name(row.right)
        rows.append(payload)
    return rows, result
