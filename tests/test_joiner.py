import pytest

from engines.entity_index import EntityIndex
from engines.joiner import (
    ASSIGNED,
    ONE_TO_MANY,
    UNASSIGNED,
    attach_subjects,
    attach_teachers,
    join,
    join_users,
    location_of,
    resolve_buildings,
    resolve_student_building,
    schedules_for_teacher,
)
from engines.key_normalizer import subject_code_of, user_id_of
from engines.validation import ProgrammerError


def _code(record):
    return subject_code_of(record)


def test_one_to_one_takes_first_right_record_in_input_order():
    left = [{"subject_code": "it101"}]
    right = [
        {"subject_code": "IT101", "teacher_name": "First"},
        {"subject_code": "it101", "teacher_name": "Second"},
    ]
    result = join(left, right, on=_code)

    assert result.rows[0].right["teacher_name"] == "First"
    assert result.unmatched_right == [right[1]]


def test_prebuilt_single_index_keeps_its_last_wins_choice():
    left = [{"subject_code": "IT101"}]
    right = [
        {"subject_code": "IT101", "teacher_name": "First"},
        {"subject_code": "IT101", "teacher_name": "Second"},
    ]
    index = EntityIndex.build(right, _code)
    result = join(left, index, on=_code)

    assert result.rows[0].right["teacher_name"] == "Second"


def test_join_is_deterministic():
    left = [{"user_id": n % 3} for n in range(6)]
    right = [{"user_id": n % 2, "n": n} for n in range(4)]

    first = join(left, right, on=user_id_of, cardinality=ONE_TO_MANY)
    second = join(left, right, on=user_id_of, cardinality=ONE_TO_MANY)

    assert [row.right for row in first.rows] == [row.right for row in second.rows]
    assert first.unmatched_left == second.unmatched_left


def test_unmatched_records_are_reported_on_both_sides():
    left = [{"user_id": 1}, {"user_id": 2}]
    right = [{"user_id": 1}, {"user_id": 3}]
    result = join(left, right, on=user_id_of)

    assert len(result.matched) == 1
    assert result.unmatched_left == [{"user_id": 2}]
    assert result.unmatched_right == [{"user_id": 3}]
    assert result.skipped == 0


def test_left_records_without_key_are_kept_and_warned():
    left = [{"user_id": None}, {"user_id": 1}]
    result = join(left, [{"user_id": 1}], on=user_id_of)

    assert len(result.rows) == 2
    assert result.rows[0].right is None
    assert result.warnings[0].reason == "no usable join key"


def test_join_accepts_an_index_on_the_left():
    users = EntityIndex.build([{"user_id": 1}, {"user_id": 2}], user_id_of)
    result = join(users, [{"user_id": 2}], on=user_id_of)

    assert [row.right for row in result.rows] == [None, {"user_id": 2}]


def test_unknown_cardinality_is_a_programmer_error():
    with pytest.raises(ProgrammerError):
        join([], [], on=user_id_of, cardinality="many-to-many")


def test_join_rejects_non_collections():
    with pytest.raises(ProgrammerError):
        join({"user_id": 1}, [], on=user_id_of)


def test_join_users_falls_back_to_username():
    users = [{"id": 1, "username": "ana"}, {"id": 2, "username": "ben"}]
    grades = [{"user_id": 1, "n": 1}, {"username": "ben", "n": 2}]
    result = join_users(users, grades)

    assert [row.right["n"] for row in result.rows] == [1, 2]


def test_one_to_many_fallback_collects_rows_matching_either_key():
    users = [{"id": 1, "username": "ana"}]
    grades = [
        {"user_id": 1, "n": 1},
        {"username": "ana", "n": 2},
        {"user_id": 1, "username": "ana", "n": 3},
        {"user_id": 9, "n": 4},
        {"n": 5},
    ]
    result = join_users(users, grades, cardinality=ONE_TO_MANY)

    assert [grade["n"] for grade in result.rows[0].right] == [1, 2, 3]
    assert [grade["n"] for grade in result.unmatched_right] == [4, 5]
    assert len(result.warnings) == 1
    assert result.warnings[0].record == {"n": 5}


def test_location_requires_building_floor_and_room():
    assert location_of({"building": "A", "floor": 2, "room": "201"}) == ("A", 2, "201")
    assert location_of({"building": "A", "floor": "2", "room": "201"}) == ("A", 2, "201")
    assert location_of({"building": "A", "floor": 0, "room": "201"}) is None
    assert location_of({"building": "A", "room": "201"}) is None
    assert location_of({"building": " ", "floor": 1, "room": "201"}) is None
    assert location_of(None) is None


def test_resolve_buildings_walks_user_assignment_room_chain(users, assignments, section_assignments):
    lookups = resolve_buildings(users, assignments, section_assignments)

    ana, ben, third, teacher = lookups
    assert ana.status == ASSIGNED
    assert (ana.building, ana.floor, ana.room) == ("A", 2, "201")
    assert ben.status == UNASSIGNED
    assert ben.reason == "no room assignment"
    assert ben.section == "Integrity"
    assert third.reason == "no assignment"
    assert teacher.status == UNASSIGNED


def test_resolve_student_building_reports_incomplete_rooms(users, assignments):
    rooms = [{"year": "1", "section": "Power", "building": "A", "floor": None, "room": "201"}]
    lookup = resolve_student_building(users[0], assignments, rooms)

    assert lookup.status == UNASSIGNED
    assert lookup.reason == "incomplete room assignment"
    assert lookup.to_dict()["year"] == "1"


def test_attach_teachers_fills_missing_teacher_only():
    study_load = [
        {"subject_code": "it101", "semester": "1st"},
        {"subject_code": "ENG1", "teacher": "Already Set"},
        {"subject_code": "PE1"},
    ]
    teacher_assignments = [
        {"subject_code": "IT101", "teacher_name": "Maria Santos"},
        {"subject_code": "ENG1", "full_name": "Jose Rizal"},
    ]
    rows, result = attach_teachers(study_load, teacher_assignments)

    assert [row["teacher"] for row in rows] == ["Maria Santos", "Already Set", None]
    assert "teacher" not in study_load[0]
    assert result.unmatched_left == [study_load[2]]


def test_schedules_for_teacher_filters_by_owner_and_enriches_rows():
    teacher = {"id": 10, "username": "tlopez", "full_name": "Teresa Lopez"}
    teacher_assignments = [
        {"id": 5, "subject_code": "IT101", "user_id": 10, "teacher_name": "Teresa Lopez"},
        {"id": 6, "subject_code": "ENG1", "teacher_name": "teresa lopez"},
        {"id": 7, "subject_code": "MATH1", "user_id": 11, "teacher_name": "Teresa Lopez"},
    ]
    schedules = [
        {"teacher_assignment_id": 5, "day": "Mon", "start_time": "08:00"},
        {"teacher_assignment_id": 6, "day": "Tue", "subject_code": "ENG1-LAB"},
        {"teacher_assignment_id": 7, "day": "Wed"},
        {"teacher_assignment_id": None, "day": "Thu"},
    ]
    rows, result = schedules_for_teacher(teacher, teacher_assignments, schedules)

    assert [row["subject_code"] for row in rows] == ["IT101", "ENG1-LAB"]
    assert rows[0]["teacher"] == "Teresa Lopez"
    assert len(result.unmatched_left) == 2
    assert result.skipped == 1


def test_one_to_one_join_is_deterministic_with_duplicate_keys():
    left = [{"subject_code": code} for code in ("IT101", "ENG1", "PE1", "it101")]
    right = [
        {"subject_code": "ENG1", "teacher_name": "A"},
        {"subject_code": "it101", "teacher_name": "B"},
        {"subject_code": "IT101", "teacher_name": "C"},
        {"subject_code": "ENG1", "teacher_name": "D"},
        {"subject_code": "MATH1", "teacher_name": "E"},
    ]

    runs = [join(left, right, on=_code) for _ in range(3)]

    for result in runs:
        assert [row.right["teacher_name"] if row.right else None for row in result.rows] == ["B", "A", None, "B"]
        assert [id(row.left) for row in result.matched] == [id(left[0]), id(left[1]), id(left[3])]
        assert result.unmatched_left == [left[2]]
        assert [row["teacher_name"] for row in result.unmatched_right] == ["C", "D", "E"]


def test_right_on_with_a_prebuilt_index_is_a_programmer_error():
    index = EntityIndex.build([{"user_id": 1}], user_id_of)

    with pytest.raises(ProgrammerError):
        join([{"user_id": 1}], index, on=user_id_of, right_on=user_id_of)


def test_key_functions_raising_type_error_leave_the_row_unmatched():
    left = [None, {"k": "a"}]
    right = [{"k": "a"}, {"k": ["unhashable"]}]
    result = join(left, right, on=lambda row: row["k"])

    assert result.rows[0].right is None
    assert result.rows[1].right == {"k": "a"}
    assert [warning.source for warning in result.warnings] == ["left", "right"]


def test_resolve_buildings_reports_skipped_records(users, assignments, section_assignments):
    rooms = section_assignments + [{"building": "C", "floor": 1, "room": "101"}]
    broken = assignments + [{"year": "2", "section": "Hope"}]
    warnings = []

    lookups = resolve_buildings(users[:1], broken, rooms, warnings=warnings)

    assert lookups[0].status == ASSIGNED
    assert [warning.source for warning in warnings] == ["right", "section_assignments"]


def test_attach_subjects_fills_only_missing_fields():
    study_load = [
        {"subject_code": "it101", "units": None, "subject_title": ""},
        {"subject_code": "ENG1", "units": 2, "subject_title": "Purposive Communication"},
    ]
    subjects = [
        {"subject_code": "IT101", "subject_name": "Intro to Computing", "units": 3, "semester": "1st"},
        {"subject_code": "ENG1", "title": "English", "units": 3, "semester": "2nd"},
    ]
    rows, result = attach_subjects(study_load, subjects)

    assert rows[0]["subject_title"] == "Intro to Computing"
    assert rows[0]["units"] == 3
    assert rows[1]["units"] == 2
    assert rows[1]["subject_title"] == "Purposive Communication"
    assert rows[1]["semester"] == "2nd"
    assert study_load[0]["units"] is None
    assert result.unmatched_right == []
