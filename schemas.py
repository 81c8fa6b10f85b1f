"""Pydantic schemas for the campus records fed into the correlation engines."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from engines.validation import DataShapeWarning, ensure_collection

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = ("paid", "owing")

__all__ = [
    "CampusRecord",
    "UserRecord",
    "AssignmentRecord",
    "SectionRecord",
    "SectionAssignmentRecord",
    "GradeRecord",
    "SubjectRecord",
    "TeacherAssignmentRecord",
    "StudyLoadRecord",
    "ScheduleRecord",
    "parse_records",
]


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _score(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return float(Decimal(text))
    except (InvalidOperation, ValueError):
        logger.debug("Ignoring non-numeric grade value %r", value)
        return None


def _amount(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        amount = value
    else:
        text = _text(value)
        if text is None:
            return None
        try:
            # Amounts are entered with thousands separators ("1,500.00").
            amount = Decimal(text.replace(",", ""))
        except InvalidOperation:
            logger.debug("Ignoring unparseable amount %r", value)
            return None
    if not amount.is_finite():
        logger.debug("Ignoring non-finite amount %r", value)
        return None
    return amount


class CampusRecord(BaseModel):
    """Base for fetched records: unknown fields are kept, never rejected."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class UserRecord(CampusRecord):
    id: int
    username: str
    full_name: str | None = None
    role: str = Field(default="student", description="student, teacher or admin; other roles are kept verbatim.")
    school_id: str | None = None

    @field_validator("username", mode="before")
    @classmethod
    def _username_text(cls, value: Any) -> Any:
        return _text(value) if value is not None else value

    @field_validator("full_name", "school_id", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return _text(value)

    @field_validator("role", mode="before")
    @classmethod
    def _role_lower(cls, value: Any) -> str:
        return (_text(value) or "student").lower()


class AssignmentRecord(CampusRecord):
    id: int | None = Field(default=None, description="Absent for unsaved (virtual) assignments.")
    user_id: int | None = None
    username: str = Field(default="", description="Fallback identity when user_id is absent.")
    year: str | None = Field(default=None, validation_alias=AliasChoices("year", "grade_level", "year_level"))
    section: str | None = Field(default=None, validation_alias=AliasChoices("section", "section_name"))
    department: str | None = None
    major: str | None = None
    payment: str = Field(default="paid", description="paid or owing; other values are kept as lowercase text.")
    owing_amount: Decimal | None = None
    sanctions: str | None = Field(
        default=None,
        description="Free-text note, an embedded ISO end date, or a plain day count.",
    )

    @model_validator(mode="before")
    @classmethod
    def _legacy_sanction_flag(cls, data: Any) -> Any:
        # Older rows store a boolean flag with the detail in sanction_reason.
        if not isinstance(data, dict):
            return data
        flag = data.get("sanctions")
        if isinstance(flag, bool) or (isinstance(flag, int) and flag in (0, 1) and "sanction_reason" in data):
            data = dict(data)
            data["sanctions"] = (_text(data.get("sanction_reason")) or "Sanctioned") if flag else None
        return data

    @field_validator("username", mode="before")
    @classmethod
    def _username_text(cls, value: Any) -> str:
        return _text(value) or ""

    @field_validator("year", "section", "department", "major", "sanctions", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return _text(value)

    @field_validator("payment", mode="before")
    @classmethod
    def _payment_lower(cls, value: Any) -> str:
        status = (_text(value) or "paid").lower()
        if status not in PAYMENT_STATUSES:
            logger.debug("Keeping unknown payment status %r", value)
        return status

    @field_validator("owing_amount", mode="before")
    @classmethod
    def _amount_value(cls, value: Any) -> Optional[Decimal]:
        return _amount(value)


class SectionRecord(CampusRecord):
    id: int | None = None
    year: str = Field(validation_alias=AliasChoices("year", "grade_level"))
    name: str = Field(validation_alias=AliasChoices("name", "section_name"))

    @field_validator("year", "name", mode="before")
    @classmethod
    def _required_text(cls, value: Any) -> Any:
        return _text(value)


class SectionAssignmentRecord(CampusRecord):
    id: int | None = None
    year: str | None = None
    section: str | None = None
    building: str | None = None
    floor: int | None = Field(default=None, ge=1)
    room: str | None = None

    @field_validator("year", "section", "building", "room", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return _text(value)

    @field_validator("floor", mode="before")
    @classmethod
    def _blank_floor(cls, value: Any) -> Any:
        return None if _text(value) is None else value


class GradeRecord(CampusRecord):
    id: int | None = None
    user_id: int | None = None
    username: str | None = None
    year: str | None = None
    semester: str | None = Field(default=None, description="Free text; normalised when aggregated.")
    subject: str | None = Field(default=None, validation_alias=AliasChoices("subject", "subject_code"))
    instructor: str | None = None
    prelim_grade: float | None = None
    midterm_grade: float | None = None
    finals_grade: float | None = None

    @field_validator("username", "year", "semester", "subject", "instructor", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return _text(value)

    @field_validator("prelim_grade", "midterm_grade", "finals_grade", mode="before")
    @classmethod
    def _grade_value(cls, value: Any) -> Optional[float]:
        return _score(value)


class SubjectRecord(CampusRecord):
    id: int | None = None
    subject_code: str
    title: str | None = Field(default=None, validation_alias=AliasChoices("title", "subject_name"))
    units: Decimal = Field(default=Decimal("0"), ge=0)
    course: str | None = None
    major: str | None = None
    year_level: int | None = Field(default=None, ge=1, le=4)
    semester: str | None = None

    @field_validator("subject_code", "title", "course", "major", "semester", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return _text(value)


class TeacherAssignmentRecord(CampusRecord):
    id: int | None = None
    subject_code: str
    teacher_name: str | None = Field(default=None, validation_alias=AliasChoices("teacher_name", "full_name"))
    user_id: int | None = None

    @field_validator("subject_code", "teacher_name", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return _text(value)


class StudyLoadRecord(CampusRecord):
    course: str | None = None
    major: str | None = None
    year_level: str | None = None
    section: str | None = None
    subject_code: str
    subject_title: str | None = None
    units: Decimal | None = Field(default=None, ge=0, description="Missing units are filled from the subject catalogue.")
    semester: str | None = None
    teacher: str | None = None

    @field_validator("course", "major", "year_level", "section", "subject_code", "subject_title", "semester", "teacher", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return _text(value)


class ScheduleRecord(CampusRecord):
    id: int | None = None
    teacher_assignment_id: int | None = None
    day: str | None = Field(default=None, validation_alias=AliasChoices("day", "day_of_week", "dayOfWeek"))
    start_time: str | None = None
    end_time: str | None = None
    room: str | None = None
    subject_code: str | None = None
    section: str | None = None

    @field_validator("day", "start_time", "end_time", "room", "subject_code", "section", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return _text(value)


_T = TypeVar("_T", bound=BaseModel)


def parse_records(raw: Any, model: Type[_T], source: Optional[str] = None) -> Tuple[List[_T], List[DataShapeWarning]]:
    """Validate every item of ``raw`` against ``model``.

    Items that fail validation are not raised; each becomes a
    :class:`DataShapeWarning` so callers can report how much was dropped.
    Passing something that is not a collection is a wiring bug and raises.
    """

    label = source or model.__name__
    items = ensure_collection(raw, label)
    records: List[_T] = []
    warnings: List[DataShapeWarning] = []
    for position, item in enumerate(items):
        if isinstance(item, model):
            records.append(item)
            continue
        try:
            records.append(model.model_validate(item))
        except ValidationError as exc:
            fields = ", ".join(".".join(str(part) for part in error["loc"]) or "record" for error in exc.errors())
            warnings.append(
                DataShapeWarning(source=label, reason=f"record {position} invalid: {fields}", record=item)
            )
    if warnings:
        logger.info("Dropped %d of %d %s records that failed validation", len(warnings), len(items), label)
    return records, warnings
