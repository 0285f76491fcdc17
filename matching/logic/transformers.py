"""
Profile Transformers

Converts raw records as read from the store (nested mappings with their
relations eager-loaded) into the scorer's input contracts.

Missing optional data becomes a sentinel (None points, empty lists).
Malformed data raises ProfileIncompleteError for students and
InvalidProgramError for programs.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Type

from .contracts import (
    CourseRequirement,
    ProgramRequirements,
    RequirementGroup,
    StudentAcademicProfile,
    StudentCourse,
)
from .constants import (
    CourseLevel,
    GroupOperator,
    IB_MAX_POINTS,
    IB_SUBJECT_GROUPS,
    IB_GRADES,
    IB_CORE_GRADES,
)
from .errors import InvalidProgramError, MatchingError, ProfileIncompleteError

logger = logging.getLogger(__name__)


# =============================================================================
# FIELD HELPERS
# =============================================================================

def _nested_id(raw: Mapping[str, Any], relation: str, flat_key: str) -> Optional[str]:
    """Id from an eager-loaded relation, falling back to the flat foreign key."""
    related = raw.get(relation)
    if isinstance(related, Mapping) and related.get("id") is not None:
        return str(related["id"])
    value = raw.get(flat_key)
    return str(value) if value is not None else None


def _points(value: Any, error: Type[MatchingError], what: str) -> Optional[int]:
    if value is None:
        return None
    try:
        points = int(value)
    except (TypeError, ValueError):
        raise error(f"{what}: IB points must be an integer (got {value!r})")
    if not 0 <= points <= IB_MAX_POINTS:
        raise error(f"{what}: IB points must be between 0 and {IB_MAX_POINTS} (got {points})")
    return points


def _level(value: Any, error: Type[MatchingError], what: str) -> CourseLevel:
    try:
        return CourseLevel(str(value).upper())
    except ValueError:
        raise error(f"{what}: unknown course level {value!r}")


def _grade(value: Any, error: Type[MatchingError], what: str) -> Optional[int]:
    if value is None:
        return None
    try:
        grade = int(value)
    except (TypeError, ValueError):
        raise error(f"{what}: grade must be an integer (got {value!r})")
    if grade not in IB_GRADES:
        raise error(f"{what}: grade must be between 1 and 7 (got {grade})")
    return grade


def _subject_group(value: Any, error: Type[MatchingError], what: str) -> Optional[int]:
    if value is None:
        return None
    try:
        group = int(value)
    except (TypeError, ValueError):
        raise error(f"{what}: subject group must be an integer (got {value!r})")
    if group not in IB_SUBJECT_GROUPS:
        raise error(f"{what}: subject group must be between 1 and 6 (got {group})")
    return group


def _core_grade(value: Any) -> Optional[str]:
    if not value:
        return None
    grade = str(value).upper()
    return grade if grade in IB_CORE_GRADES else None


def _course_fields(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """course_id / course_name / subject_group from `ib_course` or flat keys."""
    ib_course = raw.get("ib_course")
    if isinstance(ib_course, Mapping):
        return {
            "course_id": ib_course.get("id"),
            "course_name": ib_course.get("name") or "",
            "subject_group": ib_course.get("group", ib_course.get("subject_group")),
        }
    return {
        "course_id": raw.get("course_id", raw.get("ib_course_id")),
        "course_name": raw.get("course_name") or "",
        "subject_group": raw.get("subject_group"),
    }


def _ordered_preference_ids(items: Iterable[Any], relation: str, flat_key: str) -> List[str]:
    """
    Preference ids ordered by `rank` when present, otherwise by position.
    Items may be plain ids, {"id": ...} or link rows with a nested relation.
    """
    ranked = []
    for position, item in enumerate(items or []):
        if isinstance(item, Mapping):
            pref_id = _nested_id(item, relation, flat_key)
            if pref_id is None and item.get("id") is not None:
                pref_id = str(item["id"])
            rank = item.get("rank")
        else:
            pref_id, rank = item, None
        if pref_id is None:
            continue
        ranked.append((rank if rank is not None else position, position, str(pref_id)))

    ordered: List[str] = []
    for _, _, pref_id in sorted(ranked):
        if pref_id not in ordered:
            ordered.append(pref_id)
    return ordered


# =============================================================================
# STUDENT
# =============================================================================

def transform_student(raw: Mapping[str, Any]) -> StudentAcademicProfile:
    """
    Transform a raw student record into a StudentAcademicProfile.

    Raises:
        ProfileIncompleteError: record is missing or malformed
    """
    if not raw:
        raise ProfileIncompleteError()

    student_id = raw.get("id", raw.get("student_id"))
    if student_id is None:
        raise ProfileIncompleteError("Student record has no id")
    what = f"Student {student_id}"

    courses: List[StudentCourse] = []
    for course in raw.get("courses") or []:
        fields = _course_fields(course)
        if fields["course_id"] is None:
            raise ProfileIncompleteError(f"{what}: course without an IB course id")
        courses.append(StudentCourse(
            course_id=str(fields["course_id"]),
            course_name=fields["course_name"],
            subject_group=_subject_group(fields["subject_group"], ProfileIncompleteError, what),
            level=_level(course.get("level"), ProfileIncompleteError, what),
            grade=_grade(course.get("grade"), ProfileIncompleteError, what),
        ))

    return StudentAcademicProfile(
        student_id=str(student_id),
        total_ib_points=_points(raw.get("total_ib_points"), ProfileIncompleteError, what),
        courses=courses,
        tok_grade=_core_grade(raw.get("tok_grade")),
        ee_grade=_core_grade(raw.get("ee_grade")),
        grades_are_final=bool(raw.get("grades_are_final", False)),
        preferred_fields=_ordered_preference_ids(raw.get("preferred_fields"), "field_of_study", "field_id"),
        preferred_countries=_ordered_preference_ids(raw.get("preferred_countries"), "country", "country_id"),
        open_to_all_fields=bool(raw.get("open_to_all_fields", False)),
        open_to_all_locations=bool(raw.get("open_to_all_locations", False)),
    )


# =============================================================================
# PROGRAM
# =============================================================================

def _group_requirements(requirements: List[Mapping[str, Any]], what: str) -> List[RequirementGroup]:
    """
    Requirements sharing a group_id form one group (OR unless stated);
    requirements without one are single-course groups. Order is first appearance.
    """
    slots: List[Dict[str, Any]] = []
    by_group_id: Dict[str, Dict[str, Any]] = {}

    for raw in requirements:
        fields = _course_fields(raw)
        if fields["course_id"] is None:
            raise InvalidProgramError(f"{what}: requirement without an IB course id")
        course = CourseRequirement(
            course_id=str(fields["course_id"]),
            course_name=fields["course_name"],
            subject_group=_subject_group(fields["subject_group"], InvalidProgramError, what),
            level=_level(raw.get("required_level", raw.get("level")), InvalidProgramError, what),
            min_grade=_grade(raw.get("min_grade"), InvalidProgramError, what),
            is_critical=bool(raw.get("is_critical", False)),
        )

        group_id = raw.get("group_id")
        if group_id is None:
            slots.append({"operator": GroupOperator.AND, "courses": [course]})
            continue

        slot = by_group_id.get(str(group_id))
        if slot is None:
            operator = raw.get("group_operator") or GroupOperator.OR.value
            try:
                operator = GroupOperator(str(operator).upper())
            except ValueError:
                raise InvalidProgramError(f"{what}: unknown group operator {operator!r}")
            slot = {"operator": operator, "courses": []}
            by_group_id[str(group_id)] = slot
            slots.append(slot)
        slot["courses"].append(course)

    return [
        RequirementGroup(
            operator=slot["operator"],
            courses=slot["courses"],
            is_critical=any(c.is_critical for c in slot["courses"]),
        )
        for slot in slots
    ]


def transform_program(raw: Mapping[str, Any]) -> ProgramRequirements:
    """
    Transform a raw program record into ProgramRequirements.

    Raises:
        InvalidProgramError: record is missing an id or holds out-of-range data
    """
    if not raw or raw.get("id", raw.get("program_id")) is None:
        raise InvalidProgramError("Program record has no id")

    program_id = str(raw.get("id", raw.get("program_id")))
    what = f"Program {program_id}"

    university = raw.get("university") if isinstance(raw.get("university"), Mapping) else {}
    country_id = _nested_id(university, "country", "country_id") if university else None
    if country_id is None:
        country_id = raw.get("country_id")

    return ProgramRequirements(
        program_id=program_id,
        program_name=raw.get("name", raw.get("program_name")) or "",
        university_id=_nested_id(raw, "university", "university_id"),
        university_name=university.get("name") or raw.get("university_name") or "",
        field_id=_nested_id(raw, "field_of_study", "field_id"),
        country_id=str(country_id) if country_id is not None else None,
        min_ib_points=_points(raw.get("min_ib_points"), InvalidProgramError, what),
        requirement_groups=_group_requirements(raw.get("course_requirements") or [], what),
        requirements_verified=bool(raw.get("requirements_verified", True)),
    )


def transform_programs(
    raws: Iterable[Mapping[str, Any]],
    skip_invalid: bool = True,
    on_skip: Optional[Callable[[Mapping[str, Any], InvalidProgramError], None]] = None
) -> List[ProgramRequirements]:
    """
    Transform a catalog. Malformed programs are logged and skipped unless
    skip_invalid is False, in which case the first error propagates.
    """
    programs: List[ProgramRequirements] = []
    for raw in raws:
        try:
            programs.append(transform_program(raw))
        except InvalidProgramError as e:
            if not skip_invalid:
                raise
            logger.warning(f"Skipping malformed program: {e}")
            if on_skip is not None:
                on_skip(raw, e)
    return programs
