"""
Subject Requirement Matching

Evaluates a program's requirement groups against the student's IB courses.

Handles:
- Full matches (level satisfied and grade met or not yet known)
- Grade shortfalls (subject taken but grade below the minimum)
- Level mismatches (SL taken where HL is required)
- AND / OR groups
"""

from typing import List, Optional, Tuple, Union

from .contracts import (
    CourseRequirement,
    RequirementGroup,
    RequirementGroupResult,
    StudentCourse,
)
from .constants import (
    CourseLevel,
    GroupOperator,
    RequirementStatus,
    CRITICAL_ONE_BELOW_CREDIT,
    NON_CRITICAL_ONE_BELOW_CREDIT,
    GRADE_SHORTFALL_SCALE,
    SL_FOR_HL_STRONG_CREDIT,
    SL_FOR_HL_EQUIVALENT_CREDIT,
    SL_FOR_HL_PENALTY,
    SL_TO_HL_GRADE_OFFSET,
    MIN_PARTIAL_CREDIT,
)
from .indexes import CourseIndex


def level_satisfies(student_level: CourseLevel, required_level: CourseLevel) -> bool:
    """HL covers an SL requirement; SL never covers HL."""
    return student_level == required_level or (
        required_level == CourseLevel.SL and student_level == CourseLevel.HL
    )


def grade_shortfall_credit(gap: int, required_grade: int, is_critical: bool) -> float:
    """Partial credit when the grade is `gap` points below the minimum."""
    if gap <= 0:
        return 1.0
    if gap == 1:
        return CRITICAL_ONE_BELOW_CREDIT if is_critical else NON_CRITICAL_ONE_BELOW_CREDIT
    if required_grade <= 1:
        return MIN_PARTIAL_CREDIT
    base = 1 - gap / (required_grade - 1)
    return max(MIN_PARTIAL_CREDIT, base * GRADE_SHORTFALL_SCALE)


def sl_for_hl_credit(student_grade: Optional[int], required_grade: Optional[int]) -> float:
    """
    Partial credit for an SL course offered against an HL requirement.
    SL is treated as roughly two grades below the HL equivalent.
    """
    if student_grade is None or required_grade is None:
        return SL_FOR_HL_EQUIVALENT_CREDIT

    if student_grade == 7 and required_grade <= 6:
        return SL_FOR_HL_STRONG_CREDIT
    if student_grade == 6 and required_grade <= 5:
        return SL_FOR_HL_STRONG_CREDIT

    hl_equivalent = max(1, student_grade - SL_TO_HL_GRADE_OFFSET)
    if hl_equivalent >= required_grade:
        return SL_FOR_HL_EQUIVALENT_CREDIT

    base = grade_shortfall_credit(required_grade - hl_equivalent, required_grade, False)
    return max(MIN_PARTIAL_CREDIT, base * SL_FOR_HL_PENALTY)


def score_course(
    requirement: CourseRequirement,
    course: StudentCourse
) -> Tuple[float, Optional[str]]:
    """
    Score one taken course against one requirement.

    Returns:
        (score 0-1, reason) - reason is None for a full match
    """
    if not level_satisfies(course.level, requirement.level):
        score = sl_for_hl_credit(course.grade, requirement.min_grade)
        return score, "SL taken where HL is required"

    if requirement.min_grade is None or course.grade is None:
        return 1.0, None

    gap = requirement.min_grade - course.grade
    if gap <= 0:
        return 1.0, None

    score = grade_shortfall_credit(gap, requirement.min_grade, requirement.is_critical)
    return score, f"Grade {gap} point{'s' if gap > 1 else ''} below requirement"


def match_requirement(
    requirement: CourseRequirement,
    courses: List[StudentCourse]
) -> Tuple[float, Optional[str]]:
    """Best score over the student's courses with this id; 0 when not taken."""
    best_score = 0.0
    best_reason: Optional[str] = "Subject not taken"
    for course in courses:
        if course.course_id != requirement.course_id:
            continue
        score, reason = score_course(requirement, course)
        if score > best_score:
            best_score, best_reason = score, reason
        if best_score == 1.0:
            break
    return best_score, best_reason


def evaluate_group(
    index: int,
    group: RequirementGroup,
    courses: CourseIndex
) -> RequirementGroupResult:
    """
    Evaluate one requirement group.

    AND: met iff every member is met, score is the mean.
    OR: met iff any member is met, score is the best member.
    """
    scored = [(req, *match_requirement(req, courses.courses_for(req.course_id))) for req in group.courses]
    missing = [req.label for req, score, _ in scored if score < 1.0]
    matched_course_id = None

    if group.operator == GroupOperator.AND:
        met = not missing
        score = sum(s for _, s, _ in scored) / len(scored)
        if met:
            explanation = "Met: " + ", ".join(req.label for req, _, _ in scored)
        else:
            explanation = "Missing: " + ", ".join(missing)
            partial = [f"{req.label} ({reason})" for req, s, reason in scored if 0 < s < 1.0 and reason]
            if partial:
                explanation += "; partially met: " + ", ".join(partial)
    else:
        best_req, score, best_reason = max(scored, key=lambda item: item[1])
        met = score >= 1.0
        if score > 0:
            matched_course_id = best_req.course_id
        if met:
            missing = []
            explanation = f"Met via {best_req.label}"
        else:
            explanation = "Missing one of: " + " or ".join(req.label for req, _, _ in scored)
            if score > 0:
                explanation += f"; best option {best_req.label} ({best_reason})"

    if met:
        status = RequirementStatus.FULL_MATCH
    elif score > 0:
        status = RequirementStatus.PARTIAL_MATCH
    else:
        status = RequirementStatus.NO_MATCH

    return RequirementGroupResult(
        group_index=index,
        operator=group.operator,
        is_critical=group.is_critical,
        met=met,
        status=status,
        score=round(score, 4),
        explanation=explanation,
        missing_courses=missing,
        matched_course_id=matched_course_id,
    )


def evaluate_requirements(
    groups: List[RequirementGroup],
    courses: Union[CourseIndex, List[StudentCourse]]
) -> List[RequirementGroupResult]:
    if not isinstance(courses, CourseIndex):
        courses = CourseIndex(courses)
    return [evaluate_group(i, group, courses) for i, group in enumerate(groups)]
