"""
Match Categorization

Buckets a scored match into SAFETY / MATCH / REACH / UNLIKELY from the
overall score, the points margin and whether every requirement is met.
"""

from typing import List, Optional

from .contracts import CategorizationResult, RequirementGroupResult
from .constants import (
    MatchCategory,
    RequirementStatus,
    CATEGORY_INFO,
    SAFETY_MIN_SCORE,
    MATCH_MIN_SCORE,
    REACH_MIN_SCORE,
    REACH_NEAR_MISS_SCORE,
    SAFETY_MIN_MARGIN,
    MATCH_MIN_MARGIN,
    REACH_MIN_MARGIN,
    DEFAULT_REFERENCE_POINTS,
)


def points_margin(student_points: Optional[int], min_points: Optional[int]) -> Optional[int]:
    if student_points is None:
        return None
    reference = min_points if min_points is not None else DEFAULT_REFERENCE_POINTS
    return student_points - reference


def get_match_category(
    overall_score: int,
    margin: Optional[int],
    meets_all_requirements: bool,
    has_missing_critical: bool = False
) -> MatchCategory:
    if (
        margin is not None
        and overall_score >= SAFETY_MIN_SCORE
        and margin >= SAFETY_MIN_MARGIN
        and meets_all_requirements
        and not has_missing_critical
    ):
        return MatchCategory.SAFETY

    if (
        margin is not None
        and overall_score >= MATCH_MIN_SCORE
        and margin >= MATCH_MIN_MARGIN
        and meets_all_requirements
    ):
        return MatchCategory.MATCH

    if overall_score >= REACH_MIN_SCORE or (
        margin is not None
        and margin >= REACH_MIN_MARGIN
        and overall_score >= REACH_NEAR_MISS_SCORE
    ):
        return MatchCategory.REACH

    return MatchCategory.UNLIKELY


def categorize_match(
    overall_score: int,
    student_points: Optional[int],
    min_points: Optional[int],
    requirements: List[RequirementGroupResult]
) -> CategorizationResult:
    margin = points_margin(student_points, min_points)
    meets_all = all(r.met for r in requirements)
    missing_critical = any(
        r.is_critical and r.status == RequirementStatus.NO_MATCH for r in requirements
    )

    category = get_match_category(overall_score, margin, meets_all, missing_critical)
    label, description = CATEGORY_INFO[category]
    return CategorizationResult(
        category=category,
        label=label,
        description=description,
        points_margin=margin,
    )
