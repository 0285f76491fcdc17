"""
Dimension Scorers

Individual scoring functions for each matching dimension.
Each scorer produces a score between 0 and 100.
All logic is deterministic and monotonic in the student's IB points.
"""

from typing import List, Optional, Tuple

from .contracts import RequirementGroupResult
from .constants import (
    MAX_SCORE,
    NO_REQUIREMENT_SCORE,
    INCOMPLETE_PROFILE_SCORE,
    POINTS_BUFFER,
    EXACT_MEET_SCORE,
    NEAR_MISS_SCORE,
    POINTS_FALLOFF_PER_POINT,
    IB_MIN_DIPLOMA,
    FQ_OPTIMAL_BUFFER,
    FQ_UNDER_QUALIFIED_FLOOR,
    FQ_UNDER_QUALIFIED_CEILING,
    FQ_EXACT_MATCH_SCORE,
    FQ_OPTIMAL_MATCH_SCORE,
    RANK_STEP,
    RANKED_MATCH_FLOOR,
    FIELD_NOT_PREFERRED_SCORE,
    FIELD_NO_PREFERENCES_SCORE,
    LOCATION_NOT_PREFERRED_SCORE,
    LOCATION_NO_PREFERENCES_SCORE,
    OPEN_TO_ALL_FIELD_SCORE,
    OPEN_TO_ALL_LOCATION_SCORE,
    IMPLICIT_EMPTY_FIELD_SCORE,
    IMPLICIT_EMPTY_LOCATION_SCORE,
    MAX_FIELD_PREFERENCES,
    MAX_COUNTRY_PREFERENCES,
)


# =============================================================================
# POINTS FIT
# =============================================================================

def score_points_fit(
    student_points: Optional[int],
    min_points: Optional[int],
    fit_quality: bool = False
) -> float:
    """
    Score the student's IB total against the program minimum.

    - No stated minimum: neutral NO_REQUIREMENT_SCORE
    - No student total yet: INCOMPLETE_PROFILE_SCORE
    - Otherwise the baseline step curve, or the continuous fit quality
      curve when that refinement is enabled
    """
    if min_points is None:
        return NO_REQUIREMENT_SCORE
    if student_points is None:
        return INCOMPLETE_PROFILE_SCORE

    if fit_quality:
        return _fit_quality_curve(student_points, min_points)

    margin = student_points - min_points
    if margin >= POINTS_BUFFER:
        return MAX_SCORE
    if margin >= 0:
        return EXACT_MEET_SCORE + (MAX_SCORE - EXACT_MEET_SCORE) * margin / POINTS_BUFFER

    deficit = -margin
    return max(0.0, NEAR_MISS_SCORE - POINTS_FALLOFF_PER_POINT * (deficit - 1))


def _fit_quality_curve(student_points: int, min_points: int) -> float:
    margin = student_points - min_points

    if margin < 0:
        # Linear from the ceiling (one point below) down to the floor at the diploma minimum
        if student_points <= IB_MIN_DIPLOMA:
            return FQ_UNDER_QUALIFIED_FLOOR
        span = max(1, (min_points - 1) - IB_MIN_DIPLOMA)
        ratio = min(1.0, (student_points - IB_MIN_DIPLOMA) / span)
        return FQ_UNDER_QUALIFIED_FLOOR + (FQ_UNDER_QUALIFIED_CEILING - FQ_UNDER_QUALIFIED_FLOOR) * ratio

    if margin >= FQ_OPTIMAL_BUFFER:
        return FQ_OPTIMAL_MATCH_SCORE

    step = (FQ_OPTIMAL_MATCH_SCORE - FQ_EXACT_MATCH_SCORE) / FQ_OPTIMAL_BUFFER
    return FQ_EXACT_MATCH_SCORE + step * margin


# =============================================================================
# REQUIREMENTS FIT
# =============================================================================

def score_requirements_fit(results: List[RequirementGroupResult]) -> float:
    """Mean group score on a 0-100 scale. No groups means trivially met."""
    if not results:
        return MAX_SCORE
    return MAX_SCORE * sum(r.score for r in results) / len(results)


# =============================================================================
# PREFERENCE FIT (field / location)
# =============================================================================

def _ranked_score(rank: int) -> float:
    return max(RANKED_MATCH_FLOOR, MAX_SCORE - RANK_STEP * rank)


def score_field_fit(
    field_id: Optional[str],
    preferred_fields: List[str],
    open_to_all: bool = False,
    anti_gaming: bool = False
) -> Tuple[float, Optional[str]]:
    """
    Rank-based field of study preference score.

    Returns:
        (score, adjustment) - adjustment names the anti-gaming rule applied, if any
    """
    if anti_gaming:
        preferred_fields = preferred_fields[:MAX_FIELD_PREFERENCES]

    if field_id is not None and field_id in preferred_fields:
        return _ranked_score(preferred_fields.index(field_id)), None

    if anti_gaming and open_to_all:
        return OPEN_TO_ALL_FIELD_SCORE, "Field: open to all fields"
    if not preferred_fields:
        if anti_gaming:
            return IMPLICIT_EMPTY_FIELD_SCORE, "Field: no preferences given"
        return FIELD_NO_PREFERENCES_SCORE, None
    return FIELD_NOT_PREFERRED_SCORE, None


def score_location_fit(
    country_id: Optional[str],
    preferred_countries: List[str],
    open_to_all: bool = False,
    anti_gaming: bool = False
) -> Tuple[float, Optional[str]]:
    """Rank-based country preference score. Same shape as score_field_fit."""
    if anti_gaming:
        preferred_countries = preferred_countries[:MAX_COUNTRY_PREFERENCES]

    if country_id is not None and country_id in preferred_countries:
        return _ranked_score(preferred_countries.index(country_id)), None

    if anti_gaming and open_to_all:
        return OPEN_TO_ALL_LOCATION_SCORE, "Location: open to all countries"
    if not preferred_countries:
        if anti_gaming:
            return IMPLICIT_EMPTY_LOCATION_SCORE, "Location: no preferences given"
        return LOCATION_NO_PREFERENCES_SCORE, None
    return LOCATION_NOT_PREFERRED_SCORE, None
