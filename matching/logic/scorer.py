"""
Match Scorer

Combines the dimension scorers into a single (student, program) match and
evaluates whole catalogs in one pass.

Pipeline for one program:
1. Points fit - IB total vs program minimum
2. Requirements fit - requirement groups vs student courses
3. Academic sub-score - points x requirements, then penalty, boost and caps
4. Field and location fit - rank-based preference scores
5. Overall - weighted combination of the rounded sub-scores
6. V10 annotations - confidence and category
"""

import math
from typing import Iterable, List, Optional

from .contracts import (
    AcademicBreakdown,
    AlgorithmVariant,
    BASELINE_VARIANT,
    MatchResult,
    ProgramRequirements,
    StudentAcademicProfile,
    SubScores,
    WeightConfig,
    get_weights,
    resolve_mode,
)
from .constants import MatchingMode, MAX_SCORE
from .subject_matcher import evaluate_requirements
from .indexes import CourseIndex
from .dimension_scorers import (
    score_points_fit,
    score_requirements_fit,
    score_field_fit,
    score_location_fit,
)
from .penalties import apply_academic_adjustments, count_missing
from .selectivity import selectivity_boost, selectivity_tier
from .confidence import calculate_confidence
from .categorization import categorize_match


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for non-negative scores (0.5 -> 1, 64.5 -> 65)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


class MatchScorer:
    """
    Deterministic scorer for one algorithm variant.

    The same (student, program, weights, variant) always yields the same
    MatchResult; no clock or randomness is consulted.
    """

    def __init__(self, variant: Optional[AlgorithmVariant] = None):
        self.variant = variant or BASELINE_VARIANT

    def score(
        self,
        student: StudentAcademicProfile,
        program: ProgramRequirements,
        mode: Optional[MatchingMode] = None,
        weights: Optional[WeightConfig] = None,
        course_index: Optional[CourseIndex] = None
    ) -> MatchResult:
        """
        Args:
            course_index: the student's courses indexed by id; built here
                when not supplied, shared across a batch by score_all
        """
        variant = self.variant
        weights_used = get_weights(mode, weights)
        adjustments: List[str] = []

        # Step 1: Points
        points_fit = score_points_fit(
            student.total_ib_points, program.min_ib_points, variant.fit_quality
        )
        has_points_requirement = program.min_ib_points is not None
        if not has_points_requirement:
            meets_points = True
            shortfall = 0
        elif student.total_ib_points is None:
            meets_points = False
            shortfall = 0
            adjustments.append("IB points not entered yet")
        else:
            shortfall = max(0, program.min_ib_points - student.total_ib_points)
            meets_points = shortfall == 0

        # Step 2: Requirement groups
        if course_index is None:
            course_index = CourseIndex(student.courses)
        requirements = evaluate_requirements(program.requirement_groups, course_index)
        requirements_fit = score_requirements_fit(requirements)
        missing_critical, missing_non_critical = count_missing(requirements)

        # Step 3: Academic sub-score
        tier = selectivity_tier(program.min_ib_points)
        boost = 0.0
        if variant.selectivity:
            boost = selectivity_boost(student.total_ib_points, program.min_ib_points)

        base = points_fit * requirements_fit / MAX_SCORE
        adjusted = apply_academic_adjustments(base, requirements, boost)
        adjustments.extend(adjusted.reasons)

        # Step 4: Preferences
        field_fit, field_note = score_field_fit(
            program.field_id,
            student.preferred_fields,
            student.open_to_all_fields,
            variant.anti_gaming,
        )
        location_fit, location_note = score_location_fit(
            program.country_id,
            student.preferred_countries,
            student.open_to_all_locations,
            variant.anti_gaming,
        )
        adjustments.extend(note for note in (field_note, location_note) if note)

        # Step 5: Overall
        sub_scores = SubScores(
            academic=round_half_up(adjusted.score, 2),
            field=round_half_up(field_fit, 2),
            location=round_half_up(location_fit, 2),
        )
        weighted = (
            weights_used.academic * sub_scores.academic
            + weights_used.field * sub_scores.field
            + weights_used.location * sub_scores.location
        )
        overall = int(max(0.0, min(MAX_SCORE, round_half_up(weighted))))

        result = MatchResult(
            program_id=program.program_id,
            overall_score=overall,
            sub_scores=sub_scores,
            academic=AcademicBreakdown(
                points_fit=round_half_up(points_fit, 2),
                requirements_fit=round_half_up(requirements_fit, 2),
                has_points_requirement=has_points_requirement,
                meets_points_requirement=meets_points,
                points_shortfall=shortfall,
                missing_critical_count=missing_critical,
                missing_non_critical_count=missing_non_critical,
                cap=adjusted.cap,
                multiple_requirements_penalty=adjusted.penalty_factor,
                selectivity_tier=tier,
                selectivity_boost=boost,
            ),
            requirements=requirements,
            requirements_met=meets_points and all(r.met for r in requirements),
            weights_used=weights_used,
            mode=resolve_mode(mode, weights),
            algorithm_version=variant.version,
            adjustments=adjustments,
        )

        # Step 6: Annotations
        if variant.confidence:
            result.confidence = calculate_confidence(student, program)
        if variant.categorization:
            result.category = categorize_match(
                overall, student.total_ib_points, program.min_ib_points, requirements
            )

        return result

    def score_all(
        self,
        student: StudentAcademicProfile,
        programs: Iterable[ProgramRequirements],
        mode: Optional[MatchingMode] = None,
        weights: Optional[WeightConfig] = None
    ) -> List[MatchResult]:
        """Score every program, best first; ties broken by program id."""
        course_index = CourseIndex(student.courses)
        results = [self.score(student, program, mode, weights, course_index) for program in programs]
        return sort_matches(results)


def sort_matches(results: List[MatchResult]) -> List[MatchResult]:
    return sorted(results, key=lambda r: (-r.overall_score, r.program_id))


# Convenience functions for simple usage
def calculate_match(
    student: StudentAcademicProfile,
    program: ProgramRequirements,
    mode: Optional[MatchingMode] = None,
    weights: Optional[WeightConfig] = None,
    variant: Optional[AlgorithmVariant] = None
) -> MatchResult:
    return MatchScorer(variant).score(student, program, mode, weights)


def calculate_matches(
    student: StudentAcademicProfile,
    programs: Iterable[ProgramRequirements],
    mode: Optional[MatchingMode] = None,
    weights: Optional[WeightConfig] = None,
    variant: Optional[AlgorithmVariant] = None
) -> List[MatchResult]:
    return MatchScorer(variant).score_all(student, programs, mode, weights)
