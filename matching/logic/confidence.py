"""
Match Confidence

Annotates a match with how reliable the prediction is, based only on the
quality of the data behind it. Confidence never changes the score.

Levels:
- high (>= 0.85): prediction is reliable
- medium (>= 0.65): some uncertainty
- low: treat as an estimate
"""

from typing import List

from .contracts import (
    StudentAcademicProfile,
    ProgramRequirements,
    ConfidenceFactor,
    ConfidenceResult,
)
from .constants import (
    ConfidenceLevel,
    CONFIDENCE_FACTOR_IMPACTS,
    CONFIDENCE_HIGH_THRESHOLD,
    CONFIDENCE_MEDIUM_THRESHOLD,
    IB_EXPECTED_SUBJECTS,
)


def confidence_level(score: float) -> ConfidenceLevel:
    if score >= CONFIDENCE_HIGH_THRESHOLD:
        return ConfidenceLevel.HIGH
    if score >= CONFIDENCE_MEDIUM_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def _factor(factor_type: str, description: str, multiplier: int = 1) -> ConfidenceFactor:
    return ConfidenceFactor(
        type=factor_type,
        impact=round(CONFIDENCE_FACTOR_IMPACTS[factor_type] * multiplier, 4),
        description=description,
    )


def calculate_confidence(
    student: StudentAcademicProfile,
    program: ProgramRequirements
) -> ConfidenceResult:
    factors: List[ConfidenceFactor] = []

    if not student.grades_are_final:
        factors.append(_factor("PREDICTED_GRADES", "Grades are predicted, not final IB results"))

    graded = sum(1 for c in student.courses if c.grade is not None)
    missing_subjects = max(0, IB_EXPECTED_SUBJECTS - graded)
    if missing_subjects:
        factors.append(_factor(
            "MISSING_SUBJECT_GRADES",
            f"{missing_subjects} subject grade(s) not entered",
            missing_subjects,
        ))

    if student.total_ib_points is None or not student.tok_grade or not student.ee_grade:
        factors.append(_factor("INCOMPLETE_PROFILE", "Student profile is incomplete"))

    if not program.requirements_verified:
        factors.append(_factor("UNVERIFIED_REQUIREMENTS", "Program requirements have not been verified"))

    if program.min_ib_points is None:
        factors.append(_factor("MISSING_POINTS_REQUIREMENT", "Program has no published points requirement"))
        if not program.requirement_groups:
            factors.append(_factor("FEW_DATA_POINTS", "Limited program requirements data available"))

    score = 1.0 - sum(f.impact for f in factors)
    score = round(max(0.0, min(1.0, score)), 4)

    return ConfidenceResult(score=score, level=confidence_level(score), factors=factors)
