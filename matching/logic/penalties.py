"""
Academic Penalties and Caps

Collects every applicable penalty and cap for a program's requirement
results, then applies them in one pass so the outcome does not depend
on evaluation order:

1. multiply by the multiple-unmet-requirements factor
2. add the selectivity boost
3. apply the lowest cap
4. clamp to 0-100

None of these steps depends on the student's IB points, so the academic
sub-score stays monotonic in points.
"""

from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from .contracts import RequirementGroupResult
from .constants import (
    RequirementStatus,
    MAX_SCORE,
    CAP_MISSING_CRITICAL,
    CAP_MISSING_NON_CRITICAL,
    CAP_CRITICAL_LARGE_MISS,
    CAP_CRITICAL_NEAR_MISS,
    NEAR_MISS_MIN_CREDIT,
    MULTIPLE_REQUIREMENTS_MIN_GROUPS,
    MULTIPLE_REQUIREMENTS_PENALTY_RATE,
    PARTIAL_REQUIREMENT_WEIGHT,
)


class AcademicAdjustment(BaseModel):
    score: float
    penalty_factor: Optional[float] = None
    cap: Optional[float] = None
    reasons: List[str] = Field(default_factory=list)


def count_missing(results: List[RequirementGroupResult]) -> Tuple[int, int]:
    """Count wholly missing groups as (critical, non_critical)."""
    critical = sum(1 for r in results if r.status == RequirementStatus.NO_MATCH and r.is_critical)
    non_critical = sum(1 for r in results if r.status == RequirementStatus.NO_MATCH and not r.is_critical)
    return critical, non_critical


def multiple_requirements_factor(results: List[RequirementGroupResult]) -> Optional[float]:
    """
    Extra reduction when two or more groups exist and some are unmet.
    Missing groups count fully, partially met groups count half.
    """
    total = len(results)
    if total < MULTIPLE_REQUIREMENTS_MIN_GROUPS:
        return None

    missing = sum(1 for r in results if r.status == RequirementStatus.NO_MATCH)
    partial = sum(1 for r in results if r.status == RequirementStatus.PARTIAL_MATCH)
    if missing == 0 and partial == 0:
        return None

    unmet_share = (missing + PARTIAL_REQUIREMENT_WEIGHT * partial) / total
    return 1.0 - MULTIPLE_REQUIREMENTS_PENALTY_RATE * unmet_share


def collect_caps(results: List[RequirementGroupResult]) -> List[Tuple[float, str]]:
    caps: List[Tuple[float, str]] = []
    missing_critical, missing_non_critical = count_missing(results)

    if missing_critical:
        caps.append((CAP_MISSING_CRITICAL, f"Missing {missing_critical} critical requirement(s)"))
    else:
        critical_partials = [
            r for r in results
            if r.is_critical and r.status == RequirementStatus.PARTIAL_MATCH
        ]
        if any(r.score < NEAR_MISS_MIN_CREDIT for r in critical_partials):
            caps.append((CAP_CRITICAL_LARGE_MISS, "Critical requirement significantly below minimum"))
        elif critical_partials:
            caps.append((CAP_CRITICAL_NEAR_MISS, "Critical requirement narrowly missed"))

    if missing_non_critical:
        caps.append((CAP_MISSING_NON_CRITICAL, f"Missing {missing_non_critical} requirement(s)"))

    return caps


def apply_academic_adjustments(
    base_score: float,
    results: List[RequirementGroupResult],
    selectivity_boost: float = 0.0
) -> AcademicAdjustment:
    """Apply penalty, boost and the lowest cap to the base academic score."""
    reasons: List[str] = []
    score = base_score

    factor = multiple_requirements_factor(results)
    if factor is not None:
        score *= factor
        reasons.append(f"Multiple unmet requirements: x{factor:.2f}")

    if selectivity_boost:
        score += selectivity_boost
        reasons.append(f"Selectivity boost: +{selectivity_boost:g}")

    cap = None
    caps = collect_caps(results)
    if caps:
        cap, description = min(caps, key=lambda c: c[0])
        if score > cap:
            reasons.append(f"{description}: capped at {cap:g}")
        score = min(score, cap)

    return AcademicAdjustment(
        score=max(0.0, min(MAX_SCORE, score)),
        penalty_factor=factor,
        cap=cap,
        reasons=reasons,
    )
