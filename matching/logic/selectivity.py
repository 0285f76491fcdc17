"""
Program Selectivity

Programs are classified into selectivity tiers by their minimum IB points.
High-achieving students receive a small academic boost on selective
programs so they are not steered only toward safer options.

- Tier 1 (40+): Highly Selective
- Tier 2 (36-39): Selective
- Tier 3 (32-35): Moderately Selective
- Tier 4 (<32 or no minimum): Standard
"""

from typing import Optional

from .constants import (
    HIGH_ACHIEVER_THRESHOLD,
    SELECTIVITY_TIER_THRESHOLDS,
    SELECTIVITY_TIER_BOOSTS,
    SELECTIVITY_TIER_NAMES,
)


def selectivity_tier(min_points: Optional[int]) -> int:
    if min_points is None:
        return 4
    for tier in sorted(SELECTIVITY_TIER_THRESHOLDS):
        if min_points >= SELECTIVITY_TIER_THRESHOLDS[tier]:
            return tier
    return 4


def tier_name(tier: int) -> str:
    return SELECTIVITY_TIER_NAMES.get(tier, SELECTIVITY_TIER_NAMES[4])


def is_high_achiever(student_points: Optional[int]) -> bool:
    return student_points is not None and student_points >= HIGH_ACHIEVER_THRESHOLD


def selectivity_boost(student_points: Optional[int], min_points: Optional[int]) -> float:
    """Boost on the 0-100 academic scale; 0 unless the student is a high achiever."""
    if not is_high_achiever(student_points):
        return 0.0
    return SELECTIVITY_TIER_BOOSTS[selectivity_tier(min_points)]
