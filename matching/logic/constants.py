"""
Matching Engine Constants

Defines weight modes, scoring curve parameters, cache key formats and
feature flag names used by the matching engine.
All values are deterministic - no time or randomness involved.
"""

from enum import Enum
from typing import Dict, Tuple


# =============================================================================
# MATCHING MODES
# =============================================================================

class MatchingMode(str, Enum):
    """Named weighting strategies balancing academic, location and field fit."""
    BALANCED = "BALANCED"
    ACADEMIC_FOCUSED = "ACADEMIC_FOCUSED"
    LOCATION_FOCUSED = "LOCATION_FOCUSED"


DEFAULT_MODE = MatchingMode.BALANCED

# (academic, location, field) - each row must sum to 1.0
WEIGHT_MODES: Dict[MatchingMode, Tuple[float, float, float]] = {
    MatchingMode.BALANCED: (0.6, 0.3, 0.1),
    MatchingMode.ACADEMIC_FOCUSED: (0.8, 0.1, 0.1),
    MatchingMode.LOCATION_FOCUSED: (0.4, 0.5, 0.1),
}

WEIGHT_SUM_TOLERANCE = 1e-6


# =============================================================================
# IB CONSTANTS
# =============================================================================

IB_MAX_POINTS = 45
IB_MIN_DIPLOMA = 24
IB_SUBJECT_GROUPS = range(1, 7)
IB_GRADES = range(1, 8)
IB_CORE_GRADES = ("A", "B", "C", "D", "E")
IB_EXPECTED_SUBJECTS = 6


class CourseLevel(str, Enum):
    """IB course depth tier."""
    HL = "HL"
    SL = "SL"


class GroupOperator(str, Enum):
    """How courses inside a requirement group combine."""
    AND = "AND"
    OR = "OR"


class RequirementStatus(str, Enum):
    FULL_MATCH = "FULL_MATCH"
    PARTIAL_MATCH = "PARTIAL_MATCH"
    NO_MATCH = "NO_MATCH"


# =============================================================================
# POINTS FIT CURVE (baseline)
# =============================================================================

# Sub-scores live on a 0-100 scale
MAX_SCORE = 100.0

NO_REQUIREMENT_SCORE = 85.0       # Program states no minimum
INCOMPLETE_PROFILE_SCORE = 50.0   # Student has no point total yet

POINTS_BUFFER = 2                 # Points above minimum for a full score
EXACT_MEET_SCORE = 90.0           # Exactly on the minimum
NEAR_MISS_SCORE = 80.0            # One point below
POINTS_FALLOFF_PER_POINT = 10.0   # Lost per additional point of deficit


# =============================================================================
# POINTS FIT CURVE (V10 fit quality)
# =============================================================================

FQ_OPTIMAL_BUFFER = 3
FQ_UNDER_QUALIFIED_FLOOR = 30.0
FQ_UNDER_QUALIFIED_CEILING = 90.0
FQ_EXACT_MATCH_SCORE = 95.0
FQ_OPTIMAL_MATCH_SCORE = 100.0


# =============================================================================
# SUBJECT PARTIAL CREDIT
# =============================================================================

CRITICAL_ONE_BELOW_CREDIT = 0.85
NON_CRITICAL_ONE_BELOW_CREDIT = 0.78
GRADE_SHORTFALL_SCALE = 0.9
SL_FOR_HL_STRONG_CREDIT = 0.80
SL_FOR_HL_EQUIVALENT_CREDIT = 0.75
SL_FOR_HL_PENALTY = 0.7
SL_TO_HL_GRADE_OFFSET = 2
MIN_PARTIAL_CREDIT = 0.25


# =============================================================================
# ACADEMIC CAPS AND PENALTIES
# =============================================================================

CAP_MISSING_CRITICAL = 45.0
CAP_MISSING_NON_CRITICAL = 70.0
CAP_CRITICAL_LARGE_MISS = 60.0
CAP_CRITICAL_NEAR_MISS = 80.0
NEAR_MISS_MIN_CREDIT = 0.75

MULTIPLE_REQUIREMENTS_MIN_GROUPS = 2
MULTIPLE_REQUIREMENTS_PENALTY_RATE = 0.4
PARTIAL_REQUIREMENT_WEIGHT = 0.5


# =============================================================================
# PREFERENCE SCORES (field / location)
# =============================================================================

RANK_STEP = 10.0                  # Lost per preference rank
RANKED_MATCH_FLOOR = 60.0         # Lowest score for any listed preference

FIELD_NOT_PREFERRED_SCORE = 15.0
FIELD_NO_PREFERENCES_SCORE = 50.0
LOCATION_NOT_PREFERRED_SCORE = 10.0
LOCATION_NO_PREFERENCES_SCORE = 100.0

# V10 anti-gaming
OPEN_TO_ALL_FIELD_SCORE = 70.0
OPEN_TO_ALL_LOCATION_SCORE = 85.0
IMPLICIT_EMPTY_FIELD_SCORE = 50.0
IMPLICIT_EMPTY_LOCATION_SCORE = 60.0
MAX_FIELD_PREFERENCES = 10
MAX_COUNTRY_PREFERENCES = 15


# =============================================================================
# SELECTIVITY (V10)
# =============================================================================

HIGH_ACHIEVER_THRESHOLD = 38

# Minimum program points per tier; below the last = tier 4
SELECTIVITY_TIER_THRESHOLDS: Dict[int, int] = {
    1: 40,
    2: 36,
    3: 32,
}

SELECTIVITY_TIER_BOOSTS: Dict[int, float] = {
    1: 5.0,
    2: 3.0,
    3: 1.0,
    4: 0.0,
}

SELECTIVITY_TIER_NAMES: Dict[int, str] = {
    1: "Highly Selective",
    2: "Selective",
    3: "Moderately Selective",
    4: "Standard",
}


# =============================================================================
# CONFIDENCE (V10)
# =============================================================================

class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


CONFIDENCE_FACTOR_IMPACTS: Dict[str, float] = {
    "PREDICTED_GRADES": 0.08,
    "MISSING_SUBJECT_GRADES": 0.05,   # Per missing subject
    "INCOMPLETE_PROFILE": 0.10,
    "UNVERIFIED_REQUIREMENTS": 0.12,
    "MISSING_POINTS_REQUIREMENT": 0.05,
    "FEW_DATA_POINTS": 0.15,
}

CONFIDENCE_HIGH_THRESHOLD = 0.85
CONFIDENCE_MEDIUM_THRESHOLD = 0.65


# =============================================================================
# CATEGORIZATION (V10)
# =============================================================================

class MatchCategory(str, Enum):
    SAFETY = "SAFETY"
    MATCH = "MATCH"
    REACH = "REACH"
    UNLIKELY = "UNLIKELY"


SAFETY_MIN_SCORE = 92
MATCH_MIN_SCORE = 78
REACH_MIN_SCORE = 55
REACH_NEAR_MISS_SCORE = 45

SAFETY_MIN_MARGIN = 5
MATCH_MIN_MARGIN = 0
REACH_MIN_MARGIN = -3

# Margin assumed when a program states no minimum
DEFAULT_REFERENCE_POINTS = 30

CATEGORY_INFO: Dict[MatchCategory, Tuple[str, str]] = {
    MatchCategory.SAFETY: (
        "Safety",
        "You exceed the requirements. High likelihood of admission.",
    ),
    MatchCategory.MATCH: (
        "Match",
        "You meet the requirements. Good chance of admission.",
    ),
    MatchCategory.REACH: (
        "Reach",
        "Aspirational choice. You may need to strengthen your application in other areas.",
    ),
    MatchCategory.UNLIKELY: (
        "Unlikely",
        "Significant gaps exist. Consider this as a backup or for future planning.",
    ),
}


# =============================================================================
# FEATURE FLAGS
# =============================================================================

class MatchingFlag(str, Enum):
    FIT_QUALITY = "MATCHING_V10_FIT_QUALITY"
    SELECTIVITY = "MATCHING_V10_SELECTIVITY"
    ANTI_GAMING = "MATCHING_V10_ANTI_GAMING"
    CONFIDENCE = "MATCHING_V10_CONFIDENCE"
    CATEGORIZATION = "MATCHING_V10_CATEGORIZATION"
    FULL = "MATCHING_V10_FULL"


VARIANT_FLAGS = (
    MatchingFlag.FIT_QUALITY,
    MatchingFlag.SELECTIVITY,
    MatchingFlag.ANTI_GAMING,
    MatchingFlag.CONFIDENCE,
    MatchingFlag.CATEGORIZATION,
)

FLAG_DESCRIPTIONS: Dict[MatchingFlag, str] = {
    MatchingFlag.FIT_QUALITY: "Continuous fit quality curve for IB points",
    MatchingFlag.SELECTIVITY: "Selectivity boost for high-achieving students",
    MatchingFlag.ANTI_GAMING: "Anti-gaming handling of empty preferences",
    MatchingFlag.CONFIDENCE: "Confidence annotation based on data quality",
    MatchingFlag.CATEGORIZATION: "SAFETY/MATCH/REACH/UNLIKELY categorization",
    MatchingFlag.FULL: "Enable all V10 features (overrides individual flags)",
}

ALGORITHM_VERSION_BASELINE = "v9"
ALGORITHM_VERSION_V10 = "v10"


# =============================================================================
# CACHE
# =============================================================================

MATCH_CACHE_TTL_SECONDS = 300
PROGRAMS_CACHE_TTL_SECONDS = 3600

MATCH_KEY_PREFIX = "match"
BATCH_KEY_PREFIX = "matches"
PROGRAMS_CACHE_KEY = "programs:all:v2"
SCAN_BATCH_SIZE = 100

# Hex characters of the program-set digest in batch keys
PROGRAM_SET_DIGEST_LENGTH = 16


# =============================================================================
# CANDIDATE PREFILTER
# =============================================================================

POINTS_BUCKET_SIZE = 5
PREFILTER_POINTS_MARGIN = 10
