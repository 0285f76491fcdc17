"""
Matching Logic Module

Provides the deterministic scoring engine for IB student/program matching,
plus the Redis-backed caches and the feature flag resolver around it.
"""

from .contracts import (
    StudentAcademicProfile,
    StudentCourse,
    ProgramRequirements,
    RequirementGroup,
    CourseRequirement,
    WeightConfig,
    MatchResult,
    AlgorithmVariant,
    CacheStats,
)
from .scorer import MatchScorer, calculate_match, calculate_matches
from .transformers import transform_student, transform_program, transform_programs
from .feature_flags import FeatureFlagResolver, FlagContext
from .cache import MatchCache
from .program_cache import ProgramCatalogCache
from .runner import MatchingService
from .settings import MatchingSettings, load_settings
from .constants import MatchingMode, MatchingFlag, MatchCategory
from .errors import (
    MatchingError,
    ConfigurationError,
    ProfileIncompleteError,
    StudentNotFoundError,
    ProgramNotFoundError,
    InvalidProgramError,
)

__all__ = [
    # Scoring
    "MatchScorer",
    "calculate_match",
    "calculate_matches",
    "transform_student",
    "transform_program",
    "transform_programs",

    # Services
    "FeatureFlagResolver",
    "FlagContext",
    "MatchCache",
    "ProgramCatalogCache",
    "MatchingService",
    "MatchingSettings",
    "load_settings",

    # Contracts
    "StudentAcademicProfile",
    "StudentCourse",
    "ProgramRequirements",
    "RequirementGroup",
    "CourseRequirement",
    "WeightConfig",
    "MatchResult",
    "AlgorithmVariant",
    "CacheStats",

    # Enums
    "MatchingMode",
    "MatchingFlag",
    "MatchCategory",

    # Errors
    "MatchingError",
    "ConfigurationError",
    "ProfileIncompleteError",
    "StudentNotFoundError",
    "ProgramNotFoundError",
    "InvalidProgramError",
]
