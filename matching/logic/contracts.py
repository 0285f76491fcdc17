"""
Data Contracts for the Matching Engine

Defines Pydantic models for the transformed inputs (StudentAcademicProfile,
ProgramRequirements) and the output (MatchResult).
These contracts are the API boundary for the matching engine.
"""

import hashlib
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

from .constants import (
    WEIGHT_MODES,
    WEIGHT_SUM_TOLERANCE,
    DEFAULT_MODE,
    ALGORITHM_VERSION_BASELINE,
    ALGORITHM_VERSION_V10,
    CourseLevel,
    GroupOperator,
    RequirementStatus,
    ConfidenceLevel,
    MatchCategory,
    MatchingMode,
)
from .errors import ConfigurationError


# =============================================================================
# WEIGHTS
# =============================================================================

class WeightConfig(BaseModel):
    """Weight triple for one matching mode. Must sum to 1.0."""
    academic: float = Field(ge=0.0, le=1.0)
    location: float = Field(ge=0.0, le=1.0)
    field: float = Field(ge=0.0, le=1.0)

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _check_sum(self):
        total = self.academic + self.location + self.field
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"Weights must sum to 1.0 (got {total:.6f})")
        return self

    @property
    def cache_hash(self) -> str:
        """
        Deterministic string separating cache entries per weighting.

        Triples exact at two decimals (every mode in the table) keep the
        readable "a_l_f" form; anything finer gets a digest of the full
        values so near-identical custom weights never share an entry.
        """
        values = (self.academic, self.location, self.field)
        if all(round(v, 2) == v for v in values):
            return f"{self.academic:.2f}_{self.location:.2f}_{self.field:.2f}"
        digest = hashlib.sha256("_".join(repr(v) for v in values).encode("utf-8")).hexdigest()
        return f"w{digest[:16]}"

    @classmethod
    def normalized(cls, academic: float, location: float, field: float) -> "WeightConfig":
        total = academic + location + field
        if total <= 0:
            raise ValueError("Custom weights must have a positive sum")
        return cls(academic=academic / total, location=location / total, field=field / total)


def validate_weight_table(table: Dict[MatchingMode, Tuple[float, float, float]]) -> Dict[MatchingMode, WeightConfig]:
    """
    Build WeightConfig objects for every mode, failing fast on misconfiguration.

    Raises:
        ConfigurationError: a mode is missing or its weights do not sum to 1.0
    """
    configs: Dict[MatchingMode, WeightConfig] = {}
    for mode in MatchingMode:
        if mode not in table:
            raise ConfigurationError(f"No weights configured for mode {mode.value}")
        academic, location, field = table[mode]
        try:
            configs[mode] = WeightConfig(academic=academic, location=location, field=field)
        except ValueError as e:
            raise ConfigurationError(f"Invalid weights for mode {mode.value}: {e}") from e
    return configs


MODE_WEIGHTS: Dict[MatchingMode, WeightConfig] = validate_weight_table(WEIGHT_MODES)


def get_weights(
    mode: Optional[MatchingMode] = None,
    weights: Optional[WeightConfig] = None
) -> WeightConfig:
    """Custom weights win over the mode; no mode means BALANCED."""
    if weights is not None:
        return weights
    return MODE_WEIGHTS[MatchingMode(mode) if mode else DEFAULT_MODE]


def resolve_mode(
    mode: Optional[MatchingMode] = None,
    weights: Optional[WeightConfig] = None
) -> Optional[MatchingMode]:
    """
    The mode a result is reported under: None for custom weights,
    otherwise the requested mode with no mode meaning BALANCED.
    """
    if weights is not None:
        return None
    return MatchingMode(mode) if mode else DEFAULT_MODE


# =============================================================================
# INPUT CONTRACTS (transformed)
# =============================================================================

class StudentCourse(BaseModel):
    """A completed (or in-progress) IB course."""
    course_id: str
    course_name: str = ""
    subject_group: Optional[int] = None
    level: CourseLevel
    grade: Optional[int] = None  # 1-7, None when not yet entered

    @property
    def label(self) -> str:
        return f"{self.course_name or self.course_id} {self.level.value}"


class StudentAcademicProfile(BaseModel):
    """
    Input contract for the scorer.
    Represents a student's IB profile and preferences.
    """
    student_id: str

    # Academic data
    total_ib_points: Optional[int] = None  # None = not entered yet
    courses: List[StudentCourse] = Field(default_factory=list)
    tok_grade: Optional[str] = None
    ee_grade: Optional[str] = None
    grades_are_final: bool = False

    # Preferences (ordered, most preferred first)
    preferred_fields: List[str] = Field(default_factory=list)
    preferred_countries: List[str] = Field(default_factory=list)
    open_to_all_fields: bool = False
    open_to_all_locations: bool = False

    @property
    def has_academic_data(self) -> bool:
        return self.total_ib_points is not None or bool(self.courses)


class CourseRequirement(BaseModel):
    course_id: str
    course_name: str = ""
    subject_group: Optional[int] = None
    level: CourseLevel
    min_grade: Optional[int] = None
    is_critical: bool = False

    @property
    def label(self) -> str:
        return f"{self.course_name or self.course_id} {self.level.value}"


class RequirementGroup(BaseModel):
    """Single course (AND of one) or an AND/OR combination of courses."""
    operator: GroupOperator = GroupOperator.AND
    courses: List[CourseRequirement] = Field(min_length=1)
    is_critical: bool = False


class ProgramRequirements(BaseModel):
    """Input contract for the scorer: one program's admission requirements."""
    program_id: str
    program_name: str = ""
    university_id: Optional[str] = None
    university_name: str = ""

    field_id: Optional[str] = None
    country_id: Optional[str] = None

    min_ib_points: Optional[int] = None  # None = no stated minimum
    requirement_groups: List[RequirementGroup] = Field(default_factory=list)
    requirements_verified: bool = True


# =============================================================================
# OUTPUT CONTRACTS
# =============================================================================

class RequirementGroupResult(BaseModel):
    """Evaluation of one requirement group against the student's courses."""
    group_index: int
    operator: GroupOperator
    is_critical: bool = False
    met: bool
    status: RequirementStatus
    score: float = Field(ge=0.0, le=1.0)
    explanation: str
    missing_courses: List[str] = Field(default_factory=list)
    matched_course_id: Optional[str] = None


class AcademicBreakdown(BaseModel):
    points_fit: float
    requirements_fit: float
    has_points_requirement: bool
    meets_points_requirement: bool
    points_shortfall: int = 0
    missing_critical_count: int = 0
    missing_non_critical_count: int = 0
    cap: Optional[float] = None
    multiple_requirements_penalty: Optional[float] = None
    selectivity_tier: int = 4
    selectivity_boost: float = 0.0


class SubScores(BaseModel):
    """Per-dimension fit, each on a 0-100 scale."""
    academic: float = Field(ge=0.0, le=100.0)
    field: float = Field(ge=0.0, le=100.0)
    location: float = Field(ge=0.0, le=100.0)


class ConfidenceFactor(BaseModel):
    type: str
    impact: float
    description: str


class ConfidenceResult(BaseModel):
    score: float = Field(ge=0.0, le=1.0)
    level: ConfidenceLevel
    factors: List[ConfidenceFactor] = Field(default_factory=list)


class CategorizationResult(BaseModel):
    category: MatchCategory
    label: str
    description: str
    points_margin: Optional[int] = None


class MatchResult(BaseModel):
    """
    Output contract for one (student, program) evaluation.
    Deterministic in (student, program, weights, variant).
    """
    program_id: str
    overall_score: int = Field(ge=0, le=100)
    sub_scores: SubScores
    academic: AcademicBreakdown
    requirements: List[RequirementGroupResult] = Field(default_factory=list)
    requirements_met: bool = True
    weights_used: WeightConfig
    mode: Optional[MatchingMode] = None
    algorithm_version: str = ALGORITHM_VERSION_BASELINE
    adjustments: List[str] = Field(default_factory=list)

    # V10 annotations
    confidence: Optional[ConfidenceResult] = None
    category: Optional[CategorizationResult] = None


# =============================================================================
# VARIANTS AND CACHE
# =============================================================================

class AlgorithmVariant(BaseModel):
    """Which V10 refinements are layered on the baseline for one evaluation."""
    fit_quality: bool = False
    selectivity: bool = False
    anti_gaming: bool = False
    confidence: bool = False
    categorization: bool = False

    class Config:
        frozen = True

    @property
    def is_v10(self) -> bool:
        return any((self.fit_quality, self.selectivity, self.anti_gaming,
                    self.confidence, self.categorization))

    @property
    def version(self) -> str:
        return ALGORITHM_VERSION_V10 if self.is_v10 else ALGORITHM_VERSION_BASELINE

    @property
    def tag(self) -> str:
        """Cache key suffix; empty for the baseline algorithm."""
        if not self.is_v10:
            return ""
        parts = [
            name for name, on in (
                ("fq", self.fit_quality),
                ("sel", self.selectivity),
                ("ag", self.anti_gaming),
                ("conf", self.confidence),
                ("cat", self.categorization),
            ) if on
        ]
        return "v10-" + ".".join(parts)


BASELINE_VARIANT = AlgorithmVariant()


class CacheStats(BaseModel):
    match_keys: int = 0
    batch_keys: int = 0
    total_keys: int = 0
