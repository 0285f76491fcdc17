"""
Matching Service

Orchestrates the matching pipeline for one request:
1. Loads the student profile (404 if absent)
2. Resolves the algorithm variant from the feature flags
3. Loads the program catalog (cached)
4. Transforms student and programs, optionally prefiltering candidates
5. Cached batch / single match
6. Records metrics

No scoring happens here; see scorer.py.

A student may be addressed by profile id or by owning user id. Cache
keys, rollout buckets and metrics always use the profile id so both
addresses share entries and land in the same rollout bucket.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from ..models import StudentProfile, StudentCourse
from .cache import MatchCache
from .constants import MatchingMode
from .contracts import MatchResult, StudentAcademicProfile, resolve_mode
from .errors import ProfileIncompleteError, ProgramNotFoundError, StudentNotFoundError
from .feature_flags import FeatureFlagResolver, FlagContext
from .indexes import ProgramIndex
from .metrics import MetricsCollector, build_metrics
from .program_cache import ProgramCatalogCache
from .transformers import transform_program, transform_programs, transform_student

logger = logging.getLogger(__name__)


class StudentMatches(BaseModel):
    student_id: str
    mode: Optional[MatchingMode] = None
    algorithm_version: str
    total_programs: int
    skipped_programs: int = 0
    results: List[MatchResult] = Field(default_factory=list)


def student_to_dict(student: StudentProfile) -> Dict[str, Any]:
    return {
        "id": student.id,
        "total_ib_points": student.total_ib_points,
        "tok_grade": student.tok_grade,
        "ee_grade": student.ee_grade,
        "grades_are_final": bool(student.grades_are_final),
        "open_to_all_fields": bool(student.open_to_all_fields),
        "open_to_all_locations": bool(student.open_to_all_locations),
        "courses": [
            {
                "ib_course": {
                    "id": c.ib_course.id,
                    "name": c.ib_course.name,
                    "group": c.ib_course.group,
                } if c.ib_course is not None else None,
                "ib_course_id": c.ib_course_id,
                "level": c.level,
                "grade": c.grade,
            }
            for c in student.courses
        ],
        "preferred_fields": [
            {"field_id": p.field_of_study_id, "rank": p.rank} for p in student.preferred_fields
        ],
        "preferred_countries": [
            {"country_id": p.country_id, "rank": p.rank} for p in student.preferred_countries
        ],
    }


def load_student(db: Session, student_id: str) -> Dict[str, Any]:
    """
    Raw student record by profile id or owning user id. The record's
    "id" is always the profile id.

    Raises:
        StudentNotFoundError: no such profile
    """
    stmt = (
        select(StudentProfile)
        .where(or_(StudentProfile.id == student_id, StudentProfile.user_id == student_id))
        .options(
            selectinload(StudentProfile.courses).selectinload(StudentCourse.ib_course),
            selectinload(StudentProfile.preferred_fields),
            selectinload(StudentProfile.preferred_countries),
        )
    )
    student = db.execute(stmt).scalars().first()
    if student is None:
        raise StudentNotFoundError(student_id)
    return student_to_dict(student)


class MatchingService:
    """
    Entry point used by the routes. Every collaborator is injected.
    """

    def __init__(
        self,
        flags: FeatureFlagResolver,
        match_cache: MatchCache,
        program_cache: ProgramCatalogCache,
        metrics: Optional[MetricsCollector] = None,
        prefilter: bool = False
    ):
        self.flags = flags
        self.match_cache = match_cache
        self.program_cache = program_cache
        self.metrics = metrics or MetricsCollector()
        self.prefilter = prefilter

    def _load_profile(self, db: Session, student_id: str) -> StudentAcademicProfile:
        student = transform_student(load_student(db, student_id))
        if not student.has_academic_data:
            raise ProfileIncompleteError()
        return student

    def get_student_matches(
        self,
        db: Session,
        student_id: str,
        mode: Optional[MatchingMode] = None,
        limit: Optional[int] = None
    ) -> StudentMatches:
        """
        Score the whole catalog for a student, best first.

        Raises:
            StudentNotFoundError: no profile
            ProfileIncompleteError: profile has neither points nor courses
        """
        start = time.perf_counter()

        student = self._load_profile(db, student_id)
        profile_id = student.student_id
        context = FlagContext(user_id=profile_id)
        variant = self.flags.resolve_variant(context=context)

        raw_programs = self.program_cache.get_cached_programs(db)
        programs = transform_programs(raw_programs, skip_invalid=True)
        skipped = len(raw_programs) - len(programs)
        if self.prefilter:
            candidates = ProgramIndex(programs).filter_candidates(student)
            logger.debug(f"Prefilter kept {len(candidates)}/{len(programs)} programs for {profile_id}")
            programs = candidates

        results, hits, misses = self.match_cache.lookup_matches(
            profile_id, student, programs, mode=mode, variant=variant
        )
        if limit is not None:
            results = results[:limit]

        self.metrics.record(build_metrics(
            student_id=profile_id,
            student_points=student.total_ib_points,
            results=results,
            latency_ms=(time.perf_counter() - start) * 1000,
            total_programs=len(programs),
            algorithm_version=variant.version,
            v10_features=[f.value for f in self.flags.enabled_variant_flags(context)],
            cache_hits=hits,
            cache_misses=misses,
            skipped_programs=skipped,
        ))

        return StudentMatches(
            student_id=profile_id,
            mode=resolve_mode(mode),
            algorithm_version=variant.version,
            total_programs=len(programs),
            skipped_programs=skipped,
            results=results,
        )

    def get_program_match(
        self,
        db: Session,
        student_id: str,
        program_id: str,
        mode: Optional[MatchingMode] = None
    ) -> MatchResult:
        """
        Raises:
            StudentNotFoundError, ProfileIncompleteError, ProgramNotFoundError
        """
        student = self._load_profile(db, student_id)
        profile_id = student.student_id
        variant = self.flags.resolve_variant(context=FlagContext(user_id=profile_id))

        raw = next(
            (p for p in self.program_cache.get_cached_programs(db) if str(p.get("id")) == str(program_id)),
            None,
        )
        if raw is None:
            raise ProgramNotFoundError(program_id)

        program = transform_program(raw)
        return self.match_cache.get_cached_match(profile_id, student, program, mode=mode, variant=variant)

    # =========================================================================
    # INVALIDATION HOOKS
    # =========================================================================

    def on_student_profile_changed(self, student_id: str) -> int:
        return self.match_cache.invalidate_student_cache(student_id)

    def on_program_changed(self, program_id: str) -> int:
        self.program_cache.invalidate_programs_cache()
        return self.match_cache.invalidate_program_cache(program_id)

    def clear_all(self) -> int:
        self.program_cache.invalidate_programs_cache()
        return self.match_cache.clear_all_match_cache()
