"""
Program Catalog Cache

Keeps the full program catalog (with university, country, field and
course requirements) in Redis as a compact JSON payload so batch
matching does not hit the database on every request.

warm_programs_cache() is called once at startup; a failure there is
logged and never stops the process.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import redis
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..models import AcademicProgram, CourseRequirement, University
from .constants import PROGRAMS_CACHE_KEY, PROGRAMS_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


def program_to_dict(program: AcademicProgram) -> Dict[str, Any]:
    """Compact, JSON-safe form of a program with the relations the matcher reads."""
    university = program.university
    country = university.country if university is not None else None
    field = program.field_of_study
    return {
        "id": program.id,
        "name": program.name,
        "min_ib_points": program.min_ib_points,
        "requirements_verified": bool(program.requirements_verified),
        "university": {
            "id": university.id,
            "name": university.name,
            "country": {"id": country.id, "name": country.name} if country is not None else None,
        } if university is not None else None,
        "field_of_study": {"id": field.id, "name": field.name} if field is not None else None,
        "course_requirements": [
            {
                "ib_course": {
                    "id": req.ib_course.id,
                    "name": req.ib_course.name,
                    "group": req.ib_course.group,
                } if req.ib_course is not None else None,
                "ib_course_id": req.ib_course_id,
                "required_level": req.required_level,
                "min_grade": req.min_grade,
                "is_critical": bool(req.is_critical),
                "group_id": req.group_id,
                "group_operator": req.group_operator,
            }
            for req in program.course_requirements
        ],
    }


def load_programs_from_db(db: Session) -> List[Dict[str, Any]]:
    stmt = (
        select(AcademicProgram)
        .options(
            selectinload(AcademicProgram.university).selectinload(University.country),
            selectinload(AcademicProgram.field_of_study),
            selectinload(AcademicProgram.course_requirements).selectinload(CourseRequirement.ib_course),
        )
        .order_by(AcademicProgram.id)
    )
    return [program_to_dict(p) for p in db.execute(stmt).scalars().all()]


class ProgramCatalogCache:
    """
    Args:
        client: redis.Redis with decode_responses=True
        session_factory: callable returning a new Session (db.SessionLocal)
        ttl: seconds the catalog payload lives
    """

    def __init__(
        self,
        client: redis.Redis,
        session_factory: Callable[[], Session],
        ttl: int = PROGRAMS_CACHE_TTL_SECONDS
    ):
        self.client = client
        self.session_factory = session_factory
        self.ttl = ttl

    def _load_from_db(self, db: Optional[Session] = None) -> List[Dict[str, Any]]:
        if db is not None:
            return load_programs_from_db(db)
        with self.session_factory() as session:
            return load_programs_from_db(session)

    def get_cached_programs(self, db: Optional[Session] = None) -> List[Dict[str, Any]]:
        """Catalog from Redis, falling back to (and refilling from) the database."""
        try:
            cached = self.client.get(PROGRAMS_CACHE_KEY)
            if cached is not None:
                programs = json.loads(cached)
                logger.debug(f"Program catalog cache hit ({len(programs)} programs)")
                return programs
        except redis.RedisError as e:
            logger.warning(f"Program catalog cache read failed, using database: {e}")
        except ValueError as e:
            logger.warning(f"Discarding undecodable program catalog: {e}")

        logger.debug("Program catalog cache miss")
        programs = self._load_from_db(db)

        try:
            self.client.set(PROGRAMS_CACHE_KEY, json.dumps(programs), ex=self.ttl)
        except redis.RedisError as e:
            logger.warning(f"Program catalog cache write failed: {e}")

        return programs

    def invalidate_programs_cache(self) -> None:
        try:
            self.client.delete(PROGRAMS_CACHE_KEY)
            logger.info("Program catalog cache invalidated")
        except redis.RedisError as e:
            logger.warning(f"Program catalog cache invalidation failed: {e}")

    def warm_programs_cache(self) -> int:
        """
        Load the catalog into Redis ahead of the first request.

        Returns:
            Number of programs cached, or 0 when warming failed
        """
        start = time.perf_counter()
        try:
            programs = self._load_from_db()
            self.client.set(PROGRAMS_CACHE_KEY, json.dumps(programs), ex=self.ttl)
        except Exception as e:
            logger.error(f"❌ Program catalog warm-up failed: {e}")
            return 0

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"✅ Warmed program catalog: {len(programs)} programs in {elapsed_ms:.0f}ms")
        return len(programs)
