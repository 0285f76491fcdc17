"""
Matching API Routes

Exposes the matching engine via REST API:
- GET  /matches/students/{student_id}
- GET  /matches/students/{student_id}/programs/{program_id}
- POST /matches/cache/invalidate
- GET  /matches/cache/stats
- GET  /matches/health
- GET  /matches/metrics
"""

import logging
from typing import Optional

import redis
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from db import get_db
from .logic.constants import MatchingMode
from .logic.errors import (
    ProfileIncompleteError,
    ProgramNotFoundError,
    StudentNotFoundError,
)
from .logic.runner import MatchingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/matches", tags=["matching"])

INTERNAL_ERROR_DETAIL = "Matching failed. Please try again later."


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class InvalidateRequest(BaseModel):
    """Exactly one target: a student, a program, or everything."""
    student_id: Optional[str] = Field(default=None, description="Drop one student's cached matches")
    program_id: Optional[str] = Field(default=None, description="Drop every match involving a program")
    all: bool = Field(default=False, description="Drop the whole match cache")


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_matching_service(request: Request) -> MatchingService:
    return request.app.state.matching_service


def parse_mode(mode: Optional[str]) -> Optional[MatchingMode]:
    if mode is None or mode == "":
        return None
    try:
        return MatchingMode(mode.upper())
    except ValueError:
        allowed = ", ".join(m.value for m in MatchingMode)
        raise HTTPException(status_code=400, detail=f"Unknown mode '{mode}'. Allowed: {allowed}")


def _raise_http(e: Exception, what: str):
    if isinstance(e, (StudentNotFoundError, ProgramNotFoundError)):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ProfileIncompleteError):
        raise HTTPException(status_code=422, detail=str(e))
    logger.exception(f"❌ {what} failed: {e}")
    raise HTTPException(status_code=500, detail=INTERNAL_ERROR_DETAIL)


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/students/{student_id}", summary="Ranked program matches for a student")
def get_student_matches(
    student_id: str,
    mode: Optional[str] = Query(default=None, description="BALANCED, ACADEMIC_FOCUSED or LOCATION_FOCUSED"),
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    db: Session = Depends(get_db),
    service: MatchingService = Depends(get_matching_service),
):
    """
    Score every program in the catalog for the student, best first.

    **Errors:**
    - 404 when the student profile does not exist
    - 422 when the profile has neither IB points nor courses
    - 400 for an unknown mode
    """
    matching_mode = parse_mode(mode)
    try:
        matches = service.get_student_matches(db, student_id, matching_mode, limit)
    except Exception as e:
        _raise_http(e, "Student matching")
    return matches.model_dump(mode="json")


@router.get("/students/{student_id}/programs/{program_id}", summary="Match for one program")
def get_program_match(
    student_id: str,
    program_id: str,
    mode: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    service: MatchingService = Depends(get_matching_service),
):
    matching_mode = parse_mode(mode)
    try:
        result = service.get_program_match(db, student_id, program_id, matching_mode)
    except Exception as e:
        _raise_http(e, "Program matching")
    return result.model_dump(mode="json")


@router.post("/cache/invalidate", summary="Invalidate cached matches")
def invalidate_cache(
    request: InvalidateRequest,
    service: MatchingService = Depends(get_matching_service),
):
    targets = sum([request.student_id is not None, request.program_id is not None, request.all])
    if targets != 1:
        raise HTTPException(status_code=400, detail="Provide exactly one of student_id, program_id or all")

    if request.all:
        deleted = service.clear_all()
        scope = "all"
    elif request.student_id is not None:
        deleted = service.on_student_profile_changed(request.student_id)
        scope = f"student:{request.student_id}"
    else:
        deleted = service.on_program_changed(request.program_id)
        scope = f"program:{request.program_id}"

    return {"invalidated": scope, "deleted_keys": deleted}


@router.get("/cache/stats", summary="Match cache key counts")
def cache_stats(service: MatchingService = Depends(get_matching_service)):
    return service.match_cache.get_cache_stats().model_dump()


# =============================================================================
# HEALTH CHECK
# =============================================================================

@router.get("/health", summary="Matching engine health check")
def health_check(service: MatchingService = Depends(get_matching_service)):
    """Check that the matching engine is up and whether Redis answers."""
    try:
        redis_ok = bool(service.match_cache.client.ping())
    except redis.RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        redis_ok = False

    return {
        "status": "ok" if redis_ok else "degraded",
        "engine": "matching",
        "redis": redis_ok,
        "feature_flags": service.flags.describe(),
        "metrics": service.metrics.aggregated().model_dump(),
    }


@router.get("/metrics", summary="Prometheus metrics")
def metrics(service: MatchingService = Depends(get_matching_service)):
    return Response(
        content=generate_latest(service.metrics.registry),
        media_type=CONTENT_TYPE_LATEST
    )
