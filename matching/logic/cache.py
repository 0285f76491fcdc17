"""
Match Cache

Redis-backed cache for match results.

Key format:
- Single: match:{student_id}:{program_id}:{weights_hash}
- Batch:  matches:{student_id}:{weights_hash}:{program_set_digest}

weights_hash is WeightConfig.cache_hash, prefixed with "custom_" for
caller-supplied weights and suffixed with the variant tag when V10
refinements are active, so none of these ever share entries. The batch
key also carries a digest of the sorted program ids it was computed for.

The cache is transparent: any backend or decode error is logged and
treated as a miss, and the result is computed directly.
"""

import hashlib
import logging
from typing import Iterable, List, Optional, Tuple

import redis
from pydantic import TypeAdapter, ValidationError

from .contracts import (
    AlgorithmVariant,
    BASELINE_VARIANT,
    CacheStats,
    MatchResult,
    ProgramRequirements,
    StudentAcademicProfile,
    WeightConfig,
    get_weights,
)
from .constants import (
    MatchingMode,
    MATCH_CACHE_TTL_SECONDS,
    MATCH_KEY_PREFIX,
    BATCH_KEY_PREFIX,
    SCAN_BATCH_SIZE,
    PROGRAM_SET_DIGEST_LENGTH,
)
from .indexes import CourseIndex
from .scorer import MatchScorer, sort_matches

logger = logging.getLogger(__name__)

_MATCH_LIST = TypeAdapter(List[MatchResult])

DECODE_ERRORS = (ValidationError, ValueError)


def weights_hash(
    weights: WeightConfig,
    variant: Optional[AlgorithmVariant] = None,
    custom: bool = False
) -> str:
    base = weights.cache_hash
    if custom:
        base = f"custom_{base}"
    if variant is not None and variant.tag:
        return f"{base}_{variant.tag}"
    return base


def match_key(student_id: str, program_id: str, hash_: str) -> str:
    return f"{MATCH_KEY_PREFIX}:{student_id}:{program_id}:{hash_}"


def program_set_digest(program_ids: Iterable[str]) -> str:
    """Order-independent fingerprint of the programs a batch covers."""
    joined = "\n".join(sorted(program_ids))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:PROGRAM_SET_DIGEST_LENGTH]


def batch_key(student_id: str, hash_: str, program_ids: Iterable[str]) -> str:
    return f"{BATCH_KEY_PREFIX}:{student_id}:{hash_}:{program_set_digest(program_ids)}"


class MatchCache:
    """
    Read-through cache in front of the scorer.

    Args:
        client: redis.Redis created with decode_responses=True
        ttl: seconds each entry lives
    """

    def __init__(self, client: redis.Redis, ttl: int = MATCH_CACHE_TTL_SECONDS):
        self.client = client
        self.ttl = ttl

    # =========================================================================
    # READ-THROUGH
    # =========================================================================

    def get_cached_match(
        self,
        student_id: str,
        student: StudentAcademicProfile,
        program: ProgramRequirements,
        mode: Optional[MatchingMode] = None,
        weights: Optional[WeightConfig] = None,
        variant: Optional[AlgorithmVariant] = None
    ) -> MatchResult:
        """Return the cached result for one pair, computing and storing it on a miss."""
        variant = variant or BASELINE_VARIANT
        weights_used = get_weights(mode, weights)
        key = match_key(
            student_id, program.program_id, weights_hash(weights_used, variant, custom=weights is not None)
        )

        cached = self._get(key)
        if cached is not None:
            try:
                result = MatchResult.model_validate_json(cached)
                logger.debug(f"Cache hit: {key}")
                return result
            except DECODE_ERRORS as e:
                logger.warning(f"Discarding undecodable cache entry {key}: {e}")

        logger.debug(f"Cache miss: {key}")
        result = MatchScorer(variant).score(student, program, mode, weights)
        self._set(key, result.model_dump_json())
        return result

    def get_cached_matches(
        self,
        student_id: str,
        student: StudentAcademicProfile,
        programs: Iterable[ProgramRequirements],
        mode: Optional[MatchingMode] = None,
        weights: Optional[WeightConfig] = None,
        variant: Optional[AlgorithmVariant] = None
    ) -> List[MatchResult]:
        results, _, _ = self.lookup_matches(student_id, student, programs, mode, weights, variant)
        return results

    def lookup_matches(
        self,
        student_id: str,
        student: StudentAcademicProfile,
        programs: Iterable[ProgramRequirements],
        mode: Optional[MatchingMode] = None,
        weights: Optional[WeightConfig] = None,
        variant: Optional[AlgorithmVariant] = None
    ) -> Tuple[List[MatchResult], int, int]:
        """
        Batch read-through. Checks the batch key first, then the per-pair
        keys in one MGET; misses are scored and written back in one pipeline.

        Returns:
            (results best first, cache hits, cache misses)
        """
        variant = variant or BASELINE_VARIANT
        programs = list(programs)
        weights_used = get_weights(mode, weights)
        hash_ = weights_hash(weights_used, variant, custom=weights is not None)
        list_key = batch_key(student_id, hash_, [p.program_id for p in programs])

        cached_list = self._get(list_key)
        if cached_list is not None:
            try:
                results = _MATCH_LIST.validate_json(cached_list)
                logger.debug(f"Batch cache hit: {list_key} ({len(results)} results)")
                return results, len(results), 0
            except DECODE_ERRORS as e:
                logger.warning(f"Discarding undecodable batch entry {list_key}: {e}")

        keys = [match_key(student_id, p.program_id, hash_) for p in programs]
        cached_values = self._mget(keys)

        scorer = MatchScorer(variant)
        course_index = CourseIndex(student.courses)
        results: List[MatchResult] = []
        to_store: List[Tuple[str, str]] = []
        hits = 0

        for program, key, cached in zip(programs, keys, cached_values):
            if cached is not None:
                try:
                    results.append(MatchResult.model_validate_json(cached))
                    hits += 1
                    continue
                except DECODE_ERRORS as e:
                    logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            result = scorer.score(student, program, mode, weights, course_index)
            results.append(result)
            to_store.append((key, result.model_dump_json()))

        misses = len(to_store)
        logger.debug(f"Batch cache for {student_id}: {hits} hits, {misses} misses")

        results = sort_matches(results)
        if to_store:
            self._set_many(to_store)
        self._set(list_key, _MATCH_LIST.dump_json(results).decode("utf-8"))
        return results, hits, misses

    # =========================================================================
    # INVALIDATION
    # =========================================================================

    def invalidate_student_cache(self, student_id: str) -> int:
        deleted = self._delete_pattern(f"{MATCH_KEY_PREFIX}:{student_id}:*")
        deleted += self._delete_pattern(f"{BATCH_KEY_PREFIX}:{student_id}:*")
        logger.info(f"Invalidated {deleted} cache entries for student {student_id}")
        return deleted

    def invalidate_program_cache(self, program_id: str) -> int:
        """Drops the program's pair entries and every batch list, since each list references it."""
        deleted = self._delete_pattern(f"{MATCH_KEY_PREFIX}:*:{program_id}:*")
        deleted += self._delete_pattern(f"{BATCH_KEY_PREFIX}:*")
        logger.info(f"Invalidated {deleted} cache entries for program {program_id}")
        return deleted

    def clear_all_match_cache(self) -> int:
        deleted = self._delete_pattern(f"{MATCH_KEY_PREFIX}:*")
        deleted += self._delete_pattern(f"{BATCH_KEY_PREFIX}:*")
        logger.info(f"Cleared {deleted} match cache entries")
        return deleted

    def get_cache_stats(self) -> CacheStats:
        match_keys = len(self._scan(f"{MATCH_KEY_PREFIX}:*"))
        batch_keys = len(self._scan(f"{BATCH_KEY_PREFIX}:*"))
        return CacheStats(
            match_keys=match_keys,
            batch_keys=batch_keys,
            total_keys=match_keys + batch_keys,
        )

    # =========================================================================
    # BACKEND (errors never escape)
    # =========================================================================

    def _get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    def _mget(self, keys: List[str]) -> List[Optional[str]]:
        if not keys:
            return []
        try:
            return self.client.mget(keys)
        except redis.RedisError as e:
            logger.warning(f"Cache batch read failed ({len(keys)} keys): {e}")
            return [None] * len(keys)

    def _set(self, key: str, value: str) -> None:
        try:
            self.client.set(key, value, ex=self.ttl)
        except redis.RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def _set_many(self, items: List[Tuple[str, str]]) -> None:
        try:
            pipe = self.client.pipeline()
            for key, value in items:
                pipe.set(key, value, ex=self.ttl)
            pipe.execute()
        except redis.RedisError as e:
            logger.warning(f"Cache batch write failed ({len(items)} keys): {e}")

    def _scan(self, pattern: str) -> List[str]:
        try:
            return list(self.client.scan_iter(match=pattern, count=SCAN_BATCH_SIZE))
        except redis.RedisError as e:
            logger.warning(f"Cache scan failed for {pattern}: {e}")
            return []

    def _delete_pattern(self, pattern: str) -> int:
        keys = self._scan(pattern)
        if not keys:
            return 0
        try:
            deleted = 0
            for start in range(0, len(keys), SCAN_BATCH_SIZE):
                deleted += self.client.delete(*keys[start:start + SCAN_BATCH_SIZE])
            return deleted
        except redis.RedisError as e:
            logger.warning(f"Cache delete failed for {pattern}: {e}")
            return 0


def create_redis_client(url: str) -> redis.Redis:
    return redis.Redis.from_url(url, decode_responses=True)
