"""
Test MatchingService end to end against SQLite and fakeredis.
"""

import json

import pytest

from conftest import raw_program
from matching.logic.cache import MatchCache
from matching.logic.constants import PROGRAMS_CACHE_KEY, MatchingMode
from matching.logic.errors import ProfileIncompleteError, ProgramNotFoundError, StudentNotFoundError
from matching.logic.feature_flags import FeatureFlagResolver
from matching.logic.program_cache import ProgramCatalogCache
from matching.logic.runner import MatchingService, load_student
from matching.logic.settings import load_flag_configs
from matching.models import StudentProfile


def make_service(redis_client, session_factory, **env):
    return MatchingService(
        flags=FeatureFlagResolver(load_flag_configs(env)),
        match_cache=MatchCache(redis_client),
        program_cache=ProgramCatalogCache(redis_client, session_factory),
    )


@pytest.fixture
def service(redis_client, session_factory):
    return make_service(redis_client, session_factory)


def test_load_student_builds_raw_record(db_session):
    raw = load_student(db_session, "s-1")
    assert raw["id"] == "s-1"
    assert raw["total_ib_points"] == 38
    assert {c["ib_course"]["id"] for c in raw["courses"]} == {"math", "phys", "eng"}
    assert raw["preferred_fields"] == [{"field_id": "f-cs", "rank": 0}]


def test_student_matches_sorted_best_first(service, db_session):
    matches = service.get_student_matches(db_session, "s-1")

    assert matches.algorithm_version == "v9"
    assert matches.total_programs == 3
    assert matches.skipped_programs == 0
    scores = [r.overall_score for r in matches.results]
    assert scores == sorted(scores, reverse=True)
    assert matches.results[0].program_id == "p-cs-tud"
    assert matches.results[0].requirements_met is True


def test_second_request_is_served_from_cache(service, db_session):
    first = service.get_student_matches(db_session, "s-1", MatchingMode.ACADEMIC_FOCUSED)
    second = service.get_student_matches(db_session, "s-1", MatchingMode.ACADEMIC_FOCUSED)

    assert second.results == first.results
    aggregated = service.metrics.aggregated()
    assert (aggregated.cache_hits, aggregated.cache_misses) == (3, 3)
    assert aggregated.cache_hit_rate == 0.5


def test_limit(service, db_session):
    assert len(service.get_student_matches(db_session, "s-1", limit=2).results) == 2


def test_lookup_by_user_id_uses_the_profile_id(service, redis_client, db_session):
    matches = service.get_student_matches(db_session, "user-1")
    assert matches.student_id == "s-1"
    assert len(matches.results) == 3
    assert list(redis_client.scan_iter("match:user-1:*")) == []
    assert len(list(redis_client.scan_iter("match:s-1:*"))) == 3

    single = service.get_program_match(db_session, "user-1", "p-open")
    assert single in service.get_student_matches(db_session, "s-1").results


def test_profile_change_invalidates_both_addresses(service, db_session):
    before = service.get_student_matches(db_session, "user-1")

    db_session.get(StudentProfile, "s-1").total_ib_points = 24
    db_session.commit()
    service.on_student_profile_changed("s-1")

    by_user = service.get_student_matches(db_session, "user-1")
    by_profile = service.get_student_matches(db_session, "s-1")
    assert by_user.results == by_profile.results
    assert by_user.results != before.results


def test_rollout_is_the_same_for_both_addresses(redis_client, session_factory, db_session):
    for percentage in ("10", "50", "90"):
        service = make_service(
            redis_client, session_factory, MATCHING_V10_FULL="true", MATCHING_V10_FULL_ROLLOUT=percentage
        )
        by_user = service.get_student_matches(db_session, "user-1")
        by_profile = service.get_student_matches(db_session, "s-1")
        single = service.get_program_match(db_session, "user-1", "p-cs-tud")

        assert by_user.algorithm_version == by_profile.algorithm_version
        assert single.algorithm_version == by_profile.algorithm_version


def test_unknown_student(service, db_session):
    with pytest.raises(StudentNotFoundError):
        service.get_student_matches(db_session, "nobody")


def test_incomplete_profile(service, db_session):
    with pytest.raises(ProfileIncompleteError):
        service.get_student_matches(db_session, "s-empty")


def test_full_flag_switches_to_v10(redis_client, session_factory, db_session):
    service = make_service(redis_client, session_factory, MATCHING_V10_FULL="true")
    matches = service.get_student_matches(db_session, "s-1")

    assert matches.algorithm_version == "v10"
    assert all(r.category is not None and r.confidence is not None for r in matches.results)
    assert service.metrics.aggregated().v10_request_count == 1


def test_malformed_catalog_entry_is_skipped(service, redis_client, db_session):
    redis_client.set(PROGRAMS_CACHE_KEY, json.dumps([
        raw_program("p-good"),
        raw_program("p-bad", min_points=99),
    ]))

    matches = service.get_student_matches(db_session, "s-1")
    assert matches.total_programs == 1
    assert matches.skipped_programs == 1
    assert [r.program_id for r in matches.results] == ["p-good"]


def test_single_program_match(service, db_session):
    result = service.get_program_match(db_session, "s-1", "p-med-ucl")
    batch = service.get_student_matches(db_session, "s-1")

    assert result.program_id == "p-med-ucl"
    assert result in batch.results


def test_unknown_program(service, db_session):
    with pytest.raises(ProgramNotFoundError):
        service.get_program_match(db_session, "s-1", "p-missing")


def test_invalidation_hooks(service, redis_client, db_session):
    service.get_student_matches(db_session, "s-1")
    assert redis_client.get(PROGRAMS_CACHE_KEY) is not None

    assert service.on_student_profile_changed("s-1") == 4
    assert service.match_cache.get_cache_stats().total_keys == 0

    service.get_student_matches(db_session, "s-1")
    service.on_program_changed("p-open")
    assert redis_client.get(PROGRAMS_CACHE_KEY) is None
    stats = service.match_cache.get_cache_stats()
    assert (stats.match_keys, stats.batch_keys) == (2, 0)

    assert service.clear_all() == 2
    assert service.match_cache.get_cache_stats().total_keys == 0


def test_metrics_recorded(service, db_session):
    service.get_student_matches(db_session, "s-1")

    aggregated = service.metrics.aggregated()
    assert aggregated.request_count == 1
    assert aggregated.avg_programs_evaluated == 3
    assert aggregated.high_achiever_requests == 1
    assert aggregated.v10_request_count == 0


def test_default_mode_is_reported_as_balanced(service, db_session):
    assert service.get_student_matches(db_session, "s-1").mode == MatchingMode.BALANCED


def test_prefilter_narrows_the_catalog(redis_client, session_factory, db_session):
    service = MatchingService(
        flags=FeatureFlagResolver(load_flag_configs({})),
        match_cache=MatchCache(redis_client),
        program_cache=ProgramCatalogCache(redis_client, session_factory),
        prefilter=True,
    )
    matches = service.get_student_matches(db_session, "s-1")

    assert matches.total_programs == 1
    assert [r.program_id for r in matches.results] == ["p-cs-tud"]
