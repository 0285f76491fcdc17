"""
Test the match scorer: determinism, monotonicity, weights, caps and the
V10 refinements.
"""

import pytest
from pydantic import ValidationError

from conftest import raw_course, raw_program, raw_requirement, raw_student
from matching.logic.constants import (
    WEIGHT_MODES,
    ConfidenceLevel,
    MatchCategory,
    MatchingMode,
    RequirementStatus,
)
from matching.logic.contracts import (
    MODE_WEIGHTS,
    AlgorithmVariant,
    WeightConfig,
    validate_weight_table,
)
from matching.logic.errors import ConfigurationError
from matching.logic.categorization import get_match_category
from matching.logic.scorer import calculate_match, calculate_matches, round_half_up
from matching.logic.subject_matcher import grade_shortfall_credit, sl_for_hl_credit
from matching.logic.transformers import transform_program, transform_student

FULL = AlgorithmVariant(
    fit_quality=True, selectivity=True, anti_gaming=True, confidence=True, categorization=True
)


def student(**kwargs):
    return transform_student(raw_student(**kwargs))


def program(**kwargs):
    return transform_program(raw_program(**kwargs))


# =============================================================================
# SCENARIOS
# =============================================================================

def test_above_minimum_with_buffer_scores_top_academic():
    """38 points against a 34 minimum under BALANCED weights."""
    result = calculate_match(
        student(points=38, fields=["f-other"], countries=["c-other"]),
        program(min_points=34),
        mode=MatchingMode.BALANCED,
    )

    assert result.sub_scores.academic == 100.0
    assert result.sub_scores.field == 15.0
    assert result.sub_scores.location == 10.0
    # 0.6 * 100 + 0.1 * 15 + 0.3 * 10 = 64.5
    assert result.overall_score == 65
    assert result.weights_used.academic == 0.6
    assert result.algorithm_version == "v9"


def test_preferred_everything_scores_100():
    result = calculate_match(
        student(points=38, fields=["f-cs"], countries=["c-nl"]),
        program(min_points=34),
    )
    assert result.overall_score == 100
    assert result.requirements_met is True


@pytest.mark.parametrize("points", [24, 30, 38, 45])
def test_no_minimum_gives_neutral_academic_score(points):
    result = calculate_match(student(points=points), program(min_points=None))
    assert result.sub_scores.academic == 85.0
    assert result.academic.has_points_requirement is False


def test_missing_and_group_names_both_courses():
    prog = program(requirements=[
        raw_requirement("math", "HL", group_id="g1", group_operator="AND"),
        raw_requirement("phys", "HL", group_id="g1", group_operator="AND"),
    ])
    result = calculate_match(student(points=38, courses=[]), prog)

    group = result.requirements[0]
    assert group.met is False
    assert group.status == RequirementStatus.NO_MATCH
    assert group.missing_courses == ["Mathematics HL", "Physics HL"]
    assert "Mathematics HL" in group.explanation
    assert "Physics HL" in group.explanation
    assert result.requirements_met is False


def test_no_requirement_groups_is_trivially_met():
    result = calculate_match(student(points=30), program(min_points=None, requirements=[]))
    assert result.requirements == []
    assert result.academic.requirements_fit == 100.0
    assert result.requirements_met is True


# =============================================================================
# PROPERTIES
# =============================================================================

def test_same_inputs_give_identical_results():
    s = student(points=36, courses=[raw_course("math", "HL", 6)], fields=["f-cs"])
    p = program(requirements=[raw_requirement("math", "HL", 6, is_critical=True)])
    assert calculate_match(s, p, variant=FULL).model_dump() == calculate_match(s, p, variant=FULL).model_dump()


@pytest.mark.parametrize("variant", [None, FULL, AlgorithmVariant(fit_quality=True)])
@pytest.mark.parametrize("mode", list(MatchingMode))
def test_overall_score_is_monotonic_in_points(variant, mode):
    prog = program(min_points=36, requirements=[
        raw_requirement("math", "HL", 6, is_critical=True),
        raw_requirement("chem", "HL", 5),
        raw_requirement("phys", "SL", 5, group_id="sci"),
        raw_requirement("chem", "SL", 5, group_id="sci"),
    ])
    courses = [raw_course("math", "HL", 5), raw_course("phys", "SL", 4)]

    previous_overall = previous_academic = -1
    for points in range(0, 46):
        result = calculate_match(student(points=points, courses=courses), prog, mode=mode, variant=variant)
        assert result.overall_score >= previous_overall, f"dropped at {points} points"
        assert result.sub_scores.academic >= previous_academic
        previous_overall = result.overall_score
        previous_academic = result.sub_scores.academic


def test_scores_stay_in_range():
    for points in (0, 20, 45, None):
        result = calculate_match(student(points=points), program(min_points=45), variant=FULL)
        assert 0 <= result.overall_score <= 100
        for value in result.sub_scores.model_dump().values():
            assert 0.0 <= value <= 100.0


def test_mode_weights_sum_to_one():
    for mode, weights in MODE_WEIGHTS.items():
        assert abs(weights.academic + weights.location + weights.field - 1.0) < 1e-6
        assert weights.cache_hash == "{:.2f}_{:.2f}_{:.2f}".format(*WEIGHT_MODES[mode])


def test_misconfigured_weight_table_fails_fast():
    bad = dict(WEIGHT_MODES)
    bad[MatchingMode.BALANCED] = (0.7, 0.3, 0.1)
    with pytest.raises(ConfigurationError):
        validate_weight_table(bad)

    incomplete = {MatchingMode.BALANCED: (0.6, 0.3, 0.1)}
    with pytest.raises(ConfigurationError):
        validate_weight_table(incomplete)


def test_weight_config_rejects_bad_sum_and_normalizes_custom():
    with pytest.raises(ValidationError):
        WeightConfig(academic=0.5, location=0.5, field=0.5)

    weights = WeightConfig.normalized(2, 1, 1)
    assert weights.academic == 0.5
    assert abs(weights.academic + weights.location + weights.field - 1.0) < 1e-9


def test_custom_weights_override_mode():
    weights = WeightConfig(academic=1.0, location=0.0, field=0.0)
    result = calculate_match(
        student(points=38, fields=["f-x"], countries=["c-x"]),
        program(min_points=34),
        mode=MatchingMode.LOCATION_FOCUSED,
        weights=weights,
    )
    assert result.overall_score == 100


def test_round_half_up():
    assert round_half_up(64.5) == 65
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(96.666666, 2) == 96.67


def test_batch_is_sorted_with_program_id_tiebreak():
    s = student(points=38, fields=["f-cs"], countries=["c-nl"])
    programs = [
        program(program_id="p-b"),
        program(program_id="p-a"),
        program(program_id="p-low", min_points=44),
    ]
    results = calculate_matches(s, programs)
    assert [r.program_id for r in results] == ["p-a", "p-b", "p-low"]


# =============================================================================
# POINTS CURVES
# =============================================================================

@pytest.mark.parametrize("points,expected", [
    (40, 100.0), (36, 100.0), (35, 95.0), (34, 90.0), (33, 80.0), (32, 70.0), (20, 0.0),
])
def test_baseline_points_curve(points, expected):
    result = calculate_match(student(points=points), program(min_points=34))
    assert result.academic.points_fit == expected


@pytest.mark.parametrize("points,expected", [
    (33, 90.0), (34, 95.0), (37, 100.0), (45, 100.0), (24, 30.0), (10, 30.0),
])
def test_fit_quality_points_curve(points, expected):
    result = calculate_match(
        student(points=points), program(min_points=34), variant=AlgorithmVariant(fit_quality=True)
    )
    assert result.academic.points_fit == expected
    assert result.algorithm_version == "v10"


def test_missing_student_points_scores_incomplete():
    result = calculate_match(student(points=None, courses=[raw_course("math", "HL", 7)]), program(min_points=30))
    assert result.academic.points_fit == 50.0
    assert result.academic.meets_points_requirement is False


# =============================================================================
# REQUIREMENTS AND CAPS
# =============================================================================

def test_grade_shortfall_credit():
    assert grade_shortfall_credit(1, 6, True) == 0.85
    assert grade_shortfall_credit(1, 6, False) == 0.78
    assert grade_shortfall_credit(3, 6, False) == pytest.approx(0.36)
    assert grade_shortfall_credit(5, 6, False) == 0.25


def test_sl_for_hl_credit():
    assert sl_for_hl_credit(7, 6) == 0.8
    assert sl_for_hl_credit(6, 5) == 0.8
    assert sl_for_hl_credit(5, 3) == 0.75
    assert sl_for_hl_credit(4, 6) == 0.25
    assert sl_for_hl_credit(None, 6) == 0.75


def test_hl_satisfies_sl_but_not_the_reverse():
    hl_student = student(courses=[raw_course("math", "HL", 6)])
    sl_student = student(courses=[raw_course("math", "SL", 6)])

    sl_required = program(requirements=[raw_requirement("math", "SL", 5)])
    hl_required = program(requirements=[raw_requirement("math", "HL", 5)])

    assert calculate_match(hl_student, sl_required).requirements[0].met is True
    sl_for_hl = calculate_match(sl_student, hl_required).requirements[0]
    assert sl_for_hl.met is False
    assert sl_for_hl.status == RequirementStatus.PARTIAL_MATCH


def test_unknown_grade_counts_as_met():
    result = calculate_match(
        student(courses=[raw_course("math", "HL", None)]),
        program(requirements=[raw_requirement("math", "HL", 7)]),
    )
    assert result.requirements[0].met is True


def test_or_group_takes_best_option():
    prog = program(requirements=[
        raw_requirement("chem", "HL", 6, group_id="sci"),
        raw_requirement("phys", "HL", 6, group_id="sci"),
    ])
    result = calculate_match(student(courses=[raw_course("phys", "HL", 7)]), prog)

    group = result.requirements[0]
    assert group.met is True
    assert group.matched_course_id == "phys"
    assert group.missing_courses == []
    assert "Physics HL" in group.explanation


def test_critical_near_miss_caps_academic_at_80():
    result = calculate_match(
        student(points=40, courses=[raw_course("math", "HL", 5)]),
        program(min_points=30, requirements=[raw_requirement("math", "HL", 6, is_critical=True)]),
    )
    # 100 points fit x 85 requirements fit, capped
    assert result.sub_scores.academic == 80.0
    assert result.academic.cap == 80.0


def test_missing_critical_group_caps_academic_at_45():
    prog = program(min_points=30, requirements=[
        raw_requirement("math", "HL", 5, is_critical=True),
        raw_requirement("phys", "HL", 5),
        raw_requirement("chem", "SL", 5),
        raw_requirement("eng", "SL", 5),
    ])
    courses = [raw_course("phys", "HL", 6), raw_course("chem", "HL", 6), raw_course("eng", "SL", 6)]
    result = calculate_match(student(points=40, courses=courses), prog)

    assert result.academic.missing_critical_count == 1
    assert result.academic.multiple_requirements_penalty == pytest.approx(0.9)
    assert result.sub_scores.academic == 45.0
    assert any("capped at 45" in a for a in result.adjustments)


# =============================================================================
# V10 REFINEMENTS
# =============================================================================

def test_selectivity_boost_for_high_achievers_only():
    variant = AlgorithmVariant(selectivity=True)
    selective = program(min_points=40)

    boosted = calculate_match(student(points=40), selective, variant=variant)
    assert boosted.academic.selectivity_tier == 1
    assert boosted.academic.selectivity_boost == 5.0
    assert boosted.sub_scores.academic == 95.0  # exact meet 90 + 5

    assert calculate_match(student(points=37), program(min_points=36), variant=variant).academic.selectivity_boost == 0.0


def test_anti_gaming_empty_preferences():
    empty = student(points=38)
    open_minded = student(points=38, open_to_all_fields=True, open_to_all_locations=True)
    prog = program()

    baseline = calculate_match(empty, prog)
    assert (baseline.sub_scores.field, baseline.sub_scores.location) == (50.0, 100.0)

    variant = AlgorithmVariant(anti_gaming=True)
    implicit = calculate_match(empty, prog, variant=variant)
    assert (implicit.sub_scores.field, implicit.sub_scores.location) == (50.0, 60.0)

    explicit = calculate_match(open_minded, prog, variant=variant)
    assert (explicit.sub_scores.field, explicit.sub_scores.location) == (70.0, 85.0)


def test_ranked_preferences_decay_to_floor():
    countries = [f"c-{i}" for i in range(8)]
    scores = [
        calculate_match(student(countries=countries), program(country_id=c)).sub_scores.location
        for c in countries
    ]
    assert scores == [100.0, 90.0, 80.0, 70.0, 60.0, 60.0, 60.0, 60.0]


def test_confidence_annotation():
    complete = student(
        points=38,
        courses=[raw_course(c, "HL", 6) for c in ("math", "phys", "chem")]
        + [raw_course(c, "SL", 6) for c in ("eng", "math", "phys")],
        tok_grade="A",
        ee_grade="B",
        grades_are_final=True,
    )
    result = calculate_match(complete, program(), variant=FULL)
    assert result.confidence.score == 1.0
    assert result.confidence.level == ConfidenceLevel.HIGH

    sparse = calculate_match(student(points=38), program(min_points=None), variant=FULL)
    assert sparse.confidence.level == ConfidenceLevel.LOW
    types = {f.type for f in sparse.confidence.factors}
    assert {"PREDICTED_GRADES", "MISSING_SUBJECT_GRADES", "INCOMPLETE_PROFILE",
            "MISSING_POINTS_REQUIREMENT", "FEW_DATA_POINTS"} <= types


def test_baseline_has_no_annotations():
    result = calculate_match(student(), program())
    assert result.confidence is None
    assert result.category is None


@pytest.mark.parametrize("score,margin,met,expected", [
    (95, 6, True, MatchCategory.SAFETY),
    (95, 2, True, MatchCategory.MATCH),
    (80, 0, True, MatchCategory.MATCH),
    (80, 0, False, MatchCategory.REACH),
    (50, -2, False, MatchCategory.REACH),
    (30, -10, False, MatchCategory.UNLIKELY),
    (60, None, True, MatchCategory.REACH),
])
def test_match_category(score, margin, met, expected):
    assert get_match_category(score, margin, met) == expected


def test_categorization_annotation():
    result = calculate_match(
        student(points=42, fields=["f-cs"], countries=["c-nl"]), program(min_points=34), variant=FULL
    )
    assert result.category.category == MatchCategory.SAFETY
    assert result.category.points_margin == 8
