"""
Tests for the QASS Model.

============================================================
PURPOSE
============================================================
Covers:
1. Rating normalizer and standardization
2. Rating aggregator and contribution calculator
3. Score distributor and Split-Join Invariance
4. Single-component pipeline properties
5. Multi-component aggregation
6. Error taxonomy

============================================================
"""

import math

import pytest

from peer_scoring.qass import (
    BijunctionFormula,
    NEUTRAL_RATING,
    aggregate_ratings,
    calculate_contributions,
    combine_contributions,
    compute_qass,
    compute_qass_multi_component,
    distribute_score,
    get_formula,
    join_scores,
    recover_contribution,
    rescale_matrix,
    rescale_rating,
    standardize_matrix,
    validate_split_join_invariance,
)
from peer_scoring.types import (
    DomainRangeError,
    InputShapeError,
    InvariantViolationError,
    QASSMode,
    UnimplementedModeError,
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def two_student_matrix():
    """Neutral self-ratings, student 0 rates student 1 high."""
    return [
        [0.5, 0.8],
        [0.2, 0.5],
    ]


@pytest.fixture
def three_student_matrix():
    """A realistic, uneven 3 x 3 matrix."""
    return [
        [0.5, 0.7, 0.6],
        [0.4, 0.55, 0.65],
        [0.3, 0.6, 0.45],
    ]


@pytest.fixture
def qass_params():
    """Default scalar parameters."""
    return {
        "tuning_factor": 0.0,
        "peer_rating_impact": 1.0,
        "group_spread": 2.0,
        "group_product_score": 0.8,
    }


def _permute(matrix, weights, order):
    permuted_matrix = [[matrix[a][b] for b in order] for a in order]
    permuted_weights = [weights[a] for a in order]
    return permuted_matrix, permuted_weights


# ============================================================
# RATING NORMALIZER TESTS
# ============================================================

class TestRatingNormalizer:
    """Tests for rescale_rating and matrix standardization."""

    def test_zero_tuning_is_identity(self):
        assert rescale_rating(0.0, 0.3) == pytest.approx(0.3)

    def test_full_tuning_inverts(self):
        assert rescale_rating(1.0, 0.3) == pytest.approx(0.7)

    def test_half_tuning_is_neutral(self):
        assert rescale_rating(0.5, 0.1) == pytest.approx(0.5)
        assert rescale_rating(0.5, 0.9) == pytest.approx(0.5)

    def test_partial_tuning(self):
        assert rescale_rating(0.2, 0.9) == pytest.approx(0.74)

    def test_rescaled_boundary_rating_rejected(self):
        with pytest.raises(DomainRangeError):
            rescale_matrix([[0.5, 1.0], [0.5, 0.5]], 0.0)

    def test_boundary_rating_accepted_when_tuning_moves_it_inside(self):
        rescaled = rescale_matrix([[0.0, 0.5], [0.5, 0.5]], 0.5)
        assert rescaled[0][0] == pytest.approx(0.5)

    def test_standardize_maps_bounds(self):
        standardized = standardize_matrix([[1, 3], [5, 2]], lower_bound=1, upper_bound=5)
        assert standardized == [[0.0, 0.5], [1.0, 0.25]]

    def test_standardize_fills_missing(self):
        standardized = standardize_matrix([[None, 0.8], [0.2, None]])
        assert standardized == [[NEUTRAL_RATING, 0.8], [0.2, NEUTRAL_RATING]]

    def test_standardize_rejects_out_of_bound(self):
        with pytest.raises(DomainRangeError, match="out of bound"):
            standardize_matrix([[1, 6], [3, 3]], lower_bound=1, upper_bound=5)

    def test_standardize_rejects_inverted_bounds(self):
        with pytest.raises(DomainRangeError):
            standardize_matrix([[0.5]], lower_bound=1, upper_bound=1)


# ============================================================
# AGGREGATOR / CONTRIBUTION TESTS
# ============================================================

class TestRatingAggregator:
    """Tests for aggregate_ratings and calculate_contributions."""

    def test_hand_computed_ratings(self, two_student_matrix):
        """
        With neutral self-ratings, the odds products are
        sqrt(0.8 / 0.2) = 2 and sqrt(0.2 / 0.8) = 0.5.
        """
        ratings, mean = aggregate_ratings(two_student_matrix, [0.5, 0.5], BijunctionFormula())

        assert ratings == pytest.approx([2 / 3, 1 / 3])
        assert mean == pytest.approx(0.5)

    def test_hand_computed_contributions(self):
        contributions = calculate_contributions([2 / 3, 1 / 3], 0.5, 1.0, BijunctionFormula())
        assert contributions == pytest.approx([1 / 3, -1 / 3])

    def test_impact_sharpens_contributions(self):
        contributions = calculate_contributions([2 / 3, 1 / 3], 0.5, 2.0, BijunctionFormula())
        assert contributions == pytest.approx([0.6, -0.6])

    def test_rating_equal_to_mean_is_neutral(self):
        contributions = calculate_contributions([0.42], 0.42, 3.0, BijunctionFormula())
        assert contributions == pytest.approx([0.0])

    def test_uniform_ratings_give_neutral_aggregate(self):
        matrix = [[0.5] * 4 for _ in range(4)]
        ratings, mean = aggregate_ratings(matrix, [0.25] * 4, BijunctionFormula())

        assert ratings == pytest.approx([0.5] * 4)
        assert mean == pytest.approx(0.5)


# ============================================================
# MODE DISPATCH TESTS
# ============================================================

class TestModeDispatch:
    """Tests for formula selection by mode."""

    def test_bijunction_formula(self):
        assert isinstance(get_formula(QASSMode.BIJUNCTION), BijunctionFormula)

    def test_mode_by_value_and_name(self):
        assert get_formula("B").mode == QASSMode.BIJUNCTION
        assert get_formula("bijunction").mode == QASSMode.BIJUNCTION

    @pytest.mark.parametrize("mode", [QASSMode.CONJUNCTION, QASSMode.DISJUNCTION, "C", "D"])
    def test_declared_modes_are_unimplemented(self, mode):
        with pytest.raises(UnimplementedModeError, match="not implemented"):
            get_formula(mode)

    def test_unknown_mode(self):
        with pytest.raises(UnimplementedModeError):
            get_formula("X")

    def test_compute_with_unimplemented_mode(self, two_student_matrix, qass_params):
        with pytest.raises(UnimplementedModeError):
            compute_qass(two_student_matrix, [0.5, 0.5], mode=QASSMode.CONJUNCTION, **qass_params)


# ============================================================
# SCORE DISTRIBUTOR / INVARIANT TESTS
# ============================================================

class TestScoreDistributor:
    """Tests for distribute_score and the Split-Join Invariance."""

    def test_neutral_contribution_keeps_group_score(self):
        assert distribute_score(0.8, 2.0, 0.0) == pytest.approx(0.8)
        assert distribute_score(75.0, 3.0, 0.0) == pytest.approx(75.0)

    def test_power_law(self):
        assert distribute_score(0.8, 2.0, 0.5) == pytest.approx(0.8 ** math.sqrt(2))

    def test_recover_contribution_inverts_distribution(self):
        score = distribute_score(0.7, 3.0, -0.4)
        assert recover_contribution(score, 0.7, 3.0) == pytest.approx(-0.4)

    def test_combine_contributions(self):
        assert combine_contributions([1 / 3, -1 / 3], [0.5, 0.5]) == pytest.approx(0.0)
        assert combine_contributions([0.25], [1.0]) == pytest.approx(0.25)

    def test_combine_rejects_saturated_contribution(self):
        with pytest.raises(DomainRangeError):
            combine_contributions([1.0, 0.0], [0.5, 0.5])

    def test_join_with_constant_transform(self):
        assert join_scores([0.8, 0.8], [0.5, 0.5], 0.8, 1.0) == 0.8
        assert join_scores([1.0, 1.0], [0.5, 0.5], 1.0, 2.0) == 1.0

    def test_invariant_violation_detected(self):
        scores = [distribute_score(0.8, 2.0, c) for c in (0.3, -0.2)]
        mean_contribution = combine_contributions([0.3, -0.2], [0.5, 0.5])
        mean_score = distribute_score(0.8, 2.0, mean_contribution)

        with pytest.raises(InvariantViolationError) as exc_info:
            validate_split_join_invariance(scores, [0.5, 0.5], 0.8, 2.0, mean_score * 1.01)

        assert exc_info.value.expected == pytest.approx(mean_score * 1.01)
        assert exc_info.value.actual == pytest.approx(mean_score)

    def test_invariant_tolerance_is_configurable(self):
        scores = [distribute_score(0.8, 2.0, c) for c in (0.3, -0.2)]
        mean_score = distribute_score(0.8, 2.0, combine_contributions([0.3, -0.2], [0.5, 0.5]))

        joined = validate_split_join_invariance(
            scores, [0.5, 0.5], 0.8, 2.0, mean_score * 1.01, tolerance=0.05
        )

        assert joined == pytest.approx(mean_score)


# ============================================================
# SINGLE COMPONENT PIPELINE TESTS
# ============================================================

class TestComputeQASS:
    """Tests for the single-component entry point."""

    def test_output_lengths(self, three_student_matrix, qass_params):
        result = compute_qass(three_student_matrix, [1 / 3] * 3, **qass_params)

        assert len(result.student_scores) == 3
        assert len(result.student_contributions) == 3
        assert len(result.student_ratings) == 3
        assert result.invariant_checked

    def test_neutral_group(self):
        """All ratings 0.5 with uniform weights: zero contributions, group score for everyone."""
        matrix = [[0.5] * 3 for _ in range(3)]

        result = compute_qass(
            matrix,
            [1 / 3] * 3,
            tuning_factor=0.2,
            peer_rating_impact=1.7,
            group_spread=3.0,
            group_product_score=0.65,
        )

        assert result.student_contributions == pytest.approx([0.0] * 3)
        assert result.student_scores == pytest.approx([0.65] * 3)
        assert result.mean_score == pytest.approx(0.65)

    def test_identical_ratings_are_neutral(self, qass_params):
        matrix = [[0.7] * 4 for _ in range(4)]

        result = compute_qass(matrix, [0.25] * 4, **qass_params)

        assert result.student_contributions == pytest.approx([0.0] * 4)
        assert result.student_scores == pytest.approx([0.8] * 4)

    def test_hand_computed_scores(self, two_student_matrix, qass_params):
        result = compute_qass(two_student_matrix, [0.5, 0.5], **qass_params)

        assert result.student_contributions == pytest.approx([1 / 3, -1 / 3])
        assert result.student_scores == pytest.approx([
            0.8 ** (2 ** (1 / 3)),
            0.8 ** (2 ** (-1 / 3)),
        ])
        assert result.mean_contribution == pytest.approx(0.0, abs=1e-12)
        assert result.mean_score == pytest.approx(0.8)

    def test_full_tuning_swaps_contributions(self, two_student_matrix, qass_params):
        params = dict(qass_params, tuning_factor=1.0)

        result = compute_qass(two_student_matrix, [0.5, 0.5], **params)

        assert result.student_contributions == pytest.approx([-1 / 3, 1 / 3])

    def test_contributions_in_open_interval(self, three_student_matrix, qass_params):
        params = dict(qass_params, peer_rating_impact=4.0)

        result = compute_qass(three_student_matrix, [0.2, 0.3, 0.5], **params)

        assert all(-1 < c < 1 for c in result.student_contributions)

    def test_mean_contribution_neutral_when_weights_sum_to_one(self, three_student_matrix, qass_params):
        result = compute_qass(three_student_matrix, [0.2, 0.3, 0.5], **qass_params)

        assert result.mean_contribution == pytest.approx(0.0, abs=1e-12)
        assert result.mean_score == pytest.approx(qass_params["group_product_score"])

    @pytest.mark.parametrize("weights", [[0.2, 0.3, 0.5], [0.2, 0.3, 0.6], [1.0, 1.0, 1.0]])
    @pytest.mark.parametrize("group_product_score,group_spread", [(0.8, 2.0), (85.0, 1.5), (0.3, 0.5)])
    def test_split_join_invariance_holds(
        self, three_student_matrix, weights, group_product_score, group_spread
    ):
        result = compute_qass(
            three_student_matrix,
            weights,
            tuning_factor=0.1,
            peer_rating_impact=1.3,
            group_spread=group_spread,
            group_product_score=group_product_score,
            invariant_tolerance=1e-9,
        )

        joined = join_scores(result.student_scores, weights, group_product_score, group_spread)
        assert math.isclose(joined, result.mean_score, rel_tol=1e-9, abs_tol=1e-9)

    def test_permutation_invariance(self, three_student_matrix, qass_params):
        weights = [0.2, 0.3, 0.5]
        order = [2, 0, 1]
        permuted_matrix, permuted_weights = _permute(three_student_matrix, weights, order)

        original = compute_qass(three_student_matrix, weights, **qass_params)
        permuted = compute_qass(permuted_matrix, permuted_weights, **qass_params)

        for a, source in enumerate(order):
            assert permuted.student_scores[a] == pytest.approx(original.student_scores[source])
            assert permuted.student_contributions[a] == pytest.approx(
                original.student_contributions[source]
            )
        assert permuted.mean_score == pytest.approx(original.mean_score)

    def test_raw_scale_matches_standardized(self, qass_params):
        raw = compute_qass([[3, 4], [2, 3]], [0.5, 0.5], lower_bound=1, upper_bound=5, **qass_params)
        standardized = compute_qass([[0.5, 0.75], [0.25, 0.5]], [0.5, 0.5], **qass_params)

        assert raw.student_scores == pytest.approx(standardized.student_scores)

    def test_missing_ratings_are_neutral(self, two_student_matrix, qass_params):
        with_missing = compute_qass([[None, 0.8], [0.2, None]], [0.5, 0.5], **qass_params)
        complete = compute_qass(two_student_matrix, [0.5, 0.5], **qass_params)

        assert with_missing.student_scores == pytest.approx(complete.student_scores)

    def test_constant_transform(self, two_student_matrix, qass_params):
        params = dict(qass_params, group_spread=1.0)

        result = compute_qass(two_student_matrix, [0.5, 0.5], **params)

        assert result.student_scores == pytest.approx([0.8, 0.8])

    def test_invariant_check_can_be_disabled(self, two_student_matrix, qass_params):
        result = compute_qass(two_student_matrix, [0.5, 0.5], validate_invariant=False, **qass_params)
        assert not result.invariant_checked

    def test_single_student_group(self, qass_params):
        result = compute_qass([[0.9]], [1.0], **qass_params)

        assert result.student_contributions == pytest.approx([0.0])
        assert result.student_scores == pytest.approx([0.8])

    def test_observer_receives_stages(self, two_student_matrix, qass_params):
        stages = []

        compute_qass(
            two_student_matrix,
            [0.5, 0.5],
            observer=lambda stage, payload: stages.append((stage, payload)),
            **qass_params,
        )

        assert [stage for stage, _ in stages] == ["ratings", "contributions", "scores", "invariant"]
        assert stages[0][1]["mean_rating"] == pytest.approx(0.5)


# ============================================================
# ERROR TAXONOMY TESTS
# ============================================================

class TestQASSErrors:
    """Tests for shape and domain errors."""

    def test_non_square_matrix(self, qass_params):
        with pytest.raises(InputShapeError, match="Invalid peer rating matrix"):
            compute_qass([[0.5, 0.5], [0.5]], [0.5, 0.5], **qass_params)

    def test_empty_matrix(self, qass_params):
        with pytest.raises(InputShapeError):
            compute_qass([], [], **qass_params)

    def test_weight_length_mismatch(self, two_student_matrix, qass_params):
        with pytest.raises(InputShapeError, match="do not match"):
            compute_qass(two_student_matrix, [1 / 3] * 3, **qass_params)

    def test_negative_weight(self, two_student_matrix, qass_params):
        with pytest.raises(DomainRangeError):
            compute_qass(two_student_matrix, [1.5, -0.5], **qass_params)

    @pytest.mark.parametrize("rating", [0.0, 1.0, 1.2, -0.1])
    def test_rating_outside_open_interval(self, qass_params, rating):
        with pytest.raises(DomainRangeError):
            compute_qass([[0.5, rating], [0.5, 0.5]], [0.5, 0.5], **qass_params)

    def test_nan_rating(self, qass_params):
        with pytest.raises(DomainRangeError):
            compute_qass([[0.5, float("nan")], [0.5, 0.5]], [0.5, 0.5], **qass_params)

    @pytest.mark.parametrize("override", [
        {"tuning_factor": 1.5},
        {"tuning_factor": -0.1},
        {"peer_rating_impact": 0.0},
        {"group_spread": 0.0},
        {"group_product_score": -1.0},
    ])
    def test_invalid_scalars(self, two_student_matrix, qass_params, override):
        with pytest.raises(DomainRangeError):
            compute_qass(two_student_matrix, [0.5, 0.5], **dict(qass_params, **override))

    def test_overflow_is_reported(self, two_student_matrix, qass_params):
        params = dict(qass_params, peer_rating_impact=1e6)

        with pytest.raises(DomainRangeError):
            compute_qass(two_student_matrix, [0.5, 0.5], **params)


# ============================================================
# MULTI-COMPONENT TESTS
# ============================================================

class TestMultiComponent:
    """Tests for compute_qass_multi_component."""

    def test_single_component_matches_single_path(self, three_student_matrix, qass_params):
        weights = [0.2, 0.3, 0.5]

        single = compute_qass(three_student_matrix, weights, **qass_params)
        multi = compute_qass_multi_component([three_student_matrix], weights, [1.0], **qass_params)

        assert multi == pytest.approx(single.student_scores)

    def test_identical_components(self, three_student_matrix, qass_params):
        weights = [1 / 3] * 3

        single = compute_qass(three_student_matrix, weights, **qass_params)
        multi = compute_qass_multi_component(
            [three_student_matrix, three_student_matrix], weights, [0.5, 0.5], **qass_params
        )

        assert multi == pytest.approx(single.student_scores)

    def test_zero_weight_component_is_ignored(self, two_student_matrix, qass_params):
        neutral = [[0.5, 0.5], [0.5, 0.5]]

        first = compute_qass(two_student_matrix, [0.5, 0.5], **qass_params)
        multi = compute_qass_multi_component(
            [two_student_matrix, neutral], [0.5, 0.5], [1.0, 0.0], **qass_params
        )

        assert multi == pytest.approx(first.student_scores)

    def test_combines_contributions_per_student(self, two_student_matrix, qass_params):
        neutral = [[0.5, 0.5], [0.5, 0.5]]

        multi = compute_qass_multi_component(
            [two_student_matrix, neutral], [0.5, 0.5], [0.5, 0.5], **qass_params
        )

        expected = combine_contributions([1 / 3, 0.0], [0.5, 0.5])
        assert multi[0] == pytest.approx(distribute_score(0.8, 2.0, expected))
        assert len(multi) == 2

    def test_component_count_mismatch(self, two_student_matrix, qass_params):
        with pytest.raises(InputShapeError, match="Scoring component weights do not match"):
            compute_qass_multi_component([two_student_matrix], [0.5, 0.5], [0.5, 0.5], **qass_params)

    def test_group_size_mismatch(self, two_student_matrix, three_student_matrix, qass_params):
        with pytest.raises(InputShapeError):
            compute_qass_multi_component(
                [two_student_matrix, three_student_matrix], [0.5, 0.5], [0.5, 0.5], **qass_params
            )

    def test_no_components(self, qass_params):
        with pytest.raises(InputShapeError):
            compute_qass_multi_component([], [0.5, 0.5], [], **qass_params)

    def test_unimplemented_mode(self, two_student_matrix, qass_params):
        with pytest.raises(UnimplementedModeError):
            compute_qass_multi_component(
                [two_student_matrix], [0.5, 0.5], [1.0], mode="D", **qass_params
            )

    def test_observer_sees_each_component(self, two_student_matrix, qass_params):
        stages = []

        compute_qass_multi_component(
            [two_student_matrix, two_student_matrix],
            [0.5, 0.5],
            [0.5, 0.5],
            observer=lambda stage, payload: stages.append(stage),
            **qass_params,
        )

        assert stages == ["component", "component", "aggregate", "scores"]
