"""
Peer Scoring Engine - QASS Model.

============================================================
PURPOSE
============================================================
Contribution-weighted, multiplicative rescaling of a group
score into individual scores from a matrix of peer ratings.

============================================================
PIPELINE
============================================================
0. Standardize raw ratings onto [0, 1], fill missing ones
1. Rescale every rating with the tuning factor
2. Aggregate ratings into one odds product per student
   and one weighted product for the whole group
3. Turn each student rating into a contribution in (-1, 1)
4. Distribute the group score: score = G ^ (spread ^ c)
5. Check Split-Join Invariance on the individual scores

The multi-component path runs steps 0-3 per scoring
component, combines each student's contributions with the
component weights, then runs step 4 once.

============================================================
DESIGN PRINCIPLES
============================================================
- Pure functions: same input = same output
- No logging, no state; intermediate values go to an
  optional observer callback
- Out-of-domain values raise before they turn into NaN

============================================================
"""

import math
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Type, Union

from .types import (
    DomainRangeError,
    InvariantViolationError,
    Observer,
    QASSMode,
    QASSResult,
    RatingMatrix,
    UnimplementedModeError,
)
from .validation import (
    require_components,
    require_finite,
    require_open_unit_interval,
    require_positive,
    require_square_matrix,
    require_unit_interval,
    require_weights,
)


# Standardized value used for ratings that were never submitted
NEUTRAL_RATING = 0.5

DEFAULT_INVARIANT_TOLERANCE = 1e-9


# ============================================================
# COMBINATION FORMULAS
# ============================================================


class CombinationFormula(ABC):
    """
    Formula set used to aggregate ratings into contributions.

    One concrete subclass exists per implemented QASSMode.
    """

    @property
    @abstractmethod
    def mode(self) -> QASSMode:
        """Return the mode this formula set implements."""
        pass

    @abstractmethod
    def pair_term(self, peer_rating: float, self_rating: float, weight: float) -> float:
        """Weighted term for one (student, rater) pair."""
        pass

    @abstractmethod
    def student_rating(self, product: float) -> float:
        """Map a student's product of pair terms to a rating."""
        pass

    @abstractmethod
    def group_term(self, product: float, weight: float) -> float:
        """Weighted term of one student in the group product."""
        pass

    @abstractmethod
    def mean_rating(self, product: float) -> float:
        """Map the group product to the mean student rating."""
        pass

    @abstractmethod
    def contribution_value(self, rating: float, mean_rating: float, impact: float) -> float:
        """Relative standing of a rating against the mean rating."""
        pass

    def contribution(self, value: float) -> float:
        """Squash a relative standing into (-1, 1)."""
        return (value - 1) / (value + 1)


class BijunctionFormula(CombinationFormula):
    """
    Bijunction formula set.

    Ratings are combined as odds r / (1 - r); a student's
    odds are divided by the odds of their rater's self-rating.
    """

    @property
    def mode(self) -> QASSMode:
        return QASSMode.BIJUNCTION

    def pair_term(self, peer_rating: float, self_rating: float, weight: float) -> float:
        return ((peer_rating / (1 - peer_rating)) * ((1 - self_rating) / self_rating)) ** weight

    def student_rating(self, product: float) -> float:
        return product / (1 + product)

    def group_term(self, product: float, weight: float) -> float:
        return product ** weight

    def mean_rating(self, product: float) -> float:
        return product / (1 + product)

    def contribution_value(self, rating: float, mean_rating: float, impact: float) -> float:
        return (rating / (1 - rating)) ** impact / (mean_rating / (1 - mean_rating)) ** impact


# CONJUNCTION and DISJUNCTION have no formula set
_FORMULAS: Dict[QASSMode, Type[CombinationFormula]] = {
    QASSMode.BIJUNCTION: BijunctionFormula,
}


def get_formula(mode: Union[QASSMode, str]) -> CombinationFormula:
    """
    Return the formula set for a mode.

    Raises:
        UnimplementedModeError: If the mode has no formula set
    """
    resolved = QASSMode.parse(mode)
    formula_class = _FORMULAS.get(resolved)
    if formula_class is None:
        raise UnimplementedModeError(
            f"QASS mode {resolved.name} ({resolved.value}) is not implemented",
            details={"mode": resolved.value},
        )
    return formula_class()


# ============================================================
# HELPERS
# ============================================================


@contextmanager
def _numeric_guard(stage: str) -> Iterator[None]:
    """Turn overflow, division by zero and math domain errors into DomainRangeError."""
    try:
        yield
    except (OverflowError, ZeroDivisionError, ValueError) as e:
        raise DomainRangeError(
            f"Numeric failure while computing {stage}: {e}",
            details={"stage": stage},
        ) from e


def _notify(observer: Optional[Observer], stage: str, payload: Dict[str, Any]) -> None:
    if observer is not None:
        observer(stage, payload)


def _require_contribution(index: int, value: float) -> float:
    if not -1.0 < value < 1.0:
        raise DomainRangeError(
            f"Contribution at position {index} must lie strictly between -1 and 1, got {value}",
            details={"index": index, "contribution": value},
        )
    return value


# ============================================================
# STEP 0-1: STANDARDIZE AND RESCALE
# ============================================================


def standardize_matrix(
    peer_matrix: RatingMatrix,
    lower_bound: float = 0.0,
    upper_bound: float = 1.0,
) -> List[List[float]]:
    """
    Map raw ratings from [lower_bound, upper_bound] onto [0, 1].

    Missing ratings (None) become NEUTRAL_RATING.

    Raises:
        DomainRangeError: If a rating is outside the bounds
    """
    span = upper_bound - lower_bound
    if not span > 0:
        raise DomainRangeError(
            f"lower_bound must be less than upper_bound, got {lower_bound} and {upper_bound}",
            details={"lower_bound": lower_bound, "upper_bound": upper_bound},
        )

    standardized = []
    for i, row in enumerate(peer_matrix):
        values = []
        for j, rating in enumerate(row):
            if rating is None:
                values.append(NEUTRAL_RATING)
                continue
            if not math.isfinite(rating) or rating < lower_bound or rating > upper_bound:
                raise DomainRangeError(
                    f"Peer rating [{i}][{j}] = {rating} is out of bound "
                    f"[{lower_bound}, {upper_bound}]",
                    details={"row": i, "column": j, "rating": rating},
                )
            values.append((rating - lower_bound) / span)
        standardized.append(values)
    return standardized


def rescale_rating(tuning_factor: float, rating: float) -> float:
    """
    Rescale a rating to compensate for rater leniency or severity.

    Identity at tuning_factor = 0, full inversion (1 - rating)
    at tuning_factor = 1.
    """
    return (1 - tuning_factor) * rating + tuning_factor * (1 - rating)


def rescale_matrix(matrix: Sequence[Sequence[float]], tuning_factor: float) -> List[List[float]]:
    """
    Rescale every rating and check it lies strictly inside (0, 1).

    Raises:
        DomainRangeError: If a rescaled rating is 0, 1 or beyond
    """
    rescaled = []
    for i, row in enumerate(matrix):
        values = []
        for j, rating in enumerate(row):
            value = rescale_rating(tuning_factor, rating)
            require_open_unit_interval(f"Rescaled peer rating [{i}][{j}]", value)
            values.append(value)
        rescaled.append(values)
    return rescaled


# ============================================================
# STEP 2-3: RATINGS AND CONTRIBUTIONS
# ============================================================


def aggregate_ratings(
    matrix: Sequence[Sequence[float]],
    weights: Sequence[float],
    formula: CombinationFormula,
) -> Tuple[List[float], float]:
    """
    Aggregate a rescaled matrix into student ratings and a mean rating.

    For student i over raters j:
        product_i = PROD_j pair_term(m[i][j], m[j][j], w[j])
        rating_i  = student_rating(product_i)
    and for the group:
        mean      = mean_rating(PROD_i group_term(product_i, w[i]))

    Returns:
        (student_ratings, mean_rating)
    """
    size = len(matrix)
    student_ratings: List[float] = []
    group_product = 1.0

    with _numeric_guard("student ratings"):
        for i in range(size):
            product = 1.0
            for j in range(size):
                product *= formula.pair_term(matrix[i][j], matrix[j][j], weights[j])
            student_ratings.append(formula.student_rating(product))
            group_product *= formula.group_term(product, weights[i])
        mean_rating = formula.mean_rating(group_product)

    for i, rating in enumerate(student_ratings):
        require_open_unit_interval(f"Student rating {i}", rating)
    require_open_unit_interval("Mean student rating", mean_rating)

    return student_ratings, mean_rating


def calculate_contributions(
    student_ratings: Sequence[float],
    mean_rating: float,
    impact: float,
    formula: CombinationFormula,
) -> List[float]:
    """
    Convert student ratings into contributions in (-1, 1).

    A rating equal to the mean rating gives a contribution of 0.
    """
    contributions = []
    with _numeric_guard("student contributions"):
        for i, rating in enumerate(student_ratings):
            value = formula.contribution_value(rating, mean_rating, impact)
            contributions.append(_require_contribution(i, formula.contribution(value)))
    return contributions


def combine_contributions(contributions: Sequence[float], weights: Sequence[float]) -> float:
    """
    Weighted generalized mean of contributions.

        P = PROD_k ((1 + c_k) / (1 - c_k)) ^ w_k
        result = (P - 1) / (P + 1)

    Used both for the group mean over students (peer rating
    weights) and for one student over scoring components
    (component weights).
    """
    product = 1.0
    with _numeric_guard("combined contribution"):
        for k, (contribution, weight) in enumerate(zip(contributions, weights)):
            _require_contribution(k, contribution)
            product *= ((1 + contribution) / (1 - contribution)) ** weight
        combined = (product - 1) / (product + 1)

    require_finite("combined contribution", [combined])
    return combined


# ============================================================
# STEP 4: SCORE DISTRIBUTION
# ============================================================


def distribute_score(group_product_score: float, group_spread: float, contribution: float) -> float:
    """Map a contribution onto the group score: G ^ (spread ^ c)."""
    with _numeric_guard("student score"):
        return group_product_score ** (group_spread ** contribution)


def distribute_scores(
    contributions: Sequence[float],
    group_product_score: float,
    group_spread: float,
) -> List[float]:
    """Apply distribute_score to every contribution."""
    scores = [distribute_score(group_product_score, group_spread, c) for c in contributions]
    return require_finite("student score", scores)


# ============================================================
# STEP 5: SPLIT-JOIN INVARIANCE
# ============================================================


def recover_contribution(score: float, group_product_score: float, group_spread: float) -> float:
    """
    Invert distribute_score: c = ln(ln(score) / ln(G)) / ln(spread).

    Only defined when G != 1 and spread != 1.
    """
    with _numeric_guard("recovered contribution"):
        return math.log(math.log(score) / math.log(group_product_score)) / math.log(group_spread)


def join_scores(
    scores: Sequence[float],
    weights: Sequence[float],
    group_product_score: float,
    group_spread: float,
) -> float:
    """
    Join individual scores back into one group-level score.

    Each score is mapped back to its contribution, the
    contributions are combined with the weights and the result
    is distributed again. When the transform is constant
    (G == 1 or spread == 1) every score equals G.
    """
    if group_product_score == 1 or group_spread == 1:
        return group_product_score

    recovered = [recover_contribution(s, group_product_score, group_spread) for s in scores]
    return distribute_score(
        group_product_score,
        group_spread,
        combine_contributions(recovered, weights),
    )


def validate_split_join_invariance(
    scores: Sequence[float],
    weights: Sequence[float],
    group_product_score: float,
    group_spread: float,
    mean_score: float,
    tolerance: float = DEFAULT_INVARIANT_TOLERANCE,
) -> float:
    """
    Check that joining the individual scores reconstructs the mean score.

    The comparison is relative and absolute within tolerance.

    Returns:
        The joined score

    Raises:
        InvariantViolationError: If the joined score differs from mean_score
    """
    joined = join_scores(scores, weights, group_product_score, group_spread)
    if not math.isclose(joined, mean_score, rel_tol=tolerance, abs_tol=tolerance):
        raise InvariantViolationError(
            f"Fail Split-Join-Invariance validation: joined score {joined} "
            f"!= mean score {mean_score} (tolerance {tolerance})",
            expected=mean_score,
            actual=joined,
            tolerance=tolerance,
        )
    return joined


# ============================================================
# PIPELINES
# ============================================================


@dataclass(frozen=True)
class ComponentContributions:
    """Ratings and contributions of one scoring component."""

    student_ratings: List[float]
    mean_rating: float
    student_contributions: List[float]


def _validate_scalars(
    tuning_factor: float,
    peer_rating_impact: float,
    group_spread: float,
    group_product_score: float,
) -> None:
    require_unit_interval("tuning_factor", tuning_factor)
    require_positive("peer_rating_impact", peer_rating_impact)
    require_positive("group_spread", group_spread)
    require_positive("group_product_score", group_product_score)


def compute_component_contributions(
    peer_matrix: RatingMatrix,
    weights: Sequence[float],
    tuning_factor: float,
    peer_rating_impact: float,
    formula: CombinationFormula,
    lower_bound: float = 0.0,
    upper_bound: float = 1.0,
    observer: Optional[Observer] = None,
) -> ComponentContributions:
    """
    Run steps 0-3 on one already shape-checked matrix.

    Args:
        peer_matrix: N x N raw ratings
        weights: N rater weights, already checked
        formula: Formula set of the selected mode
    """
    standardized = standardize_matrix(peer_matrix, lower_bound, upper_bound)
    rescaled = rescale_matrix(standardized, tuning_factor)

    student_ratings, mean_rating = aggregate_ratings(rescaled, weights, formula)
    _notify(observer, "ratings", {
        "student_ratings": list(student_ratings),
        "mean_rating": mean_rating,
    })

    contributions = calculate_contributions(
        student_ratings, mean_rating, peer_rating_impact, formula
    )
    _notify(observer, "contributions", {"student_contributions": list(contributions)})

    return ComponentContributions(
        student_ratings=student_ratings,
        mean_rating=mean_rating,
        student_contributions=contributions,
    )


def compute_qass(
    peer_matrix: RatingMatrix,
    rater_weights: Sequence[float],
    tuning_factor: float,
    peer_rating_impact: float,
    group_spread: float,
    group_product_score: float,
    mode: Union[QASSMode, str] = QASSMode.BIJUNCTION,
    *,
    lower_bound: float = 0.0,
    upper_bound: float = 1.0,
    validate_invariant: bool = True,
    invariant_tolerance: float = DEFAULT_INVARIANT_TOLERANCE,
    observer: Optional[Observer] = None,
) -> QASSResult:
    """
    Compute individual scores for one scoring component.

    Args:
        peer_matrix: N x N ratings, [i][j] = rating by i about j
        rater_weights: N non-negative weights, used as given
        tuning_factor: Rater bias correction in [0, 1]
        peer_rating_impact: Sensitivity exponent, > 0
        group_spread: Base of the score transform, > 0
        group_product_score: Score of the whole group, > 0
        mode: Combination formula variant
        lower_bound: Lowest value of the raw rating scale
        upper_bound: Highest value of the raw rating scale
        validate_invariant: Run the Split-Join Invariance check
        invariant_tolerance: Tolerance of that check
        observer: Optional callback receiving intermediate values

    Returns:
        QASSResult with per-student scores, contributions and ratings

    Raises:
        InputShapeError: Non-square matrix or mismatched weights
        UnimplementedModeError: Mode without a formula set
        DomainRangeError: Ratings or scalars outside their domain
        InvariantViolationError: Split-Join Invariance failed
    """
    size = require_square_matrix(peer_matrix)
    weights = require_weights(rater_weights, size)
    _validate_scalars(tuning_factor, peer_rating_impact, group_spread, group_product_score)
    formula = get_formula(mode)

    component = compute_component_contributions(
        peer_matrix,
        weights,
        tuning_factor,
        peer_rating_impact,
        formula,
        lower_bound=lower_bound,
        upper_bound=upper_bound,
        observer=observer,
    )
    contributions = component.student_contributions

    scores = distribute_scores(contributions, group_product_score, group_spread)
    mean_contribution = combine_contributions(contributions, weights)
    mean_score = distribute_score(group_product_score, group_spread, mean_contribution)
    _notify(observer, "scores", {
        "student_scores": list(scores),
        "mean_contribution": mean_contribution,
        "mean_score": mean_score,
    })

    if validate_invariant:
        joined = validate_split_join_invariance(
            scores,
            weights,
            group_product_score,
            group_spread,
            mean_score,
            tolerance=invariant_tolerance,
        )
        _notify(observer, "invariant", {"mean_score": mean_score, "joined_score": joined})

    return QASSResult(
        student_scores=scores,
        student_contributions=contributions,
        student_ratings=component.student_ratings,
        mean_score=mean_score,
        mean_contribution=mean_contribution,
        mean_rating=component.mean_rating,
        mode=formula.mode,
        invariant_checked=validate_invariant,
    )


def compute_qass_multi_component(
    peer_matrices: Sequence[RatingMatrix],
    rater_weights: Sequence[float],
    component_weights: Sequence[float],
    tuning_factor: float,
    peer_rating_impact: float,
    group_spread: float,
    group_product_score: float,
    mode: Union[QASSMode, str] = QASSMode.BIJUNCTION,
    *,
    lower_bound: float = 0.0,
    upper_bound: float = 1.0,
    observer: Optional[Observer] = None,
) -> List[float]:
    """
    Compute individual scores over several scoring components.

    Contributions are computed per component, combined per
    student with the component weights, and distributed once.

    NOTE: Returns only the final scores. Per-component
    contributions are available through the observer
    ("component" stage), not in the return value.

    Raises:
        InputShapeError: Mismatched component count or matrix shapes
        UnimplementedModeError: Mode without a formula set
        DomainRangeError: Ratings or scalars outside their domain
    """
    size = require_components(peer_matrices, component_weights)
    weights = require_weights(rater_weights, size)
    period_weights = require_weights(
        component_weights,
        len(peer_matrices),
        label="scoring component weights",
        against="peer rating matrices",
    )
    _validate_scalars(tuning_factor, peer_rating_impact, group_spread, group_product_score)
    formula = get_formula(mode)

    per_student: List[List[float]] = [[] for _ in range(size)]
    for k, matrix in enumerate(peer_matrices):
        component = compute_component_contributions(
            matrix,
            weights,
            tuning_factor,
            peer_rating_impact,
            formula,
            lower_bound=lower_bound,
            upper_bound=upper_bound,
        )
        _notify(observer, "component", {
            "index": k,
            "student_ratings": list(component.student_ratings),
            "mean_rating": component.mean_rating,
            "student_contributions": list(component.student_contributions),
        })
        for i, contribution in enumerate(component.student_contributions):
            per_student[i].append(contribution)

    combined = [combine_contributions(values, period_weights) for values in per_student]
    _notify(observer, "aggregate", {"student_contributions": list(combined)})

    scores = distribute_scores(combined, group_product_score, group_spread)
    _notify(observer, "scores", {"student_scores": list(scores)})
    return scores
