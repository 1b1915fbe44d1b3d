"""
Peer Scoring Engine - Webavalia Model.

============================================================
PURPOSE
============================================================
Weighted self/peer averaging of peer ratings, normalized
against the best-rated student and scaled against the group
score with a square root.

============================================================
FORMULA
============================================================
For student i in a group of N:

    rating_i = (sw * m[i][i] + pw * SUM_{j != i} m[i][j])
               / (sw + pw * (N - 1))
    score_i  = G * sqrt(rating_i / max(rating))

Independent of the QASS model: shares only the input checks
and the per-student output shape.

============================================================
"""

import math
from typing import List, Optional, Sequence

from .types import (
    DomainRangeError,
    InputShapeError,
    Observer,
    RatingMatrix,
    WebavaliaResult,
)
from .validation import (
    require_components,
    require_square_matrix,
    require_weights,
)


def _require_non_negative(name: str, value: float) -> float:
    if value is None or not math.isfinite(value) or value < 0:
        raise DomainRangeError(
            f"{name} must be a non-negative number, got {value}",
            details={name: value},
        )
    return float(value)


def _require_complete(matrix: RatingMatrix) -> None:
    for i, row in enumerate(matrix):
        for j, rating in enumerate(row):
            if rating is None:
                raise InputShapeError(
                    f"Invalid peer rating matrix: missing rating at [{i}][{j}]",
                    details={"row": i, "column": j},
                )
            if not math.isfinite(rating) or rating < 0:
                raise DomainRangeError(
                    f"Peer rating [{i}][{j}] must be finite and non-negative, got {rating}",
                    details={"row": i, "column": j, "rating": rating},
                )


def calculate_weighted_ratings(
    peer_matrix: Sequence[Sequence[float]],
    self_weight: float,
    peer_weight: float,
) -> List[float]:
    """
    Weighted self/peer average per student.

    Raises:
        DomainRangeError: If the weighting denominator is zero
    """
    size = len(peer_matrix)
    denominator = self_weight + peer_weight * (size - 1)
    if denominator == 0:
        raise DomainRangeError(
            "Webavalia weights give a zero denominator: "
            f"self_weight={self_weight}, peer_weight={peer_weight}, group size={size}",
            details={"self_weight": self_weight, "peer_weight": peer_weight, "group_size": size},
        )

    ratings = []
    for i, row in enumerate(peer_matrix):
        self_rating = row[i]
        others = sum(rating for j, rating in enumerate(row) if j != i)
        ratings.append((self_weight * self_rating + peer_weight * others) / denominator)
    return ratings


def compute_webavalia(
    peer_matrix: RatingMatrix,
    group_score: float,
    self_weight: float = 1.0,
    peer_weight: float = 1.0,
    observer: Optional[Observer] = None,
) -> WebavaliaResult:
    """
    Compute individual scores with the Webavalia model.

    Args:
        peer_matrix: N x N ratings, no missing values
        group_score: Score of the whole group
        self_weight: Weight of the self-rating, >= 0
        peer_weight: Weight of each peer rating, >= 0
        observer: Optional callback receiving intermediate values

    Returns:
        WebavaliaResult with per-student scores and their mean

    Raises:
        InputShapeError: Non-square matrix or missing ratings
        DomainRangeError: Negative weights or ratings, zero denominator,
            or no positive rating to normalize against
    """
    size = require_square_matrix(peer_matrix)
    _require_complete(peer_matrix)
    self_weight = _require_non_negative("self_weight", self_weight)
    peer_weight = _require_non_negative("peer_weight", peer_weight)
    group_score = _require_non_negative("group_score", group_score)

    ratings = calculate_weighted_ratings(peer_matrix, self_weight, peer_weight)

    max_rating = max(ratings)
    if max_rating <= 0:
        raise DomainRangeError(
            "Webavalia needs at least one positive weighted rating to normalize against",
            details={"max_rating": max_rating},
        )
    if observer is not None:
        observer("ratings", {"student_ratings": list(ratings), "max_rating": max_rating})

    scores = [group_score * math.sqrt(rating / max_rating) for rating in ratings]

    return WebavaliaResult(
        student_scores=scores,
        student_ratings=ratings,
        mean_score=sum(scores) / size,
        max_rating=max_rating,
    )


def compute_webavalia_multi_component(
    peer_matrices: Sequence[RatingMatrix],
    group_score: float,
    component_weights: Sequence[float],
    self_weight: float = 1.0,
    peer_weight: float = 1.0,
    observer: Optional[Observer] = None,
) -> List[float]:
    """
    Weighted average of per-component Webavalia scores.

    Component weights are normalized by their sum.

    Raises:
        InputShapeError: Mismatched component count or matrix shapes
        DomainRangeError: Negative weights or a zero weight sum
    """
    size = require_components(peer_matrices, component_weights)
    weights = require_weights(
        component_weights,
        len(peer_matrices),
        label="scoring component weights",
        against="peer rating matrices",
    )
    total_weight = sum(weights)
    if total_weight <= 0:
        raise DomainRangeError(
            "Scoring component weights must have a positive sum",
            details={"weights": weights},
        )

    final_scores = [0.0] * size
    for k, matrix in enumerate(peer_matrices):
        result = compute_webavalia(matrix, group_score, self_weight, peer_weight)
        if observer is not None:
            observer("component", {"index": k, "student_scores": list(result.student_scores)})
        share = weights[k] / total_weight
        for i, score in enumerate(result.student_scores):
            final_scores[i] += share * score
    return final_scores
