"""
Peer Scoring Engine - Input Validation.

============================================================
PURPOSE
============================================================
Shape and domain checks shared by the QASS and Webavalia
models.

VALIDATION STEPS:
1. Peer rating matrix is square and non-empty
2. Weight vectors match the group size
3. Weights are finite and non-negative
4. Scalars lie in the range the model needs
5. Intermediate values stay finite

Every check raises a typed PeerScoringError. Nothing here
clamps, fills or repairs a value.

============================================================
"""

import math
from typing import Iterable, List, Optional, Sequence

from .types import (
    DomainRangeError,
    InputShapeError,
    RatingMatrix,
)


# ============================================================
# SHAPE CHECKS
# ============================================================


def require_square_matrix(matrix: RatingMatrix, label: str = "peer rating matrix") -> int:
    """
    Check that a matrix is square and non-empty.

    Args:
        matrix: Rows of ratings
        label: Name used in the error message

    Returns:
        The group size N

    Raises:
        InputShapeError: If the matrix is empty or not N x N
    """
    if matrix is None or len(matrix) == 0:
        raise InputShapeError(f"Invalid {label}: matrix is empty")

    size = len(matrix)
    for i, row in enumerate(matrix):
        if row is None or len(row) != size:
            raise InputShapeError(
                f"Invalid {label}: row {i} has {0 if row is None else len(row)} "
                f"entries, expected {size}",
                details={"row": i, "expected": size},
            )
    return size


def require_weights(
    weights: Sequence[float],
    size: int,
    label: str = "peer rating weights",
    against: str = "peer rating matrix",
) -> List[float]:
    """
    Check that a weight vector matches the expected size.

    Weights are used as given: no renormalization happens here.

    Returns:
        The weights as a list of floats

    Raises:
        InputShapeError: If the length differs from size
        DomainRangeError: If a weight is negative or not finite
    """
    if weights is None or len(weights) != size:
        raise InputShapeError(
            f"{label.capitalize()} do not match with {against}: "
            f"got {0 if weights is None else len(weights)}, expected {size}",
            details={"expected": size, "actual": 0 if weights is None else len(weights)},
        )

    values = [float(w) for w in weights]
    for index, weight in enumerate(values):
        if not math.isfinite(weight) or weight < 0:
            raise DomainRangeError(
                f"{label.capitalize()} must be finite and non-negative, "
                f"got {weight} at position {index}",
                details={"index": index, "weight": weight},
            )
    return values


def require_components(matrices: Sequence[RatingMatrix], weights: Sequence[float]) -> int:
    """
    Check a multi-component input: one weight per matrix, equal group sizes.

    Returns:
        The common group size N

    Raises:
        InputShapeError: On an empty component list, a count mismatch,
            or matrices of different sizes
    """
    if matrices is None or len(matrices) == 0:
        raise InputShapeError("At least one scoring component is required")

    if weights is None or len(weights) != len(matrices):
        raise InputShapeError(
            "Scoring component weights do not match with peer rating matrix: "
            f"got {0 if weights is None else len(weights)} weights "
            f"for {len(matrices)} components",
            details={"components": len(matrices)},
        )

    size: Optional[int] = None
    for k, matrix in enumerate(matrices):
        component_size = require_square_matrix(matrix, label=f"peer rating matrix (component {k})")
        if size is None:
            size = component_size
        elif component_size != size:
            raise InputShapeError(
                f"Invalid peer rating matrix (component {k}): group size "
                f"{component_size} differs from {size}",
                details={"component": k, "expected": size, "actual": component_size},
            )
    return size


# ============================================================
# DOMAIN CHECKS
# ============================================================


def require_positive(name: str, value: float) -> float:
    """Check that a scalar is finite and strictly positive."""
    if value is None or not math.isfinite(value) or value <= 0:
        raise DomainRangeError(
            f"{name} must be a positive number, got {value}",
            details={name: value},
        )
    return float(value)


def require_unit_interval(name: str, value: float) -> float:
    """Check that a scalar lies in the closed interval [0, 1]."""
    if value is None or not math.isfinite(value) or not 0.0 <= value <= 1.0:
        raise DomainRangeError(
            f"{name} must be between 0 and 1, got {value}",
            details={name: value},
        )
    return float(value)


def require_open_unit_interval(name: str, value: float) -> float:
    """Check that a value lies strictly inside (0, 1)."""
    if not 0.0 < value < 1.0:
        raise DomainRangeError(
            f"{name} must lie strictly between 0 and 1, got {value}",
            details={name: value},
        )
    return value


def require_finite(stage: str, values: Iterable[float]) -> List[float]:
    """
    Check that every value produced by a stage is finite.

    Raises:
        DomainRangeError: Naming the stage and the first bad position
    """
    checked = list(values)
    for index, value in enumerate(checked):
        if not math.isfinite(value):
            raise DomainRangeError(
                f"Non-finite {stage} at position {index}: {value}",
                details={"stage": stage, "index": index, "value": value},
            )
    return checked
