"""
Peer Scoring Engine - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the Peer Scoring Engine.

This module defines the enums, result dataclasses and the
error taxonomy shared by the QASS and Webavalia models.

============================================================
DESIGN PRINCIPLES
============================================================
- Results are immutable (frozen dataclasses)
- Enums for discrete mode values
- One exception class per failure kind
- No I/O, no state between calls

============================================================
ERROR TAXONOMY
============================================================
PeerScoringError (base)
├── InputShapeError
├── UnimplementedModeError
├── DomainRangeError
└── InvariantViolationError

============================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence


# Raw ratings may contain None for ratings that were never submitted.
RatingMatrix = Sequence[Sequence[Optional[float]]]

# Diagnostic hook: observer(stage, payload)
Observer = Callable[[str, Dict[str, Any]], None]


# ============================================================
# ENUMS
# ============================================================


class QASSMode(str, Enum):
    """
    Combination-formula variants of the QASS model.

    Only BIJUNCTION has a concrete formula set. The other two
    are declared so that callers can name them, and selecting
    them raises UnimplementedModeError.
    """

    BIJUNCTION = "B"
    CONJUNCTION = "C"
    DISJUNCTION = "D"

    @classmethod
    def parse(cls, value: Any) -> "QASSMode":
        """
        Resolve a mode from an enum member, its value or its name.

        Raises:
            UnimplementedModeError: If the value names no known mode
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for mode in cls:
            if text.upper() in (mode.value, mode.name):
                return mode
        raise UnimplementedModeError(
            f"Unknown QASS mode: {value!r}",
            details={"mode": value},
        )


class ScoringModel(str, Enum):
    """The two independent scoring algorithms."""

    QASS = "qass"
    WEBAVALIA = "webavalia"


# ============================================================
# OUTPUT DATA CONTRACTS
# ============================================================


def _round_all(values: Sequence[float], precision: Optional[int]) -> List[float]:
    if precision is None:
        return list(values)
    return [round(v, precision) for v in values]


def _round(value: float, precision: Optional[int]) -> float:
    return value if precision is None else round(value, precision)


@dataclass(frozen=True)
class QASSResult:
    """
    Output of a single-component QASS computation.

    ============================================================
    OUTPUT GUARANTEES
    ============================================================
    - One score, contribution and rating per student
    - Every contribution lies in (-1, 1)
    - mean_score = G ^ (spread ^ mean_contribution)
    - Split-Join Invariance was checked unless disabled

    ============================================================
    """

    student_scores: List[float]
    student_contributions: List[float]
    student_ratings: List[float]

    mean_score: float
    mean_contribution: float
    mean_rating: float

    mode: QASSMode = QASSMode.BIJUNCTION
    invariant_checked: bool = True

    @property
    def group_size(self) -> int:
        return len(self.student_scores)

    def to_dict(self, precision: Optional[int] = None) -> Dict[str, Any]:
        """
        Convert to dictionary for serialization.

        Args:
            precision: Decimal places to round to (None keeps full precision)
        """
        scores = _round_all(self.student_scores, precision)
        ratings = _round_all(self.student_ratings, precision)
        contributions = _round_all(self.student_contributions, precision)
        return {
            "model": ScoringModel.QASS.value,
            "mode": self.mode.value,
            "mean": {
                "score": _round(self.mean_score, precision),
                "rating": _round(self.mean_rating, precision),
                "contribution": _round(self.mean_contribution, precision),
            },
            "student_scores": [
                {
                    "student": i + 1,
                    "score": scores[i],
                    "rating": ratings[i],
                    "contribution": contributions[i],
                }
                for i in range(self.group_size)
            ],
            "invariant_checked": self.invariant_checked,
        }


@dataclass(frozen=True)
class WebavaliaResult:
    """Output of a single-component Webavalia computation."""

    student_scores: List[float]
    student_ratings: List[float]
    mean_score: float
    max_rating: float

    @property
    def group_size(self) -> int:
        return len(self.student_scores)

    def to_dict(self, precision: Optional[int] = None) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        scores = _round_all(self.student_scores, precision)
        ratings = _round_all(self.student_ratings, precision)
        return {
            "model": ScoringModel.WEBAVALIA.value,
            "mean_score": _round(self.mean_score, precision),
            "max_rating": _round(self.max_rating, precision),
            "student_scores": [
                {"student": i + 1, "score": scores[i], "rating": ratings[i]}
                for i in range(self.group_size)
            ],
        }


# ============================================================
# ERROR TYPES
# ============================================================


class PeerScoringError(Exception):
    """Base exception for peer scoring errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class InputShapeError(PeerScoringError):
    """
    Raised when inputs do not have the expected shape.

    Non-square matrix, weight vector whose length differs from
    the group size, mismatched component count, empty input.
    """
    pass


class UnimplementedModeError(PeerScoringError):
    """Raised when a QASS mode without a formula set is selected."""
    pass


class DomainRangeError(PeerScoringError):
    """
    Raised when a value falls outside the domain the model needs.

    NOTE: Raised before the offending value can propagate as
    NaN or infinity through the computation.
    """
    pass


class InvariantViolationError(PeerScoringError):
    """Raised when the Split-Join Invariance check fails."""

    def __init__(
        self,
        message: str,
        expected: float,
        actual: float,
        tolerance: float,
    ) -> None:
        super().__init__(
            message,
            details={"expected": expected, "actual": actual, "tolerance": tolerance},
        )
        self.expected = expected
        self.actual = actual
        self.tolerance = tolerance
