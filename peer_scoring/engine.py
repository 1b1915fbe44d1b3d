"""
Peer Scoring Engine - Main Orchestrator.

============================================================
PURPOSE
============================================================
The PeerScoringEngine is the configuration-driven entry point
for peer-assessment scoring.

It:
1. Validates its configuration once
2. Delegates to the QASS or Webavalia model
3. Forwards intermediate values to an optional observer

============================================================
DESIGN PRINCIPLES
============================================================
- Single responsibility: orchestration only
- Deterministic and stateless per call
- Errors propagate to the caller unchanged

============================================================
USAGE
============================================================
    from peer_scoring import PeerScoringEngine

    engine = PeerScoringEngine()

    result = engine.score_qass(
        peer_matrix=[[0.5, 0.6], [0.4, 0.5]],
        rater_weights=[0.5, 0.5],
        group_product_score=0.8,
    )

    print(format_qass_summary(result))

============================================================
"""

import logging
from typing import List, Optional, Sequence

from .config import PeerScoringConfig
from .qass import compute_qass, compute_qass_multi_component
from .types import (
    Observer,
    QASSResult,
    RatingMatrix,
    WebavaliaResult,
)
from .webavalia import compute_webavalia, compute_webavalia_multi_component


logger = logging.getLogger(__name__)


class PeerScoringEngine:
    """
    Main orchestrator for the Peer Scoring Engine.

    Model parameters come from the configuration; per-call
    inputs are the rating matrices, weights and group score.
    """

    def __init__(
        self,
        config: Optional[PeerScoringConfig] = None,
        observer: Optional[Observer] = None,
    ):
        """
        Initialize the Peer Scoring Engine.

        Args:
            config: Engine configuration. Uses defaults if not provided.
            observer: Optional callback receiving (stage, payload)
                      with intermediate values of every computation.

        Raises:
            DomainRangeError: If the configuration is invalid
        """
        self.config = (config or PeerScoringConfig()).ensure_valid()
        self._observer = observer

    def score_qass(
        self,
        peer_matrix: RatingMatrix,
        rater_weights: Sequence[float],
        group_product_score: float,
    ) -> QASSResult:
        """Score one scoring component with QASS."""
        qass = self.config.qass
        result = compute_qass(
            peer_matrix,
            rater_weights,
            tuning_factor=qass.tuning_factor,
            peer_rating_impact=qass.peer_rating_impact,
            group_spread=qass.group_spread,
            group_product_score=group_product_score,
            mode=qass.mode,
            lower_bound=qass.lower_bound,
            upper_bound=qass.upper_bound,
            validate_invariant=qass.validate_invariant,
            invariant_tolerance=qass.invariant_tolerance,
            observer=self._observer,
        )
        logger.debug(
            "QASS scored group of %d: mean score %.6f, mean contribution %.6f",
            result.group_size,
            result.mean_score,
            result.mean_contribution,
        )
        return result

    def score_qass_multi_component(
        self,
        peer_matrices: Sequence[RatingMatrix],
        rater_weights: Sequence[float],
        component_weights: Sequence[float],
        group_product_score: float,
    ) -> List[float]:
        """Score several scoring components with QASS. Returns scores only."""
        qass = self.config.qass
        scores = compute_qass_multi_component(
            peer_matrices,
            rater_weights,
            component_weights,
            tuning_factor=qass.tuning_factor,
            peer_rating_impact=qass.peer_rating_impact,
            group_spread=qass.group_spread,
            group_product_score=group_product_score,
            mode=qass.mode,
            lower_bound=qass.lower_bound,
            upper_bound=qass.upper_bound,
            observer=self._observer,
        )
        logger.debug(
            "QASS scored %d components for group of %d",
            len(peer_matrices),
            len(scores),
        )
        return scores

    def score_webavalia(self, peer_matrix: RatingMatrix, group_score: float) -> WebavaliaResult:
        """Score one scoring component with Webavalia."""
        webavalia = self.config.webavalia
        result = compute_webavalia(
            peer_matrix,
            group_score,
            self_weight=webavalia.self_weight,
            peer_weight=webavalia.peer_weight,
            observer=self._observer,
        )
        logger.debug(
            "Webavalia scored group of %d: mean score %.6f",
            result.group_size,
            result.mean_score,
        )
        return result

    def score_webavalia_multi_component(
        self,
        peer_matrices: Sequence[RatingMatrix],
        component_weights: Sequence[float],
        group_score: float,
    ) -> List[float]:
        """Score several scoring components with Webavalia."""
        webavalia = self.config.webavalia
        scores = compute_webavalia_multi_component(
            peer_matrices,
            group_score,
            component_weights,
            self_weight=webavalia.self_weight,
            peer_weight=webavalia.peer_weight,
            observer=self._observer,
        )
        logger.debug(
            "Webavalia scored %d components for group of %d",
            len(peer_matrices),
            len(scores),
        )
        return scores

    def get_config(self) -> PeerScoringConfig:
        """Return the current engine configuration."""
        return self.config


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================


def format_qass_summary(result: QASSResult, precision: int = 2) -> str:
    """
    Format a human-readable QASS summary.

    Args:
        result: QASS result
        precision: Decimal places for scores

    Returns:
        Formatted summary string
    """
    lines = [
        "=" * 50,
        f"QASS SCORES (mode {result.mode.name})",
        "=" * 50,
        f"{'Student':>8} {'Score':>12} {'Rating':>10} {'Contribution':>14}",
    ]
    for i in range(result.group_size):
        lines.append(
            f"{i + 1:>8} {result.student_scores[i]:>12.{precision}f} "
            f"{result.student_ratings[i]:>10.4f} {result.student_contributions[i]:>14.4f}"
        )
    lines.extend([
        "-" * 50,
        f"{'Mean':>8} {result.mean_score:>12.{precision}f} "
        f"{result.mean_rating:>10.4f} {result.mean_contribution:>14.4f}",
        "=" * 50,
    ])
    return "\n".join(lines)


def format_webavalia_summary(result: WebavaliaResult, precision: int = 2) -> str:
    """Format a human-readable Webavalia summary."""
    lines = [
        "=" * 50,
        "WEBAVALIA SCORES",
        "=" * 50,
        f"{'Student':>8} {'Score':>12} {'Rating':>12}",
    ]
    for i in range(result.group_size):
        lines.append(
            f"{i + 1:>8} {result.student_scores[i]:>12.{precision}f} "
            f"{result.student_ratings[i]:>12.4f}"
        )
    lines.extend([
        "-" * 50,
        f"{'Mean':>8} {result.mean_score:>12.{precision}f}",
        "=" * 50,
    ])
    return "\n".join(lines)


def format_score_list(scores: Sequence[float], precision: int = 2) -> str:
    """Format the scores of a multi-component computation."""
    lines = [f"{'Student':>8} {'Score':>12}"]
    for i, score in enumerate(scores):
        lines.append(f"{i + 1:>8} {score:>12.{precision}f}")
    return "\n".join(lines)
