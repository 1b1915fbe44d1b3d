"""
Peer Scoring Engine - Package.

============================================================
PURPOSE
============================================================
Redistributes a group score across the members of a team
according to the ratings they gave each other.

============================================================
WHAT IT IS
============================================================
- A pure, stateless computation: no I/O, no persistence
- Two independent models: QASS and Webavalia
- Deterministic up to floating-point rounding

============================================================
WHAT IT IS NOT
============================================================
- NOT a rating collection or storage layer
- NOT an authorization layer
- NOT an HTTP service

============================================================
MODELS
============================================================
QASS:
    Ratings are aggregated in odds space into a contribution
    in (-1, 1) per student; score = G ^ (spread ^ contribution).
    Results are checked against the Split-Join Invariance.
    Only the BIJUNCTION mode has a formula set.

Webavalia:
    Weighted self/peer average, normalized against the best
    student, score = G * sqrt(rating / max_rating).

============================================================
USAGE
============================================================
    from peer_scoring import compute_qass, compute_webavalia

    result = compute_qass(
        peer_matrix=[[0.5, 0.7, 0.6], [0.4, 0.5, 0.6], [0.5, 0.6, 0.5]],
        rater_weights=[1 / 3, 1 / 3, 1 / 3],
        tuning_factor=0.0,
        peer_rating_impact=1.0,
        group_spread=2.0,
        group_product_score=0.8,
    )
    print(result.student_scores)

    result = compute_webavalia([[10, 8], [9, 10]], group_score=100)
    print(result.student_scores)

============================================================
"""

# Types
from .types import (
    # Enums
    QASSMode,
    ScoringModel,

    # Output types
    QASSResult,
    WebavaliaResult,

    # Exceptions
    PeerScoringError,
    InputShapeError,
    UnimplementedModeError,
    DomainRangeError,
    InvariantViolationError,
)

# Configuration
from .config import (
    QASSConfig,
    WebavaliaConfig,
    PeerScoringConfig,
    get_default_config,
    get_bias_corrected_config,
)

# QASS model
from .qass import (
    CombinationFormula,
    BijunctionFormula,
    get_formula,
    rescale_rating,
    aggregate_ratings,
    calculate_contributions,
    combine_contributions,
    distribute_score,
    validate_split_join_invariance,
    compute_qass,
    compute_qass_multi_component,
)

# Webavalia model
from .webavalia import (
    compute_webavalia,
    compute_webavalia_multi_component,
)

# Engine
from .engine import (
    PeerScoringEngine,
    format_qass_summary,
    format_webavalia_summary,
)


__all__ = [
    # Enums
    "QASSMode",
    "ScoringModel",

    # Output types
    "QASSResult",
    "WebavaliaResult",

    # Exceptions
    "PeerScoringError",
    "InputShapeError",
    "UnimplementedModeError",
    "DomainRangeError",
    "InvariantViolationError",

    # Configuration
    "QASSConfig",
    "WebavaliaConfig",
    "PeerScoringConfig",
    "get_default_config",
    "get_bias_corrected_config",

    # QASS model
    "CombinationFormula",
    "BijunctionFormula",
    "get_formula",
    "rescale_rating",
    "aggregate_ratings",
    "calculate_contributions",
    "combine_contributions",
    "distribute_score",
    "validate_split_join_invariance",
    "compute_qass",
    "compute_qass_multi_component",

    # Webavalia model
    "compute_webavalia",
    "compute_webavalia_multi_component",

    # Engine
    "PeerScoringEngine",
    "format_qass_summary",
    "format_webavalia_summary",
]


__version__ = "1.0.0"
