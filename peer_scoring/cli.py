"""
Peer Scoring Engine - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line simulator for the scoring models.

- Reads a JSON document with ratings, weights and group score
- Loads configuration from environment, document and flags
- Prints the result as a {"data": ...} JSON envelope or text

============================================================
USAGE
============================================================
python -m peer_scoring.cli qass input.json
python -m peer_scoring.cli qass-multi input.json --spread 3
python -m peer_scoring.cli webavalia input.json --format text
cat input.json | python -m peer_scoring.cli webavalia-multi -

============================================================
INPUT DOCUMENT
============================================================
qass:             peer_matrix, rater_weights, group_product_score
qass-multi:       peer_matrices, rater_weights, component_weights,
                  group_product_score
webavalia:        peer_matrix, group_score
webavalia-multi:  peer_matrices, component_weights, group_score

An optional "config" object overrides {"qass": {...},
"webavalia": {...}} settings.

============================================================
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from .config import PeerScoringConfig
from .engine import (
    PeerScoringEngine,
    format_qass_summary,
    format_score_list,
    format_webavalia_summary,
)
from .types import InputShapeError, PeerScoringError, QASSMode


logger = logging.getLogger("peer_scoring.cli")


COMMANDS = ("qass", "qass-multi", "webavalia", "webavalia-multi")

REQUIRED_KEYS = {
    "qass": ("peer_matrix", "rater_weights", "group_product_score"),
    "qass-multi": ("peer_matrices", "rater_weights", "component_weights", "group_product_score"),
    "webavalia": ("peer_matrix", "group_score"),
    "webavalia-multi": ("peer_matrices", "component_weights", "group_score"),
}


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(level: str = "WARNING", log_format: str = "text") -> logging.Logger:
    """
    Set up logging on stderr.

    Args:
        level: Log level
        log_format: Output format (json or text)

    Returns:
        Configured CLI logger
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logger


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="peer-scoring",
        description="Compute individual scores from a group score and peer ratings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  qass             - QASS model, one scoring component
  qass-multi       - QASS model, several scoring components
  webavalia        - Webavalia model, one scoring component
  webavalia-multi  - Webavalia model, several scoring components

Examples:
  %(prog)s qass ratings.json --tuning-factor 0.1
  %(prog)s webavalia ratings.json --self-weight 0.5 --format text
        """,
    )

    parser.add_argument(
        "command",
        choices=COMMANDS,
        help="Scoring model to run",
    )

    parser.add_argument(
        "input",
        help="Path to the JSON input document, or - for stdin",
    )

    # --------------------------------------------------------
    # QASS Options
    # --------------------------------------------------------
    qass_group = parser.add_argument_group("QASS Options")

    qass_group.add_argument(
        "--tuning-factor",
        type=float,
        help="Rater bias correction between 0 and 1",
    )

    qass_group.add_argument(
        "--impact",
        type=float,
        help="Peer rating impact exponent",
    )

    qass_group.add_argument(
        "--spread",
        type=float,
        help="Group spread (base of the score transform)",
    )

    qass_group.add_argument(
        "--mode",
        type=str,
        choices=[m.value for m in QASSMode],
        help="Combination formula variant",
    )

    qass_group.add_argument(
        "--lower-bound",
        type=float,
        help="Lowest value of the raw rating scale",
    )

    qass_group.add_argument(
        "--upper-bound",
        type=float,
        help="Highest value of the raw rating scale",
    )

    qass_group.add_argument(
        "--tolerance",
        type=float,
        help="Split-Join Invariance tolerance",
    )

    qass_group.add_argument(
        "--no-invariant",
        action="store_true",
        help="Skip the Split-Join Invariance check",
    )

    # --------------------------------------------------------
    # Webavalia Options
    # --------------------------------------------------------
    webavalia_group = parser.add_argument_group("Webavalia Options")

    webavalia_group.add_argument(
        "--self-weight",
        type=float,
        help="Weight of the self-rating",
    )

    webavalia_group.add_argument(
        "--peer-weight",
        type=float,
        help="Weight of each peer rating",
    )

    # --------------------------------------------------------
    # Output Options
    # --------------------------------------------------------
    output_group = parser.add_argument_group("Output Options")

    output_group.add_argument(
        "--format",
        type=str,
        choices=["json", "text"],
        default="json",
        help="Output format (default: json)",
    )

    output_group.add_argument(
        "--precision",
        type=int,
        metavar="DIGITS",
        help="Round numbers to this many decimal places",
    )

    output_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )

    output_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="text",
        help="Logging format (default: text)",
    )

    return parser


# ============================================================
# INPUT AND CONFIGURATION
# ============================================================

def load_document(path: str) -> Dict[str, Any]:
    """
    Load the JSON input document.

    Raises:
        InputShapeError: If the document is not a JSON object
    """
    if path == "-":
        document = json.load(sys.stdin)
    else:
        with open(path, "r", encoding="utf-8") as handle:
            document = json.load(handle)

    if not isinstance(document, dict):
        raise InputShapeError("Input document must be a JSON object")
    return document


def validate_document(command: str, document: Dict[str, Any]) -> List[str]:
    """Return the required keys missing from the document."""
    return [key for key in REQUIRED_KEYS[command] if key not in document]


def build_config(args: argparse.Namespace, document: Dict[str, Any]) -> PeerScoringConfig:
    """
    Build configuration: environment, then document, then flags.

    Args:
        args: Parsed arguments
        document: Input document, may hold a "config" object

    Returns:
        PeerScoringConfig instance
    """
    config = PeerScoringConfig.from_env()

    overrides = document.get("config") or {}
    config = config.with_overrides(
        qass=overrides.get("qass") or {},
        webavalia=overrides.get("webavalia") or {},
    )

    qass_flags = {
        "tuning_factor": args.tuning_factor,
        "peer_rating_impact": args.impact,
        "group_spread": args.spread,
        "mode": args.mode,
        "lower_bound": args.lower_bound,
        "upper_bound": args.upper_bound,
        "invariant_tolerance": args.tolerance,
    }
    if args.no_invariant:
        qass_flags["validate_invariant"] = False

    return config.with_overrides(
        qass=qass_flags,
        webavalia={
            "self_weight": args.self_weight,
            "peer_weight": args.peer_weight,
        },
    )


# ============================================================
# COMMAND EXECUTION
# ============================================================

def run_command(
    command: str,
    engine: PeerScoringEngine,
    document: Dict[str, Any],
    output_format: str,
    precision: Optional[int],
) -> str:
    """
    Run one scoring command and render its output.

    Returns:
        The rendered output
    """
    text_precision = 2 if precision is None else precision

    if command == "qass":
        result = engine.score_qass(
            document["peer_matrix"],
            document["rater_weights"],
            document["group_product_score"],
        )
        if output_format == "text":
            return format_qass_summary(result, text_precision)
        return json.dumps({"data": result.to_dict(precision)}, indent=2)

    if command == "webavalia":
        result = engine.score_webavalia(document["peer_matrix"], document["group_score"])
        if output_format == "text":
            return format_webavalia_summary(result, text_precision)
        return json.dumps({"data": result.to_dict(precision)}, indent=2)

    if command == "qass-multi":
        scores = engine.score_qass_multi_component(
            document["peer_matrices"],
            document["rater_weights"],
            document["component_weights"],
            document["group_product_score"],
        )
    else:
        scores = engine.score_webavalia_multi_component(
            document["peer_matrices"],
            document["component_weights"],
            document["group_score"],
        )

    if output_format == "text":
        return format_score_list(scores, text_precision)
    if precision is not None:
        scores = [round(score, precision) for score in scores]
    return json.dumps({"data": scores, "total": len(scores)}, indent=2)


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level, args.log_format)

    try:
        document = load_document(args.input)

        missing = validate_document(args.command, document)
        if missing:
            for key in missing:
                print(f"Error: input document is missing '{key}'", file=sys.stderr)
            return 1

        engine = PeerScoringEngine(config=build_config(args, document))
        output = run_command(args.command, engine, document, args.format, args.precision)

    except PeerScoringError as e:
        logger.error("%s: %s", type(e).__name__, e.message)
        print(json.dumps({"error": e.to_dict()}), file=sys.stderr)
        return 1
    except (OSError, ValueError, TypeError) as e:
        logger.error("Invalid input %s: %s", args.input, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(output)
    return 0


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
