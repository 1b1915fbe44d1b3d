"""
Peer Scoring Engine - Configuration.

============================================================
PURPOSE
============================================================
Configuration dataclasses and defaults for the QASS and
Webavalia scoring models.

============================================================
DESIGN PRINCIPLES
============================================================
- Immutable configurations
- validate() returns every problem, not just the first
- Environment overrides via PEER_SCORING_* variables
- Defaults reproduce the plain, uncorrected model

============================================================
PARAMETERS
============================================================
QASS:
- tuning_factor: rater bias correction, 0 = none, 1 = full inversion
- peer_rating_impact: sensitivity exponent of the contribution
- group_spread: base of the power-law score transform
- lower_bound / upper_bound: raw rating scale

Webavalia:
- self_weight / peer_weight: weights of self and peer ratings

============================================================
"""

import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv

from .types import DomainRangeError, QASSMode


ENV_PREFIX = "PEER_SCORING_"

_TRUE_VALUES = ("1", "true", "yes", "on")


# ============================================================
# QASS CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class QASSConfig:
    """
    Configuration for the QASS model.

    ============================================================
    RANGES
    ============================================================
    tuning_factor:       0 <= t <= 1
    peer_rating_impact:  > 0
    group_spread:        > 0
    lower_bound:         < upper_bound
    invariant_tolerance: >= 0

    ============================================================
    """

    tuning_factor: float = 0.0
    peer_rating_impact: float = 1.0
    group_spread: float = 2.0
    mode: QASSMode = QASSMode.BIJUNCTION

    # Raw rating scale, standardized onto [0, 1]
    lower_bound: float = 0.0
    upper_bound: float = 1.0

    # Split-Join Invariance check
    validate_invariant: bool = True
    invariant_tolerance: float = 1e-9

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not 0.0 <= self.tuning_factor <= 1.0:
            errors.append("tuning_factor must be between 0 and 1")

        if not self.peer_rating_impact > 0:
            errors.append("peer_rating_impact must be positive")

        if not self.group_spread > 0:
            errors.append("group_spread must be positive")

        if not self.lower_bound < self.upper_bound:
            errors.append("lower_bound must be less than upper_bound")

        if not self.invariant_tolerance >= 0:
            errors.append("invariant_tolerance must not be negative")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tuning_factor": self.tuning_factor,
            "peer_rating_impact": self.peer_rating_impact,
            "group_spread": self.group_spread,
            "mode": self.mode.value,
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
            "validate_invariant": self.validate_invariant,
            "invariant_tolerance": self.invariant_tolerance,
        }


# ============================================================
# WEBAVALIA CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class WebavaliaConfig:
    """Configuration for the Webavalia model."""

    self_weight: float = 1.0
    peer_weight: float = 1.0

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.self_weight >= 0:
            errors.append("self_weight must not be negative")

        if not self.peer_weight >= 0:
            errors.append("peer_weight must not be negative")

        if self.self_weight == 0 and self.peer_weight == 0:
            errors.append("self_weight and peer_weight cannot both be zero")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "self_weight": self.self_weight,
            "peer_weight": self.peer_weight,
        }


# ============================================================
# COMBINED ENGINE CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class PeerScoringConfig:
    """Complete configuration for the Peer Scoring Engine."""

    qass: QASSConfig = field(default_factory=QASSConfig)
    webavalia: WebavaliaConfig = field(default_factory=WebavaliaConfig)

    engine_version: str = "1.0.0"

    def validate(self) -> List[str]:
        """Validate all sections, prefixing each error with its section."""
        errors = [f"qass.{e}" for e in self.qass.validate()]
        errors.extend(f"webavalia.{e}" for e in self.webavalia.validate())
        return errors

    def ensure_valid(self) -> "PeerScoringConfig":
        """
        Raise if the configuration is invalid.

        Raises:
            DomainRangeError: Listing every configuration problem
        """
        errors = self.validate()
        if errors:
            raise DomainRangeError(
                f"Invalid peer scoring configuration: {'; '.join(errors)}",
                details={"errors": errors},
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "qass": self.qass.to_dict(),
            "webavalia": self.webavalia.to_dict(),
            "engine_version": self.engine_version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PeerScoringConfig":
        """
        Build configuration from a (possibly partial) dictionary.

        Unknown keys are ignored; missing keys keep their defaults.
        """
        base = cls()
        return base.with_overrides(
            qass=data.get("qass") or {},
            webavalia=data.get("webavalia") or {},
        )

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "PeerScoringConfig":
        """
        Create configuration from environment variables.

        A .env file (env_file, or the nearest one found) is loaded
        first; variables already set in the environment win.
        """
        load_dotenv(env_file)

        qass: Dict[str, Any] = {}
        webavalia: Dict[str, Any] = {}

        float_keys = {
            "TUNING_FACTOR": (qass, "tuning_factor"),
            "PEER_RATING_IMPACT": (qass, "peer_rating_impact"),
            "GROUP_SPREAD": (qass, "group_spread"),
            "LOWER_BOUND": (qass, "lower_bound"),
            "UPPER_BOUND": (qass, "upper_bound"),
            "INVARIANT_TOLERANCE": (qass, "invariant_tolerance"),
            "SELF_WEIGHT": (webavalia, "self_weight"),
            "PEER_WEIGHT": (webavalia, "peer_weight"),
        }
        for suffix, (target, key) in float_keys.items():
            raw = os.getenv(ENV_PREFIX + suffix)
            if raw is not None and raw.strip():
                target[key] = raw

        mode = os.getenv(ENV_PREFIX + "MODE")
        if mode:
            qass["mode"] = mode

        validate_invariant = os.getenv(ENV_PREFIX + "VALIDATE_INVARIANT")
        if validate_invariant is not None and validate_invariant.strip():
            qass["validate_invariant"] = validate_invariant

        return cls().with_overrides(qass=qass, webavalia=webavalia)

    def with_overrides(
        self,
        qass: Optional[Mapping[str, Any]] = None,
        webavalia: Optional[Mapping[str, Any]] = None,
    ) -> "PeerScoringConfig":
        """
        Return a copy with the given section values replaced.

        Values are coerced to the field types, so strings coming
        from the environment or a JSON document are accepted.
        """
        return replace(
            self,
            qass=replace(self.qass, **_coerce_qass(qass or {})),
            webavalia=replace(self.webavalia, **_coerce_webavalia(webavalia or {})),
        )


# ============================================================
# COERCION HELPERS
# ============================================================


def _to_float(key: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise DomainRangeError(
            f"Configuration value {key} must be a number, got {value!r}",
            details={key: value},
        ) from e


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _coerce_qass(values: Mapping[str, Any]) -> Dict[str, Any]:
    coerced: Dict[str, Any] = {}
    for key, value in values.items():
        if value is None:
            continue
        if key == "mode":
            coerced[key] = QASSMode.parse(value)
        elif key == "validate_invariant":
            coerced[key] = _to_bool(value)
        elif key in QASSConfig.__dataclass_fields__:
            coerced[key] = _to_float(key, value)
    return coerced


def _coerce_webavalia(values: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        key: _to_float(key, value)
        for key, value in values.items()
        if value is not None and key in WebavaliaConfig.__dataclass_fields__
    }


# ============================================================
# PRESET CONFIGURATIONS
# ============================================================


def get_default_config() -> PeerScoringConfig:
    """
    Get default configuration.

    No bias correction, unit impact, spread of 2 and an
    invariant tolerance of 1e-9.
    """
    return PeerScoringConfig()


def get_bias_corrected_config(tuning_factor: float) -> PeerScoringConfig:
    """
    Get default configuration with rater bias correction enabled.

    Args:
        tuning_factor: Correction strength between 0 and 1
    """
    return PeerScoringConfig().with_overrides(qass={"tuning_factor": tuning_factor})
