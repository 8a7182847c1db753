"""
Configuration settings for the signal fusion and consensus engine.
Manages category weights, fusion thresholds, consensus/decision thresholds,
performance tracking, and logging.

Every value has a built-in default and can be overridden from the
environment (or a ``.env`` file). A ``Settings`` instance is treated as
read-only for the duration of an analysis cycle.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Dict

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Base weight per agent category (keys are AgentCategory values)
DEFAULT_BASE_WEIGHTS: Dict[str, float] = {
    "baseline": 1.0,
    "event_intelligence": 1.2,    # High value for event-driven markets
    "polling_statistical": 1.5,   # Very reliable for election markets
    "sentiment_narrative": 0.8,   # Noisy but useful
    "price_action": 1.0,
    "event_scenario": 1.0,
}


def _base_weights_from_env() -> Dict[str, float]:
    raw = os.getenv("SIGNAL_FUSION_BASE_WEIGHTS")
    if not raw:
        return dict(DEFAULT_BASE_WEIGHTS)
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("SIGNAL_FUSION_BASE_WEIGHTS must be a JSON object")
    return {str(k): float(v) for k, v in parsed.items()}


@dataclass
class SignalFusionConfig:
    """Signal weighting and fusion configuration."""
    base_weights: Dict[str, float] = field(default_factory=_base_weights_from_env)
    context_adjustments: bool = field(
        default_factory=lambda: _env_bool("SIGNAL_FUSION_CONTEXT_ADJUSTMENTS", True)
    )
    conflict_threshold: float = field(
        default_factory=lambda: _env_float("SIGNAL_FUSION_CONFLICT_THRESHOLD", 0.20)
    )
    alignment_bonus: float = field(
        default_factory=lambda: _env_float("SIGNAL_FUSION_ALIGNMENT_BONUS", 0.20)
    )


@dataclass
class AgentsConfig:
    """Agent roster requirements."""
    min_agents_required: int = field(default_factory=lambda: _env_int("MIN_AGENTS_REQUIRED", 2))


@dataclass
class ConsensusConfig:
    """Consensus and trade decision thresholds."""
    min_edge_threshold: float = field(
        default_factory=lambda: _env_float("MIN_EDGE_THRESHOLD", 0.05)
    )
    # Disagreement above this adds an uncertainty note to the explanation
    high_disagreement_threshold: float = field(
        default_factory=lambda: _env_float("HIGH_DISAGREEMENT_THRESHOLD", 0.15)
    )
    # Taker fee per contract = rate * P * (1 - P)
    transaction_cost_rate: float = field(
        default_factory=lambda: _env_float("TRANSACTION_COST_RATE", 0.07)
    )


@dataclass
class PerformanceTrackingConfig:
    """Historical-accuracy weighting configuration."""
    enabled: bool = field(
        default_factory=lambda: _env_bool("PERFORMANCE_TRACKING_ENABLED", False)
    )
    min_sample_size: int = field(
        default_factory=lambda: _env_int("PERFORMANCE_TRACKING_MIN_SAMPLE_SIZE", 10)
    )


@dataclass
class LoggingConfig:
    """Logging configuration."""
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    json_logs: bool = field(default_factory=lambda: _env_bool("LOG_JSON", False))


@dataclass
class Settings:
    """Main settings class combining all configuration."""
    signal_fusion: SignalFusionConfig = field(default_factory=SignalFusionConfig)
    agents: AgentsConfig = field(default_factory=AgentsConfig)
    consensus: ConsensusConfig = field(default_factory=ConsensusConfig)
    performance_tracking: PerformanceTrackingConfig = field(
        default_factory=PerformanceTrackingConfig
    )
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> bool:
        """Validate configuration settings."""
        fusion = self.signal_fusion
        if not 0 <= fusion.conflict_threshold <= 1:
            raise ValueError("conflict_threshold must be between 0 and 1")

        if not 0 <= fusion.alignment_bonus <= 1:
            raise ValueError("alignment_bonus must be between 0 and 1")

        for category, weight in fusion.base_weights.items():
            if weight < 0:
                raise ValueError(f"base weight for '{category}' must be non-negative")

        if self.agents.min_agents_required < 1:
            raise ValueError("min_agents_required must be at least 1")

        if not 0 <= self.consensus.min_edge_threshold <= 1:
            raise ValueError("min_edge_threshold must be between 0 and 1")

        if not 0 <= self.consensus.high_disagreement_threshold <= 1:
            raise ValueError("high_disagreement_threshold must be between 0 and 1")

        if self.consensus.transaction_cost_rate < 0:
            raise ValueError("transaction_cost_rate must be non-negative")

        if self.performance_tracking.min_sample_size < 1:
            raise ValueError("min_sample_size must be at least 1")

        return True


# Global settings instance
settings = Settings()

# Validate settings on import
try:
    settings.validate()
except ValueError as e:
    print(f"Configuration validation error: {e}")
    print("Please check your environment variables and configuration.")
