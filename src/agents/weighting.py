"""
Signal weighting engine.

Assigns every agent signal a non-negative weight and normalises the weights
to sum to 1. The raw weight is the category base weight, optionally scaled
by context multipliers:

    confidence   0.7 + 0.5 * confidence            (0.7x .. 1.2x)
    freshness    1 / (1 + 0.2 * staleness)          (down to ~0.63x)
    liquidity    0.5 + 0.1 * liquidity_score        (price-action agents only)
    performance  accuracy-based, clamped to 0.5x .. 1.5x

Weight calculation never raises: if anything goes wrong, or every weight
ends up at zero, the engine falls back to equal weights and reports why.
"""

import math
import time
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from src.agents.market_context import FRESHNESS_WINDOW_SECONDS, AgentPerformance, MarketContext
from src.agents.signals import AgentCategory, AgentSignal, classify_agent
from src.config.settings import DEFAULT_BASE_WEIGHTS, Settings, settings
from src.utils.logging_setup import get_trading_logger

logger = get_trading_logger("weighting")

# Which external data source each category's analysis depends on
_DATA_SOURCES: Dict[AgentCategory, str] = {
    AgentCategory.EVENT_INTELLIGENCE: "news",
    AgentCategory.SENTIMENT_NARRATIVE: "news",
    AgentCategory.POLLING_STATISTICAL: "polling",
}

# Categories whose analysis depends on trading activity
_LIQUIDITY_SENSITIVE = frozenset({AgentCategory.PRICE_ACTION})

MAX_STALENESS = 3.0
LOW_LIQUIDITY_SCORE = 5.0


@dataclass(frozen=True)
class WeightingResult:
    """Normalised weights plus the raw (pre-normalisation) values."""
    weights: Dict[str, float]
    raw_weights: Dict[str, float]
    fallback_reason: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.fallback_reason is not None


def equal_weights(signals: Sequence[AgentSignal]) -> Dict[str, float]:
    names = list(dict.fromkeys(s.agent_name for s in signals))
    if not names:
        return {}
    share = 1.0 / len(names)
    return {name: share for name in names}


class SignalWeightingEngine:
    """
    Computes dynamic per-agent weights for one analysis cycle.

    Usage::

        engine = SignalWeightingEngine()
        result = engine.calculate_weights(signals, market=market, now=now)
        result.weights  # {"polling_intelligence": 0.41, ...}
    """

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def calculate_weights(
        self,
        signals: Sequence[AgentSignal],
        market: Optional[MarketContext] = None,
        performance: Optional[Mapping[str, AgentPerformance]] = None,
        now: Optional[float] = None,
    ) -> WeightingResult:
        """
        Return normalised weights (agent name -> weight) for *signals*.

        Args:
            signals:     Accepted agent signals for this cycle.
            market:      Market snapshot (liquidity, data freshness).
            performance: Historical accuracy keyed by agent name.
            now:         Evaluation time in epoch seconds; defaults to the
                         wall clock.
        """
        if not signals:
            return WeightingResult(weights={}, raw_weights={}, fallback_reason="no signals")

        now = time.time() if now is None else now
        raw: Dict[str, float] = {}

        try:
            for signal in signals:
                category = classify_agent(signal.agent_name)
                weight = self.base_weight(category)
                if self.settings.signal_fusion.context_adjustments:
                    weight *= self.context_multiplier(signal, category, market, performance, now)
                # Non-negative; NaN collapses to 0 as well
                raw[signal.agent_name] = weight if weight > 0 else 0.0

            total = sum(raw.values())
            if not math.isfinite(total):
                raise ValueError(f"weight total is not finite: {total}")

            if total <= 0:
                logger.warning(
                    "All weights are zero, falling back to equal weights",
                    agents=len(raw),
                )
                return WeightingResult(
                    weights=equal_weights(signals),
                    raw_weights=raw,
                    fallback_reason="all weights are zero",
                )

            weights = {name: w / total for name, w in raw.items()}
            return WeightingResult(weights=weights, raw_weights=raw)

        except Exception as exc:
            logger.error(
                "Weight calculation failed, falling back to equal weights",
                error=str(exc),
                exc_info=True,
            )
            return WeightingResult(
                weights=equal_weights(signals),
                raw_weights=raw,
                fallback_reason=f"weight calculation failed: {exc}",
            )

    def base_weight(self, category: AgentCategory) -> float:
        """Configured base weight for *category*, else the built-in default."""
        configured = self.settings.signal_fusion.base_weights or {}
        if category.value in configured:
            return float(configured[category.value])
        return DEFAULT_BASE_WEIGHTS.get(category.value, 1.0)

    # ------------------------------------------------------------------
    # Context multipliers
    # ------------------------------------------------------------------
    def context_multiplier(
        self,
        signal: AgentSignal,
        category: AgentCategory,
        market: Optional[MarketContext],
        performance: Optional[Mapping[str, AgentPerformance]],
        now: float,
    ) -> float:
        multiplier = self.confidence_multiplier(signal.confidence)
        multiplier *= self.freshness_multiplier(category, market, now)
        multiplier *= self.liquidity_multiplier(category, market)
        multiplier *= self.performance_multiplier(signal.agent_name, performance)
        return multiplier

    @staticmethod
    def confidence_multiplier(confidence: float) -> float:
        """0.7x at confidence 0, 1.2x at confidence 1."""
        return 0.7 + confidence * 0.5

    @staticmethod
    def freshness_multiplier(
        category: AgentCategory,
        market: Optional[MarketContext],
        now: float,
    ) -> float:
        """Penalty for agents whose data source is older than an hour."""
        source = _DATA_SOURCES.get(category)
        if source is None or market is None:
            return 1.0

        age = market.data_age(source, now)
        if age is None or age <= FRESHNESS_WINDOW_SECONDS:
            return 1.0

        staleness = min(age / FRESHNESS_WINDOW_SECONDS, MAX_STALENESS)
        return 1.0 / (1.0 + staleness * 0.2)

    @staticmethod
    def liquidity_multiplier(category: AgentCategory, market: Optional[MarketContext]) -> float:
        """Penalty for price-action agents in thin markets (0.5x .. 1.0x)."""
        if category not in _LIQUIDITY_SENSITIVE or market is None:
            return 1.0
        score = market.liquidity_score
        if score >= LOW_LIQUIDITY_SCORE:
            return 1.0
        return max(0.5, 0.5 + score * 0.1)

    def performance_multiplier(
        self,
        agent_name: str,
        performance: Optional[Mapping[str, AgentPerformance]],
    ) -> float:
        """
        Scale by historical accuracy.

        accuracy 0.0 -> 0.5x, 0.5 -> 1.0x (neutral), 1.0 -> 1.5x. Neutral when
        tracking is disabled or the agent has too few analyses.
        """
        tracking = self.settings.performance_tracking
        if not tracking.enabled or not performance:
            return 1.0

        metrics = performance.get(agent_name)
        if metrics is None or metrics.total_analyses < tracking.min_sample_size:
            return 1.0

        accuracy = metrics.accuracy_score
        if accuracy < 0.5:
            multiplier = 0.5 + accuracy
        else:
            multiplier = 1.0 + (accuracy - 0.5)
        return max(0.5, min(1.5, multiplier))


def calculate_weights(
    signals: List[AgentSignal],
    market: Optional[MarketContext] = None,
    performance: Optional[Mapping[str, AgentPerformance]] = None,
    now: Optional[float] = None,
    config: Optional[Settings] = None,
) -> Dict[str, float]:
    """Convenience wrapper returning only the normalised weight map."""
    return SignalWeightingEngine(config).calculate_weights(signals, market, performance, now).weights
