"""
Agent signal fusion.

Combines the cycle's agent signals into a single ``FusedSignal``:

1. Dynamic weights from the weighting engine
2. Weighted fair probability
3. Pairwise conflicts and overall alignment
4. Data quality (agent confidence + source freshness)
5. Fusion confidence = weighted confidence + alignment bonus - quality penalty
6. Extreme-divergence rule: a probability range above 0.70 halves confidence

Fusion never aborts the cycle. Zero signals yield no fused signal with a
recorded reason, and any unexpected error is caught and reported in the
result and its audit entry.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from src.agents.disagreement import (
    SignalConflict,
    calculate_signal_alignment,
    identify_conflicts,
    probability_spread,
)
from src.agents.market_context import FRESHNESS_WINDOW_SECONDS, AgentPerformance, MarketContext
from src.agents.signals import AgentCategory, AgentSignal
from src.agents.weighting import SignalWeightingEngine, WeightingResult
from src.config.settings import Settings, settings
from src.events.audit import STAGE_SIGNAL_FUSION, AuditEntry
from src.utils.logging_setup import get_trading_logger

logger = get_trading_logger("fusion")

EXTREME_DIVERGENCE_RANGE = 0.70
DIVERGENCE_CONFIDENCE_FACTOR = 0.5
QUALITY_PENALTY_WEIGHT = 0.3
DEFAULT_DATA_QUALITY = 0.5


@dataclass(frozen=True)
class FusionMetadata:
    baseline_agent_count: int
    advanced_agent_count: int
    data_quality: float
    extreme_divergence: bool
    probability_range: float
    undamped_confidence: float


@dataclass(frozen=True)
class FusedSignal:
    """Weighted aggregate of all agent signals for one cycle."""
    fair_probability: float
    confidence: float
    signal_alignment: float
    conflicting_signals: List[SignalConflict]
    contributing_agents: List[str]
    weights: Dict[str, float]
    metadata: FusionMetadata


@dataclass(frozen=True)
class FusionResult:
    """Outcome of the fusion stage; ``fused_signal`` is None on failure."""
    fused_signal: Optional[FusedSignal]
    audit: AuditEntry
    reason: Optional[str] = None
    error: Optional[str] = None
    weighting: Optional[WeightingResult] = field(default=None, compare=False)

    @property
    def success(self) -> bool:
        return self.fused_signal is not None


class SignalFusionEngine:
    """
    Fuses agent signals into one probability with a confidence score.

    Usage::

        engine = SignalFusionEngine()
        result = engine.fuse(signals, market=market, now=now)
        if result.success:
            result.fused_signal.fair_probability
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        weighting_engine: Optional[SignalWeightingEngine] = None,
    ):
        self.settings = config or settings
        self.weighting_engine = weighting_engine or SignalWeightingEngine(self.settings)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def fuse(
        self,
        signals: Sequence[AgentSignal],
        market: Optional[MarketContext] = None,
        performance: Optional[Mapping[str, AgentPerformance]] = None,
        now: Optional[float] = None,
    ) -> FusionResult:
        """
        Fuse *signals* for one market.

        Returns:
            A ``FusionResult``. On success ``fused_signal`` is populated; on
            failure it is None and ``reason`` / ``error`` explain why.
        """
        start = time.time()

        if not signals:
            logger.warning("No agent signals available for fusion")
            reason = "No agent signals available for fusion"
            return FusionResult(
                fused_signal=None,
                reason=reason,
                audit=AuditEntry(
                    stage=STAGE_SIGNAL_FUSION,
                    success=False,
                    data={"reason": reason, "duration": round(time.time() - start, 4)},
                ),
            )

        now = time.time() if now is None else now
        signals, duplicates = self.unique_signals(signals)

        try:
            weighting = self.weighting_engine.calculate_weights(signals, market, performance, now)
            weights = weighting.weights

            fair_probability = self.weighted_probability(signals, weights)
            conflicts = identify_conflicts(signals, self.settings.signal_fusion.conflict_threshold)
            alignment = calculate_signal_alignment(signals)

            min_prob, max_prob, probability_range = probability_spread(signals)
            extreme_divergence = probability_range > EXTREME_DIVERGENCE_RANGE

            data_quality = self.assess_data_quality(signals, market, now)
            undamped = self.calculate_fusion_confidence(signals, weights, alignment, data_quality)

            confidence = undamped
            if extreme_divergence:
                confidence = undamped * DIVERGENCE_CONFIDENCE_FACTOR
                logger.warning(
                    "Extreme signal divergence -- confidence halved",
                    probability_range=round(probability_range, 4),
                    min_probability=min_prob,
                    max_probability=max_prob,
                    undamped_confidence=round(undamped, 4),
                    confidence=round(confidence, 4),
                )

            baseline_count = sum(1 for s in signals if s.category is AgentCategory.BASELINE)
            metadata = FusionMetadata(
                baseline_agent_count=baseline_count,
                advanced_agent_count=len(signals) - baseline_count,
                data_quality=data_quality,
                extreme_divergence=extreme_divergence,
                probability_range=probability_range,
                undamped_confidence=undamped,
            )

            fused = FusedSignal(
                fair_probability=fair_probability,
                confidence=confidence,
                signal_alignment=alignment,
                conflicting_signals=conflicts,
                contributing_agents=[s.agent_name for s in signals],
                weights=dict(weights),
                metadata=metadata,
            )

            logger.info(
                "Fusion complete",
                agents=len(signals),
                probability=round(fair_probability, 4),
                confidence=round(confidence, 4),
                alignment=round(alignment, 4),
                conflicts=len(conflicts),
                data_quality=round(data_quality, 4),
            )

            return FusionResult(
                fused_signal=fused,
                weighting=weighting,
                audit=AuditEntry(
                    stage=STAGE_SIGNAL_FUSION,
                    success=True,
                    data={
                        "agent_count": len(signals),
                        "baseline_agent_count": metadata.baseline_agent_count,
                        "advanced_agent_count": metadata.advanced_agent_count,
                        "fair_probability": fair_probability,
                        "confidence": confidence,
                        "undamped_confidence": undamped,
                        "signal_alignment": alignment,
                        "conflict_count": len(conflicts),
                        "conflicts": [
                            {"agent1": c.agent1, "agent2": c.agent2, "disagreement": c.disagreement}
                            for c in conflicts
                        ],
                        "data_quality": data_quality,
                        "extreme_divergence": extreme_divergence,
                        "probability_range": probability_range,
                        "weights": dict(weights),
                        "raw_weights": dict(weighting.raw_weights),
                        "weighting_fallback": weighting.fallback_reason,
                        "duplicate_signals": duplicates,
                        "duration": round(time.time() - start, 4),
                    },
                ),
            )

        except Exception as exc:
            logger.error("Signal fusion failed", error=str(exc), exc_info=True)
            return FusionResult(
                fused_signal=None,
                error=str(exc),
                reason="Signal fusion failed",
                audit=AuditEntry(
                    stage=STAGE_SIGNAL_FUSION,
                    success=False,
                    data={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration": round(time.time() - start, 4),
                    },
                ),
            )

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------
    @staticmethod
    def unique_signals(signals: Sequence[AgentSignal]) -> Tuple[List[AgentSignal], List[str]]:
        """One signal per agent name (first wins); also returns the dropped names."""
        unique: List[AgentSignal] = []
        duplicates: List[str] = []
        seen = set()
        for signal in signals:
            if signal.agent_name in seen:
                duplicates.append(signal.agent_name)
                continue
            seen.add(signal.agent_name)
            unique.append(signal)
        if duplicates:
            logger.warning("Dropped duplicate agent signals before fusion", agents=duplicates)
        return unique, duplicates

    @staticmethod
    def weighted_probability(signals: Sequence[AgentSignal], weights: Mapping[str, float]) -> float:
        total = sum(s.fair_probability * weights.get(s.agent_name, 0.0) for s in signals)
        return max(0.0, min(1.0, total))

    @staticmethod
    def assess_data_quality(
        signals: Sequence[AgentSignal],
        market: Optional[MarketContext],
        now: float,
    ) -> float:
        """
        Mean of the available quality factors.

        Factor 1 is mean agent confidence; factor 2 is mean source freshness,
        each source scored ``max(0, 1 - age / 1h)``.
        """
        if not signals:
            return DEFAULT_DATA_QUALITY

        factors = [sum(s.confidence for s in signals) / len(signals)]

        if market is not None and market.data_freshness:
            scores = []
            for fetched_at in market.data_freshness.values():
                age = now - fetched_at
                scores.append(max(0.0, min(1.0, 1.0 - age / FRESHNESS_WINDOW_SECONDS)))
            factors.append(sum(scores) / len(scores))

        return sum(factors) / len(factors)

    def calculate_fusion_confidence(
        self,
        signals: Sequence[AgentSignal],
        weights: Mapping[str, float],
        alignment: float,
        data_quality: float,
    ) -> float:
        base = sum(s.confidence * weights.get(s.agent_name, 0.0) for s in signals)
        alignment_bonus = alignment * self.settings.signal_fusion.alignment_bonus
        quality_penalty = (1.0 - data_quality) * QUALITY_PENALTY_WEIGHT
        return max(0.0, min(1.0, base + alignment_bonus - quality_penalty))
