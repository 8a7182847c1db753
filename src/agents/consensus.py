"""
Consensus engine.

Turns the bull/bear debate outcome plus the cycle's agent signals into a
``ConsensusProbability``:

    consensus  = debate-score-weighted mean of bull YES and (1 - bear NO)
    index      = population std of the agents' fair probabilities
    band       = consensus +/- 0.05 * (1 + 3 * index)
    regime     = high-confidence (<0.10), moderate (<0.20), high-uncertainty

An index above 0.30 is a hard stop. Failures are returned as
``ConsensusFailure`` values, never raised.
"""

import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from src.agents.debate import DebateRecord, Thesis
from src.agents.disagreement import population_std
from src.agents.errors import ConsensusErrorType, ConsensusFailure
from src.agents.signals import AgentSignal
from src.config.settings import Settings, settings
from src.events.audit import STAGE_CONSENSUS, AuditEntry
from src.utils.logging_setup import get_trading_logger

logger = get_trading_logger("consensus")

MAX_DISAGREEMENT_INDEX = 0.30
BASE_BAND_WIDTH = 0.05
EFFICIENT_PRICING_EDGE = 0.03


class ProbabilityRegime(str, Enum):
    HIGH_CONFIDENCE = "high-confidence"
    MODERATE_CONFIDENCE = "moderate-confidence"
    HIGH_UNCERTAINTY = "high-uncertainty"


@dataclass(frozen=True)
class ConsensusProbability:
    consensus_probability: float
    confidence_band: Tuple[float, float]
    disagreement_index: float
    regime: ProbabilityRegime
    contributing_signals: Tuple[str, ...]


@dataclass(frozen=True)
class ConsensusResult:
    """Exactly one of ``consensus`` / ``failure`` is set."""
    audit: AuditEntry
    consensus: Optional[ConsensusProbability] = None
    failure: Optional[ConsensusFailure] = None

    @property
    def success(self) -> bool:
        return self.consensus is not None


# ======================================================================
# Calculation helpers
# ======================================================================

def weighted_consensus(
    bull_probability: float,
    bear_probability: float,
    bull_score: float,
    bear_score: float,
) -> float:
    """
    Weight each side's YES probability by ``debate score + 1``.

    The bear thesis argues NO, so its YES probability is ``1 - p``.
    """
    bull_score = 0.0 if math.isnan(bull_score) else bull_score
    bear_score = 0.0 if math.isnan(bear_score) else bear_score

    bull_weight = bull_score + 1.0
    bear_weight = bear_score + 1.0
    bear_yes = 1.0 - bear_probability

    total = bull_weight + bear_weight
    if total == 0:
        consensus = (bull_probability + bear_yes) / 2.0
    else:
        consensus = (bull_probability * bull_weight + bear_yes * bear_weight) / total

    if math.isnan(consensus):
        logger.warning("Consensus probability is NaN, defaulting to 0.5")
        return 0.5
    return max(0.0, min(1.0, consensus))


def confidence_band(consensus: float, disagreement_index: float) -> Tuple[float, float]:
    width = BASE_BAND_WIDTH * (1.0 + disagreement_index * 3.0)
    return max(0.0, consensus - width), min(1.0, consensus + width)


def classify_regime(disagreement_index: float) -> ProbabilityRegime:
    if disagreement_index < 0.10:
        return ProbabilityRegime.HIGH_CONFIDENCE
    if disagreement_index < 0.20:
        return ProbabilityRegime.MODERATE_CONFIDENCE
    return ProbabilityRegime.HIGH_UNCERTAINTY


def is_efficiently_priced(consensus: float, market_probability: float) -> bool:
    return abs(consensus - market_probability) < EFFICIENT_PRICING_EDGE


# ======================================================================
# Engine
# ======================================================================

class ConsensusEngine:
    """
    Usage::

        engine = ConsensusEngine()
        result = engine.calculate(signals, bull, bear, debate, market_probability=0.5)
        if result.success:
            result.consensus.consensus_probability
        else:
            result.failure.type   # ConsensusErrorType
    """

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or settings

    def calculate(
        self,
        signals: Sequence[AgentSignal],
        bull: Optional[Thesis],
        bear: Optional[Thesis],
        debate: Optional[DebateRecord],
        market_probability: Optional[float] = None,
    ) -> ConsensusResult:
        start = time.time()
        min_agents = self.settings.agents.min_agents_required

        if debate is None:
            return self._fail(
                ConsensusErrorType.INSUFFICIENT_DATA,
                "Debate record is required for consensus calculation",
                start,
                error="Missing debate record",
            )

        if len(signals) < min_agents:
            return self._fail(
                ConsensusErrorType.INSUFFICIENT_DATA,
                f"At least {min_agents} agent signals are required for consensus",
                start,
                error="Insufficient agent signals",
                signal_count=len(signals),
                min_required=min_agents,
            )

        if bull is None or bear is None:
            return self._fail(
                ConsensusErrorType.INSUFFICIENT_DATA,
                "Bull and bear theses are required for consensus calculation",
                start,
                error="Missing theses",
                has_bull_thesis=bull is not None,
                has_bear_thesis=bear is not None,
            )

        try:
            consensus = weighted_consensus(
                bull.fair_probability,
                bear.fair_probability,
                debate.bull_score,
                debate.bear_score,
            )
            index = population_std([s.fair_probability for s in signals])

            if index > MAX_DISAGREEMENT_INDEX:
                return self._fail(
                    ConsensusErrorType.CONSENSUS_FAILED,
                    f"Agent disagreement too high: {index * 100:.1f}%",
                    start,
                    error="High disagreement",
                    disagreement_index=index,
                    threshold=MAX_DISAGREEMENT_INDEX,
                )

            band = confidence_band(consensus, index)
            regime = classify_regime(index)
            result = ConsensusProbability(
                consensus_probability=consensus,
                confidence_band=band,
                disagreement_index=index,
                regime=regime,
                contributing_signals=tuple(s.agent_name for s in signals),
            )

            data = {
                "consensus_probability": consensus,
                "confidence_band": list(band),
                "disagreement_index": index,
                "regime": regime.value,
                "bull_score": debate.bull_score,
                "bear_score": debate.bear_score,
                "signal_count": len(signals),
                "duration": round(time.time() - start, 4),
            }
            if market_probability is not None:
                data["market_probability"] = market_probability
                data["edge"] = abs(consensus - market_probability)
                data["efficiently_priced"] = is_efficiently_priced(consensus, market_probability)

            logger.info(
                "Consensus calculated",
                probability=round(consensus, 4),
                disagreement_index=round(index, 4),
                regime=regime.value,
            )
            return ConsensusResult(
                consensus=result,
                audit=AuditEntry(stage=STAGE_CONSENSUS, success=True, data=data),
            )

        except Exception as exc:
            logger.error("Consensus calculation failed", error=str(exc), exc_info=True)
            return self._fail(
                ConsensusErrorType.CONSENSUS_FAILED,
                str(exc) or "Unknown error during consensus calculation",
                start,
                error=type(exc).__name__,
            )

    @staticmethod
    def _fail(
        error_type: ConsensusErrorType,
        reason: str,
        start: float,
        **data,
    ) -> ConsensusResult:
        logger.warning("Consensus not reached", error_type=error_type.value, reason=reason)
        payload = {"error_type": error_type.value, "reason": reason}
        payload.update(data)
        payload["duration"] = round(time.time() - start, 4)
        return ConsensusResult(
            failure=ConsensusFailure(type=error_type, reason=reason),
            audit=AuditEntry(stage=STAGE_CONSENSUS, success=False, data=payload),
        )
