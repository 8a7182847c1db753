"""
Trade Decision

Converts a consensus probability and the current market price into a
``TradeRecommendation``:

    edge   = consensus - market
    side   = LONG_YES if edge > 0 else LONG_NO
    price  = market (YES) or 1 - market (NO)
    fee    = rate * price * (1 - price)        Kalshi taker fee per share
    EV     = 100 * (win_prob - price - fee) / price   dollars per $100

A trade is only recommended when |edge| clears the minimum threshold AND
the EV is strictly positive. Everything else is NO_TRADE.
"""

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from src.agents.consensus import ConsensusProbability, is_efficiently_priced
from src.agents.debate import Thesis
from src.agents.errors import ConsensusErrorType, ConsensusFailure
from src.agents.market_context import MarketContext
from src.config.settings import Settings, settings
from src.events.audit import STAGE_RECOMMENDATION, AuditEntry
from src.utils.logging_setup import get_trading_logger

logger = get_trading_logger("trade_decision")

ENTRY_BUFFER = 0.02
EDGE_TOLERANCE = 1e-9


# ============================================================
# Data structures
# ============================================================

class TradeAction(str, Enum):
    LONG_YES = "LONG_YES"
    LONG_NO = "LONG_NO"
    NO_TRADE = "NO_TRADE"


class LiquidityRisk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class PriceZone:
    """Closed price interval within [0, 1]."""
    low: float
    high: float

    def __post_init__(self):
        if not 0.0 <= self.low <= self.high <= 1.0:
            raise ValueError(f"invalid price zone: [{self.low}, {self.high}]")


EMPTY_ZONE = PriceZone(0.0, 0.0)


@dataclass(frozen=True)
class TradeExplanation:
    summary: str
    core_thesis: str
    key_catalysts: Tuple[str, ...] = ()
    failure_scenarios: Tuple[str, ...] = ()
    uncertainty_note: Optional[str] = None


@dataclass(frozen=True)
class TradeMetadata:
    consensus_probability: float
    market_probability: float
    edge: float                         # |consensus - market|
    confidence_band: Tuple[float, float]
    disagreement_index: float
    efficiently_priced: bool


@dataclass(frozen=True)
class TradeRecommendation:
    market_id: str
    action: TradeAction
    entry_zone: PriceZone
    target_zone: PriceZone
    expected_value: float               # dollars per $100 invested
    win_probability: float
    liquidity_risk: LiquidityRisk
    explanation: TradeExplanation
    metadata: TradeMetadata


@dataclass(frozen=True)
class RecommendationResult:
    """``error`` is set (NO_EDGE) when the edge never cleared the threshold."""
    recommendation: TradeRecommendation
    audit: AuditEntry
    error: Optional[ConsensusFailure] = field(default=None)


# ============================================================
# Pricing helpers
# ============================================================

def kalshi_taker_fee(price: float, rate: float = 0.07) -> float:
    """Taker fee per $1 contract bought at *price* (0-1)."""
    return rate * price * (1 - price)


def expected_value(win_probability: float, price: float, fee_rate: float = 0.07) -> float:
    """Expected profit per $100 invested, net of the taker fee."""
    if price <= 0:
        return 0.0
    fee = kalshi_taker_fee(price, fee_rate)
    return 100.0 * (win_probability - price - fee) / price


def entry_zone(price: float) -> PriceZone:
    return PriceZone(max(0.0, price - ENTRY_BUFFER), min(1.0, price + ENTRY_BUFFER))


def target_zone(band: Tuple[float, float], action: TradeAction) -> PriceZone:
    lower, upper = band
    if action is TradeAction.LONG_NO:
        return PriceZone(1.0 - upper, 1.0 - lower)
    return PriceZone(lower, upper)


def liquidity_risk(liquidity_score: float) -> LiquidityRisk:
    if liquidity_score < 5.0:
        return LiquidityRisk.HIGH
    if liquidity_score < 7.0:
        return LiquidityRisk.MEDIUM
    return LiquidityRisk.LOW


# ============================================================
# Recommendation engine
# ============================================================

class RecommendationEngine:
    """
    Usage::

        engine = RecommendationEngine()
        result = engine.recommend(consensus, market, bull=bull, bear=bear)
        result.recommendation.action
    """

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or settings

    def recommend(
        self,
        consensus: ConsensusProbability,
        market: MarketContext,
        bull: Optional[Thesis] = None,
        bear: Optional[Thesis] = None,
    ) -> RecommendationResult:
        start = time.time()
        cfg = self.settings.consensus

        q_yes = consensus.consensus_probability
        p_yes = market.market_probability
        signed_edge = q_yes - p_yes
        edge = abs(signed_edge)
        risk = liquidity_risk(market.liquidity_score)
        uncertainty = self._uncertainty_note(consensus)

        metadata = TradeMetadata(
            consensus_probability=q_yes,
            market_probability=p_yes,
            edge=edge,
            confidence_band=tuple(consensus.confidence_band),
            disagreement_index=consensus.disagreement_index,
            efficiently_priced=is_efficiently_priced(q_yes, p_yes),
        )

        # --- Edge gate ---
        # NaN prices fail closed
        if not edge + EDGE_TOLERANCE >= cfg.min_edge_threshold:
            reason = (
                f"Edge {edge * 100:.1f}% is below the minimum threshold of "
                f"{cfg.min_edge_threshold * 100:.1f}%"
            )
            logger.info("No trade: insufficient edge", market_id=market.market_id, edge=round(edge, 4))
            recommendation = TradeRecommendation(
                market_id=market.market_id,
                action=TradeAction.NO_TRADE,
                entry_zone=EMPTY_ZONE,
                target_zone=EMPTY_ZONE,
                expected_value=0.0,
                win_probability=0.0,
                liquidity_risk=risk,
                explanation=TradeExplanation(
                    summary=f"No trade recommended. {reason}.",
                    core_thesis="Market is efficiently priced with no significant edge.",
                    uncertainty_note=uncertainty,
                ),
                metadata=metadata,
            )
            return RecommendationResult(
                recommendation=recommendation,
                error=ConsensusFailure(ConsensusErrorType.NO_EDGE, reason),
                audit=AuditEntry(
                    stage=STAGE_RECOMMENDATION,
                    success=True,
                    data={
                        "action": TradeAction.NO_TRADE.value,
                        "reason": "Insufficient edge",
                        "edge": edge,
                        "threshold": cfg.min_edge_threshold,
                        "expected_value": 0.0,
                        "duration": round(time.time() - start, 4),
                    },
                ),
            )

        # --- Direction and pricing ---
        action = TradeAction.LONG_YES if signed_edge > 0 else TradeAction.LONG_NO
        if action is TradeAction.LONG_YES:
            price, win_probability = p_yes, q_yes
        else:
            price, win_probability = 1.0 - p_yes, 1.0 - q_yes

        ev = expected_value(win_probability, price, cfg.transaction_cost_rate)
        fee = kalshi_taker_fee(price, cfg.transaction_cost_rate)

        if not ev > 0:
            logger.info(
                "No trade: non-positive expected value",
                market_id=market.market_id,
                side=action.value,
                expected_value=round(ev, 4),
            )
            recommendation = TradeRecommendation(
                market_id=market.market_id,
                action=TradeAction.NO_TRADE,
                entry_zone=EMPTY_ZONE,
                target_zone=EMPTY_ZONE,
                expected_value=min(ev, 0.0) if math.isfinite(ev) else 0.0,
                win_probability=win_probability,
                liquidity_risk=risk,
                explanation=TradeExplanation(
                    summary=(
                        "No trade recommended. Expected value is not positive "
                        f"(${ev:.2f} per $100 invested after fees)."
                    ),
                    core_thesis="Trade has no positive expected value despite edge.",
                    uncertainty_note=uncertainty,
                ),
                metadata=metadata,
            )
            return RecommendationResult(
                recommendation=recommendation,
                audit=AuditEntry(
                    stage=STAGE_RECOMMENDATION,
                    success=True,
                    data={
                        "action": TradeAction.NO_TRADE.value,
                        "reason": "Non-positive expected value",
                        "considered_side": action.value,
                        "edge": edge,
                        "price": price,
                        "fee": fee,
                        "expected_value": ev,
                        "duration": round(time.time() - start, 4),
                    },
                ),
            )

        # --- Trade ---
        recommendation = TradeRecommendation(
            market_id=market.market_id,
            action=action,
            entry_zone=entry_zone(price),
            target_zone=target_zone(consensus.confidence_band, action),
            expected_value=ev,
            win_probability=win_probability,
            liquidity_risk=risk,
            explanation=self._explain(action, ev, edge, bull, bear, uncertainty),
            metadata=metadata,
        )

        logger.info(
            "Trade recommended",
            market_id=market.market_id,
            action=action.value,
            edge=round(edge, 4),
            expected_value=round(ev, 2),
            liquidity_risk=risk.value,
        )

        return RecommendationResult(
            recommendation=recommendation,
            audit=AuditEntry(
                stage=STAGE_RECOMMENDATION,
                success=True,
                data={
                    "action": action.value,
                    "edge": edge,
                    "price": price,
                    "fee": fee,
                    "expected_value": ev,
                    "win_probability": win_probability,
                    "liquidity_risk": risk.value,
                    "disagreement_index": consensus.disagreement_index,
                    "duration": round(time.time() - start, 4),
                },
            ),
        )

    # ------------------------------------------------------------------
    # Explanation
    # ------------------------------------------------------------------
    def _uncertainty_note(self, consensus: ConsensusProbability) -> Optional[str]:
        threshold = self.settings.consensus.high_disagreement_threshold
        if consensus.disagreement_index > threshold:
            return (
                "High uncertainty due to agent disagreement "
                f"(disagreement index {consensus.disagreement_index:.2f})"
            )
        return None

    @staticmethod
    def _explain(
        action: TradeAction,
        ev: float,
        edge: float,
        bull: Optional[Thesis],
        bear: Optional[Thesis],
        uncertainty: Optional[str],
    ) -> TradeExplanation:
        primary, secondary = (bull, bear) if action is TradeAction.LONG_YES else (bear, bull)
        side = "YES" if action is TradeAction.LONG_YES else "NO"

        core = None
        for thesis in (primary, secondary):
            if thesis is not None and thesis.core_argument.strip():
                core = thesis.core_argument
                break

        return TradeExplanation(
            summary=(
                f"Buy {side} shares. Edge: {edge * 100:.1f}%. "
                f"Expected value: ${ev:.2f} per $100 invested."
            ),
            core_thesis=core or "Market analysis indicates a trading opportunity.",
            key_catalysts=primary.catalysts if primary is not None else (),
            failure_scenarios=primary.failure_conditions if primary is not None else (),
            uncertainty_note=uncertainty,
        )
