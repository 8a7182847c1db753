"""
Analysis pipeline: signal intake -> fusion -> consensus -> trade decision.

One ``run_cycle`` call analyses one market. Stages never raise into the
caller; each contributes an ``AuditEntry`` to the cycle's trail, and a
consensus failure ends the cycle with a typed error and no recommendation.

``run_cycles`` analyses several independent markets concurrently. Cycles
share nothing but the read-only settings, so each one runs in a worker
thread.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence

from src.agents.consensus import ConsensusEngine, ConsensusProbability
from src.agents.debate import DebateRecord, Thesis
from src.agents.errors import ConsensusFailure
from src.agents.fusion import FusedSignal, SignalFusionEngine
from src.agents.market_context import AgentPerformance, MarketContext
from src.agents.signals import AgentSignal, accept_signals
from src.config.settings import Settings, settings
from src.events.audit import STAGE_RECOMMENDATION, STAGE_SIGNAL_INTAKE, AuditEntry, AuditTrail
from src.strategies.trade_decision import RecommendationEngine, TradeRecommendation
from src.utils.logging_setup import get_trading_logger, log_error_with_context

logger = get_trading_logger("pipeline")


@dataclass(frozen=True)
class AnalysisCycle:
    """Inputs for one market's analysis cycle."""
    signals: Sequence[AgentSignal]
    market: MarketContext
    bull: Optional[Thesis] = None
    bear: Optional[Thesis] = None
    debate: Optional[DebateRecord] = None
    performance: Optional[Mapping[str, AgentPerformance]] = None
    now: Optional[float] = None


@dataclass
class CycleResult:
    market_id: str
    audit: AuditTrail
    fused_signal: Optional[FusedSignal] = None
    consensus: Optional[ConsensusProbability] = None
    consensus_error: Optional[ConsensusFailure] = None
    recommendation: Optional[TradeRecommendation] = None
    accepted_signals: List[AgentSignal] = field(default_factory=list)
    rejected_signals: List[str] = field(default_factory=list)


class AnalysisPipeline:
    """
    Runs complete analysis cycles.

    Usage::

        pipeline = AnalysisPipeline()
        result = pipeline.run_cycle(signals, market, bull=bull, bear=bear, debate=debate)
        results = await pipeline.run_cycles([cycle_a, cycle_b])
    """

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or settings
        self.fusion = SignalFusionEngine(self.settings)
        self.consensus = ConsensusEngine(self.settings)
        self.recommender = RecommendationEngine(self.settings)

    # ------------------------------------------------------------------
    # Single cycle
    # ------------------------------------------------------------------
    def run_cycle(
        self,
        signals: Iterable[AgentSignal],
        market: MarketContext,
        bull: Optional[Thesis] = None,
        bear: Optional[Thesis] = None,
        debate: Optional[DebateRecord] = None,
        performance: Optional[Mapping[str, AgentPerformance]] = None,
        now: Optional[float] = None,
    ) -> CycleResult:
        trail = AuditTrail(market_id=market.market_id)
        result = CycleResult(market_id=market.market_id, audit=trail)

        # --- Intake ---
        accepted, rejected = accept_signals(signals)
        result.accepted_signals = accepted
        result.rejected_signals = rejected
        trail.add(AuditEntry(
            stage=STAGE_SIGNAL_INTAKE,
            success=bool(accepted),
            data={
                "accepted": [s.agent_name for s in accepted],
                "rejected": list(rejected),
            },
        ))

        # --- Fusion (failure does not stop the cycle) ---
        fusion = self.fusion.fuse(accepted, market=market, performance=performance, now=now)
        trail.add(fusion.audit)
        result.fused_signal = fusion.fused_signal

        # --- Consensus ---
        consensus = self.consensus.calculate(
            accepted, bull, bear, debate, market_probability=market.market_probability,
        )
        trail.add(consensus.audit)
        if not consensus.success:
            result.consensus_error = consensus.failure
            logger.info(
                "Cycle ended without consensus",
                market_id=market.market_id,
                error_type=consensus.failure.type.value,
                reason=consensus.failure.reason,
            )
            return result
        result.consensus = consensus.consensus

        # --- Trade decision ---
        try:
            decision = self.recommender.recommend(consensus.consensus, market, bull=bull, bear=bear)
        except Exception as exc:
            log_error_with_context(logger, "Recommendation failed", exc, market_id=market.market_id)
            trail.add(AuditEntry(
                stage=STAGE_RECOMMENDATION,
                success=False,
                data={"error": str(exc), "error_type": type(exc).__name__},
            ))
            return result

        trail.add(decision.audit)
        result.recommendation = decision.recommendation
        if decision.error is not None:
            result.consensus_error = decision.error

        logger.info(
            "Cycle complete",
            market_id=market.market_id,
            action=decision.recommendation.action.value,
            agents=len(accepted),
            rejected=len(rejected),
        )
        return result

    # ------------------------------------------------------------------
    # Many cycles
    # ------------------------------------------------------------------
    async def run_cycles(self, cycles: Sequence[AnalysisCycle]) -> List[CycleResult]:
        """Run independent cycles concurrently; results keep input order."""
        tasks = [
            asyncio.to_thread(
                self.run_cycle,
                cycle.signals,
                cycle.market,
                cycle.bull,
                cycle.bear,
                cycle.debate,
                cycle.performance,
                cycle.now,
            )
            for cycle in cycles
        ]
        return list(await asyncio.gather(*tasks))
