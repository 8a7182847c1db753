"""
Multi-agent signal fusion and consensus engine for prediction markets.

This package fuses independent agent signals into one probability, turns
the bull/bear debate into a consensus with a confidence band, and hands
the result to the trade decision stage.

The end-to-end pipeline lives in ``src.agents.pipeline`` and is imported
from there; it depends on ``src.strategies.trade_decision``, which in turn
imports this package.
"""

from src.agents.consensus import ConsensusEngine, ConsensusProbability, ProbabilityRegime
from src.agents.debate import DebateRecord, DebateTest, Thesis, build_debate_record
from src.agents.errors import ConsensusErrorType, ConsensusFailure, SignalValidationError
from src.agents.fusion import FusedSignal, SignalFusionEngine
from src.agents.market_context import AgentPerformance, MarketContext
from src.agents.signals import AgentCategory, AgentSignal, SignalDirection
from src.agents.weighting import SignalWeightingEngine

__all__ = [
    "AgentCategory",
    "AgentPerformance",
    "AgentSignal",
    "ConsensusEngine",
    "ConsensusErrorType",
    "ConsensusFailure",
    "ConsensusProbability",
    "DebateRecord",
    "DebateTest",
    "FusedSignal",
    "MarketContext",
    "ProbabilityRegime",
    "SignalDirection",
    "SignalFusionEngine",
    "SignalValidationError",
    "SignalWeightingEngine",
    "Thesis",
    "build_debate_record",
]
