"""
Market-side inputs to an analysis cycle.

These come from the market-ingestion collaborator and the performance
tracker; the engine only reads them.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

# One hour, in seconds; freshness is measured against this window
FRESHNESS_WINDOW_SECONDS = 3600.0


@dataclass(frozen=True)
class MarketContext:
    """Snapshot of one market at analysis time."""
    market_id: str
    market_probability: float           # Market-implied YES probability (0-1)
    liquidity_score: float = 10.0       # 0-10 scale
    bid_ask_spread: float = 0.0         # In cents
    volume_24h: float = 0.0
    # Source name ("news", "polling", "social") -> epoch seconds of last fetch
    data_freshness: Dict[str, float] = field(default_factory=dict)
    question: str = ""

    def data_age(self, source: str, now: float) -> Optional[float]:
        """Seconds since *source* was refreshed, or None when unknown."""
        fetched_at = self.data_freshness.get(source)
        if fetched_at is None:
            return None
        return now - fetched_at


@dataclass(frozen=True)
class AgentPerformance:
    """Historical accuracy for one agent, computed over resolved markets."""
    agent_name: str
    total_analyses: int
    accuracy_score: float               # 0-1
