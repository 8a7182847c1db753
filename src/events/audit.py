"""
Structured audit records for the analysis pipeline.

Every stage returns an ``AuditEntry`` on both success and failure paths. The
payload carries every intermediate number needed to reconstruct the stage's
output (weights, alignment, disagreement index, divergence flag, edge, EV).
Where the entries end up (log stream, database, file) is the caller's
choice; ``AuditTrail.emit`` writes them to the structured logger.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from src.utils.logging_setup import TradingLoggerMixin

# Canonical stage names
STAGE_SIGNAL_INTAKE = "signal_intake"
STAGE_SIGNAL_FUSION = "agent_signal_fusion"
STAGE_CONSENSUS = "consensus_engine"
STAGE_RECOMMENDATION = "recommendation_generation"

ALL_STAGES: Set[str] = {
    STAGE_SIGNAL_INTAKE,
    STAGE_SIGNAL_FUSION,
    STAGE_CONSENSUS,
    STAGE_RECOMMENDATION,
}


@dataclass(frozen=True)
class AuditEntry:
    """
    One stage's audit record.

    Attributes:
        stage: Canonical stage name (e.g. "consensus_engine").
        success: Whether the stage produced its output.
        data: Stage-specific payload of intermediate values.
        timestamp: Epoch seconds when the entry was created (auto-populated).
    """
    stage: str
    success: bool
    data: Dict[str, Any]
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "success": self.success,
            "timestamp": self.timestamp,
            "data": self.data,
        }


class AuditTrail(TradingLoggerMixin):
    """Ordered audit entries for one market's analysis cycle."""

    def __init__(self, market_id: Optional[str] = None, entries: Optional[List[AuditEntry]] = None):
        self.market_id = market_id
        self.entries: List[AuditEntry] = list(entries or [])

    def add(self, entry: AuditEntry) -> AuditEntry:
        self.entries.append(entry)
        return entry

    def for_stage(self, stage: str) -> Optional[AuditEntry]:
        """Most recent entry for *stage*, if any."""
        for entry in reversed(self.entries):
            if entry.stage == stage:
                return entry
        return None

    @property
    def succeeded(self) -> bool:
        return all(entry.success for entry in self.entries)

    def to_list(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries]

    def emit(self) -> None:
        """Write every entry to the structured log."""
        for entry in self.entries:
            log = self.logger.info if entry.success else self.logger.warning
            log(
                "Audit entry",
                market_id=self.market_id,
                stage=entry.stage,
                success=entry.success,
                entry_timestamp=entry.timestamp,
                **{f"data_{key}": value for key, value in entry.data.items()},
            )
