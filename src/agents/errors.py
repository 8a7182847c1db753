"""
Error taxonomy for the fusion -> consensus -> decision pipeline.

Consensus-stage problems are *returned* as ``ConsensusFailure`` values so that
callers can tell "no trade recommended" apart from "pipeline failure".
Only signal intake raises (``SignalValidationError``), and the pipeline turns
those into rejected-signal reasons before fusion runs.
"""

from dataclasses import dataclass
from enum import Enum


class ConsensusErrorType(str, Enum):
    """Typed failure kinds surfaced by the consensus and decision stages."""

    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    CONSENSUS_FAILED = "CONSENSUS_FAILED"
    NO_EDGE = "NO_EDGE"


@dataclass(frozen=True)
class ConsensusFailure:
    """A consensus that could not be produced, and why."""
    type: ConsensusErrorType
    reason: str


class SignalValidationError(ValueError):
    """Raised when an agent signal does not satisfy the signal schema."""

    def __init__(self, agent_name: str, message: str):
        self.agent_name = agent_name
        self.message = message
        super().__init__(f"{agent_name or '<unnamed>'}: {message}")
