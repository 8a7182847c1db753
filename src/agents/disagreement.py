"""
Disagreement analysis across agent signals.

Two signals conflict when their fair probabilities differ by more than the
conflict threshold. Alignment summarises overall dispersion: 1.0 when every
agent agrees, 0.0 when the population standard deviation reaches 0.5 (the
maximum possible for values in [0, 1]).
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from src.agents.signals import AgentSignal

DEFAULT_CONFLICT_THRESHOLD = 0.20


@dataclass(frozen=True)
class SignalConflict:
    """A pair of agents whose probability estimates diverge."""
    agent1: str
    agent2: str
    disagreement: float


def population_std(values: Sequence[float]) -> float:
    """Population standard deviation; 0.0 for an empty sequence."""
    if len(values) == 0 or min(values) == max(values):
        return 0.0
    return float(np.std(np.asarray(values, dtype=float)))


def identify_conflicts(
    signals: Sequence[AgentSignal],
    threshold: float = DEFAULT_CONFLICT_THRESHOLD,
) -> List[SignalConflict]:
    """Every unordered pair whose probability gap exceeds *threshold*, once."""
    conflicts: List[SignalConflict] = []
    for i in range(len(signals)):
        for j in range(i + 1, len(signals)):
            first, second = signals[i], signals[j]
            gap = abs(first.fair_probability - second.fair_probability)
            if gap > threshold:
                conflicts.append(SignalConflict(first.agent_name, second.agent_name, gap))
    return conflicts


def calculate_signal_alignment(signals: Sequence[AgentSignal]) -> float:
    """``max(0, 1 - 2 * sigma)``; 1.0 for zero or one signal."""
    if len(signals) <= 1:
        return 1.0
    sigma = population_std([s.fair_probability for s in signals])
    return max(0.0, 1.0 - sigma * 2.0)


def probability_spread(signals: Sequence[AgentSignal]) -> Tuple[float, float, float]:
    """Return ``(min, max, max - min)`` of the fair probabilities."""
    if not signals:
        return 0.0, 0.0, 0.0
    probabilities = [s.fair_probability for s in signals]
    low, high = min(probabilities), max(probabilities)
    return low, high, high - low
