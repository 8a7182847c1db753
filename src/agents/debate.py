"""
Bull vs Bear debate records.

The thesis builders and the cross-examination run upstream; this module
holds the data they produce and the scoring that turns a list of debate
tests into a ``DebateRecord``:

    tests 0, 2, 4, ... challenge the bull thesis
    tests 1, 3, 5, ... challenge the bear thesis

Each side's score is the mean of its test scores (0 when it has none).
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple

from src.agents.signals import SignalDirection
from src.utils.logging_setup import get_trading_logger

logger = get_trading_logger("debate")

PROBABILITY_GAP_THRESHOLD = 0.20


class DebateTestType(str, Enum):
    EVIDENCE = "evidence"
    CAUSALITY = "causality"
    TIMING = "timing"
    LIQUIDITY = "liquidity"
    TAIL_RISK = "tail-risk"


class DebateOutcome(str, Enum):
    SURVIVED = "survived"
    WEAKENED = "weakened"
    REFUTED = "refuted"


@dataclass(frozen=True)
class Thesis:
    """One side's argument for where the market should trade."""
    direction: SignalDirection
    fair_probability: float
    market_probability: float
    core_argument: str
    catalysts: Tuple[str, ...] = ()
    failure_conditions: Tuple[str, ...] = ()
    supporting_signals: Tuple[str, ...] = ()

    def __post_init__(self):
        direction = SignalDirection(self.direction)
        if direction is SignalDirection.NEUTRAL:
            raise ValueError("thesis direction must be YES or NO")
        object.__setattr__(self, "direction", direction)
        for name in ("catalysts", "failure_conditions", "supporting_signals"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    @property
    def edge(self) -> float:
        return abs(self.fair_probability - self.market_probability)


@dataclass(frozen=True)
class DebateTest:
    test_type: DebateTestType
    claim: str
    challenge: str
    outcome: DebateOutcome
    score: float                        # -1 (demolished) .. 1 (stands firm)

    def __post_init__(self):
        object.__setattr__(self, "test_type", DebateTestType(self.test_type))
        object.__setattr__(self, "outcome", DebateOutcome(self.outcome))
        if not -1.0 <= self.score <= 1.0:
            raise ValueError(f"debate test score out of range: {self.score}")


@dataclass(frozen=True)
class DebateRecord:
    tests: Tuple[DebateTest, ...] = ()
    bull_score: float = 0.0
    bear_score: float = 0.0
    key_disagreements: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "tests", tuple(self.tests))
        object.__setattr__(self, "key_disagreements", tuple(self.key_disagreements))


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def calculate_debate_scores(tests: Sequence[DebateTest]) -> Tuple[float, float]:
    """Return ``(bull_score, bear_score)``."""
    bull = [test.score for test in tests[0::2]]
    bear = [test.score for test in tests[1::2]]
    return _mean(bull), _mean(bear)


def identify_key_disagreements(
    bull: Thesis,
    bear: Thesis,
    tests: Sequence[DebateTest],
) -> List[str]:
    disagreements: List[str] = []

    gap = abs(bull.fair_probability - bear.fair_probability)
    if gap > PROBABILITY_GAP_THRESHOLD:
        disagreements.append(
            f"Significant probability disagreement: Bull {bull.fair_probability * 100:.1f}% "
            f"vs Bear {bear.fair_probability * 100:.1f}%"
        )

    refuted = sum(1 for test in tests if test.outcome is DebateOutcome.REFUTED)
    if refuted:
        disagreements.append(f"{refuted} claims were refuted during cross-examination")

    bull_catalysts, bear_catalysts = set(bull.catalysts), set(bear.catalysts)
    if bull_catalysts and bear_catalysts and bull_catalysts.isdisjoint(bear_catalysts):
        disagreements.append("Theses identify different key catalysts")

    return disagreements


def build_debate_record(bull: Thesis, bear: Thesis, tests: Sequence[DebateTest]) -> DebateRecord:
    bull_score, bear_score = calculate_debate_scores(tests)
    disagreements = identify_key_disagreements(bull, bear, tests)
    logger.info(
        "Debate scored",
        tests=len(tests),
        bull_score=round(bull_score, 4),
        bear_score=round(bear_score, 4),
        key_disagreements=len(disagreements),
    )
    return DebateRecord(
        tests=tuple(tests),
        bull_score=bull_score,
        bear_score=bear_score,
        key_disagreements=tuple(disagreements),
    )
