"""Shared fixtures for the fusion / consensus / decision tests."""

import pytest

from src.agents.debate import DebateRecord, Thesis
from src.agents.market_context import MarketContext
from src.agents.signals import AgentSignal, SignalDirection
from src.config.settings import Settings


def _signal(name, probability, confidence=0.8, direction=None, **kwargs):
    if direction is None:
        direction = SignalDirection.YES if probability >= 0.5 else SignalDirection.NO
    kwargs.setdefault("key_drivers", ("driver",))
    return AgentSignal(
        agent_name=name,
        confidence=confidence,
        direction=direction,
        fair_probability=probability,
        **kwargs,
    )


@pytest.fixture
def make_signal():
    """Factory: make_signal("name", 0.6, confidence=0.8)."""
    return _signal


@pytest.fixture
def fresh_settings():
    """Settings built from defaults, safe to mutate per test."""
    return Settings()


@pytest.fixture
def market():
    return MarketContext(market_id="TEST-MKT", market_probability=0.50, liquidity_score=8.0)


@pytest.fixture
def bull_thesis():
    return Thesis(
        direction=SignalDirection.YES,
        fair_probability=0.60,
        market_probability=0.50,
        core_argument="Polling momentum favours YES.",
        catalysts=("Debate on Oct 20",),
        failure_conditions=("Late scandal",),
        supporting_signals=("polling_intelligence",),
    )


@pytest.fixture
def bear_thesis():
    return Thesis(
        direction=SignalDirection.NO,
        fair_probability=0.40,
        market_probability=0.50,
        core_argument="Turnout models favour NO.",
        catalysts=("Turnout report",),
        failure_conditions=("Higher youth turnout",),
    )


@pytest.fixture
def neutral_debate():
    return DebateRecord(tests=(), bull_score=0.0, bear_score=0.0)
