"""Tests for the signal weighting engine."""

from unittest.mock import MagicMock

import pytest

from src.agents.market_context import AgentPerformance, MarketContext
from src.agents.signals import AgentCategory
from src.agents.weighting import SignalWeightingEngine, calculate_weights

NOW = 100_000.0


class TestNormalisation:
    """Weights are non-negative and sum to one."""

    def test_empty_signals(self):
        result = SignalWeightingEngine().calculate_weights([])
        assert result.weights == {}
        assert result.used_fallback

    def test_weights_sum_to_one(self, make_signal):
        signals = [
            make_signal("polling_intelligence", 0.6, confidence=0.9),
            make_signal("breaking_news", 0.55, confidence=0.4),
            make_signal("momentum", 0.7, confidence=0.6),
            make_signal("probability_baseline", 0.5, confidence=0.2),
        ]
        market = MarketContext("M", 0.5, liquidity_score=3.0, data_freshness={"news": NOW - 7200})
        weights = calculate_weights(signals, market=market, now=NOW)
        assert sum(weights.values()) == pytest.approx(1.0)
        assert all(w >= 0 for w in weights.values())
        assert set(weights) == {s.agent_name for s in signals}

    def test_base_weights_without_context(self, make_signal, fresh_settings):
        fresh_settings.signal_fusion.context_adjustments = False
        signals = [make_signal("polling_intelligence", 0.6), make_signal("probability_baseline", 0.5)]
        result = SignalWeightingEngine(fresh_settings).calculate_weights(signals, now=NOW)
        assert result.weights["polling_intelligence"] == pytest.approx(0.6)
        assert result.weights["probability_baseline"] == pytest.approx(0.4)

    def test_zero_weights_fall_back_to_equal(self, make_signal, fresh_settings):
        fresh_settings.signal_fusion.base_weights = {c.value: 0.0 for c in AgentCategory}
        signals = [make_signal("a", 0.6), make_signal("b", 0.4), make_signal("c", 0.5)]
        result = SignalWeightingEngine(fresh_settings).calculate_weights(signals, now=NOW)
        assert result.fallback_reason == "all weights are zero"
        assert all(w == pytest.approx(1 / 3) for w in result.weights.values())


class TestContextMultipliers:
    """Confidence, freshness, liquidity and performance adjustments."""

    def test_confidence_multiplier(self, make_signal):
        signals = [make_signal("a", 0.5, confidence=1.0), make_signal("b", 0.5, confidence=0.0)]
        result = SignalWeightingEngine().calculate_weights(signals, now=NOW)
        assert result.raw_weights["a"] == pytest.approx(1.2)
        assert result.raw_weights["b"] == pytest.approx(0.7)

    def test_fresh_data_not_penalised(self):
        market = MarketContext("M", 0.5, data_freshness={"news": NOW - 600})
        assert SignalWeightingEngine.freshness_multiplier(
            AgentCategory.EVENT_INTELLIGENCE, market, NOW
        ) == 1.0

    def test_stale_data_penalised(self):
        market = MarketContext("M", 0.5, data_freshness={"news": NOW - 7200})
        assert SignalWeightingEngine.freshness_multiplier(
            AgentCategory.SENTIMENT_NARRATIVE, market, NOW
        ) == pytest.approx(1 / 1.4)

    def test_staleness_is_capped(self):
        market = MarketContext("M", 0.5, data_freshness={"polling": NOW - 36_000})
        assert SignalWeightingEngine.freshness_multiplier(
            AgentCategory.POLLING_STATISTICAL, market, NOW
        ) == pytest.approx(1 / 1.6)

    def test_freshness_ignores_unrelated_categories(self):
        market = MarketContext("M", 0.5, data_freshness={"news": NOW - 36_000})
        assert SignalWeightingEngine.freshness_multiplier(AgentCategory.BASELINE, market, NOW) == 1.0

    @pytest.mark.parametrize("score,expected", [(0.0, 0.5), (2.0, 0.7), (4.9, 0.99), (6.0, 1.0)])
    def test_liquidity_multiplier(self, score, expected):
        market = MarketContext("M", 0.5, liquidity_score=score)
        assert SignalWeightingEngine.liquidity_multiplier(
            AgentCategory.PRICE_ACTION, market
        ) == pytest.approx(expected)

    def test_liquidity_only_affects_price_action(self):
        market = MarketContext("M", 0.5, liquidity_score=0.0)
        assert SignalWeightingEngine.liquidity_multiplier(AgentCategory.BASELINE, market) == 1.0

    def test_performance_disabled_by_default(self):
        perf = {"a": AgentPerformance("a", 50, 0.9)}
        assert SignalWeightingEngine().performance_multiplier("a", perf) == 1.0

    @pytest.mark.parametrize("accuracy,expected", [(0.0, 0.5), (0.2, 0.7), (0.5, 1.0), (0.9, 1.4), (1.0, 1.5)])
    def test_performance_multiplier(self, fresh_settings, accuracy, expected):
        fresh_settings.performance_tracking.enabled = True
        perf = {"a": AgentPerformance("a", 50, accuracy)}
        engine = SignalWeightingEngine(fresh_settings)
        assert engine.performance_multiplier("a", perf) == pytest.approx(expected)

    def test_performance_needs_minimum_sample(self, fresh_settings):
        fresh_settings.performance_tracking.enabled = True
        perf = {"a": AgentPerformance("a", 3, 0.95)}
        assert SignalWeightingEngine(fresh_settings).performance_multiplier("a", perf) == 1.0

class TestWeightingFallback:
    """Unexpected failures fall back to equal weights instead of raising."""

    def test_non_finite_base_weight(self, make_signal, fresh_settings):
        fresh_settings.signal_fusion.base_weights = {c.value: float("inf") for c in AgentCategory}
        signals = [make_signal("a", 0.6), make_signal("b", 0.4)]
        result = SignalWeightingEngine(fresh_settings).calculate_weights(signals, now=NOW)

        assert result.used_fallback
        assert result.fallback_reason.startswith("weight calculation failed")
        assert result.weights == {"a": pytest.approx(0.5), "b": pytest.approx(0.5)}
        assert sum(result.weights.values()) == pytest.approx(1.0)

    def test_performance_lookup_error(self, make_signal, fresh_settings):
        fresh_settings.performance_tracking.enabled = True
        performance = MagicMock()
        performance.get.side_effect = RuntimeError("db down")
        signals = [make_signal("a", 0.6), make_signal("b", 0.4), make_signal("c", 0.5)]
        result = SignalWeightingEngine(fresh_settings).calculate_weights(
            signals, performance=performance, now=NOW
        )

        assert result.fallback_reason == "weight calculation failed: db down"
        assert all(w == pytest.approx(1 / 3) for w in result.weights.values())
        assert sum(result.weights.values()) == pytest.approx(1.0)
