"""Tests for disagreement analysis and signal fusion."""

from unittest.mock import MagicMock

import pytest

from src.agents.disagreement import (
    calculate_signal_alignment,
    identify_conflicts,
    population_std,
    probability_spread,
)
from src.agents.fusion import SignalFusionEngine
from src.agents.market_context import MarketContext
from src.events.audit import STAGE_SIGNAL_FUSION

NOW = 100_000.0


class TestDisagreement:
    """Conflicts, alignment and spread."""

    def test_population_std(self):
        assert population_std([]) == 0.0
        assert population_std([0.4, 0.4, 0.4]) == 0.0
        assert population_std([0.0, 1.0]) == pytest.approx(0.5)

    def test_conflicts_reported_once_per_pair(self, make_signal):
        signals = [make_signal("a", 0.2), make_signal("b", 0.5), make_signal("c", 0.8)]
        conflicts = identify_conflicts(signals, threshold=0.2)
        pairs = {(c.agent1, c.agent2) for c in conflicts}
        assert pairs == {("a", "b"), ("a", "c"), ("b", "c")}
        assert sorted(c.disagreement for c in conflicts) == pytest.approx([0.3, 0.3, 0.6])

    def test_small_gap_is_not_a_conflict(self, make_signal):
        signals = [make_signal("a", 0.5), make_signal("b", 0.6)]
        assert identify_conflicts(signals, threshold=0.2) == []

    def test_alignment_bounds(self, make_signal):
        assert calculate_signal_alignment([]) == 1.0
        assert calculate_signal_alignment([make_signal("a", 0.3)]) == 1.0
        same = [make_signal("a", 0.6), make_signal("b", 0.6)]
        assert calculate_signal_alignment(same) == 1.0
        split = [make_signal("a", 0.0), make_signal("b", 1.0), make_signal("c", 0.0), make_signal("d", 1.0)]
        assert calculate_signal_alignment(split) == 0.0

    def test_alignment_decreases_with_spread(self, make_signal):
        tight = [make_signal("a", 0.48), make_signal("b", 0.52)]
        wide = [make_signal("a", 0.30), make_signal("b", 0.70)]
        assert calculate_signal_alignment(tight) > calculate_signal_alignment(wide)

    def test_probability_spread(self, make_signal):
        low, high, spread = probability_spread([make_signal("a", 0.2), make_signal("b", 0.7)])
        assert (low, high) == (0.2, 0.7)
        assert spread == pytest.approx(0.5)


class TestSignalFusion:
    """End-to-end fusion of agent signals."""

    def test_aligned_signals(self, make_signal):
        signals = [make_signal("a", 0.60), make_signal("b", 0.62), make_signal("c", 0.58)]
        result = SignalFusionEngine().fuse(signals, now=NOW)

        assert result.success
        fused = result.fused_signal
        assert fused.fair_probability == pytest.approx(0.60)
        assert fused.signal_alignment == pytest.approx(0.967, abs=1e-3)
        assert fused.conflicting_signals == []
        assert fused.contributing_agents == ["a", "b", "c"]
        assert sum(fused.weights.values()) == pytest.approx(1.0)
        assert not fused.metadata.extreme_divergence
        assert fused.confidence == fused.metadata.undamped_confidence
        assert 0.0 <= fused.confidence <= 1.0

    def test_fusion_confidence_formula(self, make_signal):
        signals = [make_signal("a", 0.60), make_signal("b", 0.62), make_signal("c", 0.58)]
        fused = SignalFusionEngine().fuse(signals, now=NOW).fused_signal
        # base 0.8 + alignment bonus - (1 - data quality 0.8) * 0.3
        expected = 0.8 + fused.signal_alignment * 0.2 - 0.2 * 0.3
        assert fused.confidence == pytest.approx(expected)

    def test_extreme_divergence_halves_confidence(self, make_signal):
        signals = [make_signal("a", 0.10), make_signal("b", 0.85)]
        fused = SignalFusionEngine().fuse(signals, now=NOW).fused_signal

        assert fused.metadata.extreme_divergence
        assert fused.metadata.probability_range == pytest.approx(0.75)
        assert fused.confidence == pytest.approx(fused.metadata.undamped_confidence * 0.5)
        assert len(fused.conflicting_signals) == 1
        assert fused.conflicting_signals[0].disagreement == pytest.approx(0.75)

    def test_agent_counts(self, make_signal):
        signals = [make_signal("probability_baseline", 0.5), make_signal("momentum", 0.55)]
        meta = SignalFusionEngine().fuse(signals, now=NOW).fused_signal.metadata
        assert meta.baseline_agent_count == 1
        assert meta.advanced_agent_count == 1

    def test_no_signals(self):
        result = SignalFusionEngine().fuse([], now=NOW)
        assert not result.success
        assert result.reason
        assert result.audit.stage == STAGE_SIGNAL_FUSION
        assert result.audit.success is False

    def test_unexpected_error_is_contained(self, make_signal):
        weighting = MagicMock()
        weighting.calculate_weights.side_effect = RuntimeError("boom")
        engine = SignalFusionEngine(weighting_engine=weighting)
        result = engine.fuse([make_signal("a", 0.5), make_signal("b", 0.6)], now=NOW)
        assert not result.success
        assert result.error == "boom"
        assert result.audit.data["error_type"] == "RuntimeError"

    def test_repeated_agent_counts_once(self, make_signal):
        signals = [make_signal("a", 0.9), make_signal("a", 0.9), make_signal("b", 0.3)]
        result = SignalFusionEngine().fuse(signals, now=NOW)
        expected = SignalFusionEngine().fuse([make_signal("a", 0.9), make_signal("b", 0.3)], now=NOW)

        fused = result.fused_signal
        assert fused.contributing_agents == ["a", "b"]
        assert sum(fused.weights.values()) == pytest.approx(1.0)
        assert fused.fair_probability == pytest.approx(expected.fused_signal.fair_probability)
        assert fused.fair_probability <= 0.9
        assert fused.metadata.advanced_agent_count + fused.metadata.baseline_agent_count == 2
        assert result.audit.data["agent_count"] == 2
        assert result.audit.data["duplicate_signals"] == ["a"]

    def test_first_signal_per_agent_wins(self, make_signal):
        signals = [make_signal("a", 0.8), make_signal("a", 0.2), make_signal("b", 0.6)]
        unique, duplicates = SignalFusionEngine.unique_signals(signals)
        assert [s.fair_probability for s in unique] == [0.8, 0.6]
        assert duplicates == ["a"]

    def test_audit_records_intermediate_values(self, make_signal):
        signals = [make_signal("a", 0.4), make_signal("b", 0.7)]
        audit = SignalFusionEngine().fuse(signals, now=NOW).audit
        assert audit.success
        for key in ("weights", "signal_alignment", "conflict_count", "extreme_divergence", "data_quality"):
            assert key in audit.data


class TestDataQuality:
    """Confidence and freshness factors."""

    def test_default_without_signals(self):
        assert SignalFusionEngine.assess_data_quality([], None, NOW) == 0.5

    def test_confidence_only(self, make_signal):
        signals = [make_signal("a", 0.5, confidence=0.6), make_signal("b", 0.5, confidence=1.0)]
        assert SignalFusionEngine.assess_data_quality(signals, None, NOW) == pytest.approx(0.8)

    def test_with_freshness(self, make_signal):
        signals = [make_signal("a", 0.5, confidence=0.8)]
        market = MarketContext("M", 0.5, data_freshness={"news": NOW, "polling": NOW - 7200})
        # freshness scores 1.0 and 0.0 -> 0.5; mean with confidence 0.8
        assert SignalFusionEngine.assess_data_quality(signals, market, NOW) == pytest.approx(0.65)
