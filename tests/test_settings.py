"""Tests for configuration, logging setup and audit records."""

import pytest

from src.config.settings import DEFAULT_BASE_WEIGHTS, Settings
from src.events.audit import STAGE_CONSENSUS, AuditEntry, AuditTrail
from src.utils.logging_setup import TradingLoggerMixin, get_trading_logger, setup_logging


class TestSettings:
    """Defaults, environment overrides and validation."""

    def test_defaults(self, monkeypatch):
        for name in ("MIN_EDGE_THRESHOLD", "MIN_AGENTS_REQUIRED", "SIGNAL_FUSION_BASE_WEIGHTS"):
            monkeypatch.delenv(name, raising=False)
        config = Settings()
        assert config.signal_fusion.conflict_threshold == 0.20
        assert config.signal_fusion.alignment_bonus == 0.20
        assert config.signal_fusion.base_weights == DEFAULT_BASE_WEIGHTS
        assert config.agents.min_agents_required == 2
        assert config.consensus.min_edge_threshold == 0.05
        assert config.consensus.high_disagreement_threshold == 0.15
        assert config.consensus.transaction_cost_rate == 0.07
        assert config.performance_tracking.enabled is False
        assert config.validate() is True

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("MIN_EDGE_THRESHOLD", "0.08")
        monkeypatch.setenv("MIN_AGENTS_REQUIRED", "3")
        monkeypatch.setenv("PERFORMANCE_TRACKING_ENABLED", "true")
        monkeypatch.setenv("SIGNAL_FUSION_BASE_WEIGHTS", '{"baseline": 0.5, "price_action": 2}')
        config = Settings()
        assert config.consensus.min_edge_threshold == 0.08
        assert config.agents.min_agents_required == 3
        assert config.performance_tracking.enabled is True
        assert config.signal_fusion.base_weights == {"baseline": 0.5, "price_action": 2.0}

    def test_invalid_base_weights_json(self, monkeypatch):
        monkeypatch.setenv("SIGNAL_FUSION_BASE_WEIGHTS", "[1, 2]")
        with pytest.raises(ValueError):
            Settings()

    def test_validate_rejects_out_of_range(self, fresh_settings):
        fresh_settings.signal_fusion.conflict_threshold = 2.0
        with pytest.raises(ValueError):
            fresh_settings.validate()

    def test_validate_rejects_negative_weight(self, fresh_settings):
        fresh_settings.signal_fusion.base_weights = {"baseline": -1.0}
        with pytest.raises(ValueError):
            fresh_settings.validate()

    def test_validate_rejects_zero_agents(self, fresh_settings):
        fresh_settings.agents.min_agents_required = 0
        with pytest.raises(ValueError):
            fresh_settings.validate()


class TestLogging:
    """Structured logger helpers."""

    def test_get_trading_logger(self):
        logger = get_trading_logger("test")
        logger.info("hello", key="value")

    def test_json_logs(self):
        setup_logging(log_level="DEBUG", json_logs=True)
        get_trading_logger("json_test").debug("event", n=1)
        setup_logging()

    def test_mixin_caches_logger(self):
        class Component(TradingLoggerMixin):
            pass

        component = Component()
        assert component.logger is component.logger


class TestAudit:
    """Audit entries and trails."""

    def test_entry_to_dict(self):
        entry = AuditEntry(stage=STAGE_CONSENSUS, success=True, data={"x": 1}, timestamp=5.0)
        assert entry.to_dict() == {"stage": STAGE_CONSENSUS, "success": True, "timestamp": 5.0, "data": {"x": 1}}

    def test_trail(self):
        trail = AuditTrail(market_id="M")
        trail.add(AuditEntry(stage="a", success=True, data={}))
        trail.add(AuditEntry(stage="a", success=False, data={"n": 2}))
        assert trail.for_stage("a").data == {"n": 2}
        assert trail.for_stage("missing") is None
        assert not trail.succeeded
        trail.emit()
