"""
Unit tests for domain models and Settings.
"""

import pytest

from config import Settings
from src.personalization.models import (
    BehaviorTarget,
    EngineConfig,
    MemoryRecord,
    ReviewType,
    Scope,
    TrustLevel,
    unwrap_value,
    wrap_value,
)


class TestClamping:
    def test_target_value_and_confidence_clamped(self):
        target = BehaviorTarget(
            target_id="t",
            parameter_id="P",
            scope=Scope.SYSTEM,
            target_value=-0.4,
            confidence=3.0,
        )

        assert target.target_value == 0.0
        assert target.confidence == 1.0

    def test_memory_confidence_clamped(self):
        assert MemoryRecord(category="FACT", key="k", value="v", confidence=1.5).confidence == 1.0


class TestAttributeValues:
    def test_bool_is_not_a_number(self):
        assert unwrap_value(wrap_value(True)) is True
        assert type(wrap_value(True)).__name__ == "BooleanValue"

    def test_unsupported_value_rejected(self):
        with pytest.raises(TypeError):
            wrap_value(object())


class TestEnums:
    def test_review_intensity_order(self):
        assert [t.intensity for t in ReviewType] == [0, 1, 2, 3]
        assert ReviewType.QUICK_RECALL.intensity < ReviewType.REINTRODUCE.intensity

    def test_trust_rank_and_display(self):
        assert TrustLevel.REGULATORY_STANDARD.rank == 5
        assert TrustLevel.UNVERIFIED.rank == 0
        assert TrustLevel.EXPERT_CURATED.display_name == "Expert Curated"

    def test_scope_requires_entity(self):
        assert Scope.PLAYBOOK.requires_entity is True
        assert Scope.SYSTEM.requires_entity is False


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()

        assert config.high_threshold == pytest.approx(0.65)
        assert config.memories_per_category == 5
        assert config.review_schedule.deep_review == 7
        assert config.trust_weights[TrustLevel.ACCREDITED_MATERIAL] == pytest.approx(0.95)

    def test_inverted_thresholds_rejected(self):
        with pytest.raises(ValueError):
            EngineConfig(high_threshold=0.3, low_threshold=0.6)

    def test_partial_trust_weights_merged_over_defaults(self):
        config = EngineConfig(trust_weights={"EXPERT_CURATED": 0.9})

        assert config.trust_weights[TrustLevel.EXPERT_CURATED] == pytest.approx(0.9)
        assert config.trust_weights[TrustLevel.UNVERIFIED] == pytest.approx(0.05)


class TestSettings:
    def test_engine_config_from_settings(self):
        settings = Settings(_env_file=None, memories_per_category=3, review_application_days=2)

        config = settings.get_engine_config()

        assert config.memories_per_category == 3
        assert config.review_schedule.application == 2
        assert config.trust_weights[TrustLevel.PUBLISHED_REFERENCE] == pytest.approx(0.80)

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("HIGH_THRESHOLD", "0.8")

        assert Settings(_env_file=None).high_threshold == pytest.approx(0.8)


class TestLogging:
    def test_configure_logging_installs_single_handler(self):
        import io

        from loguru import logger

        from src.personalization.logging_setup import configure_logging

        stream = io.StringIO()
        handler_id = configure_logging("warning", sink=stream)
        try:
            logger.info("hidden")
            logger.warning("shown")
        finally:
            logger.remove(handler_id)

        output = stream.getvalue()
        assert "shown" in output
        assert "hidden" not in output
