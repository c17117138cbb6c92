"""
Configuration settings for the personalization state engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.personalization.models import EngineConfig, ReviewSchedule, TrustLevel


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Level Classification
    # ========================================
    high_threshold: float = Field(
        default=0.65,
        ge=0.0,
        le=1.0,
        description="Target values at or above this are classified HIGH",
    )
    low_threshold: float = Field(
        default=0.35,
        ge=0.0,
        le=1.0,
        description="Target values at or below this are classified LOW",
    )
    default_target_value: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Neutral value for parameters with no target in any scope",
    )

    # ========================================
    # Memories
    # ========================================
    memories_per_category: int = Field(
        default=5,
        ge=1,
        description="Maximum memories kept per category after deduplication",
    )

    # ========================================
    # Curriculum Progress
    # ========================================
    mastery_confirmation_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Numeric mastery attribute at or above this confirms a module",
    )
    interactions_per_module: int = Field(
        default=2,
        ge=1,
        description="Pacing assumption for the progress estimate when mastery is not tracked",
    )

    # ─── Review Schedule (days since last session) ──────────────────────────────
    review_reintroduce_days: int = Field(default=14, ge=1)
    review_deep_review_days: int = Field(default=7, ge=1)
    review_application_days: int = Field(default=3, ge=1)

    # ========================================
    # Content Trust
    # ========================================
    trust_weight_regulatory: float = Field(default=1.0, ge=0.0, le=1.0)
    trust_weight_accredited: float = Field(default=0.95, ge=0.0, le=1.0)
    trust_weight_published: float = Field(default=0.80, ge=0.0, le=1.0)
    trust_weight_expert: float = Field(default=0.60, ge=0.0, le=1.0)
    trust_weight_ai_assisted: float = Field(default=0.30, ge=0.0, le=1.0)
    trust_weight_unverified: float = Field(default=0.05, ge=0.0, le=1.0)
    certification_min_weight: float = Field(
        default=0.80,
        ge=0.0,
        le=1.0,
        description="Minimum trust weight for mastery to count on the trust-weighted track",
    )
    freshness_warning_days: int = Field(
        default=60,
        ge=0,
        description="Content expiring within this many days is flagged",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(default="INFO", description="Loguru level for engine output")

    def get_trust_weights(self) -> dict[TrustLevel, float]:
        """Get trust weights keyed by trust level."""
        return {
            TrustLevel.REGULATORY_STANDARD: self.trust_weight_regulatory,
            TrustLevel.ACCREDITED_MATERIAL: self.trust_weight_accredited,
            TrustLevel.PUBLISHED_REFERENCE: self.trust_weight_published,
            TrustLevel.EXPERT_CURATED: self.trust_weight_expert,
            TrustLevel.AI_ASSISTED: self.trust_weight_ai_assisted,
            TrustLevel.UNVERIFIED: self.trust_weight_unverified,
        }

    def get_engine_config(self) -> EngineConfig:
        """Build the immutable engine configuration from these settings."""
        return EngineConfig(
            high_threshold=self.high_threshold,
            low_threshold=self.low_threshold,
            memories_per_category=self.memories_per_category,
            mastery_confirmation_threshold=self.mastery_confirmation_threshold,
            default_target_value=self.default_target_value,
            interactions_per_module=self.interactions_per_module,
            review_schedule=ReviewSchedule(
                reintroduce=self.review_reintroduce_days,
                deep_review=self.review_deep_review_days,
                application=self.review_application_days,
            ),
            trust_weights=self.get_trust_weights(),
            certification_min_weight=self.certification_min_weight,
            freshness_warning_days=self.freshness_warning_days,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
