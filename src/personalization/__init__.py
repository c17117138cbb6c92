"""
Personalization State Resolution Engine.

Computes the behavioral and pedagogical state that governs a caller's
next interaction from pre-fetched, immutable snapshots.

Components:
- MemoryDeduplicator: Collapses loosely-keyed memories, capped per category
- TargetCascadeResolver: Merges scoped behavior targets into one value per parameter
- CurriculumProgressEstimator: Confirmed or estimated position in the module sequence
- ReviewSchedulePlanner: Review intensity and session flow from elapsed days
- TrustWeightedProgressCalculator: Raw vs trust-discounted progress
- CompositionAssembler: Orchestrates the above into a ResolvedSessionState
"""
from src.personalization.models import (
    AttributeValue,
    BehaviorParameter,
    BehaviorTarget,
    BooleanValue,
    CallerAttribute,
    CallerTarget,
    EngineConfig,
    Goal,
    MemoryRecord,
    Module,
    ModuleStatus,
    NumberValue,
    ReviewSchedule,
    ReviewType,
    Scope,
    SourceRef,
    StringValue,
    StructuredValue,
    TargetLevel,
    TrustLevel,
)
from src.personalization.errors import InvariantViolation
from src.personalization.memory_dedup import MemoryDeduplicator, MemorySet
from src.personalization.target_cascade import (
    ConfigurationConflict,
    EffectiveTarget,
    ResolvedTargets,
    TargetCascadeResolver,
)
from src.personalization.curriculum_progress import (
    CurriculumPosition,
    CurriculumProgressEstimator,
    ModuleProgress,
)
from src.personalization.review_planner import ReviewPlan, ReviewSchedulePlanner, whole_days_since
from src.personalization.trust_progress import TrustProgress, TrustWeightedProgressCalculator
from src.personalization.composition import (
    CallerSnapshot,
    CompositionAssembler,
    ResolvedSessionState,
)
from src.personalization.logging_setup import configure_logging

__all__ = [
    # Models
    "AttributeValue",
    "BehaviorParameter",
    "BehaviorTarget",
    "BooleanValue",
    "CallerAttribute",
    "CallerTarget",
    "EngineConfig",
    "Goal",
    "MemoryRecord",
    "Module",
    "ModuleStatus",
    "NumberValue",
    "ReviewSchedule",
    "ReviewType",
    "Scope",
    "SourceRef",
    "StringValue",
    "StructuredValue",
    "TargetLevel",
    "TrustLevel",
    # Errors
    "InvariantViolation",
    # Resolvers
    "MemoryDeduplicator",
    "MemorySet",
    "TargetCascadeResolver",
    "ResolvedTargets",
    "EffectiveTarget",
    "ConfigurationConflict",
    "CurriculumProgressEstimator",
    "CurriculumPosition",
    "ModuleProgress",
    "ReviewSchedulePlanner",
    "ReviewPlan",
    "whole_days_since",
    "TrustWeightedProgressCalculator",
    "TrustProgress",
    # Orchestration
    "CompositionAssembler",
    "CallerSnapshot",
    "ResolvedSessionState",
    "configure_logging",
]
