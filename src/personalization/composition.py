"""
Composition Assembler.

Fans a caller snapshot out to the resolvers and fans the results back
into one immutable ResolvedSessionState:

    memories ──► MemoryDeduplicator ─────────────────────┐
    targets  ──► TargetCascadeResolver ──────────────────┤
    modules  ──► CurriculumProgressEstimator ──► Planner ├──► ResolvedSessionState
    modules  ──► TrustWeightedProgressCalculator ────────┘   (only with trust data)

The assembler owns no decision logic. A sub-resolver that fails on bad
input is replaced by its neutral default and named in `degraded`;
InvariantViolation always propagates.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, TypeVar

from loguru import logger
from pydantic import TypeAdapter

from src.personalization.curriculum_progress import CurriculumPosition, CurriculumProgressEstimator
from src.personalization.errors import InvariantViolation
from src.personalization.memory_dedup import MemoryDeduplicator, MemorySet
from src.personalization.models import (
    BehaviorParameter,
    BehaviorTarget,
    CallerAttribute,
    CallerTarget,
    EngineConfig,
    Goal,
    MemoryRecord,
    Module,
    ReviewType,
    as_utc,
)
from src.personalization.review_planner import ReviewPlan, ReviewSchedulePlanner, whole_days_since
from src.personalization.target_cascade import ResolvedTargets, TargetCascadeResolver
from src.personalization.trust_progress import TrustProgress, TrustWeightedProgressCalculator

T = TypeVar("T")


@dataclass(frozen=True)
class CallerSnapshot:
    """Everything the engine needs for one caller, fetched upfront."""

    caller_id: str
    behavior_targets: Sequence[BehaviorTarget] = ()
    caller_targets: Sequence[CallerTarget] = ()
    parameters: Sequence[BehaviorParameter] = ()
    modules: Sequence[Module] = ()
    attributes: Sequence[CallerAttribute] = ()
    memories: Sequence[MemoryRecord] = ()
    goals: Sequence[Goal] = ()
    interaction_count: int = 0
    last_interaction_at: datetime | None = None
    playbook_id: str | None = None
    domain_id: str | None = None

    @property
    def is_first_interaction(self) -> bool:
        return self.interaction_count <= 0


@dataclass(frozen=True)
class ResolvedSessionState:
    """Fully resolved state governing the caller's next interaction."""

    caller_id: str
    resolved_at: datetime
    targets: ResolvedTargets
    memories: MemorySet
    curriculum: CurriculumPosition
    review_plan: ReviewPlan
    days_since_last_interaction: int = 0
    trust_progress: TrustProgress | None = None
    degraded: tuple[str, ...] = field(default=())

    @property
    def is_first_interaction(self) -> bool:
        return self.curriculum.is_first_interaction

    @property
    def review_type(self) -> ReviewType | None:
        return self.review_plan.review_type

    def to_dict(self) -> dict[str, Any]:
        """Plain JSON-compatible structure (enums as values, datetimes as ISO strings)."""
        return _state_adapter().dump_python(self, mode="json")

    def to_json(self, indent: int | None = None) -> str:
        return _state_adapter().dump_json(self, indent=indent).decode("utf-8")


@lru_cache(maxsize=1)
def _state_adapter() -> TypeAdapter[ResolvedSessionState]:
    return TypeAdapter(ResolvedSessionState)


class CompositionAssembler:
    """
    Resolve the session state for one caller.

    Example:
        assembler = CompositionAssembler()
        state = assembler.resolve(snapshot)
        state.review_plan.flow
    """

    def __init__(self, config: EngineConfig | None = None):
        if config is None:
            from config import get_settings

            config = get_settings().get_engine_config()
        self.config = config
        self.deduplicator = MemoryDeduplicator(config.memories_per_category)
        self.cascade = TargetCascadeResolver(
            high_threshold=config.high_threshold,
            low_threshold=config.low_threshold,
            default_value=config.default_target_value,
        )
        self.estimator = CurriculumProgressEstimator(
            mastery_threshold=config.mastery_confirmation_threshold,
            interactions_per_module=config.interactions_per_module,
        )
        self.planner = ReviewSchedulePlanner(config.review_schedule)
        self.trust = TrustWeightedProgressCalculator(
            trust_weights=config.trust_weights,
            certification_min_weight=config.certification_min_weight,
            freshness_warning_days=config.freshness_warning_days,
            mastery_threshold=config.mastery_confirmation_threshold,
        )

    def resolve(self, snapshot: CallerSnapshot, now: datetime | None = None) -> ResolvedSessionState:
        """
        Resolve one caller snapshot.

        Args:
            snapshot: Pre-fetched immutable inputs for the caller
            now: Resolution instant (defaults to UTC now)

        Returns:
            ResolvedSessionState

        Raises:
            InvariantViolation: A resolver broke its own output contract
        """
        now = as_utc(now or datetime.now(UTC))
        degraded: list[str] = []

        memories = self._guard(
            "memories",
            lambda: self.deduplicator.group(snapshot.memories, now=now),
            MemorySet.empty,
            degraded,
        )
        targets = self._guard(
            "targets",
            lambda: self.cascade.resolve(
                snapshot.behavior_targets,
                snapshot.caller_targets,
                playbook_id=snapshot.playbook_id,
                domain_id=snapshot.domain_id,
                parameters=snapshot.parameters,
                now=now,
            ),
            lambda: ResolvedTargets.empty(self.config.default_target_value),
            degraded,
        )
        position = self._guard(
            "curriculum",
            lambda: self.estimator.estimate(
                snapshot.modules,
                snapshot.attributes,
                interaction_count=snapshot.interaction_count,
                last_interaction_at=snapshot.last_interaction_at,
                now=now,
            ),
            lambda: CurriculumPosition.empty(snapshot.interaction_count, snapshot.last_interaction_at),
            degraded,
        )

        days = whole_days_since(snapshot.last_interaction_at, now)
        interests = self.planner.select_interest_memories(memories.all)
        review_plan = self._guard(
            "review_plan",
            lambda: self.planner.plan(
                position,
                days_elapsed=days,
                is_first_interaction=position.is_first_interaction,
                interests=interests,
                goals=snapshot.goals,
            ),
            lambda: self.planner.plan(CurriculumPosition.empty(), days, position.is_first_interaction),
            degraded,
        )

        trust_progress = None
        if self.trust.has_trust_data(snapshot.modules):
            trust_progress = self._guard(
                "trust_progress",
                lambda: self._trust_progress(position, snapshot.modules, now),
                lambda: None,
                degraded,
            )

        state = ResolvedSessionState(
            caller_id=snapshot.caller_id,
            resolved_at=now,
            targets=targets,
            memories=memories,
            curriculum=position,
            review_plan=review_plan,
            days_since_last_interaction=days,
            trust_progress=trust_progress,
            degraded=tuple(degraded),
        )

        logger.info(
            f"Resolved session state for {snapshot.caller_id}: "
            f"{len(targets)} targets, {memories.retained_count} memories, "
            f"review={review_plan.review_type.value if review_plan.review_type else review_plan.session_type}"
            + (f", degraded={list(degraded)}" if degraded else "")
        )
        return state

    def resolve_many(
        self,
        snapshots: Iterable[CallerSnapshot],
        now: datetime | None = None,
        max_workers: int = 4,
    ) -> dict[str, ResolvedSessionState]:
        """
        Resolve several callers in parallel; resolutions share no state.

        A caller id supplied more than once resolves only its last snapshot.
        """
        by_caller: dict[str, CallerSnapshot] = {}
        for snapshot in snapshots:
            if snapshot.caller_id in by_caller:
                logger.warning(
                    f"Duplicate snapshot for caller {snapshot.caller_id} - resolving the last one supplied"
                )
            by_caller[snapshot.caller_id] = snapshot

        results: dict[str, ResolvedSessionState] = {}

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_caller = {
                executor.submit(self.resolve, snapshot, now): caller_id
                for caller_id, snapshot in by_caller.items()
            }
            for future in as_completed(future_to_caller):
                results[future_to_caller[future]] = future.result()

        return results

    def _trust_progress(
        self,
        position: CurriculumPosition,
        modules: Sequence[Module],
        now: datetime,
    ) -> TrustProgress:
        return self.trust.calculate(
            position.module_mastery,
            self.trust.module_trust_levels(position.modules or modules),
            total_modules=position.total_modules or len(modules),
            freshness_warnings=self.trust.freshness_warnings(modules, now),
        )

    @staticmethod
    def _guard(
        name: str,
        compute: Callable[[], T],
        fallback: Callable[[], T],
        degraded: list[str],
    ) -> T:
        try:
            return compute()
        except InvariantViolation:
            raise
        except Exception as e:
            logger.warning(f"{name} resolution failed ({type(e).__name__}: {e}) - using neutral default")
            degraded.append(name)
            return fallback()
