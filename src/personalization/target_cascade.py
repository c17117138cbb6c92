"""
Behavior Target Cascade.

Merges per-parameter targets from the SYSTEM → DOMAIN → PLAYBOOK →
CALLER_SEGMENT tiers, with personalized CallerTargets on top, into one
effective value per parameter.

Precedence is a priority table, not an inheritance chain:

    CALLER_PERSONALIZED  terminal, never overridden
    CALLER_SEGMENT = 4
    PLAYBOOK       = 3   only for the active playbook
    DOMAIN         = 2
    SYSTEM         = 1

Equal-priority candidates are a configuration conflict: the most
recently updated target wins (then the greatest target id), and the
conflict is logged and reported on the result.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from loguru import logger

from src.personalization.errors import InvariantViolation
from src.personalization.models import (
    BehaviorParameter,
    BehaviorTarget,
    CallerTarget,
    Scope,
    TargetLevel,
    as_utc,
)

SCOPE_PRIORITY: dict[Scope, int] = {
    Scope.CALLER_SEGMENT: 4,
    Scope.PLAYBOOK: 3,
    Scope.DOMAIN: 2,
    Scope.SYSTEM: 1,
}

_EPOCH = datetime.min.replace(tzinfo=UTC)


@dataclass(frozen=True)
class EffectiveTarget:
    """The single resolved value for one parameter."""

    parameter_id: str
    target_value: float
    confidence: float
    source_scope: Scope
    level: TargetLevel
    source_id: str | None = None  # BehaviorTarget id, or caller id for personalized
    name: str | None = None
    group: str | None = None
    interpretation_high: str | None = None
    interpretation_low: str | None = None

    @property
    def is_personalized(self) -> bool:
        return self.source_scope == Scope.CALLER_PERSONALIZED


@dataclass(frozen=True)
class ConfigurationConflict:
    """Two or more active targets at the same priority for one parameter."""

    parameter_id: str
    scope: Scope
    candidate_ids: tuple[str, ...]
    winner_id: str


@dataclass(frozen=True)
class ResolvedTargets:
    """Effective target map plus the conflicts found while building it."""

    targets: Mapping[str, EffectiveTarget] = field(default_factory=dict)
    conflicts: tuple[ConfigurationConflict, ...] = ()
    default_value: float = 0.5

    @classmethod
    def empty(cls, default_value: float = 0.5) -> ResolvedTargets:
        return cls(default_value=default_value)

    def __len__(self) -> int:
        return len(self.targets)

    def __contains__(self, parameter_id: object) -> bool:
        return parameter_id in self.targets

    def get(self, parameter_id: str) -> EffectiveTarget | None:
        return self.targets.get(parameter_id)

    def value_for(self, parameter_id: str) -> float:
        """Effective value, or the neutral default when no scope targets it."""
        target = self.targets.get(parameter_id)
        return target.target_value if target else self.default_value

    @property
    def personalized_count(self) -> int:
        return sum(1 for t in self.targets.values() if t.is_personalized)

    def by_group(self) -> dict[str, list[EffectiveTarget]]:
        """Targets grouped by parameter group ("Other" when ungrouped)."""
        groups: dict[str, list[EffectiveTarget]] = {}
        for target in self.targets.values():
            groups.setdefault(target.group or "Other", []).append(target)
        return groups


class TargetCascadeResolver:
    """
    Resolve effective behavior targets for one caller.

    Never raises for bad or missing input: parameters with no target are
    simply absent, and consumers fall back to `ResolvedTargets.value_for`.
    """

    def __init__(
        self,
        high_threshold: float = 0.65,
        low_threshold: float = 0.35,
        default_value: float = 0.5,
    ):
        self.high_threshold = high_threshold
        self.low_threshold = low_threshold
        self.default_value = default_value

    def resolve(
        self,
        behavior_targets: Iterable[BehaviorTarget],
        caller_targets: Iterable[CallerTarget] = (),
        playbook_id: str | None = None,
        domain_id: str | None = None,
        parameters: Iterable[BehaviorParameter] = (),
        now: datetime | None = None,
    ) -> ResolvedTargets:
        """
        Merge targets across scopes.

        Args:
            behavior_targets: Scoped targets (expired ones are skipped)
            caller_targets: Personalized targets for this caller
            playbook_id: Active playbook; PLAYBOOK targets for any other are ignored
            domain_id: Caller's domain; when given, other domains' targets are ignored
            parameters: Parameter reference data for names and grouping
            now: Resolution instant for expiry checks (defaults to UTC now)

        Returns:
            ResolvedTargets with exactly one entry per targeted parameter
        """
        now = as_utc(now or datetime.now(UTC))
        catalog = {p.parameter_id: p for p in parameters}
        result: dict[str, EffectiveTarget] = {}

        # 1. Personalized targets are terminal
        for parameter_id, caller_target in self._latest_caller_targets(caller_targets).items():
            result[parameter_id] = self._effective(
                parameter_id,
                caller_target.target_value,
                caller_target.confidence,
                Scope.CALLER_PERSONALIZED,
                caller_target.caller_id,
                catalog,
            )

        # 2. Highest-priority eligible scoped target for everything else
        candidates: dict[str, list[BehaviorTarget]] = {}
        for target in behavior_targets:
            if target.parameter_id in result:
                continue
            if not target.is_active(now):
                continue
            if not self._is_eligible(target, playbook_id, domain_id):
                continue
            candidates.setdefault(target.parameter_id, []).append(target)

        conflicts: list[ConfigurationConflict] = []
        for parameter_id, options in candidates.items():
            winner, conflict = self._select(parameter_id, options)
            if conflict:
                conflicts.append(conflict)
            result[parameter_id] = self._effective(
                parameter_id,
                winner.target_value,
                winner.confidence,
                winner.scope,
                winner.target_id,
                catalog,
            )

        missing = set(candidates) - set(result)
        if missing:
            logger.error(f"Cascade dropped parameters: {sorted(missing)}")
            raise InvariantViolation(
                "total target coverage",
                f"no effective value for {sorted(missing)}",
            )

        resolved = ResolvedTargets(
            targets=result,
            conflicts=tuple(conflicts),
            default_value=self.default_value,
        )
        logger.debug(
            f"Targets: {len(resolved)} resolved "
            f"({resolved.personalized_count} personalized, {len(conflicts)} conflicts)"
        )
        return resolved

    def classify(self, value: float) -> TargetLevel:
        return TargetLevel.from_value(value, self.high_threshold, self.low_threshold)

    @staticmethod
    def priority(scope: Scope) -> int:
        """Cascade priority of a scope (0 for scopes outside the cascade)."""
        return SCOPE_PRIORITY.get(scope, 0)

    @staticmethod
    def _is_eligible(
        target: BehaviorTarget,
        playbook_id: str | None,
        domain_id: str | None,
    ) -> bool:
        if target.scope == Scope.PLAYBOOK:
            return playbook_id is not None and target.entity_id == playbook_id
        if target.scope == Scope.DOMAIN and domain_id is not None:
            return target.entity_id in (None, domain_id)
        return True

    def _select(
        self,
        parameter_id: str,
        options: list[BehaviorTarget],
    ) -> tuple[BehaviorTarget, ConfigurationConflict | None]:
        top = max(self.priority(t.scope) for t in options)
        tied = [t for t in options if self.priority(t.scope) == top]
        winner = max(tied, key=self._recency_key)
        if len(tied) == 1:
            return winner, None

        candidate_ids = tuple(sorted(t.target_id for t in tied))
        logger.warning(
            f"Configuration conflict on {parameter_id}: {len(tied)} active "
            f"{winner.scope.value} targets {list(candidate_ids)} - using {winner.target_id} "
            f"(most recently updated)"
        )
        return winner, ConfigurationConflict(
            parameter_id=parameter_id,
            scope=winner.scope,
            candidate_ids=candidate_ids,
            winner_id=winner.target_id,
        )

    @staticmethod
    def _recency_key(target: BehaviorTarget) -> tuple[datetime, str]:
        updated = as_utc(target.updated_at) if target.updated_at else _EPOCH
        return updated, target.target_id

    @staticmethod
    def _latest_caller_targets(caller_targets: Iterable[CallerTarget]) -> dict[str, CallerTarget]:
        latest: dict[str, CallerTarget] = {}
        for target in caller_targets:
            existing = latest.get(target.parameter_id)
            if existing is None:
                latest[target.parameter_id] = target
                continue
            logger.warning(
                f"Duplicate caller target for {target.parameter_id} "
                f"(caller {target.caller_id}) - keeping the most recently updated"
            )
            existing_at = as_utc(existing.last_updated_at) if existing.last_updated_at else _EPOCH
            target_at = as_utc(target.last_updated_at) if target.last_updated_at else _EPOCH
            if target_at > existing_at:
                latest[target.parameter_id] = target
        return latest

    def _effective(
        self,
        parameter_id: str,
        value: float,
        confidence: float,
        scope: Scope,
        source_id: str | None,
        catalog: dict[str, BehaviorParameter],
    ) -> EffectiveTarget:
        parameter = catalog.get(parameter_id)
        return EffectiveTarget(
            parameter_id=parameter_id,
            target_value=value,
            confidence=confidence,
            source_scope=scope,
            level=self.classify(value),
            source_id=source_id,
            name=parameter.name if parameter else parameter_id,
            group=parameter.group if parameter else None,
            interpretation_high=parameter.interpretation_high if parameter else None,
            interpretation_low=parameter.interpretation_low if parameter else None,
        )
