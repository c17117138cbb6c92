"""
Curriculum Progress Estimation.

Determines where a caller is in an ordered module sequence:
- Confirmed mastery from caller attributes keyed "mastery_<slug>",
  "completed_<slug>" or "curriculum:<spec>:mastery:<slug>"
- A pacing heuristic when nothing is tracked explicitly, always
  flagged with `is_estimated` so it is never read as mastery

Ordinal position is the sequencing signal. Prerequisites are carried
for reporting only; the estimator does not walk them.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from src.personalization.errors import InvariantViolation
from src.personalization.models import (
    AttributeValue,
    BooleanValue,
    CallerAttribute,
    Module,
    ModuleStatus,
    NumberValue,
    StringValue,
    StructuredValue,
)

MASTERY_KEY_MARKERS = ("mastery_", "completed_")
CONTRACT_MASTERY_MARKER = ":mastery:"


def extract_module_slug(key: str) -> str | None:
    """
    Extract the module slug from a progress attribute key.

    Examples:
        "mastery_intro"                      → "intro"
        "completed_budgeting"                → "budgeting"
        "curriculum:QM-001:mastery:chapter1" → "chapter1"
        "favourite_colour"                   → None
    """
    if CONTRACT_MASTERY_MARKER in key:
        return key.rsplit(CONTRACT_MASTERY_MARKER, 1)[1] or None
    for marker in MASTERY_KEY_MARKERS:
        index = key.find(marker)
        if index != -1:
            return key[index + len(marker):] or None
    return None


def mastery_score(value: AttributeValue) -> float | None:
    """
    Read a mastery score from an attribute value.

    Booleans read as 1.0/0.0, numbers as themselves; strings and
    structured values carry no score.
    """
    if isinstance(value, BooleanValue):
        return 1.0 if value.value else 0.0
    if isinstance(value, NumberValue):
        return value.value
    if isinstance(value, (StringValue, StructuredValue)):
        return None
    raise TypeError(f"Unknown attribute variant: {type(value).__name__}")


def confirms_mastery(value: AttributeValue, threshold: float = 0.7) -> bool:
    """True for boolean true, or a number at or above the threshold."""
    if isinstance(value, BooleanValue):
        return value.value is True
    if isinstance(value, NumberValue):
        return value.value >= threshold
    if isinstance(value, (StringValue, StructuredValue)):
        return False
    raise TypeError(f"Unknown attribute variant: {type(value).__name__}")


@dataclass(frozen=True)
class ModuleProgress:
    """Reporting row for one module."""

    slug: str
    name: str
    index: int
    status: ModuleStatus
    mastery: float | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == ModuleStatus.COMPLETED


@dataclass(frozen=True)
class CurriculumPosition:
    """
    Where the caller stands in the curriculum.

    `last_completed_index` is None when no module has been touched
    (empty curriculum, or a first interaction with nothing confirmed).
    """

    modules: tuple[Module, ...] = ()
    completed_modules: tuple[str, ...] = ()  # confirmed only, in module order
    module_mastery: Mapping[str, float] = field(default_factory=dict)
    last_completed_index: int | None = None
    module_to_review: Module | None = None
    next_module: Module | None = None
    estimated_progress: int = 0
    is_estimated: bool = False
    is_first_interaction: bool = True
    interaction_count: int = 0
    last_interaction_at: datetime | None = None
    module_progress: tuple[ModuleProgress, ...] = ()
    covered_modules: tuple[str, ...] = ()
    unmatched_mastery_keys: tuple[str, ...] = ()

    @classmethod
    def empty(
        cls,
        interaction_count: int = 0,
        last_interaction_at: datetime | None = None,
    ) -> CurriculumPosition:
        """Neutral position for a caller with no curriculum."""
        return cls(
            is_first_interaction=interaction_count == 0,
            interaction_count=interaction_count,
            last_interaction_at=last_interaction_at,
        )

    @property
    def total_modules(self) -> int:
        return len(self.modules)

    @property
    def completed_count(self) -> int:
        return len(self.completed_modules)

    @property
    def is_exhausted(self) -> bool:
        """Modules exist but none remain to introduce."""
        return bool(self.modules) and self.next_module is None

    @property
    def upcoming_modules(self) -> tuple[Module, ...]:
        """
        Modules not yet reached: everything after the current module.

        The current module is the one under review, or the first module
        when nothing has been covered, so `next_module` counts as upcoming
        for returning callers.
        """
        if self.last_completed_index is None:
            return self.modules[1:]
        return self.modules[self.last_completed_index + 1:]

    @property
    def progress_summary(self) -> str | None:
        """One-line progress reading for downstream prompts."""
        total = self.total_modules
        if total == 0:
            return None
        current = self.module_to_review or self.next_module
        current_line = f" | Current: {current.name}" if current else ""
        if self.is_estimated and self.estimated_progress > 0:
            return (
                f"Estimated progress: ~{self.estimated_progress}/{total} modules "
                f"(not confirmed){current_line}"
            )
        if self.completed_count == 0:
            return f"Starting curriculum (0/{total} modules) - begin with {self.modules[0].name}"
        if self.completed_count >= total:
            return f"Curriculum complete ({total}/{total}) - review and reinforce"
        return f"Progress: {self.completed_count}/{total} modules mastered{current_line}"

    def status_of(self, slug: str) -> ModuleStatus | None:
        for row in self.module_progress:
            if row.slug == slug:
                return row.status
        return None


class CurriculumProgressEstimator:
    """
    Estimate curriculum position from caller attributes and call count.

    Heuristic (when no mastery is tracked):
        estimated_progress   = min(interactions // interactions_per_module, modules - 1)
        last_completed_index = max(0, estimated_progress - 1)

    The default pacing (one module per two interactions) is a placeholder
    policy; the output is flagged `is_estimated=True` whenever it is used.
    """

    def __init__(self, mastery_threshold: float = 0.7, interactions_per_module: int = 2):
        if interactions_per_module < 1:
            raise ValueError("interactions_per_module must be at least 1")
        self.mastery_threshold = mastery_threshold
        self.interactions_per_module = interactions_per_module

    def estimate(
        self,
        modules: Iterable[Module],
        attributes: Iterable[CallerAttribute] = (),
        interaction_count: int = 0,
        last_interaction_at: datetime | None = None,
        now: datetime | None = None,
    ) -> CurriculumPosition:
        """
        Compute the caller's curriculum position.

        Args:
            modules: Curriculum modules in any order (sorted by position here)
            attributes: Caller attributes; attributes outside their validity
                window at `now` are ignored when `now` is given
            interaction_count: Completed interactions so far
            last_interaction_at: Most recent interaction timestamp
            now: Resolution instant for attribute validity

        Returns:
            CurriculumPosition (empty position for an empty module list)
        """
        interaction_count = max(0, interaction_count)
        ordered = tuple(sorted(modules, key=lambda m: m.position))
        if not ordered:
            logger.debug("Curriculum: no modules - neutral position")
            return CurriculumPosition.empty(interaction_count, last_interaction_at)

        if now is not None:
            attributes = [a for a in attributes if a.is_valid(now)]
        index_by_slug = {m.slug: i for i, m in enumerate(ordered)}
        confirmed, scores, unmatched = self._scan_attributes(attributes, index_by_slug)
        completed = tuple(m.slug for m in ordered if m.slug in confirmed)
        is_first = interaction_count == 0
        total = len(ordered)

        if completed:
            last_index: int | None = max(index_by_slug[slug] for slug in completed)
            estimated_progress = len(completed)
            is_estimated = False
        elif is_first:
            last_index = None
            estimated_progress = 0
            is_estimated = False
        else:
            estimated_progress = min(interaction_count // self.interactions_per_module, total - 1)
            last_index = max(0, estimated_progress - 1)
            is_estimated = True
            logger.debug(
                f"Curriculum: no mastery tracked - estimating {estimated_progress}/{total} "
                f"from {interaction_count} interactions"
            )

        if last_index is not None and not 0 <= last_index < total:
            logger.error(f"Curriculum index {last_index} outside 0..{total - 1}")
            raise InvariantViolation(
                "module index in range",
                f"last_completed_index={last_index} with {total} modules",
            )

        next_index = 0 if last_index is None else last_index + 1
        covered = (
            completed
            if completed
            else tuple(m.slug for m in ordered[:estimated_progress])
        )

        return CurriculumPosition(
            modules=ordered,
            completed_modules=completed,
            module_mastery=scores,
            last_completed_index=last_index,
            module_to_review=ordered[last_index] if last_index is not None else None,
            next_module=ordered[next_index] if next_index < total else None,
            estimated_progress=estimated_progress,
            is_estimated=is_estimated,
            is_first_interaction=is_first,
            interaction_count=interaction_count,
            last_interaction_at=last_interaction_at,
            module_progress=self._classify(ordered, set(completed), scores, last_index, interaction_count),
            covered_modules=covered,
            unmatched_mastery_keys=unmatched,
        )

    def confirmed_mastery(self, attributes: Iterable[CallerAttribute]) -> set[str]:
        """Slugs with confirmed mastery, whether or not they name a known module."""
        confirmed: set[str] = set()
        for attribute in attributes:
            slug = extract_module_slug(attribute.key)
            if slug and confirms_mastery(attribute.value, self.mastery_threshold):
                confirmed.add(slug)
        return confirmed

    def _scan_attributes(
        self,
        attributes: Iterable[CallerAttribute],
        index_by_slug: Mapping[str, int],
    ) -> tuple[set[str], dict[str, float], tuple[str, ...]]:
        confirmed: set[str] = set()
        scores: dict[str, float] = {}
        unmatched: list[str] = []

        for attribute in attributes:
            slug = extract_module_slug(attribute.key)
            if slug is None:
                continue
            if slug not in index_by_slug:
                unmatched.append(attribute.key)
                continue
            score = mastery_score(attribute.value)
            if score is not None:
                scores[slug] = max(score, scores.get(slug, 0.0))
            if confirms_mastery(attribute.value, self.mastery_threshold):
                confirmed.add(slug)

        if unmatched:
            logger.warning(
                f"Progress attributes reference unknown modules: {sorted(set(unmatched))}"
            )
        return confirmed, scores, tuple(sorted(set(unmatched)))

    @staticmethod
    def _classify(
        ordered: tuple[Module, ...],
        completed: set[str],
        scores: Mapping[str, float],
        last_index: int | None,
        interaction_count: int,
    ) -> tuple[ModuleProgress, ...]:
        rows = []
        for index, module in enumerate(ordered):
            if module.slug in completed:
                status = ModuleStatus.COMPLETED
            elif last_index is not None and index <= last_index and interaction_count > 0:
                status = ModuleStatus.IN_PROGRESS
            else:
                status = ModuleStatus.NOT_STARTED
            rows.append(
                ModuleProgress(
                    slug=module.slug,
                    name=module.name,
                    index=index,
                    status=status,
                    mastery=scores.get(module.slug),
                )
            )
        return tuple(rows)
