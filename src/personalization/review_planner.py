"""
Review Schedule Planner.

Turns elapsed time since the last session into a review intensity and
builds the ordered session flow:

    days since last session    review type
    ≥ 14                       reintroduce
    7-13                       deep_review
    3-6                        application
    0-2                        quick_recall

First sessions skip the table. A returning caller with no module left
to introduce gets a deepen-mastery flow instead of new material.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from loguru import logger

from src.personalization.curriculum_progress import CurriculumPosition
from src.personalization.models import Goal, MemoryRecord, Module, ReviewSchedule, ReviewType, as_utc

PEDAGOGY_PRINCIPLES = (
    "Review BEFORE new material - never skip unless learner explicitly confirms mastery",
    "One main new concept per session - depth over breadth",
    "If review reveals gaps, stay on review - don't accumulate confusion",
    "Connection questions ('How does X relate to Y?') are more valuable than isolated recall",
)

INTEREST_GUIDANCE = (
    "When the caller asks about these future topics: acknowledge their interest, note it "
    "connects to upcoming material, then gently redirect: 'Great question - we'll dig into "
    "that when we get to [module]. For now, let's build the foundation with [current topic].'"
)

INTEREST_AVOID = (
    "Don't ignore their interest or dismiss it. Don't skip ahead. Don't give a detailed "
    "answer that requires context they don't have yet."
)

INTEREST_CATEGORIES = ("TOPIC",)


def whole_days_since(last_interaction: datetime | None, now: datetime | None = None) -> int:
    """
    Whole days elapsed since the last interaction.

    Args:
        last_interaction: Timestamp of last interaction (naive means UTC)
        now: Current time (defaults to UTC now)

    Returns:
        Floor of elapsed days, 0 when there was no prior interaction
        or the timestamp lies in the future
    """
    if last_interaction is None:
        return 0
    now = as_utc(now or datetime.now(UTC))
    elapsed = (now - as_utc(last_interaction)).total_seconds() / 86400.0
    return max(0, math.floor(elapsed))


@dataclass(frozen=True)
class ReviewFocus:
    """What to review first and how."""

    module: str
    reason: str
    technique: str


@dataclass(frozen=True)
class NewMaterial:
    module: str
    approach: str


@dataclass(frozen=True)
class InterestTension:
    """A caller interest that belongs to a module not yet reached."""

    interest: str
    module_slug: str
    module_name: str

    @property
    def description(self) -> str:
        return f'"{self.interest}" relates to module "{self.module_name}" (coming later)'


@dataclass(frozen=True)
class InterestGuidance:
    tensions: tuple[InterestTension, ...]
    guidance: str = INTEREST_GUIDANCE
    avoid: str = INTEREST_AVOID


@dataclass(frozen=True)
class ReviewPlan:
    """Session plan for the next interaction."""

    session_type: str  # FIRST_CALL or RETURNING_CALLER
    review_type: ReviewType | None
    review_reason: str
    days_elapsed: int
    flow: tuple[str, ...]
    principles: tuple[str, ...] = PEDAGOGY_PRINCIPLES
    review_first: ReviewFocus | None = None
    new_material: NewMaterial | None = None
    session_summary: str = "Continue conversation"
    goals_summary: str = "No specific goals yet - discover what they want to learn in this session"
    interest_handling: InterestGuidance | None = None

    @property
    def is_first_session(self) -> bool:
        return self.session_type == "FIRST_CALL"


class ReviewSchedulePlanner:
    """
    Plan review intensity and session flow.

    Never fails: missing modules fall back to generic step wording and
    an exhausted curriculum produces a deepen-mastery flow.
    """

    def __init__(self, schedule: ReviewSchedule | None = None):
        self.schedule = schedule or ReviewSchedule()

    def select_review_type(self, days_elapsed: int) -> tuple[ReviewType, str]:
        """First matching row of the review table wins."""
        days = max(0, days_elapsed)
        if days >= self.schedule.reintroduce:
            return ReviewType.REINTRODUCE, f"{days} days since last session - rebuild understanding"
        if days >= self.schedule.deep_review:
            return ReviewType.DEEP_REVIEW, f"{days} days gap - full review with new example"
        if days >= self.schedule.application:
            return ReviewType.APPLICATION, f"{days} days gap - application question to check retention"
        return ReviewType.QUICK_RECALL, "Brief recall to activate prior knowledge"

    def plan(
        self,
        position: CurriculumPosition,
        days_elapsed: int,
        is_first_interaction: bool,
        interests: Iterable[MemoryRecord] = (),
        goals: Sequence[Goal] = (),
    ) -> ReviewPlan:
        """
        Build the session plan.

        Args:
            position: Output of the curriculum progress estimator
            days_elapsed: Whole days since the most recent interaction
            is_first_interaction: Bypasses the review table when True
            interests: Interest memories checked against upcoming modules
            goals: Learner goals, summarized for the session header

        Returns:
            ReviewPlan
        """
        interest_handling = self.detect_interest_tension(interests, position.upcoming_modules)
        goals_summary = self._summarize_goals(goals)

        if is_first_interaction:
            plan = self._first_session(position, goals_summary, interest_handling)
        else:
            plan = self._returning_session(position, days_elapsed, goals_summary, interest_handling)

        logger.debug(
            f"Review plan: {plan.session_type} "
            f"({plan.review_type.value if plan.review_type else 'no review'}, "
            f"{len(plan.flow)} steps)"
        )
        return plan

    def detect_interest_tension(
        self,
        interests: Iterable[MemoryRecord],
        upcoming: Sequence[Module],
    ) -> InterestGuidance | None:
        """
        Flag interests that overlap a module the caller has not reached.

        Overlap is case-insensitive substring either way between the
        interest and the module name or description, or the module slug
        appearing in the interest key.
        """
        if not upcoming:
            return None

        tensions: list[InterestTension] = []
        for memory in interests:
            interest = memory.value.strip().lower()
            interest_key = memory.key.lower()
            if not interest:
                continue
            for module in upcoming:
                name = module.name.lower()
                description = module.description.lower()
                if (
                    interest in name
                    or (description and interest in description)
                    or (name and name in interest)
                    or module.slug.lower() in interest_key
                ):
                    tensions.append(
                        InterestTension(
                            interest=memory.value,
                            module_slug=module.slug,
                            module_name=module.name,
                        )
                    )

        if not tensions:
            return None
        logger.debug(f"Interest tension: {len(tensions)} interests point at future modules")
        return InterestGuidance(tensions=tuple(tensions))

    @staticmethod
    def select_interest_memories(memories: Iterable[MemoryRecord]) -> list[MemoryRecord]:
        """TOPIC memories plus PREFERENCE memories keyed as interests."""
        selected = []
        for memory in memories:
            category = memory.category.upper()
            if category in INTEREST_CATEGORIES:
                selected.append(memory)
            elif category == "PREFERENCE" and "interest" in memory.key.lower():
                selected.append(memory)
        return selected

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    def _first_session(
        self,
        position: CurriculumPosition,
        goals_summary: str,
        interest_handling: InterestGuidance | None,
    ) -> ReviewPlan:
        first = position.next_module
        flow = (
            "1. Welcome & set expectations",
            "2. Probe existing knowledge with open questions",
            f"3. Introduce foundation: {first.name if first else 'first concept'}",
            "4. Check understanding with application question",
            "5. Summarize & preview next session",
        )
        new_material = None
        if first:
            new_material = NewMaterial(
                module=first.name,
                approach=(
                    f"Start with {first.description or 'foundational concepts'}. "
                    "Use concrete examples before abstractions."
                ),
            )
        return ReviewPlan(
            session_type="FIRST_CALL",
            review_type=None,
            review_reason="First session - no prior material to review",
            days_elapsed=0,
            flow=flow,
            new_material=new_material,
            session_summary=f"First session - introduce {first.name}" if first else "First session - get to know the caller",
            goals_summary=goals_summary,
            interest_handling=interest_handling,
        )

    def _returning_session(
        self,
        position: CurriculumPosition,
        days_elapsed: int,
        goals_summary: str,
        interest_handling: InterestGuidance | None,
    ) -> ReviewPlan:
        review_type, reason = self.select_review_type(days_elapsed)
        review = position.module_to_review
        upcoming = position.next_module
        review_name = review.name if review else "previous concept"

        review_first = None
        if review:
            review_first = ReviewFocus(module=review.name, reason=reason, technique=review_type.technique)

        if upcoming is None:
            flow = (
                "1. Reconnect - reference last session specifically",
                f"2. Spaced retrieval ({review_type.value}) - recall question on {review_name}",
                "3. Reinforce or correct based on their recall",
                f"4. Deepen - explore edge cases and real-world applications of {review_name}",
                "5. Integrate - question connecting this to earlier modules",
                "6. Close with summary and what to practise next",
            )
            summary = f"Deepen mastery of {review.name}" if review else "Continue conversation"
            return ReviewPlan(
                session_type="RETURNING_CALLER",
                review_type=review_type,
                review_reason=reason,
                days_elapsed=max(0, days_elapsed),
                flow=flow,
                review_first=review_first,
                session_summary=summary,
                goals_summary=goals_summary,
                interest_handling=interest_handling,
            )

        flow = (
            "1. Reconnect - reference last session specifically",
            f"2. Spaced retrieval ({review_type.value}) - recall question on {review_name}",
            "3. Reinforce or correct based on their recall",
            f"4. Bridge - connect {review.name if review else 'old'} to {upcoming.name}",
            f"5. New material - introduce {upcoming.name}",
            "6. Integrate - question using both old and new",
            "7. Close with summary and preview",
        )
        if review and review.slug != upcoming.slug:
            summary = f"Review {review.name} → Introduce {upcoming.name}"
        else:
            summary = f"Continue with {upcoming.name}"

        return ReviewPlan(
            session_type="RETURNING_CALLER",
            review_type=review_type,
            review_reason=reason,
            days_elapsed=max(0, days_elapsed),
            flow=flow,
            review_first=review_first,
            new_material=NewMaterial(
                module=upcoming.name,
                approach=(
                    f"After confirming {review.name if review else 'previous'} understanding, "
                    f"introduce {upcoming.description or 'new concepts'}"
                ),
            ),
            session_summary=summary,
            goals_summary=goals_summary,
            interest_handling=interest_handling,
        )

    @staticmethod
    def _summarize_goals(goals: Sequence[Goal]) -> str:
        if not goals:
            return "No specific goals yet - discover what they want to learn in this session"
        top = sorted(goals, key=lambda g: -g.priority)[:3]
        parts = []
        for goal in top:
            progress = f" ({round(goal.progress * 100)}% complete)" if goal.progress > 0 else ""
            parts.append(f"{goal.name}{progress}")
        return "; ".join(parts)
