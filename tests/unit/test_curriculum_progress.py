"""
Unit tests for CurriculumProgressEstimator.

Confirmed mastery detection, the interaction-count estimate, first
sessions, module statuses and the progress summary line.
"""

from datetime import timedelta

import pytest

from src.personalization.curriculum_progress import (
    CurriculumPosition,
    CurriculumProgressEstimator,
    confirms_mastery,
    extract_module_slug,
)
from src.personalization.models import (
    BooleanValue,
    CallerAttribute,
    ModuleStatus,
    NumberValue,
    StringValue,
    StructuredValue,
)


@pytest.fixture
def estimator():
    return CurriculumProgressEstimator()


def _attr(key, value, **kwargs):
    return CallerAttribute(caller_id="caller-1", key=key, value=value, **kwargs)


class TestMasteryKeys:
    @pytest.mark.parametrize(
        "key,slug",
        [
            ("mastery_intro", "intro"),
            ("completed_budgeting", "budgeting"),
            ("curriculum:FIN-001:mastery:saving", "saving"),
            ("favourite_colour", None),
            ("mastery_", None),
        ],
    )
    def test_extract_module_slug(self, key, slug):
        assert extract_module_slug(key) == slug

    def test_boolean_and_numeric_confirmation(self):
        assert confirms_mastery(BooleanValue(True)) is True
        assert confirms_mastery(BooleanValue(False)) is False
        assert confirms_mastery(NumberValue(0.7)) is True
        assert confirms_mastery(NumberValue(0.69)) is False
        assert confirms_mastery(StringValue("yes")) is False
        assert confirms_mastery(StructuredValue({"score": 1})) is False

    def test_plain_values_wrapped_into_variants(self):
        assert isinstance(_attr("mastery_intro", True).value, BooleanValue)
        assert isinstance(_attr("mastery_intro", 1).value, NumberValue)
        assert isinstance(_attr("note", "text").value, StringValue)
        assert isinstance(_attr("meta", {"a": 1}).value, StructuredValue)


class TestFirstInteraction:
    def test_first_call_starts_at_first_module(self, estimator, five_modules):
        """Five modules, no interactions: nothing to review, introduce the first."""
        position = estimator.estimate(five_modules, interaction_count=0)

        assert position.module_to_review is None
        assert position.next_module.slug == "intro"
        assert position.is_first_interaction is True
        assert position.last_completed_index is None
        assert position.is_estimated is False
        assert all(row.status == ModuleStatus.NOT_STARTED for row in position.module_progress)

    def test_modules_sorted_by_position(self, estimator, five_modules):
        position = estimator.estimate(five_modules)

        assert [m.slug for m in position.modules] == [
            "intro",
            "budgeting",
            "saving",
            "investing",
            "retirement",
        ]

    def test_no_modules_gives_empty_position(self, estimator):
        position = estimator.estimate([], interaction_count=4)

        assert position.next_module is None
        assert position.module_to_review is None
        assert position.total_modules == 0
        assert position.progress_summary is None
        assert position.is_exhausted is False
        assert position.interaction_count == 4


class TestConfirmedMastery:
    def test_last_completed_is_highest_confirmed(self, estimator, five_modules):
        position = estimator.estimate(
            five_modules,
            [
                _attr("mastery_intro", True),
                _attr("curriculum:FIN-001:mastery:budgeting", 0.85),
                _attr("mastery_saving", 0.4),
            ],
            interaction_count=6,
        )

        assert position.completed_modules == ("intro", "budgeting")
        assert position.module_to_review.slug == "budgeting"
        assert position.next_module.slug == "saving"
        assert position.is_estimated is False
        assert position.module_mastery["saving"] == pytest.approx(0.4)

    def test_confirmed_mastery_used_even_on_first_interaction(self, estimator, five_modules):
        position = estimator.estimate(five_modules, [_attr("completed_intro", True)], interaction_count=0)

        assert position.module_to_review.slug == "intro"
        assert position.next_module.slug == "budgeting"

    def test_gap_in_completion_uses_highest_index(self, estimator, five_modules):
        position = estimator.estimate(
            five_modules,
            [_attr("mastery_intro", True), _attr("mastery_investing", True)],
            interaction_count=9,
        )

        assert position.last_completed_index == 3
        assert position.next_module.slug == "retirement"
        assert position.status_of("budgeting") == ModuleStatus.IN_PROGRESS
        assert position.status_of("investing") == ModuleStatus.COMPLETED
        assert position.status_of("retirement") == ModuleStatus.NOT_STARTED

    def test_all_mastered_exhausts_curriculum(self, estimator, five_modules):
        attributes = [_attr(f"mastery_{m.slug}", True) for m in five_modules]

        position = estimator.estimate(five_modules, attributes, interaction_count=12)

        assert position.next_module is None
        assert position.is_exhausted is True
        assert position.module_to_review.slug == "retirement"
        assert position.progress_summary == "Curriculum complete (5/5) - review and reinforce"

    def test_unknown_module_keys_reported(self, estimator, five_modules, log_records):
        position = estimator.estimate(
            five_modules,
            [_attr("mastery_astrophysics", True)],
            interaction_count=1,
        )

        assert position.unmatched_mastery_keys == ("mastery_astrophysics",)
        assert position.completed_modules == ()
        assert any(level == "WARNING" for level, _ in log_records)

    def test_expired_attributes_ignored(self, estimator, five_modules, now):
        position = estimator.estimate(
            five_modules,
            [_attr("mastery_intro", True, valid_until=now - timedelta(days=1))],
            interaction_count=1,
            now=now,
        )

        assert position.completed_modules == ()
        assert position.is_estimated is True


class TestEstimatedProgress:
    @pytest.mark.parametrize(
        "interactions,progress,review",
        [
            (1, 0, "intro"),
            (2, 1, "intro"),
            (5, 2, "budgeting"),
            (6, 3, "saving"),
            (40, 4, "investing"),
        ],
    )
    def test_pacing_heuristic(self, estimator, five_modules, interactions, progress, review):
        position = estimator.estimate(five_modules, interaction_count=interactions)

        assert position.is_estimated is True
        assert position.estimated_progress == progress
        assert position.module_to_review.slug == review

    def test_estimate_never_confirms_mastery(self, estimator, five_modules):
        position = estimator.estimate(five_modules, interaction_count=8)

        assert position.completed_modules == ()
        assert position.covered_modules == ("intro", "budgeting", "saving", "investing")
        assert position.progress_summary.startswith("Estimated progress: ~4/5 modules (not confirmed)")

    def test_custom_pacing(self, five_modules):
        position = CurriculumProgressEstimator(interactions_per_module=3).estimate(
            five_modules, interaction_count=7
        )

        assert position.estimated_progress == 2
        assert position.module_to_review.slug == "budgeting"

    def test_invalid_pacing_rejected(self):
        with pytest.raises(ValueError):
            CurriculumProgressEstimator(interactions_per_module=0)


class TestUpcomingModules:
    def test_upcoming_includes_module_being_introduced(self, estimator, five_modules):
        position = estimator.estimate(five_modules, [_attr("mastery_intro", True)], interaction_count=2)

        assert position.next_module.slug == "budgeting"
        assert [m.slug for m in position.upcoming_modules] == ["budgeting", "saving", "investing", "retirement"]

    def test_first_call_upcoming_skips_first_module(self, estimator, five_modules):
        position = estimator.estimate(five_modules, interaction_count=0)

        assert [m.slug for m in position.upcoming_modules] == ["budgeting", "saving", "investing", "retirement"]

    def test_exhausted_curriculum_has_no_upcoming(self, estimator, five_modules):
        attributes = [_attr(f"mastery_{m.slug}", True) for m in five_modules]

        position = estimator.estimate(five_modules, attributes, interaction_count=12)

        assert position.upcoming_modules == ()

    def test_progress_summary_for_confirmed(self, estimator, five_modules):
        position = estimator.estimate(five_modules, [_attr("mastery_intro", True)], interaction_count=2)

        assert position.progress_summary == "Progress: 1/5 modules mastered | Current: Introduction"

    def test_empty_position_has_no_upcoming(self):
        assert CurriculumPosition.empty().upcoming_modules == ()


class TestConfirmedMasterySet:
    def test_includes_slugs_outside_the_curriculum(self, estimator):
        attributes = [
            _attr("mastery_intro", True),
            _attr("completed_astrophysics", 0.95),
            _attr("mastery_saving", 0.3),
            _attr("nickname", "Sam"),
        ]

        assert estimator.confirmed_mastery(attributes) == {"intro", "astrophysics"}
