"""
Trust-Weighted Progress.

Reports curriculum progress on two parallel tracks:
- raw: every mastered module counts
- trust-weighted: only modules whose content provenance meets the
  certification bar count

Mastery of unverified content is still progress, but it is never
reported with the confidence of mastery over accredited material.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from loguru import logger

from src.personalization.models import (
    DEFAULT_TRUST_WEIGHTS,
    Module,
    SourceRef,
    TrustLevel,
    as_utc,
)


@dataclass(frozen=True)
class ModuleTrust:
    """Breakdown row for one module."""

    slug: str
    mastery: float
    trust_level: TrustLevel
    trust_weight: float
    counts_to_certification: bool


@dataclass(frozen=True)
class FreshnessWarning:
    """A source reference that has expired or expires soon."""

    module_slug: str
    source_slug: str
    severity: str  # expired or expiring
    days_until_expiry: int
    message: str


@dataclass(frozen=True)
class TrustProgress:
    """Raw and trust-discounted progress for one caller."""

    raw_progress: float
    trust_weighted_progress: float
    certified_mastery: float
    supplementary_mastery: float
    module_breakdown: Mapping[str, ModuleTrust] = field(default_factory=dict)
    freshness_warnings: tuple[FreshnessWarning, ...] = ()

    @property
    def certification_readiness(self) -> float:
        return self.certified_mastery

    @property
    def uncertified_modules(self) -> list[str]:
        return [slug for slug, row in self.module_breakdown.items() if not row.counts_to_certification]


def check_freshness(
    valid_until: datetime | None,
    now: datetime | None = None,
    warning_days: int = 60,
) -> tuple[str, int] | None:
    """
    Classify an expiry date.

    Returns:
        ("expired", days) when past, ("expiring", days) within the
        warning window, otherwise None
    """
    if valid_until is None:
        return None
    now = as_utc(now or datetime.now(UTC))
    days = math.floor((as_utc(valid_until) - now).total_seconds() / 86400.0)
    if days < 0:
        return "expired", days
    if days <= warning_days:
        return "expiring", days
    return None


class TrustWeightedProgressCalculator:
    """
    Aggregate module mastery under per-level trust weights.

    certified_mastery is the weight-averaged mastery over modules at or
    above the certification bar; supplementary_mastery averages over
    every module. Both are 0.0 when nothing qualifies.
    """

    def __init__(
        self,
        trust_weights: Mapping[TrustLevel, float] | None = None,
        certification_min_weight: float = 0.80,
        freshness_warning_days: int = 60,
        mastery_threshold: float = 0.7,
    ):
        self.trust_weights = dict(DEFAULT_TRUST_WEIGHTS)
        if trust_weights:
            self.trust_weights.update(trust_weights)
        self.certification_min_weight = certification_min_weight
        self.freshness_warning_days = freshness_warning_days
        self.mastery_threshold = mastery_threshold

    def weight_of(self, level: TrustLevel) -> float:
        return self.trust_weights.get(level, self.trust_weights[TrustLevel.UNVERIFIED])

    def module_trust_levels(self, modules: Iterable[Module]) -> dict[str, TrustLevel]:
        """
        Trust level per module.

        An explicit module level wins; otherwise the highest level among
        its source references; UNVERIFIED when it has neither.
        """
        levels: dict[str, TrustLevel] = {}
        for module in modules:
            if module.trust_level is not None:
                levels[module.slug] = module.trust_level
            elif module.source_refs:
                levels[module.slug] = max(
                    (ref.trust_level for ref in module.source_refs),
                    key=lambda level: level.rank,
                )
            else:
                levels[module.slug] = TrustLevel.UNVERIFIED
        return levels

    @staticmethod
    def has_trust_data(modules: Iterable[Module]) -> bool:
        return any(m.trust_level is not None or m.source_refs for m in modules)

    def calculate(
        self,
        module_mastery: Mapping[str, float],
        trust_levels: Mapping[str, TrustLevel],
        total_modules: int | None = None,
        freshness_warnings: Iterable[FreshnessWarning] = (),
    ) -> TrustProgress:
        """
        Compute both progress tracks.

        Args:
            module_mastery: Mastery score per module slug (absent means 0)
            trust_levels: Trust level per module slug (absent means UNVERIFIED)
            total_modules: Denominator for the progress fractions;
                defaults to the number of distinct modules seen
            freshness_warnings: Passed through onto the result

        Returns:
            TrustProgress
        """
        slugs = list(trust_levels)
        slugs.extend(slug for slug in module_mastery if slug not in trust_levels)
        total = total_modules if total_modules is not None else len(slugs)

        breakdown: dict[str, ModuleTrust] = {}
        mastered = 0
        certified_mastered = 0
        certified_sum = certified_weight = 0.0
        all_sum = all_weight = 0.0

        for slug in slugs:
            mastery = min(max(module_mastery.get(slug, 0.0), 0.0), 1.0)
            level = trust_levels.get(slug, TrustLevel.UNVERIFIED)
            weight = self.weight_of(level)
            certifiable = weight >= self.certification_min_weight

            breakdown[slug] = ModuleTrust(
                slug=slug,
                mastery=mastery,
                trust_level=level,
                trust_weight=weight,
                counts_to_certification=certifiable,
            )

            all_sum += mastery * weight
            all_weight += weight
            if certifiable:
                certified_sum += mastery * weight
                certified_weight += weight

            if mastery >= self.mastery_threshold:
                mastered += 1
                if certifiable:
                    certified_mastered += 1

        progress = TrustProgress(
            raw_progress=mastered / total if total else 0.0,
            trust_weighted_progress=certified_mastered / total if total else 0.0,
            certified_mastery=certified_sum / certified_weight if certified_weight else 0.0,
            supplementary_mastery=all_sum / all_weight if all_weight else 0.0,
            module_breakdown=breakdown,
            freshness_warnings=tuple(freshness_warnings),
        )
        logger.debug(
            f"Trust progress: raw {progress.raw_progress:.2f}, "
            f"trust-weighted {progress.trust_weighted_progress:.2f} over {total} modules"
        )
        return progress

    def freshness_warnings(
        self,
        modules: Iterable[Module],
        now: datetime | None = None,
    ) -> list[FreshnessWarning]:
        """Warnings for every source reference that is expired or expiring."""
        warnings = []
        for module in modules:
            for ref in module.source_refs:
                warning = self._check_ref(module.slug, ref, now)
                if warning:
                    logger.warning(f"Module {module.slug}: {warning.message}")
                    warnings.append(warning)
        return warnings

    def _check_ref(self, module_slug: str, ref: SourceRef, now: datetime | None) -> FreshnessWarning | None:
        result = check_freshness(ref.valid_until, now, self.freshness_warning_days)
        if result is None:
            return None
        severity, days = result
        expiry = as_utc(ref.valid_until).date().isoformat()
        if severity == "expired":
            message = f"Content expired {abs(days)} days ago ({expiry})"
        else:
            message = f"Content expires in {days} days ({expiry})"
        return FreshnessWarning(
            module_slug=module_slug,
            source_slug=ref.source_slug,
            severity=severity,
            days_until_expiry=days,
            message=message,
        )
