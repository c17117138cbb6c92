"""
Personalization Domain Models.

Immutable snapshot records the engine resolves against, plus the
enums and the scalar configuration shared by every resolver.

Design:
- Scope: tagged configuration tier, precedence kept as data (see target_cascade)
- AttributeValue: one case per value kind, never field-presence checks
- EngineConfig: validated once at construction, then passed by value
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Union

from loguru import logger


def clamp_unit(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return min(max(float(value), 0.0), 1.0)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


# ============================================================================
# Enums
# ============================================================================


class Scope(str, Enum):
    """Configuration tier a target belongs to."""

    SYSTEM = "SYSTEM"
    DOMAIN = "DOMAIN"
    PLAYBOOK = "PLAYBOOK"
    CALLER_SEGMENT = "CALLER_SEGMENT"
    CALLER_PERSONALIZED = "CALLER_PERSONALIZED"

    @classmethod
    def from_label(cls, label: str | Scope) -> Scope:
        """
        Parse a scope label.

        Stored targets use the short label "CALLER" for segment scope.
        """
        if isinstance(label, Scope):
            return label
        normalized = label.strip().upper()
        if normalized == "CALLER":
            return cls.CALLER_SEGMENT
        return cls(normalized)

    @property
    def requires_entity(self) -> bool:
        """Whether a target in this scope names a scoped entity."""
        return self in (Scope.DOMAIN, Scope.PLAYBOOK, Scope.CALLER_SEGMENT)


class TargetLevel(str, Enum):
    """Coarse reading of a 0-1 target value."""

    HIGH = "HIGH"
    MODERATE = "MODERATE"
    LOW = "LOW"

    @classmethod
    def from_value(cls, value: float, high: float = 0.65, low: float = 0.35) -> TargetLevel:
        if value >= high:
            return cls.HIGH
        if value <= low:
            return cls.LOW
        return cls.MODERATE


class ReviewType(str, Enum):
    """Spaced-review intensity, lightest first."""

    QUICK_RECALL = "quick_recall"
    APPLICATION = "application"
    DEEP_REVIEW = "deep_review"
    REINTRODUCE = "reintroduce"

    @property
    def intensity(self) -> int:
        """Ordinal intensity (0 = lightest)."""
        return list(ReviewType).index(self)

    @property
    def technique(self) -> str:
        """How the review step should be run."""
        return {
            ReviewType.QUICK_RECALL: "Ask one recall question, wait for their attempt before proceeding",
            ReviewType.APPLICATION: "Give a scenario requiring them to apply the concept",
            ReviewType.DEEP_REVIEW: "Walk through the concept again with a fresh example",
            ReviewType.REINTRODUCE: "Rebuild the concept from first principles before testing recall",
        }[self]


class ModuleStatus(str, Enum):
    """Per-module reporting status."""

    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    NOT_STARTED = "not_started"


TRUST_LABEL_ALIASES: dict[str, str] = {
    "VERIFIED": "PUBLISHED_REFERENCE",
    "UNVERIFIED": "UNVERIFIED",
}


class TrustLevel(str, Enum):
    """Provenance ladder for teaching content, highest authority first."""

    REGULATORY_STANDARD = "REGULATORY_STANDARD"
    ACCREDITED_MATERIAL = "ACCREDITED_MATERIAL"
    PUBLISHED_REFERENCE = "PUBLISHED_REFERENCE"
    EXPERT_CURATED = "EXPERT_CURATED"
    AI_ASSISTED = "AI_ASSISTED"
    UNVERIFIED = "UNVERIFIED"

    @property
    def rank(self) -> int:
        """5 for regulatory standards down to 0 for unverified."""
        return {
            TrustLevel.REGULATORY_STANDARD: 5,
            TrustLevel.ACCREDITED_MATERIAL: 4,
            TrustLevel.PUBLISHED_REFERENCE: 3,
            TrustLevel.EXPERT_CURATED: 2,
            TrustLevel.AI_ASSISTED: 1,
            TrustLevel.UNVERIFIED: 0,
        }[self]

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @classmethod
    def parse(cls, label: str | TrustLevel | None) -> TrustLevel:
        """
        Parse a trust label; unknown or missing labels read as UNVERIFIED.

        The binary provenance labels "verified"/"unverified" map onto the
        ladder: verified content reads as PUBLISHED_REFERENCE, the lowest
        level that counts toward certification by default.
        """
        if isinstance(label, TrustLevel):
            return label
        if not label:
            return cls.UNVERIFIED
        normalized = label.strip().upper()
        if normalized in TRUST_LABEL_ALIASES:
            return cls(TRUST_LABEL_ALIASES[normalized])
        try:
            return cls(normalized)
        except ValueError:
            logger.warning(f"Unknown trust level '{label}' - treating as UNVERIFIED")
            return cls.UNVERIFIED


DEFAULT_TRUST_WEIGHTS: dict[TrustLevel, float] = {
    TrustLevel.REGULATORY_STANDARD: 1.0,
    TrustLevel.ACCREDITED_MATERIAL: 0.95,
    TrustLevel.PUBLISHED_REFERENCE: 0.80,
    TrustLevel.EXPERT_CURATED: 0.60,
    TrustLevel.AI_ASSISTED: 0.30,
    TrustLevel.UNVERIFIED: 0.05,
}


# ============================================================================
# Behavior Targets
# ============================================================================


@dataclass(frozen=True)
class BehaviorParameter:
    """Reference data for one tunable agent behavior."""

    parameter_id: str
    name: str
    interpretation_high: str | None = None
    interpretation_low: str | None = None
    group: str | None = None


@dataclass(frozen=True)
class BehaviorTarget:
    """A scoped target value for one parameter."""

    target_id: str
    parameter_id: str
    scope: Scope
    target_value: float
    confidence: float = 1.0
    entity_id: str | None = None  # domain, playbook or segment id
    expires_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "scope", Scope.from_label(self.scope))
        object.__setattr__(self, "target_value", clamp_unit(self.target_value))
        object.__setattr__(self, "confidence", clamp_unit(self.confidence))
        if self.scope == Scope.CALLER_PERSONALIZED:
            raise ValueError("CALLER_PERSONALIZED is reserved for CallerTarget entries")

    def is_active(self, now: datetime) -> bool:
        """A target is active until its expiry instant."""
        return self.expires_at is None or as_utc(self.expires_at) > as_utc(now)


@dataclass(frozen=True)
class CallerTarget:
    """Personalized per-caller target learned from interaction history."""

    caller_id: str
    parameter_id: str
    target_value: float
    confidence: float = 1.0
    calls_used: int = 0
    decay_half_life: float | None = None  # in calls
    last_updated_at: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "target_value", clamp_unit(self.target_value))
        object.__setattr__(self, "confidence", clamp_unit(self.confidence))


# ============================================================================
# Curriculum
# ============================================================================


@dataclass(frozen=True)
class SourceRef:
    """Provenance reference attached to module content."""

    source_slug: str
    trust_level: TrustLevel = TrustLevel.UNVERIFIED
    ref: str = ""
    valid_until: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "trust_level", TrustLevel.parse(self.trust_level))


@dataclass(frozen=True)
class Module:
    """One curriculum module. Ordinal position is the sequencing signal."""

    slug: str
    name: str
    description: str = ""
    position: int = 0
    prerequisites: tuple[str, ...] = ()
    mastery_threshold: float = 0.7
    trust_level: TrustLevel | None = None
    source_refs: tuple[SourceRef, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "prerequisites", tuple(sorted(set(self.prerequisites))))
        object.__setattr__(self, "mastery_threshold", clamp_unit(self.mastery_threshold))
        object.__setattr__(self, "source_refs", tuple(self.source_refs))
        if self.trust_level is not None:
            object.__setattr__(self, "trust_level", TrustLevel.parse(self.trust_level))


# ============================================================================
# Caller Attributes (tagged value variant)
# ============================================================================


@dataclass(frozen=True)
class StringValue:
    value: str


@dataclass(frozen=True)
class NumberValue:
    value: float


@dataclass(frozen=True)
class BooleanValue:
    value: bool


@dataclass(frozen=True)
class StructuredValue:
    value: Mapping[str, Any] | list[Any]


AttributeValue = Union[StringValue, NumberValue, BooleanValue, StructuredValue]


def wrap_value(raw: Any) -> AttributeValue:
    """Wrap a plain Python value in its attribute variant."""
    if isinstance(raw, (StringValue, NumberValue, BooleanValue, StructuredValue)):
        return raw
    # bool before number: bool is an int subclass
    if isinstance(raw, bool):
        return BooleanValue(raw)
    if isinstance(raw, (int, float)):
        return NumberValue(float(raw))
    if isinstance(raw, str):
        return StringValue(raw)
    if isinstance(raw, (Mapping, list)):
        return StructuredValue(raw)
    raise TypeError(f"Unsupported attribute value type: {type(raw).__name__}")


def unwrap_value(value: AttributeValue) -> Any:
    """Return the plain Python value of an attribute variant."""
    if isinstance(value, BooleanValue):
        return value.value
    if isinstance(value, NumberValue):
        return value.value
    if isinstance(value, StringValue):
        return value.value
    if isinstance(value, StructuredValue):
        return value.value
    raise TypeError(f"Unknown attribute variant: {type(value).__name__}")


@dataclass(frozen=True)
class CallerAttribute:
    """Generic fact about a caller."""

    caller_id: str
    key: str
    value: AttributeValue
    scope: str = "CURRICULUM"
    domain: str | None = None
    confidence: float = 1.0
    source_id: str | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "value", wrap_value(self.value))
        object.__setattr__(self, "confidence", clamp_unit(self.confidence))

    @property
    def raw_value(self) -> Any:
        return unwrap_value(self.value)

    def is_valid(self, now: datetime) -> bool:
        """Whether `now` falls inside the validity window."""
        now = as_utc(now)
        if self.valid_from is not None and as_utc(self.valid_from) > now:
            return False
        if self.valid_until is not None and as_utc(self.valid_until) <= now:
            return False
        return True


# ============================================================================
# Memories & Goals
# ============================================================================

_WHITESPACE = re.compile(r"\s+")


def normalize_memory_key(key: str) -> str:
    """Lowercase and collapse whitespace runs to one underscore."""
    return _WHITESPACE.sub("_", key.strip().lower())


@dataclass(frozen=True)
class MemoryRecord:
    """A remembered fact about a caller."""

    category: str
    key: str
    value: str
    confidence: float = 0.5
    evidence: str | None = None
    expires_at: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "confidence", clamp_unit(self.confidence))

    @property
    def normalized_key(self) -> str:
        return normalize_memory_key(self.key)

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or as_utc(self.expires_at) > as_utc(now)


@dataclass(frozen=True)
class Goal:
    """A learner goal."""

    name: str
    progress: float = 0.0
    priority: int = 5

    def __post_init__(self):
        object.__setattr__(self, "progress", clamp_unit(self.progress))


# ============================================================================
# Engine Configuration
# ============================================================================


@dataclass(frozen=True)
class ReviewSchedule:
    """Day break points for review intensity."""

    reintroduce: int = 14
    deep_review: int = 7
    application: int = 3

    def __post_init__(self):
        if not 0 < self.application < self.deep_review < self.reintroduce:
            raise ValueError(
                "Review break points must satisfy 0 < application < deep_review < reintroduce "
                f"(got {self.application}/{self.deep_review}/{self.reintroduce})"
            )


@dataclass(frozen=True)
class EngineConfig:
    """Scalar configuration for one resolution."""

    high_threshold: float = 0.65
    low_threshold: float = 0.35
    memories_per_category: int = 5
    mastery_confirmation_threshold: float = 0.7
    default_target_value: float = 0.5
    interactions_per_module: int = 2
    review_schedule: ReviewSchedule = field(default_factory=ReviewSchedule)
    trust_weights: Mapping[TrustLevel, float] = field(
        default_factory=lambda: dict(DEFAULT_TRUST_WEIGHTS)
    )
    certification_min_weight: float = 0.80
    freshness_warning_days: int = 60

    def __post_init__(self):
        for name in (
            "high_threshold",
            "low_threshold",
            "mastery_confirmation_threshold",
            "default_target_value",
            "certification_min_weight",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1] (got {value})")
        if self.low_threshold > self.high_threshold:
            raise ValueError(
                f"low_threshold ({self.low_threshold}) exceeds high_threshold ({self.high_threshold})"
            )
        if self.memories_per_category < 1:
            raise ValueError("memories_per_category must be at least 1")
        if self.interactions_per_module < 1:
            raise ValueError("interactions_per_module must be at least 1")
        if self.freshness_warning_days < 0:
            raise ValueError("freshness_warning_days must not be negative")
        weights = dict(DEFAULT_TRUST_WEIGHTS)
        weights.update({TrustLevel.parse(k): float(v) for k, v in self.trust_weights.items()})
        object.__setattr__(self, "trust_weights", weights)
