from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, cast

SuggestionKind = Literal["profundizar", "conectar", "aplicar", "reforzar"]
PageFlag = Literal["valid", "too_fast", "too_slow"]
WpmConfidence = Literal["high", "medium", "low"]
FsrsRating = Literal[1, 2, 3, 4]

FSRS_RATINGS: tuple[FsrsRating, ...] = (1, 2, 3, 4)


# ── Mastery ───────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class SkillAttempt:
    """One answer event coming from an activity screen."""

    skill_id: str
    activity: str
    correct: bool
    latency_ms: int = 0


@dataclass(slots=True)
class SkillMasteryState:
    skill_id: str
    window: deque[bool]
    total_attempts: int = 0
    total_correct: int = 0
    latency_sum_ms: int = 0
    latency_count: int = 0
    errors_by_activity: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class SkillMastery:
    skill_id: str
    mastery: float
    total_attempts: int
    total_correct: int
    mastered: bool
    average_latency_ms: float
    error_pattern: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class MasterySummary:
    skills: dict[str, SkillMastery]
    current_skill: str
    next_skill: str | None
    total_attempts: int
    overall_progress: float


# ── FSRS ──────────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class FsrsCardState:
    difficulty: float
    stability: float
    repetitions: int
    lapses: int
    last_review_at: datetime


@dataclass(frozen=True, slots=True)
class FsrsReviewResult:
    state: FsrsCardState
    due_at: datetime
    interval_days: int
    retrievability: float
    rating: FsrsRating


# ── Curriculum & recommendations ──────────────────────────────────────────────


@dataclass(slots=True)
class Domain:
    slug: str
    name: str
    emoji: str
    order: int


@dataclass(slots=True)
class SkillDef:
    slug: str
    name: str
    emoji: str
    domain: str
    level: int
    core_concept: str
    min_age: int
    max_age: int
    order: int
    prerequisites: list[str] = field(default_factory=list)

    def fits_age(self, age: int) -> bool:
        return self.min_age <= age <= self.max_age


@dataclass(slots=True)
class Curriculum:
    """Static reference data: domains, skills and the hand-authored edge tables."""

    version: str
    domains: dict[str, Domain]
    skills: dict[str, SkillDef]
    deepen: dict[str, list[str]] = field(default_factory=dict)
    apply: dict[str, list[str]] = field(default_factory=dict)
    interest_domains: dict[str, list[str]] = field(default_factory=dict)


@dataclass(slots=True)
class SkillProgressLite:
    total_attempts: int = 0
    mastery_level: float = 0.0
    mastered: bool = False


@dataclass(slots=True)
class LearningSuggestion:
    slug: str
    name: str
    emoji: str
    domain: str
    kind: SuggestionKind
    reason: str
    score: float


# ── Reading pace ──────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class WpmBounds:
    min_wpm: int
    max_wpm: int
    expected: int


@dataclass(frozen=True, slots=True)
class SanitizedPageWpm:
    page: int
    wpm: float
    words: int
    elapsed_ms: int
    flag: PageFlag


@dataclass(frozen=True, slots=True)
class SessionWpmResult:
    robust_wpm: int
    confidence: WpmConfidence
    valid_pages: int
    total_pages: int
    mean_wpm: int


@dataclass(frozen=True, slots=True)
class SessionWpmSnapshot:
    date: datetime
    robust_wpm: float
    confidence: WpmConfidence
    level: float


@dataclass(frozen=True, slots=True)
class WpmTrendPoint:
    date: datetime
    raw_wpm: float
    smoothed_wpm: int
    level: float
    confidence: WpmConfidence


@dataclass(frozen=True, slots=True)
class WpmTrendResult:
    points: list[WpmTrendPoint]
    current_wpm: int
    sessions_used: int


def ensure_rating(value: int) -> FsrsRating:
    """Validate an FSRS rating ordinal (1=Again .. 4=Easy)."""

    if value not in FSRS_RATINGS:
        raise ValueError(f"Unsupported FSRS rating: {value}")
    return cast(FsrsRating, value)


__all__ = [
    "Curriculum",
    "Domain",
    "ensure_rating",
    "FSRS_RATINGS",
    "FsrsCardState",
    "FsrsRating",
    "FsrsReviewResult",
    "LearningSuggestion",
    "MasterySummary",
    "PageFlag",
    "SanitizedPageWpm",
    "SessionWpmResult",
    "SessionWpmSnapshot",
    "SkillAttempt",
    "SkillDef",
    "SkillMastery",
    "SkillMasteryState",
    "SkillProgressLite",
    "SuggestionKind",
    "WpmBounds",
    "WpmConfidence",
    "WpmTrendPoint",
    "WpmTrendResult",
]
