"""FSRS-style spaced repetition: forgetting curve, card init and review scheduling."""

from __future__ import annotations

import math
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Optional

from loguru import logger

from .models import FsrsCardState, FsrsRating, FsrsReviewResult, ensure_rating

AGAIN: FsrsRating = 1
HARD: FsrsRating = 2
GOOD: FsrsRating = 3
EASY: FsrsRating = 4

DECAY = -0.5
FACTOR = 19 / 81
DEFAULT_RETENTION = 0.9
MIN_RETENTION = 0.01
MAX_RETENTION = 0.99

MIN_STABILITY = 0.1
MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0

EASY_LATENCY_MS = 2_500
HARD_LATENCY_MS = 7_000

INITIAL_DIFFICULTY: dict[int, float] = {AGAIN: 8.5, HARD: 6.8, GOOD: 5.2, EASY: 4.2}
INITIAL_STABILITY: dict[int, float] = {AGAIN: 0.5, HARD: 1.2, GOOD: 2.5, EASY: 4.5}

LAPSE_DIFFICULTY_STEP = 1.2
DIFFICULTY_DELTA: dict[int, float] = {HARD: 0.35, GOOD: -0.10, EASY: -0.45}
HARD_PENALTY = 0.85
EASY_BONUS = 1.25
HARD_INTERVAL_FACTOR = 0.7
EASY_INTERVAL_FACTOR = 1.2
EASY_MIN_INTERVAL = 2

SECONDS_PER_DAY = 86_400


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _clamp_retention(value: float) -> float:
    return _clamp(value, MIN_RETENTION, MAX_RETENTION)


def _retention_from_env(default: float = DEFAULT_RETENTION) -> float:
    value = os.environ.get("LECTURA_DESIRED_RETENTION")
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric LECTURA_DESIRED_RETENTION={value!r}")
        return default
    if not math.isfinite(parsed):
        return default
    return _clamp_retention(parsed)


DESIRED_RETENTION = _retention_from_env()


def _normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_datetime(value: str) -> datetime:
    return _normalize_datetime(datetime.fromisoformat(value))


def _elapsed_days(since: datetime, now: datetime) -> float:
    seconds = (_normalize_datetime(now) - _normalize_datetime(since)).total_seconds()
    return max(0.0, seconds / SECONDS_PER_DAY)


def rating_from_outcome(correct: bool, latency_ms: int | None = None) -> FsrsRating:
    """Map an answer to a rating: wrong=Again, fast=Easy, slow=Hard, else Good."""
    if not correct:
        return AGAIN
    if latency_ms is None:
        return GOOD
    if latency_ms < EASY_LATENCY_MS:
        return EASY
    if latency_ms > HARD_LATENCY_MS:
        return HARD
    return GOOD


def retrievability(stability: float, elapsed_days: float) -> float:
    """Forgetting curve: R(t, S) = (1 + FACTOR * t / S) ^ DECAY."""
    safe_stability = max(MIN_STABILITY, stability)
    base = 1 + FACTOR * max(0.0, elapsed_days) / safe_stability
    return _clamp(math.pow(base, DECAY), 0.0, 1.0)


def interval_days(stability: float, desired_retention: float | None = None) -> int:
    """Days until retrievability drops to the desired retention. At least one day."""
    retention = _clamp_retention(
        DESIRED_RETENTION if desired_retention is None else desired_retention
    )
    safe_stability = max(MIN_STABILITY, stability)
    raw = (safe_stability / FACTOR) * (math.pow(retention, 1 / DECAY) - 1)
    return max(1, _round_half_up(raw))


def _directional_interval(stability: float, rating: FsrsRating) -> int:
    interval = interval_days(stability)
    if rating == AGAIN:
        return 1
    if rating == HARD:
        return max(1, _round_half_up(interval * HARD_INTERVAL_FACTOR))
    if rating == EASY:
        return max(EASY_MIN_INTERVAL, _round_half_up(interval * EASY_INTERVAL_FACTOR))
    return interval


def init_card(now: datetime, rating: int) -> FsrsReviewResult:
    """First review of a fact that has no prior state."""
    verdict = ensure_rating(rating)
    normalized_now = _normalize_datetime(now)
    state = FsrsCardState(
        difficulty=INITIAL_DIFFICULTY[verdict],
        stability=INITIAL_STABILITY[verdict],
        repetitions=1,
        lapses=1 if verdict == AGAIN else 0,
        last_review_at=normalized_now,
    )
    interval = _directional_interval(state.stability, verdict)
    logger.debug(f"FSRS init rating={verdict} stability={state.stability} interval={interval}d")
    return FsrsReviewResult(
        state=state,
        due_at=normalized_now + timedelta(days=interval),
        interval_days=interval,
        retrievability=1.0,
        rating=verdict,
    )


def review_card(previous: FsrsCardState, now: datetime, rating: int) -> FsrsReviewResult:
    """Subsequent review: update stability/difficulty from the prior state."""
    verdict = ensure_rating(rating)
    normalized_now = _normalize_datetime(now)
    elapsed = _elapsed_days(previous.last_review_at, normalized_now)
    recall = retrievability(previous.stability, elapsed)
    prev_stability = max(MIN_STABILITY, previous.stability)
    lapses = previous.lapses

    if verdict == AGAIN:
        stability = max(
            0.2,
            0.6 * math.pow(prev_stability + 0.2, 0.8) * (1.2 + (1 - recall)),
        )
        difficulty = _clamp(previous.difficulty + LAPSE_DIFFICULTY_STEP, MIN_DIFFICULTY, MAX_DIFFICULTY)
        lapses += 1
    else:
        hard_penalty = HARD_PENALTY if verdict == HARD else 1.0
        easy_bonus = EASY_BONUS if verdict == EASY else 1.0
        growth = 1 + (
            math.exp(0.95)
            * (11 - previous.difficulty)
            * math.pow(max(1.0, prev_stability), -0.08)
            * (math.exp((1 - recall) * 1.6) - 1)
            * hard_penalty
            * easy_bonus
        )
        stability = max(prev_stability + 0.1, prev_stability * growth)
        target = previous.difficulty + DIFFICULTY_DELTA[verdict]
        difficulty = _clamp(
            0.8 * previous.difficulty + 0.2 * target, MIN_DIFFICULTY, MAX_DIFFICULTY
        )

    state = FsrsCardState(
        difficulty=difficulty,
        stability=stability,
        repetitions=previous.repetitions + 1,
        lapses=lapses,
        last_review_at=normalized_now,
    )
    interval = _directional_interval(stability, verdict)
    logger.debug(
        f"FSRS review rating={verdict} elapsed={elapsed:.2f}d R={recall:.3f} "
        f"S {previous.stability:.2f}->{stability:.2f} interval={interval}d"
    )
    return FsrsReviewResult(
        state=state,
        due_at=normalized_now + timedelta(days=interval),
        interval_days=interval,
        retrievability=recall,
        rating=verdict,
    )


def schedule(previous: Optional[FsrsCardState], now: datetime, rating: int) -> FsrsReviewResult:
    """Init when the fact has never been reviewed, review otherwise."""
    if previous is None:
        return init_card(now, rating)
    return review_card(previous, now, rating)


def read_fsrs_state(metadata: Mapping[str, Any]) -> FsrsCardState | None:
    """Rebuild a card state from persisted metadata (``{"fsrs": {...}}``)."""
    raw = metadata.get("fsrs")
    if not isinstance(raw, Mapping):
        return None

    numeric = ("difficulty", "stability", "repetitions", "lapses")
    for key in numeric:
        value = raw.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
    last_review = raw.get("lastReviewAt")
    if not isinstance(last_review, str):
        return None
    try:
        last_review_at = _parse_datetime(last_review)
    except ValueError:
        return None

    return FsrsCardState(
        difficulty=float(raw["difficulty"]),
        stability=float(raw["stability"]),
        repetitions=int(raw["repetitions"]),
        lapses=int(raw["lapses"]),
        last_review_at=last_review_at,
    )


def dump_fsrs_state(state: FsrsCardState) -> dict[str, Any]:
    """Inverse of read_fsrs_state."""
    return {
        "fsrs": {
            "difficulty": state.difficulty,
            "stability": state.stability,
            "repetitions": state.repetitions,
            "lapses": state.lapses,
            "lastReviewAt": _normalize_datetime(state.last_review_at).isoformat(),
        }
    }


def is_due(due: FsrsReviewResult | datetime, now: datetime) -> bool:
    due_at = due.due_at if isinstance(due, FsrsReviewResult) else due
    return _normalize_datetime(due_at) <= _normalize_datetime(now)


def due_facts(due_by_fact: Mapping[str, datetime], now: datetime) -> list[str]:
    """Fact ids whose review date has passed, most overdue first."""
    due = [(fact_id, _normalize_datetime(due_at)) for fact_id, due_at in due_by_fact.items()]
    return [fact_id for fact_id, due_at in sorted(due, key=lambda item: item[1]) if is_due(due_at, now)]


def due_results(results: Iterable[tuple[str, FsrsReviewResult]], now: datetime) -> list[str]:
    return due_facts({fact_id: result.due_at for fact_id, result in results}, now)


__all__ = [
    "AGAIN",
    "DECAY",
    "DESIRED_RETENTION",
    "EASY",
    "FACTOR",
    "GOOD",
    "HARD",
    "due_facts",
    "due_results",
    "dump_fsrs_state",
    "init_card",
    "interval_days",
    "is_due",
    "rating_from_outcome",
    "read_fsrs_state",
    "retrievability",
    "review_card",
    "schedule",
]
