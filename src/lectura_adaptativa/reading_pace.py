"""Reading-pace statistics: per-page sanitization, robust session WPM, cross-session trend.

Three independent stages:

1. ``flag_page`` / ``sanitize_pages`` mark each page ``valid``, ``too_fast`` or
   ``too_slow`` against bounds derived from the reading level.
2. ``compute_session_wpm`` reduces the valid pages of one session to a robust
   (winsorized) WPM plus a confidence tag.
3. ``compute_wpm_trend`` smooths chronologically ordered session snapshots with an
   exponentially weighted average, ignoring low-confidence sessions.

Degenerate input never raises: empty series produce zero values and ``low``
confidence, so callers check cardinality instead of catching exceptions.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Callable, Sequence

from loguru import logger

from .levels import get_level_config
from .models import (
    PageFlag,
    SanitizedPageWpm,
    SessionWpmResult,
    SessionWpmSnapshot,
    WpmBounds,
    WpmConfidence,
    WpmTrendPoint,
    WpmTrendResult,
)

# Plausible reading range around the expected WPM
MIN_WPM_RATIO = 0.3
MAX_WPM_RATIO = 2.5
ABSOLUTE_MIN_WPM = 5
ABSOLUTE_MAX_WPM = 400

# Time on a page below this is a skip, above it the page was abandoned
MIN_PAGE_TIME_MS = 1_500
MAX_PAGE_TIME_MS = 5 * 60_000

MIN_WORDS_TO_JUDGE = 5
STORED_PAGE_WORDS = 50

WINSOR_FRACTION = 0.1
SKIP_FIRST_PAGE_MIN_VALID = 3
HIGH_CONFIDENCE_PAGES = 4
MEDIUM_CONFIDENCE_PAGES = 2

ALPHA_DEFAULT = 0.3
ALPHA_AFTER_INACTIVITY = 0.5
INACTIVITY_DAYS_THRESHOLD = 14
CONFIDENCE_WEIGHT: dict[WpmConfidence, float] = {
    "high": 1.0,
    "medium": 0.5,
    "low": 0.0,
}


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def count_words(text: str) -> int:
    return len(text.split())


def page_wpm(words: int, elapsed_ms: int) -> float:
    if elapsed_ms <= 0:
        return 0.0
    return words / (elapsed_ms / 60_000)


# ── Stage 1: per-page sanitization ────────────────────────────────────────────


def get_wpm_bounds(level: float) -> WpmBounds:
    expected = get_level_config(level).expected_wpm
    return WpmBounds(
        min_wpm=max(ABSOLUTE_MIN_WPM, _round_half_up(expected * MIN_WPM_RATIO)),
        max_wpm=min(ABSOLUTE_MAX_WPM, _round_half_up(expected * MAX_WPM_RATIO)),
        expected=expected,
    )


def flag_page(wpm: float, words: int, elapsed_ms: float, bounds: WpmBounds) -> PageFlag:
    if elapsed_ms < MIN_PAGE_TIME_MS:
        return "too_fast"
    if elapsed_ms > MAX_PAGE_TIME_MS:
        return "too_slow"
    if words < MIN_WORDS_TO_JUDGE:
        return "valid"
    if wpm > bounds.max_wpm:
        return "too_fast"
    if wpm < bounds.min_wpm:
        return "too_slow"
    return "valid"


def sanitize_page(page: int, words: int, elapsed_ms: int, bounds: WpmBounds) -> SanitizedPageWpm:
    """Compute WPM from a word count and elapsed time, then flag the page."""
    wpm = page_wpm(words, elapsed_ms)
    return SanitizedPageWpm(
        page=page,
        wpm=wpm,
        words=words,
        elapsed_ms=elapsed_ms,
        flag=flag_page(wpm, words, elapsed_ms, bounds),
    )


def sanitize_pages(
    raw_pages: Sequence[tuple[int, float]],
    page_texts: Sequence[str],
    timestamps: Sequence[int],
    level: float,
    count: Callable[[str], int] = count_words,
) -> list[SanitizedPageWpm]:
    """Flag client-measured pages.

    ``raw_pages`` holds ``(page_number, wpm)`` pairs, ``timestamps[i]`` is when page
    ``i`` was opened (epoch ms). The last page without a closing timestamp gets an
    elapsed time of zero.
    """
    bounds = get_wpm_bounds(level)
    result: list[SanitizedPageWpm] = []
    for i, (page, wpm) in enumerate(raw_pages):
        words = count(page_texts[i] if i < len(page_texts) else "")
        start = timestamps[i] if i < len(timestamps) else 0
        end = timestamps[i + 1] if i + 1 < len(timestamps) else start
        elapsed_ms = end - start
        result.append(
            SanitizedPageWpm(
                page=page,
                wpm=wpm,
                words=words,
                elapsed_ms=elapsed_ms,
                flag=flag_page(wpm, words, elapsed_ms, bounds),
            )
        )
    return result


def sanitize_stored_pages(
    wpm_by_page: Sequence[tuple[int, float]], level: float
) -> list[SanitizedPageWpm]:
    """Flag persisted per-page WPM when word counts and timestamps are gone.

    A median page length is assumed and the elapsed time reconstructed from it, so
    the flag effectively depends on the WPM bounds only.
    """
    bounds = get_wpm_bounds(level)
    result: list[SanitizedPageWpm] = []
    for page, wpm in wpm_by_page:
        estimated_ms = (STORED_PAGE_WORDS / wpm) * 60_000 if wpm > 0 else 0.0
        flag: PageFlag = (
            flag_page(wpm, STORED_PAGE_WORDS, estimated_ms, bounds) if wpm > 0 else "too_slow"
        )
        result.append(
            SanitizedPageWpm(
                page=page,
                wpm=wpm,
                words=STORED_PAGE_WORDS,
                elapsed_ms=_round_half_up(estimated_ms),
                flag=flag,
            )
        )
    return result


# ── Stage 2: session aggregation ──────────────────────────────────────────────


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def winsorized_mean(values: Sequence[float], fraction: float = WINSOR_FRACTION) -> float:
    """Mean after clamping each tail to the ``fraction`` percentile (at least one value)."""
    if not values:
        return 0.0
    if len(values) <= 2:
        return median(values)
    ordered = sorted(values)
    trim = max(1, math.floor(len(ordered) * fraction))
    lower = ordered[trim]
    upper = ordered[len(ordered) - 1 - trim]
    clamped = [max(lower, min(upper, value)) for value in ordered]
    return sum(clamped) / len(clamped)


def _confidence_for(pages: int) -> WpmConfidence:
    if pages >= HIGH_CONFIDENCE_PAGES:
        return "high"
    if pages >= MEDIUM_CONFIDENCE_PAGES:
        return "medium"
    return "low"


def compute_session_wpm(pages: Sequence[SanitizedPageWpm]) -> SessionWpmResult:
    valid = [page for page in pages if page.flag == "valid"]

    # Page 1 includes orientation time
    effective = valid
    if len(valid) >= SKIP_FIRST_PAGE_MIN_VALID:
        without_first = [page for page in valid if page.page > 1]
        if without_first:
            effective = without_first

    values = [page.wpm for page in effective]
    robust = _round_half_up(winsorized_mean(values))
    mean = _round_half_up(sum(values) / len(values)) if values else 0

    return SessionWpmResult(
        robust_wpm=robust,
        confidence=_confidence_for(len(effective)),
        valid_pages=len(effective),
        total_pages=len(pages),
        mean_wpm=mean,
    )


# ── Stage 3: cross-session trend ──────────────────────────────────────────────


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _gap_days(previous: datetime, current: datetime) -> float:
    return (_as_utc(current) - _as_utc(previous)).total_seconds() / 86_400


def compute_wpm_trend(snapshots: Sequence[SessionWpmSnapshot]) -> WpmTrendResult:
    """Smooth oldest-first session snapshots into a trend.

    Low-confidence sessions still produce a point, carrying the previous smoothed
    value. After more than 14 days since the previous snapshot the step uses a
    larger alpha so the fresh measurement dominates.
    """
    if not snapshots:
        return WpmTrendResult(points=[], current_wpm=0, sessions_used=0)

    usable = [snap for snap in snapshots if CONFIDENCE_WEIGHT[snap.confidence] > 0]
    if not usable:
        points = [
            WpmTrendPoint(
                date=snap.date,
                raw_wpm=snap.robust_wpm,
                smoothed_wpm=_round_half_up(snap.robust_wpm),
                level=snap.level,
                confidence=snap.confidence,
            )
            for snap in snapshots
        ]
        return WpmTrendResult(points=points, current_wpm=0, sessions_used=0)

    smoothed = float(usable[0].robust_wpm)
    points: list[WpmTrendPoint] = []
    used = 0

    for i, snap in enumerate(snapshots):
        weight = CONFIDENCE_WEIGHT[snap.confidence]
        if weight > 0:
            alpha = ALPHA_DEFAULT
            if i > 0 and _gap_days(snapshots[i - 1].date, snap.date) > INACTIVITY_DAYS_THRESHOLD:
                alpha = ALPHA_AFTER_INACTIVITY
            effective_alpha = alpha * weight
            smoothed = effective_alpha * snap.robust_wpm + (1 - effective_alpha) * smoothed
            used += 1

        points.append(
            WpmTrendPoint(
                date=snap.date,
                raw_wpm=snap.robust_wpm,
                smoothed_wpm=_round_half_up(smoothed),
                level=snap.level,
                confidence=snap.confidence,
            )
        )

    logger.debug(f"WPM trend over {len(snapshots)} sessions, {used} usable")
    return WpmTrendResult(points=points, current_wpm=_round_half_up(smoothed), sessions_used=used)


__all__ = [
    "ALPHA_AFTER_INACTIVITY",
    "ALPHA_DEFAULT",
    "CONFIDENCE_WEIGHT",
    "INACTIVITY_DAYS_THRESHOLD",
    "MAX_PAGE_TIME_MS",
    "MIN_PAGE_TIME_MS",
    "compute_session_wpm",
    "compute_wpm_trend",
    "count_words",
    "flag_page",
    "get_wpm_bounds",
    "median",
    "page_wpm",
    "sanitize_page",
    "sanitize_pages",
    "sanitize_stored_pages",
    "winsorized_mean",
]
