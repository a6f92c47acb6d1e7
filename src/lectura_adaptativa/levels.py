"""Reading levels (nivel 1.0 - 4.8 in 0.2 steps) and their expected reading speed."""

from __future__ import annotations

import math
from dataclasses import dataclass

MIN_LEVEL = 1.0
MAX_LEVEL = 4.8
DEFAULT_LEVEL = 2.0

# Expected words per minute for a child reading comfortably at each level
EXPECTED_WPM_BY_LEVEL: dict[float, int] = {
    1.0: 20,
    1.2: 25,
    1.4: 28,
    1.6: 32,
    1.8: 35,
    2.0: 40,
    2.2: 48,
    2.4: 52,
    2.6: 58,
    2.8: 62,
    3.0: 70,
    3.2: 78,
    3.4: 85,
    3.6: 90,
    3.8: 95,
    4.0: 105,
    4.2: 115,
    4.4: 125,
    4.6: 135,
    4.8: 145,
}


@dataclass(frozen=True, slots=True)
class LevelConfig:
    level: float
    expected_wpm: int


def normalize_level(level: float) -> float:
    """Clamp to the supported range and snap to the nearest 0.2 step."""
    clamped = max(MIN_LEVEL, min(MAX_LEVEL, level))
    steps = math.floor(clamped * 5 + 0.5)
    return round(steps / 5, 1)


def get_level_config(level: float) -> LevelConfig:
    normalized = normalize_level(level)
    expected = EXPECTED_WPM_BY_LEVEL.get(normalized)
    if expected is None:
        normalized = DEFAULT_LEVEL
        expected = EXPECTED_WPM_BY_LEVEL[DEFAULT_LEVEL]
    return LevelConfig(level=normalized, expected_wpm=expected)


__all__ = [
    "DEFAULT_LEVEL",
    "EXPECTED_WPM_BY_LEVEL",
    "LevelConfig",
    "MAX_LEVEL",
    "MIN_LEVEL",
    "get_level_config",
    "normalize_level",
]
