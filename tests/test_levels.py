"""Tests for levels.py: level normalization and expected WPM lookup."""

from __future__ import annotations

import pytest

from lectura_adaptativa.levels import (
    DEFAULT_LEVEL,
    EXPECTED_WPM_BY_LEVEL,
    MAX_LEVEL,
    MIN_LEVEL,
    get_level_config,
    normalize_level,
)


class TestNormalizeLevel:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (0.0, 1.0),
            (-3, 1.0),
            (1.0, 1.0),
            (1.29, 1.2),
            (1.31, 1.4),
            (2.0, 2.0),
            (3.5, 3.6),
            (4.8, 4.8),
            (7.2, 4.8),
        ],
    )
    def test_clamp_and_snap(self, raw, expected):
        assert normalize_level(raw) == expected

    def test_every_step_has_a_speed(self):
        level = MIN_LEVEL
        while level <= MAX_LEVEL + 1e-9:
            assert normalize_level(level) in EXPECTED_WPM_BY_LEVEL
            level += 0.2


class TestLevelConfig:
    def test_known_levels(self):
        assert get_level_config(1.0).expected_wpm == 20
        assert get_level_config(2.0).expected_wpm == 40
        assert get_level_config(4.8).expected_wpm == 145

    def test_out_of_range_is_clamped(self):
        assert get_level_config(10).level == MAX_LEVEL
        assert get_level_config(0).level == MIN_LEVEL

    def test_default_level_in_table(self):
        assert DEFAULT_LEVEL in EXPECTED_WPM_BY_LEVEL

    def test_speeds_increase_with_level(self):
        speeds = [EXPECTED_WPM_BY_LEVEL[level] for level in sorted(EXPECTED_WPM_BY_LEVEL)]
        assert speeds == sorted(speeds)
        assert len(set(speeds)) == len(speeds)
