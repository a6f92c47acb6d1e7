"""Sliding-window mastery tracker for in-session symbol drills (vowels, syllables)."""

from __future__ import annotations

from collections import deque
from typing import Sequence

from loguru import logger

from .models import MasterySummary, SkillAttempt, SkillMastery, SkillMasteryState

MASTERY_THRESHOLD = 0.90
MIN_ATTEMPTS_FOR_MASTERY = 5
MASTERY_WINDOW = 10

VOWEL_ORDER: tuple[str, ...] = ("A", "E", "I", "O", "U")

# Direct syllables, second wave
SYLLABLE_ORDER: tuple[str, ...] = (
    "MA", "ME", "MI", "MO", "MU",
    "PA", "PE", "PI", "PO", "PU",
    "LA", "LE", "LI", "LO", "LU",
    "SA", "SE", "SI", "SO", "SU",
    "TA", "TE", "TI", "TO", "TU",
    "NA", "NE", "NI", "NO", "NU",
)


def is_mastered(
    mastery: float,
    n_attempts: int,
    *,
    threshold: float = MASTERY_THRESHOLD,
    min_attempts: int = MIN_ATTEMPTS_FOR_MASTERY,
) -> bool:
    """A skill is mastered when mastery >= threshold AND enough attempts."""
    return mastery >= threshold and n_attempts >= min_attempts


class MasteryTracker:
    """Tracks per-skill accuracy over the last ``window`` attempts.

    The mastered flag is always derived from the window, never stored. The
    progression cursor walks ``order`` and stops at the first unmastered skill.
    One tracker belongs to one live session; callers must submit attempts in the
    order they happened.
    """

    def __init__(
        self,
        order: Sequence[str] = VOWEL_ORDER,
        *,
        window: int = MASTERY_WINDOW,
        threshold: float = MASTERY_THRESHOLD,
        min_attempts: int = MIN_ATTEMPTS_FOR_MASTERY,
    ) -> None:
        if not order:
            raise ValueError("progression order must not be empty")
        if window < 1:
            raise ValueError("window must be at least 1")
        self.order: tuple[str, ...] = tuple(order)
        self.window = window
        self.threshold = threshold
        self.min_attempts = min_attempts
        self._states: dict[str, SkillMasteryState] = {}

    def record(self, attempt: SkillAttempt) -> None:
        """Append one outcome. Repeated identical attempts all count."""
        state = self._states.get(attempt.skill_id)
        if state is None:
            state = SkillMasteryState(
                skill_id=attempt.skill_id,
                window=deque(maxlen=self.window),
            )
            self._states[attempt.skill_id] = state

        was_mastered = self._derive(state).mastered

        state.window.append(attempt.correct)
        state.total_attempts += 1
        if attempt.correct:
            state.total_correct += 1
        else:
            state.errors_by_activity[attempt.activity] = (
                state.errors_by_activity.get(attempt.activity, 0) + 1
            )
        if attempt.latency_ms > 0:
            state.latency_sum_ms += attempt.latency_ms
            state.latency_count += 1

        if not was_mastered and self._derive(state).mastered:
            logger.debug(
                f"Skill {attempt.skill_id} mastered after {state.total_attempts} attempts"
            )

    def get_mastery(self, skill_id: str) -> SkillMastery:
        state = self._states.get(skill_id)
        if state is None:
            return SkillMastery(
                skill_id=skill_id,
                mastery=0.0,
                total_attempts=0,
                total_correct=0,
                mastered=False,
                average_latency_ms=0.0,
            )
        return self._derive(state)

    def is_mastered(self, skill_id: str) -> bool:
        return self.get_mastery(skill_id).mastered

    def next_skill(self) -> str | None:
        """First unmastered skill in progression order, or None when all are done."""
        for skill_id in self.order:
            if not self.is_mastered(skill_id):
                return skill_id
        return None

    def current_skill(self) -> str:
        """Like next_skill, but stays on the last skill once everything is mastered."""
        nxt = self.next_skill()
        return nxt if nxt is not None else self.order[-1]

    def overall_progress(self) -> float:
        mastered = sum(1 for skill_id in self.order if self.is_mastered(skill_id))
        return mastered / len(self.order)

    def total_attempts(self) -> int:
        return sum(state.total_attempts for state in self._states.values())

    def summary(self) -> MasterySummary:
        return MasterySummary(
            skills={skill_id: self.get_mastery(skill_id) for skill_id in self.order},
            current_skill=self.current_skill(),
            next_skill=self.next_skill(),
            total_attempts=self.total_attempts(),
            overall_progress=self.overall_progress(),
        )

    def reset(self) -> None:
        self._states.clear()

    def reset_skill(self, skill_id: str) -> None:
        self._states.pop(skill_id, None)

    def _derive(self, state: SkillMasteryState) -> SkillMastery:
        mastery = 0.0
        if state.window:
            mastery = sum(state.window) / len(state.window)
        average_latency = (
            state.latency_sum_ms / state.latency_count if state.latency_count else 0.0
        )
        return SkillMastery(
            skill_id=state.skill_id,
            mastery=mastery,
            total_attempts=state.total_attempts,
            total_correct=state.total_correct,
            mastered=is_mastered(
                mastery,
                state.total_attempts,
                threshold=self.threshold,
                min_attempts=self.min_attempts,
            ),
            average_latency_ms=average_latency,
            error_pattern=dict(state.errors_by_activity),
        )


__all__ = [
    "MASTERY_THRESHOLD",
    "MASTERY_WINDOW",
    "MIN_ATTEMPTS_FOR_MASTERY",
    "MasteryTracker",
    "SYLLABLE_ORDER",
    "VOWEL_ORDER",
    "is_mastered",
]
