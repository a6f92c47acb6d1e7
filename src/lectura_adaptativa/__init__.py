"""Lectura Adaptativa: adaptive decision engine for a children's reading curriculum."""

from .curriculum import CurriculumError, build_progress_map, load_curriculum
from .fsrs import due_facts, read_fsrs_state, schedule
from .mastery import MasteryTracker
from .reading_pace import compute_session_wpm, compute_wpm_trend, sanitize_pages
from .recommendation import choose_next_skill, recommend_next_skills, recommend_with_fallback

__all__ = [
    "CurriculumError",
    "MasteryTracker",
    "build_progress_map",
    "choose_next_skill",
    "compute_session_wpm",
    "compute_wpm_trend",
    "due_facts",
    "load_curriculum",
    "read_fsrs_state",
    "recommend_next_skills",
    "recommend_with_fallback",
    "sanitize_pages",
    "schedule",
]
