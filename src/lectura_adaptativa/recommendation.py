"""Skill recommendation graph: deepen / connect / apply / fallback candidates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from loguru import logger

from .curriculum import (
    MASTERED_SKILL_THRESHOLD,
    interest_domains,
    is_skill_mastered,
    is_unlocked,
    load_curriculum,
    path_order,
)
from .models import Curriculum, LearningSuggestion, SkillDef, SkillProgressLite, SuggestionKind

# ── Scores ────────────────────────────────────────────────────────────────────

DEEPEN_CHILD_BASE = 55
DEEPEN_CHILD_INTEREST = 15
DEEPEN_CHILD_RECENT = 20

DEEPEN_TABLE_BASE = 62
DEEPEN_TABLE_INTEREST = 12
DEEPEN_TABLE_RECENT = 18

CONNECT_BASE = 40
CONNECT_REINFORCE = 18
CONNECT_INTEREST = 10
CONNECT_RECENT = 14
CONNECT_MASTERED = 18

APPLY_BASE = 46
APPLY_INTEREST = 12
APPLY_RECENT = 12

FALLBACK_BASE = 30
FALLBACK_INTEREST = 14
FALLBACK_POOL_SIZE = 12

# Attempted skills below this mastery are suggested as reinforcement
REINFORCE_BELOW = 0.6
MIN_ATTEMPTS_TO_REINFORCE = 3

RECENT_WINDOW = 6
DEFAULT_LIMIT = 5

# Generation tiers, earliest wins a score tie
TIER_DEEPEN = 0
TIER_CONNECT = 1
TIER_APPLY = 2
TIER_FALLBACK = 3


@dataclass(slots=True)
class _Candidate:
    suggestion: LearningSuggestion
    tier: int
    index: int


class _CandidatePool:
    """Best candidate per skill. A later candidate only wins with a strictly higher score."""

    def __init__(self) -> None:
        self._by_slug: dict[str, _Candidate] = {}
        self._counter = 0

    def add(
        self, skill: SkillDef, kind: SuggestionKind, reason: str, score: float, tier: int
    ) -> None:
        existing = self._by_slug.get(skill.slug)
        if existing is not None and score <= existing.suggestion.score:
            return
        self._by_slug[skill.slug] = _Candidate(
            suggestion=LearningSuggestion(
                slug=skill.slug,
                name=skill.name,
                emoji=skill.emoji,
                domain=skill.domain,
                kind=kind,
                reason=reason,
                score=score,
            ),
            tier=tier,
            index=self._counter,
        )
        self._counter += 1

    def ranked(self) -> list[_Candidate]:
        return sorted(
            self._by_slug.values(),
            key=lambda c: (-c.suggestion.score, c.tier, c.index),
        )

    def __len__(self) -> int:
        return len(self._by_slug)


def _needs_reinforcement(row: SkillProgressLite | None) -> bool:
    return row is not None and row.total_attempts > 0 and row.mastery_level < REINFORCE_BELOW


def _build_candidates(
    curriculum: Curriculum,
    age: int,
    interests: Iterable[str],
    progress: Mapping[str, SkillProgressLite],
    current_skill: str | None,
    recent: Sequence[str],
) -> _CandidatePool:
    skills = [skill for skill in curriculum.skills.values() if skill.fits_age(age)]
    by_slug = {skill.slug: skill for skill in skills}
    current = by_slug.get(current_skill) if current_skill else None
    liked = interest_domains(interests, curriculum)
    recently_seen = set(list(recent)[:RECENT_WINDOW])
    pool = _CandidatePool()

    def bonus(skill: SkillDef, points: int) -> int:
        return points if skill.domain in liked else 0

    def penalty(skill: SkillDef, points: int) -> int:
        return points if skill.slug in recently_seen else 0

    if current is not None:
        # 1) Deepen: prerequisite children, then the hand-authored table
        for child in skills:
            if current.slug not in child.prerequisites:
                continue
            score = (
                DEEPEN_CHILD_BASE
                + bonus(child, DEEPEN_CHILD_INTEREST)
                - penalty(child, DEEPEN_CHILD_RECENT)
            )
            pool.add(child, "profundizar", f"Profundizar en {current.name}", score, TIER_DEEPEN)

        for slug in curriculum.deepen.get(current.slug, []):
            target = by_slug.get(slug)
            if target is None:
                continue
            score = (
                DEEPEN_TABLE_BASE
                + bonus(target, DEEPEN_TABLE_INTEREST)
                - penalty(target, DEEPEN_TABLE_RECENT)
            )
            pool.add(
                target,
                "profundizar",
                f"Siguiente paso natural desde {current.name}",
                score,
                TIER_DEEPEN,
            )

        # 2) Connect within the same domain
        domain = curriculum.domains.get(current.domain)
        domain_label = domain.name if domain else "el mismo dominio"
        for skill in skills:
            if skill.domain != current.domain or skill.slug == current.slug:
                continue
            reinforce = _needs_reinforcement(progress.get(skill.slug))
            score = (
                CONNECT_BASE
                + (CONNECT_REINFORCE if reinforce else 0)
                + bonus(skill, CONNECT_INTEREST)
                - penalty(skill, CONNECT_RECENT)
                - (CONNECT_MASTERED if is_skill_mastered(skill.slug, progress) else 0)
            )
            if reinforce:
                pool.add(
                    skill, "reforzar", f"Refuerzo recomendado en {skill.name}", score, TIER_CONNECT
                )
            else:
                pool.add(skill, "conectar", f"Conectar con {domain_label}", score, TIER_CONNECT)

        # 3) Apply in another context
        for slug in curriculum.apply.get(current.slug, []):
            target = by_slug.get(slug)
            if target is None:
                continue
            score = APPLY_BASE + bonus(target, APPLY_INTEREST) - penalty(target, APPLY_RECENT)
            pool.add(
                target, "aplicar", "Aplicar lo aprendido en un contexto nuevo", score, TIER_APPLY
            )

    # 4) Fallback over the whole age-eligible path
    pending = sorted(
        (
            skill
            for skill in skills
            if not is_skill_mastered(skill.slug, progress) and skill.slug not in recently_seen
        ),
        key=path_order,
    )
    for skill in pending[:FALLBACK_POOL_SIZE]:
        pool.add(
            skill,
            "conectar",
            "Siguiente nodo recomendado por progresion curricular",
            FALLBACK_BASE + bonus(skill, FALLBACK_INTEREST),
            TIER_FALLBACK,
        )

    logger.debug(
        f"Recommendation candidates for age={age} current={current_skill}: {len(pool)}"
    )
    return pool


def recommend_next_skills(
    age: int,
    interests: Iterable[str],
    progress: Mapping[str, SkillProgressLite],
    current_skill: str | None = None,
    recent: Sequence[str] = (),
    limit: int = DEFAULT_LIMIT,
    only_unlocked: bool = True,
    curriculum: Curriculum | None = None,
) -> list[LearningSuggestion]:
    """Ranked suggestions for what to read next.

    The current skill is never suggested. With ``only_unlocked`` every suggestion
    has all of its prerequisites mastered. Equal scores keep generation order:
    deepen, connect, apply, then the curriculum fallback.
    """
    curriculum = curriculum or load_curriculum()
    pool = _build_candidates(curriculum, age, list(interests), progress, current_skill, recent)

    result: list[LearningSuggestion] = []
    for candidate in pool.ranked():
        if len(result) >= limit:
            break
        suggestion = candidate.suggestion
        if suggestion.slug == current_skill:
            continue
        skill = curriculum.skills.get(suggestion.slug)
        if skill is None:
            continue
        if only_unlocked and not is_unlocked(skill, progress):
            continue
        result.append(suggestion)
    return result


def recommend_with_fallback(
    age: int,
    interests: Iterable[str],
    progress: Mapping[str, SkillProgressLite],
    current_skill: str | None = None,
    recent: Sequence[str] = (),
    limit: int = DEFAULT_LIMIT,
    curriculum: Curriculum | None = None,
) -> list[LearningSuggestion]:
    """Unlocked-only suggestions, relaxed to locked ones when nothing is unlocked."""
    if limit <= 0:
        return []
    interests = list(interests)
    result = recommend_next_skills(
        age,
        interests,
        progress,
        current_skill=current_skill,
        recent=recent,
        limit=limit,
        only_unlocked=True,
        curriculum=curriculum,
    )
    if result:
        return result

    logger.debug("No unlocked suggestions, retrying without the prerequisite filter")
    result = recommend_next_skills(
        age,
        interests,
        progress,
        current_skill=current_skill,
        recent=recent,
        limit=limit,
        only_unlocked=False,
        curriculum=curriculum,
    )
    if not result:
        logger.warning(f"No skill suggestions for age={age} current={current_skill}")
    return result


def choose_next_skill(
    age: int,
    interests: Iterable[str],
    progress: Mapping[str, SkillProgressLite],
    current_skill: str | None = None,
    recent: Sequence[str] = (),
    curriculum: Curriculum | None = None,
) -> SkillDef | None:
    """Pick the single skill for the next session.

    Graph suggestions come first; otherwise the first unlocked pending skill in
    path order, preferring the learner's interest domains. Returns None only when
    no skill fits the age.
    """
    curriculum = curriculum or load_curriculum()
    interests = list(interests)
    age_skills = sorted(
        (skill for skill in curriculum.skills.values() if skill.fits_age(age)), key=path_order
    )
    age_slugs = {skill.slug for skill in age_skills}

    suggestions = recommend_next_skills(
        age,
        interests,
        progress,
        current_skill=current_skill,
        recent=recent,
        limit=DEFAULT_LIMIT,
        only_unlocked=True,
        curriculum=curriculum,
    )
    for suggestion in suggestions:
        skill = curriculum.skills.get(suggestion.slug)
        if skill is None or skill.slug not in age_slugs:
            continue
        if not is_unlocked(skill, progress) or is_skill_mastered(skill.slug, progress):
            continue
        return skill

    liked = interest_domains(interests, curriculum)
    interest_pool = [skill for skill in age_skills if skill.domain in liked]
    pools = [interest_pool, age_skills] if interest_pool else [age_skills]
    for pool in pools:
        for skill in pool:
            if is_unlocked(skill, progress) and not is_skill_mastered(skill.slug, progress):
                return skill

    return age_skills[0] if age_skills else None


def session_objective(skill: SkillDef, row: SkillProgressLite | None) -> str:
    """One-line goal for a reading session on ``skill`` given its progress."""
    if row is None or row.total_attempts == 0:
        return f'Introducir el concepto de "{skill.name}" con un caso divertido y facil de recordar.'
    if row.mastered or row.mastery_level >= MASTERED_SKILL_THRESHOLD:
        return (
            f'Consolidar "{skill.name}" con una aplicacion nueva '
            "para reforzar transferencia de aprendizaje."
        )
    if row.total_attempts >= MIN_ATTEMPTS_TO_REINFORCE and row.mastery_level < REINFORCE_BELOW:
        return f'Reforzar bases de "{skill.name}" con ejemplos muy concretos y lenguaje sencillo.'
    return f'Avanzar en "{skill.name}" aumentando un poco la dificultad sin perder claridad.'


__all__ = [
    "FALLBACK_POOL_SIZE",
    "RECENT_WINDOW",
    "choose_next_skill",
    "recommend_next_skills",
    "recommend_with_fallback",
    "session_objective",
]
