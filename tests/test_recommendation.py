"""Tests for recommendation.py: candidate tiers, scoring, filters and fallbacks."""

from __future__ import annotations

import pytest

from lectura_adaptativa.curriculum import is_unlocked, load_curriculum, parse_curriculum
from lectura_adaptativa.models import Curriculum, SkillProgressLite
from lectura_adaptativa.recommendation import (
    FALLBACK_POOL_SIZE,
    choose_next_skill,
    recommend_next_skills,
    recommend_with_fallback,
    session_objective,
)


def _skill(slug, domain, level, prerequisites=(), min_age=5, max_age=9):
    return {
        "slug": slug,
        "name": slug.replace("-", " ").title(),
        "domain": domain,
        "level": level,
        "min_age": min_age,
        "max_age": max_age,
        "prerequisites": list(prerequisites),
    }


@pytest.fixture
def sky() -> Curriculum:
    return parse_curriculum(
        {
            "version": "test",
            "domains": [
                {"slug": "cielo", "name": "El cielo"},
                {"slug": "tierra", "name": "La tierra"},
            ],
            "skills": [
                _skill("el-sol", "cielo", 1),
                _skill("la-luna", "cielo", 1),
                _skill("eclipses", "cielo", 2, ["el-sol", "la-luna"]),
                _skill("estrellas", "cielo", 1),
                _skill("volcanes", "tierra", 1),
                _skill("mapas", "tierra", 2, ["el-sol"]),
                _skill("fosiles", "tierra", 1, min_age=8),
                _skill("galaxias", "cielo", 3, ["eclipses"], min_age=10, max_age=12),
            ],
            "deepen": {"el-sol": ["la-luna"]},
            "apply": {"el-sol": ["volcanes"]},
            "interest_domains": {"espacio": ["cielo"]},
        }
    )


def _slugs(suggestions):
    return [s.slug for s in suggestions]


class TestTiers:
    def test_scores_from_current_skill(self, sky):
        result = recommend_next_skills(6, [], {}, current_skill="el-sol", curriculum=sky)
        assert [(s.slug, s.score, s.kind) for s in result] == [
            ("la-luna", 62, "profundizar"),
            ("volcanes", 46, "aplicar"),
            ("estrellas", 40, "conectar"),
        ]
        assert result[0].reason == "Siguiente paso natural desde El Sol"
        assert result[1].reason == "Aplicar lo aprendido en un contexto nuevo"
        assert result[2].reason == "Conectar con El cielo"

    def test_locked_children_appear_without_filter(self, sky):
        result = recommend_next_skills(
            6, [], {}, current_skill="el-sol", only_unlocked=False, curriculum=sky
        )
        assert _slugs(result) == ["la-luna", "eclipses", "mapas", "volcanes", "estrellas"]
        assert result[1].reason == "Profundizar en El Sol"
        assert result[1].score == result[2].score == 55

    def test_interest_bonus(self, sky):
        result = recommend_next_skills(
            6, ["espacio"], {}, current_skill="el-sol", only_unlocked=False, curriculum=sky
        )
        scores = {s.slug: s.score for s in result}
        assert scores["la-luna"] == 74
        assert scores["eclipses"] == 70
        assert scores["estrellas"] == 50
        assert scores["volcanes"] == 46

    def test_domain_slug_counts_as_interest(self, sky):
        result = recommend_next_skills(6, ["tierra"], {}, current_skill="el-sol", curriculum=sky)
        assert {s.slug: s.score for s in result}["volcanes"] == 58

    def test_recent_penalty_uses_first_six(self, sky):
        recent = ["la-luna", "x1", "x2", "x3", "x4", "x5", "estrellas"]
        result = recommend_next_skills(
            6, [], {}, current_skill="el-sol", recent=recent, curriculum=sky
        )
        scores = {s.slug: s.score for s in result}
        assert scores["la-luna"] == 44
        assert scores["estrellas"] == 40

    def test_reinforcement(self, sky):
        progress = {"estrellas": SkillProgressLite(total_attempts=3, mastery_level=0.4)}
        result = recommend_next_skills(6, [], progress, current_skill="el-sol", curriculum=sky)
        assert _slugs(result) == ["la-luna", "estrellas", "volcanes"]
        reinforced = result[1]
        assert (reinforced.score, reinforced.kind) == (58, "reforzar")
        assert reinforced.reason == "Refuerzo recomendado en Estrellas"

    def test_mastered_connect_penalty(self, sky):
        progress = {"estrellas": SkillProgressLite(total_attempts=9, mastery_level=0.95, mastered=True)}
        result = recommend_next_skills(6, [], progress, current_skill="el-sol", curriculum=sky)
        assert {s.slug: s.score for s in result}["estrellas"] == 22

    def test_fallback_without_current_skill(self, sky):
        result = recommend_next_skills(6, [], {}, curriculum=sky)
        assert _slugs(result) == ["el-sol", "la-luna", "estrellas", "volcanes"]
        assert all(s.score == 30 for s in result)
        assert result[0].reason == "Siguiente nodo recomendado por progresion curricular"

    def test_fallback_interest_weight(self, sky):
        result = recommend_next_skills(6, ["tierra"], {}, curriculum=sky)
        assert result[0].slug == "volcanes"
        assert result[0].score == 44

    def test_age_filter(self, sky):
        assert "fosiles" not in _slugs(recommend_next_skills(6, [], {}, curriculum=sky))
        assert "fosiles" in _slugs(recommend_next_skills(8, [], {}, limit=10, curriculum=sky))

    def test_limit(self, sky):
        assert len(recommend_next_skills(6, [], {}, limit=2, curriculum=sky)) == 2

    def test_zero_limit(self, sky):
        assert recommend_next_skills(6, [], {}, limit=0, curriculum=sky) == []
        assert recommend_next_skills(6, [], {}, limit=0) == []
        assert recommend_with_fallback(6, [], {}, limit=0) == []
        assert recommend_with_fallback(10, [], {}, limit=0, curriculum=sky) == []

    def test_limit_one_with_fallback(self, sky):
        assert _slugs(recommend_with_fallback(10, [], {}, limit=1, curriculum=sky)) == ["galaxias"]

    def test_fallback_pool_is_capped(self):
        result = recommend_next_skills(5, [], {}, limit=100, only_unlocked=False)
        assert len(result) == FALLBACK_POOL_SIZE


class TestTieBreak:
    def test_connect_ranks_before_apply_on_equal_score(self, sky):
        progress = {"estrellas": SkillProgressLite(total_attempts=3, mastery_level=0.4)}
        result = recommend_next_skills(
            6, ["tierra"], progress, current_skill="el-sol", curriculum=sky
        )
        assert [(s.slug, s.score, s.kind) for s in result] == [
            ("la-luna", 62, "profundizar"),
            ("estrellas", 58, "reforzar"),
            ("volcanes", 58, "aplicar"),
        ]

    def test_higher_scoring_later_tier_takes_over(self, sky):
        sky.apply["el-sol"].append("estrellas")
        result = recommend_next_skills(6, [], {}, current_skill="el-sol", curriculum=sky)
        assert [(s.slug, s.score, s.kind) for s in result] == [
            ("la-luna", 62, "profundizar"),
            ("volcanes", 46, "aplicar"),
            ("estrellas", 46, "aplicar"),
        ]

    def test_lower_scoring_later_tier_does_not_overwrite(self, sky):
        # Apply edge scores 46, below the deepen child at 55
        sky.apply["el-sol"].append("mapas")
        result = recommend_next_skills(
            6, [], {}, current_skill="el-sol", only_unlocked=False, curriculum=sky
        )
        mapas = next(s for s in result if s.slug == "mapas")
        assert (mapas.score, mapas.kind) == (55, "profundizar")


class TestExclusion:
    def test_current_skill_never_suggested(self):
        curriculum = load_curriculum()
        progress = {
            slug: SkillProgressLite(total_attempts=5, mastery_level=0.9, mastered=True)
            for slug in ("el-sol", "la-luna", "animales-que-vuelan", "plantas-que-crecen")
        }
        for slug in curriculum.skills:
            for only_unlocked in (True, False):
                result = recommend_next_skills(
                    7, ["espacio"], progress, current_skill=slug, limit=10,
                    only_unlocked=only_unlocked,
                )
                assert slug not in _slugs(result)
                if only_unlocked:
                    for suggestion in result:
                        assert is_unlocked(curriculum.skills[suggestion.slug], progress)

    def test_results_sorted_by_score(self):
        result = recommend_next_skills(7, ["animales"], {}, current_skill="la-gravedad", limit=10,
                                       only_unlocked=False)
        scores = [s.score for s in result]
        assert scores == sorted(scores, reverse=True)


class TestFallbackOfFallback:
    def test_locked_only_age(self, sky):
        assert recommend_next_skills(10, [], {}, curriculum=sky) == []
        result = recommend_with_fallback(10, [], {}, curriculum=sky)
        assert _slugs(result) == ["galaxias"]

    def test_still_excludes_current(self, sky):
        assert recommend_with_fallback(10, [], {}, current_skill="galaxias", curriculum=sky) == []

    def test_unlocked_result_returned_as_is(self, sky):
        assert recommend_with_fallback(6, [], {}, current_skill="el-sol", curriculum=sky) == (
            recommend_next_skills(6, [], {}, current_skill="el-sol", curriculum=sky)
        )


class TestChooseNextSkill:
    def test_first_graph_suggestion(self, sky):
        skill = choose_next_skill(6, [], {}, current_skill="el-sol", curriculum=sky)
        assert skill is not None
        assert skill.slug == "la-luna"

    def test_interest_domain_preferred(self, sky):
        skill = choose_next_skill(6, ["tierra"], {}, curriculum=sky)
        assert skill.slug == "volcanes"

    def test_locked_only_returns_first_age_skill(self, sky):
        assert choose_next_skill(10, [], {}, curriculum=sky).slug == "galaxias"

    def test_all_mastered_returns_first_age_skill(self, sky):
        progress = {slug: SkillProgressLite(mastered=True) for slug in sky.skills}
        assert choose_next_skill(6, [], progress, curriculum=sky).slug == "el-sol"

    def test_no_skill_for_age(self, sky):
        assert choose_next_skill(99, [], {}, curriculum=sky) is None

    def test_bundled_curriculum_follows_path_order(self):
        # Interest-domain skills sit past the fallback cap, so the path order wins
        skill = choose_next_skill(6, ["espacio"], {})
        assert skill is not None
        assert skill.slug == "animales-que-vuelan"
        assert skill.prerequisites == []


class TestSessionObjective:
    @pytest.fixture
    def sun(self, sky):
        return sky.skills["el-sol"]

    def test_new_skill(self, sun):
        assert session_objective(sun, None).startswith("Introducir")
        assert session_objective(sun, SkillProgressLite()).startswith("Introducir")

    def test_mastered(self, sun):
        assert session_objective(sun, SkillProgressLite(4, 0.9)).startswith("Consolidar")

    def test_struggling(self, sun):
        assert session_objective(sun, SkillProgressLite(3, 0.4)).startswith("Reforzar")

    def test_in_progress(self, sun):
        assert session_objective(sun, SkillProgressLite(2, 0.4)).startswith("Avanzar")
        assert session_objective(sun, SkillProgressLite(5, 0.7)).startswith("Avanzar")
