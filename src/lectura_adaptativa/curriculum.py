"""Curriculum graph: YAML loader, DAG validation, age filters, prerequisite checks."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml
from loguru import logger

from .models import Curriculum, Domain, SkillDef, SkillProgressLite

PACKAGE_ROOT = Path(__file__).resolve().parent
DEFAULT_CURRICULUM_FILE = PACKAGE_ROOT / "data" / "curriculum.yaml"
CURRICULUM_FILE = Path(os.environ.get("LECTURA_CURRICULUM_PATH", DEFAULT_CURRICULUM_FILE))

# Persisted progress rows key curriculum skills as "topic-<slug>"
SKILL_ID_PREFIX = "topic-"

MASTERED_SKILL_THRESHOLD = 0.85

_curriculum_cache: Curriculum | None = None


class CurriculumError(ValueError):
    """Raised when the curriculum reference data is malformed."""


def _require(entry: Mapping[str, Any], key: str, where: str) -> Any:
    if key not in entry:
        raise CurriculumError(f"Missing '{key}' in {where}")
    return entry[key]


def _parse_edges(
    raw: Mapping[str, Any] | None, skills: Mapping[str, SkillDef], table: str
) -> dict[str, list[str]]:
    edges: dict[str, list[str]] = {}
    for source, targets in (raw or {}).items():
        if source not in skills:
            logger.warning(f"Dropping {table} edges from unknown skill '{source}'")
            continue
        kept: list[str] = []
        for target in targets or []:
            if target not in skills:
                logger.warning(f"Dropping {table} edge {source} -> unknown skill '{target}'")
                continue
            kept.append(target)
        edges[source] = kept
    return edges


def parse_curriculum(raw: Mapping[str, Any], source: str = "<memory>") -> Curriculum:
    """Build a validated Curriculum from an already-parsed YAML document."""
    if not isinstance(raw, Mapping):
        raise CurriculumError(f"Curriculum must be a mapping in {source}")

    domains: dict[str, Domain] = {}
    for entry in _require(raw, "domains", source):
        domain = Domain(
            slug=_require(entry, "slug", f"domain of {source}"),
            name=entry.get("name", ""),
            emoji=entry.get("emoji", ""),
            order=int(entry.get("order", len(domains) + 1)),
        )
        domains[domain.slug] = domain

    skills: dict[str, SkillDef] = {}
    for position, entry in enumerate(_require(raw, "skills", source), start=1):
        slug = _require(entry, "slug", f"skill #{position} of {source}")
        where = f"skill '{slug}' of {source}"
        domain = _require(entry, "domain", where)
        if domain not in domains:
            raise CurriculumError(f"Skill '{slug}' has unknown domain '{domain}'")
        if slug in skills:
            raise CurriculumError(f"Duplicate skill '{slug}' in {source}")
        skills[slug] = SkillDef(
            slug=slug,
            name=_require(entry, "name", where),
            emoji=entry.get("emoji", ""),
            domain=domain,
            level=int(_require(entry, "level", where)),
            core_concept=entry.get("core_concept", ""),
            min_age=int(_require(entry, "min_age", where)),
            max_age=int(_require(entry, "max_age", where)),
            order=int(entry.get("order", position)),
            prerequisites=list(entry.get("prerequisites") or []),
        )

    curriculum = Curriculum(
        version=str(raw.get("version", "")),
        domains=domains,
        skills=skills,
        deepen=_parse_edges(raw.get("deepen"), skills, "deepen"),
        apply=_parse_edges(raw.get("apply"), skills, "apply"),
        interest_domains={
            tag: [domain for domain in targets or [] if domain in domains]
            for tag, targets in (raw.get("interest_domains") or {}).items()
        },
    )
    validate_curriculum(curriculum)
    return curriculum


def load_curriculum(path: Path | None = None) -> Curriculum:
    """Parse the curriculum YAML. The default file is cached in memory."""
    global _curriculum_cache
    if _curriculum_cache is not None and path is None:
        return _curriculum_cache

    file_path = path or CURRICULUM_FILE
    with open(file_path, encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise CurriculumError(f"Invalid curriculum YAML in {file_path}: {exc}") from exc

    curriculum = parse_curriculum(raw, str(file_path))
    logger.info(
        f"Loaded curriculum {curriculum.version or '?'} from {file_path}: "
        f"{len(curriculum.skills)} skills in {len(curriculum.domains)} domains"
    )
    if path is None:
        _curriculum_cache = curriculum
    return curriculum


def clear_cache() -> None:
    """Clear the in-memory curriculum cache."""
    global _curriculum_cache
    _curriculum_cache = None


def validate_curriculum(curriculum: Curriculum) -> list[str]:
    """Topological sort of the prerequisite DAG. Returns ordered skill slugs.
    Raises CurriculumError on unknown prerequisites or cycles.
    """
    skills = curriculum.skills
    for skill in skills.values():
        for prereq in skill.prerequisites:
            if prereq not in skills:
                raise CurriculumError(
                    f"Skill '{skill.slug}' has unknown prerequisite '{prereq}'"
                )

    # Kahn's algorithm
    in_degree: dict[str, int] = {slug: len(skill.prerequisites) for slug, skill in skills.items()}
    dependents: dict[str, list[str]] = {slug: [] for slug in skills}
    for skill in skills.values():
        for prereq in skill.prerequisites:
            dependents[prereq].append(skill.slug)

    def _key(slug: str) -> tuple[int, int, str]:
        return (skills[slug].level, skills[slug].order, slug)

    queue = sorted((slug for slug, deg in in_degree.items() if deg == 0), key=_key)
    result: list[str] = []
    while queue:
        node = queue.pop(0)
        result.append(node)
        for neighbor in dependents[node]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)
        queue.sort(key=_key)

    if len(result) != len(skills):
        raise CurriculumError("Cycle detected in skill prerequisite graph")
    return result


def path_order(skill: SkillDef) -> tuple[int, int]:
    """Sort key for the learning path: curriculum level, then curriculum order."""
    return (skill.level, skill.order)


def skill_by_slug(slug: str, curriculum: Curriculum | None = None) -> SkillDef | None:
    curriculum = curriculum or load_curriculum()
    return curriculum.skills.get(slug)


def skills_for_age(age: int, curriculum: Curriculum | None = None) -> list[SkillDef]:
    curriculum = curriculum or load_curriculum()
    return [skill for skill in curriculum.skills.values() if skill.fits_age(age)]


def skills_in_domain(domain: str, curriculum: Curriculum | None = None) -> list[SkillDef]:
    curriculum = curriculum or load_curriculum()
    return sorted(
        (skill for skill in curriculum.skills.values() if skill.domain == domain),
        key=lambda skill: skill.order,
    )


def domain_name(domain: str, curriculum: Curriculum | None = None) -> str | None:
    curriculum = curriculum or load_curriculum()
    info = curriculum.domains.get(domain)
    return info.name if info else None


def interest_domains(interests: Iterable[str], curriculum: Curriculum | None = None) -> set[str]:
    """Domains a learner cares about: domain slugs given directly plus mapped tags."""
    curriculum = curriculum or load_curriculum()
    domains: set[str] = set()
    for interest in interests:
        if interest in curriculum.domains:
            domains.add(interest)
        domains.update(curriculum.interest_domains.get(interest, []))
    return domains


# ── Progress helpers ──────────────────────────────────────────────────────────


def is_skill_mastered(slug: str, progress: Mapping[str, SkillProgressLite]) -> bool:
    row = progress.get(slug)
    if row is None:
        return False
    return row.mastered or row.mastery_level >= MASTERED_SKILL_THRESHOLD


def is_unlocked(skill: SkillDef, progress: Mapping[str, SkillProgressLite]) -> bool:
    """True if every prerequisite is mastered. No prerequisites means always unlocked."""
    return all(is_skill_mastered(prereq, progress) for prereq in skill.prerequisites)


def normalize_skill_slug(skill_id: str) -> str | None:
    """'topic-cometas-asteroides' -> 'cometas-asteroides'; None without the prefix."""
    if not skill_id.startswith(SKILL_ID_PREFIX):
        return None
    return skill_id[len(SKILL_ID_PREFIX):]


def build_progress_map(rows: Iterable[Mapping[str, Any]]) -> dict[str, SkillProgressLite]:
    """Turn persisted skill-progress rows into the lite map used by the graph.

    Rows whose ``skillId`` lacks the ``topic-`` prefix belong to other activities
    (vowels, syllables) and are skipped.
    """
    progress: dict[str, SkillProgressLite] = {}
    for row in rows:
        slug = normalize_skill_slug(str(row.get("skillId", "")))
        if slug is None:
            continue
        progress[slug] = SkillProgressLite(
            total_attempts=int(row.get("totalIntentos", 0) or 0),
            mastery_level=float(row.get("nivelMastery", 0.0) or 0.0),
            mastered=bool(row.get("dominada", False)),
        )
    return progress


__all__ = [
    "CURRICULUM_FILE",
    "CurriculumError",
    "MASTERED_SKILL_THRESHOLD",
    "build_progress_map",
    "clear_cache",
    "domain_name",
    "interest_domains",
    "is_skill_mastered",
    "is_unlocked",
    "load_curriculum",
    "normalize_skill_slug",
    "parse_curriculum",
    "path_order",
    "skill_by_slug",
    "skills_for_age",
    "skills_in_domain",
    "validate_curriculum",
]
