"""
jrscore/scoring/role_matcher.py

Skill-based role matching and the derived career-analysis fields that
are persisted next to the JR Score:

- per-role match percentage (case-insensitive skill overlap)
- top role and its match, skill gap
- missing skills across the three best roles
- growth matrix (current/target level per skill)
- estimated months to a 90+ score
- JR Score level band

Role catalogue entries are plain mappings as the Data API returns them;
key variants are tolerated the same way the context builder does.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from jrscore.scoring.context_builder import extract_skills

NO_ROLE_SKILL_GAP = 80
TOP_ROLES_FOR_MISSING_SKILLS = 3

JR_SCORE_LEVELS: Tuple[Tuple[int, str, str], ...] = (
    # (upper bound exclusive, level, label)
    (30, "unprepared", "Unprepared"),
    (55, "developing", "Developing"),
    (75, "competitive", "Competitive"),
)
JOB_READY = ("job-ready", "Job Ready")


@dataclass(frozen=True)
class RoleMatch:
    role_id: str
    title: str
    match_percentage: int
    matched_skills: Tuple[str, ...]
    missing_skills: Tuple[str, ...]


@dataclass(frozen=True)
class CareerSummary:
    matches: Tuple[RoleMatch, ...] = ()
    top_role: Optional[str] = None
    top_role_match: Optional[int] = None
    matched_role_ids: Tuple[str, ...] = ()
    skill_gap: int = NO_ROLE_SKILL_GAP
    missing_skills: Tuple[str, ...] = ()
    growth_matrix: Dict[str, Dict[str, int]] = field(default_factory=dict)


def _role_field(role: Mapping[str, Any], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = role.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip():
            return str(value).strip()
    return None


def match_roles(skills: Sequence[str], roles: Sequence[Mapping[str, Any]]) -> List[RoleMatch]:
    """Match percentage per role, best first. Ties keep catalogue order."""
    user_skills = {s.lower() for s in skills}
    matches: List[RoleMatch] = []

    for role in roles:
        if not isinstance(role, Mapping):
            continue
        role_id = _role_field(role, ("id", "role_id", "roleId"))
        title = _role_field(role, ("title", "role_title", "roleTitle", "name"))
        if role_id is None or title is None:
            continue

        required = extract_skills(
            role.get("skills_required") or role.get("skillsRequired") or role.get("required_skills")
        )
        matched = tuple(s for s in required if s.lower() in user_skills)
        missing = tuple(s for s in required if s.lower() not in user_skills)
        percentage = round(len(matched) / len(required) * 100) if required else 0

        matches.append(
            RoleMatch(
                role_id=role_id,
                title=title,
                match_percentage=int(percentage),
                matched_skills=matched,
                missing_skills=missing,
            )
        )

    matches.sort(key=lambda m: m.match_percentage, reverse=True)
    return matches


def build_growth_matrix(user_skills: Sequence[str], target_skills: Sequence[str]) -> Dict[str, Dict[str, int]]:
    matrix: Dict[str, Dict[str, int]] = {}
    for skill in user_skills:
        matrix[skill] = {"current": 8, "target": 10, "months": 2}
    for skill in target_skills:
        matrix.setdefault(skill, {"current": 0, "target": 7, "months": 6})
    return matrix


def summarize_career(skills: Sequence[str], roles: Sequence[Mapping[str, Any]]) -> CareerSummary:
    matches = match_roles(skills, roles)
    if not matches:
        return CareerSummary(growth_matrix=build_growth_matrix(skills, ()))

    top = matches[0]
    missing: Dict[str, None] = {}
    for match in matches[:TOP_ROLES_FOR_MISSING_SKILLS]:
        for skill in match.missing_skills:
            missing.setdefault(skill, None)

    return CareerSummary(
        matches=tuple(matches),
        top_role=top.title,
        top_role_match=top.match_percentage,
        matched_role_ids=tuple(m.role_id for m in matches if m.match_percentage > 0),
        skill_gap=100 - top.match_percentage,
        missing_skills=tuple(missing),
        growth_matrix=build_growth_matrix(skills, top.missing_skills),
    )


def estimate_months_to_target(score: int) -> int:
    """Months to reach a 90+ JR Score."""
    if score >= 90:
        return 0
    if score >= 75:
        return 3
    if score >= 50:
        return 6
    return 12


def jr_score_level(score: float) -> Tuple[str, str]:
    """(level, label) band for a JR Score."""
    for upper, level, label in JR_SCORE_LEVELS:
        if score < upper:
            return level, label
    return JOB_READY
