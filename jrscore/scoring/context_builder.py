"""
jrscore/scoring/context_builder.py

WHAT THIS FILE IS FOR
---------------------
Turns a stored onboarding profile into the fixed-shape ScoringContext
the scorer expects, and renders that context into the scorer prompt.

It acts as an adapter between:
- Onboarding profiles as the onboarding route stores them (camelCase or
  snake_case keys, skills sometimes JSON-encoded, numbers sometimes
  strings)
- A stable, deterministic scorer input

EXTRACTION STRATEGY
-------------------
- Each semantic field is looked up under several key variants
- Blank strings are treated as missing
- Missing strings become the "unknown" sentinel, missing numbers None;
  keys are never omitted
- Skills accept list[str], list[dict], or a JSON-encoded list; they are
  trimmed and de-duplicated case-insensitively, order preserved
- Numeric fields that are not finite, not numeric, or implausible
  become None

WHAT THIS FILE IS NOT FOR
-------------------------
No I/O, no network, no scoring. Pure transformation.
"""

from __future__ import annotations

import json
import math
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

import structlog

from schemas.score_schema import (
    UNKNOWN,
    CareerAnalysisRecord,
    OnboardingChatMessage,
    ScoringContext,
)

logger = structlog.get_logger(__name__)

_STATUS_ALIASES = {
    "student": "Student",
    "graduate": "Graduate",
    "working": "Working",
    "working professional": "Working",
    "professional": "Working",
}

JR_SCORE_SYSTEM_PROMPT = """You are an evaluation engine for career readiness assessment.

Task:
Calculate a JR Score (Job Readiness Score, 0-100) for a user based on their onboarding profile data.

CRITICAL RULES:
- Output MUST be valid JSON only
- Do NOT include markdown, code fences, comments, or explanations outside JSON
- Do NOT invent or hallucinate data
- Fields with the value "unknown" or null were not provided; lower the score accordingly
- Be conservative, not optimistic
- Scores must be realistic and grounded

Scoring dimensions (each 0-100):
- confidence: How certain they are about their career path and goals
- clarity: How clear and articulate their goals and communication are
- consistency: How aligned their skills, experience, and education are with stated goals
- execution_readiness: How prepared they are to take immediate action toward goals

The overall jr_score (0-100) should be close to the mean of the four dimensions.

Risk flags to consider:
- "unclear_goals" - Career aspiration is vague
- "skill_mismatch" - Skills don't align with career goals
- "low_experience" - Very limited practical experience
- "education_gap" - Education doesn't support career path
- "location_challenge" - Location may limit opportunities
- "timeline_unrealistic" - Expectations don't match current readiness

Output JSON schema (respond with ONLY this JSON, no other text):
{
  "jr_score": <number 0-100>,
  "confidence": <number 0-100>,
  "clarity": <number 0-100>,
  "consistency": <number 0-100>,
  "execution_readiness": <number 0-100>,
  "risk_flags": [<array of relevant risk flag strings>],
  "reasoning": "<brief 1-2 sentence explanation of the score>",
  "top_role": "<best matching role title or null>",
  "matched_role_ids": [<array of matching role id strings>]
}"""


def _first(profile: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = profile.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _as_text(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return UNKNOWN


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, int):
        try:
            value = float(value)
        except OverflowError:
            return None
    if not isinstance(value, float) or not math.isfinite(value):
        return None
    return value


def _as_int(value: Any, *, minimum: int, maximum: int) -> Optional[int]:
    number = _as_number(value)
    if number is None or not number.is_integer():
        return None
    as_int = int(number)
    if as_int < minimum or as_int > maximum:
        return None
    return as_int


def _as_status(value: Any, flow_path: Any) -> str:
    for candidate in (value, flow_path):
        if isinstance(candidate, str):
            status = _STATUS_ALIASES.get(candidate.strip().lower())
            if status:
                return status
    return UNKNOWN


def _as_completion_id(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return _as_text(value)


def extract_skills(raw: Any) -> tuple[str, ...]:
    # Stored profiles may keep the skill list JSON-encoded
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("["):
            try:
                raw = json.loads(text)
            except ValueError:
                logger.debug("skills_json_decode_failed", length=len(text))
                raw = [text]
        else:
            raw = text.split(",")

    if not isinstance(raw, list):
        return ()

    out: list[str] = []
    seen: set[str] = set()
    for item in raw:
        if isinstance(item, dict):
            item = item.get("name") or item.get("skill_name") or item.get("skillName")
        if not isinstance(item, str):
            continue
        skill = item.strip()
        if not skill or skill.lower() in seen:
            continue
        seen.add(skill.lower())
        out.append(skill)
    return tuple(out)


class ScoringContextBuilder:
    """
    Build a ScoringContext from an onboarding profile.

    Goals:
    - Always return a complete context, whatever the profile is missing
    - Same profile in, same context out
    """

    @staticmethod
    def build(
        user_id: str,
        profile: Mapping[str, Any],
        prior: Optional[CareerAnalysisRecord] = None,
    ) -> ScoringContext:
        if not isinstance(profile, Mapping):
            profile = {}

        resume = _first(profile, ("resume_url", "resumeUrl"))
        resume_flag = _first(profile, ("resume_uploaded", "resumeUploaded"))

        context = ScoringContext(
            user_id=user_id,
            completion_id=_as_completion_id(
                _first(profile, ("completion_id", "completionId", "completed_at", "completedAt"))
            ),
            name=_as_text(_first(profile, ("name", "full_name", "fullName"))),
            status=_as_status(profile.get("status"), profile.get("flow_path") or profile.get("flowPath")),
            age=_as_int(profile.get("age"), minimum=1, maximum=120),
            gender=_as_text(profile.get("gender")),
            state=_as_text(profile.get("state")),
            city=_as_text(profile.get("city")),
            college=_as_text(profile.get("college")),
            course=_as_text(profile.get("course")),
            stream=_as_text(profile.get("stream")),
            semester=_as_int(profile.get("semester"), minimum=1, maximum=20),
            passout_year=_as_int(
                _first(profile, ("passout_year", "passoutYear")), minimum=1900, maximum=2100
            ),
            cgpa=ScoringContextBuilder._cgpa(profile.get("cgpa")),
            skills=extract_skills(_first(profile, ("subjects", "skills"))),
            career_aspiration=_as_text(_first(profile, ("career_aspiration", "careerAspiration"))),
            selected_role_id=_as_text(_first(profile, ("selected_role_id", "selectedRoleId"))),
            selected_role_name=_as_text(_first(profile, ("selected_role_name", "selectedRoleName"))),
            resume_uploaded=bool(resume) or resume_flag is True,
            prior_score=prior.jr_score if prior is not None else None,
            prior_source=prior.source if prior is not None else None,
        )

        logger.debug(
            "scoring_context_built",
            user_id=user_id,
            completion_id=context.completion_id,
            status=context.status,
            skill_count=len(context.skills),
            rescoring=prior is not None,
        )
        return context

    @staticmethod
    def _cgpa(value: Any) -> Optional[float]:
        number = _as_number(value)
        if number is None or number < 0:
            return None
        return number


build_scoring_context = ScoringContextBuilder.build


def build_scoring_prompt(
    context: ScoringContext,
    chat_history: Optional[Sequence[OnboardingChatMessage]] = None,
) -> str:
    """
    Render the scorer prompt: system rules, serialized context, chat.

    The context is serialized with sorted keys so identical contexts give
    byte-identical prompts. The user id is not part of the prompt.
    """
    profile = context.model_dump(mode="json", exclude={"user_id"})
    profile_json = json.dumps(profile, sort_keys=True, indent=2, ensure_ascii=False)

    chat_section = ""
    if chat_history:
        lines = [f"{msg.role.upper()}: {msg.content}" for msg in chat_history]
        chat_section = "\n\nOnboarding Chat History:\n" + "\n".join(lines)

    return (
        f"{JR_SCORE_SYSTEM_PROMPT}\n\n"
        f"User Profile (JSON):\n{profile_json}"
        f"{chat_section}\n\n"
        "Now calculate the JR Score for this user. Respond with ONLY the JSON object, no other text."
    )
