# tests/test_context_builder.py
from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from jrscore.scoring.context_builder import (
    ScoringContextBuilder,
    build_scoring_context,
    build_scoring_prompt,
    extract_skills,
)
from schemas.score_schema import UNKNOWN, CareerAnalysisRecord, OnboardingChatMessage


def test_empty_profile_gives_complete_unknown_context() -> None:
    ctx = build_scoring_context("u1", {})

    assert ctx.user_id == "u1"
    assert ctx.completion_id == UNKNOWN
    assert ctx.name == UNKNOWN
    assert ctx.status == UNKNOWN
    assert ctx.college == UNKNOWN
    assert ctx.career_aspiration == UNKNOWN
    assert ctx.skills == ()
    assert ctx.age is None
    assert ctx.cgpa is None
    assert ctx.resume_uploaded is False
    assert ctx.prior_score is None


def test_non_mapping_profile_is_treated_as_empty() -> None:
    ctx = ScoringContextBuilder.build("u1", None)  # type: ignore[arg-type]
    assert ctx.name == UNKNOWN
    assert ctx.skills == ()


def test_camel_case_profile_is_mapped() -> None:
    ctx = build_scoring_context(
        "u1",
        {
            "name": "  Asha  ",
            "status": "student",
            "college": "IIT Delhi",
            "course": "B.Tech",
            "passoutYear": "2026",
            "cgpa": "8.4",
            "subjects": '["Python", " sql ", "python", ""]',
            "careerAspiration": "Data Scientist",
            "selectedRoleId": "role_ds",
            "resumeUrl": "https://files.example/cv.pdf",
            "completedAt": "2026-10-01T10:00:00Z",
        },
    )

    assert ctx.name == "Asha"
    assert ctx.status == "Student"
    assert ctx.passout_year == 2026
    assert ctx.cgpa == 8.4
    assert ctx.skills == ("Python", "sql")
    assert ctx.career_aspiration == "Data Scientist"
    assert ctx.selected_role_id == "role_ds"
    assert ctx.selected_role_name == UNKNOWN
    assert ctx.resume_uploaded is True
    assert ctx.completion_id == "2026-10-01T10:00:00Z"


def test_explicit_completion_id_wins_over_completed_at() -> None:
    ctx = build_scoring_context("u1", {"completionId": "cmp_9", "completedAt": "2026-10-01"})
    assert ctx.completion_id == "cmp_9"


@pytest.mark.parametrize(
    "profile, expected",
    [
        ({"status": "Working Professional"}, "Working"),
        ({"status": "GRADUATE"}, "Graduate"),
        ({"flowPath": "working"}, "Working"),
        ({"status": "retired"}, UNKNOWN),
        ({"status": 3}, UNKNOWN),
    ],
)
def test_status_normalization(profile: dict, expected: str) -> None:
    assert build_scoring_context("u1", profile).status == expected


@pytest.mark.parametrize("cgpa", ["nan", "inf", -1, True, "eight", [8]])
def test_invalid_cgpa_becomes_none(cgpa: object) -> None:
    assert build_scoring_context("u1", {"cgpa": cgpa}).cgpa is None


def test_implausible_integers_become_none() -> None:
    ctx = build_scoring_context("u1", {"age": 300, "semester": 2.5, "passout_year": 10**400})
    assert ctx.age is None
    assert ctx.semester is None
    assert ctx.passout_year is None


def test_blank_strings_fall_through_to_next_key() -> None:
    ctx = build_scoring_context("u1", {"name": "   ", "fullName": "Ravi"})
    assert ctx.name == "Ravi"


def test_resume_flag_without_url() -> None:
    assert build_scoring_context("u1", {"resumeUploaded": True}).resume_uploaded is True
    assert build_scoring_context("u1", {"resumeUploaded": "yes"}).resume_uploaded is False


def test_prior_analysis_is_recorded() -> None:
    prior = CareerAnalysisRecord(
        user_id="u1",
        completion_id="c0",
        jr_score=41,
        confidence=40,
        clarity=40,
        consistency=40,
        execution_readiness=40,
        source="fallback",
    )
    ctx = build_scoring_context("u1", {}, prior=prior)
    assert ctx.prior_score == 41
    assert ctx.prior_source == "fallback"


@pytest.mark.parametrize(
    "raw, expected",
    [
        (["Python", "SQL"], ("Python", "SQL")),
        ("Python, SQL,, ", ("Python", "SQL")),
        ('["Go", "go", "Rust"]', ("Go", "Rust")),
        ([{"name": "Go"}, {"skillName": "Rust"}, {"level": 3}, 5, None], ("Go", "Rust")),
        (None, ()),
        (42, ()),
        ('[1, 2]', ()),
    ],
)
def test_extract_skills(raw: object, expected: tuple) -> None:
    assert extract_skills(raw) == expected


def test_context_is_immutable() -> None:
    ctx = build_scoring_context("u1", {"name": "Asha"})
    with pytest.raises(ValidationError):
        ctx.name = "Other"  # type: ignore[misc]


def test_prompt_is_deterministic_and_excludes_user_id() -> None:
    profile = {"name": "Asha", "subjects": ["Python"], "cgpa": 8}
    first = build_scoring_prompt(build_scoring_context("user-secret-id", profile))
    second = build_scoring_prompt(build_scoring_context("user-secret-id", dict(reversed(profile.items()))))

    assert first == second
    assert "user-secret-id" not in first
    assert '"career_aspiration": "unknown"' in first
    assert "Respond with ONLY the JSON object" in first


def test_prompt_embeds_context_as_json() -> None:
    ctx = build_scoring_context("u1", {"name": "Asha", "subjects": ["Python"]})
    prompt = build_scoring_prompt(ctx)

    start = prompt.index("User Profile (JSON):\n") + len("User Profile (JSON):\n")
    end = prompt.index("\n\nNow calculate")
    embedded = json.loads(prompt[start:end])

    assert embedded["name"] == "Asha"
    assert embedded["skills"] == ["Python"]
    assert "user_id" not in embedded


def test_prompt_includes_chat_history() -> None:
    ctx = build_scoring_context("u1", {})
    chat = [
        OnboardingChatMessage(role="assistant", content="What do you want to do?"),
        OnboardingChatMessage(role="user", content="Data science", stepId="aspiration"),
    ]

    prompt = build_scoring_prompt(ctx, chat)

    assert "Onboarding Chat History:" in prompt
    assert "ASSISTANT: What do you want to do?" in prompt
    assert "USER: Data science" in prompt
