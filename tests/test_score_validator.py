# tests/test_score_validator.py
from __future__ import annotations

import math
import random
from typing import Any, Dict

import pytest

from jrscore.scoring.score_validator import (
    SCORE_FIELDS,
    is_score_in_bounds,
    is_sub_score_in_bounds,
    is_valid_response_shape,
    normalize_payload_keys,
    validate_score_payload,
)


def _payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "jr_score": 72,
        "confidence": 70,
        "clarity": 75,
        "consistency": 68,
        "execution_readiness": 74,
        "risk_flags": ["low_experience"],
        "reasoning": "Solid academics, little practical work.",
    }
    payload.update(overrides)
    return payload


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, True),
        (0.0, True),
        (55.5, True),
        (100, True),
        (100.0, True),
        (-0.001, False),
        (100.001, False),
        (-1, False),
        (float("nan"), False),
        (float("inf"), False),
        (float("-inf"), False),
        (True, False),
        (False, False),
        ("80", False),
        (None, False),
        ([80], False),
    ],
)
def test_is_score_in_bounds(value: Any, expected: bool) -> None:
    assert is_score_in_bounds(value) is expected
    assert is_sub_score_in_bounds(value) is expected


def test_valid_payload_is_accepted_as_gemini() -> None:
    verdict = validate_score_payload(_payload())

    assert verdict.is_valid
    assert verdict.violations == ()
    assert verdict.score is not None
    assert verdict.score.source == "gemini"
    assert verdict.score.jr_score == 72
    assert verdict.score.sub_scores == {
        "confidence": 70,
        "clarity": 75,
        "consistency": 68,
        "execution_readiness": 74,
    }
    assert verdict.score.risk_flags == ("low_experience",)


def test_camel_case_and_overall_aliases_are_accepted() -> None:
    verdict = validate_score_payload(
        {"overall": 72, "confidence": 70, "clarity": 75, "consistency": 68, "executionReadiness": 74}
    )

    assert verdict.is_valid
    assert verdict.score is not None
    assert verdict.score.jr_score == 72
    assert verdict.score.execution_readiness == 74


@pytest.mark.parametrize("field", ["confidence", "clarity", "consistency", "execution_readiness"])
def test_single_sub_score_at_101_rejects_whole_payload(field: str) -> None:
    verdict = validate_score_payload(_payload(jr_score=80, **{field: 101}))

    assert not verdict.is_valid
    assert verdict.score is None
    assert verdict.violations == (f"{field}: out of bounds (101)",)


def test_camel_case_sub_score_out_of_bounds_is_rejected() -> None:
    verdict = validate_score_payload(
        {"overall": 80, "confidence": 101, "clarity": 50, "consistency": 50, "executionReadiness": 50}
    )
    assert verdict.score is None
    assert any(v.startswith("confidence") for v in verdict.violations)


def test_negative_sub_score_is_rejected() -> None:
    verdict = validate_score_payload(_payload(confidence=-5))
    assert verdict.score is None
    assert verdict.violations == ("confidence: out of bounds (-5)",)


def test_overall_out_of_bounds_is_rejected() -> None:
    verdict = validate_score_payload(_payload(jr_score=100.4))
    assert verdict.score is None
    assert verdict.violations == ("jr_score: out of bounds (100.4)",)


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), True, "72", None, {"value": 72}])
def test_non_numeric_overall_is_rejected(bad: Any) -> None:
    verdict = validate_score_payload(_payload(jr_score=bad))
    assert verdict.score is None
    assert verdict.violations[0].startswith("jr_score: expected finite number")


def test_missing_fields_are_all_reported() -> None:
    verdict = validate_score_payload({"jr_score": 60, "confidence": 50})
    assert verdict.score is None
    assert set(verdict.violations) == {
        "clarity: missing",
        "consistency: missing",
        "execution_readiness: missing",
    }


@pytest.mark.parametrize("payload", [None, [], [72, 70], "72", 72])
def test_non_object_payload_is_rejected(payload: Any) -> None:
    assert not is_valid_response_shape(payload)
    verdict = validate_score_payload(payload)  # type: ignore[arg-type]
    assert verdict.score is None
    assert "payload must be an object" in verdict.violations[0]


def test_conflicting_aliases_are_a_violation() -> None:
    verdict = validate_score_payload(_payload(overall=73))
    assert verdict.score is None
    assert verdict.violations == ("jr_score: conflicting values across key aliases",)


def test_agreeing_aliases_are_fine() -> None:
    verdict = validate_score_payload(_payload(overall=72.0, executionReadiness=74))
    assert verdict.is_valid


def test_optional_fields_are_type_checked() -> None:
    assert validate_score_payload(_payload(risk_flags="unclear_goals")).score is None
    assert validate_score_payload(_payload(risk_flags=["ok", 3])).score is None
    assert validate_score_payload(_payload(matched_role_ids=[1, 2])).score is None
    assert validate_score_payload(_payload(reasoning=42)).score is None
    assert validate_score_payload(_payload(top_role=["a"])).score is None


def test_optional_fields_may_be_absent_or_null() -> None:
    payload = _payload(reasoning=None, top_role=None)
    del payload["risk_flags"]

    verdict = validate_score_payload(payload)

    assert verdict.is_valid
    assert verdict.score is not None
    assert verdict.score.risk_flags == ()
    assert verdict.score.reasoning is None
    assert verdict.score.top_role is None


def test_unknown_keys_are_ignored() -> None:
    verdict = validate_score_payload(_payload(model_notes="extra", score_breakdown={"a": 1}))
    assert verdict.is_valid


def test_role_fields_are_carried_through() -> None:
    verdict = validate_score_payload(_payload(topRole="  Data Analyst ", matchedRoleIds=["r1", "r2"]))
    assert verdict.score is not None
    assert verdict.score.top_role == "Data Analyst"
    assert verdict.score.matched_role_ids == ("r1", "r2")


def test_fractional_scores_are_rounded() -> None:
    verdict = validate_score_payload(_payload(jr_score=71.6, confidence=99.5, clarity=0.4))
    assert verdict.score is not None
    assert verdict.score.jr_score == 72
    assert verdict.score.confidence == 100
    assert verdict.score.clarity == 0


def test_sub_score_drift_only_warns() -> None:
    verdict = validate_score_payload(
        _payload(jr_score=40, confidence=90, clarity=90, consistency=90, execution_readiness=90)
    )
    assert verdict.is_valid
    assert len(verdict.warnings) == 1
    assert "differs from jr_score 40" in verdict.warnings[0]


def test_validation_is_idempotent() -> None:
    payload = _payload(jr_score=71.6)
    first = validate_score_payload(payload)
    second = validate_score_payload(payload)

    assert first.is_valid is second.is_valid
    assert first.violations == second.violations
    assert first.score is not None and second.score is not None
    assert first.score.model_dump(exclude={"generated_at"}) == second.score.model_dump(
        exclude={"generated_at"}
    )
    assert payload["jr_score"] == 71.6


def test_rejected_payload_verdict_is_stable() -> None:
    payload = _payload(consistency=250)
    assert validate_score_payload(payload).violations == validate_score_payload(payload).violations


def test_normalize_payload_keys_reports_conflicts() -> None:
    normalized, conflicts = normalize_payload_keys(
        {"jrScore": 50, "overall": 60, "executionReadiness": 40, "noise": 1}
    )
    assert conflicts == ["jr_score"]
    assert normalized == {"execution_readiness": 40}


def test_random_payloads_never_accept_out_of_range_values() -> None:
    rng = random.Random(20261019)
    pool = [-1, -0.5, 0, 0.2, 37, 50.5, 99.5, 100, 100.4, 101, 1e9, float("nan"), float("inf"), True, "70", None]

    for _ in range(2000):
        payload = {name: rng.choice(pool) for name in SCORE_FIELDS if rng.random() > 0.05}
        verdict = validate_score_payload(payload)

        raw_ok = len(payload) == len(SCORE_FIELDS) and all(
            not isinstance(v, bool)
            and isinstance(v, (int, float))
            and math.isfinite(v)
            and 0 <= v <= 100
            for v in payload.values()
        )
        assert verdict.is_valid is raw_ok
        if verdict.score is not None:
            for name in SCORE_FIELDS:
                assert 0 <= getattr(verdict.score, name) <= 100
