"""
jrscore/scoring/score_validator.py

WHAT THIS FILE IS FOR
---------------------
The contract check between the external scorer and the rest of the
system. The scorer may calculate, but its output is never trusted
before passing through here.

Given an arbitrary parsed JSON payload it decides whether that payload
satisfies the JRScoreResult contract:

- overall score + four sub-scores present, real, finite numbers
- every score in [0, 100]
- optional fields well-typed when present:
    risk_flags        list[str]
    reasoning         str | null
    top_role          str | null
    matched_role_ids  list[str]

FAIL-CLOSED
-----------
Any single violation rejects the WHOLE payload. A payload with a valid
overall score and one sub-score at 101 is rejected, not partially
accepted.

KEY VARIANTS
------------
LLM output drifts between snake_case and camelCase, and prompts have
used "overall" and "jr_score" interchangeably. Known aliases are mapped
to one canonical key before checking. Two aliases for the same field
carrying DIFFERENT values are a violation. Unknown keys are ignored.

WHAT THIS FILE IS NOT FOR
-------------------------
- No I/O, no logging, no network: every function here is pure and
  deterministic (same payload -> same verdict).
- Transport-level parse failures (non-JSON, missing candidate text)
  are the adapter's concern and never reach this module.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from schemas.score_schema import MAX_SCORE, MIN_SCORE, JRScoreResult, RawScoreResponse

SUB_SCORE_FIELDS: Tuple[str, ...] = (
    "confidence",
    "clarity",
    "consistency",
    "execution_readiness",
)
SCORE_FIELDS: Tuple[str, ...] = ("jr_score",) + SUB_SCORE_FIELDS

FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "jr_score": ("jr_score", "jrScore", "overall", "overall_score", "overallScore"),
    "confidence": ("confidence",),
    "clarity": ("clarity",),
    "consistency": ("consistency",),
    "execution_readiness": ("execution_readiness", "executionReadiness"),
    "risk_flags": ("risk_flags", "riskFlags"),
    "reasoning": ("reasoning",),
    "top_role": ("top_role", "topRole"),
    "matched_role_ids": ("matched_role_ids", "matchedRoleIds"),
}

# Mean of the four sub-scores vs the overall score; beyond this we warn only.
SUB_SCORE_DRIFT_WARNING = 15


@dataclass(frozen=True)
class ScoreValidation:
    """
    Verdict of validate_score_payload.

    Exactly one of `score` / `violations` is meaningful:
    - accepted: score is a JRScoreResult (source="gemini"), violations == ()
    - rejected: score is None, violations lists every rule broken
    """

    score: Optional[JRScoreResult] = None
    violations: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return self.score is not None and not self.violations


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def is_score_in_bounds(value: Any) -> bool:
    """0 <= value <= 100, and value is a real finite number (not NaN/inf/bool)."""
    return _is_finite_number(value) and MIN_SCORE <= value <= MAX_SCORE


def is_sub_score_in_bounds(value: Any) -> bool:
    """Same rule as the overall score, applied to one sub-score."""
    return is_score_in_bounds(value)


def normalize_payload_keys(payload: Mapping[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """
    Map known key aliases onto canonical names.

    Returns (normalized, conflicts). `normalized` only holds canonical keys
    that were present; `conflicts` names fields whose aliases disagree.
    """
    normalized: Dict[str, Any] = {}
    conflicts: List[str] = []

    for canonical, aliases in FIELD_ALIASES.items():
        present = [payload[a] for a in aliases if a in payload]
        if not present:
            continue
        first = present[0]
        if any(other != first for other in present[1:]):
            conflicts.append(canonical)
            continue
        normalized[canonical] = first

    return normalized, conflicts


def _shape_violations(payload: Any) -> Tuple[Dict[str, Any], List[str]]:
    if not isinstance(payload, Mapping):
        return {}, [f"payload must be an object, got {type(payload).__name__}"]

    normalized, conflicts = normalize_payload_keys(payload)
    violations = [f"{name}: conflicting values across key aliases" for name in conflicts]

    for name in SCORE_FIELDS:
        if name in conflicts:
            continue
        if name not in normalized:
            violations.append(f"{name}: missing")
        elif not _is_finite_number(normalized[name]):
            violations.append(f"{name}: expected finite number, got {type(normalized[name]).__name__}")

    if "risk_flags" in normalized and not _is_str_list(normalized["risk_flags"]):
        violations.append("risk_flags: expected list of strings")

    if "matched_role_ids" in normalized and not _is_str_list(normalized["matched_role_ids"]):
        violations.append("matched_role_ids: expected list of strings")

    for name in ("reasoning", "top_role"):
        if name in normalized and normalized[name] is not None and not isinstance(normalized[name], str):
            violations.append(f"{name}: expected string")

    return normalized, violations


def is_valid_response_shape(payload: Any) -> bool:
    """Presence and primitive type of every field; fails closed."""
    _, violations = _shape_violations(payload)
    return not violations


def validate_score_payload(payload: RawScoreResponse) -> ScoreValidation:
    """
    Full contract check: shape, then bounds on all five scores.

    Accepted scores are rounded to integers; rounding an in-bounds value
    cannot leave [0, 100].
    """
    normalized, violations = _shape_violations(payload)
    if violations:
        return ScoreValidation(violations=tuple(violations))

    if not is_score_in_bounds(normalized["jr_score"]):
        violations.append(f"jr_score: out of bounds ({normalized['jr_score']})")

    for name in SUB_SCORE_FIELDS:
        if not is_sub_score_in_bounds(normalized[name]):
            violations.append(f"{name}: out of bounds ({normalized[name]})")

    if violations:
        return ScoreValidation(violations=tuple(violations))

    warnings: List[str] = []
    sub_mean = sum(normalized[name] for name in SUB_SCORE_FIELDS) / len(SUB_SCORE_FIELDS)
    if abs(sub_mean - normalized["jr_score"]) > SUB_SCORE_DRIFT_WARNING:
        warnings.append(
            f"sub-score mean {sub_mean:.1f} differs from jr_score {normalized['jr_score']}"
        )

    reasoning = normalized.get("reasoning")
    top_role = normalized.get("top_role")

    score = JRScoreResult(
        jr_score=int(round(normalized["jr_score"])),
        confidence=int(round(normalized["confidence"])),
        clarity=int(round(normalized["clarity"])),
        consistency=int(round(normalized["consistency"])),
        execution_readiness=int(round(normalized["execution_readiness"])),
        risk_flags=tuple(normalized.get("risk_flags") or ()),
        reasoning=reasoning.strip() or None if isinstance(reasoning, str) else None,
        source="gemini",
        top_role=top_role.strip() or None if isinstance(top_role, str) else None,
        matched_role_ids=tuple(normalized.get("matched_role_ids") or ()),
    )
    return ScoreValidation(score=score, warnings=tuple(warnings))
