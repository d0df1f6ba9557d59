"""
jrscore/scoring/fallback.py

Deterministic, network-free JR Score used whenever the external scorer
is disabled, fails, or returns a payload the validator rejects.

The formula rewards profile completeness and is
conservative: the overall score never exceeds FALLBACK_MAX_SCORE.
Every numeric field is clamped to [0, 100], so compute_fallback_score
is total over all ScoringContext values.
"""

from __future__ import annotations

from schemas.score_schema import MAX_SCORE, MIN_SCORE, JRScoreResult, ScoringContext

FALLBACK_RISK_FLAG = "ai_fallback"
FALLBACK_REASONING = (
    "Fallback score generated based on profile completeness. AI evaluation unavailable."
)
FALLBACK_MAX_SCORE = 75

_STATUS_BOOSTS = {
    # status: (base, confidence, execution_readiness)
    "Working": (10, 20, 28),
    "Graduate": (5, 8, 12),
    "Student": (0, 0, 4),
}


def _clamp(value: float, upper: int = MAX_SCORE) -> int:
    return int(max(MIN_SCORE, min(upper, round(value))))


def compute_fallback_score(context: ScoringContext) -> JRScoreResult:
    base = 35.0
    confidence = 32.0
    clarity = 32.0
    consistency = 40.0
    execution_readiness = 36.0

    if context.has("name"):
        base += 2
    if context.has("college"):
        base += 3
    if context.has("course"):
        base += 3

    skill_count = len(context.skills)
    if skill_count:
        base += min(skill_count * 2, 10)
        consistency += min(skill_count, 5) * 4

    if context.has("career_aspiration"):
        clarity += 20
        base += 5

    status_base, status_confidence, status_execution = _STATUS_BOOSTS.get(context.status, (0, 0, 0))
    base += status_base
    confidence += status_confidence
    execution_readiness += status_execution

    if context.cgpa is not None and context.cgpa > 7:
        base += min((context.cgpa - 7) * 3, 9)
        consistency += 12

    if context.resume_uploaded:
        base += 5
        execution_readiness += 12

    return JRScoreResult(
        jr_score=_clamp(base, FALLBACK_MAX_SCORE),
        confidence=_clamp(confidence),
        clarity=_clamp(clarity),
        consistency=_clamp(consistency),
        execution_readiness=_clamp(execution_readiness),
        risk_flags=(FALLBACK_RISK_FLAG,),
        reasoning=FALLBACK_REASONING,
        source="fallback",
    )
