# -------------------------------------------------------------------
# schemas/score_schema.py
#
# WHAT THIS FILE IS FOR
# --------------------
# Internal data model of the JR Score pipeline:
#
#   ScoringContext        immutable scorer input (one per request)
#   JRScoreResult         trusted, bounds-checked score
#   CareerAnalysisRecord  what the storage layer persists
#   OnboardingChatMessage optional prompt context
#
# The untrusted scorer payload (RawScoreResponse) is NOT a
# model: it stays a plain dict until the validator accepts it.
#
# BOUNDS INVARIANT
# ----------------
# Every numeric score field is constrained to [0, 100] by Field(ge, le),
# so an out-of-range JRScoreResult cannot be constructed at all.
# The only producers are:
#   - score_validator.validate_score_payload  -> source "gemini"
#   - fallback.compute_fallback_score         -> source "fallback"
#   - CareerAnalysisRecord.to_result          -> re-served "cached"
#
# NAMING
# ------
# snake_case internally. The API layer serializes with camelCase
# aliases (see schemas/output_schema.py).
# -------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN = "unknown"

ScoreSource = Literal["gemini", "fallback", "cached"]
UserStatus = Literal["Student", "Graduate", "Working", "unknown"]

# RawScoreResponse: parsed JSON object from the external scorer, untrusted.
RawScoreResponse = Dict[str, Any]

MIN_SCORE = 0
MAX_SCORE = 100


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OnboardingChatMessage(BaseModel):
    """A single onboarding chat turn forwarded to the scorer prompt."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: Literal["user", "assistant", "system"]
    content: str
    step_id: Optional[str] = Field(None, alias="stepId")


class ScoringContext(BaseModel):
    """
    Fixed-shape scorer input.

    Every key is always present: unknown strings hold "unknown",
    unknown numbers hold None, so the scorer sees a stable schema.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_id: str
    completion_id: str = UNKNOWN

    name: str = UNKNOWN
    status: UserStatus = UNKNOWN
    age: Optional[int] = None
    gender: str = UNKNOWN
    state: str = UNKNOWN
    city: str = UNKNOWN

    college: str = UNKNOWN
    course: str = UNKNOWN
    stream: str = UNKNOWN
    semester: Optional[int] = None
    passout_year: Optional[int] = None
    cgpa: Optional[float] = Field(None, allow_inf_nan=False)

    skills: Tuple[str, ...] = ()
    career_aspiration: str = UNKNOWN
    selected_role_id: str = UNKNOWN
    selected_role_name: str = UNKNOWN
    resume_uploaded: bool = False

    # Prior analysis when re-scoring
    prior_score: Optional[int] = Field(None, ge=MIN_SCORE, le=MAX_SCORE)
    prior_source: Optional[ScoreSource] = None

    def has(self, field_name: str) -> bool:
        """True when a string field carries a real value (not the sentinel)."""
        value = getattr(self, field_name)
        return isinstance(value, str) and value != UNKNOWN


class JRScoreResult(BaseModel):
    """Validated, trusted JR Score."""

    model_config = ConfigDict(frozen=True)

    jr_score: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    confidence: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    clarity: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    consistency: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    execution_readiness: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)

    risk_flags: Tuple[str, ...] = ()
    reasoning: Optional[str] = None
    source: ScoreSource

    top_role: Optional[str] = None
    matched_role_ids: Tuple[str, ...] = ()

    generated_at: str = Field(default_factory=utc_now_iso)
    processing_time_ms: Optional[int] = Field(None, ge=0)

    @property
    def sub_scores(self) -> Dict[str, int]:
        return {
            "confidence": self.confidence,
            "clarity": self.clarity,
            "consistency": self.consistency,
            "execution_readiness": self.execution_readiness,
        }

    def timed(self, processing_time_ms: int) -> "JRScoreResult":
        return self.model_copy(update={"processing_time_ms": max(0, int(processing_time_ms))})


class CareerAnalysisRecord(BaseModel):
    """
    Persisted career analysis: one per user per onboarding completion.

    (user_id, completion_id) is the idempotency key.
    """

    model_config = ConfigDict(extra="ignore")

    user_id: str
    completion_id: str

    jr_score: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    confidence: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    clarity: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    consistency: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    execution_readiness: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    risk_flags: list[str] = Field(default_factory=list)
    reasoning: Optional[str] = None
    source: ScoreSource

    top_role: Optional[str] = None
    top_role_match: Optional[int] = Field(None, ge=0, le=100)
    matched_role_ids: list[str] = Field(default_factory=list)
    skill_gap: int = Field(80, ge=0, le=100)
    missing_skills: list[str] = Field(default_factory=list)
    growth_matrix: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    estimated_months: int = Field(12, ge=0)

    generated_at: str = Field(default_factory=utc_now_iso)
    processing_time_ms: Optional[int] = None
    updated_at: str = Field(default_factory=utc_now_iso)

    def to_result(self, *, source: Optional[ScoreSource] = None) -> JRScoreResult:
        return JRScoreResult(
            jr_score=self.jr_score,
            confidence=self.confidence,
            clarity=self.clarity,
            consistency=self.consistency,
            execution_readiness=self.execution_readiness,
            risk_flags=tuple(self.risk_flags),
            reasoning=self.reasoning,
            source=source or self.source,
            top_role=self.top_role,
            matched_role_ids=tuple(self.matched_role_ids),
            generated_at=self.generated_at,
            processing_time_ms=self.processing_time_ms,
        )
