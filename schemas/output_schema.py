# -------------------------------------------------------------------
# schemas/output_schema.py
#
# WHAT THIS FILE IS FOR
# --------------------
# Response schemas of the JR Score API.
#
# Fields are snake_case in Python and serialized as camelCase through
# the alias generator; the API always dumps with by_alias=True.
#
# WHAT THIS FILE IS NOT FOR
# ------------------------
# No HTTP logic, no business rules, no error responses.
# -------------------------------------------------------------------

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from jrscore.scoring.role_matcher import jr_score_level
from schemas.score_schema import JRScoreResult, ScoreSource


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JRScoreData(_CamelModel):
    """JR Score as shown to clients."""

    jr_score: int = Field(..., ge=0, le=100)
    level: str
    level_label: str
    confidence: int = Field(..., ge=0, le=100)
    clarity: int = Field(..., ge=0, le=100)
    consistency: int = Field(..., ge=0, le=100)
    execution_readiness: int = Field(..., ge=0, le=100)
    risk_flags: List[str] = Field(default_factory=list)
    reasoning: Optional[str] = None
    source: ScoreSource
    top_role: Optional[str] = None
    matched_role_ids: List[str] = Field(default_factory=list)
    generated_at: str

    @classmethod
    def from_result(cls, result: JRScoreResult) -> "JRScoreData":
        level, label = jr_score_level(result.jr_score)
        return cls(
            jr_score=result.jr_score,
            level=level,
            level_label=label,
            confidence=result.confidence,
            clarity=result.clarity,
            consistency=result.consistency,
            execution_readiness=result.execution_readiness,
            risk_flags=list(result.risk_flags),
            reasoning=result.reasoning,
            source=result.source,
            top_role=result.top_role,
            matched_role_ids=list(result.matched_role_ids),
            generated_at=result.generated_at,
        )


class JRScoreEnvelope(_CamelModel):
    """
    Standard response envelope.

    Contract:
      HTTP < 400  -> status = "success"
      HTTP >= 400 -> status = "error" (error bodies use the std error shape)
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    status: Literal["success", "error"] = "success"
    data: Optional[JRScoreData] = None
    correlation_id: Optional[str] = None

    # Debug-only metadata (processing time), enable_debug_metadata
    metadata: Optional[Dict[str, Any]] = None


class SourceStats(_CamelModel):
    count: int = 0
    percentage: int = 0
    average_score: float = 0


class ScorerHealthSummary(_CamelModel):
    scorer_configured: bool
    recommended_action: str


class ScoreStatsData(_CamelModel):
    total_scores: int
    by_source: Dict[str, SourceStats]
    health: ScorerHealthSummary


class ScorerHealthData(_CamelModel):
    available: bool
    latency_ms: Optional[int] = None
    error: Optional[str] = None
