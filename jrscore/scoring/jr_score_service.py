"""
jrscore/scoring/jr_score_service.py

WHAT THIS FILE IS FOR
---------------------
The single entry point into JR scoring: `score_onboarding(user_id)`.

CALL FLOW
---------
ScorePersistenceGate.cycle(user_id)
  -> store: current analysis + onboarding profile + role catalogue
  -> ScoringContextBuilder.build()
  -> (same completion already scored and no force?) reuse -> "cached"
  -> GeminiScorer.score()            [skipped when not configured]
  -> validate_score_payload()        [fail-closed]
  -> compute_fallback_score()        [only when the two above did not
                                      produce an accepted result]
  -> ScoringCycle.commit()           [one write]

ERROR POLICY
------------
- Scorer transport errors and contract violations are absorbed here and
  logged; the caller always receives a score, tagged "gemini" or
  "fallback".
- Storage errors (PersistenceError) and a missing profile
  (ProfileNotFoundError) propagate.
- Failed scorer calls are not retried; the first failure falls back.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Mapping, Optional, Sequence

import structlog

from jrscore.scoring.context_builder import build_scoring_context
from jrscore.scoring.fallback import compute_fallback_score
from jrscore.scoring.gemini_scorer import GeminiScorer
from jrscore.scoring.persistence_gate import ScorePersistenceGate
from jrscore.scoring.role_matcher import estimate_months_to_target, summarize_career
from jrscore.scoring.score_validator import validate_score_payload
from jrscore.storage.analysis_store import AnalysisStore
from jrscore.utils.exceptions import ProfileNotFoundError
from jrscore.utils.settings import Settings
from schemas.score_schema import (
    UNKNOWN,
    CareerAnalysisRecord,
    JRScoreResult,
    OnboardingChatMessage,
    ScoringContext,
    utc_now_iso,
)

logger = structlog.get_logger(__name__)

# Only persisted sources; a cached reuse writes nothing.
STAT_SOURCES = ("gemini", "fallback")


class JRScoreService:
    def __init__(
        self,
        settings: Settings,
        scorer: GeminiScorer,
        store: AnalysisStore,
        gate: Optional[ScorePersistenceGate] = None,
    ) -> None:
        self.settings = settings
        self.scorer = scorer
        self.store = store
        self.gate = gate or ScorePersistenceGate(store)

    async def score_onboarding(
        self,
        user_id: str,
        *,
        profile: Optional[Mapping[str, Any]] = None,
        chat_history: Optional[Sequence[OnboardingChatMessage]] = None,
        force_recalculate: bool = False,
        correlation_id: Optional[str] = None,
    ) -> JRScoreResult:
        async with self.gate.cycle(user_id) as cycle:
            existing = await self.store.get_career_analysis(user_id)

            if profile is None:
                profile = await self.store.get_onboarding_profile(user_id)
                if profile is None:
                    raise ProfileNotFoundError(user_id)

            context = build_scoring_context(user_id, profile, prior=existing)

            if (
                existing is not None
                and not force_recalculate
                and context.completion_id != UNKNOWN
                and existing.completion_id == context.completion_id
            ):
                return cycle.reuse(existing)

            roles = await self.store.list_roles()
            result = await self.compute_score(context, chat_history, correlation_id=correlation_id)
            record = self._build_record(context, result, roles)
            saved = await cycle.commit(record)
            return saved.to_result()

    async def compute_score(
        self,
        context: ScoringContext,
        chat_history: Optional[Sequence[OnboardingChatMessage]] = None,
        *,
        correlation_id: Optional[str] = None,
    ) -> JRScoreResult:
        """Scorer -> validator -> fallback. Never raises for scoring failures."""
        started = time.perf_counter()

        if not self.scorer.is_configured:
            logger.info(
                "jr_score_scorer_skipped",
                user_id=context.user_id,
                reason="disabled" if not self.settings.scorer_enabled else "api_key_missing",
            )
            result = compute_fallback_score(context)
        else:
            result = await self._score_externally(context, chat_history, correlation_id)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "jr_score_computed",
            user_id=context.user_id,
            correlation_id=correlation_id,
            source=result.source,
            jr_score=result.jr_score,
            processing_time_ms=elapsed_ms,
        )
        return result.timed(elapsed_ms)

    async def score_stats(self) -> Dict[str, Any]:
        """Gemini vs fallback ratio: the operator's view of scorer health."""
        records = await self.store.list_career_analyses()
        total = len(records)

        by_source: Dict[str, Dict[str, Any]] = {}
        for source in STAT_SOURCES:
            scores = [r.jr_score for r in records if r.source == source]
            by_source[source] = {
                "count": len(scores),
                "percentage": round(len(scores) / total * 100) if total else 0,
                "average_score": round(sum(scores) / len(scores), 1) if scores else 0,
            }

        configured = self.scorer.is_configured
        return {
            "total_scores": total,
            "by_source": by_source,
            "health": {
                "scorer_configured": configured,
                "recommended_action": (
                    "AI scoring operational"
                    if configured
                    else "Set JRSCORE_GEMINI_API_KEY and enable the scorer to use AI scoring"
                ),
            },
        }

    async def scorer_health(self) -> Dict[str, Any]:
        return await self.scorer.check_health()

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    async def _score_externally(
        self,
        context: ScoringContext,
        chat_history: Optional[Sequence[OnboardingChatMessage]],
        correlation_id: Optional[str],
    ) -> JRScoreResult:
        outcome = await self.scorer.score(context, chat_history, correlation_id=correlation_id)
        if not outcome.ok:
            logger.warning(
                "jr_score_fallback_used",
                user_id=context.user_id,
                reason=outcome.error.value if outcome.error else "empty_payload",
            )
            return compute_fallback_score(context)

        verdict = validate_score_payload(outcome.payload or {})
        for warning in verdict.warnings:
            logger.warning("gemini_score_inconsistent", user_id=context.user_id, detail=warning)

        if verdict.score is None:
            logger.warning(
                "jr_score_fallback_used",
                user_id=context.user_id,
                reason="contract_violation",
                violations=list(verdict.violations),
            )
            return compute_fallback_score(context)

        return verdict.score

    @staticmethod
    def _build_record(
        context: ScoringContext,
        result: JRScoreResult,
        roles: Sequence[Mapping[str, Any]],
    ) -> CareerAnalysisRecord:
        summary = summarize_career(context.skills, roles)

        return CareerAnalysisRecord(
            user_id=context.user_id,
            completion_id=context.completion_id,
            jr_score=result.jr_score,
            confidence=result.confidence,
            clarity=result.clarity,
            consistency=result.consistency,
            execution_readiness=result.execution_readiness,
            risk_flags=list(result.risk_flags),
            reasoning=result.reasoning,
            source=result.source,
            top_role=result.top_role or summary.top_role,
            top_role_match=summary.top_role_match,
            matched_role_ids=list(result.matched_role_ids or summary.matched_role_ids),
            skill_gap=summary.skill_gap,
            missing_skills=list(summary.missing_skills),
            growth_matrix=summary.growth_matrix,
            estimated_months=estimate_months_to_target(result.jr_score),
            generated_at=result.generated_at,
            processing_time_ms=result.processing_time_ms,
            updated_at=utc_now_iso(),
        )
