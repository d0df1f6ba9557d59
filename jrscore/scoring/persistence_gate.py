"""
jrscore/scoring/persistence_gate.py

Decides what gets written for a scoring cycle, and when.

Per-user state machine:

    UNSCORED --(completion)--> SCORING --(commit)--> SCORED(gemini|fallback)
    SCORED   --(re-score)----> SCORING --(reuse)---> SCORED(cached)

- A cycle that raises or is cancelled before reaching a terminal state
  restores the previous state and writes nothing.
- Cycles for the same user are serialised; different users never wait
  on each other.
- A cycle writes at most once. Persistence errors propagate.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Dict, Optional

import structlog

from jrscore.storage.analysis_store import AnalysisStore
from schemas.score_schema import CareerAnalysisRecord, JRScoreResult, ScoreSource

logger = structlog.get_logger(__name__)


class ScoringState(str, Enum):
    UNSCORED = "unscored"
    SCORING = "scoring"
    SCORED = "scored"


@dataclass(frozen=True)
class UserScoringState:
    state: ScoringState
    source: Optional[ScoreSource] = None


UNSCORED = UserScoringState(ScoringState.UNSCORED)


class ScoringCycle:
    """One in-flight scoring cycle for one user."""

    def __init__(self, gate: "ScorePersistenceGate", user_id: str) -> None:
        self._gate = gate
        self.user_id = user_id
        self.finished = False

    def _finish(self, source: ScoreSource) -> None:
        self.finished = True
        self._gate._states[self.user_id] = UserScoringState(ScoringState.SCORED, source)

    def _ensure_open(self) -> None:
        if self.finished:
            raise RuntimeError(f"scoring cycle for {self.user_id} already reached a terminal state")

    async def commit(self, record: CareerAnalysisRecord) -> CareerAnalysisRecord:
        """Write the trusted result. Only reached after a terminal score exists."""
        self._ensure_open()
        if record.user_id != self.user_id:
            raise ValueError("record belongs to a different user than the cycle")

        saved = await self._gate.store.save_career_analysis(record)
        self._finish(record.source)
        logger.info(
            "jr_score_persisted",
            user_id=self.user_id,
            completion_id=record.completion_id,
            source=record.source,
            jr_score=record.jr_score,
        )
        return saved

    def reuse(self, record: CareerAnalysisRecord) -> JRScoreResult:
        """Re-serve the stored result for the same completion without writing."""
        self._ensure_open()
        self._finish("cached")
        logger.info(
            "jr_score_reused",
            user_id=self.user_id,
            completion_id=record.completion_id,
            stored_source=record.source,
        )
        return record.to_result(source="cached")


class ScorePersistenceGate:
    def __init__(self, store: AnalysisStore) -> None:
        self.store = store
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._states: Dict[str, UserScoringState] = {}

    def state_of(self, user_id: str) -> UserScoringState:
        return self._states.get(user_id, UNSCORED)

    @asynccontextmanager
    async def cycle(self, user_id: str) -> AsyncIterator[ScoringCycle]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                previous = self.state_of(user_id)
                self._states[user_id] = UserScoringState(ScoringState.SCORING)
                current = ScoringCycle(self, user_id)
                try:
                    yield current
                finally:
                    if not current.finished:
                        self._restore(user_id, previous)
                        logger.warning(
                            "scoring_cycle_aborted",
                            user_id=user_id,
                            restored_state=previous.state.value,
                        )
        finally:
            self._lock_users[user_id] -= 1
            if self._lock_users[user_id] == 0:
                del self._lock_users[user_id]
                self._locks.pop(user_id, None)

    def _restore(self, user_id: str, previous: UserScoringState) -> None:
        if previous.state is ScoringState.UNSCORED:
            self._states.pop(user_id, None)
        else:
            self._states[user_id] = previous
