"""
jrscore/storage/analysis_store.py

The storage boundary of the JR Score service.

`AnalysisStore` is what the scoring core needs from durable storage:
read the onboarding profile, read/write the user's career analysis, and
read the role catalogue. Transactions and locking are the store's own
business; the core only promises at most one write per scoring cycle.

`InMemoryAnalysisStore` backs local runs (no Data API configured) and
tests.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

import structlog

from schemas.score_schema import CareerAnalysisRecord

logger = structlog.get_logger(__name__)


class AnalysisStore(Protocol):
    async def get_onboarding_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def get_career_analysis(self, user_id: str) -> Optional[CareerAnalysisRecord]:
        ...

    async def save_career_analysis(self, record: CareerAnalysisRecord) -> CareerAnalysisRecord:
        ...

    async def list_career_analyses(self) -> List[CareerAnalysisRecord]:
        ...

    async def list_roles(self) -> List[Dict[str, Any]]:
        ...


class InMemoryAnalysisStore:
    """
    Process-local store. One career analysis per user (latest completion
    wins), like the upsert-by-user the Data API performs.
    """

    def __init__(
        self,
        *,
        profiles: Optional[Mapping[str, Mapping[str, Any]]] = None,
        roles: Optional[Iterable[Mapping[str, Any]]] = None,
    ) -> None:
        self._profiles: Dict[str, Dict[str, Any]] = {
            user_id: dict(profile) for user_id, profile in (profiles or {}).items()
        }
        self._roles: List[Dict[str, Any]] = [dict(r) for r in (roles or [])]
        self._analyses: Dict[str, CareerAnalysisRecord] = {}
        self.write_count = 0

    def put_onboarding_profile(self, user_id: str, profile: Mapping[str, Any]) -> None:
        self._profiles[user_id] = dict(profile)

    async def get_onboarding_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        profile = self._profiles.get(user_id)
        return copy.deepcopy(profile) if profile is not None else None

    async def get_career_analysis(self, user_id: str) -> Optional[CareerAnalysisRecord]:
        record = self._analyses.get(user_id)
        return record.model_copy(deep=True) if record is not None else None

    async def save_career_analysis(self, record: CareerAnalysisRecord) -> CareerAnalysisRecord:
        stored = record.model_copy(deep=True)
        self._analyses[record.user_id] = stored
        self.write_count += 1
        logger.debug(
            "memory_store_analysis_saved",
            user_id=record.user_id,
            completion_id=record.completion_id,
            source=record.source,
        )
        return stored.model_copy(deep=True)

    async def list_career_analyses(self) -> List[CareerAnalysisRecord]:
        return [r.model_copy(deep=True) for r in self._analyses.values()]

    async def list_roles(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._roles)
