"""
jrscore/scoring/gemini_scorer.py

WHAT THIS FILE IS FOR
---------------------
The adapter between the JR Score pipeline and the external LLM scorer
(Gemini `generateContent`).

It is responsible for:
- Rendering the scorer prompt from a ScoringContext
- Sending ONE POST per scoring cycle through the shared HttpClient
- Bounding the whole call with the configured timeout
- Mapping every transport outcome onto a typed ScorerOutcome
- Extracting the candidate text and parsing it as a JSON object

CALL FLOW CONTEXT
-----------------
JRScoreService.score_onboarding()
  -> GeminiScorer.score()
      -> POST {gemini_api_base_url}/models/{model}:generateContent
  -> score_validator.validate_score_payload()

OUTCOME MAPPING
---------------
- deadline exceeded / httpx timeout        -> timeout
- connection / protocol errors, 5xx, 4xx   -> network_failure
- request headers that cannot be encoded   -> network_failure
- 401 / 403                                -> auth_failure
- 429                                      -> rate_limited
- non-JSON or too deeply nested body,
  no candidate text, or candidate text
  that is not a JSON object                -> malformed_transport

The adapter NEVER raises for these conditions and NEVER retries;
the caller decides what a failure means (it falls back).

A structurally valid payload with out-of-range scores is a SUCCESS here:
range checking is the validator's job.

SECURITY
--------
The API key travels in the `x-goog-api-key` header (never in the URL)
and is never logged. Prompt and response bodies are never logged.
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence

import httpx
import structlog

from jrscore.scoring.context_builder import build_scoring_prompt
from jrscore.utils.http_client import HttpClient
from jrscore.utils.settings import Settings
from schemas.score_schema import OnboardingChatMessage, RawScoreResponse, ScoringContext

logger = structlog.get_logger(__name__)

HEALTH_PROMPT = 'Respond with ONLY this JSON: {"status": "ok"}'


class ScorerError(str, Enum):
    TIMEOUT = "timeout"
    NETWORK_FAILURE = "network_failure"
    AUTH_FAILURE = "auth_failure"
    MALFORMED_TRANSPORT = "malformed_transport"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class ScorerOutcome:
    """Either a candidate payload (untrusted) or a typed failure."""

    payload: Optional[RawScoreResponse] = None
    error: Optional[ScorerError] = None
    message: str = ""
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.payload is not None

    @classmethod
    def success(cls, payload: RawScoreResponse, status_code: Optional[int] = None) -> "ScorerOutcome":
        return cls(payload=payload, status_code=status_code)

    @classmethod
    def failure(
        cls,
        error: ScorerError,
        message: str,
        status_code: Optional[int] = None,
    ) -> "ScorerOutcome":
        return cls(error=error, message=message, status_code=status_code)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    clean = text.strip()
    if clean.startswith("```json"):
        clean = clean[len("```json"):]
    elif clean.startswith("```"):
        clean = clean[3:]
    if clean.endswith("```"):
        clean = clean[:-3]
    return clean.strip()


def _candidate_text(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content") if isinstance(first.get("content"), dict) else {}
    parts = content.get("parts")
    if not isinstance(parts, list):
        return None
    texts = [p.get("text") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
    joined = "".join(texts).strip()
    return joined or None


class GeminiScorer:
    """
    External Scorer Adapter.

    Holds no connection of its own: the HttpClient is injected and its
    lifecycle belongs to the process entry point.
    """

    def __init__(self, settings: Settings, http: HttpClient):
        self.settings = settings
        self.http = http
        self._timeout = settings.scorer_timeout_seconds
        self._url = (
            f"{settings.gemini_api_base_url.rstrip('/')}/models/{settings.gemini_model}:generateContent"
        )

    @property
    def is_configured(self) -> bool:
        return self.settings.scorer_configured

    async def score(
        self,
        context: ScoringContext,
        chat_history: Optional[Sequence[OnboardingChatMessage]] = None,
        *,
        correlation_id: Optional[str] = None,
    ) -> ScorerOutcome:
        prompt = build_scoring_prompt(context, chat_history)
        outcome = await self._generate(prompt, correlation_id=correlation_id)

        if outcome.ok:
            logger.info(
                "gemini_score_received",
                user_id=context.user_id,
                correlation_id=correlation_id,
                status_code=outcome.status_code,
            )
        else:
            logger.warning(
                "gemini_score_failed",
                user_id=context.user_id,
                correlation_id=correlation_id,
                error=outcome.error.value if outcome.error else None,
                status_code=outcome.status_code,
                message=outcome.message,
            )
        return outcome

    async def check_health(self) -> Dict[str, Any]:
        """Round-trip a tiny prompt; used by the admin health endpoint."""
        if not self.is_configured:
            return {"available": False, "latency_ms": None, "error": "scorer not configured"}

        started = time.perf_counter()
        outcome = await self._generate(HEALTH_PROMPT)
        latency_ms = int((time.perf_counter() - started) * 1000)

        if outcome.ok:
            return {"available": True, "latency_ms": latency_ms, "error": None}
        return {
            "available": False,
            "latency_ms": latency_ms,
            "error": f"{outcome.error.value if outcome.error else 'unknown'}: {outcome.message}",
        }

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _request_body(self, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                # Low temperature for near-deterministic output
                "temperature": 0.1,
                "topK": 1,
                "topP": 0.95,
                "maxOutputTokens": 1024,
                "responseMimeType": "application/json",
            },
        }

    async def _generate(self, prompt: str, *, correlation_id: Optional[str] = None) -> ScorerOutcome:
        if not self.is_configured:
            return ScorerOutcome.failure(ScorerError.AUTH_FAILURE, "scorer not configured")

        api_key = self.settings.gemini_api_key.get_secret_value()  # type: ignore[union-attr]
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": api_key,
            "X-Correlation-Id": correlation_id or f"corr_{uuid.uuid4().hex}",
        }

        # Deadline covers connect + send + read + body; httpx timeouts alone are per-phase.
        try:
            resp = await asyncio.wait_for(
                self.http.client.post(
                    self._url,
                    json=self._request_body(prompt),
                    headers=headers,
                    timeout=self._timeout,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            return ScorerOutcome.failure(
                ScorerError.TIMEOUT, f"scorer did not answer within {self._timeout}s"
            )
        except httpx.TimeoutException as exc:
            return ScorerOutcome.failure(ScorerError.TIMEOUT, f"httpx timeout: {type(exc).__name__}")
        except (httpx.HTTPError, UnicodeEncodeError) as exc:
            return ScorerOutcome.failure(ScorerError.NETWORK_FAILURE, f"{type(exc).__name__}: {exc}")

        return self._interpret(resp)

    def _interpret(self, resp: httpx.Response) -> ScorerOutcome:
        status = resp.status_code

        if status in (401, 403):
            return ScorerOutcome.failure(ScorerError.AUTH_FAILURE, "scorer rejected credentials", status)
        if status == 429:
            return ScorerOutcome.failure(ScorerError.RATE_LIMITED, "scorer rate limit reached", status)
        if status >= 400:
            snippet = (resp.text or "")[:200]
            return ScorerOutcome.failure(
                ScorerError.NETWORK_FAILURE, f"scorer error (status={status}): {snippet}", status
            )

        try:
            data = resp.json()
        except (ValueError, RecursionError):
            return ScorerOutcome.failure(
                ScorerError.MALFORMED_TRANSPORT, "scorer returned non-JSON body", status
            )

        text = _candidate_text(data)
        if text is None:
            feedback = data.get("promptFeedback") if isinstance(data, dict) else None
            block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
            message = f"no candidate text (blockReason={block_reason})" if block_reason else "no candidate text"
            return ScorerOutcome.failure(ScorerError.MALFORMED_TRANSPORT, message, status)

        try:
            payload = json.loads(strip_code_fences(text))
        except (ValueError, RecursionError):
            return ScorerOutcome.failure(
                ScorerError.MALFORMED_TRANSPORT, "candidate text is not valid JSON", status
            )

        if not isinstance(payload, dict):
            return ScorerOutcome.failure(
                ScorerError.MALFORMED_TRANSPORT,
                f"candidate JSON is {type(payload).__name__}, expected object",
                status,
            )

        return ScorerOutcome.success(payload, status)
