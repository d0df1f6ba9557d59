"""
api.py

WHAT THIS FILE IS FOR
---------------------
FastAPI entrypoint of the JR Score service.

It is responsible for:
- Building the app (create_app) and its lifespan:
    - open ONE shared HttpClient at startup, close it at shutdown
    - construct the store, scorer and JRScoreService and inject them
- Registering middleware for:
    - Correlation ID propagation (X-Correlation-Id)
    - API version validation (X-API-Version)
- Standard error responses:
    {code, message, subErrors, timestamp, correlationId}
- Exception handlers for:
    - RequestValidationError (400 VALIDATION_FAILED)
    - JRScoreServiceError (PERSISTENCE_FAILED 503, PROFILE_NOT_FOUND 404)
    - HTTPException passthrough
- Endpoints:
    - GET  /health, /healthz
    - POST /api/v1/jr-scores            (scoreOnboarding)
    - GET  /api/v1/admin/ai/stats       (gemini vs fallback ratio)
    - GET  /api/v1/admin/ai/health      (scorer round-trip)

RESPONSE CONTRACT
-----------------
- Requests accept camelCase and snake_case field names.
- Responses are camelCase (schemas dump with by_alias=True).
- A scoring request never fails because the scorer failed: the response
  is a success whose data.source says "gemini", "fallback" or "cached".

DESIGN INTENT
-------------
HTTP layer only: routing, middleware, error formatting.
Scoring lives in jrscore/scoring/*, storage in jrscore/storage/*.
"""

from __future__ import annotations

import re
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from jrscore.scoring.gemini_scorer import GeminiScorer
from jrscore.scoring.jr_score_service import JRScoreService
from jrscore.storage.analysis_store import AnalysisStore, InMemoryAnalysisStore
from jrscore.storage.data_api_store import DataApiStore
from jrscore.utils.exceptions import JRScoreServiceError
from jrscore.utils.http_client import HttpClient
from jrscore.utils.logging_config import configure_logging
from jrscore.utils.settings import Settings, get_settings
from schemas.input_schema import JRScoreRequest
from schemas.output_schema import (
    JRScoreData,
    JRScoreEnvelope,
    ScorerHealthData,
    ScoreStatsData,
)

logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-Id"
API_VERSION_HEADER = "X-API-Version"
SUPPORTED_API_VERSIONS = {"1"}

# Forwarded ids are echoed in headers; only printable ASCII survives that.
_CORRELATION_ID_RE = re.compile(r"^[\x21-\x7e][\x20-\x7e]{0,127}$")


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------
def _get_or_create_correlation_id(request: Request) -> str:
    incoming = (request.headers.get(CORRELATION_HEADER) or "").strip()
    if _CORRELATION_ID_RE.match(incoming):
        return incoming
    return f"corr_{uuid.uuid4().hex}"


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or f"corr_{uuid.uuid4().hex}"


def _get_api_version(request: Request) -> str:
    v = getattr(request.state, "api_version", None)
    return str(v) if v else request.headers.get(API_VERSION_HEADER, "1").strip() or "1"


def _std_error(
    *,
    code: str,
    message: str,
    correlation_id: str,
    http_status: int,
    api_version: str = "1",
    sub_errors: Optional[list[dict[str, Any]]] = None,
) -> JSONResponse:
    payload = {
        "code": code,
        "message": message,
        "subErrors": sub_errors or [],
        "timestamp": int(time.time()),
        "correlationId": correlation_id,
    }
    headers = {
        CORRELATION_HEADER: correlation_id,
        API_VERSION_HEADER: api_version,
    }
    return JSONResponse(status_code=http_status, content=payload, headers=headers)


def _build_store(settings: Settings, http: HttpClient) -> AnalysisStore:
    if settings.data_api_base_url:
        return DataApiStore(settings, http)
    logger.warning("analysis_store_in_memory", environment=settings.environment)
    return InMemoryAnalysisStore()


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[AnalysisStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the application.

    `store` and `transport` let tests inject an in-memory store and an
    httpx.MockTransport; production passes neither.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        http = HttpClient(timeout_seconds=settings.http_timeout_seconds, transport=transport).open()
        analysis_store = store if store is not None else _build_store(settings, http)
        scorer = GeminiScorer(settings, http)

        app.state.http = http
        app.state.scoring_service = JRScoreService(settings, scorer, analysis_store)
        logger.info(
            "jr_score_service_started",
            service=settings.service_name,
            environment=settings.environment,
            scorer_configured=scorer.is_configured,
            store=type(analysis_store).__name__,
        )
        try:
            yield
        finally:
            await http.close()
            logger.info("jr_score_service_stopped", service=settings.service_name)

    app = FastAPI(
        title="JR Score Service",
        version="1.0.0",
        description="Job-readiness scoring with an external LLM scorer and a deterministic fallback.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------------------------------------------------------------
    # Middleware (registered inner-first: correlation wraps version)
    # ---------------------------------------------------------------
    @app.middleware("http")
    async def api_version_middleware(request: Request, call_next):
        correlation_id = _correlation_id(request)
        version = request.headers.get(API_VERSION_HEADER, "1").strip() or "1"

        if version not in SUPPORTED_API_VERSIONS:
            return _std_error(
                code="INVALID_FIELD_VALUE",
                message="Invalid API version",
                correlation_id=correlation_id,
                http_status=400,
                sub_errors=[
                    {
                        "field": API_VERSION_HEADER,
                        "errors": [{"code": "isIn", "message": "Supported versions: 1"}],
                    }
                ],
            )

        request.state.api_version = version
        response = await call_next(request)
        response.headers[API_VERSION_HEADER] = version
        return response

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        correlation_id = _get_or_create_correlation_id(request)
        request.state.correlation_id = correlation_id
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("correlation_id")
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    # ---------------------------------------------------------------
    # Exception handlers
    # ---------------------------------------------------------------
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        correlation_id = _correlation_id(request)

        sub_errors: list[dict[str, Any]] = []
        for err in exc.errors():
            field = ".".join(str(x) for x in err.get("loc", []) if x != "body") or "body"
            sub_errors.append(
                {
                    "field": field,
                    "errors": [{"code": err.get("type"), "message": err.get("msg")}],
                }
            )

        logger.info(
            "request_validation_failed",
            correlation_id=correlation_id,
            error_count=len(sub_errors),
        )

        return _std_error(
            code="VALIDATION_FAILED",
            message="Validation failed",
            correlation_id=correlation_id,
            http_status=400,
            api_version=_get_api_version(request),
            sub_errors=sub_errors,
        )

    @app.exception_handler(JRScoreServiceError)
    async def service_error_handler(request: Request, exc: JRScoreServiceError):
        correlation_id = _correlation_id(request)

        log = logger.error if exc.http_status >= 500 else logger.info
        log("service_error", correlation_id=correlation_id, **exc.to_dict())

        return _std_error(
            code=exc.error_code,
            message=exc.message,
            correlation_id=correlation_id,
            http_status=exc.http_status,
            api_version=_get_api_version(request),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        correlation_id = _correlation_id(request)

        logger.warning(
            "http_exception",
            correlation_id=correlation_id,
            status_code=exc.status_code,
            detail=str(exc.detail),
        )

        return _std_error(
            code="HTTP_ERROR",
            message=str(exc.detail),
            correlation_id=correlation_id,
            http_status=exc.status_code,
            api_version=_get_api_version(request),
        )

    # ---------------------------------------------------------------
    # Endpoints
    # ---------------------------------------------------------------
    @app.get("/healthz")
    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "service": settings.service_name,
            "environment": settings.environment,
            "scorerConfigured": settings.scorer_configured,
        }

    @app.post("/api/v1/jr-scores", response_model=JRScoreEnvelope)
    async def score_onboarding(payload: JRScoreRequest, request: Request) -> JSONResponse:
        correlation_id = _correlation_id(request)
        service: JRScoreService = request.app.state.scoring_service

        result = await service.score_onboarding(
            payload.user_id,
            profile=payload.user_context,
            chat_history=payload.chat_history,
            force_recalculate=payload.force_recalculate,
            correlation_id=correlation_id,
        )

        metadata = None
        if settings.enable_debug_metadata:
            metadata = {"processingTimeMs": result.processing_time_ms}

        envelope = JRScoreEnvelope(
            status="success",
            correlation_id=correlation_id,
            data=JRScoreData.from_result(result),
            metadata=metadata,
        )
        return JSONResponse(status_code=200, content=envelope.model_dump(mode="json", by_alias=True))

    @app.get("/api/v1/admin/ai/stats")
    async def score_stats(request: Request) -> JSONResponse:
        service: JRScoreService = request.app.state.scoring_service
        stats = ScoreStatsData.model_validate(await service.score_stats())
        return JSONResponse(
            status_code=200,
            content={
                "status": "success",
                "data": stats.model_dump(mode="json", by_alias=True),
                "correlationId": _correlation_id(request),
            },
        )

    @app.get("/api/v1/admin/ai/health")
    async def scorer_health(request: Request) -> JSONResponse:
        service: JRScoreService = request.app.state.scoring_service
        health_data = ScorerHealthData.model_validate(await service.scorer_health())
        return JSONResponse(
            status_code=200,
            content={
                "status": "success",
                "data": health_data.model_dump(mode="json", by_alias=True),
                "correlationId": _correlation_id(request),
            },
        )

    return app


app = create_app()
