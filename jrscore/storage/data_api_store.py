"""
jrscore/storage/data_api_store.py

WHAT THIS FILE IS FOR
---------------------
AnalysisStore implementation backed by the internal Data API (the
service that owns users, onboarding profiles, roles and career
analyses).

It exists to:
- Centralize all Data API access in one place
- Read endpoint templates from parameters/config.yaml
- Perform async HTTP calls with retries through the shared HttpClient
- Add structured logging for observability
- Normalize common response wrappers (e.g. {"data": {...}})
- Translate every storage failure into PersistenceError

RETRY POLICY
------------
- Transport errors and 5xx: retried, max_retries=2 => attempts=3
- 4xx: not retried
- GET 404 on a single resource: "not found" (None), not an error

Retrying the analysis write is safe: it is a PUT keyed by user, carrying
the completion id.

WHAT THIS FILE IS NOT FOR
-------------------------
No scoring, no scorer calls, no HTTP routing.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx
import structlog
import yaml
from pydantic import ValidationError

from jrscore.utils.exceptions import PersistenceError
from jrscore.utils.http_client import HttpClient
from jrscore.utils.settings import Settings
from schemas.score_schema import CareerAnalysisRecord

logger = structlog.get_logger(__name__)

CONFIG_PATH = Path(__file__).resolve().parents[2] / "parameters" / "config.yaml"


@lru_cache(maxsize=1)
def load_store_config() -> Dict[str, Any]:
    if not CONFIG_PATH.exists():
        logger.warning("store_config_missing", path=str(CONFIG_PATH))
        return {}

    try:
        with CONFIG_PATH.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.error("store_config_load_error", path=str(CONFIG_PATH), error=str(exc))
        return {}

    if not isinstance(data, dict):
        logger.warning("store_config_not_dict", path=str(CONFIG_PATH))
        return {}
    logger.info("store_config_loaded", path=str(CONFIG_PATH))
    return data


def _unwrap(raw: Any) -> Any:
    # {"success": true, "data": X} -> X; records themselves never carry a "data" key
    if isinstance(raw, dict) and "data" in raw:
        inner = raw["data"]
        if inner is None or isinstance(inner, (dict, list)):
            return inner
    return raw


class DataApiStore:
    """
    Thin async client around the Data API.

    The HttpClient is injected; this class never opens or closes it.
    """

    def __init__(self, settings: Settings, http: HttpClient) -> None:
        if not settings.data_api_base_url:
            raise ValueError("data_api_base_url is required for DataApiStore")
        self.settings = settings
        self.http = http
        self._base_url = str(settings.data_api_base_url).rstrip("/")
        self._config = load_store_config()
        self._timeout = settings.http_timeout_seconds
        self._max_retries = settings.max_retries

    async def get_onboarding_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        path = self._user_path("onboarding_profile", user_id)
        status, raw = await self._request_json("GET", path, operation="get_onboarding_profile", allow_missing=True)
        data = _unwrap(raw)
        if status == 404 or data is None:
            return None
        if not isinstance(data, dict):
            raise PersistenceError(
                "Onboarding profile payload is not an object", operation="get_onboarding_profile"
            )
        return data

    async def get_career_analysis(self, user_id: str) -> Optional[CareerAnalysisRecord]:
        path = self._user_path("career_analysis", user_id)
        status, raw = await self._request_json("GET", path, operation="get_career_analysis", allow_missing=True)
        data = _unwrap(raw)
        if status == 404 or data is None:
            return None
        return self._to_record(data, operation="get_career_analysis")

    async def save_career_analysis(self, record: CareerAnalysisRecord) -> CareerAnalysisRecord:
        path = self._user_path("career_analysis", record.user_id)
        _, raw = await self._request_json(
            "PUT",
            path,
            operation="save_career_analysis",
            json_body=record.model_dump(mode="json"),
        )
        data = _unwrap(raw)
        if isinstance(data, dict) and data:
            return self._to_record(data, operation="save_career_analysis")
        return record

    async def list_career_analyses(self) -> List[CareerAnalysisRecord]:
        path = self._get_endpoint_template("career_analyses")
        _, raw = await self._request_json("GET", path, operation="list_career_analyses")
        data = _unwrap(raw)
        if not isinstance(data, list):
            raise PersistenceError("Career analyses payload is not a list", operation="list_career_analyses")
        return [self._to_record(item, operation="list_career_analyses") for item in data]

    async def list_roles(self) -> List[Dict[str, Any]]:
        path = self._get_endpoint_template("roles")
        _, raw = await self._request_json("GET", path, operation="list_roles")
        data = _unwrap(raw)
        if not isinstance(data, list):
            raise PersistenceError("Roles payload is not a list", operation="list_roles")
        return [r for r in data if isinstance(r, dict)]

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _user_path(self, key: str, user_id: str) -> str:
        template = self._get_endpoint_template(key)
        return template.format(user_id=quote(user_id, safe=""))

    def _get_endpoint_template(self, key: str) -> str:
        """
        Example:
            key="career_analysis" -> "/v1/users/{user_id}/career-analysis"
        """
        try:
            template = self._config["data_api"]["endpoints"][key]
        except (KeyError, TypeError) as exc:
            logger.error("endpoint_template_missing", key=key)
            raise RuntimeError(f"Missing endpoint template for data_api.{key}") from exc
        if not isinstance(template, str) or not template.startswith("/"):
            logger.error("endpoint_template_invalid", key=key)
            raise RuntimeError(f"Invalid endpoint template for data_api.{key}")
        return template

    @staticmethod
    def _to_record(data: Any, *, operation: str) -> CareerAnalysisRecord:
        try:
            return CareerAnalysisRecord.model_validate(data)
        except ValidationError as exc:
            raise PersistenceError(
                "Stored career analysis does not match the expected shape",
                operation=operation,
                cause=exc,
            ) from exc

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json_body: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Tuple[int, Any]:
        """
        Perform a request and return (status_code, parsed JSON).

        Raises PersistenceError once retries are exhausted or on a
        non-retryable failure.
        """
        url = self._base_url + path
        attempts = self._max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                resp = await self.http.client.request(method, url, json=json_body, timeout=self._timeout)
            except httpx.HTTPError as exc:
                logger.warning(
                    "data_api_attempt_failed",
                    url=url,
                    method=method,
                    attempt=attempt,
                    max_retries=self._max_retries,
                    error=f"{type(exc).__name__}: {exc}",
                )
                if attempt >= attempts:
                    logger.error("data_api_exhausted_retries", url=url, method=method, attempts=attempt)
                    raise PersistenceError(
                        f"Data API unreachable: {type(exc).__name__}", operation=operation, cause=exc
                    ) from exc
                continue

            if resp.status_code == 404 and allow_missing:
                logger.info("data_api_not_found", url=url, method=method)
                return 404, None

            if resp.status_code >= 500 and attempt < attempts:
                logger.warning(
                    "data_api_attempt_failed",
                    url=url,
                    method=method,
                    attempt=attempt,
                    max_retries=self._max_retries,
                    status_code=resp.status_code,
                )
                continue

            if resp.status_code >= 400:
                snippet = (resp.text or "")[:500]
                logger.error(
                    "data_api_http_error",
                    url=url,
                    method=method,
                    attempt=attempt,
                    status_code=resp.status_code,
                    response_snippet=snippet,
                )
                raise PersistenceError(
                    f"Data API error (status={resp.status_code})",
                    operation=operation,
                    details={"status_code": resp.status_code},
                )

            if resp.status_code == 204 or not resp.content:
                logger.info("data_api_success", url=url, method=method, attempt=attempt)
                return resp.status_code, None

            try:
                data = resp.json()
            except ValueError as exc:
                raise PersistenceError(
                    f"Data API returned non-JSON (status={resp.status_code})",
                    operation=operation,
                    cause=exc,
                ) from exc

            logger.info("data_api_success", url=url, method=method, attempt=attempt)
            return resp.status_code, data

        raise PersistenceError("Data API retries exhausted", operation=operation)
