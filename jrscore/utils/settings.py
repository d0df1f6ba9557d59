"""
jrscore/utils/settings.py

WHAT THIS FILE IS FOR
---------------------
Runtime configuration for the JR Score service.

It is responsible for:
- Declaring every supported configuration field (Pydantic BaseSettings)
- Loading defaults from parameters/parameters.yaml
- Overriding defaults with environment variables (JRSCORE_*)
- Exposing a cached, fully-validated Settings object

LOAD & PRECEDENCE MODEL
-----------------------
1) YAML defaults from parameters/parameters.yaml
2) Environment variables JRSCORE_* (last wins)

The Gemini API key is expected to come from the environment
(JRSCORE_GEMINI_API_KEY). It is never hard-coded and never logged.

SCORER SWITCH
-------------
The external scorer is used only when BOTH hold:
- scorer_enabled is true
- gemini_api_key is set

Otherwise the fallback algorithm runs unconditionally and no outbound
scorer call is attempted.

WHAT THIS FILE IS NOT FOR
-------------------------
No HTTP calls, no scoring, no request handling.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import AnyHttpUrl, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)

PARAMETERS_PATH = Path(__file__).resolve().parents[2] / "parameters" / "parameters.yaml"


class Settings(BaseSettings):
    """
    Runtime settings for the JR Score service.

    Load order / precedence:
        1) YAML defaults (parameters/parameters.yaml)
        2) Environment variables (JRSCORE_*), overriding YAML
    """

    model_config = SettingsConfigDict(
        env_prefix="JRSCORE_",
        extra="ignore",
    )

    # Service metadata
    service_name: str = "jr_score_service"
    environment: str = "local"
    log_level: str = "INFO"
    log_json: bool = False

    # External scorer (Gemini)
    gemini_api_key: Optional[SecretStr] = None
    gemini_api_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-2.0-flash-exp"
    scorer_enabled: bool = True
    scorer_timeout_seconds: float = Field(default=8.0, gt=0, le=60)

    # Storage (Data API). None -> in-memory store.
    data_api_base_url: Optional[AnyHttpUrl] = None

    # Internal networking
    # - http_timeout_seconds: Data API calls
    # - max_retries: Data API retries only; the scorer is never retried
    http_timeout_seconds: float = 15.0
    max_retries: int = Field(default=2, ge=0)

    # Feature flags
    enable_debug_metadata: bool = Field(
        default=False,
        description="If true, responses carry scoring metadata (processing time, risk flags detail).",
    )

    @property
    def scorer_configured(self) -> bool:
        return bool(
            self.scorer_enabled
            and self.gemini_api_key is not None
            and self.gemini_api_key.get_secret_value().strip()
        )


@lru_cache(maxsize=1)
def _load_yaml_parameters() -> Dict[str, Any]:
    """
    Load base configuration from parameters/parameters.yaml.

    Cached so the process sees one consistent configuration.
    """
    if not PARAMETERS_PATH.exists():
        logger.warning("parameters_yaml_missing", expected=str(PARAMETERS_PATH))
        return {}

    try:
        with PARAMETERS_PATH.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.error("parameters_yaml_load_error", path=str(PARAMETERS_PATH), error=str(exc))
        return {}

    if not isinstance(data, dict):
        logger.warning(
            "parameters_yaml_not_dict",
            path=str(PARAMETERS_PATH),
            type=type(data).__name__,
        )
        return {}

    logger.info("parameters_yaml_loaded", path=str(PARAMETERS_PATH))
    return data


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Construct and return the final validated Settings object.

    Cached (one per process). Code needing configuration at startup should
    call this function; components receive the Settings object explicitly.
    """
    yaml_data = _load_yaml_parameters()

    try:
        env_settings = Settings()
        env_data = env_settings.model_dump(exclude_unset=True)
        logger.info("settings_loaded_env_only_partial", fields=sorted(env_data.keys()))
    except ValidationError as exc:
        logger.warning("settings_env_validation_error", errors=exc.errors())
        env_data = {}

    merged: Dict[str, Any] = {**yaml_data, **env_data}

    # Fails fast on invalid values (e.g. a non-positive timeout)
    settings = Settings.model_validate(merged)

    if not settings.data_api_base_url:
        logger.warning("settings_data_api_missing", store="in_memory")

    logger.info(
        "settings_loaded",
        environment=settings.environment,
        service_name=settings.service_name,
        gemini_model=settings.gemini_model,
        scorer_enabled=settings.scorer_enabled,
        scorer_configured=settings.scorer_configured,
        scorer_timeout_seconds=settings.scorer_timeout_seconds,
        data_api_base_url=str(settings.data_api_base_url) if settings.data_api_base_url else None,
        http_timeout_seconds=settings.http_timeout_seconds,
        max_retries=settings.max_retries,
        enable_debug_metadata=settings.enable_debug_metadata,
    )

    return settings
