"""
Configuration helpers for the submission evaluation pipeline.

Centralises environment variable loading/validation so the rest of the codebase
can depend on typed config objects instead of sprinkling os.getenv calls.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

DEFAULT_VIDEO_MODEL = "lucataco/qwen2.5-omni-7b"
DEFAULT_REPLICATE_API_BASE = "https://api.replicate.com/v1"
DEFAULT_PLATFORM_FEE_PERCENTAGE = 15.0
DEFAULT_CORS_ORIGINS = ("http://localhost:3000",)


@dataclass(frozen=True)
class ModelServiceConfig:
    """Hosted video-model credentials and request knobs."""

    api_token: str
    api_base: str
    model_owner: str
    model_name: str
    request_timeout: float
    poll_interval: float
    max_wait: float

    @property
    def model_ref(self) -> str:
        return f"{self.model_owner}/{self.model_name}"


@dataclass(frozen=True)
class DBConfig:
    """Connection info for the Supabase document store."""

    supabase_url: str
    service_key: str


@dataclass(frozen=True)
class SettlementConfig:
    """Payment and reputation knobs applied after an evaluation."""

    platform_fee_percentage: float
    max_retries: int
    retry_delay: float
    quality_bonus_threshold: int


@dataclass(frozen=True)
class AppConfig:
    """HTTP app / CLI level settings."""

    log_level: str
    sentry_dsn: Optional[str]
    sentry_environment: str
    sentry_traces_sample_rate: float
    cors_origins: Tuple[str, ...]


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Wrapper around os.getenv that trims whitespace."""
    value = os.getenv(name, default)
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or default


def _require_env(name: str) -> str:
    """Fetch an environment variable or raise a helpful error."""
    value = _get_env(name)
    if not value:
        raise RuntimeError(f"Expected environment variable '{name}' to be set.")
    return value


def _get_float_env(name: str, default: float, *, allow_zero: bool = False) -> float:
    raw = _get_env(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a float, got '{raw}'.") from exc
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"{name} must be positive, got {value}.")
    return value


def _get_int_env(name: str, default: int) -> int:
    raw = _get_env(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got '{raw}'.") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}.")
    return value


def _split_model_ref(ref: str) -> Tuple[str, str]:
    owner, sep, name = ref.partition("/")
    if not sep or not owner or not name or "/" in name:
        raise ValueError(f"VIDEO_MODEL must look like 'owner/name', got '{ref}'.")
    return owner, name


@lru_cache(maxsize=1)
def get_model_config() -> ModelServiceConfig:
    """Return configuration for the hosted video-analysis model."""
    owner, name = _split_model_ref(_get_env("VIDEO_MODEL") or DEFAULT_VIDEO_MODEL)
    return ModelServiceConfig(
        api_token=_require_env("REPLICATE_API_TOKEN"),
        api_base=(_get_env("REPLICATE_API_BASE") or DEFAULT_REPLICATE_API_BASE).rstrip("/"),
        model_owner=owner,
        model_name=name,
        request_timeout=_get_float_env("MODEL_REQUEST_TIMEOUT", 120.0),
        poll_interval=_get_float_env("MODEL_POLL_INTERVAL", 2.0),
        max_wait=_get_float_env("MODEL_MAX_WAIT", 600.0),
    )


@lru_cache(maxsize=1)
def get_db_config() -> DBConfig:
    """Return Supabase connection info."""
    return DBConfig(
        supabase_url=_require_env("SUPABASE_URL"),
        service_key=_require_env("SUPABASE_SERVICE_KEY"),
    )


@lru_cache(maxsize=1)
def get_settlement_config() -> SettlementConfig:
    """Return payment/reputation settings."""
    # Both spellings are honoured; older deployments used the lowercase one.
    fee_raw = _get_env("PLATFORM_FEE_PERCENTAGE") or _get_env("platform_fee_percentage")
    if fee_raw:
        try:
            fee = float(fee_raw)
        except ValueError as exc:
            raise ValueError(f"PLATFORM_FEE_PERCENTAGE must be a float, got '{fee_raw}'.") from exc
        if not 0 <= fee <= 100:
            raise ValueError(f"PLATFORM_FEE_PERCENTAGE must be within 0-100, got {fee}.")
    else:
        fee = DEFAULT_PLATFORM_FEE_PERCENTAGE

    return SettlementConfig(
        platform_fee_percentage=fee,
        max_retries=_get_int_env("SETTLEMENT_MAX_RETRIES", 0),
        retry_delay=_get_float_env("SETTLEMENT_RETRY_DELAY", 1.0, allow_zero=True),
        quality_bonus_threshold=_get_int_env("QUALITY_BONUS_THRESHOLD", 70),
    )


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Return logging / error-tracking / CORS settings."""
    origins_raw = _get_env("CORS_ORIGINS")
    if origins_raw:
        origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip())
    else:
        origins = DEFAULT_CORS_ORIGINS
    return AppConfig(
        log_level=(_get_env("LOG_LEVEL") or "INFO").upper(),
        sentry_dsn=_get_env("SENTRY_DSN"),
        sentry_environment=_get_env("SENTRY_ENVIRONMENT") or "production",
        sentry_traces_sample_rate=_get_float_env("SENTRY_TRACES_SAMPLE_RATE", 0.0, allow_zero=True),
        cors_origins=origins,
    )


def describe_active_models() -> dict:
    """Return a summary of the currently selected model/backend."""
    model_cfg = get_model_config()
    return {
        "video_model": model_cfg.model_ref,
        "model_api_base": model_cfg.api_base,
        "db_backend": "supabase",
    }


__all__ = [
    "AppConfig",
    "DBConfig",
    "ModelServiceConfig",
    "SettlementConfig",
    "get_app_config",
    "get_db_config",
    "get_model_config",
    "get_settlement_config",
    "describe_active_models",
]
